"""Tests for channel profiles and presets."""

import pytest

from linksim.simulator import profiles
from linksim.simulator.profiles import (
  PRESETS,
  PROBABILITY_FLOORS,
  ChannelPreset,
  ChannelProfile,
  ChannelType,
)


class TestChannelProfile:
  """Tests for clamping and probability floors."""

  def test_defaults(self) -> None:
    """Test the default IDEAL profile."""
    profile = ChannelProfile()
    assert profile.channel_type is ChannelType.IDEAL
    assert profile.error_probability == 0.0
    assert profile.bits_per_second == 1000.0
    assert profile.seed is None
    assert not profile.corrupts_bits

  def test_ideal_forces_zero(self) -> None:
    """Test that IDEAL never corrupts, whatever was requested."""
    profile = ChannelProfile(channel_type=ChannelType.IDEAL, error_probability=0.4)
    assert profile.error_probability == 0.0

  @pytest.mark.parametrize(
    ("channel_type", "floor"),
    [
      (ChannelType.NOISY, 0.01),
      (ChannelType.INTERMITTENT, 0.05),
      (ChannelType.LOSSY, 0.10),
    ],
  )
  def test_floor_raises_low_probability(
    self, channel_type: ChannelType, floor: float
  ) -> None:
    """Test that a request below the floor is raised to it."""
    profile = ChannelProfile(channel_type=channel_type, error_probability=0.0)
    assert profile.error_probability == pytest.approx(floor)
    assert PROBABILITY_FLOORS[channel_type] == pytest.approx(floor)
    assert profile.corrupts_bits

  def test_floor_never_lowers(self) -> None:
    """Test that a request above the floor is kept."""
    profile = ChannelProfile(channel_type=ChannelType.NOISY, error_probability=0.3)
    assert profile.error_probability == pytest.approx(0.3)

  @pytest.mark.parametrize(
    ("requested", "expected"),
    [(-1.0, 0.10), (1.5, 1.0), (0.2, 0.2)],
  )
  def test_probability_is_clamped(self, requested: float, expected: float) -> None:
    """Test that out-of-range probabilities are clamped, not rejected."""
    profile = ChannelProfile(
      channel_type=ChannelType.LOSSY, error_probability=requested
    )
    assert profile.error_probability == pytest.approx(expected)

  @pytest.mark.parametrize(
    ("requested", "expected"), [(0.0, 1.0), (-5.0, 1.0), (9600.0, 9600.0)]
  )
  def test_rate_is_clamped(self, requested: float, expected: float) -> None:
    """Test that the rate is at least one bit per second."""
    profile = ChannelProfile(bits_per_second=requested)
    assert profile.bits_per_second == expected

  def test_string_channel_type(self) -> None:
    """Test that the channel type may be given by name."""
    profile = ChannelProfile.model_validate({"channel_type": "INTERMITTENT"})
    assert profile.channel_type is ChannelType.INTERMITTENT
    assert profile.error_probability == pytest.approx(0.05)


class TestFactories:
  """Tests for the profile factory functions."""

  def test_ideal(self) -> None:
    """Test the error-free factory."""
    profile = profiles.ideal(bits_per_second=50_000)
    assert profile.channel_type is ChannelType.IDEAL
    assert profile.bits_per_second == 50_000

  @pytest.mark.parametrize(
    ("factory", "channel_type", "default_probability"),
    [
      (profiles.noisy, ChannelType.NOISY, 0.01),
      (profiles.intermittent, ChannelType.INTERMITTENT, 0.05),
      (profiles.lossy, ChannelType.LOSSY, 0.10),
    ],
  )
  def test_impaired_factories(
    self, factory, channel_type: ChannelType, default_probability: float
  ) -> None:
    """Test defaults and custom parameters of the impaired factories."""
    profile = factory()
    assert profile.channel_type is channel_type
    assert profile.error_probability == pytest.approx(default_probability)

    custom = factory(error_probability=0.5, bits_per_second=20_000, seed=7)
    assert custom.error_probability == pytest.approx(0.5)
    assert custom.bits_per_second == 20_000
    assert custom.seed == 7


class TestPresets:
  """Tests for the named presets."""

  def test_registry(self) -> None:
    """Test that every preset is registered under a short key."""
    assert set(PRESETS) == {"ideal", "light_noise", "heavy_noise", "flaky", "lossy"}
    assert all(isinstance(preset, ChannelPreset) for preset in PRESETS.values())

  def test_preset_constants_have_metadata(self) -> None:
    """Test that preset constants have proper metadata."""
    for preset in PRESETS.values():
      assert preset.name
      assert preset.description

  def test_presets_are_ordered_by_severity(self) -> None:
    """Test that the presets get progressively worse."""
    probabilities = [
      profiles.PERFECT_LINK.profile.error_probability,
      profiles.LIGHT_NOISE.profile.error_probability,
      profiles.HEAVY_NOISE.profile.error_probability,
      profiles.FLAKY_LINK.profile.error_probability,
      profiles.LOSSY_LINK.profile.error_probability,
    ]
    assert probabilities == sorted(probabilities)
