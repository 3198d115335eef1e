"""Channel impairment profiles and a small library of named presets.

A profile picks the kind of channel and its bit-error probability. Each
kind has a probability floor: configuring a named kind raises the requested
probability to at least the floor, and never lowers a higher request.

Typical Usage:
  ```python
  from linksim.simulator import profiles
  from linksim.simulator.channel import Channel

  # Factory with custom parameters
  channel = Channel(profiles.noisy(error_probability=0.02, seed=7))

  # Or a pre-configured preset
  channel = Channel(profiles.LOSSY_LINK.profile)
  ```
"""

from enum import StrEnum

from pydantic import BaseModel, model_validator

DEFAULT_BITS_PER_SECOND = 1000.0
MIN_BITS_PER_SECOND = 1.0


class ChannelType(StrEnum):
  """Kind of channel impairment."""

  IDEAL = "IDEAL"
  NOISY = "NOISY"
  INTERMITTENT = "INTERMITTENT"
  LOSSY = "LOSSY"


# Lower bound of the bit-error probability per channel kind.
PROBABILITY_FLOORS: dict[ChannelType, float] = {
  ChannelType.IDEAL: 0.0,
  ChannelType.NOISY: 0.01,
  ChannelType.INTERMITTENT: 0.05,
  ChannelType.LOSSY: 0.10,
}


class ChannelProfile(BaseModel):
  """Configuration of the channel impairment.

  Out-of-range numbers are clamped rather than rejected.

  Attributes:
    channel_type: Kind of channel.
    error_probability: Per-bit flip probability, clamped to [0, 1] and then
      raised to the floor of `channel_type`. IDEAL always uses 0.
    bits_per_second: Transmission rate, at least 1 bit/s.
    seed: Optional seed for reproducible bit errors.
  """

  channel_type: ChannelType = ChannelType.IDEAL
  error_probability: float = 0.0
  bits_per_second: float = DEFAULT_BITS_PER_SECOND
  seed: int | None = None

  model_config = {"frozen": True}

  @model_validator(mode="before")
  @classmethod
  def _clamp(cls, data: object) -> object:
    if not isinstance(data, dict):
      return data

    values = dict(data)
    channel_type = ChannelType(values.get("channel_type") or ChannelType.IDEAL)
    probability = float(values.get("error_probability", 0.0))
    probability = max(0.0, min(1.0, probability))
    if channel_type is ChannelType.IDEAL:
      probability = 0.0
    else:
      probability = max(probability, PROBABILITY_FLOORS[channel_type])

    values["channel_type"] = channel_type
    values["error_probability"] = probability
    values["bits_per_second"] = max(
      MIN_BITS_PER_SECOND,
      float(values.get("bits_per_second", DEFAULT_BITS_PER_SECOND)),
    )
    return values

  @property
  def corrupts_bits(self) -> bool:
    """Whether this profile can flip bits at all."""
    return self.channel_type is not ChannelType.IDEAL


def ideal(
  bits_per_second: float = DEFAULT_BITS_PER_SECOND,
) -> ChannelProfile:
  """Error-free channel."""
  return ChannelProfile(
    channel_type=ChannelType.IDEAL, bits_per_second=bits_per_second
  )


def noisy(
  error_probability: float = 0.01,
  bits_per_second: float = DEFAULT_BITS_PER_SECOND,
  seed: int | None = None,
) -> ChannelProfile:
  """Channel with background noise (probability floor 1%).

  Args:
    error_probability: Per-bit flip probability (default: 1%).
    bits_per_second: Transmission rate (default: 1000 bit/s).
    seed: Optional RNG seed.

  Returns:
    The channel profile.
  """
  return ChannelProfile(
    channel_type=ChannelType.NOISY,
    error_probability=error_probability,
    bits_per_second=bits_per_second,
    seed=seed,
  )


def intermittent(
  error_probability: float = 0.05,
  bits_per_second: float = DEFAULT_BITS_PER_SECOND,
  seed: int | None = None,
) -> ChannelProfile:
  """Channel with intermittent dropouts (probability floor 5%)."""
  return ChannelProfile(
    channel_type=ChannelType.INTERMITTENT,
    error_probability=error_probability,
    bits_per_second=bits_per_second,
    seed=seed,
  )


def lossy(
  error_probability: float = 0.10,
  bits_per_second: float = DEFAULT_BITS_PER_SECOND,
  seed: int | None = None,
) -> ChannelProfile:
  """Heavily impaired channel (probability floor 10%)."""
  return ChannelProfile(
    channel_type=ChannelType.LOSSY,
    error_probability=error_probability,
    bits_per_second=bits_per_second,
    seed=seed,
  )


class ChannelPreset(BaseModel):
  """A named channel profile with metadata.

  Attributes:
    name: Human-readable preset name.
    description: What the preset models.
    profile: The channel profile.
  """

  name: str
  description: str
  profile: ChannelProfile

  model_config = {"frozen": True}


PERFECT_LINK = ChannelPreset(
  name="Perfect link",
  description="No bit errors, 1 kbit/s",
  profile=ideal(),
)

LIGHT_NOISE = ChannelPreset(
  name="Light noise",
  description="Noisy channel, 1% bit errors",
  profile=noisy(),
)

HEAVY_NOISE = ChannelPreset(
  name="Heavy noise",
  description="Noisy channel, 3% bit errors",
  profile=noisy(error_probability=0.03),
)

FLAKY_LINK = ChannelPreset(
  name="Flaky link",
  description="Intermittent channel, 5% bit errors",
  profile=intermittent(),
)

LOSSY_LINK = ChannelPreset(
  name="Lossy link",
  description="Lossy channel, 10% bit errors",
  profile=lossy(),
)

PRESETS: dict[str, ChannelPreset] = {
  "ideal": PERFECT_LINK,
  "light_noise": LIGHT_NOISE,
  "heavy_noise": HEAVY_NOISE,
  "flaky": FLAKY_LINK,
  "lossy": LOSSY_LINK,
}
