"""Tests for the binary symmetric channel."""

import threading
import time
from typing import Any

import pytest
import scipy.stats

from linksim.simulator import profiles
from linksim.simulator.channel import Channel
from linksim.simulator.errors import ErrorKind
from linksim.simulator.message import Message, MessageState

# Fast enough to skip pacing
FAST_BPS = 1_000_000.0


def encrypted_message(content: str) -> Message:
  """Build a message that is ready to be transmitted."""
  message = Message("x")
  message.encoded = content
  message.encrypted = content
  message.transition(MessageState.ENCRYPTED)
  return message


class TestIdealChannel:
  """Tests for the error-free channel."""

  def test_transmit_unchanged(self) -> None:
    """Test that an IDEAL channel never flips bits."""
    channel = Channel(profiles.ideal(bits_per_second=FAST_BPS))
    message = encrypted_message("1110001011100011")
    events: list[str] = []
    channel.subscribe(lambda event_type, _: events.append(event_type))

    assert channel.transmit(message)

    assert message.encrypted == "1110001011100011"
    assert message.state is MessageState.RECEIVED
    assert channel.bits_transmitted == 16
    assert channel.bit_errors == 0
    assert channel.ber == 0.0
    assert events[0] == "PROCESSING_STARTED"
    assert events[-2:] == ["MESSAGE_TRANSMITTED", "PROCESSING_COMPLETED"]

  def test_ideal_carries_any_alphabet(self) -> None:
    """Test that IDEAL is transparent to Base64 text."""
    channel = Channel(profiles.ideal(bits_per_second=FAST_BPS))
    message = encrypted_message("TUlO+/==")
    assert channel.transmit(message)
    assert message.encrypted == "TUlO+/=="

  def test_progress_events(self) -> None:
    """Test that progress is reported per byte and at the end."""
    channel = Channel(profiles.ideal(bits_per_second=FAST_BPS))
    progress: list[float] = []

    def on_event(event_type: str, payload: Any) -> None:
      if event_type == "TRANSMISSION_PROGRESS":
        progress.append(payload)

    channel.subscribe(on_event)
    channel.transmit(encrypted_message("0" * 20))

    assert progress == pytest.approx([8 / 20, 16 / 20, 1.0])


class TestNoisyChannel:
  """Tests for bit corruption and statistics."""

  def test_ber_within_binomial_tolerance(self) -> None:
    """Test that the error count follows Binomial(N, p)."""
    bits = 20_000
    probability = 0.05
    channel = Channel(
      profiles.noisy(
        error_probability=probability, bits_per_second=FAST_BPS, seed=2024
      )
    )

    assert channel.transmit(encrypted_message("0" * bits))

    low, high = scipy.stats.binom.interval(0.999999, bits, probability)
    assert low <= channel.bit_errors <= high
    assert channel.ber == pytest.approx(channel.bit_errors / bits * 100.0)

  def test_flipped_bits_match_error_count(self) -> None:
    """Test that every counted error is a flipped bit."""
    channel = Channel(profiles.lossy(bits_per_second=FAST_BPS, seed=1))
    message = encrypted_message("0" * 800)

    channel.transmit(message)

    assert (message.encrypted or "").count("1") == channel.bit_errors

  def test_certain_error_flips_everything(self) -> None:
    """Test that p = 1 inverts every bit."""
    channel = Channel(
      profiles.lossy(error_probability=1.0, bits_per_second=FAST_BPS)
    )
    message = encrypted_message("0100100001001001")
    channel.transmit(message)
    assert message.encrypted == "1011011110110110"
    assert channel.ber == 100.0

  def test_seed_is_reproducible(self) -> None:
    """Test that equal seeds give equal corruption."""
    outputs = []
    for _ in range(2):
      channel = Channel(profiles.lossy(bits_per_second=FAST_BPS, seed=99))
      message = encrypted_message("01" * 200)
      channel.transmit(message)
      outputs.append(message.encrypted)
    assert outputs[0] == outputs[1]

  def test_counters_accumulate_until_reset(self) -> None:
    """Test that statistics span transmissions until reset."""
    channel = Channel(profiles.ideal(bits_per_second=FAST_BPS))
    channel.transmit(encrypted_message("0" * 8))
    channel.transmit(encrypted_message("0" * 16))
    assert channel.bits_transmitted == 24

    channel.reset_statistics()

    assert channel.bits_transmitted == 0
    assert channel.bit_errors == 0
    assert channel.ber == 0.0

  def test_corrupting_channel_refuses_non_binary(self) -> None:
    """Test that Base64 text cannot cross a noisy channel."""
    channel = Channel(profiles.noisy(bits_per_second=FAST_BPS))
    message = encrypted_message("TUlO+/==")

    assert not channel.transmit(message)

    assert channel.last_error_kind is ErrorKind.MALFORMED_BINARY
    assert message.state is MessageState.ERROR
    assert channel.bits_transmitted == 0

  def test_summary(self) -> None:
    """Test the one-line description."""
    channel = Channel(profiles.lossy(bits_per_second=FAST_BPS))
    assert "LOSSY" in channel.summary()
    assert "BER=0.00%" in channel.summary()


class TestChannelErrors:
  """Tests for preconditions, reentrancy and cancellation."""

  def test_requires_encrypted_content(self) -> None:
    """Test that there must be something to send."""
    channel = Channel()
    assert not channel.transmit(Message("x"))
    assert channel.last_error_kind is ErrorKind.EMPTY_CONTENT

  def test_none_message(self) -> None:
    """Test that a missing message is invalid input."""
    channel = Channel()
    assert not channel.transmit(None)
    assert channel.last_error_kind is ErrorKind.INVALID_INPUT

  def test_cancellation(self) -> None:
    """Test that a set token stops the transmission at the next bit."""
    channel = Channel(profiles.ideal(bits_per_second=FAST_BPS))
    cancel = threading.Event()
    message = encrypted_message("0" * 64)

    def on_event(event_type: str, payload: Any) -> None:
      if event_type == "TRANSMISSION_PROGRESS":
        cancel.set()

    channel.subscribe(on_event)

    assert not channel.transmit(message, cancel)

    assert channel.last_error_kind is ErrorKind.CANCELLED
    assert message.state is MessageState.ERROR
    assert channel.bits_transmitted == 8

  def test_cancellation_interrupts_bit_period(self) -> None:
    """Test that a slow channel does not finish the current bit once cancelled."""
    channel = Channel(profiles.ideal(bits_per_second=1.0))
    cancel = threading.Event()
    message = encrypted_message("01")
    timer = threading.Timer(0.2, cancel.set)
    timer.start()

    start = time.monotonic()
    assert not channel.transmit(message, cancel)
    elapsed = time.monotonic() - start

    timer.join()
    assert elapsed < 0.9
    assert channel.last_error_kind is ErrorKind.CANCELLED
    assert message.state is MessageState.ERROR

  def test_busy_channel_rejects_second_message(self) -> None:
    """Test that a second concurrent transmission fails fast."""
    # Paced: 32 bits at 200 bit/s take about 0.16 s
    channel = Channel(profiles.ideal(bits_per_second=200))
    started = threading.Event()
    def on_event(event_type: str, payload: Any) -> None:
      if event_type == "PROCESSING_STARTED":
        started.set()

    channel.subscribe(on_event)
    first = encrypted_message("0" * 32)
    results: list[bool] = []
    worker = threading.Thread(target=lambda: results.append(channel.transmit(first)))
    worker.start()
    assert started.wait(timeout=5)

    assert channel.is_transmitting
    assert not channel.transmit(encrypted_message("1" * 8))
    assert channel.last_error_kind is ErrorKind.ALREADY_TRANSMITTING

    worker.join(timeout=5)
    assert results == [True]
    assert first.state is MessageState.RECEIVED
    assert channel.bits_transmitted == 32
