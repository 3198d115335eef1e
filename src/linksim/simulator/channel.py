"""Binary symmetric channel simulator.

The channel walks the cipher output of a message one bit at a time and flips
each bit independently with the profile's error probability (one Bernoulli
trial per bit, never per message or per byte). Counters of transmitted bits
and introduced errors accumulate across transmissions until
`reset_statistics` is called.
"""

import logging
import threading
import time

import numpy as np

from linksim.simulator.errors import ErrorKind, StageError
from linksim.simulator.events import EventType
from linksim.simulator.message import Message, MessageState
from linksim.simulator.profiles import ChannelProfile
from linksim.simulator.stage import Stage

logger = logging.getLogger(__name__)

# Progress is reported once per byte-sized group of bits.
PROGRESS_INTERVAL_BITS = 8

# Rates at or above this are simulated without sleeping.
PACING_LIMIT_BPS = 10_000.0

_FLIPPED = {"0": "1", "1": "0"}


class Channel(Stage):
  """Carries messages from the sender to the receiver, corrupting bits."""

  busy_error = ErrorKind.ALREADY_TRANSMITTING

  def __init__(self, profile: ChannelProfile | None = None) -> None:
    """Initialize channel.

    Args:
      profile: Impairment profile (default: IDEAL at 1 kbit/s).
    """
    super().__init__()
    self._stats_lock = threading.Lock()
    self._bits_transmitted = 0
    self._bit_errors = 0
    self.configure(profile or ChannelProfile())

  @property
  def name(self) -> str:
    return "Channel"

  @property
  def target_state(self) -> MessageState:
    return MessageState.RECEIVED

  @property
  def completed_event(self) -> EventType:
    return EventType.MESSAGE_TRANSMITTED

  @property
  def profile(self) -> ChannelProfile:
    return self._profile

  def configure(self, profile: ChannelProfile) -> None:
    """Apply a new impairment profile and reseed the random source."""
    self._profile = profile
    self._rng = np.random.default_rng(profile.seed)
    logger.debug(
      f"Channel configured: {profile.channel_type}, "
      f"p={profile.error_probability}, {profile.bits_per_second} bit/s"
    )

  @property
  def is_transmitting(self) -> bool:
    return self.is_processing

  def transmit(
    self, message: Message | None, cancel_event: threading.Event | None = None
  ) -> bool:
    """Send a message across the channel.

    Args:
      message: Message carrying the cipher output to transmit.
      cancel_event: When set, the transmission stops at the next bit and
        fails with CANCELLED.

    Returns:
      True on success, False otherwise (see `last_error`).
    """
    return self.run(message, cancel_event)

  def _check_ready(self, message: Message) -> None:
    if not message.encrypted:
      raise StageError(
        ErrorKind.EMPTY_CONTENT, "no encrypted content to transmit"
      )

  def _process(
    self, message: Message, cancel_event: threading.Event | None
  ) -> None:
    profile = self._profile
    content = message.encrypted or ""
    total = len(content)

    if profile.corrupts_bits and set(content) - {"0", "1"}:
      raise StageError(
        ErrorKind.MALFORMED_BINARY,
        f"{profile.channel_type} channel can only carry binary digits; "
        "use an IDEAL channel for Base64 content",
      )

    message.transition(MessageState.TRANSMITTING)

    if profile.corrupts_bits:
      flips = self._rng.random(total) < profile.error_probability
    else:
      flips = np.zeros(total, dtype=bool)
    delay = 1.0 / profile.bits_per_second
    paced = profile.bits_per_second < PACING_LIMIT_BPS

    transmitted = []
    for i, bit in enumerate(content):
      if cancel_event is not None and cancel_event.is_set():
        raise StageError(
          ErrorKind.CANCELLED, f"transmission cancelled after {i} of {total} bits"
        )

      if flips[i]:
        transmitted.append(_FLIPPED[bit])
        self._count(errors=1)
      else:
        transmitted.append(bit)
      self._count(bits=1)

      if paced:
        self._pause(delay, cancel_event, sent=i + 1, total=total)

      sent = i + 1
      if sent % PROGRESS_INTERVAL_BITS == 0 or sent == total:
        self.publish(EventType.TRANSMISSION_PROGRESS, sent / total)

    message.encrypted = "".join(transmitted)
    message.transition(MessageState.RECEIVED)

  @staticmethod
  def _pause(
    delay: float, cancel_event: threading.Event | None, sent: int, total: int
  ) -> None:
    """Hold the line for one bit period, waking early on cancellation."""
    if cancel_event is None:
      time.sleep(delay)
    elif cancel_event.wait(delay):
      raise StageError(
        ErrorKind.CANCELLED, f"transmission cancelled after {sent} of {total} bits"
      )

  def _count(self, bits: int = 0, errors: int = 0) -> None:
    with self._stats_lock:
      self._bits_transmitted += bits
      self._bit_errors += errors

  @property
  def bits_transmitted(self) -> int:
    with self._stats_lock:
      return self._bits_transmitted

  @property
  def bit_errors(self) -> int:
    with self._stats_lock:
      return self._bit_errors

  @property
  def ber(self) -> float:
    """Bit-error rate in percent, 0 before anything was transmitted."""
    with self._stats_lock:
      if self._bits_transmitted == 0:
        return 0.0
      return self._bit_errors / self._bits_transmitted * 100.0

  def reset_statistics(self) -> None:
    """Zero the bit and error counters."""
    with self._stats_lock:
      self._bits_transmitted = 0
      self._bit_errors = 0

  def summary(self) -> str:
    """One-line description of the channel state for logs."""
    return (
      f"Channel(type={self._profile.channel_type}, BER={self.ber:.2f}%, "
      f"bits={self.bits_transmitted}, errors={self.bit_errors})"
    )
