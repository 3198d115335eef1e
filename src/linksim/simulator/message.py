"""The unit of work threaded through the link pipeline."""

import threading
from datetime import datetime
from enum import IntEnum

from linksim.simulator.errors import ErrorKind, StageError


class MessageState(IntEnum):
  """Lifecycle of a message.

  The integer values define the forward order of the chain. A message only
  moves forward along the chain, except for the absorbing ERROR state which
  is reachable from anywhere.
  """

  CREATED = 1
  ENCODED = 2
  ENCRYPTED = 3
  TRANSMITTING = 4
  RECEIVED = 5
  DECRYPTED = 6
  DECODED = 7
  COMPLETED = 8
  ERROR = 99


class Message:
  """A text message and the intermediate forms it takes along the link.

  Attributes:
    binary: Bit string produced by the encoder.
    encoded: Cipher input. Set by the encoder, restored by the decipher.
    encrypted: Cipher output. Overwritten in place by the channel with the
      (possibly corrupted) transmitted content.
  """

  def __init__(self, text: str) -> None:
    if text is None:
      msg = "Message text cannot be None"
      raise ValueError(msg)

    self._original = text
    self._created_at = datetime.now()
    self._state = MessageState.CREATED
    self._state_lock = threading.Lock()

    self.binary: str | None = None
    self.encoded: str | None = None
    self.encrypted: str | None = None

  @property
  def original(self) -> str:
    return self._original

  @property
  def created_at(self) -> datetime:
    return self._created_at

  @property
  def state(self) -> MessageState:
    return self._state

  def can_transition(self, target: MessageState) -> bool:
    """Whether moving to `target` keeps the lifecycle monotonic."""
    current = self._state
    if current is MessageState.ERROR:
      return target is MessageState.ERROR
    return target is MessageState.ERROR or target > current

  def transition(self, target: MessageState) -> None:
    """Advance the lifecycle state.

    Args:
      target: The next state.

    Raises:
      StageError: INVALID_STATE if the move would regress along the chain or
        leave the ERROR state.
    """
    with self._state_lock:
      if not self.can_transition(target):
        raise StageError(
          ErrorKind.INVALID_STATE,
          f"cannot move message from {self._state.name} to {target.name}",
        )
      self._state = target

  def fail(self) -> None:
    """Move the message into the absorbing ERROR state."""
    with self._state_lock:
      self._state = MessageState.ERROR

  @property
  def size_bytes(self) -> int:
    """Size of the original text in UTF-8 bytes."""
    return len(self._original.encode("utf-8"))

  @property
  def size_bits(self) -> int:
    """Length of the binary form, 0 before encoding."""
    return len(self.binary) if self.binary else 0

  @property
  def has_error(self) -> bool:
    return self._state is MessageState.ERROR

  @property
  def is_complete(self) -> bool:
    return self._state is MessageState.COMPLETED

  def copy(self) -> "Message":
    """Return an independent copy carrying the same content and state."""
    duplicate = Message(self._original)
    duplicate._created_at = self._created_at
    duplicate.binary = self.binary
    duplicate.encoded = self.encoded
    duplicate.encrypted = self.encrypted
    duplicate._state = self._state
    return duplicate

  def __repr__(self) -> str:
    return (
      f"Message(state={self._state.name}, size={self.size_bytes} bytes, "
      f"created_at={self._created_at.isoformat()})"
    )
