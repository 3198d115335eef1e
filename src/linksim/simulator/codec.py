"""Text to binary source coding.

The binary form of a text is its UTF-8 byte sequence with every byte rendered
as exactly eight '0'/'1' characters, most significant bit first.

Example:
  >>> text_to_binary("HI")
  '0100100001001001'
"""

import logging
import re
import threading

from linksim.simulator.errors import ErrorKind, StageError
from linksim.simulator.events import EventType
from linksim.simulator.message import Message, MessageState
from linksim.simulator.stage import Stage

logger = logging.getLogger(__name__)

BITS_PER_BYTE = 8
DEFAULT_MAX_MESSAGE_LENGTH = 1000

_BINARY_PATTERN = re.compile(r"[01]*")


def text_to_binary(text: str) -> str:
  """Render text as a bit string (UTF-8, 8 bits per byte, MSB first)."""
  if not text:
    return ""
  return "".join(f"{byte:08b}" for byte in text.encode("utf-8"))


def binary_to_text(binary: str) -> str:
  """Decode a bit string produced by `text_to_binary`.

  Bytes that do not form valid UTF-8 are replaced with U+FFFD instead of
  raising, so a corrupted payload still yields a comparable string.

  Raises:
    StageError: MALFORMED_BINARY if the length is not a multiple of 8 or the
      string contains characters other than '0' and '1'.
  """
  if not is_binary_string(binary):
    raise StageError(
      ErrorKind.MALFORMED_BINARY, "content is not a valid binary string"
    )
  if len(binary) % BITS_PER_BYTE != 0:
    raise StageError(
      ErrorKind.MALFORMED_BINARY,
      f"binary length {len(binary)} is not a multiple of {BITS_PER_BYTE}",
    )

  data = bytes(
    int(binary[i : i + BITS_PER_BYTE], 2)
    for i in range(0, len(binary), BITS_PER_BYTE)
  )
  return data.decode("utf-8", errors="replace")


def is_binary_string(value: str | None) -> bool:
  """Whether `value` only contains '0' and '1' characters."""
  return value is not None and _BINARY_PATTERN.fullmatch(value) is not None


def format_binary_string(binary: str | None) -> str:
  """Group a bit string into bytes separated by spaces for display."""
  if not binary:
    return ""
  return " ".join(
    binary[i : i + BITS_PER_BYTE] for i in range(0, len(binary), BITS_PER_BYTE)
  )


def text_to_bits(text: str) -> list[str]:
  """Split the binary form of `text` into single-bit characters."""
  return list(text_to_binary(text))


class Encoder(Stage):
  """Encodes the original text of a message into its binary form."""

  def __init__(self, max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH) -> None:
    """Initialize encoder.

    Args:
      max_message_length: Longest accepted text, in characters.
    """
    super().__init__()
    self.max_message_length = max_message_length

  @property
  def name(self) -> str:
    return "Encoder"

  @property
  def target_state(self) -> MessageState:
    return MessageState.ENCODED

  @property
  def completed_event(self) -> EventType:
    return EventType.MESSAGE_ENCODED

  def encode(self, message: Message | None) -> bool:
    """Encode a message to binary.

    Returns:
      True on success, False otherwise (see `last_error`).
    """
    return self.run(message)

  def _check_ready(self, message: Message) -> None:
    if not message.original:
      raise StageError(ErrorKind.INVALID_INPUT, "message text cannot be empty")
    if len(message.original) > self.max_message_length:
      raise StageError(
        ErrorKind.INVALID_INPUT,
        f"message length {len(message.original)} exceeds the maximum of "
        f"{self.max_message_length} characters",
      )

  def _process(
    self, message: Message, cancel_event: threading.Event | None
  ) -> None:
    binary = text_to_binary(message.original)
    message.binary = binary
    message.encoded = binary
    message.transition(MessageState.ENCODED)


class Decoder(Stage):
  """Decodes the binary form back to text and verifies it end to end.

  A decoded text that differs from the original is reported as an
  INTEGRITY_MISMATCH failure. This is how bit errors introduced by the
  channel surface at the end of the pipeline.
  """

  @property
  def name(self) -> str:
    return "Decoder"

  @property
  def target_state(self) -> MessageState:
    return MessageState.DECODED

  @property
  def completed_event(self) -> EventType:
    return EventType.MESSAGE_DECODED

  def decode(self, message: Message | None) -> bool:
    """Decode a message from binary and check it against the original."""
    return self.run(message)

  def _check_ready(self, message: Message) -> None:
    if not message.encoded:
      raise StageError(ErrorKind.EMPTY_CONTENT, "no encoded content to decode")

  def _process(
    self, message: Message, cancel_event: threading.Event | None
  ) -> None:
    decoded = binary_to_text(message.encoded or "")
    if decoded != message.original:
      logger.info(
        f"Decoded text differs from the original ({len(decoded)} vs "
        f"{len(message.original)} characters)"
      )
      raise StageError(
        ErrorKind.INTEGRITY_MISMATCH,
        "decoded text does not match the original",
      )
    message.transition(MessageState.DECODED)
