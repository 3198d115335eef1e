"""Reversible symmetric transforms applied to the binary form of a message.

These ciphers are teaching aids and provide no security. Every algorithm has
an exact inverse as long as Cipher and Decipher share the same
`CipherConfig`. A mismatched configuration is not detected here; it shows up
later as a corrupted decoded text.

Algorithms:
  - NONE: identity.
  - CAESAR_BIT_FLIP: inverts every bit when the key is an odd integer.
  - XOR: bitwise XOR with the key repeated to the message length.
  - BASE64: Base64 text of the ASCII bytes of the bit string. The output is
    no longer a binary-digit string, so it must be carried over an IDEAL
    channel (a bit-corrupting channel refuses it).
"""

import base64
import logging
import threading
from enum import StrEnum

from pydantic import BaseModel, field_validator, model_validator

from linksim.simulator.errors import ErrorKind, StageError
from linksim.simulator.events import EventType
from linksim.simulator.message import Message, MessageState
from linksim.simulator.stage import Stage

logger = logging.getLogger(__name__)


class CipherAlgorithm(StrEnum):
  """Cipher selector."""

  NONE = "NONE"
  CAESAR_BIT_FLIP = "CAESAR_BIT_FLIP"
  XOR = "XOR"
  BASE64 = "BASE64"


class CipherConfig(BaseModel):
  """Algorithm and key shared by Cipher and Decipher.

  Attributes:
    algorithm: The cipher to apply.
    key: Algorithm key. An odd integer for CAESAR_BIT_FLIP, a bit string for
      XOR, ignored otherwise.
  """

  algorithm: CipherAlgorithm = CipherAlgorithm.NONE
  key: str = ""

  model_config = {"frozen": True}

  @field_validator("key", mode="before")
  @classmethod
  def _none_key_is_empty(cls, value: str | None) -> str:
    return "" if value is None else value

  @model_validator(mode="after")
  def _xor_key_is_binary(self) -> "CipherConfig":
    if self.algorithm is CipherAlgorithm.XOR and set(self.key) - {"0", "1"}:
      msg = f"XOR key must only contain '0' and '1', got {self.key!r}"
      raise ValueError(msg)
    return self


def _flip(bit: str) -> str:
  return "1" if bit == "0" else "0"


def _caesar_flips(key: str) -> bool:
  """Whether a CAESAR_BIT_FLIP key inverts the bits (odd integer key)."""
  try:
    return int(key.strip()) % 2 == 1
  except ValueError:
    return False


def _xor(content: str, key: str) -> str:
  if not key:
    return content
  return "".join(
    "0" if bit == key[i % len(key)] else "1" for i, bit in enumerate(content)
  )


def encrypt(content: str, config: CipherConfig) -> str:
  """Apply the configured cipher.

  Args:
    content: Bit string to encrypt.
    config: Cipher configuration.

  Returns:
    The encrypted content.

  Raises:
    StageError: EMPTY_CONTENT for empty input, UNSUPPORTED_ALGORITHM for an
      unknown selector.
  """
  if not content:
    raise StageError(ErrorKind.EMPTY_CONTENT, "no encoded content to encrypt")

  match config.algorithm:
    case CipherAlgorithm.NONE:
      return content
    case CipherAlgorithm.CAESAR_BIT_FLIP:
      if not _caesar_flips(config.key):
        return content
      return "".join(_flip(bit) for bit in content)
    case CipherAlgorithm.XOR:
      return _xor(content, config.key)
    case CipherAlgorithm.BASE64:
      return base64.b64encode(content.encode("ascii")).decode("ascii")
    case _:
      raise StageError(
        ErrorKind.UNSUPPORTED_ALGORITHM,
        f"unsupported cipher algorithm: {config.algorithm!r}",
      )


def decrypt(content: str, config: CipherConfig) -> str:
  """Invert `encrypt` under the same configuration.

  Raises:
    StageError: EMPTY_CONTENT for empty input, UNSUPPORTED_ALGORITHM for an
      unknown selector, MALFORMED_BINARY for invalid Base64 text.
  """
  if not content:
    raise StageError(ErrorKind.EMPTY_CONTENT, "no encrypted content to decrypt")

  match config.algorithm:
    case CipherAlgorithm.NONE | CipherAlgorithm.CAESAR_BIT_FLIP | CipherAlgorithm.XOR:
      # Bit flips and XOR are involutions
      return encrypt(content, config)
    case CipherAlgorithm.BASE64:
      try:
        return base64.b64decode(content, validate=True).decode("ascii")
      except ValueError as e:
        raise StageError(
          ErrorKind.MALFORMED_BINARY, f"invalid Base64 content: {e}"
        ) from e
    case _:
      raise StageError(
        ErrorKind.UNSUPPORTED_ALGORITHM,
        f"unsupported cipher algorithm: {config.algorithm!r}",
      )


class _ConfiguredStage(Stage):
  """Stage holding a swappable `CipherConfig`."""

  def __init__(self, config: CipherConfig | None = None) -> None:
    super().__init__()
    self._config = config or CipherConfig()

  @property
  def config(self) -> CipherConfig:
    return self._config

  def configure(self, config: CipherConfig) -> None:
    """Replace the cipher configuration."""
    self._config = config
    logger.debug(f"{self.name} configured with {config.algorithm}")


class Cipher(_ConfiguredStage):
  """Encrypts the cipher input of a message into its cipher output."""

  @property
  def name(self) -> str:
    return "Cipher"

  @property
  def target_state(self) -> MessageState:
    return MessageState.ENCRYPTED

  @property
  def completed_event(self) -> EventType:
    return EventType.MESSAGE_ENCRYPTED

  def encrypt(self, message: Message | None) -> bool:
    """Encrypt a message according to the current configuration."""
    return self.run(message)

  def _check_ready(self, message: Message) -> None:
    if not message.encoded:
      raise StageError(ErrorKind.EMPTY_CONTENT, "no encoded content to encrypt")

  def _process(
    self, message: Message, cancel_event: threading.Event | None
  ) -> None:
    message.encrypted = encrypt(message.encoded or "", self._config)
    message.transition(MessageState.ENCRYPTED)


class Decipher(_ConfiguredStage):
  """Restores the cipher input of a message from its cipher output."""

  @property
  def name(self) -> str:
    return "Decipher"

  @property
  def target_state(self) -> MessageState:
    return MessageState.DECRYPTED

  @property
  def completed_event(self) -> EventType:
    return EventType.MESSAGE_DECRYPTED

  def decrypt(self, message: Message | None) -> bool:
    """Decrypt a message according to the current configuration."""
    return self.run(message)

  def _check_ready(self, message: Message) -> None:
    if not message.encrypted:
      raise StageError(
        ErrorKind.EMPTY_CONTENT, "no encrypted content to decrypt"
      )

  def _process(
    self, message: Message, cancel_event: threading.Event | None
  ) -> None:
    message.encoded = decrypt(message.encrypted or "", self._config)
    message.transition(MessageState.DECRYPTED)
