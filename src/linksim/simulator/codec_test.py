"""Tests for the text/binary codec and the Encoder/Decoder stages."""

import threading

import pytest

from linksim.simulator.codec import (
  Decoder,
  Encoder,
  binary_to_text,
  format_binary_string,
  is_binary_string,
  text_to_binary,
  text_to_bits,
)
from linksim.simulator.errors import ErrorKind, StageError
from linksim.simulator.message import Message, MessageState

HI_BINARY = "0100100001001001"


class TestBinaryHelpers:
  """Tests for the pure conversion helpers."""

  def test_text_to_binary(self) -> None:
    """Test the reference encoding of "HI"."""
    assert text_to_binary("HI") == HI_BINARY
    assert text_to_binary("") == ""

  def test_multibyte_utf8(self) -> None:
    """Test that non-ASCII characters use their UTF-8 bytes."""
    binary = text_to_binary("é")
    assert binary == "1100001110101001"
    assert binary_to_text(binary) == "é"

  @pytest.mark.parametrize("text", ["A", "Hello, World!", "ñandú ☃", "line\nbreak"])
  def test_round_trip(self, text: str) -> None:
    """Test that decoding inverts encoding."""
    assert binary_to_text(text_to_binary(text)) == text

  @pytest.mark.parametrize("binary", ["0100100", "01001000x", "0100 1000"])
  def test_malformed_binary(self, binary: str) -> None:
    """Test that bad lengths and characters are rejected."""
    with pytest.raises(StageError) as exc_info:
      binary_to_text(binary)
    assert exc_info.value.kind is ErrorKind.MALFORMED_BINARY

  def test_invalid_utf8_is_replaced(self) -> None:
    """Test that undecodable bytes do not raise."""
    assert binary_to_text("11111111") == "\ufffd"

  def test_is_binary_string(self) -> None:
    """Test the binary alphabet check."""
    assert is_binary_string("0101")
    assert is_binary_string("")
    assert not is_binary_string("0121")
    assert not is_binary_string(None)

  def test_format_binary_string(self) -> None:
    """Test grouping into bytes."""
    assert format_binary_string(HI_BINARY) == "01001000 01001001"
    assert format_binary_string("") == ""
    assert format_binary_string("0101") == "0101"

  def test_text_to_bits(self) -> None:
    """Test splitting into single bits."""
    bits = text_to_bits("H")
    assert bits == ["0", "1", "0", "0", "1", "0", "0", "0"]


class TestEncoder:
  """Tests for the Encoder stage."""

  def test_encode(self) -> None:
    """Test that the encoder fills the binary fields and advances the state."""
    encoder = Encoder()
    events: list[str] = []
    encoder.subscribe(lambda event_type, _: events.append(event_type))
    message = Message("HI")

    assert encoder.encode(message)

    assert message.binary == HI_BINARY
    assert message.encoded == HI_BINARY
    assert message.state is MessageState.ENCODED
    assert events == ["PROCESSING_STARTED", "MESSAGE_ENCODED", "PROCESSING_COMPLETED"]
    assert encoder.last_error is None

  def test_empty_text(self) -> None:
    """Test that empty text is invalid input."""
    encoder = Encoder()
    events: list[str] = []
    encoder.subscribe(lambda event_type, _: events.append(event_type))

    assert not encoder.encode(Message(""))

    assert encoder.last_error_kind is ErrorKind.INVALID_INPUT
    assert events == ["ERROR_OCCURRED"]

  def test_none_message(self) -> None:
    """Test that a missing message is invalid input."""
    encoder = Encoder()
    assert not encoder.encode(None)
    assert encoder.last_error_kind is ErrorKind.INVALID_INPUT

  def test_too_long(self) -> None:
    """Test the maximum message length."""
    encoder = Encoder(max_message_length=3)
    assert encoder.encode(Message("abc"))
    assert not encoder.encode(Message("abcd"))
    assert encoder.last_error_kind is ErrorKind.INVALID_INPUT
    assert "exceeds" in (encoder.last_error or "")

  def test_encoding_twice_is_invalid(self) -> None:
    """Test that an encoded message cannot be encoded again."""
    encoder = Encoder()
    message = Message("HI")
    assert encoder.encode(message)
    assert not encoder.encode(message)
    assert encoder.last_error_kind is ErrorKind.INVALID_STATE

  def test_clear_error(self) -> None:
    """Test that the last error can be cleared."""
    encoder = Encoder()
    encoder.encode(None)
    encoder.clear_error()
    assert encoder.last_error is None
    assert encoder.last_error_kind is None


class TestDecoder:
  """Tests for the Decoder stage."""

  @staticmethod
  def received(text: str, encoded: str) -> Message:
    message = Message(text)
    message.binary = text_to_binary(text)
    message.encoded = encoded
    message.transition(MessageState.DECRYPTED)
    return message

  def test_decode(self) -> None:
    """Test that an intact payload decodes."""
    decoder = Decoder()
    message = self.received("HI", HI_BINARY)

    assert decoder.decode(message)

    assert message.state is MessageState.DECODED

  def test_integrity_mismatch(self) -> None:
    """Test that a single flipped bit is detected."""
    decoder = Decoder()
    message = self.received("HI", "0100100001001000")
    events: list[str] = []
    decoder.subscribe(lambda event_type, _: events.append(event_type))

    assert not decoder.decode(message)

    assert decoder.last_error_kind is ErrorKind.INTEGRITY_MISMATCH
    assert message.state is MessageState.ERROR
    assert "ERROR_OCCURRED" in events

  def test_malformed(self) -> None:
    """Test that a truncated payload is malformed."""
    decoder = Decoder()
    message = self.received("HI", "0100100")

    assert not decoder.decode(message)

    assert decoder.last_error_kind is ErrorKind.MALFORMED_BINARY
    assert message.state is MessageState.ERROR

  def test_empty_content(self) -> None:
    """Test that there must be something to decode."""
    decoder = Decoder()
    message = Message("HI")
    assert not decoder.decode(message)
    assert decoder.last_error_kind is ErrorKind.EMPTY_CONTENT
    # Precondition failures leave the message untouched
    assert message.state is MessageState.CREATED


class BlockingStage(Encoder):
  """Encoder that parks inside its transform until released."""

  def __init__(self) -> None:
    super().__init__()
    self.entered = threading.Event()
    self.release = threading.Event()

  def _process(self, message: Message, cancel_event: threading.Event | None) -> None:
    self.entered.set()
    self.release.wait(timeout=5)
    super()._process(message, cancel_event)


class TestReentrancy:
  """Tests for the per-stage reentrancy guard."""

  def test_second_call_is_rejected_without_disturbing_the_first(self) -> None:
    """Test that a busy stage fails fast with ALREADY_PROCESSING."""
    stage = BlockingStage()
    first = Message("first")
    results: list[bool] = []
    worker = threading.Thread(target=lambda: results.append(stage.run(first)))
    worker.start()
    assert stage.entered.wait(timeout=5)

    assert stage.is_processing
    assert not stage.run(Message("second"))
    assert stage.last_error_kind is ErrorKind.ALREADY_PROCESSING

    stage.release.set()
    worker.join(timeout=5)
    assert results == [True]
    assert first.state is MessageState.ENCODED
    assert not stage.is_processing
