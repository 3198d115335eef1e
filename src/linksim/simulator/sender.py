"""Outbound end of the link: Encoder -> Cipher -> Channel."""

import logging
import threading
from concurrent.futures import Future

from linksim.simulator.channel import Channel
from linksim.simulator.ciphers import Cipher, CipherConfig
from linksim.simulator.codec import DEFAULT_MAX_MESSAGE_LENGTH, Encoder
from linksim.simulator.endpoint import Endpoint, PipelineStep
from linksim.simulator.errors import ErrorKind
from linksim.simulator.events import SENDER_PREFIX, EventType
from linksim.simulator.message import Message
from linksim.simulator.stage import StageResult
from linksim.simulator.stepping import (
  CompleteCallback,
  StepCallback,
  StepGate,
  StepName,
)

logger = logging.getLogger(__name__)


class Sender(Endpoint):
  """Creates messages and drives them through encoding, encryption and the
  channel.

  The channel is shared with the rest of the simulation and is attached with
  `set_channel` (or the constructor). Events of the encoder, the cipher and
  the channel are re-published as "SENDER_<event>".
  """

  prefix = SENDER_PREFIX

  def __init__(
    self,
    identifier: str = "SENDER-001",
    channel: Channel | None = None,
    cipher_config: CipherConfig | None = None,
    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
  ) -> None:
    """Initialize sender.

    Args:
      identifier: Name used in logs and worker thread names.
      channel: Channel to transmit over.
      cipher_config: Initial cipher configuration.
      max_message_length: Longest accepted text, in characters.
    """
    super().__init__(identifier)
    self.encoder = Encoder(max_message_length=max_message_length)
    self.cipher = Cipher(cipher_config)
    self._channel: Channel | None = None

    self._adopt(self.encoder)
    self._adopt(self.cipher)
    if channel is not None:
      self.set_channel(channel)

  @property
  def channel(self) -> Channel | None:
    return self._channel

  def set_channel(self, channel: Channel) -> None:
    """Attach the channel messages are transmitted over."""
    if self._channel is not None:
      self._release(self._channel)
    self._channel = channel
    self._adopt(channel)

  def configure_cipher(self, config: CipherConfig) -> None:
    """Set the cipher algorithm and key."""
    self.cipher.configure(config)

  @property
  def messages_sent(self) -> int:
    """Number of messages transmitted successfully."""
    return len(self.history)

  def process(
    self, text: str, cancel_event: threading.Event | None = None
  ) -> StageResult:
    """Send a message synchronously on the calling thread.

    Args:
      text: Message text.
      cancel_event: Optional cancellation token.

    Returns:
      The outcome, including the message when one was created.
    """
    if not self._busy.acquire(blocking=False):
      return self._reject(
        ErrorKind.ALREADY_PROCESSING,
        f"{self.identifier} is already sending a message",
      )
    return self._execute(lambda: self._drive(text, cancel_event, None, None))

  def send(self, text: str) -> Future[bool]:
    """Send a message on a background worker.

    Returns:
      A future resolved with True on success. A request made while another
      message is in flight resolves to False immediately.
    """
    if not self._busy.acquire(blocking=False):
      self._reject(
        ErrorKind.ALREADY_PROCESSING,
        f"{self.identifier} is already sending a message",
      )
      return self._busy_future()
    return self._submit(lambda: self._drive(text, None, None, None))

  def send_stepwise(
    self,
    text: str,
    on_step: StepCallback | None = None,
    on_complete: CompleteCallback | None = None,
    gate: StepGate | None = None,
    cancel_event: threading.Event | None = None,
  ) -> threading.Thread | None:
    """Send a message on a dedicated thread, reporting each macro-step.

    Args:
      text: Message text.
      on_step: Called with the step name before each macro-step.
      on_complete: Called with `(success, message)` when the run ends.
      gate: When given, every macro-step after the first waits for
        `gate.release()`.
      cancel_event: Optional cancellation token.

    Returns:
      The worker thread, or None when the sender was busy.
    """
    if not self._busy.acquire(blocking=False):
      self._reject(
        ErrorKind.ALREADY_PROCESSING,
        f"{self.identifier} is already sending a message",
      )
      return None
    return self._start_thread(
      lambda: self._drive(text, cancel_event, on_step, gate),
      on_complete,
      name=f"{self.identifier}-steps",
    )

  def _drive(
    self,
    text: str,
    cancel_event: threading.Event | None,
    on_step: StepCallback | None,
    gate: StepGate | None,
  ) -> StageResult:
    self.clear_error()
    if not text:
      return self._reject(ErrorKind.INVALID_INPUT, "message text cannot be empty")

    message = Message(text)
    self._current = message
    self._emit(EventType.MESSAGE_CREATED, message)

    channel = self._channel
    if channel is None:
      result = self._fail_message(
        message,
        "transmission",
        ErrorKind.NO_CHANNEL_CONFIGURED,
        "no channel configured for transmission",
      )
      self._emit(EventType.ERROR_OCCURRED, result.error)
      return result

    steps = [
      PipelineStep(StepName.ENCODING, "encoding", self.encoder),
      PipelineStep(StepName.ENCRYPTING, "encryption", self.cipher),
      PipelineStep(StepName.TRANSMITTING, "transmission", channel),
    ]
    failure = self._run_steps(message, steps, cancel_event, on_step, gate)
    if failure is not None:
      return failure

    self._record_success(message)
    logger.info(f"{self.identifier} sent {message!r}")
    self._emit(EventType.MESSAGE_SENT, message)
    return StageResult(success=True, message=message)
