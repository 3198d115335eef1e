"""Inbound end of the link: Decipher -> Decoder."""

import logging
import threading
from concurrent.futures import Future

from linksim.simulator.ciphers import CipherConfig, Decipher
from linksim.simulator.codec import Decoder
from linksim.simulator.endpoint import Endpoint, PipelineStep
from linksim.simulator.errors import ErrorKind
from linksim.simulator.events import RECEIVER_PREFIX, EventType
from linksim.simulator.message import Message, MessageState
from linksim.simulator.stage import StageResult
from linksim.simulator.statistics import ReceiverStatus, percentage
from linksim.simulator.stepping import (
  CompleteCallback,
  StepCallback,
  StepGate,
  StepName,
)

logger = logging.getLogger(__name__)


class Receiver(Endpoint):
  """Decrypts and decodes transmitted messages and verifies their integrity.

  Every inbound message counts towards `messages_received`, whether it is
  processed successfully or not. Events of the decipher and the decoder are
  re-published as "RECEIVER_<event>".
  """

  prefix = RECEIVER_PREFIX

  def __init__(
    self,
    identifier: str = "RECEIVER-001",
    cipher_config: CipherConfig | None = None,
  ) -> None:
    super().__init__(identifier)
    self.decipher = Decipher(cipher_config)
    self.decoder = Decoder()
    self._messages_received = 0

    self._adopt(self.decipher)
    self._adopt(self.decoder)

  def configure_decipher(self, config: CipherConfig) -> None:
    """Set the algorithm and key, which must match the sender's."""
    self.decipher.configure(config)

  @property
  def messages_received(self) -> int:
    with self._history_lock:
      return self._messages_received

  @property
  def success_rate(self) -> float:
    """Percentage of inbound messages processed without error."""
    with self._history_lock:
      return percentage(
        self._messages_received - self._messages_errored,
        self._messages_received,
      )

  def reset_statistics(self) -> None:
    super().reset_statistics()
    with self._history_lock:
      self._messages_received = 0

  def clear_history(self) -> None:
    """Forget received messages and counters, then notify listeners."""
    self.reset_statistics()
    logger.debug(f"{self.identifier}: history cleared")
    self._emit(EventType.HISTORY_CLEARED)

  def clear_error(self) -> None:
    """Forget the last error of the receiver and of its stages."""
    super().clear_error()
    self.decipher.clear_error()
    self.decoder.clear_error()

  def status(self) -> ReceiverStatus:
    """Snapshot of the receiver for display."""
    with self._history_lock:
      received = self._messages_received
      errored = self._messages_errored
    return ReceiverStatus(
      identifier=self.identifier,
      is_processing=self.is_processing,
      last_error=self.last_error,
      messages_received=received,
      messages_errored=errored,
      cipher_algorithm=self.decipher.config.algorithm,
    )

  def process(
    self, message: Message | None, cancel_event: threading.Event | None = None
  ) -> StageResult:
    """Receive a message synchronously on the calling thread."""
    if not self._busy.acquire(blocking=False):
      return self._reject(
        ErrorKind.ALREADY_PROCESSING,
        f"{self.identifier} is already processing a message",
      )
    return self._execute(lambda: self._drive(message, cancel_event, None, None))

  def receive(self, message: Message | None) -> Future[bool]:
    """Receive a message on a background worker.

    Returns:
      A future resolved with True when the message was decoded intact. A
      request made while another message is in flight resolves to False
      immediately.
    """
    if not self._busy.acquire(blocking=False):
      self._reject(
        ErrorKind.ALREADY_PROCESSING,
        f"{self.identifier} is already processing a message",
      )
      return self._busy_future()
    return self._submit(lambda: self._drive(message, None, None, None))

  def receive_stepwise(
    self,
    message: Message | None,
    on_step: StepCallback | None = None,
    on_complete: CompleteCallback | None = None,
    gate: StepGate | None = None,
    cancel_event: threading.Event | None = None,
  ) -> threading.Thread | None:
    """Receive a message on a dedicated thread, reporting each macro-step.

    See `Sender.send_stepwise` for the meaning of the arguments.

    Returns:
      The worker thread, or None when the receiver was busy.
    """
    if not self._busy.acquire(blocking=False):
      self._reject(
        ErrorKind.ALREADY_PROCESSING,
        f"{self.identifier} is already processing a message",
      )
      return None
    return self._start_thread(
      lambda: self._drive(message, cancel_event, on_step, gate),
      on_complete,
      name=f"{self.identifier}-steps",
    )

  def _drive(
    self,
    message: Message | None,
    cancel_event: threading.Event | None,
    on_step: StepCallback | None,
    gate: StepGate | None,
  ) -> StageResult:
    self.clear_error()
    if message is None:
      return self._reject(ErrorKind.INVALID_INPUT, "message cannot be None")

    self._current = message
    with self._history_lock:
      self._messages_received += 1
    self._emit(EventType.MESSAGE_RECEIVED, message)

    steps = [
      PipelineStep(StepName.DECRYPTING, "decryption", self.decipher),
      PipelineStep(StepName.DECODING, "decoding", self.decoder),
    ]
    failure = self._run_steps(message, steps, cancel_event, on_step, gate)
    if failure is not None:
      return failure

    message.transition(MessageState.COMPLETED)
    self._record_success(message)
    logger.info(f"{self.identifier} received {message!r}")
    self._emit(EventType.MESSAGE_PROCESSED, message)
    self._emit(EventType.PROCESSING_COMPLETED, message)
    return StageResult(success=True, message=message)
