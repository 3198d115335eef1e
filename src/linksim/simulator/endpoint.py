"""Machinery shared by the two ends of the link (Sender and Receiver).

An endpoint composes several stages and drives a message through them in a
fixed order. The same synchronous driver backs both execution modes:

- Run-to-completion: the driver runs on a `ThreadPoolExecutor` worker and the
  caller gets a `Future[bool]`.
- Step-wise: the driver runs on a dedicated thread, reports every macro-step
  through a callback and, with a `StepGate`, suspends between macro-steps
  until released.

Either way only one message is in flight per endpoint. A second request while
busy is rejected immediately, before any work is scheduled.
"""

import logging
import threading
from abc import ABC
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor

from linksim.simulator.errors import ErrorKind
from linksim.simulator.events import EventBus, EventType, namespaced
from linksim.simulator.message import Message
from linksim.simulator.stage import ErrorReporter, Stage, StageResult
from linksim.simulator.stepping import (
  CompleteCallback,
  StepCallback,
  StepGate,
  StepName,
)

logger = logging.getLogger(__name__)


class PipelineStep:
  """One macro-step of an endpoint: which stage runs, and its error context."""

  def __init__(self, step: StepName, context: str, stage: Stage) -> None:
    self.step = step
    self.context = context
    self.stage = stage


class Endpoint(EventBus, ErrorReporter, ABC):
  """Base class for Sender and Receiver.

  Every event of a child stage, and every event the endpoint publishes
  itself, goes out under the endpoint's prefix (e.g. "SENDER_").
  """

  prefix: str = ""

  def __init__(self, identifier: str) -> None:
    EventBus.__init__(self)
    ErrorReporter.__init__(self)
    self.identifier = identifier
    self._busy = threading.Lock()
    self._executor: ThreadPoolExecutor | None = None
    self._executor_lock = threading.Lock()
    self._history: list[Message] = []
    self._history_lock = threading.Lock()
    self._messages_errored = 0
    self._current: Message | None = None
    self._forward = self._forward_as(self.prefix)

  def _adopt(self, child: EventBus) -> None:
    """Re-publish every event of `child` under this endpoint's prefix."""
    child.subscribe(self._forward)

  def _release(self, child: EventBus) -> None:
    """Stop re-publishing the events of `child`."""
    child.unsubscribe(self._forward)

  def _emit(self, event_type: str, payload: object = None) -> None:
    self.publish(namespaced(self.prefix, event_type), payload)

  @property
  def is_processing(self) -> bool:
    """Whether a message is currently in flight."""
    return self._busy.locked()

  @property
  def current_message(self) -> Message | None:
    """The message in flight, if any."""
    return self._current

  @property
  def history(self) -> list[Message]:
    """Copy of the messages that completed successfully, oldest first."""
    with self._history_lock:
      return list(self._history)

  @property
  def last_message(self) -> Message | None:
    """Most recent successfully processed message."""
    with self._history_lock:
      return self._history[-1] if self._history else None

  @property
  def messages_errored(self) -> int:
    """Number of messages that ended in ERROR."""
    with self._history_lock:
      return self._messages_errored

  def reset_statistics(self) -> None:
    """Forget the history and zero the counters."""
    with self._history_lock:
      self._history.clear()
      self._messages_errored = 0

  def _record_success(self, message: Message) -> None:
    with self._history_lock:
      self._history.append(message)

  def _record_failure(self) -> None:
    with self._history_lock:
      self._messages_errored += 1

  def _reject(self, kind: ErrorKind, error: str) -> StageResult:
    """Record a failure that happened outside any stage."""
    self._record_error(kind, error)
    logger.warning(f"{self.identifier}: {error}")
    self._emit(EventType.ERROR_OCCURRED, error)
    return StageResult(success=False, error=error, error_kind=kind)

  def _fail_message(
    self, message: Message, context: str, kind: ErrorKind, inner: str | None
  ) -> StageResult:
    """Put `message` into ERROR and report which step failed."""
    message.fail()
    self._record_failure()
    error = f"Error in {context}: {inner}"
    self._record_error(kind, error)
    logger.info(f"{self.identifier}: {error}")
    return StageResult(success=False, message=message, error=error, error_kind=kind)

  def _run_steps(
    self,
    message: Message,
    steps: Sequence[PipelineStep],
    cancel_event: threading.Event | None,
    on_step: StepCallback | None,
    gate: StepGate | None,
  ) -> StageResult | None:
    """Drive `message` through `steps`, stopping at the first failure.

    Returns:
      None when every step succeeded, the failure result otherwise.
    """
    for index, step in enumerate(steps):
      if index > 0 and gate is not None and not gate.wait(cancel_event):
        return self._cancelled(message, step.context)
      if cancel_event is not None and cancel_event.is_set():
        return self._cancelled(message, step.context)

      if on_step is not None:
        try:
          on_step(step.step, message)
        except Exception:
          logger.exception(f"Step callback failed at {step.step}")

      result = step.stage.execute(message, cancel_event)
      if not result.success:
        return self._fail_message(
          message,
          step.context,
          result.error_kind or ErrorKind.INTERNAL,
          result.error,
        )
    return None

  def _cancelled(self, message: Message, context: str) -> StageResult:
    result = self._fail_message(message, context, ErrorKind.CANCELLED, "cancelled")
    self._emit(EventType.ERROR_OCCURRED, result.error)
    return result

  def _executor_for_submit(self) -> ThreadPoolExecutor:
    with self._executor_lock:
      if self._executor is None:
        self._executor = ThreadPoolExecutor(
          max_workers=1, thread_name_prefix=self.identifier
        )
      return self._executor

  def _execute(self, task: Callable[[], StageResult]) -> StageResult:
    """Run `task` and release the busy lock. The lock must already be held."""
    try:
      return task()
    except Exception as e:
      logger.exception(f"{self.identifier}: unexpected failure")
      message = self._current
      if message is not None:
        return self._fail_message(message, "processing", ErrorKind.INTERNAL, str(e))
      return self._reject(ErrorKind.INTERNAL, f"unexpected failure: {e}")
    finally:
      self._current = None
      self._busy.release()

  def _submit(self, task: Callable[[], StageResult]) -> Future[bool]:
    """Run `task` on the worker pool. The busy lock must already be held."""
    try:
      return self._executor_for_submit().submit(
        lambda: self._execute(task).success
      )
    except RuntimeError:
      self._busy.release()
      raise

  def _start_thread(
    self,
    task: Callable[[], StageResult],
    on_complete: CompleteCallback | None,
    name: str,
  ) -> threading.Thread:
    """Run `task` on a dedicated thread. The busy lock must already be held."""

    def run() -> None:
      result = self._execute(task)
      if on_complete is not None:
        try:
          on_complete(result.success, result.message)
        except Exception:
          logger.exception(f"{self.identifier}: completion callback failed")

    thread = threading.Thread(target=run, name=name, daemon=True)
    thread.start()
    return thread

  def _busy_future(self) -> Future[bool]:
    future: Future[bool] = Future()
    future.set_result(False)
    return future

  def shutdown(self, wait: bool = True) -> None:
    """Stop the worker pool used by run-to-completion requests."""
    with self._executor_lock:
      if self._executor is not None:
        self._executor.shutdown(wait=wait)
        self._executor = None
