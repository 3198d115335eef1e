"""Common machinery for pipeline stages.

A stage is a single transform applied to a message (encode, encrypt,
transmit, decrypt, decode). The transform itself is a pure function; the
`Stage` driver wraps it with the parts every stage shares:

1. Precondition checks (the predecessor field is present, the state move is
   forward along the lifecycle chain)
2. A reentrancy guard allowing one in-flight message per instance
3. Started/completed events
4. Error capture into `last_error` / `last_error_kind`
"""

import logging
import threading
from abc import ABC, abstractmethod

from pydantic import BaseModel

from linksim.simulator.errors import ErrorKind, StageError
from linksim.simulator.events import EventBus, EventType
from linksim.simulator.message import Message, MessageState

logger = logging.getLogger(__name__)


class StageResult(BaseModel):
  """Outcome of driving a message through a composite component.

  Attributes:
    success: Whether every stage succeeded.
    message: The message that was processed, None when it was never created.
    error: Error string of the failing stage, prefixed with its context.
    error_kind: Classification of the failure.
  """

  success: bool
  message: Message | None = None
  error: str | None = None
  error_kind: ErrorKind | None = None

  model_config = {"frozen": True, "arbitrary_types_allowed": True}


class ErrorReporter:
  """Mixin holding the last error of a component.

  The error string and its kind are replaced together under a lock, so a
  reader never sees the string of one failure paired with the kind of
  another.
  """

  def __init__(self) -> None:
    self._error_lock = threading.Lock()
    self._last_error: str | None = None
    self._last_error_kind: ErrorKind | None = None

  @property
  def last_error(self) -> str | None:
    with self._error_lock:
      return self._last_error

  @property
  def last_error_kind(self) -> ErrorKind | None:
    with self._error_lock:
      return self._last_error_kind

  def clear_error(self) -> None:
    """Forget the last recorded error."""
    with self._error_lock:
      self._last_error = None
      self._last_error_kind = None

  def _record_error(self, kind: ErrorKind, error: str) -> None:
    with self._error_lock:
      self._last_error = error
      self._last_error_kind = kind


class Stage(EventBus, ErrorReporter, ABC):
  """Base class for a single reversible pipeline stage.

  Subclasses define the lifecycle state they move the message to, the event
  they publish on success, the precondition on the message and the
  transform. Callers use the verb method of the subclass (`encode`,
  `encrypt`, ...), which delegates to `run`.
  """

  busy_error: ErrorKind = ErrorKind.ALREADY_PROCESSING

  def __init__(self) -> None:
    EventBus.__init__(self)
    ErrorReporter.__init__(self)
    self._guard = threading.Lock()

  @property
  @abstractmethod
  def name(self) -> str:
    """Human-readable stage name."""

  @property
  @abstractmethod
  def target_state(self) -> MessageState:
    """State the message reaches when the stage succeeds."""

  @property
  @abstractmethod
  def completed_event(self) -> EventType:
    """Event published when the stage succeeds."""

  @abstractmethod
  def _check_ready(self, message: Message) -> None:
    """Validate that the message carries the input this stage needs.

    Raises:
      StageError: If the input is missing or unusable.
    """

  @abstractmethod
  def _process(
    self, message: Message, cancel_event: threading.Event | None
  ) -> None:
    """Apply the transform and update the message.

    Raises:
      StageError: If the transform fails.
    """

  @property
  def is_processing(self) -> bool:
    """Whether a message is currently in flight."""
    return self._guard.locked()

  def run(
    self, message: Message | None, cancel_event: threading.Event | None = None
  ) -> bool:
    """Drive one message through this stage.

    Args:
      message: The message to process.
      cancel_event: Optional cancellation token observed by long-running
        stages.

    Returns:
      True on success. On failure the reason is available from
      `last_error` / `last_error_kind`.
    """
    return self.execute(message, cancel_event).success

  def execute(
    self, message: Message | None, cancel_event: threading.Event | None = None
  ) -> StageResult:
    """Like `run`, but returns the outcome of this very call.

    `last_error` is shared by every caller of the stage, so a concurrent
    rejected call may overwrite it. The returned result always describes
    this call.
    """
    if message is None:
      return self._fail(ErrorKind.INVALID_INPUT, "message cannot be None")

    try:
      self._check_ready(message)
      if not message.can_transition(self.target_state):
        raise StageError(
          ErrorKind.INVALID_STATE,
          f"{self.name} cannot process a message in state {message.state.name}",
        )
    except StageError as e:
      return self._fail(e.kind, e.detail, message)

    if not self._guard.acquire(blocking=False):
      return self._fail(
        self.busy_error, f"{self.name} is already processing a message", message
      )

    try:
      self.clear_error()
      self.publish(EventType.PROCESSING_STARTED, message)
      self._process(message, cancel_event)
    except StageError as e:
      message.fail()
      return self._fail(e.kind, e.detail, message)
    except Exception as e:
      logger.exception(f"Unexpected failure in {self.name}")
      message.fail()
      return self._fail(
        ErrorKind.INTERNAL, f"unexpected failure in {self.name}: {e}", message
      )
    finally:
      self._guard.release()

    logger.debug(f"{self.name} completed: {message!r}")
    self.publish(self.completed_event, message)
    self.publish(EventType.PROCESSING_COMPLETED, message)
    return StageResult(success=True, message=message)

  def _fail(
    self, kind: ErrorKind, error: str, message: Message | None = None
  ) -> StageResult:
    self._record_error(kind, error)
    logger.debug(f"{self.name} failed ({kind}): {error}")
    self.publish(EventType.ERROR_OCCURRED, error)
    return StageResult(success=False, message=message, error=error, error_kind=kind)
