"""Support for externally paced, step-wise execution.

In step-wise mode the pipeline runs on a dedicated worker thread and reports
each macro-step through callbacks. When a `StepGate` is supplied, the worker
suspends before every gated macro-step until someone calls `release()`;
nothing advances it on a timer.
"""

import threading
from collections.abc import Callable
from enum import StrEnum

from pydantic import BaseModel

from linksim.simulator.message import Message

# How often a suspended worker re-checks for cancellation, in seconds.
GATE_POLL_INTERVAL_S = 0.05


class StepName(StrEnum):
  """Macro-steps of the link pipeline."""

  ENCODING = "ENCODING"
  ENCRYPTING = "ENCRYPTING"
  TRANSMITTING = "TRANSMITTING"
  DECRYPTING = "DECRYPTING"
  DECODING = "DECODING"


StepCallback = Callable[[StepName, Message], None]
CompleteCallback = Callable[[bool, Message | None], None]


class StepInfo(BaseModel):
  """Payload of a SIMULATION_STEP event.

  Attributes:
    step: The macro-step about to run.
    message: The message being processed.
    component: "SENDER" or "RECEIVER".
  """

  step: StepName
  message: Message
  component: str

  model_config = {"frozen": True, "arbitrary_types_allowed": True}


class StepGate:
  """Counting gate pacing a step-wise worker.

  Each `release()` lets exactly one waiting (or future) macro-step through.
  `cancel()` wakes every waiter and makes all further waits fail.
  """

  def __init__(self, permits: int = 0) -> None:
    self._permits = threading.Semaphore(permits)
    self._cancelled = threading.Event()

  def release(self) -> None:
    """Allow one more macro-step to run."""
    self._permits.release()

  def cancel(self) -> None:
    """Abort every current and future wait."""
    self._cancelled.set()
    self._permits.release()

  @property
  def cancelled(self) -> bool:
    return self._cancelled.is_set()

  def wait(self, cancel_event: threading.Event | None = None) -> bool:
    """Block until a permit is available.

    Args:
      cancel_event: Additional cancellation token to observe while waiting.

    Returns:
      True when the step may run, False when the gate or the token was
      cancelled.
    """
    while True:
      if self._cancelled.is_set():
        return False
      if cancel_event is not None and cancel_event.is_set():
        return False
      if self._permits.acquire(timeout=GATE_POLL_INTERVAL_S):
        if self._cancelled.is_set():
          return False
        return True
