"""Top-level coordinator of a simulated link.

The orchestrator owns one Sender, one Receiver and the Channel between them,
keeps the simulation state machine and aggregates statistics.

Run-to-completion:
  ```python
  with SimulationOrchestrator() as sim:
    sim.configure_cipher(CipherConfig(algorithm=CipherAlgorithm.XOR, key="1010"))
    sim.configure_channel(profiles.noisy(seed=1))
    ok = sim.run_complete("HELLO").result()
    print(sim.statistics().summary())
  ```

Step-wise:
  ```python
  sim.run_stepwise("HELLO", on_step=print, paced=True)
  sim.advance_step()  # ENCRYPTING
  sim.advance_step()  # TRANSMITTING
  # ... wait for SIMULATION_SENDER_COMPLETED ...
  sim.advance_step()  # DECRYPTING
  sim.advance_step()  # DECODING
  ```

Runs are numbered. `stop()` moves to the next run number, so completions
that arrive afterwards from a cancelled worker are discarded instead of
overwriting the IDLE state.
"""

import logging
import threading
import time
import weakref
from concurrent.futures import Future, ThreadPoolExecutor
from enum import StrEnum
from typing import TYPE_CHECKING

from linksim.simulator.channel import Channel
from linksim.simulator.ciphers import CipherAlgorithm, CipherConfig
from linksim.simulator.codec import DEFAULT_MAX_MESSAGE_LENGTH
from linksim.simulator.errors import ErrorKind
from linksim.simulator.events import CONTROLLER_PREFIX, EventBus, EventType
from linksim.simulator.message import Message
from linksim.simulator.profiles import ChannelProfile
from linksim.simulator.receiver import Receiver
from linksim.simulator.sender import Sender
from linksim.simulator.stage import ErrorReporter, StageResult
from linksim.simulator.statistics import SimulationStatistics
from linksim.simulator.stepping import (
  CompleteCallback,
  StepCallback,
  StepGate,
  StepInfo,
  StepName,
)

if TYPE_CHECKING:
  from linksim.config import SimulationConfig

logger = logging.getLogger(__name__)

DEFAULT_STOP_TIMEOUT_S = 1.0


class SimulationState(StrEnum):
  """State of the simulation as a whole."""

  IDLE = "IDLE"
  CONFIGURING = "CONFIGURING"
  RUNNING = "RUNNING"
  PAUSED = "PAUSED"
  COMPLETED = "COMPLETED"
  ERROR = "ERROR"


class _Phase(StrEnum):
  """Which half of a step-wise run is active."""

  NONE = "NONE"
  SENDING = "SENDING"
  AWAITING_RECEIVE = "AWAITING_RECEIVE"
  RECEIVING = "RECEIVING"


class SimulationOrchestrator(EventBus, ErrorReporter):
  """Drives messages from the sender through the channel to the receiver.

  Events of the sender and the receiver are re-published with a "CONTROLLER_"
  prefix on top of their own, e.g. "CONTROLLER_SENDER_MESSAGE_ENCODED". The
  orchestrator's own events (SIMULATION_*, STATISTICS_RESET, *_CONFIGURED,
  ERROR_OCCURRED) are not prefixed.

  Only one run is active at a time. PAUSED means a step-wise run finished its
  sender half and waits for `advance_step()` to start the receiver half.
  """

  def __init__(
    self,
    sender_id: str = "SENDER-001",
    receiver_id: str = "RECEIVER-001",
    cipher_config: CipherConfig | None = None,
    channel_profile: ChannelProfile | None = None,
    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
    stop_timeout: float = DEFAULT_STOP_TIMEOUT_S,
  ) -> None:
    """Initialize orchestrator.

    Args:
      sender_id: Sender identifier.
      receiver_id: Receiver identifier.
      cipher_config: Cipher shared by both ends (default: NONE).
      channel_profile: Channel impairment (default: IDEAL).
      max_message_length: Longest accepted text, in characters.
      stop_timeout: Default time `stop()` waits for a cancelled worker.
    """
    EventBus.__init__(self)
    ErrorReporter.__init__(self)
    self.channel = Channel(channel_profile)
    self.sender = Sender(
      sender_id,
      channel=self.channel,
      cipher_config=cipher_config,
      max_message_length=max_message_length,
    )
    self.receiver = Receiver(receiver_id, cipher_config=cipher_config)
    self.stop_timeout = stop_timeout

    self._forward = self._forward_as(CONTROLLER_PREFIX)
    self.sender.subscribe(self._forward)
    self.receiver.subscribe(self._forward)

    self._lock = threading.RLock()
    self._state = SimulationState.IDLE
    self._running = False
    self._step_mode = False
    self._paced = False
    self._phase = _Phase.NONE
    self._generation = 0
    self._cancel_event = threading.Event()
    self._gate: StepGate | None = None
    self._pending: Message | None = None
    self._last_message: Message | None = None
    self._on_step: StepCallback | None = None
    self._on_complete: CompleteCallback | None = None
    self._messages_abandoned = 0
    self._started_at: float | None = None
    self._finished_at: float | None = None

    # Set whenever no worker of the current run is in flight.
    self._worker_done = threading.Event()
    self._worker_done.set()
    self._workers: weakref.WeakSet[threading.Thread] = weakref.WeakSet()

    self._executor: ThreadPoolExecutor | None = None

  @classmethod
  def from_config(cls, config: "SimulationConfig") -> "SimulationOrchestrator":
    """Build an orchestrator from a validated configuration."""
    return cls(
      sender_id=config.sender_id,
      receiver_id=config.receiver_id,
      cipher_config=config.cipher,
      channel_profile=config.channel,
      max_message_length=config.max_message_length,
      stop_timeout=config.stop_timeout,
    )

  # State

  @property
  def state(self) -> SimulationState:
    with self._lock:
      return self._state

  @property
  def is_running(self) -> bool:
    with self._lock:
      return self._running

  @property
  def is_step_mode(self) -> bool:
    with self._lock:
      return self._step_mode

  @property
  def last_message(self) -> Message | None:
    """Message of the most recent run that got far enough to create one."""
    with self._lock:
      return self._last_message

  def clear_error(self) -> None:
    """Forget the last error of the orchestrator and of both ends."""
    super().clear_error()
    self.sender.clear_error()
    self.receiver.clear_error()

  # Configuration

  def configure_cipher(self, config: CipherConfig) -> None:
    """Apply the same cipher configuration to the sender and the receiver."""
    resting = self._enter_configuring()
    try:
      self.sender.configure_cipher(config)
      self.receiver.configure_decipher(config)
      self._check_compatibility(config, self.channel.profile)
    finally:
      self._leave_configuring(resting)
    logger.info(f"Cipher configured: {config.algorithm}")
    self.publish(EventType.CIPHER_CONFIGURED, config)

  def configure_channel(self, profile: ChannelProfile) -> None:
    """Apply a new impairment profile to the shared channel."""
    resting = self._enter_configuring()
    try:
      self.channel.configure(profile)
      self._check_compatibility(self.sender.cipher.config, profile)
    finally:
      self._leave_configuring(resting)
    logger.info(f"Channel configured: {self.channel.summary()}")
    self.publish(EventType.CHANNEL_CONFIGURED, profile)

  def _enter_configuring(self) -> SimulationState | None:
    with self._lock:
      if self._running:
        return None
      resting = self._state
      self._state = SimulationState.CONFIGURING
      return resting

  def _leave_configuring(self, resting: SimulationState | None) -> None:
    with self._lock:
      if resting is not None and self._state is SimulationState.CONFIGURING:
        self._state = resting

  def _check_compatibility(
    self, config: CipherConfig, profile: ChannelProfile
  ) -> None:
    if config.algorithm is CipherAlgorithm.BASE64 and profile.corrupts_bits:
      logger.warning(
        f"BASE64 output is not binary; a {profile.channel_type} channel will "
        "refuse it. Use an IDEAL channel or another cipher."
      )

  # Run-to-completion

  def run_complete(self, text: str) -> Future[bool]:
    """Send `text` and feed the result straight into the receiver.

    Returns:
      A future resolved with True when the message arrived intact. When a
      run is already active the request is rejected before anything is
      scheduled and the future is already resolved with False.
    """
    with self._lock:
      if self._running:
        self._reject(
          ErrorKind.ALREADY_IN_PROGRESS, "a simulation is already in progress"
        )
        return self._resolved(False)
      generation = self._begin_run(step_mode=False, paced=False)
      cancel_event = self._cancel_event
      worker_done = self._track_worker()

    logger.info(f"Simulation {generation} started")
    self.publish(EventType.SIMULATION_STARTED, text)
    try:
      return self._pool().submit(
        self._run_to_completion, text, generation, cancel_event, worker_done
      )
    except RuntimeError:
      worker_done.set()
      self._conclude(
        generation,
        StageResult(
          success=False,
          error="simulation worker pool is shut down",
          error_kind=ErrorKind.INTERNAL,
        ),
      )
      raise

  def _run_to_completion(
    self,
    text: str,
    generation: int,
    cancel_event: threading.Event,
    worker_done: threading.Event,
  ) -> bool:
    current = threading.current_thread()
    self._workers.add(current)
    result = StageResult(
      success=False, error="simulation did not finish", error_kind=ErrorKind.INTERNAL
    )
    try:
      result = self.sender.process(text, cancel_event)
      if result.success:
        result = self.receiver.process(result.message, cancel_event)
    except Exception as e:
      logger.exception(f"Simulation {generation} failed unexpectedly")
      result = StageResult(
        success=False,
        message=result.message,
        error=f"unexpected failure: {e}",
        error_kind=ErrorKind.INTERNAL,
      )
    finally:
      self._workers.discard(current)
      worker_done.set()
      concluded = self._conclude(generation, result)
    return concluded and result.success

  # Step-wise

  def run_stepwise(
    self,
    text: str,
    on_step: StepCallback | None = None,
    on_complete: CompleteCallback | None = None,
    paced: bool = False,
  ) -> bool:
    """Start a step-wise run.

    The sender half runs on its own thread and reports every macro-step
    through `on_step` and a SIMULATION_STEP event. When it finishes the
    simulation is PAUSED until `advance_step()` starts the receiver half.

    Args:
      text: Message text.
      on_step: Called with `(step, message)` before each macro-step.
      on_complete: Called with `(success, message)` when the run ends.
      paced: When True every macro-step after the first of each half also
        waits for `advance_step()`.

    Returns:
      True when the run started, False when another run is active.
    """
    with self._lock:
      if self._running:
        self._reject(
          ErrorKind.ALREADY_IN_PROGRESS, "a simulation is already in progress"
        )
        return False
      generation = self._begin_run(step_mode=True, paced=paced)
      self._on_step = on_step
      self._on_complete = on_complete

    logger.info(f"Simulation {generation} started in step mode")
    self.publish(EventType.SIMULATION_STEP_MODE_STARTED, text)

    with self._lock:
      if generation != self._generation:
        return False
      worker_done = self._track_worker()
      thread = self.sender.send_stepwise(
        text,
        on_step=self._step_reporter(generation, self.sender.prefix),
        on_complete=self._sender_finished(generation, worker_done),
        gate=self._gate,
        cancel_event=self._cancel_event,
      )
      if thread is not None:
        self._workers.add(thread)
        return True

    worker_done.set()
    self._conclude(
      generation,
      StageResult(
        success=False,
        error=self.sender.last_error,
        error_kind=self.sender.last_error_kind,
      ),
    )
    return False

  def advance_step(self, message: Message | None = None) -> bool:
    """Move a step-wise run forward.

    While a paced half is running this lets its next macro-step through.
    Once the sender half is done it starts the receiver half with `message`
    (default: the message the sender just transmitted).

    Returns:
      True when the run moved forward. False with NOT_IN_STEP_MODE when no
      step-wise run is active, or with ALREADY_PROCESSING when an unpaced
      half is still running.
    """
    with self._lock:
      if not (self._step_mode and self._running):
        self._reject(ErrorKind.NOT_IN_STEP_MODE, "not in step mode")
        return False

      if self._phase in (_Phase.SENDING, _Phase.RECEIVING):
        if self._paced and self._gate is not None:
          self._gate.release()
          return True
        self._reject(
          ErrorKind.ALREADY_PROCESSING,
          f"the {self._phase.lower()} phase is still running",
        )
        return False

      generation = self._generation
      target = message or self._pending
      self._pending = None
      self._phase = _Phase.RECEIVING
      self._state = SimulationState.RUNNING
      if self._paced:
        # Permits left over from the sender half must not leak into this one.
        self._gate = StepGate()
      worker_done = self._track_worker()
      thread = self.receiver.receive_stepwise(
        target,
        on_step=self._step_reporter(generation, self.receiver.prefix),
        on_complete=self._receiver_finished(generation, worker_done),
        gate=self._gate,
        cancel_event=self._cancel_event,
      )
      if thread is not None:
        self._workers.add(thread)
        return True

    worker_done.set()
    self._conclude(
      generation,
      StageResult(
        success=False,
        message=target,
        error=self.receiver.last_error,
        error_kind=self.receiver.last_error_kind,
      ),
    )
    return False

  def _step_reporter(self, generation: int, component: str) -> StepCallback:
    def report(step: StepName, message: Message) -> None:
      with self._lock:
        if generation != self._generation:
          return
        on_step = self._on_step
      self.publish(
        EventType.SIMULATION_STEP,
        StepInfo(step=step, message=message, component=component),
      )
      if on_step is not None:
        on_step(step, message)

    return report

  def _sender_finished(
    self, generation: int, worker_done: threading.Event
  ) -> CompleteCallback:
    def finished(success: bool, message: Message | None) -> None:
      try:
        if not success:
          self._conclude(
            generation,
            StageResult(
              success=False,
              message=message,
              error=self.sender.last_error,
              error_kind=self.sender.last_error_kind,
            ),
          )
          return

        with self._lock:
          if generation != self._generation:
            return
          self._last_message = message
          self._pending = message
          self._phase = _Phase.AWAITING_RECEIVE
          self._state = SimulationState.PAUSED
        logger.info(f"Simulation {generation}: sender done, awaiting next step")
        self.publish(EventType.SIMULATION_SENDER_COMPLETED, message)
      finally:
        worker_done.set()

    return finished

  def _receiver_finished(
    self, generation: int, worker_done: threading.Event
  ) -> CompleteCallback:
    def finished(success: bool, message: Message | None) -> None:
      try:
        self._conclude(
          generation,
          StageResult(
            success=success,
            message=message,
            error=None if success else self.receiver.last_error,
            error_kind=None if success else self.receiver.last_error_kind,
          ),
        )
      finally:
        worker_done.set()

    return finished

  # Stop / reset

  def stop(self, timeout: float | None = None) -> None:
    """Abort the active run, if any, and return to IDLE.

    The run's workers are cancelled cooperatively. Unless called from one of
    those workers, this waits up to `timeout` seconds for them, so that the
    in-flight message has reached COMPLETED or ERROR when it returns. A
    message transmitted but not yet handed to the receiver is failed.

    Args:
      timeout: Seconds to wait for the workers (default: `stop_timeout`).
    """
    with self._lock:
      was_running = self._running
      self._generation += 1
      self._cancel_event.set()
      if self._gate is not None:
        self._gate.cancel()
      abandoned = self._pending
      self._pending = None
      self._gate = None
      self._running = False
      self._step_mode = False
      self._paced = False
      self._phase = _Phase.NONE
      self._on_step = None
      self._on_complete = None
      self._state = SimulationState.IDLE
      if self._started_at is not None and self._finished_at is None:
        self._finished_at = time.monotonic()
      worker_done = self._worker_done
      in_worker = threading.current_thread() in self._workers

    if abandoned is not None and not abandoned.has_error:
      abandoned.fail()
      with self._lock:
        self._messages_abandoned += 1
      self.publish(
        EventType.ERROR_OCCURRED,
        "Error in simulation: stopped before the message was received",
      )

    logger.info("Simulation stopped")
    self.publish(EventType.SIMULATION_STOPPED)

    if was_running and not in_worker:
      wait = self.stop_timeout if timeout is None else timeout
      if not worker_done.wait(wait):
        logger.warning(f"Simulation worker did not stop within {wait} s")

  def reset_statistics(self) -> None:
    """Zero every counter and forget message histories.

    Configuration is left untouched.
    """
    self.channel.reset_statistics()
    self.sender.reset_statistics()
    self.receiver.clear_history()
    with self._lock:
      self._messages_abandoned = 0
    logger.info("Statistics reset")
    self.publish(EventType.STATISTICS_RESET)

  def statistics(self) -> SimulationStatistics:
    """Snapshot of the simulation-wide counters."""
    with self._lock:
      state = self._state
      abandoned = self._messages_abandoned
      if self._started_at is None:
        elapsed = 0.0
      else:
        end = self._finished_at if self._finished_at is not None else time.monotonic()
        elapsed = max(0.0, end - self._started_at)

    received = self.receiver.messages_received
    receiver_errors = self.receiver.messages_errored
    return SimulationStatistics(
      messages_sent=self.sender.messages_sent,
      messages_received=received,
      messages_delivered=max(0, received - receiver_errors),
      messages_errored=self.sender.messages_errored + receiver_errors + abandoned,
      bits_transmitted=self.channel.bits_transmitted,
      bit_errors=self.channel.bit_errors,
      elapsed_seconds=elapsed,
      state=str(state),
    )

  # Lifecycle

  def shutdown(self, wait: bool = True) -> None:
    """Stop any active run and release the worker pools."""
    if self.is_running:
      self.stop()
    if self._executor is not None:
      self._executor.shutdown(wait=wait)
      self._executor = None
    self.sender.shutdown(wait=wait)
    self.receiver.shutdown(wait=wait)

  def __enter__(self) -> "SimulationOrchestrator":
    return self

  def __exit__(self, *exc_info: object) -> None:
    self.shutdown()

  # Internals

  def _begin_run(self, step_mode: bool, paced: bool) -> int:
    """Reset the per-run state. The lock must be held."""
    super().clear_error()
    self._generation += 1
    self._cancel_event = threading.Event()
    self._gate = StepGate() if step_mode and paced else None
    self._running = True
    self._step_mode = step_mode
    self._paced = paced
    self._phase = _Phase.SENDING if step_mode else _Phase.NONE
    self._pending = None
    self._state = SimulationState.RUNNING
    self._started_at = time.monotonic()
    self._finished_at = None
    return self._generation

  def _track_worker(self) -> threading.Event:
    """Start tracking a new worker of the current run. The lock must be held."""
    self._worker_done = threading.Event()
    return self._worker_done

  def _conclude(self, generation: int, result: StageResult) -> bool:
    """Record the outcome of run `generation` unless it was stopped.

    Returns:
      False when the run is no longer current and the outcome was dropped.
    """
    with self._lock:
      if generation != self._generation:
        logger.debug(f"Dropping the outcome of stopped simulation {generation}")
        return False
      self._running = False
      self._step_mode = False
      self._paced = False
      self._phase = _Phase.NONE
      self._pending = None
      self._gate = None
      self._finished_at = time.monotonic()
      if result.message is not None:
        self._last_message = result.message
      on_complete = self._on_complete
      self._on_complete = None
      self._on_step = None
      if result.success:
        self._state = SimulationState.COMPLETED
      else:
        self._state = SimulationState.ERROR
        error = result.error or "simulation failed"
        self._record_error(result.error_kind or ErrorKind.INTERNAL, error)

    if result.success:
      logger.info(f"Simulation {generation} completed")
      self.publish(EventType.SIMULATION_COMPLETED, self.statistics())
    else:
      logger.warning(f"Simulation {generation} failed: {self.last_error}")
      self.publish(EventType.ERROR_OCCURRED, self.last_error)

    if on_complete is not None:
      try:
        on_complete(result.success, result.message)
      except Exception:
        logger.exception("Simulation completion callback failed")
    return True

  def _reject(self, kind: ErrorKind, error: str) -> None:
    self._record_error(kind, error)
    logger.warning(error)
    self.publish(EventType.ERROR_OCCURRED, error)

  def _pool(self) -> ThreadPoolExecutor:
    with self._lock:
      if self._executor is None:
        self._executor = ThreadPoolExecutor(
          max_workers=1, thread_name_prefix="simulation"
        )
      return self._executor

  @staticmethod
  def _resolved(value: bool) -> Future[bool]:
    future: Future[bool] = Future()
    future.set_result(value)
    return future
