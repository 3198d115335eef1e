"""In-process publish/subscribe fabric shared by every pipeline component.

Each component is its own `EventBus`. Composite components (Sender, Receiver,
SimulationOrchestrator) subscribe to their children and re-publish the events
under a component prefix, so a top-level subscriber can tell where an event
came from without looking inside the payload.

Typical Usage:
  ```python
  def on_event(event_type: str, payload: object | None) -> None:
    print(event_type, payload)

  orchestrator.subscribe(on_event)
  ```
"""

import logging
import threading
from collections.abc import Callable
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

EventListener = Callable[[str, Any], None]


class EventType(StrEnum):
  """Event names published by pipeline components."""

  # Stage-local
  PROCESSING_STARTED = "PROCESSING_STARTED"
  PROCESSING_COMPLETED = "PROCESSING_COMPLETED"
  ERROR_OCCURRED = "ERROR_OCCURRED"
  MESSAGE_CREATED = "MESSAGE_CREATED"
  MESSAGE_ENCODED = "MESSAGE_ENCODED"
  MESSAGE_ENCRYPTED = "MESSAGE_ENCRYPTED"
  MESSAGE_TRANSMITTED = "MESSAGE_TRANSMITTED"
  MESSAGE_RECEIVED = "MESSAGE_RECEIVED"
  MESSAGE_DECRYPTED = "MESSAGE_DECRYPTED"
  MESSAGE_DECODED = "MESSAGE_DECODED"
  TRANSMISSION_PROGRESS = "TRANSMISSION_PROGRESS"

  # Sender / Receiver
  MESSAGE_SENT = "MESSAGE_SENT"
  MESSAGE_PROCESSED = "MESSAGE_PROCESSED"
  HISTORY_CLEARED = "HISTORY_CLEARED"

  # Orchestrator
  SIMULATION_STARTED = "SIMULATION_STARTED"
  SIMULATION_STEP_MODE_STARTED = "SIMULATION_STEP_MODE_STARTED"
  SIMULATION_STEP = "SIMULATION_STEP"
  SIMULATION_SENDER_COMPLETED = "SIMULATION_SENDER_COMPLETED"
  SIMULATION_COMPLETED = "SIMULATION_COMPLETED"
  SIMULATION_STOPPED = "SIMULATION_STOPPED"
  STATISTICS_RESET = "STATISTICS_RESET"
  CIPHER_CONFIGURED = "CIPHER_CONFIGURED"
  CHANNEL_CONFIGURED = "CHANNEL_CONFIGURED"


SENDER_PREFIX = "SENDER"
RECEIVER_PREFIX = "RECEIVER"
CONTROLLER_PREFIX = "CONTROLLER"


def namespaced(prefix: str, event_type: str) -> str:
  """Qualify an event name with the component that re-publishes it.

  Args:
    prefix: Owning component prefix (e.g. "SENDER").
    event_type: Event name as published by the child.

  Returns:
    The prefixed event name, e.g. "SENDER_MESSAGE_ENCODED".
  """
  return f"{prefix}_{event_type}"


class EventBus:
  """Thread-safe publish/subscribe broadcaster.

  Listeners are kept in an immutable tuple that is replaced on every
  mutation (copy-on-write). `publish` iterates over the tuple it read, so
  subscribe/unsubscribe may race with publish without either side seeing a
  half-updated registry.

  Listeners run synchronously on the publishing thread, in registration
  order. A listener that raises is logged and skipped.
  """

  def __init__(self) -> None:
    self._listeners: tuple[EventListener, ...] = ()
    self._listeners_lock = threading.Lock()

  def subscribe(self, listener: EventListener) -> None:
    """Register a listener. Registering the same listener twice is a no-op.

    Args:
      listener: Callable receiving `(event_type, payload)`.
    """
    with self._listeners_lock:
      if listener in self._listeners:
        return
      self._listeners = (*self._listeners, listener)

  def unsubscribe(self, listener: EventListener) -> None:
    """Remove a listener if it is registered."""
    with self._listeners_lock:
      self._listeners = tuple(item for item in self._listeners if item != listener)

  def publish(self, event_type: str, payload: Any = None) -> None:
    """Notify every registered listener.

    Args:
      event_type: Event name.
      payload: Optional event data (a Message, a progress fraction, an error
        string, ...).
    """
    for listener in self._listeners:
      try:
        listener(str(event_type), payload)
      except Exception:
        logger.exception(
          f"Listener {getattr(listener, '__qualname__', listener)!r} failed "
          f"while handling {event_type}"
        )

  @property
  def listener_count(self) -> int:
    """Number of registered listeners."""
    return len(self._listeners)

  def clear_listeners(self) -> None:
    """Remove every listener."""
    with self._listeners_lock:
      self._listeners = ()

  def _forward_as(self, prefix: str) -> EventListener:
    """Build a listener that re-publishes child events under `prefix`."""

    def forward(event_type: str, payload: Any) -> None:
      self.publish(namespaced(prefix, event_type), payload)

    return forward
