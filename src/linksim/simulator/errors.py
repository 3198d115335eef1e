"""Error kinds reported by pipeline components.

Stages never raise across component boundaries. The pure transforms raise
`StageError`, and the owning component catches it, records the failure as its
last error and reports a boolean result to the caller.
"""

from enum import StrEnum


class ErrorKind(StrEnum):
  """Classification of a pipeline failure."""

  INVALID_INPUT = "InvalidInput"
  EMPTY_CONTENT = "EmptyContent"
  ALREADY_PROCESSING = "AlreadyProcessing"
  ALREADY_TRANSMITTING = "AlreadyTransmitting"
  MALFORMED_BINARY = "MalformedBinary"
  INTEGRITY_MISMATCH = "IntegrityMismatch"
  UNSUPPORTED_ALGORITHM = "UnsupportedAlgorithm"
  NO_CHANNEL_CONFIGURED = "NoChannelConfigured"
  NOT_IN_STEP_MODE = "NotInStepMode"
  ALREADY_IN_PROGRESS = "AlreadyInProgress"
  INVALID_STATE = "InvalidState"
  CANCELLED = "Cancelled"
  INTERNAL = "InternalError"


class StageError(Exception):
  """Raised by a transform when a message cannot be processed.

  Attributes:
    kind: The failure classification.
    detail: Human-readable description of what went wrong.
  """

  def __init__(self, kind: ErrorKind, detail: str) -> None:
    super().__init__(f"{kind}: {detail}")
    self.kind = kind
    self.detail = detail
