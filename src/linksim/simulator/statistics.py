"""Read-only statistics snapshots.

Counters are copied out of the live components when a snapshot is built.
Rates are derived from the counters on access and never stored.
"""

from pydantic import BaseModel, Field, computed_field

from linksim.simulator.ciphers import CipherAlgorithm


def percentage(part: int, whole: int) -> float:
  """`part / whole` in percent, 0 when `whole` is 0."""
  if whole == 0:
    return 0.0
  return part / whole * 100.0


class ReceiverStatus(BaseModel):
  """Snapshot of a receiver.

  Attributes:
    identifier: Receiver name.
    is_processing: Whether a message was in flight.
    last_error: Last recorded error, if any.
    messages_received: Inbound messages, successful or not.
    messages_errored: Inbound messages that ended in ERROR.
    cipher_algorithm: Algorithm the decipher is configured with.
  """

  identifier: str
  is_processing: bool = False
  last_error: str | None = None
  messages_received: int = Field(default=0, ge=0)
  messages_errored: int = Field(default=0, ge=0)
  cipher_algorithm: CipherAlgorithm = CipherAlgorithm.NONE

  model_config = {"frozen": True}

  @computed_field
  @property
  def success_rate(self) -> float:
    """Percentage of inbound messages processed without error."""
    return percentage(
      self.messages_received - self.messages_errored, self.messages_received
    )

  def __str__(self) -> str:
    return (
      f"ReceiverStatus(id={self.identifier}, processing={self.is_processing}, "
      f"messages={self.messages_received}, success={self.success_rate:.1f}%)"
    )


class SimulationStatistics(BaseModel):
  """Simulation-wide counters at one point in time.

  Attributes:
    messages_sent: Messages the sender transmitted successfully.
    messages_received: Messages handed to the receiver.
    messages_delivered: Received messages decoded intact.
    messages_errored: Messages that ended in ERROR on either side.
    bits_transmitted: Bits carried by the channel.
    bit_errors: Bits flipped by the channel.
    elapsed_seconds: Time since the current (or last) run started.
    state: Simulation state name.
  """

  messages_sent: int = Field(default=0, ge=0)
  messages_received: int = Field(default=0, ge=0)
  messages_delivered: int = Field(default=0, ge=0)
  messages_errored: int = Field(default=0, ge=0)
  bits_transmitted: int = Field(default=0, ge=0)
  bit_errors: int = Field(default=0, ge=0)
  elapsed_seconds: float = Field(default=0.0, ge=0.0)
  state: str = "IDLE"

  model_config = {"frozen": True}

  @computed_field
  @property
  def ber(self) -> float:
    """Bit-error rate in percent."""
    return percentage(self.bit_errors, self.bits_transmitted)

  @computed_field
  @property
  def success_rate(self) -> float:
    """Percentage of received messages processed without error."""
    return percentage(self.messages_delivered, self.messages_received)

  def summary(self) -> str:
    """Multi-line report for logs and the example CLI."""
    return (
      f"State:              {self.state}\n"
      f"Messages sent:      {self.messages_sent}\n"
      f"Messages received:  {self.messages_received}\n"
      f"Messages delivered: {self.messages_delivered}\n"
      f"Messages errored:   {self.messages_errored}\n"
      f"Bits transmitted:   {self.bits_transmitted}\n"
      f"Bit errors:         {self.bit_errors}\n"
      f"BER:                {self.ber:.2f}%\n"
      f"Success rate:       {self.success_rate:.1f}%\n"
      f"Elapsed:            {self.elapsed_seconds:.3f} s"
    )
