"""Human-readable descriptions of the simulator enums, for display."""

from enum import Enum

from linksim.simulator.ciphers import CipherAlgorithm
from linksim.simulator.message import MessageState
from linksim.simulator.orchestrator import SimulationState
from linksim.simulator.profiles import ChannelType

CIPHER_LABELS: dict[CipherAlgorithm, str] = {
  CipherAlgorithm.NONE: "No encryption",
  CipherAlgorithm.CAESAR_BIT_FLIP: "Caesar bit flip",
  CipherAlgorithm.XOR: "XOR cipher",
  CipherAlgorithm.BASE64: "Base64 encoding",
}

CHANNEL_LABELS: dict[ChannelType, str] = {
  ChannelType.IDEAL: "Ideal channel (no noise)",
  ChannelType.NOISY: "Noisy channel",
  ChannelType.INTERMITTENT: "Intermittent channel",
  ChannelType.LOSSY: "Lossy channel",
}

MESSAGE_STATE_LABELS: dict[MessageState, str] = {
  MessageState.CREATED: "Message created",
  MessageState.ENCODED: "Message encoded to binary",
  MessageState.ENCRYPTED: "Message encrypted",
  MessageState.TRANSMITTING: "Message in transmission",
  MessageState.RECEIVED: "Message received",
  MessageState.DECRYPTED: "Message decrypted",
  MessageState.DECODED: "Message decoded",
  MessageState.COMPLETED: "Processing completed",
  MessageState.ERROR: "Processing error",
}

SIMULATION_STATE_LABELS: dict[SimulationState, str] = {
  SimulationState.IDLE: "Simulation stopped",
  SimulationState.CONFIGURING: "Configuring parameters",
  SimulationState.RUNNING: "Simulation running",
  SimulationState.PAUSED: "Simulation paused",
  SimulationState.COMPLETED: "Simulation completed",
  SimulationState.ERROR: "Simulation error",
}


def describe(value: Enum) -> str:
  """Display text for a simulator enum member.

  Args:
    value: A CipherAlgorithm, ChannelType, MessageState or SimulationState.

  Returns:
    The description, or `str(value)` for anything without one.
  """
  for table in (
    CIPHER_LABELS,
    CHANNEL_LABELS,
    MESSAGE_STATE_LABELS,
    SIMULATION_STATE_LABELS,
  ):
    if value in table:
      return table[value]
  return str(value)
