"""Simulator module for point-to-point digital links."""

from linksim.simulator import profiles
from linksim.simulator.channel import Channel
from linksim.simulator.ciphers import (
  Cipher,
  CipherAlgorithm,
  CipherConfig,
  Decipher,
)
from linksim.simulator.codec import Decoder, Encoder
from linksim.simulator.errors import ErrorKind, StageError
from linksim.simulator.events import EventBus, EventListener, EventType
from linksim.simulator.message import Message, MessageState
from linksim.simulator.orchestrator import SimulationOrchestrator, SimulationState
from linksim.simulator.profiles import (
  ChannelPreset,
  ChannelProfile,
  ChannelType,
  ideal,
  intermittent,
  lossy,
  noisy,
)
from linksim.simulator.receiver import Receiver
from linksim.simulator.sender import Sender
from linksim.simulator.stage import StageResult
from linksim.simulator.statistics import ReceiverStatus, SimulationStatistics
from linksim.simulator.stepping import StepGate, StepInfo, StepName

__all__ = [
  # Pipeline components
  "Channel",
  "Cipher",
  "Decipher",
  "Decoder",
  "Encoder",
  "Receiver",
  "Sender",
  "SimulationOrchestrator",
  # Data model
  "CipherAlgorithm",
  "CipherConfig",
  "ChannelPreset",
  "ChannelProfile",
  "ChannelType",
  "ErrorKind",
  "EventBus",
  "EventListener",
  "EventType",
  "Message",
  "MessageState",
  "ReceiverStatus",
  "SimulationState",
  "SimulationStatistics",
  "StageError",
  "StageResult",
  "StepGate",
  "StepInfo",
  "StepName",
  # Channel presets
  "ideal",
  "intermittent",
  "lossy",
  "noisy",
  "profiles",
]
