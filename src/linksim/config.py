"""Configuration module for linksim."""

from pydantic import BaseModel, Field, field_validator

from linksim.simulator.ciphers import CipherConfig
from linksim.simulator.codec import DEFAULT_MAX_MESSAGE_LENGTH
from linksim.simulator.profiles import ChannelProfile

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class SimulationConfig(BaseModel):
  """Configuration of a simulated link.

  Attributes:
    cipher: Cipher shared by the sender and the receiver.
    channel: Channel impairment profile.
    sender_id: Identifier of the sender.
    receiver_id: Identifier of the receiver.
    max_message_length: Longest accepted message, in characters.
    stop_timeout: Seconds `stop()` waits for a cancelled worker.
    log_level: Level passed to `setup_logging`.
  """

  cipher: CipherConfig = Field(
    default_factory=CipherConfig, description="Cipher algorithm and key."
  )
  channel: ChannelProfile = Field(
    default_factory=ChannelProfile, description="Channel impairment profile."
  )
  sender_id: str = Field("SENDER-001", description="Sender identifier.", min_length=1)
  receiver_id: str = Field(
    "RECEIVER-001", description="Receiver identifier.", min_length=1
  )
  max_message_length: int = Field(
    DEFAULT_MAX_MESSAGE_LENGTH,
    description="Longest accepted message, in characters.",
    gt=0,
  )
  stop_timeout: float = Field(
    1.0, description="Seconds stop() waits for a cancelled worker.", ge=0.0
  )
  log_level: str = Field("INFO", description="Logging level.")

  model_config = {"frozen": True}

  @field_validator("log_level")
  @classmethod
  def _known_level(cls, value: str) -> str:
    level = value.upper()
    if level not in LOG_LEVELS:
      msg = f"log_level must be one of {', '.join(LOG_LEVELS)}, got {value!r}"
      raise ValueError(msg)
    return level
