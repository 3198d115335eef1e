#!/usr/bin/env python3
"""Digital Link Simulation Script.

This script pushes one or more text messages through a complete link:
Text -> Encoder -> Cipher -> Channel -> Decipher -> Decoder -> Text

It allows testing different ciphers and channel conditions and shows how bit
errors introduced by the channel surface as integrity failures.
"""

import logging
import sys
import threading
from typing import Annotated, Any

import typer

from linksim.config import SimulationConfig
from linksim.setup_logging import setup_logging
from linksim.simulator import labels
from linksim.simulator.ciphers import CipherAlgorithm, CipherConfig
from linksim.simulator.codec import format_binary_string
from linksim.simulator.events import (
  CONTROLLER_PREFIX,
  SENDER_PREFIX,
  EventType,
  namespaced,
)
from linksim.simulator.message import Message
from linksim.simulator.orchestrator import SimulationOrchestrator
from linksim.simulator.profiles import PRESETS, ChannelPreset
from linksim.simulator.stepping import StepName

logger = logging.getLogger(__name__)


def get_channel_preset(preset_name: str) -> ChannelPreset:
  """Get channel preset by name."""
  if preset_name not in PRESETS:
    logger.error(f"Unknown preset: {preset_name}")
    logger.error(f"Available presets: {', '.join(PRESETS.keys())}")
    sys.exit(1)

  return PRESETS[preset_name]


def run_complete(sim: SimulationOrchestrator, messages: list[str]) -> None:
  """Send every message back to back."""
  for text in messages:
    ok = sim.run_complete(text).result()
    message = sim.last_message
    if ok:
      logger.info(f"'{text}' delivered intact")
    else:
      logger.warning(f"'{text}' failed: {sim.last_error}")
    if message is not None and message.binary:
      logger.info(f"  Binary: {format_binary_string(message.binary)}")


def run_stepwise(sim: SimulationOrchestrator, text: str) -> None:
  """Walk one message through the link one macro-step at a time."""
  sender_done = threading.Event()
  finished = threading.Event()

  progress_event = namespaced(
    CONTROLLER_PREFIX, namespaced(SENDER_PREFIX, EventType.TRANSMISSION_PROGRESS)
  )

  def on_event(event_type: str, payload: Any) -> None:
    if event_type == EventType.SIMULATION_SENDER_COMPLETED:
      sender_done.set()
    elif event_type == progress_event:
      logger.debug(f"  transmitted {payload:.0%}")

  def on_step(step: StepName, message: Message) -> None:
    logger.info(f"Step {step}: {labels.describe(message.state)}")

  def on_complete(success: bool, message: Message | None) -> None:
    sender_done.set()
    finished.set()

  sim.subscribe(on_event)
  sim.run_stepwise(text, on_step=on_step, on_complete=on_complete, paced=True)
  # ENCODING runs right away, each of the remaining four steps needs a nudge
  for index in range(4):
    input("Press Enter for the next step... ")
    if index == 2:
      sender_done.wait()
    if not sim.advance_step():
      break
  finished.wait()


def main(
  messages: Annotated[list[str], typer.Argument(help="Messages to transmit.")],
  preset: Annotated[
    str,
    typer.Option(
      "--preset",
      "-p",
      help=f"Channel preset ({', '.join(PRESETS)}).",
    ),
  ] = "light_noise",
  cipher: Annotated[
    CipherAlgorithm,
    typer.Option("--cipher", "-c", help="Cipher algorithm."),
  ] = CipherAlgorithm.NONE,
  key: Annotated[
    str,
    typer.Option("--key", "-k", help="Cipher key (odd integer or bit string)."),
  ] = "",
  seed: Annotated[
    int | None,
    typer.Option("--seed", "-s", help="Seed for reproducible bit errors."),
  ] = None,
  step: Annotated[
    bool,
    typer.Option("--step", help="Walk the first message step by step."),
  ] = False,
  log_level: Annotated[
    str,
    typer.Option("--log-level", "-l", help="Console log level."),
  ] = "INFO",
) -> None:
  """Simulate text messages over an impaired digital link."""
  # 1. Configuration
  channel_preset = get_channel_preset(preset)
  profile = channel_preset.profile
  if seed is not None:
    profile = profile.model_copy(update={"seed": seed})
  config = SimulationConfig(
    cipher=CipherConfig(algorithm=cipher, key=key),
    channel=profile,
    log_level=log_level,
  )
  setup_logging(level=config.log_level)

  logger.info(f"Using channel preset: {channel_preset.name}")
  logger.info(f"  {channel_preset.description}")
  logger.info(f"Cipher: {labels.describe(config.cipher.algorithm)}")
  logger.info(f"Channel: {labels.describe(profile.channel_type)}")

  # 2. Run Simulation
  with SimulationOrchestrator.from_config(config) as sim:
    if step:
      run_stepwise(sim, messages[0])
    else:
      run_complete(sim, messages)

    # 3. Report
    stats = sim.statistics()
    logger.info(f"Simulation finished: {labels.describe(sim.state)}")
    for line in stats.summary().splitlines():
      logger.info(f"  {line}")


if __name__ == "__main__":
  typer.run(main)
