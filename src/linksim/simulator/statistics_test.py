"""Tests for the statistics snapshots."""

import pytest
from pydantic import ValidationError

from linksim.simulator.ciphers import CipherAlgorithm
from linksim.simulator.statistics import (
  ReceiverStatus,
  SimulationStatistics,
  percentage,
)


def test_percentage() -> None:
  """Test the ratio helper."""
  assert percentage(1, 4) == 25.0
  assert percentage(0, 0) == 0.0


def test_simulation_statistics_rates() -> None:
  """Test that the rates are derived from the counters."""
  stats = SimulationStatistics(
    messages_sent=4,
    messages_received=4,
    messages_delivered=3,
    messages_errored=1,
    bits_transmitted=200,
    bit_errors=5,
  )
  assert stats.ber == pytest.approx(2.5)
  assert stats.success_rate == pytest.approx(75.0)
  dumped = stats.model_dump()
  assert dumped["ber"] == pytest.approx(2.5)
  assert dumped["success_rate"] == pytest.approx(75.0)


def test_simulation_statistics_validation() -> None:
  """Test that counters cannot be negative."""
  with pytest.raises(ValidationError):
    SimulationStatistics(bit_errors=-1)


def test_receiver_status() -> None:
  """Test the receiver snapshot."""
  status = ReceiverStatus(
    identifier="RX",
    messages_received=10,
    messages_errored=1,
    cipher_algorithm=CipherAlgorithm.BASE64,
  )
  assert status.success_rate == pytest.approx(90.0)
  assert str(status) == (
    "ReceiverStatus(id=RX, processing=False, messages=10, success=90.0%)"
  )
