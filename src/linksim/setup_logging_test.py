"""Tests for the logging setup."""

from typing import Any

import pytest

from linksim import setup_logging as setup_logging_module
from linksim.config import SimulationConfig
from linksim.setup_logging import setup_logging


@pytest.fixture
def installed(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
  calls: list[dict[str, Any]] = []
  monkeypatch.setattr(
    setup_logging_module.coloredlogs,
    "install",
    lambda **kwargs: calls.append(kwargs),
  )
  return calls


class TestSetupLogging:
  """Tests for setup_logging."""

  def test_default_level(self, installed: list[dict[str, Any]]) -> None:
    """Test that INFO is installed by default."""
    setup_logging()
    assert installed[0]["level"] == "INFO"

  def test_level_from_config(self, installed: list[dict[str, Any]]) -> None:
    """Test that the configured level reaches coloredlogs."""
    config = SimulationConfig(log_level="debug")

    setup_logging(level=config.log_level)

    assert installed[0]["level"] == "DEBUG"
    assert "%(threadName)s" in installed[0]["fmt"]
