"""Logging configuration for the linksim package."""

import coloredlogs


def setup_logging(level: str = "INFO") -> None:
  """Configure the root logger with a short, colored, and tidy format.

  Should be called once at the entry point of the application. Library
  modules only create loggers and never install handlers themselves.

  Args:
    level: Logging level (e.g., "INFO", "DEBUG", "WARNING").
  """
  log_format = (
    "%(asctime)s | %(levelname)-8s | %(threadName)s | "
    "%(module)s | %(message)s"
  )
  coloredlogs.install(
    level=level,
    fmt=log_format,
    datefmt="%H:%M:%S",
  )
