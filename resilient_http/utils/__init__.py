"""Logging helpers shared by the client and the command line."""

from .logger import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
