"""Utility helpers shared across redline."""

from .logging import LoggingConfig, configure, get_log_path

__all__ = ["LoggingConfig", "configure", "get_log_path"]
