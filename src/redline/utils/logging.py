"""Logging for the redline command line tool.

stdout carries the agent transcript, so log records never go there. Every
record at the configured level lands in a rotating file; stderr only echoes
warnings and errors, or INFO and above in debug mode.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass
from pathlib import Path

__all__ = ["LoggingConfig", "configure", "get_log_path"]

LOG_FILE_NAME = "redline.log"
LOG_DIR_ENV = "REDLINE_LOG_DIR"
DEBUG_ENV = "REDLINE_DEBUG"

_DEFAULT_LOG_DIR = Path.home() / ".redline" / "logs"
_LIBRARY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai", "markdown_it")
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
# Marks handlers installed here so reconfiguring leaves foreign handlers alone.
_OWNED = "_redline_handler"

_active: LoggingConfig | None = None
_log_path: Path | None = None


@dataclass(slots=True, frozen=True)
class LoggingConfig:
    """How the CLI logs for one run.

    Attributes:
        debug: Log DEBUG records to the file and INFO records to stderr.
        log_dir: Directory of the rotating log file.
        stderr: Echo records to stderr at all.
        max_bytes: Size at which the log file rotates.
        backup_count: Rotated files kept.
    """

    debug: bool = False
    log_dir: Path = _DEFAULT_LOG_DIR
    stderr: bool = True
    max_bytes: int = 1_000_000
    backup_count: int = 3

    @classmethod
    def from_environment(cls, *, debug: bool = False, **overrides) -> LoggingConfig:
        """Build a config where ``REDLINE_DEBUG`` can switch debug on and
        ``REDLINE_LOG_DIR`` moves the log file."""
        env_debug = os.environ.get(DEBUG_ENV, "").strip().lower() in _TRUE_VALUES
        env_dir = os.environ.get(LOG_DIR_ENV)
        if env_dir and "log_dir" not in overrides:
            overrides["log_dir"] = Path(env_dir).expanduser()
        return cls(debug=debug or env_debug, **overrides)

    @property
    def level(self) -> int:
        return logging.DEBUG if self.debug else logging.INFO

    @property
    def stderr_level(self) -> int:
        return logging.INFO if self.debug else logging.WARNING

    @property
    def log_path(self) -> Path:
        return Path(self.log_dir).expanduser() / LOG_FILE_NAME


def configure(config: LoggingConfig) -> Path:
    """Install the file and stderr handlers described by ``config``.

    Calling again with an equal config is a no-op; a different one (for
    example once persisted settings turn debug logging on) replaces the
    handlers installed by the previous call.

    Returns:
        Path of the active log file.
    """

    global _active, _log_path
    if config == _active and _log_path is not None:
        return _log_path

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _OWNED, False):
            root.removeHandler(handler)
            handler.close()

    log_path = config.log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=config.max_bytes, backupCount=config.backup_count, encoding="utf-8"
    )
    file_handler.setLevel(config.level)
    _install(root, file_handler, formatter)

    if config.stderr:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(config.stderr_level)
        _install(root, stderr_handler, formatter)

    root.setLevel(config.level)
    logging.captureWarnings(True)
    # Library chatter stays out of the file unless something goes wrong.
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _active = config
    _log_path = log_path
    return log_path


def get_log_path() -> Path | None:
    """Return the currently configured log file if available."""

    return _log_path


def _install(root: logging.Logger, handler: logging.Handler, formatter: logging.Formatter) -> None:
    handler.setFormatter(formatter)
    setattr(handler, _OWNED, True)
    root.addHandler(handler)
