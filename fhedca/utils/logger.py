"""
Centralized logging configuration for fhedca.

Colored console output (colorlog) plus an optional log file, one logger
per subsystem under the `fhedca` root:

    fhedca.registry    intent writes (owner short hex only)
    fhedca.aggregator  batch counts per pair key
    fhedca.executor    aggregate amounts and fees
    fhedca.keeper      poll / execute outcomes, prefixed with the pair label

Log lines carry counts, pair keys and aggregate amounts. Individual
contribution amounts are never passed to a logger.

The level defaults to INFO and can be set with FHEDCA_LOG_LEVEL.
"""

import logging
import os
import sys
from pathlib import Path
from typing import MutableMapping, Optional, Tuple

import colorlog

ROOT_LOGGER = "fhedca"
LOG_FILE = "fhedca.log"
LEVEL_ENV_VAR = "FHEDCA_LOG_LEVEL"

CONSOLE_FORMAT = "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s"
FILE_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def _level_from_env(default: int) -> int:
    name = os.getenv(LEVEL_ENV_VAR, "").upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


def _console_handler(level: int) -> logging.Handler:
    handler = colorlog.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(colorlog.ColoredFormatter(
        CONSOLE_FORMAT,
        datefmt=DATE_FORMAT,
        log_colors=LOG_COLORS,
    ))
    return handler


def _file_handler(log_dir: Path, level: int) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_dir / LOG_FILE)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


class DcaLogger:
    """Centralized logger for fhedca components"""

    _initialized = False
    _log_dir: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: Optional[int] = None,
        log_dir: Optional[str] = None,
        log_to_file: bool = False,
        force: bool = False,
    ):
        """
        Configure the `fhedca` root logger.

        Args:
            level: Logging level; FHEDCA_LOG_LEVEL or INFO when omitted
            log_dir: Directory for fhedca.log (./logs if None)
            log_to_file: Also write to the log file
            force: Reconfigure even if already set up (CLI --debug)
        """
        if cls._initialized and not force:
            return

        level = level if level is not None else _level_from_env(logging.INFO)

        root_logger = logging.getLogger(ROOT_LOGGER)
        root_logger.setLevel(level)
        root_logger.handlers.clear()
        root_logger.addHandler(_console_handler(level))

        if log_to_file:
            cls._log_dir = Path(log_dir) if log_dir else Path("logs")
            root_logger.addHandler(_file_handler(cls._log_dir, level))

        cls._initialized = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Get a logger for a specific subsystem.

        Args:
            name: Subsystem name (e.g., 'registry', 'aggregator', 'keeper')
        """
        if not cls._initialized:
            cls.setup()

        return logging.getLogger(f"{ROOT_LOGGER}.{name}")


class PairLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with a pair label, e.g. `[mUSD/mWETH]`."""

    def process(self, msg: str, kwargs: MutableMapping) -> Tuple[str, MutableMapping]:
        return f"[{self.extra['pair']}] {msg}", kwargs


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific subsystem"""
    return DcaLogger.get_logger(name)


def get_pair_logger(name: str, pair: str) -> PairLoggerAdapter:
    """Subsystem logger whose lines are tagged with a pair label."""
    return PairLoggerAdapter(get_logger(name), {"pair": pair})


def setup_logging(
    level: Optional[int] = None,
    log_dir: Optional[str] = None,
    log_to_file: bool = False,
):
    """Setup logging configuration (re-applies if already configured)"""
    DcaLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file, force=True)
