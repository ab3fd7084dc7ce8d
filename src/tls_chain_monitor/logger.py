"""
Centralized logger configuration for tls-chain-monitor.

Provides ``get_logger(name)``. On first request the package logger:
  - writes to stderr through a StreamHandler
  - uses the format "YYYY-MM-DD HH:MM:SS LEVEL [logger_name] message"
  - defaults to INFO (override with TLS_CHAIN_MONITOR_LOG or ``set_level``)
"""

from __future__ import annotations

import logging
import os

_BASE_NAME = "tls_chain_monitor"
_DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

# e.g. TLS_CHAIN_MONITOR_LOG=debug
_ENV_VAR = "TLS_CHAIN_MONITOR_LOG"

# Level names accepted by --log-level, mapped onto stdlib levels.
LOG_LEVELS: dict[str, int] = {
    "disabled": logging.CRITICAL + 10,
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}


def _level_from_name(name: str | None) -> int | None:
    if not name:
        return None
    name = name.strip().lower()
    if name == "warning":
        name = "warn"
    return LOG_LEVELS.get(name)


def _base_logger() -> logging.Logger:
    logger = logging.getLogger(_BASE_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_DEFAULT_FORMAT, datefmt=_DATEFMT))
        logger.addHandler(handler)

        level = _level_from_name(os.getenv(_ENV_VAR, ""))
        logger.setLevel(level if level is not None else logging.INFO)

        # Prevent double-logging through the root logger.
        logger.propagate = False
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Return a logger named ``tls_chain_monitor.<name>``. Child loggers share
    the handler configured on the package logger.
    """
    base = _base_logger()
    if not name:
        return base
    if name.startswith(_BASE_NAME + "."):
        name = name[len(_BASE_NAME) + 1:]
    return base.getChild(name)


def set_level(name: str) -> None:
    level = _level_from_name(name)
    if level is None:
        raise ValueError(f"unsupported log level {name!r}")
    _base_logger().setLevel(level)
