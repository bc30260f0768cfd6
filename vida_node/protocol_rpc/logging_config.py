# vida_node/protocol_rpc/logging_config.py
"""
Logging configuration for the node.

Application code logs through loguru. uvicorn keeps stdlib logging, routed
to stdout/stderr by severity:
- DEBUG/INFO/WARNING → stdout
- ERROR/CRITICAL → stderr
Peer polling hits /rootHash on every checkpoint, so those access lines are
filtered out together with /health.
"""

import logging
import os
import sys

from loguru import logger


def setup_loguru_config():
    """Set up application logging using Loguru."""
    logger.remove()

    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()

    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=log_level,
        colorize=True,
    )

    if os.environ.get("LOG_TO_FILE"):
        logger.add(
            os.environ.get("LOG_FILE", "logs/vida_node.log"),
            rotation="10 MB",
            retention="7 days",
            level=log_level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        )

    return logger


class PollingEndpointFilter(logging.Filter):
    """Filter out health check and peer polling requests from access logs."""

    FILTERED_PATHS = {"/health", "/rootHash"}

    def filter(self, record: logging.LogRecord) -> bool:
        """Return False to suppress the log record, True to allow it."""
        message = record.getMessage()

        for path in self.FILTERED_PATHS:
            # Match patterns like: GET /rootHash?blockNumber=5 HTTP/1.1
            if f" {path} " in message or f" {path}?" in message:
                return False

        return True


class InfoAndBelowFilter(logging.Filter):
    """Filter to only allow DEBUG, INFO, and WARNING logs (below ERROR)."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < logging.ERROR


class ErrorAndAboveFilter(logging.Filter):
    """Filter to only allow ERROR and CRITICAL logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def get_uvicorn_log_config() -> dict:
    """Get a uvicorn-compatible logging configuration dict.

    Pass to uvicorn.run(log_config=...).
    """
    log_level = os.getenv("LOG_LEVEL", "info").upper()

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "polling_endpoint_filter": {
                "()": PollingEndpointFilter,
            },
            "info_and_below": {
                "()": InfoAndBelowFilter,
            },
            "error_and_above": {
                "()": ErrorAndAboveFilter,
            },
        },
        "formatters": {
            "default": {
                "()": "uvicorn.logging.DefaultFormatter",
                "fmt": "%(levelprefix)s %(message)s",
                "use_colors": None,
            },
            "access": {
                "()": "uvicorn.logging.AccessFormatter",
                "fmt": '%(levelprefix)s %(client_addr)s - "%(request_line)s" %(status_code)s',
            },
        },
        "handlers": {
            "default_stdout": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "filters": ["info_and_below"],
            },
            "default_stderr": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "filters": ["error_and_above"],
            },
            "access": {
                "formatter": "access",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "filters": ["polling_endpoint_filter"],
            },
        },
        "loggers": {
            "uvicorn": {
                "handlers": ["default_stdout", "default_stderr"],
                "level": log_level,
                "propagate": False,
            },
            "uvicorn.error": {
                "level": log_level,
                "handlers": ["default_stdout", "default_stderr"],
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": ["access"],
                "level": log_level,
                "propagate": False,
            },
        },
    }
