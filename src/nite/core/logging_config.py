"""
Nite Ledger - Structured Logging Configuration

Configures structured JSON logging:
- JSON format for easy parsing and aggregation
- Log rotation to prevent disk space issues
- Contract modules log with ``extra={"event": ...}``; ``event`` stays a
  top-level field while token and collection keys are grouped under
  ``ledger`` together with the chain id

Usage:
    from nite.core.logging_config import setup_logging

    logger = setup_logging(name="nite", log_file="/var/log/nite/ledger.json")
    logger.info("Ledger deployed", extra={"event": "ledger.deployed"})
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from . import config

# extra= keys moved under "ledger"
LEDGER_FIELDS = (
    "collection",
    "token_id",
    "from_id",
    "to_id",
    "from",
    "to",
    "booking_id",
    "amount",
)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter with timestamp, environment, source location and a
    ``ledger`` object for the token fields a contract call logs.
    """

    def __init__(
        self,
        fmt: str = "%(timestamp)s %(level)s %(name)s %(message)s",
        timestamp: bool = True,
        environment: Optional[str] = None,
        service_name: str = "nite",
        chain_id: Optional[int] = None,
    ):
        super().__init__(fmt=fmt)
        self.timestamp = timestamp
        self.environment = environment or config.NETWORK.value
        self.service_name = service_name
        self.chain_id = config.CHAIN_ID if chain_id is None else chain_id

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        """Add custom fields to log record."""
        super().add_fields(log_record, record, message_dict)

        if self.timestamp and not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        log_record["environment"] = self.environment
        log_record["service"] = self.service_name

        if not log_record.get("level"):
            log_record["level"] = record.levelname.lower()

        log_record["source"] = {
            "function": record.funcName,
            "module": record.module,
            "line": record.lineno,
        }

        ledger = {key: log_record.pop(key) for key in LEDGER_FIELDS if key in log_record}
        if ledger:
            ledger["chain_id"] = self.chain_id
            log_record["ledger"] = ledger


def setup_logging(
    name: str = "nite",
    log_file: Optional[str] = None,
    level: str = "INFO",
    environment: Optional[str] = None,
    enable_console: bool = True,
    enable_file: bool = True,
    max_bytes: int = 50 * 1024 * 1024,  # 50MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    Setup structured JSON logging.

    Args:
        name: Logger name (``nite`` configures every ledger module)
        log_file: Path to JSON log file (optional)
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        environment: Environment identifier, defaults to the configured network
        enable_console: Whether to log to console
        enable_file: Whether to log to file
        max_bytes: Maximum log file size before rotation
        backup_count: Number of backup files to keep

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers to avoid duplicates
    logger.handlers = []

    formatter = CustomJsonFormatter(
        environment=environment,
        service_name=name.split(".")[0],
    )

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, level.upper()))
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if enable_file and log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
            file_handler.setLevel(getattr(logging, level.upper()))
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(
                "Could not create file handler for %s: %s",
                log_file,
                e,
                extra={"event": "logging.file_handler_failed"},
            )

    return logger


def get_logger(
    name: str,
    log_file: Optional[str] = None,
    level: Optional[str] = None,
) -> logging.Logger:
    """
    Get or create a logger with standard configuration.

    Args:
        name: Logger name
        log_file: Optional log file path, defaults to NITE_LOG_FILE
        level: Logging level, defaults to NITE_LOG_LEVEL

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        return setup_logging(
            name=name,
            log_file=log_file or config.LOG_FILE,
            level=level or config.LOG_LEVEL,
        )

    return logger
