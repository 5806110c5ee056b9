"""
Centralized Logging

Architectural Intent:
- Provides structured JSON logging for all Cirrus components
- Centralizes log configuration to avoid scattered print() calls
- Supports configurable log levels via CLI flags (--verbose, --debug)

Security:
- SecretRedactingFilter masks registered secret values (passwords,
  certificates, secure: parameters) wherever they would end up in a
  formatted message
"""

import json
import logging
import sys
import threading
from datetime import datetime, UTC
from typing import Iterable, Mapping

from cirrus.domain.constants import MANAGEMENT_CERTIFICATE, SECURE_PREFIX

REDACTED = "***"
_MIN_SECRET_LENGTH = 4


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


class SecretRedactingFilter(logging.Filter):
    """Replaces known secret values in log messages with ***."""

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        self._secrets: set[str] = set()
        self._lock = threading.Lock()
        self.add_secrets(secrets)

    def add_secrets(self, secrets: Iterable[str]) -> None:
        with self._lock:
            self._secrets.update(
                s for s in secrets if isinstance(s, str) and len(s) >= _MIN_SECRET_LENGTH
            )

    def add_profile_parameters(self, parameters: Mapping[str, str]) -> None:
        """Register the secret values of a profile parameter map."""
        values = [
            value
            for key, value in parameters.items()
            if key.startswith(SECURE_PREFIX) or key == MANAGEMENT_CERTIFICATE
        ]
        self.add_secrets(values)
        for key, value in parameters.items():
            if key.startswith(SECURE_PREFIX):
                self.add_secrets(_json_string_values(value))

    def filter(self, record: logging.LogRecord) -> bool:
        with self._lock:
            secrets = sorted(self._secrets, key=len, reverse=True)
        if not secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in secrets:
            redacted = redacted.replace(secret, REDACTED)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def _json_string_values(payload: str) -> list[str]:
    try:
        data = json.loads(payload)
    except (TypeError, ValueError):
        return []
    if isinstance(data, dict):
        return [v for v in data.values() if isinstance(v, str)]
    return []


_redactor = SecretRedactingFilter()


def get_secret_filter() -> SecretRedactingFilter:
    """The process-wide filter attached by configure_logging()."""
    return _redactor


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
) -> None:
    """Configure logging for the Cirrus application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, etc.)
        json_format: If True, use JSON structured output. Otherwise human-readable.
    """
    root = logging.getLogger("cirrus")
    root.setLevel(level)

    # Remove existing handlers
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(_redactor)

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )

    root.addHandler(handler)
