from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Tuple

PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "plain"
    service: str = "metrics-collector"
    redact_keys: Tuple[str, ...] = ("key", "hashsha256", "secret", "password", "dsn")

    @classmethod
    def from_settings(cls, settings: Any, service: str) -> "LoggingConfig":
        return cls(
            level=str(settings.log_level).upper(),
            format=str(settings.log_format).lower(),
            service=service,
        )


class _JsonFormatter(logging.Formatter):
    def __init__(self, config: LoggingConfig) -> None:
        super().__init__()
        self.config = config

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.config.service,
        }
        extra = _sanitize_extra(record.__dict__, self.config.redact_keys)
        if extra:
            payload["context"] = extra
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


_RESERVED = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}


def _sanitize_extra(context: Mapping[str, Any], redact_keys: Tuple[str, ...]) -> Dict[str, Any]:
    filtered = {}
    for key, value in context.items():
        if key in _RESERVED or key.startswith("_"):
            continue
        if key.lower() in redact_keys:
            filtered[key] = "[redacted]"
        elif isinstance(value, (str, int, float, bool)) or value is None:
            filtered[key] = value
        else:
            filtered[key] = str(value)
    return filtered


def configure_logging(config: LoggingConfig) -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level, logging.INFO))
    if not root_logger.handlers:
        root_logger.addHandler(logging.StreamHandler())
    for handler in root_logger.handlers:
        if config.format == "json":
            handler.setFormatter(_JsonFormatter(config))
        else:
            handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
