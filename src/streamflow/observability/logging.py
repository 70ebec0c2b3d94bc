"""Logging setup: structured extras formatter plus a dictConfig builder."""

from __future__ import annotations

import json
import logging
import os
import time
import traceback
from collections.abc import Mapping
from dataclasses import asdict, is_dataclass
from decimal import Decimal
from enum import Enum
from logging.config import dictConfig
from typing import Any

from opentelemetry import baggage, trace


def _level(env_var: str, default: str) -> str:
    return os.getenv(env_var, default).upper()


def _running_in_managed_runtime() -> bool:
    # Cloud Run and Kubernetes log ingestion parse JSON lines into structured payloads.
    return bool(os.getenv("K_SERVICE") or os.getenv("KUBERNETES_SERVICE_HOST"))


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _compact_json(value: Any, *, limit: int = 512) -> str:
    encoded = _dumps(value)
    if len(encoded) <= limit:
        return encoded
    return encoded[:limit] + "... (truncated)"


def _structured_payload(record: logging.LogRecord) -> dict[str, Any]:
    record_dict = record.__dict__
    record_data = record_dict.get("data")
    record_json_fields = record_dict.get("json_fields")

    message = record.getMessage()
    sanitized_data: Any | None = None
    if record_data:
        sanitized_data = _sanitize_for_json(record_data)
        message = f"{message} | data={_compact_json(sanitized_data)}"

    payload: dict[str, Any] = {
        "message": message,
        "severity": record.levelname,
        "logger": record.name,
        "timestamp": (
            f"{time.strftime('%Y-%m-%dT%H:%M:%S', time.gmtime(record.created))}"
            f".{int(record.msecs):03d}Z"
        ),
    }
    if record.exc_info:
        payload["exception"] = "".join(traceback.format_exception(*record.exc_info)).rstrip("\n")
    if sanitized_data is not None:
        payload["data"] = sanitized_data
    if isinstance(record_json_fields, Mapping):
        for key, value in _sanitize_for_json(record_json_fields).items():
            payload.setdefault(key, value)
    return payload


class ExtrasFormatter(logging.Formatter):
    """Append structured ``data`` payloads when present.

    Emits one JSON object per line when ``json_lines`` is set, or when it is
    left unset and the process runs under Cloud Run or Kubernetes.
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        *,
        json_lines: bool | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._json_lines = json_lines

    def format(self, record: logging.LogRecord) -> str:
        json_lines = self._json_lines if self._json_lines is not None else _running_in_managed_runtime()
        if json_lines:
            return _dumps(_structured_payload(record))

        formatted = super().format(record)
        record_data = record.__dict__.get("data")
        if not record_data:
            return formatted
        return f"{formatted} | data={_dumps(_sanitize_for_json(record_data))}"


class OtelContextLogFilter(logging.Filter):
    """Inject OpenTelemetry trace ids and baggage into ``json_fields``."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - thin wrapper
        record_dict = record.__dict__
        json_fields = record_dict.get("json_fields")
        json_fields_map: dict[str, Any] = dict(json_fields) if isinstance(json_fields, Mapping) else {}

        otel: dict[str, Any] = {}
        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            otel["trace_id"] = f"{span_context.trace_id:032x}"
            otel["span_id"] = f"{span_context.span_id:016x}"

        baggage_values = baggage.get_all()
        if baggage_values:
            otel["baggage"] = {key: str(value) for key, value in baggage_values.items()}

        if otel:
            json_fields_map["otel"] = otel
            record_dict["json_fields"] = json_fields_map
        return True


def build_log_config(
    *,
    root_level_env: str,
    root_default: str,
    extra_loggers: Mapping[str, dict[str, Any]] | None = None,
    json_lines: bool | None = None,
) -> dict[str, Any]:
    """Return a dictConfig-compatible logging configuration."""
    loggers: dict[str, dict[str, Any]] = {
        "uvicorn": _third_party("UVICORN_LOG_LEVEL", "INFO"),
        "uvicorn.error": _third_party("UVICORN_LOG_LEVEL", "INFO"),
        "uvicorn.access": _third_party("UVICORN_ACCESS_LOG_LEVEL", "WARNING"),
        "httpx": _third_party("HTTPX_LOG_LEVEL", "WARNING"),
        "httpcore": _third_party("HTTPX_LOG_LEVEL", "WARNING"),
        "sqlalchemy.engine": _third_party("SQLALCHEMY_LOG_LEVEL", "WARNING"),
    }
    if extra_loggers:
        loggers.update(extra_loggers)
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {
                "()": ExtrasFormatter,
                "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S",
                "json_lines": json_lines,
            }
        },
        "filters": {"otel_context": {"()": OtelContextLogFilter}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "console",
                "stream": "ext://sys.stdout",
                "filters": ["otel_context"],
            }
        },
        "root": {"level": _level(root_level_env, root_default), "handlers": ["console"]},
        "loggers": loggers,
    }


def _third_party(env_var: str, default: str) -> dict[str, Any]:
    return {"level": _level(env_var, default), "handlers": ["console"], "propagate": False}


def _sanitize_for_json(value: Any, depth: int = 8, max_items: int = 100) -> Any:
    """Copy ``value`` into JSON types; amounts keep their exact decimal text."""
    if depth <= 0:
        return "<depth_exceeded>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, str):
        return value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        # signed transactions are never logged verbatim
        return f"<bytes len={len(value)}>"
    if is_dataclass(value) and not isinstance(value, type):
        return _sanitize_for_json(asdict(value), depth - 1, max_items)
    if isinstance(value, Mapping):
        items = list(value.items())
        result = {str(key): _sanitize_for_json(item, depth - 1, max_items) for key, item in items[:max_items]}
        if len(items) > max_items:
            result["<truncated>"] = f"...{len(items) - max_items} more"
        return result
    if isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
        out = [_sanitize_for_json(item, depth - 1, max_items) for item in items[:max_items]]
        if len(items) > max_items:
            out.append(f"... {len(items) - max_items} more")
        return out
    return str(value)


def configure_logging(
    *,
    root_level_env: str = "LOG_LEVEL",
    root_default: str = "INFO",
    extra_loggers: Mapping[str, dict[str, Any]] | None = None,
    json_lines: bool | None = None,
) -> None:
    """Apply the service logging config."""
    config = build_log_config(
        root_level_env=root_level_env,
        root_default=root_default,
        extra_loggers=extra_loggers,
        json_lines=json_lines,
    )
    dictConfig(config)
    logging.getLogger("streamflow.runtime").debug(
        "configured logging",
        extra={"data": {"root_level": config["root"]["level"], "json_lines": json_lines}},
    )


__all__ = ["ExtrasFormatter", "OtelContextLogFilter", "build_log_config", "configure_logging"]
