from __future__ import annotations

import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional


DEFAULT_EXCLUDE = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
}


def _extract_extras(record: logging.LogRecord) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for k, v in record.__dict__.items():
        if k in DEFAULT_EXCLUDE:
            continue
        # Skip internal attributes
        if k.startswith("_"):
            continue
        data[k] = v
    return data


class JsonFormatter(logging.Formatter):
    """Structured JSON formatter with extra fields under 'extra'."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
            "ts": record.created,
        }
        extras = _extract_extras(record)
        if extras:
            payload["extra"] = extras
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


class HumanFormatter(logging.Formatter):
    """Console-friendly formatter with concise summaries for key messages."""

    def format(self, record: logging.LogRecord) -> str:
        ts = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(record.created))
        logger_name = record.name
        msg = record.getMessage()
        extras = _extract_extras(record)
        summary = self._summarize(msg, extras)
        if summary:
            line = f"[{ts}] ({logger_name}) {msg} | {summary}"
        else:
            # Generic: flatten extras as k=v pairs (short)
            parts = []
            for k, v in extras.items():
                try:
                    text = json.dumps(v, ensure_ascii=False)
                except (TypeError, ValueError):
                    text = str(v)
                if len(text) > 120:
                    text = text[:117] + "..."
                parts.append(f"{k}={text}")
            tail = " ".join(parts)
            line = f"[{ts}] ({logger_name}) {msg}{(' | ' + tail) if tail else ''}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line

    def _summarize(self, msg: str, extras: Dict[str, Any]) -> str:
        if msg == "snapshot_loaded":
            markets = extras.get("markets") or []
            collaterals = extras.get("collaterals") or []
            return f"markets={len(markets)} collaterals={len(collaterals)}"

        if msg in ("tx_submitted", "tx_failed"):
            op = extras.get("operation") or "?"
            sig = extras.get("sig")
            error = extras.get("error")
            tail = f" sig={sig}" if sig else ""
            if error:
                tail += f" error={error}"
            return f"op={op}{tail}"

        if msg == "request_failed":
            return f"{extras.get('status')} {extras.get('path')} {extras.get('error')}"

        if msg == "rpc_error":
            return f"method={extras.get('method')} error={extras.get('error')}"

        if msg == "gateway_start":
            return f"cluster={extras.get('cluster')} listen={extras.get('host')}:{extras.get('port')}"

        return ""


def setup_logging(level: str = "INFO", *, log_dir: Optional[str] = "logs") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())

    # Console: human-readable
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(HumanFormatter())

    root.handlers.clear()
    root.addHandler(console)

    # File: structured JSON lines
    if log_dir:
        logs_dir = Path(log_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(logs_dir / "app.jsonl", encoding="utf-8")
        file_handler.setFormatter(JsonFormatter())
        root.addHandler(file_handler)

    # keep noisy libs quieter by default
    for noisy in ("asyncio", "httpx", "httpcore", "solana"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str, *, level: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger(name)
    if level:
        logger.setLevel(level.upper())
    return logger


__all__ = ["setup_logging", "get_logger", "JsonFormatter", "HumanFormatter"]
