from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

AREA_LOGS = {
    "ipsm.stock": "stock.log",
    "ipsm.purchases": "purchases.log",
    "ipsm.sales": "sales.log",
}


def split_event(message: str) -> tuple[str, dict[str, str]]:
    """'sale_created sale_id=1 code=INV-6701-0001' -> ('sale_created', {'sale_id': '1', ...})."""
    event, _, rest = message.partition(" ")
    context = {}
    for part in rest.split():
        key, sep, value = part.partition("=")
        if sep and key:
            context[key] = value
    return event, context


class JsonFormatter(logging.Formatter):
    """One JSON object per line; `event` and `context` come from the `event key=value` message style."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        event, context = split_event(message)
        payload = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "event": event,
            "message": message,
        }
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _handler(path: Path, level: int) -> RotatingFileHandler:
    fh = RotatingFileHandler(path, maxBytes=2_000_000, backupCount=5, encoding="utf-8")
    fh.setFormatter(JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    fh.setLevel(level)
    return fh


def setup_logging(logs_dir: Path, level: int = logging.INFO) -> None:
    logs_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    if root.handlers:
        return

    root.addHandler(_handler(logs_dir / "app.log", level))
    root.addHandler(_handler(logs_dir / "errors.log", logging.ERROR))

    for name, filename in AREA_LOGS.items():
        area = logging.getLogger(name)
        area.addHandler(_handler(logs_dir / filename, logging.INFO))
        area.setLevel(logging.INFO)
