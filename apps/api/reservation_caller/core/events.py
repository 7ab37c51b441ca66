"""Structured observability events written through stdlib logging."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("reservation_caller.events")


def log_event(event: str, level: int = logging.INFO, **fields: Any) -> None:
    """Emit one JSON line describing an engine event."""

    payload = {"ts": datetime.now(timezone.utc).isoformat(), "event": event}
    payload.update({key: value for key, value in fields.items() if value is not None})
    logger.log(level, json.dumps(payload, default=str), extra={"event": event, "fields": fields})
