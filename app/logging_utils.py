"""
app/logging_utils.py

Structured JSON log lines for batch job lifecycle events.

Each line carries an ``event`` name plus flat fields; enum members are
logged by value and ``None`` fields are dropped.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any


def _field(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    if not logger.isEnabledFor(level):
        return
    payload = {"event": event}
    payload.update({key: _field(value) for key, value in fields.items() if value is not None})
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))


def log_job_event(
    logger: logging.Logger,
    level: int,
    event: str,
    job: Any,
    **fields: Any,
) -> None:
    """
    Emit a lifecycle event tagged with the job's id, type, target and status.
    """

    log_event(
        logger,
        level,
        event,
        job_id=job.id,
        job_type=job.job_type,
        target=job.target,
        status=job.status,
        **fields,
    )
