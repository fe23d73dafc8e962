"""
app/main.py

FastAPI application factory for the neighborhood context service.

Startup fails fast on configuration problems, an unreachable database or
missing tables; the batch job executor poller only runs while serving and
when ``BATCH_JOB_EXECUTOR_ENABLED`` is on.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import DEFAULT_CATEGORY_WEIGHTS, get_batch_job_settings, parse_weight_overrides

logger = logging.getLogger(__name__)


def _validate_env() -> None:
    """
    Collect every configuration problem and raise them together.
    """

    from db.config import resolve_database_url

    problems: list[str] = []

    try:
        resolve_database_url()
    except RuntimeError as exc:
        problems.append(str(exc))

    weights_raw = os.getenv("CONTEXT_SCORE_WEIGHTS")
    if weights_raw is not None:
        if not weights_raw.strip():
            problems.append("CONTEXT_SCORE_WEIGHTS is set but empty; unset it to use the defaults.")
        else:
            unknown = set(parse_weight_overrides(weights_raw)) - set(DEFAULT_CATEGORY_WEIGHTS)
            if unknown:
                problems.append(
                    "CONTEXT_SCORE_WEIGHTS names unknown categories: " + ", ".join(sorted(unknown))
                )

    if problems:
        raise RuntimeError(
            "Startup configuration invalid:\n" + "\n".join(f"  - {problem}" for problem in problems)
        )


def _configure_logging() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _verify_database() -> None:
    """
    Ping the job/neighborhood store and confirm every mapped table exists.

    Migrations are never applied here; run ``alembic upgrade head`` first.
    """

    from sqlalchemy import inspect, text

    import db.models  # noqa: F401 registers BatchJobRecord and Neighborhood
    from db.base import Base
    from db.session import get_engine

    try:
        with get_engine().connect() as connection:
            connection.execute(text("SELECT 1"))
            present = set(inspect(connection).get_table_names())
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc

    missing = sorted(set(Base.metadata.tables) - present)
    if missing:
        logger.critical("Missing tables=%s; run 'alembic upgrade head' and restart.", ",".join(missing))
        raise RuntimeError(f"Database schema is missing tables: {', '.join(missing)}.")


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    _verify_database()
    logger.info("Database ready")

    if not get_batch_job_settings().executor_enabled:
        logger.info("Batch job executor disabled")
        yield
        return

    from app.scheduler.jobs import build_scheduler, shutdown_scheduler

    scheduler = build_scheduler()
    scheduler.start()
    logger.info("Batch job executor polling started")
    try:
        yield
    finally:
        shutdown_scheduler(scheduler)
        logger.info("Batch job executor polling stopped")


def create_app() -> FastAPI:
    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Neighborhood Context API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import batch_jobs_router, context_report_router

    application.include_router(context_report_router)
    application.include_router(batch_jobs_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
