"""
tests/conftest.py

Shared fixtures: in-memory SQLite store and deterministic clocks.
"""

from __future__ import annotations

import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BATCH_JOB_EXECUTOR_ENABLED", "false")

import db.models  # noqa: E402,F401 registers models on Base.metadata
from app.domain.cancellation import CancellationToken  # noqa: E402
from db.base import Base  # noqa: E402
from db.session import build_session_factory  # noqa: E402
from tests.fakes import SteppingClock  # noqa: E402


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture()
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture()
def ctx() -> CancellationToken:
    return CancellationToken.none()
