"""
tests/test_scheduler.py

Scheduler wiring for the batch job executor poll.

Coverage
--------
- Each scheduler gets its own shutdown token
- Shutting one scheduler down leaves a later one polling
- A tick with a cancelled token does nothing
- A failing tick is logged, not raised
"""

from __future__ import annotations

from app.domain.cancellation import CancellationToken
from app.scheduler.jobs import EXECUTOR_JOB_ID, build_scheduler, run_executor_tick, shutdown_scheduler


class RecordingExecutor:
    def __init__(self, fail: bool = False) -> None:
        self.ticks = 0
        self._fail = fail

    def reclaim_stale_jobs(self) -> int:
        if self._fail:
            raise RuntimeError("database went away")
        return 0

    def process_next_job(self, ctx):
        self.ticks += 1
        return None


def _token(scheduler) -> CancellationToken:
    return scheduler.get_job(EXECUTOR_JOB_ID).kwargs["ctx"]


class TestSchedulerLifecycle:
    def test_second_scheduler_polls_after_first_shut_down(self) -> None:
        first = build_scheduler()
        shutdown_scheduler(first)
        second = build_scheduler()

        assert _token(first).cancelled
        assert not _token(second).cancelled

        executor = RecordingExecutor()
        run_executor_tick(executor, _token(first))
        run_executor_tick(executor, _token(second))
        assert executor.ticks == 1

    def test_cancelled_token_skips_tick(self) -> None:
        token = CancellationToken()
        token.cancel()
        executor = RecordingExecutor()

        run_executor_tick(executor, token)

        assert executor.ticks == 0

    def test_failing_tick_is_swallowed(self, caplog) -> None:
        run_executor_tick(RecordingExecutor(fail=True), CancellationToken())
        assert "batch executor tick failed" in caplog.text
