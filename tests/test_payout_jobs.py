"""Tests for the monthly payout job and its scheduler."""

import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.jobs import payout_jobs
from app.jobs.scheduler import get_job_status, run_payout_job, scheduler, shutdown_scheduler, start_scheduler
from app.services.payout_service import (
    MESSAGE_ALREADY_EXISTS,
    MESSAGE_CREATED,
    CreatorPayoutResult,
    PayoutPeriod,
)


def fake_session():
    @asynccontextmanager
    async def _session():
        yield MagicMock()
    return _session


def generator_returning(results):
    generator = MagicMock()
    generator.run = AsyncMock(return_value=results)
    return generator


# ===================================================================
# run_monthly_payouts
# ===================================================================

class TestRunMonthlyPayouts:

    @pytest.mark.asyncio
    async def test_generates_previous_month(self):
        results = [
            CreatorPayoutResult(uuid.uuid4(), "Alice", Decimal("45.00"), "GBP", message=MESSAGE_CREATED),
            CreatorPayoutResult(uuid.uuid4(), "Bob", Decimal("30.00"), "GBP", message=MESSAGE_ALREADY_EXISTS),
            CreatorPayoutResult(uuid.uuid4(), "Dan", success=False, error="boom"),
        ]
        generator = generator_returning(results)

        with patch.object(payout_jobs, "get_db_session", fake_session()), \
                patch.object(payout_jobs, "PayoutBatchGenerator", return_value=generator):
            summary = await payout_jobs.run_monthly_payouts(today=date(2026, 1, 1))

        generator.run.assert_awaited_once_with(PayoutPeriod.for_month(2025, 12), preview=False)
        assert summary["period_start"] == "2025-12-01"
        assert summary["period_end"] == "2025-12-31"
        assert summary["creators"] == 3
        assert summary["created"] == 1
        assert summary["failed"] == 1

    @pytest.mark.asyncio
    async def test_job_wrapper_logs_failures(self, caplog):
        failing = AsyncMock(side_effect=RuntimeError("database down"))

        with patch.object(payout_jobs, "run_monthly_payouts", failing):
            await run_payout_job()

        failing.assert_awaited_once()
        assert "database down" in caplog.text


# ===================================================================
# Scheduler
# ===================================================================

class TestScheduler:

    @pytest.mark.asyncio
    async def test_registers_monthly_job(self):
        start_scheduler()
        try:
            jobs = get_job_status()
            assert [job["id"] for job in jobs] == ["monthly_payouts"]
            assert "cron" in jobs[0]["trigger"]
        finally:
            shutdown_scheduler()
            # AsyncIOScheduler runs shutdown as a callback on the event loop
            for _ in range(10):
                if not scheduler.running:
                    break
                await asyncio.sleep(0)
            scheduler.remove_all_jobs()

        assert not scheduler.running
