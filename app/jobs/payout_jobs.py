"""
Payout Jobs

Background job for the monthly payout batch:
- Generates payouts for the previous calendar month
- Skips creators already paid for that month
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict

from app.config import settings
from app.database import get_db_session
from app.services.payout_service import MESSAGE_CREATED, PayoutBatchGenerator, PayoutPeriod

logger = logging.getLogger(__name__)


async def run_monthly_payouts(today: date = None) -> Dict[str, Any]:
    """
    Generate payouts for the month before `today`.

    Runs on the configured day of every month. Re-running it for the same
    month creates nothing new.
    """
    period = PayoutPeriod.previous_month(today)
    logger.info(f"Starting monthly payouts for {period.start}..{period.end}")
    start_time = datetime.now(timezone.utc)

    async with get_db_session() as session:
        generator = PayoutBatchGenerator(session, settings)
        results = await generator.run(period, preview=False)

    summary = {
        "period_start": period.start.isoformat(),
        "period_end": period.end.isoformat(),
        "creators": len(results),
        "created": sum(1 for r in results if r.message == MESSAGE_CREATED),
        "failed": sum(1 for r in results if not r.success),
        "duration_seconds": (datetime.now(timezone.utc) - start_time).total_seconds(),
    }
    logger.info(
        f"Monthly payouts completed: {summary['created']} created, {summary['failed']} failed "
        f"of {summary['creators']} creators in {summary['duration_seconds']:.1f}s"
    )
    return summary
