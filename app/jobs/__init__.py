"""
Background Jobs Module

Handles scheduled tasks for:
- Monthly creator payout generation
"""

from app.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler
from app.jobs.payout_jobs import run_monthly_payouts

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "run_monthly_payouts",
]
