import asyncio
from datetime import datetime
from typing import Optional

import dramatiq
import structlog

from rentdesk.core.config import ReportSettings
from rentdesk.core.database import scoped_database
from rentdesk.core.log_config import configure_logging
from rentdesk.core.scheduler_decorators import run_cron
from rentdesk.reports.dispatcher import ReportRunResult, send_monthly_summary_report
from rentdesk.services.email_log import EMAIL_LOG_INDEXES
from rentdesk.workers import broker  # noqa: F401  (actors bind to the configured broker)

logger = structlog.get_logger(__name__)

REPORTS_QUEUE = "reports"


@run_cron(ReportSettings.from_env().cron)
@dramatiq.actor(queue_name=REPORTS_QUEUE, max_retries=0)
def monthly_summary_report(reference: Optional[str] = None):
    """Entry point for Dramatiq (sync context). ``reference`` is an ISO date."""
    configure_logging()
    asyncio.run(run_monthly_summary_report(reference))


async def run_monthly_summary_report(reference: Optional[str] = None) -> Optional[ReportRunResult]:
    """
    Runs inside its own event loop on a worker thread. Concurrent messages
    (a manual trigger landing during the cron run) each open their own
    client, so one run closing its connection never affects another.
    """
    reference_dt = datetime.fromisoformat(reference) if reference else None
    async with scoped_database(indexes=EMAIL_LOG_INDEXES) as db:
        result = await send_monthly_summary_report(reference=reference_dt, db=db)
    if result is not None:
        logger.info(
            "Monthly report run finished",
            status=result.status,
            state=result.state.value,
            sent=len(result.sent),
            failed=len(result.failed),
        )
    return result
