import asyncio
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from rentdesk.core.log_config import configure_logging
from rentdesk.core.scheduler_decorators import SCHEDULED_TASKS
from rentdesk.workers import discover_workers

logger = logging.getLogger(__name__)
_scheduler_started = False


def build_scheduler() -> AsyncIOScheduler:
    """Load scheduled tasks and register them; enqueueing happens on fire."""
    discover_workers()
    scheduler = AsyncIOScheduler(timezone="UTC")

    for task in SCHEDULED_TASKS:
        func = task["func"]
        trigger = task["trigger"]
        trigger_args = task["trigger_args"]

        # Dramatiq actor is the .send() method
        job_func = lambda f=func: f.send()
        func_name = getattr(func, "actor_name", None) or getattr(func, "__name__", str(func))

        scheduler.add_job(job_func,
                          trigger=trigger,
                          id=func_name,
                          name=func_name,
                          coalesce=True,
                          misfire_grace_time=600,
                          max_instances=1,
                          replace_existing=True,
                          **trigger_args)
        logger.info(f"Registered job: {func_name} ({trigger}, {trigger_args})")

    return scheduler


async def start_scheduler():
    """Start APScheduler and keep the loop alive until interrupted."""
    global _scheduler_started
    if _scheduler_started:
        logger.warning("Scheduler already running, skipping duplicate start")
        return
    _scheduler_started = True

    scheduler = build_scheduler()
    scheduler.start()
    now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
    for job in scheduler.get_jobs():
        next_run = job.next_run_time.strftime("%Y-%m-%d %H:%M:%S") if job.next_run_time else "-"
        logger.info(f"{job.name} next run at {next_run} | current time {now}")

    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        scheduler.shutdown()
        logger.info("Scheduler stopped")


def main():
    configure_logging()
    try:
        asyncio.run(start_scheduler())
    except (KeyboardInterrupt, SystemExit):
        pass


if __name__ == "__main__":
    main()
