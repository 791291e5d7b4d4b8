"""Background job scheduler.

Runs inside the API process; started and stopped by the app lifespan.
"""

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from bazaar.logging_config import get_logger
from bazaar.settings import settings

logger = get_logger(__name__)

job_defaults = {
    "coalesce": True,  # Combine missed runs into one
    "max_instances": 1,
    "misfire_grace_time": 60,
}

scheduler = AsyncIOScheduler(
    jobstores={"default": MemoryJobStore()},
    executors={"default": AsyncIOExecutor()},
    job_defaults=job_defaults,
    timezone="UTC",
)


async def sweep_expired_otps() -> int:
    """Delete pending signups whose OTP has expired."""
    from bazaar.signup.otp import OtpService

    try:
        deleted = OtpService().sweep_expired()
    except Exception as e:
        logger.error("otp_sweep_failed", error=str(e))
        return 0

    logger.debug("otp_sweep_completed", deleted=deleted)
    return deleted


def start_scheduler() -> None:
    """Register jobs and start the scheduler."""
    if scheduler.running:
        return

    scheduler.add_job(
        sweep_expired_otps,
        "interval",
        minutes=settings.otp_sweep_interval_minutes,
        id="sweep_expired_otps",
        name="Sweep expired OTPs",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("scheduler_started", jobs=[job.id for job in scheduler.get_jobs()])


def shutdown_scheduler() -> None:
    """Stop the scheduler without waiting for running jobs."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")

