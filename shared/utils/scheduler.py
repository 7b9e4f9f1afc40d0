from apscheduler.schedulers.asyncio import AsyncIOScheduler
import structlog

logger = structlog.get_logger()


def create_scheduler() -> AsyncIOScheduler:
    return AsyncIOScheduler(job_defaults={"coalesce": True, "max_instances": 1})


def start_scheduler(scheduler: AsyncIOScheduler):
    if not scheduler.running:
        scheduler.start()
        logger.info("scheduler_started", jobs=[job.id for job in scheduler.get_jobs()])


def stop_scheduler(scheduler: AsyncIOScheduler):
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")
