"""
Job Scheduler
=============

Runs every periodic sweep of the engine as a background asyncio task,
each on its own interval:

  location search          every 60 s
  new case sweep           every 300 s
  bid selection reminders  every 3600 s
  low points warnings      every 3600 s

Usage (integrated into an application lifecycle)::

    from casematch.services.reminderScheduler import start_scheduler, stop_scheduler

    async def startup():
        await start_scheduler()

    async def shutdown():
        await stop_scheduler()

Each loop runs its job once immediately and then sleeps for its interval.
A failing run is logged and the loop carries on; the next tick retries.
There is no cross-process lock, so run one scheduler per deployment.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from casematch.core.config import settings
from casematch.jobs.caseReminders import (
    run_bid_selection_reminders,
    run_new_case_notifications,
    run_points_low_warnings,
)
from casematch.jobs.locationSearch import run_location_search

logger = logging.getLogger(__name__)

JobFn = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class ScheduledJob:
    name: str
    run: JobFn
    interval_seconds: int


def default_jobs() -> list[ScheduledJob]:
    return [
        ScheduledJob(
            "location_search",
            run_location_search,
            settings.location_search_interval_seconds,
        ),
        ScheduledJob(
            "new_case_sweep",
            run_new_case_notifications,
            settings.new_case_sweep_interval_seconds,
        ),
        ScheduledJob(
            "bid_selection_reminders",
            run_bid_selection_reminders,
            settings.bid_reminder_interval_seconds,
        ),
        ScheduledJob(
            "points_low_warnings",
            run_points_low_warnings,
            settings.points_warning_interval_seconds,
        ),
    ]


# Internal state
_tasks: dict[str, asyncio.Task] = {}
_running: bool = False


# ---------------------------------------------------------------------------
# Core logic
# ---------------------------------------------------------------------------

async def _run_job(
    job: ScheduledJob,
    session_factory: Optional[async_sessionmaker[AsyncSession]],
) -> Any:
    try:
        return await job.run(session_factory)
    except Exception:
        logger.exception("Scheduled job %s failed", job.name)
        return None


async def _job_loop(
    job: ScheduledJob,
    session_factory: Optional[async_sessionmaker[AsyncSession]],
) -> None:
    logger.info("Job %s scheduled (interval=%ds)", job.name, job.interval_seconds)
    while _running:
        await _run_job(job, session_factory)
        await asyncio.sleep(job.interval_seconds)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def run_once(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    jobs: Optional[list[ScheduledJob]] = None,
) -> dict[str, Any]:
    """Run every job once, sequentially, and return their results by name."""
    results: dict[str, Any] = {}
    for job in jobs or default_jobs():
        results[job.name] = await _run_job(job, session_factory)
    return results


async def start_scheduler(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    jobs: Optional[list[ScheduledJob]] = None,
) -> None:
    """Start one background task per scheduled job."""
    global _running

    if _tasks:
        logger.warning("Job scheduler is already running")
        return

    _running = True
    for job in jobs or default_jobs():
        _tasks[job.name] = asyncio.create_task(
            _job_loop(job, session_factory), name=f"casematch:{job.name}"
        )
    logger.info("Job scheduler started with %d jobs", len(_tasks))


async def stop_scheduler() -> None:
    """Cancel every background job task and wait for it to finish."""
    global _running

    _running = False

    if not _tasks:
        return

    tasks = list(_tasks.values())
    _tasks.clear()
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
    logger.info("Job scheduler stopped")


def is_running() -> bool:
    return bool(_tasks)
