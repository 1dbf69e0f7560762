from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.rate_limiter import RateLimiter

scheduler = AsyncIOScheduler(timezone="UTC")


async def sweep_rate_limit_entries() -> None:
    await RateLimiter.get_instance().sweep()


def register_rate_limit_sweep(*, interval_seconds: int) -> None:
    scheduler.add_job(
        sweep_rate_limit_entries,
        trigger=IntervalTrigger(seconds=interval_seconds),
        id="rate_limit_sweep",
        name="Rate limit sweep",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
