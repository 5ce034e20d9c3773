from __future__ import annotations

from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from volunteer_portal import clock
from volunteer_portal.notifications.registry import ConnectionRegistry
from volunteer_portal.sweeps import schedule_sweeps


def start_scheduler(registry: Optional[ConnectionRegistry] = None) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone=clock.civil_zone())
    schedule_sweeps(scheduler, registry)
    scheduler.start()
    return scheduler


def shutdown_scheduler(scheduler: Optional[BackgroundScheduler]) -> None:
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
