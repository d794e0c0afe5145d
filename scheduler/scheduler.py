"""Hourly scheduler tick for feed ingestion and due letter delivery."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from celery import Celery
from celery.schedules import crontab

from morning_letter.core.schedule import run_tick
from morning_letter.core.services import build_services
from morning_letter.models.settings import Settings

logger = logging.getLogger(__name__)

_settings = Settings()

# Initialize Celery app
app = Celery("morning-letter-scheduler")

# Configure Celery
app.conf.update(
    broker_url=_settings.redis_url,
    result_backend=_settings.redis_url,
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "morning-letter-tick": {
            "task": "scheduler.scheduler.scheduler_tick_task",
            "schedule": crontab(minute=0),  # every hour on the hour
        },
    },
)


@app.task
def scheduler_tick_task(at: Optional[str] = None) -> dict:
    """Celery task running one tick of the job schedule."""
    try:
        tick = datetime.fromisoformat(at) if at else None
        settings = Settings()
        logging.basicConfig(level=settings.log_level.upper())
        services = build_services(settings)

        report = asyncio.run(run_tick(services, tick))
        status = "error" if report.errors else "success"
        logger.info(f"Tick finished ({status}): ran {', '.join(report.ran) or 'nothing'}")
        return {"status": status, **report.to_dict()}

    except Exception as e:
        logger.error(f"Unexpected error in scheduler tick: {e}")
        return {"status": "error", "error": str(e)}


if __name__ == "__main__":
    app.start()
