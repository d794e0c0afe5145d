"""Periodic jobs evaluated on every scheduler tick."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional

from .newsletter import as_utc
from ..models.content import utcnow

logger = logging.getLogger(__name__)

FETCH_NEWS = "fetch_news"
DISPATCH_DUE = "dispatch_due"


@dataclass(frozen=True)
class ScheduledJob:
    """A named action and the UTC hours it runs at; ``None`` means every tick."""

    name: str
    action: str
    hours: Optional[FrozenSet[int]] = None

    def is_due(self, tick: datetime) -> bool:
        return self.hours is None or as_utc(tick).hour in self.hours


@dataclass
class TickReport:
    """What one tick ran and how each job ended."""

    tick: datetime
    ran: List[str] = field(default_factory=list)
    results: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tick": self.tick.isoformat(),
            "ran": self.ran,
            "results": self.results,
            "errors": self.errors,
        }


def default_schedule(settings) -> List[ScheduledJob]:
    """Daily ingestion at ``ingest_hour_utc`` and a due-letter check every tick."""
    return [
        ScheduledJob(FETCH_NEWS, FETCH_NEWS, frozenset({settings.ingest_hour_utc})),
        ScheduledJob(DISPATCH_DUE, DISPATCH_DUE),
    ]


async def _run_action(services, action: str, tick: datetime) -> Any:
    if action == FETCH_NEWS:
        report = await services.ingestor.run()
        return report.model_dump()
    if action == DISPATCH_DUE:
        report = await services.dispatcher.dispatch_due(tick)
        return report.model_dump()
    raise ValueError(f"Unknown scheduled action '{action}'")


async def run_tick(
    services,
    tick: Optional[datetime] = None,
    jobs: Optional[List[ScheduledJob]] = None,
) -> TickReport:
    """Run every job due at ``tick``, one after another.

    A failing job is logged and recorded; later jobs still run.
    """
    tick = as_utc(tick or utcnow())
    jobs = jobs if jobs is not None else default_schedule(services.settings)
    report = TickReport(tick=tick)

    for job in jobs:
        if not job.is_due(tick):
            continue
        logger.info(f"Running scheduled job {job.name} at {tick.isoformat()}")
        report.ran.append(job.name)
        try:
            report.results[job.name] = await _run_action(services, job.action, tick)
        except Exception as e:
            logger.exception(f"Scheduled job {job.name} failed")
            report.errors[job.name] = str(e)

    return report
