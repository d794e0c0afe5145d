"""Tests for the Celery tick task."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from scheduler.scheduler import app, scheduler_tick_task
from morning_letter.core.schedule import TickReport


def test_beat_schedule_runs_hourly_tick():
    entry = app.conf.beat_schedule["morning-letter-tick"]
    assert entry["task"] == "scheduler.scheduler.scheduler_tick_task"
    assert entry["schedule"].minute == {0}


def test_tick_task_runs_schedule():
    tick = datetime(2025, 1, 6, 21, 0, tzinfo=timezone.utc)
    report = TickReport(tick=tick, ran=["fetch_news", "dispatch_due"])

    with patch("scheduler.scheduler.build_services", return_value=MagicMock()), patch(
        "scheduler.scheduler.run_tick", AsyncMock(return_value=report)
    ) as run_tick:
        result = scheduler_tick_task("2025-01-06T21:00:00+00:00")

    assert result["status"] == "success"
    assert result["ran"] == ["fetch_news", "dispatch_due"]
    assert run_tick.await_args.args[1] == tick


def test_tick_task_reports_job_errors():
    report = TickReport(
        tick=datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc),
        ran=["dispatch_due"],
        errors={"dispatch_due": "boom"},
    )
    with patch("scheduler.scheduler.build_services", return_value=MagicMock()), patch(
        "scheduler.scheduler.run_tick", AsyncMock(return_value=report)
    ):
        result = scheduler_tick_task()

    assert result["status"] == "error"
    assert result["errors"] == {"dispatch_due": "boom"}
