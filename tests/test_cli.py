"""Tests for the morning letter CLI."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from click.testing import CliRunner

from morning_letter.core.errors import AIUnavailableError, DeliveryError
from morning_letter.core.schedule import TickReport
from morning_letter.models.content import (
    AIDraft,
    CategoryResult,
    DispatchResult,
    DueDispatchReport,
    FetchReport,
)
from morning_letter.newsletter_bot import cli


def run(args, services):
    runner = CliRunner()
    with patch("morning_letter.newsletter_bot.build_services", return_value=services):
        return runner.invoke(cli, args)


def test_cli_group_exists():
    """Test that the CLI group is properly defined."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Morning letter CLI." in result.output
    for command in ("fetch-news", "send-due", "tick", "draft", "send", "serve"):
        assert command in result.output


def test_fetch_news_reports_results():
    services = MagicMock()
    services.ingestor.run = AsyncMock(
        return_value=FetchReport(
            total_fetched=3,
            errors=["trend: HTTP 500"],
            results=[
                CategoryResult(category="news", fetched=3),
                CategoryResult(category="trend", error="HTTP 500"),
            ],
        )
    )

    result = run(["fetch-news", "--category", "news", "--limit", "5"], services)

    assert result.exit_code == 0
    assert "Fetched 3 new items" in result.output
    assert "trend: ⚠️  HTTP 500" in result.output
    services.ingestor.run.assert_awaited_once_with(category="news", limit=5)


def test_send_due_exits_nonzero_on_errors():
    services = MagicMock()
    services.dispatcher.dispatch_due = AsyncMock(
        return_value=DueDispatchReport(sent=1, errors=["n2: Stibee delivery failed"])
    )

    result = run(["send-due"], services)

    assert result.exit_code == 1
    assert "Sent 1 letters" in result.output


def test_tick_parses_at_option():
    services = MagicMock()
    report = TickReport(
        tick=datetime(2025, 1, 6, 21, 0, tzinfo=timezone.utc), ran=["dispatch_due"]
    )

    with patch(
        "morning_letter.newsletter_bot.run_tick", AsyncMock(return_value=report)
    ) as tick:
        result = run(["tick", "--at", "2025-01-06T21:00:00Z"], services)

    assert result.exit_code == 0
    tick_time = tick.await_args.args[1]
    assert (tick_time.hour, tick_time.utcoffset().total_seconds()) == (21, 0)
    assert '"dispatch_due"' in result.output


def test_tick_rejects_bad_time():
    result = run(["tick", "--at", "yesterday"], MagicMock())
    assert result.exit_code == 1


def test_draft_prints_and_saves():
    services = MagicMock()
    services.drafter.generate_letter = AsyncMock(
        return_value=AIDraft(title="T", body="<p>B</p>", provider="gemini")
    )
    services.newsletters.create.return_value = MagicMock(id="n1")

    result = run(["draft", "--title", "A", "--title", "B", "--save"], services)

    assert result.exit_code == 0
    assert "<p>B</p>" in result.output
    assert "Saved as draft n1" in result.output
    services.drafter.generate_letter.assert_awaited_once_with(["A", "B"], None)
    services.newsletters.create.assert_called_once_with("T", "<p>B</p>")


def test_draft_without_ai_fails():
    services = MagicMock()
    services.drafter.generate_letter = AsyncMock(side_effect=AIUnavailableError())

    result = run(["draft"], services)

    assert result.exit_code == 1


def test_send_success_and_failure():
    services = MagicMock()
    services.dispatcher.send = AsyncMock(
        return_value=DispatchResult(
            newsletter_id="n1", mode="broadcast", success=True, delivery_id="e1"
        )
    )
    result = run(["send", "n1"], services)
    assert result.exit_code == 0
    assert "Stibee email e1" in result.output

    services.dispatcher.send = AsyncMock(side_effect=DeliveryError("Stibee down"))
    result = run(["send", "n1"], services)
    assert result.exit_code == 1


def test_send_lists_failed_recipients():
    services = MagicMock()
    services.dispatcher.send = AsyncMock(
        side_effect=DeliveryError(
            "Stibee delivery failed: 1 recipients failed",
            {"sent_count": 2, "failed_emails": ["b@example.com"]},
        )
    )

    result = run(["send", "n1"], services)

    assert result.exit_code == 1
    assert "Delivered to 2 subscribers" in result.output
    assert "Failed: b@example.com" in result.output


def test_send_due_lists_skipped_and_failed_recipients():
    services = MagicMock()
    services.dispatcher.dispatch_due = AsyncMock(
        return_value=DueDispatchReport(
            errors=["n1: Stibee delivery failed: 1 recipients failed"],
            skipped=["n2"],
            results=[
                DispatchResult(
                    newsletter_id="n1",
                    mode="personalized",
                    success=False,
                    sent_count=2,
                    failed_emails=["b@example.com"],
                )
            ],
        )
    )

    result = run(["send-due"], services)

    assert result.exit_code == 1
    assert "Skipped n2" in result.output
    assert "n1: failed for b@example.com" in result.output
