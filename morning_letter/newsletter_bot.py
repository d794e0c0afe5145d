"""Command line interface for the morning letter service."""

import asyncio
import json
import logging
import sys
from datetime import datetime

import click

from .core.errors import AppError, DeliveryError
from .core.schedule import run_tick
from .core.services import build_services
from .models.settings import Settings

logger = logging.getLogger(__name__)


def _services(ctx: click.Context):
    settings = Settings(debug=ctx.obj.get("debug", False))
    return build_services(settings)


def _fail(message: str) -> None:
    click.echo(f"❌ {message}", err=True)
    sys.exit(1)


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug mode")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """Morning letter CLI.

    Collects startup news from RSS feeds, drafts letters with AI and
    delivers scheduled letters through Stibee.
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    # Set up logging before any other logging calls
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(level=log_level, force=True)
    logger.debug("Debug mode enabled")


@cli.command("fetch-news")
@click.option("--category", default=None, help="Only fetch this feed category")
@click.option("--limit", type=int, default=None, help="Maximum items per feed")
@click.pass_context
def fetch_news(ctx: click.Context, category: str, limit: int) -> None:
    """Fetch the RSS feeds and store new items."""
    services = _services(ctx)
    try:
        report = asyncio.run(services.ingestor.run(category=category, limit=limit))
    except AppError as e:
        _fail(e.message)

    for result in report.results:
        status = f"⚠️  {result.error}" if result.error else f"{result.fetched} new"
        click.echo(f"  {result.category}: {status}")
    click.echo(f"✅ Fetched {report.total_fetched} new items")
    if report.errors:
        click.echo(f"⚠️  {len(report.errors)} feeds failed")


@cli.command("send-due")
@click.pass_context
def send_due(ctx: click.Context) -> None:
    """Send every scheduled letter whose time has come."""
    services = _services(ctx)
    report = asyncio.run(services.dispatcher.dispatch_due())
    click.echo(f"✅ Sent {report.sent} letters")
    for newsletter_id in report.skipped:
        click.echo(f"⏭️  Skipped {newsletter_id}: no longer due")
    for error in report.errors:
        click.echo(f"❌ {error}")
    for result in report.results:
        for email in result.failed_emails:
            click.echo(f"   - {result.newsletter_id}: failed for {email}")
    if report.errors:
        sys.exit(1)


@cli.command()
@click.option(
    "--at",
    "at",
    default=None,
    help="Evaluate the schedule at this ISO 8601 time instead of now",
)
@click.pass_context
def tick(ctx: click.Context, at: str) -> None:
    """Run one scheduler tick."""
    tick_time = None
    if at:
        try:
            tick_time = datetime.fromisoformat(at.replace("Z", "+00:00"))
        except ValueError:
            _fail(f"Invalid --at time: {at}")

    services = _services(ctx)
    report = asyncio.run(run_tick(services, tick_time))
    _echo_json(report.to_dict())
    if report.errors:
        sys.exit(1)


@cli.command()
@click.option(
    "--title",
    "titles",
    multiple=True,
    help="News title to write about (repeatable); defaults to recent items",
)
@click.option("--prompt", default=None, help="Extra instruction for the writer")
@click.option("--save", is_flag=True, help="Store the draft as a new letter")
@click.pass_context
def draft(ctx: click.Context, titles: tuple, prompt: str, save: bool) -> None:
    """Draft a letter with the AI provider chain."""
    services = _services(ctx)
    try:
        result = asyncio.run(services.drafter.generate_letter(list(titles), prompt))
    except AppError as e:
        _fail(e.message)

    click.echo(f"📝 {result.title}  (by {result.provider})\n")
    click.echo(result.body)
    if save:
        newsletter = services.newsletters.create(result.title, result.body)
        click.echo(f"\n✅ Saved as draft {newsletter.id}")


@cli.command()
@click.argument("newsletter_id")
@click.pass_context
def send(ctx: click.Context, newsletter_id: str) -> None:
    """Send one letter now."""
    services = _services(ctx)
    try:
        result = asyncio.run(services.dispatcher.send(newsletter_id))
    except DeliveryError as e:
        if e.details.get("sent_count") is not None:
            click.echo(f"⚠️  Delivered to {e.details['sent_count']} subscribers")
        for email in e.details.get("failed_emails") or []:
            click.echo(f"   - Failed: {email}")
        _fail(e.message)
    except AppError as e:
        _fail(e.message)

    if result.delivery_id:
        click.echo(f"✅ Sent {newsletter_id} (Stibee email {result.delivery_id})")
    else:
        click.echo(f"✅ Sent {newsletter_id} to {result.sent_count} subscribers")


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check configuration and feed connectivity."""
    services = _services(ctx)
    settings = services.settings

    click.echo("🔍 Checking system health...")
    feeds = asyncio.run(services.ingestor.fetcher.test_feeds())
    for category, ok in feeds.items():
        click.echo(f"   - Feed {category}: {'✅' if ok else '❌'}")

    for provider, configured in settings.configured_ai_providers.items():
        click.echo(f"   - AI {provider}: {'✅' if configured else '❌'}")
    click.echo(f"   - Stibee: {'✅' if settings.stibee_configured else '❌'}")
    click.echo(f"   - Delivery mode: {settings.delivery_mode}")


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", type=int, default=8000, help="Bind port")
def serve(host: str, port: int) -> None:
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("web.app:app", host=host, port=port)


if __name__ == "__main__":
    cli()
