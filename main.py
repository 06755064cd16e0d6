#!/usr/bin/env python3
"""
feedlink - Aggregator Link Acquisition
======================================

Command line entry point for setup, one-off resolution and the cron-driven
processing runs.

Usage:
    python main.py --help                    # Show all commands
    python main.py check-config              # Validate configuration
    python main.py init-db                   # Initialize database
    python main.py add-feed URL              # Register an aggregator feed
    python main.py resolve LINK              # Resolve one aggregator link
    python main.py process-feeds             # Process all enabled feeds
    python main.py process-retries           # Re-resolve articles due for retry
    python main.py retry-stats               # Show retry queue state
    python main.py show-logs                 # Show stored log events
    python main.py cleanup-logs --days 30    # Prune stored log events

For cron scheduling:
    */30 * * * * python /path/to/feedlink/main.py process-feeds
    */5  * * * * python /path/to/feedlink/main.py process-retries
"""

import sys
import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from feedlink.config.settings import get_settings
from feedlink.database.schema import DatabaseSchema
from feedlink.database.connection import get_db_manager
from feedlink.database.models import Feed
from feedlink.processing.pipeline import ProcessingPipeline, PipelineResult
from feedlink.recovery.retry_queue import RetryQueue
from feedlink.resolution.link_resolver import LinkResolver
from feedlink.storage.article_repository import ArticleRepository
from feedlink.storage.feed_repository import FeedRepository
from feedlink.storage.log_repository import LogRepository
from feedlink.utils.logging import configure_application_logging
from feedlink.utils.exceptions import FeedLinkError, get_user_friendly_message

console = Console()
logger = logging.getLogger(__name__)


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, debug):
    """feedlink - resolve aggregator links and retry failures."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def _bootstrap(ctx):
    """Load settings, configure logging and open the database."""
    settings = get_settings()
    db_manager = get_db_manager(settings.database.path, settings.database.pool_size)

    configure_application_logging(
        log_level="DEBUG" if ctx.obj.get('debug') else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
        log_repository=LogRepository(db_manager) if settings.logging.database_logging else None,
    )
    return settings, db_manager


@cli.command()
def check_config():
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking feedlink Configuration[/bold blue]")

    try:
        settings = get_settings()
    except FeedLinkError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)

    table = Table(title="Configuration Status")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Details")

    checks = [
        ("Database", _check_database_config),
        ("Logging", _check_logging_config),
        ("Resolver", _check_resolver_config),
        ("Retry Queue", _check_retry_config),
    ]

    all_passed = True
    for name, check_func in checks:
        status, details = check_func(settings)
        table.add_row(name, "✅ Valid" if status else "❌ Invalid", details)
        all_passed = all_passed and status

    console.print(table)

    if all_passed:
        console.print("[bold green]✅ All configuration checks passed![/bold green]")
    else:
        console.print("[bold red]❌ Configuration validation failed[/bold red]")
        sys.exit(1)


@cli.command()
def init_db():
    """Initialize database with schema."""
    console.print("[bold blue]🗄️ Initializing feedlink Database[/bold blue]")

    try:
        settings = get_settings()
        schema = DatabaseSchema(settings.database.path)
        schema.create_tables()

        if not schema.verify_schema():
            console.print("[bold red]❌ Database schema verification failed[/bold red]")
            sys.exit(1)

        console.print("[bold green]✅ Database initialized successfully![/bold green]")

        info = get_db_manager(settings.database.path).get_database_info()

        info_table = Table(title="Database Information")
        info_table.add_column("Property", style="cyan")
        info_table.add_column("Value", style="green")
        info_table.add_row("Database Path", settings.database.path)
        info_table.add_row("Size", f"{info['database_size_mb']:.2f} MB")
        for table_name, count in info['table_counts'].items():
            info_table.add_row(f"Rows in {table_name}", str(count))

        console.print(info_table)

    except FeedLinkError as e:
        console.print(f"[bold red]❌ Database initialization error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.argument('url')
@click.option('--title', help='Feed title or topic')
@click.option('--limit', default=10, show_default=True, help='Items taken per run')
@click.pass_context
def add_feed(ctx, url, title, limit):
    """Register an aggregator RSS feed."""
    settings, db_manager = _bootstrap(ctx)

    try:
        feed_id = FeedRepository(db_manager).create_feed(
            Feed(url=url, title=title, result_limit=limit)
        )
        console.print(f"[bold green]✅ Added feed {feed_id}: {url}[/bold green]")
    except (FeedLinkError, ValueError) as e:
        console.print(f"[bold red]❌ Could not add feed: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.argument('link')
@click.pass_context
def resolve(ctx, link):
    """Resolve a single aggregator link without storing it."""
    settings, _ = _bootstrap(ctx)

    async def run_resolve():
        resolver = LinkResolver.from_settings(settings)
        try:
            return await resolver.resolve(link)
        finally:
            await resolver.close()

    try:
        final_url = asyncio.run(run_resolve())
        console.print(f"[bold green]✅ {final_url}[/bold green]")
    except FeedLinkError as e:
        console.print(f"[bold red]❌ {get_user_friendly_message(e)}[/bold red]")
        console.print(f"[dim]{e}[/dim]")
        sys.exit(1)


@cli.command()
@click.option('--feed-id', type=int, help='Process only the specified feed ID')
@click.pass_context
def process_feeds(ctx, feed_id):
    """Fetch feeds and resolve their new items."""
    settings, db_manager = _bootstrap(ctx)

    async def run_processing() -> PipelineResult:
        pipeline = ProcessingPipeline(db_manager, settings=settings)
        try:
            if feed_id is None:
                return await pipeline.process_enabled_feeds()

            feed = pipeline.feed_repo.get_feed_by_id(feed_id)
            if feed is None:
                console.print(f"[yellow]No feed with ID {feed_id}[/yellow]")
                return PipelineResult()
            return await pipeline.process_feed(feed)
        finally:
            await pipeline.close()

    result = asyncio.run(run_processing())
    _print_result("Feed Processing Results", result)

    if result.feeds_failed:
        sys.exit(1)


@cli.command()
@click.option('--limit', type=int, help='Maximum number of due articles to retry')
@click.pass_context
def process_retries(ctx, limit):
    """Re-resolve articles whose scheduled retry is due."""
    settings, db_manager = _bootstrap(ctx)

    async def run_retries() -> PipelineResult:
        pipeline = ProcessingPipeline(db_manager, settings=settings)
        try:
            return await pipeline.process_due_retries(limit=limit)
        finally:
            await pipeline.close()

    _print_result("Retry Results", asyncio.run(run_retries()))


@cli.command()
@click.pass_context
def retry_stats(ctx):
    """Show how many articles are in each retry state."""
    settings, db_manager = _bootstrap(ctx)

    queue = RetryQueue(ArticleRepository(db_manager), max_retries=settings.retry.max_retries)
    stats = queue.get_statistics()

    table = Table(title="Retry Queue")
    table.add_column("State", style="cyan")
    table.add_column("Articles", style="yellow")
    for state, count in stats['states'].items():
        table.add_row(state, str(count))
    table.add_row("total", str(stats['total']))

    console.print(table)
    due = queue.find_due()
    console.print(f"⏰ Due now: {len(due)} (max retries: {stats['max_retries']})")


@cli.command()
@click.option('--category', help='Only show this event category')
@click.option('--limit', default=20, show_default=True, help='Number of events to show')
@click.pass_context
def show_logs(ctx, category, limit):
    """Show recent log events stored in the database."""
    settings, db_manager = _bootstrap(ctx)

    entries = LogRepository(db_manager).get_recent(category=category, limit=limit)
    if not entries:
        console.print("[yellow]No stored log events[/yellow]")
        return

    table = Table(title="Recent Events")
    table.add_column("Time", style="dim")
    table.add_column("Level")
    table.add_column("Category", style="cyan")
    table.add_column("Message")
    for entry in entries:
        table.add_row(
            entry.created_at.strftime("%Y-%m-%d %H:%M:%S") if entry.created_at else "",
            entry.level,
            entry.category,
            entry.message[:100],
        )
    console.print(table)


@cli.command()
@click.option('--days', default=30, show_default=True, help='Keep events newer than this')
@click.pass_context
def cleanup_logs(ctx, days):
    """Delete stored log events older than the retention window."""
    settings, db_manager = _bootstrap(ctx)

    deleted = db_manager.cleanup_old_logs(days)
    console.print(f"🧹 Deleted {deleted} log events older than {days} days")


def _print_result(title: str, result: PipelineResult) -> None:
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="yellow")

    table.add_row("Feeds processed", str(result.feeds_processed))
    table.add_row("Feeds failed", str(result.feeds_failed))
    table.add_row("Articles created", str(result.articles_created))
    table.add_row("Articles resolved", str(result.articles_resolved))
    table.add_row("Articles skipped", str(result.articles_skipped))
    table.add_row("Retries scheduled", str(result.retries_scheduled))
    table.add_row("Permanent failures", str(result.permanent_failures))

    console.print(table)
    for error in result.errors[:10]:
        console.print(f"[red]• {error[:120]}[/red]")
    console.print(f"⏱️ Processing time: {result.processing_time_seconds:.2f} seconds")


# Helper functions for configuration checks
def _check_database_config(settings) -> tuple[bool, str]:
    try:
        Path(settings.database.path).parent.mkdir(parents=True, exist_ok=True)
        return True, f"Path: {settings.database.path}"
    except OSError as e:
        return False, str(e)


def _check_logging_config(settings) -> tuple[bool, str]:
    try:
        if settings.logging.file_path:
            Path(settings.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
        return True, f"Level: {settings.logging.level.value}, Console: {settings.logging.console_logging}"
    except OSError as e:
        return False, str(e)


def _check_resolver_config(settings) -> tuple[bool, str]:
    resolver = settings.resolver
    hosts = ", ".join(resolver.aggregator_hosts) or "any host"
    return True, (
        f"Timeout: {resolver.request_timeout}s, Redirects: {resolver.max_redirects}, "
        f"Spacing: {resolver.rate_limit_delay}s, Hosts: {hosts}"
    )


def _check_retry_config(settings) -> tuple[bool, str]:
    retry = settings.retry
    return True, (
        f"Max retries: {retry.max_retries}, Base: {retry.backoff_base_seconds}s, "
        f"Jitter: <{retry.jitter_ceiling_seconds}s"
    )


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 feedlink interrupted by user[/yellow]")
        sys.exit(130)
    except FeedLinkError as e:
        console.print(f"\n[bold red]❌ {e}[/bold red]")
        sys.exit(1)
