"""Command-line interface for Brew Intel."""

import json
import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import click

from brew_intel import __version__
from brew_intel.config import get_config, load_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("brew_intel")


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    help="Path to configuration file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool):
    """Brew Intel - brewery content collection, extraction and deduplication."""
    ctx.ensure_object(dict)

    # Set logging level
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Load configuration
    if config:
        load_config(config)
    else:
        load_config()


@cli.command()
@click.option("--force", is_flag=True, help="Overwrite existing config file")
def init(force: bool):
    """Initialize Brew Intel (create config, database and partitions)."""
    config_path = Path("config.yaml")

    # Create config file if it doesn't exist
    if not config_path.exists() or force:
        example_path = Path("config.example.yaml")
        if example_path.exists():
            import shutil

            shutil.copy(example_path, config_path)
            click.echo(f"Created {config_path} from example")
        else:
            click.echo("Creating default config.yaml")
            config_content = """# Brew Intel Configuration
database:
  path: "data/brew_intel.db"

api_keys:
  anthropic: ""  # Required for LLM extraction

ocr:
  enabled: true
  language: "eng"
"""
            with open(config_path, "w") as f:
                f.write(config_content)
            click.echo(f"Created {config_path}")
    else:
        click.echo(f"{config_path} already exists (use --force to overwrite)")

    from brew_intel.database import PartitionManager
    from brew_intel.database.migrations import migrate

    load_config(config_path)
    result = migrate()

    if result["status"] == "migrated":
        click.echo(f"Database initialized, created tables: {result['created_tables']}")
    else:
        click.echo("Database already up to date")

    created = PartitionManager().ensure_current_partitions()
    if created:
        click.echo(f"Created partitions: {', '.join(created)}")

    click.echo("Initialization complete!")


# Collection command
@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def collect(file: str):
    """Collect raw items from a JSON file and process them.

    FILE holds a list of raw item payloads. An entry of the form
    {"kind": "process-email" | "fetch-rss" | ..., "data": {...}} is queued
    as that job kind instead.
    """
    from brew_intel.database.migrations import migrate
    from brew_intel.pipeline import Pipeline

    migrate()

    with open(file) as f:
        entries = json.load(f)

    if isinstance(entries, dict):
        entries = [entries]

    pipeline = Pipeline()

    for entry in entries:
        kind = entry.get("kind")
        if kind is None:
            pipeline.submit_raw_item(entry)
        elif kind == "process-email":
            pipeline.submit_email(entry.get("data") or {})
        elif kind == "collect-item":
            pipeline.submit_raw_item(entry.get("data") or {})
        else:
            try:
                pipeline.submit_scrape(kind, entry.get("data") or {})
            except ValueError as e:
                click.echo(f"Skipping entry: {e}", err=True)

    click.echo(f"Queued {len(entries)} job(s), processing...")
    pipeline.run_until_idle()

    stats = pipeline.store.stats()
    click.echo(
        f"\nPipeline idle:\n"
        f"  Items: {stats['total']}\n"
        f"  Unique: {stats['unique']}\n"
        f"  Duplicates: {stats['duplicates']}\n"
        f"  Extraction failed: {stats['extraction_failed']}"
    )

    failed = pipeline.dead_letters.store.stats_by_queue()
    if failed:
        click.echo(f"  Dead-lettered jobs: {sum(failed.values())} (see 'brew-intel dlq list')")


# Worker commands
@cli.group()
def worker():
    """Pipeline worker commands."""
    pass


@worker.command("start")
@click.option("--no-scheduler", is_flag=True, help="Run the worker pools without housekeeping jobs")
def worker_start(no_scheduler: bool):
    """Run the worker pools (and the scheduler) in the foreground."""
    import time

    from brew_intel.database.migrations import migrate
    from brew_intel.pipeline import Pipeline

    migrate()
    pipeline = Pipeline()
    pipeline.start()
    click.echo("Workers started")

    if no_scheduler:
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            click.echo("Stopping workers...")
            pipeline.stop(timeout=30)
        return

    from brew_intel.scheduler import start_scheduler

    click.echo("Starting scheduler...")
    start_scheduler(foreground=True, pipeline=pipeline)
    pipeline.stop(timeout=30)


@cli.command()
@click.option(
    "--older-than",
    type=int,
    help="Only recover items created more than this many minutes ago",
)
def recover(older_than: Optional[int]):
    """Re-run extraction or deduplication for stalled items."""
    from brew_intel.database.migrations import migrate
    from brew_intel.pipeline import Pipeline

    migrate()
    pipeline = Pipeline()
    cutoff = None
    if older_than is not None:
        cutoff = datetime.utcnow() - timedelta(minutes=older_than)

    stalled = pipeline.recover_stalled(cutoff)
    click.echo(
        f"Re-queued {len(stalled.needs_extraction)} extraction and "
        f"{len(stalled.needs_deduplication)} deduplication job(s)"
    )

    if stalled.needs_extraction or stalled.needs_deduplication:
        pipeline.run_until_idle()
        click.echo("Recovery complete")


# Deduplication commands
@cli.group()
def dedup():
    """Duplicate detection commands."""
    pass


@dedup.command("check")
@click.argument("item_id")
def dedup_check(item_id: str):
    """Report the duplicate decision for an item without changing it."""
    from brew_intel.errors import ContentItemNotFound
    from brew_intel.processing.deduplication import DuplicateDetector

    detector = DuplicateDetector()

    try:
        item = detector.store.get(item_id)
    except ContentItemNotFound as e:
        click.echo(str(e), err=True)
        sys.exit(1)

    result = detector.check(item)

    click.echo(f"\nItem {item.id} ({item.source_type}, brewery {item.brewery_id})")
    click.echo(f"  Published: {item.publication_date}")
    click.echo(f"  Currently duplicate: {item.is_duplicate}")
    click.echo(f"  Candidates checked: {result.candidates_checked}")
    click.echo(f"  MinHash similarity: {result.minhash_similarity:.3f}")
    if result.cosine_similarity is not None:
        click.echo(f"  Cosine similarity: {result.cosine_similarity:.3f}")
    click.echo(f"  Final similarity: {result.similarity:.3f}")
    verdict = f"duplicate of {result.duplicate_of}" if result.is_duplicate else "unique"
    click.echo(f"  Decision: {verdict}")


# Dead-letter commands
@cli.group()
def dlq():
    """Inspect and clean up failed jobs."""
    pass


@dlq.command("list")
@click.option("--queue", "-q", "queue_name", help="Filter by queue name")
@click.option("--job", "-j", "job_name", help="Filter by job kind")
@click.option("--limit", "-n", type=int, default=100, help="Maximum rows to show")
@click.option("--offset", type=int, default=0, help="Rows to skip")
def dlq_list(queue_name: Optional[str], job_name: Optional[str], limit: int, offset: int):
    """List failed jobs, newest first."""
    from brew_intel.database import FailedJobStore

    jobs = FailedJobStore().list_jobs(queue_name, job_name, limit=limit, offset=offset)

    if not jobs:
        click.echo("No failed jobs")
        return

    click.echo("\nFailed Jobs:")
    click.echo("-" * 60)

    for job in jobs:
        created = job.created_at.strftime("%Y-%m-%d %H:%M") if job.created_at else "?"
        click.echo(f"[{job.id}] {job.queue_name}/{job.job_name} - {job.attempts_made} attempts - {created}")
        click.echo(f"     {job.error[:100]}")


@dlq.command("show")
@click.argument("failed_job_id")
def dlq_show(failed_job_id: str):
    """Show one failed job with its payload and stack trace."""
    from brew_intel.database import FailedJobStore

    job = FailedJobStore().get(failed_job_id)
    if job is None:
        click.echo(f"Failed job {failed_job_id} not found")
        return

    click.echo(f"\n{job.queue_name}/{job.job_name} (job {job.job_id})")
    click.echo(f"Attempts: {job.attempts_made}")
    click.echo(f"Failed at: {job.created_at}")
    click.echo(f"Error: {job.error}")
    click.echo("\nPayload:")
    click.echo(json.dumps(job.job_data, indent=2, default=str))
    if job.stack_trace:
        click.echo("\nStack trace:")
        click.echo(job.stack_trace)


@dlq.command("delete")
@click.argument("failed_job_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
def dlq_delete(failed_job_id: str, yes: bool):
    """Delete a failed job record."""
    from brew_intel.database import FailedJobStore

    if not yes:
        click.confirm(f"Delete failed job {failed_job_id}?", abort=True)

    if FailedJobStore().delete(failed_job_id):
        click.echo(f"Deleted failed job {failed_job_id}")
    else:
        click.echo(f"Failed job {failed_job_id} not found")


@dlq.command("cleanup")
@click.option("--days", "-d", type=int, help="Delete records older than this many days")
def dlq_cleanup(days: Optional[int]):
    """Delete failed job records past retention."""
    from brew_intel.database import FailedJobStore

    days = days if days is not None else get_config().retention.failed_job_days
    count = FailedJobStore().cleanup(days)
    click.echo(f"Removed {count} failed job(s) older than {days} days")


@dlq.command("stats")
def dlq_stats():
    """Show failed job counts per queue."""
    from brew_intel.database import FailedJobStore

    stats = FailedJobStore().stats_by_queue()

    if not stats:
        click.echo("No failed jobs")
        return

    click.echo("\nFailed Jobs by Queue:")
    click.echo("-" * 40)
    for queue_name, count in sorted(stats.items()):
        click.echo(f"  {queue_name}: {count}")


# Partition commands
@cli.group()
def partitions():
    """Manage monthly content partitions."""
    pass


@partitions.command("ensure")
def partitions_ensure():
    """Create partitions for the current and upcoming months."""
    from brew_intel.database import PartitionManager

    created = PartitionManager().ensure_current_partitions()
    if created:
        click.echo(f"Created partitions: {', '.join(created)}")
    else:
        click.echo("All required partitions already exist")


@partitions.command("cleanup")
@click.option("--months", "-m", type=int, help="Retention window in months")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
def partitions_cleanup(months: Optional[int], yes: bool):
    """Drop partitions (and their content) past retention."""
    from brew_intel.database import PartitionManager

    manager = PartitionManager()
    months = months if months is not None else manager.retention_months

    if not yes:
        click.confirm(
            f"Drop partitions older than {months} months, deleting their content?",
            abort=True,
        )

    dropped = manager.drop_partitions_older_than(months)
    if dropped:
        from brew_intel.database.migrations import vacuum_db

        click.echo(f"Dropped partitions: {', '.join(dropped)}")
        pages = vacuum_db()
        click.echo(f"Vacuumed database: {pages['pages_before']} -> {pages['pages_after']} pages")
    else:
        click.echo("No old partitions to clean up")


@partitions.command("list")
def partitions_list():
    """List partitions with their row counts."""
    from brew_intel.database import PartitionManager

    infos = PartitionManager().list_partitions()

    if not infos:
        click.echo("No partitions. Create them with: brew-intel partitions ensure")
        return

    click.echo("\nContent Partitions:")
    click.echo("-" * 60)
    for info in infos:
        click.echo(f"  {info.name}  [{info.range_start} .. {info.range_end})  {info.row_count} items")


# Scheduler command
@cli.group()
def scheduler():
    """Housekeeping scheduler commands."""
    pass


@scheduler.command("run-once")
@click.argument("job", type=click.Choice(["partitions", "dlq-cleanup"]))
def scheduler_run_once(job: str):
    """Run a housekeeping job once."""
    from brew_intel.scheduler import run_job

    click.echo(f"Running {job} job...")
    run_job(job)
    click.echo("Job completed")


# Stats command
@cli.command()
def stats():
    """Show database and pipeline statistics."""
    from brew_intel.database import ContentStore
    from brew_intel.database.migrations import get_db_stats

    table_stats = get_db_stats()

    click.echo("\nDatabase Statistics:")
    click.echo("-" * 40)

    for table, count in sorted(table_stats.items()):
        click.echo(f"  {table}: {count}")

    click.echo("\nPipeline State:")
    click.echo("-" * 40)

    for state, count in ContentStore().stats().items():
        click.echo(f"  {state}: {count}")


if __name__ == "__main__":
    cli()
