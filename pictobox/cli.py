"""CLI commands for Pictobox."""

import asyncio
import logging
import sys
from pathlib import Path

import click

from pictobox.config import get_settings


@click.group()
@click.version_option(package_name="pictobox")
def cli():
    """Pictobox - a personal inventory with pictogram images."""
    pass


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8080, type=int, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.option("--workers", default=1, type=int, help="Number of worker processes")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level",
)
def serve(host, port, reload, workers, log_level):
    """Run the Pictobox server."""
    import signal

    from hypercorn.asyncio import serve as hypercorn_serve
    from hypercorn.config import Config

    config = Config()
    config.application_path = "pictobox.asgi:create_app()"
    config.bind = [f"{host}:{port}"]
    config.workers = 1 if reload else workers
    config.loglevel = log_level.upper()
    config.include_server_header = False

    if reload:
        config.use_reloader = True
        from hypercorn.run import run
        run(config)
        return

    from pictobox.asgi import create_app

    app = create_app()
    shutdown_event = asyncio.Event()

    loop = asyncio.new_event_loop()
    loop.add_signal_handler(signal.SIGINT, shutdown_event.set)
    loop.add_signal_handler(signal.SIGTERM, shutdown_event.set)
    try:
        loop.run_until_complete(
            hypercorn_serve(app, config, shutdown_trigger=shutdown_event.wait)
        )
    finally:
        loop.close()


async def _run_image_migration(settings, batch_size: int, dry_run: bool):
    """Reconcile custom pictograms, then items, against storage."""
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from pictobox.app_factory import build_image_services
    from pictobox.db.services.record_store import migration_record_stores
    from pictobox.lib.migration import MigrationBatchResult, MigrationBatchRunner

    services = build_image_services(settings)
    engine = create_async_engine(settings.db.url)
    session_maker = async_sessionmaker(engine, expire_on_commit=False)

    result = MigrationBatchResult()
    try:
        for store in migration_record_stores(session_maker):
            runner = MigrationBatchRunner(
                store, services.engine, services.classifier, batch_size=batch_size
            )
            result = result.merge(await runner.run(dry_run=dry_run))
    finally:
        await services.close()
        await engine.dispose()
    return result


@cli.command("migrate-images")
@click.option(
    "--supabase-url",
    envvar="SUPABASE_URL",
    required=True,
    help="Supabase project URL (env: SUPABASE_URL)",
)
@click.option(
    "--service-role-key",
    envvar="SUPABASE_SERVICE_ROLE_KEY",
    required=True,
    help="Supabase service role key (env: SUPABASE_SERVICE_ROLE_KEY)",
)
@click.option("--batch-size", default=None, type=click.IntRange(min=1), help="Records per batch")
@click.option("--dry-run", is_flag=True, help="Report what would be migrated without transferring")
def migrate_images(supabase_url, service_role_key, batch_size, dry_run):
    """Move image URLs that still point outside storage into the bucket.

    Exits with status 1 when any record failed; rerunning picks up only
    the records that are still outside storage.
    """
    logging.basicConfig(level=logging.INFO, format="%(levelname)s [%(name)s] %(message)s")

    settings = get_settings()
    supabase = settings.storage.supabase.model_copy(
        update={"url": supabase_url, "service_key": service_role_key}
    )
    settings = settings.model_copy(
        update={"storage": settings.storage.model_copy(update={"supabase": supabase})}
    )
    batch_size = batch_size or settings.migration.batch_size

    click.echo(f"Migrating images in batches of {batch_size}{' (dry run)' if dry_run else ''}")
    result = asyncio.run(_run_image_migration(settings, batch_size, dry_run))

    click.echo(
        f"Migrated: {result.migrated_count}, "
        f"skipped: {result.skipped_count}, "
        f"failed: {result.failed_count}"
    )
    for failure in result.failures:
        click.echo(f"  {failure.record_id}: {failure.detail}", err=True)

    sys.exit(result.exit_code)


def _run_alembic(project_root: Path, args: list[str]) -> None:
    """Build an Alembic Config programmatically and run the given command."""
    from alembic.config import CommandLine, Config

    package_dir = Path(__file__).parent

    # Find alembic.ini
    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        alembic_ini = package_dir / "alembic.ini"
        if not alembic_ini.exists():
            click.echo("Error: Could not find alembic.ini", err=True)
            sys.exit(1)

    cfg = Config(str(alembic_ini))
    cfg.set_main_option("script_location", str(package_dir / "alembic"))
    cfg.set_main_option("version_locations", str(package_dir / "alembic" / "versions"))

    # Parse and run through CommandLine for proper subcommand dispatch
    cmd = CommandLine()
    options = cmd.parser.parse_args(args)
    if not hasattr(options, "cmd"):
        cmd.parser.error("too few arguments")
    else:
        cfg.cmd_opts = options
        fn, positional, kwarg = options.cmd
        fn(
            cfg,
            *[getattr(options, k, None) for k in positional],
            **{k: getattr(options, k, None) for k in kwarg},
        )


@cli.command(
    context_settings=dict(
        ignore_unknown_options=True,
        allow_extra_args=True,
    )
)
@click.pass_context
def db(ctx):
    """Run database migrations via Alembic.

    \b
    Examples:
        pictobox db upgrade head     # Apply all migrations
        pictobox db downgrade -1     # Rollback one migration
        pictobox db current          # Show current revision
        pictobox db history          # Show migration history
    """
    args = ctx.args
    if not args:
        click.echo(ctx.get_help())
        return

    _run_alembic(Path.cwd(), args)


if __name__ == "__main__":
    cli()
