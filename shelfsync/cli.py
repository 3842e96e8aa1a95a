#!/usr/bin/env python3
"""
ShelfSync CLI - Command Line Interface
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

import click

from shelfsync.config.config_loader import load_config
from shelfsync.core.database import DatabaseService
from shelfsync.core.exceptions import AlreadySyncingError, SyncError
from shelfsync.core.logging_manager import configure_logging
from shelfsync.core.models import format_datetime
from shelfsync.core.sync_orchestrator import SyncOrchestrator


async def _run_with_orchestrator(config: Dict[str, Any],
                                 action: Callable[[SyncOrchestrator], Awaitable[Any]]) -> Any:
    """Build the orchestrator, run `action` against it and release resources"""
    db_config = config.get('database', {})
    db_service = DatabaseService(db_config.get('url'), echo=db_config.get('echo', False))
    orchestrator = SyncOrchestrator.from_config(config, db_service)

    try:
        await db_service.create_tables()
        await orchestrator.initialize()
        return await action(orchestrator)
    finally:
        await orchestrator.remote_store.close()
        await db_service.close()


@click.group()
@click.option('--config', 'config_path', type=click.Path(dir_okay=False, path_type=Path),
              default=None, help='Path to shelfsync.yaml')
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path]):
    """ShelfSync Command Line Interface"""
    config = load_config(config_path)
    configure_logging(config)
    ctx.obj = config


@cli.command()
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.pass_obj
def sync(config: Dict[str, Any], as_json: bool):
    """Run one sync cycle"""

    try:
        result = asyncio.run(_run_with_orchestrator(config, lambda o: o.trigger_sync()))
    except AlreadySyncingError as e:
        click.echo(f"Sync skipped: {e}", err=True)
        raise click.exceptions.Exit(2)
    except SyncError as e:
        click.echo(f"Sync failed: {e}", err=True)
        raise click.Abort()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    elif result.success:
        click.echo(f"Sync completed: {result.synced_count} pushed, "
                   f"{result.reconciled_count} reconciled, {result.pending_count} pending")
    else:
        for error in result.errors:
            click.echo(f"Sync failed [{error.code}]: {error.message}", err=True)
        click.echo(f"{result.pending_count} changes still pending, "
                   f"last synced at {format_datetime(result.last_sync_at) or 'never'}", err=True)

    if not result.success:
        raise click.exceptions.Exit(1)


@cli.command()
@click.pass_obj
def status(config: Dict[str, Any]):
    """Show sync status"""
    try:
        state = asyncio.run(_run_with_orchestrator(config, lambda o: o.get_status()))
    except SyncError as e:
        click.echo(f"Could not read sync status: {e}", err=True)
        raise click.Abort()

    click.echo("ShelfSync Status:")
    click.echo("=" * 30)
    click.echo(f"Owner:          {state['owner_id']}")
    click.echo(f"Last sync:      {format_datetime(state['last_sync_at']) or 'never'}")
    click.echo(f"Pending:        {state['pending_count']}")

    if state['recent_errors']:
        click.echo("\nRecent errors:")
        for error in state['recent_errors'][-5:]:
            click.echo(f"  {format_datetime(error.occurred_at)} [{error.code}] {error.message}")


@cli.command()
@click.pass_obj
def pending(config: Dict[str, Any]):
    """List queued changes waiting to be pushed"""
    try:
        records = asyncio.run(_run_with_orchestrator(config, lambda o: o.queue.list_pending()))
    except SyncError as e:
        click.echo(f"Could not read pending queue: {e}", err=True)
        raise click.Abort()

    if not records:
        click.echo("No pending changes")
        return

    for record in records:
        click.echo(f"  {record.describe()} ({format_datetime(record.created_at)})")
    click.echo(f"{len(records)} pending changes")


@cli.command()
@click.pass_obj
def serve(config: Dict[str, Any]):
    """Start the HTTP API server"""
    from shelfsync.main import main
    main(config)


if __name__ == '__main__':
    cli()
