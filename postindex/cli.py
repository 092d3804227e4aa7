import asyncio
import json

import click

from .config import get_logger
from .sync.config import PluginConfig
from .sync.error_tracker import ConfigurationError, ItemError, StatePersistenceError
from .sync.factory import create_sync_engine, create_related_engine
from .sync.items import load_items
from .sync.logging_manager import LoggingManager
from .sync.cache import RelatedCache

logger = get_logger(__name__)


def _load_config(config_file):
    try:
        if config_file:
            return PluginConfig.from_yaml(config_file)
        return PluginConfig.from_environment()
    except ConfigurationError as e:
        raise click.ClickException(e.message)


def _load_posts(posts_file):
    if not posts_file:
        click.echo("No posts file given (--posts), nothing to do")
        return None
    try:
        return load_items(posts_file)
    except ItemError as e:
        raise click.ClickException(e.message)


def _echo_summary(summary):
    click.echo(
        f"Sync complete: {summary.added} added, {summary.updated} updated, "
        f"{summary.deleted} deleted, {summary.unchanged} unchanged"
    )
    for error in summary.errors:
        click.echo(f"  [{error.severity.value}] {error.message}", err=True)
    if summary.error_tracker.has_critical_errors():
        raise click.ClickException("Sync state was not saved; the next sync will re-send this pass")


@click.group()
@click.option('--config', 'config_file', type=click.Path(dir_okay=False), help='YAML config file (site _config.yml or standalone)')
@click.option('--posts', 'posts_file', type=click.Path(dir_okay=False), help='JSON or YAML export of the site posts')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False), default=None, help='Override the configured log level')
@click.pass_context
def cli(ctx, config_file, posts_file, log_level):
    """Keep a semantic search index in sync with your posts."""
    config = _load_config(config_file)
    # Handlers are bound to the current stderr, so configure per invocation
    LoggingManager.reset()
    LoggingManager(log_level=log_level or config.log_level, log_file=config.log_file, log_format=config.log_format)
    ctx.obj = {'config': config, 'posts_file': posts_file}


def _run_sync(ctx, force):
    config = ctx.obj['config']
    engine = create_sync_engine(config)
    if engine is None:
        click.echo("Sync is not configured (endpoint and writer key are required)")
        return
    items = _load_posts(ctx.obj['posts_file'])
    if items is None:
        return
    if force:
        click.echo("Running full sync...")
        summary = engine.full_sync(items)
    else:
        click.echo("Running incremental sync...")
        summary = engine.sync(items)
    _echo_summary(summary)


@cli.command(name='sync')
@click.option('--force', is_flag=True, default=False, help='Force full sync (ignore state)')
@click.pass_context
def sync(ctx, force):
    """Incremental sync of changed, new and deleted posts."""
    _run_sync(ctx, force)


@cli.command(name='full-sync')
@click.pass_context
def full_sync(ctx):
    """Re-upload every post, ignoring the sync state."""
    _run_sync(ctx, True)


@cli.command(name='status')
@click.pass_context
def status(ctx):
    """List tracked posts and when they were last synced."""
    config = ctx.obj['config']
    engine = create_sync_engine(config)
    if engine is None:
        click.echo("Sync is not configured (endpoint and writer key are required)")
    else:
        tracked = engine.status()
        click.echo(f"Tracked posts: {len(tracked)}")
        for item_id, record in tracked:
            click.echo(f"  - {item_id} -> {record.remote_ref} (synced: {record.synced_at})")
    stats = RelatedCache(config.state_dir).load().get_cache_statistics()
    click.echo(f"Related cache: {stats['entries']} entries ({stats['cache_size_kb']:.1f} KB)")


async def _inject(engine, items):
    try:
        return await engine.inject_related(items)
    finally:
        await engine.store.close()


@cli.command(name='related')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write related posts JSON here instead of stdout')
@click.pass_context
def related(ctx, output):
    """Compute related posts for every post."""
    config = ctx.obj['config']
    engine = create_related_engine(config)
    if engine is None:
        click.echo("Related posts are not configured (endpoint and reader key are required)")
        return
    items = _load_posts(ctx.obj['posts_file'])
    if items is None:
        return

    summary = asyncio.run(_inject(engine, items))
    data = {item.id: [r.to_dict() for r in item.related or []] for item in items}
    rendered = json.dumps(data, indent=2, ensure_ascii=False)
    if output:
        with open(output, 'w', encoding='utf-8') as f:
            f.write(rendered)
        click.echo(f"Wrote related posts for {len(data)} posts to {output}")
    else:
        click.echo(rendered)
    logger.info(
        f"Related posts: {summary.cache_hits} cached, {summary.fetched} fetched, {summary.failed} failed"
    )


@cli.command(name='clear-cache')
@click.option('--all', 'clear_all', is_flag=True, default=False, help='Also delete the persisted related posts cache')
@click.pass_context
def clear_cache(ctx, clear_all):
    """Clear the related posts cache."""
    if not clear_all:
        click.echo("The in-memory cache only lives for one run; use --all to delete the persisted cache")
        return
    config = ctx.obj['config']
    try:
        RelatedCache(config.state_dir).clear()
    except StatePersistenceError as e:
        raise click.ClickException(e.message)
    click.echo("Related posts cache cleared")


def main():
    cli()

if __name__ == '__main__':
    main()
