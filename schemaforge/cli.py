"""CLI commands for schemaforge."""

from __future__ import annotations

import asyncio
import importlib
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import click

from schemaforge.backends.base import BaseStore
from schemaforge.backends.memory import MemoryStore
from schemaforge.config import CONFIG_FILE, Config
from schemaforge.exceptions import SchemaForgeError
from schemaforge.factories.builder import FactoryBuilder
from schemaforge.models import TableRegistry
from schemaforge.registry import ModelRegistry
from schemaforge.schema.migration import Migrator

logger = logging.getLogger(__name__)

MEMORY_URL = "memory://"


def load_object(reference: str) -> Any:
    """
    Import ``package.module:attribute``.

    Raises:
        click.BadParameter: If the reference is malformed or cannot be imported
    """
    module_name, _, attribute = reference.partition(":")
    if not module_name or not attribute:
        raise click.BadParameter(f"expected 'module:attribute', got {reference!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(f"cannot import {module_name!r}: {e}") from e
    try:
        return getattr(module, attribute)
    except AttributeError:
        raise click.BadParameter(f"{module_name!r} has no attribute {attribute!r}") from None


@asynccontextmanager
async def open_store(config: Config) -> AsyncIterator[BaseStore]:
    """Connect to the configured database (``memory://`` uses an in-process store)."""
    if config.database.url == MEMORY_URL:
        yield MemoryStore()
        return

    from schemaforge.backends.postgres import PostgresStore

    store = await PostgresStore.connect(config.database.url, config.database.schema_name)
    try:
        yield store
    finally:
        await store.close()


def _migrator(
    store: BaseStore, config: Config, migrations: str, registry: TableRegistry | None = None
) -> Migrator:
    return Migrator(
        store,
        list(load_object(migrations)),
        registry,
        table=config.migrations.table,
        **config.schema_options(),
    )


def _run(coro) -> Any:
    try:
        return asyncio.run(coro)
    except SchemaForgeError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(package_name="schemaforge")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help=f"Path to {CONFIG_FILE}")
@click.option("--url", help="Database URL (overrides config)")
@click.option("--verbose", "-v", count=True, help="Increase log verbosity (-v info, -vv debug)")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, url: str | None, verbose: int) -> None:
    """schemaforge - schema builder, migrations, query builder and seeders."""
    level = logging.WARNING if verbose == 0 else logging.INFO if verbose == 1 else logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if config_path:
        config = Config.from_toml(config_path)
    else:
        try:
            config = Config.find_and_load()
        except FileNotFoundError:
            config = Config()
    if url:
        config.database.url = url
    ctx.obj = config


@cli.command()
@click.option("--path", type=click.Path(dir_okay=False), default=CONFIG_FILE, help="Output file")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_obj
def init(config: Config, path: str, force: bool) -> None:
    """Write a configuration file with the current settings."""
    if Path(path).exists() and not force:
        click.echo(f"Error: {path} already exists (use --force to overwrite)", err=True)
        sys.exit(1)
    config.to_toml(path)
    click.echo(f"Wrote {path}")


@cli.command()
@click.option("--migrations", "-m", required=True, help="module:attribute holding the ordered migration list")
@click.pass_obj
def migrate(config: Config, migrations: str) -> None:
    """Run all pending migrations as one batch."""

    async def run() -> list[str]:
        async with open_store(config) as store:
            return await _migrator(store, config, migrations).migrate()

    ran = _run(run())
    if not ran:
        click.echo("Nothing to migrate")
    for name in ran:
        click.echo(f"Migrated: {name}")


@cli.command()
@click.option("--migrations", "-m", required=True, help="module:attribute holding the ordered migration list")
@click.pass_obj
def rollback(config: Config, migrations: str) -> None:
    """Roll back the most recent batch."""

    async def run() -> list[str]:
        async with open_store(config) as store:
            return await _migrator(store, config, migrations).rollback()

    reverted = _run(run())
    if not reverted:
        click.echo("Nothing to roll back")
    for name in reverted:
        click.echo(f"Rolled back: {name}")


@cli.command()
@click.option("--migrations", "-m", required=True, help="module:attribute holding the ordered migration list")
@click.pass_obj
def status(config: Config, migrations: str) -> None:
    """Show applied and pending migrations."""

    async def run() -> list[dict[str, Any]]:
        async with open_store(config) as store:
            return await _migrator(store, config, migrations).status()

    for row in _run(run()):
        state = f"applied (batch {row['batch']})" if row["applied"] else "pending"
        click.echo(f"{row['name']}: {state}")


@cli.command()
@click.argument("seeder")
@click.option("--migrations", "-m", help="Run these migrations first (module:attribute)")
@click.option("--models", help="module:attribute holding model classes to register")
@click.pass_obj
def seed(config: Config, seeder: str, migrations: str | None, models: str | None) -> None:
    """Run a seeder class given as module:Class."""
    seeder_class = load_object(seeder)

    async def run() -> None:
        async with open_store(config) as store:
            tables = TableRegistry()
            if migrations:
                await _migrator(store, config, migrations, tables).migrate()

            factories = None
            if models:
                registry = ModelRegistry(store, tables, config.timestamps.columns)
                factories = FactoryBuilder(registry)
                for model in load_object(models):
                    registry.register(model)
                    if model.table_name() not in tables:
                        tables.register(await store.describe_table(model.table_name()))
                    factories.define(model)

            instance = seeder_class(
                store,
                factories=factories,
                settings=config.seeding,
                timestamp_columns=config.timestamps.columns,
            )
            await instance.execute()

    _run(run())
    click.echo(f"Seeded: {seeder}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
