"""Tests for the command line interface."""

from pathlib import Path

import click
import pytest
from click.testing import CliRunner

from schemaforge.cli import cli, load_object
from schemaforge.config import CONFIG_FILE, Config


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def test_load_object():
    assert load_object("schemaforge.config:Config") is Config

    with pytest.raises(click.BadParameter):
        load_object("schemaforge.config")
    with pytest.raises(click.BadParameter):
        load_object("schemaforge.nothing_here:Config")
    with pytest.raises(click.BadParameter):
        load_object("schemaforge.config:Missing")


def test_init_writes_config(runner):
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["--url", "postgresql://localhost/music", "init"])

        assert result.exit_code == 0
        assert f"Wrote {CONFIG_FILE}" in result.output
        assert Config.from_toml(CONFIG_FILE).database.url == "postgresql://localhost/music"

        again = runner.invoke(cli, ["init"])
        assert again.exit_code == 1
        assert Path(CONFIG_FILE).exists()


def test_migrate_on_memory_store(runner):
    with runner.isolated_filesystem():
        result = runner.invoke(
            cli, ["--url", "memory://", "migrate", "-m", "sample_app:MIGRATIONS"]
        )

    assert result.exit_code == 0, result.output
    assert "Migrated: CreateUsersTable" in result.output
    assert "Migrated: CreateSongTagsTable" in result.output


def test_status_lists_pending(runner):
    with runner.isolated_filesystem():
        result = runner.invoke(
            cli, ["--url", "memory://", "status", "--migrations", "sample_app:MIGRATIONS"]
        )

    assert result.exit_code == 0
    assert "CreateNotesTable: pending" in result.output


def test_rollback_with_nothing_applied(runner):
    with runner.isolated_filesystem():
        result = runner.invoke(
            cli, ["--url", "memory://", "rollback", "-m", "sample_app:MIGRATIONS"]
        )

    assert result.exit_code == 0
    assert "Nothing to roll back" in result.output


def test_seed_with_models(runner):
    with runner.isolated_filesystem():
        result = runner.invoke(
            cli,
            [
                "--url",
                "memory://",
                "seed",
                "sample_app:MusicSeeder",
                "--migrations",
                "sample_app:MIGRATIONS",
                "--models",
                "sample_app:MODELS",
            ],
        )

    assert result.exit_code == 0, result.output
    assert "Seeded: sample_app:MusicSeeder" in result.output


def test_seed_errors_exit_nonzero(runner):
    """A seeder that needs factories fails cleanly without --models."""
    with runner.isolated_filesystem():
        result = runner.invoke(
            cli,
            [
                "--url",
                "memory://",
                "seed",
                "sample_app:MusicSeeder",
                "--migrations",
                "sample_app:MIGRATIONS",
            ],
        )

    assert result.exit_code == 1
    assert "FactoryBuilder" in result.output
