"""
Configuration management for schemaforge.

Loads and validates configuration from schemaforge.toml files or
SCHEMAFORGE_* environment variables using Pydantic.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_FILE = "schemaforge.toml"


class DatabaseConfig(BaseSettings):
    """Database connection configuration."""

    model_config = SettingsConfigDict(env_prefix="SCHEMAFORGE_DATABASE_")

    url: str = Field(
        default="postgresql://localhost/schemaforge",
        description="PostgreSQL connection URL",
    )
    schema_name: str = Field(default="public", description="Schema tables live in")


class MigrationsConfig(BaseSettings):
    """Schema builder and migration runner configuration."""

    model_config = SettingsConfigDict(env_prefix="SCHEMAFORGE_MIGRATIONS_")

    default_string_length: int = Field(
        default=255, ge=1, description="Length of string() columns without an explicit length"
    )
    transactional_ddl: bool = Field(
        default=False, description="Wrap each table build in a transaction"
    )
    table: str = Field(
        default="schema_migrations", description="Bookkeeping table for applied migrations"
    )


class SeedingConfig(BaseSettings):
    """Bulk seeding configuration."""

    model_config = SettingsConfigDict(env_prefix="SCHEMAFORGE_SEEDING_")

    batch_size: int = Field(default=100, ge=1, description="Records per batch")
    batch_pause: float = Field(default=0.01, ge=0, description="Seconds between batches")
    on_duplicate: Literal["skip", "update", "error"] = Field(
        default="skip", description="Strategy for records matching existing rows"
    )
    default_unique_fields: list[str] = Field(
        default=["email", "name", "slug"],
        description="Fields used for duplicate detection when none are given",
    )
    stop_on_error: bool = Field(
        default=False, description="Abort a run on the first failing record"
    )


class TimestampsConfig(BaseSettings):
    """Timestamp column names."""

    model_config = SettingsConfigDict(env_prefix="SCHEMAFORGE_TIMESTAMPS_")

    created_at: str = Field(default="created_at", description="Creation timestamp column")
    updated_at: str = Field(default="updated_at", description="Update timestamp column")

    @property
    def columns(self) -> tuple[str, str]:
        return (self.created_at, self.updated_at)


class Config(BaseSettings):
    """Main configuration for schemaforge."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    migrations: MigrationsConfig = Field(default_factory=MigrationsConfig)
    seeding: SeedingConfig = Field(default_factory=SeedingConfig)
    timestamps: TimestampsConfig = Field(default_factory=TimestampsConfig)

    @classmethod
    def from_toml(cls, path: Path | str) -> Config:
        """
        Load configuration from TOML file.

        Args:
            path: Path to schemaforge.toml file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid
        """
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        return cls(**data)

    @classmethod
    def find_and_load(cls, start_dir: Path | None = None) -> Config:
        """
        Find and load configuration from schemaforge.toml.

        Searches for schemaforge.toml starting from start_dir and walking up
        parent directories until found or reaching filesystem root.

        Args:
            start_dir: Directory to start search (defaults to current directory)

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If no config file found
        """
        if start_dir is None:
            start_dir = Path.cwd()

        current = Path(start_dir).resolve()

        while True:
            config_path = current / CONFIG_FILE
            if config_path.exists():
                return cls.from_toml(config_path)

            parent = current.parent
            if parent == current:
                break
            current = parent

        raise FileNotFoundError(
            f"No {CONFIG_FILE} found in {start_dir} or parent directories. "
            f"Run 'schemaforge init' to create one."
        )

    def to_toml(self, path: Path | str) -> None:
        """
        Write configuration to TOML file.

        Args:
            path: Path to write schemaforge.toml
        """
        unique_fields = ", ".join(f'"{f}"' for f in self.seeding.default_unique_fields)
        toml_content = f"""# schemaforge configuration

[database]
url = "{self.database.url}"
schema_name = "{self.database.schema_name}"

[migrations]
default_string_length = {self.migrations.default_string_length}
transactional_ddl = {str(self.migrations.transactional_ddl).lower()}
table = "{self.migrations.table}"

[seeding]
batch_size = {self.seeding.batch_size}
batch_pause = {self.seeding.batch_pause}
on_duplicate = "{self.seeding.on_duplicate}"
default_unique_fields = [{unique_fields}]
stop_on_error = {str(self.seeding.stop_on_error).lower()}

[timestamps]
created_at = "{self.timestamps.created_at}"
updated_at = "{self.timestamps.updated_at}"
"""
        Path(path).write_text(toml_content)

    def schema_options(self) -> dict[str, Any]:
        """Keyword arguments for Schema, Migration and Migrator."""
        return {
            "transactional": self.migrations.transactional_ddl,
            "default_string_length": self.migrations.default_string_length,
            "timestamp_columns": self.timestamps.columns,
        }
