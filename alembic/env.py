"""
SiteTrack - Alembic Environment Configuration

This module configures Alembic to:
1. Use the database connection from sitetrack config
2. Import all models for autogenerate support
3. Create the configured schema on SQL Server before migrating
"""

import logging
from logging.config import fileConfig

import sqlalchemy as sa
from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

# Importing the package registers every model on Base.metadata
from sitetrack.config import get_settings
from sitetrack.models import Base

# This is the Alembic Config object
config = context.config

# Interpret the config file for Python logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

# Set target metadata for autogenerate support
target_metadata = Base.metadata

settings = get_settings()

# ConfigParser treats '%' as interpolation, so escape it in URL-encoded passwords
config.set_main_option("sqlalchemy.url", settings.database_url.replace('%', '%%'))


def run_migrations_offline() -> None:
    """
    Run migrations in 'offline' mode.

    Configures the context with just a URL, so no DBAPI is needed.
    Calls to context.execute() emit the SQL to the script output.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        include_schemas=bool(settings.db_schema),
        version_table_schema=settings.db_schema,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        # Ensure the schema exists before alembic_version is created in it.
        # Fall back to the default schema when we lack permission.
        version_table_schema = settings.db_schema
        if version_table_schema and connection.dialect.name == "mssql":
            try:
                connection.execute(
                    sa.text("IF NOT EXISTS (SELECT * FROM sys.schemas WHERE name = :s) EXEC('CREATE SCHEMA %s')" % version_table_schema),
                    {"s": version_table_schema},
                )
            except sa.exc.DBAPIError:
                logger.warning(
                    "Unable to create/use schema '%s' for alembic_version; falling back to default schema",
                    version_table_schema,
                )
                version_table_schema = None

        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            include_schemas=bool(version_table_schema),
            version_table_schema=version_table_schema,
            # SQLite cannot ALTER most constraints in place
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
