"""Alembic migration environment for SQLAlchemy."""

from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context

# Import config and models
from config import get_settings
from database import Base

# Import all models so they are registered with Base.metadata
from models import (  # noqa: F401
    AdminPlatformConnection,
    Client,
    ClientPlatformConnection,
    OnboardingLink,
    OnboardingRequest,
    User,
)

# Alembic Config object
config = context.config

# Setup logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Set target metadata for autogenerate
target_metadata = Base.metadata

# Get database URL from settings
settings = get_settings()
# Convert async URL to sync for alembic (asyncpg -> psycopg2)
sync_db_url = settings.database_url.replace("+asyncpg", "")


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode, emitting SQL without a database connection."""
    context.configure(
        url=sync_db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode against the configured database."""
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = sync_db_url

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
