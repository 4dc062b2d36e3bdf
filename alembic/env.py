from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from bonuswheel_api.core.settings import settings

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def get_metadata():
    from bonuswheel_api.db.base import Base  # noqa: WPS433 (late import)
    import bonuswheel_api.models  # noqa: F401

    return Base.metadata


def _sync_database_url(database_url: str) -> str:
    # Migrations run on the blocking drivers
    if database_url.startswith("postgresql+asyncpg"):
        return database_url.replace("+asyncpg", "+psycopg")
    if "+aiosqlite" in database_url:
        return database_url.replace("+aiosqlite", "")
    return database_url


def run_migrations_offline():
    """Run migrations in 'offline' mode."""
    context.configure(
        url=_sync_database_url(settings.database_url),
        target_metadata=get_metadata(),
        literal_binds=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    """Run migrations in 'online' mode."""
    connectable = create_engine(_sync_database_url(settings.database_url), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=get_metadata(),
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
