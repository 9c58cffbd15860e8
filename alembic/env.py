"""
Alembic environment for the snapsight history store.
The database URL comes from Settings (DATABASE_URL / .env), not alembic.ini.
"""
from logging.config import fileConfig

from sqlalchemy import create_engine, pool

from alembic import context
from snapsight.config import get_settings
from snapsight.database import Base
from snapsight.models import AnalysisRecord  # noqa: F401 - registers analysis_records on Base.metadata

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

config.set_main_option("sqlalchemy.url", get_settings().database_url)
target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit the analysis_records DDL as SQL without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations to the configured database, or to a connection passed in by the caller."""
    connectable = config.attributes.get("connection", None)
    if connectable is None:
        connectable = create_engine(config.get_main_option("sqlalchemy.url"), poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
