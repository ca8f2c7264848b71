"""Alembic environment: database URL and metadata come from the application."""
from logging.config import fileConfig

from alembic import context

from tenant_erp import models  # noqa: F401  (registers tables on Base.metadata)
from tenant_erp.config import settings
from tenant_erp.database import Base, build_engine

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=settings.DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_on(connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    # alembic_bootstrap hands over an open connection.
    connection = config.attributes.get("connection")
    if connection is not None:
        _run_on(connection)
        return
    connectable = build_engine(settings.DATABASE_URL)
    with connectable.connect() as connection:
        _run_on(connection)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
