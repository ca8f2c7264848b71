from __future__ import annotations

import pytest
from sqlalchemy import Table, inspect, text

import alembic_bootstrap
from tenant_erp.database import Base, build_engine


@pytest.fixture()
def engine():
    engine = build_engine("sqlite://")
    try:
        yield engine
    finally:
        engine.dispose()


def _version(engine) -> str:
    with engine.connect() as connection:
        return connection.execute(text("SELECT version_num FROM alembic_version")).scalar_one()


def test_empty_database_is_left_to_migrations(engine) -> None:
    assert alembic_bootstrap.needs_baseline_stamp(engine) is False
    assert alembic_bootstrap.stamp_if_unversioned(engine) is False
    assert not inspect(engine).has_table("alembic_version")


def test_create_all_database_is_stamped_at_head(engine) -> None:
    Base.metadata.create_all(bind=engine)
    assert alembic_bootstrap.needs_baseline_stamp(engine) is True

    assert alembic_bootstrap.stamp_if_unversioned(engine) is True

    assert _version(engine) == "002"
    assert alembic_bootstrap.needs_baseline_stamp(engine) is False


def test_partial_schema_is_not_stamped(engine) -> None:
    tables: list[Table] = [Base.metadata.tables["companies"], Base.metadata.tables["users"]]
    Base.metadata.create_all(bind=engine, tables=tables)

    assert alembic_bootstrap.missing_tables(engine)
    assert alembic_bootstrap.needs_baseline_stamp(engine) is False
