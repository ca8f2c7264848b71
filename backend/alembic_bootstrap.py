#!/usr/bin/env python3
"""Put create_all databases under Alembic control.

``seed_data.py`` builds the current schema with ``Base.metadata.create_all``,
which leaves no ``alembic_version`` row behind. Such a database is stamped at
``head`` so a later ``alembic upgrade head`` only applies newer revisions.
A partial schema is left alone; it needs a real migration run.
"""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from tenant_erp import models  # noqa: F401
from tenant_erp.database import Base, engine

logger = logging.getLogger("alembic_bootstrap")

BACKEND_DIR = Path(__file__).resolve().parent


def alembic_config() -> Config:
    """Script location only; logging stays as the caller configured it."""
    config = Config()
    config.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    return config


def missing_tables(bind) -> list[str]:
    existing = set(inspect(bind).get_table_names())
    return sorted(name for name in Base.metadata.tables if name not in existing)


def needs_baseline_stamp(bind) -> bool:
    """True when every model table exists but Alembic has never recorded a revision."""
    if inspect(bind).has_table("alembic_version"):
        return False
    missing = missing_tables(bind)
    if missing and len(missing) < len(Base.metadata.tables):
        logger.warning("Partial schema without alembic_version (missing: %s); not stamping", ", ".join(missing))
    return not missing


def stamp_if_unversioned(bind) -> bool:
    if not needs_baseline_stamp(bind):
        logger.info("Alembic bootstrap check: no baseline stamp required")
        return False
    logger.info("Schema created without alembic_version; stamping head")
    config = alembic_config()
    with bind.begin() as connection:
        config.attributes["connection"] = connection
        command.stamp(config, "head")
    return True


def main() -> int:
    stamp_if_unversioned(engine)
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    raise SystemExit(main())
