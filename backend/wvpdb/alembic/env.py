# backend/wvpdb/alembic/env.py
"""
Migration environment for the compliance schema.

Run from `backend/` (`alembic upgrade head`). The database URL comes from
DATABASE_WRITE_URL / DATABASE_URL unless alembic.ini carries a real one.
"""

from __future__ import annotations

import importlib
import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine

# backend/ must be importable so `wvpdb` resolves when alembic runs from a checkout.
BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

MODEL_MODULES = (
    "wvpdb.apps.accounts.models",
    "wvpdb.apps.compliance.models",
    "wvpdb.apps.training.models",
    "wvpdb.apps.audit.models",
    "wvpdb.apps.notifications.models",
)


def _target_metadata():
    from wvpdb.database import Base  # noqa: E402

    for module_name in MODEL_MODULES:
        importlib.import_module(module_name)
    return Base.metadata


def _database_url() -> str:
    url = (config.get_main_option("sqlalchemy.url") or "").strip()
    if url and not url.startswith("driver://"):
        return url
    url = (os.getenv("DATABASE_WRITE_URL") or os.getenv("DATABASE_URL") or "").strip()
    if not url:
        raise RuntimeError("Set DATABASE_WRITE_URL / DATABASE_URL or sqlalchemy.url in alembic.ini")
    return url


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=_target_metadata(),
        compare_type=True,
        compare_server_default=True,
        render_as_batch=_database_url().startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(url=_database_url(), literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(_database_url(), future=True)
    try:
        with engine.connect() as connection:
            _configure(connection=connection)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
