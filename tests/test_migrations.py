"""
test_migrations.py — The Alembic revision builds the schema and seeds roles,
and is safe to run over tables create_all already made.
"""

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect, text

from guest_gateway.db.init_db import create_tables

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _alembic_config(url):
    cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    cfg.set_main_option("sqlalchemy.url", url)
    return cfg


def _roles(engine):
    with engine.connect() as conn:
        return conn.execute(text("SELECT id, name, daily_limit, velocity_limit FROM roles ORDER BY id")).fetchall()


def test_upgrade_creates_schema_and_roles(tmp_path):
    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    command.upgrade(_alembic_config(url), "head")

    engine = create_engine(url)
    tables = set(inspect(engine).get_table_names())
    assert {"roles", "users", "daily_usage", "request_log"} <= tables
    assert [tuple(r) for r in _roles(engine)] == [
        (0, "banned", 0, 0),
        (1, "guest", None, None),
        (2, "admin", -1, -1),
    ]
    engine.dispose()


def test_upgrade_after_create_all_is_idempotent(tmp_path):
    url = f"sqlite:///{tmp_path / 'startup.db'}"
    engine = create_engine(url)
    create_tables(engine)

    cfg = _alembic_config(url)
    command.upgrade(cfg, "head")
    command.upgrade(cfg, "head")

    assert len(_roles(engine)) == 3
    engine.dispose()
