"""Upgrade one database to the Alembic head under a per-database advisory lock."""

import hashlib
import logging
import time
from contextlib import contextmanager
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, text

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _lock_key(name: str) -> int:
    digest = hashlib.blake2b(str(name or "").strip().lower().encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=False) % (2**63 - 1)


@contextmanager
def _advisory_lock(conn, *, name: str, timeout_seconds: int):
    # Advisory locks only exist on Postgres
    if conn.dialect.name != "postgresql":
        yield
        return
    key = _lock_key(name)
    deadline = time.time() + max(1, int(timeout_seconds))
    while not conn.execute(text("SELECT pg_try_advisory_lock(:k)"), {"k": key}).scalar():
        if time.time() >= deadline:
            raise TimeoutError(f"Timed out waiting for migration lock '{name}'")
        time.sleep(0.5)
    try:
        yield
    finally:
        try:
            conn.execute(text("SELECT pg_advisory_unlock(:k)"), {"k": key})
        except Exception as e:
            logger.warning(f"Could not release migration lock '{name}': {e}")


def upgrade_head(*, sqlalchemy_url: str, lock_name: str = "studio-db", lock_timeout_seconds: int = 120) -> None:
    """Run ``alembic upgrade head`` and check that ``alembic_version`` landed on the head."""
    url = str(sqlalchemy_url or "").strip()
    if not url:
        raise ValueError("sqlalchemy_url is empty")

    cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    cfg.set_main_option("sqlalchemy.url", url)
    head = ScriptDirectory.from_config(cfg).get_current_head()

    engine = create_engine(url, pool_pre_ping=True)
    try:
        with engine.connect() as conn:
            with _advisory_lock(conn, name=lock_name, timeout_seconds=lock_timeout_seconds):
                # alembic/env.py migrates on this connection
                cfg.attributes["connection"] = conn
                command.upgrade(cfg, "head")
                current = conn.execute(text("SELECT version_num FROM alembic_version")).scalar()
                if current != head:
                    raise RuntimeError(f"alembic_version={current} != head={head}")
                conn.commit()
        logger.info(f"Database migrated to {head} for '{lock_name}'")
    finally:
        engine.dispose()
