"""Alembic helpers for oracle database initialization."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config as AlembicConfig

from bitredict.config.db_url import sanitize_url

logger = logging.getLogger(__name__)

_DATABASE_ROOT = Path(__file__).resolve().parent


def build_alembic_config(database_url: Optional[str] = None) -> AlembicConfig:
    alembic_ini = _DATABASE_ROOT / "alembic.ini"
    alembic_scripts = _DATABASE_ROOT / "alembic"
    if not alembic_ini.exists():
        raise FileNotFoundError(f"Alembic config not found at {alembic_ini}")
    if not alembic_scripts.exists():
        raise FileNotFoundError(f"Alembic scripts directory not found at {alembic_scripts}")

    cfg = AlembicConfig(str(alembic_ini))
    cfg.set_main_option("script_location", str(alembic_scripts))
    if database_url:
        # configparser interpolation treats % specially
        cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    # keep the process logging setup intact
    cfg.attributes["skip_logging_config"] = True
    return cfg


def upgrade_head(database_url: Optional[str] = None) -> None:
    """Run Alembic migrations to head. Must be called outside a running event loop."""
    cfg = build_alembic_config(database_url)
    logger.info({"db_init": {"alembic_upgrade": "start", "url": sanitize_url(database_url)}})
    started_at = time.monotonic()
    command.upgrade(cfg, "head")
    logger.info(
        {
            "db_init": {
                "alembic_upgrade": "complete",
                "elapsed_seconds": round(time.monotonic() - started_at, 3),
            }
        }
    )


__all__ = ["build_alembic_config", "upgrade_head"]
