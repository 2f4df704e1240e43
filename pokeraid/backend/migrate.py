"""Apply SQL schema for local PostgreSQL setup."""

from __future__ import annotations

import logging
from pathlib import Path

from pokeraid.backend.config import load_settings
from pokeraid.backend.logs import configure_logging

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("db_schema.sql")


def load_schema() -> str:
    return SCHEMA_PATH.read_text(encoding="utf-8")


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    if not settings.database_url:
        raise RuntimeError("POKERAID_DATABASE_URL is required for migration")

    import psycopg

    with psycopg.connect(settings.database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(load_schema())
        conn.commit()
    logger.info("Raid schema applied")


if __name__ == "__main__":
    main()
