"""Apply SQL schema for local PostgreSQL setup."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from cardroom.backend.config import configure_logging, load_settings


logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("db_schema.sql")


def apply_schema(conn: Any, schema_path: Path = SCHEMA_PATH) -> None:
    schema_sql = schema_path.read_text(encoding="utf-8")
    with conn.cursor() as cur:
        cur.execute(schema_sql)
    conn.commit()


def main() -> None:
    settings = load_settings()
    configure_logging(settings)
    if not settings.database_url:
        raise RuntimeError("CARDROOM_DATABASE_URL is required for migration")

    import psycopg

    with psycopg.connect(settings.database_url) as conn:
        apply_schema(conn)
    logger.info("Statement log schema applied")


if __name__ == "__main__":
    main()
