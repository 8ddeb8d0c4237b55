from __future__ import annotations

import logging
from pathlib import Path

from database.base import Database

LOGGER = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent

MIGRATION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    id TEXT PRIMARY KEY,
    applied_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""


async def run_migrations(database: Database, migrations_path: Path = MIGRATIONS_DIR) -> int:
    await database.executescript(MIGRATION_TABLE_SQL)
    applied = await database.fetchall("SELECT id FROM schema_migrations;")
    applied_ids = {row["id"] for row in applied}

    count = 0
    for migration_file in sorted(migrations_path.glob("*.sql")):
        migration_id = migration_file.name
        if migration_id in applied_ids:
            continue
        LOGGER.info("Applying migration %s", migration_id)
        await database.executescript(migration_file.read_text(encoding="utf-8"))
        await database.execute("INSERT INTO schema_migrations(id) VALUES (?);", [migration_id])
        count += 1
    if not count:
        LOGGER.debug("Schema is up to date")
    return count
