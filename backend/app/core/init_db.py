"""
Local database bootstrap.

Creates the YachtOps tables straight from the ORM metadata, which is enough
for SQLite development databases and tests. Shared databases are migrated
with the Alembic revisions under backend/alembic instead.

    python -m backend.app.core.init_db            # create missing tables
    python -m backend.app.core.init_db --drop     # drop everything (asks first)
"""

import asyncio
import sys
from typing import List, Optional

from sqlalchemy import inspect

from backend.app.core.config import get_settings
from backend.app.core.database import Base, build_engine
import backend.app.models  # noqa: F401  registers every table on Base

settings = get_settings()


async def init_database(database_url: Optional[str] = None) -> List[str]:
    """Create missing tables and return the table names now present."""
    url = database_url or settings.database_url
    engine = build_engine(url)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
    finally:
        await engine.dispose()
    return sorted(tables)


async def drop_all_tables(database_url: Optional[str] = None) -> None:
    engine = build_engine(database_url)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    finally:
        await engine.dispose()


def main(argv: List[str]) -> int:
    if "--drop" in argv:
        print(f"⚠️ This drops every YachtOps table at {settings.database_url}")
        if input("Type 'yes' to confirm: ") != "yes":
            print("Aborted.")
            return 1
        asyncio.run(drop_all_tables())
        print("✅ All tables dropped.")
        return 0

    tables = asyncio.run(init_database())
    print(f"✅ {len(tables)} tables ready: {', '.join(tables)}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
