"""
create_tables.py — idempotent table creation script for the SQL cache backend.
Run this once before starting with CACHE_BACKEND=sql, or after schema changes.
Safe to run multiple times (all DDL uses IF NOT EXISTS).

Usage:
    python scripts/create_tables.py
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rivue.config import settings
from rivue.database import engine
from rivue.models import Base  # noqa: F401 (registers the models)


async def main() -> None:
    """Create the cache_entries table."""
    print(f"Creating tables on {settings.database_url.split('@')[-1]}...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("  ✓ All tables created (IF NOT EXISTS)")

    print("\nDone. Start the API with CACHE_BACKEND=sql.")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
