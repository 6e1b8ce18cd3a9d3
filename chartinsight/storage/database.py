"""Database setup and management.

SQLite via aiosqlite; the file location comes from DATABASE_PATH.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import aiosqlite

from chartinsight.config import get_settings

logger = logging.getLogger(__name__)


class Database:
    """Async SQLite database manager."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize database.

        Args:
            db_path: Path to SQLite database file. Defaults to DATABASE_PATH
        """
        self.db_path = Path(db_path or get_settings().database_path)
        self._ensure_data_dir()

    def _ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @asynccontextmanager
    async def connection(self):
        """Get database connection context manager.

        Usage:
            async with db.connection() as conn:
                await conn.execute(...)
        """
        async with aiosqlite.connect(self.db_path) as conn:
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA foreign_keys = ON")
            yield conn

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        async with self.connection() as conn:
            # Analyses table - one row per stored AnalysisResult
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS analyses (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    image_ref TEXT NOT NULL,
                    pipeline TEXT NOT NULL,
                    trading_style TEXT,
                    result TEXT NOT NULL,
                    feedback TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_analyses_user_created
                ON analyses (user_id, created_at)
            """)

            # Follow-up questions asked about a stored analysis
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS analysis_qa (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    analysis_id TEXT NOT NULL REFERENCES analyses(id) ON DELETE CASCADE,
                    question TEXT NOT NULL,
                    answer TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_analysis_qa_analysis
                ON analysis_qa (analysis_id)
            """)

            await conn.commit()
            logger.info(f"Database initialized at {self.db_path}")


# Singleton instance
_db: Optional[Database] = None


def get_database() -> Database:
    """Get the singleton database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


async def init_database() -> None:
    """Initialize the database (call on app startup)."""
    await get_database().initialize()
