"""Analysis history storage.

Stores finished AnalysisResults per user together with follow-up
questions and helpful/unhelpful feedback.
"""

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from chartinsight.models.analysis import AnalysisResult
from chartinsight.storage.database import Database, get_database

logger = logging.getLogger(__name__)

FEEDBACK_VALUES = ("helpful", "unhelpful")


@dataclass
class QAEntry:
    """A follow-up question and its answer."""

    question: str
    answer: str
    created_at: str = ""

    @classmethod
    def from_row(cls, row) -> "QAEntry":
        data = dict(row)
        return cls(question=data["question"], answer=data["answer"], created_at=data["created_at"])


@dataclass
class AnalysisRecord:
    """A stored analysis."""

    id: str
    user_id: str
    image_ref: str
    pipeline: str
    result: AnalysisResult
    trading_style: Optional[str] = None
    feedback: Optional[str] = None
    qa: List[QAEntry] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def create(
        cls,
        user_id: str,
        image_ref: str,
        result: AnalysisResult,
        trading_style: Optional[str] = None,
    ) -> "AnalysisRecord":
        """Create a new record with auto-generated ID and timestamps."""
        now = datetime.utcnow().isoformat()
        return cls(
            id=str(uuid.uuid4()),
            user_id=user_id,
            image_ref=image_ref,
            pipeline=result.pipeline,
            result=result,
            trading_style=trading_style,
            created_at=now,
            updated_at=now,
        )

    def to_row(self) -> Dict[str, Any]:
        """Column values for the analyses table."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "image_ref": self.image_ref,
            "pipeline": self.pipeline,
            "trading_style": self.trading_style,
            "result": self.result.model_dump_json(),
            "feedback": self.feedback,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_row(cls, row, qa: Optional[List[QAEntry]] = None) -> "AnalysisRecord":
        """Create from database row."""
        data = dict(row)
        data["result"] = AnalysisResult.model_validate_json(data["result"])
        return cls(qa=qa or [], **data)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation for API responses."""
        data = asdict(self)
        data["result"] = self.result.model_dump(mode="json")
        return data

    def summary(self) -> Dict[str, Any]:
        """Compact listing entry without the image payload."""
        return {
            "id": self.id,
            "pipeline": self.pipeline,
            "trading_style": self.trading_style,
            "trend": self.result.trend,
            "recommendation": self.result.recommendation,
            "degraded": self.result.degraded,
            "feedback": self.feedback,
            "created_at": self.created_at,
        }


class AnalysisStore:
    """SQLite-backed analysis history."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()
        self._initialized = False

    async def _ensure_tables(self) -> None:
        if self._initialized:
            return
        await self.db.initialize()
        self._initialized = True

    async def store(
        self,
        user_id: str,
        image_ref: str,
        result: AnalysisResult,
        trading_style: Optional[str] = None,
    ) -> str:
        """Persist a result and return its record id."""
        await self._ensure_tables()

        record = AnalysisRecord.create(user_id, image_ref, result, trading_style)
        row = record.to_row()

        async with self.db.connection() as conn:
            columns = ", ".join(row.keys())
            placeholders = ", ".join(["?" for _ in row])
            await conn.execute(
                f"INSERT INTO analyses ({columns}) VALUES ({placeholders})",
                list(row.values()),
            )
            await conn.commit()

        logger.info(f"Stored analysis {record.id} for user {user_id} ({record.pipeline})")
        return record.id

    async def get(self, record_id: str) -> Optional[AnalysisRecord]:
        """Get a record with its Q&A history, or None."""
        await self._ensure_tables()

        async with self.db.connection() as conn:
            async with conn.execute("SELECT * FROM analyses WHERE id = ?", (record_id,)) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return None

            qa: List[QAEntry] = []
            async with conn.execute(
                "SELECT question, answer, created_at FROM analysis_qa WHERE analysis_id = ? ORDER BY id",
                (record_id,),
            ) as cursor:
                async for qa_row in cursor:
                    qa.append(QAEntry.from_row(qa_row))

        return AnalysisRecord.from_row(row, qa)

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[AnalysisRecord]:
        """Most recent analyses first."""
        await self._ensure_tables()

        records = []
        async with self.db.connection() as conn:
            async with conn.execute(
                """SELECT * FROM analyses
                   WHERE user_id = ?
                   ORDER BY created_at DESC, rowid DESC LIMIT ?""",
                (user_id, limit),
            ) as cursor:
                async for row in cursor:
                    records.append(AnalysisRecord.from_row(row))
        return records

    async def append_qa(self, record_id: str, question: str, answer: str) -> bool:
        """Append a question and answer; False if the record does not exist."""
        await self._ensure_tables()

        now = datetime.utcnow().isoformat()
        async with self.db.connection() as conn:
            async with conn.execute("SELECT 1 FROM analyses WHERE id = ?", (record_id,)) as cursor:
                if await cursor.fetchone() is None:
                    return False
            await conn.execute(
                "INSERT INTO analysis_qa (analysis_id, question, answer, created_at) VALUES (?, ?, ?, ?)",
                (record_id, question, answer, now),
            )
            await conn.execute("UPDATE analyses SET updated_at = ? WHERE id = ?", (now, record_id))
            await conn.commit()

        logger.info(f"Appended Q&A to analysis {record_id}")
        return True

    async def set_feedback(self, record_id: str, feedback: str) -> bool:
        """Record helpful/unhelpful feedback; False if the record does not exist."""
        if feedback not in FEEDBACK_VALUES:
            raise ValueError(f"feedback must be one of {FEEDBACK_VALUES}, got '{feedback}'")
        await self._ensure_tables()

        now = datetime.utcnow().isoformat()
        async with self.db.connection() as conn:
            cursor = await conn.execute(
                "UPDATE analyses SET feedback = ?, updated_at = ? WHERE id = ?",
                (feedback, now, record_id),
            )
            await conn.commit()
            updated = cursor.rowcount > 0

        if updated:
            logger.info(f"Feedback '{feedback}' recorded for analysis {record_id}")
        return updated


# Singleton instance
_store: Optional[AnalysisStore] = None


def get_analysis_store() -> AnalysisStore:
    """Get the singleton analysis store instance."""
    global _store
    if _store is None:
        _store = AnalysisStore()
    return _store
