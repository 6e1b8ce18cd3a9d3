"""Storage layer for analysis history."""

from chartinsight.storage.database import Database, get_database, init_database
from chartinsight.storage.analysis_store import (
    AnalysisRecord,
    AnalysisStore,
    QAEntry,
    get_analysis_store,
)

__all__ = [
    "Database",
    "get_database",
    "init_database",
    "AnalysisRecord",
    "AnalysisStore",
    "QAEntry",
    "get_analysis_store",
]
