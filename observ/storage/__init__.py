"""SQLite-backed repositories."""

from observ.storage.sqlite_prompt_repository import SQLitePromptRepository
from observ.storage.sqlite_evaluation_repository import SQLiteEvaluationRepository

__all__ = [
    "SQLitePromptRepository",
    "SQLiteEvaluationRepository",
]
