"""SQLite-based implementation of the prompt repository interface."""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from observ.errors import DuplicateRecordError
from observ.interfaces.prompt_repository import IPromptRepository
from observ.models.prompt import PromptState, PromptVersion

class SQLitePromptRepository(IPromptRepository):
    """SQLite-based storage for prompt versions.

    The single-production-version rule is enforced by a partial unique
    index, so a concurrent writer that slips past the application checks
    still fails at commit time.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str = "data/observ.db"):
        """Initialize the SQLite prompt repository.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _init_database(self) -> None:
        """Initialize the database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS prompt_versions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    version INTEGER NOT NULL CHECK (version > 0),
                    state TEXT NOT NULL DEFAULT 'draft'
                        CHECK (state IN ('draft', 'production', 'archived')),
                    text TEXT NOT NULL,
                    config TEXT,
                    commit_message TEXT,
                    created_by TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (name, version)
                )
            """)

            # At most one production version per name
            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_prompt_single_production
                ON prompt_versions(name) WHERE state = 'production'
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_prompt_name_state
                ON prompt_versions(name, state)
            """)

            conn.commit()

    def next_version_number(self, name: str) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT MAX(version) FROM prompt_versions WHERE name = ?",
                (name,)
            )
            latest = cursor.fetchone()[0]
        return (latest or 0) + 1

    def insert(self, prompt: PromptVersion) -> PromptVersion:
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    INSERT INTO prompt_versions (
                        name, version, state, text, config, commit_message,
                        created_by, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    prompt.name,
                    prompt.version,
                    prompt.state.value,
                    prompt.text,
                    json.dumps(prompt.config or {}),
                    prompt.commit_message,
                    prompt.created_by,
                    prompt.created_at.isoformat(),
                    prompt.updated_at.isoformat(),
                ))
                conn.commit()
                prompt.id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise DuplicateRecordError(
                f"Prompt '{prompt.name}' v{prompt.version} conflicts with an existing version: {e}"
            ) from e
        return prompt

    def get(self, name: str, version: int) -> Optional[PromptVersion]:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM prompt_versions WHERE name = ? AND version = ?",
                (name, version)
            )
            row = cursor.fetchone()

        return self._row_to_prompt(row) if row else None

    def find_by_state(self, name: str, state: PromptState) -> Optional[PromptVersion]:
        with self._get_connection() as conn:
            cursor = conn.execute("""
                SELECT * FROM prompt_versions
                WHERE name = ? AND state = ?
                ORDER BY version DESC LIMIT 1
            """, (name, PromptState(state).value))
            row = cursor.fetchone()

        return self._row_to_prompt(row) if row else None

    def list_versions(self, name: str) -> List[PromptVersion]:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM prompt_versions WHERE name = ? ORDER BY version DESC",
                (name,)
            )
            return [self._row_to_prompt(row) for row in cursor.fetchall()]

    def list_names(self, state: Optional[PromptState] = None) -> List[str]:
        query = "SELECT DISTINCT name FROM prompt_versions"
        params = []

        if state is not None:
            query += " WHERE state = ?"
            params.append(PromptState(state).value)

        query += " ORDER BY name"

        with self._get_connection() as conn:
            cursor = conn.execute(query, params)
            return [row["name"] for row in cursor.fetchall()]

    def update_content(self, prompt: PromptVersion) -> PromptVersion:
        prompt.updated_at = datetime.now(timezone.utc)
        with self._get_connection() as conn:
            conn.execute("""
                UPDATE prompt_versions
                SET text = ?, config = ?, commit_message = ?, updated_at = ?
                WHERE id = ?
            """, (
                prompt.text,
                json.dumps(prompt.config or {}),
                prompt.commit_message,
                prompt.updated_at.isoformat(),
                prompt.id,
            ))
            conn.commit()
        return prompt

    def set_state(self, prompt: PromptVersion, state: PromptState) -> Optional[PromptVersion]:
        state = PromptState(state)
        now = datetime.now(timezone.utc)
        demoted = None

        try:
            with self._get_connection() as conn:
                if state == PromptState.PRODUCTION:
                    cursor = conn.execute("""
                        SELECT * FROM prompt_versions
                        WHERE name = ? AND state = 'production' AND id != ?
                    """, (prompt.name, prompt.id))
                    row = cursor.fetchone()
                    if row is not None:
                        demoted = self._row_to_prompt(row)
                        conn.execute("""
                            UPDATE prompt_versions SET state = 'archived', updated_at = ?
                            WHERE id = ?
                        """, (now.isoformat(), demoted.id))
                        demoted.state = PromptState.ARCHIVED
                        demoted.updated_at = now

                conn.execute(
                    "UPDATE prompt_versions SET state = ?, updated_at = ? WHERE id = ?",
                    (state.value, now.isoformat(), prompt.id)
                )
                conn.commit()
        except sqlite3.IntegrityError as e:
            raise DuplicateRecordError(
                f"Only one production version allowed per prompt name ({prompt.name}): {e}"
            ) from e

        prompt.state = state
        prompt.updated_at = now
        return demoted

    def delete(self, name: str, version: int) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM prompt_versions WHERE name = ? AND version = ?",
                (name, version)
            )
            deleted = cursor.rowcount
            conn.commit()
        return deleted > 0

    def _row_to_prompt(self, row: sqlite3.Row) -> PromptVersion:
        """Convert a database row to a PromptVersion object."""
        config = json.loads(row["config"]) if row["config"] else {}

        return PromptVersion(
            id=row["id"],
            name=row["name"],
            version=row["version"],
            state=PromptState(row["state"]),
            text=row["text"],
            config=config if isinstance(config, dict) else {},
            commit_message=row["commit_message"],
            created_by=row["created_by"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
