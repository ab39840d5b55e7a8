"""SQLite-based implementation of the evaluation repository interface."""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from observ.errors import DuplicateRecordError, ValidationError
from observ.interfaces.evaluation_repository import IEvaluationRepository
from observ.models.dataset import (
    Dataset,
    DatasetItem,
    DatasetRun,
    DatasetRunItem,
    ItemStatus,
    RunStatus,
)
from observ.models.score import Score, ScoreableKind, ScoreableRef, ScoreDataType, ScoreSource
from observ.models.trace import Trace


def _dump(value: Any) -> Optional[str]:
    """Encode a structured value for a TEXT column, keeping None as NULL."""
    return None if value is None else json.dumps(value, default=str)


def _load(value: Optional[str]) -> Any:
    return None if value is None else json.loads(value)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteEvaluationRepository(IEvaluationRepository):
    """SQLite-based storage for datasets, runs, traces and scores.

    Structured values (inputs, outputs, metadata) are stored as JSON text.
    Uniqueness rules are declared as table constraints and surface as
    DuplicateRecordError.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str = "data/observ.db"):
        """Initialize the SQLite evaluation repository.

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
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_database(self) -> None:
        """Initialize the database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS datasets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    agent_reference TEXT NOT NULL DEFAULT '',
                    description TEXT,
                    metadata TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS dataset_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    dataset_id INTEGER NOT NULL REFERENCES datasets(id) ON DELETE CASCADE,
                    input TEXT NOT NULL,
                    expected_output TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    source_trace_id INTEGER,
                    metadata TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS dataset_runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    dataset_id INTEGER NOT NULL REFERENCES datasets(id) ON DELETE CASCADE,
                    name TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    total_items INTEGER NOT NULL DEFAULT 0,
                    completed_items INTEGER NOT NULL DEFAULT 0,
                    failed_items INTEGER NOT NULL DEFAULT 0,
                    total_cost REAL NOT NULL DEFAULT 0,
                    total_tokens INTEGER NOT NULL DEFAULT 0,
                    metadata TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (dataset_id, name)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS traces (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    input TEXT,
                    output TEXT,
                    total_cost REAL NOT NULL DEFAULT 0,
                    total_tokens INTEGER NOT NULL DEFAULT 0,
                    start_time TEXT NOT NULL,
                    end_time TEXT,
                    metadata TEXT,
                    tags TEXT,
                    session_id TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS dataset_run_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    dataset_run_id INTEGER NOT NULL REFERENCES dataset_runs(id) ON DELETE CASCADE,
                    dataset_item_id INTEGER NOT NULL REFERENCES dataset_items(id) ON DELETE CASCADE,
                    trace_id INTEGER REFERENCES traces(id),
                    error TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (dataset_run_id, dataset_item_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS scores (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    scoreable_type TEXT NOT NULL,
                    scoreable_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    value REAL NOT NULL,
                    data_type TEXT NOT NULL DEFAULT 'numeric',
                    source TEXT NOT NULL DEFAULT 'programmatic',
                    comment TEXT,
                    string_value TEXT,
                    observation_id INTEGER,
                    created_by TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (scoreable_type, scoreable_id, name, source)
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_items_dataset
                ON dataset_items(dataset_id, status)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_run_items_run
                ON dataset_run_items(dataset_run_id)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_scores_scoreable
                ON scores(scoreable_type, scoreable_id)
            """)

            conn.commit()

    # ============================================================
    # Datasets and items
    # ============================================================

    def create_dataset(self, dataset: Dataset) -> Dataset:
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    INSERT INTO datasets (name, agent_reference, description, metadata, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (
                    dataset.name,
                    dataset.agent_reference,
                    dataset.description,
                    _dump(dataset.metadata),
                    dataset.created_at.isoformat(),
                ))
                conn.commit()
                dataset.id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise DuplicateRecordError(f"Dataset name '{dataset.name}' has already been taken") from e
        return dataset

    def get_dataset(self, dataset_id: int) -> Optional[Dataset]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM datasets WHERE id = ?", (dataset_id,)).fetchone()
        return self._row_to_dataset(row) if row else None

    def get_dataset_by_name(self, name: str) -> Optional[Dataset]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM datasets WHERE name = ?", (name,)).fetchone()
        return self._row_to_dataset(row) if row else None

    def list_datasets(self) -> List[Dataset]:
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT * FROM datasets ORDER BY name")
            return [self._row_to_dataset(row) for row in cursor.fetchall()]

    def add_item(self, item: DatasetItem) -> DatasetItem:
        if item.input is None:
            raise ValidationError(["input can't be blank"])

        try:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    INSERT INTO dataset_items (
                        dataset_id, input, expected_output, status,
                        source_trace_id, metadata, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (
                    item.dataset_id,
                    _dump(item.input),
                    _dump(item.expected_output),
                    item.status.value,
                    item.source_trace_id,
                    _dump(item.metadata),
                    item.created_at.isoformat(),
                ))
                conn.commit()
                item.id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise ValidationError([f"dataset {item.dataset_id} must exist"]) from e
        return item

    def get_item(self, item_id: int) -> Optional[DatasetItem]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM dataset_items WHERE id = ?", (item_id,)).fetchone()
        return self._row_to_item(row) if row else None

    def list_items(self, dataset_id: int, status: Optional[ItemStatus] = None) -> List[DatasetItem]:
        query = "SELECT * FROM dataset_items WHERE dataset_id = ?"
        params: List[Any] = [dataset_id]

        if status is not None:
            query += " AND status = ?"
            params.append(ItemStatus(status).value)

        query += " ORDER BY id ASC"

        with self._get_connection() as conn:
            cursor = conn.execute(query, params)
            return [self._row_to_item(row) for row in cursor.fetchall()]

    def update_item(self, item: DatasetItem) -> DatasetItem:
        with self._get_connection() as conn:
            conn.execute("""
                UPDATE dataset_items
                SET input = ?, expected_output = ?, status = ?, source_trace_id = ?, metadata = ?
                WHERE id = ?
            """, (
                _dump(item.input),
                _dump(item.expected_output),
                item.status.value,
                item.source_trace_id,
                _dump(item.metadata),
                item.id,
            ))
            conn.commit()
        return item

    # ============================================================
    # Runs and run items
    # ============================================================

    def create_run(self, run: DatasetRun) -> DatasetRun:
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    INSERT INTO dataset_runs (
                        dataset_id, name, status, total_items, completed_items,
                        failed_items, total_cost, total_tokens, metadata,
                        created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    run.dataset_id,
                    run.name,
                    run.status.value,
                    run.total_items,
                    run.completed_items,
                    run.failed_items,
                    run.total_cost,
                    run.total_tokens,
                    _dump(run.metadata),
                    run.created_at.isoformat(),
                    run.updated_at.isoformat(),
                ))
                conn.commit()
                run.id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise DuplicateRecordError(
                f"Run name '{run.name}' has already been taken for dataset {run.dataset_id}"
            ) from e
        return run

    def get_run(self, run_id: int) -> Optional[DatasetRun]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM dataset_runs WHERE id = ?", (run_id,)).fetchone()
        return self._row_to_run(row) if row else None

    def list_runs(self, dataset_id: int) -> List[DatasetRun]:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM dataset_runs WHERE dataset_id = ? ORDER BY id DESC",
                (dataset_id,)
            )
            return [self._row_to_run(row) for row in cursor.fetchall()]

    def update_run(self, run: DatasetRun) -> DatasetRun:
        run.updated_at = datetime.now(timezone.utc)
        with self._get_connection() as conn:
            conn.execute("""
                UPDATE dataset_runs
                SET status = ?, total_items = ?, completed_items = ?, failed_items = ?,
                    total_cost = ?, total_tokens = ?, metadata = ?, updated_at = ?
                WHERE id = ?
            """, (
                run.status.value,
                run.total_items,
                run.completed_items,
                run.failed_items,
                run.total_cost,
                run.total_tokens,
                _dump(run.metadata),
                run.updated_at.isoformat(),
                run.id,
            ))
            conn.commit()
        return run

    def get_or_create_run_item(self, run_id: int, item_id: int) -> Tuple[DatasetRunItem, bool]:
        now = _now_iso()
        with self._get_connection() as conn:
            cursor = conn.execute("""
                INSERT OR IGNORE INTO dataset_run_items (
                    dataset_run_id, dataset_item_id, created_at, updated_at
                ) VALUES (?, ?, ?, ?)
            """, (run_id, item_id, now, now))
            created = cursor.rowcount > 0
            conn.commit()

            row = conn.execute("""
                SELECT * FROM dataset_run_items
                WHERE dataset_run_id = ? AND dataset_item_id = ?
            """, (run_id, item_id)).fetchone()
            run_item = self._hydrate_run_item(conn, row)

        return run_item, created

    def get_run_item(self, run_item_id: int) -> Optional[DatasetRunItem]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM dataset_run_items WHERE id = ?", (run_item_id,)
            ).fetchone()
            return self._hydrate_run_item(conn, row) if row else None

    def list_run_items(self, run_id: int) -> List[DatasetRunItem]:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM dataset_run_items WHERE dataset_run_id = ? ORDER BY id ASC",
                (run_id,)
            )
            return [self._hydrate_run_item(conn, row) for row in cursor.fetchall()]

    def update_run_item(self, run_item: DatasetRunItem) -> DatasetRunItem:
        run_item.updated_at = datetime.now(timezone.utc)
        with self._get_connection() as conn:
            conn.execute("""
                UPDATE dataset_run_items SET trace_id = ?, error = ?, updated_at = ?
                WHERE id = ?
            """, (
                run_item.trace_id,
                run_item.error,
                run_item.updated_at.isoformat(),
                run_item.id,
            ))
            conn.commit()
        return run_item

    # ============================================================
    # Traces
    # ============================================================

    def save_trace(self, trace: Trace) -> Trace:
        values = (
            trace.name,
            _dump(trace.input),
            _dump(trace.output),
            trace.total_cost,
            trace.total_tokens,
            trace.start_time.isoformat(),
            trace.end_time.isoformat() if trace.end_time else None,
            _dump(trace.metadata),
            _dump(trace.tags),
            trace.session_id,
        )

        with self._get_connection() as conn:
            if trace.id is None:
                cursor = conn.execute("""
                    INSERT INTO traces (
                        name, input, output, total_cost, total_tokens,
                        start_time, end_time, metadata, tags, session_id
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, values)
                trace.id = cursor.lastrowid
            else:
                conn.execute("""
                    UPDATE traces
                    SET name = ?, input = ?, output = ?, total_cost = ?, total_tokens = ?,
                        start_time = ?, end_time = ?, metadata = ?, tags = ?, session_id = ?
                    WHERE id = ?
                """, values + (trace.id,))
            conn.commit()
        return trace

    def get_trace(self, trace_id: int) -> Optional[Trace]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM traces WHERE id = ?", (trace_id,)).fetchone()
        return self._row_to_trace(row) if row else None

    # ============================================================
    # Scores
    # ============================================================

    def create_score(self, score: Score) -> Score:
        errors = score.validate()
        if errors:
            raise ValidationError(errors)

        try:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    INSERT INTO scores (
                        scoreable_type, scoreable_id, name, value, data_type, source,
                        comment, string_value, observation_id, created_by,
                        created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    score.scoreable.kind.value,
                    str(score.scoreable.id),
                    score.name,
                    float(score.value),
                    score.data_type.value,
                    score.source.value,
                    score.comment,
                    score.string_value,
                    score.observation_id,
                    score.created_by,
                    score.created_at.isoformat(),
                    score.updated_at.isoformat(),
                ))
                conn.commit()
                score.id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise DuplicateRecordError(
                f"{score.scoreable} already has a score with this name and source "
                f"({score.name}, {score.source.value})"
            ) from e
        return score

    def upsert_score(self, score: Score) -> Score:
        errors = score.validate()
        if errors:
            raise ValidationError(errors)

        existing = self.get_score(score.scoreable, score.name, score.source)
        if existing is None:
            try:
                return self.create_score(score)
            except DuplicateRecordError:
                # Lost a race with another writer; fall through to update.
                existing = self.get_score(score.scoreable, score.name, score.source)

        score.id = existing.id
        score.created_at = existing.created_at
        score.updated_at = datetime.now(timezone.utc)

        with self._get_connection() as conn:
            conn.execute("""
                UPDATE scores
                SET value = ?, data_type = ?, comment = ?, string_value = ?,
                    observation_id = ?, created_by = ?, updated_at = ?
                WHERE id = ?
            """, (
                float(score.value),
                score.data_type.value,
                score.comment,
                score.string_value,
                score.observation_id,
                score.created_by,
                score.updated_at.isoformat(),
                score.id,
            ))
            conn.commit()
        return score

    def get_score(self, scoreable: ScoreableRef, name: str, source: ScoreSource) -> Optional[Score]:
        with self._get_connection() as conn:
            row = conn.execute("""
                SELECT * FROM scores
                WHERE scoreable_type = ? AND scoreable_id = ? AND name = ? AND source = ?
            """, (
                scoreable.kind.value,
                str(scoreable.id),
                name,
                ScoreSource(source).value,
            )).fetchone()
        return self._row_to_score(row, scoreable) if row else None

    def list_scores(self, scoreable: ScoreableRef) -> List[Score]:
        with self._get_connection() as conn:
            cursor = conn.execute("""
                SELECT * FROM scores
                WHERE scoreable_type = ? AND scoreable_id = ?
                ORDER BY id ASC
            """, (scoreable.kind.value, str(scoreable.id)))
            return [self._row_to_score(row, scoreable) for row in cursor.fetchall()]

    def list_scores_for_run(self, run_id: int) -> List[Score]:
        with self._get_connection() as conn:
            cursor = conn.execute("""
                SELECT s.* FROM scores s
                JOIN dataset_run_items ri
                  ON s.scoreable_type = ? AND s.scoreable_id = CAST(ri.id AS TEXT)
                WHERE ri.dataset_run_id = ?
                ORDER BY s.id ASC
            """, (ScoreableKind.DATASET_RUN_ITEM.value, run_id))
            return [
                self._row_to_score(row, ScoreableRef.run_item(int(row["scoreable_id"])))
                for row in cursor.fetchall()
            ]

    # ============================================================
    # Row conversion
    # ============================================================

    def _hydrate_run_item(self, conn: sqlite3.Connection, row: sqlite3.Row) -> DatasetRunItem:
        """Convert a run item row and load its dataset item and trace."""
        run_item = DatasetRunItem(
            id=row["id"],
            dataset_run_id=row["dataset_run_id"],
            dataset_item_id=row["dataset_item_id"],
            trace_id=row["trace_id"],
            error=row["error"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

        item_row = conn.execute(
            "SELECT * FROM dataset_items WHERE id = ?", (run_item.dataset_item_id,)
        ).fetchone()
        if item_row is not None:
            run_item.dataset_item = self._row_to_item(item_row)

        if run_item.trace_id is not None:
            trace_row = conn.execute(
                "SELECT * FROM traces WHERE id = ?", (run_item.trace_id,)
            ).fetchone()
            if trace_row is not None:
                run_item.trace = self._row_to_trace(trace_row)

        return run_item

    def _row_to_dataset(self, row: sqlite3.Row) -> Dataset:
        return Dataset(
            id=row["id"],
            name=row["name"],
            agent_reference=row["agent_reference"],
            description=row["description"] or "",
            metadata=_load(row["metadata"]) or {},
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _row_to_item(self, row: sqlite3.Row) -> DatasetItem:
        return DatasetItem(
            id=row["id"],
            dataset_id=row["dataset_id"],
            input=_load(row["input"]),
            expected_output=_load(row["expected_output"]),
            status=ItemStatus(row["status"]),
            source_trace_id=row["source_trace_id"],
            metadata=_load(row["metadata"]) or {},
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _row_to_run(self, row: sqlite3.Row) -> DatasetRun:
        return DatasetRun(
            id=row["id"],
            dataset_id=row["dataset_id"],
            name=row["name"],
            status=RunStatus(row["status"]),
            total_items=row["total_items"],
            completed_items=row["completed_items"],
            failed_items=row["failed_items"],
            total_cost=row["total_cost"],
            total_tokens=row["total_tokens"],
            metadata=_load(row["metadata"]) or {},
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _row_to_trace(self, row: sqlite3.Row) -> Trace:
        data: Dict[str, Any] = {
            "id": row["id"],
            "name": row["name"],
            "input": _load(row["input"]),
            "output": _load(row["output"]),
            "total_cost": row["total_cost"],
            "total_tokens": row["total_tokens"],
            "start_time": row["start_time"],
            "end_time": row["end_time"],
            "metadata": _load(row["metadata"]),
            "tags": _load(row["tags"]),
            "session_id": row["session_id"],
        }
        return Trace.from_dict(data)

    def _row_to_score(self, row: sqlite3.Row, scoreable: ScoreableRef) -> Score:
        return Score(
            id=row["id"],
            scoreable=scoreable,
            name=row["name"],
            value=row["value"],
            data_type=ScoreDataType(row["data_type"]),
            source=ScoreSource(row["source"]),
            comment=row["comment"],
            string_value=row["string_value"],
            observation_id=row["observation_id"],
            created_by=row["created_by"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
