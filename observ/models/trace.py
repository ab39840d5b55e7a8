"""Execution trace model."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

@dataclass
class Trace:
    """Record of one agent execution.

    Cost and token metrics are supplied by whoever executed the work; the
    trace only stores them.

    Attributes:
        name: Trace name (e.g. "dataset_evaluation").
        input: Input passed to the agent.
        output: Output returned by the agent, None until finalized.
        total_cost: Cost of the execution in USD.
        total_tokens: Tokens consumed by the execution.
        start_time: When execution started (UTC).
        end_time: When execution finished (UTC), None while running.
        metadata: Free-form context (dataset ids, error details, model).
        tags: Labels for filtering.
        session_id: Optional grouping identifier.
        id: Storage identifier, assigned on insert.
    """
    name: str
    input: Any = None
    output: Any = None
    total_cost: float = 0.0
    total_tokens: int = 0
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)
    session_id: Optional[str] = None
    id: Optional[int] = None

    @property
    def duration_ms(self) -> Optional[float]:
        """Execution time in milliseconds, None if not finalized."""
        if self.end_time is None:
            return None
        return round((self.end_time - self.start_time).total_seconds() * 1000, 2)

    @property
    def finished(self) -> bool:
        return self.end_time is not None

    def finalize(
        self,
        output: Any = None,
        metadata: Optional[Dict[str, Any]] = None,
        total_cost: Optional[float] = None,
        total_tokens: Optional[int] = None,
    ) -> None:
        """Record the result of the execution and stamp the end time."""
        self.output = output
        if metadata:
            self.metadata = {**self.metadata, **metadata}
        if total_cost is not None:
            self.total_cost = total_cost
        if total_tokens is not None:
            self.total_tokens = total_tokens
        self.end_time = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "input": self.input,
            "output": self.output,
            "total_cost": self.total_cost,
            "total_tokens": self.total_tokens,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "metadata": self.metadata,
            "tags": self.tags,
            "session_id": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Trace":
        """Create a Trace from a dictionary."""
        end_time = data.get("end_time")
        return cls(
            id=data.get("id"),
            name=data["name"],
            input=data.get("input"),
            output=data.get("output"),
            total_cost=data.get("total_cost") or 0.0,
            total_tokens=data.get("total_tokens") or 0,
            start_time=datetime.fromisoformat(data["start_time"]),
            end_time=datetime.fromisoformat(end_time) if end_time else None,
            metadata=data.get("metadata") or {},
            tags=data.get("tags") or [],
            session_id=data.get("session_id"),
        )
