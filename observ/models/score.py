"""Score model and the owners a score can be attached to."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

class ScoreableKind(str, Enum):
    """Kinds of records a score can belong to."""
    SESSION = "session"
    TRACE = "trace"
    DATASET_RUN_ITEM = "dataset_run_item"

class ScoreDataType(str, Enum):
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    CATEGORICAL = "categorical"

class ScoreSource(str, Enum):
    PROGRAMMATIC = "programmatic"
    MANUAL = "manual"
    LLM_JUDGE = "llm_judge"

@dataclass(frozen=True)
class ScoreableRef:
    """Reference to the owner of a score: a kind tag plus the owner's id."""
    kind: ScoreableKind
    id: Any

    def __post_init__(self):
        object.__setattr__(self, "kind", ScoreableKind(self.kind))

    @classmethod
    def session(cls, session_id: Any) -> "ScoreableRef":
        return cls(ScoreableKind.SESSION, session_id)

    @classmethod
    def trace(cls, trace_id: Any) -> "ScoreableRef":
        return cls(ScoreableKind.TRACE, trace_id)

    @classmethod
    def run_item(cls, run_item_id: Any) -> "ScoreableRef":
        return cls(ScoreableKind.DATASET_RUN_ITEM, run_item_id)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


@dataclass
class Score:
    """A judgment attached to a session, trace or run item.

    A scoreable has at most one score per (name, source) pair.

    Attributes:
        scoreable: Owner of the score.
        name: Dimension being scored (e.g. "exact_match").
        value: Numeric value; booleans are stored as 1.0 / 0.0.
        data_type: How ``value`` should be interpreted.
        source: Who produced the score.
        comment: Optional free-text explanation.
        string_value: Display label for categorical scores.
        observation_id: Optional observation within a trace.
        created_by: Optional author identifier.
        id: Storage identifier, assigned on insert.
    """
    scoreable: ScoreableRef
    name: str
    value: float
    data_type: ScoreDataType = ScoreDataType.NUMERIC
    source: ScoreSource = ScoreSource.PROGRAMMATIC
    comment: Optional[str] = None
    string_value: Optional[str] = None
    observation_id: Optional[int] = None
    created_by: Optional[str] = None
    id: Optional[int] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        self.data_type = ScoreDataType(self.data_type)
        self.source = ScoreSource(self.source)

    def validate(self) -> List[str]:
        """Validate the score.

        Returns:
            List of validation error messages, empty if valid.
        """
        errors = []
        if not self.name:
            errors.append("name can't be blank")
        if self.value is None:
            errors.append("value can't be blank")
        elif isinstance(self.value, bool) or not isinstance(self.value, (int, float)):
            errors.append("value is not a number")
        if self.scoreable.id is None:
            errors.append("scoreable must exist")
        return errors

    @property
    def unique_key(self):
        """Key of the (scoreable, name, source) uniqueness constraint."""
        return (self.scoreable.kind, self.scoreable.id, self.name, self.source)

    @property
    def passed(self) -> bool:
        return self.value >= 0.5

    @property
    def display_value(self) -> str:
        if self.data_type == ScoreDataType.BOOLEAN:
            return "Pass" if self.passed else "Fail"
        if self.data_type == ScoreDataType.CATEGORICAL:
            return self.string_value or str(self.value)
        return f"{self.value:.2f}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "scoreable_type": self.scoreable.kind.value,
            "scoreable_id": self.scoreable.id,
            "name": self.name,
            "value": self.value,
            "data_type": self.data_type.value,
            "source": self.source.value,
            "comment": self.comment,
            "string_value": self.string_value,
            "observation_id": self.observation_id,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
