"""Data models for versioned prompt templates."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from observ.errors import InvalidStateTransitionError
from observ.prompts.template import compile_template, compile_with_validation, extract_placeholders

class PromptState(str, Enum):
    """Lifecycle states of a prompt version."""
    DRAFT = "draft"
    PRODUCTION = "production"
    ARCHIVED = "archived"

class PromptEvent(str, Enum):
    """Events that move a prompt version between states."""
    PROMOTE = "promote"
    DEMOTE = "demote"
    RESTORE = "restore"

# event -> (required source state, target state)
PROMPT_TRANSITIONS: Dict[PromptEvent, Tuple[PromptState, PromptState]] = {
    PromptEvent.PROMOTE: (PromptState.DRAFT, PromptState.PRODUCTION),
    PromptEvent.DEMOTE: (PromptState.PRODUCTION, PromptState.ARCHIVED),
    PromptEvent.RESTORE: (PromptState.ARCHIVED, PromptState.PRODUCTION),
}


def can_transition(event: PromptEvent, current: PromptState) -> bool:
    """Check whether ``event`` is allowed from ``current``."""
    source, _ = PROMPT_TRANSITIONS[PromptEvent(event)]
    return PromptState(current) == source


def transition_target(event: PromptEvent, current: PromptState) -> PromptState:
    """Get the state a prompt moves to when ``event`` fires.

    Raises:
        InvalidStateTransitionError: If the event is not allowed from ``current``.
    """
    event = PromptEvent(event)
    current = PromptState(current)
    source, target = PROMPT_TRANSITIONS[event]
    if current != source:
        raise InvalidStateTransitionError(
            event.value,
            current.value,
            f"Cannot {event.value} a {current.value} prompt (expected {source.value})",
        )
    return target


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PromptVersion:
    """One snapshot of a named prompt template and its model configuration.

    Attributes:
        name: Prompt name; groups the versions.
        version: Version number, unique per name and starting at 1.
        text: Template body.
        state: Lifecycle state.
        config: Model parameters (temperature, max_tokens, model, ...).
        commit_message: Optional description of the change.
        created_by: Optional author identifier.
        id: Storage identifier, assigned on insert.
        created_at: Creation timestamp (UTC).
        updated_at: Last update timestamp (UTC).
    """
    name: str
    version: int
    text: str
    state: PromptState = PromptState.DRAFT
    config: Dict[str, Any] = field(default_factory=dict)
    commit_message: Optional[str] = None
    created_by: Optional[str] = None
    id: Optional[int] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def __post_init__(self):
        self.state = PromptState(self.state)
        if self.config is None:
            self.config = {}

    is_fallback = False

    @property
    def is_draft(self) -> bool:
        return self.state == PromptState.DRAFT

    @property
    def is_production(self) -> bool:
        return self.state == PromptState.PRODUCTION

    @property
    def is_archived(self) -> bool:
        return self.state == PromptState.ARCHIVED

    @property
    def editable(self) -> bool:
        """Only drafts may have their text or config changed."""
        return self.is_draft

    @property
    def immutable(self) -> bool:
        return self.is_production or self.is_archived

    @property
    def can_delete(self) -> bool:
        """Production versions can never be deleted."""
        return self.is_draft or self.is_archived

    @property
    def placeholders(self):
        return extract_placeholders(self.text)

    def compile(self, variables: Optional[Mapping[str, Any]] = None) -> str:
        """Compile the template, leaving unknown tokens in place."""
        return compile_template(self.text, variables)

    def compile_with_validation(self, variables: Optional[Mapping[str, Any]] = None) -> str:
        """Compile the template, raising if required variables are missing."""
        return compile_with_validation(self.text, variables)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "state": self.state.value,
            "text": self.text,
            "config": dict(self.config),
            "commit_message": self.commit_message,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    def to_export_dict(self) -> Dict[str, Any]:
        """Dictionary for export, without storage id and timestamps."""
        data = self.to_dict()
        for key in ("id", "created_at", "updated_at"):
            data.pop(key)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PromptVersion":
        """Create a PromptVersion from a dictionary."""
        created_at = data.get("created_at")
        updated_at = data.get("updated_at")
        return cls(
            id=data.get("id"),
            name=data["name"],
            version=int(data["version"]),
            text=data["text"],
            state=PromptState(data.get("state", PromptState.DRAFT.value)),
            config=dict(data.get("config") or {}),
            commit_message=data.get("commit_message"),
            created_by=data.get("created_by"),
            created_at=datetime.fromisoformat(created_at) if created_at else _now(),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else _now(),
        )

    def __str__(self) -> str:
        return f"{self.name} v{self.version} ({self.state.value})"


@dataclass(frozen=True)
class FallbackPrompt:
    """Stand-in returned by a fetch that found nothing but had fallback text.

    Mirrors the read interface of :class:`PromptVersion` so callers can use
    either. ``version`` is None and ``state`` is ``"fallback"``.
    """
    name: str
    text: str

    is_fallback = True
    version = None
    id = None
    state = "fallback"
    commit_message = None
    created_by = None

    @property
    def config(self) -> Dict[str, Any]:
        return {}

    @property
    def is_draft(self) -> bool:
        return False

    @property
    def is_production(self) -> bool:
        return False

    @property
    def is_archived(self) -> bool:
        return False

    def compile(self, variables: Optional[Mapping[str, Any]] = None) -> str:
        """Fallback text is returned as-is, without substitution."""
        return self.text

    def compile_with_validation(self, variables: Optional[Mapping[str, Any]] = None) -> str:
        return self.text

    def __str__(self) -> str:
        return f"FallbackPrompt({self.name})"


@dataclass
class TransitionResult:
    """Outcome of a non-strict state transition request.

    Attributes:
        prompt: The prompt version after the request.
        event: The requested event.
        applied: Whether the state actually changed.
        from_state: State before the request.
        to_state: State after the request.
        message: Human-readable explanation.
        demoted: Version that was archived to make room in production, if any.
    """
    prompt: PromptVersion
    event: PromptEvent
    applied: bool
    from_state: PromptState
    to_state: PromptState
    message: str = ""
    demoted: Optional[PromptVersion] = None
