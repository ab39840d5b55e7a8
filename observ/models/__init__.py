"""Data models for Observ."""

from observ.models.prompt import (
    PromptState,
    PromptEvent,
    PromptVersion,
    FallbackPrompt,
    TransitionResult,
    PROMPT_TRANSITIONS,
)
from observ.models.dataset import (
    Dataset,
    DatasetItem,
    DatasetRun,
    DatasetRunItem,
    ItemStatus,
    RunStatus,
    RunItemStatus,
    RUN_TRANSITIONS,
)
from observ.models.score import Score, ScoreableRef, ScoreableKind, ScoreDataType, ScoreSource
from observ.models.trace import Trace

__all__ = [
    "PromptState",
    "PromptEvent",
    "PromptVersion",
    "FallbackPrompt",
    "TransitionResult",
    "PROMPT_TRANSITIONS",
    "Dataset",
    "DatasetItem",
    "DatasetRun",
    "DatasetRunItem",
    "ItemStatus",
    "RunStatus",
    "RunItemStatus",
    "RUN_TRANSITIONS",
    "Score",
    "ScoreableRef",
    "ScoreableKind",
    "ScoreDataType",
    "ScoreSource",
    "Trace",
]
