"""Score aggregation for dataset runs."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from observ.models.score import Score

PASS_THRESHOLD = 0.5


@dataclass
class ScoreStatistics:
    """Aggregate of the scores sharing one name.

    Attributes:
        name: Score name.
        values: Score values, in storage order.
    """
    name: str
    values: List[float] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.values)

    @property
    def average(self) -> Optional[float]:
        """Mean value rounded to 4 places, None without scores."""
        if not self.values:
            return None
        return round(sum(self.values) / len(self.values), 4)

    @property
    def passed(self) -> int:
        """Number of values at or above the pass threshold."""
        return sum(1 for v in self.values if v >= PASS_THRESHOLD)

    @property
    def pass_rate(self) -> Optional[float]:
        """Percentage of passing values rounded to 1 place, None without scores."""
        if not self.values:
            return None
        return round(self.passed / len(self.values) * 100, 1)

    @property
    def minimum(self) -> Optional[float]:
        return min(self.values) if self.values else None

    @property
    def maximum(self) -> Optional[float]:
        return max(self.values) if self.values else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "count": self.count,
            "average": self.average,
            "pass_rate": self.pass_rate,
            "min": self.minimum,
            "max": self.maximum,
        }

    @classmethod
    def from_scores(cls, name: str, scores: List[Score]) -> "ScoreStatistics":
        """Collect the values of the scores named ``name``."""
        return cls(name=name, values=[float(s.value) for s in scores if s.name == name])


def group_scores(scores: List[Score]) -> Dict[str, ScoreStatistics]:
    """Group scores by name, keeping first-seen order of names."""
    grouped: Dict[str, ScoreStatistics] = {}
    for score in scores:
        grouped.setdefault(score.name, ScoreStatistics(name=score.name))
        grouped[score.name].values.append(float(score.value))
    return grouped


def overall_pass_rate(scores: List[Score]) -> Optional[float]:
    """Percentage of scores at or above the pass threshold, across all names."""
    return ScoreStatistics(name="*", values=[float(s.value) for s in scores]).pass_rate
