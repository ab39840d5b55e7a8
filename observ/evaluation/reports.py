"""Report generation for dataset runs."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from observ.evaluation.dataset_runs import DatasetRunService
from observ.evaluation.metrics import ScoreStatistics
from observ.models.dataset import Dataset, DatasetRun, DatasetRunItem


@dataclass
class RunReport:
    """Everything a dataset run report shows.

    Attributes:
        dataset: The dataset that was run.
        run: The run, with final counters.
        score_statistics: Aggregates per score name.
        pass_rate: Share of passing scores across all names (percent).
        items_with_scores: Run items that have at least one score.
        failed_items: Run items that recorded an error.
        duration_seconds: Wall time of the run, once finished.
        generated_at: When the report was built.
    """
    dataset: Dataset
    run: DatasetRun
    score_statistics: Dict[str, ScoreStatistics] = field(default_factory=dict)
    pass_rate: Optional[float] = None
    items_with_scores: int = 0
    failed_items: List[DatasetRunItem] = field(default_factory=list)
    duration_seconds: Optional[float] = None
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def collect(cls, service: DatasetRunService, run: DatasetRun) -> "RunReport":
        """Gather report data for a run from the service."""
        return cls(
            dataset=service.get_dataset(run.dataset_id),
            run=run,
            score_statistics=service.score_statistics(run),
            pass_rate=service.pass_rate(run),
            items_with_scores=service.items_with_scores_count(run),
            failed_items=service.failed_run_items(run),
            duration_seconds=service.duration_seconds(run),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "dataset": self.dataset.to_dict(),
            "run": self.run.to_dict(),
            "scores": {name: stats.to_dict() for name, stats in self.score_statistics.items()},
            "pass_rate": self.pass_rate,
            "items_with_scores": self.items_with_scores,
            "items_without_scores": self.run.total_items - self.items_with_scores,
            "failed_items": [
                {"id": ri.id, "dataset_item_id": ri.dataset_item_id, "error": ri.error}
                for ri in self.failed_items
            ],
            "duration_seconds": self.duration_seconds,
            "generated_at": self.generated_at.isoformat(),
        }


class ReportGenerator:
    """Generates dataset run reports in Markdown or JSON."""

    def __init__(self, output_dir: Optional[Path] = None):
        """Initialize the report generator.

        Args:
            output_dir: Directory for output files. Defaults to current directory.
        """
        self.output_dir = Path(output_dir) if output_dir else Path(".")

    def generate_markdown_report(self, report: RunReport, include_failures: bool = True) -> str:
        """Generate a Markdown report.

        Args:
            report: The collected run data.
            include_failures: Whether to list failed items.

        Returns:
            Markdown formatted string.
        """
        run = report.run
        lines = []

        lines.append(f"# Dataset Run Report: {run.name}")
        lines.append("")
        lines.append(f"**Dataset:** {report.dataset.name}")
        lines.append(f"**Status:** {run.status.value}")
        lines.append(f"**Generated:** {report.generated_at.strftime('%Y-%m-%d %H:%M:%S UTC')}")
        if report.duration_seconds is not None:
            lines.append(f"**Duration:** {report.duration_seconds}s")
        lines.append("")

        lines.append("## Summary")
        lines.append("")
        lines.append("| Metric | Value |")
        lines.append("|--------|-------|")
        lines.append(f"| Total Items | {run.total_items} |")
        lines.append(f"| Completed | {run.completed_items} ({run.success_rate}%) |")
        lines.append(f"| Failed | {run.failed_items} ({run.failure_rate}%) |")
        lines.append(f"| Pending | {run.pending_items_count} |")
        lines.append(f"| Total Tokens | {run.total_tokens} |")
        lines.append(f"| Total Cost | ${run.total_cost:.4f} |")
        lines.append(f"| Items Scored | {report.items_with_scores} |")
        if report.pass_rate is not None:
            lines.append(f"| Pass Rate | **{report.pass_rate}%** |")
        lines.append("")

        if report.score_statistics:
            lines.append("## Scores")
            lines.append("")
            lines.append("| Score | Count | Average | Pass Rate | Min | Max |")
            lines.append("|-------|-------|---------|-----------|-----|-----|")
            for name, stats in report.score_statistics.items():
                lines.append(
                    f"| {name} | {stats.count} | {stats.average:.4f} | {stats.pass_rate}% | "
                    f"{stats.minimum:.2f} | {stats.maximum:.2f} |"
                )
            lines.append("")

        if include_failures and report.failed_items:
            lines.append("## Failed Items")
            lines.append("")
            for run_item in report.failed_items:
                lines.append(f"### Item {run_item.dataset_item_id}")
                lines.append("")
                if run_item.dataset_item is not None:
                    lines.append(f"**Input:** {run_item.dataset_item.input_preview()}")
                lines.append(f"**Error:** `{run_item.error}`")
                lines.append("")

        return "\n".join(lines)

    def generate_json_report(self, report: RunReport) -> str:
        """Generate a JSON report."""
        return json.dumps(report.to_dict(), indent=2, default=str)

    def save_report(self, content: str, filename: str, subdir: Optional[str] = None) -> Path:
        """Save a report to a file.

        Args:
            content: Report content.
            filename: Output filename.
            subdir: Optional subdirectory within output_dir.

        Returns:
            Path to the saved file.
        """
        output_path = self.output_dir
        if subdir:
            output_path = output_path / subdir

        output_path.mkdir(parents=True, exist_ok=True)

        file_path = output_path / filename
        with open(file_path, "w", encoding="utf-8") as f:
            f.write(content)

        return file_path

    def save_run_report(self, report: RunReport, format: str = "markdown") -> Path:
        """Save a run report with automatic naming."""
        timestamp = report.generated_at.strftime("%Y%m%d_%H%M%S")
        name_safe = f"{report.dataset.name}_{report.run.name}".replace("/", "_").replace("\\", "_")

        if format == "markdown":
            content = self.generate_markdown_report(report)
            filename = f"run_{name_safe}_{timestamp}.md"
        else:
            content = self.generate_json_report(report)
            filename = f"run_{name_safe}_{timestamp}.json"

        return self.save_report(content, filename, subdir="run_reports")
