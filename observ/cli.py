"""Command line interface for prompt management and dataset runs."""

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv

from observ.agents import build_default_registry
from observ.config import Config, get_sample_env_file, load_config
from observ.errors import ObservError, ValidationError
from observ.evaluation.dataset_runner import DatasetRunner
from observ.evaluation.dataset_runs import DatasetRunService
from observ.evaluation.evaluator_runner import EvaluatorRunner
from observ.evaluation.reports import ReportGenerator, RunReport
from observ.llm_logging.llm_logger import LLMLogger
from observ.prompts.store import PromptVersionStore
from observ.storage.sqlite_evaluation_repository import SQLiteEvaluationRepository
from observ.storage.sqlite_prompt_repository import SQLitePromptRepository


def build_store(config: Config) -> PromptVersionStore:
    return PromptVersionStore(
        SQLitePromptRepository(config.storage.db_path),
        settings=config.prompts,
    )


def parse_json_option(option: str, value: Optional[str]) -> Any:
    """Parse a JSON command line option, None when it was not given."""
    if not value:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise ValidationError([f"{option} is not valid JSON: {e}"]) from e


def print_run_summary(report: RunReport) -> None:
    """Print a short summary of a run to stdout."""
    run = report.run
    print(f"\n{'=' * 50}")
    print(f"Run: {report.dataset.name} / {run.name} ({run.status.value})")
    print(f"{'=' * 50}")
    print(f"Items:    {run.completed_items}/{run.total_items} succeeded, {run.failed_items} failed")
    print(f"Tokens:   {run.total_tokens}")
    print(f"Cost:     ${run.total_cost:.4f}")
    if report.pass_rate is not None:
        print(f"Pass rate: {report.pass_rate}%")
    for name, stats in report.score_statistics.items():
        print(f"  {name}: avg={stats.average:.4f} pass={stats.pass_rate}%")


def _prompts_command(args: argparse.Namespace, config: Config) -> int:
    store = build_store(config)

    if args.action == "list":
        names = store.names(args.state)
        if not names:
            print("No prompts found")
        for name in names:
            production = store.lookup(name, state="production")
            label = f"v{production.version}" if production else "no production version"
            print(f"  {name} ({label})")

    elif args.action == "show":
        prompt = store.fetch(args.name, version=args.version, state=args.state)
        print(json.dumps(prompt.to_dict(), indent=2, default=str))

    elif args.action == "create":
        text = args.file.read_text(encoding="utf-8") if args.file else args.text
        config_data = parse_json_option("--config", args.config)
        prompt = store.create_version(
            name=args.name,
            text=text,
            config=config_data,
            commit_message=args.message,
            created_by=args.author,
            promote_to_production=args.promote,
        )
        print(f"Created {prompt}")

    elif args.action in ("promote", "demote", "restore"):
        result = getattr(store, args.action)(args.name, args.version)
        print(result.message)
        return 0 if result.applied else 1

    elif args.action == "export":
        output = store.export_yaml(args.name, version=args.version)
        if args.output:
            args.output.write_text(output, encoding="utf-8")
            print(f"Exported {args.name} to {args.output}")
        else:
            print(output)

    elif args.action == "import":
        created = store.import_yaml(args.file.read_text(encoding="utf-8"), created_by=args.author)
        for prompt in created:
            print(f"Imported {prompt}")

    elif args.action == "usage":
        try:
            day = datetime.strptime(args.date, "%Y-%m-%d") if args.date else datetime.now(timezone.utc)
        except ValueError as e:
            raise ValidationError([f"--date must be YYYY-MM-DD: {e}"]) from e
        usage = LLMLogger(log_dir=config.storage.logs_dir, log_to_console=False).prompt_usage(day)
        if not usage:
            print("No prompt traffic logged")
        for label, counts in sorted(usage.items()):
            print(
                f"  {label}: {counts['requests']} requests, "
                f"{counts['errors']} errors, {counts['tokens']} tokens"
            )

    return 0


def _config_command(args: argparse.Namespace, config: Config) -> int:
    if args.action == "sample-env":
        print(get_sample_env_file())
        return 0

    errors = config.openai.validate()
    for error in errors:
        print(f"Configuration error: {error}")
    if errors:
        return 1
    print(f"Configuration OK (model: {config.openai.default_model}, database: {config.storage.db_path})")
    return 0


def _datasets_command(args: argparse.Namespace, config: Config) -> int:
    repository = SQLiteEvaluationRepository(config.storage.db_path)
    service = DatasetRunService(repository)

    dataset = repository.get_dataset_by_name(args.dataset)
    if dataset is None:
        print(f"Dataset '{args.dataset}' not found")
        return 1

    registry = build_default_registry(
        build_store(config),
        config=config.openai,
        logger=LLMLogger(log_dir=config.storage.logs_dir, log_to_console=config.log_to_console),
    )
    runner = DatasetRunner(repository, registry=registry)

    run = service.create_run(dataset, args.run_name)
    run = runner.run(run, evaluate=args.evaluate)

    report = RunReport.collect(service, run)
    print_run_summary(report)

    if args.min_pass_rate is not None:
        if report.pass_rate is None or report.pass_rate < args.min_pass_rate:
            print(f"\nFAILED: pass rate {report.pass_rate} is below minimum {args.min_pass_rate}")
            return 1
        print(f"\nPASSED: pass rate {report.pass_rate} meets minimum {args.min_pass_rate}")
    return 0


def _runs_command(args: argparse.Namespace, config: Config) -> int:
    repository = SQLiteEvaluationRepository(config.storage.db_path)
    service = DatasetRunService(repository)
    run = service.get_run(args.run_id)

    if args.action == "evaluate":
        evaluator_configs = parse_json_option("--evaluators", args.evaluators)
        summary = EvaluatorRunner(repository).run(run, evaluator_configs=evaluator_configs)
        print(json.dumps(summary.to_dict(), indent=2))
        return 1 if summary.error_count else 0

    report = RunReport.collect(service, run)
    generator = ReportGenerator(output_dir=args.output)
    if args.no_save:
        if args.format == "markdown":
            print(generator.generate_markdown_report(report))
        else:
            print(generator.generate_json_report(report))
    else:
        path = generator.save_run_report(report, format=args.format)
        print(f"Report saved to: {path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="observ",
        description="Manage prompt versions and run dataset evaluations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create a prompt version and promote it
  observ prompts create --name greeting --text "Hello {{name}}" --promote

  # Run a dataset and score the results
  observ datasets run --dataset support_questions --run-name nightly --evaluate

  # Write a Markdown report for run 3
  observ runs report --run-id 3 --output results
        """
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        help="Path to .env file with configuration"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # prompts
    prompts_parser = subparsers.add_parser("prompts", help="Manage prompt versions")
    prompts_sub = prompts_parser.add_subparsers(dest="action", required=True)

    list_parser = prompts_sub.add_parser("list", help="List prompt names")
    list_parser.add_argument("--state", choices=["draft", "production", "archived"])

    show_parser = prompts_sub.add_parser("show", help="Show a prompt version")
    show_parser.add_argument("--name", "-n", required=True)
    show_parser.add_argument("--version", "-v", type=int)
    show_parser.add_argument("--state", choices=["draft", "production", "archived"])

    create_parser = prompts_sub.add_parser("create", help="Create a new draft version")
    create_parser.add_argument("--name", "-n", required=True)
    text_group = create_parser.add_mutually_exclusive_group(required=True)
    text_group.add_argument("--text", "-t", help="Template text")
    text_group.add_argument("--file", "-f", type=Path, help="File containing the template text")
    create_parser.add_argument("--config", "-c", help="Model config as a JSON object")
    create_parser.add_argument("--message", "-m", help="Commit message")
    create_parser.add_argument("--author", help="Author identifier")
    create_parser.add_argument(
        "--promote",
        action="store_true",
        help="Promote the new version to production"
    )

    for action, help_text in (
        ("promote", "Promote a draft to production"),
        ("demote", "Archive a production version"),
        ("restore", "Restore an archived version to production"),
    ):
        transition_parser = prompts_sub.add_parser(action, help=help_text)
        transition_parser.add_argument("--name", "-n", required=True)
        transition_parser.add_argument("--version", "-v", type=int, required=True)

    export_parser = prompts_sub.add_parser("export", help="Export versions as YAML")
    export_parser.add_argument("--name", "-n", required=True)
    export_parser.add_argument("--version", "-v", type=int)
    export_parser.add_argument("--output", "-o", type=Path)

    import_parser = prompts_sub.add_parser("import", help="Import versions from YAML as drafts")
    import_parser.add_argument("--file", "-f", type=Path, required=True)
    import_parser.add_argument("--author", help="Author identifier")

    usage_parser = prompts_sub.add_parser("usage", help="Summarize logged LLM traffic per prompt version")
    usage_parser.add_argument("--date", help="Day to summarize as YYYY-MM-DD (default: today)")

    # config
    config_parser = subparsers.add_parser("config", help="Inspect configuration")
    config_sub = config_parser.add_subparsers(dest="action", required=True)
    config_sub.add_parser("check", help="Check that OpenAI settings are usable")
    config_sub.add_parser("sample-env", help="Print a sample .env file")

    # datasets
    datasets_parser = subparsers.add_parser("datasets", help="Run datasets")
    datasets_sub = datasets_parser.add_subparsers(dest="action", required=True)

    run_parser = datasets_sub.add_parser("run", help="Create and execute a dataset run")
    run_parser.add_argument("--dataset", "-d", required=True, help="Dataset name")
    run_parser.add_argument("--run-name", "-r", required=True, help="Name of the new run")
    run_parser.add_argument(
        "--evaluate",
        action="store_true",
        help="Apply the dataset's evaluators after execution"
    )
    run_parser.add_argument(
        "--min-pass-rate",
        type=float,
        help="Minimum pass rate (percent) to succeed (for CI/CD)"
    )

    # runs
    runs_parser = subparsers.add_parser("runs", help="Evaluate and report on dataset runs")
    runs_sub = runs_parser.add_subparsers(dest="action", required=True)

    evaluate_parser = runs_sub.add_parser("evaluate", help="Apply evaluators to a run")
    evaluate_parser.add_argument("--run-id", type=int, required=True)
    evaluate_parser.add_argument(
        "--evaluators",
        help='Evaluator configs as JSON, e.g. \'[{"type": "contains", "keywords": ["refund"]}]\''
    )

    report_parser = runs_sub.add_parser("report", help="Generate a run report")
    report_parser.add_argument("--run-id", type=int, required=True)
    report_parser.add_argument(
        "--format", "-f",
        choices=["markdown", "json"],
        default="markdown",
        help="Output report format (default: markdown)"
    )
    report_parser.add_argument(
        "--output", "-o",
        type=Path,
        default=Path("results"),
        help="Output directory for reports (default: results/)"
    )
    report_parser.add_argument(
        "--no-save",
        action="store_true",
        help="Print the report instead of saving it"
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    # Load environment variables
    if args.env_file:
        load_dotenv(args.env_file)
    else:
        load_dotenv()

    config = load_config()
    errors = config.validate()
    if errors:
        for error in errors:
            print(f"Configuration error: {error}")
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    commands = {
        "prompts": _prompts_command,
        "datasets": _datasets_command,
        "runs": _runs_command,
        "config": _config_command,
    }
    try:
        return commands[args.command](args, config)
    except ObservError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
