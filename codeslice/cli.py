"""CLI entrypoints for codeslice commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .config import ConfigError, ScanOptions, load_config
from .exploration import (
    build_explorer_payload,
    format_exploration_instructions,
    generate_exploration_tasks,
)
from .ingestion import (
    DEFAULT_IMPORTANCE_MIN,
    DEFAULT_MAX_RECORDS,
    format_ingestion_result,
    format_record_preview,
    records_to_json,
)
from .logging import configure_logging
from .models import PARTITION_MODES, partition_to_dict
from .orchestrator import NoCheckpointError, Orchestrator, ScanPlan, format_manifest_summary
from .partitioning import format_partition_summary
from .stores.checkpoint import format_checkpoint_status, resumed_analyses
from .synthesis import format_synthesis_instructions

SYNTHESIS_TARGET = "synthesis"
MEMORIES_TARGET = "memories"


def _add_logging_options(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    default: object = argparse.SUPPRESS if suppress_default else False
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=default,
        help="Increase log verbosity for troubleshooting.",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=default,
        help="Only log warnings and errors.",
    )


def _add_path_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the project root (defaults to current directory).",
    )


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def _importance(value: str) -> int:
    number = _positive_int(value)
    if number > 10:
        raise argparse.ArgumentTypeError("must be between 1 and 10")
    return number


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codeslice",
        description="Split a codebase into bounded partitions and track analysis progress.",
    )
    _add_logging_options(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser(
        "plan",
        help="Scan and partition a project, then start or resume its checkpoint.",
    )
    _add_logging_options(plan_parser, suppress_default=True)
    _add_path_argument(plan_parser)
    plan_parser.add_argument(
        "--include",
        action="append",
        default=None,
        metavar="GLOB",
        help="Glob of files to include (repeatable, replaces the defaults).",
    )
    plan_parser.add_argument(
        "--exclude",
        action="append",
        default=None,
        metavar="GLOB",
        help="Glob of files to exclude (repeatable, replaces the defaults).",
    )
    plan_parser.add_argument(
        "--mode",
        choices=PARTITION_MODES,
        default=None,
        help="Partitioning strategy.",
    )
    plan_parser.add_argument(
        "--max-partitions",
        type=_positive_int,
        default=None,
        help="Upper bound on the number of partitions.",
    )
    plan_parser.add_argument(
        "--parallel",
        type=_positive_int,
        default=None,
        help="Number of partitions per exploration batch.",
    )
    plan_parser.add_argument(
        "--resume",
        action="store_true",
        default=None,
        help="Resume from an existing checkpoint when it is still valid.",
    )
    plan_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the plan as JSON instead of text.",
    )

    status_parser = subparsers.add_parser("status", help="Show checkpoint progress.")
    _add_logging_options(status_parser, suppress_default=True)
    _add_path_argument(status_parser)

    reset_parser = subparsers.add_parser("reset", help="Delete the stored checkpoint.")
    _add_logging_options(reset_parser, suppress_default=True)
    _add_path_argument(reset_parser)

    payload_parser = subparsers.add_parser(
        "payload",
        help="Print the request payload for one partition or for the synthesis step.",
    )
    _add_logging_options(payload_parser, suppress_default=True)
    payload_parser.add_argument(
        "target",
        help="Partition id (e.g. partition-01), or 'synthesis' for the synthesizer request.",
    )
    _add_path_argument(payload_parser)
    payload_parser.add_argument(
        "--existing-title",
        action="append",
        default=[],
        metavar="TITLE",
        help="Title already held by the knowledge store (repeatable, synthesis only).",
    )

    record_parser = subparsers.add_parser(
        "record",
        help="Validate an agent response file and store it in the checkpoint.",
    )
    _add_logging_options(record_parser, suppress_default=True)
    record_parser.add_argument(
        "target",
        help=(
            "Partition id for explorer responses, 'synthesis' for the synthesizer "
            "response, or 'memories' for stored record ids."
        ),
    )
    record_parser.add_argument(
        "response",
        type=Path,
        help="File holding the agent response, or one stored record id per line.",
    )
    _add_path_argument(record_parser)

    records_parser = subparsers.add_parser(
        "records",
        help="Turn the recorded synthesis into records for the knowledge store.",
    )
    _add_logging_options(records_parser, suppress_default=True)
    _add_path_argument(records_parser)
    records_parser.add_argument(
        "--importance-min",
        type=_importance,
        default=DEFAULT_IMPORTANCE_MIN,
        help="Drop records below this importance (1-10).",
    )
    records_parser.add_argument(
        "--max-records",
        type=_positive_int,
        default=DEFAULT_MAX_RECORDS,
        help="Keep at most this many records.",
    )
    records_parser.add_argument(
        "--format",
        choices=("json", "summary", "preview"),
        default="json",
        help="Output the records as JSON, a category summary, or a preview.",
    )

    return parser


def _options_from_args(args: argparse.Namespace, root: Path) -> ScanOptions:
    return load_config(root).with_overrides(
        include=args.include,
        exclude=args.exclude,
        mode=args.mode,
        max_partitions=args.max_partitions,
        parallel=args.parallel,
        resume=args.resume,
    )


def _plan_to_json(plan: ScanPlan) -> str:
    manifest = plan.manifest
    payload = {
        "projectDir": manifest.project_dir,
        "projectName": manifest.project_name,
        "hash": manifest.hash,
        "totalFiles": manifest.total_files,
        "totalTokens": manifest.total_tokens,
        "skippedFiles": len(manifest.skipped_files),
        "partitions": [partition_to_dict(spec) for spec in manifest.partitions],
        "resume": {"resumed": plan.decision.resume, "reason": plan.decision.reason},
        "remaining": plan.remaining,
        "batches": [[task.id for task in batch] for batch in plan.batches],
    }
    return json.dumps(payload, indent=2)


def _print_plan(plan: ScanPlan, parallel: int) -> None:
    print(format_manifest_summary(plan.manifest))
    print()
    print(format_partition_summary(plan.manifest.partitions))
    print()
    print(f"Checkpoint: {plan.decision.reason}")
    tasks = [task for batch in plan.batches for task in batch]
    if tasks:
        print()
        print(format_exploration_instructions(tasks, parallel))
        return
    print("Nothing left to explore.")
    if not plan.checkpoint.synthesis_complete:
        analyses = resumed_analyses(plan.checkpoint)
        print()
        print(
            format_synthesis_instructions(
                len(analyses), sum(len(analysis.insights) for analysis in analyses)
            )
        )


def _print_payload(
    parser: argparse.ArgumentParser,
    orchestrator: Orchestrator,
    root: Path,
    args: argparse.Namespace,
) -> None:
    if args.target == SYNTHESIS_TARGET:
        print(orchestrator.synthesis_payload(root, args.existing_title))
        return
    checkpoint = orchestrator.checkpoint_manager(load_config(root)).load(root)
    if checkpoint is None:
        parser.exit(1, f"No checkpoint found for {root}\n")
    tasks = generate_exploration_tasks(checkpoint.manifest, only=[args.target])
    if not tasks:
        parser.exit(1, f"Unknown partition id: {args.target}\n")
    print(build_explorer_payload(tasks[0]))


def _record(
    parser: argparse.ArgumentParser,
    orchestrator: Orchestrator,
    root: Path,
    args: argparse.Namespace,
) -> None:
    response = args.response.read_text(encoding="utf-8")
    if args.target == SYNTHESIS_TARGET:
        result = orchestrator.record_synthesis_result(root, response)
        if not result.ok:
            parser.exit(1, f"Synthesizer response rejected: {result.error}\n")
        print("Synthesis recorded")
    elif args.target == MEMORIES_TARGET:
        ids = [line.strip() for line in response.splitlines() if line.strip()]
        checkpoint = orchestrator.record_stored_records(root, ids)
        print(f"{len(ids)} stored records recorded ({len(checkpoint.memories_stored)} total)")
    else:
        analysis = orchestrator.record_partition_result(root, args.target, response)
        if analysis.error:
            print(f"{args.target} recorded with error: {analysis.error}")
        else:
            print(f"{args.target} recorded ({len(analysis.insights)} insights)")


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for codeslice commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        verbose=bool(args.verbose),
        quiet=bool(getattr(args, "quiet", False)),
        log_file=args.log_file,
    )

    orchestrator = Orchestrator()
    root = Path(args.path).expanduser().resolve()

    try:
        if args.command == "plan":
            options = _options_from_args(args, root)
            plan = orchestrator.plan(root, options)
            if args.json:
                print(_plan_to_json(plan))
            else:
                _print_plan(plan, options.parallel)
        elif args.command == "status":
            checkpoint = orchestrator.checkpoint_manager(load_config(root)).load(root)
            if checkpoint is None:
                parser.exit(1, f"No checkpoint found for {root}\n")
            print(format_checkpoint_status(checkpoint))
        elif args.command == "reset":
            removed = orchestrator.checkpoint_manager(load_config(root)).delete(root)
            print("Checkpoint removed" if removed else "No checkpoint to remove")
        elif args.command == "payload":
            _print_payload(parser, orchestrator, root, args)
        elif args.command == "record":
            _record(parser, orchestrator, root, args)
        elif args.command == "records":
            result = orchestrator.prepare_records(root, args.importance_min, args.max_records)
            if args.format == "summary":
                print(format_ingestion_result(result))
            elif args.format == "preview":
                print(format_record_preview(result))
            else:
                print(records_to_json(result.records))
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except (FileNotFoundError, NotADirectoryError, PermissionError) as exc:
        parser.exit(1, f"{exc}\n")
    except (ConfigError, NoCheckpointError, ValueError) as exc:
        parser.exit(1, f"codeslice {args.command} failed: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
