from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, List, Sequence

from .config import (
    DEFAULT_ENVIRONMENT,
    JobConfig,
    build_job_config,
    configure_logging,
    load_defaults,
    load_environment,
)
from .errors import DorMergerError, UsageError
from .identifiers import MergePlanRow, read_identifiers, read_merge_plan
from .merge import MergeReport, merge_into_primary, virtual_merge
from .reporting import emit_reports
from .repository import FilesystemRepository


def build_virtual_merge_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="virtual-merge",
        description="Attach child objects to a parent object as virtual resources.",
    )
    _add_common_arguments(parser)
    parser.add_argument(
        "-i",
        "--input",
        dest="input_path",
        metavar="FILE",
        help="File of child identifiers, one per line ('-' reads standard input).",
    )
    parser.add_argument(
        "--purge",
        action="store_true",
        default=None,
        help="Replace the parent's contentMetadata with an empty document before merging.",
    )
    parser.add_argument(
        "--keep-blank-lines",
        action="store_true",
        help="Pass blank lines from the input file through as (invalid) identifiers.",
    )
    parser.add_argument(
        "identifiers",
        nargs="*",
        metavar="ID",
        help="Parent identifier followed by child identifiers.",
    )
    return parser


def build_merge_tool_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="merge-tool",
        description="Merge secondary objects' content and metadata into a primary object.",
    )
    _add_common_arguments(parser)
    parser.add_argument(
        "--csv",
        dest="csv_path",
        metavar="FILE",
        help="CSV merge plan; each row is primary,secondary[,secondary...].",
    )
    parser.add_argument(
        "identifiers",
        nargs="*",
        metavar="ID",
        help="Primary identifier followed by secondary identifiers.",
    )
    return parser


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-e",
        "--environment",
        default=DEFAULT_ENVIRONMENT,
        help="Environment to run in (development, test, production). Defaults to development.",
    )
    parser.add_argument(
        "-l",
        "--log",
        dest="log_path",
        metavar="LOGFILE",
        help="Log destination ('-' for standard output).",
    )
    parser.add_argument("--debug", action="store_true", default=None, help="Enable debug logging.")
    parser.add_argument(
        "--report-dir",
        type=Path,
        help="Directory where JSON and Markdown merge reports are written.",
    )


def virtual_merge_main(argv: Sequence[str] | None = None) -> int:
    parser = build_virtual_merge_parser()
    args = parser.parse_args(argv)
    try:
        config = build_job_config(
            load_defaults(),
            args.identifiers,
            environment=args.environment,
            log_path=args.log_path,
            debug=args.debug,
            purge=args.purge,
            input_path=args.input_path,
            skip_blank=not args.keep_blank_lines,
            report_dir=args.report_dir,
        )
    except DorMergerError as exc:
        return _startup_failure(parser, exc)

    return _guard(config, _run_virtual_merge)


def merge_tool_main(argv: Sequence[str] | None = None) -> int:
    parser = build_merge_tool_parser()
    args = parser.parse_args(argv)
    try:
        if args.csv_path and args.identifiers:
            raise UsageError("positional identifiers cannot be combined with --csv")
        config = build_job_config(
            load_defaults(),
            args.identifiers,
            environment=args.environment,
            log_path=args.log_path,
            debug=args.debug,
            purge=False,
            input_path=args.csv_path,
            report_dir=args.report_dir,
            require_primary=args.csv_path is None,
        )
    except DorMergerError as exc:
        return _startup_failure(parser, exc)

    return _guard(config, _run_merge_tool)


def _run_virtual_merge(config: JobConfig) -> int:
    repository = _open_repository(config)
    if config.input_path is not None:
        if config.child_ids:
            logging.warning(
                "Ignoring %d positional child id(s); reading %s instead",
                len(config.child_ids),
                config.input_path,
            )
        child_ids = read_identifiers(config.input_path, skip_blank=config.skip_blank)
    else:
        child_ids = list(config.child_ids)

    report = virtual_merge(config.primary_id, child_ids, repository, purge=config.purge)
    emit_reports(report, config.report_dir)
    return 0


def _run_merge_tool(config: JobConfig) -> int:
    repository = _open_repository(config)
    if config.input_path is not None:
        plan = read_merge_plan(config.input_path)
    else:
        plan = [MergePlanRow(primary=config.primary_id, secondaries=config.child_ids, line_number=0)]

    reports: List[MergeReport] = []
    fatal = 0
    for row in plan:
        try:
            report = merge_into_primary(row.primary, row.secondaries, repository)
        except DorMergerError as exc:
            if len(plan) == 1:
                raise
            logging.error("Merge into %s failed (line %d): %s", row.primary, row.line_number, exc)
            fatal += 1
            continue
        emit_reports(report, config.report_dir)
        reports.append(report)

    if len(plan) > 1:
        logging.info("Merged into %d of %d primary object(s)", len(reports), len(plan))
    return 1 if fatal else 0


def _open_repository(config: JobConfig) -> FilesystemRepository:
    profile = load_environment(config.environment)
    logging.info("Environment %s; repository at %s", profile.name, profile.repository_root)
    return FilesystemRepository(profile.repository_root)


def _guard(config: JobConfig, job: Callable[[JobConfig], int]) -> int:
    try:
        configure_logging(config.log_path, config.debug)
        logging.debug("Configuration: %s", config)
        return job(config)
    except DorMergerError as exc:
        logging.error("%s", exc)
        return 1
    except OSError as exc:
        logging.error("I/O error: %s", exc)
        return 1
    except KeyboardInterrupt:
        logging.error("Interrupted")
        return 130


def _startup_failure(parser: argparse.ArgumentParser, exc: DorMergerError) -> int:
    if isinstance(exc, UsageError):
        parser.print_usage(sys.stderr)
        print(f"{parser.prog}: error: {exc}", file=sys.stderr)
        return 2
    print(f"{parser.prog}: {exc}", file=sys.stderr)
    return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(virtual_merge_main())
