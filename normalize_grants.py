"""Normalize the flat grants export into Grants, Progress Reports and Site Visits.

Workflow:
    1. Extract the combined table from Airtable (or a local workbook when no
       credentials are configured, or when --local is given).
    2. Derive the three normalized tables and synthesize Report/Visit IDs.
    3. Validate referential integrity, key uniqueness and completeness.
    4. Write the tables back to Airtable, or to a local workbook.

Exit status: 0 on success, 1 when --strict stops a run with warnings, 2 when
nothing could be derived.
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Dict, Optional, Sequence

import polars as pl

from grants_common import NormalizationError, NormalizationResult, normalize_grants_data
from grants_sync.airtable_client import AirtableClient
from grants_sync.config import (
    Settings,
    apply_overrides,
    describe_settings,
    ensure_directories,
    load_config_file,
    load_settings,
)
from grants_sync.excel_io import ExcelSink, ExcelSource, write_workbook

EXIT_OK = 0
EXIT_WARNINGS = 1
EXIT_FATAL = 2


def configure_logging(verbosity: int) -> None:
    level = logging.DEBUG if verbosity > 0 else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Normalize the combined grants table into Grants, Progress_Reports and Site_Visits.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML or JSON file overriding settings from the environment / .env.",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        help="Explicit .env file to load (default: search from the working directory).",
    )
    parser.add_argument(
        "--input",
        type=Path,
        help="Local workbook to read when running without Airtable.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Local workbook to write when running without Airtable.",
    )
    parser.add_argument(
        "--local",
        action="store_true",
        help="Use local workbooks even if Airtable credentials are configured.",
    )
    parser.add_argument(
        "--clear-targets",
        action="store_true",
        help="Delete all records from the Airtable target tables before writing.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Skip write-back when validation produced warnings.",
    )
    parser.add_argument(
        "--report-json",
        type=Path,
        help="Write the run report (counts, redundancy, validation) as JSON.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (repeatable).",
    )
    return parser.parse_args(argv)


def resolve_settings(args: argparse.Namespace) -> Settings:
    settings = load_settings(args.env_file)
    if args.config:
        settings = apply_overrides(settings, load_config_file(args.config))
    overrides = {}
    if args.input:
        overrides["input_file"] = args.input
    if args.output:
        overrides["output_file"] = args.output
    return apply_overrides(settings, overrides) if overrides else settings


def backup_path(output_file: Path) -> Path:
    return output_file.with_name(f"{output_file.stem}_backup{output_file.suffix}")


def write_report_json(result: NormalizationResult, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(result.report.to_dict(), indent=2), encoding="utf-8")
    logging.info("Run report written to %s", path)


def write_back(
    result: NormalizationResult,
    settings: Settings,
    client: Optional[AirtableClient],
    clear_targets: bool = False,
) -> Dict[str, int]:
    """Persist the three tables under their target names; returns rows written per table."""

    targets = settings.target_tables()
    tables: Dict[str, pl.DataFrame] = {targets[name]: frame for name, frame in result.tables().items()}
    written: Dict[str, int] = {}

    if client is None:
        ensure_directories(settings)
        with ExcelSink(settings.output_file) as sink:
            for table_name, frame in tables.items():
                written[table_name] = sink.persist(table_name, frame)
        return written

    if settings.backup_before_write:
        path = backup_path(settings.output_file)
        write_workbook(path, tables)
        logging.info("Backup of normalized tables saved to %s", path)
    if clear_targets:
        for table_name in tables:
            client.delete_all_records(table_name)
    for table_name, frame in tables.items():
        written[table_name] = client.persist(table_name, frame)
    return written


def run_pipeline(
    settings: Settings,
    *,
    local: bool = False,
    clear_targets: bool = False,
    strict: bool = False,
    report_json: Optional[Path] = None,
) -> int:
    for line in describe_settings(settings):
        logging.debug(line)

    use_api = settings.api_configured and not local
    client: Optional[AirtableClient] = None
    if use_api:
        client = AirtableClient(settings)
        rows = client.fetch_all(settings.source_table)
    else:
        if not settings.api_configured:
            logging.info("Airtable credentials not configured; running against local files")
        rows = ExcelSource(settings.input_file).fetch_all()

    try:
        result = normalize_grants_data(rows)
    except NormalizationError as exc:
        logging.error("FATAL: nothing was derived (%s)", exc)
        return EXIT_FATAL

    for line in result.report.summary_lines():
        logging.info(line)
    if report_json:
        write_report_json(result, report_json)

    if result.report.has_warnings:
        logging.warning(
            "Derived with warnings: review before trusting (%d warning(s))",
            len(result.report.validation.warnings),
        )
        if strict:
            logging.warning("--strict given; skipping write-back")
            return EXIT_WARNINGS

    written = write_back(result, settings, client, clear_targets=clear_targets)
    for table_name, count in written.items():
        logging.info("%s: %d records written", table_name, count)
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)
    settings = resolve_settings(args)
    if settings.debug_mode and not args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    return run_pipeline(
        settings,
        local=args.local,
        clear_targets=args.clear_targets,
        strict=args.strict,
        report_json=args.report_json,
    )


if __name__ == "__main__":
    raise SystemExit(main())
