"""Command line entry point for measurement CSV imports.

Exit codes:
    0  every row imported
    2  run completed but some rows were rejected (or strict mode refused the file)
    1  fatal: the file could not be read or parsed, or a mapping profile is unusable

Usage errors (missing or malformed options) are reported by argparse, which
exits with its own status 2.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional, List

import yaml

from shared.config.settings import settings
from shared.logging.config import configure_logging, get_logger

from .exceptions import MeasurementImportError
from .fields import MeasurementType
from .mapping_store import MappingProfileStore, load_mapping_file
from .models import ColumnMapping
from .parser import CSVParser
from .processor import CSVImportProcessor, options_from_settings

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2

logger = get_logger(__name__)


def _delimiter(value: str) -> str:
    """argparse type for --delimiter; ``\\t`` means tab."""
    if value == "\\t":
        return "\t"
    if len(value) != 1:
        raise argparse.ArgumentTypeError(f"delimiter must be a single character, got {value!r}")
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mrv-csv-import",
        description="Validate and convert measurement CSV files into API requests",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    parser.add_argument(
        "--profile-dir",
        default=settings.mapping_profile_dir,
        help="Directory of saved mapping profiles (MAPPING_PROFILE_DIR)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    imp = subparsers.add_parser("import", help="Import a CSV file")
    imp.add_argument("file", type=Path)
    imp.add_argument("--project-id", required=True)
    mapping_group = imp.add_mutually_exclusive_group()
    mapping_group.add_argument("--mapping", type=Path, help="Mapping profile YAML file")
    mapping_group.add_argument("--profile", help="Name of a saved mapping profile")
    imp.add_argument(
        "--strict", action="store_true", help="Refuse the whole file if any row is invalid"
    )
    imp.add_argument("--type", choices=[t.value for t in MeasurementType], default=None)
    imp.add_argument("--operator-id", default=None)
    imp.add_argument("--device-id", default=None)
    imp.add_argument("--delimiter", type=_delimiter, default=None)
    imp.add_argument("--output", type=Path, help="Write the measurement requests as JSON")

    tpl = subparsers.add_parser("template", help="Write the CSV template")
    tpl.add_argument("--output", type=Path, help="Target file (stdout when omitted)")

    det = subparsers.add_parser("detect", help="Show the auto-detected column mapping")
    det.add_argument("file", type=Path)
    det.add_argument("--save", metavar="PROFILE", help="Save the mapping as a named profile")

    return parser


def _resolve_mapping(args: argparse.Namespace) -> Optional[ColumnMapping]:
    if args.mapping:
        return load_mapping_file(args.mapping)
    if args.profile:
        if not args.profile_dir:
            raise MeasurementImportError(
                "--profile needs a profile directory (--profile-dir or MAPPING_PROFILE_DIR)",
                error_code="NO_PROFILE_DIR",
            )
        return MappingProfileStore(args.profile_dir).load(args.profile)
    return None


def _run_import(args: argparse.Namespace) -> int:
    column_mapping = _resolve_mapping(args)
    options = options_from_settings(
        args.project_id,
        column_mapping=column_mapping,
        skip_invalid_rows=False if args.strict else None,
        default_type=args.type,
        operator_id=args.operator_id,
        device_id=args.device_id,
        delimiter=args.delimiter,
    )
    processor = CSVImportProcessor(options)
    result = asyncio.run(processor.process_file(args.file))

    print(processor.generate_processing_report(result))
    for group in processor.generate_error_fix_suggestions(result):
        print(f"--- {group.category} ---")
        for suggestion in group.suggestions:
            print(f"  {suggestion}")

    if not result.summary.parsing.success:
        return EXIT_FATAL

    if args.output:
        payload = [measurement.to_wire() for measurement in result.final_measurements]
        args.output.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8"
        )
        logger.info("Wrote measurement requests", path=str(args.output), count=len(payload))

    if result.success and result.total_errors == 0:
        return EXIT_SUCCESS
    return EXIT_PARTIAL_FAILURE


def _run_template(args: argparse.Namespace) -> int:
    template = CSVParser.generate_template()
    if args.output:
        args.output.write_text(template + "\n", encoding="utf-8")
        logger.info("Wrote CSV template", path=str(args.output))
    else:
        print(template)
    return EXIT_SUCCESS


def _run_detect(args: argparse.Namespace) -> int:
    parser = CSVParser(
        delimiter=settings.csv_delimiter,
        encoding=settings.csv_encoding,
        max_preview_rows=settings.csv_max_preview_rows,
    )
    table = asyncio.run(parser.parse_file(args.file))
    mapping = CSVParser.detect_columns(table.headers)

    print(yaml.safe_dump({"columns": mapping.to_dict()}, allow_unicode=True, sort_keys=False), end="")
    print(f"# rows: {table.total_row_count} ({table.preview_row_count} previewed)")

    unmapped = [header for header in table.headers if header not in mapping.columns.values()]
    if unmapped:
        print(f"# unmapped headers: {', '.join(unmapped)}")

    if args.save:
        if not args.profile_dir:
            raise MeasurementImportError(
                "--save needs a profile directory (--profile-dir or MAPPING_PROFILE_DIR)",
                error_code="NO_PROFILE_DIR",
            )
        path = MappingProfileStore(args.profile_dir).save(
            args.save, mapping, description=f"Detected from {args.file.name}"
        )
        print(f"# saved profile to {path}")
    return EXIT_SUCCESS


def main(argv: Optional[List[str]] = None) -> int:
    """Run the CLI and return the exit code."""
    args = _build_parser().parse_args(argv)
    configure_logging(log_level=args.log_level)

    commands = {
        "import": _run_import,
        "template": _run_template,
        "detect": _run_detect,
    }
    try:
        return commands[args.command](args)
    except MeasurementImportError as e:
        print(f"ERROR: {e.message}", file=sys.stderr)
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
