"""CSV Import Processor.

Runs Parser -> Validator -> Mapper once each over an uploaded file and
aggregates the outcome into a ProcessResult, with a text report and fix
suggestions for the user.
"""

import time
from pathlib import Path
from typing import Any, Callable, Optional, Dict, List, Union

import pandas as pd
import structlog

from shared.config.settings import Settings
from shared.config.settings import settings as default_settings
from shared.logging.config import log_performance

from .exceptions import MeasurementImportError
from .mappers import MeasurementMapper
from .models import (
    FieldStatistics,
    FixSuggestionGroup,
    MappingOptions,
    MappingSummary,
    MeasurementCreateRequest,
    ParsedTable,
    ParsingSummary,
    ProcessingSummary,
    ProcessorOptions,
    ProcessResult,
    ValidationSummary,
)
from .parser import CSVParser
from .validators import BaseValidator, CSVValidator

logger = structlog.get_logger(__name__)

# Share of processed rows above which the template hint is shown
HIGH_ERROR_RATE = 0.3

REPORT_ERROR_LIMIT = 5
SUGGESTION_LIMIT = 10

ProgressCallback = Callable[[int, int], None]


def options_from_settings(
    project_id: str, settings: Optional[Settings] = None, **overrides: Any
) -> ProcessorOptions:
    """Build processor options from settings, with explicit overrides."""
    settings = settings or default_settings
    values: Dict[str, Any] = {
        "project_id": project_id,
        "skip_invalid_rows": settings.import_skip_invalid_rows,
        "batch_size": settings.import_batch_size,
        "default_type": settings.import_default_type,
        "delimiter": settings.csv_delimiter,
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    return ProcessorOptions(**values)


class CSVImportProcessor:
    """Orchestrates one CSV import run."""

    def __init__(
        self,
        options: ProcessorOptions,
        validator: Optional[BaseValidator] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize processor.

        Args:
            options: Import options for this run
            validator: Row validator (CSVValidator with default rules when None)
            settings: Settings override (module settings when None)
        """
        self.options = options
        self.settings = settings or default_settings
        self.validator = validator or CSVValidator(tz_name=self.settings.import_timezone)
        self.parser = CSVParser(
            delimiter=options.delimiter,
            encoding=self.settings.csv_encoding,
            max_preview_rows=options.max_rows,
        )
        self.logger = logger.bind(component="csv_import_processor", project_id=options.project_id)

    async def process_file(self, file_path: Union[str, Path]) -> ProcessResult:
        """Import a CSV file. Never raises; failures are in the result."""
        start_time = time.perf_counter()
        self.logger.info("Starting CSV import", file_path=str(file_path))
        try:
            table = await self.parser.parse_file(file_path)
            return self._process_table(table, start_time)
        except MeasurementImportError as e:
            self.logger.warning("CSV import aborted", error=e.message, error_code=e.error_code)
            return self._create_error_result(start_time, e.message, e.error_code)
        except Exception as e:
            self.logger.exception("Unexpected error during CSV import", error=str(e))
            return self._create_error_result(start_time, str(e) or type(e).__name__, "UNEXPECTED_ERROR")

    def process_text(self, text: str) -> ProcessResult:
        """Import CSV text. Never raises; failures are in the result."""
        start_time = time.perf_counter()
        self.logger.info("Starting CSV import", characters=len(text))
        try:
            table = self.parser.parse_text(text)
            return self._process_table(table, start_time)
        except MeasurementImportError as e:
            self.logger.warning("CSV import aborted", error=e.message, error_code=e.error_code)
            return self._create_error_result(start_time, e.message, e.error_code)
        except Exception as e:
            self.logger.exception("Unexpected error during CSV import", error=str(e))
            return self._create_error_result(start_time, str(e) or type(e).__name__, "UNEXPECTED_ERROR")

    def _process_table(self, table: ParsedTable, start_time: float) -> ProcessResult:
        column_mapping = self.options.column_mapping or CSVParser.detect_columns(table.headers)
        if self.options.column_mapping is None:
            self.logger.info("Using auto-detected column mapping", mapping=column_mapping.to_dict())

        validation_result = self.validator.validate(
            table.rows, column_mapping, row_numbers=table.file_row_numbers()
        )
        validation_summary = ValidationSummary(
            valid=validation_result.is_valid,
            error_count=len(validation_result.errors),
            warning_count=len(validation_result.warnings),
        )
        invalid_rows = validation_result.error_rows()
        skipped_rows = set(table.parse_error_rows)

        if not self.options.skip_invalid_rows and (validation_result.errors or skipped_rows):
            result = ProcessResult(
                success=False,
                parsed_table=table,
                column_mapping=column_mapping,
                validation_result=validation_result,
                total_errors=len(invalid_rows | skipped_rows),
                processing_time=self._elapsed_ms(start_time),
                summary=ProcessingSummary(
                    parsing=ParsingSummary(success=True),
                    validation=validation_summary,
                    mapping=MappingSummary(success=False),
                ),
            )
            self._log_outcome(result)
            return result

        mapper = MeasurementMapper(
            column_mapping,
            MappingOptions(
                project_id=self.options.project_id,
                default_type=self.options.default_type,
                default_operator_id=self.options.operator_id,
                default_device_id=self.options.device_id,
                skip_invalid_rows=self.options.skip_invalid_rows,
                timezone=self.settings.import_timezone,
            ),
        )
        mapping_result = mapper.map(table, exclude_rows=invalid_rows)
        measurements = mapping_result.measurements
        error_rows = invalid_rows | skipped_rows | {error.row for error in mapping_result.errors}

        result = ProcessResult(
            success=mapping_result.success
            and (self.options.skip_invalid_rows or validation_result.is_valid),
            parsed_table=table,
            column_mapping=column_mapping,
            validation_result=validation_result,
            mapping_result=mapping_result,
            final_measurements=measurements,
            total_processed=len(measurements),
            total_errors=len(error_rows),
            processing_time=self._elapsed_ms(start_time),
            summary=ProcessingSummary(
                parsing=ParsingSummary(success=True),
                validation=validation_summary,
                mapping=MappingSummary(
                    success=mapping_result.success,
                    success_count=len(measurements),
                    error_count=len(mapping_result.errors),
                ),
            ),
            value_statistics=self.value_statistics(measurements),
        )
        self._log_outcome(result)
        return result

    def _create_error_result(
        self, start_time: float, error: str, error_code: Optional[str]
    ) -> ProcessResult:
        result = ProcessResult(
            success=False,
            total_errors=1,
            processing_time=self._elapsed_ms(start_time),
            summary=ProcessingSummary(
                parsing=ParsingSummary(success=False, error=error, error_code=error_code),
            ),
        )
        self._log_outcome(result)
        return result

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return round((time.perf_counter() - start_time) * 1000, 3)

    def _log_outcome(self, result: ProcessResult) -> None:
        self.logger.info(
            "CSV import finished",
            success=result.success,
            total_processed=result.total_processed,
            total_errors=result.total_errors,
            warnings=result.summary.validation.warning_count,
        )
        log_performance(
            "csv_import",
            result.processing_time / 1000,
            success=result.success,
            total_processed=result.total_processed,
            total_errors=result.total_errors,
        )

    @staticmethod
    def value_statistics(
        measurements: List[MeasurementCreateRequest],
    ) -> Dict[str, FieldStatistics]:
        """Count, min, max and mean per numeric field over the measurements."""
        records = [measurement.values.present() for measurement in measurements]
        records = [record for record in records if record]
        if not records:
            return {}

        df = pd.DataFrame.from_records(records)
        stats: Dict[str, FieldStatistics] = {}
        for column in df.columns:
            series = df[column].dropna()
            if series.empty:
                continue
            stats[column] = FieldStatistics(
                count=int(series.count()),
                min=float(series.min()),
                max=float(series.max()),
                mean=float(series.mean()),
            )
        return stats

    def process_batches(
        self,
        measurements: List[MeasurementCreateRequest],
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[List[MeasurementCreateRequest]]:
        """Split measurements into submission batches of ``batch_size``.

        ``on_progress`` is called with (measurements batched so far, total)
        once per batch.
        """
        batches = MeasurementMapper.chunk_measurements(measurements, self.options.batch_size)
        if on_progress:
            done = 0
            for batch in batches:
                done += len(batch)
                on_progress(done, len(measurements))
        return batches

    def generate_processing_report(self, result: ProcessResult) -> str:
        """Plain-text summary of an import run."""
        summary = result.summary

        parse_errors = result.parsed_table.parse_errors if result.parsed_table else []
        if summary.parsing.success:
            parsing_line = "Parsing: OK"
            if parse_errors:
                parsing_line += f" (skipped malformed rows: {len(parse_errors)})"
        else:
            parsing_line = "Parsing: FAILED" + (
                f" ({summary.parsing.error})" if summary.parsing.error else ""
            )

        if summary.validation.valid:
            validation_line = f"Validation: OK (warnings: {summary.validation.warning_count})"
        else:
            validation_line = (
                f"Validation: FAILED (errors: {summary.validation.error_count}, "
                f"warnings: {summary.validation.warning_count})"
            )

        mapping_line = (
            f"Mapping: {'OK' if summary.mapping.success else 'FAILED'} "
            f"(succeeded: {summary.mapping.success_count}, errors: {summary.mapping.error_count})"
        )

        report = [
            "=== CSV Import Report ===",
            f"Processing time: {result.processing_time:.1f} ms",
            f"Total rows: {result.total_processed + result.total_errors}",
            f"Succeeded: {result.total_processed}",
            f"Errors: {result.total_errors}",
            "",
            "=== Stage Results ===",
            parsing_line,
            validation_line,
            mapping_line,
            "",
        ]

        if parse_errors:
            report.append(f"=== Parse Errors (first {REPORT_ERROR_LIMIT}) ===")
            report.extend(parse_errors[:REPORT_ERROR_LIMIT])
            report.append("")

        if result.validation_result and result.validation_result.errors:
            report.append(f"=== Validation Errors (first {REPORT_ERROR_LIMIT}) ===")
            for error in result.validation_result.errors[:REPORT_ERROR_LIMIT]:
                report.append(f"Row {error.row}, {error.column}: {error.message}")
            report.append("")

        if result.mapping_result and result.mapping_result.errors:
            report.append(f"=== Mapping Errors (first {REPORT_ERROR_LIMIT}) ===")
            for error in result.mapping_result.errors[:REPORT_ERROR_LIMIT]:
                report.append(f"Row {error.row}, {error.field}: {error.message}")
            report.append("")

        return "\n".join(report)

    def generate_error_fix_suggestions(self, result: ProcessResult) -> List[FixSuggestionGroup]:
        """Concrete data fixes plus general hints for a failed or partial run."""
        groups: List[FixSuggestionGroup] = []

        if result.validation_result and result.validation_result.errors:
            corrections = CSVValidator.suggest_corrections(result.validation_result.errors)
            if corrections:
                groups.append(
                    FixSuggestionGroup(
                        category="Data corrections",
                        suggestions=[
                            f'Row {s.row}, {s.column}: "{s.suggested_value}" ({s.reason})'
                            for s in corrections[:SUGGESTION_LIMIT]
                        ],
                    )
                )

        general: List[str] = []
        if result.summary.parsing.error_code == "EMPTY_INPUT":
            general.append("Use a file that contains a header row and data rows")

        if result.parsed_table and result.parsed_table.parse_errors:
            general.append('Close every quoted field and write quotes inside one as ""')

        if result.summary.validation.error_count > result.total_processed * HIGH_ERROR_RATE:
            general.append(
                "The error rate is high; check the data layout against the CSV template"
            )

        bad_dates = result.validation_result is not None and any(
            error.code == "invalid_date" for error in result.validation_result.errors
        )
        if bad_dates or (
            result.mapping_result
            and any(error.field == "timestamp" for error in result.mapping_result.errors)
        ):
            general.append('Enter timestamps in "YYYY-MM-DD HH:mm:ss" format')

        if general:
            groups.append(FixSuggestionGroup(category="General improvements", suggestions=general))

        return groups
