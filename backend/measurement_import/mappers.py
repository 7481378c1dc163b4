"""Row Mapping for Measurement Imports.

Converts parsed CSV rows into MeasurementCreateRequest payloads using a
column mapping: timestamp normalisation, type keywords, coordinates and
unit-suffixed numeric values with plausibility checks.
"""

import time
from abc import ABC, abstractmethod
from typing import Optional, Dict, List, Sequence, Set, TypeVar

import structlog

from .exceptions import (
    InvalidCoordinateError,
    InvalidTimestampError,
    MissingTimestampError,
    RowMappingError,
    ValueOutOfRangeError,
)
from .fields import (
    NUMERIC_VALUE_FIELDS,
    PLAUSIBILITY_RANGES,
    MeasurementField,
    clean_numeric_text,
    detect_type,
    parse_leading_number,
)
from .models import (
    ColumnMapping,
    Location,
    MappingError,
    MappingOptions,
    MappingResult,
    MappingStats,
    MeasurementCreateRequest,
    MeasurementValues,
    ParsedTable,
)
from .timestamps import format_timestamp, parse_timestamp

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class BaseMapper(ABC):
    """Abstract base class for row mappers."""

    def __init__(self):
        """Initialize mapper."""
        self.logger = logger.bind(component=self.__class__.__name__)

    @abstractmethod
    def map(self, parsed_table: ParsedTable) -> MappingResult:
        """Map a parsed table into measurement requests."""


class MeasurementMapper(BaseMapper):
    """Maps CSV rows to measurement requests."""

    def __init__(self, column_mapping: ColumnMapping, options: MappingOptions):
        """Initialize measurement mapper.

        Args:
            column_mapping: Field -> header mapping
            options: Project, defaults and failure handling
        """
        super().__init__()
        self.column_mapping = column_mapping
        self.options = options

    def map(
        self, parsed_table: ParsedTable, exclude_rows: Optional[Set[int]] = None
    ) -> MappingResult:
        """Map every row of a parsed table.

        With ``skip_invalid_rows`` a failing row is recorded and dropped.
        Otherwise the first failing row is recorded, the rest of the batch is
        not mapped and no measurements are returned.

        Args:
            parsed_table: Parsed CSV
            exclude_rows: File row numbers to leave out silently (rows already
                rejected upstream)
        """
        return self._map_rows(
            parsed_table.rows, parsed_table.file_row_numbers(), exclude_rows or set()
        )

    def map_preview(self, parsed_table: ParsedTable, max_rows: int = 5) -> MappingResult:
        """Map only the first ``max_rows`` rows."""
        return self._map_rows(
            parsed_table.rows[:max_rows], parsed_table.file_row_numbers()[:max_rows], set()
        )

    def _map_rows(
        self, rows: List[Dict[str, str]], row_numbers: List[int], exclude_rows: Set[int]
    ) -> MappingResult:
        start_time = time.time()
        measurements: List[MeasurementCreateRequest] = []
        errors: List[MappingError] = []

        self.logger.info(
            "Starting row mapping",
            rows=len(rows),
            excluded=len(exclude_rows),
            skip_invalid_rows=self.options.skip_invalid_rows,
        )

        for row_number, row in zip(row_numbers, rows):
            if row_number in exclude_rows:
                continue
            try:
                measurements.append(self.map_row(row))
            except RowMappingError as e:
                errors.append(
                    MappingError(
                        row=row_number,
                        field=e.field,
                        value=e.value,
                        message=e.message,
                        code=e.error_code.lower(),
                    )
                )
                if not self.options.skip_invalid_rows:
                    self.logger.warning(
                        "Row mapping failed, aborting batch",
                        row=row_number,
                        field=e.field,
                        error=e.message,
                    )
                    return MappingResult(success=False, measurements=[], errors=errors)
                self.logger.debug("Skipping invalid row", row=row_number, error=e.message)

        self.logger.info(
            "Row mapping completed",
            mapped=len(measurements),
            failed=len(errors),
            duration=time.time() - start_time,
        )
        return MappingResult(success=True, measurements=measurements, errors=errors)

    def map_row(self, row: Dict[str, str]) -> MeasurementCreateRequest:
        """Map one row.

        Raises:
            RowMappingError: If the row cannot be turned into a measurement
        """
        return MeasurementCreateRequest(
            project_id=self.options.project_id,
            timestamp=self._map_timestamp(row),
            type=self._map_type(row) or self.options.default_type,
            location=self._map_location(row),
            values=self._map_values(row),
            notes=self._cell(row, MeasurementField.NOTES) or None,
            operator_id=self.options.default_operator_id,
            device_id=self.options.default_device_id,
        )

    def _cell(self, row: Dict[str, str], field: MeasurementField) -> str:
        column = self.column_mapping.column_for(field)
        if not column:
            return ""
        return (row.get(column) or "").strip()

    def _map_timestamp(self, row: Dict[str, str]) -> str:
        if not self.column_mapping.column_for(MeasurementField.TIMESTAMP):
            raise MissingTimestampError("No column is mapped to the timestamp")

        value = self._cell(row, MeasurementField.TIMESTAMP)
        if not value:
            raise MissingTimestampError("Timestamp is empty")

        parsed = parse_timestamp(value, self.options.timezone)
        if parsed is None:
            raise InvalidTimestampError(value)
        return format_timestamp(parsed)

    def _map_type(self, row: Dict[str, str]):
        value = self._cell(row, MeasurementField.TYPE)
        return detect_type(value) if value else None

    def _map_coordinate(
        self, row: Dict[str, str], field: MeasurementField, limit: float
    ) -> Optional[float]:
        value = self._cell(row, field)
        if not value:
            return None
        number = parse_leading_number(value)
        if number is None:
            raise InvalidCoordinateError(
                f"Invalid {field.value} value: {value}", field=field.value, value=value
            )
        if not -limit <= number <= limit:
            raise InvalidCoordinateError(
                f"{field.value.capitalize()} must be between {-limit:g} and {limit:g}: {value}",
                field=field.value,
                value=value,
            )
        return number

    def _map_location(self, row: Dict[str, str]) -> Location:
        latitude = self._map_coordinate(row, MeasurementField.LATITUDE, 90)
        longitude = self._map_coordinate(row, MeasurementField.LONGITUDE, 180)

        if (latitude is None) != (longitude is None):
            missing = MeasurementField.LONGITUDE if longitude is None else MeasurementField.LATITUDE
            present = self._cell(
                row,
                MeasurementField.LATITUDE if latitude is not None else MeasurementField.LONGITUDE,
            )
            raise InvalidCoordinateError(
                "Latitude and longitude must both be given or both omitted",
                field=missing.value,
                value=present,
            )

        return Location(
            latitude=latitude,
            longitude=longitude,
            site_name=self._cell(row, MeasurementField.SITE_NAME) or None,
        )

    def _map_values(self, row: Dict[str, str]) -> MeasurementValues:
        values: Dict[str, float] = {}
        for field in NUMERIC_VALUE_FIELDS:
            raw = self._cell(row, field)
            if not raw:
                continue
            number = parse_leading_number(clean_numeric_text(raw))
            if number is None:
                continue
            minimum, maximum = PLAUSIBILITY_RANGES[field]
            if not minimum <= number <= maximum:
                raise ValueOutOfRangeError(field.value, raw, minimum, maximum)
            values[field.value] = number
        return MeasurementValues(**values)

    def mapping_stats(self, result: MappingResult) -> MappingStats:
        """Row counts plus which fields the mapping covers."""
        mapped = self.column_mapping.mapped_fields()
        return MappingStats(
            total_rows=len(result.measurements) + len(result.errors),
            successful_mappings=len(result.measurements),
            failed_mappings=len(result.errors),
            mapped_fields=[field.value for field in mapped],
            unmapped_fields=[field.value for field in MeasurementField if field not in mapped],
        )

    @staticmethod
    def chunk_measurements(items: Sequence[T], chunk_size: int) -> List[List[T]]:
        """Split into ordered slices of at most ``chunk_size`` items.

        Raises:
            ValueError: If chunk_size is less than 1
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        return [list(items[i : i + chunk_size]) for i in range(0, len(items), chunk_size)]
