"""Measurement Import Data Models.

Pydantic models for parsed tables, column mappings, validation findings,
mapping results, measurement requests and processing results.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .fields import MeasurementField, MeasurementType


class ParsedTable(BaseModel):
    """Header row plus data rows read from a CSV file."""

    model_config = ConfigDict(frozen=True)

    headers: List[str] = Field(description="Column headers in file order")
    rows: List[Dict[str, str]] = Field(
        default_factory=list, description="Data rows keyed by header"
    )
    total_row_count: int = Field(description="Number of non-blank data lines in the file")
    preview_row_count: int = Field(description="Number of rows materialised in `rows`")
    delimiter: str = Field(default=",", description="Field delimiter used")
    encoding: str = Field(default="utf-8", description="Text encoding the file was read with")
    parse_errors: List[str] = Field(
        default_factory=list, description="Rows skipped because they could not be split"
    )
    row_numbers: List[int] = Field(
        default_factory=list,
        description="File row of each entry in `rows`; empty means rows start at 2 with no gaps",
    )
    parse_error_rows: List[int] = Field(
        default_factory=list, description="File rows skipped because they could not be split"
    )

    def file_row_numbers(self) -> List[int]:
        """1-based file row (header is row 1) for each entry in `rows`."""
        if self.row_numbers:
            return list(self.row_numbers)
        return list(range(2, len(self.rows) + 2))


class ColumnMapping(BaseModel):
    """Association of logical fields to CSV headers for one import run."""

    columns: Dict[MeasurementField, str] = Field(
        default_factory=dict, description="Logical field -> CSV header"
    )

    @field_validator("columns")
    @classmethod
    def drop_blank_headers(cls, v: Dict[MeasurementField, str]) -> Dict[MeasurementField, str]:
        """Unmapped fields may be given as empty strings."""
        return {field: header for field, header in v.items() if header and header.strip()}

    def column_for(self, field: MeasurementField) -> Optional[str]:
        """Header mapped to a field, or None."""
        return self.columns.get(field)

    def mapped_fields(self) -> List[MeasurementField]:
        """Fields that have a header."""
        return list(self.columns)

    def to_dict(self) -> Dict[str, str]:
        """Plain ``{field: header}`` dictionary."""
        return {field.value: header for field, header in self.columns.items()}


class FindingSeverity(str, Enum):
    """Severity of a validation finding."""

    ERROR = "error"
    WARNING = "warning"


class RuleType(str, Enum):
    """Value type a field rule checks for."""

    STRING = "string"
    NUMBER = "number"
    DATE = "date"


class FieldRule(BaseModel):
    """Validation rule for one logical field."""

    field: MeasurementField = Field(description="Field the rule applies to")
    type: RuleType = Field(description="Expected value type")
    required: bool = Field(default=False, description="Whether an empty value is an error")
    min: Optional[float] = Field(None, description="Inclusive hard minimum")
    max: Optional[float] = Field(None, description="Inclusive hard maximum")
    warn_below: Optional[float] = Field(None, description="Warn when value is below this")
    warn_above: Optional[float] = Field(None, description="Warn when value is above this")
    warning_message: Optional[str] = Field(None, description="Message for warning-band hits")


class ValidationFinding(BaseModel):
    """One error or warning produced by the validator."""

    row: int = Field(description="1-based file row (header is row 1)")
    column: str = Field(description="CSV header the finding concerns")
    value: str = Field(default="", description="Offending raw value")
    message: str = Field(description="Human-readable message")
    severity: FindingSeverity = Field(default=FindingSeverity.ERROR)
    code: str = Field(description="Machine-readable finding code")
    field: Optional[MeasurementField] = Field(None, description="Logical field, when known")


class ValidationResult(BaseModel):
    """Outcome of validating a set of rows."""

    is_valid: bool
    errors: List[ValidationFinding] = Field(default_factory=list)
    warnings: List[ValidationFinding] = Field(default_factory=list)

    def error_rows(self) -> set:
        """Row numbers carrying at least one error."""
        return {error.row for error in self.errors}


class CorrectionSuggestion(BaseModel):
    """Advisory fix for a validation error."""

    row: int
    column: str
    suggested_value: str
    reason: str


class ValidationStats(BaseModel):
    """Aggregate counts over a validation result."""

    total_errors: int
    total_warnings: int
    errors_by_column: Dict[str, int] = Field(default_factory=dict)
    most_common_errors: List[Dict[str, Any]] = Field(
        default_factory=list, description="Up to five {message, count} entries"
    )


class MappingError(BaseModel):
    """Row that could not be turned into a measurement."""

    row: int = Field(description="1-based file row")
    field: str = Field(description="Logical field, or 'general'")
    value: str = Field(default="", description="Offending raw value")
    message: str
    code: str = Field(default="mapping_error")


class MappingOptions(BaseModel):
    """Options for the row mapper."""

    project_id: str = Field(description="Project the measurements belong to")
    default_type: MeasurementType = Field(default=MeasurementType.WATER_QUALITY)
    default_operator_id: Optional[str] = None
    default_device_id: Optional[str] = None
    skip_invalid_rows: bool = Field(
        default=True, description="Drop failing rows instead of aborting the batch"
    )
    timezone: str = Field(default="Asia/Tokyo", description="Zone for naive timestamps")

    @field_validator("project_id")
    @classmethod
    def validate_project_id(cls, v: str) -> str:
        """Project id must not be blank."""
        if not v or not v.strip():
            raise ValueError("project_id must not be empty")
        return v


class _WireModel(BaseModel):
    """Serialises with camelCase keys; accepts either spelling on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Location(_WireModel):
    """Where a measurement was taken."""

    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    site_name: Optional[str] = None

    @model_validator(mode="after")
    def check_pair(self) -> "Location":
        """Latitude and longitude come together or not at all."""
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must both be present or both absent")
        return self


class MeasurementValues(_WireModel):
    """Numeric readings; absent fields are None."""

    ph: Optional[float] = None
    temperature: Optional[float] = None
    turbidity: Optional[float] = None
    conductivity: Optional[float] = None
    dissolved_oxygen: Optional[float] = None
    co2_concentration: Optional[float] = None
    humidity: Optional[float] = None
    air_pressure: Optional[float] = None
    wind_speed: Optional[float] = None
    soil_ph: Optional[float] = Field(None, alias="soilPH")
    soil_moisture: Optional[float] = None
    organic_matter: Optional[float] = None
    iron: Optional[float] = None
    copper: Optional[float] = None
    zinc: Optional[float] = None
    lead: Optional[float] = None
    cadmium: Optional[float] = None
    flow_rate: Optional[float] = None
    processed_volume: Optional[float] = None
    co2_captured: Optional[float] = None
    mineral_precipitation: Optional[float] = None

    def present(self) -> Dict[str, float]:
        """Values that were set, keyed by field name."""
        return {name: value for name, value in self if value is not None}


class MeasurementCreateRequest(_WireModel):
    """Payload for the measurement-creation API."""

    project_id: str
    timestamp: str = Field(description="UTC ISO-8601, YYYY-MM-DDTHH:MM:SS.sssZ")
    type: MeasurementType
    location: Location = Field(default_factory=Location)
    values: MeasurementValues = Field(default_factory=MeasurementValues)
    notes: Optional[str] = None
    operator_id: Optional[str] = None
    device_id: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: str) -> str:
        """Timestamp must be non-empty ISO-8601."""
        if not v:
            raise ValueError("timestamp must not be empty")
        try:
            datetime.fromisoformat(v.replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"timestamp is not ISO-8601: {v}") from e
        return v

    def to_wire(self) -> Dict[str, Any]:
        """camelCase dictionary without unset optional members."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MappingResult(BaseModel):
    """Outcome of mapping a parsed table."""

    success: bool
    measurements: List[MeasurementCreateRequest] = Field(default_factory=list)
    errors: List[MappingError] = Field(default_factory=list)


class MappingStats(BaseModel):
    """Counts over a mapping result."""

    total_rows: int
    successful_mappings: int
    failed_mappings: int
    mapped_fields: List[str] = Field(default_factory=list)
    unmapped_fields: List[str] = Field(default_factory=list)


class ProcessorOptions(BaseModel):
    """Options for one import run."""

    project_id: str = Field(description="Project the measurements belong to")
    column_mapping: Optional[ColumnMapping] = Field(
        None, description="Explicit mapping; auto-detected from headers when None"
    )
    skip_invalid_rows: bool = Field(default=True)
    batch_size: int = Field(default=100, description="Measurements per submission batch")
    default_type: MeasurementType = Field(default=MeasurementType.WATER_QUALITY)
    operator_id: Optional[str] = None
    device_id: Optional[str] = None
    delimiter: str = Field(default=",")
    max_rows: Optional[int] = Field(None, description="Cap on data rows read; None reads all")

    @field_validator("batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        """The measurement API accepts at most 100 items per request."""
        if not 1 <= v <= 100:
            raise ValueError("Batch size must be between 1 and 100")
        return v

    @field_validator("max_rows")
    @classmethod
    def validate_max_rows(cls, v: Optional[int]) -> Optional[int]:
        """Row cap must be positive when given."""
        if v is not None and v < 1:
            raise ValueError("max_rows must be at least 1")
        return v


class ParsingSummary(BaseModel):
    """Parse stage outcome."""

    success: bool
    error: Optional[str] = None
    error_code: Optional[str] = None


class ValidationSummary(BaseModel):
    """Validation stage outcome."""

    valid: bool
    error_count: int = 0
    warning_count: int = 0


class MappingSummary(BaseModel):
    """Mapping stage outcome."""

    success: bool
    success_count: int = 0
    error_count: int = 0


class ProcessingSummary(BaseModel):
    """Per-stage outcome of an import run."""

    parsing: ParsingSummary
    validation: ValidationSummary = Field(default_factory=lambda: ValidationSummary(valid=False))
    mapping: MappingSummary = Field(default_factory=lambda: MappingSummary(success=False))


class FieldStatistics(BaseModel):
    """Descriptive statistics for one numeric field."""

    count: int
    min: float
    max: float
    mean: float


class ProcessResult(BaseModel):
    """Aggregated outcome of an import run."""

    success: bool
    parsed_table: Optional[ParsedTable] = None
    column_mapping: Optional[ColumnMapping] = None
    validation_result: Optional[ValidationResult] = None
    mapping_result: Optional[MappingResult] = None
    final_measurements: List[MeasurementCreateRequest] = Field(default_factory=list)
    total_processed: int = 0
    total_errors: int = 0
    processing_time: float = Field(default=0.0, description="Milliseconds")
    summary: ProcessingSummary
    value_statistics: Dict[str, FieldStatistics] = Field(default_factory=dict)


class FixSuggestionGroup(BaseModel):
    """Category of human-readable fix suggestions."""

    category: str
    suggestions: List[str] = Field(default_factory=list)


class BatchSubmissionResult(BaseModel):
    """Response of the measurement API for one batch."""

    success: bool
    created_count: int = 0
    error: Optional[str] = None


class SubmissionSummary(BaseModel):
    """Outcome of submitting all batches."""

    total_measurements: int
    total_batches: int
    submitted: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0
