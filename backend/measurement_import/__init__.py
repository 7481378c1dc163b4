"""CSV Import Pipeline for MRV Measurements.

Turns user-supplied CSV files of environmental readings (water quality,
atmospheric and soil measurements from CO2-removal and wastewater
treatment projects) into validated measurement-creation requests.

Key Components:
- Parser: CSV text -> ParsedTable, with duplicate header and malformed row checks
- Validator: rule table, cross-field checks and duplicate detection
- Mapper: rows -> MeasurementCreateRequest via a column mapping
- Processor: runs the three stages and reports on the outcome
- Submission: batched hand-off to an injected measurement API client
"""

from .exceptions import (
    CSVEncodingError,
    CSVFileNotFoundError,
    CSVParsingError,
    CSVRowError,
    DuplicateHeaderError,
    EmptyHeaderError,
    EmptyInputError,
    InvalidCoordinateError,
    InvalidTimestampError,
    MappingProfileError,
    MeasurementImportError,
    MissingTimestampError,
    RowMappingError,
    SubmissionError,
    TooManyParseErrorsError,
    ValueOutOfRangeError,
)
from .fields import MeasurementField, MeasurementType
from .mappers import MeasurementMapper
from .mapping_store import MappingProfileStore, load_mapping_file
from .models import (
    ColumnMapping,
    CorrectionSuggestion,
    FieldRule,
    FixSuggestionGroup,
    MappingError,
    MappingOptions,
    MappingResult,
    MeasurementCreateRequest,
    ParsedTable,
    ProcessorOptions,
    ProcessResult,
    ValidationFinding,
    ValidationResult,
)
from .parser import CSVParser
from .processor import CSVImportProcessor, options_from_settings
from .submission import InMemoryMeasurementClient, MeasurementClient, submit_measurements
from .validators import DEFAULT_RULES, CSVValidator

__all__ = [
    # Pipeline stages
    "CSVParser",
    "CSVValidator",
    "MeasurementMapper",
    "CSVImportProcessor",
    "options_from_settings",
    "DEFAULT_RULES",
    # Submission
    "MeasurementClient",
    "InMemoryMeasurementClient",
    "submit_measurements",
    # Mapping profiles
    "MappingProfileStore",
    "load_mapping_file",
    # Models
    "MeasurementField",
    "MeasurementType",
    "ParsedTable",
    "ColumnMapping",
    "FieldRule",
    "ValidationFinding",
    "ValidationResult",
    "CorrectionSuggestion",
    "MappingError",
    "MappingOptions",
    "MappingResult",
    "MeasurementCreateRequest",
    "ProcessorOptions",
    "ProcessResult",
    "FixSuggestionGroup",
    # Exceptions
    "MeasurementImportError",
    "CSVParsingError",
    "CSVFileNotFoundError",
    "CSVEncodingError",
    "CSVRowError",
    "EmptyInputError",
    "EmptyHeaderError",
    "DuplicateHeaderError",
    "TooManyParseErrorsError",
    "RowMappingError",
    "MissingTimestampError",
    "InvalidTimestampError",
    "InvalidCoordinateError",
    "ValueOutOfRangeError",
    "MappingProfileError",
    "SubmissionError",
]
