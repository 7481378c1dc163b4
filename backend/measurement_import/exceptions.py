"""Measurement Import Exceptions.

Exception hierarchy for the CSV import pipeline. Structural problems with a
file abort the run; row-level problems are raised inside the mapper and
turned into recorded errors by the caller.
"""

from typing import Any, Optional, Dict, List


class MeasurementImportError(Exception):
    """Base exception for measurement import errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        """Initialize import error.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            details: Additional error details
            recoverable: Whether the user can fix the input and retry
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class CSVParsingError(MeasurementImportError):
    """Base exception for structural CSV problems."""


class CSVFileNotFoundError(CSVParsingError):
    """Raised when the CSV file does not exist."""

    def __init__(self, message: str, file_path: Optional[str] = None, **kwargs):
        details = kwargs.get("details", {})
        if file_path:
            details["file_path"] = file_path
        kwargs["details"] = details
        kwargs.setdefault("error_code", "FILE_NOT_FOUND")
        super().__init__(message, **kwargs)


class CSVEncodingError(CSVParsingError):
    """Raised when file bytes cannot be decoded to text."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "UNREADABLE_FILE")
        super().__init__(message, **kwargs)


class EmptyInputError(CSVParsingError):
    """Raised when the file has no non-blank lines."""

    def __init__(self, message: str = "CSV file is empty", **kwargs):
        kwargs.setdefault("error_code", "EMPTY_INPUT")
        super().__init__(message, **kwargs)


class EmptyHeaderError(CSVParsingError):
    """Raised when the header row yields no columns."""

    def __init__(self, message: str = "Header row not found", **kwargs):
        kwargs.setdefault("error_code", "EMPTY_HEADER")
        super().__init__(message, **kwargs)


class DuplicateHeaderError(CSVParsingError):
    """Raised when two headers are equal after case-insensitive trimming."""

    def __init__(self, names: List[str], **kwargs):
        self.names = list(names)
        details = kwargs.get("details", {})
        details["duplicate_headers"] = self.names
        kwargs["details"] = details
        kwargs.setdefault("error_code", "DUPLICATE_HEADER")
        super().__init__(f"Duplicate headers found: {', '.join(self.names)}", **kwargs)


class TooManyParseErrorsError(CSVParsingError):
    """Raised when more than half of the attempted data rows fail to parse."""

    def __init__(self, samples: List[str], failed_rows: int, attempted_rows: int, **kwargs):
        self.samples = list(samples[:3])
        details = kwargs.get("details", {})
        details.update(
            {
                "samples": self.samples,
                "failed_rows": failed_rows,
                "attempted_rows": attempted_rows,
            }
        )
        kwargs["details"] = details
        kwargs.setdefault("error_code", "TOO_MANY_PARSE_ERRORS")
        suffix = "..." if failed_rows > len(self.samples) else ""
        super().__init__(
            f"Too many parse errors: {', '.join(self.samples)}{suffix}",
            **kwargs,
        )


class CSVRowError(CSVParsingError):
    """Raised when a single line cannot be split into fields."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "MALFORMED_ROW")
        super().__init__(message, **kwargs)


class RowMappingError(MeasurementImportError):
    """Raised while converting one row into a measurement request."""

    def __init__(
        self,
        message: str,
        field: str = "general",
        value: str = "",
        **kwargs,
    ):
        """Initialize row mapping error.

        Args:
            message: Error message
            field: Logical field the error concerns
            value: Offending raw value
            **kwargs: Additional arguments for MeasurementImportError
        """
        self.field = field
        self.value = value
        details = kwargs.get("details", {})
        details.update({"field": field, "value": value})
        kwargs["details"] = details
        super().__init__(message, **kwargs)


class MissingTimestampError(RowMappingError):
    """Raised when a row has no timestamp (or no timestamp column is mapped)."""

    def __init__(self, message: str, value: str = "", **kwargs):
        kwargs.setdefault("error_code", "MISSING_TIMESTAMP")
        super().__init__(message, field="timestamp", value=value, **kwargs)


class InvalidTimestampError(RowMappingError):
    """Raised when no timestamp format matches the value."""

    def __init__(self, value: str, **kwargs):
        kwargs.setdefault("error_code", "INVALID_TIMESTAMP")
        super().__init__(
            f"Invalid timestamp format: {value}", field="timestamp", value=value, **kwargs
        )


class InvalidCoordinateError(RowMappingError):
    """Raised for non-numeric, out-of-range or unpaired coordinates."""

    def __init__(self, message: str, field: str, value: str = "", **kwargs):
        kwargs.setdefault("error_code", "INVALID_COORDINATE")
        super().__init__(message, field=field, value=value, **kwargs)


class ValueOutOfRangeError(RowMappingError):
    """Raised when a numeric value is outside its plausibility range."""

    def __init__(self, field: str, value: str, minimum: float, maximum: float, **kwargs):
        kwargs.setdefault("error_code", "VALUE_OUT_OF_RANGE")
        details = kwargs.get("details", {})
        details.update({"minimum": minimum, "maximum": maximum})
        kwargs["details"] = details
        super().__init__(
            f"{field} value is out of range [{minimum:g}, {maximum:g}]: {value}",
            field=field,
            value=value,
            **kwargs,
        )


class MappingProfileError(MeasurementImportError):
    """Raised when a saved column-mapping profile cannot be used."""

    def __init__(self, message: str, profile: Optional[str] = None, **kwargs):
        details = kwargs.get("details", {})
        if profile:
            details["profile"] = profile
        kwargs["details"] = details
        kwargs["recoverable"] = False
        super().__init__(message, **kwargs)


class SubmissionError(MeasurementImportError):
    """Raised by a measurement client when a batch is rejected."""

    def __init__(self, message: str, batch_size: Optional[int] = None, **kwargs):
        details = kwargs.get("details", {})
        if batch_size is not None:
            details["batch_size"] = batch_size
        kwargs["details"] = details
        super().__init__(message, **kwargs)
