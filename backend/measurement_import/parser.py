"""CSV parser for measurement uploads.

Reads delimited text exported from spreadsheets and field loggers into a
:class:`ParsedTable`. Features:

- Quote-aware field splitting (``""`` inside quotes is a literal quote)
- Duplicate header detection (case-insensitive)
- UTF-8 with chardet fallback for Shift_JIS and other legacy exports
- Template generation and header auto-detection for column mapping
"""

import asyncio
from pathlib import Path
from typing import Optional, Dict, List, Tuple, Union

import chardet
import structlog

from .exceptions import (
    CSVEncodingError,
    CSVFileNotFoundError,
    CSVRowError,
    DuplicateHeaderError,
    EmptyHeaderError,
    EmptyInputError,
    TooManyParseErrorsError,
)
from .fields import COLUMN_PATTERNS, TEMPLATE_FIELDS, MeasurementField
from .models import ColumnMapping, ParsedTable

logger = structlog.get_logger(__name__)

# Rows of the downloadable template, aligned with TEMPLATE_FIELDS
TEMPLATE_SAMPLE_ROWS: List[List[str]] = [
    [
        "2025-07-28 09:00:00", "water_quality", "7.2", "25.5", "400", "100.5", "0.1",
        "0.05", "0.2", "2.1", "250", "8.5", "43.0642", "141.9716", "測定ポイントA", "正常運転",
    ],
    [
        "2025-07-28 09:15:00", "water_quality", "7.1", "25.8", "405", "98.2", "0.12",
        "0.04", "0.22", "2.3", "255", "8.3", "43.0642", "141.9716", "測定ポイントA", "",
    ],
    [
        "2025-07-28 09:30:00", "water_quality", "6.9", "26.1", "410", "95.8", "0.15",
        "0.06", "0.25", "2.8", "265", "8.2", "43.0642", "141.9716", "測定ポイントA",
        "pH値がやや低下傾向",
    ],
]

# Share of failed row parses above which the whole file is rejected
MAX_PARSE_ERROR_RATIO = 0.5


class CSVParser:
    """Parser for measurement CSV text."""

    def __init__(
        self,
        delimiter: str = ",",
        encoding: str = "utf-8",
        max_preview_rows: Optional[int] = 10,
        skip_empty_lines: bool = True,
    ):
        """Initialize parser.

        Args:
            delimiter: Single-character field delimiter
            encoding: Preferred encoding for file input
            max_preview_rows: Cap on materialised data rows (None for no cap)
            skip_empty_lines: Discard blank lines before parsing
        """
        if len(delimiter) != 1:
            raise ValueError("Delimiter must be a single character")
        if max_preview_rows is not None and max_preview_rows < 1:
            raise ValueError("max_preview_rows must be at least 1")

        self.delimiter = delimiter
        self.encoding = encoding
        self.max_preview_rows = max_preview_rows
        self.skip_empty_lines = skip_empty_lines
        self.logger = logger.bind(component=self.__class__.__name__)

    def parse_text(self, text: str, encoding: Optional[str] = None) -> ParsedTable:
        """Parse CSV text.

        Args:
            text: Whole file contents
            encoding: Encoding the text was decoded with, recorded on the result

        Returns:
            Parsed table

        Raises:
            EmptyInputError: If there are no non-blank lines
            EmptyHeaderError: If the header row has no columns
            DuplicateHeaderError: If two headers collide case-insensitively
            CSVRowError: If the header row has an unterminated quoted field
            TooManyParseErrorsError: If more than half the rows fail to split
        """
        lines = self._split_lines(text)
        if not lines:
            raise EmptyInputError()

        headers = self.parse_line(lines[0])
        if not headers or all(not header for header in headers):
            raise EmptyHeaderError()

        duplicates = self.find_duplicate_headers(headers)
        if duplicates:
            raise DuplicateHeaderError(duplicates)

        data_lines = lines[1:]
        if self.max_preview_rows is None:
            preview_lines = data_lines
        else:
            preview_lines = data_lines[: self.max_preview_rows]

        rows: List[Dict[str, str]] = []
        row_numbers: List[int] = []
        parse_errors: List[str] = []
        parse_error_rows: List[int] = []
        for row_number, line in enumerate(preview_lines, start=2):
            try:
                values = self.parse_line(line)
            except CSVRowError as e:
                parse_errors.append(f"Row {row_number}: {e.message}")
                parse_error_rows.append(row_number)
                continue
            row_numbers.append(row_number)
            rows.append(
                {
                    header: values[position] if position < len(values) else ""
                    for position, header in enumerate(headers)
                }
            )

        if parse_errors and len(parse_errors) > len(preview_lines) * MAX_PARSE_ERROR_RATIO:
            self.logger.warning(
                "Rejecting CSV with too many malformed rows",
                failed_rows=len(parse_errors),
                attempted_rows=len(preview_lines),
            )
            raise TooManyParseErrorsError(parse_errors, len(parse_errors), len(preview_lines))

        if parse_errors:
            self.logger.warning("Skipped malformed rows", failed_rows=len(parse_errors))

        table = ParsedTable(
            headers=headers,
            rows=rows,
            total_row_count=len(data_lines),
            preview_row_count=len(rows),
            delimiter=self.delimiter,
            encoding=encoding or self.encoding,
            parse_errors=parse_errors,
            row_numbers=row_numbers,
            parse_error_rows=parse_error_rows,
        )

        self.logger.debug(
            "Parsed CSV text",
            columns=len(headers),
            total_rows=table.total_row_count,
            preview_rows=table.preview_row_count,
        )
        return table

    async def parse_file(self, file_path: Union[str, Path]) -> ParsedTable:
        """Read, decode and parse a CSV file.

        Raises:
            CSVFileNotFoundError: If the file doesn't exist
            CSVEncodingError: If the bytes cannot be decoded
        """
        file_path = Path(file_path)
        if not file_path.is_file():
            raise CSVFileNotFoundError(f"File not found: {file_path}", file_path=str(file_path))

        self.logger.info("Parsing CSV file", file_path=str(file_path))
        raw = await asyncio.to_thread(file_path.read_bytes)
        text, encoding = self.decode_bytes(raw)
        return self.parse_text(text, encoding=encoding)

    def decode_bytes(self, raw: bytes) -> Tuple[str, str]:
        """Decode file bytes, falling back to chardet detection.

        Returns:
            Tuple of (text, encoding name)
        """
        preferred = self.encoding.lower().replace("_", "-")
        if preferred in ("utf-8", "utf8", "utf-8-sig"):
            try:
                return raw.decode("utf-8-sig"), "utf-8"
            except UnicodeDecodeError:
                pass
        else:
            try:
                return raw.decode(self.encoding), self.encoding
            except (UnicodeDecodeError, LookupError):
                pass

        result = chardet.detect(raw)
        detected = result.get("encoding")
        confidence = result.get("confidence") or 0.0
        self.logger.info(
            "Detected encoding",
            encoding=detected,
            confidence=round(confidence, 2),
        )
        if not detected:
            raise CSVEncodingError("Could not determine file encoding")

        try:
            return raw.decode(detected), detected
        except (UnicodeDecodeError, LookupError) as e:
            raise CSVEncodingError(
                f"Failed to read file as {detected}: {e}",
                details={"encoding": detected, "confidence": confidence},
            ) from e

    def parse_line(self, line: str) -> List[str]:
        """Split one line into trimmed fields.

        Raises:
            CSVRowError: If the line ends inside a quoted field
        """
        values: List[str] = []
        current: List[str] = []
        in_quotes = False
        i = 0

        while i < len(line):
            char = line[i]
            if char == '"':
                if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                    current.append('"')
                    i += 2
                    continue
                in_quotes = not in_quotes
            elif char == self.delimiter and not in_quotes:
                values.append("".join(current).strip())
                current = []
            else:
                current.append(char)
            i += 1

        if in_quotes:
            raise CSVRowError("Unterminated quoted field")

        values.append("".join(current).strip())
        return [self._strip_quotes(value) for value in values]

    @staticmethod
    def _strip_quotes(value: str) -> str:
        if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
            return value[1:-1]
        return value

    def _split_lines(self, text: str) -> List[str]:
        lines = text.replace("\r\n", "\n").split("\n")
        if self.skip_empty_lines:
            return [line for line in lines if line.strip()]
        # Trailing newline still produces no row
        while lines and not lines[-1].strip():
            lines.pop()
        return lines

    @staticmethod
    def find_duplicate_headers(headers: List[str]) -> List[str]:
        """Headers repeated after lower-casing and trimming, in first-repeat order."""
        seen = set()
        duplicates: List[str] = []
        for header in headers:
            normalized = header.strip().lower()
            if normalized in seen:
                if header not in duplicates:
                    duplicates.append(header)
            else:
                seen.add(normalized)
        return duplicates

    @staticmethod
    def generate_template() -> str:
        """CSV template with every mappable column and three sample rows."""
        lines = [",".join(field.value for field in TEMPLATE_FIELDS)]
        lines.extend(",".join(row) for row in TEMPLATE_SAMPLE_ROWS)
        return "\n".join(lines)

    @staticmethod
    def detect_columns(headers: List[str]) -> ColumnMapping:
        """Guess a column mapping from header names.

        Each header goes to the first field in the pattern table that it
        matches and that no earlier header has claimed.
        """
        columns: Dict[MeasurementField, str] = {}
        for header in headers:
            normalized = header.strip().lower()
            if not normalized:
                continue
            for field, patterns in COLUMN_PATTERNS:
                if field in columns:
                    continue
                if any(pattern.search(normalized) for pattern in patterns):
                    columns[field] = header
                    break

        logger.debug("Detected column mapping", mapped=len(columns), headers=len(headers))
        return ColumnMapping(columns=columns)
