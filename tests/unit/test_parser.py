"""Unit tests for the measurement CSV parser.

Covers quote-aware splitting, structural failures, the preview cap, encoding
fallback, template generation and header auto-detection.
"""

from unittest.mock import patch

import pytest

from backend.measurement_import.exceptions import (
    CSVEncodingError,
    CSVFileNotFoundError,
    CSVParsingError,
    CSVRowError,
    DuplicateHeaderError,
    EmptyHeaderError,
    EmptyInputError,
    MeasurementImportError,
    TooManyParseErrorsError,
)
from backend.measurement_import.fields import TEMPLATE_FIELDS, MeasurementField
from backend.measurement_import.parser import CSVParser


class TestParseText:
    """Test parsing CSV text into a ParsedTable."""

    def setup_method(self):
        """Set up test fixtures."""
        self.parser = CSVParser()

    def test_headers_and_rows(self):
        """Test header row and data rows are read in order."""
        table = self.parser.parse_text("timestamp,ph\n2025-07-28 09:00:00,7.2\n2025-07-28 10:00:00,7.1")

        assert table.headers == ["timestamp", "ph"]
        assert table.rows == [
            {"timestamp": "2025-07-28 09:00:00", "ph": "7.2"},
            {"timestamp": "2025-07-28 10:00:00", "ph": "7.1"},
        ]
        assert table.total_row_count == 2
        assert table.preview_row_count == 2
        assert table.delimiter == ","
        assert table.encoding == "utf-8"

    def test_quoted_fields(self):
        """Test delimiters inside quotes and doubled quotes."""
        table = self.parser.parse_text('site,notes\n"Pond A, east","said ""ok"""')

        assert table.rows[0] == {"site": "Pond A, east", "notes": 'said "ok"'}

    def test_fields_are_trimmed(self):
        """Test surrounding whitespace is dropped from headers and values."""
        table = self.parser.parse_text(" timestamp , ph \n 2025-07-28 ,  7.2 ")

        assert table.headers == ["timestamp", "ph"]
        assert table.rows[0] == {"timestamp": "2025-07-28", "ph": "7.2"}

    def test_missing_trailing_values_are_empty(self):
        """Test short rows are padded with empty strings."""
        table = self.parser.parse_text("timestamp,ph,notes\n2025-07-28,7.2")

        assert table.rows[0] == {"timestamp": "2025-07-28", "ph": "7.2", "notes": ""}

    def test_crlf_and_blank_lines(self):
        """Test CRLF endings and blank lines are handled."""
        table = self.parser.parse_text("timestamp,ph\r\n\r\n2025-07-28,7.2\r\n   \r\n2025-07-29,7.0\r\n")

        assert table.total_row_count == 2
        assert [row["ph"] for row in table.rows] == ["7.2", "7.0"]

    def test_tab_delimiter(self):
        """Test a configurable delimiter."""
        parser = CSVParser(delimiter="\t")
        table = parser.parse_text("timestamp\tph\n2025-07-28\t7.2")

        assert table.rows[0]["ph"] == "7.2"
        assert table.delimiter == "\t"

    def test_invalid_delimiter_rejected(self):
        """Test multi-character delimiters are refused."""
        with pytest.raises(ValueError):
            CSVParser(delimiter=";;")


class TestStructuralErrors:
    """Test failures that abort parsing."""

    def setup_method(self):
        """Set up test fixtures."""
        self.parser = CSVParser()

    @pytest.mark.parametrize("text", ["", "\n\n", "   \r\n  "])
    def test_empty_input(self, text):
        """Test files without non-blank lines."""
        with pytest.raises(EmptyInputError) as exc_info:
            self.parser.parse_text(text)

        assert exc_info.value.error_code == "EMPTY_INPUT"

    def test_empty_header(self):
        """Test a header row without any column names."""
        with pytest.raises(EmptyHeaderError):
            self.parser.parse_text(",,\n1,2,3")

    def test_duplicate_headers_case_insensitive(self):
        """Test headers differing only in case are duplicates."""
        with pytest.raises(DuplicateHeaderError) as exc_info:
            self.parser.parse_text("Timestamp,ph,TIMESTAMP \n2025-07-28,7.2,x")

        assert exc_info.value.names == ["TIMESTAMP"]
        assert "TIMESTAMP" in exc_info.value.message

    def test_unterminated_quote_in_header(self):
        """Test the header row itself cannot be split."""
        with pytest.raises(CSVRowError):
            self.parser.parse_text('timestamp,"ph\n2025-07-28,7.2')

    def test_hierarchy(self):
        """Test parser errors share the import error root."""
        assert issubclass(DuplicateHeaderError, CSVParsingError)
        assert issubclass(CSVParsingError, MeasurementImportError)

        error = DuplicateHeaderError(["ph"])
        data = error.to_dict()
        assert data["error_type"] == "DuplicateHeaderError"
        assert data["details"]["duplicate_headers"] == ["ph"]


class TestRowParseErrors:
    """Test malformed data rows."""

    def setup_method(self):
        """Set up test fixtures."""
        self.parser = CSVParser()

    def test_single_malformed_row_is_skipped(self):
        """Test one bad row out of three is dropped and recorded."""
        table = self.parser.parse_text(
            'timestamp,notes\n2025-07-28,ok\n2025-07-29,"broken\n2025-07-30,fine'
        )

        assert [row["timestamp"] for row in table.rows] == ["2025-07-28", "2025-07-30"]
        assert table.total_row_count == 3
        assert table.preview_row_count == 2
        assert table.parse_errors == ["Row 3: Unterminated quoted field"]
        assert table.parse_error_rows == [3]
        assert table.row_numbers == [2, 4]
        assert table.file_row_numbers() == [2, 4]

    def test_too_many_malformed_rows(self):
        """Test more than half the rows failing rejects the file."""
        with pytest.raises(TooManyParseErrorsError) as exc_info:
            self.parser.parse_text('timestamp,notes\n"a,b\n2025-07-29,ok\n"c,d\n"e,f\n"g,h')

        error = exc_info.value
        assert len(error.samples) == 3
        assert error.samples[0].startswith("Row 2:")
        assert error.message.endswith("...")
        assert error.details["failed_rows"] == 4

    def test_exactly_half_malformed_is_accepted(self):
        """Test the threshold is strictly more than half."""
        table = self.parser.parse_text('timestamp,notes\n"a,b\n2025-07-29,ok')

        assert table.preview_row_count == 1


class TestPreviewCap:
    """Test the preview row limit."""

    def _text(self, rows: int) -> str:
        lines = ["timestamp,ph"] + [f"2025-07-28 09:{i:02d}:00,7.{i % 10}" for i in range(rows)]
        return "\n".join(lines)

    def test_default_cap_is_ten(self):
        """Test only ten rows are materialised by default."""
        table = CSVParser().parse_text(self._text(15))

        assert table.total_row_count == 15
        assert table.preview_row_count == 10
        assert len(table.rows) == 10

    def test_no_cap(self):
        """Test max_preview_rows=None reads every row."""
        table = CSVParser(max_preview_rows=None).parse_text(self._text(15))

        assert table.preview_row_count == 15

    def test_table_is_frozen(self):
        """Test the parsed table cannot be reassigned."""
        table = CSVParser().parse_text(self._text(2))

        with pytest.raises(Exception):
            table.headers = ["other"]


class TestDecoding:
    """Test byte decoding and file input."""

    def test_utf8_bom_is_stripped(self):
        """Test a UTF-8 BOM does not end up in the first header."""
        text, encoding = CSVParser().decode_bytes("\ufefftimestamp,ph\n".encode("utf-8"))

        assert text == "timestamp,ph\n"
        assert encoding == "utf-8"

    def test_shift_jis_fallback(self):
        """Test Shift_JIS exports are detected and decoded."""
        lines = ["日時,水温,濁度,測定地点,備考"]
        for hour in range(10, 24):
            lines.append(f"2025-07-28 {hour}:00:00,25.{hour % 10},2.1,測定ポイントA,正常運転。異常なし。")
        original = "\n".join(lines)

        text, encoding = CSVParser().decode_bytes(original.encode("shift_jis"))

        assert text == original
        assert encoding

    def test_undecodable_bytes(self):
        """Test an encoding that cannot be determined."""
        with patch(
            "backend.measurement_import.parser.chardet.detect",
            return_value={"encoding": None, "confidence": 0.0},
        ):
            with pytest.raises(CSVEncodingError):
                CSVParser().decode_bytes(b"\xff\xfe\xfa\x80")

    @pytest.mark.asyncio
    async def test_parse_file(self, csv_file, water_quality_csv):
        """Test reading a file from disk."""
        path = csv_file(water_quality_csv)

        table = await CSVParser(max_preview_rows=None).parse_file(path)

        assert table.headers[0] == "日時"
        assert table.preview_row_count == 5
        assert table.encoding == "utf-8"

    @pytest.mark.asyncio
    async def test_parse_missing_file(self, tmp_path):
        """Test a missing file raises CSVFileNotFoundError."""
        with pytest.raises(CSVFileNotFoundError) as exc_info:
            await CSVParser().parse_file(tmp_path / "missing.csv")

        assert exc_info.value.error_code == "FILE_NOT_FOUND"


class TestTemplateAndDetection:
    """Test the template generator and header auto-detection."""

    def test_template_layout(self, template_csv):
        """Test template header and sample rows."""
        lines = template_csv.split("\n")

        assert lines[0] == (
            "timestamp,type,ph,temperature,co2_concentration,flow_rate,iron,copper,zinc,"
            "turbidity,conductivity,dissolved_oxygen,latitude,longitude,site_name,notes"
        )
        assert len(lines) == 4
        assert all(len(line.split(",")) == 16 for line in lines)
        assert lines[1].startswith("2025-07-28 09:00:00,water_quality,7.2")
        assert lines[2].endswith("測定ポイントA,")

    def test_detect_template_headers(self, template_csv):
        """Test every template column maps to the field of the same name."""
        headers = template_csv.split("\n")[0].split(",")

        mapping = CSVParser.detect_columns(headers)

        assert mapping.columns == {field: field.value for field in TEMPLATE_FIELDS}

    def test_detect_japanese_headers(self):
        """Test Japanese header names."""
        mapping = CSVParser.detect_columns(["日時", "pH", "水温", "濁度", "緯度", "経度", "測定地点", "備考"])

        assert mapping.to_dict() == {
            "timestamp": "日時",
            "ph": "pH",
            "temperature": "水温",
            "turbidity": "濁度",
            "latitude": "緯度",
            "longitude": "経度",
            "site_name": "測定地点",
            "notes": "備考",
        }

    def test_claimed_field_not_reassigned(self):
        """Test a second timestamp-like header does not steal the field."""
        mapping = CSVParser.detect_columns(["Date", "Time", "Water Temp"])

        assert mapping.column_for(MeasurementField.TIMESTAMP) == "Date"
        assert mapping.column_for(MeasurementField.TEMPERATURE) == "Water Temp"
        assert "Time" not in mapping.columns.values()

    def test_unknown_headers_ignored(self):
        """Test headers matching no pattern are left unmapped."""
        mapping = CSVParser.detect_columns(["batch", "operator"])

        assert mapping.columns == {}
