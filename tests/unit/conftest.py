"""
Shared test fixtures for unit tests.

Provides CSV samples, column mappings and parsed tables for testing the
measurement import pipeline.
"""

from pathlib import Path
from typing import Dict, List

import pytest

from backend.measurement_import.fields import TEMPLATE_FIELDS, MeasurementField
from backend.measurement_import.models import ColumnMapping, MappingOptions, ParsedTable
from backend.measurement_import.parser import CSVParser


@pytest.fixture
def template_csv() -> str:
    """The downloadable CSV template (header plus three sample rows)."""
    return CSVParser.generate_template()


@pytest.fixture
def water_quality_csv() -> str:
    """
    Small water-quality export with Japanese headers.

    Returns:
        CSV text with five data rows
    """
    return (
        "日時,pH,水温,濁度,緯度,経度,測定地点,備考\n"
        "2025-07-28 09:00:00,7.2,25.5,2.1,43.0642,141.9716,測定ポイントA,正常運転\n"
        "2025-07-28 10:00:00,7.1,25.8,2.3,43.0642,141.9716,測定ポイントA,\n"
        "2025/07/28 11:00,6.9,26.1,2.8,43.0642,141.9716,測定ポイントA,\n"
        "2025-07-28,7.0,24.9,1.9,43.0700,141.9800,測定ポイントB,\n"
        "2025-07-28T03:00:00Z,7.3,25.0,2.0,43.0700,141.9800,測定ポイントB,夜間\n"
    )


@pytest.fixture
def full_mapping() -> ColumnMapping:
    """Mapping for the template header (header == field name)."""
    return ColumnMapping(columns={field: field.value for field in TEMPLATE_FIELDS})


@pytest.fixture
def basic_mapping() -> ColumnMapping:
    """Mapping with timestamp, pH, temperature and coordinates."""
    return ColumnMapping(
        columns={
            MeasurementField.TIMESTAMP: "timestamp",
            MeasurementField.PH: "ph",
            MeasurementField.TEMPERATURE: "temperature",
            MeasurementField.LATITUDE: "latitude",
            MeasurementField.LONGITUDE: "longitude",
        }
    )


@pytest.fixture
def make_rows():
    """Factory for rows keyed by the basic mapping's headers."""

    def _make(*rows: Dict[str, str]) -> List[Dict[str, str]]:
        defaults = {
            "timestamp": "2025-07-28 09:00:00",
            "ph": "7.2",
            "temperature": "25.5",
            "latitude": "43.0642",
            "longitude": "141.9716",
        }
        return [{**defaults, **row} for row in rows]

    return _make


@pytest.fixture
def make_table():
    """Factory for ParsedTable objects from header + row lists."""

    def _make(headers: List[str], *values: List[str]) -> ParsedTable:
        rows = [dict(zip(headers, row)) for row in values]
        return ParsedTable(
            headers=headers,
            rows=rows,
            total_row_count=len(rows),
            preview_row_count=len(rows),
        )

    return _make


@pytest.fixture
def mapping_options() -> MappingOptions:
    """Lenient mapping options for project p-1."""
    return MappingOptions(project_id="p-1")


@pytest.fixture
def csv_file(tmp_path: Path):
    """Factory writing CSV text (or bytes) to a temporary file."""

    def _write(content, name: str = "upload.csv") -> Path:
        path = tmp_path / name
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path

    return _write


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "unit: mark test as unit test")
