"""Integration tests for the measurement import pipeline.

This module tests end-to-end imports from files on disk through parsing,
validation, mapping and batched submission.
"""

import shutil
import tempfile
from pathlib import Path

import pytest

from backend.measurement_import import (
    CSVImportProcessor,
    ColumnMapping,
    CSVParser,
    InMemoryMeasurementClient,
    MappingProfileStore,
    ProcessorOptions,
    submit_measurements,
)
from shared.config.settings import Settings


@pytest.mark.integration
class TestImportWorkflow:
    """Test complete import workflows."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = Path(tempfile.mkdtemp())

    def teardown_method(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write(self, name, content, encoding="utf-8"):
        path = self.temp_dir / name
        path.write_bytes(content.encode(encoding))
        return path

    @pytest.mark.asyncio
    async def test_template_round_trip(self):
        """Test the downloadable template imports cleanly and submits."""
        path = self._write("template.csv", CSVParser.generate_template())
        processor = CSVImportProcessor(ProcessorOptions(project_id="proj-1", operator_id="op-1"))

        result = await processor.process_file(path)

        assert result.success
        assert result.total_processed == 3
        assert result.total_errors == 0
        assert result.summary.validation.valid
        assert all(m.operator_id == "op-1" for m in result.final_measurements)
        assert result.value_statistics["ph"].count == 3

        client = InMemoryMeasurementClient()
        summary = submit_measurements(client, result.final_measurements)

        assert summary.success
        assert summary.submitted == 3
        assert len(client.created["proj-1"]) == 3

    @pytest.mark.asyncio
    async def test_shift_jis_export_with_japanese_headers(self):
        """Test a Shift_JIS spreadsheet export with the encoding configured."""
        lines = ["日時,水温,濁度,緯度,経度,測定地点,備考"]
        for hour in range(9, 21):
            lines.append(f"2025/07/28 {hour}:00,2{hour % 10}.5,2.1,43.0642,141.9716,測定ポイントA,定期測定")
        path = self._write("export.csv", "\n".join(lines), encoding="shift_jis")
        processor = CSVImportProcessor(
            ProcessorOptions(project_id="proj-1"), settings=Settings(csv_encoding="shift_jis")
        )

        result = await processor.process_file(path)

        assert result.success
        assert result.total_processed == 12
        first = result.final_measurements[0]
        assert first.timestamp == "2025-07-28T00:00:00.000Z"
        assert first.location.site_name == "測定ポイントA"
        assert first.notes == "定期測定"

    @pytest.mark.asyncio
    async def test_lenient_and_strict_runs(self):
        """Test bad rows are skipped in lenient mode and refuse the file in strict mode."""
        content = (
            "timestamp,ph,temperature\n"
            "2025-07-28 09:00:00,7.2,25.5\n"
            "2025-07-28 10:00:00,abc,25.0\n"
            "2025-07-28 11:00:00,7.0,25.1\n"
            "2025-07-28 11:00:00,7.0,25.1\n"
            "2025-07-28 12:00:00,6.9,26.0\n"
        )
        path = self._write("mixed.csv", content)

        lenient = await CSVImportProcessor(ProcessorOptions(project_id="proj-1")).process_file(path)
        strict = await CSVImportProcessor(
            ProcessorOptions(project_id="proj-1", skip_invalid_rows=False)
        ).process_file(path)

        assert lenient.success
        assert lenient.total_processed == 3
        assert lenient.total_errors == 2
        assert {e.code for e in lenient.validation_result.errors} == {"not_numeric", "duplicate_row"}

        assert not strict.success
        assert strict.final_measurements == []
        assert strict.total_errors == 2

    @pytest.mark.asyncio
    async def test_saved_profile_drives_import(self):
        """Test a saved profile maps headers that auto-detection does not know."""
        path = self._write("day2.csv", "Datum,Messwert\n2025-07-29 09:00,22.0\n")
        store = MappingProfileStore(self.temp_dir / "profiles")
        store.save("lab", ColumnMapping(columns={"timestamp": "Datum", "temperature": "Messwert"}))

        processor = CSVImportProcessor(
            ProcessorOptions(project_id="proj-1", column_mapping=store.load("lab"))
        )
        result = await processor.process_file(path)

        assert result.total_processed == 1
        assert result.final_measurements[0].values.temperature == 22.0

    def test_large_file_batches(self):
        """Test a 250-row file is split into three submission batches."""
        rows = [
            f"2025-07-{1 + i // 24:02d} {i % 24:02d}:00:00,7.{i % 10}" for i in range(250)
        ]
        processor = CSVImportProcessor(ProcessorOptions(project_id="proj-1"))

        result = processor.process_text("timestamp,ph\n" + "\n".join(rows))
        batches = processor.process_batches(result.final_measurements)

        assert result.total_processed == 250
        assert [len(batch) for batch in batches] == [100, 100, 50]
