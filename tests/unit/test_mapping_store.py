"""Unit tests for saved column-mapping profiles."""

import pytest
import yaml

from backend.measurement_import.exceptions import MappingProfileError
from backend.measurement_import.fields import MeasurementField
from backend.measurement_import.mapping_store import MappingProfileStore, load_mapping_file
from backend.measurement_import.models import ColumnMapping


class TestMappingProfileStore:
    """Test saving, loading, listing and deleting profiles."""

    def test_save_and_load(self, tmp_path):
        """Test a saved profile loads back to the same mapping."""
        store = MappingProfileStore(tmp_path / "profiles")
        mapping = ColumnMapping(columns={"timestamp": "日時", "ph": "pH値", "temperature": "水温(℃)"})

        path = store.save("plant-a", mapping, description="Plant A logger")

        assert path.name == "plant-a.yaml"
        assert store.load("plant-a") == mapping
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert data["description"] == "Plant A logger"
        assert "日時" in path.read_text(encoding="utf-8")

    def test_list_and_delete(self, tmp_path):
        """Test listing is sorted and delete reports whether it removed anything."""
        store = MappingProfileStore(tmp_path)
        mapping = ColumnMapping(columns={"timestamp": "ts"})
        store.save("b-site", mapping)
        store.save("a-site", mapping)

        assert store.list_profiles() == ["a-site", "b-site"]
        assert store.delete("a-site") is True
        assert store.delete("a-site") is False
        assert store.list_profiles() == ["b-site"]

    def test_list_missing_directory(self, tmp_path):
        """Test a directory that does not exist yet has no profiles."""
        assert MappingProfileStore(tmp_path / "none").list_profiles() == []

    @pytest.mark.parametrize("name", ["../escape", "", "with space", ".hidden"])
    def test_invalid_names(self, name, tmp_path):
        """Test names that are not plain file stems are refused."""
        with pytest.raises(MappingProfileError):
            MappingProfileStore(tmp_path).save(name, ColumnMapping())

    def test_load_missing_profile(self, tmp_path):
        """Test loading an unknown profile."""
        with pytest.raises(MappingProfileError) as exc_info:
            MappingProfileStore(tmp_path).load("nope")

        assert exc_info.value.recoverable is False


class TestLoadMappingFile:
    """Test reading mapping files written by hand."""

    def test_hand_written_file(self, tmp_path):
        """Test blank headers are dropped."""
        path = tmp_path / "mapping.yaml"
        path.write_text("columns:\n  timestamp: Date\n  ph: pH\n  notes: ''\n", encoding="utf-8")

        mapping = load_mapping_file(path)

        assert mapping.column_for(MeasurementField.TIMESTAMP) == "Date"
        assert mapping.column_for(MeasurementField.NOTES) is None

    def test_unknown_fields(self, tmp_path):
        """Test unknown field names are reported."""
        path = tmp_path / "mapping.yaml"
        path.write_text("columns:\n  timestamp: Date\n  salinity: S\n", encoding="utf-8")

        with pytest.raises(MappingProfileError) as exc_info:
            load_mapping_file(path)

        assert exc_info.value.details["unknown_fields"] == ["salinity"]

    @pytest.mark.parametrize("content", ["columns: [a, b]\n", "- timestamp\n", "columns: {timestamp: [\n"])
    def test_malformed_files(self, content, tmp_path):
        """Test files without a usable columns section."""
        path = tmp_path / "mapping.yaml"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(MappingProfileError):
            load_mapping_file(path)
