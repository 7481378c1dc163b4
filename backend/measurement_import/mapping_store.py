"""Saved column-mapping profiles.

A profile is a YAML file holding a reusable field -> header mapping, so that
recurring exports from the same logger or lab can be imported without
mapping the columns by hand each time::

    name: plant-a-logger
    description: Hourly export from the plant A water logger
    columns:
      timestamp: 日時
      ph: pH値
      temperature: 水温(℃)
"""

import re
from pathlib import Path
from typing import Optional, List, Union

import structlog
import yaml

from .exceptions import MappingProfileError
from .fields import MeasurementField
from .models import ColumnMapping

logger = structlog.get_logger(__name__)

_PROFILE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
PROFILE_SUFFIX = ".yaml"


def load_mapping_file(file_path: Union[str, Path]) -> ColumnMapping:
    """Load a column mapping from a profile file.

    Raises:
        MappingProfileError: If the file is missing, unreadable or names
            unknown fields
    """
    file_path = Path(file_path)
    if not file_path.is_file():
        raise MappingProfileError(f"Mapping profile not found: {file_path}", profile=str(file_path))

    try:
        with open(file_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise MappingProfileError(
            f"Mapping profile is not valid YAML: {e}", profile=str(file_path)
        ) from e

    columns = data.get("columns") if isinstance(data, dict) else None
    if not isinstance(columns, dict):
        raise MappingProfileError(
            "Mapping profile must contain a 'columns' section", profile=str(file_path)
        )

    known = {field.value for field in MeasurementField}
    unknown = [str(key) for key in columns if str(key) not in known]
    if unknown:
        raise MappingProfileError(
            f"Mapping profile names unknown fields: {', '.join(unknown)}",
            profile=str(file_path),
            details={"unknown_fields": unknown},
        )

    return ColumnMapping(columns={str(k): str(v) for k, v in columns.items() if v is not None})


class MappingProfileStore:
    """Directory of named column-mapping profiles."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.logger = logger.bind(component=self.__class__.__name__, directory=str(self.directory))

    def _path(self, name: str) -> Path:
        if not _PROFILE_NAME.match(name):
            raise MappingProfileError(f"Invalid profile name: {name!r}", profile=name)
        return self.directory / f"{name}{PROFILE_SUFFIX}"

    def save(
        self, name: str, mapping: ColumnMapping, description: Optional[str] = None
    ) -> Path:
        """Write a profile, replacing any existing one of the same name."""
        path = self._path(name)
        self.directory.mkdir(parents=True, exist_ok=True)

        data = {"name": name, "columns": mapping.to_dict()}
        if description:
            data["description"] = description

        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, allow_unicode=True, sort_keys=False, default_flow_style=False)

        self.logger.info("Saved mapping profile", profile=name, fields=len(mapping.columns))
        return path

    def load(self, name: str) -> ColumnMapping:
        """Load a profile by name."""
        return load_mapping_file(self._path(name))

    def list_profiles(self) -> List[str]:
        """Names of saved profiles, sorted."""
        if not self.directory.is_dir():
            return []
        return sorted(path.stem for path in self.directory.glob(f"*{PROFILE_SUFFIX}"))

    def delete(self, name: str) -> bool:
        """Remove a profile. Returns False if it did not exist."""
        path = self._path(name)
        if not path.exists():
            return False
        path.unlink()
        self.logger.info("Deleted mapping profile", profile=name)
        return True
