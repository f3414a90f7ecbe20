from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from ..errors import IndexOutOfRange, RepositoryError, ValidationError
from ..models import Project

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...


class JsonFileStore:
    """
    String key/value store kept in a single JSON object file.

    Writes go to a temporary file in the same directory and are moved into
    place with `os.replace`, so readers never observe a half-written file.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def get_item(self, key: str) -> Optional[str]:
        value = self._read().get(key)
        return None if value is None else str(value)

    def set_item(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            raise RepositoryError(f"Failed to read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise RepositoryError(f"{self.path} does not contain a JSON object")
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            raise RepositoryError(f"Failed to write {self.path}: {exc}") from exc
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)


class SurveyRepository:
    """Ordered collection of projects stored as one JSON array under *key*."""

    def __init__(self, store: KeyValueStore, key: str = "emsurvey:results"):
        self.store = store
        self.key = key

    def list(self) -> List[Project]:
        return [self._decode(item, idx) for idx, item in enumerate(self._load_raw())]

    def get(self, index: int) -> Project:
        records = self._load_raw()
        if not 0 <= index < len(records):
            raise IndexOutOfRange(f"Project index {index} out of range (0..{len(records) - 1})")
        return self._decode(records[index], index)

    def append(self, project: Project) -> int:
        records = self._load_raw()
        records.append(project.to_dict())
        self._save_raw(records)
        index = len(records) - 1
        logger.info("Stored project '%s' at index %d", project.name, index)
        return index

    def replace(self, index: int, project: Project) -> None:
        records = self._load_raw()
        if not 0 <= index < len(records):
            raise IndexOutOfRange(f"Project index {index} out of range (0..{len(records) - 1})")
        records[index] = project.to_dict()
        self._save_raw(records)
        logger.info("Replaced project '%s' at index %d", project.name, index)

    def _load_raw(self) -> List[Dict[str, Any]]:
        raw = self.store.get_item(self.key)
        if raw is None:
            return []
        try:
            records = json.loads(raw)
        except ValueError as exc:
            raise RepositoryError(f"Stored results under '{self.key}' are not valid JSON") from exc
        if not isinstance(records, list):
            raise RepositoryError(f"Stored results under '{self.key}' are not a JSON array")
        return records

    def _save_raw(self, records: List[Dict[str, Any]]) -> None:
        self.store.set_item(self.key, json.dumps(records, ensure_ascii=False))

    @staticmethod
    def _decode(item: Any, index: int) -> Project:
        try:
            return Project.from_dict(item)
        except (KeyError, TypeError, ValueError, ValidationError) as exc:
            raise RepositoryError(f"Project record {index} is malformed: {exc}") from exc
