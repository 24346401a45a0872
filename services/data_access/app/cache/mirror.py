"""Durable mirrors backing the in-memory response cache."""

import hashlib
import json
import os
from pathlib import Path
from typing import Any, Protocol

from shared.utils.logging import get_logger

logger = get_logger(__name__)


class CacheMirror(Protocol):
    """Key/value store of JSON cache records that survives restarts."""

    def get(self, key: str) -> dict[str, Any] | None: ...

    def put(self, key: str, record: dict[str, Any]) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryMirror:
    """Mirror kept in a dict; records still round-trip through JSON."""

    def __init__(self, prefix: str = "api_cache_"):
        self.prefix = prefix
        self.records: dict[str, str] = {}

    def get(self, key: str) -> dict[str, Any] | None:
        raw = self.records.get(self.prefix + key)
        return json.loads(raw) if raw is not None else None

    def put(self, key: str, record: dict[str, Any]) -> None:
        self.records[self.prefix + key] = json.dumps(record)

    def delete(self, key: str) -> None:
        self.records.pop(self.prefix + key, None)


class FileMirror:
    """Mirror storing one JSON file per cache key under a directory."""

    def __init__(self, base_path: str | Path, prefix: str = "api_cache_"):
        """Initialize file mirror.

        Args:
            base_path: Directory holding the mirrored records
            prefix: Prefix applied to every record name
        """
        self.base_path = Path(base_path)
        self.prefix = prefix
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode()).hexdigest()
        return self.base_path / f"{self.prefix}{digest}.json"

    def get(self, key: str) -> dict[str, Any] | None:
        path = self._get_full_path(key)
        if not path.exists():
            return None
        record = json.loads(path.read_text(encoding="utf-8"))
        if record.get("key") != key:
            return None
        return record

    def put(self, key: str, record: dict[str, Any]) -> None:
        path = self._get_full_path(key)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps({**record, "key": key}), encoding="utf-8")
        os.replace(tmp_path, path)

    def delete(self, key: str) -> None:
        self._get_full_path(key).unlink(missing_ok=True)
