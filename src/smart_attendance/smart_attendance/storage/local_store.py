"""Local durable key-value storage.

Two namespaces are used by the app, ``locations`` and ``attendance``; each maps
an id string to a flat JSON-serializable field map mirroring the remote
document shape.
"""
from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Iterator, Optional, Protocol, Tuple
from urllib.parse import quote, unquote

from ..common.locks import KeyedLock
from ..common.logging import get_logger
from ..core.exceptions import StorageCorrupt

log = get_logger(__name__)


class LocalStore(Protocol):
    namespace: str

    def get(self, key: str) -> Optional[dict]:
        """Return the stored fields or None; raise StorageCorrupt if unreadable."""
        raise NotImplementedError

    def put(self, key: str, fields: dict) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def keys(self) -> list[str]:
        raise NotImplementedError

    def items(self) -> Iterator[Tuple[str, dict]]:
        """Iterate readable entries; corrupt keys are logged and skipped."""
        raise NotImplementedError


class MemoryLocalStore(LocalStore):
    def __init__(self, namespace: str):
        self.namespace = namespace
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[dict]:
        with self._lock:
            raw = self._data.get(key)
        if raw is None:
            return None
        return _decode(self.namespace, key, raw)

    def put(self, key: str, fields: dict) -> None:
        raw = json.dumps(fields, ensure_ascii=False)
        with self._lock:
            self._data[key] = raw

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data.keys())

    def items(self) -> Iterator[Tuple[str, dict]]:
        for key in self.keys():
            try:
                fields = self.get(key)
            except StorageCorrupt as exc:
                log.warning("local_entry_skipped", namespace=self.namespace, key=key, error=str(exc))
                continue
            if fields is not None:
                yield key, fields


class JsonFileStore(LocalStore):
    """One JSON file per key under ``<root>/<namespace>/``.

    Writes go to a temp file in the same directory and are swapped in with
    ``os.replace`` so a crash never leaves a half-written entry.
    """

    SUFFIX = ".json"

    def __init__(self, root: str | Path, namespace: str):
        self.namespace = namespace
        self._dir = Path(root) / namespace
        self._dir.mkdir(parents=True, exist_ok=True)
        self._locks = KeyedLock()

    def _path(self, key: str) -> Path:
        return self._dir / (quote(str(key), safe="-_.") + self.SUFFIX)

    def get(self, key: str) -> Optional[dict]:
        path = self._path(key)
        with self._locks.hold(key):
            try:
                raw = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return None
            except OSError as exc:
                raise StorageCorrupt(self.namespace, key, str(exc)) from exc
        return _decode(self.namespace, key, raw)

    def put(self, key: str, fields: dict) -> None:
        path = self._path(key)
        payload = json.dumps(fields, ensure_ascii=False)
        with self._locks.hold(key):
            fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=".tmp-", suffix=self.SUFFIX)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(payload)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp, path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise

    def delete(self, key: str) -> bool:
        with self._locks.hold(key):
            try:
                self._path(key).unlink()
                return True
            except FileNotFoundError:
                return False

    def keys(self) -> list[str]:
        return sorted(
            unquote(p.name[: -len(self.SUFFIX)])
            for p in self._dir.glob("*" + self.SUFFIX)
            if not p.name.startswith(".tmp-")
        )

    def items(self) -> Iterator[Tuple[str, dict]]:
        for key in self.keys():
            try:
                fields = self.get(key)
            except StorageCorrupt as exc:
                log.warning("local_entry_skipped", namespace=self.namespace, key=key, error=str(exc))
                continue
            if fields is not None:
                yield key, fields


def _decode(namespace: str, key: str, raw: str) -> dict:
    try:
        fields = json.loads(raw)
    except ValueError as exc:
        raise StorageCorrupt(namespace, key, str(exc)) from exc
    if not isinstance(fields, dict):
        raise StorageCorrupt(namespace, key, "entry is not an object")
    return fields


def build_local_store(backend: str, namespace: str, *, root: str | Path | None = None) -> LocalStore:
    if backend == "memory":
        return MemoryLocalStore(namespace)
    if backend == "file":
        if root is None:
            raise ValueError("LOCAL_STORE_DIR is required for the file backend")
        return JsonFileStore(root, namespace)
    raise ValueError(f"Unknown local store backend: {backend!r}")
