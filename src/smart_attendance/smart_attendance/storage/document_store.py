from __future__ import annotations

import copy
import threading
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol, Sequence, Tuple

from ..core.exceptions import RemoteUnavailable

OPERATORS = ("==", "<", "<=", ">", ">=")


@dataclass(frozen=True)
class Filter:
    """Equality or range predicate on a single top-level field."""

    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported operator: {self.op!r}")

    def matches(self, fields: dict) -> bool:
        current = fields.get(self.field)
        if self.op == "==":
            return current == self.value
        if current is None:
            return False
        if self.op == "<":
            return current < self.value
        if self.op == "<=":
            return current <= self.value
        if self.op == ">":
            return current > self.value
        return current >= self.value


@dataclass(frozen=True)
class Document:
    id: str
    fields: dict


class DocumentStore(Protocol):
    """Remote key-value-with-filter store.

    Implementations raise RemoteUnavailable for any transport/store failure.
    Writes are upserts keyed by document id, so retrying them is harmless.
    """

    def put(self, collection: str, doc_id: str, fields: dict) -> None:
        raise NotImplementedError

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        raise NotImplementedError

    def batch_write(self, collection: str, items: Sequence[Tuple[str, dict]]) -> None:
        """Write all items atomically: either every item lands or none does."""
        raise NotImplementedError

    def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        raise NotImplementedError

    def delete(self, collection: str, doc_id: str) -> bool:
        raise NotImplementedError

    def batch_delete(self, collection: str, doc_ids: Sequence[str]) -> int:
        raise NotImplementedError


class InMemoryDocumentStore(DocumentStore):
    """Process-local store for development and tests.

    ``available = False`` makes every call raise RemoteUnavailable, which is how
    offline behavior is exercised without a network.
    """

    def __init__(self):
        self._collections: dict[str, dict[str, dict]] = {}
        self._lock = threading.Lock()
        self.available = True
        self.write_count = 0

    def _ensure_available(self) -> None:
        if not self.available:
            raise RemoteUnavailable("document store is offline")

    def _collection(self, name: str) -> dict[str, dict]:
        return self._collections.setdefault(name, {})

    def put(self, collection: str, doc_id: str, fields: dict) -> None:
        self._ensure_available()
        with self._lock:
            self._collection(collection)[doc_id] = copy.deepcopy(fields)
            self.write_count += 1

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        self._ensure_available()
        with self._lock:
            fields = self._collection(collection).get(doc_id)
            return copy.deepcopy(fields) if fields is not None else None

    def batch_write(self, collection: str, items: Sequence[Tuple[str, dict]]) -> None:
        self._ensure_available()
        with self._lock:
            target = self._collection(collection)
            for doc_id, fields in items:
                target[doc_id] = copy.deepcopy(fields)
                self.write_count += 1

    def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        self._ensure_available()
        filters = list(filters)
        with self._lock:
            docs = [
                Document(id=doc_id, fields=copy.deepcopy(fields))
                for doc_id, fields in self._collection(collection).items()
                if all(f.matches(fields) for f in filters)
            ]
        if order_by:
            docs.sort(key=lambda d: (d.fields.get(order_by) is None, d.fields.get(order_by)), reverse=descending)
        if limit is not None:
            docs = docs[: max(0, int(limit))]
        return docs

    def delete(self, collection: str, doc_id: str) -> bool:
        self._ensure_available()
        with self._lock:
            return self._collection(collection).pop(doc_id, None) is not None

    def batch_delete(self, collection: str, doc_ids: Sequence[str]) -> int:
        self._ensure_available()
        removed = 0
        with self._lock:
            target = self._collection(collection)
            for doc_id in doc_ids:
                if target.pop(doc_id, None) is not None:
                    removed += 1
        return removed
