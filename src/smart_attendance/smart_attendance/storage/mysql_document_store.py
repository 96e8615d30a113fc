from __future__ import annotations

import json
import re
from typing import Any, Iterable, Optional, Sequence, Tuple

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .document_store import Document, DocumentStore, Filter

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _field_path(field: str) -> str:
    if not _FIELD_RE.match(field):
        raise ValueError(f"Invalid field name: {field!r}")
    return f"'$.{field}'"


def _predicate(f: Filter) -> Tuple[str, Any]:
    path = _field_path(f.field)
    if isinstance(f.value, bool):
        return f"JSON_EXTRACT(fields, {path}) {'=' if f.op == '==' else f.op} CAST(%s AS JSON)", json.dumps(f.value)
    if isinstance(f.value, (int, float)):
        return f"CAST(JSON_EXTRACT(fields, {path}) AS DOUBLE) {'=' if f.op == '==' else f.op} %s", float(f.value)
    return f"JSON_UNQUOTE(JSON_EXTRACT(fields, {path})) {'=' if f.op == '==' else f.op} %s", f.value


class MySQLDocumentStore(DocumentStore):
    """Document store on a single ``documents`` table with a JSON column.

    Timestamps are stored as ISO-8601 strings, so range filters on them compare
    lexicographically, which matches chronological order for a fixed format.
    """

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def put(self, collection: str, doc_id: str, fields: dict) -> None:
        self.batch_write(collection, [(doc_id, fields)])

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT fields FROM documents WHERE collection=%s AND doc_id=%s",
                (collection, doc_id),
            )
            row = fetchone(cur)
            return _load(row["fields"]) if row else None

    def batch_write(self, collection: str, items: Sequence[Tuple[str, dict]]) -> None:
        if not items:
            return
        with db_cursor(self._conn_factory) as (_, cur):
            cur.executemany(
                """
                INSERT INTO documents(collection, doc_id, fields)
                VALUES(%s,%s,%s)
                ON DUPLICATE KEY UPDATE fields=VALUES(fields)
                """,
                [(collection, doc_id, json.dumps(fields, ensure_ascii=False)) for doc_id, fields in items],
            )

    def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        clauses = ["collection=%s"]
        params: list[object] = [collection]
        for f in filters:
            clause, value = _predicate(f)
            clauses.append(clause)
            params.append(value)

        sql = f"SELECT doc_id, fields FROM documents WHERE {' AND '.join(clauses)}"
        if order_by:
            sql += f" ORDER BY JSON_UNQUOTE(JSON_EXTRACT(fields, {_field_path(order_by)})) {'DESC' if descending else 'ASC'}"
        if limit is not None:
            sql += " LIMIT %s"
            params.append(max(0, int(limit)))

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [Document(id=r["doc_id"], fields=_load(r["fields"])) for r in fetchall(cur)]

    def delete(self, collection: str, doc_id: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM documents WHERE collection=%s AND doc_id=%s", (collection, doc_id))
            return cur.rowcount > 0

    def batch_delete(self, collection: str, doc_ids: Sequence[str]) -> int:
        if not doc_ids:
            return 0
        placeholders = ",".join(["%s"] * len(doc_ids))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"DELETE FROM documents WHERE collection=%s AND doc_id IN ({placeholders})",
                (collection, *doc_ids),
            )
            return int(cur.rowcount)


def _load(value: Any) -> dict:
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)
