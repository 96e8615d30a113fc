from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import mysql.connector

from ..core.exceptions import RemoteUnavailable
from .connection import DatabaseConnection


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
    """Yield ``(conn, cursor)`` inside one transaction.

    Driver errors surface as RemoteUnavailable; the transaction is rolled back
    so a failed batch leaves nothing behind.
    """

    try:
        conn = conn_factory.connect()
    except mysql.connector.Error as exc:
        raise RemoteUnavailable(f"cannot connect to document store: {exc}") from exc

    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except mysql.connector.Error as exc:
        _safe_rollback(conn)
        raise RemoteUnavailable(str(exc)) from exc
    except Exception:
        _safe_rollback(conn)
        raise
    finally:
        conn.close()


def _safe_rollback(conn) -> None:
    try:
        conn.rollback()
    except mysql.connector.Error:
        pass


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    rows = cur.fetchall()
    return list(rows or [])
