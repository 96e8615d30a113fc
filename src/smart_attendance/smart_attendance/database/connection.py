from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import mysql.connector


@dataclass
class DBConfig:
    host: str
    port: int
    user: str
    password: str
    database: str

    @classmethod
    def from_dict(cls, db_config: dict) -> "DBConfig":
        return cls(
            host=str(db_config.get("host", "localhost")),
            port=int(db_config.get("port", 3306)),
            user=str(db_config.get("user", "root")),
            password=str(db_config.get("password", "")),
            database=str(db_config.get("database", "smart_attendance")),
        )


class DatabaseConnection:
    """Connection factory for the remote document store.

    Note: We create short-lived connections per operation; the store is hit in
    batches, not per sample.
    """

    _instance: Optional["DatabaseConnection"] = None

    def __init__(self, config: DBConfig, *, connect_timeout: int = 10):
        self._config = config
        self._connect_timeout = int(connect_timeout)

    @classmethod
    def get_instance(cls, config: DBConfig) -> "DatabaseConnection":
        if cls._instance is None or cls._instance._config != config:
            cls._instance = DatabaseConnection(config)
        return cls._instance

    def connect(self):
        return mysql.connector.connect(
            host=self._config.host,
            port=int(self._config.port),
            user=self._config.user,
            password=self._config.password,
            database=self._config.database,
            connection_timeout=self._connect_timeout,
        )
