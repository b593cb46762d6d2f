#!/usr/bin/env python3
"""SQL client connection to a single cluster node.

The cluster speaks the PostgreSQL wire protocol, so connections go through
psycopg2. Every statement runs in autocommit mode.
"""

import logging
from typing import Any, Optional

import psycopg2


logger = logging.getLogger(__name__)


class SQLError(Exception):
    """Raised when a statement or connection attempt fails."""


class SQLConnection:
    """Autocommit SQL connection to one node.

    Usage:
        with SQLConnection(host="node1", port=26257, database="tpch") as conn:
            conn.execute("ALTER TABLE lineitem SCATTER")

    Attributes:
        host: Node hostname
        port: SQL port
        database: Database name (may be changed later with ``use``)
        user: SQL user
        password: SQL password
        sslmode: libpq sslmode
    """

    def __init__(
        self,
        host: str,
        port: int = 26257,
        database: Optional[str] = None,
        user: str = "root",
        password: Optional[str] = None,
        sslmode: str = "disable",
        connect_timeout: int = 15,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.sslmode = sslmode
        self.connect_timeout = connect_timeout
        self._conn: Optional[psycopg2.extensions.connection] = None

    def connect(self) -> None:
        """Open the connection (no-op if already open)."""
        if self._conn is not None and not self._conn.closed:
            return

        params = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "sslmode": self.sslmode,
            "connect_timeout": self.connect_timeout,
        }
        if self.database:
            params["dbname"] = self.database
        if self.password:
            params["password"] = self.password

        try:
            self._conn = psycopg2.connect(**params)
        except psycopg2.Error as exc:
            raise SQLError(f"Failed to connect to {self.host}:{self.port}: {exc}") from exc
        self._conn.autocommit = True

    def close(self) -> None:
        """Close the connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "SQLConnection":
        self.connect()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def _ensure_connected(self) -> psycopg2.extensions.connection:
        if self._conn is None or self._conn.closed:
            self.connect()
        assert self._conn is not None
        return self._conn

    def execute(self, statement: str) -> None:
        """Execute a statement and discard any result.

        Raises:
            SQLError: If the statement fails
        """
        conn = self._ensure_connected()
        logger.debug(f"[{self.host}] {statement}")
        try:
            with conn.cursor() as cur:
                cur.execute(statement)
        except psycopg2.Error as exc:
            raise SQLError(f"[{self.host}] {statement!r} failed: {exc}") from exc

    def query_value(self, sql: str) -> Any:
        """Execute a query and return the first column of the first row.

        Returns:
            The value, or None if the query returned no rows
        """
        conn = self._ensure_connected()
        try:
            with conn.cursor() as cur:
                cur.execute(sql)
                row = cur.fetchone()
        except psycopg2.Error as exc:
            raise SQLError(f"[{self.host}] {sql!r} failed: {exc}") from exc
        return row[0] if row else None

    def use(self, database: str) -> None:
        """Switch the session's current database."""
        self.execute(f"USE {database}")
        self.database = database

    def __repr__(self) -> str:
        return f"<SQLConnection({self.user}@{self.host}:{self.port}/{self.database or ''})>"
