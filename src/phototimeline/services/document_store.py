"""
Document store gateway for photo records.

Records are schemaless JSON documents grouped by collection. The store assigns
ids on create; callers never choose them.
"""

import asyncio
import json
import re
import threading
import uuid
from typing import Any, Protocol

import duckdb

from ..config import Config
from ..error_handling import DatabaseError
from ..logging_config import get_logger

logger = get_logger(__name__)

DOCUMENTS_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    id TEXT NOT NULL,
    body TEXT NOT NULL,
    PRIMARY KEY (collection, id)
);
"""

_FIELD_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_field_name(field: str) -> str:
    """Only plain identifiers may be used as sort fields."""
    if not _FIELD_PATTERN.match(field or ""):
        raise DatabaseError(
            f"Invalid document field name: {field!r}",
            code="invalid_field",
            details={"field": field},
        )
    return field


class DocumentStore(Protocol):
    """Async create/get/list/remove contract over a document database."""

    async def create(self, collection: str, data: dict[str, Any]) -> str: ...

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...

    async def list(self, collection: str, order_by: str | None = None) -> list[dict[str, Any]]: ...

    async def remove(self, collection: str, doc_id: str) -> None: ...

    async def close(self) -> None: ...


class DuckDBDocumentStore:
    """
    Document store on a single DuckDB table.

    DuckDB connections are not safe for concurrent use, so every statement runs
    in a worker thread while holding one lock.
    """

    def __init__(self, db_path: str = ":memory:"):
        """
        Initialize the store.

        Args:
            db_path: DuckDB database file, or ``:memory:``
        """
        self.db_path = db_path
        self._connection: duckdb.DuckDBPyConnection | None = None
        self._lock = threading.Lock()

    def connect(self) -> duckdb.DuckDBPyConnection:
        """Get or create the connection, creating the schema on first use."""
        if self._connection is None:
            try:
                self._connection = duckdb.connect(self.db_path)
                self._connection.execute(DOCUMENTS_TABLE_SCHEMA)
            except duckdb.Error as e:
                raise DatabaseError(
                    f"Failed to open document store at {self.db_path}: {e}",
                    code="database_unavailable",
                    details={"db_path": self.db_path},
                    original_exception=e,
                ) from e
            logger.info("document_store_connected", backend="duckdb", db_path=self.db_path)
        return self._connection

    def _execute(self, operation: str, query: str, parameters: list[Any]) -> list[tuple]:
        with self._lock:
            conn = self.connect()
            try:
                return conn.execute(query, parameters).fetchall()
            except duckdb.Error as e:
                raise DatabaseError(
                    f"Document store {operation} failed: {e}",
                    details={"operation": operation, "db_path": self.db_path},
                    original_exception=e,
                ) from e

    async def create(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = str(uuid.uuid4())
        body = json.dumps({**data, "id": doc_id}, default=str)
        await asyncio.to_thread(
            self._execute,
            "create",
            "INSERT INTO documents (collection, id, body) VALUES (?, ?, ?)",
            [collection, doc_id, body],
        )
        logger.debug("document_created", collection=collection, doc_id=doc_id)
        return doc_id

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        rows = await asyncio.to_thread(
            self._execute,
            "get",
            "SELECT body FROM documents WHERE collection = ? AND id = ?",
            [collection, doc_id],
        )
        if not rows:
            return None
        return json.loads(rows[0][0])

    async def list(self, collection: str, order_by: str | None = None) -> list[dict[str, Any]]:
        """
        List every document of a collection.

        Args:
            collection: Collection name
            order_by: Top-level field to sort ascending by; documents without it come last
        """
        if order_by:
            # Only identifiers reach the inlined path
            json_path = f"$.{validate_field_name(order_by)}"
            query = (
                "SELECT body FROM documents WHERE collection = ? "
                f"ORDER BY json_extract_string(body, '{json_path}') ASC NULLS LAST, id"
            )
        else:
            query = "SELECT body FROM documents WHERE collection = ? ORDER BY id"

        rows = await asyncio.to_thread(self._execute, "list", query, [collection])
        return [json.loads(row[0]) for row in rows]

    async def remove(self, collection: str, doc_id: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "remove",
            "DELETE FROM documents WHERE collection = ? AND id = ?",
            [collection, doc_id],
        )
        logger.debug("document_removed", collection=collection, doc_id=doc_id)

    def _close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
                logger.info("document_store_closed", backend="duckdb")

    async def close(self) -> None:
        await asyncio.to_thread(self._close)


def create_document_store(config: Config | None = None) -> DocumentStore:
    """
    Pick the document store from configuration.

    Firebase Realtime Database when ``FIREBASE_DATABASE_URL`` is set, otherwise
    DuckDB at ``PHOTOLINE_DB_PATH``.
    """
    config = config or Config()
    if config.firebase_database_url:
        from .firebase_database import FirebaseDocumentStore

        return FirebaseDocumentStore.from_config(config)
    return DuckDBDocumentStore(config.database_path)
