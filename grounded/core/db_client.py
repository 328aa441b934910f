"""SQLite database client wrapper with CRUD operations."""

import json
import logging
import re
import uuid
from collections.abc import Iterable, Sequence
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite

from grounded.core.errors import DatabaseError, RecordNotFoundError


logger = logging.getLogger(__name__)

SqlParam = str | int | float | bool | None


def _validate_identifier(name: str) -> None:
    """Validate that a table or column name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", name):
        msg = f"Invalid identifier: {name}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in filter queries via json.dumps."""
    return json.dumps(str(value))[1:-1]


def _to_sql_value(value: object) -> SqlParam:
    """Convert a Python value to something SQLite can bind."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return value  # type: ignore[return-value]


def _parse_value(value: str, *, is_like: bool = False) -> SqlParam:
    """Parse a string value to the appropriate Python type for SQLite."""
    if is_like:
        escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"%{escaped}%"

    if value.isdigit():
        return int(value)
    if value.replace(".", "", 1).isdigit():
        return float(value)

    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False

    return value


def _get_sql_operator(op: str) -> str:
    """Map filter operator to SQL operator."""
    op_map = {
        "=": "=",
        "!=": "!=",
        ">": ">",
        "<": "<",
        ">=": ">=",
        "<=": "<=",
        "~": "LIKE",
    }
    sql_op = op_map.get(op)
    if not sql_op:
        msg = f"Unsupported operator: {op}"
        raise ValueError(msg)
    return sql_op


def _parse_single_comparison(comparison: str) -> tuple[str, SqlParam]:
    """Parse a single comparison expression into a SQL condition and parameter."""
    match = re.match(
        r"""^(\w+)\s*(>=|<=|!=|=|>|<|~)\s*(['"])([^'"]*)\3$""",
        comparison.strip(),
    )
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field = match.group(1)
    op = match.group(2)
    raw_value = match.group(4)

    sql_op = _get_sql_operator(op)
    is_like = sql_op == "LIKE"
    value = _parse_value(raw_value, is_like=is_like)

    if is_like:
        return f"{field} LIKE ? ESCAPE '\\'", value
    return f"{field} {sql_op} ?", value


def _parse_or_group(or_group: str) -> tuple[str, list[SqlParam]]:
    """Parse a parenthesized OR group into a SQL condition and parameters."""
    inner = or_group[1:-1]
    or_parts = [p.strip() for p in inner.split("||")]
    or_conditions = []
    or_params = []

    for part in or_parts:
        cond, value = _parse_single_comparison(part)
        or_conditions.append(cond)
        or_params.append(value)

    return f"({' OR '.join(or_conditions)})", or_params


def _split_and_conditions(filter_query: str) -> list[str]:
    """Split filter query by && while preserving parenthesized groups."""
    parts = []
    current = ""
    paren_depth = 0

    for char in filter_query:
        if char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth -= 1

        current += char

        if paren_depth == 0 and current.endswith("&&"):
            parts.append(current[:-2].strip())
            current = ""

    if current.strip():
        parts.append(current.strip())

    return parts


def parse_filter(filter_query: str) -> tuple[str, list[SqlParam]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list.

    Supports ``field op "value"`` comparisons joined by ``&&`` and
    parenthesized ``||`` groups, e.g. ``user_id = "abc" && (date = "x" || date = "y")``.
    """
    if not filter_query:
        return "", []

    parts = _split_and_conditions(filter_query)
    conditions = []
    params: list[SqlParam] = []

    for raw_part in parts:
        part = raw_part.strip()

        if part.startswith("(") and part.endswith(")"):
            cond, cond_params = _parse_or_group(part)
            conditions.append(cond)
            params.extend(cond_params)
        else:
            cond, value = _parse_single_comparison(part)
            conditions.append(cond)
            params.append(value)

    return " AND ".join(conditions), params


def _parse_sort(sort: str) -> str:
    """Translate ``-field,field2`` sort syntax into an ORDER BY clause."""
    clauses = []
    for raw_field in sort.split(","):
        field = raw_field.strip()
        if not field:
            continue
        direction = "DESC" if field.startswith("-") else "ASC"
        name = field.lstrip("-+")
        _validate_identifier(name)
        clauses.append(f"{name} {direction}")
    return ", ".join(clauses) or "rowid ASC"


class DBClient:
    """Owns a single aiosqlite connection and exposes record-level helpers.

    Construct once at startup, ``await connect()``, and hand the instance to the
    services that need storage. Every helper wraps driver failures in
    ``DatabaseError``; lookups by id raise ``RecordNotFoundError``.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise DatabaseError("Database connection is not open. Call connect() first.")
        return self._conn

    async def connect(self) -> None:
        if self._conn is not None:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).resolve().parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = await aiosqlite.connect(self.db_path)
            await self._conn.execute("PRAGMA foreign_keys = ON")
            await self._conn.execute("PRAGMA journal_mode = WAL")
        except aiosqlite.Error as e:
            logger.error("db_connect_failed", extra={"db_path": self.db_path, "error": str(e)})
            raise DatabaseError(f"Failed to open database: {e}") from e

        logger.info("Created new SQLite connection", extra={"db_path": self.db_path})

    async def close(self) -> None:
        if self._conn is None:
            return
        try:
            await self._conn.close()
            logger.info("Closed SQLite connection", extra={"db_path": self.db_path})
        except aiosqlite.Error as e:
            logger.warning("Error closing SQLite connection", extra={"error": str(e)})
        finally:
            self._conn = None

    async def ping(self) -> bool:
        """Return True when a trivial query succeeds."""
        try:
            await self.connection.execute("SELECT 1")
        except (aiosqlite.Error, DatabaseError):
            return False
        return True

    async def execute_script(self, script: str) -> None:
        try:
            await self.connection.executescript(script)
            await self.connection.commit()
        except aiosqlite.Error as e:
            logger.error("execute_script_failed", extra={"error": str(e)})
            raise DatabaseError(f"Failed to execute script: {e}") from e

    async def execute(self, query: str, params: Sequence[object] = ()) -> int:
        """Run a bespoke write statement and return the affected row count."""
        try:
            cursor = await self.connection.execute(query, [_to_sql_value(p) for p in params])
            await self.connection.commit()
            return cursor.rowcount
        except aiosqlite.Error as e:
            logger.error("execute_failed", extra={"error": str(e)})
            raise DatabaseError(f"Failed to execute statement: {e}") from e

    async def fetch_all(self, query: str, params: Sequence[object] = ()) -> list[dict[str, Any]]:
        """Run a bespoke read query and return rows as dicts."""
        try:
            cursor = await self.connection.execute(query, [_to_sql_value(p) for p in params])
            rows = await cursor.fetchall()
            columns = [description[0] for description in cursor.description]
            return [dict(zip(columns, row, strict=True)) for row in rows]
        except aiosqlite.Error as e:
            logger.error("fetch_all_failed", extra={"error": str(e)})
            raise DatabaseError(f"Failed to run query: {e}") from e

    async def create_record(self, *, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a new record and return it with its assigned id."""
        _validate_identifier(collection)
        record = {"id": str(uuid.uuid4()), **data}
        for column in record:
            _validate_identifier(column)

        columns_str = ", ".join(record)
        placeholders_str = ", ".join("?" for _ in record)
        values = [_to_sql_value(v) for v in record.values()]

        query = f"INSERT INTO {collection} ({columns_str}) VALUES ({placeholders_str})"  # noqa: S608 - identifiers are validated
        try:
            await self.connection.execute(query, values)
            await self.connection.commit()
        except aiosqlite.Error as e:
            logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
            raise DatabaseError(f"Failed to create record in {collection}: {e}") from e

        logger.info("Created record", extra={"collection": collection, "record_id": record["id"]})
        return await self.get_record(collection=collection, record_id=record["id"])

    async def upsert_record(
        self,
        *,
        collection: str,
        data: dict[str, Any],
        conflict_columns: Iterable[str],
        immutable_columns: Iterable[str] = ("id", "created_at"),
    ) -> dict[str, Any]:
        """Insert a record or update the existing row sharing ``conflict_columns``."""
        _validate_identifier(collection)
        conflict = list(conflict_columns)
        frozen = set(immutable_columns) | set(conflict)
        record = {"id": str(uuid.uuid4()), **data}
        for column in record:
            _validate_identifier(column)
        for column in conflict:
            _validate_identifier(column)

        columns_str = ", ".join(record)
        placeholders_str = ", ".join("?" for _ in record)
        updates = [f"{column} = excluded.{column}" for column in record if column not in frozen]
        update_clause = f"DO UPDATE SET {', '.join(updates)}" if updates else "DO NOTHING"
        values = [_to_sql_value(v) for v in record.values()]

        query = (
            f"INSERT INTO {collection} ({columns_str}) VALUES ({placeholders_str}) "  # noqa: S608 - identifiers are validated
            f"ON CONFLICT ({', '.join(conflict)}) {update_clause}"
        )
        try:
            await self.connection.execute(query, values)
            await self.connection.commit()
        except aiosqlite.Error as e:
            logger.error("upsert_record_failed", extra={"collection": collection, "error": str(e)})
            raise DatabaseError(f"Failed to upsert record in {collection}: {e}") from e

        where_clause = " AND ".join(f"{column} = ?" for column in conflict)
        rows = await self.fetch_all(
            f"SELECT * FROM {collection} WHERE {where_clause} LIMIT 1",  # noqa: S608 - identifiers are validated
            [record[column] for column in conflict],
        )
        if not rows:
            raise DatabaseError(f"Upserted record vanished from {collection}")
        result = rows[0]

        logger.info("Upserted record", extra={"collection": collection, "record_id": result["id"]})
        return result

    async def get_record(self, *, collection: str, record_id: str) -> dict[str, Any]:
        """Fetch a single record by ID, raising RecordNotFoundError if not found."""
        _validate_identifier(collection)
        query = f"SELECT * FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        try:
            cursor = await self.connection.execute(query, (str(record_id),))
            row = await cursor.fetchone()
            columns = [description[0] for description in cursor.description]
        except aiosqlite.Error as e:
            logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
            raise DatabaseError(f"Failed to get record from {collection}: {e}") from e

        if row is None:
            raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")

        return dict(zip(columns, row, strict=True))

    async def update_record(self, *, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Update a record by ID and return the updated record."""
        if not data:
            msg = "Empty update payload"
            raise ValueError(msg)

        _validate_identifier(collection)
        for column in data:
            _validate_identifier(column)

        set_clause = ", ".join(f"{key} = ?" for key in data)
        values = [_to_sql_value(v) for v in data.values()]
        values.append(str(record_id))

        query = f"UPDATE {collection} SET {set_clause} WHERE id = ?"  # noqa: S608 - identifiers are validated
        try:
            cursor = await self.connection.execute(query, values)
            await self.connection.commit()
        except aiosqlite.Error as e:
            logger.error(
                "update_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)}
            )
            raise DatabaseError(f"Failed to update record in {collection}: {e}") from e

        if cursor.rowcount == 0:
            raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")

        logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
        return await self.get_record(collection=collection, record_id=record_id)

    async def update_records(self, *, collection: str, filter_query: str, data: dict[str, Any]) -> int:
        """Update every record matching the filter and return the affected count."""
        if not data:
            msg = "Empty update payload"
            raise ValueError(msg)
        if not filter_query:
            msg = "Refusing to update an entire collection without a filter"
            raise ValueError(msg)

        _validate_identifier(collection)
        for column in data:
            _validate_identifier(column)

        where_clause, params = parse_filter(filter_query)
        set_clause = ", ".join(f"{key} = ?" for key in data)
        values: list[SqlParam] = [_to_sql_value(v) for v in data.values()]
        values.extend(params)

        query = f"UPDATE {collection} SET {set_clause} WHERE {where_clause}"  # noqa: S608 - identifiers are validated
        try:
            cursor = await self.connection.execute(query, values)
            await self.connection.commit()
        except aiosqlite.Error as e:
            logger.error("update_records_failed", extra={"collection": collection, "error": str(e)})
            raise DatabaseError(f"Failed to update records in {collection}: {e}") from e

        logger.info("Updated records", extra={"collection": collection, "count": cursor.rowcount})
        return cursor.rowcount

    async def delete_record(self, *, collection: str, record_id: str) -> None:
        """Delete a record by ID, raising RecordNotFoundError if not found."""
        _validate_identifier(collection)
        query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        try:
            cursor = await self.connection.execute(query, (str(record_id),))
            await self.connection.commit()
        except aiosqlite.Error as e:
            logger.error(
                "delete_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)}
            )
            raise DatabaseError(f"Failed to delete record from {collection}: {e}") from e

        if cursor.rowcount == 0:
            raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")

        logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})

    async def list_records(
        self,
        *,
        collection: str,
        filter_query: str = "",
        sort: str = "",
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """List records with optional filtering, sorting (``-field`` for DESC) and limits."""
        _validate_identifier(collection)

        where_clause = ""
        params: list[SqlParam] = []
        if filter_query:
            condition, params = parse_filter(filter_query)
            where_clause = f"WHERE {condition}"

        order_by = _parse_sort(sort) if sort else "rowid ASC"
        query = f"SELECT * FROM {collection} {where_clause} ORDER BY {order_by}"  # noqa: S608 - identifiers are validated
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])

        records = await self.fetch_all(query, params)
        logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
        return records

    async def get_first_record(
        self, *, collection: str, filter_query: str, sort: str = ""
    ) -> dict[str, Any] | None:
        """Return the first record matching the filter, or None."""
        records = await self.list_records(collection=collection, filter_query=filter_query, sort=sort, limit=1)
        return records[0] if records else None
