"""Trigger and function catalog access."""

import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol, runtime_checkable

import psycopg
from psycopg import Connection
from psycopg_pool import ConnectionPool

from seed_intel.exceptions import CatalogQueryError
from seed_intel.models import FunctionDescriptor, TriggerDescriptor

logger = logging.getLogger(__name__)

# pg_trigger.tgtype bits
TRIGGER_TYPE_ROW = 1
TRIGGER_TYPE_BEFORE = 2
TRIGGER_TYPE_INSERT = 4
TRIGGER_TYPE_DELETE = 8
TRIGGER_TYPE_UPDATE = 16
TRIGGER_TYPE_TRUNCATE = 32
TRIGGER_TYPE_INSTEAD = 64

VOLATILITY = {"i": "immutable", "s": "stable", "v": "volatile"}

_EXECUTE_PATTERN = re.compile(
    r"EXECUTE\s+(?:FUNCTION|PROCEDURE)\s+(?:\"?(\w+)\"?\.)?\"?(\w+)\"?\s*\(",
    re.IGNORECASE,
)


@runtime_checkable
class CatalogSource(Protocol):
    """Anything that can list triggers and load function definitions."""

    last_fallback_used: bool

    @property
    def max_concurrency(self) -> int:
        """Number of get_function calls that may run at the same time."""
        ...

    def get_triggers(self, tables: list[str]) -> list[TriggerDescriptor]: ...

    def get_function(self, name: str, schema: str = "public") -> FunctionDescriptor | None: ...


def decode_trigger_type(tgtype: int) -> tuple[str, tuple[str, ...], str]:
    """
    Decode pg_trigger.tgtype into (timing, events, level).

    Example:
        >>> decode_trigger_type(7)
        ('BEFORE', ('INSERT',), 'ROW')
    """
    if tgtype & TRIGGER_TYPE_INSTEAD:
        timing = "INSTEAD OF"
    elif tgtype & TRIGGER_TYPE_BEFORE:
        timing = "BEFORE"
    else:
        timing = "AFTER"

    events = tuple(
        event
        for bit, event in (
            (TRIGGER_TYPE_INSERT, "INSERT"),
            (TRIGGER_TYPE_UPDATE, "UPDATE"),
            (TRIGGER_TYPE_DELETE, "DELETE"),
            (TRIGGER_TYPE_TRUNCATE, "TRUNCATE"),
        )
        if tgtype & bit
    )
    level = "ROW" if tgtype & TRIGGER_TYPE_ROW else "STATEMENT"
    return timing, events, level


class PostgresCatalog:
    """
    Read triggers and functions from PostgreSQL system catalogs.

    pg_trigger is tried first. When it cannot be read (restricted roles,
    managed databases) the information_schema.triggers view is used instead
    and `last_fallback_used` is set.

    A single connection is not safe to share between threads, so function
    loads only run concurrently when a connection pool is given; every
    query then checks out its own connection.
    """

    def __init__(
        self,
        conn: Connection | None = None,
        schema: str = "public",
        pool: ConnectionPool | None = None,
    ):
        """
        Initialize catalog.

        Args:
            conn: Database connection (used when no pool is given)
            schema: Schema whose triggers are read
            pool: Connection pool; each query checks out its own connection

        Raises:
            ValueError: If neither a connection nor a pool is given
        """
        if conn is None and pool is None:
            raise ValueError("PostgresCatalog needs a connection or a connection pool")
        self.conn = conn
        self.pool = pool
        self.schema = schema
        self.last_fallback_used = False

    @property
    def max_concurrency(self) -> int:
        """Pool size, or 1 for a single connection."""
        if self.pool is None:
            return 1
        return self.pool.max_size

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        if self.pool is None:
            yield self.conn
            return
        with self.pool.connection() as conn:
            yield conn

    def get_triggers(self, tables: list[str]) -> list[TriggerDescriptor]:
        """
        Get user triggers of the given tables.

        Args:
            tables: Table names

        Returns:
            Triggers ordered by (table, name)

        Raises:
            CatalogQueryError: If neither catalog can be read
        """
        self.last_fallback_used = False
        if not tables:
            return []

        with self._connection() as conn:
            try:
                return self._get_triggers_pg_catalog(conn, tables)
            except psycopg.Error as primary_error:
                conn.rollback()
                logger.warning(
                    f"pg_trigger query failed ({primary_error}), "
                    "falling back to information_schema.triggers"
                )
                try:
                    triggers = self._get_triggers_information_schema(conn, tables)
                except psycopg.Error as fallback_error:
                    conn.rollback()
                    raise CatalogQueryError(tables, str(fallback_error)) from fallback_error
                self.last_fallback_used = True
                return triggers

    def _get_triggers_pg_catalog(
        self, conn: Connection, tables: list[str]
    ) -> list[TriggerDescriptor]:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT
                    t.tgname,
                    c.relname,
                    p.proname,
                    pn.nspname,
                    t.tgtype,
                    t.tgenabled,
                    pg_get_triggerdef(t.oid)
                FROM pg_trigger t
                JOIN pg_class c ON c.oid = t.tgrelid
                JOIN pg_namespace n ON n.oid = c.relnamespace
                JOIN pg_proc p ON p.oid = t.tgfoid
                JOIN pg_namespace pn ON pn.oid = p.pronamespace
                WHERE n.nspname = %s
                  AND c.relname = ANY(%s)
                  AND NOT t.tgisinternal
                ORDER BY c.relname, t.tgname
                """,
                (self.schema, list(tables)),
            )
            rows = cur.fetchall()

        triggers = []
        for name, table, function_name, function_schema, tgtype, enabled, definition in rows:
            timing, events, level = decode_trigger_type(tgtype)
            triggers.append(
                TriggerDescriptor(
                    name=name,
                    table=table,
                    function_name=function_name,
                    schema=self.schema,
                    timing=timing,
                    events=events,
                    level=level,
                    function_schema=function_schema,
                    enabled=enabled != "D",
                    definition=definition,
                )
            )
        return triggers

    def _get_triggers_information_schema(
        self, conn: Connection, tables: list[str]
    ) -> list[TriggerDescriptor]:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT
                    trigger_name,
                    event_object_table,
                    event_manipulation,
                    action_timing,
                    action_orientation,
                    action_statement
                FROM information_schema.triggers
                WHERE trigger_schema = %s
                  AND event_object_table = ANY(%s)
                ORDER BY event_object_table, trigger_name, event_manipulation
                """,
                (self.schema, list(tables)),
            )
            rows = cur.fetchall()

        # information_schema lists one row per (trigger, event)
        grouped: dict[tuple[str, str], dict] = {}
        for name, table, event, timing, orientation, statement in rows:
            entry = grouped.setdefault(
                (table, name),
                {
                    "events": [],
                    "timing": timing,
                    "level": orientation or "ROW",
                    "statement": statement or "",
                },
            )
            if event not in entry["events"]:
                entry["events"].append(event)

        triggers = []
        for (table, name), entry in sorted(grouped.items()):
            match = _EXECUTE_PATTERN.search(entry["statement"])
            if match is None:
                logger.warning(f"Cannot find function of trigger {name} on {table}, skipping")
                continue
            triggers.append(
                TriggerDescriptor(
                    name=name,
                    table=table,
                    function_name=match.group(2).lower(),
                    schema=self.schema,
                    timing=entry["timing"],
                    events=tuple(entry["events"]),
                    level=entry["level"],
                    function_schema=(match.group(1) or self.schema).lower(),
                    definition=entry["statement"],
                )
            )
        return triggers

    def get_function(self, name: str, schema: str = "public") -> FunctionDescriptor | None:
        """
        Load a function definition.

        Args:
            name: Function name
            schema: Function schema

        Returns:
            FunctionDescriptor, or None if the function does not exist

        Raises:
            CatalogQueryError: If the catalog cannot be read
        """
        with self._connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        SELECT
                            p.proname,
                            n.nspname,
                            pg_get_functiondef(p.oid),
                            l.lanname,
                            pg_get_function_result(p.oid),
                            pg_get_function_arguments(p.oid),
                            p.provolatile
                        FROM pg_proc p
                        JOIN pg_namespace n ON n.oid = p.pronamespace
                        JOIN pg_language l ON l.oid = p.prolang
                        WHERE p.proname = %s
                          AND n.nspname = %s
                          AND p.prokind = 'f'
                        ORDER BY p.oid
                        LIMIT 1
                        """,
                        (name, schema),
                    )
                    row = cur.fetchone()
            except psycopg.Error as e:
                # Only this caller's connection is rolled back
                conn.rollback()
                raise CatalogQueryError([f"{schema}.{name}"], str(e)) from e

        if row is None:
            return None

        proname, nspname, definition, language, return_type, arguments, volatility = row
        return FunctionDescriptor(
            name=proname,
            definition=definition or "",
            schema=nspname,
            language=language,
            return_type=return_type or "",
            arguments=arguments or "",
            volatility=VOLATILITY.get(volatility, "volatile"),
        )
