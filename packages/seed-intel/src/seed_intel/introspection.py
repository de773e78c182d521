"""Schema snapshot sources."""

from typing import Protocol, runtime_checkable

from psycopg import Connection

from seed_intel.models import ColumnInfo, IntegrityRule, Relationship, SchemaSnapshot


@runtime_checkable
class SchemaSource(Protocol):
    """Anything that can supply a schema snapshot."""

    def load_snapshot(self) -> SchemaSnapshot: ...


class StaticSchemaSource:
    """Serve an already built snapshot (tests, offline analysis)."""

    def __init__(self, snapshot: SchemaSnapshot):
        self.snapshot = snapshot

    def load_snapshot(self) -> SchemaSnapshot:
        return self.snapshot


class SchemaIntrospector:
    """Introspect a PostgreSQL schema into a SchemaSnapshot (cached)."""

    def __init__(self, conn: Connection, schema: str = "public"):
        self.conn = conn
        self.schema = schema
        self._snapshot_cache: SchemaSnapshot | None = None

    def load_snapshot(self) -> SchemaSnapshot:
        """Get tables, columns, relationships and integrity rules (cached)."""
        if self._snapshot_cache is not None:
            return self._snapshot_cache

        columns = self.get_columns()
        relationships = self.get_relationships()
        rules = self.get_integrity_rules(relationships, columns)

        self._snapshot_cache = SchemaSnapshot(
            tables=tuple(columns),
            columns={table: tuple(cols) for table, cols in columns.items()},
            relationships=tuple(relationships),
            integrity_rules=tuple(rules),
        )
        return self._snapshot_cache

    def get_columns(self) -> dict[str, list[ColumnInfo]]:
        """Get columns of every base table, keyed by table name."""
        with self.conn.cursor() as cur:
            cur.execute(
                """
                SELECT c.table_name, c.column_name, c.data_type, c.is_nullable
                FROM information_schema.columns c
                JOIN information_schema.tables t
                  ON t.table_schema = c.table_schema
                  AND t.table_name = c.table_name
                WHERE c.table_schema = %s
                  AND t.table_type = 'BASE TABLE'
                ORDER BY c.table_name, c.ordinal_position
                """,
                (self.schema,),
            )
            rows = cur.fetchall()

        columns: dict[str, list[ColumnInfo]] = {}
        for table, name, pg_type, is_nullable in rows:
            columns.setdefault(table, []).append(
                ColumnInfo(name=name, pg_type=pg_type, is_nullable=is_nullable == "YES")
            )
        return columns

    def get_relationships(self) -> list[Relationship]:
        """Get all foreign keys of the schema."""
        with self.conn.cursor() as cur:
            cur.execute(
                """
                SELECT
                    tc.table_name,
                    kcu.column_name,
                    ccu.table_name AS foreign_table_name,
                    ccu.column_name AS foreign_column_name
                FROM information_schema.table_constraints AS tc
                JOIN information_schema.key_column_usage AS kcu
                  ON tc.constraint_name = kcu.constraint_name
                  AND tc.table_schema = kcu.table_schema
                JOIN information_schema.constraint_column_usage AS ccu
                  ON ccu.constraint_name = tc.constraint_name
                  AND ccu.table_schema = tc.table_schema
                WHERE tc.constraint_type = 'FOREIGN KEY'
                  AND tc.table_schema = %s
                ORDER BY tc.table_name, kcu.column_name
                """,
                (self.schema,),
            )
            rows = cur.fetchall()

        return [
            Relationship(
                from_table=row[0],
                column=row[1],
                to_table=row[2],
                referenced_column=row[3],
            )
            for row in rows
        ]

    def get_integrity_rules(
        self,
        relationships: list[Relationship] | None = None,
        columns: dict[str, list[ColumnInfo]] | None = None,
    ) -> list[IntegrityRule]:
        """Get CHECK, UNIQUE, PRIMARY KEY, FOREIGN KEY and NOT NULL constraints."""
        with self.conn.cursor() as cur:
            cur.execute(
                """
                SELECT
                    tc.table_name,
                    tc.constraint_name,
                    tc.constraint_type,
                    COALESCE(cc.check_clause, ''),
                    COALESCE(
                        array_agg(kcu.column_name ORDER BY kcu.ordinal_position)
                          FILTER (WHERE kcu.column_name IS NOT NULL),
                        ARRAY[]::text[]
                    ),
                    rc.delete_rule
                FROM information_schema.table_constraints tc
                LEFT JOIN information_schema.check_constraints cc
                  ON cc.constraint_name = tc.constraint_name
                  AND cc.constraint_schema = tc.table_schema
                LEFT JOIN information_schema.key_column_usage kcu
                  ON kcu.constraint_name = tc.constraint_name
                  AND kcu.table_schema = tc.table_schema
                LEFT JOIN information_schema.referential_constraints rc
                  ON rc.constraint_name = tc.constraint_name
                  AND rc.constraint_schema = tc.table_schema
                WHERE tc.table_schema = %s
                  AND tc.constraint_type IN ('CHECK', 'UNIQUE', 'PRIMARY KEY', 'FOREIGN KEY')
                  AND tc.constraint_name NOT LIKE '%%_not_null'
                GROUP BY tc.table_name, tc.constraint_name, tc.constraint_type,
                         cc.check_clause, rc.delete_rule
                ORDER BY tc.table_name, tc.constraint_name
                """,
                (self.schema,),
            )
            rows = cur.fetchall()

        references = {(r.from_table, r.column): r for r in relationships or []}
        kinds = {
            "CHECK": "check",
            "UNIQUE": "unique",
            "PRIMARY KEY": "primary_key",
            "FOREIGN KEY": "foreign_key",
        }
        rules = []
        for table, name, constraint_type, clause, cols, delete_rule in rows:
            kind = kinds[constraint_type]
            ref = references.get((table, cols[0])) if kind == "foreign_key" and cols else None
            rules.append(
                IntegrityRule(
                    table=table,
                    name=name,
                    condition=clause or ", ".join(cols),
                    constraint_type=kind,
                    columns=tuple(cols),
                    referenced_table=ref.to_table if ref else None,
                    referenced_column=ref.referenced_column if ref else None,
                    on_delete=delete_rule,
                )
            )

        if columns is None:
            columns = self.get_columns()
        for table, cols in columns.items():
            for col in cols:
                if not col.is_nullable:
                    rules.append(
                        IntegrityRule(
                            table=table,
                            name=col.name,
                            condition=f"{col.name} IS NOT NULL",
                            constraint_type="not_null",
                            columns=(col.name,),
                        )
                    )
        return rules

    def clear_cache(self) -> None:
        """Clear cached introspection data."""
        self._snapshot_cache = None
