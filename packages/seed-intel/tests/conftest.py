"""Pytest configuration and shared fixtures."""

import os

import psycopg
import pytest
from psycopg import Connection

from seed_intel.constraints.handlers import reset_handlers
from seed_intel.exceptions import CatalogQueryError
from seed_intel.models import (
    ColumnInfo,
    FunctionDescriptor,
    IntegrityRule,
    Relationship,
    SchemaSnapshot,
    TriggerDescriptor,
)

TEAM_ACCOUNT_FUNCTION = """
CREATE OR REPLACE FUNCTION public.check_team_account()
 RETURNS trigger
 LANGUAGE plpgsql
AS $function$
BEGIN
  -- memberships only point at team accounts
  IF NOT EXISTS (
    SELECT 1 FROM accounts a
    WHERE a.id = NEW.account_id AND a.is_personal_account = false
  ) THEN
    RAISE EXCEPTION 'Account must be a team account';
  END IF;
  RETURN NEW;
END;
$function$
"""


class FakeCatalog:
    """In-memory trigger catalog."""

    def __init__(
        self,
        triggers: list[TriggerDescriptor] | None = None,
        functions: dict[str, str] | None = None,
        fail: bool = False,
        fallback: bool = False,
        broken_functions: tuple[str, ...] = (),
        max_concurrency: int = 4,
    ):
        self.triggers = triggers or []
        self.functions = functions or {}
        self.fail = fail
        self.fallback = fallback
        self.broken_functions = broken_functions
        self.max_concurrency = max_concurrency
        self.last_fallback_used = False
        self.trigger_calls: list[list[str]] = []
        self.function_calls: list[str] = []

    def get_triggers(self, tables: list[str]) -> list[TriggerDescriptor]:
        self.trigger_calls.append(list(tables))
        if self.fail:
            raise CatalogQueryError(tables, "permission denied for table pg_trigger")
        self.last_fallback_used = self.fallback
        return [t for t in self.triggers if t.table in tables]

    def get_function(self, name: str, schema: str = "public") -> FunctionDescriptor | None:
        self.function_calls.append(name)
        if name in self.broken_functions:
            raise RuntimeError("connection reset")
        # "schema.name" keys override bare names
        definition = self.functions.get(f"{schema}.{name}", self.functions.get(name))
        if definition is None:
            return None
        return FunctionDescriptor(name=name, definition=definition, schema=schema)


def trigger(
    name: str,
    table: str,
    function: str,
    enabled: bool = True,
    function_schema: str | None = None,
) -> TriggerDescriptor:
    """Build a BEFORE INSERT row trigger."""
    return TriggerDescriptor(
        name=name,
        table=table,
        function_name=function,
        events=("INSERT",),
        enabled=enabled,
        function_schema=function_schema,
    )


@pytest.fixture
def team_snapshot() -> SchemaSnapshot:
    """Teams with memberships and invitations."""
    return SchemaSnapshot.build(
        {
            "users": ["id", "email", "name"],
            "teams": ["id", "name"],
            "team_members": ["id", "team_id", "user_id", "role"],
            "invitations": ["id", "team_id", "email"],
        },
        relationships=[
            Relationship("team_members", "teams", "team_id"),
            Relationship("team_members", "users", "user_id"),
            Relationship("invitations", "teams", "team_id"),
        ],
    )


@pytest.fixture
def individual_snapshot() -> SchemaSnapshot:
    """Single-user platform with user-owned content."""
    return SchemaSnapshot.build(
        {
            "users": ["id", "email", "name"],
            "posts": ["id", "user_id", "title", "body"],
            "bookmarks": ["id", "user_id", "url"],
        },
        relationships=[
            Relationship("posts", "users", "user_id"),
            Relationship("bookmarks", "users", "user_id"),
        ],
    )


@pytest.fixture
def outdoor_snapshot() -> SchemaSnapshot:
    """Gear and trip planning schema."""
    return SchemaSnapshot.build(
        {
            "users": ["id", "email"],
            "gear": ["id", "user_id", "brand", "category", "weight_grams"],
            "setups": ["id", "user_id", "base_weight"],
            "setup_items": ["setup_id", "gear_id"],
            "trips": ["id", "setup_id", "elevation"],
        },
        relationships=[
            Relationship("setup_items", "setups", "setup_id"),
            Relationship("setup_items", "gear", "gear_id"),
            Relationship("trips", "setups", "setup_id"),
        ],
    )


@pytest.fixture
def makerkit_snapshot() -> SchemaSnapshot:
    """Personal and team accounts side by side."""
    return SchemaSnapshot.build(
        {
            "accounts": [
                "id",
                "name",
                ColumnInfo("is_personal_account", "boolean", is_nullable=False),
                "slug",
                "primary_owner_user_id",
            ],
            "accounts_memberships": ["account_id", "user_id", "account_role"],
            "roles": ["name", "hierarchy_level"],
            "invitations": ["id", "account_id", "email"],
        },
        relationships=[
            Relationship("accounts_memberships", "accounts", "account_id"),
            Relationship("invitations", "accounts", "account_id"),
        ],
        integrity_rules=[
            IntegrityRule(
                table="accounts",
                name="accounts_slug_null_if_personal_account_true",
                condition=(
                    "((is_personal_account = true) AND (slug IS NULL)) "
                    "OR ((is_personal_account = false) AND (slug IS NOT NULL))"
                ),
                columns=("is_personal_account", "slug"),
            ),
        ],
    )


@pytest.fixture
def team_catalog() -> FakeCatalog:
    """Membership trigger that requires a team account."""
    return FakeCatalog(
        triggers=[
            trigger("ensure_team_account", "accounts_memberships", "check_team_account"),
        ],
        functions={"check_team_account": TEAM_ACCOUNT_FUNCTION},
    )


@pytest.fixture
def restore_handlers():
    """Restore the global handler registry after a test."""
    yield
    reset_handlers()


@pytest.fixture
def db_conn() -> Connection:
    """
    Provide a test database connection.

    Uses DATABASE_URL; tests using it are skipped when it is unset.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        pytest.skip("DATABASE_URL not set")

    conn = psycopg.connect(url, autocommit=False)

    yield conn

    # Rollback any changes
    conn.rollback()
    conn.close()
