"""Tests for ConstraintDiscoveryEngine."""

import itertools
import threading

import pytest
from conftest import TEAM_ACCOUNT_FUNCTION, FakeCatalog, trigger

from seed_intel.config import DiscoveryConfig
from seed_intel.constraints.discovery import ConstraintDiscoveryEngine
from seed_intel.models import ColumnInfo, FunctionDescriptor, SchemaSnapshot

UNIQUE_SLUG_FUNCTION = """
BEGIN
  IF EXISTS (SELECT 1 FROM accounts WHERE slug = NEW.slug) THEN
    RAISE EXCEPTION 'slug already taken';
  END IF;
  RETURN NEW;
END;
"""

OWNER_MEMBERSHIP_FUNCTION = """
BEGIN
  INSERT INTO accounts_memberships (account_id, user_id, account_role)
  VALUES (NEW.id, NEW.primary_owner_user_id, 'owner');
  RETURN NEW;
END;
"""

SLUG_FUNCTION = """
BEGIN
  NEW.slug := lower(NEW.name);
  RETURN NEW;
END;
"""


class BlockingCatalog(FakeCatalog):
    """Catalog whose function loads wait for an event."""

    def __init__(self, release: threading.Event, **kwargs):
        super().__init__(**kwargs)
        self.release = release

    def get_function(self, name: str, schema: str = "public") -> FunctionDescriptor | None:
        self.release.wait(timeout=5)
        return super().get_function(name, schema)


class TestDiscover:
    """Tests for ConstraintDiscoveryEngine.discover()."""

    def test_team_account_guard(self, team_catalog: FakeCatalog) -> None:
        """Test membership trigger yields one required dependency on accounts."""
        engine = ConstraintDiscoveryEngine(team_catalog)

        result = engine.discover(["accounts_memberships", "accounts"])

        assert len(result.rules) == 1
        rule = result.rules[0]
        assert rule.id == "accounts_memberships:check_team_account:exists_guard:1"
        assert rule.name == "check_team_account_exists_guard_1"
        assert rule.table == "accounts_memberships"
        assert rule.trigger_name == "ensure_team_account"
        assert rule.dependencies == ("accounts",)
        assert rule.auto_fix.kind == "set_field"

        assert [(d.from_table, d.to_table, d.relationship) for d in result.dependencies] == [
            ("accounts_memberships", "accounts", "required")
        ]
        assert result.graph.topological_sort() == ["accounts", "accounts_memberships"]
        assert result.confidence == pytest.approx(0.9)
        assert result.errors == []
        assert result.warnings == []

    def test_tables_always_present(self, team_catalog: FakeCatalog) -> None:
        """Test every requested table gets a constraint set."""
        result = ConstraintDiscoveryEngine(team_catalog).discover(
            ["accounts", "accounts_memberships"]
        )

        assert set(result.tables) == {"accounts", "accounts_memberships"}
        assert result.rules_for("accounts") == []
        assert result.tables["accounts_memberships"].triggers == ["ensure_team_account"]

    def test_no_self_dependency(self) -> None:
        """Test a rule never depends on its own table."""
        catalog = FakeCatalog(
            triggers=[trigger("unique_slug", "accounts", "check_slug")],
            functions={"check_slug": UNIQUE_SLUG_FUNCTION},
        )

        result = ConstraintDiscoveryEngine(catalog).discover(["accounts"])

        assert len(result.rules) == 1
        assert result.rules[0].dependencies == ()
        assert result.dependencies == []

    def test_cascade_insert_orders_after_source(self) -> None:
        """Test rows inserted by a trigger come after the firing table."""
        catalog = FakeCatalog(
            triggers=[trigger("add_owner", "accounts", "add_owner_membership")],
            functions={"add_owner_membership": OWNER_MEMBERSHIP_FUNCTION},
        )

        result = ConstraintDiscoveryEngine(catalog).discover(["accounts"])

        assert [(d.from_table, d.to_table, d.relationship) for d in result.dependencies] == [
            ("accounts_memberships", "accounts", "optional")
        ]
        order = result.graph.topological_sort()
        assert order.index("accounts") < order.index("accounts_memberships")

    def test_disabled_trigger_skipped(self) -> None:
        """Test disabled triggers produce no rules."""
        catalog = FakeCatalog(
            triggers=[trigger("slugify", "accounts", "set_slug", enabled=False)],
            functions={"set_slug": SLUG_FUNCTION},
        )

        result = ConstraintDiscoveryEngine(catalog).discover(["accounts"])

        assert result.rules == []
        assert catalog.function_calls == []

    def test_shared_function_rules_per_table(self) -> None:
        """Test one function attached to two tables yields one rule per table."""
        catalog = FakeCatalog(
            triggers=[
                trigger("slugify", "accounts", "set_slug"),
                trigger("slugify", "projects", "set_slug"),
            ],
            functions={"set_slug": SLUG_FUNCTION},
        )

        result = ConstraintDiscoveryEngine(catalog).discover(["projects", "accounts"])

        assert [r.id for r in result.rules] == [
            "accounts:set_slug:row_assignment:1",
            "projects:set_slug:row_assignment:1",
        ]
        assert catalog.function_calls == ["set_slug"]

    def test_same_function_name_in_two_schemas(self) -> None:
        """Test functions sharing a name in different schemas stay apart."""
        catalog = FakeCatalog(
            triggers=[
                trigger("check_slug", "accounts", "validate"),
                trigger("add_owner", "accounts", "validate", function_schema="audit"),
            ],
            functions={
                "public.validate": UNIQUE_SLUG_FUNCTION,
                "audit.validate": OWNER_MEMBERSHIP_FUNCTION,
            },
        )

        result = ConstraintDiscoveryEngine(catalog).discover(["accounts"])

        assert list(result.functions) == ["audit.validate", "public.validate"]
        assert sorted(r.id.split(":")[1] for r in result.rules) == ["audit.validate", "validate"]
        assert [(d.from_table, d.to_table) for d in result.dependencies] == [
            ("accounts_memberships", "accounts")
        ]

    def test_deterministic_without_cache(self) -> None:
        """Test repeated uncached discovery gives identical rules and order."""
        catalog = FakeCatalog(
            triggers=[
                trigger("ensure_team_account", "accounts_memberships", "check_team_account"),
                trigger("add_owner", "accounts", "add_owner_membership"),
                trigger("slugify", "accounts", "set_slug"),
                trigger("slugify", "projects", "set_slug"),
                trigger("unique_slug", "projects", "check_slug"),
            ],
            functions={
                "check_team_account": TEAM_ACCOUNT_FUNCTION,
                "add_owner_membership": OWNER_MEMBERSHIP_FUNCTION,
                "set_slug": SLUG_FUNCTION,
                "check_slug": UNIQUE_SLUG_FUNCTION,
            },
        )
        engine = ConstraintDiscoveryEngine(
            catalog, config=DiscoveryConfig(enable_caching=False)
        )
        tables = ["projects", "accounts_memberships", "accounts"]

        first = engine.discover(tables)
        second = engine.discover(list(reversed(tables)))

        assert second.cache_hit is False
        assert len(first.rules) == 5
        assert second.rules == first.rules
        assert second.dependencies == first.dependencies
        assert second.graph.creation_order == first.graph.creation_order
        assert second.warnings == first.warnings

    def test_empty_tables(self) -> None:
        """Test empty input gives an empty result."""
        result = ConstraintDiscoveryEngine(FakeCatalog()).discover([])

        assert result.rules == []
        assert result.confidence == 0.0
        assert result.graph.topological_sort() == []


class TestDiscoverCache:
    """Tests for result caching."""

    def test_second_call_hits_cache(self, team_catalog: FakeCatalog) -> None:
        """Test repeated discovery returns the cached result."""
        engine = ConstraintDiscoveryEngine(team_catalog)

        first = engine.discover(["accounts_memberships", "accounts"])
        second = engine.discover(["accounts", "accounts_memberships"])

        assert first.cache_hit is False
        assert second.cache_hit is True
        assert [r.id for r in second.rules] == [r.id for r in first.rules]
        assert len(team_catalog.trigger_calls) == 1

    def test_clear_cache(self, team_catalog: FakeCatalog) -> None:
        """Test clearing the cache reloads triggers and functions."""
        engine = ConstraintDiscoveryEngine(team_catalog)
        engine.discover(["accounts_memberships"])
        engine.clear_cache()

        result = engine.discover(["accounts_memberships"])

        assert result.cache_hit is False
        assert team_catalog.function_calls == ["check_team_account", "check_team_account"]

    def test_function_cache_reused(self, team_catalog: FakeCatalog) -> None:
        """Test function definitions are cached across table sets."""
        engine = ConstraintDiscoveryEngine(team_catalog)
        engine.discover(["accounts_memberships"])
        engine.discover(["accounts_memberships", "accounts"])

        assert team_catalog.function_calls == ["check_team_account"]

    def test_caching_disabled(self, team_catalog: FakeCatalog) -> None:
        """Test no cache is used when caching is off."""
        engine = ConstraintDiscoveryEngine(
            team_catalog, config=DiscoveryConfig(enable_caching=False)
        )
        engine.discover(["accounts_memberships"])

        assert engine.discover(["accounts_memberships"]).cache_hit is False
        assert len(team_catalog.trigger_calls) == 2


class TestDiscoverFailures:
    """Tests for partial failures."""

    def test_catalog_error_recorded(self) -> None:
        """Test an unreadable catalog yields an empty result with the error."""
        catalog = FakeCatalog(fail=True)
        engine = ConstraintDiscoveryEngine(catalog)

        result = engine.discover(["accounts"])

        assert result.rules == []
        assert len(result.errors) == 1
        assert "pg_trigger" in result.errors[0]
        assert set(result.tables) == {"accounts"}

        engine.discover(["accounts"])
        assert len(catalog.trigger_calls) == 2

    def test_fallback_warning(self, team_catalog: FakeCatalog) -> None:
        """Test the fallback catalog is reported."""
        team_catalog.fallback = True

        result = ConstraintDiscoveryEngine(team_catalog).discover(["accounts_memberships"])

        assert result.fallback_used is True
        assert "Trigger catalog unavailable, used information_schema.triggers" in result.warnings
        assert len(result.rules) == 1

    def test_missing_function_dropped(self) -> None:
        """Test a trigger whose function is gone is dropped with a warning."""
        catalog = FakeCatalog(triggers=[trigger("t", "accounts", "gone")])

        result = ConstraintDiscoveryEngine(catalog).discover(["accounts"])

        assert result.rules == []
        assert result.warnings == ["Dropped function public.gone: not found"]

    def test_failing_function_dropped(self) -> None:
        """Test a failing function load does not affect the others."""
        catalog = FakeCatalog(
            triggers=[
                trigger("ensure_team_account", "accounts_memberships", "check_team_account"),
                trigger("slugify", "accounts", "set_slug"),
            ],
            functions={"check_team_account": TEAM_ACCOUNT_FUNCTION, "set_slug": SLUG_FUNCTION},
            broken_functions=("set_slug",),
        )

        result = ConstraintDiscoveryEngine(catalog).discover(["accounts", "accounts_memberships"])

        assert [r.function_name for r in result.rules] == ["check_team_account"]
        assert result.warnings == ["Dropped function public.set_slug: connection reset"]

    def test_time_budget_abandons_loads(self) -> None:
        """Test pending function loads are abandoned at the deadline."""
        release = threading.Event()
        catalog = BlockingCatalog(
            release,
            triggers=[trigger("slugify", "accounts", "set_slug")],
            functions={"set_slug": SLUG_FUNCTION},
        )
        ticks = itertools.chain([0.0], itertools.repeat(100.0))
        engine = ConstraintDiscoveryEngine(
            catalog,
            config=DiscoveryConfig(max_execution_time=1),
            clock=lambda: next(ticks),
        )

        try:
            result = engine.discover(["accounts"])
        finally:
            release.set()

        assert result.rules == []
        assert result.warnings == [
            "Discovery time budget of 1.0s exhausted, abandoned 1 function loads: public.set_slug"
        ]

    def test_single_connection_loads_in_order(self) -> None:
        """Test a catalog without concurrency is read on the calling thread."""
        threads = []

        class RecordingCatalog(FakeCatalog):
            def get_function(self, name, schema="public"):
                threads.append(threading.current_thread())
                return super().get_function(name, schema)

        catalog = RecordingCatalog(
            triggers=[
                trigger("slugify", "accounts", "set_slug"),
                trigger("ensure_team_account", "accounts_memberships", "check_team_account"),
            ],
            functions={"check_team_account": TEAM_ACCOUNT_FUNCTION, "set_slug": SLUG_FUNCTION},
            max_concurrency=1,
        )

        result = ConstraintDiscoveryEngine(catalog).discover(["accounts", "accounts_memberships"])

        assert catalog.function_calls == ["check_team_account", "set_slug"]
        assert threads == [threading.current_thread()] * 2
        assert len(result.rules) == 2

    def test_single_connection_time_budget(self) -> None:
        """Test sequential loads stop at the deadline."""
        catalog = FakeCatalog(
            triggers=[
                trigger("slugify", "accounts", "set_slug"),
                trigger("ensure_team_account", "accounts_memberships", "check_team_account"),
            ],
            functions={"check_team_account": TEAM_ACCOUNT_FUNCTION, "set_slug": SLUG_FUNCTION},
            max_concurrency=1,
        )
        ticks = itertools.chain([0.0, 0.5], itertools.repeat(2.0))
        engine = ConstraintDiscoveryEngine(
            catalog,
            config=DiscoveryConfig(max_execution_time=1),
            clock=lambda: next(ticks),
        )

        result = engine.discover(["accounts", "accounts_memberships"])

        assert catalog.function_calls == ["check_team_account"]
        assert [r.function_name for r in result.rules] == ["check_team_account"]
        assert result.warnings == [
            "Discovery time budget of 1.0s exhausted, abandoned 1 function loads: public.set_slug"
        ]


class TestSanityCheck:
    """Tests for checking auto-fixes against the schema."""

    def test_matching_schema_keeps_confidence(self, team_catalog: FakeCatalog) -> None:
        """Test a fix that fits the schema is left alone."""
        snapshot = SchemaSnapshot.build(
            {
                "accounts": ["id", ColumnInfo("is_personal_account", "boolean")],
                "accounts_memberships": ["account_id", "user_id"],
            }
        )

        result = ConstraintDiscoveryEngine(team_catalog, snapshot=snapshot).discover(
            ["accounts_memberships"]
        )

        assert result.rules[0].confidence == 0.9
        assert result.warnings == []

    def test_missing_column_lowers_confidence(self, team_catalog: FakeCatalog) -> None:
        """Test a fix naming a missing column halves the confidence."""
        snapshot = SchemaSnapshot.build(
            {"accounts": ["id", "name"], "accounts_memberships": ["account_id", "user_id"]}
        )

        result = ConstraintDiscoveryEngine(team_catalog, snapshot=snapshot).discover(
            ["accounts_memberships"]
        )

        assert result.rules[0].confidence == pytest.approx(0.45)
        assert result.confidence == pytest.approx(0.45)
        assert result.warnings == [
            "Rule accounts_memberships:check_team_account:exists_guard:1: "
            "column accounts.is_personal_account does not exist, confidence lowered"
        ]

    def test_type_mismatch_lowers_confidence(self, team_catalog: FakeCatalog) -> None:
        """Test a boolean fix for a numeric column halves the confidence."""
        snapshot = SchemaSnapshot.build(
            {"accounts": ["id", ColumnInfo("is_personal_account", "integer")]}
        )

        result = ConstraintDiscoveryEngine(team_catalog, snapshot=snapshot).discover(
            ["accounts_memberships"]
        )

        assert result.rules[0].confidence == pytest.approx(0.45)

    def test_validation_disabled(self, team_catalog: FakeCatalog) -> None:
        """Test no check runs when validate_rules is off."""
        snapshot = SchemaSnapshot.build({"accounts": ["id"]})

        result = ConstraintDiscoveryEngine(
            team_catalog, config=DiscoveryConfig(validate_rules=False), snapshot=snapshot
        ).discover(["accounts_memberships"])

        assert result.rules[0].confidence == 0.9
