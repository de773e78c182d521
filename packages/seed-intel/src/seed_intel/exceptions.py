"""Custom exceptions with helpful error messages."""


class SeedIntelError(Exception):
    """Base exception for seed-intel errors."""

    pass


class DatabaseConnectionError(SeedIntelError):
    """Database could not be reached."""

    def __init__(self, url: str, reason: str):
        super().__init__(
            f"Could not connect to database '{url}': {reason}\n\n"
            f"Suggestions:\n"
            f"1. Check that PostgreSQL is running and reachable\n"
            f"2. Verify the connection URL in seed-intel.toml ([database] url)\n"
            f"3. Pass --database-url to override the configured URL"
        )


class CatalogQueryError(SeedIntelError):
    """Both the primary and the fallback trigger catalog queries failed."""

    def __init__(self, tables: list[str], reason: str):
        tables_str = ", ".join(sorted(tables))
        super().__init__(
            f"Could not read trigger catalog for tables: {tables_str} ({reason})\n\n"
            f"Suggestions:\n"
            f"1. Grant SELECT on pg_catalog.pg_trigger to the seeding role\n"
            f"2. Ensure information_schema.triggers is visible to the role\n"
            f"3. Check that the tables exist in the configured schema"
        )


class ClassificationError(SeedIntelError):
    """A classifier could not score the schema."""

    def __init__(self, kind: str, reason: str):
        super().__init__(
            f"{kind.capitalize()} classification failed: {reason}\n\n"
            f"Suggestions:\n"
            f"1. Check that the schema snapshot contains tables\n"
            f"2. Set a manual override (detection.manual_{kind}) to bypass scoring"
        )


class CircularDependencyError(SeedIntelError):
    """Circular dependency detected in table relationships."""

    def __init__(self, tables: set[str]):
        tables_str = ", ".join(sorted(tables))
        super().__init__(
            f"Circular dependency detected involving tables: {tables_str}\n\n"
            f"Suggestions:\n"
            f"1. Inspect graph.cycles and graph.broken_edges for the dropped edges\n"
            f"2. Seed one table of the cycle with nullable references first\n"
            f"3. Temporarily disable the trigger, seed data, then re-enable it"
        )


class HandlerRegistrationError(SeedIntelError):
    """Constraint handler could not be registered."""

    def __init__(self, handler_id: str, reason: str):
        super().__init__(
            f"Could not register constraint handler '{handler_id}': {reason}\n\n"
            f"Suggestions:\n"
            f"1. Use a unique handler id\n"
            f"2. Use one of the constraint types: check, foreign_key, unique, "
            f"primary_key, not_null\n"
            f"3. Call clear_handlers() before re-registering in tests"
        )
