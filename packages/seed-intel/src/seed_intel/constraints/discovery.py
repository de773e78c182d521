"""Constraint discovery engine.

Turns the triggers attached to a set of tables into business rules, table
dependencies and a dependency graph:

    triggers -> functions -> rules -> per-table aggregation -> graph
"""

import logging
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import replace

from seed_intel.cache import TTLCache
from seed_intel.config import DiscoveryConfig
from seed_intel.constraints.catalog import CatalogSource
from seed_intel.constraints.graph import DependencyGraph
from seed_intel.constraints.rules import EXISTS_GUARD, RuleMatch, RulePatternMatcher
from seed_intel.exceptions import CatalogQueryError
from seed_intel.models import (
    BusinessRule,
    ConstraintDiscoveryResult,
    FunctionDescriptor,
    SchemaSnapshot,
    TableConstraintSet,
    TableDependency,
    TriggerDescriptor,
)
from seed_intel.scoring import mean

logger = logging.getLogger(__name__)

BOOLEAN_TYPES = frozenset({"boolean", "bool"})
NUMERIC_TYPES = frozenset(
    {
        "smallint",
        "integer",
        "bigint",
        "numeric",
        "decimal",
        "real",
        "double precision",
        "int2",
        "int4",
        "int8",
        "float4",
        "float8",
    }
)
SANITY_PENALTY = 0.5

# ((schema, name), function or None, load error or None)
_FetchOutcome = tuple[tuple[str, str], FunctionDescriptor | None, BaseException | None]


class ConstraintDiscoveryEngine:
    """
    Discover trigger-enforced business rules for a set of tables.

    Args:
        catalog: Trigger/function catalog
        config: Discovery configuration
        cache: Result cache keyed by the sorted table tuple (created from
            config when omitted and caching is on)
        function_cache: Function definition cache keyed by (schema, name)
        snapshot: Schema snapshot used to sanity check extracted rules
        matcher: Rule pattern matcher
        clock: Monotonic clock used for timings and the deadline
    """

    def __init__(
        self,
        catalog: CatalogSource,
        config: DiscoveryConfig | None = None,
        cache: TTLCache | None = None,
        function_cache: TTLCache | None = None,
        snapshot: SchemaSnapshot | None = None,
        matcher: RulePatternMatcher | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.catalog = catalog
        self.config = config or DiscoveryConfig()
        if self.config.enable_caching:
            if cache is None:
                cache = TTLCache(ttl_seconds=self.config.cache_ttl_seconds)
            if function_cache is None:
                function_cache = TTLCache(ttl_seconds=self.config.cache_ttl_seconds)
        self.cache = cache
        self.function_cache = function_cache
        self.snapshot = snapshot
        self.matcher = matcher or RulePatternMatcher()
        self._clock = clock

    def discover(self, tables: list[str]) -> ConstraintDiscoveryResult:
        """
        Discover business rules and dependencies for tables.

        Catalog failures never raise: they are recorded in `errors` and
        produce an empty (but well-formed) result.

        Args:
            tables: Table names

        Returns:
            ConstraintDiscoveryResult
        """
        started = self._clock()
        budget = self.config.max_execution_time
        deadline = started + budget if budget > 0 else None
        key = tuple(sorted(set(tables)))

        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Discovery cache hit for {len(key)} tables")
                return replace(cached, cache_hit=True, execution_time=self._clock() - started)

        warnings: list[str] = []
        errors: list[str] = []

        triggers: list[TriggerDescriptor] = []
        fallback_used = False
        try:
            triggers = self.catalog.get_triggers(list(key))
            fallback_used = self.catalog.last_fallback_used
        except CatalogQueryError as e:
            logger.warning(f"Trigger discovery failed: {e}")
            errors.append(str(e))

        if fallback_used:
            warnings.append("Trigger catalog unavailable, used information_schema.triggers")

        active = []
        for trigger in sorted(triggers, key=lambda t: (t.table, t.name)):
            if not trigger.enabled:
                logger.debug(f"Skipping disabled trigger {trigger.name} on {trigger.table}")
                continue
            active.append(trigger)

        functions = self._load_functions(active, deadline, warnings)
        rules, matches = self._extract_rules(active, functions)

        if self.snapshot is not None and self.config.validate_rules:
            rules = self._sanity_check(rules, warnings)

        constraint_sets = {table: TableConstraintSet(table=table) for table in key}
        for trigger in active:
            constraint_set = constraint_sets.get(trigger.table)
            if constraint_set is not None and trigger.name not in constraint_set.triggers:
                constraint_set.triggers.append(trigger.name)
        for rule in rules:
            constraint_sets.setdefault(rule.table, TableConstraintSet(table=rule.table))
            constraint_sets[rule.table].rules.append(rule)

        dependencies = self._dependencies(rules, matches)
        graph = DependencyGraph.from_dependencies(dependencies, tables=key)
        if graph.cycles:
            warnings.append(
                f"Broke {len(graph.broken_edges)} circular dependencies: "
                + ", ".join(f"{e.from_table} -> {e.to_table}" for e in graph.broken_edges)
            )

        result = ConstraintDiscoveryResult(
            tables=constraint_sets,
            rules=rules,
            dependencies=dependencies,
            graph=graph,
            triggers=active,
            functions=functions,
            confidence=mean(rule.confidence for rule in rules),
            warnings=warnings,
            errors=errors,
            fallback_used=fallback_used,
            execution_time=self._clock() - started,
        )
        logger.info(
            f"Discovered {len(rules)} rules and {len(dependencies)} dependencies "
            f"from {len(active)} triggers on {len(key)} tables"
        )

        if self.cache is not None and not errors:
            self.cache.put(key, result)
        return result

    def clear_cache(self) -> None:
        """Clear discovery and function caches."""
        if self.cache is not None:
            self.cache.clear()
        if self.function_cache is not None:
            self.function_cache.clear()

    def _load_functions(
        self,
        triggers: list[TriggerDescriptor],
        deadline: float | None,
        warnings: list[str],
    ) -> dict[str, FunctionDescriptor]:
        """
        Fetch distinct trigger functions, keyed by "schema.name" in name order.

        Loads run on worker threads only when the catalog can serve several
        queries at once (a connection pool); a single connection is read
        sequentially on the calling thread.
        """
        wanted = sorted(
            {(t.function_schema or t.schema, t.function_name) for t in triggers},
            key=lambda pair: (pair[1], pair[0]),
        )
        loaded: dict[tuple[str, str], FunctionDescriptor] = {}
        missing = []
        for schema, name in wanted:
            cached = None
            if self.function_cache is not None:
                cached = self.function_cache.get((schema, name))
            if cached is not None:
                loaded[(schema, name)] = cached
            else:
                missing.append((schema, name))

        if missing:
            workers = max(1, min(self.config.max_workers, self.catalog.max_concurrency))
            if workers == 1:
                outcomes, abandoned = self._fetch_sequential(missing, deadline)
            else:
                outcomes, abandoned = self._fetch_parallel(missing, deadline, workers)

            for (schema, name), function, error in outcomes:
                if error is not None:
                    logger.warning(f"Could not load function {schema}.{name}: {error}")
                    warnings.append(f"Dropped function {schema}.{name}: {error}")
                    continue
                if function is None:
                    warnings.append(f"Dropped function {schema}.{name}: not found")
                    continue
                loaded[(schema, name)] = function
                if self.function_cache is not None:
                    self.function_cache.put((schema, name), function)

            if abandoned:
                names = sorted(f"{schema}.{name}" for schema, name in abandoned)
                message = (
                    f"Discovery time budget of {self.config.max_execution_time}s exhausted, "
                    f"abandoned {len(abandoned)} function loads: {', '.join(names)}"
                )
                logger.warning(message)
                warnings.append(message)

        return {
            f"{schema}.{name}": loaded[(schema, name)]
            for schema, name in wanted
            if (schema, name) in loaded
        }

    def _fetch_sequential(
        self, missing: list[tuple[str, str]], deadline: float | None
    ) -> tuple[list[_FetchOutcome], list[tuple[str, str]]]:
        outcomes: list[_FetchOutcome] = []
        for index, (schema, name) in enumerate(missing):
            if deadline is not None and self._clock() >= deadline:
                return outcomes, missing[index:]
            try:
                outcomes.append(((schema, name), self.catalog.get_function(name, schema), None))
            except Exception as e:
                outcomes.append(((schema, name), None, e))
        return outcomes, []

    def _fetch_parallel(
        self, missing: list[tuple[str, str]], deadline: float | None, workers: int
    ) -> tuple[list[_FetchOutcome], list[tuple[str, str]]]:
        executor = ThreadPoolExecutor(max_workers=workers)
        futures: dict[Future, tuple[str, str]] = {
            executor.submit(self.catalog.get_function, name, schema): (schema, name)
            for schema, name in missing
        }
        timeout = None if deadline is None else max(0.0, deadline - self._clock())
        done, pending = wait(futures, timeout=timeout)
        executor.shutdown(wait=False, cancel_futures=True)

        outcomes: list[_FetchOutcome] = []
        for future in done:
            error = future.exception()
            outcomes.append((futures[future], None if error else future.result(), error))
        # Completion order varies between runs
        outcomes.sort(key=lambda outcome: (outcome[0][1], outcome[0][0]))
        return outcomes, [futures[future] for future in pending]

    def _extract_rules(
        self, triggers: list[TriggerDescriptor], functions: dict[str, FunctionDescriptor]
    ) -> tuple[list[BusinessRule], dict[str, RuleMatch]]:
        rules: list[BusinessRule] = []
        matches_by_rule: dict[str, RuleMatch] = {}
        matches_by_function: dict[str, list[RuleMatch]] = {}

        for trigger in triggers:
            qualified = f"{trigger.function_schema or trigger.schema}.{trigger.function_name}"
            function = functions.get(qualified)
            if function is None:
                continue
            if qualified not in matches_by_function:
                matches_by_function[qualified] = self.matcher.match(function.definition)

            # Functions outside the trigger's schema keep their schema in the rule id
            label = function.name if function.schema == trigger.schema else qualified
            counters: dict[str, int] = {}
            for match in matches_by_function[qualified]:
                counters[match.idiom] = counters.get(match.idiom, 0) + 1
                number = counters[match.idiom]
                rule_id = f"{trigger.table}:{label}:{match.idiom}:{number}"
                if rule_id in matches_by_rule:
                    # Same function attached by several triggers of one table
                    continue
                rules.append(
                    BusinessRule(
                        id=rule_id,
                        name=f"{label}_{match.idiom}_{number}",
                        type=match.rule_type,
                        table=trigger.table,
                        condition=match.condition,
                        action=match.action,
                        confidence=match.confidence,
                        source_pattern=match.source,
                        error_message=match.error_message,
                        auto_fix=match.auto_fix,
                        dependencies=tuple(
                            t for t in match.referenced_tables if t != trigger.table
                        ),
                        function_name=function.name,
                        trigger_name=trigger.name,
                    )
                )
                matches_by_rule[rule_id] = match
        return rules, matches_by_rule

    @staticmethod
    def _dependencies(
        rules: list[BusinessRule], matches: dict[str, RuleMatch]
    ) -> list[TableDependency]:
        dependencies: dict[tuple[str, str, str], TableDependency] = {}
        for rule in rules:
            match = matches[rule.id]
            required = rule.action == "require" or (match.idiom == EXISTS_GUARD and match.required)
            for table in rule.dependencies:
                dependency = TableDependency(
                    from_table=rule.table,
                    to_table=table,
                    relationship="required" if required else "conditional",
                    constraint_name=rule.trigger_name or rule.id,
                    condition=rule.condition,
                )
                dependencies.setdefault(
                    (dependency.from_table, dependency.to_table, dependency.constraint_name),
                    dependency,
                )
            # Rows created by the trigger come after the row that fired it
            for table in match.creates_rows_in:
                if table == rule.table:
                    continue
                dependency = TableDependency(
                    from_table=table,
                    to_table=rule.table,
                    relationship="optional",
                    constraint_name=rule.trigger_name or rule.id,
                    condition=rule.condition,
                )
                dependencies.setdefault(
                    (dependency.from_table, dependency.to_table, dependency.constraint_name),
                    dependency,
                )
        return list(dependencies.values())

    def _sanity_check(self, rules: list[BusinessRule], warnings: list[str]) -> list[BusinessRule]:
        """Halve confidence of rules whose auto-fix does not fit the schema."""
        snapshot = self.snapshot
        checked = []
        for rule in rules:
            fix = rule.auto_fix
            if fix is None or fix.kind != "set_field" or "field" not in fix.payload:
                checked.append(rule)
                continue

            table = fix.payload.get("table", rule.table)
            field_name = fix.payload["field"]
            problem = None
            if snapshot.has_table(table):
                column = snapshot.get_column(table, field_name)
                if column is None:
                    problem = f"column {table}.{field_name} does not exist"
                elif "value" in fix.payload and not _literal_fits(
                    fix.payload["value"], column.pg_type
                ):
                    problem = (
                        f"value {fix.payload['value']!r} does not fit "
                        f"{table}.{field_name} ({column.pg_type})"
                    )

            if problem is None:
                checked.append(rule)
                continue
            warnings.append(f"Rule {rule.id}: {problem}, confidence lowered")
            checked.append(replace(rule, confidence=round(rule.confidence * SANITY_PENALTY, 4)))
        return checked


def _literal_fits(value: object, pg_type: str) -> bool:
    """Check a literal against a boolean or numeric column type."""
    if value is None:
        return True
    pg_type = pg_type.lower()
    if pg_type in BOOLEAN_TYPES:
        return isinstance(value, bool)
    if pg_type in NUMERIC_TYPES:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    return True
