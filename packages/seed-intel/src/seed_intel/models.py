"""Data models and type definitions."""

from dataclasses import dataclass, field
from typing import Any, Literal

from seed_intel.scoring import rolling_hash

EvidenceType = Literal["structural", "relationship", "column", "constraint", "counter"]
ConfidenceLevel = Literal["very_low", "low", "medium", "high", "very_high"]
Strategy = Literal["comprehensive", "fast", "conservative", "aggressive"]
ConstraintType = Literal["check", "foreign_key", "unique", "primary_key", "not_null"]
ConflictType = Literal["architecture_mismatch", "framework_mismatch", "schema_inconsistency"]
Severity = Literal["low", "medium", "high"]
RuleType = Literal["validation", "transformation", "dependency", "business_logic"]
RuleAction = Literal["allow", "deny", "modify", "require"]
AutoFixKind = Literal["set_field", "create_dependency", "skip_operation", "modify_workflow"]
DependencyKind = Literal["required", "optional", "conditional"]
FixKind = Literal[
    "set_field", "remove_field", "transform_value", "add_dependency", "bypass_constraint"
]


# Schema snapshot (supplied by the schema introspector)


@dataclass(frozen=True)
class ColumnInfo:
    """
    Column metadata from database introspection.

    Attributes:
        name: Column name
        pg_type: PostgreSQL data type
        is_nullable: Whether column allows NULL values
    """

    name: str
    pg_type: str = "text"
    is_nullable: bool = True


@dataclass(frozen=True)
class Relationship:
    """
    Foreign key relationship between two tables.

    Attributes:
        from_table: Referencing table
        to_table: Referenced (parent) table
        column: Referencing column in from_table
        kind: Relationship cardinality (e.g. "many_to_one")
        referenced_column: Column in the parent table (usually the PK)
    """

    from_table: str
    to_table: str
    column: str
    kind: str = "many_to_one"
    referenced_column: str = "id"


@dataclass(frozen=True)
class IntegrityRule:
    """
    Normalized integrity constraint (CHECK, FK, UNIQUE, PK, NOT NULL).

    Attributes:
        table: Table the constraint belongs to
        name: Constraint name (column name for NOT NULL)
        condition: SQL-ish condition (check clause, column list, ...)
        constraint_type: One of check, foreign_key, unique, primary_key, not_null
        columns: Columns covered by the constraint
        referenced_table: Parent table for foreign keys
        referenced_column: Parent column for foreign keys
        on_delete: Referential action for foreign keys
    """

    table: str
    name: str
    condition: str = ""
    constraint_type: ConstraintType = "check"
    columns: tuple[str, ...] = ()
    referenced_table: str | None = None
    referenced_column: str | None = None
    on_delete: str | None = None


@dataclass(frozen=True)
class SchemaSnapshot:
    """
    Read-only schema metadata for one detection run.

    Attributes:
        tables: Table names
        columns: Columns per table
        relationships: Foreign key relationships
        integrity_rules: Normalized integrity constraints
        confidence: How complete the introspection was (1.0 = full)
    """

    tables: tuple[str, ...] = ()
    columns: dict[str, tuple[ColumnInfo, ...]] = field(default_factory=dict)
    relationships: tuple[Relationship, ...] = ()
    integrity_rules: tuple[IntegrityRule, ...] = ()
    confidence: float = 1.0

    @classmethod
    def build(
        cls,
        tables: dict[str, list[str | ColumnInfo]],
        relationships: list[Relationship] | None = None,
        integrity_rules: list[IntegrityRule] | None = None,
        confidence: float = 1.0,
    ) -> "SchemaSnapshot":
        """
        Build a snapshot from a {table: [column, ...]} mapping.

        Plain strings are turned into text columns.

        Example:
            >>> snapshot = SchemaSnapshot.build({"teams": ["id", "name"]})
            >>> snapshot.has_column("teams", "name")
            True
        """
        columns = {
            table: tuple(c if isinstance(c, ColumnInfo) else ColumnInfo(name=c) for c in cols)
            for table, cols in tables.items()
        }
        return cls(
            tables=tuple(tables),
            columns=columns,
            relationships=tuple(relationships or ()),
            integrity_rules=tuple(integrity_rules or ()),
            confidence=confidence,
        )

    def has_table(self, table: str) -> bool:
        """Check if table exists in snapshot."""
        return table in self.tables

    def column_names(self, table: str) -> list[str]:
        """Get column names of a table (empty if unknown)."""
        return [c.name for c in self.columns.get(table, ())]

    def get_column(self, table: str, column: str) -> ColumnInfo | None:
        """Get column metadata, or None if the column does not exist."""
        for col in self.columns.get(table, ()):
            if col.name == column:
                return col
        return None

    def has_column(self, table: str, column: str) -> bool:
        """Check if table has a column."""
        return self.get_column(table, column) is not None

    def find_tables(self, names: set[str] | frozenset[str]) -> list[str]:
        """Get snapshot tables whose name is in names (sorted)."""
        return sorted(t for t in self.tables if t in names)

    def tables_with_column(self, names: set[str] | frozenset[str]) -> list[str]:
        """Get tables having at least one column whose name is in names (sorted)."""
        return sorted(
            table
            for table, cols in self.columns.items()
            if any(c.name in names for c in cols)
        )

    def fingerprint(self) -> str:
        """
        Cheap schema fingerprint for cache invalidation.

        Rolling hash over sorted table names plus relationship and
        integrity rule counts. Not cryptographic.
        """
        text = ",".join(sorted(self.tables))
        text += f"|{len(self.relationships)}|{len(self.integrity_rules)}"
        return rolling_hash(text)


# Classification


@dataclass(frozen=True)
class Evidence:
    """
    A single weighted, confidence-scored observation.

    Attributes:
        type: Kind of observation (structural, relationship, column, constraint, counter)
        description: Human-readable description
        confidence: Strength of the observation in [0, 1]
        weight: Relative importance (> 0)
    """

    type: EvidenceType
    description: str
    confidence: float
    weight: float = 1.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Evidence confidence must be in [0, 1], got {self.confidence}")
        if self.weight <= 0:
            raise ValueError(f"Evidence weight must be > 0, got {self.weight}")


@dataclass(frozen=True)
class RankedLabel:
    """Label with its confidence."""

    label: str
    confidence: float


@dataclass(frozen=True)
class ClassificationResult:
    """
    Architecture or domain classification.

    Attributes:
        kind: "architecture" or "domain"
        primary: Winning label
        confidence: Final (strategy-adjusted) confidence in [0, 1]
        confidence_level: Band of confidence
        secondary: Runner-up labels, descending, all below confidence
        evidence: Evidence supporting the primary label
        hybrid_flag: Whether two or more candidates cleared the moderate threshold
        reasoning: Human-readable reasoning steps
        warnings: Non-fatal observations
        errors: Failure reasons (fallback results only)
        strategy: Strategy used
        scores: Raw score per evaluated label
        manual_override: Whether scoring was bypassed
    """

    kind: str
    primary: str
    confidence: float
    confidence_level: ConfidenceLevel
    secondary: list[RankedLabel] = field(default_factory=list)
    evidence: list[Evidence] = field(default_factory=list)
    hybrid_flag: bool = False
    reasoning: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    strategy: str = "comprehensive"
    scores: dict[str, float] = field(default_factory=dict)
    manual_override: bool = False

    @property
    def is_fallback(self) -> bool:
        """Check if this is a degraded result produced after a failure."""
        return bool(self.errors)


@dataclass(frozen=True)
class FrameworkDetectionResult:
    """
    Framework detector verdict (external collaborator output).

    Attributes:
        name: Framework name (e.g. "makerkit"), None if nothing matched
        detected: Whether the framework was recognized
        confidence: Detector confidence in [0, 1]
        version: Detected framework version
        supports_teams: Whether the framework supports team/organization accounts
        features: Detected feature names
    """

    name: str | None = None
    detected: bool = False
    confidence: float = 0.0
    version: str | None = None
    supports_teams: bool = False
    features: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CrossValidation:
    """Pairwise agreement scores between subsystems."""

    architecture_framework: float
    schema_architecture: float
    domain_architecture: float
    notes: list[str] = field(default_factory=list)

    @property
    def overall_agreement(self) -> float:
        """Arithmetic mean of the three sub-scores."""
        return (
            self.architecture_framework + self.schema_architecture + self.domain_architecture
        ) / 3


@dataclass(frozen=True)
class DetectionConflict:
    """
    Disagreement between two or more subsystems.

    Attributes:
        type: architecture_mismatch, framework_mismatch or schema_inconsistency
        description: What disagrees
        severity: low, medium or high
        suggested_resolution: Remediation text
        involved_systems: Subsystems involved
    """

    type: ConflictType
    description: str
    severity: Severity
    suggested_resolution: str
    involved_systems: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class IntegrationSummary:
    """Integration block of a unified detection result."""

    overall_confidence: float
    cross_validation: CrossValidation
    conflicts: list[DetectionConflict] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    performance: dict[str, float] = field(default_factory=dict)
    schema_complexity: float = 0.0
    cache_hit: bool = False


@dataclass(frozen=True)
class UnifiedDetectionResult:
    """Combined schema, framework, architecture and domain verdict."""

    schema: SchemaSnapshot
    framework: FrameworkDetectionResult
    architecture: ClassificationResult
    domain: ClassificationResult
    integration: IntegrationSummary
    schema_fingerprint: str = ""
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


# Constraint discovery


@dataclass(frozen=True)
class AutoFixSuggestion:
    """
    Suggested correction that would make a row satisfy a business rule.

    Attributes:
        kind: set_field, create_dependency, skip_operation or modify_workflow
        payload: Action details (e.g. {"field": "x", "value": True})
        confidence: Confidence in [0, 1]
    """

    kind: AutoFixKind
    payload: dict[str, Any]
    confidence: float


@dataclass(frozen=True)
class BusinessRule:
    """
    Business rule inferred from trigger/function text.

    Attributes:
        id: Deterministic rule id
        name: Rule name
        type: validation, transformation, dependency or business_logic
        table: Table the rule applies to
        condition: Textual predicate
        action: allow, deny, modify or require
        error_message: Message raised by the function, if any
        auto_fix: Suggested correction, if any
        confidence: Extraction confidence in [0, 1]
        source_pattern: Raw matched source text
        dependencies: Other tables the rule refers to (never includes table)
        function_name: Function the rule was extracted from
        trigger_name: Trigger that fires the function
    """

    id: str
    name: str
    type: RuleType
    table: str
    condition: str
    action: RuleAction
    confidence: float
    source_pattern: str
    error_message: str | None = None
    auto_fix: AutoFixSuggestion | None = None
    dependencies: tuple[str, ...] = ()
    function_name: str | None = None
    trigger_name: str | None = None


@dataclass(frozen=True)
class TriggerDescriptor:
    """Raw trigger catalog metadata."""

    name: str
    table: str
    function_name: str
    schema: str = "public"
    timing: str = "BEFORE"
    events: tuple[str, ...] = ()
    level: str = "ROW"
    function_schema: str | None = None
    enabled: bool = True
    definition: str | None = None


@dataclass(frozen=True)
class FunctionDescriptor:
    """Raw function catalog metadata with its full definition text."""

    name: str
    definition: str
    schema: str = "public"
    language: str = "plpgsql"
    return_type: str = "trigger"
    arguments: str = ""
    volatility: str = "volatile"


@dataclass(frozen=True)
class TableDependency:
    """
    "from_table needs to_table" edge.

    Attributes:
        from_table: Dependent table
        to_table: Table that must be populated first
        relationship: required, optional or conditional
        condition: Condition under which the dependency applies
        constraint_name: Trigger or rule name that introduced the edge
    """

    from_table: str
    to_table: str
    relationship: DependencyKind
    constraint_name: str
    condition: str | None = None


@dataclass
class TableConstraintSet:
    """Business rules and triggers discovered for one table."""

    table: str
    rules: list[BusinessRule] = field(default_factory=list)
    triggers: list[str] = field(default_factory=list)


@dataclass
class ConstraintDiscoveryResult:
    """
    Output of one discovery run.

    Attributes:
        tables: Constraint set per requested table
        rules: All extracted rules in deterministic order
        dependencies: Flat dependency list
        graph: Dependency graph built from dependencies
        triggers: Discovered triggers
        functions: Loaded functions keyed by "schema.name"
        confidence: Mean rule confidence (0 if no rules)
        warnings: Non-fatal issues (dropped functions, fallbacks, deadline)
        errors: Upstream failures that emptied part of the result
        cache_hit: Whether the result came from the cache
        execution_time: Seconds spent
        fallback_used: Whether the fallback trigger catalog was used
    """

    tables: dict[str, TableConstraintSet]
    rules: list[BusinessRule]
    dependencies: list[TableDependency]
    graph: Any
    triggers: list[TriggerDescriptor] = field(default_factory=list)
    functions: dict[str, FunctionDescriptor] = field(default_factory=dict)
    confidence: float = 0.0
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    cache_hit: bool = False
    execution_time: float = 0.0
    fallback_used: bool = False

    def rules_for(self, table: str) -> list[BusinessRule]:
        """Get rules for a table."""
        constraint_set = self.tables.get(table)
        return list(constraint_set.rules) if constraint_set else []


# Constraint handling


@dataclass(frozen=True)
class ConstraintFix:
    """
    Applied field-level fix.

    Attributes:
        kind: set_field, remove_field, transform_value, add_dependency, bypass_constraint
        field: Field changed
        old_value: Value before the fix
        new_value: Value after the fix
        reason: Human-readable reason
        confidence: Confidence in [0, 1]
        requires_manual_review: Whether a human should double check
    """

    kind: FixKind
    reason: str
    confidence: float
    field: str | None = None
    old_value: Any = None
    new_value: Any = None
    requires_manual_review: bool = False


@dataclass
class ConstraintHandlingResult:
    """Outcome of running a row through a constraint handler."""

    success: bool
    original_row: dict[str, Any]
    modified_row: dict[str, Any]
    applied_fixes: list[ConstraintFix] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    bypass_required: bool = False
    handler_id: str | None = None
