"""Domain classifier: which business vertical the schema resembles."""

from typing import Any

from seed_intel.detection.classifier import BaseClassifier
from seed_intel.detection.patterns import (
    ARCHITECTURE_DOMAIN_HINTS,
    BASELINE_DOMAIN,
    BUSINESS_LOGIC_SATURATION,
    COLUMN_SATURATION,
    DOMAIN_MATCH_WEIGHTS,
    DOMAINS,
    EXCLUSIVE_BOOST,
    GENERIC_BASE_SCORE,
    GENERIC_MAX_SCORE,
    GENERIC_TABLES,
    HYBRID_CAPABLE_DOMAINS,
    RELATIONSHIP_SATURATION,
    TABLE_SATURATION,
    UNHINTED_DOMAIN_DISCOUNT,
    DomainPattern,
    patterns_for,
)
from seed_intel.models import Evidence, RankedLabel, SchemaSnapshot
from seed_intel.scoring import clamp


class DomainClassifier(BaseClassifier):
    """
    Classify the content domain of a schema.

    Each domain has one or more DomainPatterns; a pattern is matched on four
    dimensions (tables, columns, relationships between pattern tables, and
    integrity rules touching pattern columns) and the best pattern gives
    the domain score. Generic is a baseline bounded to [0.3, 0.5].

    Pass ``architecture="team"`` (or another architecture label) to
    classify() to discount domains that architecture makes implausible.
    """

    kind = "domain"
    labels = DOMAINS
    baseline_label = BASELINE_DOMAIN

    def candidate_labels(
        self, snapshot: SchemaSnapshot, strategy: str, context: dict[str, Any]
    ) -> list[str]:
        if strategy != "fast":
            return list(DOMAINS)
        # Quick pass: only domains with at least one characteristic table
        hits = [
            domain
            for domain in DOMAINS
            if domain != BASELINE_DOMAIN
            and any(snapshot.find_tables(p.tables) for p in patterns_for(domain))
        ]
        return hits + [BASELINE_DOMAIN]

    def prepare_context(self, snapshot: SchemaSnapshot, context: dict[str, Any]) -> dict[str, Any]:
        architecture = context.get("architecture")
        context["hints"] = ARCHITECTURE_DOMAIN_HINTS.get(architecture) if architecture else None
        context["all_columns"] = {
            col.name for cols in snapshot.columns.values() for col in cols
        }
        return context

    def score_label(
        self, label: str, snapshot: SchemaSnapshot, context: dict[str, Any]
    ) -> tuple[float, list[Evidence]]:
        if "all_columns" not in context:
            context = self.prepare_context(snapshot, context)

        if label == BASELINE_DOMAIN:
            return self._score_generic(snapshot)

        patterns = patterns_for(label)
        if not patterns:
            raise ValueError(f"Unknown domain label: {label}")

        best = 0.0
        evidence: list[Evidence] = []
        for pattern in patterns:
            score, pattern_evidence = self._score_pattern(pattern, snapshot, context)
            evidence.extend(pattern_evidence)
            best = max(best, score)

        hints = context.get("hints")
        if hints is not None and label not in hints and best > 0:
            best *= UNHINTED_DOMAIN_DISCOUNT
            evidence.append(
                Evidence(
                    "counter",
                    f"Domain not typical for {context['architecture']} architecture",
                    1.0 - UNHINTED_DOMAIN_DISCOUNT,
                )
            )

        return clamp(best), evidence

    def extra_reasoning(
        self, primary: str, secondary: list[RankedLabel], context: dict[str, Any]
    ) -> list[str]:
        lines = []
        if context.get("architecture"):
            lines.append(f"Architecture hint: {context['architecture']}")
        if secondary and primary in HYBRID_CAPABLE_DOMAINS:
            others = ", ".join(s.label for s in secondary)
            lines.append(f"Hybrid capabilities: '{primary}' platform also serves {others}")
        return lines

    def _score_pattern(
        self, pattern: DomainPattern, snapshot: SchemaSnapshot, context: dict[str, Any]
    ) -> tuple[float, list[Evidence]]:
        tables = snapshot.find_tables(pattern.tables)
        columns = sorted(context["all_columns"] & pattern.columns)
        relationships = [
            r
            for r in snapshot.relationships
            if r.from_table in pattern.tables and r.to_table in pattern.tables
        ]
        rules = [
            rule
            for rule in snapshot.integrity_rules
            if any(col in pattern.columns for col in rule.columns)
            or any(col in rule.condition for col in pattern.columns)
        ]

        dimensions = {
            "table": (len(tables), TABLE_SATURATION, "structural", f"tables {', '.join(tables)}"),
            "column": (len(columns), COLUMN_SATURATION, "column", f"columns {', '.join(columns)}"),
            "relationship": (
                len(relationships),
                RELATIONSHIP_SATURATION,
                "relationship",
                f"{len(relationships)} relationships",
            ),
            "business_logic": (
                len(rules),
                BUSINESS_LOGIC_SATURATION,
                "constraint",
                f"{len(rules)} constraints",
            ),
        }

        match = 0.0
        evidence = []
        for dimension, (hits, saturation, evidence_type, description) in dimensions.items():
            if not hits:
                continue
            ratio = min(1.0, hits / saturation)
            match += DOMAIN_MATCH_WEIGHTS[dimension] * ratio
            evidence.append(
                Evidence(
                    evidence_type,
                    f"{pattern.id}: {description}",
                    ratio,
                    DOMAIN_MATCH_WEIGHTS[dimension],
                )
            )

        score = match * pattern.weight
        if pattern.exclusive and score > 0.5:
            score *= EXCLUSIVE_BOOST
        return clamp(score), evidence

    def _score_generic(self, snapshot: SchemaSnapshot) -> tuple[float, list[Evidence]]:
        tables = snapshot.find_tables(GENERIC_TABLES)
        ratio = min(1.0, len(tables) / TABLE_SATURATION)
        score = GENERIC_BASE_SCORE + (GENERIC_MAX_SCORE - GENERIC_BASE_SCORE) * ratio
        evidence = [
            Evidence("structural", "Baseline for any relational schema", GENERIC_BASE_SCORE)
        ]
        if tables:
            evidence.append(
                Evidence("structural", f"Common tables: {', '.join(tables)}", ratio)
            )
        return score, evidence
