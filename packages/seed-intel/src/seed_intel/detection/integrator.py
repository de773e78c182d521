"""Detection integrator: unified, cross-validated schema verdict.

Runs schema introspection, framework detection, architecture and domain
classification in sequence, cross-validates the results pairwise, pattern
matches known conflicts and produces one weighted-confidence verdict.

Example:
    >>> integrator = DetectionIntegrator(StaticSchemaSource(snapshot))
    >>> result = integrator.detect()
    >>> result.architecture.primary
    'team'
"""

import logging
import time
from collections.abc import Callable
from dataclasses import replace
from typing import Any, TypeVar

from seed_intel.cache import TTLCache
from seed_intel.config import DetectionConfig
from seed_intel.detection.architecture import ArchitectureClassifier
from seed_intel.detection.domain import DomainClassifier
from seed_intel.detection.framework import FrameworkDetector, MakerKitDetector
from seed_intel.detection.patterns import (
    MEMBERSHIP_TABLES,
    PERSONAL_ACCOUNT_COLUMNS,
    PERSONAL_CONTENT_TABLES,
    RELATIONSHIP_RANGES,
    TEAM_TABLES,
    USER_TABLES,
    domain_alignment,
)
from seed_intel.introspection import SchemaSource
from seed_intel.models import (
    ClassificationResult,
    CrossValidation,
    DetectionConflict,
    FrameworkDetectionResult,
    IntegrationSummary,
    SchemaSnapshot,
    UnifiedDetectionResult,
)
from seed_intel.scoring import (
    NEUTRAL_AGREEMENT,
    THRESHOLD_MODERATE,
    THRESHOLD_STRONG,
    THRESHOLD_WEAK,
    mean,
    schema_complexity,
    weighted_confidence,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ARCHITECTURE_RECOMMENDATIONS = {
    "individual": "Seed mostly personal accounts with user-owned content",
    "team": "Seed organizations with owners, members and pending invitations",
    "hybrid": "Mix personal accounts with team accounts and their memberships",
}

DOMAIN_RECOMMENDATIONS = {
    "outdoor": "Generate gear, setups and trip content",
    "saas": "Generate subscriptions and workspace data per team",
    "ecommerce": "Generate products, inventory and orders",
    "social": "Generate follows, posts and interactions between users",
    "generic": "Generate generic user profiles and settings",
}


class DetectionIntegrator:
    """
    Combine schema, framework, architecture and domain detection.

    Any failing stage is replaced by a degraded result so that one broken
    sub-detector never fails the whole run. Results are cached by
    (database URL, schema fingerprint, config fingerprint).

    Args:
        schema_source: Supplies the schema snapshot
        framework_detector: Framework detector (defaults to MakerKitDetector)
        config: Detection configuration
        cache: Result cache (created from config when omitted and caching is on)
        database_url: Database URL used in the cache key
        architecture_classifier: Architecture classifier (built from config when omitted)
        domain_classifier: Domain classifier (built from config when omitted)
        clock: Monotonic clock used for timings and the deadline
    """

    def __init__(
        self,
        schema_source: SchemaSource,
        framework_detector: FrameworkDetector | None = None,
        config: DetectionConfig | None = None,
        cache: TTLCache | None = None,
        database_url: str = "",
        architecture_classifier: ArchitectureClassifier | None = None,
        domain_classifier: DomainClassifier | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.config = config or DetectionConfig()
        self.schema_source = schema_source
        self.framework_detector = framework_detector or MakerKitDetector()
        self.database_url = database_url
        self.architecture_classifier = architecture_classifier or ArchitectureClassifier(
            strategy=self.config.architecture_strategy,
            detect_secondary=self.config.detect_secondary,
            manual_override=self.config.manual_architecture,
        )
        self.domain_classifier = domain_classifier or DomainClassifier(
            strategy=self.config.domain_strategy,
            detect_secondary=self.config.detect_secondary,
            manual_override=self.config.manual_domain,
        )
        if cache is None and self.config.enable_caching:
            cache = TTLCache(ttl_seconds=self.config.cache_ttl_seconds)
        self.cache = cache
        self._clock = clock

    def detect(self) -> UnifiedDetectionResult:
        """
        Run the full detection pipeline.

        Returns:
            UnifiedDetectionResult (from cache when the schema is unchanged)
        """
        started = self._clock()
        budget = self.config.max_execution_time
        deadline = started + budget if budget > 0 else None
        performance: dict[str, float] = {}
        warnings: list[str] = []
        errors: list[str] = []

        def stage(name: str, run: Callable[[], T], degraded: Callable[[str], T]) -> T:
            if deadline is not None and self._clock() >= deadline:
                message = f"Skipped {name} stage: time budget of {budget}s exhausted"
                logger.warning(message)
                warnings.append(message)
                performance[name] = 0.0
                return degraded("time budget exhausted")
            stage_start = self._clock()
            try:
                return run()
            except Exception as e:
                logger.warning(f"{name.capitalize()} stage failed, using degraded result: {e}")
                errors.append(f"{name}: {e}")
                return degraded(str(e))
            finally:
                performance.setdefault(name, self._clock() - stage_start)

        snapshot = stage(
            "schema",
            self.schema_source.load_snapshot,
            lambda reason: SchemaSnapshot(confidence=0.0),
        )
        fingerprint = snapshot.fingerprint()
        cache_key = (self.database_url, fingerprint, self.config.fingerprint())

        if self.cache is not None and not errors:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Detection cache hit for schema {fingerprint}")
                return replace(cached, integration=replace(cached.integration, cache_hit=True))

        framework = stage(
            "framework",
            lambda: self.framework_detector.detect(snapshot),
            lambda reason: FrameworkDetectionResult(),
        )
        architecture = stage(
            "architecture",
            lambda: self.architecture_classifier.classify(snapshot),
            self.architecture_classifier.fallback_result,
        )
        domain = stage(
            "domain",
            lambda: self.domain_classifier.classify(snapshot, architecture=architecture.primary),
            self.domain_classifier.fallback_result,
        )

        integration_start = self._clock()
        cross_validation = cross_validate(snapshot, framework, architecture, domain)
        conflicts = detect_conflicts(snapshot, framework, architecture, domain)
        overall = weighted_confidence(
            {
                "schema": snapshot.confidence,
                "framework": framework.confidence,
                "architecture": architecture.confidence,
                "domain": domain.confidence,
                "cross_validation": cross_validation.overall_agreement,
            }
        )
        recommendations = generate_recommendations(architecture, domain, conflicts, overall)
        performance["integration"] = self._clock() - integration_start
        performance["total"] = self._clock() - started

        warnings.extend(architecture.warnings)
        warnings.extend(domain.warnings)
        for label, classification in (("architecture", architecture), ("domain", domain)):
            for error in classification.errors:
                message = f"{label}: {error}"
                if message not in errors:
                    errors.append(message)

        result = UnifiedDetectionResult(
            schema=snapshot,
            framework=framework,
            architecture=architecture,
            domain=domain,
            integration=IntegrationSummary(
                overall_confidence=overall,
                cross_validation=cross_validation,
                conflicts=conflicts,
                recommendations=recommendations,
                performance=performance,
                schema_complexity=schema_complexity(snapshot),
            ),
            schema_fingerprint=fingerprint,
            warnings=warnings,
            errors=errors,
        )

        logger.info(
            f"Detected {architecture.primary} architecture ({architecture.confidence:.2f}), "
            f"{domain.primary} domain ({domain.confidence:.2f}), "
            f"{len(conflicts)} conflicts, overall {overall:.2f}"
        )

        if self.cache is not None and not errors:
            self.cache.put(cache_key, result)
        return result

    def clear_cache(self) -> None:
        """Drop every cached detection result."""
        if self.cache is not None:
            self.cache.clear()


def _team_tables(snapshot: SchemaSnapshot) -> list[str]:
    return snapshot.find_tables(TEAM_TABLES | MEMBERSHIP_TABLES)


def cross_validate(
    snapshot: SchemaSnapshot,
    framework: FrameworkDetectionResult,
    architecture: ClassificationResult,
    domain: ClassificationResult,
) -> CrossValidation:
    """
    Score pairwise agreement between subsystems.

    Each sub-score is the mean of its applicable rules, or 0.5 when no rule
    applies.

    Returns:
        CrossValidation with architecture↔framework, schema↔architecture
        and domain↔architecture scores
    """
    notes: list[str] = []
    arch = architecture.primary

    framework_scores = []
    if framework.detected and framework.confidence >= THRESHOLD_WEAK:
        if framework.supports_teams:
            framework_scores.append(0.9 if arch in ("team", "hybrid") else 0.3)
            notes.append(f"{framework.name} supports team accounts")
        else:
            framework_scores.append(0.8 if arch == "individual" else 0.5)
        if framework.version == "v2":
            # v2 schemas carry personal and team accounts side by side
            framework_scores.append(0.9 if arch == "hybrid" else 0.6)
    else:
        notes.append("No framework detected; framework agreement is neutral")

    schema_scores = []
    if snapshot.tables:
        user_tables = snapshot.find_tables(USER_TABLES)
        team_tables = _team_tables(snapshot)
        content_tables = snapshot.find_tables(PERSONAL_CONTENT_TABLES)
        personal_flag = snapshot.tables_with_column(PERSONAL_ACCOUNT_COLUMNS)
        if arch == "individual":
            schema_scores.append(0.8 if len(user_tables) == 1 and content_tables else 0.4)
        elif arch == "team":
            schema_scores.append(0.9 if team_tables else 0.3)
        elif arch == "hybrid":
            schema_scores.append(0.9 if personal_flag and team_tables else 0.5)
        if snapshot.relationships and arch in RELATIONSHIP_RANGES:
            low, high = RELATIONSHIP_RANGES[arch]
            count = len(snapshot.relationships)
            in_range = low <= count <= high
            schema_scores.append(0.8 if in_range else 0.5)
            if not in_range:
                notes.append(f"{count} relationships outside typical {arch} range {low}-{high}")

    domain_scores = [domain_alignment(domain.primary, arch)]
    domain_scores.append(0.8 if abs(domain.confidence - architecture.confidence) < 0.2 else 0.6)
    if domain.hybrid_flag and arch == "hybrid":
        domain_scores.append(0.8)

    return CrossValidation(
        architecture_framework=mean(framework_scores, NEUTRAL_AGREEMENT),
        schema_architecture=mean(schema_scores, NEUTRAL_AGREEMENT),
        domain_architecture=mean(domain_scores, NEUTRAL_AGREEMENT),
        notes=notes,
    )


def detect_conflicts(
    snapshot: SchemaSnapshot,
    framework: FrameworkDetectionResult,
    architecture: ClassificationResult,
    domain: ClassificationResult,
) -> list[DetectionConflict]:
    """
    Apply the fixed conflict comparators.

    Conflicts are pattern matched, never inferred: each comparator carries
    its own severity and remediation.
    """
    conflicts = []
    arch, arch_conf = architecture.primary, architecture.confidence
    team_tables = _team_tables(snapshot)

    if (
        framework.detected
        and framework.supports_teams
        and framework.confidence > THRESHOLD_STRONG
        and arch == "individual"
        and arch_conf > THRESHOLD_STRONG
    ):
        conflicts.append(
            DetectionConflict(
                type="architecture_mismatch",
                description=(
                    f"{framework.name} supports team accounts but the schema "
                    f"looks individual-only"
                ),
                severity="medium",
                suggested_resolution=(
                    "Set detection.manual_architecture to 'hybrid' or 'team' "
                    "if the platform uses team accounts"
                ),
                involved_systems=["framework", "architecture"],
            )
        )

    if team_tables and arch == "individual":
        conflicts.append(
            DetectionConflict(
                type="schema_inconsistency",
                description=(
                    f"Team tables present ({', '.join(team_tables)}) "
                    f"but architecture detected as individual"
                ),
                severity="high",
                suggested_resolution=(
                    "Review team tables and consider a team or hybrid architecture"
                ),
                involved_systems=["schema", "architecture"],
            )
        )

    if (
        domain.primary == "outdoor"
        and domain.confidence > THRESHOLD_STRONG
        and arch == "team"
        and arch_conf > THRESHOLD_STRONG
    ):
        conflicts.append(
            DetectionConflict(
                type="architecture_mismatch",
                description="Outdoor platforms are usually individual-focused, not team-based",
                severity="medium",
                suggested_resolution="Verify the outdoor domain or switch to a hybrid architecture",
                involved_systems=["domain", "architecture"],
            )
        )

    if domain.primary == "saas" and domain.confidence > THRESHOLD_STRONG and not team_tables:
        conflicts.append(
            DetectionConflict(
                type="schema_inconsistency",
                description="SaaS domain detected but no team or organization tables exist",
                severity="medium",
                suggested_resolution="Verify the SaaS domain or add team/organization tables",
                involved_systems=["domain", "schema"],
            )
        )

    confidences = (snapshot.confidence, framework.confidence, arch_conf, domain.confidence)
    if all(value < THRESHOLD_MODERATE for value in confidences):
        conflicts.append(
            DetectionConflict(
                type="framework_mismatch",
                description="All detection systems report low confidence",
                severity="high",
                suggested_resolution=(
                    "Use manual overrides (detection.manual_architecture, "
                    "detection.manual_domain) for this schema"
                ),
                involved_systems=["schema", "framework", "architecture", "domain"],
            )
        )

    return conflicts


def generate_recommendations(
    architecture: ClassificationResult,
    domain: ClassificationResult,
    conflicts: list[DetectionConflict],
    overall_confidence: float,
) -> list[str]:
    """Consolidate recommendations, deduplicated in first-seen order."""
    recommendations: list[Any] = [c.suggested_resolution for c in conflicts]
    recommendations.append(ARCHITECTURE_RECOMMENDATIONS.get(architecture.primary))
    recommendations.append(DOMAIN_RECOMMENDATIONS.get(domain.primary))
    for secondary in domain.secondary:
        recommendations.append(DOMAIN_RECOMMENDATIONS.get(secondary.label))
    if overall_confidence < THRESHOLD_MODERATE:
        recommendations.append(
            "Detection confidence is low; consider manual architecture and domain overrides"
        )
    return list(dict.fromkeys(r for r in recommendations if r))
