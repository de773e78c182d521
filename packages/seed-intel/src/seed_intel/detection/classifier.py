"""Base class for strategy-driven schema classifiers."""

import logging
from abc import ABC, abstractmethod
from typing import Any

from seed_intel.exceptions import ClassificationError
from seed_intel.models import ClassificationResult, Evidence, RankedLabel, SchemaSnapshot
from seed_intel.scoring import (
    CLOSE_COMPETITION_GAP,
    FALLBACK_CONFIDENCE,
    MAX_SECONDARY,
    OVERRIDE_CONFIDENCE,
    STRATEGIES,
    THRESHOLD_MODERATE,
    THRESHOLD_STRONG,
    apply_strategy,
    confidence_level,
)

logger = logging.getLogger(__name__)


class BaseClassifier(ABC):
    """
    Score a schema snapshot against a fixed set of labels.

    Subclasses define the label vocabulary and how one label is scored;
    this class owns the shared flow: manual override, strategy selection,
    ranking, strategy adjustment, secondary labels, hybrid flag, warnings
    and the fallback result on failure.

    Args:
        strategy: Default strategy (comprehensive, fast, conservative, aggressive)
        detect_secondary: Whether to report secondary labels
        manual_override: Label that bypasses scoring entirely
    """

    kind: str = ""
    labels: tuple[str, ...] = ()
    baseline_label: str = ""

    def __init__(
        self,
        strategy: str = "comprehensive",
        detect_secondary: bool = True,
        manual_override: str | None = None,
    ) -> None:
        self._check_strategy(strategy)
        self.strategy = strategy
        self.detect_secondary = detect_secondary
        self.manual_override = manual_override

    @abstractmethod
    def candidate_labels(
        self, snapshot: SchemaSnapshot, strategy: str, context: dict[str, Any]
    ) -> list[str]:
        """Labels to score for this strategy."""

    @abstractmethod
    def score_label(
        self, label: str, snapshot: SchemaSnapshot, context: dict[str, Any]
    ) -> tuple[float, list[Evidence]]:
        """
        Score one label.

        Returns:
            (score in [0, 1], evidence supporting or countering the label)
        """

    def prepare_context(self, snapshot: SchemaSnapshot, context: dict[str, Any]) -> dict[str, Any]:
        """Precompute facts shared by all labels (hook)."""
        return context

    def extra_reasoning(
        self, primary: str, secondary: list[RankedLabel], context: dict[str, Any]
    ) -> list[str]:
        """Additional reasoning lines for the final result (hook)."""
        return []

    def classify(
        self,
        snapshot: SchemaSnapshot,
        strategy: str | None = None,
        manual_override: str | None = None,
        **context: Any,
    ) -> ClassificationResult:
        """
        Classify a schema snapshot.

        Never raises on scoring failures: an unexpected error produces a
        low-confidence fallback result carrying the error text.

        Args:
            snapshot: Schema snapshot
            strategy: Strategy for this call (defaults to the instance strategy)
            manual_override: Label that bypasses scoring (defaults to the instance override)
            **context: Classifier-specific hints

        Returns:
            ClassificationResult

        Raises:
            ValueError: If strategy is unknown
            ClassificationError: If the override label is unknown
        """
        strategy = strategy or self.strategy
        self._check_strategy(strategy)

        override = manual_override or self.manual_override
        if override is not None:
            if override not in self.labels:
                raise ClassificationError(
                    self.kind,
                    f"unknown {self.kind} label '{override}' "
                    f"(available: {', '.join(self.labels)})",
                )
            return self._override_result(override, strategy)

        try:
            return self._classify(snapshot, strategy, dict(context))
        except Exception as e:
            logger.exception(f"{self.kind.capitalize()} classification failed: {e}")
            return self.fallback_result(str(e), strategy)

    def fallback_result(self, reason: str, strategy: str | None = None) -> ClassificationResult:
        """Low-confidence baseline result used when classification fails."""
        return ClassificationResult(
            kind=self.kind,
            primary=self.baseline_label,
            confidence=FALLBACK_CONFIDENCE,
            confidence_level=confidence_level(FALLBACK_CONFIDENCE),
            reasoning=["detection failed"],
            errors=[reason],
            strategy=strategy or self.strategy,
        )

    def _override_result(self, label: str, strategy: str) -> ClassificationResult:
        logger.info(f"Manual {self.kind} override: {label}")
        return ClassificationResult(
            kind=self.kind,
            primary=label,
            confidence=OVERRIDE_CONFIDENCE,
            confidence_level=confidence_level(OVERRIDE_CONFIDENCE),
            reasoning=[f"Manual override to '{label}': automatic detection bypassed"],
            strategy=strategy,
            manual_override=True,
        )

    def _classify(
        self, snapshot: SchemaSnapshot, strategy: str, context: dict[str, Any]
    ) -> ClassificationResult:
        context = self.prepare_context(snapshot, context)
        labels = self.candidate_labels(snapshot, strategy, context)
        if not labels:
            raise ValueError(f"No {self.kind} candidates to score")

        scored = {label: self.score_label(label, snapshot, context) for label in labels}
        scores = {label: score for label, (score, _) in scored.items()}
        ranked = sorted(labels, key=lambda label: (-scores[label], self.labels.index(label)))
        top = ranked[0]
        top_score = scores[top]

        reasoning = [
            f"Scored {len(labels)} {self.kind} candidates with {strategy} strategy",
            f"Top candidate '{top}' scored {top_score:.2f}",
        ]

        primary = top
        if top_score <= 0:
            primary = self.baseline_label
            reasoning.append(f"No {self.kind} evidence found, using baseline '{primary}'")

        baseline_score = scores.get(self.baseline_label)
        if baseline_score is None:
            baseline_score, baseline_evidence = self.score_label(
                self.baseline_label, snapshot, context
            )
            scored[self.baseline_label] = (baseline_score, baseline_evidence)
            scores[self.baseline_label] = baseline_score

        if strategy == "conservative" and top_score < THRESHOLD_STRONG:
            primary = self.baseline_label
            reasoning.append(
                f"Top score below strong threshold ({THRESHOLD_STRONG}), "
                f"using baseline '{primary}'"
            )

        confidence = apply_strategy(top_score, strategy, baseline_score)
        reasoning.append(f"Final confidence {confidence:.2f} after {strategy} adjustment")

        secondary: list[RankedLabel] = []
        if self.detect_secondary:
            secondary = [
                RankedLabel(label=label, confidence=scores[label])
                for label in ranked
                if label != primary
                and THRESHOLD_MODERATE < scores[label] < confidence
            ][:MAX_SECONDARY]

        hybrid_flag = sum(1 for label in labels if scores[label] > THRESHOLD_MODERATE) >= 2
        if hybrid_flag:
            reasoning.append("Multiple candidates above moderate threshold")

        warnings = []
        if len(ranked) > 1 and top_score > 0:
            runner_up = ranked[1]
            if top_score - scores[runner_up] < CLOSE_COMPETITION_GAP:
                warnings.append(
                    f"Close competition between '{top}' ({top_score:.2f}) "
                    f"and '{runner_up}' ({scores[runner_up]:.2f})"
                )
        if top_score < THRESHOLD_STRONG:
            warnings.append(f"No {self.kind} candidate above strong threshold ({THRESHOLD_STRONG})")

        reasoning.extend(self.extra_reasoning(primary, secondary, context))

        return ClassificationResult(
            kind=self.kind,
            primary=primary,
            confidence=confidence,
            confidence_level=confidence_level(confidence),
            secondary=secondary,
            evidence=list(scored[primary][1]),
            hybrid_flag=hybrid_flag,
            reasoning=reasoning,
            warnings=warnings,
            strategy=strategy,
            scores=scores,
        )

    @staticmethod
    def _check_strategy(strategy: str) -> None:
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown strategy: {strategy}. Available: {', '.join(STRATEGIES)}")
