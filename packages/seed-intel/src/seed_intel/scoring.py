"""Confidence arithmetic shared by classifiers and the integrator.

All thresholds, strategy multipliers and weights live here so that strategy
behavior is consistent across the architecture classifier, the domain
classifier and the detection integrator.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from seed_intel.models import Evidence, SchemaSnapshot

# Confidence bands: (lower bound, level), highest first.
# Bands are half-open [lower, next lower) and very_high includes 1.0.
CONFIDENCE_BANDS: tuple[tuple[float, str], ...] = (
    (0.9, "very_high"),
    (0.7, "high"),
    (0.5, "medium"),
    (0.3, "low"),
    (0.0, "very_low"),
)

THRESHOLD_DEFINITIVE = 0.9
THRESHOLD_STRONG = 0.7
THRESHOLD_MODERATE = 0.5
THRESHOLD_WEAK = 0.3

FAST_DISCOUNT = 0.95
CONSERVATIVE_DISCOUNT = 0.9
CONSERVATIVE_FLOOR = 0.6
AGGRESSIVE_BOOST = 1.1
STRATEGY_CEILING = 0.99

OVERRIDE_CONFIDENCE = 0.95
FALLBACK_CONFIDENCE = 0.3

MAX_SECONDARY = 3
CLOSE_COMPETITION_GAP = 0.2

STRATEGIES = ("comprehensive", "fast", "conservative", "aggressive")

INTEGRATION_WEIGHTS: dict[str, float] = {
    "schema": 0.15,
    "framework": 0.25,
    "architecture": 0.25,
    "domain": 0.20,
    "cross_validation": 0.15,
}

# Agreement score used when no cross-validation rule applies
NEUTRAL_AGREEMENT = 0.5


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


def confidence_level(confidence: float) -> str:
    """
    Map a confidence value to its band.

    Args:
        confidence: Confidence value (clamped into [0, 1])

    Returns:
        One of very_low, low, medium, high, very_high

    Example:
        >>> confidence_level(0.7)
        'high'
        >>> confidence_level(0.69)
        'medium'
    """
    value = clamp(confidence)
    for lower, level in CONFIDENCE_BANDS:
        if value >= lower:
            return level
    return "very_low"


def combine_evidence(evidence: Iterable[Evidence]) -> float:
    """
    Combine evidence into a single score.

    Supporting evidence is combined with a noisy-OR, so independent
    observations reinforce each other without exceeding 1. Each counter
    evidence item then scales the score down by its own strength.

    Args:
        evidence: Evidence items

    Returns:
        Score in [0, 1] (0 when there is no supporting evidence)
    """
    missing = 1.0
    counter = 1.0
    has_support = False
    for item in evidence:
        strength = clamp(item.confidence * item.weight)
        if item.type == "counter":
            counter *= 1.0 - strength
        else:
            has_support = True
            missing *= 1.0 - strength
    if not has_support:
        return 0.0
    return clamp((1.0 - missing) * counter)


def apply_strategy(top: float, strategy: str, baseline: float = 0.0) -> float:
    """
    Apply strategy adjustment to the top candidate's score.

    For the same input, aggressive >= comprehensive >= conservative, and no
    strategy exceeds STRATEGY_CEILING.

    Args:
        top: Raw score of the best candidate
        strategy: comprehensive, fast, conservative or aggressive
        baseline: Raw score of the baseline label (conservative only)

    Returns:
        Adjusted confidence

    Raises:
        ValueError: If strategy is unknown
    """
    top = clamp(top)
    if strategy == "comprehensive":
        return min(top, STRATEGY_CEILING)
    if strategy == "fast":
        return min(top * FAST_DISCOUNT, STRATEGY_CEILING)
    if strategy == "aggressive":
        return min(top * AGGRESSIVE_BOOST, STRATEGY_CEILING)
    if strategy == "conservative":
        if top >= THRESHOLD_STRONG:
            return min(top, STRATEGY_CEILING) * CONSERVATIVE_DISCOUNT
        # Baseline substitution never claims more than the best evidence
        substituted = min(top, max(clamp(baseline), CONSERVATIVE_FLOOR))
        return substituted * CONSERVATIVE_DISCOUNT
    raise ValueError(f"Unknown strategy: {strategy}. Available: {', '.join(STRATEGIES)}")


def weighted_confidence(scores: dict[str, float]) -> float:
    """
    Weighted sum of subsystem confidences, clamped to 1.0.

    Args:
        scores: Confidence per key of INTEGRATION_WEIGHTS (missing keys count as 0)

    Returns:
        Overall confidence in [0, 1]
    """
    total = sum(weight * scores.get(key, 0.0) for key, weight in INTEGRATION_WEIGHTS.items())
    return clamp(total)


def mean(values: Iterable[float], default: float = 0.0) -> float:
    """Arithmetic mean, or default for an empty input."""
    items = list(values)
    if not items:
        return default
    return sum(items) / len(items)


def rolling_hash(text: str) -> str:
    """
    32-bit polynomial rolling hash as 8 hex characters.

    Cheap and stable across processes; not cryptographic.

    Example:
        >>> rolling_hash("ab")
        '00000c21'
    """
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    return f"{value:08x}"


def schema_complexity(snapshot: SchemaSnapshot) -> float:
    """
    Rough schema complexity in [0, 1].

    Mean of table, relationship and integrity rule counts, each normalized
    against a "large schema" reference (50 tables, 100 relationships,
    50 constraints).
    """
    return mean(
        [
            min(1.0, len(snapshot.tables) / 50),
            min(1.0, len(snapshot.relationships) / 100),
            min(1.0, len(snapshot.integrity_rules) / 50),
        ]
    )
