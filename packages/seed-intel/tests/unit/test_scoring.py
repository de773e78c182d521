"""Tests for confidence arithmetic."""

import pytest

from seed_intel.models import Evidence, SchemaSnapshot
from seed_intel.scoring import (
    apply_strategy,
    combine_evidence,
    confidence_level,
    mean,
    rolling_hash,
    schema_complexity,
    weighted_confidence,
)


class TestConfidenceLevel:
    """Tests for confidence_level()."""

    @pytest.mark.parametrize(
        "value,level",
        [
            (1.0, "very_high"),
            (0.9, "very_high"),
            (0.89, "high"),
            (0.7, "high"),
            (0.69, "medium"),
            (0.5, "medium"),
            (0.3, "low"),
            (0.29, "very_low"),
            (0.0, "very_low"),
        ],
    )
    def test_band_boundaries(self, value: float, level: str) -> None:
        """Test lower bounds are inclusive."""
        assert confidence_level(value) == level

    def test_out_of_range_is_clamped(self) -> None:
        """Test values outside [0, 1] fall into the outer bands."""
        assert confidence_level(1.5) == "very_high"
        assert confidence_level(-0.2) == "very_low"


class TestCombineEvidence:
    """Tests for combine_evidence()."""

    def test_no_evidence(self) -> None:
        """Test empty evidence scores zero."""
        assert combine_evidence([]) == 0.0

    def test_counter_only(self) -> None:
        """Test counter evidence alone never produces a score."""
        assert combine_evidence([Evidence("counter", "no teams", 0.5)]) == 0.0

    def test_noisy_or(self) -> None:
        """Test independent support reinforces without exceeding 1."""
        score = combine_evidence(
            [Evidence("structural", "a", 0.5), Evidence("column", "b", 0.5)]
        )

        assert score == pytest.approx(0.75)

    def test_counter_scales_down(self) -> None:
        """Test counter evidence multiplies by (1 - strength)."""
        score = combine_evidence(
            [Evidence("structural", "users", 0.5), Evidence("counter", "teams", 0.5)]
        )

        assert score == pytest.approx(0.25)

    def test_weight_scales_strength(self) -> None:
        """Test weight multiplies confidence."""
        score = combine_evidence([Evidence("structural", "a", 0.8, weight=0.5)])

        assert score == pytest.approx(0.4)


class TestEvidenceValidation:
    """Tests for Evidence invariants."""

    def test_confidence_out_of_range(self) -> None:
        """Test confidence above 1 is rejected."""
        with pytest.raises(ValueError, match="confidence"):
            Evidence("structural", "x", 1.2)

    def test_non_positive_weight(self) -> None:
        """Test zero weight is rejected."""
        with pytest.raises(ValueError, match="weight"):
            Evidence("structural", "x", 0.5, weight=0)


class TestApplyStrategy:
    """Tests for apply_strategy()."""

    def test_comprehensive_caps(self) -> None:
        """Test comprehensive passes through below the ceiling."""
        assert apply_strategy(0.8, "comprehensive") == pytest.approx(0.8)
        assert apply_strategy(1.0, "comprehensive") == pytest.approx(0.99)

    def test_fast_discount(self) -> None:
        """Test fast applies a small discount."""
        assert apply_strategy(0.8, "fast") == pytest.approx(0.76)

    def test_aggressive_boost_capped(self) -> None:
        """Test aggressive boosts but never exceeds the ceiling."""
        assert apply_strategy(0.5, "aggressive") == pytest.approx(0.55)
        assert apply_strategy(0.95, "aggressive") == pytest.approx(0.99)

    def test_conservative_strong(self) -> None:
        """Test conservative discounts strong scores."""
        assert apply_strategy(0.8, "conservative") == pytest.approx(0.72)

    def test_conservative_weak_uses_baseline(self) -> None:
        """Test conservative never claims more than the best evidence."""
        assert apply_strategy(0.5, "conservative", baseline=0.3) == pytest.approx(0.45)
        assert apply_strategy(0.4, "conservative", baseline=0.9) == pytest.approx(0.36)

    @pytest.mark.parametrize("top", [0.0, 0.1, 0.35, 0.5, 0.69, 0.7, 0.85, 0.95, 1.0])
    def test_strategy_ordering(self, top: float) -> None:
        """Test aggressive >= comprehensive >= conservative."""
        aggressive = apply_strategy(top, "aggressive", baseline=0.4)
        comprehensive = apply_strategy(top, "comprehensive", baseline=0.4)
        conservative = apply_strategy(top, "conservative", baseline=0.4)

        assert aggressive >= comprehensive >= conservative
        assert aggressive <= 0.99

    def test_unknown_strategy(self) -> None:
        """Test unknown strategy raises ValueError."""
        with pytest.raises(ValueError, match="Unknown strategy"):
            apply_strategy(0.5, "reckless")


class TestWeightedConfidence:
    """Tests for weighted_confidence()."""

    def test_all_perfect(self) -> None:
        """Test weights sum to one."""
        scores = {
            "schema": 1.0,
            "framework": 1.0,
            "architecture": 1.0,
            "domain": 1.0,
            "cross_validation": 1.0,
        }

        assert weighted_confidence(scores) == pytest.approx(1.0)

    def test_missing_keys_count_as_zero(self) -> None:
        """Test missing subsystems contribute nothing."""
        assert weighted_confidence({"framework": 1.0}) == pytest.approx(0.25)


class TestHelpers:
    """Tests for mean(), rolling_hash() and schema_complexity()."""

    def test_mean_default(self) -> None:
        """Test mean of nothing is the default."""
        assert mean([], default=0.5) == 0.5
        assert mean([0.2, 0.4]) == pytest.approx(0.3)

    def test_rolling_hash_known_value(self) -> None:
        """Test hash of a known string."""
        assert rolling_hash("ab") == "00000c21"

    def test_rolling_hash_is_stable(self) -> None:
        """Test hash is 8 hex characters and deterministic."""
        value = rolling_hash("accounts,teams|3|0")

        assert len(value) == 8
        assert value == rolling_hash("accounts,teams|3|0")

    def test_schema_complexity_empty(self) -> None:
        """Test empty schema has zero complexity."""
        assert schema_complexity(SchemaSnapshot()) == 0.0

    def test_schema_complexity_small(self, team_snapshot: SchemaSnapshot) -> None:
        """Test small schema has low complexity."""
        assert 0.0 < schema_complexity(team_snapshot) < 0.1
