"""Tests for ArchitectureClassifier."""

import pytest

from seed_intel.detection.architecture import ArchitectureClassifier
from seed_intel.exceptions import ClassificationError
from seed_intel.models import SchemaSnapshot


class BrokenClassifier(ArchitectureClassifier):
    """Classifier whose scoring always fails."""

    def score_label(self, label, snapshot, context):
        raise RuntimeError("catalog went away")


class TestTeamArchitecture:
    """Tests for a team-centric schema."""

    def test_primary_team(self, team_snapshot: SchemaSnapshot) -> None:
        """Test team tables produce a very high team verdict."""
        result = ArchitectureClassifier().classify(team_snapshot)

        assert result.primary == "team"
        assert result.confidence == pytest.approx(0.99)
        assert result.confidence_level == "very_high"
        assert result.hybrid_flag is False
        assert result.warnings == []

    def test_team_evidence(self, team_snapshot: SchemaSnapshot) -> None:
        """Test evidence lists structural, relationship and column observations."""
        result = ArchitectureClassifier().classify(team_snapshot)

        types = {evidence.type for evidence in result.evidence}
        assert {"structural", "relationship", "column"} <= types

    def test_other_labels_scored(self, team_snapshot: SchemaSnapshot) -> None:
        """Test individual is countered by team tables."""
        result = ArchitectureClassifier().classify(team_snapshot)

        assert result.scores["individual"] == pytest.approx(0.25)
        assert result.scores["hybrid"] == pytest.approx(0.35)
        assert result.secondary == []


class TestIndividualArchitecture:
    """Tests for a single-user schema."""

    def test_primary_individual(self, individual_snapshot: SchemaSnapshot) -> None:
        """Test user-owned content produces an individual verdict."""
        result = ArchitectureClassifier().classify(individual_snapshot)

        assert result.primary == "individual"
        assert result.confidence == pytest.approx(0.94)
        assert result.scores["team"] == 0.0


class TestHybridArchitecture:
    """Tests for personal and team accounts side by side."""

    def test_personal_flag_with_memberships(self, makerkit_snapshot: SchemaSnapshot) -> None:
        """Test personal account flag plus memberships favours hybrid."""
        result = ArchitectureClassifier().classify(makerkit_snapshot)

        assert result.scores["hybrid"] > 0.9
        assert result.primary == "hybrid"
        assert result.hybrid_flag is True

    def test_secondary_below_primary(self, makerkit_snapshot: SchemaSnapshot) -> None:
        """Test secondary labels sit strictly below the final confidence."""
        result = ArchitectureClassifier().classify(makerkit_snapshot)

        assert len(result.secondary) <= 3
        for secondary in result.secondary:
            assert 0.5 < secondary.confidence < result.confidence
            assert secondary.label != result.primary


class TestStrategies:
    """Tests for strategy handling."""

    def test_fast_scores_two_labels(self, team_snapshot: SchemaSnapshot) -> None:
        """Test fast strategy only scores individual and team."""
        result = ArchitectureClassifier(strategy="fast").classify(team_snapshot)

        assert set(result.scores) >= {"individual", "team"}
        assert result.primary == "team"
        assert result.confidence == pytest.approx(0.996 * 0.95)

    def test_conservative_weak_schema_uses_baseline(self) -> None:
        """Test conservative strategy falls back to hybrid below the strong threshold."""
        snapshot = SchemaSnapshot.build({"invitations": ["id", "email"]})

        result = ArchitectureClassifier().classify(snapshot, strategy="conservative")

        assert result.scores["team"] == pytest.approx(0.6)
        assert result.primary == "hybrid"
        assert result.confidence == pytest.approx(0.54)

    def test_strategy_per_call(self, team_snapshot: SchemaSnapshot) -> None:
        """Test per-call strategy overrides the instance strategy."""
        result = ArchitectureClassifier(strategy="fast").classify(
            team_snapshot, strategy="comprehensive"
        )

        assert result.strategy == "comprehensive"

    def test_unknown_strategy(self) -> None:
        """Test unknown strategy raises ValueError."""
        with pytest.raises(ValueError, match="Unknown strategy"):
            ArchitectureClassifier(strategy="reckless")


class TestOverrideAndFallback:
    """Tests for manual override and failure fallback."""

    def test_manual_override(self, individual_snapshot: SchemaSnapshot) -> None:
        """Test override bypasses scoring entirely."""
        result = ArchitectureClassifier(manual_override="team").classify(individual_snapshot)

        assert result.primary == "team"
        assert result.confidence == 0.95
        assert result.manual_override is True
        assert result.reasoning == ["Manual override to 'team': automatic detection bypassed"]
        assert result.scores == {}

    def test_unknown_override(self, team_snapshot: SchemaSnapshot) -> None:
        """Test unknown override label raises ClassificationError."""
        with pytest.raises(ClassificationError, match="unknown architecture label 'solo'"):
            ArchitectureClassifier().classify(team_snapshot, manual_override="solo")

    def test_fallback_on_failure(self, team_snapshot: SchemaSnapshot) -> None:
        """Test scoring failure returns the baseline with low confidence."""
        result = BrokenClassifier().classify(team_snapshot)

        assert result.primary == "hybrid"
        assert result.confidence == 0.3
        assert result.confidence_level == "low"
        assert result.reasoning == ["detection failed"]
        assert result.errors == ["catalog went away"]
        assert result.is_fallback is True

    def test_empty_schema(self) -> None:
        """Test empty schema yields the baseline label."""
        result = ArchitectureClassifier().classify(SchemaSnapshot())

        assert result.primary == "hybrid"
        assert result.confidence == 0.0
        assert result.confidence_level == "very_low"
