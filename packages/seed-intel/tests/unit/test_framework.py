"""Tests for MakerKitDetector."""

import pytest

from seed_intel.detection.framework import FrameworkDetector, MakerKitDetector
from seed_intel.models import SchemaSnapshot


class TestMakerKitDetector:
    """Tests for MakerKitDetector.detect()."""

    def test_satisfies_protocol(self) -> None:
        """Test detector matches the FrameworkDetector protocol."""
        assert isinstance(MakerKitDetector(), FrameworkDetector)

    def test_detects_v2(self, makerkit_snapshot: SchemaSnapshot) -> None:
        """Test personal accounts plus memberships is MakerKit v2."""
        result = MakerKitDetector().detect(makerkit_snapshot)

        assert result.detected is True
        assert result.name == "makerkit"
        assert result.version == "v2"
        assert result.supports_teams is True
        assert result.confidence == pytest.approx(0.85)
        assert "personal_account_flag" in result.features

    def test_not_detected(self, individual_snapshot: SchemaSnapshot) -> None:
        """Test unrelated schema is not MakerKit."""
        result = MakerKitDetector().detect(individual_snapshot)

        assert result.detected is False
        assert result.name is None
        assert result.version is None
        assert result.confidence == 0.0

    def test_detects_v1_without_memberships(self) -> None:
        """Test accounts without the memberships table is v1."""
        snapshot = SchemaSnapshot.build(
            {
                "accounts": ["id", "is_personal_account", "slug"],
                "roles": ["name"],
                "role_permissions": ["role", "permission"],
            }
        )

        result = MakerKitDetector().detect(snapshot)

        assert result.detected is True
        assert result.version == "v1"
        assert result.supports_teams is False
