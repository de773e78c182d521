"""Framework detection seam and a table-signature MakerKit detector."""

import logging
from typing import Protocol, runtime_checkable

from seed_intel.models import FrameworkDetectionResult, SchemaSnapshot

logger = logging.getLogger(__name__)


@runtime_checkable
class FrameworkDetector(Protocol):
    """Anything that can guess which application scaffold a schema comes from."""

    def detect(self, snapshot: SchemaSnapshot) -> FrameworkDetectionResult: ...


class MakerKitDetector:
    """
    Recognize MakerKit-style schemas from table and column signatures.

    Each matched feature contributes its weight; confidence is the matched
    share of the total weight.

    Example:
        >>> snapshot = SchemaSnapshot.build({
        ...     "accounts": ["id", "is_personal_account", "slug"],
        ...     "accounts_memberships": ["account_id", "user_id", "account_role"],
        ... })
        >>> MakerKitDetector().detect(snapshot).version
        'v2'
    """

    name = "makerkit"

    # (feature, kind, table, column, weight)
    FEATURES: tuple[tuple[str, str, str, str | None, float], ...] = (
        ("accounts_table", "table", "accounts", None, 0.2),
        ("personal_account_flag", "column", "accounts", "is_personal_account", 0.25),
        ("account_slug", "column", "accounts", "slug", 0.1),
        ("accounts_memberships", "table", "accounts_memberships", None, 0.2),
        ("roles", "table", "roles", None, 0.05),
        ("role_permissions", "table", "role_permissions", None, 0.05),
        ("invitations", "table", "invitations", None, 0.05),
        ("billing_customers", "table", "billing_customers", None, 0.05),
        ("subscriptions", "table", "subscriptions", None, 0.05),
    )

    DETECTION_THRESHOLD = 0.5

    def detect(self, snapshot: SchemaSnapshot) -> FrameworkDetectionResult:
        """
        Score the snapshot against MakerKit signatures.

        Args:
            snapshot: Schema snapshot

        Returns:
            FrameworkDetectionResult (detected when confidence >= 0.5)
        """
        total = sum(weight for *_, weight in self.FEATURES)
        features = []
        matched = 0.0
        for feature, kind, table, column, weight in self.FEATURES:
            present = (
                snapshot.has_table(table)
                if kind == "table"
                else snapshot.has_column(table, column or "")
            )
            if present:
                features.append(feature)
                matched += weight

        confidence = round(matched / total, 4) if total else 0.0
        detected = confidence >= self.DETECTION_THRESHOLD

        version = None
        if detected:
            if "accounts_memberships" in features and "personal_account_flag" in features:
                version = "v2"
            else:
                version = "v1"

        logger.debug(f"MakerKit detection: confidence={confidence:.2f} features={features}")

        return FrameworkDetectionResult(
            name=self.name if detected else None,
            detected=detected,
            confidence=confidence,
            version=version,
            supports_teams="accounts_memberships" in features,
            features=features,
        )
