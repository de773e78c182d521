"""Architecture classifier: individual, team or hybrid platform."""

from typing import Any

from seed_intel.detection.classifier import BaseClassifier
from seed_intel.detection.patterns import (
    ARCHITECTURES,
    BASELINE_ARCHITECTURE,
    BILLING_TABLES,
    FAST_ARCHITECTURES,
    INVITATION_TABLES,
    MEMBERSHIP_TABLES,
    OWNER_COLUMNS,
    PERSONAL_ACCOUNT_COLUMNS,
    PERSONAL_CONTENT_TABLES,
    ROLE_TABLES,
    TEAM_COLUMNS,
    TEAM_TABLES,
    USER_TABLES,
)
from seed_intel.models import Evidence, SchemaSnapshot
from seed_intel.scoring import combine_evidence


class ArchitectureClassifier(BaseClassifier):
    """
    Classify whether a platform is built around individuals, teams or both.

    Each label collects structural (table names), relationship, column and
    counter evidence; evidence is combined with scoring.combine_evidence.

    Example:
        >>> snapshot = SchemaSnapshot.build({
        ...     "teams": ["id", "name"],
        ...     "team_members": ["team_id", "user_id"],
        ...     "invitations": ["team_id", "email"],
        ... })
        >>> ArchitectureClassifier().classify(snapshot).primary
        'team'
    """

    kind = "architecture"
    labels = ARCHITECTURES
    baseline_label = BASELINE_ARCHITECTURE

    def candidate_labels(
        self, snapshot: SchemaSnapshot, strategy: str, context: dict[str, Any]
    ) -> list[str]:
        if strategy == "fast":
            return list(FAST_ARCHITECTURES)
        return list(ARCHITECTURES)

    def prepare_context(self, snapshot: SchemaSnapshot, context: dict[str, Any]) -> dict[str, Any]:
        team_like = TEAM_TABLES | MEMBERSHIP_TABLES
        user_tables = snapshot.find_tables(USER_TABLES)
        context["facts"] = {
            "user_tables": user_tables,
            "content_tables": snapshot.find_tables(PERSONAL_CONTENT_TABLES),
            "team_tables": snapshot.find_tables(TEAM_TABLES),
            "membership_tables": snapshot.find_tables(MEMBERSHIP_TABLES),
            "invitation_tables": snapshot.find_tables(INVITATION_TABLES),
            "role_tables": snapshot.find_tables(ROLE_TABLES),
            "billing_tables": snapshot.find_tables(BILLING_TABLES),
            "team_fk_tables": snapshot.tables_with_column(TEAM_COLUMNS),
            "owner_fk_tables": snapshot.tables_with_column(OWNER_COLUMNS),
            "personal_flag_tables": snapshot.tables_with_column(PERSONAL_ACCOUNT_COLUMNS),
            "team_refs": [r for r in snapshot.relationships if r.to_table in team_like],
            "user_refs": [r for r in snapshot.relationships if r.to_table in user_tables],
            "personal_rules": [
                rule
                for rule in snapshot.integrity_rules
                if any(col in rule.condition for col in PERSONAL_ACCOUNT_COLUMNS)
            ],
        }
        return context

    def score_label(
        self, label: str, snapshot: SchemaSnapshot, context: dict[str, Any]
    ) -> tuple[float, list[Evidence]]:
        if "facts" not in context:
            context = self.prepare_context(snapshot, context)
        facts = context["facts"]

        if label == "individual":
            evidence = self._individual_evidence(facts)
        elif label == "team":
            evidence = self._team_evidence(facts)
        elif label == "hybrid":
            evidence = self._hybrid_evidence(facts)
        else:
            raise ValueError(f"Unknown architecture label: {label}")

        return combine_evidence(evidence), evidence

    def _individual_evidence(self, facts: dict[str, Any]) -> list[Evidence]:
        evidence = []
        has_team = bool(facts["team_tables"] or facts["membership_tables"])

        if facts["user_tables"]:
            evidence.append(
                Evidence(
                    "structural",
                    f"User/profile tables: {', '.join(facts['user_tables'])}",
                    0.5,
                )
            )
            if not has_team:
                evidence.append(
                    Evidence("structural", "No team or membership tables", 0.6)
                )

        if facts["content_tables"]:
            owned = facts["owner_fk_tables"] or facts["user_refs"]
            evidence.append(
                Evidence(
                    "structural",
                    f"Personal content tables: {', '.join(facts['content_tables'])}"
                    + (" owned by users" if owned else ""),
                    0.5 if owned else 0.3,
                )
            )

        if len(facts["user_refs"]) >= 2:
            evidence.append(
                Evidence(
                    "relationship",
                    f"{len(facts['user_refs'])} relationships reference user tables",
                    0.4,
                )
            )

        if has_team:
            evidence.append(Evidence("counter", "Team or membership tables present", 0.5))
        if facts["personal_flag_tables"]:
            evidence.append(Evidence("counter", "Personal/team account flag present", 0.3))
        return evidence

    def _team_evidence(self, facts: dict[str, Any]) -> list[Evidence]:
        evidence = []
        structural = (
            ("team_tables", "Team/organization tables", 0.8),
            ("membership_tables", "Membership tables", 0.75),
            ("invitation_tables", "Invitation tables", 0.6),
            ("role_tables", "Role/permission tables", 0.5),
            ("billing_tables", "Billing tables", 0.3),
        )
        for key, description, confidence in structural:
            if facts[key]:
                evidence.append(
                    Evidence("structural", f"{description}: {', '.join(facts[key])}", confidence)
                )

        if len(facts["team_refs"]) >= 2:
            evidence.append(
                Evidence(
                    "relationship",
                    f"{len(facts['team_refs'])} relationships reference team tables",
                    0.6,
                )
            )
        if facts["team_fk_tables"]:
            evidence.append(
                Evidence(
                    "column",
                    f"Team foreign key columns on: {', '.join(facts['team_fk_tables'])}",
                    0.5,
                )
            )

        if facts["personal_flag_tables"]:
            evidence.append(Evidence("counter", "Personal accounts coexist with teams", 0.3))
        return evidence

    def _hybrid_evidence(self, facts: dict[str, Any]) -> list[Evidence]:
        evidence = []
        has_team = bool(facts["team_tables"] or facts["membership_tables"])

        if facts["personal_flag_tables"]:
            evidence.append(
                Evidence(
                    "column",
                    f"Personal account flag on: {', '.join(facts['personal_flag_tables'])}",
                    0.85,
                )
            )
            if has_team:
                evidence.append(
                    Evidence("structural", "Personal and team accounts coexist", 0.6)
                )
        elif facts["user_tables"] and has_team:
            evidence.append(
                Evidence("structural", "User tables and team tables both present", 0.35)
            )

        if facts["personal_rules"]:
            evidence.append(
                Evidence(
                    "constraint",
                    f"{len(facts['personal_rules'])} constraints depend on the account type",
                    0.5,
                )
            )
        return evidence
