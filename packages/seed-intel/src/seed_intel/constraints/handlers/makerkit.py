"""Handlers for multi-table MakerKit business rules.

Unlike the account handlers these look at relationships between rows:
subscriptions and billing, organizations and their members, parent/child
hierarchies and cascading foreign keys. Some fixes cannot be expressed on
the row itself; those are recorded as `add_dependency` fixes describing the
rows (or cascade operations) that have to accompany it.
"""

import re
from typing import Any

from seed_intel.constraints.handlers.accounts import normalize_slug
from seed_intel.constraints.handlers.base import ConstraintHandler
from seed_intel.models import ConstraintHandlingResult, IntegrityRule

MAX_FK_HIERARCHY_LEVEL = 5
DEEP_HIERARCHY_LEVEL = 10
MAX_HIERARCHY_LEVEL = 15

_AND = re.compile(r"\band\b")
_OR = re.compile(r"\bor\b")


def _name(constraint: IntegrityRule) -> str:
    return constraint.name.lower()


def _clause(constraint: IntegrityRule) -> str:
    return constraint.condition.lower()


def _columns(constraint: IntegrityRule) -> str:
    return " ".join(constraint.columns).lower()


class CrossTableHandler(ConstraintHandler):
    """Checks whose clause reaches into another table (EXISTS / subselect)."""

    id = "cross_table"
    constraint_type = "check"
    priority = 120
    description = "Keep rows consistent with the tables their checks query"

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        name = _name(constraint)
        clause = _clause(constraint)
        gated = (
            "cross_table" in name
            or "dependent" in name
            or "exists" in clause
            or "select" in clause
        )
        return gated and (
            self._is_account_subscription(clause)
            or self._is_organization_member(clause)
            or self._is_user_profile(clause)
        )

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        clause = _clause(constraint)

        if self._is_account_subscription(clause):
            if row.get("account_id") and not row.get("subscription_id"):
                result.warnings.append(
                    "Account created without subscription - may require subscription setup"
                )
            if row.get("is_personal_account") is True and row.get("subscription_status") == "team":
                self.set_field(
                    result,
                    "subscription_status",
                    "individual",
                    "Personal accounts cannot have team subscription status",
                    0.95,
                )

        if self._is_organization_member(clause):
            if row.get("organization_id") and row.get("created_by") and not row.get("member_id"):
                result.warnings.append(
                    "Organization created without owner membership - "
                    "requires member record creation"
                )
                self.add_dependency(
                    result,
                    "organization_members",
                    {
                        "organization_id": row["organization_id"],
                        "user_id": row["created_by"],
                        "role": "owner",
                        "is_owner": True,
                    },
                    "Create owner membership for new organization",
                    0.9,
                )
            if row.get("role") == "owner" and row.get("organization_members_count") == 0:
                result.warnings.append("Cannot assign owner role to organization with no members")

        if self._is_user_profile(clause):
            if row.get("user_id") and not row.get("profile_id"):
                result.warnings.append(
                    "User created without profile - profile creation may be required"
                )
            auth_email = row.get("auth_email")
            profile_email = row.get("profile_email")
            if auth_email and profile_email and auth_email != profile_email:
                self.set_field(
                    result,
                    "profile_email",
                    auth_email,
                    "Sync profile email with auth email for consistency",
                    0.9,
                )

        return result

    @staticmethod
    def _is_account_subscription(clause: str) -> bool:
        return "subscription" in clause and ("account" in clause or "organization" in clause)

    @staticmethod
    def _is_organization_member(clause: str) -> bool:
        return "organization" in clause and "member" in clause and "exists" in clause

    @staticmethod
    def _is_user_profile(clause: str) -> bool:
        return "user" in clause and "profile" in clause and "auth" in clause


class BusinessRuleHandler(ConstraintHandler):
    """Compound checks encoding billing, membership and permission rules."""

    id = "business_rule"
    constraint_type = "check"
    priority = 115
    description = "Apply billing, membership and permission business rules"

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        name = _name(constraint)
        clause = _clause(constraint)
        gated = "business_rule" in name or "workflow" in name or self._is_complex(clause)
        return gated and (
            self._is_subscription_billing(clause)
            or self._is_organization_membership(clause)
            or self._is_user_permission(clause)
        )

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        clause = _clause(constraint)
        status = row.get("subscription_status")
        role = row.get("role")

        if self._is_subscription_billing(clause):
            if status == "active" and not row.get("stripe_customer_id"):
                result.warnings.append("Active subscription requires valid billing setup")
            if status == "canceled" and row.get("billing_status") == "active":
                self.set_field(
                    result,
                    "billing_status",
                    "canceled",
                    "Sync billing status with canceled subscription",
                    0.9,
                )

        if self._is_organization_membership(clause):
            if role == "owner" and (row.get("existing_owners_count") or 0) > 0:
                self.set_field(
                    result,
                    "role",
                    "admin",
                    "Organization already has an owner, assigning admin role",
                    0.85,
                )
            if row.get("action") == "remove" and row.get("total_members") == 1:
                result.errors.append("Cannot remove last member from organization")
                result.success = False

        if self._is_user_permission(clause):
            if role == "admin" and not row.get("can_manage_members"):
                self.set_field(
                    result,
                    "can_manage_members",
                    True,
                    "Admin role requires member management permission",
                    0.9,
                )
            if role == "viewer" and (row.get("can_create") or row.get("can_delete")):
                for field in ("can_create", "can_delete"):
                    self.set_field(
                        result, field, False, "Viewer role should have minimal permissions", 0.95
                    )

        return result

    @staticmethod
    def _is_complex(clause: str) -> bool:
        return (
            "case when" in clause
            or (bool(_AND.search(clause)) and bool(_OR.search(clause)))
            or len(_AND.findall(clause)) > 1
            or "not exists" in clause
        )

    @staticmethod
    def _is_subscription_billing(clause: str) -> bool:
        return "subscription" in clause and "billing" in clause

    @staticmethod
    def _is_organization_membership(clause: str) -> bool:
        return "organization" in clause and "member" in clause

    @staticmethod
    def _is_user_permission(clause: str) -> bool:
        return "permission" in clause or ("role" in clause and "access" in clause)


class ConditionalForeignKeyHandler(ConstraintHandler):
    """Nullable foreign keys whose presence depends on the row's kind."""

    id = "conditional_fk"
    constraint_type = "foreign_key"
    priority = 110
    description = "Null or require optional foreign keys by account and plan type"

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        columns = _columns(constraint)
        return (
            "organization_id" in columns
            or "parent_id" in columns
            or "subscription_id" in columns
            or "billing_customer_id" in columns
        )

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        columns = _columns(constraint)

        if "organization_id" in columns:
            self._organization(row, result)
        if "parent_id" in columns:
            parent_id = row.get("parent_id")
            if parent_id is not None and parent_id == row.get("id"):
                self.set_field(
                    result,
                    "parent_id",
                    None,
                    "Prevent self-referencing parent relationship",
                    0.95,
                )
            if parent_id and (row.get("hierarchy_level") or 0) > MAX_FK_HIERARCHY_LEVEL:
                result.warnings.append("Deep hierarchy detected - may cause performance issues")
        if "subscription_id" in columns or "billing_customer_id" in columns:
            plan_type = row.get("plan_type")
            if plan_type == "free" and row.get("subscription_id"):
                self.set_field(
                    result,
                    "subscription_id",
                    None,
                    "Free tier accounts should not have subscription_id",
                    0.9,
                )
            if plan_type and plan_type != "free" and not row.get("subscription_id"):
                result.warnings.append(
                    "Paid account requires subscription_id - subscription creation may be needed"
                )

        return result

    def _organization(self, row: dict[str, Any], result: ConstraintHandlingResult) -> None:
        personal = row.get("is_personal_account")
        if personal is True and row.get("organization_id"):
            self.set_field(
                result,
                "organization_id",
                None,
                "Personal accounts should not have organization_id",
                0.95,
            )
        elif personal is False and not row.get("organization_id"):
            result.warnings.append(
                "Team account requires organization_id - organization creation may be needed"
            )
            name = row.get("organization_name") or f"{row.get('name') or 'User'}'s Organization"
            slug_source = row.get("organization_name") or row.get("name") or "organization"
            self.add_dependency(
                result,
                "organizations",
                {
                    "name": name,
                    "slug": normalize_slug(slug_source),
                    "created_by": row.get("user_id") or row.get("id"),
                },
                "Create organization for team account",
                0.8,
            )


class HierarchicalHandler(ConstraintHandler):
    """Parent/child checks: cycles, excessive depth and orphans."""

    id = "hierarchical"
    constraint_type = "check"
    priority = 105
    description = "Break circular, too deep and orphaned parent references"

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        name = _name(constraint)
        clause = _clause(constraint)
        return (
            "hierarchical" in name
            or "parent" in name
            or "circular" in name
            or "parent_id" in clause
            or "hierarchy" in clause
        )

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        parent_id = row.get("parent_id")
        level = row.get("hierarchy_level") or 0

        children = row.get("children") or []
        circular = parent_id is not None and (
            parent_id == row.get("id") or any(child.get("id") == parent_id for child in children)
        )
        if circular:
            self.set_field(
                result, "parent_id", None, "Removed circular reference in hierarchy", 0.95
            )
            result.warnings.append(
                "Circular reference detected and resolved by removing parent relationship"
            )

        if level > DEEP_HIERARCHY_LEVEL:
            result.warnings.append(
                f"Deep hierarchy detected (level {level}) - consider flattening structure"
            )
            if level > MAX_HIERARCHY_LEVEL and result.modified_row.get("parent_id") is not None:
                self.set_field(
                    result, "parent_id", None, "Hierarchy too deep, moved to root level", 0.7
                )

        if parent_id and not row.get("parent_exists") and level > 0:
            if result.modified_row.get("parent_id") is not None:
                self.set_field(
                    result, "parent_id", None, "Removed reference to non-existent parent", 0.9
                )
            self.set_field(
                result, "hierarchy_level", 0, "Reset hierarchy level for orphaned record", 0.9
            )

        return result


class CascadeHandler(ConstraintHandler):
    """Cascading foreign keys: records the dependent operations a change implies."""

    id = "cascade"
    constraint_type = "foreign_key"
    priority = 100
    description = "Describe cascading deletes and updates on dependent tables"

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        cascading = (constraint.on_delete or "").upper() == "CASCADE" or "cascade" in _name(
            constraint
        )
        return cascading and (
            self._refers_to(constraint, "organization")
            or self._refers_to(constraint, "user")
            or self._refers_to(constraint, "subscription")
        )

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        action = row.get("action")

        if self._refers_to(constraint, "organization"):
            if action == "delete" and row.get("has_members"):
                result.warnings.append("Deleting organization will cascade to remove all members")
                self.add_dependency(
                    result,
                    "cascade_operations",
                    {
                        "operation": "delete_members",
                        "table": "organization_members",
                        "condition": f"organization_id = {row.get('organization_id')}",
                    },
                    "Cascade delete organization members",
                    0.9,
                )

        if self._refers_to(constraint, "user"):
            if action == "delete" and row.get("has_profiles"):
                result.warnings.append(
                    "Deleting user will cascade to remove profile and related data"
                )
            if action == "update" and row.get("email_changed"):
                self.add_dependency(
                    result,
                    "cascade_operations",
                    {
                        "operation": "update_profiles",
                        "table": "profiles",
                        "condition": f"user_id = {row.get('user_id')}",
                        "updates": {"email": row.get("new_email")},
                    },
                    "Cascade email update to profile",
                    0.95,
                )

        if self._refers_to(constraint, "subscription"):
            if row.get("subscription_status") == "canceled":
                result.warnings.append("Subscription cancellation may affect related services")
                self.add_dependency(
                    result,
                    "cascade_operations",
                    {
                        "operation": "update_features",
                        "table": "user_features",
                        "condition": f"subscription_id = {row.get('subscription_id')}",
                        "updates": {"enabled": False},
                    },
                    "Disable features for canceled subscription",
                    0.9,
                )

        return result

    @staticmethod
    def _refers_to(constraint: IntegrityRule, entity: str) -> bool:
        return entity in (constraint.referenced_table or "").lower() or (
            f"{entity}_id" in _columns(constraint)
        )


MAKERKIT_HANDLERS: tuple[type[ConstraintHandler], ...] = (
    CrossTableHandler,
    BusinessRuleHandler,
    ConditionalForeignKeyHandler,
    HierarchicalHandler,
    CascadeHandler,
)
