"""Handlers for account, membership, role and billing constraint idioms.

These encode well known multi-tenant SaaS rules (personal accounts have no
slug, owners carry an owner flag, account type agrees with the personal/team
flag, ...). They are hard-coded, not derived from discovered triggers.
"""

import re
import uuid
from datetime import datetime, timezone
from typing import Any

from seed_intel.constraints.handlers.base import ConstraintHandler
from seed_intel.models import ConstraintHandlingResult, IntegrityRule

SLUG_MAX_LENGTH = 50

ACCOUNT_TYPES = ("personal", "team", "organization", "enterprise")
ROLES = ("owner", "admin", "member", "viewer", "billing", "support")
SUBSCRIPTION_STATUSES = ("active", "canceled", "past_due", "trialing", "incomplete")
BILLING_CYCLES = ("monthly", "yearly", "weekly", "daily")
BILLING_INTERVALS = ("month", "year", "week", "day")
INVITATION_STATUSES = ("pending", "accepted", "declined", "expired")


def _name(constraint: IntegrityRule) -> str:
    return constraint.name.lower()


def _clause(constraint: IntegrityRule) -> str:
    return constraint.condition.lower()


def normalize_slug(value: str) -> str:
    """
    Normalize text into a URL slug.

    Example:
        >>> normalize_slug("  Acme Corp!! ")
        'acme-corp'
    """
    slug = value.lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    slug = slug.strip("-")
    return slug[:SLUG_MAX_LENGTH]


class PersonalAccountSlugHandler(ConstraintHandler):
    """Personal accounts must have a NULL slug."""

    id = "personal_account_slug"
    constraint_type = "check"
    priority = 100
    description = "Personal accounts must have a null slug"

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        # Team rows belong to TeamAccountSlugHandler
        if row.get("is_personal_account") is False:
            return False
        clause = _clause(constraint)
        return "accounts_slug_null_if_personal" in _name(constraint) or (
            "is_personal_account" in clause and "slug" in clause
        )

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)

        if row.get("is_personal_account") is True and row.get("slug") is not None:
            self.set_field(result, "slug", None, "Personal accounts must have null slug", 0.95)

        # Rows without the flag are treated as personal (profile-style) accounts
        if "is_personal_account" not in row:
            self.set_field(
                result,
                "is_personal_account",
                True,
                "Default to personal account for profile compatibility",
                0.85,
            )
            self.set_field(result, "slug", None, "Set slug to null for personal account", 0.95)

        return result


class TeamAccountSlugHandler(ConstraintHandler):
    """Team accounts need a normalized, unique slug."""

    id = "team_account_slug"
    constraint_type = "check"
    priority = 95
    description = "Generate and normalize slugs for team accounts"

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        name = _name(constraint)
        clause = _clause(constraint)
        return (
            "accounts_slug" in name
            or "team_slug" in name
            or ("slug" in clause and "is_personal_account" in clause)
        )

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        if row.get("is_personal_account") is not False:
            return result

        slug = row.get("slug")
        if not slug:
            base = row.get("name") or row.get("organization_name") or row.get("account_name")
            generated = f"{normalize_slug(base or 'team') or 'team'}-{uuid.uuid4().hex[:6]}"
            self.set_field(result, "slug", generated, "Generated unique slug for team account", 0.9)
        else:
            normalized = normalize_slug(str(slug))
            if normalized != slug:
                self.set_field(
                    result,
                    "slug",
                    normalized,
                    "Normalized slug format for team account",
                    0.95,
                    kind="transform_value",
                )
        return result


class AccountTypeHandler(ConstraintHandler):
    """Account type must agree with the personal/team flag."""

    id = "account_type"
    constraint_type = "check"
    priority = 90
    description = "Keep account_type consistent with is_personal_account"

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        clause = _clause(constraint)
        return (
            "account_type" in _name(constraint)
            or "account_type" in clause
            or "is_personal_account" in clause
        )

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        account_type = row.get("account_type")

        if row.get("is_personal_account") is True:
            if account_type and account_type != "personal":
                self.set_field(
                    result,
                    "account_type",
                    "personal",
                    "Account type must be personal when is_personal_account is true",
                    0.95,
                )
        elif row.get("is_personal_account") is False:
            if not account_type or account_type == "personal":
                self.set_field(
                    result,
                    "account_type",
                    "team",
                    "Default to team account type when is_personal_account is false",
                    0.85,
                )

        current = result.modified_row.get("account_type")
        if current and current not in ACCOUNT_TYPES:
            self.set_field(
                result,
                "account_type",
                "personal",
                "Invalid account type, defaulting to personal",
                0.8,
            )
        return result


class OrganizationMemberHandler(ConstraintHandler):
    """(organization_id, user_id) membership uniqueness."""

    id = "organization_member"
    constraint_type = "unique"
    priority = 90
    description = "Organization membership uniqueness"

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        return "organization_member" in _name(constraint) or (
            "organization_id" in constraint.columns and "user_id" in constraint.columns
        )

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        if not row.get("organization_id") or not row.get("user_id"):
            result.warnings.append(
                "Organization member requires both organization_id and user_id"
            )
        return result


class UserRoleHandler(ConstraintHandler):
    """Valid member roles; owner role requires the owner flag."""

    id = "user_role"
    constraint_type = "check"
    priority = 85
    description = "Validate member roles and the owner flag"

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        name = _name(constraint)
        return "user_role" in name or "member_role" in name or "role" in _clause(constraint)

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        role = row.get("role")

        if role and role not in ROLES:
            self.set_field(result, "role", "member", "Invalid role, defaulting to member", 0.8)
        elif not role:
            default = "owner" if row.get("is_owner") else "member"
            basis = "owner status" if row.get("is_owner") else "member status"
            self.set_field(result, "role", default, f"Set default role based on {basis}", 0.9)

        if result.modified_row.get("role") == "owner" and row.get("is_owner") is not True:
            self.set_field(
                result, "is_owner", True, "Owner role requires is_owner flag to be true", 0.95
            )
        return result


class SubscriptionStatusHandler(ConstraintHandler):
    """Subscription status must be one of the billing provider statuses."""

    id = "subscription_status"
    constraint_type = "check"
    priority = 85
    description = "Validate subscription status"

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        clause = _clause(constraint)
        return "subscription_status" in _name(constraint) or (
            "status" in clause and "active" in clause
        )

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        status = row.get("status")
        if status and status not in SUBSCRIPTION_STATUSES:
            self.set_field(
                result, "status", "active", "Invalid subscription status, defaulting to active", 0.8
            )
        elif not status:
            self.set_field(result, "status", "active", "Set default subscription status", 0.9)
        return result


class OrganizationOwnerHandler(ConstraintHandler):
    """One owner per organization; owners carry the owner role."""

    id = "organization_owner"
    constraint_type = "unique"
    priority = 85
    description = "Organization ownership consistency"

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        name = _name(constraint)
        columns = constraint.columns
        return (
            "organization_owner" in name
            or "account_owner" in name
            or (
                "organization_id" in columns
                and ("is_owner" in columns or "owner_id" in columns)
            )
        )

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        if row.get("is_owner") is True and not row.get("organization_id"):
            result.warnings.append("Owner flag set but no organization_id provided")
        if row.get("is_owner") is True and row.get("role") and row["role"] != "owner":
            self.set_field(
                result, "role", "owner", "Role must be owner when is_owner is true", 0.95
            )
        return result


class BillingCycleHandler(ConstraintHandler):
    """Billing cycle and interval values."""

    id = "billing_cycle"
    constraint_type = "check"
    priority = 80
    description = "Validate billing cycles and intervals"

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        name = _name(constraint)
        clause = _clause(constraint)
        return (
            "billing_cycle" in name
            or "interval" in name
            or "billing" in clause
            or "interval" in clause
        )

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        cycle = row.get("billing_cycle")
        interval = row.get("interval")

        if cycle and cycle not in BILLING_CYCLES:
            self.set_field(
                result,
                "billing_cycle",
                "monthly",
                "Invalid billing cycle, defaulting to monthly",
                0.85,
            )
        if interval and interval not in BILLING_INTERVALS:
            self.set_field(
                result, "interval", "month", "Invalid interval, defaulting to month", 0.85
            )
        if not cycle and not interval:
            self.set_field(result, "billing_cycle", "monthly", "Set default billing cycle", 0.9)
        return result


class InvitationStatusHandler(ConstraintHandler):
    """Invitation status values and expiry."""

    id = "invitation_status"
    constraint_type = "check"
    priority = 75
    description = "Validate invitation status and expire stale invitations"

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        name = _name(constraint)
        clause = _clause(constraint)
        return (
            "invitation_status" in name
            or "invite_status" in name
            or (
                "status" in clause
                and ("pending" in clause or "accepted" in clause or "declined" in clause)
            )
        )

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        status = row.get("status")

        if status and status not in INVITATION_STATUSES:
            self.set_field(
                result,
                "status",
                "pending",
                "Invalid invitation status, defaulting to pending",
                0.85,
            )
        elif not status:
            self.set_field(result, "status", "pending", "Set default invitation status", 0.9)

        expires_at = _as_datetime(row.get("expires_at"))
        if (
            result.modified_row.get("status") == "pending"
            and expires_at is not None
            and expires_at < datetime.now(timezone.utc)
        ):
            self.set_field(
                result,
                "status",
                "expired",
                "Invitation has expired based on expires_at date",
                0.95,
            )
        return result


def _as_datetime(value: Any) -> datetime | None:
    """Parse a datetime or ISO 8601 string (naive values are taken as UTC)."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


ACCOUNT_HANDLERS: tuple[type[ConstraintHandler], ...] = (
    PersonalAccountSlugHandler,
    TeamAccountSlugHandler,
    AccountTypeHandler,
    OrganizationMemberHandler,
    UserRoleHandler,
    SubscriptionStatusHandler,
    OrganizationOwnerHandler,
    BillingCycleHandler,
    InvitationStatusHandler,
)
