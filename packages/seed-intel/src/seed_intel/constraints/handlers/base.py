"""Base constraint handler interface."""

from abc import ABC, abstractmethod
from typing import Any

from seed_intel.models import (
    ConstraintFix,
    ConstraintHandlingResult,
    ConstraintType,
    IntegrityRule,
)


class ConstraintHandler(ABC):
    """
    Base class for constraint handlers.

    A handler recognizes one shape of database constraint and rewrites a
    candidate row so that it satisfies it. Handlers are stateless across
    calls.

    Subclasses set `id`, `constraint_type`, `priority` and `description`,
    and implement `can_handle` and `handle`.

    Example:
        >>> class PositivePriceHandler(ConstraintHandler):
        ...     id = "positive_price"
        ...     constraint_type = "check"
        ...     priority = 50
        ...     description = "Force price > 0"
        ...
        ...     def can_handle(self, constraint, row):
        ...         return "price > 0" in constraint.condition
        ...
        ...     def handle(self, constraint, row):
        ...         result = self.new_result(row)
        ...         if row.get("price", 0) <= 0:
        ...             self.set_field(result, "price", 1, "Price must be positive", 0.9)
        ...         return result
        >>>
        >>> register_handler(PositivePriceHandler())
    """

    id: str = ""
    constraint_type: ConstraintType = "check"
    priority: int = 0
    description: str = ""
    is_generic: bool = False

    @abstractmethod
    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        """
        Check if this handler recognizes the constraint.

        Args:
            constraint: Integrity rule
            row: Candidate row (may be ignored)

        Returns:
            True if handle() should be used for this constraint
        """
        pass

    @abstractmethod
    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        """
        Rewrite row so that it satisfies the constraint.

        Args:
            constraint: Integrity rule
            row: Candidate row (never mutated)

        Returns:
            ConstraintHandlingResult with the modified row and applied fixes
        """
        pass

    def new_result(self, row: dict[str, Any]) -> ConstraintHandlingResult:
        """Start a successful, unmodified result for row."""
        return ConstraintHandlingResult(
            success=True,
            original_row=dict(row),
            modified_row=dict(row),
            handler_id=self.id,
        )

    @staticmethod
    def set_field(
        result: ConstraintHandlingResult,
        field: str,
        value: Any,
        reason: str,
        confidence: float,
        kind: str = "set_field",
    ) -> None:
        """Set a field on the modified row and record the fix."""
        old_value = result.modified_row.get(field)
        result.modified_row[field] = value
        result.applied_fixes.append(
            ConstraintFix(
                kind=kind,
                field=field,
                old_value=old_value,
                new_value=value,
                reason=reason,
                confidence=confidence,
            )
        )

    @staticmethod
    def add_dependency(
        result: ConstraintHandlingResult,
        target: str,
        payload: dict[str, Any],
        reason: str,
        confidence: float,
    ) -> None:
        """Record rows that must exist (or change) alongside this row."""
        result.applied_fixes.append(
            ConstraintFix(
                kind="add_dependency",
                field=target,
                new_value=payload,
                reason=reason,
                confidence=confidence,
            )
        )
