"""Constraint handler registry and dispatch."""

import logging
from typing import Any, get_args

from seed_intel.constraints.handlers.accounts import ACCOUNT_HANDLERS
from seed_intel.constraints.handlers.base import ConstraintHandler
from seed_intel.constraints.handlers.generic import GENERIC_HANDLERS
from seed_intel.constraints.handlers.makerkit import MAKERKIT_HANDLERS
from seed_intel.exceptions import HandlerRegistrationError
from seed_intel.models import ConstraintHandlingResult, ConstraintType, IntegrityRule

logger = logging.getLogger(__name__)

CONSTRAINT_TYPES = get_args(ConstraintType)

DEFAULT_HANDLERS = ACCOUNT_HANDLERS + MAKERKIT_HANDLERS + GENERIC_HANDLERS


class ConstraintHandlerRegistry:
    """
    Priority-ordered constraint handlers.

    Handlers are kept sorted by (constraint type, descending priority, id).
    Dispatch runs the first specific handler whose can_handle() matches,
    otherwise the generic handler of the constraint type, otherwise it
    reports that the constraint must be bypassed.
    """

    def __init__(self, handlers: list[ConstraintHandler] | None = None):
        self._handlers: list[ConstraintHandler] = []
        for handler in handlers or []:
            self.register(handler)

    @classmethod
    def with_defaults(cls) -> "ConstraintHandlerRegistry":
        """Create a registry with the built-in account, MakerKit and generic handlers."""
        return cls([handler() for handler in DEFAULT_HANDLERS])

    def register(self, handler: ConstraintHandler) -> None:
        """
        Register a handler (replacing one with the same id).

        Args:
            handler: Handler instance

        Raises:
            HandlerRegistrationError: If the handler has no id or an unknown type
        """
        if not handler.id:
            raise HandlerRegistrationError(type(handler).__name__, "handler id is empty")
        if handler.constraint_type not in CONSTRAINT_TYPES:
            raise HandlerRegistrationError(
                handler.id, f"unknown constraint type '{handler.constraint_type}'"
            )

        self._handlers = [h for h in self._handlers if h.id != handler.id]
        self._handlers.append(handler)
        self._handlers.sort(key=lambda h: (h.constraint_type, -h.priority, h.id))
        logger.debug(f"Registered constraint handler: {handler.id}")

    def unregister(self, handler_id: str) -> bool:
        """
        Remove a handler.

        Returns:
            True if a handler was removed
        """
        before = len(self._handlers)
        self._handlers = [h for h in self._handlers if h.id != handler_id]
        return len(self._handlers) != before

    def get(self, handler_id: str) -> ConstraintHandler | None:
        """Get handler by id."""
        return next((h for h in self._handlers if h.id == handler_id), None)

    def list_handlers(self, constraint_type: str | None = None) -> list[ConstraintHandler]:
        """List handlers in dispatch order, optionally for one constraint type."""
        return [
            h
            for h in self._handlers
            if constraint_type is None or h.constraint_type == constraint_type
        ]

    def clear(self) -> None:
        """Clear all registered handlers (for testing)."""
        self._handlers.clear()

    def find_handler(
        self, constraint: IntegrityRule, row: dict[str, Any]
    ) -> ConstraintHandler | None:
        """
        Select the handler dispatch would use.

        Returns:
            First matching specific handler, else the generic handler of the
            constraint type, else None
        """
        candidates = self.list_handlers(constraint.constraint_type)
        for handler in candidates:
            if not handler.is_generic and handler.can_handle(constraint, row):
                return handler
        return next((h for h in candidates if h.is_generic), None)

    def dispatch(
        self, constraint: IntegrityRule, row: dict[str, Any]
    ) -> ConstraintHandlingResult:
        """
        Run row through the handler selected for constraint.

        Handler failures are contained: the result reports the error and
        requires a bypass instead of raising.

        Args:
            constraint: Integrity rule
            row: Candidate row (never mutated)

        Returns:
            ConstraintHandlingResult
        """
        handler = self.find_handler(constraint, row)
        if handler is None:
            return ConstraintHandlingResult(
                success=False,
                original_row=dict(row),
                modified_row=dict(row),
                warnings=[f"No handler found for {constraint.constraint_type} constraint"],
                bypass_required=True,
            )

        try:
            return handler.handle(constraint, row)
        except Exception as e:
            logger.exception(f"Constraint handler {handler.id} failed on {constraint.name}")
            return ConstraintHandlingResult(
                success=False,
                original_row=dict(row),
                modified_row=dict(row),
                errors=[f"Handler error: {e}"],
                bypass_required=True,
                handler_id=handler.id,
            )

    def apply(
        self, constraints: list[IntegrityRule], row: dict[str, Any]
    ) -> ConstraintHandlingResult:
        """
        Thread one row through several constraints in order.

        Each constraint sees the row as modified by the previous ones. Fixes,
        warnings and errors are accumulated.

        Args:
            constraints: Integrity rules (usually all rules of one table)
            row: Candidate row

        Returns:
            Combined ConstraintHandlingResult
        """
        combined = ConstraintHandlingResult(
            success=True, original_row=dict(row), modified_row=dict(row)
        )
        for constraint in constraints:
            result = self.dispatch(constraint, combined.modified_row)
            combined.modified_row = result.modified_row
            combined.applied_fixes.extend(result.applied_fixes)
            combined.warnings.extend(result.warnings)
            combined.errors.extend(result.errors)
            combined.success = combined.success and result.success
            combined.bypass_required = combined.bypass_required or result.bypass_required
        return combined


# Global registry instance
_registry = ConstraintHandlerRegistry.with_defaults()


def register_handler(handler: ConstraintHandler) -> None:
    """
    Register a custom constraint handler (user-facing API).

    Args:
        handler: Handler instance

    Example:
        >>> from seed_intel import ConstraintHandler, register_handler
        >>>
        >>> class SkuFormatHandler(ConstraintHandler):
        ...     id = "sku_format"
        ...     constraint_type = "check"
        ...     priority = 60
        ...
        ...     def can_handle(self, constraint, row):
        ...         return "sku" in constraint.condition
        ...
        ...     def handle(self, constraint, row):
        ...         result = self.new_result(row)
        ...         self.set_field(result, "sku", row["sku"].upper(), "SKU is upper-case", 0.9)
        ...         return result
        >>>
        >>> register_handler(SkuFormatHandler())
    """
    _registry.register(handler)


def list_handlers(constraint_type: str | None = None) -> list[ConstraintHandler]:
    """List registered handlers in dispatch order."""
    return _registry.list_handlers(constraint_type)


def clear_handlers() -> None:
    """Clear all registered handlers (for testing)."""
    _registry.clear()


def get_registry() -> ConstraintHandlerRegistry:
    """Get the global handler registry."""
    return _registry


def reset_handlers() -> None:
    """Restore the built-in handlers (for testing)."""
    _registry.clear()
    for handler in DEFAULT_HANDLERS:
        _registry.register(handler())
