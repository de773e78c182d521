"""Constraint handlers that rewrite candidate rows."""

from seed_intel.constraints.handlers.base import ConstraintHandler
from seed_intel.constraints.handlers.registry import (
    ConstraintHandlerRegistry,
    clear_handlers,
    get_registry,
    list_handlers,
    register_handler,
    reset_handlers,
)

__all__ = [
    "ConstraintHandler",
    "ConstraintHandlerRegistry",
    "register_handler",
    "list_handlers",
    "clear_handlers",
    "reset_handlers",
    "get_registry",
]
