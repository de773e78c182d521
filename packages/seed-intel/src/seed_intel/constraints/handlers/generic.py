"""Generic fallback handlers, one per constraint type.

Generic handlers only run when no specific handler recognized the
constraint. They never rewrite values: they flag the row with warnings
(and errors for missing NOT NULL fields).
"""

import re
from typing import Any

from seed_intel.constraints.handlers.base import ConstraintHandler
from seed_intel.models import ConstraintHandlingResult, IntegrityRule

GENERIC_PRIORITY = 10

_NOT_NULL_PATTERN = re.compile(r"\(?(\w+)\)?\s+IS\s+NOT\s+NULL", re.IGNORECASE)
_LENGTH_PATTERN = re.compile(
    r"(?:char_)?length\s*\(\s*\(?(\w+)\)?(?:::\w+)?\s*\)\s*(>=|<=|>|<|=)\s*(\d+)",
    re.IGNORECASE,
)
_ANY_ARRAY_PATTERN = re.compile(r"\(?(\w+)\s*=\s*ANY\s*\(\s*ARRAY\[(.+?)\]\s*\)", re.IGNORECASE)
_IN_PATTERN = re.compile(r"(\w+)\s+IN\s+\((.+?)\)", re.IGNORECASE)

_COMPARE = {
    ">=": lambda a, b: a >= b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    "<": lambda a, b: a < b,
    "=": lambda a, b: a == b,
}


def parse_enum(clause: str) -> tuple[str, list[str]] | None:
    """
    Recognize `col IN ('a', 'b')` and `col = ANY (ARRAY['a'::text, ...])`.

    Example:
        >>> parse_enum("status IN ('pending', 'done')")
        ('status', ['pending', 'done'])
    """
    for pattern in (_ANY_ARRAY_PATTERN, _IN_PATTERN):
        match = pattern.search(clause)
        if match:
            values = re.findall(r"'([^']+)'", match.group(2))
            if values:
                return match.group(1), values
    return None


class GenericCheckHandler(ConstraintHandler):
    """Recognize NOT NULL, length and enum shapes inside CHECK clauses."""

    id = "generic_check"
    constraint_type = "check"
    priority = GENERIC_PRIORITY
    description = "Generic handler for check constraints"
    is_generic = True

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        return True

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        result.warnings.append(f"Generic handling for check constraint: {constraint.name}")
        clause = constraint.condition

        not_null = _NOT_NULL_PATTERN.search(clause)
        length = _LENGTH_PATTERN.search(clause)
        enum = parse_enum(clause)

        if not_null:
            field = not_null.group(1)
            if row.get(field) is None:
                result.warnings.append(
                    f"Field {field} should not be null according to constraint {constraint.name}"
                )
        elif length:
            field, operator, bound = length.group(1), length.group(2), int(length.group(3))
            value = row.get(field)
            if isinstance(value, str) and not _COMPARE[operator](len(value), bound):
                result.warnings.append(
                    f"Field {field} has length {len(value)}, constraint {constraint.name} "
                    f"requires length {operator} {bound}"
                )
            else:
                result.warnings.append(
                    f"Length constraint detected: {constraint.name} - "
                    "manual validation recommended"
                )
        elif enum:
            field, values = enum
            value = row.get(field)
            if value is not None and str(value) not in values:
                result.warnings.append(
                    f"Field {field} value {value!r} is not one of: {', '.join(values)}"
                )
            else:
                result.warnings.append(
                    f"Enum constraint detected: {constraint.name} - "
                    "validate against allowed values"
                )
        else:
            result.warnings.append(
                f"Complex check constraint may require manual review: {constraint.name}"
            )
        return result


class GenericForeignKeyHandler(ConstraintHandler):
    """Note whether the referenced row must exist."""

    id = "generic_foreign_key"
    constraint_type = "foreign_key"
    priority = GENERIC_PRIORITY
    description = "Generic handler for foreign key constraints"
    is_generic = True

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        return True

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        column = constraint.columns[0] if constraint.columns else constraint.name
        if row.get(column) is None:
            if (constraint.on_delete or "").upper() == "SET NULL":
                result.warnings.append(
                    f"Foreign key {column} is null, which is allowed by constraint"
                )
            else:
                result.warnings.append(
                    f"Foreign key {column} is null - ensure referenced record exists"
                )
        else:
            result.warnings.append(
                f"Foreign key {column} references "
                f"{constraint.referenced_table}.{constraint.referenced_column} "
                "- ensure target exists"
            )
        return result


class GenericUniqueHandler(ConstraintHandler):
    """Note missing or to-be-unique columns."""

    id = "generic_unique"
    constraint_type = "unique"
    priority = GENERIC_PRIORITY
    description = "Generic handler for unique constraints"
    is_generic = True

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        return True

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        missing = [column for column in constraint.columns if row.get(column) is None]
        if missing:
            result.warnings.append(
                f"Unique constraint {constraint.name} requires values for: {', '.join(missing)}"
            )
        else:
            result.warnings.append(
                f"Unique constraint {constraint.name} - ensure values are unique across: "
                f"{', '.join(constraint.columns)}"
            )
        return result


class GenericNotNullHandler(ConstraintHandler):
    """Fail rows that leave a NOT NULL column empty."""

    id = "generic_not_null"
    constraint_type = "not_null"
    priority = GENERIC_PRIORITY
    description = "Generic handler for not null constraints"
    is_generic = True

    def can_handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> bool:
        return True

    def handle(self, constraint: IntegrityRule, row: dict[str, Any]) -> ConstraintHandlingResult:
        result = self.new_result(row)
        column = constraint.columns[0] if constraint.columns else constraint.name
        if row.get(column) is None:
            result.success = False
            result.bypass_required = True
            result.errors.append(f"Field {column} cannot be null")
        return result


GENERIC_HANDLERS: tuple[type[ConstraintHandler], ...] = (
    GenericCheckHandler,
    GenericForeignKeyHandler,
    GenericUniqueHandler,
    GenericNotNullHandler,
)
