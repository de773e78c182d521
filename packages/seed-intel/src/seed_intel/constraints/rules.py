"""Rule pattern matcher for trigger function bodies.

Recognized idioms (over the token stream produced by the tokenizer)::

    EXISTS_GUARD       IF [NOT] EXISTS ( SELECT ... FROM t [alias] [WHERE c = v [AND ...]] )
                       THEN ... RAISE [EXCEPTION] 'msg' ...
    CONDITION_RAISE    IF <predicate> THEN ... RAISE [EXCEPTION] 'msg' ...
    CONDITIONAL_LOOKUP SELECT|PERFORM ... FROM t ... [WHERE c = v ...]   (inside an IF block)
    ROW_ASSIGNMENT     NEW.c := <expr> ;
    CASCADE_INSERT     INSERT INTO t ...

Anything else is ignored. A body that matches nothing yields an empty list,
which is the normal outcome for most functions.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from seed_intel.constraints.tokenizer import Token, render, tokenize
from seed_intel.models import AutoFixSuggestion

logger = logging.getLogger(__name__)

EXISTS_GUARD = "exists_guard"
CONDITION_RAISE = "condition_raise"
CONDITIONAL_LOOKUP = "conditional_lookup"
ROW_ASSIGNMENT = "row_assignment"
CASCADE_INSERT = "cascade_insert"

# Pattern matches are not proofs: confidence is fixed per idiom
IDIOM_CONFIDENCE = {
    EXISTS_GUARD: 0.9,
    CONDITION_RAISE: 0.85,
    ROW_ASSIGNMENT: 0.75,
    CONDITIONAL_LOOKUP: 0.7,
    CASCADE_INSERT: 0.6,
}
SET_FIELD_FIX_CONFIDENCE = 0.8
SKIP_OPERATION_FIX_CONFIDENCE = 0.6
CREATE_DEPENDENCY_FIX_CONFIDENCE = 0.6
NULL_CHECK_FIX_CONFIDENCE = 0.5
CASCADE_INSERT_FIX_CONFIDENCE = 0.6

_NO_VALUE = object()


@dataclass(frozen=True)
class Equality:
    """`column = value` condition inside a lookup."""

    column: str
    value: Any
    literal: bool


@dataclass(frozen=True)
class Lookup:
    """SELECT/PERFORM ... FROM table WHERE ... found in a body."""

    table: str
    conditions: tuple[Equality, ...]
    start: int
    end: int


@dataclass(frozen=True)
class RuleMatch:
    """
    One recognized idiom, independent of the table it will be bound to.

    Attributes:
        idiom: Idiom name (e.g. "exists_guard")
        rule_type: validation, transformation, dependency or business_logic
        action: allow, deny, modify or require
        condition: Normalized textual predicate
        confidence: Fixed per-idiom confidence
        source: Raw matched source text
        position: Offset of the match in the source (for stable ordering)
        referenced_tables: Tables the rule reads from
        error_message: RAISE message, if any
        auto_fix: Suggested correction, if any
        required: Whether referenced tables must be populated first
        creates_rows_in: Tables the function inserts into
    """

    idiom: str
    rule_type: str
    action: str
    condition: str
    confidence: float
    source: str
    position: int
    referenced_tables: tuple[str, ...] = ()
    error_message: str | None = None
    auto_fix: AutoFixSuggestion | None = None
    required: bool = False
    creates_rows_in: tuple[str, ...] = ()


@dataclass
class _IfBlock:
    start: int
    condition: tuple[int, int]
    body: tuple[int, int]
    end: int
    nested: list[tuple[int, int]] = field(default_factory=list)


class RulePatternMatcher:
    """
    Match the idiom grammar against a function body.

    Example:
        >>> matcher = RulePatternMatcher()
        >>> [m.idiom for m in matcher.match(
        ...     "IF NOT EXISTS (SELECT 1 FROM accounts WHERE is_personal_account = true) "
        ...     "THEN RAISE EXCEPTION 'no personal account'; END IF;"
        ... )]
        ['exists_guard']
    """

    def match(self, text: str) -> list[RuleMatch]:
        """
        Find every recognized idiom in text.

        Args:
            text: Function body or full function definition

        Returns:
            Matches ordered by source position (deterministic)
        """
        tokens = tokenize(text)
        blocks = self._if_blocks(tokens)
        consumed: set[int] = set()
        matches: list[RuleMatch] = []

        for block in blocks:
            match = self._match_raise_block(text, tokens, block, consumed)
            if match is not None:
                matches.append(match)

        for block in blocks:
            for lookup in self._lookups(tokens, *block.condition) + self._lookups(
                tokens, *block.body
            ):
                if lookup.start in consumed:
                    continue
                consumed.add(lookup.start)
                matches.append(self._lookup_rule(text, tokens, lookup))

        matches.extend(self._assignments(text, tokens, blocks))
        matches.extend(self._inserts(text, tokens, blocks))

        matches.sort(key=lambda m: (m.position, m.idiom))
        if not matches:
            logger.debug("No rule idiom recognized in function body")
        return matches

    # Block structure

    def _if_blocks(self, tokens: list[Token]) -> list[_IfBlock]:
        """Locate IF/ELSIF blocks: condition span, body span, nesting."""
        blocks = []
        for index, token in enumerate(tokens):
            if not token.is_keyword("IF", "ELSIF"):
                continue
            if token.is_keyword("IF") and index > 0 and tokens[index - 1].is_keyword("END"):
                continue
            then_index = self._find_then(tokens, index + 1)
            if then_index is None:
                continue
            body_end = self._find_block_end(tokens, then_index + 1)
            blocks.append(
                _IfBlock(
                    start=index,
                    condition=(index + 1, then_index),
                    body=(then_index + 1, body_end),
                    end=body_end,
                )
            )
        for block in blocks:
            block.nested = [
                (other.start, other.end)
                for other in blocks
                if other is not block and block.body[0] <= other.start < block.body[1]
            ]
        return blocks

    @staticmethod
    def _find_then(tokens: list[Token], start: int) -> int | None:
        depth = 0
        for index in range(start, len(tokens)):
            token = tokens[index]
            if token.is_punct("("):
                depth += 1
            elif token.is_punct(")"):
                depth -= 1
            elif depth == 0 and token.is_keyword("THEN"):
                return index
            elif depth == 0 and token.is_punct(";"):
                return None
        return None

    @staticmethod
    def _find_block_end(tokens: list[Token], start: int) -> int:
        """Index of the ELSIF/ELSE/END IF closing a body (len(tokens) if unclosed)."""
        depth = 0
        for index in range(start, len(tokens)):
            token = tokens[index]
            previous = tokens[index - 1] if index > 0 else None
            if token.is_keyword("IF"):
                if previous is not None and previous.is_keyword("END"):
                    if depth == 0:
                        return index - 1
                    depth -= 1
                else:
                    depth += 1
            elif depth == 0 and token.is_keyword("ELSIF", "ELSE"):
                return index
        return len(tokens)

    # Idioms

    def _match_raise_block(
        self, text: str, tokens: list[Token], block: _IfBlock, consumed: set[int]
    ) -> RuleMatch | None:
        message = self._raise_message(tokens, *block.body, skip=block.nested)
        if message is None:
            return None

        cond_start, cond_end = block.condition
        condition_tokens = tokens[cond_start:cond_end]
        source = text[tokens[block.start].start : tokens[min(block.end, len(tokens)) - 1].end]
        condition = render(condition_tokens)

        negated = bool(condition_tokens) and condition_tokens[0].is_keyword("NOT")
        exists_at = cond_start + 1 if negated else cond_start
        if (
            exists_at + 1 < cond_end
            and tokens[exists_at].is_keyword("EXISTS")
            and tokens[exists_at + 1].is_punct("(")
        ):
            lookups = self._lookups(tokens, exists_at + 2, cond_end)
            if lookups:
                lookup = lookups[0]
                consumed.add(lookup.start)
                return RuleMatch(
                    idiom=EXISTS_GUARD,
                    rule_type="validation",
                    action="deny",
                    condition=condition,
                    confidence=IDIOM_CONFIDENCE[EXISTS_GUARD],
                    source=source,
                    position=tokens[block.start].start,
                    referenced_tables=(lookup.table,),
                    error_message=message,
                    auto_fix=self._guard_fix(lookup, negated),
                    required=negated,
                )

        lookups = self._lookups(tokens, cond_start, cond_end)
        for lookup in lookups:
            consumed.add(lookup.start)
        return RuleMatch(
            idiom=CONDITION_RAISE,
            rule_type="validation",
            action="deny",
            condition=condition,
            confidence=IDIOM_CONFIDENCE[CONDITION_RAISE],
            source=source,
            position=tokens[block.start].start,
            referenced_tables=tuple(dict.fromkeys(lookup.table for lookup in lookups)),
            error_message=message,
            auto_fix=self._null_check_fix(condition_tokens),
        )

    def _lookup_rule(self, text: str, tokens: list[Token], lookup: Lookup) -> RuleMatch:
        source = text[tokens[lookup.start].start : tokens[lookup.end - 1].end]
        payload: dict[str, Any] = {"table": lookup.table}
        literal = [c for c in lookup.conditions if c.literal]
        if literal:
            payload["values"] = {c.column: c.value for c in literal}
        return RuleMatch(
            idiom=CONDITIONAL_LOOKUP,
            rule_type="dependency",
            action="require",
            condition=render(tokens[lookup.start : lookup.end]),
            confidence=IDIOM_CONFIDENCE[CONDITIONAL_LOOKUP],
            source=source,
            position=tokens[lookup.start].start,
            referenced_tables=(lookup.table,),
            auto_fix=AutoFixSuggestion(
                kind="create_dependency",
                payload=payload,
                confidence=CREATE_DEPENDENCY_FIX_CONFIDENCE,
            ),
            required=True,
        )

    def _assignments(
        self, text: str, tokens: list[Token], blocks: list[_IfBlock]
    ) -> list[RuleMatch]:
        matches = []
        for index in range(len(tokens) - 3):
            if not (
                tokens[index].is_keyword("NEW")
                and tokens[index + 1].is_punct(".")
                and tokens[index + 2].kind == "IDENT"
                and tokens[index + 3].kind == "OPERATOR"
                and tokens[index + 3].value in (":=", "=")
            ):
                continue
            # "NEW.x = y" is an assignment only as a statement, not inside a condition
            if tokens[index + 3].value == "=" and not self._starts_statement(tokens, index):
                continue
            end = self._statement_end(tokens, index + 4)
            column = tokens[index + 2].value
            expression = render(tokens[index + 4 : end])
            guard = self._enclosing_condition(tokens, blocks, index)
            matches.append(
                RuleMatch(
                    idiom=ROW_ASSIGNMENT,
                    rule_type="transformation",
                    action="modify",
                    condition=f"{guard} => NEW.{column} := {expression}"
                    if guard
                    else f"NEW.{column} := {expression}",
                    confidence=IDIOM_CONFIDENCE[ROW_ASSIGNMENT],
                    source=text[tokens[index].start : tokens[end - 1].end],
                    position=tokens[index].start,
                )
            )
        return matches

    def _inserts(self, text: str, tokens: list[Token], blocks: list[_IfBlock]) -> list[RuleMatch]:
        matches = []
        for index in range(len(tokens) - 2):
            if not (tokens[index].is_keyword("INSERT") and tokens[index + 1].is_keyword("INTO")):
                continue
            table, _ = self._table_name(tokens, index + 2)
            if table is None:
                continue
            end = self._statement_end(tokens, index + 2)
            guard = self._enclosing_condition(tokens, blocks, index)
            matches.append(
                RuleMatch(
                    idiom=CASCADE_INSERT,
                    rule_type="business_logic",
                    action="modify",
                    condition=(
                        f"{guard} => INSERT INTO {table}" if guard else f"INSERT INTO {table}"
                    ),
                    confidence=IDIOM_CONFIDENCE[CASCADE_INSERT],
                    source=text[tokens[index].start : tokens[end - 1].end],
                    position=tokens[index].start,
                    auto_fix=AutoFixSuggestion(
                        kind="modify_workflow",
                        payload={"creates_rows_in": table},
                        confidence=CASCADE_INSERT_FIX_CONFIDENCE,
                    ),
                    creates_rows_in=(table,),
                )
            )
        return matches

    # Helpers

    @staticmethod
    def _raise_message(
        tokens: list[Token], start: int, end: int, skip: list[tuple[int, int]]
    ) -> str | None:
        """RAISE message of a body, ignoring RAISEs that belong to nested blocks."""
        for index in range(start, min(end, len(tokens))):
            if not tokens[index].is_keyword("RAISE"):
                continue
            if any(low <= index < high for low, high in skip):
                continue
            following = index + 1
            if following < end and tokens[following].is_keyword("EXCEPTION"):
                following += 1
            # RAISE NOTICE/WARNING are not failures
            elif following < end and tokens[following].kind == "IDENT":
                continue
            if following < end and tokens[following].kind == "STRING":
                return tokens[following].value
            return ""
        return None

    def _lookups(self, tokens: list[Token], start: int, end: int) -> list[Lookup]:
        """Find SELECT/PERFORM ... FROM t [WHERE ...] spans between start and end."""
        lookups = []
        index = start
        while index < end:
            token = tokens[index]
            if not token.is_keyword("SELECT", "PERFORM"):
                index += 1
                continue
            lookup = self._parse_lookup(tokens, index, end)
            if lookup is None:
                index += 1
                continue
            lookups.append(lookup)
            index = lookup.end
        return lookups

    def _parse_lookup(self, tokens: list[Token], start: int, limit: int) -> Lookup | None:
        depth = 0
        stop = limit
        from_index = None
        for index in range(start + 1, limit):
            token = tokens[index]
            if token.is_punct("("):
                depth += 1
            elif token.is_punct(")"):
                if depth == 0:
                    stop = index
                    break
                depth -= 1
            elif depth == 0 and token.is_punct(";"):
                stop = index
                break
            elif depth == 0 and token.is_keyword("THEN"):
                stop = index
                break
            elif depth == 0 and from_index is None and token.is_keyword("FROM"):
                from_index = index
        if from_index is None:
            return None

        table, after_table = self._table_name(tokens, from_index + 1)
        if table is None:
            return None

        conditions = []
        where_index = next(
            (i for i in range(after_table, stop) if tokens[i].is_keyword("WHERE")), None
        )
        if where_index is not None:
            conditions = self._equalities(tokens, where_index + 1, stop)
        return Lookup(table=table, conditions=tuple(conditions), start=start, end=stop)

    @staticmethod
    def _table_name(tokens: list[Token], index: int) -> tuple[str | None, int]:
        """Read [schema.]table at index; returns (table, index after it)."""
        if index >= len(tokens) or tokens[index].kind != "IDENT":
            return None, index
        name = tokens[index].value
        index += 1
        if (
            index + 1 < len(tokens)
            and tokens[index].is_punct(".")
            and tokens[index + 1].kind == "IDENT"
        ):
            name = tokens[index + 1].value
            index += 2
        return name, index

    def _equalities(self, tokens: list[Token], start: int, end: int) -> list[Equality]:
        """Parse `[alias.]col = value` terms joined by AND at depth 0."""
        terms: list[list[Token]] = [[]]
        depth = 0
        for token in tokens[start:end]:
            if token.is_punct("("):
                depth += 1
            elif token.is_punct(")"):
                depth -= 1
            if depth == 0 and token.is_keyword("AND"):
                terms.append([])
            else:
                terms[-1].append(token)

        equalities = []
        for term in terms:
            operator_at = next(
                (i for i, t in enumerate(term) if t.kind == "OPERATOR" and t.value == "="), None
            )
            if operator_at is None:
                continue
            left, right = term[:operator_at], term[operator_at + 1 :]
            if not left or left[-1].kind != "IDENT":
                continue
            value = self._literal(right)
            if value is _NO_VALUE:
                equalities.append(Equality(left[-1].value, render(right), literal=False))
            else:
                equalities.append(Equality(left[-1].value, value, literal=True))
        return equalities

    @staticmethod
    def _literal(tokens: list[Token]) -> Any:
        """Convert a literal (with optional ::cast) to a Python value."""
        if len(tokens) >= 2 and tokens[-2].kind == "OPERATOR" and tokens[-2].value == "::":
            tokens = tokens[:-2]
        if len(tokens) != 1:
            return _NO_VALUE
        token = tokens[0]
        if token.kind == "STRING":
            return token.value
        if token.kind == "NUMBER":
            return float(token.value) if "." in token.value else int(token.value)
        if token.is_keyword("TRUE"):
            return True
        if token.is_keyword("FALSE"):
            return False
        if token.is_keyword("NULL"):
            return None
        return _NO_VALUE

    @staticmethod
    def _guard_fix(lookup: Lookup, negated: bool) -> AutoFixSuggestion:
        if negated:
            literal = [c for c in lookup.conditions if c.literal]
            if literal:
                first = literal[0]
                return AutoFixSuggestion(
                    kind="set_field",
                    payload={"table": lookup.table, "field": first.column, "value": first.value},
                    confidence=SET_FIELD_FIX_CONFIDENCE,
                )
            return AutoFixSuggestion(
                kind="create_dependency",
                payload={"table": lookup.table},
                confidence=CREATE_DEPENDENCY_FIX_CONFIDENCE,
            )
        return AutoFixSuggestion(
            kind="skip_operation",
            payload={"table": lookup.table, "reason": "matching row already exists"},
            confidence=SKIP_OPERATION_FIX_CONFIDENCE,
        )

    @staticmethod
    def _null_check_fix(condition: list[Token]) -> AutoFixSuggestion | None:
        """Fix for `NEW.c IS NULL` / `NEW.c IS NOT NULL` guards."""
        values = [t.value for t in condition]
        if len(values) == 5 and values[:2] == ["NEW", "."] and values[3:] == ["IS", "NULL"]:
            return AutoFixSuggestion(
                kind="modify_workflow",
                payload={"field": values[2], "action": "provide_value"},
                confidence=NULL_CHECK_FIX_CONFIDENCE,
            )
        if len(values) == 6 and values[:2] == ["NEW", "."] and values[3:] == ["IS", "NOT", "NULL"]:
            return AutoFixSuggestion(
                kind="set_field",
                payload={"field": values[2], "value": None},
                confidence=NULL_CHECK_FIX_CONFIDENCE,
            )
        return None

    @staticmethod
    def _starts_statement(tokens: list[Token], index: int) -> bool:
        if index == 0:
            return True
        previous = tokens[index - 1]
        return previous.is_punct(";") or previous.is_keyword("THEN", "ELSE", "BEGIN", "LOOP")

    @staticmethod
    def _statement_end(tokens: list[Token], start: int) -> int:
        depth = 0
        for index in range(start, len(tokens)):
            token = tokens[index]
            if token.is_punct("("):
                depth += 1
            elif token.is_punct(")"):
                depth -= 1
            elif depth == 0 and token.is_punct(";"):
                return index
        return len(tokens)

    @staticmethod
    def _enclosing_condition(tokens: list[Token], blocks: list[_IfBlock], index: int) -> str:
        """Condition of the innermost IF block whose body contains index."""
        enclosing = [b for b in blocks if b.body[0] <= index < b.body[1]]
        if not enclosing:
            return ""
        innermost = max(enclosing, key=lambda b: b.start)
        return render(tokens[innermost.condition[0] : innermost.condition[1]])
