"""Small tokenizer for SQL and PL/pgSQL function bodies.

Produces a flat token stream for the rule pattern matcher. It is not a
parser: it only knows enough lexical structure (strings, quoted
identifiers, comments, dollar quotes, operators) to make pattern matching
robust against whitespace, case and comments.
"""

import re
from dataclasses import dataclass

KEYWORDS = frozenset(
    {
        "AND",
        "AS",
        "BEGIN",
        "DECLARE",
        "ELSE",
        "ELSIF",
        "END",
        "EXCEPTION",
        "EXISTS",
        "FALSE",
        "FOUND",
        "FROM",
        "IF",
        "IN",
        "INSERT",
        "INTO",
        "IS",
        "LOOP",
        "NEW",
        "NOT",
        "NULL",
        "OLD",
        "OR",
        "PERFORM",
        "RAISE",
        "RETURN",
        "SELECT",
        "SET",
        "THEN",
        "TRUE",
        "UPDATE",
        "USING",
        "VALUES",
        "WHERE",
    }
)

# Order matters: longer operators before their prefixes
_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<line_comment>--[^\n]*)
  | (?P<block_comment>/\*.*?\*/)
  | (?P<dollar>\$(?:[A-Za-z_][A-Za-z0-9_]*)?\$)
  | (?P<param>\$\d+)
  | (?P<string>[Ee]'(?:[^'\\]|\\.|'')*'|'(?:[^']|'')*')
  | (?P<quoted_ident>"(?:[^"]|"")+")
  | (?P<number>\d+(?:\.\d+)?)
  | (?P<word>[A-Za-z_][A-Za-z0-9_$]*)
  | (?P<operator>:=|::|<>|!=|>=|<=|\|\||[=<>+\-*/%])
  | (?P<punct>[(),;.\[\]])
    """,
    re.VERBOSE | re.DOTALL,
)

# Backslash escapes and doubled quotes of E'...' strings
_E_STRING_ESCAPE = re.compile(r"\\(.)|''", re.DOTALL)
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f"}


def _unescape(match: re.Match) -> str:
    char = match.group(1)
    if char is None:
        return "'"
    return _ESCAPES.get(char, char)


@dataclass(frozen=True)
class Token:
    """
    One lexical token.

    Attributes:
        kind: KEYWORD, IDENT, STRING, NUMBER, OPERATOR, PUNCT or PARAM
        value: Normalized value (keywords upper-cased, identifiers lower-cased,
            strings unquoted)
        start: Offset of the first character in the source text
        end: Offset after the last character in the source text
    """

    kind: str
    value: str
    start: int
    end: int

    def is_keyword(self, *words: str) -> bool:
        """Check if token is one of the given keywords."""
        return self.kind == "KEYWORD" and self.value in words

    def is_punct(self, char: str) -> bool:
        """Check if token is the given punctuation character."""
        return self.kind == "PUNCT" and self.value == char


def tokenize(text: str) -> list[Token]:
    """
    Split SQL/PL/pgSQL text into tokens.

    Whitespace, comments and dollar-quote delimiters are dropped. Characters
    the tokenizer does not know are skipped.

    Args:
        text: Function body or full CREATE FUNCTION definition

    Returns:
        Tokens in source order

    Example:
        >>> [t.value for t in tokenize("IF NOT EXISTS (SELECT 1) THEN")]
        ['IF', 'NOT', 'EXISTS', '(', 'SELECT', '1', ')', 'THEN']
    """
    tokens = []
    position = 0
    while position < len(text):
        match = _TOKEN_PATTERN.match(text, position)
        if match is None:
            position += 1
            continue

        kind = match.lastgroup
        raw = match.group()
        position = match.end()

        if kind in ("ws", "line_comment", "block_comment", "dollar"):
            continue
        if kind == "string":
            if raw[0] in "Ee":
                body = _E_STRING_ESCAPE.sub(_unescape, raw[2:-1])
            else:
                body = raw[1:-1].replace("''", "'")
            tokens.append(Token("STRING", body, match.start(), match.end()))
        elif kind == "quoted_ident":
            tokens.append(
                Token("IDENT", raw[1:-1].replace('""', '"'), match.start(), match.end())
            )
        elif kind == "word":
            upper = raw.upper()
            if upper in KEYWORDS:
                tokens.append(Token("KEYWORD", upper, match.start(), match.end()))
            else:
                tokens.append(Token("IDENT", raw.lower(), match.start(), match.end()))
        elif kind == "number":
            tokens.append(Token("NUMBER", raw, match.start(), match.end()))
        elif kind == "param":
            tokens.append(Token("PARAM", raw, match.start(), match.end()))
        elif kind == "operator":
            tokens.append(Token("OPERATOR", raw, match.start(), match.end()))
        else:
            tokens.append(Token("PUNCT", raw, match.start(), match.end()))
    return tokens


def render(tokens: list[Token]) -> str:
    """
    Render tokens back to a normalized single-line string.

    Strings are re-quoted, and no space is put around "." or inside
    parentheses.

    Example:
        >>> render(tokenize("NEW.slug   IS  NULL"))
        'NEW.slug IS NULL'
    """
    parts: list[str] = []
    previous: Token | None = None
    for token in tokens:
        text = token.value
        if token.kind == "STRING":
            text = "'" + token.value.replace("'", "''") + "'"
        glue = (
            previous is None
            or token.is_punct(".")
            or token.is_punct(")")
            or token.is_punct(",")
            or previous.is_punct(".")
            or previous.is_punct("(")
        )
        parts.append(text if glue else " " + text)
        previous = token
    return "".join(parts)
