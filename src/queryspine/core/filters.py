"""
Predicate translator: OData ``$filter`` expressions to parameterized SQL.

Turns a caller-supplied filter string into a :class:`PredicateFragment`,
an ``AND``-prefixed boolean SQL expression plus the bind parameters that
carry every literal value. The fragment composes directly against the
``WHERE 1=1`` base predicate emitted by the formatter.

Manifesto:
    Filter text comes from the outside world (query strings, API clients)
    and lands inside a SQL statement. Stripping "dangerous" words from it
    is a losing game, so nothing from the input is copied into SQL except
    validated identifiers and the operators of a fixed grammar.

    - **Allowlist, not denylist:** Only the grammar below compiles to SQL
    - **Values are parameters:** Every literal becomes a ``:fN`` bind value
    - **Defence in depth:** A final whole-token keyword scan rejects any
      rendered predicate containing a statement-altering keyword
    - **Fail fast:** Anything outside the grammar raises FilterSyntaxError
      before a connection is ever acquired

Architecture:
    ::

        "name eq 'a' and price gt 10; DROP TABLE x"
              │
              ▼  tokenize (stops at ';', logs filter_truncated)
        NAME(name) EQ STRING('a') AND NAME(price) GT NUMBER(10)
              │
              ▼  recursive descent
        or_expr   := and_expr ('or' and_expr)*
        and_expr  := not_expr ('and' not_expr)*
        not_expr  := 'not' not_expr | comparison
        comparison:= additive [(eq|ne|gt|ge|lt|le) additive
                               | 'in' '(' literal (',' literal)* ')']
        additive  := term (('add'|'sub') term)*
        term      := primary (('mul'|'div'|'mod') primary)*
        primary   := literal | identifier | function '(' args ')'
                   | '(' or_expr ')'
              │
              ▼  keyword guard
        PredicateFragment(sql="AND name = :f0 AND price > :f1",
                          parameters={"f0": "a", "f1": 10})

Examples:
    >>> fragment = translate_filter("name eq 'a'")
    >>> fragment.sql
    'AND name = :f0'
    >>> fragment.parameters
    {'f0': 'a'}
    >>> translate_filter("   ").sql
    ''
    >>> translate_filter("contains(name, '50%')").parameters
    {'f0': '%50\\\\%%'}

Tags:
    odata, filter, predicate, sql-injection, parameterized-sql, parser,
    query-spine

Doc-Types:
    - API Reference
    - Security Guide
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, NoReturn

from queryspine.core.dialect import Dialect, get_dialect
from queryspine.core.errors import FilterSyntaxError
from queryspine.core.logging import get_logger

logger = get_logger(__name__)


# Keywords that change what a statement does; never allowed as a token
STATEMENT_KEYWORDS = frozenset({
    "UPDATE",
    "DELETE",
    "INSERT",
    "EXEC",
    "EXECUTE",
    "DROP",
    "TRUNCATE",
    "TRUNC",
    "ALTER",
    "CREATE",
    "MERGE",
    "GRANT",
    "REVOKE",
    "UNION",
    "SELECT",
    "SHUTDOWN",
})

_KEYWORD_PATTERN = re.compile(
    r"\b(?:" + "|".join(sorted(STATEMENT_KEYWORDS)) + r")\b",
    re.IGNORECASE,
)

_COMPARISONS = {
    "eq": "=",
    "ne": "<>",
    "gt": ">",
    "ge": ">=",
    "lt": "<",
    "le": "<=",
}

_ADDITIVE = {"add": "+", "sub": "-"}
_MULTIPLICATIVE = {"mul": "*", "div": "/", "mod": "%"}

# name -> (LIKE pattern template, index of the column argument)
_LIKE_FUNCTIONS = {
    "contains": ("%{}%", 0),
    "substringof": ("%{}%", 1),
    "startswith": ("{}%", 0),
    "endswith": ("%{}", 0),
}

_DATE_PARTS = ("year", "month", "day", "hour", "minute", "second")

_RESERVED_WORDS = frozenset(
    {"and", "or", "not", "in", "true", "false", "null"}
    | set(_COMPARISONS)
    | set(_ADDITIVE)
    | set(_MULTIPLICATIVE)
)

_TOKEN_RE = re.compile(
    r"""
    (?P<WS>\s+)
  | (?P<STRING>'(?:[^']|'')*')
  | (?P<DATETIME>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(?::\d{2}(?:\.\d{1,7})?)?(?:Z|[+-]\d{2}:\d{2})?)
  | (?P<DATE>\d{4}-\d{2}-\d{2})
  | (?P<NUMBER>-?\d+(?:\.\d+)?)
  | (?P<NAME>[A-Za-z_][A-Za-z0-9_]*(?:/[A-Za-z_][A-Za-z0-9_]*)*)
  | (?P<LPAREN>\()
  | (?P<RPAREN>\))
  | (?P<COMMA>,)
  | (?P<SEMI>;)
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class PredicateFragment:
    """
    Sanitized boolean SQL fragment.

    ``sql`` is either ``""`` or ``"AND <expression>"``; ``parameters`` holds
    every literal value of the filter keyed by placeholder name.
    """

    sql: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)
    truncated: bool = False

    def __bool__(self) -> bool:
        return bool(self.sql)


EMPTY_PREDICATE = PredicateFragment()


@dataclass(frozen=True, slots=True)
class _Token:
    kind: str
    text: str
    pos: int

    @property
    def word(self) -> str:
        return self.text.lower() if self.kind == "NAME" else ""


@dataclass(frozen=True, slots=True)
class _Expr:
    sql: str
    boolean: bool
    # lowest-binding operator at the top of the expression
    precedence: str = "atom"
    is_null: bool = False
    literal: Any = None
    is_literal: bool = False


def _tokenize(text: str) -> tuple[list[_Token], int | None]:
    """Split ``text`` into tokens; returns the tokens and the ``;`` offset."""
    tokens: list[_Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise FilterSyntaxError(
                f"Unexpected character {text[pos]!r} at position {pos}",
                position=pos,
            )
        kind = match.lastgroup or ""
        if kind == "SEMI":
            return tokens, pos
        if kind != "WS":
            tokens.append(_Token(kind, match.group(), pos))
        pos = match.end()
    return tokens, None


class _FilterParser:
    """Recursive-descent parser rendering SQL while it parses."""

    def __init__(
        self,
        tokens: list[_Token],
        *,
        dialect: Dialect,
        param_prefix: str,
        reserved: Iterable[str],
        end: int,
    ) -> None:
        self._tokens = tokens
        self._index = 0
        self._dialect = dialect
        self._prefix = param_prefix
        self._reserved = {name.lower() for name in reserved}
        self._counter = 0
        self._end = end
        self.parameters: dict[str, Any] = {}

    # -- token helpers -----------------------------------------------------

    def _peek(self, offset: int = 0) -> _Token | None:
        index = self._index + offset
        return self._tokens[index] if index < len(self._tokens) else None

    def _advance(self) -> _Token:
        token = self._peek()
        if token is None:
            raise FilterSyntaxError("Unexpected end of filter expression", position=self._end)
        self._index += 1
        return token

    def _expect(self, kind: str, what: str) -> _Token:
        token = self._peek()
        if token is None or token.kind != kind:
            self._fail(f"Expected {what}", token)
        return self._advance()

    def _at_word(self, *words: str) -> bool:
        token = self._peek()
        return token is not None and token.word in words

    def _fail(self, message: str, token: _Token | None) -> NoReturn:
        if token is None:
            raise FilterSyntaxError(f"{message} at end of filter expression", position=self._end)
        raise FilterSyntaxError(
            f"{message} at position {token.pos}, found {token.text!r}",
            position=token.pos,
        )

    def _bind(self, value: Any) -> str:
        name = f"{self._prefix}{self._counter}"
        while name.lower() in self._reserved:
            self._counter += 1
            name = f"{self._prefix}{self._counter}"
        self._counter += 1
        self.parameters[name] = value
        return self._dialect.placeholder(name)

    # -- grammar -----------------------------------------------------------

    def parse(self) -> str:
        expr = self._or()
        if self._peek() is not None:
            self._fail("Unexpected token", self._peek())
        self._require_boolean(expr, self._tokens[0])
        if expr.precedence == "or":
            return f"({expr.sql})"
        return expr.sql

    def _require_boolean(self, expr: _Expr, token: _Token | None) -> None:
        if not expr.boolean:
            self._fail("Expected a boolean condition", token)

    def _or(self) -> _Expr:
        start = self._peek()
        left = self._and()
        if not self._at_word("or"):
            return left
        self._require_boolean(left, start)
        parts = [left.sql]
        while self._at_word("or"):
            self._advance()
            start = self._peek()
            right = self._and()
            self._require_boolean(right, start)
            parts.append(right.sql)
        return _Expr(" OR ".join(parts), boolean=True, precedence="or")

    def _and(self) -> _Expr:
        start = self._peek()
        left = self._not()
        if not self._at_word("and"):
            return left
        self._require_boolean(left, start)
        parts = [self._group(left)]
        while self._at_word("and"):
            self._advance()
            start = self._peek()
            right = self._not()
            self._require_boolean(right, start)
            parts.append(self._group(right))
        return _Expr(" AND ".join(parts), boolean=True, precedence="and")

    @staticmethod
    def _group(expr: _Expr) -> str:
        return f"({expr.sql})" if expr.precedence == "or" else expr.sql

    def _not(self) -> _Expr:
        if self._at_word("not"):
            self._advance()
            start = self._peek()
            operand = self._not()
            self._require_boolean(operand, start)
            if operand.precedence == "group":
                return _Expr(f"NOT {operand.sql}", boolean=True)
            return _Expr(f"NOT ({operand.sql})", boolean=True)
        return self._comparison()

    def _comparison(self) -> _Expr:
        start = self._peek()
        left = self._additive()

        if self._at_word(*_COMPARISONS):
            op_token = self._advance()
            right_start = self._peek()
            right = self._additive()
            return self._compare(left, op_token, right, start, right_start)

        if self._at_word("in"):
            in_token = self._advance()
            if left.boolean or left.is_null:
                self._fail("Expected a value before 'in'", in_token)
            return self._in_list(left)

        return left

    def _compare(
        self,
        left: _Expr,
        op_token: _Token,
        right: _Expr,
        left_start: _Token | None,
        right_start: _Token | None,
    ) -> _Expr:
        op = op_token.word

        # contains(x, 'a') eq true / eq false
        if left.boolean or right.boolean:
            condition, other = (left, right) if left.boolean else (right, left)
            if op not in ("eq", "ne") or not other.is_literal or not isinstance(other.literal, bool):
                self._fail("Boolean conditions can only be compared with true or false", op_token)
            self._drop_parameter(other)
            positive = other.literal == (op == "eq")
            if positive:
                return condition
            return _Expr(f"NOT ({condition.sql})", boolean=True)

        if left.is_null and right.is_null:
            self._fail("Cannot compare null with null", op_token)
        if left.is_null or right.is_null:
            if op not in ("eq", "ne"):
                self._fail(f"Operator '{op}' cannot be used with null", op_token)
            value = right if left.is_null else left
            suffix = "IS NULL" if op == "eq" else "IS NOT NULL"
            return _Expr(f"{value.sql} {suffix}", boolean=True)

        return _Expr(f"{left.sql} {_COMPARISONS[op]} {right.sql}", boolean=True)

    def _drop_parameter(self, expr: _Expr) -> None:
        # a true/false compared against a condition does not reach SQL
        name = expr.sql.lstrip(":")
        self.parameters.pop(name, None)

    def _in_list(self, left: _Expr) -> _Expr:
        self._expect("LPAREN", "'(' after 'in'")
        placeholders: list[str] = []
        while True:
            token = self._peek()
            item = self._primary()
            if not item.is_literal or item.is_null:
                self._fail("Expected a non-null literal in 'in' list", token)
            placeholders.append(item.sql)
            if self._peek() is not None and self._peek().kind == "COMMA":
                self._advance()
                continue
            break
        self._expect("RPAREN", "')' to close 'in' list")
        return _Expr(f"{left.sql} IN ({', '.join(placeholders)})", boolean=True)

    def _additive(self) -> _Expr:
        return self._arithmetic(self._term, _ADDITIVE)

    def _term(self) -> _Expr:
        return self._arithmetic(self._primary, _MULTIPLICATIVE)

    def _arithmetic(self, operand, operators: dict[str, str]) -> _Expr:
        start = self._peek()
        left = operand()
        while self._at_word(*operators):
            op_token = self._advance()
            right_start = self._peek()
            right = operand()
            for side, token in ((left, start), (right, right_start)):
                if side.boolean or side.is_null:
                    self._fail(f"Operator '{op_token.word}' needs numeric operands", token)
            left = _Expr(f"({left.sql} {operators[op_token.word]} {right.sql})", boolean=False)
        return left

    def _primary(self) -> _Expr:
        token = self._peek()
        if token is None:
            self._fail("Expected a value", None)

        if token.kind == "LPAREN":
            self._advance()
            inner = self._or()
            self._expect("RPAREN", "')'")
            return _Expr(f"({inner.sql})", boolean=inner.boolean, precedence="group", is_null=inner.is_null)

        if token.kind == "STRING":
            self._advance()
            return self._literal(token.text[1:-1].replace("''", "'"))

        if token.kind == "NUMBER":
            self._advance()
            if "." in token.text:
                return self._literal(Decimal(token.text))
            return self._literal(int(token.text))

        if token.kind == "DATE":
            self._advance()
            return self._literal(self._parse_date(token))

        if token.kind == "DATETIME":
            self._advance()
            return self._literal(self._parse_datetime(token.text, token))

        if token.kind == "NAME":
            return self._name()

        self._fail("Expected a value", token)

    def _literal(self, value: Any) -> _Expr:
        return _Expr(self._bind(value), boolean=False, literal=value, is_literal=True)

    def _parse_date(self, token: _Token) -> date:
        try:
            return date.fromisoformat(token.text)
        except ValueError:
            self._fail("Invalid date literal", token)

    def _parse_datetime(self, text: str, token: _Token) -> datetime:
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            self._fail("Invalid date-time literal", token)

    def _name(self) -> _Expr:
        token = self._advance()
        word = token.word

        if word == "null":
            return _Expr("NULL", boolean=False, is_null=True, is_literal=True)
        if word in ("true", "false"):
            return self._literal(word == "true")

        following = self._peek()

        # OData v2 typed literals: datetime'2024-01-01T00:00:00', guid'...'
        if (
            word in ("datetime", "datetimeoffset", "guid")
            and following is not None
            and following.kind == "STRING"
            and following.pos == token.pos + len(token.text)
        ):
            self._advance()
            raw = following.text[1:-1]
            if word == "guid":
                return self._literal(raw)
            return self._literal(self._parse_datetime(raw, following))

        if following is not None and following.kind == "LPAREN" and "/" not in token.text:
            return self._function(token)

        if word in _RESERVED_WORDS:
            self._fail("Expected a value", token)
        return _Expr(self._identifier(token), boolean=False)

    def _identifier(self, token: _Token) -> str:
        segments = token.text.split("/")
        for segment in segments:
            if segment.upper() in STATEMENT_KEYWORDS:
                raise FilterSyntaxError(
                    f"Identifier {segment!r} at position {token.pos} is a reserved statement keyword",
                    position=token.pos,
                )
        return ".".join(segments)

    def _arguments(self) -> list[tuple[_Expr, _Token | None]]:
        self._expect("LPAREN", "'('")
        args: list[tuple[_Expr, _Token | None]] = []
        if self._peek() is not None and self._peek().kind == "RPAREN":
            self._advance()
            return args
        while True:
            start = self._peek()
            args.append((self._or(), start))
            if self._peek() is not None and self._peek().kind == "COMMA":
                self._advance()
                continue
            break
        self._expect("RPAREN", "')' to close function call")
        return args

    def _function(self, token: _Token) -> _Expr:
        name = token.word
        args = self._arguments()

        def arity(count: int) -> None:
            if len(args) != count:
                self._fail(f"Function '{name}' takes {count} argument(s)", token)
            for expr, start in args:
                if expr.boolean or expr.is_null:
                    self._fail(f"Function '{name}' needs value arguments", start)

        if name in _LIKE_FUNCTIONS:
            arity(2)
            template, column_index = _LIKE_FUNCTIONS[name]
            column, _ = args[column_index]
            search, search_start = args[1 - column_index]
            if not search.is_literal or not isinstance(search.literal, str):
                self._fail(f"Function '{name}' needs a string literal to search for", search_start)
            # rebind the literal as an escaped LIKE pattern
            placeholder = search.sql
            self.parameters[placeholder.lstrip(":")] = template.format(
                self._dialect.escape_like(search.literal)
            )
            return _Expr(
                f"{column.sql} LIKE {placeholder} {self._dialect.like_escape()}",
                boolean=True,
            )

        if name == "tolower":
            arity(1)
            return _Expr(f"LOWER({args[0][0].sql})", boolean=False)
        if name == "toupper":
            arity(1)
            return _Expr(f"UPPER({args[0][0].sql})", boolean=False)
        if name == "trim":
            arity(1)
            return _Expr(self._dialect.trim(args[0][0].sql), boolean=False)
        if name == "length":
            arity(1)
            return _Expr(self._dialect.length(args[0][0].sql), boolean=False)
        if name == "indexof":
            arity(2)
            return _Expr(self._dialect.index_of(args[0][0].sql, args[1][0].sql), boolean=False)
        if name in _DATE_PARTS:
            arity(1)
            return _Expr(self._dialect.date_part(name, args[0][0].sql), boolean=False)

        raise FilterSyntaxError(
            f"Unsupported function {token.text!r} at position {token.pos}",
            position=token.pos,
        )


def guard_predicate(sql: str) -> None:
    """Reject predicate text that contains a statement-altering keyword."""
    match = _KEYWORD_PATTERN.search(sql)
    if match is not None:
        raise FilterSyntaxError(
            f"Translated predicate contains reserved keyword {match.group()!r}",
            position=None,
        )


def translate_filter(
    filter: str | None,
    *,
    dialect: Dialect | str | None = None,
    param_prefix: str = "f",
    reserved: Iterable[str] = (),
) -> PredicateFragment:
    """
    Translate an OData ``$filter`` expression into a predicate fragment.

    Args:
        filter: Filter text. ``None``, empty or whitespace-only input yields
            an empty fragment.
        dialect: Output dialect (name or instance); T-SQL by default.
        param_prefix: Prefix for generated placeholder names.
        reserved: Parameter names already used by the caller; generated
            names never collide with them (case-insensitive).

    Returns:
        PredicateFragment whose ``sql`` is ``""`` or ``"AND <expression>"``.

    Raises:
        FilterSyntaxError: If the expression is outside the supported grammar
            or references a reserved statement keyword.

    A ``;`` ends the expression. Text after it is discarded and a
    ``filter_truncated`` warning is logged; a ``;`` with no expression
    before it raises FilterSyntaxError.
    """
    if filter is None or not filter.strip():
        return EMPTY_PREDICATE

    resolved = get_dialect(dialect)
    tokens, cut = _tokenize(filter)
    truncated = cut is not None
    if truncated:
        logger.warning(
            "filter_truncated",
            position=cut,
            discarded_chars=len(filter) - cut,
        )

    if not tokens:
        if truncated:
            raise FilterSyntaxError(
                f"Empty expression before ';' at position {cut}",
                position=cut,
            )
        return EMPTY_PREDICATE

    parser = _FilterParser(
        tokens,
        dialect=resolved,
        param_prefix=param_prefix,
        reserved=reserved,
        end=cut if cut is not None else len(filter),
    )
    expression = parser.parse()
    sql = f"AND {expression}"
    guard_predicate(sql)

    logger.debug(
        "filter_translated",
        dialect=resolved.name,
        parameter_names=sorted(parser.parameters),
        truncated=truncated,
    )
    return PredicateFragment(sql=sql, parameters=parser.parameters, truncated=truncated)


__all__ = [
    "PredicateFragment",
    "EMPTY_PREDICATE",
    "STATEMENT_KEYWORDS",
    "translate_filter",
    "guard_predicate",
]
