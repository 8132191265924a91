"""Predicate expressions for server-side filtering.

Grammar::

    expr       := comparison ("and" comparison)*
    comparison := FIELD OP literal
    OP         := eq | ne | gt | ge | lt | le
    literal    := 'quoted string' | integer | decimal | true | false | null

Single quotes inside strings are doubled (``'O''Brien'``).
"""

import operator
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple

from .errors import InvalidProjection, ValidationFault


OPERATORS = {
    "eq": "eq",
    "ne": "neq",
    "gt": "gt",
    "ge": "gte",
    "lt": "lt",
    "le": "lte",
}

_LOCAL = {
    "eq": operator.eq,
    "ne": operator.ne,
    "gt": operator.gt,
    "ge": operator.ge,
    "lt": operator.lt,
    "le": operator.le,
}

_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<string>'(?:[^']|'')*')
      | (?P<number>-?\d+(?:\.\d+)?)
      | (?P<word>[A-Za-z_][A-Za-z0-9_]*)
    )""",
    re.VERBOSE,
)


@dataclass(frozen=True)
class Comparison:
    field: str
    op: str
    value: Any

    def apply(self, query: Any) -> Any:
        """Chain this comparison onto a PostgREST filter builder."""
        if self.value is None:
            if self.op == "eq":
                return query.is_(self.field, "null")
            if self.op == "ne":
                return query.not_.is_(self.field, "null")
            raise ValidationFault(f"Operator {self.op!r} cannot compare with null", field=self.field)
        return getattr(query, OPERATORS[self.op])(self.field, self.value)

    def matches(self, value: Any) -> bool:
        """Evaluate locally with the store's null semantics."""
        if self.value is None:
            return (value is None) == (self.op == "eq")
        if value is None:
            return False
        try:
            return _LOCAL[self.op](value, self.value)
        except TypeError:
            return False


def _tokenize(expression: str) -> List[Tuple[str, str]]:
    tokens: List[Tuple[str, str]] = []
    pos = 0
    text = expression.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match or match.end() == pos:
            raise ValidationFault(f"Unexpected input at position {pos} in filter: {expression!r}")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


def _literal(kind: str, raw: str) -> Any:
    if kind == "string":
        return raw[1:-1].replace("''", "'")
    if kind == "number":
        return float(raw) if "." in raw else int(raw)
    lowered = raw.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered == "null":
        return None
    raise ValidationFault(f"Expected a literal, got {raw!r}")


def parse_filter(expression: Optional[str], allowed_fields: Optional[Iterable[str]] = None) -> List[Comparison]:
    """Parse ``expression`` into comparisons joined by ``and``.

    When ``allowed_fields`` is given, comparisons on other fields raise
    :class:`InvalidProjection`.
    """
    if expression is None or not expression.strip():
        return []

    tokens = _tokenize(expression)
    allowed = set(allowed_fields) if allowed_fields is not None else None
    comparisons: List[Comparison] = []
    i = 0
    while True:
        if i + 3 > len(tokens):
            raise ValidationFault(f"Incomplete comparison in filter: {expression!r}")
        (field_kind, field_name), (op_kind, op), (lit_kind, lit_raw) = tokens[i:i + 3]
        if field_kind != "word":
            raise ValidationFault(f"Expected a field name, got {field_name!r}")
        op = op.lower()
        if op_kind != "word" or op not in OPERATORS:
            raise ValidationFault(f"Unknown operator {op!r} in filter: {expression!r}")
        if allowed is not None and field_name not in allowed:
            raise InvalidProjection(f"Unknown field {field_name!r} in filter", fields=[field_name])
        comparisons.append(Comparison(field_name, op, _literal(lit_kind, lit_raw)))
        i += 3

        if i == len(tokens):
            return comparisons
        kind, word = tokens[i]
        if kind != "word" or word.lower() != "and":
            raise ValidationFault(f"Expected 'and' but found {word!r} in filter: {expression!r}")
        i += 1


def apply_filters(query: Any, comparisons: Iterable[Comparison]) -> Any:
    for comparison in comparisons:
        query = comparison.apply(query)
    return query
