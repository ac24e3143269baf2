# backend/convoflow/workflows/conditions.py

"""
Restricted boolean expressions for conditional transitions.

Conditions are parsed into a small AST and evaluated against the workflow data
bag; nothing is ever executed as code. Supported syntax:

- dot paths into the data bag: `sector`, `search.data.count`, `items.0`
- literals: numbers, 'single' or "double" quoted strings, true, false, null
- comparisons: == != < <= > >=
- logic: && || ! (or the keywords and, or, not) and parentheses

A path that does not exist evaluates to UNDEFINED, and every comparison
involving UNDEFINED is false. Answers are stored as text, so a string that
looks like a number is compared numerically against a number or against
another numeric-looking string.
"""

import re
import functools
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from convoflow.workflows.errors import ConditionParseError


class _Undefined:
    def __repr__(self):
        return "UNDEFINED"

    def __bool__(self):
        return False


UNDEFINED = _Undefined()

_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<number>-?\d+(?:\.\d+)?)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<op>==|!=|<=|>=|&&|\|\||<|>|!|\(|\))
  | (?P<path>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*)
""", re.VERBOSE)

_NUMERIC_RE = re.compile(r"^-?\d+(?:\.\d+)?$")
_KEYWORDS = {"and": "&&", "or": "||", "not": "!"}
_LITERALS = {"true": True, "false": False, "null": None}
_COMPARATORS = {"==", "!=", "<", "<=", ">", ">="}


def resolve_path(data: Dict[str, Any], path: str) -> Any:
    """Walk a dot path through nested dicts/lists; UNDEFINED when absent."""
    current: Any = data
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return UNDEFINED
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return UNDEFINED
            current = current[index]
        else:
            return UNDEFINED
    return current


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str) and _NUMERIC_RE.match(value.strip()):
        return float(value.strip())
    return None


def _compare(op: str, left: Any, right: Any) -> bool:
    if left is UNDEFINED or right is UNDEFINED:
        return False

    left_is_num = isinstance(left, (int, float)) and not isinstance(left, bool)
    right_is_num = isinstance(right, (int, float)) and not isinstance(right, bool)
    left_num, right_num = _as_number(left), _as_number(right)
    if left_is_num != right_is_num:
        # A number against text: the text must look like a number.
        if left_num is None or right_num is None:
            return False
        left, right = left_num, right_num
    elif isinstance(left, str) and isinstance(right, str) and left_num is not None and right_num is not None:
        left, right = left_num, right_num

    try:
        if op == "==":
            return left == right
        if op == "!=":
            return left != right
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        if op == ">=":
            return left >= right
    except TypeError:
        return False
    raise ValueError(f"Unknown comparator {op}")


# ---------------- AST ---------------- #

@dataclass(frozen=True)
class Literal:
    value: Any

    def evaluate(self, data):
        return self.value


@dataclass(frozen=True)
class Path:
    path: str

    def evaluate(self, data):
        return resolve_path(data, self.path)


@dataclass(frozen=True)
class Not:
    operand: Any

    def evaluate(self, data):
        return not _truthy(self.operand.evaluate(data))


@dataclass(frozen=True)
class And:
    left: Any
    right: Any

    def evaluate(self, data):
        return _truthy(self.left.evaluate(data)) and _truthy(self.right.evaluate(data))


@dataclass(frozen=True)
class Or:
    left: Any
    right: Any

    def evaluate(self, data):
        return _truthy(self.left.evaluate(data)) or _truthy(self.right.evaluate(data))


@dataclass(frozen=True)
class Compare:
    op: str
    left: Any
    right: Any

    def evaluate(self, data):
        return _compare(self.op, self.left.evaluate(data), self.right.evaluate(data))


def _truthy(value: Any) -> bool:
    return value is not UNDEFINED and bool(value)


@dataclass(frozen=True)
class ParsedCondition:
    """A parsed condition, ready to be evaluated against any data bag."""
    source: str
    root: Any
    variables: frozenset = field(default_factory=frozenset)

    def evaluate(self, data: Dict[str, Any]) -> bool:
        return _truthy(self.root.evaluate(data))


# ---------------- Parser ---------------- #

def _tokenize(expression: str) -> List[Tuple[str, Any, int]]:
    tokens = []
    pos = 0
    while pos < len(expression):
        match = _TOKEN_RE.match(expression, pos)
        if not match:
            raise ConditionParseError(expression, f"unexpected character {expression[pos]!r}", pos)
        kind = match.lastgroup
        text = match.group(kind)
        if kind == "number":
            tokens.append(("literal", float(text) if "." in text else int(text), pos))
        elif kind == "string":
            body = text[1:-1]
            tokens.append(("literal", re.sub(r"\\(.)", r"\1", body), pos))
        elif kind == "op":
            tokens.append(("op", text, pos))
        elif kind == "path":
            lowered = text.lower()
            if lowered in _KEYWORDS:
                tokens.append(("op", _KEYWORDS[lowered], pos))
            elif lowered in _LITERALS:
                tokens.append(("literal", _LITERALS[lowered], pos))
            else:
                tokens.append(("path", text, pos))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = _tokenize(expression)
        self.index = 0
        self.variables = set()

    def _peek(self):
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _accept_op(self, *ops) -> Optional[str]:
        token = self._peek()
        if token and token[0] == "op" and token[1] in ops:
            self.index += 1
            return token[1]
        return None

    def _error(self, reason: str):
        token = self._peek()
        position = token[2] if token else len(self.expression)
        raise ConditionParseError(self.expression, reason, position)

    def parse(self):
        if not self.tokens:
            raise ConditionParseError(self.expression, "empty expression")
        node = self._parse_or()
        if self._peek() is not None:
            self._error(f"unexpected token {self._peek()[1]!r}")
        return node

    def _parse_or(self):
        node = self._parse_and()
        while self._accept_op("||"):
            node = Or(node, self._parse_and())
        return node

    def _parse_and(self):
        node = self._parse_not()
        while self._accept_op("&&"):
            node = And(node, self._parse_not())
        return node

    def _parse_not(self):
        if self._accept_op("!"):
            return Not(self._parse_not())
        return self._parse_comparison()

    def _parse_comparison(self):
        left = self._parse_operand()
        op = self._accept_op(*_COMPARATORS)
        if op:
            return Compare(op, left, self._parse_operand())
        return left

    def _parse_operand(self):
        token = self._peek()
        if token is None:
            self._error("unexpected end of expression")
        kind, value, _ = token
        if kind == "literal":
            self.index += 1
            return Literal(value)
        if kind == "path":
            self.index += 1
            self.variables.add(value)
            return Path(value)
        if self._accept_op("("):
            node = self._parse_or()
            if not self._accept_op(")"):
                self._error("missing closing parenthesis")
            return node
        self._error(f"unexpected token {value!r}")


@functools.lru_cache(maxsize=512)
def parse_condition(expression: str) -> ParsedCondition:
    """
    Parse a condition string, caching the result.

    Raises:
        ConditionParseError: if the expression is not valid.
    """
    parser = _Parser(expression)
    root = parser.parse()
    return ParsedCondition(source=expression, root=root, variables=frozenset(parser.variables))


def evaluate_condition(expression: str, data: Dict[str, Any]) -> bool:
    return parse_condition(expression).evaluate(data)
