"""Restricted condition evaluator.

Condition strings such as ``useTypeScript === true && nodeVersion >= 18`` are
parsed by a small recursive-descent parser and evaluated against the
resolution context. Nothing is ever handed to ``eval``.

Supported grammar, loosest binding first::

    ternary     a ? b : c
    logical     ||   &&
    equality    ===  !==  ==  !=
    relational  <  <=  >  >=  in
    additive    +  -
    multiplic.  *  /  %
    unary       !  -  +
    postfix     a.b   a["b"]   a[0]   s.includes(x)
    primary     numbers, strings, true/false/null/undefined, [a, b], (expr), names

Logical operators and the final result follow JavaScript truthiness.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from loguru import logger

from scaffolder.values.interpolation import stringify

# =============================================================================
# ERRORS
# =============================================================================


class ConditionError(Exception):
    """Base class for condition failures."""

    pass


class ConditionSyntaxError(ConditionError):
    """The expression uses syntax outside the supported grammar."""

    pass


class UndefinedNameError(ConditionError):
    """The expression references a name missing from the context."""

    def __init__(self, name: str) -> None:
        super().__init__(f"{name} is not defined")
        self.name = name


class ConditionEvaluationError(ConditionError):
    """The expression is well formed but failed while evaluating."""

    pass


# =============================================================================
# TOKENIZER
# =============================================================================

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<number>\d+(?:\.\d+)?|\.\d+)
    |(?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    |(?P<name>[A-Za-z_$][\w$]*)
    |(?P<op>===|!==|==|!=|<=|>=|&&|\|\||[<>!?:.,()\[\]+\-*/%])
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}

KEYWORDS = {"true": True, "false": False, "null": None, "undefined": None}

ALLOWED_METHODS = frozenset(
    {"includes", "startsWith", "endsWith", "toLowerCase", "toUpperCase", "trim"}
)


@dataclass(frozen=True)
class Token:
    kind: str
    value: Any
    position: int


def tokenize(expression: str) -> list[Token]:
    """Split an expression into tokens."""
    tokens: list[Token] = []
    position = 0
    length = len(expression)

    while position < length:
        if expression[position].isspace():
            position += 1
            continue

        match = _TOKEN_PATTERN.match(expression, position)
        if match is None:
            raise ConditionSyntaxError(
                f"Unexpected character {expression[position]!r} at position {position}"
            )

        kind = match.lastgroup or "op"
        text = match.group()
        if kind == "number":
            value: Any = float(text) if "." in text else int(text)
        elif kind == "string":
            value = re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), text[1:-1])
        else:
            value = text

        tokens.append(Token(kind, value, position))
        position = match.end()

    tokens.append(Token("eof", None, length))
    return tokens


# =============================================================================
# PARSER
# =============================================================================

# AST nodes are plain tuples: (kind, *operands).
Node = tuple[Any, ...]


class _Parser:
    """Recursive-descent parser producing tuple nodes."""

    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._index = 0

    def parse(self) -> Node:
        node = self._ternary()
        token = self._peek()
        if token.kind != "eof":
            raise ConditionSyntaxError(
                f"Unexpected token {token.value!r} at position {token.position}"
            )
        return node

    # --- helpers -----------------------------------------------------------

    def _peek(self) -> Token:
        return self._tokens[self._index]

    def _next(self) -> Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _accept(self, *ops: str) -> str | None:
        token = self._peek()
        if token.kind in ("op", "name") and token.value in ops:
            self._index += 1
            return token.value
        return None

    def _expect(self, op: str) -> None:
        token = self._next()
        if token.kind != "op" or token.value != op:
            found = "end of expression" if token.kind == "eof" else repr(token.value)
            raise ConditionSyntaxError(f"Expected {op!r} but found {found} at position {token.position}")

    # --- grammar -----------------------------------------------------------

    def _ternary(self) -> Node:
        condition = self._or()
        if self._accept("?"):
            when_true = self._ternary()
            self._expect(":")
            when_false = self._ternary()
            return ("ternary", condition, when_true, when_false)
        return condition

    def _or(self) -> Node:
        node = self._and()
        while self._accept("||"):
            node = ("logical", "||", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._equality()
        while self._accept("&&"):
            node = ("logical", "&&", node, self._equality())
        return node

    def _equality(self) -> Node:
        node = self._relational()
        while op := self._accept("===", "!==", "==", "!="):
            node = ("binary", op, node, self._relational())
        return node

    def _relational(self) -> Node:
        node = self._additive()
        while op := self._accept("<=", ">=", "<", ">", "in"):
            node = ("binary", op, node, self._additive())
        return node

    def _additive(self) -> Node:
        node = self._multiplicative()
        while op := self._accept("+", "-"):
            node = ("binary", op, node, self._multiplicative())
        return node

    def _multiplicative(self) -> Node:
        node = self._unary()
        while op := self._accept("*", "/", "%"):
            node = ("binary", op, node, self._unary())
        return node

    def _unary(self) -> Node:
        if op := self._accept("!", "-", "+"):
            return ("unary", op, self._unary())
        return self._postfix()

    def _postfix(self) -> Node:
        node = self._primary()
        while True:
            if self._accept("."):
                token = self._next()
                if token.kind != "name":
                    raise ConditionSyntaxError(f"Expected property name at position {token.position}")
                node = ("member", node, ("literal", token.value))
            elif self._accept("["):
                key = self._ternary()
                self._expect("]")
                node = ("member", node, key)
            elif self._accept("("):
                node = self._call(node)
            else:
                return node

    def _call(self, callee: Node) -> Node:
        if callee[0] != "member" or callee[2][0] != "literal" or callee[2][1] not in ALLOWED_METHODS:
            raise ConditionSyntaxError("Function calls are not supported in conditions")

        args: list[Node] = []
        if not self._accept(")"):
            args.append(self._ternary())
            while self._accept(","):
                args.append(self._ternary())
            self._expect(")")
        return ("call", callee[1], callee[2][1], tuple(args))

    def _primary(self) -> Node:
        token = self._next()

        if token.kind in ("number", "string"):
            return ("literal", token.value)
        if token.kind == "name":
            if token.value in KEYWORDS:
                return ("literal", KEYWORDS[token.value])
            return ("name", token.value)
        if token.kind == "op" and token.value == "(":
            node = self._ternary()
            self._expect(")")
            return node
        if token.kind == "op" and token.value == "[":
            items: list[Node] = []
            if not self._accept("]"):
                items.append(self._ternary())
                while self._accept(","):
                    items.append(self._ternary())
                self._expect("]")
            return ("array", tuple(items))

        found = "end of expression" if token.kind == "eof" else repr(token.value)
        raise ConditionSyntaxError(f"Unexpected {found} at position {token.position}")


@lru_cache(maxsize=512)
def parse(expression: str) -> Node:
    """
    Parse an expression into a tuple AST.

    Raises:
        ConditionSyntaxError: If the expression is outside the grammar.
    """
    if not expression.strip():
        raise ConditionSyntaxError("Empty condition")
    try:
        return _Parser(tokenize(expression)).parse()
    except RecursionError as e:
        raise ConditionSyntaxError("Condition is nested too deeply") from e


# =============================================================================
# EVALUATION
# =============================================================================


def is_truthy(value: Any) -> bool:
    """JavaScript truthiness: collections are always truthy."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == value and value != 0  # NaN is falsy
    if isinstance(value, str):
        return value != ""
    return True


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _to_number(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip() or 0)
        except ValueError:
            return float("nan")
    return float("nan")


def _type_tag(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if _is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    return "object"


def _strict_equals(left: Any, right: Any) -> bool:
    if _type_tag(left) != _type_tag(right):
        return False
    return left == right


def _loose_equals(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    left_tag, right_tag = _type_tag(left), _type_tag(right)
    if left_tag == right_tag:
        return left == right
    if "object" in (left_tag, right_tag):
        return False
    return _to_number(left) == _to_number(right)


def _compare(op: str, left: Any, right: Any) -> bool:
    if not (isinstance(left, str) and isinstance(right, str)):
        left, right = _to_number(left), _to_number(right)
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    return left >= right


def _contains(container: Any, item: Any) -> bool:
    if isinstance(container, Mapping):
        return stringify(item) in container
    if isinstance(container, str):
        return stringify(item) in container
    if isinstance(container, (list, tuple)):
        return any(_strict_equals(entry, item) for entry in container)
    raise ConditionEvaluationError("Right-hand side of 'in' must be a list, string or object")


def _arithmetic(op: str, left: Any, right: Any) -> Any:
    if op == "+" and (isinstance(left, str) or isinstance(right, str)):
        return stringify(left) + stringify(right)

    a, b = _to_number(left), _to_number(right)
    if op == "+":
        result = a + b
    elif op == "-":
        result = a - b
    elif op == "*":
        result = a * b
    else:
        if b == 0:
            raise ConditionEvaluationError("Division by zero")
        result = a / b if op == "/" else a % b
    return int(result) if result.is_integer() else result


def _member(target: Any, key: Any) -> Any:
    if target is None:
        raise ConditionEvaluationError(f"Cannot read property {key!r} of undefined")
    if key == "length" and isinstance(target, (str, list, tuple)):
        return len(target)
    if isinstance(target, Mapping):
        return target.get(stringify(key))
    if isinstance(target, (str, list, tuple)) and _is_number(key) and float(key).is_integer():
        index = int(key)
        return target[index] if 0 <= index < len(target) else None
    return None


def _call_method(target: Any, method: str, args: list[Any]) -> Any:
    if isinstance(target, str):
        if method == "includes":
            return stringify(args[0] if args else None) in target
        if method == "startsWith":
            return target.startswith(stringify(args[0] if args else None))
        if method == "endsWith":
            return target.endswith(stringify(args[0] if args else None))
        if method == "toLowerCase":
            return target.lower()
        if method == "toUpperCase":
            return target.upper()
        if method == "trim":
            return target.strip()
    if isinstance(target, (list, tuple)) and method == "includes":
        return _contains(target, args[0] if args else None)
    raise ConditionEvaluationError(f"{method}() is not available on {_type_tag(target)}")


def evaluate_node(node: Node, context: Mapping[str, Any]) -> Any:
    """Evaluate a parsed node against ``context``."""
    kind = node[0]

    if kind == "literal":
        return node[1]
    if kind == "name":
        if node[1] not in context:
            raise UndefinedNameError(node[1])
        return context[node[1]]
    if kind == "array":
        return [evaluate_node(item, context) for item in node[1]]
    if kind == "member":
        return _member(evaluate_node(node[1], context), evaluate_node(node[2], context))
    if kind == "call":
        target = evaluate_node(node[1], context)
        return _call_method(target, node[2], [evaluate_node(a, context) for a in node[3]])
    if kind == "unary":
        operand = evaluate_node(node[2], context)
        if node[1] == "!":
            return not is_truthy(operand)
        number = _to_number(operand)
        return -number if node[1] == "-" else number
    if kind == "logical":
        left = evaluate_node(node[2], context)
        if node[1] == "&&":
            return evaluate_node(node[3], context) if is_truthy(left) else left
        return left if is_truthy(left) else evaluate_node(node[3], context)
    if kind == "ternary":
        branch = node[2] if is_truthy(evaluate_node(node[1], context)) else node[3]
        return evaluate_node(branch, context)

    op = node[1]
    left = evaluate_node(node[2], context)
    right = evaluate_node(node[3], context)
    if op == "===":
        return _strict_equals(left, right)
    if op == "!==":
        return not _strict_equals(left, right)
    if op == "==":
        return _loose_equals(left, right)
    if op == "!=":
        return not _loose_equals(left, right)
    if op in ("<", "<=", ">", ">="):
        return _compare(op, left, right)
    if op == "in":
        return _contains(right, left)
    return _arithmetic(op, left, right)


def evaluate_expression(expression: str, context: Mapping[str, Any]) -> Any:
    """
    Evaluate an expression and return its raw value.

    Raises:
        ConditionError: On syntax errors, undefined names or evaluation failures.

    Example:
        >>> evaluate_expression("count > 1 ? 'many' : 'one'", {"count": 3})
        'many'
    """
    node = parse(expression)
    try:
        return evaluate_node(node, context)
    except RecursionError as e:
        raise ConditionEvaluationError("Condition is nested too deeply") from e


def evaluate_condition(
    condition: str,
    context: Mapping[str, Any],
    lazy: bool = False,
    silent: bool = False,
) -> bool:
    """
    Evaluate a condition to a boolean, never raising.

    Args:
        condition: Expression in the restricted grammar.
        context: Resolution context (or an immutable snapshot of it).
        lazy: Treat references to not-yet-resolved names as True.
        silent: Suppress the warning logged on failure.

    Returns:
        The truthiness of the expression, or False when it cannot be evaluated.

    Example:
        >>> evaluate_condition("x === 1", {"x": 1})
        True
        >>> evaluate_condition("env == 'prod'", {}, lazy=True)
        True
    """
    try:
        return is_truthy(evaluate_expression(condition, context))
    except UndefinedNameError as e:
        if lazy:
            return True
        if not silent:
            logger.warning(f"Failed to evaluate condition: {condition} ({e})")
        return False
    except ConditionError as e:
        if not silent:
            logger.warning(f"Failed to evaluate condition: {condition} ({e})")
        return False
