"""Restricted expression evaluation for user supplied predicates.

A :class:`Sandbox` turns a Python *expression* into a callable. Nothing is
handed to ``eval``: the source is parsed with :mod:`ast`, checked against an
allow-list of node types, and compiled once into a tree of closures. The
resulting function can only

- read values (names, attributes, subscripts) from its parameters and the
  sandbox bindings,
- build literals and compare or combine them, and
- call the callables that were explicitly bound into the sandbox.

Unknown names and missing fields evaluate to ``None`` instead of raising, and
a comparison between values that cannot be compared is simply ``False``.

Compile problems never escape :meth:`Sandbox.create_function`; they come back
as a list of :class:`ScriptError` records (see :func:`has_errors`).

Example:
    ```python
    sandbox = Sandbox()
    fn = sandbox.create_function("amount > limit", ["data", "limit"], scope="data")
    assert not has_errors(fn)
    fn({"amount": 150}, 100)  # True
    ```
"""

from __future__ import annotations

import ast
import json
import logging
import operator
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any

logger = logging.getLogger(__name__)

_sandbox_logger = logging.getLogger("filterbus.sandbox")


class SandboxViolation(RuntimeError):
    """Raised when sandboxed code tries to call something it was not given."""


@dataclass(frozen=True, slots=True)
class ScriptError:
    """A compile-time problem with sandboxed source code."""

    line: int
    column: int
    message: str
    file: str
    code: str = "error"

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}: {self.message}"


def has_errors(value: Any) -> bool:
    """Return True when ``value`` is a non-empty list of :class:`ScriptError`."""
    return isinstance(value, list) and len(value) > 0


def _log_facade() -> SimpleNamespace:
    def debug(*args: Any) -> None:
        _sandbox_logger.debug(" ".join(str(each) for each in args))

    def info(*args: Any) -> None:
        _sandbox_logger.info(" ".join(str(each) for each in args))

    def warning(*args: Any) -> None:
        _sandbox_logger.warning(" ".join(str(each) for each in args))

    def error(*args: Any) -> None:
        _sandbox_logger.error(" ".join(str(each) for each in args))

    return SimpleNamespace(debug=debug, info=info, warning=warning, error=error)


def _json_facade() -> SimpleNamespace:
    def dumps(value: Any) -> str:
        return json.dumps(value, default=str)

    def loads(text: str) -> Any:
        return json.loads(text)

    return SimpleNamespace(dumps=dumps, loads=loads)


def default_bindings() -> dict[str, Any]:
    return {
        "log": _log_facade(),
        "json": _json_facade(),
        "len": len,
        "str": str,
        "int": int,
        "float": float,
        "bool": bool,
        "abs": abs,
        "min": min,
        "max": max,
    }


def _callables_in(values: Iterable[Any]) -> set[int]:
    found: set[int] = set()
    for value in values:
        if isinstance(value, SimpleNamespace):
            found.update(id(each) for each in vars(value).values() if callable(each))
        elif callable(value):
            found.add(id(value))
    return found


def lookup_field(value: Any, name: str) -> tuple[bool, Any]:
    """Read ``name`` from a mapping key or a public attribute."""
    if isinstance(value, Mapping):
        if name in value:
            return True, value[name]
        return False, None
    if value is None or name.startswith("_"):
        return False, None
    try:
        return True, getattr(value, name)
    except AttributeError:
        return False, None


_Evaluator = Callable[["_Frame"], Any]


class _Frame:
    __slots__ = ("arguments", "scope", "bindings")

    def __init__(self, arguments: dict[str, Any], scope: Any, bindings: Mapping[str, Any]):
        self.arguments = arguments
        self.scope = scope
        self.bindings = bindings

    def resolve(self, name: str) -> Any:
        if self.scope is not None and not name.startswith("_"):
            found, value = lookup_field(self.scope, name)
            if found:
                return value
        if name in self.arguments:
            return self.arguments[name]
        return self.bindings.get(name)


def _safe_compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def compare(left: Any, right: Any) -> bool:
        try:
            return bool(op(left, right))
        except TypeError:
            return False

    return compare


_COMPARISONS: dict[type[ast.cmpop], Callable[[Any, Any], bool]] = {
    ast.Eq: _safe_compare(operator.eq),
    ast.NotEq: _safe_compare(operator.ne),
    ast.Lt: _safe_compare(operator.lt),
    ast.LtE: _safe_compare(operator.le),
    ast.Gt: _safe_compare(operator.gt),
    ast.GtE: _safe_compare(operator.ge),
    ast.In: _safe_compare(lambda left, right: left in right),
    ast.NotIn: _safe_compare(lambda left, right: left not in right),
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

_ARITHMETIC: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}


class _Unsupported(Exception):
    def __init__(self, node: ast.AST, message: str):
        super().__init__(message)
        self.node = node


class _Compiler(ast.NodeVisitor):
    """Compiles an allow-listed expression tree into nested closures."""

    def __init__(self, allowed_callables: set[int]):
        self.allowed_callables = allowed_callables

    def generic_visit(self, node: ast.AST) -> _Evaluator:
        raise _Unsupported(node, f"{type(node).__name__} is not allowed in a sandboxed expression")

    def visit_Expression(self, node: ast.Expression) -> _Evaluator:
        return self.visit(node.body)

    def visit_Constant(self, node: ast.Constant) -> _Evaluator:
        value = node.value
        if not isinstance(value, (str, int, float, bool, type(None))):
            raise _Unsupported(node, f"literal of type {type(value).__name__} is not allowed")
        return lambda frame: value

    def visit_Name(self, node: ast.Name) -> _Evaluator:
        name = node.id
        return lambda frame: frame.resolve(name)

    def visit_Attribute(self, node: ast.Attribute) -> _Evaluator:
        if node.attr.startswith("_"):
            raise _Unsupported(node, f"access to private attribute {node.attr!r} is not allowed")
        target = self.visit(node.value)
        attr = node.attr

        def attribute(frame: _Frame) -> Any:
            return lookup_field(target(frame), attr)[1]

        return attribute

    def visit_Subscript(self, node: ast.Subscript) -> _Evaluator:
        if isinstance(node.slice, ast.Slice):
            raise _Unsupported(node, "slices are not allowed")
        target = self.visit(node.value)
        index = self.visit(node.slice)

        def subscript(frame: _Frame) -> Any:
            key = index(frame)
            if isinstance(key, str) and key.startswith("_"):
                return None
            try:
                return target(frame)[key]
            except (LookupError, TypeError):
                return None

        return subscript

    def _sequence(self, node: ast.List | ast.Tuple | ast.Set, factory: Callable) -> _Evaluator:
        items = [self.visit(each) for each in node.elts]
        return lambda frame: factory(item(frame) for item in items)

    def visit_List(self, node: ast.List) -> _Evaluator:
        return self._sequence(node, list)

    def visit_Tuple(self, node: ast.Tuple) -> _Evaluator:
        return self._sequence(node, tuple)

    def visit_Set(self, node: ast.Set) -> _Evaluator:
        return self._sequence(node, set)

    def visit_BoolOp(self, node: ast.BoolOp) -> _Evaluator:
        operands = [self.visit(each) for each in node.values]
        is_and = isinstance(node.op, ast.And)

        def boolean(frame: _Frame) -> Any:
            result: Any = None
            for operand in operands:
                result = operand(frame)
                if bool(result) is not is_and:
                    return result
            return result

        return boolean

    def visit_UnaryOp(self, node: ast.UnaryOp) -> _Evaluator:
        operand = self.visit(node.operand)
        if isinstance(node.op, ast.Not):
            return lambda frame: not operand(frame)
        if isinstance(node.op, ast.USub):
            return lambda frame: -operand(frame)
        if isinstance(node.op, ast.UAdd):
            return lambda frame: +operand(frame)
        raise _Unsupported(node, f"unary operator {type(node.op).__name__} is not allowed")

    def visit_BinOp(self, node: ast.BinOp) -> _Evaluator:
        op = _ARITHMETIC.get(type(node.op))
        if op is None:
            raise _Unsupported(node, f"operator {type(node.op).__name__} is not allowed")
        left = self.visit(node.left)
        right = self.visit(node.right)
        return lambda frame: op(left(frame), right(frame))

    def visit_Compare(self, node: ast.Compare) -> _Evaluator:
        first = self.visit(node.left)
        steps = [
            (_COMPARISONS[type(op)], self.visit(comparator))
            for op, comparator in zip(node.ops, node.comparators)
        ]

        def compare(frame: _Frame) -> bool:
            left = first(frame)
            for op, evaluate in steps:
                right = evaluate(frame)
                if not op(left, right):
                    return False
                left = right
            return True

        return compare

    def visit_Call(self, node: ast.Call) -> _Evaluator:
        if node.keywords:
            raise _Unsupported(node, "keyword arguments are not allowed")
        if any(isinstance(each, ast.Starred) for each in node.args):
            raise _Unsupported(node, "starred arguments are not allowed")
        function = self.visit(node.func)
        arguments = [self.visit(each) for each in node.args]
        allowed = self.allowed_callables

        def call(frame: _Frame) -> Any:
            target = function(frame)
            if id(target) not in allowed:
                raise SandboxViolation(f"{target!r} is not callable inside the sandbox")
            return target(*(argument(frame) for argument in arguments))

        return call


class Sandbox:
    """Compiles restricted expressions into reusable callables.

    Only the bindings given at construction (plus per-function bindings) are
    reachable from inside an expression.
    """

    def __init__(self, bindings: Mapping[str, Any] | None = None):
        self.bindings: dict[str, Any] = default_bindings()
        if bindings:
            self.bindings.update(bindings)

    def create_function(
        self,
        source: str,
        parameter_names: Iterable[str] = (),
        *,
        filename: str = "<sandbox>",
        scope: str | None = None,
        bindings: Mapping[str, Any] | None = None,
    ) -> Callable[..., Any] | list[ScriptError]:
        """Compile ``source`` into a function taking ``parameter_names``.

        Args:
            source: A single Python expression.
            parameter_names: Positional parameters of the generated function.
            filename: Label used in error records.
            scope: Name of a parameter whose fields are resolved as bare names
                before anything else (``amount`` reads ``data["amount"]``).
            bindings: Extra values visible only to this function.

        Returns:
            The compiled callable, or a non-empty list of ScriptError.
        """
        parameters = tuple(parameter_names)
        if scope is not None and scope not in parameters:
            return [ScriptError(0, 0, f"scope {scope!r} is not a parameter", filename, "scope")]

        visible = dict(self.bindings)
        if bindings:
            visible.update(bindings)

        try:
            tree = ast.parse(source.strip(), filename=filename, mode="eval")
        except SyntaxError as e:
            return [
                ScriptError(
                    line=e.lineno or 0,
                    column=e.offset or 0,
                    message=e.msg,
                    file=filename,
                    code="syntax",
                )
            ]

        try:
            evaluate = _Compiler(_callables_in(visible.values())).visit(tree)
        except _Unsupported as e:
            return [
                ScriptError(
                    line=getattr(e.node, "lineno", 0),
                    column=getattr(e.node, "col_offset", 0),
                    message=str(e),
                    file=filename,
                    code="unsupported",
                )
            ]

        def function(*args: Any) -> Any:
            if len(args) != len(parameters):
                raise TypeError(
                    f"{filename} expects {len(parameters)} arguments, got {len(args)}"
                )
            arguments = dict(zip(parameters, args))
            target = arguments[scope] if scope is not None else None
            return evaluate(_Frame(arguments, target, visible))

        function.__qualname__ = function.__name__ = f"sandboxed<{filename}>"
        return function
