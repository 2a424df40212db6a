# statescope/core/actions.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details
"""
Transition actions and the sandbox that runs them.

An action turns ``(context, input)`` into a new context. Two kinds exist:

* registered actions, plain Python callables looked up by name in an
  ActionRegistry supplied by the embedding application;
* action code, a small statement language using Python syntax. Source is parsed
  with :mod:`ast`, checked against a whitelist of node types, and then run by a
  tree-walking interpreter. Nothing is ever passed to ``exec`` or ``eval``.

Example of action code::

    context.count = (context.count or 0) + 1
    if input.get("reset"):
        context.count = 0

The value of ``context`` after the last statement (or the value of a ``return``
statement) becomes the new context.

Configurations written for the browser engine use JavaScript operators, so
``||``, ``&&``, ``!``, ``===`` and ``!==`` outside string literals are read as
``or``, ``and``, ``not``, ``==`` and ``!=``, and ``true``, ``false``, ``null``
and ``undefined`` name the matching constants::

    context.count = (context.count||0)+1
"""

from __future__ import annotations

import ast
import logging
import math
import operator
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional

from statescope.core.context import clone
from statescope.core.errors import ActionError

logger = logging.getLogger(__name__)

ActionFunction = Callable[[Any, Any], Any]

MAX_SEQUENCE_LENGTH = 1_000_000
MAX_INT_BITS = 100_000


def _safe_range(*args: int) -> range:
    r = range(*args)
    if len(r) > MAX_SEQUENCE_LENGTH:
        raise ValueError(f"range of {len(r)} items exceeds the limit of {MAX_SEQUENCE_LENGTH}")
    return r


SAFE_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "abs": abs,
    "all": all,
    "any": any,
    "bool": bool,
    "ceil": math.ceil,
    "dict": dict,
    "enumerate": lambda iterable, start=0: [list(pair) for pair in enumerate(iterable, start)],
    "float": float,
    "floor": math.floor,
    "int": int,
    "len": len,
    "list": list,
    "max": max,
    "min": min,
    "range": _safe_range,
    "reversed": lambda sequence: list(reversed(sequence)),
    "round": round,
    "sorted": sorted,
    "sqrt": math.sqrt,
    "str": str,
    "sum": sum,
    "zip": lambda *iterables: [list(group) for group in zip(*iterables)],
}

SAFE_METHODS: Dict[type, frozenset] = {
    dict: frozenset({"get", "keys", "values", "items", "pop", "setdefault", "update", "copy"}),
    list: frozenset({"append", "extend", "insert", "pop", "remove", "index", "count", "copy", "reverse", "sort"}),
    str: frozenset(
        {
            "lower", "upper", "strip", "lstrip", "rstrip", "split", "join", "replace",
            "startswith", "endswith", "count", "find", "title", "capitalize",
        }
    ),
}
_ALL_METHODS = frozenset().union(*SAFE_METHODS.values())

_LITERAL_NAMES: Dict[str, Any] = {"true": True, "false": False, "null": None, "undefined": None}

# String literals and comments are matched first and kept verbatim.
_JS_OPERATOR_PATTERN = re.compile(
    r"""('''[\s\S]*?'''|\"\"\"[\s\S]*?\"\"\"|'(?:\\.|[^'\\\n])*'|"(?:\\.|[^"\\\n])*"|\#[^\n]*)"""
    r"""|(\|\||&&|===|!==|!(?!=))"""
)
_JS_OPERATORS = {"||": " or ", "&&": " and ", "===": "==", "!==": "!=", "!": "not "}

_BINARY_OPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
    ast.BitAnd: operator.and_,
    ast.BitOr: operator.or_,
    ast.BitXor: operator.xor,
    ast.LShift: operator.lshift,
    ast.RShift: operator.rshift,
}

_UNARY_OPS: Dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
    ast.Invert: operator.invert,
}

_COMPARE_OPS: Dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

_ALLOWED_NODES = (
    ast.Module,
    ast.Expr,
    ast.Assign,
    ast.AugAssign,
    ast.Delete,
    ast.If,
    ast.For,
    ast.Pass,
    ast.Break,
    ast.Continue,
    ast.Return,
    ast.Constant,
    ast.Name,
    ast.Attribute,
    ast.Subscript,
    ast.Slice,
    ast.BinOp,
    ast.UnaryOp,
    ast.BoolOp,
    ast.Compare,
    ast.IfExp,
    ast.List,
    ast.Tuple,
    ast.Dict,
    ast.Call,
    ast.keyword,
    ast.JoinedStr,
    ast.FormattedValue,
    ast.expr_context,
    ast.boolop,
    ast.unaryop,
    ast.cmpop,
    ast.operator,
)


class _SafetyChecker(ast.NodeVisitor):
    """
    Rejects any syntax outside the action language before it can run. Collects
    every violation so the author sees them all at once.
    """

    def __init__(self) -> None:
        self.violations = []

    def generic_visit(self, node: ast.AST) -> None:
        if not isinstance(node, _ALLOWED_NODES):
            self.violations.append(f"{type(node).__name__} is not allowed in actions")
            return
        super().generic_visit(node)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id.startswith("__"):
            self.violations.append(f"Name '{node.id}' is not allowed in actions")

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr.startswith("_"):
            self.violations.append(f"Access to '{node.attr}' is not allowed in actions")
        self.generic_visit(node)

    def visit_BinOp(self, node: ast.BinOp) -> None:
        if type(node.op) not in _BINARY_OPS:
            self.violations.append(f"Operator {type(node.op).__name__} is not allowed in actions")
        self.generic_visit(node)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        if type(node.op) not in _BINARY_OPS:
            self.violations.append(f"Operator {type(node.op).__name__} is not allowed in actions")
        self._check_target(node.target)
        self.generic_visit(node)

    def visit_Assign(self, node: ast.Assign) -> None:
        for target in node.targets:
            self._check_target(target)
        self.generic_visit(node)

    def visit_For(self, node: ast.For) -> None:
        if not isinstance(node.target, ast.Name):
            self.violations.append("Loop variables must be plain names")
        self.generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        func = node.func
        if isinstance(func, ast.Name):
            if func.id not in SAFE_FUNCTIONS:
                self.violations.append(f"Calling '{func.id}' is not allowed in actions")
        elif isinstance(func, ast.Attribute):
            if func.attr not in _ALL_METHODS:
                self.violations.append(f"Calling method '{func.attr}' is not allowed in actions")
        else:
            self.violations.append("Only named functions and methods can be called in actions")
        for kw in node.keywords:
            if kw.arg is None:
                self.violations.append("Keyword argument unpacking is not allowed in actions")
        self.generic_visit(node)

    def _check_target(self, target: ast.AST) -> None:
        if not isinstance(target, (ast.Name, ast.Attribute, ast.Subscript)):
            self.violations.append("Only names, fields and items can be assigned in actions")


@dataclass(frozen=True)
class CompiledAction:
    """Action code that has passed the safety check and is ready to run."""

    source: str
    tree: ast.Module


def _translate_operators(source: str) -> str:
    """Rewrite JavaScript logical and strict-equality operators into Python ones."""

    def substitute(match: re.Match) -> str:
        if match.group(1) is not None:
            return match.group(1)
        return _JS_OPERATORS[match.group(2)]

    return _JS_OPERATOR_PATTERN.sub(substitute, source)


def compile_action(source: str) -> CompiledAction:
    """
    Parse and check action code.

    :param source: Action source text.
    :return: The compiled action.
    :raises ActionError: On syntax errors or disallowed constructs.
    """
    if not isinstance(source, str):
        raise ActionError("Action code must be a string")
    try:
        tree = ast.parse(_translate_operators(source), mode="exec")
    except SyntaxError as e:
        raise ActionError(f"SyntaxError in action: {e.msg} (line {e.lineno}, offset {e.offset})")
    except (ValueError, RecursionError, MemoryError) as e:
        raise ActionError(f"Action cannot be parsed: {e}")

    checker = _SafetyChecker()
    checker.visit(tree)
    if checker.violations:
        raise ActionError("; ".join(checker.violations))
    return CompiledAction(source=source, tree=tree)


def _size(value: Any) -> int:
    return len(value) if hasattr(value, "__len__") else 0


class _Return(Exception):
    def __init__(self, value: Any) -> None:
        self.value = value


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


class _Interpreter:
    """
    Tree-walking evaluator for compiled action code. Every evaluated node costs
    one step; exceeding the budget aborts the action.
    """

    def __init__(self, bindings: Dict[str, Any], step_limit: int, max_exponent: int) -> None:
        self._bindings = bindings
        self._step_limit = step_limit
        self._max_exponent = max_exponent
        self._steps = 0

    def run(self, tree: ast.Module) -> Any:
        try:
            self._exec_block(tree.body)
        except _Return as ret:
            return ret.value
        except (_Break, _Continue):
            raise ActionError("'break' and 'continue' are only valid inside a loop")
        if "context" not in self._bindings:
            raise ActionError("Action removed 'context' without returning a value")
        return self._bindings["context"]

    def _tick(self) -> None:
        self._steps += 1
        if self._steps > self._step_limit:
            raise ActionError(f"Action exceeded the step limit of {self._step_limit}")

    # Statements

    def _exec_block(self, body) -> None:
        for stmt in body:
            self._exec(stmt)

    def _exec(self, node: ast.stmt) -> None:
        self._tick()
        if isinstance(node, ast.Expr):
            self._eval(node.value)
        elif isinstance(node, ast.Assign):
            value = self._eval(node.value)
            for target in node.targets:
                self._assign(target, value)
        elif isinstance(node, ast.AugAssign):
            current = self._eval(self._as_load(node.target))
            self._assign(node.target, self._binary(node.op, current, self._eval(node.value)))
        elif isinstance(node, ast.Delete):
            for target in node.targets:
                self._delete(target)
        elif isinstance(node, ast.If):
            self._exec_block(node.body if self._eval(node.test) else node.orelse)
        elif isinstance(node, ast.For):
            self._exec_for(node)
        elif isinstance(node, ast.Return):
            raise _Return(self._eval(node.value) if node.value is not None else self._bindings.get("context"))
        elif isinstance(node, ast.Break):
            raise _Break()
        elif isinstance(node, ast.Continue):
            raise _Continue()
        elif isinstance(node, ast.Pass):
            pass
        else:
            raise ActionError(f"{type(node).__name__} is not allowed in actions")

    def _exec_for(self, node: ast.For) -> None:
        iterable = self._eval(node.iter)
        if isinstance(iterable, dict):
            iterable = list(iterable)
        for item in iterable:
            self._tick()
            self._bindings[node.target.id] = item
            try:
                self._exec_block(node.body)
            except _Break:
                return
            except _Continue:
                continue
        self._exec_block(node.orelse)

    def _as_load(self, target: ast.expr) -> ast.expr:
        if isinstance(target, ast.Name):
            return ast.Name(id=target.id, ctx=ast.Load())
        if isinstance(target, ast.Attribute):
            return ast.Attribute(value=target.value, attr=target.attr, ctx=ast.Load())
        return ast.Subscript(value=target.value, slice=target.slice, ctx=ast.Load())

    def _assign(self, target: ast.expr, value: Any) -> None:
        if isinstance(target, ast.Name):
            self._bindings[target.id] = value
        elif isinstance(target, ast.Attribute):
            obj = self._eval(target.value)
            if not isinstance(obj, dict):
                raise TypeError(f"Cannot set field '{target.attr}' on {type(obj).__name__}")
            obj[target.attr] = value
        elif isinstance(target, ast.Subscript):
            obj = self._eval(target.value)
            if not isinstance(obj, (dict, list)):
                raise TypeError(f"{type(obj).__name__} does not support item assignment")
            obj[self._eval(target.slice)] = value
        else:
            raise ActionError("Only names, fields and items can be assigned in actions")

    def _delete(self, target: ast.expr) -> None:
        if isinstance(target, ast.Name):
            if target.id not in self._bindings:
                raise NameError(f"name '{target.id}' is not defined")
            del self._bindings[target.id]
        elif isinstance(target, ast.Attribute):
            obj = self._eval(target.value)
            if not isinstance(obj, dict):
                raise TypeError(f"Cannot delete field '{target.attr}' from {type(obj).__name__}")
            obj.pop(target.attr, None)
        elif isinstance(target, ast.Subscript):
            obj = self._eval(target.value)
            if not isinstance(obj, (dict, list)):
                raise TypeError(f"{type(obj).__name__} does not support item deletion")
            del obj[self._eval(target.slice)]
        else:
            raise ActionError("Only names, fields and items can be deleted in actions")

    # Expressions

    def _eval(self, node: ast.expr) -> Any:
        self._tick()
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            if node.id in self._bindings:
                return self._bindings[node.id]
            if node.id in _LITERAL_NAMES:
                return _LITERAL_NAMES[node.id]
            raise NameError(f"name '{node.id}' is not defined")
        if isinstance(node, ast.Attribute):
            obj = self._eval(node.value)
            if isinstance(obj, dict):
                return obj.get(node.attr)
            raise TypeError(f"Cannot read field '{node.attr}' of {type(obj).__name__}")
        if isinstance(node, ast.Subscript):
            return self._eval(node.value)[self._eval(node.slice)]
        if isinstance(node, ast.Slice):
            return slice(
                self._eval(node.lower) if node.lower else None,
                self._eval(node.upper) if node.upper else None,
                self._eval(node.step) if node.step else None,
            )
        if isinstance(node, ast.BinOp):
            return self._binary(node.op, self._eval(node.left), self._eval(node.right))
        if isinstance(node, ast.UnaryOp):
            return _UNARY_OPS[type(node.op)](self._eval(node.operand))
        if isinstance(node, ast.BoolOp):
            return self._bool_op(node)
        if isinstance(node, ast.Compare):
            return self._compare(node)
        if isinstance(node, ast.IfExp):
            return self._eval(node.body) if self._eval(node.test) else self._eval(node.orelse)
        if isinstance(node, ast.List):
            return [self._eval(elt) for elt in node.elts]
        if isinstance(node, ast.Tuple):
            return tuple(self._eval(elt) for elt in node.elts)
        if isinstance(node, ast.Dict):
            return self._dict(node)
        if isinstance(node, ast.Call):
            return self._call(node)
        if isinstance(node, ast.JoinedStr):
            return "".join(str(self._eval(value)) for value in node.values)
        if isinstance(node, ast.FormattedValue):
            return self._formatted(node)
        raise ActionError(f"{type(node).__name__} is not allowed in actions")

    def _binary(self, op: ast.operator, left: Any, right: Any) -> Any:
        op_type = type(op)
        if op_type is ast.Pow:
            self._check_power(left, right)
        elif op_type is ast.Mult:
            self._check_product(left, right)
        elif op_type is ast.Add:
            if isinstance(left, (str, list)) and isinstance(right, (str, list)):
                self._check_length(len(left) + len(right))
        elif op_type is ast.LShift:
            if isinstance(right, int) and right > MAX_INT_BITS:
                raise ActionError(f"Shift by {right} exceeds the limit of {MAX_INT_BITS}")
        return _BINARY_OPS[op_type](left, right)

    def _check_power(self, base: Any, exponent: Any) -> None:
        if isinstance(exponent, (int, float)) and abs(exponent) > self._max_exponent:
            raise ActionError(f"Exponent {exponent} exceeds the limit of {self._max_exponent}")
        if isinstance(base, int) and isinstance(exponent, int) and exponent > 0:
            if base.bit_length() * exponent > MAX_INT_BITS:
                raise ActionError("Result of '**' is too large")

    def _check_product(self, left: Any, right: Any) -> None:
        if isinstance(left, int) and isinstance(right, int):
            if left.bit_length() + right.bit_length() > MAX_INT_BITS:
                raise ActionError("Result of '*' is too large")
        elif isinstance(left, (str, list)) and isinstance(right, int):
            self._check_length(len(left) * right)
        elif isinstance(right, (str, list)) and isinstance(left, int):
            self._check_length(len(right) * left)

    def _check_length(self, length: int) -> None:
        if length > MAX_SEQUENCE_LENGTH:
            raise ActionError(f"Sequence of {length} items exceeds the limit of {MAX_SEQUENCE_LENGTH}")

    def _bool_op(self, node: ast.BoolOp) -> Any:
        value = None
        if isinstance(node.op, ast.And):
            for operand in node.values:
                value = self._eval(operand)
                if not value:
                    return value
            return value
        for operand in node.values:
            value = self._eval(operand)
            if value:
                return value
        return value

    def _compare(self, node: ast.Compare) -> bool:
        left = self._eval(node.left)
        for op, comparator in zip(node.ops, node.comparators):
            right = self._eval(comparator)
            if not _COMPARE_OPS[type(op)](left, right):
                return False
            left = right
        return True

    def _dict(self, node: ast.Dict) -> Dict[Any, Any]:
        result = {}
        for key, value in zip(node.keys, node.values):
            if key is None:
                spread = self._eval(value)
                if not isinstance(spread, dict):
                    raise TypeError(f"Cannot spread {type(spread).__name__} into a mapping")
                result.update(spread)
            else:
                result[self._eval(key)] = self._eval(value)
        return result

    def _call(self, node: ast.Call) -> Any:
        args = [self._eval(arg) for arg in node.args]
        kwargs = {kw.arg: self._eval(kw.value) for kw in node.keywords}
        func = node.func
        if isinstance(func, ast.Name):
            return SAFE_FUNCTIONS[func.id](*args, **kwargs)

        obj = self._eval(func.value)
        allowed = SAFE_METHODS.get(type(obj), frozenset())
        if func.attr not in allowed:
            raise TypeError(f"{type(obj).__name__} has no callable method '{func.attr}'")
        self._check_growth(obj, func.attr, args, kwargs)
        if func.attr == "sort" and "key" in kwargs:
            raise TypeError("sort() does not accept a key in actions")
        result = getattr(obj, func.attr)(*args, **kwargs)
        if isinstance(obj, dict) and func.attr in ("keys", "values", "items"):
            return [list(item) if isinstance(item, tuple) else item for item in result]
        return result

    def _check_growth(self, obj: Any, method: str, args: list, kwargs: Dict[str, Any]) -> None:
        """Reject method calls whose result would exceed the sequence size limit."""
        if method == "extend" and args:
            self._check_length(len(obj) + _size(args[0]))
        elif method in ("append", "insert", "setdefault"):
            self._check_length(len(obj) + 1)
        elif method == "update":
            self._check_length(len(obj) + sum(_size(arg) for arg in args) + len(kwargs))
        elif method == "join" and args and hasattr(args[0], "__len__"):
            parts = args[0]
            text = sum(len(part) for part in parts if isinstance(part, str))
            self._check_length(text + len(obj) * max(0, len(parts) - 1))
        elif method == "replace" and len(args) >= 2:
            self._check_length(len(obj) * max(1, len(str(args[1]))))

    def _formatted(self, node: ast.FormattedValue) -> str:
        value = self._eval(node.value)
        if node.conversion == ord("r"):
            value = repr(value)
        elif node.conversion == ord("a"):
            value = ascii(value)
        elif node.conversion == ord("s"):
            value = str(value)
        spec = self._eval(node.format_spec) if node.format_spec is not None else ""
        if any(int(n) > MAX_SEQUENCE_LENGTH for n in re.findall(r"\d+", spec)):
            raise ActionError(f"Format spec '{spec}' exceeds the size limit")
        return format(value, spec)


class ActionRegistry:
    """
    Named actions supplied by the embedding application. A registered action is
    called as ``fn(context, input)`` and returns the new context; returning None
    keeps the (possibly mutated) context it was given.
    """

    def __init__(self, actions: Optional[Dict[str, ActionFunction]] = None) -> None:
        self._actions: Dict[str, ActionFunction] = {}
        for name, fn in (actions or {}).items():
            self.register(name, fn)

    def register(self, name: str, fn: Optional[ActionFunction] = None):
        """
        Register ``fn`` under ``name``. Usable as a decorator when ``fn`` is omitted::

            @registry.register("increment")
            def increment(context, input):
                ...

        :raises ValueError: If the name is empty or ``fn`` is not callable.
        """
        if not isinstance(name, str) or not name:
            raise ValueError("Action name must be a non-empty string")
        if fn is None:

            def decorator(func: ActionFunction) -> ActionFunction:
                self.register(name, func)
                return func

            return decorator
        if not callable(fn):
            raise ValueError(f"Action '{name}' must be callable")
        self._actions[name] = fn
        return fn

    def get(self, name: str) -> Optional[ActionFunction]:
        return self._actions.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._actions

    def __iter__(self) -> Iterator[str]:
        return iter(self._actions)

    def __len__(self) -> int:
        return len(self._actions)


class ActionSandbox:
    """
    Runs transition actions against copies of the context and input. The only
    things an action can see are those two values; the only thing it can affect is
    its return value. Every failure comes back as an ActionError.
    """

    def __init__(
        self,
        registry: Optional[ActionRegistry] = None,
        step_limit: int = 10_000,
        max_exponent: int = 1_000,
    ) -> None:
        self.registry = registry if registry is not None else ActionRegistry()
        self._step_limit = step_limit
        self._max_exponent = max_exponent
        self._compiled: Dict[str, CompiledAction] = {}

    def compile(self, action: str) -> Optional[CompiledAction]:
        """
        Compile action code ahead of time and cache it. Registered action names
        need no compilation and return None.

        :raises ActionError: If the code is not valid action code.
        """
        if action in self.registry:
            return None
        compiled = self._compiled.get(action)
        if compiled is None:
            compiled = compile_action(action)
            self._compiled[action] = compiled
            logger.debug("Compiled action %r", action)
        return compiled

    def clear_cache(self) -> None:
        """Forget previously compiled action code."""
        self._compiled.clear()

    def execute(self, action: str, context: Any, input: Any) -> Any:
        """
        Run an action and return the new context.

        :param action: A registered action name or action code.
        :param context: The current context. Copied before the action sees it.
        :param input: The event input. Copied before the action sees it.
        :return: The new context.
        :raises ActionError: If the action cannot be compiled or fails.
        """
        try:
            context = clone(context)
            input = clone(input)
            fn = self.registry.get(action)
            if fn is not None:
                result = fn(context, input)
                return clone(context if result is None else result)
            compiled = self.compile(action)
            interpreter = _Interpreter(
                {"context": context, "input": input},
                step_limit=self._step_limit,
                max_exponent=self._max_exponent,
            )
            return interpreter.run(compiled.tree)
        except ActionError:
            raise
        except Exception as e:
            raise ActionError(f"{type(e).__name__}: {e}")
