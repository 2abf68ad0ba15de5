"""Lowering of the numeric expression subset to JAX.

A (simplified) postfix program is turned into an SSA-like :class:`JaxIR`
whose nodes are executed with ``jax.numpy``. Lazy constructs are lowered
eagerly: both arms of ``?:`` are computed and selected with ``jnp.where`` and
``and``/``or`` become element-wise logical operations.
"""

from __future__ import annotations

import logging
import weakref
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import jax
import jax.numpy as jnp
import jax.scipy.special as jsp

from .config import USE_IR_CACHE
from .errors import EvaluationError, UnsupportedError
from .expression import Expression
from .instructions import (
    ARRAY,
    ENDSTATEMENT,
    EXPR,
    FUNCALL,
    NUMBER,
    OP1,
    OP2,
    OP3,
    VAR,
    Program,
)
from .parser import Parser, parse
from .render import expression_to_string

logger = logging.getLogger(__name__)

# Per-parser lowerings; entries go away with their parser.
_COMPILED_IR_CACHE: "weakref.WeakKeyDictionary[Parser, dict[tuple[object, ...], JaxIR]]" = weakref.WeakKeyDictionary()
_COMPILED_IR_CACHE_STATS: dict[str, int] = {"hits": 0, "misses": 0}


def _round_half_up(x):
    return jnp.floor(x + 0.5)


def _factorial(x):
    return jsp.gamma(x + 1.0)


def _float_power(a, b):
    return jnp.power(jnp.asarray(a, dtype=jnp.result_type(float)), b)


_UNARY: dict[str, Callable[[Any], Any]] = {
    "-": jnp.negative,
    "+": jnp.positive,
    "abs": jnp.abs,
    "sin": jnp.sin,
    "cos": jnp.cos,
    "tan": jnp.tan,
    "asin": jnp.arcsin,
    "acos": jnp.arccos,
    "atan": jnp.arctan,
    "sinh": jnp.sinh,
    "cosh": jnp.cosh,
    "tanh": jnp.tanh,
    "asinh": jnp.arcsinh,
    "acosh": jnp.arccosh,
    "atanh": jnp.arctanh,
    "sqrt": jnp.sqrt,
    "cbrt": jnp.cbrt,
    "log": jnp.log,
    "ln": jnp.log,
    "log2": jnp.log2,
    "lg": jnp.log10,
    "log10": jnp.log10,
    "expm1": jnp.expm1,
    "log1p": jnp.log1p,
    "exp": jnp.exp,
    "ceil": jnp.ceil,
    "floor": jnp.floor,
    "round": _round_half_up,
    "trunc": jnp.trunc,
    "sign": jnp.sign,
    "not": jnp.logical_not,
    "!": _factorial,
}

_BINARY: dict[str, Callable[[Any, Any], Any]] = {
    "+": jnp.add,
    "-": jnp.subtract,
    "*": jnp.multiply,
    "/": jnp.true_divide,
    "%": jnp.mod,
    "^": _float_power,
    "==": jnp.equal,
    "!=": jnp.not_equal,
    "<": jnp.less,
    "<=": jnp.less_equal,
    ">": jnp.greater,
    ">=": jnp.greater_equal,
    "and": jnp.logical_and,
    "or": jnp.logical_or,
}


def _extremum(reduce_all, pairwise):
    def apply(*args):
        if len(args) == 1:
            return reduce_all(args[0])
        out = args[0]
        for arg in args[1:]:
            out = pairwise(out, arg)
        return out

    return apply


_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "hypot": jnp.hypot,
    "pyt": jnp.hypot,
    "pow": _float_power,
    "atan2": jnp.arctan2,
    "if": jnp.where,
    "gamma": jsp.gamma,
    "fac": _factorial,
    "sum": jnp.sum,
    "min": _extremum(jnp.min, jnp.minimum),
    "max": _extremum(jnp.max, jnp.maximum),
}


def _unsupported(feature: str) -> UnsupportedError:
    return UnsupportedError(f"JAX lowering does not support {feature}")


@dataclass(frozen=True)
class IRNode:
    """Single SSA-like IR node."""

    id: int
    op: str
    inputs: tuple[int, ...] = ()
    value: object | None = None
    name: str | None = None


@dataclass(frozen=True)
class JaxIR:
    """Lowered IR container."""

    nodes: tuple[IRNode, ...]
    output: int
    arg_names: tuple[str, ...]


@dataclass(frozen=True)
class _FunctionRef:
    name: str


def _freeze(value: object) -> object:
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


class _Lowerer:
    def __init__(self, *, arg_names: tuple[str, ...], functions: Mapping[str, object]) -> None:
        self.arg_names = arg_names
        self.arg_set = set(arg_names)
        self.functions = functions
        self.nodes: list[IRNode] = []
        self._arg_nodes: dict[str, int] = {}
        self._node_cache: dict[tuple[object, ...], int] = {}

    def _add(self, op: str, *, inputs: tuple[int, ...] = (), value: object | None = None, name: str | None = None) -> int:
        key = (op, inputs, type(value).__name__, _freeze(value), name)
        cached = self._node_cache.get(key)
        if cached is not None:
            return cached
        node_id = len(self.nodes)
        self.nodes.append(IRNode(id=node_id, op=op, inputs=inputs, value=value, name=name))
        self._node_cache[key] = node_id
        return node_id

    def _arg(self, name: str) -> int:
        if name not in self._arg_nodes:
            self._arg_nodes[name] = self._add("arg", name=name)
        return self._arg_nodes[name]

    @staticmethod
    def _node(entry: object, where: str) -> int:
        if isinstance(entry, _FunctionRef):
            raise _unsupported(f"function-valued operand {entry.name!r} in {where}")
        return entry  # type: ignore[return-value]

    def _const(self, value: object) -> int:
        if isinstance(value, (bool, int, float)):
            return self._add("const", value=value)
        if isinstance(value, (list, tuple)) and all(
            isinstance(item, (bool, int, float)) for item in value
        ):
            return self._add("const", value=list(value))
        raise _unsupported(f"literal {value!r}")

    def lower_program(self, program: Program) -> int:
        stack: list[object] = []
        for item in program:
            kind = item.kind
            if kind == NUMBER:
                stack.append(self._const(item.value))
            elif kind == VAR:
                name = item.value
                if name in self.arg_set:
                    stack.append(self._arg(name))
                elif name in _FUNCTIONS and name in self.functions:
                    stack.append(_FunctionRef(name))
                else:
                    raise _unsupported(f"free name {name!r}")
            elif kind == OP1:
                if item.value not in _UNARY:
                    raise _unsupported(f"unary operator {item.value!r}")
                operand = self._node(stack.pop(), item.value)
                stack.append(self._add(f"unary:{item.value}", inputs=(operand,)))
            elif kind == OP2:
                if item.value not in _BINARY:
                    raise _unsupported(f"binary operator {item.value!r}")
                right = self._node(stack.pop(), item.value)
                left = self._node(stack.pop(), item.value)
                stack.append(self._add(f"binary:{item.value}", inputs=(left, right)))
            elif kind == OP3:
                if item.value != "?":
                    raise _unsupported(f"ternary operator {item.value!r}")
                otherwise = self._node(stack.pop(), "?")
                then = self._node(stack.pop(), "?")
                cond = self._node(stack.pop(), "?")
                stack.append(self._add("where", inputs=(cond, then, otherwise)))
            elif kind == FUNCALL:
                argc = int(item.value)
                args = tuple(self._node(stack.pop(), "call") for _ in range(argc))[::-1]
                callee = stack.pop()
                if not isinstance(callee, _FunctionRef):
                    raise _unsupported("calls of computed values")
                stack.append(self._add(f"call:{callee.name}", inputs=args))
            elif kind == ARRAY:
                argc = int(item.value)
                items = tuple(self._node(stack.pop(), "array") for _ in range(argc))[::-1]
                stack.append(self._add("vector", inputs=items))
            elif kind == EXPR:
                stack.append(self.lower_program(item.value))
            elif kind == ENDSTATEMENT:
                stack.pop()
            else:
                raise _unsupported(f"{kind} instructions")

        if len(stack) != 1:
            raise _unsupported("empty or multi-valued programs")
        return self._node(stack[0], "result")


def _as_array(value):
    if isinstance(value, jnp.ndarray):
        return value
    return jnp.asarray(value)


def evaluate_ir(ir: JaxIR, args: tuple[object, ...]) -> object:
    """Execute lowered IR with pure JAX operations."""
    if len(args) != len(ir.arg_names):
        raise EvaluationError(f"Expected {len(ir.arg_names)} arguments, got {len(args)}")

    arg_values = dict(zip(ir.arg_names, args))
    values: list[object] = [None] * len(ir.nodes)

    for node in ir.nodes:
        op = node.op
        inputs = [values[idx] for idx in node.inputs]
        if op == "arg":
            values[node.id] = _as_array(arg_values[node.name])
        elif op == "const":
            values[node.id] = jnp.asarray(node.value)
        elif op == "vector":
            values[node.id] = jnp.stack(inputs) if inputs else jnp.asarray([])
        elif op == "where":
            values[node.id] = jnp.where(*inputs)
        else:
            kind, _, payload = op.partition(":")
            if kind == "unary":
                values[node.id] = _UNARY[payload](inputs[0])
            elif kind == "binary":
                values[node.id] = _BINARY[payload](inputs[0], inputs[1])
            elif kind == "call":
                values[node.id] = _FUNCTIONS[payload](*inputs)
            else:
                raise EvaluationError(f"Unknown IR op {op!r}")

    return values[ir.output]


@dataclass
class CompiledExpression:
    """Callable wrapper around lowered IR with optional JAX transforms."""

    ir: JaxIR
    source: str | None = None
    _jit_fn: object | None = field(default=None, init=False, repr=False)
    _grad_cache: dict[int, object] = field(default_factory=dict, init=False, repr=False)
    _vmap_cache: dict[tuple[str, str], object] = field(default_factory=dict, init=False, repr=False)

    def _call_ir(self, *args):
        return evaluate_ir(self.ir, args)

    def _resolve_call_args(self, args: tuple[object, ...], kwargs: dict[str, object]) -> tuple[object, ...]:
        if args and kwargs:
            raise EvaluationError("Use either positional or keyword arguments, not both")
        if kwargs:
            missing = [name for name in self.ir.arg_names if name not in kwargs]
            extra = [name for name in kwargs if name not in self.ir.arg_names]
            if missing or extra:
                raise EvaluationError(f"Keyword arguments do not match signature (missing={missing}, extra={extra})")
            return tuple(kwargs[name] for name in self.ir.arg_names)
        if len(args) != len(self.ir.arg_names):
            raise EvaluationError(f"Expected {len(self.ir.arg_names)} arguments, got {len(args)}")
        return args

    def __call__(self, *args, **kwargs):
        return self._call_ir(*self._resolve_call_args(args, kwargs))

    def trace(self, *args, **kwargs):
        """Emit the jaxpr of this expression for sample inputs."""
        return jax.make_jaxpr(self._call_ir)(*self._resolve_call_args(args, kwargs))

    def jit(self):
        """Return a ``jax.jit`` compiled callable."""
        if self._jit_fn is None:
            jitted = jax.jit(self._call_ir)

            def wrapped(*args, **kwargs):
                return jitted(*self._resolve_call_args(args, kwargs))

            self._jit_fn = wrapped
        return self._jit_fn

    def grad(self, *, argnums: int = 0):
        """Return a gradient function for scalar-valued expressions."""
        cached = self._grad_cache.get(argnums)
        if cached is None:
            grad_fn = jax.jit(jax.grad(self._call_ir, argnums=argnums))

            def wrapped(*args, **kwargs):
                return grad_fn(*self._resolve_call_args(args, kwargs))

            cached = self._grad_cache[argnums] = wrapped
        return cached

    def vmap(self, *, in_axes=0, out_axes=0):
        key = (repr(in_axes), repr(out_axes))
        cached = self._vmap_cache.get(key)
        if cached is None:
            vmapped = jax.vmap(self._call_ir, in_axes=in_axes, out_axes=out_axes)

            def wrapped(*args, **kwargs):
                return vmapped(*self._resolve_call_args(args, kwargs))

            cached = self._vmap_cache[key] = wrapped
        return cached


def _as_expression(expression: Expression | str) -> Expression:
    if isinstance(expression, Expression):
        return expression
    return parse(expression)


def lower_to_ir(
    expression: Expression | str,
    *,
    arg_names: tuple[str, ...] = (),
    values: Mapping[str, object] | None = None,
    use_cache: bool = True,
) -> JaxIR:
    """Lower the numeric subset of ``expression`` to JAX-friendly IR.

    ``values`` are folded in as constants; names in ``arg_names`` always stay
    arguments even when ``values`` binds them.
    """
    expr = _as_expression(expression)
    arg_names = tuple(arg_names)
    bound = {name: value for name, value in (values or {}).items() if name not in arg_names}
    program = expr.simplify(bound).tokens

    rendered = expression_to_string(program)
    cache_key = (rendered, arg_names, frozenset(expr.functions))
    use_cache = use_cache and USE_IR_CACHE
    parser_cache = _COMPILED_IR_CACHE.setdefault(expr.parser, {}) if use_cache else {}
    if use_cache:
        cached = parser_cache.get(cache_key)
        if cached is not None:
            _COMPILED_IR_CACHE_STATS["hits"] += 1
            return cached
        _COMPILED_IR_CACHE_STATS["misses"] += 1

    lowerer = _Lowerer(arg_names=arg_names, functions=expr.functions)
    output = lowerer.lower_program(program)
    ir = JaxIR(nodes=tuple(lowerer.nodes), output=output, arg_names=arg_names)
    logger.debug("lowered %r to %d IR nodes", rendered, len(ir.nodes))

    if use_cache:
        parser_cache[cache_key] = ir
    return ir


def compile_program(
    expression: Expression,
    *,
    arg_names: tuple[str, ...] = (),
    values: Mapping[str, object] | None = None,
    use_cache: bool = True,
) -> CompiledExpression:
    ir = lower_to_ir(expression, arg_names=arg_names, values=values, use_cache=use_cache)
    return CompiledExpression(ir=ir, source=expression.to_string())


def compile_expression(
    source: str,
    *,
    arg_names: tuple[str, ...] = (),
    values: Mapping[str, object] | None = None,
    use_cache: bool = True,
) -> CompiledExpression:
    """Parse ``source`` with the default parser and compile it to an IR-backed callable."""
    ir = lower_to_ir(source, arg_names=arg_names, values=values, use_cache=use_cache)
    return CompiledExpression(ir=ir, source=source)


def compile_cache_stats(*, reset: bool = False) -> dict[str, float | int]:
    stats: dict[str, float | int] = dict(_COMPILED_IR_CACHE_STATS)
    total = stats["hits"] + stats["misses"]
    stats["size"] = sum(len(entries) for entries in _COMPILED_IR_CACHE.values())
    stats["hit_rate"] = float(stats["hits"] / total) if total else 0.0
    if reset:
        _COMPILED_IR_CACHE.clear()
        _COMPILED_IR_CACHE_STATS["hits"] = 0
        _COMPILED_IR_CACHE_STATS["misses"] = 0
    return stats
