"""Stack-machine evaluation of instruction programs.

Host callables reaching the stack through the evaluation context are only
invoked when they are the very objects held by the owning parser's operator
and function tables. Everything else callable is rejected with
:class:`~expr_jax.errors.SecurityError` before it can run.
"""

from __future__ import annotations

import itertools
import logging
import math
import re
from collections.abc import Mapping, MutableMapping
from typing import TYPE_CHECKING, Any, Callable

from .errors import EvaluationError, SecurityError
from .instructions import (
    ARRAY,
    ENDSTATEMENT,
    EXPR,
    EXPREVAL,
    FUNCALL,
    FUNDEF,
    MEMBER,
    NUMBER,
    OP1,
    OP2,
    OP3,
    VAR,
    VARNAME,
    Instruction,
    Program,
)

if TYPE_CHECKING:
    from .expression import Expression

logger = logging.getLogger(__name__)

_RESERVED_NAME = re.compile(r"^__proto__|prototype|constructor$|^__\w*__$")
_lambda_counter = itertools.count()

Scope = MutableMapping[str, Any]


def is_reserved_name(name: object) -> bool:
    return isinstance(name, str) and _RESERVED_NAME.search(name) is not None


def is_allowed_function(f: object, expression: "Expression") -> bool:
    """True when ``f`` is, by identity, an entry of one of the parser's tables."""
    parser = expression.parser
    for table in (parser.functions, parser.unary_ops, parser.ternary_ops, parser.binary_ops):
        for candidate in table.values():
            if candidate is f:
                return True
    return False


def _expression_evaluator(program: Program, expression: "Expression") -> Instruction:
    def run(scope: Scope) -> Any:
        return evaluate(program, expression, scope)

    return Instruction(EXPREVAL, run)


def _is_expression_evaluator(value: object) -> bool:
    return isinstance(value, Instruction) and value.kind == EXPREVAL


def _resolve(value: Any, values: Scope) -> Any:
    if _is_expression_evaluator(value):
        return value.value(values)
    return value


def _read_member(target: Any, name: str) -> Any:
    if isinstance(target, Mapping):
        return target.get(name)
    return getattr(target, name, None)


def _operator(table: Mapping[str, Callable[..., Any]], op: str) -> Callable[..., Any]:
    try:
        return table[op]
    except KeyError:
        raise EvaluationError(f"unknown operator: {op}") from None


def _define_function(
    name: str, params: list[str], body: Instruction, expression: "Expression", values: Scope
) -> Callable[..., Any]:
    def user_function(*args: Any) -> Any:
        scope = dict(values)
        scope.update(zip(params, args))
        return _resolve(body, scope)

    registered = f"lambda_{next(_lambda_counter)}"
    user_function.__name__ = name
    user_function.__qualname__ = name
    expression.parser.functions[registered] = user_function
    values[name] = user_function
    logger.debug("defined %s(%s) registered as %s", name, ", ".join(params), registered)
    return user_function


def evaluate(program: Program | Instruction, expression: "Expression", values: Scope) -> Any:
    """Run ``program`` against ``values`` and return its single result.

    ``values`` is mutated in place by assignments and function definitions.
    An empty program yields ``None``.
    """
    if _is_expression_evaluator(program):
        return _resolve(program, values)

    parser = expression.parser
    nstack: list[Any] = []

    for item in program:  # type: ignore[union-attr]
        kind = item.kind
        if kind in (NUMBER, VARNAME):
            nstack.append(item.value)
        elif kind == OP2:
            n2 = nstack.pop()
            n1 = nstack.pop()
            if item.value == "and":
                nstack.append(bool(_resolve(n2, values)) if _resolve(n1, values) else False)
            elif item.value == "or":
                nstack.append(True if _resolve(n1, values) else bool(_resolve(n2, values)))
            elif item.value == "=":
                f = _operator(parser.binary_ops, "=")
                nstack.append(f(n1, _resolve(n2, values), values))
            else:
                f = _operator(parser.binary_ops, item.value)
                result = f(_resolve(n1, values), _resolve(n2, values))
                if item.value == "[" and callable(result) and not is_allowed_function(result, expression):
                    raise SecurityError("Is not an allowed function in array index.")
                nstack.append(result)
        elif kind == OP3:
            n3 = nstack.pop()
            n2 = nstack.pop()
            n1 = nstack.pop()
            if item.value == "?":
                nstack.append(_resolve(n2 if _resolve(n1, values) else n3, values))
            elif item.value == "=":
                nstack.append(_assign_member(_resolve(n1, values), n2, _resolve(n3, values), parser))
            else:
                f = _operator(parser.ternary_ops, item.value)
                nstack.append(f(_resolve(n1, values), _resolve(n2, values), _resolve(n3, values)))
        elif kind == VAR:
            nstack.append(_lookup(item.value, expression, values))
        elif kind == OP1:
            n1 = nstack.pop()
            f = _operator(parser.unary_ops, item.value)
            nstack.append(f(_resolve(n1, values)))
        elif kind == FUNCALL:
            argc = int(item.value)
            args = [_resolve(nstack.pop(), values) for _ in range(argc)]
            args.reverse()
            f = _resolve(nstack.pop(), values)
            if not callable(f):
                raise EvaluationError(f"{f!r} is not a function")
            if not is_allowed_function(f, expression):
                raise SecurityError("Is not an allowed function.")
            # Callable arguments are gated like call targets.
            for arg in args:
                if callable(arg) and not is_allowed_function(arg, expression):
                    raise SecurityError("Is not an allowed function in arguments.")
            nstack.append(f(*args))
        elif kind == FUNDEF:
            body = nstack.pop()
            params = [nstack.pop() for _ in range(int(item.value))]
            params.reverse()
            name = nstack.pop()
            nstack.append(_define_function(name, params, body, expression, values))
        elif kind == EXPR:
            nstack.append(_expression_evaluator(item.value, expression))
        elif kind == EXPREVAL:
            nstack.append(item)
        elif kind == MEMBER:
            target = _resolve(nstack.pop(), values)
            if is_reserved_name(item.value):
                raise SecurityError("prototype access detected in MEMBER")
            member = _read_member(target, item.value)
            if callable(member) and not is_allowed_function(member, expression):
                raise SecurityError("Is not an allowed function in MEMBER.")
            nstack.append(member)
        elif kind == ENDSTATEMENT:
            nstack.pop()
        elif kind == ARRAY:
            argc = int(item.value)
            elements = [_resolve(nstack.pop(), values) for _ in range(argc)]
            elements.reverse()
            nstack.append(elements)
        else:
            raise EvaluationError("invalid Expression")

    if len(nstack) > 1:
        raise EvaluationError("invalid Expression (parity)")
    if not nstack:
        return None

    result = _resolve(nstack[0], values)
    if isinstance(result, float) and result == 0 and math.copysign(1.0, result) < 0:
        return 0.0
    return result


def _lookup(name: str, expression: "Expression", values: Scope) -> Any:
    if is_reserved_name(name):
        raise SecurityError("prototype access detected")

    parser = expression.parser
    if name in parser.functions:
        return parser.functions[name]
    if name in parser.unary_ops and parser.is_operator_enabled(name):
        return parser.unary_ops[name]
    if name not in values:
        raise EvaluationError(f"undefined variable: {name}")

    value = values[name]
    if callable(value) and not is_allowed_function(value, expression):
        raise SecurityError(f"Variable references an unallowed function: {name}")
    return value


def _assign_member(target: Any, name: str, value: Any, parser: Any) -> Any:
    if is_reserved_name(name):
        raise SecurityError("prototype access detected in member assignment")
    if not isinstance(target, MutableMapping):
        raise EvaluationError(f"cannot assign member {name!r} of {type(target).__name__}")
    return _operator(parser.ternary_ops, "=")(target, name, value)
