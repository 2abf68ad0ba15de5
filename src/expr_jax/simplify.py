"""Constant folding over postfix programs."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Mapping
from typing import Any

from .errors import SecurityError
from .evaluator import is_reserved_name
from .instructions import EXPR, MEMBER, NUMBER, OP1, OP2, OP3, VAR, Instruction, Program

OperatorTable = Mapping[str, Callable[..., Any]]


def _member_of(target: Any, name: str) -> Any:
    if isinstance(target, Mapping):
        return target.get(name)
    return getattr(target, name, None)


def simplify(
    program: Program,
    unary_ops: OperatorTable,
    binary_ops: OperatorTable,
    ternary_ops: OperatorTable,
    values: Mapping[str, Any],
) -> Program:
    """Fold every operator whose operands are all known literals.

    Variables bound in ``values`` are replaced by literals first. Callable
    bindings are never inlined so they still go through the evaluator's
    trust check. Nested programs are folded recursively and kept nested.
    """
    pending: deque[Instruction] = deque()
    out: list[Instruction] = []

    def flush() -> None:
        while pending:
            out.append(pending.popleft())

    for item in program:
        kind = item.kind
        if kind == NUMBER:
            pending.append(item)
        elif kind == VAR and item.value in values and not callable(values[item.value]):
            pending.append(Instruction(NUMBER, values[item.value]))
        elif kind == OP2 and len(pending) > 1:
            n2 = pending.pop()
            n1 = pending.pop()
            pending.append(Instruction(NUMBER, binary_ops[item.value](n1.value, n2.value)))
        elif kind == OP3 and len(pending) > 2:
            n3 = pending.pop()
            n2 = pending.pop()
            n1 = pending.pop()
            if item.value == "?":
                pending.append(n2 if n1.value else n3)
            else:
                pending.append(Instruction(NUMBER, ternary_ops[item.value](n1.value, n2.value, n3.value)))
        elif kind == OP1 and pending:
            n1 = pending.pop()
            pending.append(Instruction(NUMBER, unary_ops[item.value](n1.value)))
        elif kind == EXPR:
            flush()
            out.append(Instruction(EXPR, simplify(item.value, unary_ops, binary_ops, ternary_ops, values)))
        elif kind == MEMBER and pending:
            if is_reserved_name(item.value):
                raise SecurityError("prototype access detected in MEMBER")
            member = _member_of(pending[-1].value, item.value)
            if callable(member):
                flush()
                out.append(item)
            else:
                pending.pop()
                pending.append(Instruction(NUMBER, member))
        else:
            flush()
            out.append(item)

    flush()
    return tuple(out)
