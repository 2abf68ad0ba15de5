"""Fully parenthesised infix rendering of programs."""

from __future__ import annotations

import json

from .errors import EvaluationError
from .instructions import (
    ARRAY,
    ENDSTATEMENT,
    EXPR,
    FUNCALL,
    FUNDEF,
    MEMBER,
    NUMBER,
    OP1,
    OP2,
    OP3,
    VAR,
    VARNAME,
    Program,
)


def _literal(value: object) -> str:
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False).replace("\u2028", "\\u2028").replace("\u2029", "\\u2029")
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_literal(item) for item in value) + "]"
    return repr(value) if isinstance(value, float) else str(value)


def _pop_args(nstack: list[str], count: int) -> list[str]:
    args = nstack[len(nstack) - count :] if count else []
    del nstack[len(nstack) - count :]
    return args


def expression_to_string(program: Program) -> str:
    """Render ``program`` as source text that parses back to the same program shape."""
    nstack: list[str] = []
    for item in program:
        kind = item.kind
        if kind == NUMBER:
            value = item.value
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value < 0:
                nstack.append(f"({_literal(value)})")
            else:
                nstack.append(_literal(value))
        elif kind == OP2:
            n2 = nstack.pop()
            n1 = nstack.pop()
            if item.value == "[":
                nstack.append(f"{n1}[{n2}]")
            else:
                nstack.append(f"({n1} {item.value} {n2})")
        elif kind == OP3:
            n3 = nstack.pop()
            n2 = nstack.pop()
            n1 = nstack.pop()
            if item.value == "?":
                nstack.append(f"({n1} ? {n2} : {n3})")
            elif item.value == "=":
                nstack.append(f"({n1}.{n2} = {n3})")
            else:
                raise EvaluationError("invalid Expression")
        elif kind in (VAR, VARNAME):
            nstack.append(str(item.value))
        elif kind == OP1:
            n1 = nstack.pop()
            op = item.value
            if op in ("-", "+"):
                nstack.append(f"({op}{n1})")
            elif op == "!":
                nstack.append(f"({n1}!)")
            else:
                nstack.append(f"({op} {n1})")
        elif kind == FUNCALL:
            args = _pop_args(nstack, int(item.value))
            f = nstack.pop()
            nstack.append(f"{f}({', '.join(args)})")
        elif kind == FUNDEF:
            body = nstack.pop()
            params = _pop_args(nstack, int(item.value))
            name = nstack.pop()
            nstack.append(f"({name}({', '.join(params)}) = {body})")
        elif kind == MEMBER:
            n1 = nstack.pop()
            nstack.append(f"{n1}.{item.value}")
        elif kind == ARRAY:
            args = _pop_args(nstack, int(item.value))
            nstack.append(f"[{', '.join(args)}]")
        elif kind == EXPR:
            nstack.append(f"({expression_to_string(item.value)})")
        elif kind == ENDSTATEMENT:
            continue
        else:
            raise EvaluationError("invalid Expression")

    if len(nstack) > 1:
        return ";".join(nstack)
    return nstack[0] if nstack else ""
