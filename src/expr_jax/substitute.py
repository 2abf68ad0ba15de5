"""Inline replacement of a variable by another program."""

from __future__ import annotations

from .instructions import EXPR, VAR, Instruction, Program


def substitute(program: Program, variable: str, replacement: Program) -> Program:
    """Return a copy of ``program`` with each ``variable`` reference replaced.

    Replacement instructions are copied in place of the reference, so the
    result stays a flat postfix sequence. Nested programs are rewritten too.
    """
    out: list[Instruction] = []
    for item in program:
        if item.kind == VAR and item.value == variable:
            out.extend(Instruction(r.kind, r.value) for r in replacement)
        elif item.kind == EXPR:
            out.append(Instruction(EXPR, substitute(item.value, variable, replacement)))
        else:
            out.append(item)
    return tuple(out)
