"""Postfix instruction model shared by the parser and every program pass."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

NUMBER = "NUMBER"
OP1 = "OP1"
OP2 = "OP2"
OP3 = "OP3"
VAR = "VAR"
VARNAME = "VARNAME"
FUNCALL = "FUNCALL"
FUNDEF = "FUNDEF"
EXPR = "EXPR"
EXPREVAL = "EXPREVAL"
MEMBER = "MEMBER"
ENDSTATEMENT = "ENDSTATEMENT"
ARRAY = "ARRAY"

INSTRUCTION_KINDS = frozenset(
    {NUMBER, OP1, OP2, OP3, VAR, VARNAME, FUNCALL, FUNDEF, EXPR, EXPREVAL, MEMBER, ENDSTATEMENT, ARRAY}
)

@dataclass(frozen=True)
class Instruction:
    """Tagged instruction.

    The payload depends on ``kind``: a literal value for ``NUMBER``, an
    operator symbol for ``OP1``/``OP2``/``OP3``, a name for ``VAR``,
    ``VARNAME`` and ``MEMBER``, an argument count for ``FUNCALL``, ``FUNDEF``
    and ``ARRAY``, a nested :data:`Program` for ``EXPR`` and a scope-taking
    closure for ``EXPREVAL``.
    """

    kind: str
    value: object = 0

    def __post_init__(self) -> None:
        if self.kind not in INSTRUCTION_KINDS:
            raise ValueError(f"Unknown instruction kind {self.kind!r}")

    def __str__(self) -> str:
        if self.kind == FUNCALL:
            return f"CALL {self.value}"
        if self.kind == FUNDEF:
            return f"DEF {self.value}"
        if self.kind == ARRAY:
            return f"ARRAY {self.value}"
        if self.kind == MEMBER:
            return f".{self.value}"
        if self.kind == EXPR:
            return "(" + " ".join(str(item) for item in self.value) + ")"
        if self.kind == ENDSTATEMENT:
            return ";"
        return str(self.value)


Program = Tuple[Instruction, ...]


def unary_instruction(op: str) -> Instruction:
    return Instruction(OP1, op)


def binary_instruction(op: str) -> Instruction:
    return Instruction(OP2, op)


def ternary_instruction(op: str) -> Instruction:
    return Instruction(OP3, op)


def program_to_string(program: Program) -> str:
    """Debug listing of a program in evaluation order."""
    return " ".join(str(item) for item in program)
