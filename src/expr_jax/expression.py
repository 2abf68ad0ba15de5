"""Parsed expression facade."""

from __future__ import annotations

from collections.abc import Callable, Mapping, MutableMapping
from typing import TYPE_CHECKING, Any

from .evaluator import evaluate
from .instructions import NUMBER, Instruction, Program, program_to_string
from .render import expression_to_string
from .simplify import simplify
from .substitute import substitute
from .symbols import get_symbols

if TYPE_CHECKING:
    from .ir import CompiledExpression
    from .parser import Parser


class Expression:
    """A parsed program bound to the parser whose tables it evaluates against."""

    def __init__(self, tokens: Program, parser: "Parser") -> None:
        self.tokens = tokens
        self.parser = parser

    @property
    def unary_ops(self):
        return self.parser.unary_ops

    @property
    def binary_ops(self):
        return self.parser.binary_ops

    @property
    def ternary_ops(self):
        return self.parser.ternary_ops

    @property
    def functions(self):
        return self.parser.functions

    def evaluate(self, values: MutableMapping[str, Any] | None = None) -> Any:
        """Evaluate against ``values``, which assignments update in place."""
        return evaluate(self.tokens, self, {} if values is None else values)

    def simplify(self, values: Mapping[str, Any] | None = None) -> "Expression":
        program = simplify(self.tokens, self.unary_ops, self.binary_ops, self.ternary_ops, values or {})
        return Expression(program, self.parser)

    def substitute(self, variable: str, expr: "Expression | str | int | float") -> "Expression":
        """Replace ``variable`` with ``expr``.

        Strings are parsed as source text; any other non-Expression value is
        inserted as a literal.
        """
        if isinstance(expr, str):
            replacement = self.parser.parse(expr).tokens
        elif isinstance(expr, Expression):
            replacement = expr.tokens
        else:
            replacement = (Instruction(NUMBER, expr),)
        return Expression(substitute(self.tokens, variable, replacement), self.parser)

    def symbols(self, with_members: bool = False) -> list[str]:
        return get_symbols(self.tokens, with_members=with_members)

    def variables(self, with_members: bool = False) -> list[str]:
        """Symbols that are not registered function names."""
        functions = self.functions
        return [name for name in get_symbols(self.tokens, with_members=with_members) if name not in functions]

    def to_string(self) -> str:
        return expression_to_string(self.tokens)

    def to_function(
        self,
        *params: str,
        values: Mapping[str, Any] | None = None,
        jit: bool = False,
    ) -> "CompiledExpression | Callable[..., Any]":
        """Compile the numeric subset of this expression to a JAX callable of ``params``.

        Names bound in ``values`` are folded in as constants first. Raises
        :class:`~expr_jax.errors.UnsupportedError` for anything the JAX
        lowering cannot express (strings, assignments, member access, ...).
        """
        from .ir import compile_program

        compiled = compile_program(self, arg_names=params, values=values)
        return compiled.jit() if jit else compiled

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"Expression({program_to_string(self.tokens)!r})"
