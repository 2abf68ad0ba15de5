"""Recursive-descent parser producing postfix instruction programs."""

from __future__ import annotations

from collections.abc import Callable, Mapping, MutableMapping
from dataclasses import dataclass, field
from functools import lru_cache

from .config import PARSE_CACHE_MAX
from .errors import ParseError, coordinates
from .expression import Expression
from .functions import (
    DEFAULT_CONSTS,
    default_binary_ops,
    default_functions,
    default_ternary_ops,
    default_unary_ops,
)
from .instructions import (
    ARRAY,
    ENDSTATEMENT,
    EXPR,
    FUNCALL,
    FUNDEF,
    MEMBER,
    NUMBER,
    VAR,
    VARNAME,
    Instruction,
    binary_instruction,
    ternary_instruction,
    unary_instruction,
)
from .lexer import BRACKET, COMMA, EOF, NAME, NUMBER as TNUMBER, OP, PAREN, SEMICOLON, STRING, Token, TokenStream

_COMPARISON_OPERATORS = ("==", "!=", "<", "<=", ">=", ">", "in")
_ADD_SUB_OPERATORS = ("+", "-", "||")
_TERM_OPERATORS = ("*", "/", "%")

# Operator symbol -> option name used to toggle it.
_OPTION_NAMES = {
    "+": "add",
    "-": "subtract",
    "*": "multiply",
    "/": "divide",
    "%": "remainder",
    "^": "power",
    "!": "factorial",
    "<": "comparison",
    ">": "comparison",
    "<=": "comparison",
    ">=": "comparison",
    "==": "comparison",
    "!=": "comparison",
    "||": "concatenate",
    "and": "logical",
    "or": "logical",
    "not": "logical",
    "?": "conditional",
    ":": "conditional",
    "=": "assignment",
    "[": "array",
    "()=": "fndef",
}

TokenMatcher = object  # a value, a collection of values, a predicate or None


@dataclass(frozen=True)
class ParserOptions:
    """Feature toggles.

    ``operators`` maps option names (``add``, ``comparison``, ``logical``,
    ``fndef``, ``array``, ``sin``, ...) to booleans. A feature is enabled
    unless its option is present and false.
    """

    allow_member_access: bool = True
    operators: Mapping[str, bool] = field(default_factory=dict)


def option_name(op: str) -> str:
    return _OPTION_NAMES.get(op, op)


class Parser:
    """Owns the operator/function tables and parses source into expressions.

    The tables are per-instance copies of the built-in catalogue and form the
    trust boundary for evaluation: only callables present in them are ever
    invoked.
    """

    def __init__(self, options: ParserOptions | None = None) -> None:
        self.options = options if options is not None else ParserOptions()
        self.unary_ops: MutableMapping[str, Callable[..., object]] = default_unary_ops()
        self.binary_ops: MutableMapping[str, Callable[..., object]] = default_binary_ops()
        self.ternary_ops: MutableMapping[str, Callable[..., object]] = default_ternary_ops()
        self.functions: MutableMapping[str, Callable[..., object]] = default_functions()
        self.consts: MutableMapping[str, object] = dict(DEFAULT_CONSTS)

    def parse(self, expression: str) -> Expression:
        instr: list[Instruction] = []
        state = _ParserState(self, TokenStream(self, expression), allow_member_access=self.options.allow_member_access)
        state.parse_expression(instr)
        state.expect(EOF)
        return Expression(tuple(instr), self)

    def evaluate(self, expression: str, variables: MutableMapping[str, object] | None = None) -> object:
        return self.parse(expression).evaluate(variables)

    def is_operator_enabled(self, op: str) -> bool:
        name = option_name(op)
        operators = self.options.operators
        return name not in operators or bool(operators[name])


class _ParserState:
    def __init__(self, parser: Parser, tokens: TokenStream, *, allow_member_access: bool = True) -> None:
        self.parser = parser
        self.tokens = tokens
        self.allow_member_access = allow_member_access
        self.current: Token | None = None
        self.next_token: Token = tokens.next()
        self._saved_current: Token | None = None
        self._saved_next_token: Token = self.next_token

    def _next(self) -> Token:
        self.current = self.next_token
        self.next_token = self.tokens.next()
        return self.next_token

    @staticmethod
    def _token_matches(token: Token, value: TokenMatcher) -> bool:
        if value is None:
            return True
        if callable(value):
            return bool(value(token))
        if isinstance(value, (tuple, list, set, frozenset)):
            return token.value in value
        return token.value == value

    def save(self) -> None:
        self._saved_current = self.current
        self._saved_next_token = self.next_token
        self.tokens.save()

    def restore(self) -> None:
        self.tokens.restore()
        self.current = self._saved_current
        self.next_token = self._saved_next_token

    def accept(self, kind: str, value: TokenMatcher = None) -> bool:
        if self.next_token.kind == kind and self._token_matches(self.next_token, value):
            self._next()
            return True
        return False

    def expect(self, kind: str, value: TokenMatcher = None) -> None:
        if not self.accept(kind, value):
            expected = kind if value is None or callable(value) else str(value)
            self._error(f"Expected {expected}", expected=(expected,))

    def _error(self, message: str, *, token: Token | None = None, expected: tuple[str, ...] = ()) -> None:
        tok = token if token is not None else self.next_token
        line, column = coordinates(self.tokens.expression, tok.pos)
        found = "EOF" if tok.kind == EOF else f"{tok.kind}({tok.value})"
        raise ParseError(message, line=line, column=column, pos=tok.pos, expected=expected, found=found)

    def _is_prefix_operator(self, token: Token) -> bool:
        return isinstance(token.value, str) and token.value in self.parser.unary_ops

    def _current_value(self) -> object:
        assert self.current is not None
        return self.current.value

    def parse_atom(self, instr: list[Instruction]) -> None:
        if self.accept(NAME) or self.accept(OP, self._is_prefix_operator):
            instr.append(Instruction(VAR, self._current_value()))
        elif self.accept(TNUMBER) or self.accept(STRING):
            instr.append(Instruction(NUMBER, self._current_value()))
        elif self.accept(PAREN, "("):
            self.parse_expression(instr)
            self.expect(PAREN, ")")
        elif self.accept(BRACKET, "["):
            if self.accept(BRACKET, "]"):
                instr.append(Instruction(ARRAY, 0))
            else:
                count = self._parse_list(instr, closer=(BRACKET, "]"))
                instr.append(Instruction(ARRAY, count))
        else:
            self._error(f"Unexpected {self.next_token}")

    def parse_expression(self, instr: list[Instruction]) -> None:
        expr_instr: list[Instruction] = []
        self.parse_variable_assignment_expression(expr_instr)
        if self._parse_until_end_statement(instr, expr_instr):
            return
        instr.extend(expr_instr)

    def _at_statement_end(self) -> bool:
        tok = self.next_token
        return tok.kind == EOF or (tok.kind == PAREN and tok.value == ")")

    def _parse_until_end_statement(self, instr: list[Instruction], expr_instr: list[Instruction]) -> bool:
        if not self.accept(SEMICOLON):
            return False
        if not self._at_statement_end():
            expr_instr.append(Instruction(ENDSTATEMENT))
            self.parse_expression(expr_instr)
        instr.append(Instruction(EXPR, tuple(expr_instr)))
        return True

    def _parse_list(self, instr: list[Instruction], *, closer: tuple[str, str]) -> int:
        count = 1
        self.parse_expression(instr)
        while self.accept(COMMA):
            self.parse_expression(instr)
            count += 1
        self.expect(*closer)
        return count

    def parse_variable_assignment_expression(self, instr: list[Instruction]) -> None:
        self.parse_conditional_expression(instr)
        while self.accept(OP, "="):
            target = instr.pop()
            value_instr: list[Instruction] = []

            if target.kind == FUNCALL:
                if not self.parser.is_operator_enabled("()="):
                    self._error("function definition is not permitted", token=self.current)
                self._rewrite_call_as_signature(instr, int(target.value))
                self.parse_variable_assignment_expression(value_instr)
                instr.append(Instruction(EXPR, tuple(value_instr)))
                instr.append(Instruction(FUNDEF, target.value))
                continue

            if target.kind == VAR:
                self.parse_variable_assignment_expression(value_instr)
                instr.append(Instruction(VARNAME, target.value))
                instr.append(Instruction(EXPR, tuple(value_instr)))
                instr.append(binary_instruction("="))
            elif target.kind == MEMBER:
                self.parse_variable_assignment_expression(value_instr)
                instr.append(Instruction(VARNAME, target.value))
                instr.append(Instruction(EXPR, tuple(value_instr)))
                instr.append(ternary_instruction("="))
            else:
                self._error("expected variable for assignment", token=self.current)

    def _rewrite_call_as_signature(self, instr: list[Instruction], argc: int) -> None:
        # The callee and each argument must be single bare names.
        start = len(instr) - argc - 1
        signature = instr[start:] if start >= 0 else []
        if len(signature) != argc + 1 or any(item.kind != VAR for item in signature):
            self._error("function definition requires a name and parameter names", token=self.current)
        for offset, item in enumerate(signature):
            instr[start + offset] = Instruction(VARNAME, item.value)

    def parse_conditional_expression(self, instr: list[Instruction]) -> None:
        self.parse_or_expression(instr)
        while self.accept(OP, "?"):
            true_branch: list[Instruction] = []
            false_branch: list[Instruction] = []
            self.parse_conditional_expression(true_branch)
            self.expect(OP, ":")
            self.parse_conditional_expression(false_branch)
            instr.append(Instruction(EXPR, tuple(true_branch)))
            instr.append(Instruction(EXPR, tuple(false_branch)))
            instr.append(ternary_instruction("?"))

    def parse_or_expression(self, instr: list[Instruction]) -> None:
        self.parse_and_expression(instr)
        while self.accept(OP, "or"):
            false_branch: list[Instruction] = []
            self.parse_and_expression(false_branch)
            instr.append(Instruction(EXPR, tuple(false_branch)))
            instr.append(binary_instruction("or"))

    def parse_and_expression(self, instr: list[Instruction]) -> None:
        self.parse_comparison(instr)
        while self.accept(OP, "and"):
            true_branch: list[Instruction] = []
            self.parse_comparison(true_branch)
            instr.append(Instruction(EXPR, tuple(true_branch)))
            instr.append(binary_instruction("and"))

    def parse_comparison(self, instr: list[Instruction]) -> None:
        self.parse_add_sub(instr)
        while self.accept(OP, _COMPARISON_OPERATORS):
            op = self._current_value()
            self.parse_add_sub(instr)
            instr.append(binary_instruction(op))

    def parse_add_sub(self, instr: list[Instruction]) -> None:
        self.parse_term(instr)
        while self.accept(OP, _ADD_SUB_OPERATORS):
            op = self._current_value()
            self.parse_term(instr)
            instr.append(binary_instruction(op))

    def parse_term(self, instr: list[Instruction]) -> None:
        self.parse_factor(instr)
        while self.accept(OP, _TERM_OPERATORS):
            op = self._current_value()
            self.parse_factor(instr)
            instr.append(binary_instruction(op))

    def parse_factor(self, instr: list[Instruction]) -> None:
        self.save()
        if not self.accept(OP, self._is_prefix_operator):
            self.parse_exponential(instr)
            return

        op = self._current_value()
        if op not in {"-", "+"}:
            nxt = self.next_token
            if nxt.kind == PAREN and nxt.value == "(":
                self.restore()
                self.parse_exponential(instr)
                return
            if nxt.kind in {SEMICOLON, COMMA, EOF} or (nxt.kind == PAREN and nxt.value == ")"):
                # A bare operator name such as ``abs`` in ``map(abs, xs)``.
                self.restore()
                self.parse_atom(instr)
                return

        self.parse_factor(instr)
        instr.append(unary_instruction(op))

    def parse_exponential(self, instr: list[Instruction]) -> None:
        self.parse_postfix_expression(instr)
        while self.accept(OP, "^"):
            self.parse_factor(instr)
            instr.append(binary_instruction("^"))

    def parse_postfix_expression(self, instr: list[Instruction]) -> None:
        self.parse_function_call(instr)
        while self.accept(OP, "!"):
            instr.append(unary_instruction("!"))

    def parse_function_call(self, instr: list[Instruction]) -> None:
        if self.accept(OP, self._is_prefix_operator):
            op = self._current_value()
            self.parse_atom(instr)
            instr.append(unary_instruction(op))
            return

        self.parse_member_expression(instr)
        while self.accept(PAREN, "("):
            if self.accept(PAREN, ")"):
                instr.append(Instruction(FUNCALL, 0))
            else:
                count = self._parse_list(instr, closer=(PAREN, ")"))
                instr.append(Instruction(FUNCALL, count))

    def _accept_member_name(self) -> bool:
        if self.accept(NAME):
            return True
        # Named operators (``abs``, ``in``) are valid property names after a dot.
        return self.accept(OP, lambda tok: isinstance(tok.value, str) and tok.value.isidentifier())

    def parse_member_expression(self, instr: list[Instruction]) -> None:
        self.parse_atom(instr)
        while self.accept(OP, ".") or self.accept(BRACKET, "["):
            op = self._current_value()
            if op == ".":
                if not self.allow_member_access:
                    self._error('unexpected ".", member access is not permitted', token=self.current)
                if not self._accept_member_name():
                    self._error("Expected NAME", expected=(NAME,))
                instr.append(Instruction(MEMBER, self._current_value()))
            else:
                if not self.parser.is_operator_enabled("["):
                    self._error('unexpected "[]", arrays are disabled', token=self.current)
                self.parse_expression(instr)
                self.expect(BRACKET, "]")
                instr.append(binary_instruction("["))


_DEFAULT_PARSER = Parser()


@lru_cache(maxsize=PARSE_CACHE_MAX)
def _parse_cached(expression: str) -> Expression:
    return _DEFAULT_PARSER.parse(expression)


def parse(expression: str) -> Expression:
    """Parse with the shared default parser, reusing cached programs."""
    return _parse_cached(expression)


def evaluate(expression: str, variables: MutableMapping[str, object] | None = None) -> object:
    """Parse and evaluate ``expression`` against ``variables`` with the default parser.

    Function definitions register a ``lambda_N`` entry in the shared default
    parser's function table. The entry holds its defining context for the
    life of the process; use a dedicated :class:`Parser` for code that defines
    functions repeatedly.
    """
    return parse(expression).evaluate(variables)
