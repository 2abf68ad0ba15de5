"""expr-jax public API."""

from .errors import (
    EvaluationError,
    ExprError,
    LexicalError,
    ParseError,
    SecurityError,
    UnsupportedError,
)
from .expression import Expression
from .instructions import Instruction
from .lexer import Token, TokenStream, tokenize
from .parser import Parser, ParserOptions, evaluate, parse
from .render import expression_to_string
from .simplify import simplify
from .substitute import substitute
from .symbols import get_symbols

try:
    from .ir import (
        CompiledExpression,
        JaxIR,
        compile_cache_stats,
        compile_expression,
        evaluate_ir,
        lower_to_ir,
    )
except ModuleNotFoundError as exc:
    if exc.name and exc.name.startswith("jax"):
        _jax_ir_import_error = exc

        def lower_to_ir(*_args, **_kwargs):
            raise ModuleNotFoundError(
                "jax is required for lower_to_ir(). Install runtime deps first."
            ) from _jax_ir_import_error

        def compile_expression(*_args, **_kwargs):
            raise ModuleNotFoundError(
                "jax is required for compile_expression(). Install runtime deps first."
            ) from _jax_ir_import_error

        def evaluate_ir(*_args, **_kwargs):
            raise ModuleNotFoundError(
                "jax is required for evaluate_ir(). Install runtime deps first."
            ) from _jax_ir_import_error

        def compile_cache_stats(*_args, **_kwargs):
            raise ModuleNotFoundError(
                "jax is required for compile_cache_stats(). Install runtime deps first."
            ) from _jax_ir_import_error

        class CompiledExpression:  # pragma: no cover - import-time fallback
            def __init__(self, *_args, **_kwargs) -> None:
                raise ModuleNotFoundError(
                    "jax is required for CompiledExpression(). Install runtime deps first."
                ) from _jax_ir_import_error

        class JaxIR:  # pragma: no cover - import-time fallback
            def __init__(self, *_args, **_kwargs) -> None:
                raise ModuleNotFoundError(
                    "jax is required for JaxIR(). Install runtime deps first."
                ) from _jax_ir_import_error

    else:
        raise

__all__ = [
    "parse",
    "evaluate",
    "Parser",
    "ParserOptions",
    "Expression",
    "Instruction",
    "Token",
    "TokenStream",
    "tokenize",
    "simplify",
    "substitute",
    "get_symbols",
    "expression_to_string",
    "lower_to_ir",
    "compile_expression",
    "compile_cache_stats",
    "evaluate_ir",
    "CompiledExpression",
    "JaxIR",
    "ExprError",
    "ParseError",
    "LexicalError",
    "EvaluationError",
    "SecurityError",
    "UnsupportedError",
]
