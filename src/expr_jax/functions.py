"""Built-in operator, function and constant catalogue.

Every entry is a plain stateless callable. Where Python already ships the
function (``math.sin``, ``abs``, ...) the table stores that exact object, so a
host passing the same object through an evaluation context is recognised as
trusted by identity.
"""

from __future__ import annotations

import inspect
import math
import random as _random
from collections.abc import Callable, Mapping, MutableMapping, Sequence
from typing import Final

Value = object


def _is_sequence(value: object) -> bool:
    return isinstance(value, (list, tuple))


def to_text(value: Value) -> str:
    """Text form of a value as seen by string concatenation and ``join``."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if _is_sequence(value):
        return ",".join(to_text(item) for item in value)
    return str(value)


# ---------- Arithmetic / comparisons ----------


def add(a, b):
    return a + b


def sub(a, b):
    return a - b


def mul(a, b):
    return a * b


def div(a, b):
    return a / b


def mod(a, b):
    return a % b


def power(a, b):
    return a**b


def concat(a, b):
    if _is_sequence(a) and _is_sequence(b):
        return list(a) + list(b)
    return to_text(a) + to_text(b)


def equal(a, b) -> bool:
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def not_equal(a, b) -> bool:
    return not equal(a, b)


def greater_than(a, b) -> bool:
    return a > b


def less_than(a, b) -> bool:
    return a < b


def greater_than_equal(a, b) -> bool:
    return a >= b


def less_than_equal(a, b) -> bool:
    return a <= b


def and_operator(a, b) -> bool:
    return bool(a and b)


def or_operator(a, b) -> bool:
    return bool(a or b)


def in_operator(a, b) -> bool:
    if isinstance(b, str):
        return to_text(a) in b
    return any(equal(a, item) for item in b)


# ---------- Unary ----------


def neg(a):
    return -a


def positive(a):
    if isinstance(a, str):
        if not a.strip():
            return 0
        try:
            return float(a)
        except ValueError:
            return math.nan
    return +a


def not_operator(a) -> bool:
    return not a


def trunc(a):
    return math.trunc(a) if math.isfinite(a) else a


def round_half_up(a):
    if not math.isfinite(a):
        return a
    return math.floor(a + 0.5)


def sign(x):
    if x > 0:
        return 1
    if x < 0:
        return -1
    return x


def cbrt(x: float) -> float:
    return -((-x) ** (1 / 3)) if x < 0 else x ** (1 / 3)


def log10(a: float) -> float:
    return math.log10(a)


def length(s) -> int:
    if _is_sequence(s):
        return len(s)
    return len(to_text(s))


def random(a=None) -> float:
    return _random.random() * (a or 1)


def factorial(a):
    return gamma(a + 1)


# ---------- Gamma ----------

_GAMMA_G: Final[float] = 4.7421875
_GAMMA_P: Final[tuple[float, ...]] = (
    0.99999999999999709182,
    57.156235665862923517,
    -59.597960355475491248,
    14.136097974741747174,
    -0.49191381609762019978,
    0.33994649984811888699e-4,
    0.46523628927048575665e-4,
    -0.98374475304879564677e-4,
    0.15808870322491248884e-3,
    -0.21026444172410488319e-3,
    0.2174396181152126432e-3,
    -0.16431810653676389022e-3,
    0.84418223983852743293e-4,
    -0.2619083840158140867e-4,
    0.36899182659531622704e-5,
)


def _is_integer(value: float) -> bool:
    return math.isfinite(value) and value == round(value)


def gamma(n):
    """Lanczos approximation with an exact product for integer arguments."""
    if _is_integer(n):
        if n <= 0:
            return math.inf
        if n > 171:
            return math.inf

        res = 1
        value = int(n) - 1
        while value > 1:
            res *= value
            value -= 1
        return res

    if math.isnan(n):
        return math.nan
    if math.isinf(n):
        return math.inf if n > 0 else math.nan
    if n < 0.5:
        return math.pi / (math.sin(math.pi * n) * gamma(1 - n))
    if n >= 171.35:
        return math.inf

    if n > 85.0:
        # Extended Stirling approximation.
        two_n = n * n
        three_n = two_n * n
        four_n = three_n * n
        five_n = four_n * n
        return (
            math.sqrt(2 * math.pi / n)
            * math.pow(n / math.e, n)
            * (
                1
                + 1 / (12 * n)
                + 1 / (288 * two_n)
                - 139 / (51840 * three_n)
                - 571 / (2488320 * four_n)
                + 163879 / (209018880 * five_n)
                + 5246819 / (75246796800 * five_n * n)
            )
        )

    n -= 1
    x = _GAMMA_P[0]
    for i in range(1, len(_GAMMA_P)):
        x += _GAMMA_P[i] / (n + i)
    t = n + _GAMMA_G + 0.5
    return math.sqrt(2 * math.pi) * math.pow(t, n + 0.5) * math.exp(-t) * x


# ---------- Multi-argument helpers ----------


def condition(cond, yep, nope):
    return yep if cond else nope


def round_to(value, exp=None):
    """Decimal adjustment of ``value`` to ``10 ** -exp`` precision."""
    if exp is None or exp == 0:
        return round_half_up(value)
    if isinstance(value, float) and math.isnan(value):
        return math.nan
    if not _is_integer(exp):
        return math.nan

    places = int(exp)
    return _shift(round_half_up(_shift(value, places)), -places)


def _shift(value, places: int) -> float:
    # Shift through the decimal text form so no binary rounding is introduced.
    mantissa, _, exponent = repr(float(value)).partition("e")
    return float(f"{mantissa}e{int(exponent or 0) + places}")


def set_var(name: str, value: Value, variables: MutableMapping[str, Value] | None = None) -> Value:
    if variables is not None:
        variables[name] = value
    return value


def set_member(target: Value, name: str, value: Value) -> Value:
    target[name] = value  # type: ignore[index]
    return value


def array_index(array: Sequence[Value], index) -> Value:
    position = int(index)
    if 0 <= position < len(array):
        return array[position]
    return None


def _extremum(pick: Callable[..., Value], empty: float, args: tuple[Value, ...]) -> Value:
    if not args:
        return empty
    if len(args) == 1 and _is_sequence(args[0]):
        return pick(args[0]) if args[0] else empty
    return pick(args)


def max_value(*args) -> Value:
    return _extremum(max, -math.inf, args)


def min_value(*args) -> Value:
    return _extremum(min, math.inf, args)


def _require_callable_and_sequence(name: str, f: Value, a: Value) -> None:
    if not callable(f):
        raise TypeError(f"First argument to {name} is not a function")
    if not _is_sequence(a):
        raise TypeError(f"Second argument to {name} is not an array")


def _call_with_index(f: Callable[..., Value], *args: Value) -> Value:
    # The trailing argument is the element index; callables that cannot take it get the rest.
    try:
        inspect.signature(f).bind(*args)
    except (TypeError, ValueError):
        return f(*args[:-1])
    return f(*args)


def array_map(f, a) -> list[Value]:
    _require_callable_and_sequence("map", f, a)
    return [_call_with_index(f, x, i) for i, x in enumerate(a)]


def array_fold(f, init, a) -> Value:
    if not callable(f):
        raise TypeError("First argument to fold is not a function")
    if not _is_sequence(a):
        raise TypeError("Second argument to fold is not an array")
    acc = init
    for i, x in enumerate(a):
        acc = _call_with_index(f, acc, x, i)
    return acc


def array_filter(f, a) -> list[Value]:
    _require_callable_and_sequence("filter", f, a)
    return [x for i, x in enumerate(a) if _call_with_index(f, x, i)]


def string_or_array_index_of(target, s) -> int:
    if isinstance(s, str):
        return s.find(to_text(target))
    if _is_sequence(s):
        for i, item in enumerate(s):
            if equal(item, target):
                return i
        return -1
    raise TypeError("Second argument to indexOf is not a string or array")


def array_join(sep, a) -> str:
    if not _is_sequence(a):
        raise TypeError("Second argument to join is not an array")
    return to_text(sep).join(to_text(item) for item in a)


def sum_values(array) -> Value:
    if not _is_sequence(array):
        raise TypeError("Sum argument is not an array")
    total = 0
    for value in array:
        total += value
    return total


# ---------- Default tables ----------


def default_unary_ops() -> dict[str, Callable[..., Value]]:
    return {
        "sin": math.sin,
        "cos": math.cos,
        "tan": math.tan,
        "asin": math.asin,
        "acos": math.acos,
        "atan": math.atan,
        "sinh": math.sinh,
        "cosh": math.cosh,
        "tanh": math.tanh,
        "asinh": math.asinh,
        "acosh": math.acosh,
        "atanh": math.atanh,
        "sqrt": math.sqrt,
        "cbrt": cbrt,
        "log": math.log,
        "log2": math.log2,
        "ln": math.log,
        "lg": log10,
        "log10": log10,
        "expm1": math.expm1,
        "log1p": math.log1p,
        "abs": abs,
        "ceil": math.ceil,
        "floor": math.floor,
        "round": round_half_up,
        "trunc": trunc,
        "-": neg,
        "+": positive,
        "exp": math.exp,
        "not": not_operator,
        "length": length,
        "!": factorial,
        "sign": sign,
    }


def default_binary_ops() -> dict[str, Callable[..., Value]]:
    return {
        "+": add,
        "-": sub,
        "*": mul,
        "/": div,
        "%": mod,
        "^": math.pow,
        "||": concat,
        "==": equal,
        "!=": not_equal,
        ">": greater_than,
        "<": less_than,
        ">=": greater_than_equal,
        "<=": less_than_equal,
        "and": and_operator,
        "or": or_operator,
        "in": in_operator,
        "=": set_var,
        "[": array_index,
    }


def default_ternary_ops() -> dict[str, Callable[..., Value]]:
    return {
        "?": condition,
        "=": set_member,
    }


def default_functions() -> dict[str, Callable[..., Value]]:
    return {
        "random": random,
        "fac": factorial,
        "min": min_value,
        "max": max_value,
        "hypot": math.hypot,
        "pyt": math.hypot,
        "pow": math.pow,
        "atan2": math.atan2,
        "if": condition,
        "gamma": gamma,
        "roundTo": round_to,
        "map": array_map,
        "fold": array_fold,
        "filter": array_filter,
        "indexOf": string_or_array_index_of,
        "join": array_join,
        "sum": sum_values,
    }


DEFAULT_CONSTS: Final[Mapping[str, Value]] = {
    "E": math.e,
    "PI": math.pi,
    "true": True,
    "false": False,
}
