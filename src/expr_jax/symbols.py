"""Free-symbol extraction."""

from __future__ import annotations

from .instructions import EXPR, MEMBER, VAR, VARNAME, Program


def _collect(program: Program, symbols: list[str], with_members: bool) -> None:
    pending: str | None = None

    def commit(name: str) -> None:
        if name not in symbols:
            symbols.append(name)

    for item in program:
        if item.kind in (VAR, VARNAME):
            if not with_members:
                commit(item.value)
                continue
            if pending is not None:
                commit(pending)
            pending = item.value
        elif item.kind == MEMBER and with_members and pending is not None:
            pending += "." + item.value
        elif item.kind == EXPR:
            _collect(item.value, symbols, with_members)
        elif pending is not None:
            commit(pending)
            pending = None

    if pending is not None:
        commit(pending)


def get_symbols(program: Program, with_members: bool = False) -> list[str]:
    """Names referenced or bound by ``program``, in first-seen order.

    With ``with_members`` a variable followed by member steps is reported as
    one dotted path (``user.name``) instead of just ``user``.
    """
    symbols: list[str] = []
    _collect(program, symbols, with_members)
    return symbols
