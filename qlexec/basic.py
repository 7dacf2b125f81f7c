"""Stack, jump and branching instructions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from .code import Context, Instr, Push, Stack

_on_pop: Callable[[Any], None] | None = None


def set_on_pop(fn: Callable[[Any], None] | None) -> None:
    """Install a hook that receives values discarded by `pop_ex` instructions."""
    global _on_pop
    _on_pop = fn


def _pop_or_none(stk: Stack) -> Any:
    return stk.pop() if len(stk) else None


# -----------------------------------------------------------------------------
# Rem


@dataclass
class _Rem(Instr):
    """A source remark; does nothing when executed."""

    file: str
    line: int
    code: str

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        pass


def rem(file: str, line: int, code: str) -> Instr:
    return _Rem(file, line, code)


# -----------------------------------------------------------------------------
# Push/Pop


def push(v: Any) -> Instr:
    """Return an instruction that pushes a constant."""
    return Push(v)


class _Pop(Instr):
    def exec(self, stk: Stack, ctx: Context | None) -> None:
        _pop_or_none(stk)

    def __repr__(self) -> str:
        return "Pop()"


@dataclass
class _PopEx(Instr):
    on_pop: Callable[[Any], None]

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        self.on_pop(_pop_or_none(stk))


NIL: Instr = Push(None)
POP: Instr = _Pop()


def pop_ex() -> Instr:
    """Return a pop instruction that hands the value to the on-pop hook, if one is set."""
    if _on_pop is not None:
        return _PopEx(_on_pop)
    return POP


# -----------------------------------------------------------------------------
# Clear


class _Clear(Instr):
    def exec(self, stk: Stack, ctx: Context | None) -> None:
        stk.set_frame(ctx.base)

    def __repr__(self) -> str:
        return "Clear()"


CLEAR: Instr = _Clear()


# -----------------------------------------------------------------------------
# Or/And


@dataclass
class _Or(Instr):
    delta: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        a = _pop_or_none(stk)
        if not isinstance(a, bool):
            raise TypeError("left operand of || operator isn't a boolean expression")
        if a:
            stk.push(True)
            ctx.ip += self.delta


@dataclass
class _And(Instr):
    delta: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        a = _pop_or_none(stk)
        if not isinstance(a, bool):
            raise TypeError("left operand of && operator isn't a boolean expression")
        if not a:
            stk.push(False)
            ctx.ip += self.delta


def or_(delta: int) -> Instr:
    """Short-circuit `||`: on true, leave true and skip delta instructions."""
    return _Or(delta)


def and_(delta: int) -> Instr:
    """Short-circuit `&&`: on false, leave false and skip delta instructions."""
    return _And(delta)


# -----------------------------------------------------------------------------
# Jmp/JmpIfFalse


@dataclass
class _Jmp(Instr):
    delta: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        ctx.ip += self.delta


def jmp(delta: int) -> Instr:
    return _Jmp(delta)


@dataclass
class _JmpIfFalse(Instr):
    delta: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        a = _pop_or_none(stk)
        if not isinstance(a, bool):
            raise TypeError("condition isn't a boolean expression")
        if not a:
            ctx.ip += self.delta


def jmp_if_false(delta: int) -> Instr:
    return _JmpIfFalse(delta)


# -----------------------------------------------------------------------------
# Case/Default


@dataclass
class _Case(Instr):
    delta: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        b = _pop_or_none(stk)
        a = stk.top() if len(stk) else None
        cond = a == b
        if not isinstance(cond, bool):
            raise TypeError("operator == return non-boolean value?")
        if cond:
            stk.pop()
        else:
            ctx.ip += self.delta


def case(delta: int) -> Instr:
    """Compare the switch value with a case value; on mismatch skip delta instructions."""
    return _Case(delta)


DEFAULT: Instr = POP


# -----------------------------------------------------------------------------
# Op3


@dataclass
class _Op3(Instr):
    op: Callable[[Any, Any, Any], Any]
    has_a: bool
    has_b: bool

    @property
    def arity(self) -> int:
        return 1 + self.has_a + self.has_b

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        v, *rest = stk.pop_n_args(self.arity)
        it = iter(rest)
        a = next(it) if self.has_a else None
        b = next(it) if self.has_b else None
        stk.push(self.op(v, a, b))


def op3(op: Callable[[Any, Any, Any], Any], has_a: bool, has_b: bool) -> Instr:
    """Apply a three-operand operation such as v[a:b]; missing operands are None."""
    return _Op3(op, bool(has_a), bool(has_b))