"""Variable references, indexing and assignment instructions."""

from __future__ import annotations

import math
import operator
from dataclasses import dataclass
from typing import Any, Callable

from .classes import Object, get_member_var
from .code import UNDEFINED, Context, DataIndex, Instr, Stack

_ASSIGN_WITHOUT_VAL = "variable assign without value"


@dataclass(frozen=True)
class Variable:
    """An assignable variable slot, pushed by the `var` instruction."""

    name: int


# -----------------------------------------------------------------------------
# Indexing


def _check_index(seq: Any, index: Any) -> None:
    if isinstance(index, bool) or not isinstance(index, int):
        raise TypeError(f"index of type `{type(index).__name__}` isn't an integer")
    if not 0 <= index < len(seq):
        raise IndexError(f"index out of range: {index} (length {len(seq)})")


def get_item(o: Any, k: Any) -> Any:
    """Return o[k]; a missing map key gives UNDEFINED."""
    if isinstance(o, dict):
        return o.get(k, UNDEFINED)
    if isinstance(o, (list, tuple, str, bytes)):
        _check_index(o, k)
        return o[k]
    if isinstance(o, Object):
        return get_member_var(o, k)
    raise TypeError(f"type `{type(o).__name__}` doesn't support index operator")


def set_index(data: Any, index: Any, v: Any) -> None:
    """Perform data[index] = v for maps, lists and qlang objects."""
    if isinstance(data, dict):
        data[index] = v
    elif isinstance(data, list):
        _check_index(data, index)
        data[index] = v
    elif isinstance(data, Object):
        if not isinstance(index, str):
            raise TypeError("set(object, member, value): member should be `string` type")
        data.set_var(index, v)
    else:
        raise TypeError(f"type `{type(data).__name__}` doesn't support assignment by index")


# -----------------------------------------------------------------------------
# Ref / Var / Get / GetVar / GfnRef


@dataclass
class _Var(Instr):
    name: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        stk.push(Variable(self.name))


@dataclass
class _Ref(Instr):
    name: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        stk.push(ctx.get_ref(self.name))

    def to_var(self) -> Instr:
        return _Var(self.name)


def ref(name: int) -> Instr:
    """Return an instruction that pushes the value of a variable (an encoded symbol index)."""
    return _Ref(name)


def var(name: int) -> Instr:
    """Return an instruction that pushes an assignable reference to a variable."""
    return _Var(name)


def _pop_pair(stk: Stack, what: str) -> tuple[Any, Any]:
    if len(stk) < 2:
        raise RuntimeError(f"unexpected to call `{what}` instruction")
    k = stk.pop()
    o = stk.pop()
    return o, k


class _GetVar(Instr):
    def exec(self, stk: Stack, ctx: Context | None) -> None:
        o, k = _pop_pair(stk, "GetVar")
        stk.push(DataIndex(o, k))

    def __repr__(self) -> str:
        return "GetVar()"


class _Get(Instr):
    def exec(self, stk: Stack, ctx: Context | None) -> None:
        o, k = _pop_pair(stk, "Get")
        stk.push(get_item(o, k))

    def to_var(self) -> Instr:
        return GET_VAR

    def __repr__(self) -> str:
        return "Get()"


GET_VAR: Instr = _GetVar()
GET: Instr = _Get()


@dataclass
class _GfnRef(Instr):
    val: Any
    make_var: Callable[[], Instr]

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        stk.push(self.val)

    def to_var(self) -> Instr:
        return self.make_var()


def gfn_ref(v: Any, to_var: Callable[[], Instr]) -> Instr:
    """Return an instruction that pushes a function-table item; to_var builds its assignable form."""
    return _GfnRef(v, to_var)


# -----------------------------------------------------------------------------
# Assignment


def _do_assign(k: Any, v: Any, ctx: Context) -> None:
    if isinstance(k, Variable):
        ctx.set_ref(k.name, v)
    elif isinstance(k, DataIndex):
        set_index(k.data, k.index, v)
    else:
        raise TypeError("invalid assignment statement")


class _AssignEx(Instr):
    def exec(self, stk: Stack, ctx: Context | None) -> None:
        if len(stk) < 2:
            raise RuntimeError(_ASSIGN_WITHOUT_VAL)
        v = stk.pop()
        k = stk.pop()
        _do_assign(k, v, ctx)

    def __repr__(self) -> str:
        return "AssignEx()"


ASSIGN_EX: Instr = _AssignEx()


@dataclass
class _MultiAssignFromSliceEx(Instr):
    arity: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        *targets, values = stk.pop_n_args(self.arity + 1)
        if not isinstance(values, (list, tuple)):
            raise TypeError("expression of multi assignment must be a slice")
        if len(values) != self.arity:
            raise ValueError(
                f"multi assignment error: require {len(values)} variables, but we got {self.arity}"
            )
        for k, v in zip(targets, values):
            _do_assign(k, v, ctx)


def multi_assign_from_slice_ex(arity: int) -> Instr:
    """Return an instruction for `a1, ..., aN = list`."""
    return _MultiAssignFromSliceEx(arity)


@dataclass
class _MultiAssignEx(Instr):
    arity: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        args = stk.pop_n_args(self.arity * 2)
        for k, v in zip(args[: self.arity], args[self.arity :]):
            _do_assign(k, v, ctx)


def multi_assign_ex(arity: int) -> Instr:
    """Return an instruction for `a1, ..., aN = v1, ..., vN`."""
    return _MultiAssignEx(arity)


# -----------------------------------------------------------------------------
# Operator assignments


def _is_int(x: Any) -> bool:
    return isinstance(x, int) and not isinstance(x, bool)


def _quo(a: Any, b: Any) -> Any:
    if _is_int(a) and _is_int(b):
        if b == 0:
            raise ZeroDivisionError("integer divide by zero")
        q = abs(a) // abs(b)
        return q if (a < 0) == (b < 0) else -q
    return a / b


def _mod(a: Any, b: Any) -> Any:
    if _is_int(a) and _is_int(b):
        if b == 0:
            raise ZeroDivisionError("integer divide by zero")
        r = abs(a) % abs(b)
        return -r if a < 0 else r
    return math.fmod(a, b)


def _and_not(a: Any, b: Any) -> Any:
    return a & ~b


def _inc(a: Any) -> Any:
    return a + 1


def _dec(a: Any) -> Any:
    return a - 1


@dataclass
class _OpAssign(Instr):
    op: Callable[[Any, Any], Any]

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        if len(stk) < 2:
            raise RuntimeError(_ASSIGN_WITHOUT_VAL)
        v = stk.pop()
        k = stk.pop()
        if isinstance(k, Variable):
            ctx.set_ref(k.name, self.op(ctx.get_ref(k.name), v))
        elif isinstance(k, DataIndex):
            set_index(k.data, k.index, self.op(get_item(k.data, k.index), v))
        else:
            raise TypeError("invalid op assignment statement")


@dataclass
class _Op1Assign(Instr):
    op: Callable[[Any], Any]

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        if not len(stk):
            raise RuntimeError(_ASSIGN_WITHOUT_VAL)
        k = stk.pop()
        if isinstance(k, Variable):
            ctx.set_ref(k.name, self.op(ctx.get_ref(k.name)))
        elif isinstance(k, DataIndex):
            set_index(k.data, k.index, self.op(get_item(k.data, k.index)))
        else:
            raise TypeError("invalid op1 assignment statement")


ADD_ASSIGN_EX: Instr = _OpAssign(operator.add)
SUB_ASSIGN_EX: Instr = _OpAssign(operator.sub)
MUL_ASSIGN_EX: Instr = _OpAssign(operator.mul)
QUO_ASSIGN_EX: Instr = _OpAssign(_quo)
MOD_ASSIGN_EX: Instr = _OpAssign(_mod)
XOR_ASSIGN_EX: Instr = _OpAssign(operator.xor)
BIT_AND_ASSIGN_EX: Instr = _OpAssign(operator.and_)
BIT_OR_ASSIGN_EX: Instr = _OpAssign(operator.or_)
AND_NOT_ASSIGN_EX: Instr = _OpAssign(_and_not)
LSHR_ASSIGN_EX: Instr = _OpAssign(operator.lshift)
RSHR_ASSIGN_EX: Instr = _OpAssign(operator.rshift)
INC_EX: Instr = _Op1Assign(_inc)
DEC_EX: Instr = _Op1Assign(_dec)