"""Type constructors and composite literal instructions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .code import Chan, Context, Instr, Stack


def _type_name(t: Any) -> str:
    if isinstance(t, type):
        return t.__name__
    return str(t)


@dataclass(frozen=True)
class SliceType:
    """The type `[]elem`."""

    elem: Any

    def new_instance(self, *args: Any) -> list[Any]:
        if args:
            raise TypeError(f"type `{self}` doesn't support initializing with a constructor")
        return []

    def __str__(self) -> str:
        return f"[]{_type_name(self.elem)}"


@dataclass(frozen=True)
class MapType:
    """The type `map[key]elem`."""

    key: Any
    elem: Any

    def new_instance(self, *args: Any) -> dict[Any, Any]:
        if args:
            raise TypeError(f"type `{self}` doesn't support initializing with a constructor")
        return {}

    def __str__(self) -> str:
        return f"map[{_type_name(self.key)}]{_type_name(self.elem)}"


@dataclass(frozen=True)
class ChanType:
    """The type `chan elem`."""

    elem: Any

    def new_instance(self, *args: Any) -> Chan:
        if len(args) > 1:
            raise TypeError(f"type `{self}` takes at most a capacity")
        return Chan(args[0] if args else 0)

    def __str__(self) -> str:
        return f"chan {_type_name(self.elem)}"


_CONTAINERS = {SliceType: list, MapType: dict, ChanType: Chan}


def _coerce(t: Any, x: Any) -> Any:
    """Convert x to type t the way literals are converted automatically."""
    if t is None or t is object or t is Any:
        return x
    container = _CONTAINERS.get(type(t))
    if container is not None:
        if isinstance(x, container):
            return x
    elif t is float:
        if isinstance(x, (int, float)) and not isinstance(x, bool):
            return float(x)
    elif t is int:
        if isinstance(x, int) and not isinstance(x, bool):
            return x
    elif isinstance(t, type) and isinstance(x, t):
        return x
    raise TypeError(f"Can't convert `{type(x).__name__}` to `{_type_name(t)}` automatically")


def _pairs(values: list[Any]) -> list[tuple[Any, Any]]:
    if len(values) % 2:
        raise TypeError("composite literal needs key: value pairs")
    return list(zip(values[::2], values[1::2]))


def _pop_typed(stk: Stack, arity: int) -> tuple[Any, list[Any]]:
    if arity < 1:
        raise RuntimeError("composite literal without a type")
    t, *rest = stk.pop_n_args(arity)
    return t, rest


# -----------------------------------------------------------------------------
# chan T / []T / map[K]V


class _ChanOf(Instr):
    optimizable_arity = 1

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        stk.push(ChanType(stk.pop()))

    def __repr__(self) -> str:
        return "Chan()"


class _SliceOf(Instr):
    optimizable_arity = 1

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        stk.push(SliceType(stk.pop()))

    def __repr__(self) -> str:
        return "Slice()"


class _MapOf(Instr):
    optimizable_arity = 2

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        elem = stk.pop()
        key = stk.pop()
        stk.push(MapType(key, elem))

    def __repr__(self) -> str:
        return "Map()"


CHAN: Instr = _ChanOf()
SLICE: Instr = _SliceOf()
MAP: Instr = _MapOf()


# -----------------------------------------------------------------------------
# Literals


@dataclass
class _SliceFrom(Instr):
    arity: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        stk.push(stk.pop_n_args(self.arity))


def slice_from(arity: int) -> Instr:
    """Return an instruction building a list from `[a1, a2, ...]`."""
    return _SliceFrom(arity)


@dataclass
class _SliceFromTy(Instr):
    arity: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        t, elems = _pop_typed(stk, self.arity)
        stk.push([_coerce(t, x) for x in elems])


def slice_from_ty(arity: int) -> Instr:
    """Return an instruction building a list from `[]T{a1, a2, ...}`; arity counts T too."""
    return _SliceFromTy(arity)


@dataclass
class _StructInit(Instr):
    arity: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        t, rest = _pop_typed(stk, self.arity)
        if not callable(t):
            raise TypeError(f"`{_type_name(t)}` isn't a struct type")
        fields: dict[str, Any] = {}
        for name, value in _pairs(rest):
            if not isinstance(name, str):
                raise TypeError("struct field name must be a string")
            fields[name] = value
        stk.push(t(**fields))


def struct_init(arity: int) -> Instr:
    """Return an instruction for `&T{name1: expr1, ...}`; arity counts T, names and values."""
    return _StructInit(arity)


@dataclass
class _MapInit(Instr):
    arity: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        t, rest = _pop_typed(stk, self.arity)
        if not isinstance(t, MapType):
            raise TypeError(f"`{_type_name(t)}` isn't a map type")
        stk.push({_coerce(t.key, k): _coerce(t.elem, v) for k, v in _pairs(rest)})


def map_init(arity: int) -> Instr:
    """Return an instruction for `map[K]V{k1: v1, ...}`; arity counts the type, keys and values."""
    return _MapInit(arity)