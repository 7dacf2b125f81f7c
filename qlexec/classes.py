"""Classes, objects, methods and member access."""

from __future__ import annotations

import types
from dataclasses import dataclass, field
from typing import Any

from .code import Context, DataIndex, Instr, Stack
from .function import Function


def _wants_stack(fn: Any) -> bool:
    if isinstance(fn, types.MethodType):
        inner, offset = fn.__func__, 1
    else:
        inner, offset = fn, 0
    code = getattr(inner, "__code__", None)
    if not isinstance(code, types.CodeType):
        return False
    return code.co_argcount > offset and code.co_varnames[offset] == "stk"


# -----------------------------------------------------------------------------
# Class


@dataclass(eq=False)
class Class(Instr):
    """A qlang class: its methods and the context it was defined in."""

    fns: dict[str, Function] = field(default_factory=dict)
    ctx: Context | None = None

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        self.ctx = ctx
        for f in self.fns.values():
            f.parent = ctx
        stk.push(self)

    def go_type(self) -> type:
        """Instances of a qlang class are plain values of any type."""
        return object

    def new_instance(self, stk: Stack, *args: Any) -> Object:
        return self.new(stk, *args)

    def new(self, stk: Stack, *args: Any) -> Object:
        """Create an object, running the `_init` constructor if the class has one."""
        obj = Object(self)
        init = self.fns.get("_init")
        if init is not None:
            Method(obj, init).call(stk, *args)
        elif args:
            raise TypeError("constructor `_init` not found")
        return obj


def iclass() -> Class:
    """Return a class instruction with no methods yet."""
    return Class()


# -----------------------------------------------------------------------------
# Object / Method


@dataclass(eq=False)
class Object:
    """An instance of a qlang class."""

    cls: Class
    vars: dict[str, Any] = field(default_factory=dict)

    def set_var(self, name: str, val: Any) -> None:
        if name in self.cls.fns:
            raise AttributeError("set failed: class already have a method named " + name)
        self.vars[name] = val

    def member(self, name: str) -> Any:
        """Return a member variable, or a method bound to this object."""
        if name in self.vars:
            return self.vars[name]
        fn = self.cls.fns.get(name)
        if fn is not None:
            return Method(self, fn)
        raise AttributeError(f"object doesn't has member `{name}`")


@dataclass(eq=False)
class Method:
    """A method bound to an object."""

    this: Object
    fn: Function

    def call(self, stk: Stack, *args: Any) -> Any:
        return self.fn.call(stk, self.this, *args)


def get_member_var(m: Any, key: Any) -> Any:
    """Implement get(object, key) for qlang objects."""
    if isinstance(m, Object):
        if isinstance(key, str):
            return m.member(key)
        raise TypeError("get(object, member): member should be `string` type")
    raise TypeError(f"type `{type(m).__name__}` doesn't support `get` operator")


# -----------------------------------------------------------------------------
# New


@dataclass
class _New(Instr):
    n_args: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        args = stk.pop_n_args(self.n_args) if self.n_args else []
        if not len(stk):
            raise RuntimeError("new object without class name")
        cls = stk.pop()
        make = getattr(cls, "new_instance", None)
        if not callable(make):
            raise TypeError("can't new object: not a type")
        if _wants_stack(make):
            stk.push(make(stk, *args))
        else:
            stk.push(make(*args))


def new(n_args: int) -> Instr:
    """Return an instruction that creates an instance of the type below its arguments."""
    return _New(n_args)


# -----------------------------------------------------------------------------
# MemberRef / MemberVar


def _pop_object(stk: Stack) -> Any:
    if not len(stk):
        raise RuntimeError("reference without object")
    return stk.pop()


@dataclass
class _MemberRef(Instr):
    name: str

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        v = _pop_object(stk)
        name = self.name
        if isinstance(v, Object):
            stk.push(v.member(name))
        elif isinstance(v, Class):
            fn = v.fns.get(name)
            if fn is None:
                raise AttributeError(f"class doesn't has method `{name}`")
            stk.push(fn)
        elif isinstance(v, dict):
            if name not in v:
                raise KeyError(f"member `{name}` not found")
            stk.push(v[name])
        else:
            try:
                stk.push(getattr(v, name))
            except AttributeError:
                raise AttributeError(f"type `{type(v).__name__}` doesn't has member `{name}`") from None

    def to_var(self) -> Instr:
        return _MemberVar(self.name)


def member_ref(name: str) -> Instr:
    """Return an instruction that replaces the value on top with its member `name`."""
    return _MemberRef(name)


@dataclass
class _MemberVar(Instr):
    name: str

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        v = _pop_object(stk)
        stk.push(DataIndex(v, self.name))


def member_var(name: str) -> Instr:
    """Return an instruction that replaces the value on top with an assignable member reference."""
    return _MemberVar(name)