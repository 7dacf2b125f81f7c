"""Instructions that call native and qlang functions."""

from __future__ import annotations

import functools
import types
from dataclasses import dataclass
from typing import Any, Callable

from .code import Context, Instr, Stack

_CO_VARARGS = 0x04


class StackDamagedError(RuntimeError):
    """The stack holds fewer values than an instruction needs."""

    def __init__(self, msg: str = "unexpected: stack damaged") -> None:
        super().__init__(msg)


class ArityRequiredError(TypeError):
    """A variadic function was given to `call` without an argument count."""

    def __init__(self, msg: str = "arity required") -> None:
        super().__init__(msg)


class ArgumentsNotEnoughError(TypeError):
    """A function was called with too few arguments."""

    def __init__(self, msg: str = "arguments not enough") -> None:
        super().__init__(msg)


def _code_of(fn: Any) -> tuple[types.CodeType, tuple[Any, ...], int] | None:
    """Return (code, defaults, bound argument count) for a Python function or method."""
    if isinstance(fn, types.MethodType):
        inner = fn.__func__
        if isinstance(inner, types.FunctionType):
            return inner.__code__, inner.__defaults__ or (), 1
        return None
    if isinstance(fn, types.FunctionType):
        return fn.__code__, fn.__defaults__ or (), 0
    if not isinstance(fn, type):
        call_method = getattr(fn, "__call__", None)
        if isinstance(call_method, types.MethodType):
            return _code_of(call_method)
    return None


def _shape(fn: Callable[..., Any]) -> tuple[int, int, bool] | None:
    """Return (required, total, variadic) positional parameters, or None if unknown."""
    if isinstance(fn, functools.partial):
        inner = _shape(fn.func)
        if inner is None:
            return None
        required, total, variadic = inner
        bound = len(fn.args)
        return max(required - bound, 0), max(total - bound, 0), variadic
    info = _code_of(fn)
    if info is None:
        return None
    code, defaults, offset = info
    total = max(code.co_argcount - offset, 0)
    required = max(total - len(defaults), 0)
    variadic = bool(code.co_flags & _CO_VARARGS)
    return required, total, variadic


def _check_count(required: int, total: int, variadic: bool, arity: int) -> None:
    if variadic:
        if arity < required:
            raise ArgumentsNotEnoughError()
    elif not required <= arity <= total:
        raise TypeError(f"invalid argument count: require {total}, but we got {arity}")


def _push_result(stk: Stack, result: Any) -> None:
    if isinstance(result, tuple):
        stk.push_ret(result)
    else:
        stk.push(result)


def _pop_args(stk: Stack, n: int) -> list[Any]:
    if n > len(stk):
        raise StackDamagedError()
    return stk.pop_n_args(n)


def _takes_stack(method: Callable[..., Any]) -> bool:
    info = _code_of(method)
    if info is None:
        return False
    code, _, offset = info
    return code.co_argcount > offset and code.co_varnames[offset] == "stk"


def _resolve(obj: Any, stk: Stack) -> Callable[..., Any]:
    """Find what to call for obj: its `call` method (bound to the stack if it takes one) or obj itself."""
    method = getattr(obj, "call", None)
    if callable(method):
        if _takes_stack(method):
            return functools.partial(method, stk)
        return method
    if callable(obj):
        return obj
    raise TypeError(f"type `{type(obj).__name__}` isn't callable")


# -----------------------------------------------------------------------------
# Call


@dataclass
class _Call(Instr):
    fn: Callable[..., Any]
    arity: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        args = _pop_args(stk, self.arity) if self.arity > 0 else []
        _push_result(stk, self.fn(*args))


def call(fn: Callable[..., Any], arity: int | None = None) -> Instr:
    """Return an instruction calling fn with `arity` arguments taken from the stack.

    The count defaults to fn's parameter count and is required for variadic
    functions, including those whose parameters cannot be determined.
    """
    shape = _shape(fn)
    required, total, variadic = shape if shape is not None else (0, 0, True)
    if arity is None:
        if variadic:
            raise ArityRequiredError()
        arity = total
    _check_count(required, total, variadic, arity)
    return _Call(fn, arity)


# -----------------------------------------------------------------------------
# CallFn


@dataclass
class _CallFn(Instr):
    arity: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        fn, *args = _pop_args(stk, self.arity + 1)
        callee = _resolve(fn, stk)
        shape = _shape(callee)
        if shape is not None:
            _check_count(*shape, self.arity)
        _push_result(stk, callee(*args))


def call_fn(arity: int) -> Instr:
    """Return an instruction that calls the value below its `arity` arguments."""
    return _CallFn(arity)


# -----------------------------------------------------------------------------
# CallFnv


@dataclass
class _CallFnv(Instr):
    arity: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        if not len(stk):
            raise RuntimeError("unexpected")
        val = stk.pop()
        if not isinstance(val, (list, tuple)):
            raise TypeError("apply `...` on non-slice object")
        stk.data.extend(val)
        _CallFn(self.arity + len(val) - 1).exec(stk, ctx)


def call_fnv(arity: int) -> Instr:
    """Like `call_fn`, but the last argument is a list spread into the call."""
    return _CallFnv(arity)