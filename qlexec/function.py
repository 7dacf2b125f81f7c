"""Functions, returns, defers, recover, modules and goroutines."""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from typing import Any

from .call import StackDamagedError, call
from .code import UNDEFINED, Chan, Context, Instr, Stack


class ReturnSignal(BaseException):
    """Raised by a `return` instruction to leave the running function."""


# -----------------------------------------------------------------------------
# Function


@dataclass(eq=False)
class Function:
    """A qlang function: a code range, its symbol table and its parameters."""

    cls: Any
    start: int
    end: int
    symtbl: dict[str, int]
    args: list[str] = field(default_factory=list)
    variadic: bool = False
    parent: Context | None = None

    def __post_init__(self) -> None:
        self.args = list(self.args or [])

    def call(self, stk: Stack, *args: Any) -> Any:
        """Call this function in a fresh context below its parent context."""
        parent = self.parent
        if parent is None:
            raise RuntimeError("function has no enclosing context")
        ctx = Context(
            self.symtbl,
            parent=parent,
            stack=stk,
            code=parent.code,
            modmgr=parent.modmgr,
            base=stk.base_frame(),
        )
        return self.ext_call(ctx, *args)

    def ext_call(self, ctx: Context, *args: Any) -> Any:
        """Call this function in the given context and return its result."""
        n = len(self.args)
        if self.variadic:
            if len(args) < n - 1:
                raise TypeError(f"function requires >= {n - 1} arguments, but we got {len(args)}")
        elif len(args) != n:
            raise TypeError(f"function requires {n} arguments, but we got {len(args)}")

        if self.start == self.end:
            return None

        stk = ctx.stack
        if self.variadic and n > 0:
            values = [*args[: n - 1], list(args[n - 1 :])]
        else:
            values = list(args)
        ctx.vars[: len(values)] = values

        recov: Exception | None = None
        try:
            ctx.code.exec(self.start, self.end, stk, ctx)
        except ReturnSignal:
            pass
        except Exception as e:
            recov = e
        ctx.recov = recov
        ret = ctx.ret
        ctx.exec_defers()
        stk.set_frame(ctx.base)
        if ctx.recov is not None:
            raise ctx.recov
        return ret


# -----------------------------------------------------------------------------
# Exit / Return / Defer / Recover


def _do_exit(ret: Any = None) -> None:
    if ret is None:
        raise SystemExit(0)
    if not isinstance(ret, int) or isinstance(ret, bool):
        raise TypeError("exit code must be `int`")
    raise SystemExit(ret)


EXIT: Instr = call(_do_exit)


@dataclass
class _Return(Instr):
    arity: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        if self.arity == 0:
            ctx.ret = None
        elif self.arity == 1:
            ctx.ret = stk.pop() if len(stk) else None
        else:
            ctx.ret = stk.pop_n_args(self.arity)
        if ctx.parent is not None:
            raise ReturnSignal()

        ctx.exec_defers()
        ret = ctx.ret
        if ret is None:
            raise SystemExit(0)
        if isinstance(ret, int) and not isinstance(ret, bool):
            raise SystemExit(ret)
        raise TypeError("must return `int` for main function")


def return_(arity: int) -> Instr:
    """Return an instruction for `return expr1, ..., exprN`.

    In the main program (a context without parent) it ends the program.
    """
    return _Return(arity)


@dataclass
class _Defer(Instr):
    start: int
    end: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        ctx.defers.append((self.start, self.end))


def defer(start: int, end: int) -> Instr:
    """Return an instruction that defers code[start:end] until the function ends."""
    return _Defer(start, end)


class _Recover(Instr):
    def exec(self, stk: Stack, ctx: Context | None) -> None:
        parent = ctx.parent
        if parent is None:
            stk.push(None)
            return
        e, parent.recov = parent.recov, None
        stk.push(e)

    def __repr__(self) -> str:
        return "Recover()"


RECOVER: Instr = _Recover()


# -----------------------------------------------------------------------------
# Func / AnonymFn


@dataclass
class _Func(Instr):
    fn: Function

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        self.fn.parent = ctx
        stk.push(self.fn)


def func(cls: Any, start: int, end: int, symtbl: dict[str, int], args: list[str], variadic: bool) -> Instr:
    """Return an instruction that pushes a function bound to the running context."""
    return _Func(Function(cls, start, end, symtbl, args, variadic))


@dataclass
class _AnonymFn(Instr):
    start: int
    end: int
    symtbl: dict[str, int]

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        fn = Function(None, self.start, self.end, self.symtbl, [], False, parent=ctx)
        stk.push(fn.call(stk))


def anonym_fn(start: int, end: int, symtbl: dict[str, int]) -> Instr:
    """Return an instruction that runs code[start:end] as an anonymous function and pushes its result."""
    return _AnonymFn(start, end, symtbl)


# -----------------------------------------------------------------------------
# Module / As / Export


@dataclass
class _Module(Instr):
    id: str
    start: int
    end: int
    symtbl: dict[str, int]

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        mod = ctx.modmgr.get(self.id)
        with mod.lock:
            if mod.exports is None:
                mod_ctx = Context(self.symtbl, code=ctx.code, stack=ctx.stack, modmgr=ctx.modmgr)
                mod_fn = Function(None, self.start, self.end, self.symtbl, [], False)
                mod_fn.ext_call(mod_ctx)
                mod.exports = mod_ctx.exports()
            exports = mod.exports
        stk.push(exports)


def module(id: str, start: int, end: int, symtbl: dict[str, int]) -> Instr:
    """Return an instruction that imports a module once and pushes its exports."""
    return _Module(id, start, end, symtbl)


@dataclass
class _As(Instr):
    name: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        if not len(stk):
            raise StackDamagedError()
        ctx.fast_set_var(self.name, stk.pop())


def as_(name: int) -> Instr:
    """Return an instruction that stores the value on top of the stack in a variable slot."""
    return _As(name)


@dataclass
class _Export(Instr):
    names: list[str]

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        ctx.export.extend(self.names)


def export(*args: str) -> Instr:
    """Return an instruction that exports the named module symbols."""
    return _Export(list(args))


# -----------------------------------------------------------------------------
# Goroutines and channels


@dataclass
class _Go(Instr):
    start: int
    end: int

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        clone = copy.copy(ctx)
        clone.stack = Stack()
        worker = threading.Thread(
            target=ctx.code.exec,
            args=(self.start, self.end, clone.stack, clone),
            daemon=True,
        )
        worker.start()


def go(start: int, end: int) -> Instr:
    """Return an instruction that runs code[start:end] in a new thread with its own stack."""
    return _Go(start, end)


def _as_chan(v: Any) -> Chan:
    if not isinstance(v, Chan):
        raise TypeError(f"type `{type(v).__name__}` isn't a channel")
    return v


class _ChanIn(Instr):
    def exec(self, stk: Stack, ctx: Context | None) -> None:
        v = stk.pop()
        ch = _as_chan(stk.pop())
        stk.push(ch.send(v, try_=bool(getattr(ctx, "onsel", False))))

    def __repr__(self) -> str:
        return "ChanIn()"


class _ChanOut(Instr):
    def exec(self, stk: Stack, ctx: Context | None) -> None:
        ch = _as_chan(stk.pop())
        try_ = bool(getattr(ctx, "onsel", False))
        v, ok = ch.recv(try_=try_)
        stk.push(UNDEFINED if try_ and not ok else v)

    def __repr__(self) -> str:
        return "ChanOut()"


CHAN_IN: Instr = _ChanIn()
CHAN_OUT: Instr = _ChanOut()