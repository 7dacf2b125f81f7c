"""Core of the qlang executor: values, the operand stack, contexts and code blocks."""

from __future__ import annotations

import threading
import traceback
from abc import ABC, abstractmethod
from bisect import bisect_right
from collections import deque
from dataclasses import dataclass
from typing import Any, Iterable

SYMBOL_NAME_BITS = 20
SYMBOL_INDEX_MAX = 1 << SYMBOL_NAME_BITS

_dump_stack = False


def set_dump_stack(dump: bool) -> None:
    """Choose whether runtime errors include the captured traceback in their text."""
    global _dump_stack
    _dump_stack = bool(dump)


def symbol_index(id: int, scope: int) -> int:
    """Encode a variable slot and the number of enclosing scopes to walk up."""
    return id | (scope << SYMBOL_NAME_BITS)


# -----------------------------------------------------------------------------
# Values


class UndefinedType:
    """The single `undefined` value of qlang."""

    _instance: UndefinedType | None = None

    def __new__(cls) -> UndefinedType:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    __str__ = __repr__


UNDEFINED = UndefinedType()


@dataclass
class DataIndex:
    """A compound value together with an index into it: m[k], s[i], obj.member."""

    data: Any
    index: Any


class Chan:
    """A channel in the style of qlang's `chan T`; capacity 0 means unbuffered."""

    def __init__(self, cap: int = 0) -> None:
        if cap < 0:
            raise ValueError("negative channel capacity")
        self.cap = cap
        self._buf: deque[Any] = deque()
        self._closed = False
        self._cond = threading.Condition()
        self._sent = 0
        self._taken = 0
        self._receivers = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._buf)

    def send(self, v: Any, try_: bool = False) -> bool:
        """Send a value; with try_ set, return False instead of blocking."""
        limit = max(self.cap, 1)
        with self._cond:
            if self._closed:
                raise RuntimeError("send on closed channel")
            if try_:
                full = len(self._buf) >= limit
                if full or (self.cap == 0 and self._receivers <= len(self._buf)):
                    return False
            while len(self._buf) >= limit:
                self._cond.wait()
                if self._closed:
                    raise RuntimeError("send on closed channel")
            self._buf.append(v)
            self._sent += 1
            ticket = self._sent
            self._cond.notify_all()
            if self.cap == 0:
                while self._taken < ticket and not self._closed:
                    self._cond.wait()
            return True

    def recv(self, try_: bool = False) -> tuple[Any, bool]:
        """Receive a value as (value, ok); ok is False once the channel is drained and closed."""
        with self._cond:
            if try_ and not self._buf:
                return None, False
            while not self._buf and not self._closed:
                self._receivers += 1
                self._cond.notify_all()
                try:
                    self._cond.wait()
                finally:
                    self._receivers -= 1
            if self._buf:
                v = self._buf.popleft()
                self._taken += 1
                self._cond.notify_all()
                return v, True
            return None, False

    def close(self) -> None:
        with self._cond:
            if self._closed:
                raise RuntimeError("close of closed channel")
            self._closed = True
            self._cond.notify_all()

    def __iter__(self):
        while True:
            v, ok = self.recv()
            if not ok:
                return
            yield v


# -----------------------------------------------------------------------------
# Errors


class QlangError(Exception):
    """A runtime error raised while executing code, tagged with its source position."""

    def __init__(self, err: BaseException | str, file: str = "", line: int = 0, stack: str = "") -> None:
        super().__init__(err)
        self.err = err
        self.file = file
        self.line = line
        self.stack = stack

    def __str__(self) -> str:
        tail = f"\n\n{self.stack}" if _dump_stack else ""
        if self.line == 0:
            return f"{self.err}{tail}"
        if not self.file:
            return f"line {self.line}: {self.err}{tail}"
        return f"{self.file}:{self.line}: {self.err}{tail}"


# -----------------------------------------------------------------------------
# Instructions


class Instr(ABC):
    """An instruction of the executor."""

    @abstractmethod
    def exec(self, stk: Stack, ctx: Context | None) -> None:
        """Run this instruction against a stack and a context."""


@dataclass
class Push(Instr):
    """Push a constant value."""

    value: Any

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        stk.push(self.value)


# -----------------------------------------------------------------------------
# Stack


class Stack:
    """The operand stack."""

    def __init__(self, items: Iterable[Any] = ()) -> None:
        self.data: list[Any] = list(items)

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"Stack({self.data!r})"

    def push(self, v: Any) -> None:
        self.data.append(v)

    def top(self) -> Any:
        if not self.data:
            raise IndexError("top of empty stack")
        return self.data[-1]

    def pop(self) -> Any:
        if not self.data:
            raise IndexError("pop from empty stack")
        return self.data.pop()

    def push_ret(self, ret: Iterable[Any]) -> None:
        """Push function results: none gives None, one is pushed as is, more become a list."""
        results = list(ret)
        if not results:
            self.push(None)
        elif len(results) == 1:
            self.push(results[0])
        else:
            self.push(results)

    def pop_n_args(self, arity: int) -> list[Any]:
        if arity > len(self.data):
            raise RuntimeError("unexpected argument count")
        n = len(self.data) - arity
        args = self.data[n:]
        del self.data[n:]
        return args

    def pop_fn_args(self, arity: int) -> list[str]:
        if arity > len(self.data):
            raise RuntimeError("unexpected argument count")
        n = len(self.data) - arity
        args = self.data[n:]
        if not all(isinstance(a, str) for a in args):
            raise TypeError("function argument isn't a symbol")
        del self.data[n:]
        return args

    def base_frame(self) -> int:
        return len(self.data)

    def set_frame(self, n: int) -> None:
        del self.data[n:]


# -----------------------------------------------------------------------------
# Modules shared by the contexts of one program


class _ImportedModule:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.exports: dict[str, Any] | None = None


class _ModuleManager:
    def __init__(self) -> None:
        self._mods: dict[str, _ImportedModule] = {}
        self._lock = threading.Lock()

    def get(self, id: str) -> _ImportedModule:
        with self._lock:
            return self._mods.setdefault(id, _ImportedModule())


# -----------------------------------------------------------------------------
# Context


class Context:
    """The execution context of a function, module or program."""

    def __init__(
        self,
        symtbl: dict[str, int] | None = None,
        *,
        parent: Context | None = None,
        stack: Stack | None = None,
        code: Code | None = None,
        modmgr: _ModuleManager | None = None,
        base: int = 0,
    ) -> None:
        self.symtbl: dict[str, int] = {} if symtbl is None else symtbl
        self.vars: list[Any] = [None] * len(self.symtbl)
        self.parent = parent
        self.stack = stack
        self.code = code
        self.modmgr = modmgr
        self.base = base
        self.defers: list[tuple[int, int]] = []
        self.recov: Any = None
        self.ret: Any = None
        self.export: list[str] = []
        self.ip = 0
        self.onsel = False
        self.noextv = False

    # variables by name

    def resize_vars(self) -> None:
        """Grow the variable table to match a symbol table that gained names."""
        missing = len(self.symtbl) - len(self.vars)
        if missing > 0:
            self.vars.extend([UNDEFINED] * missing)

    def copy_vars(self) -> dict[str, Any]:
        return {name: self.vars[k] for name, k in self.symtbl.items()}

    def reset_vars(self, vars: dict[str, Any]) -> None:
        for name, k in self.symtbl.items():
            self.vars[k] = vars.get(name)

    def var(self, name: str) -> Any:
        """Return a variable's value, or UNDEFINED if the name is unknown."""
        k = self.symtbl.get(name)
        return UNDEFINED if k is None else self.vars[k]

    def get_var(self, name: str) -> Any:
        """Return a variable's value; raise KeyError if the name is unknown."""
        if name not in self.symtbl:
            raise KeyError(name)
        return self.vars[self.symtbl[name]]

    def set_var(self, name: str, v: Any) -> None:
        k = self.symtbl.get(name)
        if k is None:
            k = len(self.symtbl)
            if k != len(self.vars):
                raise RuntimeError("variables need to resize (call `resize_vars` first)")
            self.symtbl[name] = k
            self.vars.append(UNDEFINED)
        self.vars[k] = v

    def unset_var(self, name: str) -> None:
        k = self.symtbl.get(name)
        if k is not None:
            self.vars[k] = UNDEFINED

    # variables by slot

    def fast_get_var(self, name: int) -> Any:
        return self.vars[name]

    def fast_set_var(self, name: int, v: Any) -> None:
        self.vars[name] = v

    def _owner(self, name: int) -> tuple[Context, int]:
        if name < SYMBOL_INDEX_MAX:
            return self, name
        ctx: Context = self
        for _ in range(name >> SYMBOL_NAME_BITS):
            if ctx.parent is None:
                raise RuntimeError("symbol refers to a scope outside the program")
            ctx = ctx.parent
        return ctx, name & (SYMBOL_INDEX_MAX - 1)

    def get_ref(self, name: int) -> Any:
        """Read a variable addressed by an encoded symbol index."""
        ctx, k = self._owner(name)
        return ctx.vars[k]

    def set_ref(self, name: int, v: Any) -> None:
        """Write a variable addressed by an encoded symbol index."""
        ctx, k = self._owner(name)
        ctx.vars[k] = v

    # modules, blocks and defers

    def exports(self) -> dict[str, Any]:
        return {name: self.var(name) for name in self.export}

    def exec_block(self, ip: int, ip_end: int, symtbl: dict[str, int]) -> Any:
        """Execute code[ip:ip_end] as an anonymous function in this context."""
        from .function import Function

        fn = Function(cls=None, start=ip, end=ip_end, symtbl=symtbl, args=[], variadic=False)
        return fn.ext_call(self)

    def exec_defers(self) -> None:
        """Run deferred blocks, most recently deferred first."""
        defers, self.defers = self.defers, []
        for start, end in reversed(defers):
            self.code.exec(start, end, self.stack, self)


def new_context_ex(symtbl: dict[str, int] | None) -> Context:
    """Create a top-level context with its own module manager."""
    return Context(symtbl, modmgr=_ModuleManager())


# -----------------------------------------------------------------------------
# Code


@dataclass(frozen=True)
class ReservedInstr:
    """A slot in a code block to be filled in later."""

    code: Code
    idx: int

    def set(self, instr: Instr) -> None:
        self.code.data[self.idx] = instr

    def next(self) -> int:
        return self.idx + 1

    def delta(self, b: ReservedInstr) -> int:
        return self.idx - b.idx


class Code:
    """A block of generated instructions together with their source lines."""

    def __init__(self, *instrs: Instr) -> None:
        self.data: list[Instr | None] = list(instrs)
        self._line_ips: list[int] = []
        self._line_pos: list[tuple[str, int]] = []

    def __len__(self) -> int:
        return len(self.data)

    def code_line(self, file: str, line: int) -> None:
        """Record that the instructions emitted so far come from file:line."""
        self._line_ips.append(len(self.data))
        self._line_pos.append((file, line))

    def line(self, ip: int) -> tuple[str, int]:
        idx = bisect_right(self._line_ips, ip)
        if idx < len(self._line_pos):
            return self._line_pos[idx]
        return "", 0

    def reserve(self) -> ReservedInstr:
        self.data.append(None)
        return ReservedInstr(self, len(self.data) - 1)

    def check_const(self, ip: int) -> tuple[Any, bool]:
        """Return (value, True) if code[ip] pushes a constant, else (None, False)."""
        instr = self.data[ip]
        if isinstance(instr, Push):
            return instr.value, True
        return None, False

    def _append_optimized(self, instr: Instr, arity: int) -> None:
        base = len(self.data) - arity
        tail = self.data[base:]
        if base < 0 or not all(isinstance(i, Push) for i in tail):
            self.data.append(instr)
            return
        stk = Stack(i.value for i in tail)
        instr.exec(stk, None)
        del self.data[base:]
        self.data.append(Push(stk.data[0]))

    def block(self, *args: Instr) -> int:
        """Append instructions, folding those over constants, and return the new length."""
        for instr in args:
            arity = getattr(instr, "optimizable_arity", None)
            if arity is None:
                self.data.append(instr)
            else:
                self._append_optimized(instr, arity)
        return len(self.data)

    def to_var(self) -> None:
        """Turn the last instruction from a value reference into an assignable one."""
        last = self.data[-1] if self.data else None
        convert = getattr(last, "to_var", None)
        if convert is None:
            raise TypeError("expr is not assignable")
        self.data[-1] = convert()

    def exec(self, ip: int, ip_end: int, stk: Stack, ctx: Context) -> None:
        """Run code[ip:ip_end]; failures surface as QlangError with the source position."""
        ctx.ip = ip
        data = self.data
        try:
            while ctx.ip != ip_end:
                instr = data[ctx.ip]
                ctx.ip += 1
                instr.exec(stk, ctx)
        except QlangError:
            raise
        except Exception as e:
            file, line = self.line(ctx.ip - 1)
            raise QlangError(e, file, line, traceback.format_exc()) from e

    def dump(self, *args: int) -> None:
        """Print the instructions in [start, end) as a listing."""
        start = args[0] if args else 0
        end = args[1] if len(args) > 1 else len(self.data)
        for offset, instr in enumerate(self.data[start:end]):
            print(f"==> {start + offset:04d}: {_instr_name(instr)} {instr!r}")


def _instr_name(instr: Any) -> str:
    if instr is None:
        return "<nil>"
    return type(instr).__name__.lstrip("_")