"""The for..range instruction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator

from .code import Chan, Context, Instr, Stack

BREAK_FOR_RANGE = -1
CONTINUE_FOR_RANGE = -2


def _chan_items(ch: Chan) -> Iterator[tuple[Any, ...]]:
    for x in ch:
        yield (x,)


@dataclass
class _ForRange(Instr):
    args: list[int]
    start: int
    end: int

    def _exec_body(self, stk: Stack, ctx: Context) -> None:
        data = ctx.code.data
        ctx.ip = self.start
        while ctx.ip != self.end:
            instr = data[ctx.ip]
            ctx.ip += 1
            instr.exec(stk, ctx)
            if ctx.ip < 0:  # break or continue
                return

    def _items(self, val: Any) -> Iterable[tuple[Any, ...]]:
        if isinstance(val, Chan):
            if len(self.args) > 1:
                raise TypeError("too many variables in range")
            return _chan_items(val)
        if isinstance(val, (list, tuple)):
            return list(enumerate(val))
        if isinstance(val, dict):
            return list(val.items())
        raise TypeError(f"type `{type(val).__name__}` doesn't support `range`")

    def exec(self, stk: Stack, ctx: Context | None) -> None:
        if not len(stk):
            raise RuntimeError("unexpected")
        val = stk.pop()
        done = ctx.ip
        for values in self._items(val):
            for slot, value in zip(self.args, values):
                ctx.set_ref(slot, value)
            self._exec_body(stk, ctx)
            if ctx.ip == BREAK_FOR_RANGE:
                break
        ctx.ip = done


def for_range(args: list[int], start: int, end: int) -> Instr:
    """Return an instruction that runs code[start:end] for each item of a list, dict or channel.

    `args` holds the variable slots for (index or key, item); for a channel only
    the item slot may be given.
    """
    return _ForRange(list(args), start, end)