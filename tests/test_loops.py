from dataclasses import dataclass, field

import pytest

from qlexec.basic import jmp, push
from qlexec.code import Chan, Code, Context, Instr, QlangError, Stack, new_context_ex, symbol_index
from qlexec.loops import BREAK_FOR_RANGE, CONTINUE_FOR_RANGE, for_range


@dataclass
class _Record(Instr):
    slots: tuple
    seen: list = field(default_factory=list)

    def exec(self, stk, ctx):
        self.seen.append(tuple(ctx.get_ref(s) for s in self.slots))


@dataclass
class _SetIp(Instr):
    ip: int

    def exec(self, stk, ctx):
        ctx.ip = self.ip


def _build(value, args, body):
    n = len(body)
    return Code(push(value), for_range(args, 3, 3 + n), jmp(n), *body, push("done"))


def _loop(value, args, body, ctx=None):
    code = _build(value, args, body)
    if ctx is None:
        ctx = new_context_ex({"k": 0, "v": 1})
    ctx.code = code
    stk = Stack()
    code.exec(0, len(code), stk, ctx)
    return stk


def test_range_over_list():
    rec = _Record((0, 1))
    stk = _loop(["a", "b", "c"], [0, 1], [rec])
    assert rec.seen == [(0, "a"), (1, "b"), (2, "c")]
    assert stk.data == ["done"]


def test_range_over_dict():
    rec = _Record((0, 1))
    _loop({"x": 1, "y": 2}, [0, 1], [rec])
    assert rec.seen == [("x", 1), ("y", 2)]


def test_range_with_index_only():
    rec = _Record((0,))
    _loop(("p", "q"), [0], [rec])
    assert rec.seen == [(0,), (1,)]


def test_range_without_variables_runs_body_per_item():
    rec = _Record(())
    items = ["a", "b", "c", "d"]
    _loop(items, [], [rec])
    assert len(rec.seen) == len(items)


def test_range_over_empty_list_skips_body():
    rec = _Record((0,))
    stk = _loop([], [0], [rec])
    assert rec.seen == []
    assert stk.data == ["done"]


def test_break_stops_loop():
    rec = _Record((1,))
    stk = _loop(["a", "b", "c"], [0, 1], [rec, _SetIp(BREAK_FOR_RANGE)])
    assert rec.seen == [("a",)]
    assert stk.data == ["done"]


def test_continue_skips_rest_of_body():
    first = _Record((1,))
    second = _Record((1,))
    _loop(["a", "b"], [0, 1], [first, _SetIp(CONTINUE_FOR_RANGE), second])
    assert first.seen == [("a",), ("b",)]
    assert second.seen == []


def test_range_over_channel():
    ch = Chan(3)
    for x in ("a", "b", "c"):
        ch.send(x)
    ch.close()
    rec = _Record((0,))
    stk = _loop(ch, [0], [rec])
    assert rec.seen == [("a",), ("b",), ("c",)]
    assert stk.data == ["done"]


def test_channel_allows_one_variable():
    ch = Chan(1)
    ch.close()
    with pytest.raises(QlangError, match="too many variables in range"):
        _loop(ch, [0, 1], [_Record((0,))])


def test_unsupported_value():
    with pytest.raises(QlangError, match="doesn't support `range`") as info:
        _loop(5, [0], [_Record((0,))])
    assert isinstance(info.value.err, TypeError)


def test_loop_variable_in_enclosing_scope():
    parent = new_context_ex({"k": 0})
    child = Context({}, parent=parent)
    items = ["a", "b", "c"]
    _loop(items, [symbol_index(0, 1)], [_Record((symbol_index(0, 1),))], ctx=child)
    assert parent.var("k") == len(items) - 1