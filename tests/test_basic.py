import pytest

from qlexec.basic import (
    CLEAR,
    DEFAULT,
    NIL,
    POP,
    and_,
    case,
    jmp,
    jmp_if_false,
    op3,
    or_,
    pop_ex,
    push,
    rem,
    set_on_pop,
)
from qlexec.call import call, call_fnv
from qlexec.code import Code, QlangError, Stack, new_context_ex


def _mul(a, b):
    return a * b


def _mod(a, b):
    return a % b


def _max(*args):
    return max(args)


def _slice_from(*args):
    return list(args)


def _sub_slice(v, a, b):
    return v[a:b]


def _run(code):
    ctx = new_context_ex(None)
    stk = Stack()
    code.exec(0, len(code), stk, ctx)
    return stk


def _sub_slice_code(*tail):
    return Code(
        push(_max),
        push(2),
        push(3.0),
        push(5),
        push(6.1),
        call(_slice_from, 4),
        *tail,
        call_fnv(1),
    )


def test_sub_slice0():
    stk = _run(_sub_slice_code(op3(_sub_slice, False, False)))
    assert stk.base_frame() == 1
    assert stk.pop() == 6.1


def test_sub_slice1():
    stk = _run(_sub_slice_code(push(2), op3(_sub_slice, True, False)))
    assert stk.base_frame() == 1
    assert stk.pop() == 6.1


def test_sub_slice2():
    stk = _run(_sub_slice_code(push(2), op3(_sub_slice, False, True)))
    assert stk.base_frame() == 1
    assert stk.pop() == 3.0


def test_sub_slice3():
    stk = _run(_sub_slice_code(push(2), push(3), op3(_sub_slice, True, True)))
    assert stk.base_frame() == 1
    assert stk.pop() == 5.0


def _short_circuit(first, make):
    code = Code(push(first))
    reserved = code.reserve()
    code.block(push(5), push(6), call(_mul))
    reserved.set(make(len(code) - reserved.next()))
    return _run(code)


def test_or1():
    stk = _short_circuit(True, or_)
    assert stk.base_frame() == 1
    assert stk.pop() is True


def test_or2():
    stk = _short_circuit(False, or_)
    assert stk.base_frame() == 1
    assert stk.pop() == 30


def test_and1():
    stk = _short_circuit(False, and_)
    assert stk.base_frame() == 1
    assert stk.pop() is False


def test_and2():
    stk = _short_circuit(True, and_)
    assert stk.base_frame() == 1
    assert stk.pop() == 30


def _if(cond):
    code = Code(push(cond))
    reserved1 = code.reserve()
    code.block(push(5), push(6), call(_mul))
    reserved2 = code.reserve()
    code.block(push(5), push(2), call(_mod))
    reserved1.set(jmp_if_false(reserved2.delta(reserved1)))
    reserved2.set(jmp(len(code) - reserved2.next()))
    return _run(code)


def test_if1():
    stk = _if(True)
    assert stk.base_frame() == 1
    assert stk.pop() == 30


def test_if2():
    stk = _if(False)
    assert stk.base_frame() == 1
    assert stk.pop() == 1


def _switch(value):
    code = Code(push(value))

    code.block(push(1))
    case1 = code.reserve()
    code.block(push(5), push(6), call(_mul))
    jmp1 = code.reserve()
    case1.set(case(len(code) - case1.next()))

    code.block(push(2))
    case2 = code.reserve()
    code.block(push(5), push(2), call(_mod))
    jmp2 = code.reserve()
    case2.set(case(len(code) - case2.next()))

    code.block(DEFAULT, push(100))
    jmp1.set(jmp(len(code) - jmp1.next()))
    jmp2.set(jmp(len(code) - jmp2.next()))
    return _run(code)


@pytest.mark.parametrize("value, expected", [(1, 30), (2, 1), (3, 100)])
def test_case(value, expected):
    stk = _switch(value)
    assert stk.base_frame() == 1
    assert stk.pop() == expected


def test_or_rejects_non_boolean():
    code = Code(push(1), or_(0))
    with pytest.raises(QlangError) as info:
        _run(code)
    assert isinstance(info.value.err, TypeError)
    assert "||" in str(info.value)


def test_jmp_if_false_rejects_non_boolean():
    code = Code(push("yes"), jmp_if_false(0))
    with pytest.raises(QlangError, match="condition isn't a boolean expression"):
        _run(code)


def test_pop_and_nil():
    stk = _run(Code(push(1), push(2), POP, NIL))
    assert stk.data == [1, None]


def test_pop_ex_without_hook_is_plain_pop():
    set_on_pop(None)
    assert pop_ex() is POP


def test_pop_ex_hands_value_to_hook():
    seen = []
    set_on_pop(seen.append)
    try:
        instr = pop_ex()
    finally:
        set_on_pop(None)
    stk = _run(Code(push(7), instr))
    assert seen == [7]
    assert stk.base_frame() == 0


def test_clear_resets_to_context_base():
    ctx = new_context_ex(None)
    ctx.base = 1
    stk = Stack(["keep", "drop", "drop"])
    code = Code(CLEAR)
    code.exec(0, len(code), stk, ctx)
    assert stk.data == ["keep"]


def test_rem_does_nothing():
    stk = _run(Code(push(4), rem("main.ql", 3, "x = 4")))
    assert stk.data == [4]


def test_op3_passes_none_for_missing_operands():
    seen = []

    def op(v, a, b):
        seen.append((v, a, b))
        return "ok"

    stk = _run(Code(push("v"), push("b"), op3(op, False, True)))
    assert seen == [("v", None, "b")]
    assert stk.data == ["ok"]