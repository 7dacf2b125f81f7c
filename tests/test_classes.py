from dataclasses import dataclass
from types import SimpleNamespace

import pytest

from qlexec.call import call
from qlexec.classes import (
    Class,
    Method,
    Object,
    get_member_var,
    iclass,
    member_ref,
    member_var,
    new,
)
from qlexec.code import Code, DataIndex, Instr, Stack, new_context_ex
from qlexec.function import Function, return_


@dataclass
class Load(Instr):
    slot: int

    def exec(self, stk, ctx):
        stk.push(ctx.fast_get_var(self.slot))


def build_class():
    code = Code(
        Load(0),
        Load(1),
        call(lambda o, v: o.set_var("x", v)),
        return_(0),
        Load(0),
        return_(1),
    )
    ctx = new_context_ex({})
    stk = Stack()
    ctx.code = code
    ctx.stack = stk
    cls = iclass()
    cls.fns["_init"] = Function(None, 0, 4, {"this": 0, "v": 1}, ["this", "v"], False)
    cls.fns["me"] = Function(None, 4, 6, {"this": 0}, ["this"], False)
    cls.exec(stk, ctx)
    assert stk.pop() is cls
    return cls, ctx, stk


def test_exec_binds_methods_to_context():
    cls, ctx, _ = build_class()
    assert cls.ctx is ctx
    assert all(f.parent is ctx for f in cls.fns.values())


def test_go_type_is_object():
    assert iclass().go_type() is object


def test_new_runs_constructor():
    cls, _, stk = build_class()
    obj = cls.new(stk, "value")
    assert obj.cls is cls
    assert obj.member("x") == "value"
    assert obj.vars == {"x": "value"}
    assert len(stk) == 0


def test_new_without_constructor():
    cls = iclass()
    obj = cls.new_instance(Stack())
    assert isinstance(obj, Object)
    assert obj.vars == {}
    with pytest.raises(TypeError, match="constructor `_init` not found"):
        cls.new(Stack(), "arg")


def test_method_receives_this():
    cls, _, stk = build_class()
    obj = cls.new(stk, "v")
    method = obj.member("me")
    assert isinstance(method, Method)
    assert method.call(stk) is obj


def test_set_var_conflicts_with_method():
    cls, _, stk = build_class()
    obj = cls.new(stk, "v")
    with pytest.raises(AttributeError, match="already have a method named me"):
        obj.set_var("me", 1)


def test_missing_member():
    obj = iclass().new(Stack())
    with pytest.raises(AttributeError, match="doesn't has member `nope`"):
        obj.member("nope")


def test_get_member_var():
    cls, _, stk = build_class()
    obj = cls.new(stk, "v")
    assert get_member_var(obj, "x") == "v"
    with pytest.raises(TypeError, match="should be `string` type"):
        get_member_var(obj, 1)
    with pytest.raises(TypeError, match="doesn't support `get` operator"):
        get_member_var([1], "x")


def test_new_instruction_with_class():
    cls, ctx, stk = build_class()
    stk.push(cls)
    stk.push("arg")
    new(1).exec(stk, ctx)
    obj = stk.pop()
    assert obj.member("x") == "arg"
    assert len(stk) == 0


def test_new_instruction_with_plain_type():
    class Maker:
        def new_instance(self, *args):
            return ("made", *args)

    stk = Stack([Maker(), "a", "b"])
    new(2).exec(stk, None)
    assert stk.data == [("made", "a", "b")]


def test_new_instruction_errors():
    with pytest.raises(RuntimeError, match="without class name"):
        new(0).exec(Stack(), None)
    with pytest.raises(TypeError, match="not a type"):
        new(0).exec(Stack(["not a class"]), None)


def test_member_ref_on_object_and_class():
    cls, ctx, stk = build_class()
    obj = cls.new(stk, "v")
    stk.push(obj)
    member_ref("x").exec(stk, ctx)
    assert stk.pop() == "v"
    stk.push(cls)
    member_ref("me").exec(stk, ctx)
    assert stk.pop() is cls.fns["me"]
    stk.push(cls)
    with pytest.raises(AttributeError, match="class doesn't has method `zz`"):
        member_ref("zz").exec(stk, ctx)


def test_member_ref_on_dict_and_attribute():
    stk = Stack([{"k": "val"}])
    member_ref("k").exec(stk, None)
    assert stk.pop() == "val"
    stk.push({})
    with pytest.raises(KeyError):
        member_ref("k").exec(stk, None)
    stk.push(SimpleNamespace(colour="red"))
    member_ref("colour").exec(stk, None)
    assert stk.pop() == "red"
    stk.push(SimpleNamespace())
    with pytest.raises(AttributeError, match="doesn't has member `colour`"):
        member_ref("colour").exec(stk, None)


def test_member_ref_without_object():
    with pytest.raises(RuntimeError, match="reference without object"):
        member_ref("x").exec(Stack(), None)


def test_member_var_and_to_var():
    target = {"k": 1}
    stk = Stack([target])
    member_var("k").exec(stk, None)
    assert stk.pop() == DataIndex(target, "k")

    code = Code()
    code.block(member_ref("k"))
    code.to_var()
    ctx = new_context_ex({})
    stk = Stack([target])
    code.exec(0, len(code), stk, ctx)
    result = stk.pop()
    assert result.data is target
    assert result.index == "k"


def test_class_is_distinct_per_iclass():
    a, b = iclass(), iclass()
    a.fns["f"] = Function(None, 0, 0, {}, [], False)
    assert "f" not in b.fns
    assert isinstance(a, Class)