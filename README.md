# qlexec

`qlexec` is the execution engine of a small dynamic scripting language. A
compiler front end emits a flat list of instructions into a `Code` object.
`qlexec` runs that list on a value `Stack`, inside a `Context` that holds the
variables.

## Modules

- `qlexec.code` is the core of the engine.
  - Classes: `Stack`, `Context`, `Code`, `ReservedInstr`, the abstract `Instr`
    and the constant instruction `Push`.
  - Errors: `QlangError`, which wraps a failure during execution together with
    its file and line.
  - Values: `DataIndex`, the thread-safe `Chan`, and `UndefinedType` with its
    single value `UNDEFINED`.
  - Helpers: `new_context_ex`, `symbol_index` and `set_dump_stack`.
- `qlexec.basic` holds the stack and control-flow instructions.
  - Builders: `push`, `pop_ex` (with the hook set by `set_on_pop`), `or_`,
    `and_`, `jmp`, `jmp_if_false`, `case`, `op3` and `rem`.
  - Constants: `NIL`, `POP`, `CLEAR` and `DEFAULT`.
- `qlexec.call` holds the instructions that call functions.
  - `call(fn, arity)` calls a Python callable.
  - `call_fn(arity)` calls the value that sits below its arguments on the
    stack.
  - `call_fnv(arity)` works like `call_fn`, but spreads a list given as the
    last argument.
  - Errors: `StackDamagedError`, `ArityRequiredError` and
    `ArgumentsNotEnoughError`.
- `qlexec.loops` provides `for_range`, which iterates over lists, tuples,
  dicts and channels. Its body can end early with `BREAK_FOR_RANGE` and
  `CONTINUE_FOR_RANGE`.
- `qlexec.function` holds script functions and the instructions that work
  with them.
  - `Function`: `call`, `ext_call`.
  - Instructions: `func`, `return_`, `defer`, `RECOVER`, `EXIT`, `anonym_fn`,
    `module`, `as_` and `export`.
  - `go` runs a code range in a new thread. `CHAN_IN` and `CHAN_OUT` send to
    and receive from a channel.
- `qlexec.classes` holds script classes.
  - `Class`, `Object` and `Method`.
  - Instructions: `iclass`, `new`, `member_ref` and `member_var`.
  - `get_member_var`.
- `qlexec.variables` holds variable access and assignment.
  - `Variable`.
  - Instructions: `ref`, `var`, `gfn_ref`, `GET`, `GET_VAR`, `ASSIGN_EX`,
    `multi_assign_ex` and `multi_assign_from_slice_ex`.
  - Compound assignments: `ADD_ASSIGN_EX`, `SUB_ASSIGN_EX` and the rest,
    plus `INC_EX` and `DEC_EX`.
  - Helpers: `get_item` and `set_index`.
- `qlexec.constructors` holds types and literals.
  - Type constructors: `CHAN`, `SLICE` and `MAP`, which build `ChanType`,
    `SliceType` and `MapType`.
  - Literals: `slice_from`, `slice_from_ty`, `struct_init` and `map_init`.

## Examples

A conditional expression is built by reserving a jump slot. The slot is filled
in once the length of the branch is known:

```python
from qlexec.code import Code, Stack, new_context_ex
from qlexec.basic import push, jmp, jmp_if_false
from qlexec.call import call

def mul(a, b):
    return a * b

def mod(a, b):
    return a % b

code = Code(push(True))
cond = code.reserve()
code.block(push(5), push(6), call(mul, 2))
skip = code.reserve()
code.block(push(5), push(2), call(mod, 2))
cond.set(jmp_if_false(skip.delta(cond)))
skip.set(jmp(len(code) - skip.next()))

stk = Stack()
code.exec(0, len(code), stk, new_context_ex(None))
assert stk.pop() == 30
```

In this example, variables are addressed by their slot in the context's symbol
table:

```python
from qlexec.code import Code, Stack, new_context_ex
from qlexec.basic import push
from qlexec.variables import ASSIGN_EX, INC_EX, var

ctx = new_context_ex({"x": 0})
code = Code(var(0), push(41), ASSIGN_EX, var(0), INC_EX)
code.exec(0, len(code), Stack(), ctx)
assert ctx.var("x") == 42
```

## Errors

An exception raised while instructions run is wrapped in `QlangError`. The
wrapper carries the file and line recorded with `Code.code_line`. After
`set_dump_stack(True)`, the message also includes the captured traceback.

When `return_` runs in a context that has no parent (the main program), it ends
the program with `SystemExit`.

## What it does not do

`qlexec` only executes instructions that have already been built. These parts
are not included:

- a parser or compiler for script source text;
- a command-line interpreter;
- a library of built-in operators.

Arithmetic and other operations reach the stack as Python callables, through
`call`, `call_fn` and `op3`.

## Running the tests

```
pip install -e .[test]
pytest
```