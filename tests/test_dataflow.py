import pytest

from tacalloc.blocks import Block, BlockKind, build_blocks
from tacalloc.dataflow import (
    InstrEffect,
    block_gen_kill,
    block_in_out,
    compute_gen_kill,
    compute_live_in_out,
    instruction_effect,
)
from tacalloc.ir import Instr, Op, Operand, OperandKind, Symbol, SymType


def sym(symbol):
    return Operand(OperandKind.SYMBOL, symbol)


def enter(fn):
    return Instr(Op.ENTER, dest=sym(fn))


def assign(dest, src):
    return Instr(Op.ASSN, src1=sym(src), dest=sym(dest))


def plus(dest, a, b):
    return Instr(Op.PLUS, src1=sym(a), src2=sym(b), dest=sym(dest))


def if_lt(a, b, label):
    return Instr(Op.IF_LT, src1=sym(a), src2=sym(b), dest=Operand(OperandKind.INTCON, label))


def ret(symbol=None):
    if symbol is None:
        return Instr(Op.RETURN)
    return Instr(Op.RETURN, dest=sym(symbol))


def names(symbols):
    return {s.name for s in symbols}


@pytest.fixture
def syms():
    return {
        "f": Symbol("f", SymType.FUNC),
        "a": Symbol("a", SymType.INT),
        "b": Symbol("b", SymType.INT),
        "x": Symbol("x", SymType.INT),
        "y": Symbol("y", SymType.INT),
        "g": Symbol("g", SymType.INT, is_global=True),
        "arr": Symbol("arr", SymType.ARRAY, elt_type=SymType.INT),
        "t1": Symbol("t1", SymType.INT),
        "t2": Symbol("t2", SymType.ADDRESS),
        "t3": Symbol("t3", SymType.INT),
    }


def test_assignment_effect(syms):
    instr = assign(syms["x"], syms["a"])
    assert instruction_effect([instr], instr) == InstrEffect(dest=syms["x"], src1=syms["a"])


def test_constant_assignment_uses_nothing(syms):
    instr = Instr(Op.ASSN, src1=Operand(OperandKind.INTCON, 5), dest=sym(syms["x"]))
    effect = instruction_effect([instr], instr)
    assert effect.dest is syms["x"]
    assert effect.src1 is None and effect.src2 is None


def test_deref_and_return_without_value_have_no_effect(syms):
    deref = Instr(Op.DEREF, src1=sym(syms["t2"]), dest=sym(syms["x"]))
    empty = ret()
    code = [deref, empty]
    assert instruction_effect(code, deref) == InstrEffect()
    assert instruction_effect(code, empty) == InstrEffect()


def test_return_value_is_used(syms):
    instr = ret(syms["y"])
    assert instruction_effect([instr], instr).src1 is syms["y"]


def test_array_load_uses_array(syms):
    addr = Instr(
        Op.PLUS,
        src1=Operand(OperandKind.ID_LOC, syms["arr"]),
        src2=sym(syms["t1"]),
        dest=Operand(OperandKind.ADDRESS, syms["t2"]),
    )
    load = Instr(Op.DEREF, src1=Operand(OperandKind.ADDRESS, syms["t2"]), dest=sym(syms["t3"]))
    effect = instruction_effect([addr, load], addr)
    assert effect.dest is None
    assert effect.src1 is syms["arr"]
    assert effect.src2 is syms["t1"]


def test_array_store_defines_array(syms):
    addr = Instr(
        Op.PLUS,
        src1=Operand(OperandKind.ID_LOC, syms["arr"]),
        src2=sym(syms["t1"]),
        dest=Operand(OperandKind.ADDRESS, syms["t2"]),
    )
    store = Instr(Op.ASSN, src1=sym(syms["x"]), dest=Operand(OperandKind.DEREF, syms["t2"]))
    effect = instruction_effect([addr, store], addr)
    assert effect.dest is syms["arr"]
    assert effect.src1 is None


def test_instruction_outside_code_raises(syms):
    addr = Instr(
        Op.PLUS,
        src1=Operand(OperandKind.ID_LOC, syms["arr"]),
        src2=sym(syms["t1"]),
        dest=Operand(OperandKind.ADDRESS, syms["t2"]),
    )
    with pytest.raises(ValueError):
        instruction_effect([], addr)


def test_block_gen_kill_straight_line(syms):
    x, a, y, b = syms["x"], syms["a"], syms["y"], syms["b"]
    block = Block(body=[assign(x, a), plus(y, x, b)])
    gen, kill = block_gen_kill(block)
    assert gen == [b, a]
    assert kill == [y, x]
    assert block.gen is gen and block.kill is kill


def test_block_gen_kill_self_update(syms):
    y, b = syms["y"], syms["b"]
    block = Block(body=[plus(y, y, b)])
    gen, kill = block_gen_kill(block)
    assert names(gen) == {"y", "b"}
    assert kill == [y]


def _branching_code(s):
    return [
        enter(s["f"]),
        assign(s["x"], s["a"]),
        if_lt(s["x"], s["b"], 0),
        assign(s["y"], s["x"]),
        ret(s["y"]),
        Instr.label(0),
        ret(s["x"]),
    ]


def test_compute_gen_kill_on_blocks(syms):
    blocks = build_blocks(_branching_code(syms))
    compute_gen_kill(blocks)
    assert names(blocks[0].gen) == {"a", "b"}
    assert blocks[0].kill == [syms["x"]]
    assert blocks[1].gen == [syms["x"]]
    assert blocks[1].kill == [syms["y"]]
    assert blocks[2].gen == [syms["x"]]
    assert blocks[2].kill == []


def test_live_in_out_branching(syms):
    blocks = build_blocks(_branching_code(syms))
    compute_gen_kill(blocks)
    passes = compute_live_in_out(blocks, [], False)
    assert passes >= 1
    b0, b1, b2 = blocks
    assert names(b1.live_out) == {"y", "x"}
    assert names(b1.live_in) == {"x"}
    assert names(b2.live_in) == {"x"}
    assert names(b0.live_out) == {"x"}
    assert names(b0.live_in) == {"a", "b"}


def test_live_in_is_out_minus_kill_plus_gen(syms):
    blocks = build_blocks(_branching_code(syms))
    compute_gen_kill(blocks)
    compute_live_in_out(blocks, [syms["g"]], True)
    for block in blocks:
        expected = {s for s in block.live_out if s not in block.kill or s.formal}
        expected |= set(block.gen)
        assert set(block.live_in) == expected


def test_globals_stay_live_everywhere(syms):
    blocks = build_blocks(_branching_code(syms))
    compute_gen_kill(blocks)
    compute_live_in_out(blocks, [syms["g"]], True)
    for block in blocks:
        assert syms["g"] in block.live_in
        assert syms["g"] in block.live_out


def test_killed_formal_stays_live(syms):
    formal = Symbol("p", SymType.INT, formal=True)
    code = [enter(syms["f"]), assign(formal, syms["b"]), ret(formal)]
    blocks = build_blocks(code)
    compute_gen_kill(blocks)
    compute_live_in_out(blocks, [], False)
    assert names(blocks[0].live_out) == {"p"}
    assert names(blocks[0].live_in) == {"p", "b"}


def test_loop_reaches_fixed_point(syms):
    i = Symbol("i", SymType.INT)
    n = Symbol("n", SymType.INT)
    one = Symbol("one", SymType.INT)
    code = [
        enter(syms["f"]),
        Instr.goto(1),
        Instr.label(0),
        plus(i, i, one),
        Instr.label(1),
        if_lt(i, n, 0),
        ret(i),
    ]
    blocks = build_blocks(code)
    assert [b.kind for b in blocks] == [
        BlockKind.NO_BRANCH,
        BlockKind.NO_BRANCH,
        BlockKind.BRANCH,
        BlockKind.FINISH,
    ]
    compute_gen_kill(blocks)
    compute_live_in_out(blocks, [], False)
    b0, b1, b2, b3 = blocks
    assert names(b2.live_in) == {"i", "n", "one"}
    assert names(b1.live_in) == {"i", "n", "one"}
    assert names(b0.live_in) == {"i", "n", "one"}
    assert names(b3.live_in) == {"i"}


def test_block_in_out_single_successor(syms):
    x, a = syms["x"], syms["a"]
    child = Block(body=[ret(x)], live_in=[x])
    parent = Block(
        body=[assign(x, a)], kind=BlockKind.NO_BRANCH, child=child, gen=[a], kill=[x]
    )
    block_in_out(parent, [])
    assert parent.live_out == [x]
    assert parent.live_in == [a]
    assert parent.iteration == 1


def test_block_in_out_branch_union(syms):
    x, y = syms["x"], syms["y"]
    left = Block(body=[ret(x)], live_in=[x])
    right = Block(body=[ret(y)], live_in=[x, y])
    parent = Block(
        body=[if_lt(x, y, 0)],
        kind=BlockKind.BRANCH,
        l_child=left,
        r_child=right,
        gen=[x, y],
    )
    block_in_out(parent, [])
    assert parent.live_out == [x, y]
    assert set(parent.live_in) == {x, y}


def test_block_in_out_finish_keeps_return_and_globals(syms):
    y, g = syms["y"], syms["g"]
    block = Block(body=[ret(y)], kind=BlockKind.FINISH, gen=[y])
    block_in_out(block, [g])
    assert block.live_out == [y, g]
    assert set(block.live_in) == {y, g}


def test_compute_live_in_out_empty():
    assert compute_live_in_out([], [], False) == 0