import pytest

from tacalloc.graph import REGISTER_BASE
from tacalloc.ir import Instr, Op, Operand, OperandKind, Symbol, SymType
from tacalloc.pipeline import allocate_registers


def sym(name, sym_type=SymType.INT):
    return Symbol(name, type=sym_type)


def enter(function):
    return Instr(Op.ENTER, dest=Operand(OperandKind.SYMBOL, function))


def copy(dest, src):
    return Instr(
        Op.ASSN,
        src1=Operand(OperandKind.SYMBOL, src),
        dest=Operand(OperandKind.SYMBOL, dest),
    )


def const(dest, value):
    return Instr(
        Op.ASSN,
        src1=Operand(OperandKind.INTCON, value),
        dest=Operand(OperandKind.SYMBOL, dest),
    )


def binop(op, dest, a, b):
    return Instr(
        op,
        src1=Operand(OperandKind.SYMBOL, a),
        src2=Operand(OperandKind.SYMBOL, b),
        dest=Operand(OperandKind.SYMBOL, dest),
    )


def ret(symbol):
    return Instr(Op.RETURN, dest=Operand(OperandKind.SYMBOL, symbol))


def sample():
    function = sym("f", SymType.FUNC)
    a, b, c = sym("a"), sym("b"), sym("c")
    code = [enter(function), const(a, 1), const(b, 2), binop(Op.PLUS, c, a, b), ret(c)]
    return function, (a, b, c), code


def assert_proper_colouring(graph):
    for vertex in graph:
        for other in vertex.adjacent:
            assert vertex.reg_used != other.reg_used


def test_enough_registers_no_spill():
    function, (a, b, c), code = sample()
    result = allocate_registers(code, function, [])
    assert result.spilled == []
    assert {v.symbol for v in result.graph} == {a, b, c}
    assert result.graph.vertex(a).is_adjacent(b)
    assert all(reg >= REGISTER_BASE for reg in result.registers.values())
    assert_proper_colouring(result.graph)


def test_registers_map_follows_graph():
    function, _, code = sample()
    result = allocate_registers(code, function, [])
    for vertex in result.graph:
        assert result.registers[vertex.symbol] == vertex.reg_used + REGISTER_BASE
    assert sorted({v.reg_used for v in result.graph}) == result.used_registers


def test_single_register_forces_spill():
    function, _, code = sample()
    result = allocate_registers(code, function, [], registers=1)
    assert result.spilled
    for symbol in result.spilled:
        assert result.graph.vertex(symbol) is None
    assert all(vertex.reg_used in range(1) for vertex in result.graph)
    assert_proper_colouring(result.graph)


def test_copies_are_propagated():
    function = sym("f", SymType.FUNC)
    a, b, c, x = sym("a"), sym("b"), sym("c"), sym("x")
    plus = binop(Op.PLUS, c, a, x)
    code = [enter(function), const(b, 3), const(x, 4), copy(a, b), plus, ret(c)]
    result = allocate_registers(code, function, [])
    assert plus.src1.symbol is b
    assert result.copies_propagated >= 1


def test_unreachable_code_dropped_and_input_untouched():
    function = sym("f", SymType.FUNC)
    a, b = sym("a"), sym("b")
    back = ret(a)
    code = [enter(function), const(a, 1), back, const(b, 2)]
    result = allocate_registers(code, function, [])
    assert result.code[-1] is back
    assert len(code) == 4
    assert result.graph.vertex(b) is None


def test_global_kept_live():
    function = sym("f", SymType.FUNC)
    g = sym("g")
    g.is_global = True
    a = sym("a")
    code = [enter(function), const(g, 1), const(a, 2), ret(a)]
    result = allocate_registers(code, function, [g])
    assert result.graph.vertex(g).is_adjacent(a)
    assert result.registers[g] != result.registers[a]


def test_code_without_enter_rejected():
    function, (a, _, _), _ = sample()
    with pytest.raises(ValueError):
        allocate_registers([const(a, 1), ret(a)], function, [])