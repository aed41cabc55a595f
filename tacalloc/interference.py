"""Live ranges, interference-graph construction and spill-cost estimation."""

from __future__ import annotations

from typing import Sequence

from tacalloc.blocks import Block, BlockKind
from tacalloc.dataflow import InstrEffect
from tacalloc.graph import InterferenceGraph
from tacalloc.ir import (
    ARITHMETIC_OPS,
    UNARY_OPS,
    Instr,
    Op,
    OperandKind,
    Symbol,
    SymType,
)

_CONSTANT_KINDS = (OperandKind.INTCON, OperandKind.STRINGCON, OperandKind.CHARCON)

LOOP_WEIGHT = 5
"""Frequency added for each use or definition inside a loop body."""

_PASS = 1


def instruction_operands(instr: Instr) -> InstrEffect:
    """The live range ``instr`` defines (``dest``) and those it reads.

    A store through a pointer reads the pointer, so it is reported as
    ``src2`` rather than as a definition.
    """
    op = instr.op
    if op.is_conditional():
        return InstrEffect(src1=instr.src1.symbol, src2=instr.src2.symbol)
    if op == Op.DEREF or op in UNARY_OPS:
        return InstrEffect(dest=instr.dest.symbol, src1=instr.src1.symbol)
    if op in ARITHMETIC_OPS:
        src2 = instr.src2.symbol if instr.src2.kind != OperandKind.INTCON else None
        return InstrEffect(dest=instr.dest.symbol, src1=instr.src1.symbol, src2=src2)
    if op == Op.PARAM:
        return InstrEffect(src1=instr.src1.symbol)
    if op == Op.RETURN:
        if instr.dest.kind != OperandKind.NONE:
            return InstrEffect(src1=instr.dest.symbol)
        return InstrEffect()
    if op == Op.RETRIEVE:
        return InstrEffect(dest=instr.dest.symbol)
    if op == Op.ASSN:
        src1 = instr.src1.symbol if instr.src1.kind not in _CONSTANT_KINDS else None
        if instr.dest.kind == OperandKind.DEREF:
            return InstrEffect(src1=src1, src2=instr.dest.symbol)
        return InstrEffect(dest=instr.dest.symbol, src1=src1)
    return InstrEffect()


def _symbols(effect: InstrEffect) -> list[Symbol]:
    return [s for s in (effect.dest, effect.src1, effect.src2) if s is not None]


def collect_vertices(code: Sequence[Instr], graph: InterferenceGraph) -> None:
    """Add a vertex to ``graph`` for every non-array symbol ``code`` touches."""
    for instr in code:
        for symbol in _symbols(instruction_operands(instr)):
            if symbol.type != SymType.ARRAY:
                graph.add_vertex(symbol)


def _add_live(live: list[Symbol], symbol: Symbol) -> None:
    if not any(item is symbol for item in live):
        live.append(symbol)


def _remove_live(live: list[Symbol], symbol: Symbol) -> None:
    for index, item in enumerate(live):
        if item is symbol:
            del live[index]
            return


def live_range_step(
    graph: InterferenceGraph, live: list[Symbol], instr: Instr
) -> None:
    """Step backwards over ``instr``, updating the live set ``live`` in place.

    The range ``instr`` defines interferes with every range live after it;
    it then stops being live while the ranges it reads become live.
    """
    effect = instruction_operands(instr)
    if instr.op == Op.DEREF and effect.src1 is not None:
        graph.add_vertex(effect.src1)
    dest = effect.dest
    if dest is not None:
        for symbol in list(live):
            if symbol.type != SymType.FUNC and graph.has_vertex(symbol):
                graph.add_edge(symbol, dest)
        _remove_live(live, dest)
    for src in (effect.src1, effect.src2):
        if src is not None:
            _add_live(live, src)


def _last_named(graph: InterferenceGraph, name: str) -> Symbol | None:
    found = None
    for vertex in graph:
        if vertex.symbol.name == name:
            found = vertex.symbol
    return found


def _connect_formals(graph: InterferenceGraph, formals: Sequence[Symbol]) -> None:
    for formal in formals:
        for other in formals:
            if other is formal:
                continue
            if graph.has_vertex(other) and graph.has_vertex(formal):
                first = _last_named(graph, other.name)
                second = _last_named(graph, formal.name)
                if first is not None and second is not None:
                    graph.add_edge(first, second)


def _replay(graph: InterferenceGraph, live: list[Symbol], block: Block) -> None:
    for instr in reversed(block.body):
        live_range_step(graph, live, instr)


def build_interference_graph(
    code: Sequence[Instr], blocks: Sequence[Block], function: Symbol
) -> InterferenceGraph:
    """Build the interference graph of one function.

    ``blocks`` must carry their live-out sets. Formal parameters interfere
    with each other and with every range live on entry. Use frequencies are
    left to :func:`calculate_cost`.
    """
    graph = InterferenceGraph()
    collect_vertices(code, graph)
    for block in blocks:
        block.iteration = 0
    formals = list(function.formals)
    _connect_formals(graph, formals)
    if not blocks:
        return graph

    head = blocks[0]
    visited: set[Block] = set()
    live: list[Symbol] = []

    def walk(block: Block) -> None:
        visited.add(block)
        if block.kind == BlockKind.NO_BRANCH:
            successors = [block.child]
        elif block.kind == BlockKind.BRANCH:
            successors = [block.l_child, block.r_child]
        else:
            return
        for child in successors:
            if child.iteration != _PASS:
                if child in visited:
                    return
                walk(child)
                live[:] = block.live_out
                _replay(graph, live, child)

    walk(head)
    live[:] = head.live_out
    _replay(graph, live, head)

    for formal in formals:
        for symbol in list(live):
            if symbol.type == SymType.FUNC:
                continue
            if graph.has_vertex(symbol) and graph.has_vertex(formal):
                target = _last_named(graph, formal.name)
                if target is not None:
                    graph.add_edge(symbol, target)
    return graph


def find_loop_end(code: Sequence[Instr], position: int) -> int | None:
    """Index of the first jump at or after ``position`` back to the label there.

    Returns None when no later jump targets that label.
    """
    label = code[position].dest.value
    for index in range(position, len(code)):
        instr = code[index]
        if (instr.op.is_conditional() or instr.op == Op.GOTO) and instr.dest.value == label:
            return index
    return None


def _bump(instr: Instr, amount: int) -> None:
    for symbol in _symbols(instruction_operands(instr)):
        if symbol.type != SymType.ARRAY:
            symbol.freq += amount


def calculate_cost(code: Sequence[Instr]) -> None:
    """Add use and definition counts to each symbol's ``freq``.

    Every occurrence counts once; occurrences inside a loop, from its label
    up to the jump back, count :data:`LOOP_WEIGHT` more for each loop.
    """
    for position, instr in enumerate(code):
        if instr.op == Op.LABEL:
            end = find_loop_end(code, position)
            if end is not None:
                for inner in code[position:end]:
                    _bump(inner, LOOP_WEIGHT)
            continue
        _bump(instr, 1)