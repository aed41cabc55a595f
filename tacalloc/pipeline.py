"""Optimisation and register-allocation pipeline for one function."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from tacalloc.blocks import Block, build_blocks
from tacalloc.copyprop import propagate_copies
from tacalloc.dataflow import compute_gen_kill, compute_live_in_out
from tacalloc.graph import DEFAULT_REGISTERS, InterferenceGraph, color_graph, machine_register
from tacalloc.interference import build_interference_graph, calculate_cost
from tacalloc.ir import Instr, Symbol


@dataclass
class AllocationResult:
    """Everything the allocation of one function produced."""

    code: list[Instr]
    blocks: list[Block]
    graph: InterferenceGraph
    spilled: list[Symbol] = field(default_factory=list)
    used_registers: list[int] = field(default_factory=list)
    registers: dict[Symbol, int] = field(default_factory=dict)
    copies_propagated: int = 0


def allocate_registers(
    code: Sequence[Instr],
    function: Symbol,
    globals_: Iterable[Symbol] = (),
    registers: int = DEFAULT_REGISTERS,
) -> AllocationResult:
    """Optimise and colour the three-address code of ``function``.

    The code is split into blocks, copies are propagated, liveness is
    computed with every global live, and the live ranges are coloured with
    ``registers`` registers, spilling where needed. ``code`` itself is not
    changed; the returned result holds the code that was processed.
    """
    working = list(code)
    blocks = build_blocks(working)
    copies = propagate_copies(blocks)
    compute_gen_kill(blocks)
    compute_live_in_out(blocks, list(globals_), True)
    graph = build_interference_graph(working, blocks, function)
    calculate_cost(working)
    coloring = color_graph(graph, registers)
    assigned = {
        vertex.symbol: machine_register(graph, vertex.symbol) for vertex in graph
    }
    return AllocationResult(
        code=working,
        blocks=blocks,
        graph=graph,
        spilled=coloring.spilled,
        used_registers=coloring.used_registers,
        registers=assigned,
        copies_propagated=copies,
    )