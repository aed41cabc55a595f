"""Interference graph of live ranges and register assignment by graph colouring."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

from tacalloc.ir import Symbol

DEFAULT_REGISTERS = 20
"""Number of allocatable registers."""

REGISTER_BASE = 5
"""Machine register number of allocatable register 0."""

_NO_REGISTER = -1
_INITIAL_SPILL_COST = 9999999.0


@dataclass(eq=False)
class Vertex:
    """A live range in the interference graph; vertices compare by identity."""

    symbol: Symbol
    reg_used: int = _NO_REGISTER
    spill_cost: float = 0.0
    adjacent: list["Vertex"] = field(default_factory=list)

    @property
    def neighbours(self) -> int:
        """Number of vertices this one interferes with."""
        return len(self.adjacent)

    def is_adjacent(self, symbol: Symbol) -> bool:
        """True if an edge joins this vertex to the vertex of ``symbol``."""
        return any(other.symbol is symbol for other in self.adjacent)

    def __repr__(self) -> str:
        names = ", ".join(other.symbol.name for other in self.adjacent)
        return f"Vertex({self.symbol.name!r}, reg={self.reg_used}, adjacent=[{names}])"


class InterferenceGraph:
    """Undirected graph of live ranges, vertices kept in insertion order."""

    def __init__(self) -> None:
        self._vertices: list[Vertex] = []

    def __len__(self) -> int:
        return len(self._vertices)

    def __iter__(self) -> Iterator[Vertex]:
        return iter(self._vertices)

    def _by_name(self, name: str) -> Vertex | None:
        for vertex in self._vertices:
            if vertex.symbol.name == name:
                return vertex
        return None

    def add_vertex(self, symbol: Symbol) -> Vertex:
        """Add a vertex for ``symbol`` unless one is already there; return it."""
        existing = self.vertex(symbol)
        if existing is not None:
            return existing
        vertex = Vertex(symbol)
        self._vertices.append(vertex)
        return vertex

    def add_edge(self, a: Symbol, b: Symbol) -> bool:
        """Join the vertices of ``a`` and ``b``; a symbol never interferes with itself.

        Each endpoint present in the graph gains the other as neighbour, the
        neighbour being looked up by name.
        """
        if a is b:
            return False
        for vertex in self._vertices:
            if vertex.symbol is b and not vertex.is_adjacent(a):
                other = self._by_name(a.name)
                if other is not None:
                    vertex.adjacent.append(other)
            if vertex.symbol is a and not vertex.is_adjacent(b):
                other = self._by_name(b.name)
                if other is not None:
                    vertex.adjacent.append(other)
        return True

    def remove_vertex(self, symbol: Symbol) -> bool:
        """Remove the vertex of ``symbol`` with all its edges; True if it was there."""
        if not self._vertices:
            return False
        for vertex in self._vertices:
            for index, other in enumerate(vertex.adjacent):
                if other.symbol is symbol:
                    del vertex.adjacent[index]
                    break
        for index, vertex in enumerate(self._vertices):
            if vertex.symbol is symbol:
                del self._vertices[index]
                return True
        return False

    def has_vertex(self, symbol: Symbol) -> bool:
        """True if a vertex holds ``symbol`` or a symbol of the same name."""
        return any(
            vertex.symbol is symbol or vertex.symbol.name == symbol.name
            for vertex in self._vertices
        )

    def vertex(self, symbol: Symbol) -> Vertex | None:
        """The vertex holding ``symbol`` itself, or None."""
        for vertex in self._vertices:
            if vertex.symbol is symbol:
                return vertex
        return None

    def copy(self) -> "InterferenceGraph":
        """A copy with the same vertices and edges and no registers assigned."""
        duplicate = InterferenceGraph()
        mapping: dict[Vertex, Vertex] = {}
        for vertex in self._vertices:
            clone = Vertex(vertex.symbol)
            mapping[vertex] = clone
            duplicate._vertices.append(clone)
        for vertex in self._vertices:
            mapping[vertex].adjacent = [mapping[other] for other in vertex.adjacent]
        return duplicate

    def least_neighbours(self) -> tuple[Symbol, int]:
        """The symbol with fewest neighbours (the last such one) and that count."""
        if not self._vertices:
            raise ValueError("graph has no vertices")
        chosen = self._vertices[0]
        for vertex in self._vertices:
            if vertex.neighbours <= chosen.neighbours:
                chosen = vertex
        return chosen.symbol, chosen.neighbours

    def register_of(self, symbol: Symbol) -> int:
        """The register given to ``symbol``, or -1 if it has none."""
        vertex = self.vertex(symbol)
        return vertex.reg_used if vertex is not None else _NO_REGISTER

    def format(self) -> str:
        """Describe every vertex with its edges, neighbour count and frequency."""
        lines = []
        for vertex in self._vertices:
            edges = "".join(f" {other.symbol.name}," for other in vertex.adjacent)
            lines.append(
                f"Vertex : {vertex.symbol.name}, Edges :{edges}"
                f"  Neighbours : {vertex.neighbours}"
                f"  frequency : {vertex.symbol.freq}\n"
            )
        return "".join(lines)

    def format_registers(self) -> str:
        """List the register assigned to every vertex."""
        return "\n" + "".join(
            f" vertex {vertex.symbol.name}, reg no : {vertex.reg_used}\n"
            for vertex in self._vertices
        )


@dataclass
class ColoringResult:
    """Outcome of colouring: spilled symbols in spill order and registers used."""

    spilled: list[Symbol] = field(default_factory=list)
    used_registers: list[int] = field(default_factory=list)


def simplify_order(graph: InterferenceGraph) -> list[Symbol]:
    """Order in which vertices receive registers.

    Vertices are removed from a copy of ``graph`` fewest-neighbours first;
    the first removed comes last in the returned list.
    """
    working = graph.copy()
    order: list[Symbol | None] = [None] * len(working)
    for position in range(len(order) - 1, -1, -1):
        symbol, _ = working.least_neighbours()
        order[position] = symbol
        working.remove_vertex(symbol)
    return [symbol for symbol in order if symbol is not None]


def _lowest_free(taken: set[int], registers: int) -> int:
    for register in range(registers):
        if register not in taken:
            return register
    return _NO_REGISTER


def assign_registers(
    graph: InterferenceGraph, order: list[Symbol], registers: int = DEFAULT_REGISTERS
) -> list[int] | None:
    """Give each symbol of ``order`` the lowest register none of its neighbours holds.

    Returns the sorted registers used, or None as soon as a symbol cannot
    get one.
    """
    used: set[int] = set()
    for symbol in order:
        vertex = graph.vertex(symbol)
        if vertex is None:
            raise KeyError(f"symbol {symbol.name!r} is not in the graph")
        taken = {other.reg_used for other in vertex.adjacent if other.reg_used != _NO_REGISTER}
        vertex.reg_used = _lowest_free(taken, registers)
        if vertex.reg_used == _NO_REGISTER:
            return None
        used.add(vertex.reg_used)
    return sorted(used)


def spill_vertex(graph: InterferenceGraph) -> Symbol:
    """Remove and return the symbol cheapest to keep in memory.

    The cost is the use frequency divided by the neighbour count; among
    equal costs the last vertex is chosen.
    """
    chosen: Vertex | None = None
    best = _INITIAL_SPILL_COST
    for vertex in graph:
        if vertex.neighbours == 0:
            vertex.spill_cost = float(vertex.symbol.freq)
        else:
            vertex.spill_cost = vertex.symbol.freq / vertex.neighbours
        if best >= vertex.spill_cost:
            best = vertex.spill_cost
            chosen = vertex
    if chosen is None:
        raise ValueError("no vertex can be spilled")
    graph.remove_vertex(chosen.symbol)
    return chosen.symbol


def color_graph(
    graph: InterferenceGraph, registers: int = DEFAULT_REGISTERS
) -> ColoringResult:
    """Assign registers to ``graph``, spilling vertices until every one fits."""
    result = ColoringResult()
    while True:
        used = assign_registers(graph, simplify_order(graph), registers)
        if used is not None:
            result.used_registers = used
            return result
        result.spilled.append(spill_vertex(graph))


def machine_register(graph: InterferenceGraph, symbol: Symbol) -> int | None:
    """The machine register holding ``symbol``, or None if it has no vertex."""
    vertex = graph.vertex(symbol)
    if vertex is None:
        return None
    return vertex.reg_used + REGISTER_BASE