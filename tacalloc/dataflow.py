"""Per-block gen/kill sets and iterative live-variable analysis."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import chain
from typing import Iterable, Sequence

from tacalloc.blocks import Block, BlockKind
from tacalloc.ir import ARITHMETIC_OPS, UNARY_OPS, Instr, Op, OperandKind, Symbol

_CONSTANT_KINDS = (OperandKind.INTCON, OperandKind.STRINGCON, OperandKind.CHARCON)


@dataclass(frozen=True)
class InstrEffect:
    """What one instruction defines (``dest``) and uses (``src1``, ``src2``)."""

    dest: Symbol | None = None
    src1: Symbol | None = None
    src2: Symbol | None = None


def _add(items: list[Symbol], symbol: Symbol) -> None:
    if not any(item is symbol for item in items):
        items.append(symbol)


def _remove(items: list[Symbol], symbol: Symbol) -> None:
    for index, item in enumerate(items):
        if item is symbol:
            del items[index]
            return


def _position(code: Sequence[Instr], instr: Instr) -> int:
    for index, candidate in enumerate(code):
        if candidate is instr:
            return index
    raise ValueError("instruction is not part of the given code")


def _address_effect(
    code: Sequence[Instr], instr: Instr
) -> tuple[Symbol | None, Symbol | None]:
    """Decide whether an address computation stores to or loads from its array."""
    address = instr.dest.symbol
    array = instr.src1.symbol
    for later in code[_position(code, instr) + 1 :]:
        if (
            later.op == Op.ASSN
            and later.dest.kind == OperandKind.DEREF
            and later.dest.symbol is address
        ):
            return array, None
        if later.op == Op.DEREF and later.src1.symbol is address:
            return None, array
    return None, None


def instruction_effect(code: Sequence[Instr], instr: Instr) -> InstrEffect:
    """The symbols ``instr`` defines and uses.

    ``code`` is the instruction sequence holding ``instr``; it is searched
    forward when ``instr`` computes the address of an array element.
    """
    op = instr.op
    if op.is_conditional():
        return InstrEffect(src1=instr.src1.symbol, src2=instr.src2.symbol)
    if op in UNARY_OPS:
        return InstrEffect(dest=instr.dest.symbol, src1=instr.src1.symbol)
    if op in ARITHMETIC_OPS:
        dest = instr.dest.symbol if instr.dest.kind != OperandKind.ADDRESS else None
        src2 = instr.src2.symbol if instr.src2.kind != OperandKind.INTCON else None
        if instr.src1.kind != OperandKind.ID_LOC:
            src1 = instr.src1.symbol
        else:
            stored, loaded = _address_effect(code, instr)
            src1 = loaded
            if stored is not None:
                dest = stored
        return InstrEffect(dest=dest, src1=src1, src2=src2)
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
        return InstrEffect(dest=instr.dest.symbol, src1=src1)
    return InstrEffect()


def _apply(gen: list[Symbol], kill: list[Symbol], effect: InstrEffect) -> None:
    dest, src1, src2 = effect.dest, effect.src1, effect.src2
    if dest is not None:
        _remove(gen, dest)
    for src in (src1, src2):
        if src is not None:
            _add(gen, src)
    if dest is not None:
        _add(kill, dest)
    for src in (src1, src2):
        if src is not None and src is not dest:
            _remove(kill, src)


def _block_gen_kill(
    block: Block, code: Sequence[Instr]
) -> tuple[list[Symbol], list[Symbol]]:
    effects = [instruction_effect(code, instr) for instr in block.instructions()]
    gen: list[Symbol] = []
    kill: list[Symbol] = []
    for effect in chain(reversed(effects), effects[:1]):
        _apply(gen, kill, effect)
    block.gen = gen
    block.kill = kill
    return gen, kill


def block_gen_kill(block: Block) -> tuple[list[Symbol], list[Symbol]]:
    """Compute, store and return the ``(gen, kill)`` sets of ``block``.

    The instructions are walked from tail to head.
    """
    return _block_gen_kill(block, block.body)


def compute_gen_kill(blocks: Sequence[Block]) -> None:
    """Compute the gen and kill sets of every block of a function."""
    code = [instr for block in blocks for instr in block.instructions()]
    for block in blocks:
        _block_gen_kill(block, code)


def _block_in_out(
    block: Block, globals_: Sequence[Symbol], trailing: Iterable[Instr]
) -> None:
    block.iteration += 1
    out: list[Symbol] = []
    if block.kind == BlockKind.NO_BRANCH:
        out = list(block.child.live_in)
    elif block.kind == BlockKind.BRANCH:
        out = list(block.l_child.live_in)
        for symbol in block.r_child.live_in:
            _add(out, symbol)
    else:
        for instr in trailing:
            if instr.op == Op.RETURN and instr.dest.kind != OperandKind.NONE:
                returned = instr.dest.symbol
                if returned is not None:
                    _add(out, returned)
        for symbol in globals_:
            _add(out, symbol)
    block.live_out = out

    live_in = list(out)
    for symbol in block.kill:
        if not symbol.formal:
            _remove(live_in, symbol)
    for symbol in block.gen:
        _add(live_in, symbol)
    block.live_in = live_in


def block_in_out(block: Block, globals_: Sequence[Symbol]) -> None:
    """Recompute the live-out and live-in sets of ``block`` from its successors.

    A finishing block keeps alive the values it returns and every global.
    """
    _block_in_out(block, globals_, block.body)


def _unchanged(previous: list[Symbol], current: list[Symbol]) -> bool:
    if not previous:
        return not current
    return all(any(item is symbol for item in current) for symbol in previous)


def compute_live_in_out(
    blocks: Sequence[Block], globals_: Iterable[Symbol], all_globals_live: bool
) -> int:
    """Iterate live-variable analysis over ``blocks`` until it settles.

    Gen and kill sets must already be computed. When ``all_globals_live``
    is true every global starts live on entry to every block. Returns the
    number of passes made.
    """
    if not blocks:
        return 0
    globals_ = list(globals_)

    for block in blocks:
        block.live_in = list(block.gen)
        if all_globals_live:
            for symbol in globals_:
                _add(block.live_in, symbol)
        block.live_out = []

    trailing: dict[Block, list[Instr]] = {}
    for index, block in enumerate(blocks):
        trailing[block] = [instr for later in blocks[index:] for instr in later.body]

    previous_in: dict[Block, list[Symbol]] = {block: [] for block in blocks}
    previous_out: dict[Block, list[Symbol]] = {block: [] for block in blocks}
    head = blocks[0]
    iteration = 1
    visited: set[Block] = set()

    def analyse(block: Block) -> None:
        _block_in_out(block, globals_, trailing.get(block, block.body))

    def walk(block: Block) -> None:
        visited.add(block)
        if block.kind == BlockKind.NO_BRANCH:
            successors = [block.child]
        elif block.kind == BlockKind.BRANCH:
            successors = [block.l_child, block.r_child]
        else:
            return
        for child in successors:
            if child.iteration != iteration:
                if child in visited:
                    return
                walk(child)
                analyse(child)

    passes = 0
    while True:
        visited = {head}
        walk(head)
        analyse(head)
        passes += 1
        iteration += 1

        settled = True
        for block in blocks:
            if not _unchanged(previous_in[block], block.live_in):
                previous_in[block] = list(block.live_in)
                settled = False
            if not _unchanged(previous_out[block], block.live_out):
                previous_out[block] = list(block.live_out)
                settled = False
        if settled:
            return passes