"""Copy propagation inside basic blocks."""

from __future__ import annotations

from typing import Iterable

from tacalloc.blocks import Block
from tacalloc.ir import ARITHMETIC_OPS, UNARY_OPS, Instr, Op, Operand, OperandKind, Symbol


def _is_copy(instr: Instr) -> bool:
    return (
        instr.op == Op.ASSN
        and instr.dest.kind != OperandKind.DEREF
        and instr.src1.kind == OperandKind.SYMBOL
    )


def _substitute(instr: Instr, slot: str, target: Symbol, source: Symbol) -> int:
    operand: Operand = getattr(instr, slot)
    if operand.symbol is target:
        setattr(instr, slot, Operand(operand.kind, source))
        return 1
    return 0


def propagate_copy(block: Block, position: int) -> int:
    """Propagate the copy ``x = y`` at ``position`` to later uses of ``x`` in ``block``.

    Uses of ``x`` are replaced by ``y`` only when both have the same type.
    Propagation stops once either of them is redefined. Returns the number
    of operands rewritten.
    """
    body = block.body
    copy = body[position]
    if not _is_copy(copy):
        raise ValueError("instruction at this position is not a copy of a symbol")
    target = copy.dest.symbol
    source = copy.src1.symbol
    if target is None or source is None:
        raise ValueError("copy has no symbol operands")
    if target.type != source.type:
        substitute = lambda instr, slot: 0  # noqa: E731
    else:
        substitute = lambda instr, slot: _substitute(instr, slot, target, source)  # noqa: E731

    def redefines(instr: Instr) -> bool:
        dest = instr.dest.symbol
        return dest is target or dest is source

    rewritten = 0
    for instr in body[position + 1 :]:
        op = instr.op
        if op.is_conditional():
            rewritten += substitute(instr, "src1")
            rewritten += substitute(instr, "src2")
        elif op == Op.DEREF:
            rewritten += substitute(instr, "src1")
            if instr.dest.symbol is target:
                break
        elif op in UNARY_OPS:
            rewritten += substitute(instr, "src1")
            if redefines(instr):
                break
        elif op in ARITHMETIC_OPS:
            rewritten += substitute(instr, "src1")
            rewritten += substitute(instr, "src2")
            if redefines(instr):
                break
        elif op == Op.PARAM:
            rewritten += substitute(instr, "src1")
        elif op == Op.RETURN:
            if instr.dest.kind != OperandKind.NONE:
                rewritten += substitute(instr, "dest")
        elif op == Op.RETRIEVE:
            if redefines(instr):
                break
        elif op == Op.ASSN:
            if instr.dest.kind != OperandKind.DEREF:
                rewritten += substitute(instr, "src1")
            if redefines(instr):
                break
    return rewritten


def propagate_in_block(block: Block) -> int:
    """Propagate every symbol copy of ``block`` except one standing at its tail."""
    last = len(block.body) - 1
    return sum(
        propagate_copy(block, position)
        for position, instr in enumerate(block.body)
        if position != last and _is_copy(instr)
    )


def propagate_copies(blocks: Iterable[Block]) -> int:
    """Run copy propagation over each block; return the operands rewritten."""
    return sum(propagate_in_block(block) for block in blocks)