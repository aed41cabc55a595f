"""Partitioning of three-address code into basic blocks."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterator

from tacalloc.ir import (
    ARITHMETIC_OPS,
    UNARY_OPS,
    Instr,
    Op,
    Operand,
    OperandKind,
    Symbol,
    operator_symbol,
)


class BlockKind(enum.Enum):
    """How control leaves a basic block."""

    NO_BRANCH = enum.auto()
    BRANCH = enum.auto()
    FINISH = enum.auto()


@dataclass(eq=False)
class Block:
    """A basic block: a straight run of instructions entered at its head.

    A ``NO_BRANCH`` block continues in ``child``; a ``BRANCH`` block falls
    through to ``l_child`` and jumps to ``r_child``; a ``FINISH`` block has
    no successor.
    """

    body: list[Instr]
    kind: BlockKind = BlockKind.FINISH
    above_head: Instr | None = None
    child: Block | None = None
    l_child: Block | None = None
    r_child: Block | None = None
    iteration: int = 0
    gen: list[Symbol] = field(default_factory=list)
    kill: list[Symbol] = field(default_factory=list)
    live_in: list[Symbol] = field(default_factory=list)
    live_out: list[Symbol] = field(default_factory=list)

    @property
    def head(self) -> Instr:
        """The leader of the block."""
        return self.body[0]

    @property
    def tail(self) -> Instr:
        """The last instruction of the block."""
        return self.body[-1]

    def instructions(self) -> Iterator[Instr]:
        """Iterate over the block's instructions from head to tail."""
        return iter(self.body)


def find_label(code: list[Instr], label: int) -> Instr | None:
    """The label instruction numbered ``label`` in ``code``, or None."""
    for instr in code:
        if instr.op == Op.LABEL and instr.dest.value == label:
            return instr
    return None


def _jump_target(code: list[Instr], instr: Instr) -> Instr:
    target = find_label(code, instr.dest.value)
    if target is None:
        raise ValueError(f"jump to undefined label _tdest{instr.dest.value}")
    return target


def identify_leaders(code: list[Instr]) -> list[Instr]:
    """Return the leaders of ``code`` in the order they are discovered.

    Unreachable code after a ``return`` that is not followed by a label or a
    jump is removed from ``code`` in place, and the scan stops there.
    """
    leaders: list[Instr] = []
    seen: set[Instr] = set()

    def add(instr: Instr) -> None:
        if instr not in seen:
            seen.add(instr)
            leaders.append(instr)

    position = 0
    while position < len(code):
        instr = code[position]
        following = code[position + 1] if position + 1 < len(code) else None
        if instr.op == Op.ENTER:
            add(instr)
        elif instr.op.is_conditional():
            add(_jump_target(code, instr))
            if following is not None:
                add(following)
        elif instr.op == Op.GOTO:
            add(_jump_target(code, instr))
            if following is not None and following.op == Op.LEAVE:
                add(following)
        elif instr.op == Op.RETURN:
            if following is None:
                break
            if following.op not in (Op.LABEL, Op.GOTO):
                del code[position + 1 :]
                break
        position += 1
    return leaders


def build_blocks(code: list[Instr]) -> list[Block]:
    """Split ``code`` into basic blocks and link each to its successors.

    ``code`` must start with an ``enter`` instruction. Blocks are returned
    in code order.
    """
    if not code or code[0].op != Op.ENTER:
        raise ValueError("code must begin with an enter instruction")
    leaders = set(identify_leaders(code))

    blocks: list[Block] = []
    block_of: dict[Instr, Block] = {}
    for instr in code:
        if instr in leaders or not blocks:
            block = Block(body=[instr])
            blocks.append(block)
            block_of[instr] = block
        else:
            blocks[-1].body.append(instr)

    for block, following in zip(blocks, blocks[1:]):
        last = block.tail
        following.above_head = last
        if last.op == Op.GOTO:
            block.kind = BlockKind.NO_BRANCH
            block.child = block_of[_jump_target(code, last)]
        elif last.op.is_conditional():
            block.kind = BlockKind.BRANCH
            block.r_child = block_of[_jump_target(code, last)]
            block.l_child = following
        elif last.op == Op.RETURN:
            block.kind = BlockKind.FINISH
            block.child = None
        else:
            block.kind = BlockKind.NO_BRANCH
            block.child = following

    last_block = blocks[-1]
    last_block.kind = BlockKind.FINISH
    last_block.child = None
    return blocks


def _name(operand: Operand) -> str:
    symbol = operand.symbol
    return symbol.name if symbol is not None else str(operand.value)


def _assign_source(src: Operand) -> str:
    if src.kind == OperandKind.SYMBOL:
        return _name(src)
    if src.kind in (OperandKind.INTCON, OperandKind.STRINGCON):
        return str(src.value)
    if src.kind == OperandKind.CHARCON:
        value = src.value
        return value if isinstance(value, str) else chr(value)
    return ""


def format_block_instruction(instr: Instr) -> str:
    """Render one instruction in the indented block notation, without newline."""
    op = instr.op
    if op.is_conditional():
        return (
            f"    If {_name(instr.src1)} {operator_symbol(instr)}  "
            f"{_name(instr.src2)} goto _tdest{instr.dest.value} "
        )
    if op == Op.LABEL:
        return f"    _tdest{instr.dest.value}:"
    if op == Op.GOTO:
        return f"    Goto _tdest{instr.dest.value}"
    if op == Op.DEREF:
        return f"    ({_name(instr.dest)}) = Deref({_name(instr.src1)})"
    if op in UNARY_OPS:
        return f"    {_name(instr.dest)} = {operator_symbol(instr)} {_name(instr.src1)}"
    if op in ARITHMETIC_OPS:
        text = f"    {_name(instr.dest)} = "
        if instr.src1.kind == OperandKind.ID_LOC:
            text += "(addr)"
        text += f" {_name(instr.src1)} {operator_symbol(instr)}"
        if instr.src2.kind == OperandKind.SYMBOL:
            text += _name(instr.src2)
        elif instr.src2.kind == OperandKind.INTCON:
            text += str(instr.src2.value)
        return text
    if op == Op.ENTER:
        return f"    enter {_name(instr.dest)}"
    if op == Op.CALL:
        return f"    call  {_name(instr.src1)} {instr.src2.value}"
    if op == Op.PARAM:
        return f"    param  {_name(instr.src1)}"
    if op == Op.LEAVE:
        return f"    leave {_name(instr.dest)}"
    if op == Op.RETURN:
        if instr.dest.kind != OperandKind.NONE:
            return f"    return {_name(instr.dest)}"
        return "    return "
    if op == Op.RETRIEVE:
        return f"    retrieve  {_name(instr.dest)}"
    if op == Op.ASSN:
        prefix = "Deref" if instr.dest.kind == OperandKind.ADDRESS else ""
        return f"    {prefix} {_name(instr.dest)} ={_assign_source(instr.src1)}"
    return "No operation found"


def format_block(block: Block) -> str:
    """Render the instructions of ``block``, each prefixed by its position."""
    return "".join(
        f"{index}{format_block_instruction(instr)}\n"
        for index, instr in enumerate(block.instructions())
    )