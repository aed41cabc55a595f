"""Three-address intermediate representation: symbols, operands, instructions."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable, Union


class Op(enum.Enum):
    """Operation codes of three-address instructions."""

    NONE = enum.auto()
    PLUS = enum.auto()
    BINARY_MINUS = enum.auto()
    MULT = enum.auto()
    DIV = enum.auto()
    UNARY_MINUS = enum.auto()
    LOGICAL_NOT = enum.auto()
    EQUALS = enum.auto()
    NEQ = enum.auto()
    LEQ = enum.auto()
    LT = enum.auto()
    GEQ = enum.auto()
    GT = enum.auto()
    LOGICAL_AND = enum.auto()
    LOGICAL_OR = enum.auto()
    IF_EQUALS = enum.auto()
    IF_NEQ = enum.auto()
    IF_LEQ = enum.auto()
    IF_LT = enum.auto()
    IF_GEQ = enum.auto()
    IF_GT = enum.auto()
    IF_LOGICAL_AND = enum.auto()
    IF_LOGICAL_OR = enum.auto()
    LABEL = enum.auto()
    GOTO = enum.auto()
    ENTER = enum.auto()
    LEAVE = enum.auto()
    RETURN = enum.auto()
    RETRIEVE = enum.auto()
    CALL = enum.auto()
    PARAM = enum.auto()
    ASSN = enum.auto()
    DEREF = enum.auto()

    def is_conditional(self) -> bool:
        """True for the conditional jumps ``if a <op> b goto L``."""
        return self in CONDITIONAL_OPS


CONDITIONAL_OPS = frozenset(
    {
        Op.IF_EQUALS,
        Op.IF_NEQ,
        Op.IF_LEQ,
        Op.IF_LT,
        Op.IF_GEQ,
        Op.IF_GT,
        Op.IF_LOGICAL_AND,
        Op.IF_LOGICAL_OR,
    }
)
ARITHMETIC_OPS = frozenset({Op.PLUS, Op.DIV, Op.MULT, Op.BINARY_MINUS})
UNARY_OPS = frozenset({Op.UNARY_MINUS, Op.LOGICAL_NOT})


class OperandKind(enum.Enum):
    """How an operand's value is to be read."""

    NONE = enum.auto()
    INTCON = enum.auto()
    CHARCON = enum.auto()
    STRINGCON = enum.auto()
    SYMBOL = enum.auto()
    ID_LOC = enum.auto()
    ADDRESS = enum.auto()
    DEREF = enum.auto()


class SymType(enum.Enum):
    """Types carried by symbols."""

    NONE = enum.auto()
    CHAR = enum.auto()
    INT = enum.auto()
    STRING = enum.auto()
    ADDRESS = enum.auto()
    ARRAY = enum.auto()
    FUNC = enum.auto()


@dataclass(eq=False)
class Symbol:
    """A symbol-table entry; symbols compare by identity."""

    name: str
    type: SymType = SymType.NONE
    elt_type: SymType = SymType.NONE
    is_global: bool = False
    formal: bool = False
    formals: list["Symbol"] = field(default_factory=list)
    ret_type: SymType = SymType.NONE
    freq: int = 0

    def __repr__(self) -> str:
        return f"Symbol({self.name!r}, {self.type.name})"


OperandValue = Union[Symbol, int, str, None]


@dataclass
class Operand:
    """One operand slot of an instruction."""

    kind: OperandKind = OperandKind.NONE
    value: OperandValue = None

    @property
    def symbol(self) -> Symbol | None:
        """The symbol held by this operand, if it holds one."""
        return self.value if isinstance(self.value, Symbol) else None


@dataclass(eq=False)
class Instr:
    """A three-address instruction; instructions compare by identity."""

    op: Op
    src1: Operand = field(default_factory=Operand)
    src2: Operand = field(default_factory=Operand)
    dest: Operand = field(default_factory=Operand)

    @classmethod
    def label(cls, number: int) -> "Instr":
        """A label instruction ``_tdest<number>:``."""
        return cls(Op.LABEL, dest=Operand(OperandKind.INTCON, number))

    @classmethod
    def goto(cls, number: int) -> "Instr":
        """An unconditional jump to label ``number``."""
        return cls(Op.GOTO, dest=Operand(OperandKind.INTCON, number))


class LabelFactory:
    """Hands out label instructions with consecutive numbers."""

    def __init__(self, start: int = 0) -> None:
        self._next = start

    def new_label(self) -> Instr:
        instr = Instr.label(self._next)
        self._next += 1
        return instr


def _swap_remove(items: list, index: int) -> None:
    items[index] = items[-1]
    items.pop()


class TempPool:
    """Allocates temporaries ``tmp_<n>`` and recycles freed ones by type."""

    def __init__(self) -> None:
        self._count = 0
        self._free: list[Symbol] = []
        self._in_use: list[Symbol] = []
        self.created: list[Symbol] = []

    def new(self, sym_type: SymType) -> Symbol:
        """Return a free temporary of ``sym_type``, creating one if none is free."""
        for index, temp in enumerate(self._free):
            if temp.type == sym_type:
                _swap_remove(self._free, index)
                self._in_use.append(temp)
                return temp
        temp = Symbol(f"tmp_{self._count}", type=sym_type, elt_type=SymType.NONE)
        self._count += 1
        self._in_use.append(temp)
        self.created.append(temp)
        return temp

    def free(self, symbol: Symbol | None) -> None:
        """Return ``symbol`` to the pool if it is a temporary in use."""
        if symbol is None:
            return
        for index, temp in enumerate(self._in_use):
            if temp is symbol:
                self._free.append(temp)
                _swap_remove(self._in_use, index)
                return


class StringTable:
    """String constants of a function, each held in its own temporary."""

    def __init__(self, pool: TempPool) -> None:
        self._pool = pool
        self._by_text: dict[str, Symbol] = {}
        self.entries: list[tuple[str, str]] = []

    def intern(self, text: str) -> Symbol:
        """Return the temporary holding ``text``, allocating it on first use."""
        symbol = self._by_text.get(text)
        if symbol is None:
            symbol = self._pool.new(SymType.STRING)
            self._by_text[text] = symbol
            self.entries.append((symbol.name, text))
        return symbol


_OPERATOR_SYMBOLS = {
    Op.PLUS: "+",
    Op.BINARY_MINUS: "-",
    Op.MULT: "*",
    Op.DIV: "/",
    Op.LOGICAL_NOT: "!",
    Op.UNARY_MINUS: "-",
    Op.EQUALS: "==",
    Op.IF_EQUALS: "==",
    Op.NEQ: "!=",
    Op.IF_NEQ: "!=",
    Op.LEQ: "<=",
    Op.IF_LEQ: "<=",
    Op.LT: "<",
    Op.IF_LT: "<",
    Op.GEQ: ">=",
    Op.IF_GEQ: ">=",
    Op.GT: ">",
    Op.IF_GT: ">",
    Op.LOGICAL_AND: "&&",
    Op.IF_LOGICAL_AND: "&&",
    Op.LOGICAL_OR: "||",
    Op.IF_LOGICAL_OR: "||",
}


def operator_symbol(instr: Instr) -> str:
    """The source-level operator of ``instr``, or an empty string."""
    return _OPERATOR_SYMBOLS.get(instr.op, "")


def element_width(symbol: Symbol) -> int:
    """Byte width of one element of an array symbol."""
    if symbol.elt_type == SymType.CHAR:
        return 1
    if symbol.elt_type == SymType.INT:
        return 4
    return 0


def _name(operand: Operand) -> str:
    symbol = operand.symbol
    return symbol.name if symbol is not None else str(operand.value)


def format_operand(operand: Operand) -> str:
    """Describe an operand in the debugging notation."""
    kind = operand.kind
    if kind == OperandKind.DEREF:
        return f"Deref {_name(operand)}"
    if kind == OperandKind.INTCON:
        return f"Intcon({operand.value})"
    if kind == OperandKind.SYMBOL:
        return _name(operand)
    if kind == OperandKind.STRINGCON:
        return str(operand.value)
    if kind == OperandKind.CHARCON:
        value = operand.value
        return f"charcon({ord(value) if isinstance(value, str) else value})"
    return "None found"


def _format_assign_source(src: Operand) -> str:
    if src.kind == OperandKind.SYMBOL:
        return _name(src)
    if src.kind in (OperandKind.INTCON, OperandKind.STRINGCON):
        return str(src.value)
    if src.kind == OperandKind.CHARCON:
        value = src.value
        return value if isinstance(value, str) else chr(value)
    return ""


def format_instruction(instr: Instr) -> str:
    """Render one instruction as a line of the listing, without newline."""
    op = instr.op
    if op.is_conditional():
        return (
            f"If {_name(instr.src1)} {operator_symbol(instr)}  "
            f"{_name(instr.src2)} goto _tdest{instr.dest.value} "
        )
    if op == Op.LABEL:
        return f"_tdest{instr.dest.value}:"
    if op == Op.GOTO:
        return f"Goto _tdest{instr.dest.value}"
    if op == Op.DEREF:
        return f"({_name(instr.dest)}) = Deref({_name(instr.src1)})"
    if op in UNARY_OPS:
        return f"{_name(instr.dest)} = {operator_symbol(instr)} {_name(instr.src1)}"
    if op in ARITHMETIC_OPS:
        text = f"{_name(instr.dest)} = "
        if instr.src1.kind == OperandKind.ID_LOC:
            text += "(addr)"
        text += f" {_name(instr.src1)} {operator_symbol(instr)}"
        if instr.src2.kind == OperandKind.SYMBOL:
            text += _name(instr.src2)
        elif instr.src2.kind == OperandKind.INTCON:
            text += str(instr.src2.value)
        return text
    if op == Op.ENTER:
        return f"enter {_name(instr.dest)}"
    if op == Op.CALL:
        return f"call  {_name(instr.src1)} {instr.src2.value}"
    if op == Op.PARAM:
        return f"param  {_name(instr.src1)}"
    if op == Op.LEAVE:
        return f"leave {_name(instr.dest)}"
    if op == Op.RETURN:
        if instr.dest.kind != OperandKind.NONE:
            return f"return {_name(instr.dest)}"
        return "return "
    if op == Op.RETRIEVE:
        return f"retrieve  {_name(instr.dest)}"
    if op == Op.ASSN:
        prefix = "Pointer" if instr.dest.kind == OperandKind.DEREF else ""
        return f"{prefix} {_name(instr.dest)} ={_format_assign_source(instr.src1)}"
    return "No operation found"


def format_listing(code: Iterable[Instr]) -> str:
    """Render a numbered listing of ``code``, one instruction per line."""
    return "".join(
        f" {index} . {format_instruction(instr)}\n" for index, instr in enumerate(code)
    )