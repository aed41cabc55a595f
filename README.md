# tacalloc

tacalloc is a small compiler back end that works on three-address code. It does
the following:

- splits code into basic blocks,
- runs copy propagation inside each block,
- computes live variables,
- builds an interference graph,
- colours that graph to assign registers, spilling variables when there are
  not enough registers.

## Installing

    pip install .

To run the tests:

    pip install ".[test]"
    pytest

## Modules

### `tacalloc.ir`

The intermediate representation.

- **Core types.** The enums `Op`, `OperandKind` and `SymType`, and the classes
  `Symbol`, `Operand` and `Instr`. Symbols and instructions compare by
  identity.
- **Building instructions.** `Instr.label(n)` and `Instr.goto(n)` build label
  and jump instructions. `LabelFactory.new_label()` numbers labels one after
  another.
- **Temporaries and strings.** `TempPool.new(sym_type)` creates temporaries
  named `tmp_<n>`, and reuses freed temporaries of the same type after
  `TempPool.free(symbol)`. `StringTable.intern(text)` keeps each string
  constant in its own temporary.
- **Listings.** `format_instruction`, `format_listing` and `format_operand`
  render readable listings. Two helpers go with them:
  - `operator_symbol` gives the source operator of an instruction.
  - `element_width` gives the byte width of an array element: 1 for char,
    4 for int.

### `tacalloc.blocks`

- `identify_leaders(code)` finds the block leaders. It removes, in place,
  unreachable code after a `return` that is not followed by a label or a jump.
- `build_blocks(code)` returns `Block` objects in code order. The code must
  start with an `enter` instruction. Each block has a `BlockKind`
  (`NO_BRANCH`, `BRANCH` or `FINISH`) and links to its successors:
  - `child`,
  - or `l_child` (fall-through) and `r_child` (jump target).
- `format_block` renders a block in an indented notation, and
  `format_block_instruction` renders a single instruction in that notation.

### `tacalloc.copyprop`

- `propagate_copies(blocks)` replaces later uses of `x` by `y` after a copy
  `x = y` in the same block. It does this only when `x` and `y` have the same
  type, and it stops once either of them is redefined. It rewrites the
  operands of the instructions and returns how many it changed.
- `propagate_in_block` does the same for one block, and `propagate_copy` for
  one copy.

### `tacalloc.dataflow`

- `instruction_effect` reports which symbol an instruction defines and which
  ones it reads, as an `InstrEffect`.
- `compute_gen_kill(blocks)` fills each block's `gen` and `kill` lists.
- `compute_live_in_out(blocks, globals_, all_globals_live)` iterates until
  `live_in` and `live_out` settle, and returns the number of passes.
  - A finishing block keeps its returned values live, and every global too.
  - When `all_globals_live` is true, every global also starts out live on
    entry to every block.

### `tacalloc.graph`

`InterferenceGraph` holds `Vertex` objects in insertion order. It supports
these operations:

- adding and removing vertices and edges,
- copying the graph,
- finding the vertex with the fewest neighbours,
- rendering the graph as text with `format` and `format_registers`.

To colour the graph, `color_graph(graph, registers)` combines three steps:

- `simplify_order`, which orders the vertices for colouring,
- `assign_registers`, which hands out registers in that order,
- `spill_vertex`, which removes the vertex with the lowest frequency per
  neighbour.

It repeats these steps until every remaining vertex has a register, and
returns a `ColoringResult` with the spilled symbols and the registers used.

Colours are numbered from 0. `machine_register(graph, symbol)` returns the
colour plus 5 (`REGISTER_BASE`), or `None` when the symbol has no vertex.
There are 20 registers by default (`DEFAULT_REGISTERS`).

### `tacalloc.interference`

- `build_interference_graph(code, blocks, function)` builds the graph from the
  blocks' live-out sets. Formal parameters interfere with each other and with
  the ranges live on entry.
- `calculate_cost(code)` adds use counts to each symbol's `freq`. Each
  occurrence counts 1, and occurrences inside a loop body count 5 more.
- `instruction_operands`, `collect_vertices`, `live_range_step` and
  `find_loop_end` are the building blocks these two use.

### `tacalloc.pipeline`

`allocate_registers(code, function, globals_=(), registers=20)` runs the whole
pass and returns an `AllocationResult`. The pass does the following, in order:

1. builds the blocks,
2. propagates copies,
3. computes gen/kill sets,
4. computes liveness with every global live,
5. builds the interference graph,
6. computes costs,
7. colours the graph.

The result holds these fields:

- `code` and `blocks`, the code that was processed and its blocks,
- `graph`, the interference graph,
- `spilled`, the spilled symbols,
- `used_registers`, the colours used,
- `registers`, which maps each coloured symbol to its machine register,
- `copies_propagated`, the number of operands copy propagation rewrote.

The list you pass in is copied. The instructions in it are shared with the
copy, and copy propagation rewrites their operands.

## Example

```python
from tacalloc.ir import Instr, Op, Operand, OperandKind, Symbol, SymType
from tacalloc.pipeline import allocate_registers

func = Symbol("f", SymType.FUNC)
a = Symbol("a", SymType.INT)
b = Symbol("b", SymType.INT)

code = [
    Instr(Op.ENTER, dest=Operand(OperandKind.SYMBOL, func)),
    Instr(Op.ASSN, src1=Operand(OperandKind.INTCON, 1),
          dest=Operand(OperandKind.SYMBOL, a)),
    Instr(Op.ASSN, src1=Operand(OperandKind.SYMBOL, a),
          dest=Operand(OperandKind.SYMBOL, b)),
    Instr(Op.LEAVE, dest=Operand(OperandKind.SYMBOL, func)),
    Instr(Op.RETURN, dest=Operand(OperandKind.SYMBOL, b)),
]

result = allocate_registers(code, func, globals_=[], registers=20)
print(result.graph.format())
print({symbol.name: reg for symbol, reg in result.registers.items()})
```

## What it does not do

tacalloc is a library only, and it has no command-line program. It does not
cover the front and back ends of a compiler:

- It does not parse a source language or build three-address code from a
  syntax tree. You construct the `Instr` lists yourself.
- It does not write assembly. Register assignments are returned as data.