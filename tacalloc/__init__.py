"""Three-address code, basic blocks, copy propagation, liveness and graph-colouring register allocation."""

__version__ = "0.1.0"

__all__ = ["blocks", "copyprop", "dataflow", "graph", "interference", "ir", "pipeline"]