from __future__ import annotations

from enum import Enum
import itertools


class SymbolKind(Enum):
    """
    Kinds of tableau keys. The values give the primary sort order used for
    every deterministic choice the solver makes between columns or rows.
    """

    EXTERNAL = 0
    SLACK = 1
    DUMMY = 2
    ARTIFICIAL = 3
    OBJECTIVE = 4
    ARTIFICIAL_OBJECTIVE = 5


_serials = itertools.count()


class Symbol:
    """
    Internal tableau key synthesized by the solver: a slack, error, dummy or
    artificial variable, or one of the two objective rows.

    Symbols are compared by identity. The label is only used for display and
    for ordering.
    """

    is_external = False

    def __init__(self, kind: SymbolKind, label: str):
        if kind == SymbolKind.EXTERNAL:
            raise ValueError("External variables are represented by Variable")
        self.kind = kind
        self.label = label
        self.serial = next(_serials)

    @property
    def is_dummy(self) -> bool:
        return self.kind == SymbolKind.DUMMY

    @property
    def is_pivotable(self) -> bool:
        return self.kind in (SymbolKind.SLACK, SymbolKind.ARTIFICIAL)

    @property
    def is_restricted(self) -> bool:
        return self.kind in (SymbolKind.SLACK, SymbolKind.DUMMY, SymbolKind.ARTIFICIAL)

    @property
    def sort_key(self) -> tuple[int, str, int]:
        return (self.kind.value, self.label, self.serial)

    def __str__(self) -> str:
        return self.label

    def __repr__(self) -> str:
        return f"Symbol({self.kind.name}, {self.label!r})"

    # Symbols keep their identity when a solver is snapshotted.
    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


OBJECTIVE = Symbol(SymbolKind.OBJECTIVE, "_obj")
ARTIFICIAL_OBJECTIVE = Symbol(SymbolKind.ARTIFICIAL_OBJECTIVE, "_a_obj")
