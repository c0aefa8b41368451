from __future__ import annotations

import logging

import numpy as np
from numpy.typing import NDArray

from .config import EPSILON
from .expressions import Variable
from .rowinfo import Column, RowInfo, near_zero, sort_key
from .symbols import OBJECTIVE, Symbol

Row = Column


class Tableau:
    """
    Sparse simplex tableau.

    `rows` maps each basic column (or objective symbol) to the row defining
    it in terms of non-basic columns. `columns` is the inverse index, mapping
    each non-basic column to the set of rows it appears in.
    """

    def __init__(self, epsilon: float = EPSILON, logger: logging.Logger | None = None):
        self.columns: dict[Column, set[Row]] = {}
        self.rows: dict[Row, RowInfo] = {}

        # Restricted rows whose constant went negative, pending dual simplex.
        self.infeasible_rows: set[Row] = set()

        # External variables that are basic, and those seen as non-basic.
        self.external_basic_rows: set[Variable] = set()
        self.external_parametric_columns: set[Variable] = set()

        self.epsilon = epsilon
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    def is_basic(self, column: Column) -> bool:
        return column in self.rows

    def rows_with(self, column: Column) -> list[Row]:
        """
        Rows referencing a non-basic column, in sort order.
        """
        return sorted(self.columns.get(column, ()), key=sort_key)

    def insert_row(self, row: Row, info: RowInfo):
        self.rows[row] = info
        for column in info.terms:
            self.insert_column(column, row)
            if column.is_external:
                self.external_parametric_columns.add(column)

        if row.is_external:
            self.external_basic_rows.add(row)

    def remove_row(self, row: Row) -> RowInfo | None:
        info = self.rows.pop(row, None)
        if info is not None:
            for column in info.terms:
                rows = self.columns.get(column)
                if rows is not None:
                    rows.discard(row)

        self.infeasible_rows.discard(row)
        if row.is_external:
            self.external_basic_rows.discard(row)

        return info

    def insert_column(self, column: Column, row: Row):
        self.columns.setdefault(column, set()).add(row)

    def remove_column(self, column: Column):
        """
        Remove every reference to a non-basic column.
        """
        rows = self.columns.pop(column, None)
        if rows is not None:
            for row in rows:
                info = self.rows.get(row)
                if info is not None:
                    info.terms.pop(column, None)

        if column.is_external:
            self.external_basic_rows.discard(column)
            self.external_parametric_columns.discard(column)

    def add_to_objective(self, column: Column, coeff: float, row: Row = OBJECTIVE):
        """
        Add `coeff * column` to an objective row. If `column` is basic, its
        defining row is added instead so the objective stays in terms of
        non-basic columns.
        """
        objective = self.rows.get(row)
        if objective is None:
            objective = RowInfo()
            self.rows[row] = objective

        basic = self.rows.get(column)
        if basic is None:
            self._add_term(row, objective, column, coeff)
        else:
            objective.constant += coeff * basic.constant
            for term_column, term_coeff in basic.terms.items():
                self._add_term(row, objective, term_column, coeff * term_coeff)

    def _add_term(self, row: Row, info: RowInfo, column: Column, coeff: float):
        new_coeff = info.terms.get(column, 0.0) + coeff
        if near_zero(new_coeff, self.epsilon):
            info.terms.pop(column, None)
            rows = self.columns.get(column)
            if rows is not None:
                rows.discard(row)
        else:
            info.terms[column] = new_coeff
            self.insert_column(column, row)

    def update_row_constant(self, row: Row, constant: float):
        info = self.rows.get(row)
        if info is not None:
            info.constant = constant

    def pivot(self, entry: Column, exit: Column):
        """
        Make `entry` basic in the row where `exit` was basic.
        """
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(
                "pivot %s -> %s",
                exit,
                entry,
                extra={"entry": str(entry), "exit": str(exit)},
            )

        info = self.remove_row(exit)
        if info is None:
            raise KeyError(f"{exit} is not basic")
        info.terms[exit] = info.solve_for(entry)
        self.substitute_out(entry, info)
        self.insert_row(entry, info)

    def substitute_out(self, column: Column, solved: RowInfo):
        """
        Replace `column` in every row that references it by `solved`, the row
        expressing `column` in terms of non-basic columns.
        """
        for row in list(self.columns.get(column, ())):
            self._substitute_row(row, column, solved)

        if column.is_external:
            self.external_basic_rows.add(column)
            self.external_parametric_columns.discard(column)

        self.columns.pop(column, None)

    def _substitute_row(self, row: Row, column: Column, solved: RowInfo):
        info = self.rows.get(row)
        if info is None:
            return

        multiplier = info.terms.pop(column, 0.0)
        info.constant += multiplier * solved.constant
        for solved_column, coeff in solved.terms.items():
            old_coeff = info.terms.get(solved_column)
            if old_coeff is None:
                info.terms[solved_column] = multiplier * coeff
                self.insert_column(solved_column, row)
            else:
                new_coeff = old_coeff + multiplier * coeff
                if near_zero(new_coeff, self.epsilon):
                    del info.terms[solved_column]
                    rows = self.columns.get(solved_column)
                    if rows is not None:
                        rows.discard(row)
                else:
                    info.terms[solved_column] = new_coeff

        if row.is_restricted and info.constant < -self.epsilon:
            self.infeasible_rows.add(row)

    def parametrize_row_info(self, info: RowInfo) -> RowInfo:
        """
        Rewrite a raw row so that it only references non-basic columns, by
        substituting the defining row of every basic column it mentions.
        """
        result = RowInfo(constant=info.constant)
        for column, coeff in info.terms.items():
            basic = self.rows.get(column)
            if basic is not None:
                result += coeff * basic
            else:
                result.terms[column] = result.terms.get(column, 0.0) + coeff

        result.purge(self.epsilon)
        return result

    def to_dense(self) -> tuple[NDArray[np.float64], list[Row], list[Column]]:
        """
        Dense copy of the tableau. Column 0 holds each row's constant, and
        column `j + 1` the coefficients of `column_keys[j]`.
        """
        row_keys = sorted(self.rows, key=sort_key)
        column_keys = sorted(
            {column for info in self.rows.values() for column in info.terms},
            key=sort_key,
        )
        index = {id(column): j + 1 for j, column in enumerate(column_keys)}

        matrix = np.zeros((len(row_keys), len(column_keys) + 1))
        for i, row in enumerate(row_keys):
            info = self.rows[row]
            matrix[i, 0] = info.constant
            for column, coeff in info.terms.items():
                matrix[i, index[id(column)]] = coeff

        return matrix, row_keys, column_keys

    def __str__(self) -> str:
        columns = ", ".join(str(column) for column in sorted(self.columns, key=sort_key))
        lines = [f"[Tableau] Columns: [{columns}]", "  Rows:"]
        for row in sorted(self.rows, key=sort_key):
            lines.append(f"{str(row):>10}: {self.rows[row]}")
        return "\n".join(lines)


def is_objective(row: Row) -> bool:
    return isinstance(row, Symbol) and row.kind.value >= OBJECTIVE.kind.value
