from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TypeAlias

from .config import EPSILON
from .expressions import (
    Comparator,
    Constant,
    Constraint,
    Expression,
    ExpressionAddOp,
    ExpressionMulOp,
    Variable,
)
from .symbols import Symbol, SymbolKind

# Tableau columns are external variables or synthesized symbols. Rows are
# keyed by the column that is basic in them, or by an objective symbol.
Column: TypeAlias = Variable | Symbol


def near_zero(value: float, epsilon: float = EPSILON) -> bool:
    return abs(value) <= epsilon


def sort_key(column: Column) -> tuple[int, str, int]:
    return column.sort_key


@dataclass
class RowInfo:
    """
    Sparse linear row: a mapping from columns to coefficients plus a constant.

    Inside the tableau, the row stored under a basic column `b` reads
    `b = constant + sum(coeff * column)`. Before insertion, a row built from a
    constraint is a residual that must equal zero (or be non-negative, once
    a slack is added).
    """

    terms: dict[Column, float] = field(default_factory=dict)
    constant: float = 0.0

    @staticmethod
    def from_expression(
        expr: Expression, factor: float = 1.0, epsilon: float = EPSILON
    ) -> RowInfo:
        row = RowInfo()
        row._accumulate([(factor, expr)], epsilon)
        return row

    @staticmethod
    def from_constraint(constraint: Constraint, epsilon: float = EPSILON) -> RowInfo:
        """
        Residual `lhs - rhs`, negated for `<=` so that every inequality row
        reads `row >= 0`.
        """
        sign = -1.0 if constraint.op == Comparator.LE else 1.0
        row = RowInfo()
        row._accumulate([(sign, constraint.lhs), (-sign, constraint.rhs)], epsilon)
        return row

    def _accumulate(self, stack: list[tuple[float, Expression]], epsilon: float):
        while stack:
            factor, term = stack.pop()

            match term:
                case Variable():
                    self.terms[term] = self.terms.get(term, 0.0) + factor

                case Constant():
                    self.constant += factor * term.value

                case ExpressionAddOp():
                    stack.append((factor, term.a))
                    stack.append((factor, term.b))

                case ExpressionMulOp():
                    stack.append((factor * term.a, term.b))

                case _:
                    raise TypeError(f"Unsupported expression type {type(term)}")

        self.purge(epsilon)

    def purge(self, epsilon: float = EPSILON):
        """
        Drop terms whose coefficient is indistinguishable from zero.
        """
        self.terms = {
            column: coeff
            for column, coeff in self.terms.items()
            if not near_zero(coeff, epsilon)
        }

    def coefficient(self, column: Column) -> float:
        return self.terms.get(column, 0.0)

    def copy(self) -> RowInfo:
        return RowInfo(dict(self.terms), self.constant)

    def __neg__(self) -> RowInfo:
        return -1.0 * self

    def __mul__(self, multiplier: float) -> RowInfo:
        row = self.copy()
        row *= multiplier
        return row

    def __rmul__(self, multiplier: float) -> RowInfo:
        return self * multiplier

    def __imul__(self, multiplier: float) -> RowInfo:
        for column, coeff in self.terms.items():
            self.terms[column] = coeff * multiplier
        self.constant *= multiplier
        return self

    def __iadd__(self, other: RowInfo) -> RowInfo:
        for column, coeff in other.terms.items():
            self.terms[column] = self.terms.get(column, 0.0) + coeff
        self.constant += other.constant
        return self

    def __add__(self, other: RowInfo) -> RowInfo:
        row = self.copy()
        row += other
        return row

    def __sub__(self, other: RowInfo) -> RowInfo:
        return self + -other

    def solve_for(self, column: Column) -> float:
        """
        Rewrite the row in terms of `column`.

        The term for `column` is removed and the rest of the row is divided by
        minus its coefficient, so that `0 = c + a*x + b*y` becomes
        `x = -c/a - (b/a)*y`. Returns the reciprocal of the removed
        coefficient, which is the coefficient the previous basic column takes
        in the rewritten row during a pivot.
        """
        coeff = self.terms.pop(column)
        reciprocal = 1.0 / coeff
        self *= -reciprocal
        return reciprocal

    def find_basic_column(self, candidates: Iterable[Column]) -> Column | None:
        """
        Pick a column that can become basic without phase-1 simplex: any
        external variable in the row, or else a slack candidate with a
        negative coefficient.
        """
        externals = [column for column in self.terms if column.is_external]
        if externals:
            return min(externals, key=sort_key)

        for candidate in candidates:
            if candidate.kind == SymbolKind.SLACK and self.coefficient(candidate) < 0:
                return candidate

        return None

    def __str__(self) -> str:
        terms = []
        for column in sorted(self.terms, key=sort_key):
            coeff = self.terms[column]
            if near_zero(coeff - 1.0):
                terms.append(f"{column}")
            elif near_zero(coeff + 1.0):
                terms.append(f"-{column}")
            else:
                terms.append(f"{coeff:g}*{column}")

        if not terms:
            text = f"{self.constant:g}"
        elif near_zero(self.constant):
            text = " + ".join(terms)
        else:
            text = f"{self.constant:g} + " + " + ".join(terms)

        return text.replace("+ -", "- ")
