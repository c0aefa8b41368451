from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Self
import copy
import logging
import math

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .config import EPSILON, Config, default_config
from .errors import (
    ConstraintExistsError,
    ConstraintNotFoundError,
    DualOptimizeFailedError,
    InfeasibleError,
    UnboundedError,
)
from .expressions import (
    Comparator,
    Constant,
    Constraint,
    Expression,
    Variable,
    as_expression,
)
from .rowinfo import Column, RowInfo, near_zero, sort_key
from .symbols import ARTIFICIAL_OBJECTIVE, OBJECTIVE, Symbol, SymbolKind
from .tableau import Row, Tableau, is_objective


class Goal(Enum):
    MINIMIZE = "minimize"
    MAXIMIZE = "maximize"


@dataclass(frozen=True, eq=False)
class Objective:
    goal: Goal
    expression: Expression

    @staticmethod
    def minimize(expr: Expression | float) -> Objective:
        return Objective(Goal.MINIMIZE, as_expression(expr))

    @staticmethod
    def maximize(expr: Expression | float) -> Objective:
        return Objective(Goal.MAXIMIZE, as_expression(expr))

    @property
    def sign(self) -> float:
        return 1.0 if self.goal == Goal.MINIMIZE else -1.0

    def row_info(self, epsilon: float = EPSILON) -> RowInfo:
        """
        Objective row to be minimized. Maximizing is minimizing the negation.
        """
        return RowInfo.from_expression(self.expression, self.sign, epsilon)

    def __str__(self) -> str:
        return f"{self.goal.value} {self.expression}"


@dataclass(eq=False)
class Problem:
    """
    Linear program: an objective and a list of required constraints.

    Variables are unrestricted unless `all_restricted` is set, in which case
    `v >= 0` is added for every variable that appears in the problem.
    """

    objective: Objective
    constraints: Sequence[Constraint] = field(default_factory=tuple)
    all_restricted: bool = False

    @staticmethod
    def minimize(
        expr: Expression | float, *constraints: Constraint, all_restricted: bool = False
    ) -> Problem:
        return Problem(Objective.minimize(expr), constraints, all_restricted)

    @staticmethod
    def maximize(
        expr: Expression | float, *constraints: Constraint, all_restricted: bool = False
    ) -> Problem:
        return Problem(Objective.maximize(expr), constraints, all_restricted)

    @staticmethod
    def from_arrays(
        c: ArrayLike,
        A_ub: ArrayLike | None = None,
        b_ub: ArrayLike | None = None,
        A_eq: ArrayLike | None = None,
        b_eq: ArrayLike | None = None,
        maximize: bool = False,
        names: Sequence[str] | None = None,
    ) -> tuple[Problem, list[Variable]]:
        """
        Build a problem over non-negative variables from arrays laid out the
        way `scipy.optimize.linprog` takes them:

            minimize (or maximize) c @ x
            subject to A_ub @ x <= b_ub, A_eq @ x == b_eq, x >= 0

        Returns the problem and the variables, in column order.
        """
        c = np.asarray(c, dtype=np.float64).ravel()
        n = len(c)
        if names is None:
            names = [f"x{j + 1}" for j in range(n)]
        if len(names) != n:
            raise ValueError(f"Expected {n} variable names, got {len(names)}")
        variables = [Variable(name) for name in names]

        constraints: list[Constraint] = []
        for A, b, op in ((A_ub, b_ub, Comparator.LE), (A_eq, b_eq, Comparator.EQ)):
            if A is None and b is None:
                continue
            if A is None or b is None:
                raise ValueError("Constraint matrices and bounds must be given together")
            A = np.atleast_2d(np.asarray(A, dtype=np.float64))
            b = np.asarray(b, dtype=np.float64).ravel()
            if A.shape != (len(b), n):
                raise ValueError(
                    f"Constraint matrix has shape {A.shape}, expected {(len(b), n)}"
                )
            for a_i, b_i in zip(A, b):
                constraints.append(
                    Constraint(_dot(a_i, variables), op, Constant(float(b_i)))
                )

        objective = _dot(c, variables)
        if maximize:
            problem = Problem.maximize(objective, *constraints, all_restricted=True)
        else:
            problem = Problem.minimize(objective, *constraints, all_restricted=True)
        return problem, variables

    def solve(self, config: Config | None = None) -> Solution:
        return SimplexSolver(self, config=config).solve()

    def __str__(self) -> str:
        lines = [str(self.objective), "Constraints:"]
        lines.extend(f"  {constraint}" for constraint in self.constraints)
        return "\n".join(lines)


def _dot(coefficients: NDArray[np.float64], variables: list[Variable]) -> Expression:
    expr: Expression | None = None
    for coeff, variable in zip(coefficients, variables):
        if coeff == 0:
            continue
        term = variable if coeff == 1 else float(coeff) * variable
        expr = term if expr is None else expr + term
    return Constant(0.0) if expr is None else expr


@dataclass(eq=False)
class Solution:
    """
    Optimal objective value and variable assignment of a solved problem.
    """

    objective: float
    variables: dict[Variable, float]
    epsilon: float = EPSILON

    def __getitem__(self, variable: Variable) -> float:
        return self.variables.get(variable, 0.0)

    def values(self, variables: Iterable[Variable]) -> NDArray[np.float64]:
        return np.array([self[variable] for variable in variables], dtype=np.float64)

    def isclose(self, other: Solution, epsilon: float | None = None) -> bool:
        if epsilon is None:
            epsilon = self.epsilon
        if not math.isclose(self.objective, other.objective, rel_tol=0, abs_tol=epsilon):
            return False
        if self.variables.keys() != other.variables.keys():
            return False
        return all(
            math.isclose(value, other.variables[variable], rel_tol=0, abs_tol=epsilon)
            for variable, value in self.variables.items()
        )


class Snapshot:
    """
    Deep-clone support for solvers.

    A failed insertion can leave the tableau partially pivoted. Callers that
    need to roll back take a `copy()` first and `restore()` it on failure, or
    wrap the change in `transaction()`. Variables, constraints and symbols keep
    their identity in a copy, while the logger and config are shared.
    """

    logger: logging.Logger
    config: Config

    def copy(self) -> Self:
        return copy.deepcopy(self, {id(self.logger): self.logger, id(self.config): self.config})

    def restore(self, snapshot: Self):
        self.__dict__.update(snapshot.copy().__dict__)

    @contextmanager
    def transaction(self) -> Iterator[Self]:
        snapshot = self.copy()
        try:
            yield self
        except Exception:
            self.restore(snapshot)
            raise


class SimplexSolver(Snapshot):
    """
    Incremental two-phase simplex solver over a sparse tableau.

    Constraints can be added and removed after construction. Adding only
    updates the tableau; `solve()` re-optimizes and reads the solution back.
    """

    def __init__(
        self,
        problem: Problem | None = None,
        config: Config | None = None,
        logger: logging.Logger | None = None,
    ):
        if problem is None:
            problem = Problem.minimize(0)

        self.config = config if config is not None else default_config()
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.goal = problem.objective.goal
        self.tableau = Tableau(self.config.epsilon, self.logger)

        # Column identifying each constraint in the tableau.
        self.marker_variables: dict[Constraint, Column] = {}

        self.slack_counter = 0
        self.dummy_counter = 0
        self.artificial_counter = 0
        self.needs_optimize = False

        self.tableau.insert_row(OBJECTIVE, problem.objective.row_info(self.epsilon))
        self.add_constraints(*problem.constraints)

        if problem.all_restricted:
            variables = set(self.tableau.external_basic_rows)
            variables.update(
                column for column in self.tableau.columns if column.is_external
            )
            for variable in sorted(variables, key=sort_key):
                self.add_constraint(variable >= 0)

    @property
    def epsilon(self) -> float:
        return self.config.epsilon

    def has_constraint(self, constraint: Constraint) -> bool:
        return constraint in self.marker_variables

    def make_slack_variable(self) -> Symbol:
        self.slack_counter += 1
        return Symbol(SymbolKind.SLACK, f"s{self.slack_counter}")

    def make_dummy_variable(self) -> Symbol:
        self.dummy_counter += 1
        return Symbol(SymbolKind.DUMMY, f"d{self.dummy_counter}")

    def make_artificial_variable(self) -> Symbol:
        self.artificial_counter += 1
        return Symbol(SymbolKind.ARTIFICIAL, f"a{self.artificial_counter}")

    def make_error_variable(self, label: str) -> Symbol:
        return Symbol(SymbolKind.SLACK, label)

    def add_constraints(self, *constraints: Constraint) -> list[Constraint]:
        return [self.add_constraint(constraint) for constraint in constraints]

    def add_constraint(self, constraint: Constraint) -> Constraint:
        """
        Insert a required constraint into the tableau. The tableau is not
        re-optimized until the next `solve()`.
        """
        if constraint in self.marker_variables:
            raise ConstraintExistsError(constraint)
        if not constraint.priority.is_required:
            raise ValueError(
                f"Optional constraint {constraint} needs a Cassowary Solver"
            )

        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(
                "add_constraint: %s", constraint, extra={"constraint": str(constraint)}
            )

        row, marker = self._create_row_info(constraint)
        self.add_row_info(row, [marker])
        self.marker_variables[constraint] = marker

        self._trace("end add_constraint")
        return constraint

    def _create_row_info(self, constraint: Constraint) -> tuple[RowInfo, Column]:
        row = self.tableau.parametrize_row_info(
            RowInfo.from_constraint(constraint, self.epsilon)
        )

        marker: Column
        if constraint.op == Comparator.EQ:
            marker = self.make_dummy_variable()
            row.terms[marker] = 1.0
        else:
            marker = self.make_slack_variable()
            row.terms[marker] = -1.0

        if row.constant < 0:
            row *= -1.0

        return row, marker

    def add_row_info(self, row: RowInfo, candidates: Sequence[Column]):
        """
        Insert a parametrized row with a non-negative constant, choosing its
        basic column among external variables and `candidates`, or running
        phase-1 simplex if none is usable.
        """
        basic = self.find_basic_column(row, candidates)
        if basic is not None:
            self._solve_and_insert(row, basic)
        else:
            self._solve_phase1(row)

        self.needs_optimize = True

    def find_basic_column(
        self, row: RowInfo, candidates: Sequence[Column]
    ) -> Column | None:
        """
        Column that can enter the basis directly for a new row, or None if
        the row needs phase-1 simplex.

        Raises InfeasibleError if the row only has dummy terms and a non-zero
        constant.
        """
        column = row.find_basic_column(candidates)
        if column is not None:
            return column

        if any(not column.is_dummy for column in row.terms):
            return None

        dummies = sorted(row.terms, key=sort_key)
        if dummies and near_zero(row.constant, self.epsilon):
            return dummies[0]

        raise InfeasibleError(f"Infeasible row: 0 = {row}")

    def _solve_and_insert(self, row: RowInfo, column: Column):
        row = row.copy()
        row.solve_for(column)
        self.tableau.substitute_out(column, row)
        self.tableau.insert_row(column, row)

    def _solve_phase1(self, row: RowInfo):
        """
        Insert `row` through an artificial variable, minimizing the artificial
        variable until it reaches zero.
        """
        artificial = self.make_artificial_variable()
        self.tableau.insert_row(ARTIFICIAL_OBJECTIVE, row.copy())
        self.tableau.insert_row(artificial, row.copy())
        self._trace("before phase 1")

        try:
            self.needs_optimize = True
            self.optimize(ARTIFICIAL_OBJECTIVE)

            if not near_zero(self.tableau.rows[ARTIFICIAL_OBJECTIVE].constant, self.epsilon):
                raise InfeasibleError()

            # Degenerate case: the artificial variable is still basic at zero.
            info = self.tableau.rows.get(artificial)
            if info is not None:
                terms = sorted(info.terms, key=sort_key)
                entry = next((column for column in terms if column.is_pivotable), None)
                if entry is None and terms:
                    entry = terms[0]
                if entry is not None:
                    self.tableau.pivot(entry, artificial)
                else:
                    self.tableau.remove_row(artificial)
        finally:
            self.tableau.remove_row(ARTIFICIAL_OBJECTIVE)
            self.tableau.remove_column(artificial)
            self._trace("after phase 1")

    def remove_constraints(self, *constraints: Constraint):
        for constraint in constraints:
            self.remove_constraint(constraint)

    def remove_constraint(self, constraint: Constraint):
        """
        Remove a constraint by pivoting its marker into the basis and then
        deleting the marker's row.
        """
        marker = self.marker_variables.pop(constraint, None)
        if marker is None:
            raise ConstraintNotFoundError(constraint)

        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(
                "remove_constraint: %s", constraint, extra={"constraint": str(constraint)}
            )

        self.needs_optimize = True

        if not self.tableau.is_basic(marker):
            exit = self._removal_exit_row(marker)
            if exit is None:
                self.tableau.remove_column(marker)
            else:
                self.tableau.pivot(marker, exit)

        self.tableau.remove_row(marker)
        self._trace("end remove_constraint")

    def _removal_exit_row(self, marker: Column) -> Row | None:
        rows = [row for row in self.tableau.rows_with(marker) if not is_objective(row)]
        restricted = [row for row in rows if row.is_restricted]

        # Prefer rows where the marker has a negative coefficient, which keeps
        # the other restricted rows feasible.
        exit = None
        min_ratio = math.inf
        for row in restricted:
            info = self.tableau.rows[row]
            coeff = info.terms[marker]
            if coeff < 0:
                ratio = -info.constant / coeff
                if ratio < min_ratio:
                    min_ratio = ratio
                    exit = row

        if exit is None:
            for row in restricted:
                info = self.tableau.rows[row]
                ratio = info.constant / info.terms[marker]
                if ratio < min_ratio:
                    min_ratio = ratio
                    exit = row

        if exit is None and rows:
            exit = rows[0]

        return exit

    def solve(self) -> Solution:
        self.optimize()
        return self.evaluate_solution()

    def optimize(self, objective_row: Row = OBJECTIVE):
        """
        Primal simplex: pivot until no pivotable column has a negative
        coefficient in the objective row.

        The entering column is the first eligible column in sort order and
        ties in the ratio test go to the first row in sort order, which keeps
        degenerate problems from cycling.
        """
        if not self.needs_optimize:
            return

        while True:
            objective = self.tableau.rows.get(objective_row)
            if objective is None:
                return

            entry = None
            for column in sorted(objective.terms, key=sort_key):
                if column.is_pivotable and objective.terms[column] < -self.epsilon:
                    entry = column
                    break

            if entry is None:
                break

            exit = None
            min_ratio = math.inf
            for row in self.tableau.rows_with(entry):
                if not row.is_pivotable:
                    continue
                info = self.tableau.rows[row]
                coeff = info.coefficient(entry)
                if coeff < 0:
                    ratio = -info.constant / coeff
                    if ratio < min_ratio:
                        min_ratio = ratio
                        exit = row

            if exit is None:
                self._trace("unbounded")
                raise UnboundedError()

            if self.logger.isEnabledFor(logging.DEBUG):
                self.logger.debug(
                    "optimize: %s enters, %s exits (ratio %g)",
                    entry,
                    exit,
                    min_ratio,
                    extra={"entry": str(entry), "exit": str(exit), "ratio": min_ratio},
                )
            self.tableau.pivot(entry, exit)

        self.needs_optimize = False

    def dual_optimize(self, objective_row: Row = OBJECTIVE):
        """
        Dual simplex: restore feasibility of the rows in `infeasible_rows`
        while keeping the objective row optimal.
        """
        tableau = self.tableau
        while tableau.infeasible_rows:
            exit = min(tableau.infeasible_rows, key=sort_key)
            tableau.infeasible_rows.discard(exit)

            info = tableau.rows.get(exit)
            if info is None or info.constant >= -self.epsilon:
                continue

            objective = tableau.rows[objective_row]
            entry = None
            min_ratio = math.inf
            for column in sorted(info.terms, key=sort_key):
                coeff = info.terms[column]
                if coeff > self.epsilon and column.is_pivotable:
                    ratio = objective.coefficient(column) / coeff
                    if ratio < min_ratio:
                        min_ratio = ratio
                        entry = column

            if entry is None:
                self._trace("dual optimize failed")
                raise DualOptimizeFailedError()

            tableau.pivot(entry, exit)

    def evaluate_solution(self) -> Solution:
        rows = self.tableau.rows
        variables: dict[Variable, float] = {}

        for column in sorted(self.tableau.external_parametric_columns, key=sort_key):
            if column not in rows:
                variables[column] = 0.0

        for row in sorted(self.tableau.external_basic_rows, key=sort_key):
            info = rows.get(row)
            if info is not None:
                variables[row] = info.constant

        sign = 1.0 if self.goal == Goal.MINIMIZE else -1.0
        return Solution(sign * rows[OBJECTIVE].constant, variables, self.epsilon)

    def _trace(self, message: str):
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug("%s\n%s", message, self.tableau)

    def __str__(self) -> str:
        return f"[{self.goal.value}] {self.tableau}"
