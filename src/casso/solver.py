from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import logging

from .config import Config, default_config
from .errors import (
    ConstraintExistsError,
    ConstraintNotFoundError,
    EditVariableExistsError,
    EditVariableNotFoundError,
    NoEditSessionError,
    StayVariableExistsError,
)
from .expressions import Comparator, Constant, Constraint, Variable
from .priority import Priority, as_priority
from .rowinfo import Column, RowInfo
from .simplex import SimplexSolver, Snapshot


@dataclass(frozen=True)
class Markers:
    """
    Columns identifying a constraint in the tableau.

    `main` is the column pivoted out when the constraint is removed. `sub` is
    the column perturbed when suggesting a value for an edit variable.
    `errors` lists the columns that carry `weight` as a penalty in the
    objective.
    """

    main: Column
    sub: Column | None = None
    errors: tuple[Column, ...] = ()
    weight: float | None = None

    @property
    def columns(self) -> list[Column]:
        if self.sub is None or self.sub is self.main:
            return [self.main]
        return [self.main, self.sub]

    def edit_signs(self) -> list[tuple[Column, float]]:
        """
        Sign with which a change of the edited value moves each marker.
        """
        if self.sub is self.main:
            return [(self.sub, -1.0)]
        return [(self.main, 1.0), (self.sub, -1.0)]


@dataclass
class StayInfo:
    constraint: Constraint
    markers: Markers


@dataclass
class EditInfo:
    constraint: Constraint
    markers: Markers
    prev_edit_constant: float


@dataclass
class StayEditInfos:
    """
    Stay and edit variables registered by one edit session.
    """

    stay_infos: dict[Variable, StayInfo] = field(default_factory=dict)
    edit_infos: dict[Variable, EditInfo] = field(default_factory=dict)

    def all_infos(self) -> list[StayInfo | EditInfo]:
        return [*self.stay_infos.values(), *self.edit_infos.values()]

    def __iadd__(self, other: StayEditInfos) -> StayEditInfos:
        self.stay_infos.update(other.stay_infos)
        self.edit_infos.update(other.edit_infos)
        return self


class EditSession:
    """
    Handle passed to the callback of `Solver.begin_edit` to register stay and
    edit variables for the new session.
    """

    def __init__(self, solver: Solver):
        self.solver = solver
        self.infos = StayEditInfos()

        outer = StayEditInfos()
        for infos in solver.stay_edit_infos_stack:
            outer += infos
        self.existing_stay_variables = set(outer.stay_infos)
        self.existing_edit_variables = set(outer.edit_infos)

    def add_stay_variable(
        self,
        variable: Variable,
        value: float | None = None,
        priority: Priority | int | str | None = None,
    ):
        """
        Prefer `variable` to stay at `value`, or at its current value if no
        value is given. Defaults to the configured stay priority.
        """
        if variable in self.infos.stay_infos or variable in self.existing_stay_variables:
            raise StayVariableExistsError(variable)

        if priority is None:
            priority = self.solver.config.stay_priority
        if value is None:
            value = self.solver.current_value(variable)

        constraint = Constraint(
            variable, Comparator.EQ, Constant(float(value)), as_priority(priority)
        )
        markers = self.solver._add_constraint(constraint)
        self.infos.stay_infos[variable] = StayInfo(constraint, markers)

    def add_edit_variable(
        self, variable: Variable, priority: Priority | int | str | None = None
    ):
        """
        Make `variable` suggestible, starting from its current value. Defaults
        to the configured edit priority.
        """
        if variable in self.infos.edit_infos or variable in self.existing_edit_variables:
            raise EditVariableExistsError(variable)

        if priority is None:
            priority = self.solver.config.edit_priority
        value = self.solver.current_value(variable)

        constraint = Constraint(
            -variable + value, Comparator.EQ, Constant(0.0), as_priority(priority)
        )
        markers = self.solver._add_constraint(constraint)
        self.infos.edit_infos[variable] = EditInfo(constraint, markers, value)


class SuggestSession:
    """
    Handle passed to the callback of `Solver.suggest`. Suggestions are checked
    immediately and applied together once the callback returns.
    """

    def __init__(self, solver: Solver):
        self.solver = solver
        self.suggestions: list[tuple[Variable, float]] = []

    def suggest_value(self, variable: Variable, value: float):
        if self.solver._find_edit_info(variable) is None:
            raise EditVariableNotFoundError(variable, value)
        self.suggestions.append((variable, float(value)))


class Solver(Snapshot):
    """
    Cassowary constraint solver.

    Optional constraints are turned into weighted error variables in the
    objective, so that stronger priorities always win over weaker ones.
    Constraints can be added and removed incrementally, and edit sessions
    allow values of chosen variables to be suggested repeatedly without
    re-solving from scratch.

    Example:

        solver = Solver()
        solver.add_constraints(x + 10 <= y, (y == 50) | Priority.LOW)
        solver.begin_edit(lambda session: session.add_edit_variable(x))
        solver.suggest(lambda session: session.suggest_value(x, 45))
    """

    def __init__(self, config: Config | None = None, logger: logging.Logger | None = None):
        self.config = config if config is not None else default_config()
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.simplex = SimplexSolver(config=self.config, logger=self.logger)

        self.markers: dict[Constraint, Markers] = {}
        self.stay_edit_infos_stack: list[StayEditInfos] = []
        self.cached_solution: dict[Variable, float] = {}
        self.error_counter = 0
        self.needs_dual_optimize = False

    @property
    def tableau(self):
        return self.simplex.tableau

    @property
    def edit_depth(self) -> int:
        return len(self.stay_edit_infos_stack)

    def has_constraint(self, constraint: Constraint) -> bool:
        return constraint in self.markers

    def has_stay_variable(self, variable: Variable) -> bool:
        return any(variable in infos.stay_infos for infos in self.stay_edit_infos_stack)

    def has_edit_variable(self, variable: Variable) -> bool:
        return self._find_edit_info(variable) is not None

    def current_value(self, variable: Variable) -> float:
        """
        Value of `variable` in the current tableau, 0 if it isn't in it.
        """
        info = self.tableau.rows.get(variable)
        return info.constant if info is not None else 0.0

    # Solve

    def solve(self) -> dict[Variable, float]:
        if self.needs_dual_optimize:
            return self._solve_dual()

        self.simplex.optimize()
        solution = self.simplex.evaluate_solution().variables
        self.cached_solution = solution
        return solution

    def _solve_dual(self) -> dict[Variable, float]:
        self.simplex.dual_optimize()
        solution = self.simplex.evaluate_solution().variables
        self.cached_solution = solution

        self.tableau.infeasible_rows.clear()
        self.reset_stay_constants()
        self.needs_dual_optimize = False

        return solution

    # Add constraints

    def add_constraints(self, *constraints: Constraint) -> list[Constraint]:
        return [self.add_constraint(constraint) for constraint in constraints]

    def add_constraint(self, constraint: Constraint) -> Constraint:
        """
        Insert a constraint and re-optimize.

        Raises ConstraintExistsError if the constraint was already added,
        InfeasibleError if it conflicts with required constraints and
        UnboundedError if the objective becomes unbounded. A failed insertion
        is not rolled back, see `transaction()`.
        """
        if constraint in self.markers:
            raise ConstraintExistsError(constraint)
        self._add_constraint(constraint)
        return constraint

    def _add_constraint(self, constraint: Constraint) -> Markers:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(
                "add_constraint: %s", constraint, extra={"constraint": str(constraint)}
            )

        row, markers = self._create_row_info(constraint)
        self.simplex.add_row_info(row, markers.columns)
        self.simplex.marker_variables[constraint] = markers.main
        self.markers[constraint] = markers

        # Weighted error terms are only correct if each insertion is optimized.
        self.simplex.optimize()
        self.simplex._trace("end add_constraint")

        return markers

    def _create_row_info(self, constraint: Constraint) -> tuple[RowInfo, Markers]:
        simplex = self.simplex
        row = self.tableau.parametrize_row_info(
            RowInfo.from_constraint(constraint, simplex.epsilon)
        )
        priority = constraint.priority.clamped(self.config.max_strength)
        weight = priority.weight

        if constraint.op == Comparator.EQ:
            if weight is None:
                dummy = simplex.make_dummy_variable()
                row.terms[dummy] = 1.0
                markers = Markers(dummy, dummy)
            else:
                self.error_counter += 1
                error_plus = simplex.make_error_variable(f"ep{self.error_counter}")
                error_minus = simplex.make_error_variable(f"em{self.error_counter}")
                row.terms[error_plus] = -1.0
                row.terms[error_minus] = 1.0
                self.tableau.add_to_objective(error_minus, weight)
                self.tableau.add_to_objective(error_plus, weight)
                markers = Markers(
                    error_plus, error_minus, (error_plus, error_minus), weight
                )
        else:
            slack = simplex.make_slack_variable()
            row.terms[slack] = -1.0
            if weight is None:
                markers = Markers(slack)
            else:
                self.error_counter += 1
                error = simplex.make_error_variable(f"e{self.error_counter}")
                row.terms[error] = 1.0
                self.tableau.add_to_objective(error, weight)
                markers = Markers(slack, error, (error,), weight)

        if row.constant < 0:
            row *= -1.0

        return row, markers

    # Remove constraints

    def remove_constraints(self, *constraints: Constraint):
        for constraint in constraints:
            self.remove_constraint(constraint)

    def remove_constraint(self, constraint: Constraint):
        """
        Remove a previously added constraint and re-optimize.
        """
        if constraint not in self.markers:
            raise ConstraintNotFoundError(constraint)
        self._remove_constraint(constraint)

    def _remove_constraint(self, constraint: Constraint):
        markers = self.markers.pop(constraint)
        self.reset_stay_constants()

        # Withdraw the constraint's penalty from the objective.
        if markers.weight is not None:
            for error in markers.errors:
                self.tableau.add_to_objective(error, -markers.weight)

        self.simplex.remove_constraint(constraint)

        for error in markers.errors:
            if error is not markers.main:
                self.tableau.remove_row(error)
                self.tableau.remove_column(error)

        self.simplex.optimize()

    # Stay

    def reset_stay_constants(self):
        """
        Zero the basic error variable of every stay, so that stays hold the
        variables at their current values rather than their original ones.
        """
        for infos in self.stay_edit_infos_stack:
            for info in infos.stay_infos.values():
                for column in info.markers.columns:
                    self.tableau.update_row_constant(column, 0.0)

    # Edit

    def begin_edit(self, register: Callable[[EditSession], object]):
        """
        Open a nested edit session. `register` receives an `EditSession` to
        add stay and edit variables with. If it raises, the solver is left as
        it was before the call.
        """
        session = EditSession(self)
        with self.transaction():
            register(session)

        self.stay_edit_infos_stack.append(session.infos)
        self.tableau.infeasible_rows.clear()
        self.reset_stay_constants()
        self.simplex.optimize()
        self.simplex._trace("end begin_edit")

    def end_edit(self):
        """
        Close the innermost edit session, removing its stay and edit
        constraints.
        """
        if not self.stay_edit_infos_stack:
            raise NoEditSessionError()

        infos = self.stay_edit_infos_stack.pop()
        for info in infos.all_infos():
            self._remove_constraint(info.constraint)

        self.needs_dual_optimize = False
        self.simplex.optimize()
        self.cached_solution = self.simplex.evaluate_solution().variables
        self.simplex._trace("end end_edit")

    def suggest(self, register: Callable[[SuggestSession], object]) -> dict[Variable, float]:
        """
        Suggest values for edit variables and re-solve with the dual simplex.
        Every suggestion is checked before any of them is applied.
        """
        session = SuggestSession(self)
        register(session)

        for variable, value in session.suggestions:
            self.suggest_value(variable, value)

        return self._solve_dual()

    def suggest_value(self, variable: Variable, value: float):
        """
        Apply a single suggestion to the tableau. The next `solve()` restores
        feasibility.
        """
        info = self._find_edit_info(variable)
        if info is None:
            raise EditVariableNotFoundError(variable, value)

        delta = value - info.prev_edit_constant
        info.prev_edit_constant = value
        self.needs_dual_optimize = True

        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(
                "suggest_value: %s = %g (delta %g)",
                variable,
                value,
                delta,
                extra={"variable": str(variable), "delta": delta},
            )

        tableau = self.tableau
        epsilon = self.simplex.epsilon

        # A basic marker row absorbs the whole change.
        for column, sign in info.markers.edit_signs():
            row = tableau.rows.get(column)
            if row is not None:
                row.constant += sign * delta
                if row.constant < -epsilon:
                    tableau.infeasible_rows.add(column)
                return

        # Otherwise both error variables are zero and every row that depends on
        # them moves with the edited value.
        sub = info.markers.sub
        for row_key in tableau.rows_with(sub):
            row = tableau.rows[row_key]
            row.constant += row.terms[sub] * delta
            if row_key.is_restricted and row.constant < -epsilon:
                tableau.infeasible_rows.add(row_key)

    def _find_edit_info(self, variable: Variable) -> EditInfo | None:
        for infos in reversed(self.stay_edit_infos_stack):
            info = infos.edit_infos.get(variable)
            if info is not None:
                return info
        return None

    def __str__(self) -> str:
        return str(self.simplex)
