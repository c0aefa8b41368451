from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .expressions import Constraint, Variable


class SolverError(Exception):
    """Base class for every failure reported by the solvers."""


class AddError(SolverError):
    pass


class ConstraintExistsError(AddError):
    def __init__(self, constraint: Constraint):
        super().__init__(f"Constraint has already been added: {constraint}")
        self.constraint = constraint


class StayVariableExistsError(AddError):
    def __init__(self, variable: Variable):
        super().__init__(f"{variable} is already a stay variable")
        self.variable = variable


class EditVariableExistsError(AddError):
    def __init__(self, variable: Variable):
        super().__init__(f"{variable} is already an edit variable")
        self.variable = variable


class RemoveError(SolverError):
    pass


class ConstraintNotFoundError(RemoveError):
    def __init__(self, constraint: Constraint):
        super().__init__(f"Constraint not found: {constraint}")
        self.constraint = constraint


class OptimizeError(SolverError):
    pass


class InfeasibleError(OptimizeError):
    """No assignment satisfies all required constraints."""

    def __init__(self, message: str = "Required constraints are infeasible"):
        super().__init__(message)


class UnboundedError(OptimizeError):
    """The objective has no finite optimum."""

    def __init__(self, message: str = "Objective function is unbounded"):
        super().__init__(message)


class DualOptimizeFailedError(OptimizeError):
    """Feasibility could not be restored after suggesting values."""

    def __init__(self, message: str = "Dual simplex could not restore feasibility"):
        super().__init__(message)


class EditError(SolverError):
    pass


class EditVariableNotFoundError(EditError):
    def __init__(self, variable: Variable, suggested_value: float):
        super().__init__(
            f"{variable} is not an edit variable (suggested value {suggested_value:g})"
        )
        self.variable = variable
        self.suggested_value = suggested_value


class NoEditSessionError(EditError):
    def __init__(self):
        super().__init__("end_edit() called without an open edit session")
