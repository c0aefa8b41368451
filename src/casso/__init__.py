from .config import Config, default_config
from .errors import (
    AddError,
    ConstraintExistsError,
    ConstraintNotFoundError,
    DualOptimizeFailedError,
    EditError,
    EditVariableExistsError,
    EditVariableNotFoundError,
    InfeasibleError,
    NoEditSessionError,
    OptimizeError,
    RemoveError,
    SolverError,
    StayVariableExistsError,
    UnboundedError,
)
from .expressions import Comparator, Constant, Constraint, Expression, Variable
from .priority import Priority, as_priority
from .simplex import Goal, Objective, Problem, SimplexSolver, Solution
from .solver import EditSession, Solver, SuggestSession
