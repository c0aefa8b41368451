from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing_extensions import override
import itertools

from .config import EPSILON
from .priority import Priority, as_priority
from .symbols import SymbolKind


class Expression(ABC):
    """
    Immutable linear expression tree over variables and constants.

    Comparing two expressions with `==`, `<=` or `>=` does not produce a bool,
    but a `Constraint`.
    """

    @abstractmethod
    def evaluate(self, values: Mapping[Variable, float]) -> float:
        """
        Value of the expression when each variable takes its value from
        `values`. Missing variables read as 0.
        """
        pass

    def __add__(self, other) -> Expression:
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return ExpressionAddOp(self, other)

    def __radd__(self, other) -> Expression:
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return ExpressionAddOp(other, self)

    def __sub__(self, other) -> Expression:
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return self + -other

    def __rsub__(self, other) -> Expression:
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return other + -self

    def __mul__(self, other) -> Expression:
        if isinstance(other, bool) or not isinstance(other, Real):
            return NotImplemented
        return ExpressionMulOp(float(other), self)

    def __rmul__(self, other) -> Expression:
        return self.__mul__(other)

    def __truediv__(self, other) -> Expression:
        if isinstance(other, bool) or not isinstance(other, Real):
            return NotImplemented
        if other == 0:
            raise ZeroDivisionError("Expression divided by zero")
        return ExpressionMulOp(1.0 / float(other), self)

    def __neg__(self) -> Expression:
        return ExpressionMulOp(-1.0, self)

    def __pos__(self) -> Expression:
        return self

    def __eq__(self, other) -> Constraint:  # type: ignore[override]
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return Constraint(self, Comparator.EQ, other)

    def __le__(self, other) -> Constraint:
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return Constraint(self, Comparator.LE, other)

    def __ge__(self, other) -> Constraint:
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return Constraint(self, Comparator.GE, other)

    # Overriding __eq__ would otherwise make expressions unhashable.
    __hash__ = object.__hash__


def _coerce(value) -> Expression | None:
    if isinstance(value, Expression):
        return value
    if isinstance(value, Real) and not isinstance(value, bool):
        return Constant(float(value))
    return None


def as_expression(value) -> Expression:
    """
    Convert numbers to constant expressions, leaving expressions as they are.
    """
    expression = _coerce(value)
    if expression is None:
        raise TypeError(f"Unsupported type for expression: {type(value)}")
    return expression


_variable_serials = itertools.count()


class Variable(Expression):
    """
    External unknown to be solved for. Variables are compared by identity, the
    name is only used for display.
    """

    kind = SymbolKind.EXTERNAL
    is_external = True
    is_dummy = False
    is_pivotable = False
    is_restricted = False

    def __init__(self, name: str = ""):
        self.name = name
        self.serial = next(_variable_serials)

    @property
    def sort_key(self) -> tuple[int, str, int]:
        return (self.kind.value, self.name, self.serial)

    @override
    def evaluate(self, values: Mapping[Variable, float]) -> float:
        return values.get(self, 0.0)

    def __str__(self) -> str:
        return self.name if self.name else f"_v{self.serial}"

    def __repr__(self) -> str:
        return f"Variable({self})"

    # Variables are owned by the caller, snapshots must refer to the same ones.
    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


@dataclass(eq=False)
class Constant(Expression):
    value: float

    @override
    def evaluate(self, values: Mapping[Variable, float]) -> float:
        return self.value

    def __str__(self) -> str:
        return f"{self.value:g}"


@dataclass(eq=False)
class ExpressionAddOp(Expression):
    a: Expression
    b: Expression

    @override
    def evaluate(self, values: Mapping[Variable, float]) -> float:
        return self.a.evaluate(values) + self.b.evaluate(values)

    def __str__(self) -> str:
        return f"{self.a} + {self.b}".replace("+ -", "- ")


@dataclass(eq=False)
class ExpressionMulOp(Expression):
    a: float
    b: Expression

    @override
    def evaluate(self, values: Mapping[Variable, float]) -> float:
        return self.a * self.b.evaluate(values)

    def __str__(self) -> str:
        if self.a == -1.0:
            factor = "-"
        else:
            factor = f"{self.a:g}*"
        if isinstance(self.b, (Variable, Constant)):
            return f"{factor}{self.b}"
        return f"{factor}({self.b})"


class Comparator(Enum):
    EQ = "=="
    LE = "<="
    GE = ">="

    @property
    def inverted(self) -> Comparator:
        match self:
            case Comparator.LE:
                return Comparator.GE
            case Comparator.GE:
                return Comparator.LE
            case _:
                return self


@dataclass(eq=False)
class Constraint:
    """
    Linear equality or inequality between two expressions, with a priority.

    Constraints are compared by identity: two structurally identical
    constraints are still different constraints, and removing a constraint
    from a solver requires the same instance that was added.
    """

    lhs: Expression
    op: Comparator
    rhs: Expression
    priority: Priority = Priority.REQUIRED

    def with_priority(self, priority: Priority | int | str) -> Constraint:
        """
        A new constraint with the same relation and the given priority.
        """
        return Constraint(self.lhs, self.op, self.rhs, as_priority(priority))

    def __or__(self, priority) -> Constraint:
        try:
            return self.with_priority(priority)
        except TypeError:
            return NotImplemented

    def residual(self, values: Mapping[Variable, float]) -> float:
        """
        `lhs - rhs` evaluated at `values`.
        """
        return self.lhs.evaluate(values) - self.rhs.evaluate(values)

    def is_satisfied(
        self, values: Mapping[Variable, float], epsilon: float = EPSILON
    ) -> bool:
        r = self.residual(values)
        match self.op:
            case Comparator.EQ:
                return abs(r) <= epsilon
            case Comparator.LE:
                return r <= epsilon
            case Comparator.GE:
                return r >= -epsilon

    def __bool__(self):
        raise TypeError(
            "A Constraint has no truth value. Compare variables with `is` "
            "or pass the constraint to a solver."
        )

    def __str__(self) -> str:
        text = f"{self.lhs} {self.op.value} {self.rhs}"
        if not self.priority.is_required:
            text += f" | {self.priority}"
        return text

    # Constraints are handles owned by the caller.
    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self
