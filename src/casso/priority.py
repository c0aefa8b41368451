from __future__ import annotations

from dataclasses import dataclass
from functools import singledispatch
from numbers import Integral
from typing import ClassVar
import warnings


@dataclass(frozen=True)
class Priority:
    """
    Strength of a constraint.

    A negative strength marks a required constraint, which must hold exactly.
    Any other strength is optional and is turned into a penalty weight of
    `10 ** (3 * (strength / 250 - 1))`, so that the named tiers are separated
    by three orders of magnitude: `LOW` (250) weighs 1, `MEDIUM` (500) weighs
    1e3 and `HIGH` (750) weighs 1e6.
    """

    strength: int

    REQUIRED: ClassVar[Priority]
    HIGH: ClassVar[Priority]
    MEDIUM: ClassVar[Priority]
    LOW: ClassVar[Priority]

    def __post_init__(self):
        if isinstance(self.strength, bool) or not isinstance(self.strength, Integral):
            raise TypeError(
                f"Priority strength must be an integer, got {type(self.strength)}"
            )
        # Every negative strength is the same required priority.
        object.__setattr__(self, "strength", max(int(self.strength), -1))

    @property
    def is_required(self) -> bool:
        return self.strength < 0

    @property
    def weight(self) -> float | None:
        """
        Penalty weight used in the objective function, or None if required.
        """
        if self.is_required:
            return None
        return 10.0 ** (3 * (self.strength / 250 - 1))

    def clamped(self, max_strength: int) -> Priority:
        """
        Limit an optional strength to `max_strength`, warning if it exceeds it.
        """
        if self.is_required or self.strength <= max_strength:
            return self
        warnings.warn(
            f"Priority strength {self.strength} exceeds {max_strength} and was clamped",
            RuntimeWarning,
        )
        return Priority(max_strength)

    def __add__(self, other: Priority) -> Priority:
        if not isinstance(other, Priority):
            return NotImplemented
        if self.is_required or other.is_required:
            return Priority.REQUIRED
        return Priority(self.strength + other.strength)

    def __sub__(self, other: Priority) -> Priority:
        if not isinstance(other, Priority):
            return NotImplemented
        if self.is_required or other.is_required:
            return Priority.REQUIRED
        return Priority(max(self.strength - other.strength, 0))

    def __str__(self) -> str:
        if self.is_required:
            return "required"
        for name, priority in _NAMED_PRIORITIES.items():
            if priority == self:
                return name
        return f"optional({self.strength})"


Priority.REQUIRED = Priority(-1)
Priority.HIGH = Priority(750)
Priority.MEDIUM = Priority(500)
Priority.LOW = Priority(250)

_NAMED_PRIORITIES: dict[str, Priority] = {
    "required": Priority.REQUIRED,
    "high": Priority.HIGH,
    "medium": Priority.MEDIUM,
    "low": Priority.LOW,
}


@singledispatch
def as_priority(value) -> Priority:
    raise TypeError(f"Cannot interpret {value!r} as a priority")


@as_priority.register(Priority)
def _(value: Priority) -> Priority:
    return value


@as_priority.register(int)
def _(value: int) -> Priority:
    return Priority(value)


@as_priority.register(str)
def _(value: str) -> Priority:
    try:
        return _NAMED_PRIORITIES[value.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown priority {value!r}, expected one of {', '.join(_NAMED_PRIORITIES)}"
        ) from None
