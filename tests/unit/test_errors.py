import pytest

from casso import errors
from casso.expressions import Variable


@pytest.mark.parametrize(
    "error, base",
    [
        (errors.ConstraintExistsError(Variable("x") == 1), errors.AddError),
        (errors.StayVariableExistsError(Variable("x")), errors.AddError),
        (errors.EditVariableExistsError(Variable("x")), errors.AddError),
        (errors.ConstraintNotFoundError(Variable("x") == 1), errors.RemoveError),
        (errors.InfeasibleError(), errors.OptimizeError),
        (errors.UnboundedError(), errors.OptimizeError),
        (errors.DualOptimizeFailedError(), errors.OptimizeError),
        (errors.EditVariableNotFoundError(Variable("x"), 1.0), errors.EditError),
        (errors.NoEditSessionError(), errors.EditError),
    ],
)
def test_error_hierarchy(error, base):
    assert isinstance(error, base)
    assert isinstance(error, errors.SolverError)
    assert str(error)


def test_errors_carry_their_subject():
    x = Variable("width")
    c = x >= 0
    assert errors.ConstraintNotFoundError(c).constraint is c
    assert "width >= 0" in str(errors.ConstraintNotFoundError(c))

    e = errors.EditVariableNotFoundError(x, 2.5)
    assert e.variable is x
    assert e.suggested_value == 2.5
    assert "width" in str(e)
