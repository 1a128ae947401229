"""Errors raised by jax_dynamics.

All failures are programming or input errors; none of them is retried.
"""


class MechanismError(Exception):
    """Base class for all jax_dynamics errors."""


class UnknownEntityError(MechanismError, KeyError):
    """A body, joint or frame that does not belong to the mechanism."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"Unknown {kind} '{name}'")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class DuplicateNameError(MechanismError, ValueError):
    """A body or joint name is already used in the mechanism."""


class DimensionMismatchError(MechanismError, ValueError):
    """A vector argument has the wrong length."""

    def __init__(self, what: str, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"{what}: expected length {expected}, got {actual}")


class SingularMassMatrixError(MechanismError, ArithmeticError):
    """The mass matrix could not be factorized during forward dynamics."""


class ZeroMassError(MechanismError, ValueError):
    """A mass-weighted quantity was requested for bodies without mass."""
