"""Exceptions and warnings raised by ``tensor_id``."""


class TensorIDError(Exception):
    """Base class for all errors raised by this package."""


class InvalidArgument(TensorIDError, ValueError):
    """Malformed rank or dimension relationship, rejected before computing."""


class NumericalInstability(TensorIDError, ArithmeticError):
    """The leading block of the rank-revealing factorization is singular.

    ``rank`` holds the numerical rank that was found, so the caller can retry
    with a larger sketch dimension.
    """

    def __init__(self, message: str, rank: int) -> None:
        super().__init__(message)
        self.rank = rank


class NonConvergenceWarning(UserWarning):
    """An iterative estimate hit its iteration cap before meeting ``tol``."""
