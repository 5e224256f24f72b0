"""
tablefactor/errors.py

Exception taxonomy for factor operations.

- InvalidArgumentError: a caller passed arguments that cannot be honoured
  (overlapping domains, strict restriction missing a value, bad
  regularization vectors). Meant to be caught by the immediate caller.
- NormalizationError: the partition sum is zero, negative, infinite or NaN.
  Kept separate so learners can catch it and add remediation context.
- PreconditionError: a logic error (out-of-range index, arity mismatch,
  malformed dimension map). Never caught inside the package.
"""

from __future__ import annotations

from typing import Optional


class InvalidArgumentError(ValueError):
    """Raised when an operation is given arguments it cannot use."""


class NormalizationError(ArithmeticError):
    """
    Raised when a factor cannot be normalized.

    Attributes:
        value: The offending partition value, if known.
    """

    def __init__(self, message: str, value: Optional[float] = None):
        super().__init__(message)
        self.value = value


class PreconditionError(AssertionError):
    """Raised when a caller violates a structural precondition."""
