"""
tablefactor/algebra/semiring.py

Weight spaces for factor tables.

A weight space is a commutative semiring (S, ⊕, ⊗, 0, 1) together with its
storage representation:
- zero, one, is_zero: identities in storage representation
- add_reduce: vectorized ⊕ reduction over axes (partition sums)
- normalize: scale so the represented values sum to one
- to_log / from_log: convert between storage and log of represented value
- operator(op): resolve an Op code into a storage-level BinaryOperator

ProbSemiring stores plain nonnegative reals. LogProbSemiring stores the
natural logarithm of the represented mass ("canonical" tables). The factor
engine is written once against this interface.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np
from scipy.special import logsumexp

from tablefactor.algebra.operators import LOG_OPERATORS, REAL_OPERATORS, BinaryOperator, Op

Axis = Optional[Union[int, Tuple[int, ...]]]


@dataclass(frozen=True)
class ProbSemiring:
    """Nonnegative reals: add=+, mul=*."""
    name: str = "PROB"
    zero: float = 0.0
    one: float = 1.0
    log_space: bool = False

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(np.float64)

    def is_zero(self, a: Any) -> bool:
        return float(a) == 0.0

    def add_reduce(self, x: np.ndarray, axis: Axis = None) -> np.ndarray:
        return np.sum(x, axis=axis)

    def to_log(self, x: Any) -> Any:
        with np.errstate(divide="ignore"):
            return np.log(x)

    def from_log(self, x: Any) -> Any:
        return np.exp(x)

    def to_real(self, x: Any) -> Any:
        return x

    def from_real(self, x: Any) -> Any:
        return x

    def operator(self, op: Op) -> BinaryOperator:
        return REAL_OPERATORS[op]

    def normalize(self, x: np.ndarray, axis: Axis = None) -> np.ndarray:
        s = np.sum(x, axis=axis, keepdims=True)
        return x / s


@dataclass(frozen=True)
class LogProbSemiring:
    """Log-space probabilities: add=logsumexp, mul=+."""
    name: str = "LOGPROB"
    zero: float = -np.inf
    one: float = 0.0
    log_space: bool = True

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(np.float64)

    def is_zero(self, a: Any) -> bool:
        return bool(np.isneginf(float(a)))

    def add_reduce(self, x: np.ndarray, axis: Axis = None) -> np.ndarray:
        return logsumexp(x, axis=axis)

    def to_log(self, x: Any) -> Any:
        return x

    def from_log(self, x: Any) -> Any:
        return x

    def to_real(self, x: Any) -> Any:
        return np.exp(x)

    def from_real(self, x: Any) -> Any:
        with np.errstate(divide="ignore"):
            return np.log(x)

    def operator(self, op: Op) -> BinaryOperator:
        return LOG_OPERATORS[op]

    def normalize(self, x: np.ndarray, axis: Axis = None) -> np.ndarray:
        z = logsumexp(x, axis=axis, keepdims=True)
        return x - z


Semiring = Union[ProbSemiring, LogProbSemiring]

PROB = ProbSemiring()
LOGPROB = LogProbSemiring()

DEFAULT_SEMIRING: Semiring = PROB
DEFAULT_DTYPE = np.float64


def prob_semiring() -> ProbSemiring:
    """Create a probability weight space."""
    return PROB


def logprob_semiring() -> LogProbSemiring:
    """Create a log-probability weight space."""
    return LOGPROB


_SEMIRINGS: Dict[str, Semiring] = {
    "prob": PROB,
    "logprob": LOGPROB,
}


def get_semiring(name: str) -> Semiring:
    """
    Resolve a weight space by name.

    Args:
        name: "prob" or "logprob" (case-insensitive)

    Returns:
        The semiring instance
    """
    try:
        return _SEMIRINGS[name.lower()]
    except KeyError:
        raise KeyError(f"Unknown semiring {name!r}; expected one of {sorted(_SEMIRINGS)}") from None
