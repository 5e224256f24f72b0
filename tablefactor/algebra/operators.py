"""
tablefactor/algebra/operators.py

Operator objects for the dense-table algorithms.

An Op code (+, -, *, /, max, min, and, or) is resolved by a weight space
into a BinaryOperator acting on that space's storage representation:
the operator function, its identity element (the seed of a reduction)
and whether it is a valid reduction at all. MINUS and DIVIDES are not
associative and are refused as reductions.

The module also provides the pointwise operators behind the divergence
and distance statistics, in both storage representations.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np
from scipy.special import entr, logsumexp, rel_entr, xlogy

from tablefactor.errors import PreconditionError


class Op(Enum):
    """Built-in combine/collapse operations."""
    SUM = "sum"
    MINUS = "minus"
    PRODUCT = "product"
    DIVIDES = "divides"
    MAX = "max"
    MIN = "min"
    AND = "and"
    OR = "or"


ArrayFn = Callable[[np.ndarray, np.ndarray], np.ndarray]
Reducer = Callable[[np.ndarray, Tuple[int, ...]], np.ndarray]


@dataclass(frozen=True)
class BinaryOperator:
    """
    A vectorized binary operator.

    Attributes:
        name: Identifier used in messages
        apply: Elementwise function on broadcastable arrays
        identity: Identity element (seed of an empty reduction), if any
        reducible: Whether the operator may be used to collapse dimensions
        reducer: Optional fast reduction over axes (must agree with apply)
    """
    name: str
    apply: ArrayFn
    identity: Any = None
    reducible: bool = True
    reducer: Optional[Reducer] = None

    def __call__(self, a: Any, b: Any) -> Any:
        return self.apply(a, b)

    def require_reducible(self) -> None:
        if not self.reducible:
            raise PreconditionError(f"operator {self.name!r} is not a valid reduction")

    def reduce(self, x: np.ndarray, axis: Tuple[int, ...], seed: Any = None) -> np.ndarray:
        """
        Fold x over the given axes, starting from seed.

        The result keeps the remaining axes in their original order. An empty
        reduction returns seed (or the identity when seed is None).
        """
        self.require_reducible()
        if seed is None:
            seed = self.identity
        x = np.asarray(x)
        axis = tuple(axis)
        kept_shape = tuple(s for i, s in enumerate(x.shape) if i not in axis)

        if any(x.shape[a] == 0 for a in axis) or not axis:
            if not axis:
                return x if seed is None else self.apply(np.full(kept_shape, seed, dtype=x.dtype), x)
            if seed is None:
                raise PreconditionError(f"operator {self.name!r} has no identity for an empty reduction")
            return np.full(kept_shape, seed, dtype=x.dtype)

        if self.reducer is not None:
            out = np.asarray(self.reducer(x, axis))
        elif isinstance(self.apply, np.ufunc):
            out = self.apply.reduce(x, axis=axis)
        else:
            # Generic fold: move reduced axes to the front and combine row by row
            kept_axes = [i for i in range(x.ndim) if i not in axis]
            rows = np.transpose(x, axes=list(axis) + kept_axes).reshape((-1,) + kept_shape)
            out = rows[0].copy()
            for row in rows[1:]:
                out = self.apply(out, row)

        if seed is not None:
            out = self.apply(np.full(kept_shape, seed, dtype=np.result_type(out)), out)
        return np.asarray(out)


def _safe_divide(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Elementwise a / b with 0 / 0 defined as 0."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        out = a / b
    return np.where((a == 0) & (b == 0), 0.0, out)


def _real_and(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.logical_and(a != 0, b != 0).astype(np.float64)


def _real_or(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.logical_or(a != 0, b != 0).astype(np.float64)


def _log_minus(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """log(exp(a) - exp(b)); NaN where the represented result is negative."""
    a, b = np.broadcast_arrays(np.asarray(a, dtype=np.float64), np.asarray(b, dtype=np.float64))
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        out = a + np.log1p(-np.exp(b - a))
    out = np.where(np.isneginf(b), a, out)
    return np.where(np.isneginf(a) & np.isneginf(b), -np.inf, out)


def _log_divide(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    a, b = np.broadcast_arrays(np.asarray(a, dtype=np.float64), np.asarray(b, dtype=np.float64))
    with np.errstate(invalid="ignore"):
        out = a - b
    return np.where(np.isneginf(a) & np.isneginf(b), -np.inf, out)


def _log_and(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.where(np.logical_and(~np.isneginf(a), ~np.isneginf(b)), 0.0, -np.inf)


def _log_or(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.where(np.logical_or(~np.isneginf(a), ~np.isneginf(b)), 0.0, -np.inf)


REAL_OPERATORS: Dict[Op, BinaryOperator] = {
    Op.SUM: BinaryOperator("sum", np.add, 0.0),
    Op.MINUS: BinaryOperator("minus", np.subtract, 0.0, reducible=False),
    Op.PRODUCT: BinaryOperator("product", np.multiply, 1.0),
    Op.DIVIDES: BinaryOperator("divides", _safe_divide, 1.0, reducible=False),
    Op.MAX: BinaryOperator("max", np.maximum, -np.inf),
    Op.MIN: BinaryOperator("min", np.minimum, np.inf),
    Op.AND: BinaryOperator(
        "and", _real_and, 1.0,
        reducer=lambda x, axis: np.all(x != 0, axis=axis).astype(np.float64),
    ),
    Op.OR: BinaryOperator(
        "or", _real_or, 0.0,
        reducer=lambda x, axis: np.any(x != 0, axis=axis).astype(np.float64),
    ),
}

LOG_OPERATORS: Dict[Op, BinaryOperator] = {
    Op.SUM: BinaryOperator("sum", np.logaddexp, -np.inf, reducer=lambda x, axis: logsumexp(x, axis=axis)),
    Op.MINUS: BinaryOperator("minus", _log_minus, -np.inf, reducible=False),
    Op.PRODUCT: BinaryOperator("product", np.add, 0.0),
    Op.DIVIDES: BinaryOperator("divides", _log_divide, 0.0, reducible=False),
    Op.MAX: BinaryOperator("max", np.maximum, -np.inf),
    Op.MIN: BinaryOperator("min", np.minimum, np.inf),
    Op.AND: BinaryOperator(
        "and", _log_and, 0.0,
        reducer=lambda x, axis: np.where(np.all(~np.isneginf(x), axis=axis), 0.0, -np.inf),
    ),
    Op.OR: BinaryOperator(
        "or", _log_or, -np.inf,
        reducer=lambda x, axis: np.where(np.any(~np.isneginf(x), axis=axis), 0.0, -np.inf),
    ),
}


# Pointwise statistics operators
# ------------------------------------------------------------------

def kld_operator(log_space: bool) -> BinaryOperator:
    """p log(p / q), with 0 log 0 = 0."""
    if not log_space:
        return BinaryOperator("kld", rel_entr, reducible=False)

    def _kld(lp: np.ndarray, lq: np.ndarray) -> np.ndarray:
        with np.errstate(invalid="ignore"):
            out = np.exp(lp) * (lp - lq)
        return np.where(np.isneginf(lp), 0.0, out)

    return BinaryOperator("kld", _kld, reducible=False)


def cross_entropy_operator(log_space: bool) -> BinaryOperator:
    """-p log q, with 0 log 0 = 0."""
    if not log_space:
        return BinaryOperator("cross_entropy", lambda p, q: -xlogy(p, q), reducible=False)

    def _xent(lp: np.ndarray, lq: np.ndarray) -> np.ndarray:
        with np.errstate(invalid="ignore"):
            out = -np.exp(lp) * lq
        return np.where(np.isneginf(lp), 0.0, out)

    return BinaryOperator("cross_entropy", _xent, reducible=False)


def entropy_terms(values: np.ndarray, log_space: bool) -> np.ndarray:
    """-p log p for every entry (natural log)."""
    if not log_space:
        return entr(values)
    with np.errstate(invalid="ignore"):
        out = -np.exp(values) * values
    return np.where(np.isneginf(values), 0.0, out)


def abs_difference_operator(log_space: bool) -> BinaryOperator:
    """|a - b| on represented values."""
    if not log_space:
        return BinaryOperator("abs_difference", lambda a, b: np.abs(a - b), reducible=False)
    return BinaryOperator("abs_difference", lambda a, b: np.abs(np.exp(a) - np.exp(b)), reducible=False)


def abs_difference_log_operator(log_space: bool) -> BinaryOperator:
    """|log a - log b| on represented values."""
    if log_space:
        return BinaryOperator("abs_difference_log", lambda a, b: np.abs(a - b), reducible=False)

    def _absdiff_log(a: np.ndarray, b: np.ndarray) -> np.ndarray:
        with np.errstate(divide="ignore", invalid="ignore"):
            return np.abs(np.log(a) - np.log(b))

    return BinaryOperator("abs_difference_log", _absdiff_log, reducible=False)


def weighted_plus_operator(wa: float, wb: float, log_space: bool = False) -> BinaryOperator:
    """wa * a + wb * b on represented values (wa, wb >= 0)."""
    if not log_space:
        return BinaryOperator("weighted_plus", lambda a, b: wa * a + wb * b, reducible=False)
    with np.errstate(divide="ignore"):
        lwa = np.log(wa)
        lwb = np.log(wb)
    return BinaryOperator("weighted_plus", lambda a, b: np.logaddexp(lwa + a, lwb + b), reducible=False)
