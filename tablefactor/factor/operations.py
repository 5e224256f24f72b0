"""
tablefactor/factor/operations.py

Free functions over table factors: distances, interpolation, powers and
extremal assignments.

The distances are single join-aggregate passes over the union of the two
domains, computed on represented values whatever the storage space.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from tablefactor.algebra.operators import (
    REAL_OPERATORS,
    Op,
    abs_difference_log_operator,
    abs_difference_operator,
    weighted_plus_operator,
)
from tablefactor.algebra.semiring import DEFAULT_SEMIRING, Semiring
from tablefactor.core.universe import Variable
from tablefactor.data.record import Assignment
from tablefactor.errors import PreconditionError
from tablefactor.factor.table_factor import OpLike, TableFactor
from tablefactor.tensor.shape import coordinate


def combine(x: TableFactor, y: TableFactor, op: OpLike) -> TableFactor:
    """Elementwise op over the union of the two domains."""
    return TableFactor.combine(x, y, op)


def make_dense_table_factor(
    args: Sequence[Variable],
    values: Sequence[float],
    semiring: Semiring = DEFAULT_SEMIRING,
) -> TableFactor:
    """
    Build a factor from a flat value vector.

    The first variable of args changes fastest: for binary x, y,
    make_dense_table_factor([x, y], [1, 2, 3, 4]) gives f(x=1, y=0) = 2.
    """
    return TableFactor.from_values(args, values, semiring)


def _same_space(x: TableFactor, y: TableFactor) -> TableFactor:
    return y if y.semiring == x.semiring else y.in_space(x.semiring)


def norm_1(x: TableFactor, y: TableFactor) -> float:
    """sum |x - y| over the union of the domains."""
    y = _same_space(x, y)
    return TableFactor.combine_collapse(
        x, y, abs_difference_operator(x.log_space), REAL_OPERATORS[Op.SUM], 0.0
    )


def norm_inf(x: TableFactor, y: TableFactor) -> float:
    """max |x - y| over the union of the domains."""
    y = _same_space(x, y)
    return TableFactor.combine_collapse(
        x, y, abs_difference_operator(x.log_space), REAL_OPERATORS[Op.MAX], -np.inf
    )


def norm_1_log(x: TableFactor, y: TableFactor) -> float:
    """sum |log x - log y| over the union of the domains."""
    y = _same_space(x, y)
    return TableFactor.combine_collapse(
        x, y, abs_difference_log_operator(x.log_space), REAL_OPERATORS[Op.SUM], 0.0
    )


def norm_inf_log(x: TableFactor, y: TableFactor) -> float:
    """max |log x - log y| over the union of the domains."""
    y = _same_space(x, y)
    return TableFactor.combine_collapse(
        x, y, abs_difference_log_operator(x.log_space), REAL_OPERATORS[Op.MAX], -np.inf
    )


def weighted_update(f1: TableFactor, f2: TableFactor, a: float) -> TableFactor:
    """(1 - a) * f1 + a * f2, for a in [0, 1]."""
    if not 0.0 <= a <= 1.0:
        raise PreconditionError(f"weighted_update step {a} is outside [0, 1]")
    return TableFactor.combine(f1, f2, weighted_plus_operator(1.0 - a, a, f1.log_space))


def power(f: TableFactor, a: float) -> TableFactor:
    """Raise every represented value to the power a."""
    result = f.copy()
    if f.log_space:
        result.update(lambda x: np.where(np.isneginf(x), x, a * x))
    else:
        result.update(lambda x: np.power(x, a))
    return result


def arg_max(f: TableFactor) -> Assignment:
    """Assignment of the largest value (first in linear order on ties)."""
    return f.assignment(coordinate(int(np.argmax(f.values())), f.table.shape))


def arg_min(f: TableFactor) -> Assignment:
    """Assignment of the smallest value (first in linear order on ties)."""
    return f.assignment(coordinate(int(np.argmin(f.values())), f.table.shape))


def elementwise_max(x: TableFactor, y: TableFactor) -> TableFactor:
    return TableFactor.combine(x, y, Op.MAX)


def elementwise_min(x: TableFactor, y: TableFactor) -> TableFactor:
    return TableFactor.combine(x, y, Op.MIN)


def identity_factor(op: Op, semiring: Semiring = DEFAULT_SEMIRING) -> TableFactor:
    """
    The constant factor that leaves every factor unchanged under op.

    Raises:
        PreconditionError: op has no identity element
    """
    identity = semiring.operator(op).identity
    if identity is None:
        raise PreconditionError(f"operator {op.value!r} has no identity element")
    return TableFactor.constant(identity, semiring)
