"""
tablefactor/crf/table_crf_factor.py

Conditional random field factor backed by a TableFactor.

A TableCRFFactor represents f(Y, X) with Y the output and X the input
variables. Its parameters are the entries of the underlying table, kept
either as plain values or as their logarithms. Conditioning on X yields a
real-space factor over Y; learners use the gradient and regularization
methods to fit the parameters from weighted records.

The underlying table is always laid out with Y before X, so conditioning
on X reuses one preallocated buffer over Y.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import AbstractSet, Iterable, Mapping, Optional, Tuple, Union

import numpy as np

from tablefactor.algebra.operators import REAL_OPERATORS, Op
from tablefactor.algebra.semiring import LOGPROB, PROB
from tablefactor.core.logging import get_logger
from tablefactor.core.universe import Domain, Variable, num_assignments, ordered
from tablefactor.data.record import Dataset, Record
from tablefactor.errors import InvalidArgumentError, NormalizationError, PreconditionError
from tablefactor.factor.table_factor import TableFactor

logger = get_logger(__name__)

REGULARIZATION_NONE = 0
REGULARIZATION_L2 = 2


@dataclass(frozen=True)
class Regularization:
    """
    Regularization parameters.

    Attributes:
        kind: 0 (none) or 2 (L2)
        lambdas: Regularization strength, one value applied to every parameter
    """
    kind: int = REGULARIZATION_L2
    lambdas: Tuple[float, ...] = field(default=(0.0,))

    nlambdas = 1

    def __post_init__(self):
        if self.kind not in (REGULARIZATION_NONE, REGULARIZATION_L2):
            raise InvalidArgumentError(f"Unknown regularization kind {self.kind}; expected 0 (none) or 2 (L2)")
        if len(self.lambdas) != self.nlambdas:
            raise InvalidArgumentError(
                f"Regularization expects {self.nlambdas} lambda value(s), got {len(self.lambdas)}"
            )


Evidence = Union[Mapping[Variable, int], Record]


class TableCRFFactor:
    """
    A CRF factor f(Y, X) over finite variables.

    Args:
        Y: Output variables
        X: Input variables (disjoint from Y)
        log_space: Store parameters as logarithms (all parameters start at
                   0, i.e. represented value 1 in log space)
    """

    def __init__(self, Y: Iterable[Variable], X: Iterable[Variable], log_space: bool = True):
        Y = frozenset(Y)
        X = frozenset(X)
        if Y & X:
            raise InvalidArgumentError(
                f"TableCRFFactor given overlapping Y and X: {sorted(v.name for v in Y & X)}"
            )
        self._Y = Y
        self._X = X
        self._f = TableFactor(ordered(Y) + ordered(X), 0.0, LOGPROB if log_space else PROB)
        self._conditioned = TableFactor(ordered(Y), 0.0, PROB)

    @classmethod
    def from_factor(cls, f: TableFactor, Y: Iterable[Variable], log_space: Optional[bool] = None) -> "TableCRFFactor":
        """
        Wrap an existing factor as f(Y, X) with X = f.domain - Y.

        log_space selects the parameter storage; when omitted the factor's
        own weight space is kept.
        """
        Y = frozenset(Y)
        if not Y <= f.domain:
            raise InvalidArgumentError(
                f"TableCRFFactor.from_factor: Y variables {sorted(v.name for v in Y - f.domain)} "
                f"are not factor arguments"
            )
        crf = cls.__new__(cls)
        crf._Y = Y
        crf._X = f.domain - Y
        if log_space is None:
            log_space = f.log_space
        crf._f = f.in_space(LOGPROB if log_space else PROB)
        crf._conditioned = TableFactor((), 0.0, PROB)
        crf._optimize_variable_order()
        return crf

    # Accessors
    # ------------------------------------------------------------------

    @property
    def output_arguments(self) -> Domain:
        return self._Y

    @property
    def input_arguments(self) -> Domain:
        return self._X

    @property
    def arguments(self) -> Domain:
        return self._Y | self._X

    @property
    def log_space(self) -> bool:
        return self._f.log_space

    @property
    def table_factor(self) -> TableFactor:
        """The parameter table (Y variables first)."""
        return self._f

    def zero_gradient(self) -> TableFactor:
        """A gradient buffer with the parameter layout, filled with zeros."""
        return TableFactor(self._f.arg_seq, 0.0, PROB)

    def __repr__(self) -> str:
        ys = ", ".join(v.name for v in ordered(self._Y))
        xs = ", ".join(v.name for v in ordered(self._X))
        return f"TableCRFFactor(Y=[{ys}], X=[{xs}], log_space={self.log_space})"

    # Evaluation
    # ------------------------------------------------------------------

    def v(self, a: Evidence) -> float:
        """Represented (real-space) value at an assignment or record."""
        return float(self._f.semiring.to_real(self._f.v(a)))

    def logv(self, a: Evidence) -> float:
        """Log of the represented value at an assignment or record."""
        return self._f.logv(a)

    def condition(self, a: Mapping[Variable, int]) -> TableFactor:
        """
        f(Y, X = x) as a real-space factor over Y.

        The assignment must give a value to every input variable. The
        returned factor is a buffer owned by this CRF factor; it is
        overwritten by the next call, so copy it to keep it.
        """
        self._f.restrict(a, self._X, strict=True, out=self._conditioned)
        return self._to_real_buffer()

    def condition_record(self, r: Record) -> TableFactor:
        """Same as condition, reading input values from a record."""
        self._f.restrict_record(r, self._X, strict=True, out=self._conditioned)
        return self._to_real_buffer()

    def _to_real_buffer(self) -> TableFactor:
        if self._conditioned.log_space:
            self._conditioned.update(np.exp)
            self._conditioned.semiring = PROB
        return self._conditioned

    def log_expected_value(self, dataset: Dataset) -> float:
        """
        Weighted empirical mean of log f(y, x) over the dataset records.

        If this factor represents P(Y | X), this is the expected conditional
        log likelihood. The factor is not normalized after conditioning.
        """
        total = 0.0
        total_weight = 0.0
        for r in dataset:
            tmp = self._f.restrict_record(r, self._X, strict=True)
            total += r.weight * tmp.logv(r)
            total_weight += r.weight
        if total_weight <= 0:
            raise InvalidArgumentError(f"log_expected_value needs positive total weight, got {total_weight}")
        return total / total_weight

    def conditional_log_likelihood(self, r: Record) -> float:
        """
        log P(y | x) for one record, normalizing f(Y, X = x) over Y.

        Raises:
            NormalizationError: f(Y, X = x) sums to zero (or is not finite)
        """
        cond = self.condition_record(r).copy()
        try:
            cond.normalize()
        except NormalizationError as e:
            raise NormalizationError(
                f"{self!r} cannot be normalized for the record's input values; "
                f"all outputs have zero weight. Add smoothing or L2 regularization "
                f"to keep parameters away from zero",
                value=e.value,
            ) from e
        return cond.logv(r)

    # Conversion and reshaping
    # ------------------------------------------------------------------

    def convert_to_log_space(self) -> bool:
        if not self.log_space:
            self._f = self._f.to_log_space()
        return True

    def convert_to_real_space(self) -> bool:
        if self.log_space:
            self._f = self._f.to_real_space()
        return True

    def relabel_outputs_inputs(self, new_Y: AbstractSet[Variable], new_X: AbstractSet[Variable]) -> None:
        """
        Move variables between outputs and inputs.

        The union of new_Y and new_X must cover the current arguments and
        the two sets must be disjoint.
        """
        old_args = self.arguments
        Y = old_args & frozenset(new_Y)
        X = old_args & frozenset(new_X)
        if Y & X:
            raise InvalidArgumentError("relabel_outputs_inputs given new_Y, new_X which are not disjoint")
        if len(Y) + len(X) != len(old_args):
            raise InvalidArgumentError(
                "relabel_outputs_inputs given new_Y, new_X whose union does not include the current arguments"
            )
        self._Y = Y
        self._X = X
        self._optimize_variable_order()

    def marginalize_out(self, Y_other: AbstractSet[Variable]) -> "TableCRFFactor":
        """Turn f(Y_retain, Y_other, X) into f(Y_retain, X) by summing over Y_other."""
        Y_other = frozenset(Y_other)
        if Y_other & self._X:
            raise InvalidArgumentError("marginalize_out given Y_other which overlaps the input variables X")
        self._Y = self._Y - Y_other
        self._f = self._f.marginal(self._Y | self._X)
        self._optimize_variable_order()
        return self

    def partial_expectation_in_log_space(
        self,
        Y_part: AbstractSet[Variable],
        dataset: Optional[Dataset] = None,
    ) -> "TableCRFFactor":
        """
        Remove Y_part from the outputs by averaging the log parameters.

        Without a dataset, Y_part is summed out in log space and the result
        is divided by the number of removed output assignments. With a
        dataset, the log parameters restricted to each record's Y_part values
        are averaged over the records instead. The factor keeps its weight
        space.

        Raises:
            InvalidArgumentError: Y_part overlaps X, or the dataset is empty
        """
        Y_part = frozenset(Y_part)
        if Y_part & self._X:
            raise InvalidArgumentError(
                "partial_expectation_in_log_space given Y_part which overlaps the input variables X"
            )
        was_log_space = self.log_space
        self.convert_to_log_space()
        if dataset is None:
            n = num_assignments(Y_part & self._Y)
            self.marginalize_out(Y_part)
        else:
            n = len(dataset)
            if n == 0:
                raise InvalidArgumentError("partial_expectation_in_log_space given an empty dataset")
            # stored log values are added, not log-summed
            plus = REAL_OPERATORS[Op.SUM]
            total = TableFactor((), 0.0, self._f.semiring)
            for r in dataset:
                total.combine_in(self._f.restrict_record(r, Y_part, strict=True), plus)
            self._f = total
            self._Y = self._Y - Y_part
        self._f.update(lambda d: d / n)
        if not was_log_space:
            self.convert_to_real_space()
        self._optimize_variable_order()
        return self

    def partial_condition(
        self,
        a: Evidence,
        Y_part: AbstractSet[Variable],
        X_part: AbstractSet[Variable],
    ) -> "TableCRFFactor":
        """
        Set f(Y_part, Y_other, X_part, X_other) to
        f(Y_part = y_part, Y_other, X_part = x_part, X_other).

        a must give values to every variable of Y_part and X_part.
        """
        Y_part = frozenset(Y_part)
        X_part = frozenset(X_part)
        if Y_part & self._X or X_part & self._Y:
            raise InvalidArgumentError("partial_condition given Y_part/X_part that do not match the factor's Y/X")
        if isinstance(a, Record):
            self._f = self._f.restrict_record(a, Y_part | X_part, strict=True)
        else:
            self._f = self._f.restrict(a, Y_part | X_part, strict=True)
        self._Y = self._Y - Y_part
        self._X = self._X - X_part
        self._optimize_variable_order()
        return self

    def combine_in(self, other: "TableCRFFactor") -> "TableCRFFactor":
        """
        Multiply other into this factor.

        Neither factor may have an output variable that is an input of the
        other.
        """
        if self._Y & other._X or self._X & other._Y:
            raise InvalidArgumentError(
                "TableCRFFactor.combine_in given factors with a variable that is an output "
                "of one and an input of the other"
            )
        self._f.combine_in(other._f.in_space(self._f.semiring), Op.PRODUCT)
        self._Y = self._Y | other._Y
        self._X = self._X | other._X
        self._optimize_variable_order()
        return self

    __imul__ = combine_in

    def _optimize_variable_order(self) -> None:
        # Y must lead the parameter table so that conditioning on X keeps Y's order
        n_y = len(self._Y)
        if frozenset(self._f.arg_seq[:n_y]) != self._Y:
            logger.debug("TableCRFFactor: reordering parameters with Y first")
            self._f = self._f.permute(ordered(self._Y) + ordered(self._X))
        y_seq = self._f.arg_seq[:n_y]
        if self._conditioned.arg_seq != y_seq:
            self._conditioned = TableFactor(y_seq, 0.0, PROB)

    # Learning
    # ------------------------------------------------------------------

    def add_gradient(self, grad: TableFactor, r: Record, w: float = 1.0) -> None:
        """
        Add w times the gradient of log f at the record to grad.

        grad must have the parameter layout (see zero_gradient).
        """
        if self.log_space:
            grad.set_v(r, grad.v(r) + w)
        else:
            val = self._f.v(r)
            grad.set_v(r, grad.v(r) + (w / val if not PROB.is_zero(val) else w * np.inf))

    def add_expected_gradient(self, grad: TableFactor, r: Record, fy: TableFactor, w: float = 1.0) -> None:
        """
        Add w times the expectation of the gradient of log f, over the Y
        values distributed as fy, at the record's input values.

        fy is a real-space distribution over a subset of Y; output
        variables it does not cover take their values from the record.
        """
        if not fy.domain <= self._Y:
            raise InvalidArgumentError("add_expected_gradient given fy with variables outside Y")
        fa = r.assignment(self._X)
        for v in self._Y - fy.domain:
            fa[v] = r.finite(v)
        for fa2 in fy.assignments():
            fa.update(fa2)
            p = fy.semiring.to_real(fy.v(fa2))
            if self.log_space:
                grad.set_v(fa, grad.v(fa) + w * p)
            else:
                val = self._f.v(fa)
                grad.set_v(fa, grad.v(fa) + (w * p / val if not PROB.is_zero(val) else w * np.inf))

    def add_combined_gradient(self, grad: TableFactor, r: Record, fy: TableFactor, w: float = 1.0) -> None:
        """add_gradient(grad, r, w) followed by add_expected_gradient(grad, r, fy, -w)."""
        self.add_gradient(grad, r, w)
        self.add_expected_gradient(grad, r, fy, -1.0 * w)

    def regularization_penalty(self, reg: Regularization) -> float:
        """-0.5 * lambda * <params, params> for L2, 0 for none."""
        if reg.kind == REGULARIZATION_NONE or reg.lambdas[0] == 0:
            return 0.0
        if reg.kind == REGULARIZATION_L2:
            params = self._f.table.data
            return float(-0.5 * reg.lambdas[0] * np.sum(params * params))
        raise InvalidArgumentError(f"regularization_penalty given bad regularization kind {reg.kind}")

    def add_regularization_gradient(self, grad: TableFactor, reg: Regularization, w: float = 1.0) -> None:
        """Add w times the regularization gradient (-lambda * params for L2) to grad."""
        if reg.kind == REGULARIZATION_NONE or reg.lambdas[0] == 0:
            return
        if reg.kind == REGULARIZATION_L2:
            if grad.arg_seq != self._f.arg_seq:
                raise PreconditionError("add_regularization_gradient needs a gradient with the parameter layout")
            params = self._f.table.data
            grad.update(lambda g: g - params * (w * reg.lambdas[0]))
            return
        raise InvalidArgumentError(f"add_regularization_gradient given bad regularization kind {reg.kind}")
