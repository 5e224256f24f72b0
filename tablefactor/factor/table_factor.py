"""
tablefactor/factor/table_factor.py

A TableFactor is a dense function from assignments of an ordered sequence
of finite variables to values in a weight space (real or log).

Representation:
  - arguments: the domain (frozenset of variables)
  - arg_seq:   ordered variables, one per table dimension
  - var_index: exact inverse of arg_seq
  - table:     DenseTable whose shape is the arities of arg_seq
  - semiring:  ProbSemiring (plain values) or LogProbSemiring (log values)

Flat values follow the mixed-radix order with the first variable of
arg_seq changing fastest: for binary x, y and values [1, 2, 3, 4],
f(x=0,y=0)=1, f(x=1,y=0)=2, f(x=0,y=1)=3, f(x=1,y=1)=4.

Key operations:
  - combine / combine_in: join two factors over the union of their domains
  - collapse / marginal / maximum / minimum: reduce onto retained variables
  - restrict: condition on fixed values
  - normalize / conditional: probability-level operations
  - entropy, relative_entropy, cross_entropy, js_divergence,
    mutual_information: single aggregate or join-aggregate calls

Operations taking `out=` write into a caller-owned destination and reuse
its storage when its arg_seq already matches the result.
"""

from __future__ import annotations

import itertools
import math
from typing import AbstractSet, Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from tablefactor.algebra.operators import (
    REAL_OPERATORS,
    BinaryOperator,
    Op,
    cross_entropy_operator,
    entropy_terms,
    kld_operator,
)
from tablefactor.algebra.semiring import DEFAULT_SEMIRING, LOGPROB, PROB, Semiring
from tablefactor.core.logging import get_logger
from tablefactor.core.universe import Domain, Universe, Variable, ordered
from tablefactor.data.record import Assignment, Record
from tablefactor.errors import InvalidArgumentError, NormalizationError, PreconditionError
from tablefactor.factor.index_map import (
    make_aggregate_map,
    make_dim_map,
    make_index_map,
    make_record_restrict_map,
    make_restrict_map,
)
from tablefactor.tensor.dense_table import (
    DenseTable,
    aggregate,
    find_first,
    join,
    join_aggregate,
    restrict as table_restrict,
)
from tablefactor.tensor.shape import coordinate, iter_coordinates, num_elements

logger = get_logger(__name__)

OpLike = Union[Op, BinaryOperator]


def _resolve(op: OpLike, semiring: Semiring) -> BinaryOperator:
    if isinstance(op, Op):
        return semiring.operator(op)
    return op


class TableFactor:
    """
    A dense table factor over finite variables.

    Args:
        args: Ordered variables; the table geometry follows this order
        default: Initial value of every entry, in storage representation
                 (defaults to the semiring zero)
        semiring: Weight space of the stored values
    """

    def __init__(
        self,
        args: Iterable[Variable] = (),
        default: Optional[float] = None,
        semiring: Semiring = DEFAULT_SEMIRING,
    ):
        self.semiring = semiring
        self._initialize(args, semiring.zero if default is None else default)

    def _initialize(self, args: Iterable[Variable], default: float) -> None:
        arg_seq = tuple(args)
        if len(set(arg_seq)) != len(arg_seq):
            raise PreconditionError(f"TableFactor arguments have duplicates: {arg_seq}")
        self._arg_seq = arg_seq
        self._args = frozenset(arg_seq)
        self._var_index = make_index_map(arg_seq)
        self._table = DenseTable(tuple(v.arity for v in arg_seq), default)

    @classmethod
    def from_values(
        cls,
        args: Sequence[Variable],
        values: Sequence[float],
        semiring: Semiring = DEFAULT_SEMIRING,
    ) -> "TableFactor":
        """
        Create a factor from a flat value vector in mixed-radix order.

        The vector length must equal the product of the arities.
        """
        f = cls(args, semiring.zero, semiring)
        f._table = DenseTable.from_values(f._table.shape, values)
        return f

    @classmethod
    def constant(cls, value: float, semiring: Semiring = DEFAULT_SEMIRING) -> "TableFactor":
        """A factor with no arguments holding one stored value."""
        return cls((), value, semiring)

    @classmethod
    def _from_table(cls, arg_seq: Sequence[Variable], table: DenseTable, semiring: Semiring) -> "TableFactor":
        f = cls.__new__(cls)
        f.semiring = semiring
        f._arg_seq = tuple(arg_seq)
        f._args = frozenset(f._arg_seq)
        f._var_index = make_index_map(f._arg_seq)
        f._table = table
        return f

    # Accessors
    # ------------------------------------------------------------------

    @property
    def arguments(self) -> Domain:
        return self._args

    @property
    def domain(self) -> Domain:
        return self._args

    @property
    def arg_seq(self) -> Tuple[Variable, ...]:
        return self._arg_seq

    @property
    def var_index(self) -> Dict[Variable, int]:
        return dict(self._var_index)

    @property
    def table(self) -> DenseTable:
        return self._table

    @property
    def size(self) -> int:
        return self._table.size

    @property
    def log_space(self) -> bool:
        return self.semiring.log_space

    def values(self) -> np.ndarray:
        """Stored values in mixed-radix order."""
        return self._table.values()

    def assignments(self) -> Iterator[Assignment]:
        """All assignments to arg_seq, in the same order as values()."""
        for coord in iter_coordinates(self._table.shape):
            yield self.assignment(coord)

    def assignment(self, coord: Sequence[int]) -> Assignment:
        """Convert table coordinates to an assignment."""
        if len(coord) != len(self._arg_seq):
            raise PreconditionError(f"coordinate {tuple(coord)} does not match {len(self._arg_seq)} arguments")
        return {v: int(c) for v, c in zip(self._arg_seq, coord)}

    def _coord(self, a: Union[Mapping[Variable, int], Record]) -> Tuple[int, ...]:
        if isinstance(a, Record):
            return tuple(a.finite(v) for v in self._arg_seq)
        return tuple(int(a[v]) for v in self._arg_seq)

    def v(self, *index: Any) -> float:
        """
        Stored value at an assignment, a record, or direct coordinates.

        f.v({x: 0, y: 1}), f.v(record), f.v(0, 1), and f.v() for a constant.
        """
        if len(index) == 1 and isinstance(index[0], (Mapping, Record)):
            return self._table[self._coord(index[0])]
        return self._table[tuple(int(i) for i in index)]

    __call__ = v

    def logv(self, *index: Any) -> float:
        """Log of the represented value."""
        return float(self.semiring.to_log(self.v(*index)))

    def set_v(self, index: Union[Mapping[Variable, int], Sequence[int]], value: float) -> None:
        """Set the stored value at an assignment or coordinate tuple."""
        if isinstance(index, (Mapping, Record)):
            self._table[self._coord(index)] = value
        else:
            self._table[tuple(index)] = value

    def set_logv(self, index: Union[Mapping[Variable, int], Sequence[int]], value: float) -> None:
        """Set the represented value to exp(value)."""
        self.set_v(index, self.semiring.from_log(value))

    # Comparison
    # ------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TableFactor):
            return NotImplemented
        if self.semiring != other.semiring or self._args != other._args:
            return False
        if self._arg_seq == other._arg_seq:
            return self._table == other._table
        return TableFactor.combine_find(self, other, np.not_equal) is None

    def __ne__(self, other: object) -> bool:
        eq = self.__eq__(other)
        return eq if eq is NotImplemented else not eq

    __hash__ = None

    def __lt__(self, other: "TableFactor") -> bool:
        """Order by argument sets first, then by values in the union's natural order."""
        mine = tuple(v.id for v in ordered(self._args))
        theirs = tuple(v.id for v in ordered(other._args))
        if mine != theirs:
            return mine < theirs
        pair = TableFactor.combine_find(self, other, np.not_equal)
        return pair is not None and pair[0] < pair[1]

    def allclose(self, other: "TableFactor", rtol: float = 1e-9, atol: float = 1e-12) -> bool:
        """Assignment-keyed comparison within tolerance."""
        if self.semiring != other.semiring or self._args != other._args:
            return False
        return TableFactor.combine_find(
            self, other, lambda a, b: ~np.isclose(a, b, rtol=rtol, atol=atol, equal_nan=True)
        ) is None

    def __repr__(self) -> str:
        names = ", ".join(v.name for v in self._arg_seq)
        return f"TableFactor([{names}], {self.values().tolist()}, semiring={self.semiring.name})"

    # Copying and bulk updates
    # ------------------------------------------------------------------

    def copy(self) -> "TableFactor":
        return TableFactor._from_table(self._arg_seq, self._table.copy(), self.semiring)

    __copy__ = copy

    def __deepcopy__(self, memo: Dict[int, Any]) -> "TableFactor":
        return self.copy()

    def assign(self, other: "TableFactor") -> "TableFactor":
        """Make this factor equal to other, reusing storage when arg_seq matches."""
        if self._arg_seq == other._arg_seq:
            self._table.assign(other._table)
        else:
            self._arg_seq = other._arg_seq
            self._args = other._args
            self._var_index = dict(other._var_index)
            self._table = other._table.copy()
        self.semiring = other.semiring
        return self

    def _take(self, other: "TableFactor") -> None:
        """Adopt the fields of a freshly built factor (no copy)."""
        self._arg_seq = other._arg_seq
        self._args = other._args
        self._var_index = other._var_index
        self._table = other._table
        self.semiring = other.semiring

    def swap(self, other: "TableFactor") -> None:
        """Exchange the contents of two factors."""
        mine = (self._arg_seq, self._args, self._var_index, self._table, self.semiring)
        self._take(other)
        other._arg_seq, other._args, other._var_index, other._table, other.semiring = mine

    def fill(self, value: float) -> "TableFactor":
        """Assign a stored value to every entry."""
        self._table.fill(value)
        return self

    def update(self, fn: Callable[[np.ndarray], np.ndarray]) -> "TableFactor":
        """Replace every stored value x with fn(x) (vectorized)."""
        self._table.transform(fn)
        return self

    def subst_args(self, var_map: Mapping[Variable, Variable]) -> "TableFactor":
        """
        Rename arguments in place. Each replacement must have the same arity;
        variables missing from var_map are kept.
        """
        new_seq = []
        for v in self._arg_seq:
            w = var_map.get(v, v)
            if w.arity != v.arity:
                raise PreconditionError(f"subst_args: {w!r} does not have the arity of {v!r}")
            new_seq.append(w)
        if len(set(new_seq)) != len(new_seq):
            raise PreconditionError(f"subst_args: substitution merges arguments {new_seq}")
        self._arg_seq = tuple(new_seq)
        self._args = frozenset(new_seq)
        self._var_index = make_index_map(new_seq)
        return self

    def permute(self, arg_seq: Sequence[Variable]) -> "TableFactor":
        """Copy of this factor laid out in a different argument order."""
        arg_seq = tuple(arg_seq)
        if frozenset(arg_seq) != self._args or len(arg_seq) != len(self._arg_seq):
            raise PreconditionError(f"permute: {arg_seq} is not an ordering of the factor arguments")
        axes = [self._var_index[v] for v in arg_seq]
        data = np.transpose(self._table.data, axes=axes).copy()
        return TableFactor._from_table(arg_seq, DenseTable.wrap(data), self.semiring)

    def in_space(self, semiring: Semiring) -> "TableFactor":
        """Copy of this factor with values converted to another weight space."""
        if semiring == self.semiring:
            return self.copy()
        data = semiring.from_log(self.semiring.to_log(self._table.data))
        return TableFactor._from_table(self._arg_seq, DenseTable.wrap(np.array(data, dtype=np.float64)), semiring)

    def to_log_space(self) -> "TableFactor":
        """Elementwise logarithm into a canonical (log-space) factor."""
        return self.in_space(LOGPROB)

    def to_real_space(self) -> "TableFactor":
        """Elementwise exponential into a real-space factor."""
        return self.in_space(PROB)

    # Combine
    # ------------------------------------------------------------------

    @staticmethod
    def combine(x: "TableFactor", y: "TableFactor", op: OpLike) -> "TableFactor":
        """
        Combine two factors elementwise over the union of their domains.

        The union is laid out in canonical (id) order, so combining the same
        pair twice gives structurally identical results.
        """
        _check_same_space(x, y)
        bop = _resolve(op, x.semiring)
        args = ordered(x._args | y._args)
        var_index = make_index_map(args)
        shape = tuple(v.arity for v in args)
        table = join(
            shape,
            x._table,
            y._table,
            make_dim_map(x._arg_seq, var_index),
            make_dim_map(y._arg_seq, var_index),
            bop,
        )
        return TableFactor._from_table(args, table, x.semiring)

    @staticmethod
    def combine_collapse(
        x: "TableFactor",
        y: "TableFactor",
        join_op: BinaryOperator,
        agg_op: BinaryOperator,
        seed: float,
    ) -> float:
        """Combine two factors and reduce the result to a scalar in one pass."""
        if x._args == y._args:
            args = x._arg_seq
            var_index = x._var_index
        else:
            args = ordered(x._args | y._args)
            var_index = make_index_map(args)
        result = join_aggregate(
            x._table,
            y._table,
            make_dim_map(x._arg_seq, var_index),
            make_dim_map(y._arg_seq, var_index),
            tuple(v.arity for v in args),
            join_op,
            agg_op,
            seed,
        )
        return float(result.data)

    @staticmethod
    def combine_find(
        x: "TableFactor",
        y: "TableFactor",
        predicate: Callable[[np.ndarray, np.ndarray], np.ndarray],
    ) -> Optional[Tuple[float, float]]:
        """
        First pair of values (in the union's natural order) satisfying the
        predicate, or None.
        """
        args = ordered(x._args | y._args)
        var_index = make_index_map(args)
        return find_first(
            x._table,
            y._table,
            make_dim_map(x._arg_seq, var_index),
            make_dim_map(y._arg_seq, var_index),
            tuple(v.arity for v in args),
            predicate,
        )

    def combine_in(self, y: Union["TableFactor", float], op: OpLike) -> "TableFactor":
        """
        Combine y into this factor.

        When this factor's domain already includes y's, the result is written
        into the existing storage. Otherwise the full combine runs and this
        factor's table, arg_seq and var_index are replaced. A number y is a
        represented (real) value applied to every entry.
        """
        bop = _resolve(op, self.semiring)
        if not isinstance(y, TableFactor):
            c = self.semiring.from_real(float(y))
            self._table.transform(lambda d: bop(d, c))
            return self
        _check_same_space(self, y)
        if self._args >= y._args:
            self._table.join_with(y._table, make_dim_map(y._arg_seq, self._var_index), bop)
        else:
            logger.debug("combine_in: extending %d arguments with %d new", len(self._args), len(y._args - self._args))
            self._take(TableFactor.combine(self, y, bop))
        return self

    def _combine_any(self, other: Union["TableFactor", float], op: Op) -> "TableFactor":
        if isinstance(other, TableFactor):
            return TableFactor.combine(self, other, op)
        return self.copy().combine_in(other, op)

    def __add__(self, other: Union["TableFactor", float]) -> "TableFactor":
        return self._combine_any(other, Op.SUM)

    def __sub__(self, other: Union["TableFactor", float]) -> "TableFactor":
        return self._combine_any(other, Op.MINUS)

    def __mul__(self, other: Union["TableFactor", float]) -> "TableFactor":
        return self._combine_any(other, Op.PRODUCT)

    def __truediv__(self, other: Union["TableFactor", float]) -> "TableFactor":
        return self._combine_any(other, Op.DIVIDES)

    def __and__(self, other: "TableFactor") -> "TableFactor":
        return self._combine_any(other, Op.AND)

    def __or__(self, other: "TableFactor") -> "TableFactor":
        return self._combine_any(other, Op.OR)

    __radd__ = __add__
    __rmul__ = __mul__

    def __iadd__(self, other: Union["TableFactor", float]) -> "TableFactor":
        return self.combine_in(other, Op.SUM)

    def __isub__(self, other: Union["TableFactor", float]) -> "TableFactor":
        return self.combine_in(other, Op.MINUS)

    def __imul__(self, other: Union["TableFactor", float]) -> "TableFactor":
        return self.combine_in(other, Op.PRODUCT)

    def __itruediv__(self, other: Union["TableFactor", float]) -> "TableFactor":
        return self.combine_in(other, Op.DIVIDES)

    def __iand__(self, other: "TableFactor") -> "TableFactor":
        return self.combine_in(other, Op.AND)

    def __ior__(self, other: "TableFactor") -> "TableFactor":
        return self.combine_in(other, Op.OR)

    def max_in(self, other: "TableFactor") -> "TableFactor":
        """Elementwise maximum with other, in place."""
        return self.combine_in(other, Op.MAX)

    def min_in(self, other: "TableFactor") -> "TableFactor":
        """Elementwise minimum with other, in place."""
        return self.combine_in(other, Op.MIN)

    # Collapse
    # ------------------------------------------------------------------

    def collapse(
        self,
        op: OpLike,
        retained: AbstractSet[Variable],
        seed: Optional[float] = None,
        out: Optional["TableFactor"] = None,
    ) -> "TableFactor":
        """
        Reduce this factor onto the retained variables.

        For A(i, j, k), A.collapse(Op.SUM, {i}) computes B(i) = sum_{j,k} A(i, j, k).
        Retained variables keep their order in arg_seq.

        Args:
            op: Associative reduction (MINUS and DIVIDES are refused)
            retained: Variables to keep; others are reduced away
            seed: Initial value of each output entry (defaults to op identity)
            out: Optional destination, reused when its arg_seq already matches

        Returns:
            The collapsed factor (out, when given)
        """
        bop = _resolve(op, self.semiring)
        bop.require_reducible()
        new_seq = [v for v in self._arg_seq if v in retained]

        if len(new_seq) == len(self._arg_seq):
            if out is None:
                return self.copy()
            return out.assign(self)

        dim_map = make_aggregate_map(self._arg_seq, new_seq)
        if out is None:
            table = aggregate(self._table, dim_map, bop, seed)
            return TableFactor._from_table(new_seq, table, self.semiring)

        if out._arg_seq != tuple(new_seq):
            logger.debug("collapse: reallocating destination for %d arguments", len(new_seq))
            out._initialize(new_seq, 0.0)
        out.semiring = self.semiring
        aggregate(self._table, dim_map, bop, seed, out=out._table)
        return out

    def collapse_all(self, op: OpLike, seed: Optional[float] = None) -> float:
        """Reduce every entry to one stored value."""
        bop = _resolve(op, self.semiring)
        return self._table.accumulate(bop, seed)

    def marginal(self, retain: AbstractSet[Variable], out: Optional["TableFactor"] = None) -> "TableFactor":
        """Sum out every variable not in retain."""
        return self.collapse(Op.SUM, retain, out=out)

    def maximum(self, retain: AbstractSet[Variable]) -> "TableFactor":
        """Maximum over the other variables for each assignment to retain."""
        return self.collapse(Op.MAX, retain)

    def minimum(self, retain: AbstractSet[Variable]) -> "TableFactor":
        """Minimum over the other variables for each assignment to retain."""
        return self.collapse(Op.MIN, retain)

    def max_value(self) -> float:
        """Largest represented value."""
        return float(self.semiring.to_real(self.collapse_all(Op.MAX)))

    def min_value(self) -> float:
        """Smallest represented value."""
        return float(self.semiring.to_real(self.collapse_all(Op.MIN)))

    def log_norm_constant(self) -> float:
        """Log of the partition sum."""
        return float(self.semiring.to_log(self._partition()))

    def norm_constant(self) -> float:
        """Partition sum of the represented values."""
        return float(self.semiring.to_real(self._partition()))

    def is_normalizable(self) -> bool:
        return self._normalizable(self._partition())

    def _partition(self) -> float:
        return self.semiring.add_reduce(self._table.data)

    def _normalizable(self, z: float) -> bool:
        # A finite log partition sum is positive and finite even when exp() overflows
        if self.log_space:
            return bool(np.isfinite(z))
        return bool(np.isfinite(z) and z > 0)

    # Restrict
    # ------------------------------------------------------------------

    def _retained(self, has_value: Callable[[Variable], bool], subset: Optional[AbstractSet[Variable]], strict: bool) -> List[Variable]:
        retained = []
        for v in self._arg_seq:
            if subset is not None and v not in subset:
                retained.append(v)
            elif not has_value(v):
                if strict:
                    raise InvalidArgumentError(
                        f"restrict was given strict=True, but argument {v.name!r} "
                        f"of the restricted set has no value"
                    )
                retained.append(v)
        return retained

    def _restrict_with(self, retained: List[Variable], restrict_map: Tuple[Optional[int], ...], out: Optional["TableFactor"]) -> "TableFactor":
        if len(retained) == len(self._arg_seq):
            if out is None:
                return self.copy()
            return out.assign(self)
        if out is None:
            return TableFactor._from_table(retained, table_restrict(self._table, restrict_map), self.semiring)
        if out._arg_seq != tuple(retained):
            logger.debug("restrict: reallocating destination for %d arguments", len(retained))
            out._initialize(retained, 0.0)
        out.semiring = self.semiring
        table_restrict(self._table, restrict_map, out=out._table)
        return out

    def restrict(
        self,
        a: Mapping[Variable, int],
        subset: Optional[AbstractSet[Variable]] = None,
        strict: bool = False,
        out: Optional["TableFactor"] = None,
    ) -> "TableFactor":
        """
        Condition on the values an assignment gives to this factor's arguments.

        Args:
            a: Variable -> value (may contain unrelated variables)
            subset: When given, only arguments in subset are restricted
            strict: Require that every argument eligible for restriction
                    (in subset, if given) has a value in a
            out: Optional destination, reused when its arg_seq already matches

        Returns:
            Factor over the unassigned arguments (out, when given)

        Raises:
            InvalidArgumentError: strict is set and an eligible argument is unassigned
        """
        retained = self._retained(lambda v: v in a, subset, strict)
        return self._restrict_with(retained, make_restrict_map(self._arg_seq, a, subset), out)

    def restrict_record(
        self,
        r: Record,
        subset: Optional[AbstractSet[Variable]] = None,
        strict: bool = False,
        out: Optional["TableFactor"] = None,
    ) -> "TableFactor":
        """Same as restrict, reading values from a (possibly sparse) record."""
        retained = self._retained(r.has_variable, subset, strict)
        return self._restrict_with(retained, make_record_restrict_map(self._arg_seq, r, subset), out)

    # Probability-level operations
    # ------------------------------------------------------------------

    def normalize(self) -> "TableFactor":
        """
        Scale the factor in place so its represented values sum to one.

        Raises:
            NormalizationError: the partition sum is not strictly positive and finite
        """
        z = self._partition()
        if not self._normalizable(z):
            zr = float(self.semiring.to_real(z))
            logger.warning("Unnormalizable factor: %r", self)
            names = [v.name for v in self._arg_seq]
            raise NormalizationError(f"factor over {names} is not normalizable (partition sum {zr})", value=zr)
        self._table.transform(self.semiring.normalize)
        return self

    def conditional(self, given: AbstractSet[Variable]) -> "TableFactor":
        """If this factor is P(A, B), return P(A | B) for B = given."""
        given = frozenset(given)
        if not given <= self._args:
            raise PreconditionError(f"conditional: {sorted(v.name for v in given - self._args)} not in factor arguments")
        cond = self.copy()
        cond.combine_in(self.marginal(given), Op.DIVIDES)
        return cond

    def entropy(self, base: float = math.e) -> float:
        """Entropy of the represented distribution in the given log base."""
        terms = DenseTable.wrap(entropy_terms(self._table.data, self.log_space))
        return terms.accumulate(REAL_OPERATORS[Op.SUM], 0.0) / math.log(base)

    def relative_entropy(self, q: "TableFactor") -> float:
        """
        KL divergence sum_x p(x) log(p(x) / q(x)) from this factor p to q.

        Neither factor is normalized here. The result is clamped at zero.
        """
        if self._args != q._args:
            raise PreconditionError("relative_entropy requires factors over the same arguments")
        q = _in_space(q, self.semiring)
        res = TableFactor.combine_collapse(self, q, kld_operator(self.log_space), REAL_OPERATORS[Op.SUM], 0.0)
        return max(res, 0.0)

    def cross_entropy(self, q: "TableFactor") -> float:
        """-sum_x p(x) log q(x)."""
        if self._args != q._args:
            raise PreconditionError("cross_entropy requires factors over the same arguments")
        q = _in_space(q, self.semiring)
        return TableFactor.combine_collapse(self, q, cross_entropy_operator(self.log_space), REAL_OPERATORS[Op.SUM], 0.0)

    def js_divergence(self, q: "TableFactor") -> float:
        """Jensen-Shannon divergence with the midpoint m = (p + q) / 2."""
        if self._args != q._args:
            raise PreconditionError("js_divergence requires factors over the same arguments")
        q = _in_space(q, self.semiring)
        m = TableFactor.combine(self, q, Op.SUM)
        m *= 0.5
        return (self.relative_entropy(m) + q.relative_entropy(m)) / 2.0

    def mutual_information(self, fd1: AbstractSet[Variable], fd2: AbstractSet[Variable]) -> float:
        """
        Mutual information between two disjoint sets of this factor's arguments.

        When the factor has more arguments than fd1 ∪ fd2 it is first
        marginalized to that union.
        """
        fd1 = frozenset(fd1)
        fd2 = frozenset(fd2)
        if fd1 & fd2:
            raise PreconditionError("mutual_information requires disjoint variable sets")
        if not (fd1 <= self._args and fd2 <= self._args):
            raise PreconditionError("mutual_information variable sets must be factor arguments")
        joint = self.marginal(fd1 | fd2) if len(self._args) > len(fd1) + len(fd2) else self
        independent = TableFactor.combine(joint.marginal(fd1), joint.marginal(fd2), Op.PRODUCT)
        return TableFactor.combine_collapse(
            joint, independent, kld_operator(self.log_space), REAL_OPERATORS[Op.SUM], 0.0
        )

    def sample(self, rng: Optional[np.random.Generator] = None) -> Assignment:
        """
        Draw an assignment, assuming the factor is a normalized distribution.

        Inverse-CDF over values() order. If rounding leaves the draw beyond
        the cumulative total, the last assignment is returned.
        """
        if rng is None:
            rng = np.random.default_rng()
        r = rng.uniform(0.0, 1.0)
        cdf = np.cumsum(np.asarray(self.semiring.to_real(self.values()), dtype=np.float64))
        idx = int(np.searchsorted(cdf, r, side="right"))
        if idx >= self.size:
            idx = self.size - 1
        return self.assignment(coordinate(idx, self._table.shape))

    # Reshaping
    # ------------------------------------------------------------------

    def unroll(self, universe: Universe) -> Tuple[Variable, "TableFactor"]:
        """
        Reinterpret this factor as a factor over one new variable.

        The new variable, created in universe, has the product of the
        arities; the flat values are kept in the same order.

        Returns:
            (new variable, new factor)
        """
        new_v = universe.new_finite_variable(num_elements(self._table.shape))
        return new_v, TableFactor.from_values([new_v], self.values(), self.semiring)

    def roll_up(self, orig_args: Sequence[Variable]) -> "TableFactor":
        """Inverse of unroll: restore the factor over its original arguments."""
        if len(self._arg_seq) != 1:
            raise PreconditionError(f"roll_up needs a factor over one variable, got {len(self._arg_seq)}")
        n = num_elements([v.arity for v in orig_args])
        if n != self._arg_seq[0].arity:
            raise PreconditionError(f"roll_up: original arities multiply to {n}, not {self._arg_seq[0].arity}")
        return TableFactor.from_values(orig_args, self.values(), self.semiring)

    def bp_msg_derivative_ub(self, x: Variable, y: Variable) -> float:
        """
        Upper bound on the derivative of a BP message from x to y
        (Mooij and Kappen). Iterates over all pairs of assignments, so it is
        only meant for small factors.
        """
        v = self._var_index[x]
        w = self._var_index[y]
        data = np.asarray(self.semiring.to_real(self._table.data), dtype=np.float64)
        coords = list(iter_coordinates(self._table.shape))
        result = 1.0
        with np.errstate(divide="ignore", invalid="ignore"):
            for a_b_g, ap_bp_gp in itertools.product(coords, coords):
                if a_b_g[v] == ap_bp_gp[v] or a_b_g[w] == ap_bp_gp[w]:
                    continue
                ap_b_g = list(a_b_g)
                ap_b_g[v] = ap_bp_gp[v]
                a_bp_gp = list(ap_bp_gp)
                a_bp_gp[v] = a_b_g[v]
                ratio = data[a_b_g] * data[ap_bp_gp] / (data[tuple(ap_b_g)] * data[tuple(a_bp_gp)])
                result = max(result, float(ratio))
        return math.tanh(math.log(result) * 0.25)


def _check_same_space(x: TableFactor, y: TableFactor) -> None:
    if x.semiring != y.semiring:
        raise PreconditionError(
            f"cannot combine factors from different weight spaces ({x.semiring.name} and {y.semiring.name})"
        )


def _in_space(f: TableFactor, semiring: Semiring) -> TableFactor:
    return f if f.semiring == semiring else f.in_space(semiring)
