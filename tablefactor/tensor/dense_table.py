"""
tablefactor/tensor/dense_table.py

Dense n-dimensional tables and the generic algorithms over them.

A DenseTable knows nothing about variables. The algorithms are driven by
dimension maps, one entry per *source* dimension:

- join map:      target dimension the source dimension is read into
- aggregate map: output position, or None when the dimension is summed out
- restrict map:  fixed value, or None (RETAINED) when the dimension is kept

Core operations:
- join:           target[c] = op(A[proj_a(c)], B[proj_b(c)])
- aggregate:      ⊕-reduce a table onto a subset of its dimensions
- join_aggregate: fused join + reduce that never builds the full join
- restrict:       fix some dimensions to values, keeping the rest
- find_first:     first pair (in flat order) satisfying a predicate

Malformed maps are precondition violations (PreconditionError).
"""

from __future__ import annotations

from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from tablefactor.algebra.operators import BinaryOperator
from tablefactor.errors import PreconditionError
from tablefactor.tensor.shape import (
    FLAT_ORDER,
    Coordinate,
    Shape,
    check_coordinate,
    coordinate,
    iter_coordinates,
    num_elements,
)

DimMap = Tuple[Optional[int], ...]

# Restrict-map marker for a dimension that is kept
RETAINED = None

_EINSUM_LETTERS = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"


class DenseTable:
    """
    A dense table of values over a fixed shape.

    Attributes:
        data: ndarray with one axis per dimension
    """

    __slots__ = ("data",)

    def __init__(self, shape: Sequence[int] = (), default: Any = 0.0, dtype: Any = np.float64):
        self.data = np.full(tuple(int(s) for s in shape), default, dtype=dtype)

    @classmethod
    def wrap(cls, data: np.ndarray) -> "DenseTable":
        """Create a table around an existing array (no copy)."""
        table = cls.__new__(cls)
        table.data = np.asarray(data)
        return table

    @classmethod
    def from_values(cls, shape: Sequence[int], values: Sequence[Any], dtype: Any = np.float64) -> "DenseTable":
        """
        Create a table from a flat value sequence in mixed-radix order.

        The sequence length must equal the product of shape.
        """
        shape = tuple(int(s) for s in shape)
        arr = np.asarray(values, dtype=dtype).ravel()
        if arr.size != num_elements(shape):
            raise PreconditionError(
                f"DenseTable.from_values: got {arr.size} values for shape {shape} "
                f"({num_elements(shape)} elements)"
            )
        return cls.wrap(arr.reshape(shape, order=FLAT_ORDER).copy(order="C"))

    # Accessors
    # ------------------------------------------------------------------

    @property
    def shape(self) -> Shape:
        return tuple(self.data.shape)

    @property
    def ndim(self) -> int:
        return self.data.ndim

    @property
    def size(self) -> int:
        return int(self.data.size)

    def values(self) -> np.ndarray:
        """Flat copy of the values in mixed-radix order."""
        return self.data.ravel(order=FLAT_ORDER).copy()

    def set_values(self, values: Sequence[Any]) -> None:
        """Overwrite all entries from a flat sequence in mixed-radix order."""
        arr = np.asarray(values, dtype=self.data.dtype).ravel()
        if arr.size != self.size:
            raise PreconditionError(f"set_values: got {arr.size} values for {self.size} entries")
        self.data[...] = arr.reshape(self.shape, order=FLAT_ORDER)

    def indices(self) -> Iterator[Coordinate]:
        """All coordinates in mixed-radix order."""
        return iter_coordinates(self.shape)

    def coordinate(self, index: int) -> Coordinate:
        """Coordinate at a linear position."""
        return coordinate(index, self.shape)

    def __getitem__(self, coord: Sequence[int]) -> float:
        coord = tuple(coord)
        check_coordinate(coord, self.shape)
        return self.data[coord].item()

    def __setitem__(self, coord: Sequence[int], value: Any) -> None:
        coord = tuple(coord)
        check_coordinate(coord, self.shape)
        self.data[coord] = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DenseTable):
            return NotImplemented
        return self.shape == other.shape and bool(np.array_equal(self.data, other.data))

    def __ne__(self, other: object) -> bool:
        eq = self.__eq__(other)
        return eq if eq is NotImplemented else not eq

    __hash__ = None

    def __repr__(self) -> str:
        return f"DenseTable(shape={self.shape}, values={self.values().tolist()})"

    # Elementwise updates
    # ------------------------------------------------------------------

    def copy(self) -> "DenseTable":
        return DenseTable.wrap(self.data.copy())

    def assign(self, other: "DenseTable") -> None:
        """Copy other's values into this table, reusing storage when shapes agree."""
        if self.shape == other.shape and self.data.dtype == other.data.dtype:
            np.copyto(self.data, other.data)
        else:
            self.data = other.data.copy()

    def fill(self, value: Any) -> None:
        self.data.fill(value)

    def transform(self, fn: Callable[[np.ndarray], np.ndarray]) -> None:
        """Replace every entry x with fn(x) (vectorized)."""
        self.data[...] = fn(self.data)

    def join_with(self, other: "DenseTable", other_map: Sequence[int], op: BinaryOperator) -> None:
        """
        In-place join: self[c] = op(self[c], other[proj(c)]).

        other_map maps each dimension of other to a dimension of self.
        """
        view = _align(other.data, tuple(other_map), self.shape)
        self.data[...] = op(self.data, view)

    def accumulate(self, op: BinaryOperator, seed: Any = None) -> float:
        """Reduce every entry to a scalar."""
        out = op.reduce(self.data, tuple(range(self.ndim)), seed)
        return np.asarray(out).item()


# Dimension-map plumbing
# ----------------------------------------------------------------------

def _check_join_map(dim_map: Tuple[int, ...], src_shape: Shape, target_shape: Shape) -> None:
    if len(dim_map) != len(src_shape):
        raise PreconditionError(f"dimension map {dim_map} does not match source rank {len(src_shape)}")
    if len(set(dim_map)) != len(dim_map):
        raise PreconditionError(f"dimension map {dim_map} repeats a target dimension")
    for i, t in enumerate(dim_map):
        if t is None or not 0 <= t < len(target_shape):
            raise PreconditionError(f"dimension map {dim_map} references target dimension {t} out of range")
        if src_shape[i] != target_shape[t]:
            raise PreconditionError(
                f"source dimension {i} has size {src_shape[i]} but target dimension {t} has size {target_shape[t]}"
            )


def _align(arr: np.ndarray, dim_map: Tuple[int, ...], target_shape: Shape) -> np.ndarray:
    """
    Return a broadcastable view of arr with its axes in target order.

    Source dimension i is moved to target axis dim_map[i]; target axes not
    covered by the map become singleton dimensions.
    """
    arr = np.asarray(arr)
    target_shape = tuple(target_shape)
    _check_join_map(dim_map, tuple(arr.shape), target_shape)

    # Source dims in the order their target positions appear
    order = sorted(range(arr.ndim), key=lambda i: dim_map[i])
    view = np.transpose(arr, axes=order) if order != list(range(arr.ndim)) else arr

    reshape_shape = [1] * len(target_shape)
    for i in order:
        reshape_shape[dim_map[i]] = arr.shape[i]
    return view.reshape(tuple(reshape_shape))


def _check_result_map(result_map: Tuple[Optional[int], ...], ndim: int) -> List[int]:
    """Validate an aggregate map and return the source dims ordered by output position."""
    if len(result_map) != ndim:
        raise PreconditionError(f"aggregate map {result_map} does not match source rank {ndim}")
    kept = [(p, i) for i, p in enumerate(result_map) if p is not None]
    positions = sorted(p for p, _ in kept)
    if positions != list(range(len(kept))):
        raise PreconditionError(f"aggregate map {result_map} output positions are not 0..{len(kept) - 1}")
    return [i for _, i in sorted(kept)]


def _reduce_to(
    x: np.ndarray,
    result_map: Tuple[Optional[int], ...],
    op: BinaryOperator,
    seed: Any,
) -> np.ndarray:
    """⊕-reduce the None-mapped axes of x and order the rest by output position."""
    kept = _check_result_map(result_map, x.ndim)
    summed = [i for i in range(x.ndim) if result_map[i] is None]
    perm = kept + summed
    if perm != list(range(x.ndim)):
        x = np.transpose(x, axes=perm)
    return op.reduce(x, tuple(range(len(kept), x.ndim)), seed)


def _drop_dim(arr: np.ndarray, dim_map: Tuple[int, ...], d: int, k: int) -> Tuple[np.ndarray, Tuple[int, ...]]:
    """Fix target dimension d to value k in a join operand; renumber the map."""
    new_map = []
    index: List[Any] = []
    for t in dim_map:
        if t == d:
            index.append(k)
        else:
            index.append(slice(None))
            new_map.append(t - 1 if t > d else t)
    return arr[tuple(index)], tuple(new_map)


# Generic algorithms
# ----------------------------------------------------------------------

def join(
    target_shape: Sequence[int],
    a: DenseTable,
    b: DenseTable,
    map_a: Sequence[int],
    map_b: Sequence[int],
    op: BinaryOperator,
    out: Optional[DenseTable] = None,
) -> DenseTable:
    """
    Join two tables over target_shape.

    target[c] = op(a[project(c, map_a)], b[project(c, map_b)])

    Args:
        target_shape: Shape of the result
        a, b: Operand tables
        map_a, map_b: Target dimension for each operand dimension
        op: Binary operator
        out: Optional destination whose storage is reused when its shape matches

    Returns:
        The joined table (out, when given)
    """
    target_shape = tuple(int(s) for s in target_shape)
    av = _align(a.data, tuple(map_a), target_shape)
    bv = _align(b.data, tuple(map_b), target_shape)
    result = np.broadcast_to(op(av, bv), target_shape)
    return _store(result, out)


def aggregate(
    table: DenseTable,
    dim_map: Sequence[Optional[int]],
    op: BinaryOperator,
    seed: Any = None,
    out: Optional[DenseTable] = None,
) -> DenseTable:
    """
    Reduce a table onto a subset of its dimensions.

    Args:
        table: Source table
        dim_map: Output position for each source dimension, None to sum it out
        op: Associative reduction operator
        seed: Initial value of every output entry (defaults to op.identity)
        out: Optional destination whose storage is reused when its shape matches

    Returns:
        Table of rank = number of kept dimensions
    """
    op.require_reducible()
    result = _reduce_to(table.data, tuple(dim_map), op, seed)
    return _store(result, out)


def join_aggregate(
    a: DenseTable,
    b: DenseTable,
    map_a: Sequence[int],
    map_b: Sequence[int],
    target_shape: Sequence[int],
    join_op: BinaryOperator,
    agg_op: BinaryOperator,
    seed: Any = None,
    result_map: Optional[Sequence[Optional[int]]] = None,
) -> DenseTable:
    """
    Fused join + aggregate over the cross product of two tables.

    The join over target_shape is reduced with agg_op onto the dimensions
    named by result_map (output position per target dimension, None to
    sum out; when omitted everything is summed out and the result is a
    scalar table). The join is evaluated one slab of a summed-out dimension
    at a time, so the full intermediate is never built.
    """
    agg_op.require_reducible()
    target_shape = tuple(int(s) for s in target_shape)
    map_a = tuple(map_a)
    map_b = tuple(map_b)
    if result_map is None:
        result_map = (None,) * len(target_shape)
    result_map = tuple(result_map)
    _check_result_map(result_map, len(target_shape))
    _check_join_map(map_a, tuple(a.data.shape), target_shape)
    _check_join_map(map_b, tuple(b.data.shape), target_shape)
    if seed is None:
        seed = agg_op.identity

    if (
        join_op.apply is np.multiply
        and agg_op.apply is np.add
        and agg_op.reducer is None
        and len(target_shape) <= len(_EINSUM_LETTERS)
        and set(map_a) | set(map_b) == set(range(len(target_shape)))
    ):
        letters = _EINSUM_LETTERS
        sub_a = "".join(letters[t] for t in map_a)
        sub_b = "".join(letters[t] for t in map_b)
        kept = _check_result_map(result_map, len(target_shape))
        sub_out = "".join(letters[t] for t in kept)
        reduced = np.einsum(f"{sub_a},{sub_b}->{sub_out}", a.data, b.data)
        return DenseTable.wrap(np.asarray(agg_op(seed, reduced), dtype=np.float64))

    summed = [t for t, p in enumerate(result_map) if p is None]
    if not summed:
        joined = join(target_shape, a, b, map_a, map_b, join_op).data
        return DenseTable.wrap(_reduce_to(joined, result_map, agg_op, seed))

    # Slice along the largest summed-out dimension
    d = max(summed, key=lambda t: target_shape[t])
    sub_shape = target_shape[:d] + target_shape[d + 1:]
    sub_result = result_map[:d] + result_map[d + 1:]
    kept_shape = tuple(target_shape[t] for t in _check_result_map(result_map, len(target_shape)))
    acc = np.full(kept_shape, seed, dtype=np.float64)
    for k in range(target_shape[d]):
        sa, sma = _drop_dim(a.data, map_a, d, k)
        sb, smb = _drop_dim(b.data, map_b, d, k)
        slab = np.broadcast_to(join_op(_align(sa, sma, sub_shape), _align(sb, smb, sub_shape)), sub_shape)
        partial = _reduce_to(np.asarray(slab), sub_result, agg_op, None)
        acc = agg_op(acc, partial)
    return DenseTable.wrap(np.asarray(acc))


def restrict(
    table: DenseTable,
    restrict_map: Sequence[Optional[int]],
    out: Optional[DenseTable] = None,
) -> DenseTable:
    """
    Fix some dimensions to values.

    Args:
        table: Source table
        restrict_map: Fixed value per source dimension, or RETAINED to keep it
        out: Optional destination whose storage is reused when its shape matches

    Returns:
        Table over the kept dimensions, in source order
    """
    restrict_map = tuple(restrict_map)
    if len(restrict_map) != table.ndim:
        raise PreconditionError(f"restrict map {restrict_map} does not match table rank {table.ndim}")
    index: List[Any] = []
    for d, v in enumerate(restrict_map):
        if v is RETAINED:
            index.append(slice(None))
        else:
            if not 0 <= v < table.shape[d]:
                raise PreconditionError(f"restrict value {v} out of range for dimension {d} (size {table.shape[d]})")
            index.append(int(v))
    return _store(table.data[tuple(index)], out)


def find_first(
    a: DenseTable,
    b: DenseTable,
    map_a: Sequence[int],
    map_b: Sequence[int],
    target_shape: Sequence[int],
    predicate: Callable[[np.ndarray, np.ndarray], np.ndarray],
) -> Optional[Tuple[float, float]]:
    """
    Traverse the join of a and b in flat order and return the first pair
    (a_value, b_value) for which predicate holds, or None.

    The traversal proceeds one slab of the slowest dimension at a time and
    stops at the first slab containing a match.
    """
    target_shape = tuple(int(s) for s in target_shape)
    map_a = tuple(map_a)
    map_b = tuple(map_b)
    _check_join_map(map_a, tuple(a.data.shape), target_shape)
    _check_join_map(map_b, tuple(b.data.shape), target_shape)

    if not target_shape:
        slabs = [(a.data, map_a, b.data, map_b, ())]
    else:
        d = len(target_shape) - 1
        sub_shape = target_shape[:-1]
        slabs = (
            _drop_dim(a.data, map_a, d, k) + _drop_dim(b.data, map_b, d, k) + (sub_shape,)
            for k in range(target_shape[d])
        )

    for sa, sma, sb, smb, shape in slabs:
        av = np.broadcast_to(_align(sa, sma, shape), shape).ravel(order=FLAT_ORDER)
        bv = np.broadcast_to(_align(sb, smb, shape), shape).ravel(order=FLAT_ORDER)
        hits = np.asarray(predicate(av, bv), dtype=bool)
        if hits.any():
            i = int(np.argmax(hits))
            return av[i].item(), bv[i].item()
    return None


def _store(result: np.ndarray, out: Optional[DenseTable]) -> DenseTable:
    result = np.asarray(result)
    if out is None:
        return DenseTable.wrap(np.array(result, dtype=np.float64))
    if out.shape == tuple(result.shape):
        np.copyto(out.data, result)
    else:
        out.data = np.array(result, dtype=np.float64)
    return out
