"""
tablefactor/tensor/shape.py

Shape and coordinate algebra.

Flat layout convention: mixed-radix with the FIRST dimension changing
fastest (dimension 0 is the least significant digit). For shape (2, 2) the
linear order is (0,0), (1,0), (0,1), (1,1). This matches numpy order="F".
"""

from __future__ import annotations

from typing import Iterator, Sequence, Tuple

from tablefactor.errors import PreconditionError

Shape = Tuple[int, ...]
Coordinate = Tuple[int, ...]

# numpy memory order implementing the convention above
FLAT_ORDER = "F"


def num_elements(shape: Sequence[int]) -> int:
    """Product of the dimension sizes (1 for the empty shape)."""
    n = 1
    for s in shape:
        n *= int(s)
    return n


def check_coordinate(coord: Sequence[int], shape: Sequence[int]) -> None:
    """Raise PreconditionError unless 0 <= coord[d] < shape[d] for all d."""
    if len(coord) != len(shape):
        raise PreconditionError(f"coordinate {tuple(coord)} has rank {len(coord)}, shape has rank {len(shape)}")
    for d, (c, s) in enumerate(zip(coord, shape)):
        if not 0 <= c < s:
            raise PreconditionError(f"coordinate {tuple(coord)} out of range in dimension {d} (size {s})")


def linear_index(coord: Sequence[int], shape: Sequence[int]) -> int:
    """Linear position of coord in mixed-radix order."""
    check_coordinate(coord, shape)
    index = 0
    stride = 1
    for c, s in zip(coord, shape):
        index += c * stride
        stride *= s
    return index


def coordinate(index: int, shape: Sequence[int]) -> Coordinate:
    """Inverse of linear_index."""
    n = num_elements(shape)
    if not 0 <= index < n:
        raise PreconditionError(f"linear index {index} out of range for shape {tuple(shape)}")
    out = []
    for s in shape:
        out.append(index % s)
        index //= s
    return tuple(out)


def iter_coordinates(shape: Sequence[int]) -> Iterator[Coordinate]:
    """Enumerate all coordinates of shape in mixed-radix order."""
    shape = tuple(int(s) for s in shape)
    if any(s == 0 for s in shape):
        return
    coord = [0] * len(shape)
    while True:
        yield tuple(coord)
        d = 0
        while d < len(shape):
            coord[d] += 1
            if coord[d] < shape[d]:
                break
            coord[d] = 0
            d += 1
        if d == len(shape):
            return
