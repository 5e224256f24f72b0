"""
Tensor module: shape algebra and dense-table algorithms.
"""

from tablefactor.tensor.shape import (
    num_elements,
    linear_index,
    coordinate,
    iter_coordinates,
    check_coordinate,
)
from tablefactor.tensor.dense_table import (
    DenseTable,
    RETAINED,
    join,
    aggregate,
    join_aggregate,
    restrict,
    find_first,
)

__all__ = [
    "num_elements",
    "linear_index",
    "coordinate",
    "iter_coordinates",
    "check_coordinate",
    "DenseTable",
    "RETAINED",
    "join",
    "aggregate",
    "join_aggregate",
    "restrict",
    "find_first",
]
