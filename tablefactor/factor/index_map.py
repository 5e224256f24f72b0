"""
tablefactor/factor/index_map.py

Translate a factor's variable bookkeeping into raw dimension maps.

Every map has one entry per variable of the source sequence:
- make_dim_map:       target dimension of each variable
- make_aggregate_map: output position of each variable, None if summed out
- make_restrict_map:  fixed value of each variable, None if retained
"""

from __future__ import annotations

from typing import AbstractSet, Dict, Mapping, Optional, Sequence, Tuple

from tablefactor.core.universe import Variable
from tablefactor.data.record import Record
from tablefactor.tensor.dense_table import RETAINED

VarIndex = Dict[Variable, int]


def make_index_map(vars_: Sequence[Variable]) -> VarIndex:
    """Map each variable of a sequence to its position."""
    return {v: i for i, v in enumerate(vars_)}


def make_dim_map(vars_: Sequence[Variable], to_map: Mapping[Variable, int]) -> Tuple[int, ...]:
    """
    Target dimension of each variable in vars_.

    Every variable must be a key of to_map (KeyError otherwise).
    """
    return tuple(to_map[v] for v in vars_)


def make_aggregate_map(vars_: Sequence[Variable], retained: Sequence[Variable]) -> Tuple[Optional[int], ...]:
    """Output position of each variable in vars_, None when it is summed out."""
    pos = make_index_map(retained)
    return tuple(pos.get(v) for v in vars_)


def make_restrict_map(
    vars_: Sequence[Variable],
    assignment: Mapping[Variable, int],
    subset: Optional[AbstractSet[Variable]] = None,
) -> Tuple[Optional[int], ...]:
    """
    Fixed value of each variable of vars_ that the assignment covers.

    Args:
        vars_: Source variable sequence
        assignment: Variable -> value
        subset: When given, only variables in subset are fixed

    Returns:
        Tuple of values or RETAINED
    """
    out = []
    for v in vars_:
        if (subset is None or v in subset) and v in assignment:
            out.append(int(assignment[v]))
        else:
            out.append(RETAINED)
    return tuple(out)


def make_record_restrict_map(
    vars_: Sequence[Variable],
    record: Record,
    subset: Optional[AbstractSet[Variable]] = None,
) -> Tuple[Optional[int], ...]:
    """Like make_restrict_map, reading values from a (possibly sparse) record."""
    out = []
    for v in vars_:
        if (subset is None or v in subset) and record.has_variable(v):
            out.append(int(record.finite(v)))
        else:
            out.append(RETAINED)
    return tuple(out)
