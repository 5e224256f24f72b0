"""
tablefactor/data/record.py

Assignments, records and in-memory datasets.

An Assignment maps variables to values. A Record is one weighted dataset
row; it may be sparse, so consumers ask has_variable() before finite().
A Dataset is an iterable of records. Loading data from files is left to
applications.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from tablefactor.core.universe import Variable
from tablefactor.errors import InvalidArgumentError

Assignment = Dict[Variable, int]


@dataclass
class Record:
    """
    A weighted dataset row.

    Attributes:
        values: Variable -> value for the variables present in this row
        weight: Row weight
    """
    values: Dict[Variable, int] = field(default_factory=dict)
    weight: float = 1.0

    def has_variable(self, v: Variable) -> bool:
        return v in self.values

    def finite(self, v: Variable) -> int:
        """Value of v in this row (KeyError if absent)."""
        return self.values[v]

    def assignment(self, vars_: Optional[Iterable[Variable]] = None) -> Assignment:
        """Assignment restricted to vars_ (all present variables when None)."""
        if vars_ is None:
            return dict(self.values)
        return {v: self.values[v] for v in vars_}

    def __contains__(self, v: Variable) -> bool:
        return self.has_variable(v)

    def __len__(self) -> int:
        return len(self.values)


class Dataset:
    """In-memory sequence of weighted records."""

    def __init__(self, records: Optional[Iterable[Record]] = None):
        self._records: List[Record] = list(records) if records is not None else []

    @staticmethod
    def from_assignments(
        rows: Iterable[Mapping[Variable, int]],
        weights: Optional[Sequence[float]] = None,
    ) -> "Dataset":
        """
        Build a dataset from assignment dicts.

        Args:
            rows: One assignment per record
            weights: Optional per-row weights (defaults to 1.0)
        """
        rows = list(rows)
        if weights is None:
            weights = [1.0] * len(rows)
        if len(weights) != len(rows):
            raise InvalidArgumentError(f"Dataset given {len(weights)} weights for {len(rows)} rows")
        return Dataset(Record(dict(r), float(w)) for r, w in zip(rows, weights))

    def append(self, record: Record) -> None:
        self._records.append(record)

    def records(self) -> Iterator[Record]:
        return iter(self._records)

    @property
    def weights(self) -> List[float]:
        return [r.weight for r in self._records]

    def total_weight(self) -> float:
        return float(sum(r.weight for r in self._records))

    def __iter__(self) -> Iterator[Record]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, i: int) -> Record:
        return self._records[i]
