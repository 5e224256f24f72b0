"""
tablefactor/factor/io.py

Persistence of table factors.

A factor is persisted as its four fields, in this order:
  domain, arg_seq, var_index, table

dump_factor produces a JSON-compatible dict in which variables are
referenced by name and arity:

    {
        "domain": [{"name": "x", "arity": 2}, {"name": "y", "arity": 2}],
        "arg_seq": ["x", "y"],
        "var_index": {"x": 0, "y": 1},
        "table": {"semiring": "PROB", "shape": [2, 2], "values": [1, 2, 3, 4]}
    }

Table values are flat, first variable fastest. The format carries no
schema version.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Tuple

from tablefactor.algebra.semiring import DEFAULT_SEMIRING, Semiring, get_semiring
from tablefactor.core.universe import Domain, Universe, Variable, ordered
from tablefactor.errors import InvalidArgumentError
from tablefactor.factor.table_factor import TableFactor
from tablefactor.tensor.dense_table import DenseTable
from tablefactor.tensor.shape import num_elements

Fields = Tuple[Domain, Tuple[Variable, ...], Dict[Variable, int], DenseTable]


def to_fields(f: TableFactor) -> Fields:
    """The four persisted fields of a factor (the table is copied)."""
    return f.domain, f.arg_seq, f.var_index, f.table.copy()


def from_fields(
    domain: Domain,
    arg_seq: Tuple[Variable, ...],
    var_index: Mapping[Variable, int],
    table: DenseTable,
    semiring: Semiring = DEFAULT_SEMIRING,
) -> TableFactor:
    """
    Rebuild a factor from its persisted fields.

    Raises:
        InvalidArgumentError: the fields are inconsistent with each other
    """
    arg_seq = tuple(arg_seq)
    if frozenset(arg_seq) != frozenset(domain) or len(arg_seq) != len(domain):
        raise InvalidArgumentError("persisted arg_seq does not list the persisted domain")
    if dict(var_index) != {v: i for i, v in enumerate(arg_seq)}:
        raise InvalidArgumentError("persisted var_index is not the inverse of arg_seq")
    if table.shape != tuple(v.arity for v in arg_seq):
        raise InvalidArgumentError(
            f"persisted table shape {table.shape} does not match arities "
            f"{tuple(v.arity for v in arg_seq)}"
        )
    return TableFactor.from_values(arg_seq, table.values(), semiring)


def dump_factor(f: TableFactor) -> Dict[str, Any]:
    """Serialize a factor to a JSON-compatible dict."""
    return {
        "domain": [{"name": v.name, "arity": v.arity} for v in ordered(f.domain)],
        "arg_seq": [v.name for v in f.arg_seq],
        "var_index": {v.name: i for v, i in f.var_index.items()},
        "table": {
            "semiring": f.semiring.name,
            "shape": list(f.table.shape),
            "values": f.values().tolist(),
        },
    }


def _resolve_variable(universe: Universe, name: str, arity: int) -> Variable:
    if universe.has_var(name):
        v = universe.var(name)
        if v.arity != arity:
            raise InvalidArgumentError(
                f"persisted variable {name!r} has arity {arity}, universe has {v.arity}"
            )
        return v
    return universe.new_finite_variable(arity, name)


def load_factor(payload: Mapping[str, Any], universe: Universe) -> TableFactor:
    """
    Deserialize a factor produced by dump_factor.

    Variables are looked up by name in universe; names not yet known are
    created there with the persisted arity.

    Raises:
        InvalidArgumentError: a field is missing or inconsistent
    """
    try:
        domain_spec = payload["domain"]
        arg_names = payload["arg_seq"]
        index_spec = payload["var_index"]
        table_spec = payload["table"]
    except KeyError as e:
        raise InvalidArgumentError(f"persisted factor is missing field {e.args[0]!r}") from None

    by_name = {d["name"]: _resolve_variable(universe, d["name"], int(d["arity"])) for d in domain_spec}
    try:
        arg_seq = tuple(by_name[n] for n in arg_names)
        var_index = {by_name[n]: int(i) for n, i in index_spec.items()}
    except KeyError as e:
        raise InvalidArgumentError(f"persisted variable {e.args[0]!r} is not in the domain") from None

    semiring = get_semiring(table_spec.get("semiring", DEFAULT_SEMIRING.name))
    shape = tuple(int(s) for s in table_spec["shape"])
    values: List[float] = [float(x) for x in table_spec["values"]]
    if len(values) != num_elements(shape):
        raise InvalidArgumentError(f"persisted table has {len(values)} values for shape {shape}")
    table = DenseTable.from_values(shape, values)
    return from_fields(frozenset(by_name.values()), arg_seq, var_index, table, semiring)


def save_factor(filepath: str, f: TableFactor) -> None:
    """Write a factor to a JSON file."""
    with open(filepath, "w") as fh:
        json.dump(dump_factor(f), fh, indent=2)


def load_factor_file(filepath: str, universe: Universe) -> TableFactor:
    """Read a factor from a JSON file written by save_factor."""
    with open(filepath, "r") as fh:
        return load_factor(json.load(fh), universe)
