"""
Tests for factor persistence.
"""

import json

import numpy as np
import pytest

from tablefactor.algebra.semiring import LOGPROB
from tablefactor.core.universe import Universe
from tablefactor.errors import InvalidArgumentError
from tablefactor.factor.io import (
    dump_factor,
    from_fields,
    load_factor,
    load_factor_file,
    save_factor,
    to_fields,
)
from tablefactor.factor.table_factor import TableFactor


@pytest.fixture
def universe():
    return Universe()


@pytest.fixture
def f(universe):
    x = universe.new_finite_variable(2, "x")
    z = universe.new_finite_variable(3, "z")
    return TableFactor.from_values([z, x], [1, 2, 3, 4, 5, 6])


class TestFields:
    def test_to_fields(self, f):
        domain, arg_seq, var_index, table = to_fields(f)
        assert domain == f.domain
        assert arg_seq == f.arg_seq
        assert var_index == f.var_index
        assert table == f.table
        assert table is not f.table

    def test_from_fields_restores_factor(self, f):
        g = from_fields(*to_fields(f))
        assert g.arg_seq == f.arg_seq
        assert g == f

    def test_from_fields_inconsistent_index(self, f):
        domain, arg_seq, var_index, table = to_fields(f)
        z, x = arg_seq
        with pytest.raises(InvalidArgumentError):
            from_fields(domain, arg_seq, {z: 1, x: 0}, table)


class TestDump:
    def test_key_order(self, f):
        payload = dump_factor(f)
        assert list(payload) == ["domain", "arg_seq", "var_index", "table"]

    def test_contents(self, f):
        payload = dump_factor(f)
        assert payload["domain"] == [{"name": "x", "arity": 2}, {"name": "z", "arity": 3}]
        assert payload["arg_seq"] == ["z", "x"]
        assert payload["var_index"] == {"z": 0, "x": 1}
        assert payload["table"]["shape"] == [3, 2]
        assert payload["table"]["values"] == [1, 2, 3, 4, 5, 6]

    def test_json_compatible(self, f):
        assert json.loads(json.dumps(dump_factor(f))) == dump_factor(f)


class TestLoad:
    def test_round_trip_same_universe(self, f, universe):
        g = load_factor(dump_factor(f), universe)
        assert g.arg_seq == f.arg_seq
        assert g == f

    def test_creates_missing_variables(self, f):
        other = Universe()
        g = load_factor(dump_factor(f), other)
        assert other.has_var("x") and other.has_var("z")
        assert [v.name for v in g.arg_seq] == ["z", "x"]
        assert g.values().tolist() == f.values().tolist()

    def test_arity_conflict(self, f):
        other = Universe()
        other.new_finite_variable(4, "x")
        with pytest.raises(InvalidArgumentError):
            load_factor(dump_factor(f), other)

    def test_missing_field(self, f, universe):
        payload = dump_factor(f)
        del payload["var_index"]
        with pytest.raises(InvalidArgumentError):
            load_factor(payload, universe)

    def test_wrong_value_count(self, f, universe):
        payload = dump_factor(f)
        payload["table"]["values"] = payload["table"]["values"][:-1]
        with pytest.raises(InvalidArgumentError):
            load_factor(payload, universe)

    def test_log_space_round_trip(self, f, universe):
        lf = f.to_log_space()
        g = load_factor(dump_factor(lf), universe)
        assert g.semiring == LOGPROB
        assert np.allclose(g.values(), lf.values())

    def test_file_round_trip(self, f, universe, tmp_path):
        path = tmp_path / "factor.json"
        save_factor(str(path), f)
        assert load_factor_file(str(path), universe) == f
