"""
Tests for TableFactor construction, access, combine, collapse and restrict.
"""

import numpy as np
import pytest

from tablefactor.algebra.operators import Op
from tablefactor.algebra.semiring import LOGPROB
from tablefactor.core.universe import Universe
from tablefactor.data.record import Record
from tablefactor.errors import InvalidArgumentError, NormalizationError, PreconditionError
from tablefactor.factor.table_factor import TableFactor


@pytest.fixture
def universe():
    return Universe()


@pytest.fixture
def xyz(universe):
    x = universe.new_finite_variable(2, "x")
    y = universe.new_finite_variable(2, "y")
    z = universe.new_finite_variable(3, "z")
    return x, y, z


@pytest.fixture
def f_xy(xyz):
    x, y, _ = xyz
    return TableFactor.from_values([x, y], [1, 2, 3, 4])


class TestConstruction:
    def test_default_value(self, xyz):
        x, y, _ = xyz
        f = TableFactor([x, y], 0.5)
        assert f.size == 4
        assert np.all(f.values() == 0.5)

    def test_default_is_semiring_zero(self, xyz):
        x, _, _ = xyz
        assert np.all(TableFactor([x]).values() == 0.0)
        assert np.all(np.isneginf(TableFactor([x], semiring=LOGPROB).values()))

    def test_fields(self, f_xy, xyz):
        x, y, _ = xyz
        assert f_xy.domain == frozenset([x, y])
        assert f_xy.arguments == f_xy.domain
        assert f_xy.arg_seq == (x, y)
        assert f_xy.var_index == {x: 0, y: 1}
        assert f_xy.table.shape == (2, 2)

    def test_from_values_length_mismatch(self, xyz):
        x, y, _ = xyz
        with pytest.raises(PreconditionError):
            TableFactor.from_values([x, y], [1, 2, 3])

    def test_duplicate_arguments(self, xyz):
        x, _, _ = xyz
        with pytest.raises(PreconditionError):
            TableFactor([x, x])

    def test_constant(self):
        c = TableFactor.constant(2.5)
        assert c.domain == frozenset()
        assert c.v() == 2.5
        assert c.size == 1


class TestAccess:
    def test_assignment_lookup(self, f_xy, xyz):
        x, y, _ = xyz
        assert f_xy({x: 0, y: 0}) == 1
        assert f_xy({x: 1, y: 0}) == 2
        assert f_xy({x: 0, y: 1}) == 3
        assert f_xy({x: 1, y: 1}) == 4

    def test_coordinate_lookup(self, f_xy):
        assert f_xy.v(1, 0) == 2

    def test_record_lookup(self, f_xy, xyz):
        x, y, z = xyz
        assert f_xy(Record({x: 1, y: 1, z: 2})) == 4

    def test_missing_key(self, f_xy, xyz):
        x, _, _ = xyz
        with pytest.raises(KeyError):
            f_xy({x: 0})

    def test_out_of_range(self, f_xy, xyz):
        x, y, _ = xyz
        with pytest.raises(PreconditionError):
            f_xy({x: 2, y: 0})

    def test_assignments_follow_values(self, f_xy):
        for a, v in zip(f_xy.assignments(), f_xy.values()):
            assert f_xy(a) == v

    def test_set_v_and_logv(self, f_xy, xyz):
        x, y, _ = xyz
        f_xy.set_v({x: 0, y: 0}, 7)
        assert f_xy({x: 0, y: 0}) == 7
        f_xy.set_logv({x: 1, y: 1}, 0.0)
        assert f_xy({x: 1, y: 1}) == pytest.approx(1.0)
        assert f_xy.logv({x: 0, y: 0}) == pytest.approx(np.log(7))

    def test_assignment_of_coordinate(self, f_xy, xyz):
        x, y, _ = xyz
        assert f_xy.assignment((1, 0)) == {x: 1, y: 0}


class TestComparison:
    def test_equal_with_different_order(self, xyz):
        x, y, _ = xyz
        f = TableFactor.from_values([x, y], [1, 2, 3, 4])
        g = TableFactor.from_values([y, x], [1, 3, 2, 4])
        assert f == g
        assert not (f != g)

    def test_not_equal_values(self, f_xy):
        g = f_xy.copy()
        g.set_v((0, 0), 0)
        assert f_xy != g

    def test_not_equal_domains(self, f_xy, xyz):
        x, _, _ = xyz
        assert f_xy != TableFactor([x], 1.0)

    def test_less_than(self, xyz):
        x, y, _ = xyz
        f = TableFactor.from_values([x, y], [1, 2, 3, 4])
        g = TableFactor.from_values([x, y], [1, 2, 5, 4])
        assert f < g
        assert not (g < f)
        assert TableFactor([x], 9.0) < f

    def test_repr(self, f_xy):
        assert "x, y" in repr(f_xy)

    def test_copy_is_independent(self, f_xy):
        g = f_xy.copy()
        g.set_v((0, 0), 100)
        assert f_xy.v(0, 0) == 1

    def test_swap(self, f_xy, xyz):
        x, _, z = xyz
        g = TableFactor([z], 1.0)
        f_xy.swap(g)
        assert f_xy.domain == frozenset([z])
        assert g.v(1, 0) == 2

    def test_subst_args(self, f_xy, universe, xyz):
        x, y, _ = xyz
        w = universe.new_finite_variable(2, "w")
        f_xy.subst_args({x: w})
        assert f_xy.arg_seq == (w, y)
        assert f_xy({w: 1, y: 0}) == 2

    def test_subst_args_arity_mismatch(self, f_xy, xyz):
        x, _, z = xyz
        with pytest.raises(PreconditionError):
            f_xy.subst_args({x: z})

    def test_permute(self, f_xy, xyz):
        x, y, _ = xyz
        g = f_xy.permute([y, x])
        assert g.arg_seq == (y, x)
        assert g == f_xy
        assert g.values().tolist() == [1, 3, 2, 4]


class TestSpaces:
    def test_round_trip(self, f_xy):
        lf = f_xy.to_log_space()
        assert lf.log_space
        assert np.allclose(lf.values(), np.log([1, 2, 3, 4]))
        assert lf.to_real_space().allclose(f_xy)

    def test_combine_across_spaces_refused(self, f_xy):
        with pytest.raises(PreconditionError):
            f_xy * f_xy.to_log_space()


class TestCombine:
    def test_product_over_union(self, f_xy, xyz):
        x, y, z = xyz
        g = TableFactor.from_values([z], [1, 10, 100])
        h = f_xy * g
        assert h.domain == frozenset([x, y, z])
        assert h({x: 1, y: 1, z: 2}) == 400

    def test_union_in_canonical_order(self, xyz):
        x, y, z = xyz
        f = TableFactor([z, x], 1.0)
        g = TableFactor([y], 1.0)
        assert TableFactor.combine(f, g, Op.SUM).arg_seq == (x, y, z)

    def test_scalar_operators(self, f_xy):
        assert (f_xy * 2).values().tolist() == [2, 4, 6, 8]
        assert (2 * f_xy).values().tolist() == [2, 4, 6, 8]
        assert (f_xy + 1).values().tolist() == [2, 3, 4, 5]

    def test_scalar_in_log_space(self, f_xy):
        lf = f_xy.to_log_space() * 2
        assert np.allclose(np.exp(lf.values()), [2, 4, 6, 8])

    def test_division_zero_by_zero(self, xyz):
        x, _, _ = xyz
        f = TableFactor.from_values([x], [0, 4])
        g = TableFactor.from_values([x], [0, 2])
        assert (f / g).values().tolist() == [0, 2]

    def test_minus(self, f_xy, xyz):
        x, _, _ = xyz
        g = TableFactor.from_values([x], [1, 2])
        assert (f_xy - g).values().tolist() == [0, 0, 2, 2]

    def test_logical(self, xyz):
        x, _, _ = xyz
        f = TableFactor.from_values([x], [0, 3])
        g = TableFactor.from_values([x], [2, 0])
        assert (f & g).values().tolist() == [0, 0]
        assert (f | g).values().tolist() == [1, 1]

    def test_combine_in_fast_path_keeps_layout(self, f_xy, xyz):
        x, y, _ = xyz
        data = f_xy.table.data
        f_xy *= TableFactor.from_values([y], [10, 100])
        assert f_xy.table.data is data
        assert f_xy.values().tolist() == [10, 20, 300, 400]

    def test_combine_in_extends_domain(self, f_xy, xyz):
        x, y, z = xyz
        f_xy += TableFactor.from_values([z], [0, 10, 20])
        assert f_xy.domain == frozenset([x, y, z])
        assert f_xy({x: 1, y: 1, z: 2}) == 24

    def test_in_place_operators(self, f_xy):
        f_xy -= f_xy.copy()
        assert np.all(f_xy.values() == 0)

    def test_max_min_in(self, xyz):
        x, _, _ = xyz
        f = TableFactor.from_values([x], [1, 5])
        g = TableFactor.from_values([x], [3, 2])
        assert f.copy().max_in(g).values().tolist() == [3, 5]
        assert f.copy().min_in(g).values().tolist() == [1, 2]


class TestCollapse:
    def test_marginals(self, f_xy, xyz):
        x, y, _ = xyz
        assert f_xy.marginal({x}).values().tolist() == [4, 6]
        assert f_xy.marginal({y}).values().tolist() == [3, 7]

    def test_retained_superset_copies(self, f_xy, xyz):
        x, y, z = xyz
        m = f_xy.marginal({x, y, z})
        assert m == f_xy
        assert m.table is not f_xy.table

    def test_maximum_minimum(self, f_xy, xyz):
        x, _, _ = xyz
        assert f_xy.maximum({x}).values().tolist() == [3, 4]
        assert f_xy.minimum({x}).values().tolist() == [1, 2]
        assert f_xy.max_value() == 4
        assert f_xy.min_value() == 1

    def test_collapse_all(self, f_xy):
        assert f_xy.collapse_all(Op.SUM) == 10
        assert f_xy.collapse_all(Op.PRODUCT) == 24

    def test_collapse_with_seed(self, f_xy, xyz):
        x, _, _ = xyz
        assert f_xy.collapse(Op.SUM, {x}, seed=1.0).values().tolist() == [5, 7]

    def test_non_reducible(self, f_xy, xyz):
        x, _, _ = xyz
        with pytest.raises(PreconditionError):
            f_xy.collapse(Op.MINUS, {x})
        with pytest.raises(PreconditionError):
            f_xy.collapse(Op.DIVIDES, {x})

    def test_out_reuses_storage(self, f_xy, xyz):
        x, _, _ = xyz
        out = TableFactor([x])
        data = out.table.data
        result = f_xy.marginal({x}, out=out)
        assert result is out
        assert out.table.data is data
        assert out.values().tolist() == [4, 6]

    def test_out_is_reallocated(self, f_xy, xyz):
        _, y, z = xyz
        out = TableFactor([z])
        f_xy.marginal({y}, out=out)
        assert out.arg_seq == (y,)
        assert out.values().tolist() == [3, 7]

    def test_log_space_marginal(self, f_xy, xyz):
        x, _, _ = xyz
        m = f_xy.to_log_space().marginal({x})
        assert np.allclose(np.exp(m.values()), [4, 6])

    def test_norm_constant(self, f_xy):
        assert f_xy.norm_constant() == 10
        assert f_xy.to_log_space().norm_constant() == pytest.approx(10)
        assert f_xy.to_log_space().log_norm_constant() == pytest.approx(np.log(10))


class TestRestrict:
    def test_restrict(self, f_xy, xyz):
        x, y, _ = xyz
        r = f_xy.restrict({y: 1})
        assert r.arg_seq == (x,)
        assert r.values().tolist() == [3, 4]

    def test_restrict_all(self, f_xy, xyz):
        x, y, _ = xyz
        r = f_xy.restrict({x: 1, y: 0})
        assert r.domain == frozenset()
        assert r.v() == 2

    def test_disjoint_assignment_copies(self, f_xy, xyz):
        _, _, z = xyz
        r = f_xy.restrict({z: 1})
        assert r == f_xy
        assert r.table is not f_xy.table

    def test_subset(self, f_xy, xyz):
        x, y, _ = xyz
        r = f_xy.restrict({x: 1, y: 1}, subset={x})
        assert r.arg_seq == (y,)
        assert r.values().tolist() == [2, 4]

    def test_strict_missing_value(self, f_xy, xyz):
        x, y, _ = xyz
        with pytest.raises(InvalidArgumentError):
            f_xy.restrict({x: 1}, subset={x, y}, strict=True)

    def test_restrict_record(self, f_xy, xyz):
        x, y, _ = xyz
        r = f_xy.restrict_record(Record({y: 0}))
        assert r.values().tolist() == [1, 2]

    def test_restrict_out(self, f_xy, xyz):
        x, y, _ = xyz
        out = TableFactor([x])
        data = out.table.data
        f_xy.restrict({y: 1}, out=out)
        assert out.table.data is data
        assert out.values().tolist() == [3, 4]

    def test_value_out_of_range(self, f_xy, xyz):
        _, y, _ = xyz
        with pytest.raises(PreconditionError):
            f_xy.restrict({y: 5})


class TestNormalize:
    def test_normalize(self, f_xy):
        f_xy.normalize()
        assert np.allclose(f_xy.values(), [0.1, 0.2, 0.3, 0.4])

    def test_normalize_log_space(self, f_xy):
        lf = f_xy.to_log_space().normalize()
        assert np.allclose(np.exp(lf.values()), [0.1, 0.2, 0.3, 0.4])

    def test_all_zero_is_unnormalizable(self, xyz, caplog):
        x, _, _ = xyz
        f = TableFactor([x], 0.0)
        assert not f.is_normalizable()
        with pytest.raises(NormalizationError) as excinfo:
            f.normalize()
        assert excinfo.value.value == 0.0
        assert "Unnormalizable" in caplog.text

    def test_infinite_is_unnormalizable(self, xyz):
        x, _, _ = xyz
        f = TableFactor.from_values([x], [np.inf, 1.0])
        with pytest.raises(NormalizationError):
            f.normalize()

    def test_normalize_log_space_beyond_exp_range(self, xyz):
        x, _, _ = xyz
        lf = TableFactor.from_values([x], [1000.0, 1000.0 + np.log(3.0)], semiring=LOGPROB)
        assert lf.is_normalizable()
        assert lf.log_norm_constant() == pytest.approx(1000.0 + np.log(4.0))
        lf.normalize()
        assert np.allclose(np.exp(lf.values()), [0.25, 0.75])

    def test_conditional(self, f_xy, xyz):
        x, y, _ = xyz
        c = f_xy.conditional({y})
        assert c({x: 0, y: 0}) == pytest.approx(1 / 3)
        assert c({x: 1, y: 1}) == pytest.approx(4 / 7)

    def test_conditional_outside_domain(self, f_xy, xyz):
        _, _, z = xyz
        with pytest.raises(PreconditionError):
            f_xy.conditional({z})


class TestUnroll:
    def test_unroll(self, f_xy, universe):
        v, g = f_xy.unroll(universe)
        assert v.arity == 4
        assert g.arg_seq == (v,)
        assert g.values().tolist() == [1, 2, 3, 4]

    def test_roll_up_wrong_arity(self, f_xy, universe, xyz):
        _, _, z = xyz
        _, g = f_xy.unroll(universe)
        with pytest.raises(PreconditionError):
            g.roll_up([z])


class TestSample:
    def test_sample_frequencies(self, f_xy, xyz):
        x, y, _ = xyz
        p = f_xy.copy().normalize()
        rng = np.random.default_rng(42)
        counts = {}
        n = 4000
        for _ in range(n):
            a = p.sample(rng)
            key = (a[x], a[y])
            counts[key] = counts.get(key, 0) + 1
        assert counts[(1, 1)] / n == pytest.approx(0.4, abs=0.05)
        assert counts[(0, 0)] / n == pytest.approx(0.1, abs=0.05)

    def test_point_mass(self, xyz):
        x, y, _ = xyz
        f = TableFactor.from_values([x, y], [0, 0, 1, 0])
        rng = np.random.default_rng(0)
        assert f.sample(rng) == {x: 0, y: 1}

    def test_rounding_falls_back_to_last_assignment(self, xyz):
        _, _, z = xyz

        class FixedDraw:
            def uniform(self, low, high):
                return 0.99999999

        # cumulative total 0.9999999 stays below the draw
        f = TableFactor.from_values([z], [0.3, 0.3, 0.3999999])
        assert f.sample(FixedDraw()) == {z: 2}


class TestDerivativeBound:
    def test_independent_factor_has_zero_bound(self, xyz):
        x, y, _ = xyz
        f = TableFactor.from_values([x, y], [1, 2, 3, 6])
        assert f.bp_msg_derivative_ub(x, y) == pytest.approx(0.0)

    def test_coupled_factor(self, xyz):
        x, y, _ = xyz
        f = TableFactor.from_values([x, y], [4, 1, 1, 4])
        # max ratio is 16, tanh(log(16) / 4) = tanh(log 2)
        assert f.bp_msg_derivative_ub(x, y) == pytest.approx(np.tanh(np.log(2)))
