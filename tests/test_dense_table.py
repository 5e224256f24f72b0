"""
Tests for dense tables and the generic table algorithms.
"""

import numpy as np
import pytest

from tablefactor.algebra.operators import LOG_OPERATORS, REAL_OPERATORS, Op
from tablefactor.errors import PreconditionError
from tablefactor.tensor.dense_table import (
    RETAINED,
    DenseTable,
    aggregate,
    find_first,
    join,
    join_aggregate,
    restrict,
)

SUM = REAL_OPERATORS[Op.SUM]
PRODUCT = REAL_OPERATORS[Op.PRODUCT]
MAX = REAL_OPERATORS[Op.MAX]


@pytest.fixture
def table_2x2():
    # t[0,0]=1, t[1,0]=2, t[0,1]=3, t[1,1]=4
    return DenseTable.from_values((2, 2), [1, 2, 3, 4])


class TestDenseTable:
    def test_from_values_layout(self, table_2x2):
        assert table_2x2[(0, 0)] == 1
        assert table_2x2[(1, 0)] == 2
        assert table_2x2[(0, 1)] == 3
        assert table_2x2[(1, 1)] == 4
        assert table_2x2.values().tolist() == [1, 2, 3, 4]

    def test_from_values_length_mismatch(self):
        with pytest.raises(PreconditionError):
            DenseTable.from_values((2, 2), [1, 2, 3])

    def test_default_fill(self):
        t = DenseTable((2, 3), 0.5)
        assert t.shape == (2, 3)
        assert t.size == 6
        assert np.all(t.data == 0.5)

    def test_scalar_table(self):
        t = DenseTable((), 7.0)
        assert t.ndim == 0
        assert t[()] == 7.0

    def test_setitem_and_bounds(self, table_2x2):
        table_2x2[(1, 1)] = 10
        assert table_2x2[(1, 1)] == 10
        with pytest.raises(PreconditionError):
            table_2x2[(2, 0)]

    def test_equality(self, table_2x2):
        assert table_2x2 == table_2x2.copy()
        other = table_2x2.copy()
        other[(0, 0)] = -1
        assert table_2x2 != other

    def test_indices_match_values(self, table_2x2):
        for coord, v in zip(table_2x2.indices(), table_2x2.values()):
            assert table_2x2[coord] == v

    def test_join_with(self, table_2x2):
        # Add [10, 20] along dimension 1
        other = DenseTable.from_values((2,), [10, 20])
        table_2x2.join_with(other, (1,), SUM)
        assert table_2x2.values().tolist() == [11, 12, 23, 24]

    def test_accumulate(self, table_2x2):
        assert table_2x2.accumulate(SUM) == 10
        assert table_2x2.accumulate(MAX) == 4


class TestJoin:
    def test_outer_product(self):
        a = DenseTable.from_values((2,), [1, 2])
        b = DenseTable.from_values((3,), [1, 10, 100])
        out = join((2, 3), a, b, (0,), (1,), PRODUCT)
        assert out[(1, 2)] == 200
        assert out[(0, 1)] == 10

    def test_transposed_operand(self, table_2x2):
        # b is indexed (dim1, dim0)
        b = DenseTable.from_values((2, 2), [1, 2, 3, 4])
        out = join((2, 2), table_2x2, b, (0, 1), (1, 0), SUM)
        assert out[(1, 0)] == table_2x2[(1, 0)] + b[(0, 1)]

    def test_bad_map(self, table_2x2):
        b = DenseTable.from_values((3,), [1, 2, 3])
        with pytest.raises(PreconditionError):
            join((2, 2), table_2x2, b, (0, 1), (1,), SUM)
        with pytest.raises(PreconditionError):
            join((2, 2), table_2x2, table_2x2, (0, 0), (0, 1), SUM)

    def test_out_reuses_storage(self, table_2x2):
        out = DenseTable((2, 2))
        data = out.data
        join((2, 2), table_2x2, table_2x2, (0, 1), (0, 1), SUM, out=out)
        assert out.data is data
        assert out.values().tolist() == [2, 4, 6, 8]


class TestAggregate:
    def test_sum_out_dimension(self, table_2x2):
        out = aggregate(table_2x2, (0, None), SUM)
        assert out.values().tolist() == [4, 6]
        out = aggregate(table_2x2, (None, 0), SUM)
        assert out.values().tolist() == [3, 7]

    def test_reorders_kept_dimensions(self):
        t = DenseTable.from_values((2, 3), range(6))
        out = aggregate(t, (1, 0), SUM)
        assert out.shape == (3, 2)
        assert out[(2, 1)] == t[(1, 2)]

    def test_seed(self, table_2x2):
        out = aggregate(table_2x2, (None, None), SUM, seed=1.0)
        assert float(out.data) == 11

    def test_non_reducible(self, table_2x2):
        with pytest.raises(PreconditionError):
            aggregate(table_2x2, (0, None), REAL_OPERATORS[Op.MINUS])

    def test_malformed_map(self, table_2x2):
        with pytest.raises(PreconditionError):
            aggregate(table_2x2, (1, None), SUM)


class TestJoinAggregate:
    def test_matches_join_then_aggregate(self):
        rng = np.random.default_rng(0)
        a = DenseTable.wrap(rng.random((2, 3)))
        b = DenseTable.wrap(rng.random((3, 4)))
        target = (2, 3, 4)
        full = join(target, a, b, (0, 1), (1, 2), PRODUCT)
        expected = aggregate(full, (0, None, 1), SUM)
        fused = join_aggregate(a, b, (0, 1), (1, 2), target, PRODUCT, SUM, result_map=(0, None, 1))
        assert np.allclose(fused.data, expected.data)

    def test_scalar_result_with_max(self):
        a = DenseTable.from_values((2,), [1, 5])
        b = DenseTable.from_values((3,), [2, 0, 1])
        out = join_aggregate(a, b, (0,), (1,), (2, 3), SUM, MAX)
        assert float(out.data) == 7

    def test_log_space(self):
        a = DenseTable.wrap(np.log([[1.0, 2.0], [3.0, 4.0]]))
        b = DenseTable.wrap(np.log([1.0, 10.0]))
        out = join_aggregate(
            a, b, (0, 1), (1,), (2, 2), LOG_OPERATORS[Op.PRODUCT], LOG_OPERATORS[Op.SUM]
        )
        assert np.exp(float(out.data)) == pytest.approx(1 + 20 + 3 + 40)


class TestRestrict:
    def test_fix_dimension(self, table_2x2):
        out = restrict(table_2x2, (RETAINED, 1))
        assert out.values().tolist() == [3, 4]

    def test_fix_all(self, table_2x2):
        out = restrict(table_2x2, (1, 0))
        assert float(out.data) == 2

    def test_out_of_range(self, table_2x2):
        with pytest.raises(PreconditionError):
            restrict(table_2x2, (RETAINED, 2))


class TestFindFirst:
    def test_first_in_flat_order(self):
        a = DenseTable.from_values((2, 2), [1, 2, 3, 4])
        b = DenseTable.from_values((2, 2), [1, 0, 3, 0])
        assert find_first(a, b, (0, 1), (0, 1), (2, 2), np.not_equal) == (2, 0)

    def test_none_when_no_match(self):
        a = DenseTable.from_values((2,), [1, 2])
        assert find_first(a, a, (0,), (0,), (2,), np.not_equal) is None

    def test_broadcast_operand(self):
        a = DenseTable.from_values((2, 2), [1, 1, 1, 5])
        b = DenseTable.from_values((2,), [1, 1])
        assert find_first(a, b, (0, 1), (0,), (2, 2), np.not_equal) == (5, 1)
