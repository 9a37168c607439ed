import math

import pyarrow as pa
import pytest

from panelground.compute.grouping import NAN_KEY, GroupIndex
from panelground.errors import StaleGroupIndexError
from panelground.table import Table

DATA = pa.table(
    {
        "city": ["NY", "LA", "NY", None, "LA", None],
        "year": [2020, 2020, 2021, 2020, 2020, 2021],
    }
)


def test_groups_in_first_seen_order():
    index = GroupIndex.build(DATA, ["city"])
    assert list(index.groups()) == [
        (("NY",), [0, 2]),
        (("LA",), [1, 4]),
        ((None,), [3, 5]),
    ]
    assert len(index) == 3
    assert index.num_rows == 6


def test_groups_sorted_nulls_last():
    index = GroupIndex.build(DATA, ["city"])
    assert index.keys(sort=True) == [("LA",), ("NY",), (None,)]
    assert [rows for _, rows in index.groups(sort=True)] == [[1, 4], [0, 2], [3, 5]]


def test_groups_view_is_restartable():
    groups = GroupIndex.build(DATA, ["city"]).groups()
    assert list(groups) == list(groups)
    assert len(groups) == 3


def test_multiple_keys():
    index = GroupIndex.build(DATA, ["city", "year"])
    assert index.rows_for(("LA", 2020)) == [1, 4]
    assert index.group_for(5) == (None, 2021)
    assert len(index) == 5


def test_single_key_without_tuple():
    index = GroupIndex.build(DATA, ["city"])
    assert index.rows_for("NY") == [0, 2]
    with pytest.raises(KeyError):
        index.rows_for("Rome")


def test_nulls_excluded_when_not_equal():
    index = GroupIndex.build(DATA, ["city"], null_equal=False)
    assert index.keys() == [("NY",), ("LA",)]
    assert index.null_rows == [3, 5]
    assert index.group_ids().to_pylist() == [0, 1, 0, None, 1, None]
    with pytest.raises(KeyError):
        index.group_for(3)


def test_nan_keys_group_together():
    data = pa.table({"x": [1.0, math.nan, math.nan, 1.0]})
    index = GroupIndex.build(data, ["x"])
    assert index.keys() == [(1.0,), (NAN_KEY,)]
    assert index.rows_for((NAN_KEY,)) == [1, 2]


def test_key_table_keeps_types():
    data = pa.table({"k": pa.array([3, 1, 3], type=pa.int16())})
    key_table = GroupIndex.build(data, ["k"]).key_table()
    assert key_table.schema.field("k").type == pa.int16()
    assert key_table.column("k").to_pylist() == [3, 1]


def test_permutation():
    indices, offsets = GroupIndex.build(DATA, ["city"]).permutation()
    assert indices.to_pylist() == [0, 2, 1, 4, 3, 5]
    assert offsets == [0, 2, 4, 6]


def test_unknown_key_column():
    with pytest.raises(KeyError):
        GroupIndex.build(DATA, ["country"])


def test_build_from_record_batch():
    batch = DATA.to_batches()[0]
    assert len(GroupIndex.build(batch, ["year"])) == 2


def test_stale_after_inplace_mutation():
    table = Table(DATA)
    index = GroupIndex.build(table, ["city"])
    index.check_valid(table)

    table.with_column_inplace("year", [1, 2, 3, 4, 5, 6])
    index.check_valid(table)  # year is not a key column

    table.with_column_inplace("city", ["a"] * 6)
    with pytest.raises(StaleGroupIndexError):
        index.check_valid(table)


def test_stale_after_row_count_change():
    index = GroupIndex.build(DATA, ["city"])
    with pytest.raises(StaleGroupIndexError):
        index.check_valid(DATA.slice(0, 2))


def test_str():
    assert str(GroupIndex.build(DATA, ["city"])) == "GroupIndex(keys=['city'], groups=3, rows=6)"
