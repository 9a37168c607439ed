import datetime

import pyarrow as pa
import pyarrow.compute as pc
import pytest

from panelground import GroupedTable, Table, concat, load_table
from panelground.compute import FunctionCallExpression, MeanAggregation, SumAggregation, col
from panelground.errors import (
    ColumnNotFoundError,
    NameCollisionError,
    SchemaError,
    StaleGroupIndexError,
    TypeMismatchError,
)

D = datetime.date


@pytest.fixture
def table():
    return Table(
        {
            "city": ["NY", "LA", "NY", "SF"],
            "year": [2020, 2020, 2021, 2021],
            "n": [10, 8, 20, None],
        }
    )


def test_basic_properties(table):
    assert table.num_rows == 4
    assert len(table) == 4
    assert table.column_names == ["city", "year", "n"]
    assert table.schema.field("n").type == pa.int64()
    assert repr(table) == "Table(rows=4, columns=['city', 'year', 'n'])"


def test_column(table):
    assert table.column("city").to_pylist() == ["NY", "LA", "NY", "SF"]
    with pytest.raises(ColumnNotFoundError):
        table.column("country")
    with pytest.raises(KeyError):
        table.column("country")


def test_duplicate_names_rejected():
    with pytest.raises(NameCollisionError):
        Table(pa.Table.from_arrays([pa.array([1]), pa.array([2])], names=["a", "a"]))


def test_with_column_is_pure(table):
    updated = table.with_column("double", pc.multiply(table.column("n"), 2))
    assert updated.column_names == ["city", "year", "n", "double"]
    assert updated.column("double").to_pylist() == [20, 16, 40, None]
    assert table.column_names == ["city", "year", "n"]


def test_with_column_replaces(table):
    updated = table.with_column("n", FunctionCallExpression(pc.add, col("n"), 1))
    assert updated.column_names == ["city", "year", "n"]
    assert updated.column("n").to_pylist() == [11, 9, 21, None]


def test_with_column_length_mismatch(table):
    with pytest.raises(SchemaError):
        table.with_column("x", [1, 2])
    with pytest.raises(SchemaError):
        table.with_column_inplace("x", [1, 2])
    assert table.column_names == ["city", "year", "n"]


def test_with_column_too_many_values(table):
    with pytest.raises(SchemaError):
        table.with_column("x", [1, 2, 3, 4, 5])
    with pytest.raises(SchemaError):
        table.with_column_inplace("x", [1, 2, 3, 4, 5])
    assert table.column_names == ["city", "year", "n"]


def test_with_column_inplace(table):
    table.with_column_inplace("flag", [True, False, True, False])
    assert table.column("flag").to_pylist() == [True, False, True, False]


def test_select_columns_identity(table):
    assert table.select_columns(table.column_names) == table


def test_select_columns(table):
    selected = table.select_columns(["n", "city"])
    assert selected.column_names == ["n", "city"]
    with pytest.raises(ColumnNotFoundError):
        table.select_columns(["city", "zzz"])


def test_drop_and_rename_columns(table):
    assert table.drop_columns(["year"]).column_names == ["city", "n"]
    renamed = table.rename_columns({"n": "employees"})
    assert renamed.column_names == ["city", "year", "employees"]
    with pytest.raises(NameCollisionError):
        table.rename_columns({"n": "city"})


def test_select_rows(table):
    by_expression = table.select_rows(FunctionCallExpression(pc.equal, col("city"), "NY"))
    by_mask = table.select_rows([True, False, True, False])
    by_callable = table.select_rows(lambda row: row["city"] == "NY")
    assert by_expression == by_mask == by_callable
    assert by_mask.column("n").to_pylist() == [10, 20]


def test_sort_by(table):
    by_year = table.sort_by(["year", "n"], descending=[True, False])
    assert by_year.column("n").to_pylist() == [20, None, 8, 10]
    assert table.sort_by("n").column("n").to_pylist() == [8, 10, 20, None]
    assert table.sort_by("n", descending=True).column("n").to_pylist() == [20, 10, 8, None]
    with pytest.raises(ValueError):
        table.sort_by(["year", "n"], descending=[True])


def test_sort_by_inplace(table):
    table.sort_by_inplace("city")
    assert table.column("city").to_pylist() == ["LA", "NY", "NY", "SF"]


def test_head(table):
    assert table.head(2).column("city").to_pylist() == ["NY", "LA"]
    assert table.head(10).num_rows == 4


def test_to_rows(table):
    assert table.to_rows()[0] == {"city": "NY", "year": 2020, "n": 10}
    assert table.to_rows(as_dict=False)[3] == ("SF", 2021, None)


def test_arrow_interop(table):
    arrow = table.to_arrow()
    assert isinstance(arrow, pa.Table)
    assert Table.from_arrow(arrow) == table
    assert Table.from_arrow(arrow.to_batches()[0]) == table


def test_equality(table):
    assert table == Table(table.to_arrow())
    assert table != table.head(2)
    assert table != "not a table"


def test_str(table):
    assert str(table).splitlines()[0] == "city | year | n   "


def test_concat():
    first = Table({"a": [1], "b": ["x"]})
    second = Table({"a": [2], "b": ["y"]})
    assert concat([first, second]).to_rows(as_dict=False) == [(1, "x"), (2, "y")]
    with pytest.raises(SchemaError):
        concat([first, Table({"a": [3]})])
    with pytest.raises(TypeMismatchError):
        concat([first, Table({"a": ["z"]})], union_columns=True)


def test_load_table_tuples():
    table = load_table(
        [(1, "2024-01-01"), (2, None)],
        [("id", "int32"), ("label", pa.string())],
    )
    assert table.schema.field("id").type == pa.int32()
    assert table.to_rows(as_dict=False) == [(1, "2024-01-01"), (2, None)]


def test_load_table_dicts():
    schema = pa.schema([("id", pa.int64()), ("day", pa.date32())])
    table = load_table([{"id": 1, "day": D(2024, 1, 1)}, {"id": 2}], schema)
    assert table.column("day").to_pylist() == [D(2024, 1, 1), None]


def test_load_table_errors():
    with pytest.raises(SchemaError):
        load_table([(1, 2)], {"id": "int64"})
    with pytest.raises(SchemaError):
        load_table([{"id": 1, "extra": 2}], {"id": "int64"})
    with pytest.raises(SchemaError):
        load_table([], {"id": "not-a-type"})
    with pytest.raises(TypeMismatchError):
        load_table([("abc",)], {"id": "int64"})


def test_load_table_empty():
    table = load_table([], {"id": "int64", "day": "date32"})
    assert table.num_rows == 0
    assert table.schema.field("day").type == pa.date32()


def test_group_by_aggregate(table):
    grouped = table.group_by("city")
    assert isinstance(grouped, GroupedTable)
    assert len(grouped) == 3
    result = grouped.aggregate({"total": SumAggregation("n", skip_nulls=True)})
    assert result.to_rows() == [
        {"city": "NY", "total": 30},
        {"city": "LA", "total": 8},
        {"city": "SF", "total": None},
    ]
    assert grouped.reduce(MeanAggregation("n")) == {("NY",): 15.0, ("LA",): 8.0, ("SF",): None}


def test_group_by_transform_keeps_rows(table):
    grouped = table.group_by(["city"])
    broadcast = grouped.transform(SumAggregation("n"))
    assert len(broadcast) == table.num_rows
    assert broadcast.to_pylist() == [30, 8, 30, None]

    widened = grouped.with_transforms([("n", "max")])
    assert widened.column_names == ["city", "year", "n", "n_max"]
    assert widened.column("n_max").to_pylist() == [20, 8, 20, None]


def test_group_by_reuses_index(table):
    grouped = table.group_by("city")
    assert grouped.index is grouped.index


def test_group_by_stale_after_inplace_update(table):
    grouped = table.group_by("city")
    grouped.aggregate([("n", "count")])

    table.with_column_inplace("n", [1, 2, 3, 4])
    assert grouped.aggregate([("n", "sum")]).column("n_sum").to_pylist() == [4, 2, 4]

    table.with_column_inplace("city", ["a", "b", "c", "d"])
    with pytest.raises(StaleGroupIndexError):
        grouped.aggregate([("n", "sum")])


def test_group_by_sort_inplace_makes_index_stale(table):
    grouped = table.group_by("year")
    len(grouped)
    table.sort_by_inplace("n")
    with pytest.raises(StaleGroupIndexError):
        grouped.transform(SumAggregation("n"))


def test_join_tables():
    flights = Table({"carrier": ["AA", "UA", "AA"], "month": [2, 5, 7]})
    carriers = Table(
        {"carrier": ["AA", "UA"], "start_month": [1, 4], "end_month": [3, 6]}
    )
    joined = flights.join(
        carriers,
        [
            ("carrier", "==", "carrier"),
            ("month", ">=", "start_month"),
            ("month", "<=", "end_month"),
        ],
        how="left",
    )
    assert joined.column("carrier_right").to_pylist() == ["AA", "UA", None]


def test_rolling_join_tables():
    flights = Table({"carrier": ["AA"], "date": [D(2014, 11, 1)]})
    rates = Table(
        {
            "carrier": ["AA", "AA"],
            "date": [D(2014, 10, 1), D(2014, 11, 10)],
            "rate": [1.0, 1.1],
        }
    )
    joined = flights.join(
        rates, [("carrier", "==", "carrier"), ("date", "nearest", "date")], how="left"
    )
    assert joined.to_rows() == [
        {"carrier": "AA", "date": D(2014, 11, 1), "date_right": D(2014, 11, 10), "rate": 1.1}
    ]


def test_cross_join_tables():
    sizes = Table({"size": ["S", "M"]})
    colors = Table({"color": ["red", "blue", "green"]})
    assert sizes.cross_join(colors).num_rows == 6


def test_melt_and_cast_round_trip():
    wide = Table(
        {
            "shop": ["A", "B"],
            "jan": pa.array([1, 2], pa.int32()),
            "feb": pa.array([3, 4], pa.int32()),
        }
    )
    long = wide.melt(["jan", "feb"], ["shop"], variable_name="month", value_name="sales")
    assert long.num_rows == 4
    assert long.cast(["shop"], "month", "sales") == wide


def test_lag_and_lead():
    sales = Table(
        {
            "shop": ["A", "A", "A"],
            "month": [D(2024, 1, 31), D(2024, 2, 29), D(2024, 3, 31)],
            "sales": [1, 2, 3],
        }
    )
    lagged = sales.lag("month", "sales", unit="month", by=["shop"])
    # Shifting clamps to the end of the month only when the day is missing:
    # March 31st finds February 29th, February 29th looks for January 29th.
    assert lagged.column("sales_lag1").to_pylist() == [None, None, 2]
    led = sales.group_by("shop").lead("month", ["sales"], unit="month")
    assert led.column("sales_lead1").to_pylist() == [2, None, None]
