import datetime

import pyarrow as pa
import pytest

from panelground.compute import PyArrowTableDataSource
from panelground.compute.temporal import TemporalShiftNode, shift_date
from panelground.errors import DuplicateKeyError, NameCollisionError, SchemaError

D = datetime.date

SALES = pa.record_batch(
    {
        "shop": ["A", "A", "B", "A", "B"],
        "month": [D(2024, 1, 1), D(2024, 2, 1), D(2024, 1, 1), D(2024, 4, 1), D(2024, 2, 1)],
        "sales": [10, 12, 7, 9, 8],
    }
)


def _run(node):
    batches = list(node.batches())
    assert len(batches) == 1
    return batches[0]


@pytest.mark.parametrize(
    "date, n, unit, expected",
    [
        (D(2024, 1, 31), 1, "month", D(2024, 2, 29)),
        (D(2023, 1, 31), 1, "month", D(2023, 2, 28)),
        (D(2024, 3, 31), -1, "month", D(2024, 2, 29)),
        (D(2024, 5, 31), 1, "quarter", D(2024, 8, 31)),
        (D(2024, 11, 30), 1, "quarter", D(2025, 2, 28)),
        (D(2024, 2, 29), 1, "year", D(2025, 2, 28)),
        (D(2024, 1, 15), -1, "year", D(2023, 1, 15)),
        (D(2024, 1, 1), -1, "day", D(2023, 12, 31)),
        (D(2024, 1, 1), 1, "week", D(2024, 1, 8)),
        (D(2024, 12, 15), 1, "month", D(2025, 1, 15)),
    ],
)
def test_shift_date(date, n, unit, expected):
    assert shift_date(date, n, unit) == expected


def test_shift_datetime_keeps_time():
    moment = datetime.datetime(2024, 1, 31, 12, 30)
    assert shift_date(moment, 1, "month") == datetime.datetime(2024, 2, 29, 12, 30)


def test_shift_date_unknown_unit():
    with pytest.raises(ValueError):
        shift_date(D(2024, 1, 1), 1, "decade")


def test_monthly_lag_per_entity():
    node = TemporalShiftNode("month", ["sales"], 1, "month", PyArrowTableDataSource(SALES), by=["shop"])
    result = _run(node)
    assert result.column_names == ["shop", "month", "sales", "sales_lag1"]
    # Input order is kept, the gap in March leaves April without a value.
    assert result.column("sales_lag1").to_pylist() == [None, 10, None, None, 7]


def test_monthly_lead_per_entity():
    node = TemporalShiftNode("month", ["sales"], -1, "month", PyArrowTableDataSource(SALES), by=["shop"])
    result = _run(node)
    assert result.column("sales_lead1").to_pylist() == [12, None, 8, None, None]


def test_lag_custom_names():
    node = TemporalShiftNode(
        "month",
        ["sales"],
        3,
        "month",
        PyArrowTableDataSource(SALES),
        by=["shop"],
        names=["sales_q"],
    )
    assert _run(node).column("sales_q").to_pylist() == [None, None, None, 10, None]


def test_lag_timestamps():
    data = pa.record_batch(
        {
            "at": pa.array(
                [datetime.datetime(2024, 1, 1, 9), datetime.datetime(2024, 1, 2, 9)],
                type=pa.timestamp("s"),
            ),
            "v": [1, 2],
        }
    )
    node = TemporalShiftNode("at", ["v"], 1, "day", PyArrowTableDataSource(data))
    assert _run(node).column("v_lag1").to_pylist() == [None, 1]


def test_duplicate_dates():
    data = pa.record_batch({"shop": ["A", "A"], "month": [D(2024, 1, 1)] * 2, "sales": [1, 2]})
    node = TemporalShiftNode("month", ["sales"], 1, "month", PyArrowTableDataSource(data), by=["shop"])
    with pytest.raises(DuplicateKeyError):
        list(node.batches())


def test_same_date_different_entities():
    data = pa.record_batch({"shop": ["A", "B"], "month": [D(2024, 1, 1)] * 2, "sales": [1, 2]})
    node = TemporalShiftNode("month", ["sales"], 1, "month", PyArrowTableDataSource(data), by=["shop"])
    assert _run(node).column("sales_lag1").to_pylist() == [None, None]


def test_null_dates():
    data = pa.record_batch({"month": [D(2024, 1, 1), None, D(2024, 2, 1)], "sales": [1, 2, 3]})
    node = TemporalShiftNode("month", ["sales"], 1, "month", PyArrowTableDataSource(data))
    assert _run(node).column("sales_lag1").to_pylist() == [None, None, 1]


def test_not_a_date_column():
    node = TemporalShiftNode("sales", ["sales"], 1, "day", PyArrowTableDataSource(SALES))
    with pytest.raises(SchemaError):
        list(node.batches())


def test_output_name_collision():
    node = TemporalShiftNode(
        "month", ["sales"], 1, "month", PyArrowTableDataSource(SALES), names=["shop"]
    )
    with pytest.raises(NameCollisionError):
        list(node.batches())


def test_invalid_arguments():
    with pytest.raises(ValueError):
        TemporalShiftNode("month", ["sales"], 1, "fortnight", PyArrowTableDataSource(SALES))
    with pytest.raises(ValueError):
        TemporalShiftNode("month", ["sales"], 1, "day", PyArrowTableDataSource(SALES), names=[])


@pytest.mark.parametrize(
    "months, expected",
    [
        ([D(2014, 1, 31), D(2014, 2, 28), D(2014, 3, 31)], [None, None, 2]),
        ([D(2014, 1, 31), D(2014, 3, 31)], [None, None]),
    ],
)
def test_monthly_lag_at_month_end(months, expected):
    data = pa.record_batch({"month": months, "sales": list(range(1, len(months) + 1))})
    node = TemporalShiftNode("month", ["sales"], 1, "month", PyArrowTableDataSource(data))
    # March 31st lags to February 28th, which is only there in the first case.
    assert _run(node).column("sales_lag1").to_pylist() == expected
