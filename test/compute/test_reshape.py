import pyarrow as pa
import pytest

from panelground.compute import PyArrowTableDataSource
from panelground.compute.reshape import CastNode, MeltNode
from panelground.errors import (
    DuplicateKeyError,
    NameCollisionError,
    SchemaError,
    TypeMismatchError,
)

WIDE = pa.record_batch(
    {
        "city": ["Rome", "Oslo"],
        "year": [2020, 2020],
        "population": pa.array([28, 7], type=pa.int32()),
        "area": pa.array([1285, 454], type=pa.int16()),
    }
)


def _run(node):
    batches = list(node.batches())
    assert len(batches) == 1
    return batches[0]


def test_melt_row_major():
    result = _run(MeltNode(["population", "area"], ["city", "year"], PyArrowTableDataSource(WIDE)))
    assert result.column_names == ["city", "year", "variable", "value"]
    assert result.column("city").to_pylist() == ["Rome", "Rome", "Oslo", "Oslo"]
    assert result.column("variable").to_pylist() == ["population", "area", "population", "area"]
    assert result.column("value").to_pylist() == [28, 1285, 7, 454]
    assert result.schema.field("value").type == pa.int32()


def test_melt_default_id_columns_and_names():
    node = MeltNode(
        ["area"],
        None,
        PyArrowTableDataSource(WIDE),
        variable_name="measure",
        value_name="amount",
    )
    result = _run(node)
    assert result.column_names == ["city", "year", "population", "measure", "amount"]


def test_melt_int_and_float():
    data = pa.record_batch({"id": [1], "a": pa.array([1], pa.int8()), "b": [0.5]})
    result = _run(MeltNode(["a", "b"], ["id"], PyArrowTableDataSource(data)))
    assert result.schema.field("value").type == pa.float64()
    assert result.column("value").to_pylist() == [1.0, 0.5]


def test_melt_incompatible_types():
    data = pa.record_batch({"id": [1], "a": [1], "b": ["x"]})
    with pytest.raises(TypeMismatchError):
        list(MeltNode(["a", "b"], ["id"], PyArrowTableDataSource(data)).batches())


def test_melt_int64_and_float_rejected():
    data = pa.record_batch({"id": [1], "a": [1], "b": [0.5]})
    with pytest.raises(TypeMismatchError):
        list(MeltNode(["a", "b"], ["id"], PyArrowTableDataSource(data)).batches())


def test_melt_explicit_coercion():
    data = pa.record_batch({"id": [1], "a": [1], "b": ["x"]})
    node = MeltNode(["a", "b"], ["id"], PyArrowTableDataSource(data), coerce="string")
    assert _run(node).column("value").to_pylist() == ["1", "x"]


def test_melt_name_collision():
    node = MeltNode(["area"], ["city"], PyArrowTableDataSource(WIDE), value_name="city")
    with pytest.raises(NameCollisionError):
        list(node.batches())


def test_melt_requires_values():
    with pytest.raises(ValueError):
        MeltNode([], ["city"], PyArrowTableDataSource(WIDE))


def test_cast_missing_cells_are_null():
    data = pa.record_batch(
        {
            "id": [1, 2, 1],
            "variable": ["a", "a", "b"],
            "value": [10, 20, 30],
        }
    )
    result = _run(CastNode(["id"], "variable", "value", PyArrowTableDataSource(data)))
    assert result.column_names == ["id", "a", "b"]
    assert result.column("a").to_pylist() == [10, 20]
    assert result.column("b").to_pylist() == [30, None]


def test_cast_duplicates():
    data = pa.record_batch({"id": [1, 1], "variable": ["a", "a"], "value": [1, 2]})
    with pytest.raises(DuplicateKeyError) as err:
        list(CastNode(["id"], "variable", "value", PyArrowTableDataSource(data)).batches())
    assert err.value.key == (1, "a")

    node = CastNode(["id"], "variable", "value", PyArrowTableDataSource(data), aggregation="sum")
    assert _run(node).column("a").to_pylist() == [3]


def test_cast_custom_aggregation():
    data = pa.record_batch({"id": [1, 1], "variable": ["a", "a"], "value": [1, 2]})
    node = CastNode(
        ["id"],
        "variable",
        "value",
        PyArrowTableDataSource(data),
        aggregation=lambda values: values.to_pylist(),
    )
    assert _run(node).column("a").to_pylist() == [[1, 2]]


def test_cast_null_variable():
    data = pa.record_batch({"id": [1], "variable": pa.array([None], pa.string()), "value": [1]})
    with pytest.raises(SchemaError):
        list(CastNode(["id"], "variable", "value", PyArrowTableDataSource(data)).batches())


def test_cast_variable_collides_with_id():
    data = pa.record_batch({"id": [1], "variable": ["id"], "value": [1]})
    with pytest.raises(NameCollisionError):
        list(CastNode(["id"], "variable", "value", PyArrowTableDataSource(data)).batches())


def test_melt_then_cast_round_trip():
    melted = _run(MeltNode(["population", "area"], ["city", "year"], PyArrowTableDataSource(WIDE)))
    wide = _run(CastNode(["city", "year"], "variable", "value", PyArrowTableDataSource(melted)))
    assert wide.column_names == WIDE.column_names
    for name in WIDE.column_names:
        assert wide.column(name).to_pylist() == WIDE.column(name).to_pylist()
