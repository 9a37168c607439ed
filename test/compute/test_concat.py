import pyarrow as pa
import pytest

from panelground.compute import ConcatNode, PyArrowTableDataSource
from panelground.errors import SchemaError, TypeMismatchError


def _concat(*batches, union_columns=False):
    node = ConcatNode(
        [PyArrowTableDataSource(b) for b in batches], union_columns=union_columns
    )
    result = list(node.batches())
    assert len(result) == 1
    return result[0]


def test_concat_same_schema():
    first = pa.record_batch({"a": [1, 2], "b": ["x", "y"]})
    second = pa.record_batch({"a": [3], "b": ["z"]})
    result = _concat(first, second)
    assert result.column("a").to_pylist() == [1, 2, 3]
    assert result.column("b").to_pylist() == ["x", "y", "z"]


def test_concat_different_schema_rejected():
    first = pa.record_batch({"a": [1]})
    second = pa.record_batch({"b": [1]})
    with pytest.raises(SchemaError):
        _concat(first, second)


def test_concat_union_columns_first_appearance_order():
    first = pa.record_batch({"b": ["x"], "a": [1]})
    second = pa.record_batch({"a": [2], "c": [True]})
    result = _concat(first, second, union_columns=True)
    assert result.column_names == ["b", "a", "c"]
    assert result.to_pydict() == {"b": ["x", None], "a": [1, 2], "c": [None, True]}


def test_concat_union_promotes_types():
    first = pa.record_batch({"v": pa.array([1], pa.int32())})
    second = pa.record_batch({"v": [0.5]})
    result = _concat(first, second, union_columns=True)
    assert result.schema.field("v").type == pa.float64()
    assert result.column("v").to_pylist() == [1.0, 0.5]


def test_concat_union_conflicting_types():
    first = pa.record_batch({"v": [1]})
    second = pa.record_batch({"v": ["x"]})
    with pytest.raises(TypeMismatchError):
        _concat(first, second, union_columns=True)


def test_concat_empty_sources():
    empty = pa.record_batch({"a": pa.array([], pa.int64())})
    result = _concat(empty, empty)
    assert result.num_rows == 0
    assert result.schema.names == ["a"]


def test_concat_requires_children():
    with pytest.raises(ValueError):
        ConcatNode([])
