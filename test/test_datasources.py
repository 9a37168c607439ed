import pyarrow as pa
import pytest

from panelground.compute.datasources import PyArrowTableDataSource

MOCK_PYARROW_TABLE = pa.table({"col1": [1, 4, 7], "col2": [2, 5, 8], "col3": [3, 6, 9]})


@pytest.mark.parametrize(
    "init_args, expected_str",
    [
        (
            (MOCK_PYARROW_TABLE,),
            "PyArrowTableDataSource(columns=['col1', 'col2', 'col3'], rows=3)",
        ),
        (
            (MOCK_PYARROW_TABLE.to_batches()[0],),
            "PyArrowTableDataSource(columns=['col1', 'col2', 'col3'], rows=3)",
        ),
    ],
)
def test_init_and_str(init_args, expected_str):
    data_source = PyArrowTableDataSource(*init_args)
    assert str(data_source) == expected_str


@pytest.mark.parametrize(
    "init_args, expected_batches",
    [
        ((MOCK_PYARROW_TABLE,), MOCK_PYARROW_TABLE.to_batches()),
        ((MOCK_PYARROW_TABLE.to_batches()[0],), MOCK_PYARROW_TABLE.to_batches()),
    ],
)
def test_batches(init_args, expected_batches):
    data_source = PyArrowTableDataSource(*init_args)
    batches = list(data_source.batches())
    assert len(batches) == len(expected_batches)
    for batch, expected_batch in zip(batches, expected_batches):
        assert batch.equals(expected_batch)


def test_empty_table_emits_empty_batch():
    empty = pa.table({"col1": pa.array([], type=pa.int32())})
    batches = list(PyArrowTableDataSource(empty).batches())
    assert len(batches) == 1
    assert batches[0].num_rows == 0
    assert batches[0].schema.equals(empty.schema)


def test_multiple_chunks():
    table = pa.concat_tables([MOCK_PYARROW_TABLE, MOCK_PYARROW_TABLE])
    source = PyArrowTableDataSource(table)
    assert sum(b.num_rows for b in source.batches()) == 6
    assert source.poll_schema().names == ["col1", "col2", "col3"]
