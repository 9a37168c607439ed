import pyarrow as pa
import pytest

from panelground.compute import PaginateNode, PyArrowTableDataSource

DATA = pa.Table.from_batches(
    [
        pa.record_batch({"n": [0, 1, 2]}),
        pa.record_batch({"n": [3, 4]}),
        pa.record_batch({"n": [5, 6, 7]}),
    ]
)


@pytest.mark.parametrize(
    "offset, length, expected",
    [
        (0, 2, [0, 1]),
        (2, 3, [2, 3, 4]),
        (4, 10, [4, 5, 6, 7]),
        (1, 6, [1, 2, 3, 4, 5, 6]),
    ],
)
def test_paginate_across_batches(offset, length, expected):
    node = PaginateNode(offset, length, PyArrowTableDataSource(DATA))
    values = [v for b in node.batches() for v in b.column("n").to_pylist()]
    assert values == expected


def test_paginate_past_the_end_emits_empty_batch():
    node = PaginateNode(20, 5, PyArrowTableDataSource(DATA))
    batches = list(node.batches())
    assert sum(b.num_rows for b in batches) == 0
    assert batches[0].schema.names == ["n"]


def test_paginate_negative():
    with pytest.raises(ValueError):
        PaginateNode(-1, 5, PyArrowTableDataSource(DATA))
