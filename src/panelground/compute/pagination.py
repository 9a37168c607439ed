"""Support limiting or skipping data in a query plan.

Implements nodes whose purpose is to slice the data
emitted by a query plan. Discarding the rows that
are not part of the selected slice of data.
"""

from typing import Iterator

import pyarrow as pa

from .base import QueryPlanNode


class PaginateNode(QueryPlanNode):
    """Emit only one page of the received data.

    Given a starting index and a length, only emit
    length rows after the starting index is reached.

    For example if ``offset=1`` and ``length=1``
    only the second row will be emitted::

        0: skip because < offset
        1: emit
        2: skip because > length=1 and one row was already emitted.

    >>> import pyarrow as pa
    >>> from panelground.compute import PyArrowTableDataSource
    >>> page = PaginateNode(1, 2, PyArrowTableDataSource(pa.record_batch({"n": [1, 2, 3, 4]})))
    >>> [b["n"].to_pylist() for b in page.batches()]
    [[2, 3]]
    """

    def __init__(self, offset: int, length: int, child: QueryPlanNode) -> None:
        """
        :param offset: From which row to take data, first row is 0.
        :param length: How many rows to take after offset was reached.
        :param child: the node from which to consume the rows.
        """
        if offset < 0 or length < 0:
            raise ValueError("Offset and length must be non negative")
        self.offset = offset
        self.length = length
        self.end = offset + length
        self.child = child

    def __str__(self) -> str:
        return f"PaginateNode({self.offset}:{self.end}, {self.child})"

    def batches(self) -> Iterator[pa.RecordBatch]:
        """Apply the pagination to the child node and emit the rows.

        Consume rows from the child node skipping those until we
        reach offset. Once offset is reached start yielding rows
        until length is reached.

        Subsequent rows are never consumed, so the child might
        not get exhausted.

        If the page contains no rows, an empty batch is emitted.
        """
        consumed_rows = 0  # keep track of how many rows we have already seen
        emitted = False
        last_batch = None

        batches_generator = self.child.batches()
        for batch in batches_generator:
            last_batch = batch
            batch_size = batch.num_rows

            # Keep discarding batches until we get to the batch that
            # has the rows _after_ offset.
            if consumed_rows + batch_size <= self.offset:
                consumed_rows += batch_size
                continue

            start_in_batch = max(0, self.offset - consumed_rows)
            remaining_rows = self.end - consumed_rows - start_in_batch
            rows_in_this_batch = min(batch_size - start_in_batch, remaining_rows)
            if rows_in_this_batch > 0:
                emitted = True
                yield batch.slice(start_in_batch, rows_in_this_batch)
            consumed_rows += batch_size
            if consumed_rows >= self.end:
                batches_generator.close()
                break

        if not emitted and last_batch is not None:
            yield last_batch.slice(0, 0)
