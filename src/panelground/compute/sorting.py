"""Query plan nodes that perform sorting of data.

When computing ranks, looking for most significant
values or preparing time series, it's often necessary to
sort the data based on one or more columns.

This module implements the sorting capabilities.
"""

from typing import Iterator

import pyarrow as pa
import pyarrow.compute as pc

from .base import QueryPlanNode, ensure_columns, materialize


class SortNode(QueryPlanNode):
    """Sort data in-memory based on one or more columns.

    The node expects a list of columns and a list of
    sort directions. The data will be sorted based on
    the columns in the order they are provided.

    The sort directions are used to specify if the
    sorting should be ascending or descending.

    The sort is stable: rows with equal keys keep
    the order they had in the input. Nulls are placed
    after all other values regardless of the direction.

    >>> import pyarrow as pa
    >>> from panelground.compute import PyArrowTableDataSource
    >>> data = pa.record_batch({"values": [1, 2, 3, 4, 5]})
    >>> # Sort the data in descending order
    >>> sort = SortNode(["values"], [True], PyArrowTableDataSource(data))
    >>> next(sort.batches())["values"].to_pylist()
    [5, 4, 3, 2, 1]
    """

    def __init__(
        self, keys: list[str], descending: list[bool], child: QueryPlanNode
    ) -> None:
        """
        :param keys: The columns to sort by in the order they should be sorted.
        :param descending: If each columns should be sorted in a descending order.
        :param child: The node emitting the data to be sorted.
        """
        if len(keys) != len(descending):
            raise ValueError("Keys and descending must have the same length")

        self.keys = list(keys)
        self.sorting = list(
            zip(keys, ("descending" if desc else "ascending" for desc in descending))
        )
        self.child = child

    def __str__(self) -> str:
        return f"SortNode(sorting={self.sorting}, {self.child})"

    def batches(self) -> Iterator[pa.RecordBatch]:
        """Sort the data emitted by the child node.

        Batches provided by child node are accumulated
        until they are all loaded in memory, than they
        are merged and sorted as an unique batch.
        """
        batch = materialize(self.child)
        ensure_columns(batch.schema, self.keys)
        if not self.sorting:
            yield batch
            return

        yield batch.take(sort_indices(batch, self.sorting))


def sort_indices(batch: pa.RecordBatch, sorting: list[tuple[str, str]]) -> pa.Array:
    """Stable sort indices of a batch, with nulls at the end."""
    return pc.sort_indices(
        batch, options=pc.SortOptions(sort_keys=sorting, null_placement="at_end")
    )
