"""Query Plan nodes that provide data

The datasource nodes are the leaves of a query plan,
they hand over data that was already loaded in memory
to the next node in the plan.

Parsing files or talking to databases is not a concern
of the engine, whoever loads the data is expected to
provide it as Arrow data.
"""

from abc import abstractmethod

import pyarrow as pa

from .base import QueryPlanNode, empty_batch


class DataSourceNode(QueryPlanNode):
    """Base class for nodes that provide data to a plan."""

    @abstractmethod
    def poll_schema(self) -> pa.Schema:
        """Poll the schema of the data source without loading its content."""
        ...


class PyArrowTableDataSource(DataSourceNode):
    """Load data from an in-memory pyarrow.Table or pyarrow.RecordBatch.

    Given a :class:`pyarrow.Table` or `pyarrow.RecordBatch` object,
    allow to use its data in a query plan.

    >>> import pyarrow as pa
    >>> source = PyArrowTableDataSource(pa.table({"id": [1, 2]}))
    >>> [batch.num_rows for batch in source.batches()]
    [2]
    """

    def __init__(self, table: pa.Table | pa.RecordBatch) -> None:
        """
        :param table: The table or recordbatch with the data to read.
        """
        self.table = table
        self.is_recordbatch = isinstance(table, pa.RecordBatch)

    def __str__(self) -> str:
        return f"PyArrowTableDataSource(columns={self.table.column_names}, rows={self.table.num_rows})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Emit the data contained in the Table for consumption by other node.

        Tables without rows have no batches at all,
        in that case an empty batch is emitted so that
        the next nodes still know the schema of the data.
        """
        if self.is_recordbatch:
            yield self.table
            return

        emitted = False
        for batch in self.table.to_batches():
            emitted = True
            yield batch
        if not emitted:
            yield empty_batch(self.table.schema)

    def poll_schema(self) -> pa.Schema:
        """Poll the schema of the Table."""
        return self.table.schema
