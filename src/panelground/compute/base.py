"""Base classes and interfaces for Compute Engine

This module defines the base components that are
necessary to represent a query plan and execute it.
"""

import abc
from typing import Any, Iterable, Iterator

import pyarrow as pa

from ..errors import ColumnNotFoundError


class QueryPlanNode(abc.ABC):
    """A node of a query execution plan.

    The Query plan is represented as a tree
    of nodes. Each node is a step in the execution
    and all previous steps are children of the
    last one.

    For example a simple plan might involve
    loading data and aggregating it::

        LoadDataNode -> AggregateNode(keys, aggregations)

    That would be a plan where the last step
    is aggregating, and the LoadDataNode is a child
    of the aggregate node.

    The number of children can be variable, some
    nodes like for example Joins, will accept two
    child nodes that have to be joined together.

    Each Node accepts :class:`pyarrow.RecordBatch`
    data as its input and emits a new
    :class:`pyarrow.RecordBatch` as its output.
    Nodes always emit at least one batch, even when
    it has no rows, so that the schema of the result
    is always known to the next node.

    For example a simple node that takes data
    and just forwards it as is after printing
    its content can be implemented as::

        class DebugDataNode(QueryPlanNode):
            def __init__(self, child):
                self.child = child

            def batches(self):
                for b in self.child.batches():
                    print(b)
                    yield b

            def __str__(self):
                return f"DebugDataNode()"
    """

    RecordBatchesGenerator = Iterator[pa.RecordBatch]

    @abc.abstractmethod
    def batches(self) -> Iterator[pa.RecordBatch]:
        """Emits the batches for the next node.

        Each QueryPlan node is expected to be able to
        generate data that has to be provided to the next
        node in the plan.

        Usually this happens by consuming data from its
        child nodes, transforming it somehow, and yielding
        it back to the next consumer.
        """
        ...

    @abc.abstractmethod
    def __str__(self) -> str:
        """Human readable representation of the node."""
        ...


class Expression(abc.ABC):
    """Expression to apply to a RecordBatch.

    Expressions are some form of operation that
    has to be applied to the data of a :class:`pyarrow.RecordBatch`
    to create new data.

    Typical example of expressions are: A > B
    which is expected to compare column A of the RecordBatch
    to column B of the RecordBatch and return the result.

    As our engine is Column Major, applying an expression
    always results in a new column, thus in a
    :class:`pyarrow.Array` that contains the data
    for that column.
    """

    @abc.abstractmethod
    def apply(self, batch: pa.RecordBatch) -> pa.Array:
        """Apply the expression to a RecordBatch."""
        ...

    @abc.abstractmethod
    def __str__(self) -> str:
        """Human readable representation of the expression."""
        ...


class ColumnRef(Expression):
    """References a column in a record batch.

    When another expression or the engine need
    to operate on a specific column, we will
    need a way to reference that column and its data.

    This expression is aware of the column and when
    applied to a record batch returns the data for
    that column.
    """

    def __init__(self, name: str) -> None:
        """
        :param name: The name of the column being referenced.
        """
        self.name = name

    def apply(self, batch: pa.RecordBatch) -> pa.Array:
        """Get the data for the column."""
        ensure_columns(batch.schema, [self.name])
        return batch.column(self.name)

    def __str__(self) -> str:
        return f"ColumnRef({self.name})"


class Literal(Expression):
    """A constant value used as an argument of expressions."""

    def __init__(self, value: Any) -> None:
        """
        :param value: The constant value.
        """
        self.value = value

    def apply(self, batch: pa.RecordBatch) -> pa.Scalar:
        """Get the value as an arrow scalar."""
        return pa.scalar(self.value)

    def __str__(self) -> str:
        return f"Literal({self.value!r})"


col = ColumnRef
lit = Literal


def ensure_columns(schema: pa.Schema, names: Iterable[str]) -> None:
    """Raise :class:`ColumnNotFoundError` for the first unknown column."""
    available = schema.names
    for name in names:
        if name not in available:
            raise ColumnNotFoundError(name, available)


def empty_batch(schema: pa.Schema) -> pa.RecordBatch:
    """A RecordBatch with no rows and the provided schema."""
    return pa.RecordBatch.from_arrays(
        [pa.array([], type=field.type) for field in schema], schema=schema
    )


def materialize(node: QueryPlanNode) -> pa.RecordBatch:
    """Load all the data emitted by a node into a single RecordBatch.

    Operations like joins or reshaping need to see all the
    rows at once, so the batches emitted by their children
    are accumulated and combined into one batch.
    """
    batches = list(node.batches())
    if not batches:
        raise ValueError(f"{node} emitted no batches")
    if len(batches) == 1:
        return batches[0]

    # Converting to tables and back is zero-copy,
    # only combine_chunks has to move data.
    table = pa.Table.from_batches(batches).combine_chunks()
    combined = table.to_batches()
    if not combined:
        return empty_batch(table.schema)
    return combined[0]
