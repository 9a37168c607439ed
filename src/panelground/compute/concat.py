"""Query plan nodes that stack multiple sources of data.

Appending the rows of multiple tables one after the other
is the equivalent of ``UNION ALL`` in SQL. The sources
are expected to share the same columns, but when requested
the columns can also be unioned, in that case rows coming
from a source lacking a column get nulls for it.
"""

from typing import Iterator

import pyarrow as pa

from ..config import get_logger
from ..errors import SchemaError
from .base import QueryPlanNode, empty_batch, materialize
from .coercion import coerce_array, common_type


class ConcatNode(QueryPlanNode):
    """Emit the rows of all children, one child after the other.

    >>> import pyarrow as pa
    >>> from panelground.compute import PyArrowTableDataSource
    >>> first = PyArrowTableDataSource(pa.record_batch({"a": [1], "b": ["x"]}))
    >>> second = PyArrowTableDataSource(pa.record_batch({"a": [2], "c": [True]}))
    >>> next(ConcatNode([first, second], union_columns=True).batches()).to_pydict()
    {'a': [1, 2], 'b': ['x', None], 'c': [None, True]}
    """

    def __init__(self, children: list[QueryPlanNode], union_columns: bool = False) -> None:
        """
        :param children: The nodes whose data has to be stacked, in order.
        :param union_columns: When ``False`` all children must have the
                              same schema, otherwise the result has all
                              the columns of all children.
        """
        if not children:
            raise ValueError("At least one source of data is required to concatenate")
        self.children = children
        self.union_columns = union_columns

    def __str__(self) -> str:
        children = ", ".join(str(c) for c in self.children)
        return f"ConcatNode(union_columns={self.union_columns}, [{children}])"

    def batches(self) -> Iterator[pa.RecordBatch]:
        """Concatenate the data of the children.

        All children are loaded first so that the schema
        is validated before any data is emitted.
        """
        parts = [materialize(child) for child in self.children]
        if self.union_columns:
            schema = self._union_schema([p.schema for p in parts])
        else:
            schema = parts[0].schema
            for idx, part in enumerate(parts[1:], start=1):
                if not part.schema.equals(schema):
                    raise SchemaError(
                        f"Source {idx} has schema {part.schema.names} "
                        f"({[str(t) for t in part.schema.types]}) "
                        f"but {schema.names} ({[str(t) for t in schema.types]}) was expected"
                    )

        get_logger().debug(
            "ConcatNode stacking %d sources, %d rows",
            len(parts),
            sum(p.num_rows for p in parts),
        )
        table = pa.Table.from_batches(
            [self._conform(part, schema) for part in parts], schema=schema
        ).combine_chunks()
        batches = table.to_batches()
        if batches:
            yield batches[0]
        else:
            yield empty_batch(schema)

    @staticmethod
    def _union_schema(schemas: list[pa.Schema]) -> pa.Schema:
        """Union of all the columns, in order of first appearance."""
        types: dict[str, list[pa.DataType]] = {}
        for schema in schemas:
            for field in schema:
                types.setdefault(field.name, []).append(field.type)
        return pa.schema(
            [
                pa.field(name, common_type(coltypes, context=f"column {name!r}"))
                for name, coltypes in types.items()
            ]
        )

    @staticmethod
    def _conform(batch: pa.RecordBatch, schema: pa.Schema) -> pa.RecordBatch:
        """Adapt a batch to the target schema, filling missing columns with nulls."""
        columns = []
        for field in schema:
            if field.name in batch.schema.names:
                columns.append(coerce_array(batch.column(field.name), field.type))
            else:
                columns.append(pa.nulls(batch.num_rows, type=field.type))
        return pa.RecordBatch.from_arrays(columns, schema=schema)
