"""Query plan nodes that implement projection of columns.

A common request in queries is to select specific columns
and project new columns based on expressions.
An example is the ``SELECT`` clause in SQL queries.

This module implements the basic projection capabilities.
"""

from typing import Iterator

import pyarrow as pa

from ..errors import NameCollisionError, SchemaError
from .base import QueryPlanNode, ensure_columns
from .expressions import Expression


class ProjectNode(QueryPlanNode):
    """Project data by selecting specific columns and computing expressions.

    The projection expects a list of column names to select and a dictionary
    of column names and expressions to project new columns.

    Projected columns that share the name of an existing column
    replace it in its original position, otherwise they are appended.
    In place of an expression, already computed data can be provided
    as a :class:`pyarrow.Array` with one value per row.

    >>> import pyarrow as pa
    >>> import pyarrow.compute as pc
    >>> from panelground.compute import col, lit, FunctionCallExpression, PyArrowTableDataSource
    >>> data = pa.record_batch({"a": [1, 2, 3], "b": [4, 5, 6]})
    >>> next(ProjectNode(["a"], {"ab_sum": FunctionCallExpression(pc.add, col("a"), col("b"))},
    ...                  PyArrowTableDataSource(data)).batches())
    pyarrow.RecordBatch
    a: int64
    ab_sum: int64
    ----
    a: [1,2,3]
    ab_sum: [5,7,9]
    """

    def __init__(
        self,
        select: list[str] | None,
        project: dict[str, Expression | pa.Array] | None,
        child: QueryPlanNode,
    ) -> None:
        """
        :param select: The list of column names to select.
                       ``None`` means select all columns.
                       ``[]`` means select only the projected columns.
        :param project: The dict {name: Expression} to project new columns.
        :param child: The node emitting the data to be projected.
        """
        self.select = select
        self.project = project or {}
        self.child = child

        if self.select is None:
            # No selection was provided, we will select all columns
            self.restrict_columns = None
        else:
            # This is the list of columns we want to keep,
            # in case select=[] it will only provide the project columns.
            self.restrict_columns = list(self.select)
            for name in self.project:
                if name not in self.restrict_columns:
                    self.restrict_columns.append(name)
            duplicates = [
                name for name in self.select if self.select.count(name) > 1
            ]
            if duplicates:
                raise NameCollisionError(duplicates)

    def __str__(self) -> str:
        return f"ProjectNode(select={self.select}, project={self.project}, child={self.child})"

    def batches(self) -> Iterator[pa.RecordBatch]:
        """Apply the projection to the child node.

        For each recordbatch yielded by the child node,
        sequentially apply the expressions to project new columns
        and then select the requested columns.

        Select is applied last so that expressions can
        refer to columns that are not part of the selection.
        """
        offset = 0
        for batch in self.child.batches():
            if self.select:
                ensure_columns(batch.schema, self.select)

            for name, expr in self.project.items():
                if isinstance(expr, Expression):
                    values = expr.apply(batch)
                else:
                    values = expr.slice(offset, batch.num_rows)
                if isinstance(values, pa.ChunkedArray):
                    values = values.combine_chunks()
                if len(values) != batch.num_rows:
                    raise SchemaError(
                        f"Column {name!r} has {len(values)} values but data has {batch.num_rows} rows"
                    )

                existing = batch.schema.get_field_index(name)
                if existing == -1:
                    batch = batch.append_column(name, values)
                else:
                    batch = batch.set_column(existing, name, values)
            offset += batch.num_rows

            if self.restrict_columns is not None:
                batch = batch.select(self.restrict_columns)

            yield batch

        for name, expr in self.project.items():
            if not isinstance(expr, Expression) and len(expr) != offset:
                raise SchemaError(
                    f"Column {name!r} has {len(expr)} values but data has {offset} rows"
                )
