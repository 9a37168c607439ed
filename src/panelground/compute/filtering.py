"""Query plan nodes that implement filtering of rows.

A common request in queries is to filter the data to
pick only the rows that respect a specific filter.
An example is the ``WHERE`` condition in SQL queries.

This module implements the basic filtering capabilities.
"""

import pyarrow as pa

from ..config import get_logger
from ..errors import SchemaError
from .base import QueryPlanNode
from .expressions import Expression, apply_expression_if_needed


class FilterNode(QueryPlanNode):
    """Filter data based on a predicate expression.

    The filter expects an expression that when applied
    to the batch of data being filtered returns ``true``
    or ``false`` for each row in the data to mark which
    rows have to be preserved and which rows have to be discarded.
    Rows for which the predicate is null are discarded.

    An already computed boolean mask can be provided in place
    of the expression, in such case it must have one entry for
    each row emitted by the child.

    >>> import pyarrow as pa
    >>> import pyarrow.compute as pc
    >>> from panelground.compute import col, lit, FunctionCallExpression, PyArrowTableDataSource
    >>> data = pa.record_batch({"values": [1, 2, 3, 4, 5]})
    >>> predicate = FunctionCallExpression(pc.greater, col("values"), lit(3))
    >>> predicate.apply(data)
    <pyarrow.lib.BooleanArray object at ...>
    [
      false,
      false,
      false,
      true,
      true
    ]
    >>> next(FilterNode(predicate, PyArrowTableDataSource(data)).batches())
    pyarrow.RecordBatch
    values: int64
    ----
    values: [4,5]
    """

    def __init__(self, expression: Expression | pa.Array, child: QueryPlanNode) -> None:
        """
        :param expression: The predicate expression or boolean mask to filter with.
        :param child: The node emitting the data to be filtered.
        """
        self.expression = expression
        self.child = child

    def __str__(self) -> str:
        if isinstance(self.expression, Expression):
            expression = str(self.expression)
        else:
            expression = f"mask[{len(self.expression)}]"
        return f"FilterNode(filter={expression}, child={self.child})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Apply the filtering to the child node.

        For each recordbatch yielded by the child node,
        apply the expression and get back a mask
        (an array of only true/false values).

        Based on the mask filter the rows of the batch
        and return only those matching the filter.

        When a precomputed mask is used, it is sliced
        to match the rows of each batch.
        """
        logger = get_logger()
        offset = 0
        for batch in self.child.batches():
            if isinstance(self.expression, Expression):
                mask = apply_expression_if_needed(batch, self.expression)
            else:
                mask = self.expression.slice(offset, batch.num_rows)
                offset += batch.num_rows
            self._check_mask(mask, batch)
            filtered = batch.filter(mask)
            logger.debug(
                "FilterNode kept %d of %d rows", filtered.num_rows, batch.num_rows
            )
            yield filtered

        if not isinstance(self.expression, Expression) and offset != len(
            self.expression
        ):
            raise SchemaError(
                f"Mask has {len(self.expression)} entries but data has {offset} rows"
            )

    @staticmethod
    def _check_mask(mask: pa.Array, batch: pa.RecordBatch) -> None:
        if isinstance(mask, pa.ChunkedArray):
            mask = mask.combine_chunks()
        if not pa.types.is_boolean(mask.type):
            raise SchemaError(f"Filter predicate must be boolean, got {mask.type}")
        if len(mask) != batch.num_rows:
            raise SchemaError(
                f"Mask has {len(mask)} entries but data has {batch.num_rows} rows"
            )
