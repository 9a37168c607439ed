"""Expressions executed by compute engine nodes.

The Compute Engine will sometimes need to filter data
or emit new data. This will be performed by nodes that
need to know how the data must be filtered or emitted.

Filters will need a ``predicate``, so an expression that
returns ``true`` or ``false`` for each row that has to be
filtered.

Projections will need an expression that computes the rows
for the projection, for example ``A + B``.
"""

from typing import Any, Callable

import pyarrow as pa

from .. import utils
from .base import Expression


def apply_expression_if_needed(
    batch: pa.RecordBatch, o: Expression | pa.Array
) -> pa.Array:
    """Invoke Apply on expressions when needed

    If the provided object is an Expression,
    it will be applied to the target batch.

    Otherwise it will treat it as if it's
    already the result of an expression
    or a literal value.
    """
    if isinstance(o, Expression):
        o = o.apply(batch)
    return o


class FunctionCallExpression(Expression):
    """Call a compute function on its arguments.

    Given a compute function, and a set of arguments
    (other expressions, literals or data), execute
    the function on the provided arguments and return
    the resulting data.

    For example to compare two columns this would be used as::

        FunctionCallExpression(pyarrow.compute.greater, ColumnRef("A"), ColumnRef("B"))
    """

    def __init__(self, func: Callable[..., Any], *args: Expression | Any) -> None:
        """
        :param func: The function accepting the arguments.
        :param *args: The arguments for the function.
        """
        self.func = func
        self.args = args

    def __str__(self) -> str:
        func_qualname = utils.inspect.get_qualname(self.func)
        return f"{func_qualname}({','.join(map(str, self.args))})"

    def apply(self, batch: pa.RecordBatch) -> pa.Array:
        """Invoke the function resolving all arguments on the recordbatch."""
        args = tuple(apply_expression_if_needed(batch, arg) for arg in self.args)
        return self.func(*args)


class RowPredicateExpression(Expression):
    """Evaluate a Python function on each row.

    The function receives each row as a ``dict`` of
    column name to Python value and must return a truthy
    value for rows to keep. This is far slower than
    using compute functions, but allows arbitrary logic.

    >>> import pyarrow as pa
    >>> batch = pa.record_batch({"n": [1, 5, 10]})
    >>> RowPredicateExpression(lambda row: row["n"] > 3).apply(batch).to_pylist()
    [False, True, True]
    """

    def __init__(self, func: Callable[[dict[str, Any]], Any]) -> None:
        """
        :param func: The function evaluated on each row.
        """
        self.func = func

    def __str__(self) -> str:
        return f"RowPredicate({utils.inspect.get_qualname(self.func)})"

    def apply(self, batch: pa.RecordBatch) -> pa.Array:
        """Evaluate the function on each row and collect the results as a mask."""
        return pa.array(
            [bool(self.func(row)) for row in batch.to_pylist()], type=pa.bool_()
        )
