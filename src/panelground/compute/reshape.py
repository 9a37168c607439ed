"""Query plan nodes that reshape data between wide and long formats.

Panel data is often found in a *wide* format, where each
measure has its own column::

    city, year, population, area
    Rome, 2020, 2.8,        1285
    Oslo, 2020, 0.7,        454

and has to be converted to a *long* format, where a single
column holds the values and another one tells which measure
they belong to::

    city, year, variable,   value
    Rome, 2020, population, 2.8
    Rome, 2020, area,       1285
    Oslo, 2020, population, 0.7
    Oslo, 2020, area,       454

:class:`MeltNode` goes from wide to long,
:class:`CastNode` goes back from long to wide.

As all the measures end up in the same column, their types
must be combined to a common one, see :mod:`panelground.compute.coercion`.
"""

from typing import Any, Sequence

import pyarrow as pa

from ..config import get_logger
from ..errors import DuplicateKeyError, NameCollisionError, SchemaError, TypeMismatchError
from .aggregate import Aggregation, make_aggregation
from .base import QueryPlanNode, ensure_columns, materialize
from .coercion import coerce_array, common_type
from .grouping import GroupIndex


class MeltNode(QueryPlanNode):
    """Convert value columns to rows, from wide to long format.

    Each row of the child emits one row for each value column,
    in the order the value columns were provided.

    >>> import pyarrow as pa
    >>> from panelground.compute import PyArrowTableDataSource
    >>> data = pa.record_batch({"id": [1, 2], "a": pa.array([10, 20], pa.int32()), "b": [1.5, 2.5]})
    >>> melted = next(MeltNode(["a", "b"], ["id"], PyArrowTableDataSource(data)).batches())
    >>> melted.to_pydict()
    {'id': [1, 1, 2, 2], 'variable': ['a', 'b', 'a', 'b'], 'value': [10.0, 1.5, 20.0, 2.5]}
    """

    def __init__(
        self,
        value_columns: Sequence[str],
        id_columns: Sequence[str] | None,
        child: QueryPlanNode,
        variable_name: str = "variable",
        value_name: str = "value",
        coerce: pa.DataType | str | None = None,
    ) -> None:
        """
        :param value_columns: The columns whose values are moved to rows.
        :param id_columns: The columns repeated for each value,
                           ``None`` means all the columns that are not values.
        :param child: The node emitting the data to melt.
        :param variable_name: Name of the column holding the value column names.
        :param value_name: Name of the column holding the values.
        :param coerce: Type the values are converted to, instead of
                       computing a common type.
        """
        if not value_columns:
            raise ValueError("At least one value column is required to melt")
        self.value_columns = list(value_columns)
        self.id_columns = None if id_columns is None else list(id_columns)
        self.child = child
        self.variable_name = variable_name
        self.value_name = value_name
        if isinstance(coerce, str):
            coerce = pa.type_for_alias(coerce)
        self.coerce = coerce

    def __str__(self) -> str:
        return (
            f"MeltNode(values={self.value_columns}, ids={self.id_columns}, "
            f"variable={self.variable_name}, value={self.value_name}, {self.child})"
        )

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Melt the child data, all of it is loaded at once."""
        data = materialize(self.child)
        ensure_columns(data.schema, self.value_columns)
        id_columns = self.id_columns
        if id_columns is None:
            id_columns = [n for n in data.schema.names if n not in self.value_columns]
        ensure_columns(data.schema, id_columns)

        output_names = id_columns + [self.variable_name, self.value_name]
        if len(set(output_names)) != len(output_names):
            raise NameCollisionError(
                n for n in output_names if output_names.count(n) > 1
            )

        values = [data.column(name) for name in self.value_columns]
        target = self.coerce
        if target is None:
            target = common_type(
                (v.type for v in values), context=f"value columns {self.value_columns}"
            )
        try:
            values = [coerce_array(v, target) for v in values]
        except (pa.ArrowInvalid, pa.ArrowNotImplementedError) as err:
            raise TypeMismatchError(
                f"Can't convert value columns {self.value_columns} to {target}: {err}"
            ) from err

        num_rows = data.num_rows
        num_values = len(values)
        # Row i, value column j is at j * num_rows + i in the stacked values.
        stacked = pa.concat_arrays(values)
        value_indices = pa.array(
            [j * num_rows + i for i in range(num_rows) for j in range(num_values)],
            type=pa.int64(),
        )
        row_indices = pa.array(
            [i for i in range(num_rows) for _ in range(num_values)], type=pa.int64()
        )

        columns = [data.column(name).take(row_indices) for name in id_columns]
        columns.append(pa.array(self.value_columns * num_rows, type=pa.string()))
        columns.append(stacked.take(value_indices))

        get_logger().debug(
            "MeltNode melted %d rows and %d value columns into %d rows",
            num_rows,
            num_values,
            num_rows * num_values,
        )
        yield pa.RecordBatch.from_arrays(columns, names=output_names)


class CastNode(QueryPlanNode):
    """Convert rows to columns, from long to wide format.

    Emits one row for each distinct combination of the id columns
    and one column for each distinct value of the variable column,
    both in the order they are first seen. Combinations that never
    appear in the data are null.

    When multiple rows provide a value for the same cell
    an aggregation must be provided to combine them, otherwise
    a :class:`DuplicateKeyError` is raised.

    >>> import pyarrow as pa
    >>> from panelground.compute import PyArrowTableDataSource
    >>> data = pa.record_batch({
    ...     "id": [1, 1, 2],
    ...     "variable": ["a", "b", "a"],
    ...     "value": [10, 1, 20],
    ... })
    >>> wide = next(CastNode(["id"], "variable", "value", PyArrowTableDataSource(data)).batches())
    >>> wide.to_pydict()
    {'id': [1, 2], 'a': [10, 20], 'b': [1, None]}
    """

    def __init__(
        self,
        id_columns: Sequence[str],
        variable_column: str,
        value_column: str,
        child: QueryPlanNode,
        aggregation: Any = None,
    ) -> None:
        """
        :param id_columns: The columns identifying each output row.
        :param variable_column: The column whose values become column names.
        :param value_column: The column holding the values of the cells.
        :param child: The node emitting the data to cast.
        :param aggregation: How to combine multiple values for the same cell,
                            the name of an aggregation or a callable
                            (see :func:`panelground.compute.aggregate.make_aggregation`).
        """
        self.id_columns = list(id_columns)
        self.variable_column = variable_column
        self.value_column = value_column
        self.child = child
        self.aggregation: Aggregation | None = None
        if aggregation is not None:
            self.aggregation = make_aggregation(value_column, aggregation)

    def __str__(self) -> str:
        return (
            f"CastNode(ids={self.id_columns}, variable={self.variable_column}, "
            f"value={self.value_column}, aggregation={self.aggregation}, {self.child})"
        )

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Cast the child data, all of it is loaded at once."""
        data = materialize(self.child)
        ensure_columns(data.schema, self.id_columns + [self.variable_column, self.value_column])

        index = GroupIndex.build(data, self.id_columns)
        row_groups = index.group_ids().to_pylist()
        variables = data.column(self.variable_column).to_pylist()

        names: dict[Any, str] = {}
        cells: dict[tuple[int, Any], list[int]] = {}
        for row, (group, variable) in enumerate(zip(row_groups, variables)):
            if variable is None:
                raise SchemaError(
                    f"Column {self.variable_column!r} has a null at row {row}, "
                    "can't use it as a column name"
                )
            if variable not in names:
                names[variable] = str(variable)
            rows = cells.setdefault((group, variable), [])
            if rows and self.aggregation is None:
                raise DuplicateKeyError(
                    f"Multiple values for {self.variable_column}={variable!r} "
                    f"and {self.id_columns}={index.group_for(row)!r}, "
                    "provide an aggregation to combine them",
                    key=index.group_for(row) + (variable,),
                )
            rows.append(row)

        output_names = self.id_columns + list(names.values())
        if len(set(output_names)) != len(output_names):
            raise NameCollisionError(
                n for n in output_names if output_names.count(n) > 1
            )

        key_table = index.key_table()
        columns = [key_table.column(name).combine_chunks() for name in self.id_columns]
        values = data.column(self.value_column)
        for variable in names:
            cell_rows = [cells.get((group, variable)) for group in range(len(index))]
            if self.aggregation is None:
                taken = pa.array(
                    [rows[0] if rows else None for rows in cell_rows], type=pa.int64()
                )
                columns.append(values.take(taken))
            else:
                columns.append(
                    pa.array(
                        [
                            None
                            if rows is None
                            else self.aggregation.compute(
                                values.take(pa.array(rows, type=pa.int64()))
                            )
                            for rows in cell_rows
                        ]
                    )
                )

        get_logger().debug(
            "CastNode cast %d rows into %d rows and %d value columns",
            data.num_rows,
            len(index),
            len(names),
        )
        yield pa.RecordBatch.from_arrays(columns, names=output_names)
