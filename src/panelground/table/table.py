"""The Table object itself."""

import itertools
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence, Self

import pyarrow as pa

from .. import compute
from ..compute.base import Expression, QueryPlanNode, ensure_columns
from ..errors import NameCollisionError, SchemaError, TypeMismatchError
from ..utils.tabulate import tabulate

if TYPE_CHECKING:
    from .grouped import GroupedTable

# Each column of each table gets a new version every time it's replaced,
# so a version is never reused even across different tables.
_VERSIONS = itertools.count(1)


class Table:
    """Data structure that handles data in rows and columns.

    The Table object holds its data in memory as a :class:`pyarrow.Table`
    and applies operations eagerly by running them through the compute
    engine nodes.

    Most operations come in two flavours: ``op`` returns a new Table
    and leaves the original one untouched, while ``op_inplace``
    replaces the data of the table itself. As Arrow data is immutable,
    tables returned by ``op`` never share mutable state with the original one.

    >>> table = Table({"city": ["Rome", "Oslo"], "population": [2.8, 0.7]})
    >>> table.with_column_inplace("iso", ["ITA", "NOR"])
    >>> print(table)
    city | population | iso
    ---- | ---------- | ---
    Rome | 2.80       | ITA
    Oslo | 0.70       | NOR
    """

    def __init__(
        self,
        data: pa.Table | pa.RecordBatch | Mapping[str, Any] | None = None,
        versions: Mapping[str, int] | None = None,
    ) -> None:
        """
        :param data: The data of the table, as a ``pyarrow.Table``,
                     a ``pyarrow.RecordBatch`` or a dict of columns.
        :param versions: The versions of columns that are shared with another table.
        """
        if data is None:
            data = pa.table({})
        elif isinstance(data, pa.RecordBatch):
            data = pa.Table.from_batches([data])
        elif isinstance(data, Mapping):
            data = pa.table(dict(data))
        if not isinstance(data, pa.Table):
            raise ValueError("Invalid input, expected a PyArrow Table, RecordBatch or a dict")

        names = data.column_names
        if len(set(names)) != len(names):
            raise NameCollisionError(n for n in names if names.count(n) > 1)

        self._data = data
        versions = versions or {}
        self._versions = {name: versions.get(name) or next(_VERSIONS) for name in names}

    @classmethod
    def from_arrow(cls, data: pa.Table | pa.RecordBatch) -> Self:
        """Create a Table from Arrow data."""
        return cls(data)

    def to_arrow(self) -> pa.Table:
        """The data of the table as a ``pyarrow.Table``."""
        return self._data

    def to_rows(self, as_dict: bool = True) -> list[dict[str, Any]] | list[tuple]:
        """The rows of the table as Python values.

        :param as_dict: Emit each row as a dict of column names to values,
                        otherwise as a tuple in the order of the columns.

        >>> Table({"a": [1, 2], "b": ["x", None]}).to_rows(as_dict=False)
        [(1, 'x'), (2, None)]
        """
        rows = self._data.to_pylist()
        if as_dict:
            return rows
        names = self.column_names
        return [tuple(row[name] for name in names) for row in rows]

    @property
    def num_rows(self) -> int:
        return self._data.num_rows

    @property
    def column_names(self) -> list[str]:
        return self._data.column_names

    @property
    def schema(self) -> pa.Schema:
        return self._data.schema

    def __len__(self) -> int:
        return self._data.num_rows

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Table):
            return NotImplemented
        return self._data.equals(other._data)

    __hash__ = None  # type: ignore[assignment]

    def __str__(self) -> str:
        return tabulate(self._data)

    def __repr__(self) -> str:
        return f"Table(rows={self.num_rows}, columns={self.column_names})"

    def column_versions(self, names: Iterable[str]) -> dict[str, int]:
        """The current version of the requested columns.

        The version changes every time a column is replaced in place,
        which allows to detect stale data derived from the column.
        """
        names = list(names)
        ensure_columns(self.schema, names)
        return {name: self._versions[name] for name in names}

    def column(self, name: str) -> pa.Array:
        """The data of the column ``name``."""
        ensure_columns(self.schema, [name])
        return self._data.column(name).combine_chunks()

    def with_column(self, name: str, values: Any) -> "Table":
        """Add a column, or replace it if ``name`` already exists.

        :param name: The name of the column.
        :param values: The values of the column, one for each row,
                       as an array, a list or an :class:`Expression`
                       evaluated on the data of the table.
        """
        node = compute.ProjectNode(None, {name: _as_column(values)}, self._source())
        versions = {n: v for n, v in self._versions.items() if n != name}
        return self._run(node, versions)

    def with_column_inplace(self, name: str, values: Any) -> None:
        """Add or replace a column modifying the table itself."""
        self._replace(self.with_column(name, values), changed=[name])

    def select_columns(self, names: Sequence[str]) -> "Table":
        """A table with only the requested columns, in the requested order."""
        node = compute.ProjectNode(list(names), None, self._source())
        return self._run(node, self._versions)

    def drop_columns(self, names: Sequence[str]) -> "Table":
        """A table without the listed columns."""
        ensure_columns(self.schema, names)
        return self.select_columns([n for n in self.column_names if n not in names])

    def rename_columns(self, mapping: Mapping[str, str]) -> "Table":
        """A table where columns are renamed according to ``mapping``."""
        ensure_columns(self.schema, mapping.keys())
        names = [mapping.get(n, n) for n in self.column_names]
        if len(set(names)) != len(names):
            raise NameCollisionError(n for n in names if names.count(n) > 1)
        versions = {mapping.get(n, n): v for n, v in self._versions.items()}
        return Table(self._data.rename_columns(names), versions)

    def select_rows(self, predicate: Any) -> "Table":
        """A table with only the rows matching ``predicate``.

        :param predicate: An :class:`Expression` evaluating to booleans,
                          a list or array of booleans with one entry per row,
                          or a callable receiving each row as a dict.
        """
        if isinstance(predicate, Expression):
            condition = predicate
        elif callable(predicate):
            condition = compute.RowPredicateExpression(predicate)
        else:
            condition = _as_column(predicate, pa.bool_())
        return self._run(compute.FilterNode(condition, self._source()))

    def head(self, n: int = 5) -> "Table":
        """The first ``n`` rows of the table."""
        return self._run(compute.PaginateNode(0, n, self._source()))

    def sort_by(
        self, keys: str | Sequence[str], descending: bool | Sequence[bool] | None = None
    ) -> "Table":
        """A table with the rows sorted by ``keys``.

        Sorting is stable, rows with equal keys keep their
        relative order. Nulls are placed last.

        :param keys: The columns to sort by, by priority.
        :param descending: The direction of each key, or a single one for all keys.
        """
        if isinstance(keys, str):
            keys = [keys]
        keys = list(keys)
        if descending is None or isinstance(descending, bool):
            descending = [bool(descending)] * len(keys)
        return self._run(compute.SortNode(keys, list(descending), self._source()))

    def sort_by_inplace(
        self, keys: str | Sequence[str], descending: bool | Sequence[bool] | None = None
    ) -> None:
        """Sort the rows of the table itself."""
        self._replace(self.sort_by(keys, descending), changed=self.column_names)

    def group_by(self, keys: str | Sequence[str]) -> "GroupedTable":
        """Group the rows sharing the same values for ``keys``.

        The returned :class:`GroupedTable` builds the group index once
        and reuses it for all the operations performed on the groups.
        """
        from .grouped import GroupedTable

        if isinstance(keys, str):
            keys = [keys]
        return GroupedTable(self, list(keys))

    def join(
        self,
        right: "Table",
        on: Any,
        how: str = "inner",
        direction: str = "nearest",
        join_nulls: bool | None = None,
        suffix: str | None = None,
    ) -> "Table":
        """Join with the ``right`` table, see :func:`panelground.compute.join`.

        >>> flights = Table({"carrier": ["AA", "UA"], "month": [2, 7]})
        >>> carriers = Table({"carrier": ["AA"], "name": ["American"]})
        >>> flights.join(carriers, "carrier", how="left").to_rows()
        [{'carrier': 'AA', 'month': 2, 'name': 'American'}, {'carrier': 'UA', 'month': 7, 'name': None}]
        """
        node = compute.join(
            self._source(),
            right._source(),
            on,
            how=how,
            direction=direction,
            join_nulls=join_nulls,
            suffix=suffix,
        )
        return self._run(node)

    def cross_join(self, right: "Table", suffix: str | None = None) -> "Table":
        """Pair every row of this table with every row of ``right``."""
        return self._run(compute.CrossJoinNode(self._source(), right._source(), suffix=suffix))

    def melt(
        self,
        value_columns: Sequence[str],
        id_columns: Sequence[str] | None = None,
        variable_name: str = "variable",
        value_name: str = "value",
        coerce: pa.DataType | str | None = None,
    ) -> "Table":
        """Convert from wide to long format, see :class:`panelground.compute.MeltNode`."""
        node = compute.MeltNode(
            value_columns,
            id_columns,
            self._source(),
            variable_name=variable_name,
            value_name=value_name,
            coerce=coerce,
        )
        return self._run(node)

    def cast(
        self,
        id_columns: Sequence[str],
        variable_column: str = "variable",
        value_column: str = "value",
        aggregation: Any = None,
    ) -> "Table":
        """Convert from long to wide format, see :class:`panelground.compute.CastNode`."""
        node = compute.CastNode(
            id_columns, variable_column, value_column, self._source(), aggregation=aggregation
        )
        return self._run(node)

    def shift(
        self,
        date_column: str,
        value_columns: str | Sequence[str],
        n: int,
        unit: str = "day",
        by: Sequence[str] | None = None,
        names: Sequence[str] | None = None,
    ) -> "Table":
        """Append values shifted in time, see :class:`panelground.compute.TemporalShiftNode`."""
        if isinstance(value_columns, str):
            value_columns = [value_columns]
        node = compute.TemporalShiftNode(
            date_column, value_columns, n, unit, self._source(), by=by, names=names
        )
        return self._run(node, self._versions)

    def lag(
        self,
        date_column: str,
        value_columns: str | Sequence[str],
        n: int = 1,
        unit: str = "day",
        by: Sequence[str] | None = None,
        names: Sequence[str] | None = None,
    ) -> "Table":
        """Append the values each entity had ``n`` units before."""
        return self.shift(date_column, value_columns, n, unit, by=by, names=names)

    def lead(
        self,
        date_column: str,
        value_columns: str | Sequence[str],
        n: int = 1,
        unit: str = "day",
        by: Sequence[str] | None = None,
        names: Sequence[str] | None = None,
    ) -> "Table":
        """Append the values each entity will have ``n`` units after."""
        return self.shift(date_column, value_columns, -n, unit, by=by, names=names)

    def _source(self) -> QueryPlanNode:
        return compute.PyArrowTableDataSource(self._data)

    def _run(self, node: QueryPlanNode, versions: Mapping[str, int] | None = None) -> "Table":
        """Execute a query plan and wrap its result in a new Table."""
        return Table(pa.Table.from_batches(list(node.batches())), versions)

    def _replace(self, other: "Table", changed: Iterable[str]) -> None:
        """Take the data of ``other`` bumping the version of the changed columns."""
        self._data = other._data
        versions = dict(other._versions)
        for name in changed:
            versions[name] = next(_VERSIONS)
        self._versions = versions


def concat(tables: Sequence[Table], union_columns: bool = False) -> Table:
    """Stack the rows of multiple tables, see :class:`panelground.compute.ConcatNode`.

    >>> first = Table({"a": [1]})
    >>> second = Table({"a": [2], "b": ["x"]})
    >>> concat([first, second], union_columns=True).to_rows()
    [{'a': 1, 'b': None}, {'a': 2, 'b': 'x'}]
    """
    node = compute.ConcatNode([t._source() for t in tables], union_columns=union_columns)
    return Table(pa.Table.from_batches(list(node.batches())))


def load_table(rows: Iterable[Any], schema: Any) -> Table:
    """Create a Table from rows of Python values.

    :param rows: The rows, each one a dict of column names to values
                 or a tuple with one value for each column.
    :param schema: A ``pyarrow.Schema``, a list of ``(name, type)`` pairs
                   or a dict of names to types. Types can be Arrow types
                   or their names, like ``"int64"`` or ``"date32"``.

    >>> table = load_table([(1, "Rome"), (2, None)], {"id": "int32", "city": "string"})
    >>> table.schema
    id: int32
    city: string
    """
    schema = _parse_schema(schema)
    rows = list(rows)
    try:
        if all(isinstance(row, Mapping) for row in rows):
            for idx, row in enumerate(rows):
                unknown = [k for k in row if k not in schema.names]
                if unknown:
                    raise SchemaError(
                        f"Row {idx} has columns {unknown} not part of the schema {schema.names}"
                    )
            data = pa.Table.from_pylist(rows, schema=schema)
        else:
            for idx, row in enumerate(rows):
                if len(row) != len(schema):
                    raise SchemaError(
                        f"Row {idx} has {len(row)} values but the schema has {len(schema)} columns"
                    )
            columns = [
                pa.array([row[idx] for row in rows], type=field.type)
                for idx, field in enumerate(schema)
            ]
            data = pa.Table.from_arrays(columns, schema=schema)
    except (pa.ArrowInvalid, pa.ArrowTypeError) as err:
        raise TypeMismatchError(f"Rows don't match the schema {schema.names}: {err}") from err
    return Table(data)


def _parse_schema(schema: Any) -> pa.Schema:
    if isinstance(schema, pa.Schema):
        return schema
    if isinstance(schema, Mapping):
        schema = list(schema.items())
    fields = []
    for name, datatype in schema:
        if isinstance(datatype, str):
            try:
                datatype = pa.type_for_alias(datatype)
            except ValueError:
                raise SchemaError(f"Unknown type {datatype!r} for column {name!r}") from None
        fields.append(pa.field(name, datatype))
    names = [f.name for f in fields]
    if len(set(names)) != len(names):
        raise NameCollisionError(n for n in names if names.count(n) > 1)
    return pa.schema(fields)


def _as_column(values: Any, datatype: pa.DataType | None = None) -> Expression | pa.Array:
    """Convert the values provided for a column to something nodes accept."""
    if isinstance(values, (Expression, pa.Array)):
        return values
    if isinstance(values, pa.ChunkedArray):
        return values.combine_chunks()
    return pa.array(list(values), type=datatype)

