"""Operations on the groups of a Table."""

from typing import Any, Sequence

import pyarrow as pa

from .. import compute
from ..compute.grouping import GroupIndex, GroupKey, GroupsView
from .table import Table


class GroupedTable:
    """The rows of a :class:`Table` partitioned by the values of some key columns.

    The :class:`GroupIndex` is built the first time it's needed
    and then reused by every operation, so aggregating, transforming
    and shifting the same groups doesn't partition the rows again.

    If the key columns of the table are replaced in place after
    the index was built, using the groups raises
    :class:`panelground.errors.StaleGroupIndexError`.

    >>> table = Table({"city": ["NY", "LA", "NY"], "n": [10, 8, 20]})
    >>> grouped = table.group_by("city")
    >>> grouped.aggregate({"total": compute.SumAggregation("n")}).to_rows()
    [{'city': 'NY', 'total': 30}, {'city': 'LA', 'total': 8}]
    >>> grouped.transform(compute.MeanAggregation("n")).to_pylist()
    [15.0, 8.0, 15.0]
    """

    def __init__(self, table: Table, keys: list[str], null_equal: bool = True) -> None:
        """
        :param table: The table whose rows are grouped.
        :param keys: The columns identifying each group.
        :param null_equal: If rows with null keys belong to the same group.
        """
        self.table = table
        self.keys = keys
        self.null_equal = null_equal
        self._index: GroupIndex | None = None

    def __str__(self) -> str:
        return f"GroupedTable(keys={self.keys}, {self.table!r})"

    __repr__ = __str__

    def __len__(self) -> int:
        return len(self.index)

    @property
    def index(self) -> GroupIndex:
        """The index of the groups, checked to still describe the table."""
        if self._index is None:
            self._index = GroupIndex.build(self.table, self.keys, null_equal=self.null_equal)
        self._index.check_valid(self.table)
        return self._index

    def groups(self, sort: bool = False) -> GroupsView:
        """Iterate over ``(key, row_indices)`` of each group."""
        return self.index.groups(sort=sort)

    def rows_for(self, key: Any) -> list[int]:
        """The rows of the group identified by ``key``."""
        return self.index.rows_for(key)

    def aggregate(self, aggregations: Any, sort: bool = False) -> Table:
        """One row for each group with the key columns and the aggregations.

        :param aggregations: A dict of column names to :class:`Aggregation`
                             or a list accepted by
                             :func:`panelground.compute.name_aggregations`.
        :param sort: Sort groups by key instead of order of first appearance.
        """
        node = compute.AggregateNode(
            self.keys, aggregations, self._source(), group_index=self.index, sort=sort
        )
        return Table(pa.Table.from_batches(list(node.batches())))

    def aggregate_each(
        self,
        columns: Sequence[str],
        functions: Sequence[Any],
        skip_nulls: bool | None = None,
        sort: bool = False,
    ) -> Table:
        """Aggregate every column with every function.

        >>> table = Table({"g": [1, 1], "a": [1, 3], "b": [2, 4]})
        >>> table.group_by("g").aggregate_each(["a", "b"], ["min", "max"]).column_names
        ['g', 'a_min', 'a_max', 'b_min', 'b_max']
        """
        aggregations = compute.aggregations_for(columns, functions, skip_nulls=skip_nulls)
        return self.aggregate(aggregations, sort=sort)

    def reduce(self, aggregation: compute.Aggregation) -> dict[GroupKey, Any]:
        """The value of the aggregation for each group key."""
        return compute.reduce(self.index, self.table, aggregation)

    def transform(self, aggregation: compute.Aggregation) -> pa.Array:
        """The value of the aggregation of its group for each row of the table."""
        return compute.transform(self.index, self.table, aggregation)

    def with_transforms(self, aggregations: Any) -> Table:
        """The table with one more column for each aggregation, broadcast to the rows."""
        node = compute.TransformNode(
            self.keys, aggregations, self._source(), group_index=self.index
        )
        return Table(pa.Table.from_batches(list(node.batches())))

    def shift(
        self,
        date_column: str,
        value_columns: str | Sequence[str],
        n: int,
        unit: str = "day",
        names: Sequence[str] | None = None,
    ) -> Table:
        """Shift values in time within each group, see :meth:`Table.shift`."""
        return self.table.shift(date_column, value_columns, n, unit, by=self.keys, names=names)

    def lag(
        self,
        date_column: str,
        value_columns: str | Sequence[str],
        n: int = 1,
        unit: str = "day",
        names: Sequence[str] | None = None,
    ) -> Table:
        """The values each group had ``n`` units before."""
        return self.shift(date_column, value_columns, n, unit, names=names)

    def lead(
        self,
        date_column: str,
        value_columns: str | Sequence[str],
        n: int = 1,
        unit: str = "day",
        names: Sequence[str] | None = None,
    ) -> Table:
        """The values each group will have ``n`` units after."""
        return self.shift(date_column, value_columns, -n, unit, names=names)

    def _source(self) -> compute.QueryPlanNode:
        return compute.PyArrowTableDataSource(self.table.to_arrow())
