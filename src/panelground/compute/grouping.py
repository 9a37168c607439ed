"""Partition rows in groups that share the same key.

Split-apply-combine operations, like aggregations,
grouped transforms, joins or per-entity time shifts,
all start by finding which rows share the same values
for a set of key columns.

The :class:`GroupIndex` computes that partitioning
once so that it can be reused by multiple operations.

Given the data::

    city, shop, n_employees
    New York, Shop A, 10
    Los Angeles, Shop C, 8
    New York, Shop B, 15

grouping by ``city`` leads to::

    ("New York",)    -> [0, 2]
    ("Los Angeles",) -> [1]

Keys are always tuples, even when grouping by a single column,
and groups are listed in the order their key was first seen.

>>> import pyarrow as pa
>>> data = pa.table({"city": ["New York", "Los Angeles", "New York"]})
>>> index = GroupIndex.build(data, ["city"])
>>> list(index.groups())
[(('New York',), [0, 2]), (('Los Angeles',), [1])]
>>> index.group_for(1)
('Los Angeles',)
"""

import math
from typing import Any, Iterator, Sequence

import pyarrow as pa

from ..config import get_logger
from ..errors import StaleGroupIndexError
from .base import ensure_columns

GroupKey = tuple[Any, ...]


class _NaNKey:
    """Stands in place of NaN in keys, as NaN is not equal to itself."""

    def __repr__(self) -> str:
        return "nan"


NAN_KEY = _NaNKey()


class GroupIndex:
    """Map each group key to the rows that belong to it.

    The index is built with a single pass over the rows:
    the key of each row is hashed and looked up in a dictionary
    which takes care of resolving hash collisions by comparing
    the full key tuple. This makes assigning each row to its group
    an O(1) operation and building the whole index O(n).

    When ``null_equal`` is ``True`` (the default) null is treated
    as a value like any other and all rows with a null key end up
    in the same group. When ``False``, rows whose key contains a null
    are not assigned to any group and are listed in :attr:`null_rows`,
    which is how joins exclude them from matching.

    The index remembers the version of its key columns
    when built from a :class:`panelground.table.Table`, so that
    reusing it after those columns were modified in place
    can be detected by :meth:`check_valid`.
    """

    def __init__(
        self,
        key_columns: list[str],
        groups: dict[GroupKey, list[int]],
        row_groups: list[int],
        key_data: pa.Table,
        null_rows: list[int],
        versions: dict[str, int] | None = None,
    ) -> None:
        """
        Use :meth:`build` to create an index from data.

        :param key_columns: The columns the index was built on.
        :param groups: The rows of each group, in order of first appearance.
        :param row_groups: The ordinal of the group of each row, ``-1`` if none.
        :param key_data: The key columns of the indexed data.
        :param null_rows: Rows that were not grouped because of null keys.
        :param versions: The version of the key columns when the index was built.
        """
        self.key_columns = key_columns
        self._groups = groups
        self._row_groups = row_groups
        self._keys = list(groups.keys())
        self._key_data = key_data
        self.null_rows = null_rows
        self._versions = versions

    @classmethod
    def build(
        cls, data: Any, key_columns: Sequence[str], null_equal: bool = True
    ) -> "GroupIndex":
        """Partition the rows of ``data`` by the values of ``key_columns``.

        :param data: A :class:`pyarrow.Table`, :class:`pyarrow.RecordBatch`
                     or :class:`panelground.table.Table`.
        :param key_columns: The columns whose values identify a group.
        :param null_equal: If rows with null keys should be grouped together.
        """
        key_columns = list(key_columns)
        versions = None
        if hasattr(data, "column_versions"):
            versions = data.column_versions(key_columns)
            data = data.to_arrow()
        if isinstance(data, pa.RecordBatch):
            data = pa.Table.from_batches([data])
        ensure_columns(data.schema, key_columns)
        key_data = data.select(key_columns)

        groups: dict[GroupKey, list[int]] = {}
        ordinals: dict[GroupKey, int] = {}
        row_groups: list[int] = []
        null_rows: list[int] = []
        for row_index, key in enumerate(row_keys(key_data, data.num_rows)):
            if not null_equal and None in key:
                null_rows.append(row_index)
                row_groups.append(-1)
                continue
            ordinal = ordinals.get(key)
            if ordinal is None:
                ordinal = ordinals[key] = len(groups)
                groups[key] = []
            groups[key].append(row_index)
            row_groups.append(ordinal)

        get_logger().debug(
            "GroupIndex on %s: %d rows in %d groups",
            key_columns,
            data.num_rows,
            len(groups),
        )
        return cls(key_columns, groups, row_groups, key_data, null_rows, versions)

    def __len__(self) -> int:
        """Number of groups."""
        return len(self._groups)

    def __str__(self) -> str:
        return f"GroupIndex(keys={self.key_columns}, groups={len(self)}, rows={self.num_rows})"

    __repr__ = __str__

    @property
    def num_rows(self) -> int:
        """Number of rows of the indexed data."""
        return len(self._row_groups)

    def keys(self, sort: bool = False) -> list[GroupKey]:
        """The group keys, in order of first appearance or sorted."""
        if sort:
            return sorted(self._keys, key=sortable_key)
        return list(self._keys)

    def groups(self, sort: bool = False) -> "GroupsView":
        """Iterate over ``(key, row_indices)`` for each group.

        The returned view can be iterated any number of times.

        :param sort: Iterate groups by ascending key instead of
                     first appearance, nulls go last.
        """
        return GroupsView(self, sort)

    def rows_for(self, key: Any) -> list[int]:
        """The rows belonging to the group identified by ``key``.

        Single column keys can be provided without wrapping them in a tuple.
        """
        if not isinstance(key, tuple):
            key = (key,)
        try:
            return self._groups[key]
        except KeyError:
            raise KeyError(
                f"No group with key {key!r} for columns {self.key_columns}"
            ) from None

    def lookup(self, key: GroupKey) -> list[int]:
        """The rows of the group identified by the ``key`` tuple, empty if none."""
        return self._groups.get(key, [])

    def group_for(self, row_index: int) -> GroupKey:
        """The key of the group containing the row at ``row_index``."""
        ordinal = self._row_groups[row_index]
        if ordinal < 0:
            raise KeyError(f"Row {row_index} has a null key and belongs to no group")
        return self._keys[ordinal]

    def group_ids(self) -> pa.Array:
        """For each row the ordinal of its group, null for ungrouped rows."""
        return pa.array(
            [o if o >= 0 else None for o in self._row_groups], type=pa.int64()
        )

    def key_table(self, sort: bool = False) -> pa.Table:
        """A table with one row for each group and the key columns.

        Values preserve the type they had in the indexed data.
        """
        first_rows = [rows[0] for _, rows in self.groups(sort=sort)]
        return self._key_data.take(pa.array(first_rows, type=pa.int64()))

    def permutation(self, sort: bool = False) -> tuple[pa.Array, list[int]]:
        """Row indices that lay out the data group after group.

        Returns the indices and the offsets where each group starts,
        with a final offset equal to the number of grouped rows.
        Taking the indices from a column and slicing it at the offsets
        provides the values of each group without copying them again.
        """
        indices: list[int] = []
        offsets = [0]
        for _, rows in self.groups(sort=sort):
            indices.extend(rows)
            offsets.append(len(indices))
        return pa.array(indices, type=pa.int64()), offsets

    def check_valid(self, table: Any) -> None:
        """Ensure the index still describes the provided table.

        Raises :class:`StaleGroupIndexError` if the table has a different
        number of rows or one of the key columns was replaced or reordered
        after the index was built.
        """
        if table.num_rows != self.num_rows:
            raise StaleGroupIndexError(
                f"{self} was built on {self.num_rows} rows, table has {table.num_rows}"
            )
        if self._versions is None or not hasattr(table, "column_versions"):
            return
        current = table.column_versions(self.key_columns)
        changed = [k for k in self.key_columns if current.get(k) != self._versions.get(k)]
        if changed:
            raise StaleGroupIndexError(
                f"Columns {changed} were modified after {self} was built, rebuild it"
            )


class GroupsView:
    """Restartable iteration over the groups of a :class:`GroupIndex`."""

    def __init__(self, index: GroupIndex, sort: bool) -> None:
        self.index = index
        self.sort = sort

    def __len__(self) -> int:
        return len(self.index)

    def __iter__(self) -> Iterator[tuple[GroupKey, list[int]]]:
        for key in self.index.keys(sort=self.sort):
            yield key, self.index._groups[key]


def row_keys(key_data: pa.Table, num_rows: int | None = None) -> Iterator[GroupKey]:
    """The key tuple of each row of ``key_data``.

    ``num_rows`` provides the number of rows when there are no key columns.

    NaN is replaced by :data:`NAN_KEY` so that NaNs group together.
    """
    columns = []
    for column in key_data.columns:
        values = column.to_pylist()
        if pa.types.is_floating(column.type):
            values = [NAN_KEY if v is not None and math.isnan(v) else v for v in values]
        columns.append(values)
    if not columns:
        return (() for _ in range(key_data.num_rows if num_rows is None else num_rows))
    return zip(*columns)


def sortable_key(key: GroupKey) -> tuple:
    """Make a key sortable, placing NaN and then null after every other value."""
    return tuple(
        (2, 0) if v is None else (1, 0) if v is NAN_KEY else (0, v) for v in key
    )
