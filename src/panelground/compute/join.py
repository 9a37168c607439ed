"""Query plan nodes that implement join operations.

A join combines the rows of two tables, the left one and the right one,
producing a row for every pair of rows that satisfies the join clauses.

Each clause compares a column of the left table with a column of
the right table::

    JoinClause("carrier", "==", "carrier")
    JoinClause("month", ">=", "start_month")
    JoinClause("date", "nearest", "date")

Depending on the clauses a different algorithm is used:

* Only equality clauses: :class:`EquiJoinNode`, a hash join that
  supports ``inner``, ``left``, ``right``, ``outer``, ``semi``
  and ``anti`` joins.
* Some inequality clauses: :class:`RangeJoinNode`, also known
  as a non-equi join, matching rows whose values fall within bounds.
* One ``nearest`` clause: :class:`RollingJoinNode`, which picks for
  each left row the right row with the closest value.
* No clauses at all: :class:`CrossJoinNode`, the Cartesian product.

The :func:`join` function inspects the clauses and builds the right node.

Null keys
=========

Like in SQL, by default a null key never matches anything,
not even another null. Passing ``join_nulls=True`` (or changing the
default through :mod:`panelground.config`) makes null keys match
each other in equality clauses. Inequality and nearest clauses
never match nulls.

Output columns
==============

The output has all the left columns followed by the right columns.
The right columns of equality clauses are dropped by equi and
rolling joins, as they hold the same values of the left ones,
while range joins keep all the right columns. For ``right`` and ``outer`` joins the left key
columns are filled with the right key values for rows that only exist
on the right. Right columns whose name is already taken get a suffix,
``_right`` by default.

>>> import pyarrow as pa
>>> from panelground.compute import PyArrowTableDataSource
>>> left = PyArrowTableDataSource(pa.record_batch({"id": [1, 2, 3], "name": ["Alice", "Bob", "Charlie"]}))
>>> right = PyArrowTableDataSource(pa.record_batch({"id": [3, 2], "age": [25, 30]}))
>>> next(join(left, right, ["id"]).batches()).to_pydict()
{'id': [2, 3], 'name': ['Bob', 'Charlie'], 'age': [30, 25]}
"""

import bisect
import dataclasses
from typing import Any, Iterable, Sequence

import pyarrow as pa
import pyarrow.compute as pc

from ..config import get_join_nulls, get_join_suffix, get_logger, resolve
from ..errors import AmbiguousJoinError, SchemaError
from .base import QueryPlanNode, materialize
from .coercion import coerce_array, common_type
from .grouping import GroupIndex, row_keys

EQUALITY = "=="
NEAREST = "nearest"
INEQUALITIES = ("<=", ">=", "<", ">")
OPERATORS = (EQUALITY, NEAREST) + INEQUALITIES

EQUI_JOIN_TYPES = ("inner", "left", "right", "outer", "semi", "anti")
ROLLING_DIRECTIONS = ("nearest", "backward", "forward")


@dataclasses.dataclass(frozen=True)
class JoinClause:
    """A condition between a column of the left table and one of the right table.

    The operator reads from left to right: ``JoinClause("x", "<=", "end")``
    means that the left ``x`` must be less than or equal to the right ``end``.
    """

    left: str
    op: str
    right: str

    def __str__(self) -> str:
        return f"left.{self.left} {self.op} right.{self.right}"


def parse_clauses(on: Any) -> list[JoinClause]:
    """Normalize the clauses provided to a join.

    Each clause can be a :class:`JoinClause`, a ``(left, op, right)`` triple,
    a ``(left, right)`` pair meaning equality, or a single column name
    meaning equality of two columns with the same name.

    >>> parse_clauses(["id", ("month", ">=", "start")])
    [JoinClause(left='id', op='==', right='id'), JoinClause(left='month', op='>=', right='start')]
    """
    if isinstance(on, (str, JoinClause)) or (
        isinstance(on, tuple) and len(on) in (2, 3) and all(isinstance(v, str) for v in on)
    ):
        on = [on]

    clauses = []
    for clause in on:
        if isinstance(clause, JoinClause):
            pass
        elif isinstance(clause, str):
            clause = JoinClause(clause, EQUALITY, clause)
        elif isinstance(clause, tuple) and len(clause) == 2:
            clause = JoinClause(clause[0], EQUALITY, clause[1])
        elif isinstance(clause, tuple) and len(clause) == 3:
            clause = JoinClause(*clause)
        else:
            raise AmbiguousJoinError(f"Invalid join clause {clause!r}")

        if clause.op == "=":
            clause = JoinClause(clause.left, EQUALITY, clause.right)
        if clause.op not in OPERATORS:
            raise AmbiguousJoinError(
                f"Unknown join operator {clause.op!r} in {clause}, use one of {OPERATORS}"
            )
        clauses.append(clause)
    return clauses


def join(
    left: QueryPlanNode,
    right: QueryPlanNode,
    on: Any,
    how: str = "inner",
    direction: str = "nearest",
    join_nulls: bool | None = None,
    suffix: str | None = None,
) -> QueryPlanNode:
    """Build the join node appropriate for the provided clauses.

    :param left: The node emitting the left data.
    :param right: The node emitting the right data.
    :param on: The join clauses, see :func:`parse_clauses`.
               Must be empty for cross joins.
    :param how: The join type, one of ``inner``, ``left``, ``right``,
                ``outer``, ``semi``, ``anti`` or ``cross``.
                Range and rolling joins only support ``inner`` and ``left``.
    :param direction: For rolling joins, which right rows are candidates:
                      ``nearest``, ``backward`` (right <= left)
                      or ``forward`` (right >= left).
    :param join_nulls: If null keys match each other in equality clauses.
    :param suffix: Appended to right columns whose name is already taken.
    """
    clauses = parse_clauses(on or [])
    if how == "cross":
        if clauses:
            raise AmbiguousJoinError("Cross joins don't accept join clauses")
        return CrossJoinNode(left, right, suffix=suffix)
    if not clauses:
        raise AmbiguousJoinError(
            "At least one join clause is required, use how='cross' for a cartesian product"
        )

    nearest = [c for c in clauses if c.op == NEAREST]
    inequalities = [c for c in clauses if c.op in INEQUALITIES]
    equalities = [c for c in clauses if c.op == EQUALITY]
    if len(nearest) > 1:
        raise AmbiguousJoinError(
            f"Only one nearest clause is allowed, got {[str(c) for c in nearest]}"
        )
    if nearest and inequalities:
        raise AmbiguousJoinError(
            f"A nearest clause can't be combined with inequalities {[str(c) for c in inequalities]}"
        )

    if nearest:
        return RollingJoinNode(
            nearest[0].left,
            nearest[0].right,
            left,
            right,
            by=[(c.left, c.right) for c in equalities],
            direction=direction,
            how=how,
            join_nulls=join_nulls,
            suffix=suffix,
        )
    if inequalities:
        return RangeJoinNode(clauses, left, right, how=how, join_nulls=join_nulls, suffix=suffix)
    return EquiJoinNode(
        [c.left for c in equalities],
        [c.right for c in equalities],
        left,
        right,
        how=how,
        join_nulls=join_nulls,
        suffix=suffix,
    )


class EquiJoinNode(QueryPlanNode):
    """Join two data sources on equality of their key columns.

    The join is performed as a hash join. Supposing we have two tables::

        left:
        +----+--------+
        | id | name   |
        +----+--------+
        | 1  | Alice  |
        | 2  | Bob    |
        | 3  | Charlie|
        +----+--------+

        right:
        +----+-----+
        | id | age |
        +----+-----+
        | 3  | 25  |
        | 2  | 30  |
        | 3  | 41  |
        +----+-----+

    We would perform the following steps:

    1. Build a :class:`GroupIndex` of the right table on the key columns,
       which maps each key to the right rows having it::

        2 -> [1]
        3 -> [0, 2]

    2. Probe the index with the key of each left row, in order,
       collecting the pairs of matching rows. For a ``left`` join
       rows without a match are paired with nothing::

        (0, None)  # only for left and outer joins
        (1, 1)
        (2, 0)
        (2, 2)

    3. For ``outer`` joins, append the right rows that were never
       matched, paired with nothing on the left.

    4. Take the rows of each side in the order of the pairs and
       combine them side by side::

        +----+--------+-----+
        | id | name   | age |
        +----+--------+-----+
        | 2  | Bob    | 30  |
        | 3  | Charlie| 25  |
        | 3  | Charlie| 41  |
        +----+--------+-----+

    ``right`` joins mirror ``left`` joins by probing a left index with the
    right rows, so their output follows the order of the right table.

    ``semi`` and ``anti`` joins only emit the left columns, respectively
    for the left rows that have at least one match and those that have none.
    """

    def __init__(
        self,
        left_keys: list[str],
        right_keys: list[str],
        left_child: QueryPlanNode,
        right_child: QueryPlanNode,
        how: str = "inner",
        join_nulls: bool | None = None,
        suffix: str | None = None,
    ) -> None:
        """
        :param left_keys: The keys to join on in the left table.
        :param right_keys: The keys to join on in the right table, matched by position.
        :param left_child: The left source of data to join.
        :param right_child: The right source of data to join.
        :param how: One of ``inner``, ``left``, ``right``, ``outer``, ``semi``, ``anti``.
        :param join_nulls: If null keys match each other.
        :param suffix: Appended to right columns whose name is already taken.
        """
        if how not in EQUI_JOIN_TYPES:
            raise ValueError(f"Unknown join type {how!r}, use one of {EQUI_JOIN_TYPES}")
        if len(left_keys) != len(right_keys):
            raise AmbiguousJoinError("Left and right keys must have the same length")
        if not left_keys:
            raise AmbiguousJoinError("At least one join key is required")
        self.left_keys = list(left_keys)
        self.right_keys = list(right_keys)
        self.left_child = left_child
        self.right_child = right_child
        self.how = how
        self.join_nulls = resolve(join_nulls, get_join_nulls)
        self.suffix = resolve(suffix, get_join_suffix)

    def __str__(self) -> str:
        return (
            f"EquiJoinNode(how={self.how}, left_keys={self.left_keys}, right_keys={self.right_keys}, "
            f"left={self.left_child}, right={self.right_child})"
        )

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Perform the join operation.

        Accumulates all rows of both children to
        perform the join operation, so it is not suitable
        for datasets that don't fit in memory.
        """
        left = materialize(self.left_child)
        right = materialize(self.right_child)
        check_join_columns(
            left,
            right,
            zip(self.left_keys, self.right_keys),
            merged=self.how in ("right", "outer"),
        )

        if self.how == "right":
            # Mirror of a left join, probe the left rows with the right ones.
            index = GroupIndex.build(left, self.left_keys, null_equal=self.join_nulls)
            pairs = probe(right, self.right_keys, index, self.join_nulls, keep_unmatched=True)
            left_rows = [b for _, b in pairs]
            right_rows = [p for p, _ in pairs]
        else:
            index = GroupIndex.build(right, self.right_keys, null_equal=self.join_nulls)
            keep_unmatched = self.how in ("left", "outer", "anti")
            pairs = probe(left, self.left_keys, index, self.join_nulls, keep_unmatched)
            left_rows = [p for p, _ in pairs]
            right_rows = [b for _, b in pairs]

        if self.how in ("semi", "anti"):
            wanted = self.how == "semi"
            selected = list(dict.fromkeys(p for p, b in pairs if (b is not None) == wanted))
            result = left.take(pa.array(selected, type=pa.int64()))
        else:
            if self.how == "outer":
                matched = set(right_rows)
                for row in range(right.num_rows):
                    if row not in matched:
                        left_rows.append(None)
                        right_rows.append(row)
            coalesce = self.how in ("right", "outer")
            result = combine(
                left,
                right,
                left_rows,
                right_rows,
                self.suffix,
                drop_right=self.right_keys,
                coalesce=list(zip(self.left_keys, self.right_keys)) if coalesce else (),
            )

        get_logger().debug(
            "EquiJoinNode(%s) joined %d left and %d right rows into %d rows",
            self.how,
            left.num_rows,
            right.num_rows,
            result.num_rows,
        )
        yield result


class CrossJoinNode(QueryPlanNode):
    """Pair every left row with every right row.

    The rows are emitted left-major: all the pairs
    of the first left row come before those of the second one.

    >>> import pyarrow as pa
    >>> from panelground.compute import PyArrowTableDataSource
    >>> left = PyArrowTableDataSource(pa.record_batch({"size": ["S", "L"]}))
    >>> right = PyArrowTableDataSource(pa.record_batch({"color": ["red", "blue"]}))
    >>> next(CrossJoinNode(left, right).batches()).to_pydict()
    {'size': ['S', 'S', 'L', 'L'], 'color': ['red', 'blue', 'red', 'blue']}
    """

    def __init__(
        self, left_child: QueryPlanNode, right_child: QueryPlanNode, suffix: str | None = None
    ) -> None:
        """
        :param left_child: The left source of data to join.
        :param right_child: The right source of data to join.
        :param suffix: Appended to right columns whose name is already taken.
        """
        self.left_child = left_child
        self.right_child = right_child
        self.suffix = resolve(suffix, get_join_suffix)

    def __str__(self) -> str:
        return f"CrossJoinNode(left={self.left_child}, right={self.right_child})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Compute the cartesian product of the two children."""
        left = materialize(self.left_child)
        right = materialize(self.right_child)
        left_rows = [i for i in range(left.num_rows) for _ in range(right.num_rows)]
        right_rows = list(range(right.num_rows)) * left.num_rows
        get_logger().debug(
            "CrossJoinNode pairing %d left and %d right rows", left.num_rows, right.num_rows
        )
        yield combine(left, right, left_rows, right_rows, self.suffix)


class RangeJoinNode(QueryPlanNode):
    """Join rows whose values satisfy a set of inequality bounds.

    A typical use is looking up the range a value falls into,
    for example given flights and the period each carrier was active::

        flights:                carriers:
        +---------+-------+     +---------+-------------+-----------+
        | carrier | month |     | carrier | start_month | end_month |
        +---------+-------+     +---------+-------------+-----------+
        | AA      | 2     |     | AA      | 1           | 3         |
        | UA      | 5     |     | UA      | 4           | 6         |
        | AA      | 7     |     +---------+-------------+-----------+
        +---------+-------+

    joining on ``carrier == carrier``, ``month >= start_month``
    and ``month <= end_month`` pairs the first flight with the AA period,
    the second one with the UA period and the last one with nothing.

    The equality clauses are resolved first using a :class:`GroupIndex`
    of the right table, then within each bucket of right rows sharing
    the same key, the inequalities are checked. The bucket is kept
    sorted by the right column of the first inequality, so that
    a binary search discards the rows that can't satisfy it,
    the remaining candidates are checked one by one against the
    other inequalities.

    This is the costly step of the join: when the first inequality is
    not selective each left row still scans most of its bucket.
    An interval tree over the bounds would avoid that.
    """

    def __init__(
        self,
        clauses: Sequence[JoinClause],
        left_child: QueryPlanNode,
        right_child: QueryPlanNode,
        how: str = "inner",
        join_nulls: bool | None = None,
        suffix: str | None = None,
    ) -> None:
        """
        :param clauses: The equality and inequality clauses, all must hold.
        :param left_child: The left source of data to join.
        :param right_child: The right source of data to join.
        :param how: ``inner`` or ``left``.
        :param join_nulls: If null keys match each other in equality clauses.
        :param suffix: Appended to right columns whose name is already taken.
        """
        clauses = parse_clauses(clauses)
        if how not in ("inner", "left"):
            raise ValueError(f"Range joins support 'inner' and 'left' joins, got {how!r}")
        if any(c.op == NEAREST for c in clauses):
            raise AmbiguousJoinError("Range joins don't support nearest clauses")
        self.equalities = [c for c in clauses if c.op == EQUALITY]
        self.inequalities = [c for c in clauses if c.op in INEQUALITIES]
        if not self.inequalities:
            raise AmbiguousJoinError("Range joins require at least one inequality clause")
        self.left_child = left_child
        self.right_child = right_child
        self.how = how
        self.join_nulls = resolve(join_nulls, get_join_nulls)
        self.suffix = resolve(suffix, get_join_suffix)

    def __str__(self) -> str:
        clauses = ", ".join(str(c) for c in self.equalities + self.inequalities)
        return f"RangeJoinNode(how={self.how}, [{clauses}], left={self.left_child}, right={self.right_child})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Perform the range join."""
        left = materialize(self.left_child)
        right = materialize(self.right_child)
        check_join_columns(
            left, right, ((c.left, c.right) for c in self.equalities + self.inequalities)
        )

        left_keys = [c.left for c in self.equalities]
        right_keys = [c.right for c in self.equalities]
        index = GroupIndex.build(right, right_keys, null_equal=self.join_nulls)

        first, *others = self.inequalities
        buckets = {
            key: SortedBucket(right.column(first.right).to_pylist(), rows)
            for key, rows in index.groups()
        }
        left_values = {c.left: left.column(c.left).to_pylist() for c in self.inequalities}
        right_values = {c.right: right.column(c.right).to_pylist() for c in others}

        left_rows: list[int | None] = []
        right_rows: list[int | None] = []
        keys = row_keys(left.select(left_keys), left.num_rows)
        for row, key in enumerate(keys):
            matches: list[int] = []
            bucket = None
            if self.join_nulls or None not in key:
                bucket = buckets.get(key)
            if bucket is not None:
                candidates = bucket.candidates(first.op, left_values[first.left][row])
                matches = [
                    candidate
                    for candidate in candidates
                    if all(
                        compare(
                            left_values[c.left][row], c.op, right_values[c.right][candidate]
                        )
                        for c in others
                    )
                ]
            for match in matches:
                left_rows.append(row)
                right_rows.append(match)
            if not matches and self.how == "left":
                left_rows.append(row)
                right_rows.append(None)

        result = combine(left, right, left_rows, right_rows, self.suffix)
        get_logger().debug(
            "RangeJoinNode(%s) joined %d left and %d right rows into %d rows",
            self.how,
            left.num_rows,
            right.num_rows,
            result.num_rows,
        )
        yield result


class RollingJoinNode(QueryPlanNode):
    """Join each left row with the right row having the closest value.

    Also known as an *as-of* join, it's typically used to attach
    to each observation the most relevant record of another table
    along a time dimension, even when the dates don't match exactly::

        flights:                  rates:
        +---------+------------+  +---------+------------+------+
        | carrier | date       |  | carrier | date       | rate |
        +---------+------------+  +---------+------------+------+
        | AA      | 2014-11-01 |  | AA      | 2014-10-01 | 1.0  |
        +---------+------------+  | AA      | 2014-11-10 | 1.1  |
                                  | AA      | 2014-12-01 | 1.2  |
                                  +---------+------------+------+

    With ``direction="nearest"`` the flight gets the 2014-11-10 rate
    which is 9 days away, instead of the 2014-10-01 one which is 31 days away.
    With ``direction="backward"`` only right values less than or equal
    to the left one are candidates, so it would get the 2014-10-01 rate.
    With ``direction="forward"`` only right values greater than or equal
    to the left one are candidates.

    When two candidates are at the same distance, the one with the
    smaller value wins, and among right rows with the same value the first
    one wins. Left rows without any candidate get nulls for the right columns
    (or are dropped by ``how="inner"``).

    The right rows of each ``by`` bucket are sorted once by the ordering
    column, then each left row finds its candidates by binary search.
    """

    def __init__(
        self,
        left_on: str,
        right_on: str,
        left_child: QueryPlanNode,
        right_child: QueryPlanNode,
        by: Sequence[tuple[str, str] | str] = (),
        direction: str = "nearest",
        how: str = "left",
        join_nulls: bool | None = None,
        suffix: str | None = None,
    ) -> None:
        """
        :param left_on: The ordering column of the left table.
        :param right_on: The ordering column of the right table.
        :param left_child: The left source of data to join.
        :param right_child: The right source of data to join.
        :param by: Equality keys, as column names or ``(left, right)`` pairs,
                   that must match before looking for the closest value.
        :param direction: ``nearest``, ``backward`` or ``forward``.
        :param how: ``left`` keeps unmatched left rows, ``inner`` drops them.
        :param join_nulls: If null keys match each other in ``by`` keys.
        :param suffix: Appended to right columns whose name is already taken.
        """
        if direction not in ROLLING_DIRECTIONS:
            raise ValueError(f"Unknown direction {direction!r}, use one of {ROLLING_DIRECTIONS}")
        if how not in ("inner", "left"):
            raise ValueError(f"Rolling joins support 'inner' and 'left' joins, got {how!r}")
        self.left_on = left_on
        self.right_on = right_on
        self.left_child = left_child
        self.right_child = right_child
        self.by = [(b, b) if isinstance(b, str) else tuple(b) for b in by]
        self.direction = direction
        self.how = how
        self.join_nulls = resolve(join_nulls, get_join_nulls)
        self.suffix = resolve(suffix, get_join_suffix)

    def __str__(self) -> str:
        return (
            f"RollingJoinNode(on={self.left_on}~{self.right_on}, by={self.by}, "
            f"direction={self.direction}, how={self.how}, "
            f"left={self.left_child}, right={self.right_child})"
        )

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Perform the rolling join."""
        left = materialize(self.left_child)
        right = materialize(self.right_child)
        check_join_columns(left, right, self.by + [(self.left_on, self.right_on)])
        if self.direction == "nearest":
            _check_distance_types(
                left.schema.field(self.left_on), right.schema.field(self.right_on)
            )

        left_keys = [lk for lk, _ in self.by]
        right_keys = [rk for _, rk in self.by]
        index = GroupIndex.build(right, right_keys, null_equal=self.join_nulls)
        right_values = right.column(self.right_on).to_pylist()
        buckets = {key: SortedBucket(right_values, rows) for key, rows in index.groups()}

        left_values = left.column(self.left_on).to_pylist()
        left_rows: list[int | None] = []
        right_rows: list[int | None] = []
        for row, key in enumerate(row_keys(left.select(left_keys), left.num_rows)):
            match = None
            bucket = None
            if self.join_nulls or None not in key:
                bucket = buckets.get(key)
            if bucket is not None and left_values[row] is not None:
                match = bucket.closest(left_values[row], self.direction)
            if match is None and self.how == "inner":
                continue
            left_rows.append(row)
            right_rows.append(match)

        result = combine(left, right, left_rows, right_rows, self.suffix, drop_right=right_keys)
        get_logger().debug(
            "RollingJoinNode(%s) matched %d of %d left rows",
            self.direction,
            sum(1 for r in right_rows if r is not None),
            left.num_rows,
        )
        yield result


class SortedBucket:
    """Rows of a join bucket sorted by the value of one column.

    Rows with a null value are left out as they can't satisfy
    any comparison. Sorting is stable, so rows with equal values
    keep their original relative order.

    >>> bucket = SortedBucket([5, 1, None, 3, 1], [0, 1, 2, 3, 4])
    >>> bucket.candidates("<=", 3)
    [0, 3]
    >>> bucket.closest(2, "nearest")
    1
    """

    def __init__(self, values: list[Any], rows: Iterable[int]) -> None:
        """
        :param values: The values of the column for all the rows of the table.
        :param rows: The rows belonging to the bucket.
        """
        pairs = sorted(
            ((values[row], row) for row in rows if values[row] is not None),
            key=lambda pair: pair[0],
        )
        self.values = [v for v, _ in pairs]
        self.rows = [r for _, r in pairs]

    def candidates(self, op: str, left_value: Any) -> list[int]:
        """Rows satisfying ``left_value <op> row value``, in table order."""
        if left_value is None:
            return []
        if op == "<=":
            selected = self.rows[bisect.bisect_left(self.values, left_value) :]
        elif op == "<":
            selected = self.rows[bisect.bisect_right(self.values, left_value) :]
        elif op == ">=":
            selected = self.rows[: bisect.bisect_right(self.values, left_value)]
        elif op == ">":
            selected = self.rows[: bisect.bisect_left(self.values, left_value)]
        else:
            raise AmbiguousJoinError(f"Unsupported range operator {op!r}")
        return sorted(selected)

    def closest(self, left_value: Any, direction: str) -> int | None:
        """The row whose value is closest to ``left_value`` in the allowed direction."""
        backward = forward = None
        upper = bisect.bisect_right(self.values, left_value)
        if upper > 0:
            # First row having the greatest value <= left_value.
            backward = bisect.bisect_left(self.values, self.values[upper - 1])
        lower = bisect.bisect_left(self.values, left_value)
        if lower < len(self.values):
            forward = lower

        if direction == "backward":
            chosen = backward
        elif direction == "forward":
            chosen = forward
        elif backward is None or forward is None:
            chosen = backward if forward is None else forward
        else:
            behind = left_value - self.values[backward]
            ahead = self.values[forward] - left_value
            # On ties prefer the smaller value.
            chosen = backward if behind <= ahead else forward

        if chosen is None:
            return None
        return self.rows[chosen]


def compare(left_value: Any, op: str, right_value: Any) -> bool:
    """Evaluate ``left_value <op> right_value``, nulls never satisfy a comparison."""
    if left_value is None or right_value is None:
        return False
    if op == "<=":
        return left_value <= right_value
    if op == ">=":
        return left_value >= right_value
    if op == "<":
        return left_value < right_value
    if op == ">":
        return left_value > right_value
    if op == EQUALITY:
        return left_value == right_value
    raise AmbiguousJoinError(f"Unsupported comparison operator {op!r}")


def probe(
    data: pa.RecordBatch,
    keys: list[str],
    index: GroupIndex,
    join_nulls: bool,
    keep_unmatched: bool,
) -> list[tuple[int, int | None]]:
    """Match each row of ``data`` with the rows of ``index`` sharing its key.

    Returns ``(data_row, index_row)`` pairs in order of ``data`` rows,
    rows without a match are paired with ``None`` when ``keep_unmatched``.
    """
    pairs: list[tuple[int, int | None]] = []
    for row, key in enumerate(row_keys(data.select(keys), data.num_rows)):
        matches: list[int] = []
        if join_nulls or None not in key:
            matches = index.lookup(key)
        for match in matches:
            pairs.append((row, match))
        if not matches and keep_unmatched:
            pairs.append((row, None))
    return pairs


def combine(
    left: pa.RecordBatch,
    right: pa.RecordBatch,
    left_rows: list[int | None],
    right_rows: list[int | None],
    suffix: str,
    drop_right: Iterable[str] = (),
    coalesce: Iterable[tuple[str, str]] = (),
) -> pa.RecordBatch:
    """Build the joined data by taking rows from both sides.

    ``None`` in ``left_rows`` or ``right_rows`` produces a row of nulls for that side.

    :param drop_right: Right columns that must not be part of the result.
    :param coalesce: ``(left, right)`` columns where nulls on the left column
                     are replaced by the value of the right one.
    """
    left_indices = pa.array(left_rows, type=pa.int64())
    right_indices = pa.array(right_rows, type=pa.int64())

    columns: dict[str, pa.Array] = {
        name: left.column(name).take(left_indices) for name in left.schema.names
    }
    for left_key, right_key in coalesce:
        taken = columns[left_key]
        fallback = right.column(right_key).take(right_indices)
        target = common_type([taken.type, fallback.type], context=f"join keys {left_key!r}")
        columns[left_key] = pc.coalesce(
            coerce_array(taken, target), coerce_array(fallback, target)
        )

    drop_right = set(drop_right)
    for name in right.schema.names:
        if name in drop_right:
            continue
        new_name = name
        while new_name in columns:
            new_name += suffix
        columns[new_name] = right.column(name).take(right_indices)

    if not columns:
        return pa.RecordBatch.from_pydict({})
    return pa.RecordBatch.from_pydict(columns)


def check_join_columns(
    left: pa.RecordBatch,
    right: pa.RecordBatch,
    pairs: Iterable[tuple[str, str]],
    merged: bool = False,
) -> None:
    """Ensure the join columns exist and can be compared with each other.

    :param merged: The columns will be merged into a single one,
                   so they also need a common type.
    """
    for left_name, right_name in pairs:
        if left_name not in left.schema.names:
            raise SchemaError(
                f"Join column {left_name!r} not found in left columns {left.schema.names}"
            )
        if right_name not in right.schema.names:
            raise SchemaError(
                f"Join column {right_name!r} not found in right columns {right.schema.names}"
            )
        left_type = left.schema.field(left_name).type
        right_type = right.schema.field(right_name).type
        if not comparable(left_type, right_type):
            raise SchemaError(
                f"Can't compare left {left_name!r} ({left_type}) with right {right_name!r} ({right_type})"
            )
        if merged:
            common_type(
                [left_type, right_type],
                context=f"join keys {left_name!r} and {right_name!r}",
            )


def comparable(left_type: pa.DataType, right_type: pa.DataType) -> bool:
    """If values of the two types can be compared with each other."""
    if left_type.equals(right_type) or pa.types.is_null(left_type) or pa.types.is_null(right_type):
        return True
    kinds = (
        lambda t: pa.types.is_integer(t) or pa.types.is_floating(t) or pa.types.is_decimal(t),
        lambda t: pa.types.is_string(t) or pa.types.is_large_string(t),
        lambda t: pa.types.is_binary(t) or pa.types.is_large_binary(t),
        pa.types.is_date,
        pa.types.is_timestamp,
        pa.types.is_duration,
        pa.types.is_boolean,
    )
    if pa.types.is_timestamp(left_type) and pa.types.is_timestamp(right_type):
        # Timezone aware and naive datetimes can't be compared.
        if (left_type.tz is None) != (right_type.tz is None):
            return False
    return any(kind(left_type) and kind(right_type) for kind in kinds)


def _check_distance_types(left: pa.Field, right: pa.Field) -> None:
    """Ensure the distance between values of the two columns can be computed."""
    for field in (left, right):
        if not (
            pa.types.is_integer(field.type)
            or pa.types.is_floating(field.type)
            or pa.types.is_decimal(field.type)
            or pa.types.is_date(field.type)
            or pa.types.is_timestamp(field.type)
            or pa.types.is_duration(field.type)
        ):
            raise SchemaError(
                f"Nearest join requires numeric, date, timestamp or duration columns, "
                f"{field.name!r} is {field.type}"
            )
    decimals = [pa.types.is_decimal(f.type) for f in (left, right)]
    floats = [pa.types.is_floating(f.type) for f in (left, right)]
    if any(decimals) and any(floats):
        raise SchemaError(
            f"Nearest join can't measure distances between {left.name!r} ({left.type}) "
            f"and {right.name!r} ({right.type})"
        )


__all__ = (
    "JoinClause",
    "join",
    "parse_clauses",
    "EquiJoinNode",
    "CrossJoinNode",
    "RangeJoinNode",
    "RollingJoinNode",
    "SortedBucket",
)
