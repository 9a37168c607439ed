"""Query plan nodes that compute aggregations.

Frequently when analysing data is necessary
to compute statistics like the min, max, average, etc...
of the data stored in datasets.

The aggregate node is in charge of computing
those aggregations and projecting them as new
columns in a query pipeline.

Typically the aggregate node will group the data
by a set of columns and then compute the aggregations

For example, given the following data::

    city, shop, n_employees
    New York, Shop A, 10
    New York, Shop B, 15
    Los Angeles, Shop C, 8
    Los Angeles, Shop D, 12
    New York, Shop E, 20

We could group by city and compute the sum of the employees
to get::

    city, total_employees
    New York, 45
    Los Angeles, 20

Instead of reducing each group to a single row, the transform
node broadcasts the result of the aggregation back to every row
of the group, which is how values like the group mean used to
demean a variable are computed::

    city, shop, n_employees, mean_employees
    New York, Shop A, 10, 15
    New York, Shop B, 15, 15
    Los Angeles, Shop C, 8, 10
    Los Angeles, Shop D, 12, 10
    New York, Shop E, 20, 15

Nulls
=====

By default an aggregation over a group that contains a null
results in null, like the mean of an unknown value is unknown.
Setting ``skip_nulls=True`` on the aggregation ignores the nulls.
``count``, ``first``, ``last`` and ``nunique`` never result
in null because of nulls in the group, with ``skip_nulls``
they only consider the non-null values.
"""

import abc
import functools
from typing import Any, Callable, Iterable, Iterator, Sequence

import pyarrow as pa
import pyarrow.compute as pc

from .. import utils
from ..config import get_logger, get_skip_nulls, resolve
from ..errors import NameCollisionError
from .base import QueryPlanNode, ensure_columns, materialize
from .grouping import GroupIndex, GroupKey

__all__ = (
    "AggregateNode",
    "TransformNode",
    "Aggregation",
    "SumAggregation",
    "MinAggregation",
    "MaxAggregation",
    "MeanAggregation",
    "MedianAggregation",
    "QuantileAggregation",
    "CountAggregation",
    "StdAggregation",
    "VarAggregation",
    "FirstAggregation",
    "LastAggregation",
    "NUniqueAggregation",
    "CustomAggregation",
    "reduce",
    "transform",
    "make_aggregation",
    "aggregations_for",
    "name_aggregations",
)


class Aggregation(abc.ABC):
    """Base class for aggregations.

    An aggregation is bound to one column and reduces
    all the values of a group to a single value.

    Subclasses provide the ``function_name``, used to
    derive the name of the resulting column, and
    implement ``_aggregate`` which receives the values
    of a group after the null handling was applied.
    """

    function_name = ""

    # If a group containing nulls results in null when not skipping them.
    propagates_nulls = True

    def __init__(self, column: str, skip_nulls: bool | None = None) -> None:
        """
        :param column: The column to aggregate.
        :param skip_nulls: Ignore null values, ``None`` uses the configured default.
        """
        self.column = column
        self.skip_nulls = resolve(skip_nulls, get_skip_nulls)

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.column})"

    __repr__ = __str__

    @property
    def name(self) -> str:
        """Default name of the column holding the results."""
        return f"{self.column}_{self.function_name}"

    def compute(self, values: pa.Array) -> Any:
        """Aggregate the values of one group to a Python value."""
        if self.skip_nulls:
            values = pc.drop_null(values)
        elif self.propagates_nulls and values.null_count:
            return None
        result = self._aggregate(values)
        if isinstance(result, pa.Scalar):
            result = result.as_py()
        return result

    @abc.abstractmethod
    def _aggregate(self, values: pa.Array) -> Any: ...


class SumAggregation(Aggregation):
    """Compute the sum of an aggregated column."""

    function_name = "sum"

    def _aggregate(self, values: pa.Array) -> Any:
        return pc.sum(values)


class MinAggregation(Aggregation):
    """Compute the min of an aggregated column."""

    function_name = "min"

    def _aggregate(self, values: pa.Array) -> Any:
        return pc.min(values)


class MaxAggregation(Aggregation):
    """Compute the max of an aggregated column."""

    function_name = "max"

    def _aggregate(self, values: pa.Array) -> Any:
        return pc.max(values)


class MeanAggregation(Aggregation):
    """Compute the mean of an aggregated column."""

    function_name = "mean"

    def _aggregate(self, values: pa.Array) -> Any:
        return pc.mean(values)


class QuantileAggregation(Aggregation):
    """Compute a quantile of an aggregated column.

    Values between two data points are linearly interpolated.

    >>> import pyarrow as pa
    >>> QuantileAggregation("x", 0.25).compute(pa.array([1, 2, 3, 4, 5]))
    2.0
    >>> QuantileAggregation("x", 0.25).name
    'x_p25'
    """

    def __init__(self, column: str, q: float, skip_nulls: bool | None = None) -> None:
        """
        :param column: The column to aggregate.
        :param q: The quantile to compute, between 0 and 1.
        :param skip_nulls: Ignore null values, ``None`` uses the configured default.
        """
        if not 0 <= q <= 1:
            raise ValueError(f"Quantile must be between 0 and 1, got {q}")
        super().__init__(column, skip_nulls)
        self.q = q

    @property
    def function_name(self) -> str:
        return f"p{self.q * 100:g}"

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.column}, q={self.q})"

    __repr__ = __str__

    def _aggregate(self, values: pa.Array) -> Any:
        return pc.quantile(values, q=self.q, interpolation="linear")[0]


class MedianAggregation(QuantileAggregation):
    """Compute the median of an aggregated column."""

    function_name = "median"

    def __init__(self, column: str, skip_nulls: bool | None = None) -> None:
        super().__init__(column, 0.5, skip_nulls)

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.column})"

    __repr__ = __str__


class CountAggregation(Aggregation):
    """Count the rows of each group.

    When skipping nulls only the rows with a value
    for the aggregated column are counted.
    """

    function_name = "count"
    propagates_nulls = False

    def _aggregate(self, values: pa.Array) -> Any:
        return len(values)


class StdAggregation(Aggregation):
    """Compute the sample standard deviation of an aggregated column."""

    function_name = "std"

    def __init__(self, column: str, skip_nulls: bool | None = None, ddof: int = 1) -> None:
        super().__init__(column, skip_nulls)
        self.ddof = ddof

    def _aggregate(self, values: pa.Array) -> Any:
        return pc.stddev(values, ddof=self.ddof)


class VarAggregation(StdAggregation):
    """Compute the sample variance of an aggregated column."""

    function_name = "var"

    def _aggregate(self, values: pa.Array) -> Any:
        return pc.variance(values, ddof=self.ddof)


class FirstAggregation(Aggregation):
    """Take the first value of each group."""

    function_name = "first"
    propagates_nulls = False

    def _aggregate(self, values: pa.Array) -> Any:
        if not len(values):
            return None
        return values[0]


class LastAggregation(Aggregation):
    """Take the last value of each group."""

    function_name = "last"
    propagates_nulls = False

    def _aggregate(self, values: pa.Array) -> Any:
        if not len(values):
            return None
        return values[len(values) - 1]


class NUniqueAggregation(Aggregation):
    """Count the distinct values of each group, null counts as a value."""

    function_name = "nunique"
    propagates_nulls = False

    def _aggregate(self, values: pa.Array) -> Any:
        return pc.count_distinct(values, mode="all")


class CustomAggregation(Aggregation):
    """Aggregate using an arbitrary Python function.

    The function receives the values of the group as
    a :class:`pyarrow.Array` and can return either a
    Python value or a :class:`pyarrow.Scalar`.

    >>> import pyarrow as pa
    >>> def spread(values):
    ...     return max(values.to_pylist()) - min(values.to_pylist())
    >>> agg = CustomAggregation("x", spread)
    >>> agg.name, agg.compute(pa.array([3, 9, 4]))
    ('x_spread', 6)
    """

    def __init__(
        self,
        column: str,
        func: Callable[[pa.Array], Any],
        skip_nulls: bool | None = None,
        function_name: str | None = None,
    ) -> None:
        """
        :param column: The column to aggregate.
        :param func: The function reducing the values of a group.
        :param skip_nulls: Ignore null values, ``None`` uses the configured default.
        :param function_name: Name of the function used to name the results,
                              by default the name of ``func``.
        """
        super().__init__(column, skip_nulls)
        self.func = func
        self.function_name = function_name or getattr(func, "__name__", "custom")

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.column}, {utils.inspect.get_qualname(self.func)})"

    __repr__ = __str__

    def _aggregate(self, values: pa.Array) -> Any:
        return self.func(values)


AGGREGATIONS: dict[str, type[Aggregation]] = {
    "sum": SumAggregation,
    "min": MinAggregation,
    "max": MaxAggregation,
    "mean": MeanAggregation,
    "median": MedianAggregation,
    "count": CountAggregation,
    "std": StdAggregation,
    "var": VarAggregation,
    "first": FirstAggregation,
    "last": LastAggregation,
    "nunique": NUniqueAggregation,
}


def quantile(q: float) -> Callable[..., QuantileAggregation]:
    """Aggregation factory for the ``q`` quantile, usable in :func:`aggregations_for`."""
    return functools.partial(QuantileAggregation, q=q)


def make_aggregation(
    column: str, function: Any, skip_nulls: bool | None = None
) -> Aggregation:
    """Build the aggregation of ``column`` described by ``function``.

    ``function`` can be:

    * The name of a builtin aggregation, like ``"mean"``.
    * An :class:`Aggregation` subclass or a factory made by :func:`quantile`.
    * Any other callable, which becomes a :class:`CustomAggregation`.

    >>> make_aggregation("price", "median")
    MedianAggregation(price)
    """
    if isinstance(function, str):
        try:
            function = AGGREGATIONS[function]
        except KeyError:
            raise ValueError(
                f"Unknown aggregation {function!r}, available: {sorted(AGGREGATIONS)}"
            ) from None
    if _is_aggregation_factory(function):
        return function(column, skip_nulls=skip_nulls)
    if callable(function):
        return CustomAggregation(column, function, skip_nulls=skip_nulls)
    raise TypeError(f"Can't aggregate {column!r} using {function!r}")


def _is_aggregation_factory(function: Any) -> bool:
    if isinstance(function, functools.partial):
        function = function.func
    return isinstance(function, type) and issubclass(function, Aggregation)


def aggregations_for(
    columns: str | Sequence[str],
    functions: Any | Sequence[Any],
    skip_nulls: bool | None = None,
) -> list[Aggregation]:
    """Apply each function to each column.

    Supports both applying multiple functions to one column
    and one function to multiple columns, the result is ordered
    by column and then by function.

    >>> aggregations_for(["a", "b"], ["min", "max"])
    [MinAggregation(a), MaxAggregation(a), MinAggregation(b), MaxAggregation(b)]
    """
    if isinstance(columns, str):
        columns = [columns]
    if isinstance(functions, str) or not isinstance(functions, Sequence):
        functions = [functions]
    return [
        make_aggregation(column, function, skip_nulls)
        for column in columns
        for function in functions
    ]


def name_aggregations(
    aggregations: dict[str, Aggregation] | Iterable[Any],
    reserved: Iterable[str] = (),
) -> dict[str, Aggregation]:
    """Assign a distinct output column name to each aggregation.

    ``aggregations`` can be a ``{name: Aggregation}`` dictionary
    or a list where each entry is an :class:`Aggregation`, a
    ``(column, function)`` pair or a ``(column, function, name)`` triple.

    Names chosen by the caller are validated up front:
    if two of them are equal, or they collide with a ``reserved``
    name (like the group keys), :class:`NameCollisionError` is raised
    before anything is computed.

    Names that were not chosen by the caller are derived as
    ``{column}_{function}`` and made unique by appending
    ``_2``, ``_3``, ... when needed.

    >>> name_aggregations([("x", "mean"), ("x", "mean"), ("x", "max", "top")])
    {'x_mean': MeanAggregation(x), 'x_mean_2': MeanAggregation(x), 'top': MaxAggregation(x)}
    """
    if isinstance(aggregations, dict):
        entries = list(aggregations.items())
    else:
        entries = [_parse_entry(entry) for entry in aggregations]

    reserved = set(reserved)
    explicit = [name for name, _ in entries if name is not None]
    collisions = [n for n in explicit if explicit.count(n) > 1 or n in reserved]
    if collisions:
        raise NameCollisionError(collisions)

    named: dict[str, Aggregation] = {}
    used = reserved | set(explicit)
    for name, aggregation in entries:
        if name is None:
            name = aggregation.name
            suffix = 2
            while name in used:
                name = f"{aggregation.name}_{suffix}"
                suffix += 1
            used.add(name)
        named[name] = aggregation
    return named


def _parse_entry(entry: Any) -> tuple[str | None, Aggregation]:
    if isinstance(entry, Aggregation):
        return None, entry
    if isinstance(entry, tuple) and len(entry) == 2:
        column, function = entry
        return None, make_aggregation(column, function)
    if isinstance(entry, tuple) and len(entry) == 3:
        column, function, name = entry
        return name, make_aggregation(column, function)
    raise TypeError(
        f"Invalid aggregation {entry!r}, expected an Aggregation, "
        "(column, function) or (column, function, name)"
    )


def _grouped_values(
    group_index: GroupIndex, data: pa.Table | pa.RecordBatch, column: str, sort: bool
) -> Iterator[pa.Array]:
    """Yield the values of ``column`` for each group.

    Instead of taking the rows of each group separately,
    the column is reordered once so that the rows of each group
    are contiguous, then each group is a zero-copy slice.
    """
    values = data.column(column)
    if isinstance(values, pa.ChunkedArray):
        values = values.combine_chunks()
    indices, offsets = group_index.permutation(sort=sort)
    grouped = values.take(indices)
    for start, end in zip(offsets, offsets[1:]):
        yield grouped.slice(start, end - start)


def _compute(
    group_index: GroupIndex,
    data: pa.Table | pa.RecordBatch,
    aggregation: Aggregation,
    sort: bool = False,
) -> list[Any]:
    ensure_columns(data.schema, [aggregation.column])
    return [
        aggregation.compute(values)
        for values in _grouped_values(group_index, data, aggregation.column, sort)
    ]


def reduce(
    group_index: GroupIndex,
    data: pa.Table | pa.RecordBatch,
    aggregation: Aggregation,
) -> dict[GroupKey, Any]:
    """Reduce each group to a single value.

    >>> import pyarrow as pa
    >>> data = pa.table({"city": ["NY", "LA", "NY"], "n": [10, 8, 20]})
    >>> reduce(GroupIndex.build(data, ["city"]), data, MeanAggregation("n"))
    {('NY',): 15.0, ('LA',): 8.0}
    """
    group_index.check_valid(data)
    results = _compute(group_index, data, aggregation)
    return dict(zip(group_index.keys(), results))


def transform(
    group_index: GroupIndex,
    data: pa.Table | pa.RecordBatch,
    aggregation: Aggregation,
) -> pa.Array:
    """Broadcast the aggregation of each group back to the rows of the group.

    The result has one value for each row of ``data``,
    in the same order of the rows. Rows that belong to no group
    (null keys when the index doesn't group nulls) get null.

    >>> import pyarrow as pa
    >>> data = pa.table({"city": ["NY", "LA", "NY"], "n": [10, 8, 20]})
    >>> transform(GroupIndex.build(data, ["city"]), data, MeanAggregation("n")).to_pylist()
    [15.0, 8.0, 15.0]
    """
    group_index.check_valid(data)
    per_group = pa.array(_compute(group_index, data, aggregation))
    return per_group.take(group_index.group_ids())


class AggregateNode(QueryPlanNode):
    """Group data and compute aggregations.

    The result has one row for each group, in the order the groups
    were first seen unless ``sort=True``, with the key columns
    followed by one column for each aggregation.

    >>> import pyarrow as pa
    >>> from panelground.compute import PyArrowTableDataSource
    >>> data = pa.record_batch({
    ...    'city': pa.array(['New York', 'New York', 'Los Angeles', 'Los Angeles', 'New York']),
    ...    'shop': pa.array(['Shop A', 'Shop B', 'Shop C', 'Shop D', 'Shop E']),
    ...    'n_employees': pa.array([10, 15, 8, 12, 20])
    ... })
    >>> aggregate = AggregateNode(["city"], {"total_employees": SumAggregation("n_employees")}, PyArrowTableDataSource(data))
    >>> next(aggregate.batches()).to_pydict()
    {'city': ['New York', 'Los Angeles'], 'total_employees': [45, 20]}
    """

    def __init__(
        self,
        keys: list[str],
        aggregations: dict[str, Aggregation] | list[Any],
        child: QueryPlanNode,
        group_index: GroupIndex | None = None,
        sort: bool = False,
    ) -> None:
        """
        :param keys: The columns to group by.
        :param aggregations: The aggregations to compute in the form of {"new_col_name": Aggregation}
                             or a list accepted by :func:`name_aggregations`.
        :param child: The child node that will provide the data to aggregate.
        :param group_index: An already built index of the child data on ``keys``.
        :param sort: Emit groups sorted by key instead of first appearance.
        """
        self.keys = list(keys)
        self.aggregations = name_aggregations(aggregations, reserved=self.keys)
        self.child = child
        self.group_index = group_index
        self.sort = sort

    def __str__(self) -> str:
        return f"AggregateNode(keys={self.keys}, aggregations={self.aggregations}, {self.child})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Compute the aggregations for each group.

        All the data of the child is loaded in memory
        as rows of the same group could be spread across
        multiple batches.
        """
        data = materialize(self.child)
        ensure_columns(data.schema, self.keys)
        ensure_columns(data.schema, [a.column for a in self.aggregations.values()])
        group_index = self.group_index or GroupIndex.build(data, self.keys)
        group_index.check_valid(data)

        key_table = group_index.key_table(sort=self.sort)
        columns = {name: key_table.column(name).combine_chunks() for name in self.keys}
        for name, aggregation in self.aggregations.items():
            columns[name] = pa.array(
                _compute(group_index, data, aggregation, sort=self.sort)
            )
        get_logger().debug(
            "AggregateNode reduced %d rows to %d groups", data.num_rows, len(group_index)
        )
        yield pa.RecordBatch.from_pydict(columns)


class TransformNode(QueryPlanNode):
    """Append to the data the aggregations of the group of each row.

    The emitted data has the same rows, in the same order,
    of the data emitted by the child, plus one column for each
    aggregation.

    >>> import pyarrow as pa
    >>> from panelground.compute import PyArrowTableDataSource
    >>> data = pa.record_batch({"city": ["NY", "LA", "NY"], "n": [10, 8, 20]})
    >>> node = TransformNode(["city"], [MeanAggregation("n")], PyArrowTableDataSource(data))
    >>> next(node.batches()).to_pydict()
    {'city': ['NY', 'LA', 'NY'], 'n': [10, 8, 20], 'n_mean': [15.0, 8.0, 15.0]}
    """

    def __init__(
        self,
        keys: list[str],
        aggregations: dict[str, Aggregation] | list[Any],
        child: QueryPlanNode,
        group_index: GroupIndex | None = None,
    ) -> None:
        """
        :param keys: The columns to group by.
        :param aggregations: The aggregations to broadcast, as accepted by :func:`name_aggregations`.
        :param child: The child node that will provide the data.
        :param group_index: An already built index of the child data on ``keys``.
        """
        self.keys = list(keys)
        self.aggregations = aggregations
        self.child = child
        self.group_index = group_index

    def __str__(self) -> str:
        return f"TransformNode(keys={self.keys}, aggregations={self.aggregations}, {self.child})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Compute the aggregations and broadcast them to the rows."""
        data = materialize(self.child)
        aggregations = name_aggregations(self.aggregations, reserved=data.schema.names)
        ensure_columns(data.schema, self.keys)
        ensure_columns(data.schema, [a.column for a in aggregations.values()])
        group_index = self.group_index or GroupIndex.build(data, self.keys)
        group_index.check_valid(data)

        for name, aggregation in aggregations.items():
            data = data.append_column(name, transform(group_index, data, aggregation))
        yield data
