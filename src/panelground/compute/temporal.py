"""Shift values in time within each entity of a panel.

Panel data tracks multiple entities over time, for example
the monthly sales of multiple shops::

    shop, month,      sales
    A,    2024-01-01, 10
    A,    2024-02-01, 12
    B,    2024-01-01, 7
    A,    2024-04-01, 9

A *lag* attaches to each row the value that the same entity
had a given amount of time before, a *lead* the value it will
have after. Lagging ``sales`` by one month leads to::

    shop, month,      sales, sales_lag1
    A,    2024-01-01, 10,    null
    A,    2024-02-01, 12,    10
    B,    2024-01-01, 7,     null
    A,    2024-04-01, 9,     null

Differently from shifting by a number of rows, the shift
is based on the calendar: the 2024-04-01 row gets null
because there is no row for 2024-03-01, instead of getting
the value of the previous row.
"""

import calendar
import datetime
from typing import Any, Sequence

import pyarrow as pa

from ..config import get_logger
from ..errors import DuplicateKeyError, NameCollisionError, SchemaError
from .base import QueryPlanNode, ensure_columns, materialize
from .grouping import GroupIndex

UNITS = ("day", "week", "month", "quarter", "year")

_MONTHS_PER_UNIT = {"month": 1, "quarter": 3, "year": 12}


def shift_date(date: datetime.date, n: int, unit: str) -> datetime.date:
    """Move a date ``n`` units forward in time, or backward when ``n`` is negative.

    When moving by months, quarters or years would lead to a day
    that doesn't exist in the target month, the last day
    of the month is used instead.

    Works with :class:`datetime.datetime` too, the time of day is preserved.

    >>> import datetime
    >>> shift_date(datetime.date(2024, 1, 31), 1, "month")
    datetime.date(2024, 2, 29)
    >>> shift_date(datetime.date(2024, 3, 15), -1, "quarter")
    datetime.date(2023, 12, 15)
    >>> shift_date(datetime.date(2024, 3, 15), 2, "week")
    datetime.date(2024, 3, 29)
    """
    if unit == "day":
        return date + datetime.timedelta(days=n)
    if unit == "week":
        return date + datetime.timedelta(weeks=n)
    try:
        months = n * _MONTHS_PER_UNIT[unit]
    except KeyError:
        raise ValueError(f"Unknown time unit {unit!r}, use one of {UNITS}") from None

    total = date.year * 12 + (date.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    day = min(date.day, calendar.monthrange(year, month)[1])
    return date.replace(year=year, month=month, day=day)


class TemporalShiftNode(QueryPlanNode):
    """Append lagged or led copies of value columns.

    For each row, the value is looked up in the row of the same entity
    whose date is exactly ``n`` units before (``n > 0``, a lag) or
    ``-n`` units after (``n < 0``, a lead) the date of the row.
    When no such row exists, the value is null.

    The rows of each entity are indexed by date, so an entity
    can't have more than one row with the same date.

    >>> import datetime
    >>> import pyarrow as pa
    >>> from panelground.compute import PyArrowTableDataSource
    >>> data = pa.record_batch({
    ...     "day": [datetime.date(2024, 1, 1), datetime.date(2024, 1, 2), datetime.date(2024, 1, 4)],
    ...     "n": [1, 2, 3],
    ... })
    >>> shifted = next(TemporalShiftNode("day", ["n"], 1, "day", PyArrowTableDataSource(data)).batches())
    >>> shifted.column("n_lag1").to_pylist()
    [None, 1, None]
    """

    def __init__(
        self,
        date_column: str,
        value_columns: Sequence[str],
        n: int,
        unit: str,
        child: QueryPlanNode,
        by: Sequence[str] | None = None,
        names: Sequence[str] | None = None,
    ) -> None:
        """
        :param date_column: The ``date32`` or ``timestamp`` column with the date of each row.
        :param value_columns: The columns whose values are shifted.
        :param n: How many units to shift, positive lags and negative leads.
        :param unit: One of ``day``, ``week``, ``month``, ``quarter``, ``year``.
        :param child: The node emitting the data.
        :param by: The columns identifying each entity, ``None`` when
                   the data contains a single entity.
        :param names: The names of the new columns, by default ``{column}_lag{n}``
                      or ``{column}_lead{-n}``.
        """
        if unit not in UNITS:
            raise ValueError(f"Unknown time unit {unit!r}, use one of {UNITS}")
        self.date_column = date_column
        self.value_columns = list(value_columns)
        self.n = n
        self.unit = unit
        self.child = child
        self.by = list(by or [])
        if names is None:
            suffix = f"lag{n}" if n >= 0 else f"lead{-n}"
            names = [f"{column}_{suffix}" for column in self.value_columns]
        elif len(names) != len(self.value_columns):
            raise ValueError("names must provide one name for each value column")
        self.names = list(names)

    def __str__(self) -> str:
        return (
            f"TemporalShiftNode(date={self.date_column}, values={self.value_columns}, "
            f"n={self.n}, unit={self.unit}, by={self.by}, {self.child})"
        )

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Shift the child data, all of it is loaded at once."""
        data = materialize(self.child)
        ensure_columns(data.schema, [self.date_column] + self.value_columns + self.by)
        date_type = data.schema.field(self.date_column).type
        if not (pa.types.is_date(date_type) or pa.types.is_timestamp(date_type)):
            raise SchemaError(
                f"Column {self.date_column!r} must be a date or timestamp, not {date_type}"
            )
        output_names = data.schema.names + self.names
        if len(set(output_names)) != len(output_names):
            raise NameCollisionError(
                n for n in output_names if output_names.count(n) > 1
            )

        index = GroupIndex.build(data, self.by)
        dates = data.column(self.date_column).to_pylist()
        by_date = self._index_dates(index, dates)

        sources: list[int | None] = []
        for row, date in enumerate(dates):
            if date is None:
                sources.append(None)
                continue
            target = shift_date(date, -self.n, self.unit)
            sources.append(by_date[index.group_for(row)].get(target))

        taken = pa.array(sources, type=pa.int64())
        for name, column in zip(self.names, self.value_columns):
            data = data.append_column(name, data.column(column).take(taken))

        get_logger().debug(
            "TemporalShiftNode shifted %s by %d %s, %d of %d rows found a value",
            self.value_columns,
            self.n,
            self.unit,
            sum(1 for s in sources if s is not None),
            len(sources),
        )
        yield data

    def _index_dates(
        self, index: GroupIndex, dates: list[Any]
    ) -> dict[tuple, dict[Any, int]]:
        """For each entity, map each date to the row having it."""
        by_date: dict[tuple, dict[Any, int]] = {}
        for key, rows in index.groups():
            entity: dict[Any, int] = {}
            for row in rows:
                date = dates[row]
                if date is None:
                    continue
                if date in entity:
                    raise DuplicateKeyError(
                        f"Rows {entity[date]} and {row} have the same "
                        f"{self.date_column}={date} for {self.by}={key}",
                        key=key + (date,),
                    )
                entity[date] = row
            by_date[key] = entity
        return by_date
