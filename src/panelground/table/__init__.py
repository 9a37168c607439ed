"""Table library built on top of the panelground compute engine.

The compute engine works in terms of query plans, which are
convenient to compose but verbose to write by hand for every
analysis. The :class:`Table` provides a higher level API
where each operation builds the query plan for the user
and executes it right away.

Tables are meant to hold panel data: observations of multiple
entities over time. On top of the usual selection, filtering and
sorting, they can be grouped, joined (also on ranges and on the
nearest date), reshaped between wide and long format and shifted
in time within each entity.

>>> import datetime
>>> sales = Table({
...     "shop": ["A", "A", "B"],
...     "month": [datetime.date(2024, 1, 1), datetime.date(2024, 2, 1), datetime.date(2024, 1, 1)],
...     "sales": [10, 12, 7],
... })
>>> sales.lag("month", "sales", unit="month", by=["shop"]).column("sales_lag1").to_pylist()
[None, 10, None]
"""

from .grouped import GroupedTable
from .table import Table, concat, load_table

__all__ = ("Table", "GroupedTable", "concat", "load_table")
