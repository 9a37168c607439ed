"""Format tabular data into a text table for print.

the `tabulate` function takes a `pyarrow.RecordBatch` or `pyarrow.Table`
and formats it into a text table. It will truncate long strings,
format floats to 2 decimal places, show nulls as ``null`` and
limit the number of rows to display.
It is used to print a :class:`panelground.table.Table`.

Example:

    >>> import datetime
    >>> import pyarrow as pa
    >>> data = {
    ...     "carrier": ["AA", "UA", "AA"],
    ...     "date": [datetime.date(2014, 11, 1), datetime.date(2014, 11, 3), None],
    ...     "rate": [1.1, 0.95, None],
    ... }
    >>> table = pa.RecordBatch.from_pydict(data)
    >>> print(tabulate(table))
    carrier | date       | rate
    ------- | ---------- | ----
    AA      | 2014-11-01 | 1.10
    UA      | 2014-11-03 | 0.95
    AA      | null       | null
"""

from typing import Any

import pyarrow as pa


def tabulate(data: pa.RecordBatch | pa.Table, max_rows: int = 20) -> str:
    """Format a RecordBatch or Table into a text table.

    Will produce a string like::

        carrier | month | passengers
        ------- | ----- | ----------
        AA      | 2     | 120
        UA      | 5     | 98

    Rows beyond ``max_rows`` are summarized in a final line.
    """
    cols = data.column_names
    rows = [
        [format_value(row[c]) for c in cols]
        for row in data.slice(length=max_rows).to_pylist()
    ]

    colsizes = compute_max_colsize(cols, rows)
    header = [maketablerow(cols, colsizes=colsizes)]
    separator = [maketablerow(["-"] * len(cols), colsizes=colsizes, fillvalue="-")]
    textrows = [maketablerow(row, colsizes=colsizes) for row in rows]

    table = "\n".join(header + separator + textrows)
    if data.num_rows > max_rows:
        table += f"\n... and {data.num_rows - max_rows} more rows"
    return table


def compute_max_colsize(cols: list[str], rows: list[list[str]]) -> list[int]:
    """Compute the maximum size of each column in a table."""
    return [
        max([len(row[colidx]) for row in rows] + [len(cols[colidx])])
        for colidx, _ in enumerate(cols)
    ]


def maketablerow(cols: list[str], colsizes: list[int], fillvalue: str = " ") -> str:
    """Make a table row with the given column sizes."""
    return " | ".join(
        [col.ljust(colsizes[idx], fillvalue) for idx, col in enumerate(cols)]
    )


def format_value(v: Any) -> str:
    """Format a value to be printed in the table.

    Floats are formatted to 2 decimal places, dates
    in ISO format and long strings are truncated.
    """
    if v is None:
        return "null"
    elif isinstance(v, float):
        return f"{v:.2f}"
    elif isinstance(v, bool):
        return "true" if v else "false"
    elif hasattr(v, "isoformat"):
        v = v.isoformat()

    v = str(v)
    if len(v) > 30:
        v = v[:27] + "..."
    return v
