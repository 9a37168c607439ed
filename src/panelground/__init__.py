"""PanelGround

A library for the analysis of panel data, observations of
multiple entities over time, built on top of Apache Arrow.

The library is constituted by multiple components, each isolated within its own
package and each self documented in literate programming style.

The primary components are:

* The Compute Engine, in charge of executing analyses on the data
  by running query plans made of nodes.
* The Table API, which provides an high level API for the compute engine.
* The configuration, that controls logging and the default
  behaviour of operations like joins and aggregations.

For the user guide and code documentation of each component, refer to the
component itself.
"""

from . import compute, config, errors
from .table import GroupedTable, Table, concat, load_table

__all__ = (
    "compute",
    "config",
    "errors",
    "Table",
    "GroupedTable",
    "concat",
    "load_table",
)
