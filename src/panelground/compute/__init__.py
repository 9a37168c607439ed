"""The PanelGround Compute Engine

The compute engine defines the in-memory
format for query plans and the plan nodes
supported.

The compute engine is tightly bound to Apache Arrow,
thus the engine will expect to always deal with
:class:`pyarrow.RecordBatch` and emit a new RecordBatch
as the result of the node execution.

This allows to easily build compute pipelines like::

    (RecordBatch)-->Node1--(RecordBatch)-->Node2--(RecordBatch)-->...

The query plan nodes themselves are in charge of their execution,
this keeps the behavior near to the node and thus makes easy to
know how a Node is actually executed without having to look around too much.

Building a query plan requires to combine the nodes that we want
to be executed starting with one or more ``DataSource`` nodes as the
leafs node of a query:

>>> import pyarrow as pa
>>> data = pa.table({
...    "animals": pa.array(["Flamingo", "Horse", "Brittle stars", "Centipede"]),
...    "n_legs": pa.array([2, 4, 5, 100])
... })
>>>
>>> import pyarrow.compute as pc
>>> from panelground.compute import col, PyArrowTableDataSource
>>> from panelground.compute import FilterNode, FunctionCallExpression
>>> # Keep the animals with at least 5 legs
>>> query = FilterNode(
...     FunctionCallExpression(pc.greater_equal, col("n_legs"), 5),
...     child=PyArrowTableDataSource(
...         data
...     )
... )
>>> for data in query.batches():
...     print(data)
pyarrow.RecordBatch
animals: string
n_legs: int64
----
animals: ["Brittle stars","Centipede"]
n_legs: [5,100]

On top of the relational nodes, the engine provides the operations
needed to work with panel data, where multiple entities are
observed over time:

* Grouping, through the :class:`GroupIndex` that partitions
  rows once and can be reused by multiple operations.
* Aggregations, both reducing each group to one row
  (:class:`AggregateNode`) and broadcasting the result
  back to each row (:class:`TransformNode`).
* Joins, on equality, on ranges of values and on
  the nearest value (:func:`join`).
* Reshaping between wide and long formats
  (:class:`MeltNode` and :class:`CastNode`).
* Calendar aware lags and leads (:class:`TemporalShiftNode`).
"""

from .aggregate import (
    AGGREGATIONS,
    AggregateNode,
    Aggregation,
    CountAggregation,
    CustomAggregation,
    FirstAggregation,
    LastAggregation,
    MaxAggregation,
    MeanAggregation,
    MedianAggregation,
    MinAggregation,
    NUniqueAggregation,
    QuantileAggregation,
    StdAggregation,
    SumAggregation,
    TransformNode,
    VarAggregation,
    aggregations_for,
    make_aggregation,
    name_aggregations,
    quantile,
    reduce,
    transform,
)
from .base import ColumnRef, Expression, Literal, QueryPlanNode, col, lit, materialize
from .coercion import common_type
from .concat import ConcatNode
from .datasources import PyArrowTableDataSource
from .expressions import FunctionCallExpression, RowPredicateExpression
from .filtering import FilterNode
from .grouping import GroupIndex
from .join import (
    CrossJoinNode,
    EquiJoinNode,
    JoinClause,
    RangeJoinNode,
    RollingJoinNode,
    join,
)
from .pagination import PaginateNode
from .reshape import CastNode, MeltNode
from .selection import ProjectNode
from .sorting import SortNode
from .temporal import TemporalShiftNode, shift_date

__all__ = (
    "QueryPlanNode",
    "Expression",
    "PyArrowTableDataSource",
    "FilterNode",
    "FunctionCallExpression",
    "RowPredicateExpression",
    "col",
    "lit",
    "ColumnRef",
    "Literal",
    "materialize",
    "PaginateNode",
    "SortNode",
    "ProjectNode",
    "ConcatNode",
    "common_type",
    "GroupIndex",
    "AggregateNode",
    "TransformNode",
    "Aggregation",
    "AGGREGATIONS",
    "CountAggregation",
    "CustomAggregation",
    "FirstAggregation",
    "LastAggregation",
    "MaxAggregation",
    "MeanAggregation",
    "MedianAggregation",
    "MinAggregation",
    "NUniqueAggregation",
    "QuantileAggregation",
    "StdAggregation",
    "SumAggregation",
    "VarAggregation",
    "aggregations_for",
    "make_aggregation",
    "name_aggregations",
    "quantile",
    "reduce",
    "transform",
    "JoinClause",
    "join",
    "EquiJoinNode",
    "CrossJoinNode",
    "RangeJoinNode",
    "RollingJoinNode",
    "MeltNode",
    "CastNode",
    "TemporalShiftNode",
    "shift_date",
)
