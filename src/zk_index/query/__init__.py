"""Query layer: filter compilation, link traversal and execution."""

from zk_index.query.compiler import FilterCompiler, QueryPlan
from zk_index.query.executor import FindResult, QueryExecutor
from zk_index.query.mentions import MentionExpander
from zk_index.query.planner import QueryPlanner
from zk_index.query.traversal import RELATED_DISTANCE, STEP_LIMIT, GraphTraversal

__all__ = [
    "FilterCompiler",
    "FindResult",
    "GraphTraversal",
    "MentionExpander",
    "QueryExecutor",
    "QueryPlan",
    "QueryPlanner",
    "RELATED_DISTANCE",
    "STEP_LIMIT",
]
