"""
BPMN Hierarchy Tools

Analysis helpers and the command-line interface.
"""

from bpmn_hierarchy.tools.analysis import (
    FlatTreeRow,
    HierarchySummary,
    collect_diagnostics,
    file_processing_order,
    flatten_tree,
    summarize_tree,
    get_testable_nodes,
)

__all__ = [
    "FlatTreeRow",
    "HierarchySummary",
    "collect_diagnostics",
    "file_processing_order",
    "flatten_tree",
    "summarize_tree",
    "get_testable_nodes",
]
