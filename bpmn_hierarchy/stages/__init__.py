"""
Process Hierarchy Stages

Implements the resolution pipeline, leaves first:
1. Registry Normalization: Assign registry-unique process ids
2. Subprocess Matching: Resolve each invocation to a target process
3. Sequence-Flow Ordering: Order each process's direct children
4. Graph Construction: Build the cross-file process graph
5. Tree Expansion: Expand the graph into a per-call-site tree
"""

from bpmn_hierarchy.stages.registry import base_id_for, normalize_definitions

from bpmn_hierarchy.stages.subprocess_matcher import (
    SubprocessMatcher,
    match_subprocess,
    normalize_reference,
)

from bpmn_hierarchy.stages.sequence_order import (
    SequenceOrderResolver,
    calculate_visual_order,
    child_sort_key,
)

from bpmn_hierarchy.stages.process_graph_builder import (
    ProcessGraphBuilder,
    build_process_graph,
    element_node_id,
    strongly_connected_components,
)

from bpmn_hierarchy.stages.process_tree_builder import (
    ProcessTreeBuilder,
    TreeBuildOptions,
    build_process_tree,
)

__all__ = [
    # Registry
    "base_id_for",
    "normalize_definitions",
    # Matching
    "SubprocessMatcher",
    "match_subprocess",
    "normalize_reference",
    # Ordering
    "SequenceOrderResolver",
    "calculate_visual_order",
    "child_sort_key",
    # Graph
    "ProcessGraphBuilder",
    "build_process_graph",
    "element_node_id",
    "strongly_connected_components",
    # Tree
    "ProcessTreeBuilder",
    "TreeBuildOptions",
    "build_process_tree",
]
