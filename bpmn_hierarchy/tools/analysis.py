"""
Hierarchy Analysis Tools

Read-only consumers of the graph and the expanded tree:
- Multi-file processing order (dependencies first)
- Tree flattening for documentation and timeline generators
- Testable node selection
- Hierarchy summary and diagnostics collection
"""

import heapq
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from bpmn_hierarchy.models.diagnostics import Diagnostic, Severity
from bpmn_hierarchy.models.graph import ProcessGraph
from bpmn_hierarchy.models.tree import ProcessTreeNode, TreeNodeKind
from bpmn_hierarchy.stages.process_graph_builder import strongly_connected_components

logger = logging.getLogger(__name__)

TESTABLE_TASK_TYPES = frozenset({"UserTask", "ServiceTask", "BusinessRuleTask"})

_SEVERITY_RANK = {Severity.ERROR: 0, Severity.WARNING: 1, Severity.INFO: 2}


@dataclass
class FlatTreeRow:
    """One tree node in pre-order, with its ancestry spelled out."""

    node_id: str
    kind: TreeNodeKind
    display_name: str
    depth: int
    path: List[str] = field(default_factory=list)  # display names from the root
    file_name: Optional[str] = None
    order_index: Optional[int] = None
    branch_id: Optional[str] = None
    diagnostic_codes: List[str] = field(default_factory=list)


@dataclass
class HierarchySummary:
    """Counts describing an expanded tree."""

    total_nodes: int
    nodes_by_kind: Dict[str, int] = field(default_factory=dict)
    files_included: List[str] = field(default_factory=list)
    hierarchy_depth: int = 0
    diagnostics_by_code: Dict[str, int] = field(default_factory=dict)


def file_dependencies(graph: ProcessGraph) -> Dict[str, Set[str]]:
    """File -> files it invokes through matched links (self-references excluded)."""
    dependencies: Dict[str, Set[str]] = {p.file_name: set() for p in graph.processes.values()}
    for node_id, link in graph.links.items():
        if not link.is_matched:
            continue
        node = graph.get_node(node_id)
        target = graph.processes.get(link.matched_process_id)
        if node is None or target is None or target.file_name == node.file_name:
            continue
        dependencies.setdefault(node.file_name, set()).add(target.file_name)
    return dependencies


def file_processing_order(graph: ProcessGraph) -> List[str]:
    """
    Order files so that invoked files come before the files invoking them.

    Files in a cycle are emitted together, alphabetically. Independent files
    are emitted alphabetically as well.
    """
    dependencies = file_dependencies(graph)
    files = sorted(dependencies)
    adjacency = {f: sorted(dependencies[f]) for f in files}
    components = [sorted(c) for c in strongly_connected_components(files, adjacency)]

    component_of = {f: index for index, comp in enumerate(components) for f in comp}
    waiting_on: Dict[int, Set[int]] = {index: set() for index in range(len(components))}
    dependents: Dict[int, Set[int]] = {index: set() for index in range(len(components))}
    for source, targets in dependencies.items():
        for target in targets:
            a, b = component_of[source], component_of[target]
            if a != b:
                waiting_on[a].add(b)
                dependents[b].add(a)

    ready: List[Tuple[str, int]] = [
        (components[i][0], i) for i, deps in waiting_on.items() if not deps
    ]
    heapq.heapify(ready)
    order: List[str] = []
    while ready:
        _, index = heapq.heappop(ready)
        order.extend(components[index])
        for dependent in sorted(dependents[index]):
            waiting_on[dependent].discard(index)
            if not waiting_on[dependent]:
                heapq.heappush(ready, (components[dependent][0], dependent))

    cyclic = [c for c in components if len(c) > 1]
    if cyclic:
        logger.info(f"{len(cyclic)} file cycles ordered alphabetically")
    return order


def flatten_tree(tree: ProcessTreeNode) -> List[FlatTreeRow]:
    """Pre-order rows for every node of the tree."""
    rows: List[FlatTreeRow] = []
    stack: List[Tuple[ProcessTreeNode, List[str]]] = [(tree, [])]
    while stack:
        node, ancestry = stack.pop()
        path = ancestry + [node.display_name]
        rows.append(
            FlatTreeRow(
                node_id=node.node_id,
                kind=node.kind,
                display_name=node.display_name,
                depth=node.depth,
                path=path,
                file_name=node.file_name,
                order_index=node.order_index,
                branch_id=node.branch_id,
                diagnostic_codes=[str(getattr(d.code, "value", d.code)) for d in node.diagnostics],
            )
        )
        for child in reversed(node.children):
            stack.append((child, path))
    return rows


def get_testable_nodes(tree: ProcessTreeNode) -> List[ProcessTreeNode]:
    """User, service and business rule tasks plus invocations, in pre-order."""
    return [
        node
        for node in tree.iter_nodes()
        if node.kind == TreeNodeKind.INVOCATION
        or (node.kind == TreeNodeKind.TASK and node.task_type in TESTABLE_TASK_TYPES)
    ]


def nodes_for_file(tree: ProcessTreeNode, file_name: str) -> List[ProcessTreeNode]:
    """Nodes parsed from the given file, in pre-order."""
    return [node for node in tree.iter_nodes() if node.file_name == file_name]


def summarize_tree(tree: ProcessTreeNode) -> HierarchySummary:
    """Counts by kind, included files and depth of an expanded tree."""
    kinds: Counter = Counter()
    codes: Counter = Counter()
    files: List[str] = []
    seen_files = set()
    total = 0

    for node in tree.iter_nodes():
        total += 1
        kinds[node.kind.value] += 1
        for diagnostic in node.diagnostics:
            codes[str(getattr(diagnostic.code, "value", diagnostic.code))] += 1
        if node.file_name and node.file_name not in seen_files:
            seen_files.add(node.file_name)
            files.append(node.file_name)

    return HierarchySummary(
        total_nodes=total,
        nodes_by_kind=dict(kinds),
        files_included=files,
        hierarchy_depth=tree.max_depth(),
        diagnostics_by_code=dict(codes),
    )


def collect_diagnostics(
    graph: ProcessGraph, tree: Optional[ProcessTreeNode] = None
) -> List[Diagnostic]:
    """
    Every distinct diagnostic of a build, most severe first.

    The same entry attached to several tree nodes (a shared subprocess
    expanded at several call sites) is reported once.
    """
    collected: List[Diagnostic] = []
    seen = set()

    def add(diagnostic: Diagnostic) -> None:
        key = diagnostic.dedupe_key()
        if key not in seen:
            seen.add(key)
            collected.append(diagnostic)

    for diagnostic in graph.diagnostics:
        add(diagnostic)
    if tree is not None:
        for node in tree.iter_nodes():
            for diagnostic in node.diagnostics:
                add(diagnostic)

    # Stable sort keeps discovery order within a severity
    collected.sort(key=lambda d: _SEVERITY_RANK.get(d.severity, 3))
    return collected


__all__ = [
    "TESTABLE_TASK_TYPES",
    "FlatTreeRow",
    "HierarchySummary",
    "file_dependencies",
    "file_processing_order",
    "flatten_tree",
    "get_testable_nodes",
    "nodes_for_file",
    "summarize_tree",
    "collect_diagnostics",
]
