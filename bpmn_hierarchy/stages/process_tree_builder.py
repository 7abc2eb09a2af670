"""
Stage 5: Process Tree Expansion

Walks the process graph from one root and replaces every matched invocation
by the invoked process's own subtree. A process invoked from several call
sites is expanded once per call site; the cycle guard is the list of
processes on the current root-to-node path, never a global visited set.

Expansion uses an explicit work stack, so arbitrarily deep invocation chains
do not depend on the interpreter's recursion limit.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from bpmn_hierarchy.models.diagnostics import Diagnostic, DiagnosticCode, Severity
from bpmn_hierarchy.models.graph import GraphNodeKind, OrderInfo, ProcessGraph, ProcessGraphNode
from bpmn_hierarchy.models.tree import ProcessTreeNode, TreeNodeKind
from bpmn_hierarchy.stages.sequence_order import child_sort_key

logger = logging.getLogger(__name__)


class TreeBuildOptions(BaseModel):
    """Options for tree expansion."""

    include_tasks: bool = Field(default=True, description="Emit task nodes")


@dataclass
class _Draft:
    """A tree node whose children are still being expanded."""

    fields: Dict[str, Any]
    children: List["_Draft"] = field(default_factory=list)
    built: Optional[ProcessTreeNode] = None


class ProcessTreeBuilder:
    """
    Expands a ProcessGraph into a ProcessTreeNode hierarchy.

    Example:
        tree = ProcessTreeBuilder().build(graph)
        for node in tree.iter_nodes():
            print("  " * node.depth + node.display_name)
    """

    def __init__(self, options: Optional[TreeBuildOptions] = None):
        self.options = options or TreeBuildOptions()

    def build(
        self,
        graph: ProcessGraph,
        root_process_id: Optional[str] = None,
        options: Optional[TreeBuildOptions] = None,
    ) -> ProcessTreeNode:
        """
        Build the expanded tree.

        Args:
            graph: Graph produced by ProcessGraphBuilder
            root_process_id: Internal id, declared id or file name of the
                root process; defaults to the first graph root
            options: Overrides the builder's options for this call

        Returns:
            The root ProcessTreeNode

        Raises:
            TypeError: If graph is not a ProcessGraph
            ValueError: If the root cannot be resolved
        """
        if not isinstance(graph, ProcessGraph):
            raise TypeError("graph must be a ProcessGraph")
        options = options or self.options

        root_id = self._resolve_root(graph, root_process_id)
        drafts: List[_Draft] = []

        root = self._process_draft(graph, root_id, parent_id=None, depth=0)
        drafts.append(root)
        # (draft, process internal id, processes on the path including this one)
        stack: List[Tuple[_Draft, str, Tuple[str, ...]]] = [(root, root_id, (root_id,))]
        cycle_count = 0

        while stack:
            process_draft, process_id, ancestors = stack.pop()
            depth = process_draft.fields["depth"] + 1

            for child in self._ordered_children(graph, process_id, options):
                child_draft = self._element_draft(graph, child, process_id, depth)
                process_draft.children.append(child_draft)
                drafts.append(child_draft)

                if child.kind != GraphNodeKind.INVOCATION:
                    continue
                link = graph.get_link(child.id)
                if link is None or not link.is_matched:
                    continue

                target_id = link.matched_process_id
                if target_id not in graph.nodes:
                    logger.debug(f"Skipping dangling invocation target {target_id}")
                    continue

                if target_id in ancestors:
                    cycle_count += 1
                    child_draft.fields["diagnostics"].append(
                        self._cycle_diagnostic(graph, child, process_id, target_id, ancestors)
                    )
                    continue

                target_draft = self._process_draft(graph, target_id, child.id, depth + 1)
                child_draft.children.append(target_draft)
                drafts.append(target_draft)
                stack.append((target_draft, target_id, ancestors + (target_id,)))

        # Children are always drafted after their parent
        for draft in reversed(drafts):
            draft.built = ProcessTreeNode(
                **draft.fields, children=[c.built for c in draft.children]
            )

        logger.info(
            f"Built process tree from '{root_id}': {len(drafts)} nodes, "
            f"{cycle_count} cycles cut"
        )
        return root.built

    @staticmethod
    def _resolve_root(graph: ProcessGraph, root_process_id: Optional[str]) -> str:
        if root_process_id is not None:
            resolved = graph.resolve_process_id(root_process_id)
            if resolved is None or resolved not in graph.nodes:
                raise ValueError(f"Unknown root process: {root_process_id!r}")
            return resolved
        for candidate in graph.roots:
            if candidate in graph.nodes:
                return candidate
        raise ValueError("Graph has no root process to build a tree from")

    @staticmethod
    def _ordered_children(
        graph: ProcessGraph, process_id: str, options: TreeBuildOptions
    ) -> List[ProcessGraphNode]:
        children = graph.get_children(process_id)
        if not options.include_tasks:
            children = [c for c in children if c.kind != GraphNodeKind.TASK]
        order = graph.execution_order.get(process_id, {})
        positions = {child.id: index for index, child in enumerate(children)}
        return sorted(
            children,
            key=lambda c: child_sort_key(order.get(c.id), c.display_name, positions[c.id]),
        )

    @staticmethod
    def _process_draft(
        graph: ProcessGraph, process_id: str, parent_id: Optional[str], depth: int
    ) -> _Draft:
        node = graph.nodes[process_id]
        definition = graph.processes.get(process_id)
        parse_diagnostics = list(definition.parse_diagnostics) if definition else []
        return _Draft(
            fields={
                "node_id": node.id,
                "kind": TreeNodeKind.PROCESS,
                "display_name": node.display_name,
                "parent_id": parent_id,
                "process_id": process_id,
                "element_id": definition.id if definition else node.element_id,
                "file_name": node.file_name,
                "diagnostics": parse_diagnostics,
                "depth": depth,
            }
        )

    @staticmethod
    def _element_draft(
        graph: ProcessGraph, node: ProcessGraphNode, process_id: str, depth: int
    ) -> _Draft:
        info = graph.execution_order.get(process_id, {}).get(node.id) or OrderInfo()
        link = graph.get_link(node.id) if node.kind == GraphNodeKind.INVOCATION else None
        return _Draft(
            fields={
                "node_id": node.id,
                "kind": (
                    TreeNodeKind.INVOCATION
                    if node.kind == GraphNodeKind.INVOCATION
                    else TreeNodeKind.TASK
                ),
                "display_name": node.display_name,
                "parent_id": process_id,
                "process_id": process_id,
                "element_id": node.element_id,
                "file_name": node.file_name,
                "task_type": node.task_type,
                "link": link,
                "diagnostics": list(link.diagnostics) if link else [],
                "order_index": info.order_index,
                "visual_order_index": info.visual_order_index,
                "branch_id": info.branch_id,
                "scenario_path": list(info.scenario_path),
                "depth": depth,
            }
        )

    @staticmethod
    def _cycle_diagnostic(
        graph: ProcessGraph,
        invocation: ProcessGraphNode,
        process_id: str,
        target_id: str,
        ancestors: Tuple[str, ...],
    ) -> Diagnostic:
        path = list(ancestors[ancestors.index(target_id) :]) + [target_id]
        logger.debug(f"Cycle cut at {invocation.id}: {' -> '.join(path)}")
        return Diagnostic.create(
            Severity.ERROR,
            DiagnosticCode.CYCLE_DETECTED,
            f"Process '{process_id}' invokes '{target_id}' through '{invocation.element_id}', "
            f"but '{target_id}' is already expanded on this path",
            {
                "process_id": process_id,
                "target_process_id": target_id,
                "invocation_id": invocation.element_id,
                "file_name": invocation.file_name,
                "cycle_path": path,
            },
            graph.generated_at,
        )


def build_process_tree(
    graph: ProcessGraph,
    root_process_id: Optional[str] = None,
    options: Optional[TreeBuildOptions] = None,
) -> ProcessTreeNode:
    """Functional form of ``ProcessTreeBuilder.build``."""
    return ProcessTreeBuilder(options).build(graph, root_process_id)


__all__ = [
    "TreeBuildOptions",
    "ProcessTreeBuilder",
    "build_process_tree",
]
