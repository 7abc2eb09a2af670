"""
Expanded Process Tree

The hierarchical view consumed by documentation, test and timeline
generators. A process invoked from several call sites appears once per call
site; the graph keeps only one definition.
"""

from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field

from bpmn_hierarchy.models.diagnostics import Diagnostic
from bpmn_hierarchy.models.graph import SubprocessLink


class TreeNodeKind(str, Enum):
    """Types of nodes in the process tree."""

    PROCESS = "process"
    INVOCATION = "invocation"
    TASK = "task"


class ProcessTreeNode(BaseModel):
    """Node in the expanded process tree."""

    node_id: str = Field(..., description="Graph node id this tree node was built from")
    kind: TreeNodeKind = Field(..., description="Node kind")
    display_name: str = Field(..., description="Label for rendering")
    parent_id: Optional[str] = Field(None, description="Parent node id, for debugging only")
    children: List["ProcessTreeNode"] = Field(default_factory=list, description="Ordered children")

    # Source location
    process_id: Optional[str] = Field(None, description="Internal id of the owning process")
    element_id: Optional[str] = Field(None, description="Element id inside its file")
    file_name: Optional[str] = Field(None, description="File the element was parsed from")
    task_type: Optional[str] = Field(None, description="BPMN task type for task nodes")

    link: Optional[SubprocessLink] = Field(None, description="Resolution for invocation nodes")
    diagnostics: List[Diagnostic] = Field(default_factory=list, description="Attached findings")

    # Execution ordering hints
    order_index: Optional[int] = Field(None, description="Sequence-flow order among siblings")
    visual_order_index: Optional[int] = Field(None, description="Diagram order among siblings")
    branch_id: Optional[str] = Field(None, description="Branch label")
    scenario_path: List[str] = Field(default_factory=list, description="Branch labels to here")
    depth: int = Field(default=0, ge=0, description="Distance from the tree root")

    def iter_nodes(self) -> Iterator["ProcessTreeNode"]:
        """Pre-order traversal without recursion."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def find(self, node_id: str) -> Optional["ProcessTreeNode"]:
        """First node (pre-order) with the given node id."""
        for node in self.iter_nodes():
            if node.node_id == node_id:
                return node
        return None

    def max_depth(self) -> int:
        """Number of levels, including this node."""
        return 1 + max(node.depth - self.depth for node in self.iter_nodes())

    def to_records(self) -> List[Dict[str, Any]]:
        """
        Flat, JSON-ready rows in pre-order.

        Each row holds the node's own fields plus ``index`` (pre-order
        position) and ``parent_index`` (None for this node). Children are
        referenced through ``parent_index`` instead of nesting, so trees
        thousands of levels deep serialize without recursion.
        """
        records: List[Dict[str, Any]] = []
        stack: List[Tuple["ProcessTreeNode", Optional[int]]] = [(self, None)]
        while stack:
            node, parent_index = stack.pop()
            record = node.model_dump(mode="json", exclude={"children"})
            record["index"] = len(records)
            record["parent_index"] = parent_index
            records.append(record)
            stack.extend((child, record["index"]) for child in reversed(node.children))
        return records

    def __eq__(self, other: object) -> bool:
        # Field-wise comparison would recurse once per tree level
        if not isinstance(other, ProcessTreeNode):
            return NotImplemented
        return self.to_records() == other.to_records()


ProcessTreeNode.model_rebuild()


__all__ = [
    "TreeNodeKind",
    "ProcessTreeNode",
]
