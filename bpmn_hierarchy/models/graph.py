"""
Cross-File Process Graph

Defines the graph representation built across all parsed process files:
an arena of nodes addressed by stable string ids, containment and
invocation-target edges, inferred roots, detected cycles and unresolved
references.

The graph keeps exactly one canonical node per process; the expanded tree
(see ``bpmn_hierarchy.models.tree``) is a separate structure.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from bpmn_hierarchy.models.definitions import NormalizedProcessDefinition
from bpmn_hierarchy.models.diagnostics import Diagnostic, Severity, utc_now
from bpmn_hierarchy.models.overrides import file_name_only

_EXTENSION = re.compile(r"\.(bpmn|xml)$", re.IGNORECASE)
_SEPARATORS = re.compile(r"[-_\s]+")


def humanize_identifier(value: Optional[str]) -> str:
    """``"mortgage-household.bpmn"`` -> ``"Mortgage Household"``; empty for empty input."""
    if not value or not value.strip():
        return ""
    base = _EXTENSION.sub("", file_name_only(value.strip()))
    words = [w for w in _SEPARATORS.split(base) if w]
    if not words:
        return value.strip()
    return " ".join(w[:1].upper() + w[1:] for w in words)


class GraphNodeKind(str, Enum):
    """Types of nodes in the process graph."""

    PROCESS = "process"
    TASK = "task"
    INVOCATION = "invocation"


class GraphEdgeKind(str, Enum):
    """Types of edges in the process graph."""

    CONTAINMENT = "containment"  # Process -> its direct children
    INVOCATION_TARGET = "invocation-target"  # Invocation node -> matched process


class MatchStatus(str, Enum):
    """Outcome of resolving an invocation's target."""

    MATCHED = "matched"
    AMBIGUOUS = "ambiguous"
    LOW_CONFIDENCE = "lowConfidence"
    UNRESOLVED = "unresolved"


class MatchSource(str, Enum):
    """Which rule produced the verdict."""

    OVERRIDE = "override"
    CALLED_ELEMENT_ID = "called-element-id"
    NAME = "name"
    FILE_NAME = "file-name"
    FUZZY = "fuzzy"
    NONE = "none"


class MatchCandidate(BaseModel):
    """A process considered while resolving an invocation."""

    internal_id: str = Field(..., description="Registry id of the candidate process")
    process_id: Optional[str] = Field(None, description="Declared process id")
    name: Optional[str] = Field(None, description="Declared process name")
    file_name: str = Field(..., description="File of the candidate")
    score: float = Field(..., ge=0.0, le=1.0, description="Match score (0-1)")
    reason: str = Field(..., description="Why the candidate was considered")


class SubprocessLink(BaseModel):
    """Resolution outcome for one invocation."""

    invocation_id: str = Field(..., description="Invocation element id")
    invocation_name: Optional[str] = Field(None, description="Invocation label")
    called_element: Optional[str] = Field(None, description="Declared target reference")

    match_status: MatchStatus = Field(..., description="Verdict")
    match_source: MatchSource = Field(default=MatchSource.NONE, description="Deciding rule")
    matched_process_id: Optional[str] = Field(
        None, description="Internal id of the target, only when matched"
    )
    matched_file_name: Optional[str] = Field(None, description="File of the target")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="Confidence (0-1)")

    candidates: List[MatchCandidate] = Field(
        default_factory=list, description="Candidates considered, best first"
    )
    diagnostics: List[Diagnostic] = Field(default_factory=list, description="Matcher findings")

    @property
    def is_matched(self) -> bool:
        return self.match_status == MatchStatus.MATCHED and self.matched_process_id is not None


class ProcessGraphNode(BaseModel):
    """Node in the process graph."""

    id: str = Field(..., description="Unique node identifier")
    kind: GraphNodeKind = Field(..., description="Node kind")
    name: Optional[str] = Field(None, description="Declared label")
    file_name: str = Field(..., description="File the element was parsed from")
    element_id: str = Field(..., description="Element id inside its file")
    process_id: str = Field(..., description="Internal id of the owning (or own) process")

    task_type: Optional[str] = Field(None, description="BPMN task type for task nodes")
    called_element: Optional[str] = Field(None, description="Declared target for invocations")
    ordinal: int = Field(
        default=0, ge=0, description="Declaration index among siblings of the same kind"
    )
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Additional metadata")

    @property
    def display_name(self) -> str:
        """
        Label for rendering.

        The declared name wins. Processes fall back to their humanized
        declared id, then file name; elements to their humanized element id.
        """
        if self.name and self.name.strip():
            return self.name.strip()
        if self.kind == GraphNodeKind.PROCESS:
            declared = self.metadata.get("declared_id")
            return (
                humanize_identifier(declared) or humanize_identifier(self.file_name) or "Process"
            )
        return humanize_identifier(self.element_id) or self.element_id


class ProcessGraphEdge(BaseModel):
    """Edge in the process graph."""

    id: str = Field(..., description="Unique edge identifier")
    kind: GraphEdgeKind = Field(..., description="Edge kind")
    source_id: str = Field(..., description="Source node ID")
    target_id: str = Field(..., description="Target node ID")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Additional metadata")


class CycleInfo(BaseModel):
    """A strongly connected group of processes invoking each other."""

    process_ids: List[str] = Field(..., description="Participating process internal ids")
    severity: Severity = Field(default=Severity.WARNING, description="Severity")
    message: str = Field(default="Subprocess cycle detected", description="Description")


class MissingDependency(BaseModel):
    """An invocation whose target could not be resolved cleanly."""

    process_id: str = Field(..., description="Internal id of the owning process")
    file_name: str = Field(..., description="File of the owning process")
    invocation_id: str = Field(..., description="Invocation element id")
    invocation_name: Optional[str] = Field(None, description="Invocation label")
    attempted_target: Optional[str] = Field(None, description="Reference that was tried")
    match_status: MatchStatus = Field(..., description="Verdict of the matcher")


class OrderInfo(BaseModel):
    """Execution-order hints for one direct child of a process."""

    order_index: Optional[int] = Field(None, description="Sequence-flow order, None if unreached")
    depth: Optional[int] = Field(None, description="Breadth-first tier, None if unreached")
    branch_id: Optional[str] = Field(None, description="Branch label")
    scenario_path: List[str] = Field(default_factory=list, description="Branch labels to here")
    visual_order_index: Optional[int] = Field(None, description="Diagram position order")


class ProcessGraph(BaseModel):
    """Complete cross-file process graph with optimized indexing."""

    nodes: Dict[str, ProcessGraphNode] = Field(default_factory=dict, description="All nodes")
    edges: Dict[str, ProcessGraphEdge] = Field(default_factory=dict, description="All edges")

    roots: List[str] = Field(default_factory=list, description="Root process internal ids")
    cycles: List[CycleInfo] = Field(default_factory=list, description="Detected cycles")
    missing_dependencies: List[MissingDependency] = Field(
        default_factory=list, description="Invocations that failed to resolve"
    )

    processes: Dict[str, NormalizedProcessDefinition] = Field(
        default_factory=dict, description="Normalized registry, in input order"
    )
    links: Dict[str, SubprocessLink] = Field(
        default_factory=dict, description="Links keyed by invocation node id"
    )
    indegree: Dict[str, int] = Field(
        default_factory=dict, description="Matched invocations targeting each process"
    )
    execution_order: Dict[str, Dict[str, OrderInfo]] = Field(
        default_factory=dict, description="Process internal id -> child node id -> order"
    )
    diagnostics: List[Diagnostic] = Field(default_factory=list, description="Global diagnostics")
    generated_at: datetime = Field(default_factory=utc_now, description="Build timestamp")

    # Internal indexes for O(1) lookups (not serialized)
    _outgoing_edges: Dict[str, List[ProcessGraphEdge]] = {}
    _incoming_edges: Dict[str, List[ProcessGraphEdge]] = {}

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __init__(self, **data):
        """Initialize graph and build indexes."""
        super().__init__(**data)
        self._build_indexes()

    def _build_indexes(self) -> None:
        """Build internal indexes for O(1) lookups."""
        self._outgoing_edges = {}
        self._incoming_edges = {}

        for edge in self.edges.values():
            self._outgoing_edges.setdefault(edge.source_id, []).append(edge)
            self._incoming_edges.setdefault(edge.target_id, []).append(edge)

    # Helper methods
    def get_node(self, node_id: str) -> Optional[ProcessGraphNode]:
        """Get node by ID - O(1) lookup."""
        return self.nodes.get(node_id)

    def get_edge(self, edge_id: str) -> Optional[ProcessGraphEdge]:
        """Get edge by ID - O(1) lookup."""
        return self.edges.get(edge_id)

    def get_outgoing_edges(
        self, node_id: str, kind: Optional[GraphEdgeKind] = None
    ) -> List[ProcessGraphEdge]:
        """Get edges leaving this node, optionally filtered by kind."""
        edges = self._outgoing_edges.get(node_id, [])
        if kind is None:
            return list(edges)
        return [e for e in edges if e.kind == kind]

    def get_incoming_edges(
        self, node_id: str, kind: Optional[GraphEdgeKind] = None
    ) -> List[ProcessGraphEdge]:
        """Get edges targeting this node, optionally filtered by kind."""
        edges = self._incoming_edges.get(node_id, [])
        if kind is None:
            return list(edges)
        return [e for e in edges if e.kind == kind]

    def get_children(self, process_id: str) -> List[ProcessGraphNode]:
        """
        Direct children of a process in declaration order.

        Containment edges pointing at unknown node ids are skipped.
        """
        children = []
        for edge in self.get_outgoing_edges(process_id, GraphEdgeKind.CONTAINMENT):
            node = self.nodes.get(edge.target_id)
            if node is not None:
                children.append(node)
        return children

    def get_invocation_target(self, invocation_node_id: str) -> Optional[str]:
        """Internal id of the process an invocation node resolves to, if any."""
        for edge in self.get_outgoing_edges(invocation_node_id, GraphEdgeKind.INVOCATION_TARGET):
            return edge.target_id
        return None

    def get_link(self, invocation_node_id: str) -> Optional[SubprocessLink]:
        return self.links.get(invocation_node_id)

    def get_process_nodes(self) -> List[ProcessGraphNode]:
        """Process nodes in registry order."""
        return [self.nodes[pid] for pid in self.processes if pid in self.nodes]

    def resolve_process_id(self, reference: str) -> Optional[str]:
        """
        Resolve a caller-supplied process reference to an internal id.

        Accepts an internal id, a declared process id or a file name; the
        first process in registry order wins.
        """
        if reference in self.processes:
            return reference
        for internal_id, proc in self.processes.items():
            if proc.id == reference:
                return internal_id
        target_file = file_name_only(reference)
        for internal_id, proc in self.processes.items():
            if proc.file_name == reference or file_name_only(proc.file_name) == target_file:
                return internal_id
        return None


__all__ = [
    "humanize_identifier",
    "GraphNodeKind",
    "GraphEdgeKind",
    "MatchStatus",
    "MatchSource",
    "MatchCandidate",
    "SubprocessLink",
    "ProcessGraphNode",
    "ProcessGraphEdge",
    "CycleInfo",
    "MissingDependency",
    "OrderInfo",
    "ProcessGraph",
]
