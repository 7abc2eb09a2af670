"""
Data models for the process hierarchy engine.
"""

from bpmn_hierarchy.models.definitions import (
    Invocation,
    NormalizedProcessDefinition,
    ProcessDefinition,
    SequenceFlow,
    Task,
)
from bpmn_hierarchy.models.diagnostics import Diagnostic, DiagnosticCode, Severity
from bpmn_hierarchy.models.graph import (
    CycleInfo,
    GraphEdgeKind,
    GraphNodeKind,
    MatchCandidate,
    MatchSource,
    MatchStatus,
    MissingDependency,
    OrderInfo,
    ProcessGraph,
    ProcessGraphEdge,
    ProcessGraphNode,
    SubprocessLink,
    humanize_identifier,
)
from bpmn_hierarchy.models.overrides import OverrideEntry, OverrideMap, load_override_map
from bpmn_hierarchy.models.tree import ProcessTreeNode, TreeNodeKind

__all__ = [
    # Inputs
    "Task",
    "Invocation",
    "SequenceFlow",
    "ProcessDefinition",
    "NormalizedProcessDefinition",
    # Diagnostics
    "Severity",
    "DiagnosticCode",
    "Diagnostic",
    # Graph
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
    "humanize_identifier",
    # Tree
    "TreeNodeKind",
    "ProcessTreeNode",
    # Overrides
    "OverrideEntry",
    "OverrideMap",
    "load_override_map",
]
