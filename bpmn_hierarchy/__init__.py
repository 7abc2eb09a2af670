"""
BPMN Hierarchy: Multi-file Process Graph and Hierarchy Resolution

Resolves sub-process invocations across independently authored BPMN files
into a unified dependency graph, and expands that graph into an ordered,
diagnosed process tree.
"""

# Core components
from bpmn_hierarchy.core.config import HierarchyConfig, MatcherConfig, OrderConfig
from bpmn_hierarchy.core.observability import ObservabilityConfig, ObservabilityManager

# Pipeline stages
from bpmn_hierarchy.stages import (
    ProcessGraphBuilder,
    ProcessTreeBuilder,
    SequenceOrderResolver,
    SubprocessMatcher,
    TreeBuildOptions,
    build_process_graph,
    build_process_tree,
    normalize_definitions,
)
from bpmn_hierarchy.pipeline import (
    HierarchyPipeline,
    ProcessHierarchyResult,
    build_process_hierarchy,
)

# Models
from bpmn_hierarchy.models import (
    Diagnostic,
    DiagnosticCode,
    Invocation,
    MatchStatus,
    NormalizedProcessDefinition,
    OverrideMap,
    ProcessDefinition,
    ProcessGraph,
    ProcessTreeNode,
    SequenceFlow,
    Severity,
    SubprocessLink,
    Task,
    load_override_map,
)

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Core
    "HierarchyConfig",
    "MatcherConfig",
    "OrderConfig",
    "ObservabilityManager",
    "ObservabilityConfig",
    # Stages
    "normalize_definitions",
    "SubprocessMatcher",
    "SequenceOrderResolver",
    "ProcessGraphBuilder",
    "build_process_graph",
    "ProcessTreeBuilder",
    "TreeBuildOptions",
    "build_process_tree",
    # Pipeline
    "HierarchyPipeline",
    "ProcessHierarchyResult",
    "build_process_hierarchy",
    # Models
    "Task",
    "Invocation",
    "SequenceFlow",
    "ProcessDefinition",
    "NormalizedProcessDefinition",
    "Diagnostic",
    "DiagnosticCode",
    "Severity",
    "MatchStatus",
    "SubprocessLink",
    "ProcessGraph",
    "ProcessTreeNode",
    "OverrideMap",
    "load_override_map",
]
