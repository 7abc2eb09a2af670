"""
Process Hierarchy Pipeline

Runs graph construction and tree expansion in one call and gathers every
diagnostic raised along the way into a single list for reporting layers.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Union

from pydantic import BaseModel, Field

from bpmn_hierarchy.core.config import HierarchyConfig
from bpmn_hierarchy.core.observability import LogLevel, Timer, log_execution, record_metric, span
from bpmn_hierarchy.models.definitions import ProcessDefinition
from bpmn_hierarchy.models.diagnostics import Diagnostic, DiagnosticCode, utc_now
from bpmn_hierarchy.models.graph import ProcessGraph
from bpmn_hierarchy.models.overrides import OverrideMap
from bpmn_hierarchy.models.tree import ProcessTreeNode
from bpmn_hierarchy.stages.process_graph_builder import ProcessGraphBuilder
from bpmn_hierarchy.stages.process_tree_builder import ProcessTreeBuilder, TreeBuildOptions

logger = logging.getLogger(__name__)


class ProcessHierarchyResult(BaseModel):
    """Graph, expanded tree and the global diagnostics list of one build."""

    graph: ProcessGraph = Field(..., description="Cross-file process graph")
    tree: Optional[ProcessTreeNode] = Field(None, description="Expanded tree, None without processes")
    diagnostics: List[Diagnostic] = Field(default_factory=list, description="All diagnostics")

    def diagnostics_by_code(self, code: Union[DiagnosticCode, str]) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.code == code]


class HierarchyPipeline:
    """
    Builds the process hierarchy for a set of parsed definitions.

    Example:
        pipeline = HierarchyPipeline(HierarchyConfig.from_env())
        result = pipeline.run(definitions, overrides=load_override_map("bpmn-map.json"))
    """

    def __init__(self, config: Optional[HierarchyConfig] = None):
        self.config = config or HierarchyConfig()
        self.graph_builder = ProcessGraphBuilder(self.config.matcher, self.config.order)
        self.tree_builder = ProcessTreeBuilder(
            TreeBuildOptions(include_tasks=self.config.include_tasks)
        )

    @log_execution(level=LogLevel.DEBUG)
    def run(
        self,
        definitions: List[ProcessDefinition],
        root_process_id: Optional[str] = None,
        preferred_root_hint: Optional[Union[str, Iterable[str]]] = None,
        overrides: Optional[OverrideMap] = None,
        generated_at: Optional[datetime] = None,
    ) -> ProcessHierarchyResult:
        """
        Build graph and tree.

        Args:
            definitions: Parsed process definitions
            root_process_id: Explicit tree root (internal id, declared id or file)
            preferred_root_hint: Processes to prefer when ordering graph roots
            overrides: Manual invocation mapping
            generated_at: Timestamp shared by every diagnostic of this build;
                the current UTC time when omitted

        Returns:
            ProcessHierarchyResult
        """
        generated_at = generated_at or utc_now()

        with span("hierarchy.build_graph", {"definitions": len(definitions or [])}):
            with Timer("hierarchy_graph"):
                graph = self.graph_builder.build(
                    definitions,
                    preferred_root_hint=preferred_root_hint,
                    overrides=overrides,
                    generated_at=generated_at,
                )

        tree = None
        if graph.processes:
            with span("hierarchy.build_tree", {"root": root_process_id or graph.roots[0]}):
                with Timer("hierarchy_tree"):
                    tree = self.tree_builder.build(graph, root_process_id)
        else:
            logger.warning("No process definitions supplied; skipping tree expansion")

        diagnostics = list(graph.diagnostics)
        if tree is not None:
            # A cyclic subprocess expanded at several call sites repeats its cut
            seen = set()
            for node in tree.iter_nodes():
                for diagnostic in node.diagnostics:
                    if diagnostic.code != DiagnosticCode.CYCLE_DETECTED:
                        continue
                    key = diagnostic.dedupe_key()
                    if key not in seen:
                        seen.add(key)
                        diagnostics.append(diagnostic)

        record_metric("hierarchy_processes_total", len(graph.processes))
        record_metric("hierarchy_diagnostics_total", len(diagnostics))
        return ProcessHierarchyResult(graph=graph, tree=tree, diagnostics=diagnostics)


def build_process_hierarchy(
    definitions: List[ProcessDefinition],
    config: Optional[HierarchyConfig] = None,
    root_process_id: Optional[str] = None,
    preferred_root_hint: Optional[Union[str, Iterable[str]]] = None,
    overrides: Optional[OverrideMap] = None,
    generated_at: Optional[datetime] = None,
) -> ProcessHierarchyResult:
    """Convenience wrapper around ``HierarchyPipeline.run``."""
    return HierarchyPipeline(config).run(
        definitions,
        root_process_id=root_process_id,
        preferred_root_hint=preferred_root_hint,
        overrides=overrides,
        generated_at=generated_at,
    )


__all__ = [
    "ProcessHierarchyResult",
    "HierarchyPipeline",
    "build_process_hierarchy",
]
