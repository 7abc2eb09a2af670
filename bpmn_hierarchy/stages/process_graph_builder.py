"""
Stage 4: Process Graph Construction

Combines the normalized registry and the subprocess matcher into one
directed graph across all files:

- one process node per normalized definition, plus a node per task and per
  invocation, joined to their process by containment edges
- an invocation-target edge for every matched invocation
- indegree over matched links, root inference and the missing dependencies
- strongly connected groups of processes, reported as cycles
- execution order hints for every process's direct children

Data-quality problems never raise; they become diagnostics and annotations
on the graph. Only caller contract violations raise.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set, Union

from bpmn_hierarchy.core.config import MatcherConfig, OrderConfig
from bpmn_hierarchy.models.definitions import NormalizedProcessDefinition, ProcessDefinition
from bpmn_hierarchy.models.diagnostics import Diagnostic, DiagnosticCode, Severity, utc_now
from bpmn_hierarchy.models.graph import (
    CycleInfo,
    GraphEdgeKind,
    GraphNodeKind,
    MatchStatus,
    MissingDependency,
    OrderInfo,
    ProcessGraph,
    ProcessGraphEdge,
    ProcessGraphNode,
    SubprocessLink,
)
from bpmn_hierarchy.models.overrides import OverrideMap, file_name_only
from bpmn_hierarchy.stages.registry import normalize_definitions
from bpmn_hierarchy.stages.sequence_order import SequenceOrderResolver, calculate_visual_order
from bpmn_hierarchy.stages.subprocess_matcher import SubprocessMatcher

logger = logging.getLogger(__name__)


def element_node_id(process_internal_id: str, element_id: str) -> str:
    """Node id of a task or invocation inside a process."""
    return f"{process_internal_id}:{element_id}"


def strongly_connected_components(
    nodes: Sequence[str], adjacency: Dict[str, List[str]]
) -> List[List[str]]:
    """
    Tarjan's algorithm with an explicit work stack.

    Components are returned in completion order, members in pop order.
    """
    counter = 0
    indices: Dict[str, int] = {}
    lowlink: Dict[str, int] = {}
    on_stack: Set[str] = set()
    stack: List[str] = []
    components: List[List[str]] = []

    def visit(node: str) -> None:
        nonlocal counter
        indices[node] = lowlink[node] = counter
        counter += 1
        stack.append(node)
        on_stack.add(node)

    for root in nodes:
        if root in indices:
            continue
        visit(root)
        work = [(root, iter(adjacency.get(root, [])))]

        while work:
            node, successors = work[-1]
            descended = False
            for successor in successors:
                if successor not in indices:
                    visit(successor)
                    work.append((successor, iter(adjacency.get(successor, []))))
                    descended = True
                    break
                if successor in on_stack:
                    lowlink[node] = min(lowlink[node], indices[successor])
            if descended:
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])

            if lowlink[node] == indices[node]:
                component = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                components.append(component)

    return components


class ProcessGraphBuilder:
    """
    Builds the cross-file ProcessGraph.

    Example:
        builder = ProcessGraphBuilder(MatcherConfig())
        graph = builder.build(definitions, preferred_root_hint=["mortgage.bpmn"])
        print(graph.roots, graph.missing_dependencies)
    """

    def __init__(
        self,
        matcher_config: Optional[MatcherConfig] = None,
        order_config: Optional[OrderConfig] = None,
    ):
        self.matcher_config = matcher_config or MatcherConfig()
        self.order_config = order_config or OrderConfig()
        self.matcher = SubprocessMatcher(self.matcher_config)
        self.order_resolver = SequenceOrderResolver(self.order_config)

    def build(
        self,
        definitions: List[ProcessDefinition],
        preferred_root_hint: Optional[Union[str, Iterable[str]]] = None,
        overrides: Optional[OverrideMap] = None,
        generated_at: Optional[datetime] = None,
    ) -> ProcessGraph:
        """
        Build the graph for a set of parsed process definitions.

        Args:
            definitions: Parsed processes, one per definition, in input order
            preferred_root_hint: Declared ids, internal ids or file names of
                processes to prefer as roots
            overrides: Manual invocation mapping consulted before matching
            generated_at: Timestamp stamped on the graph and its diagnostics.
                Defaults to the current UTC time, taken once per build; pass
                a fixed value to make repeated builds identical

        Returns:
            The complete ProcessGraph

        Raises:
            TypeError: If definitions is None or holds non-ProcessDefinition items
        """
        if definitions is None:
            raise TypeError("definitions must not be None")
        if overrides is not None and not isinstance(overrides, OverrideMap):
            raise TypeError("overrides must be an OverrideMap")

        generated_at = generated_at or utc_now()
        registry = normalize_definitions(definitions)
        hints = self._collect_hints(preferred_root_hint, overrides)

        logger.info(f"Building process graph from {len(registry)} process definitions")

        nodes: Dict[str, ProcessGraphNode] = {}
        edges: Dict[str, ProcessGraphEdge] = {}
        links: Dict[str, SubprocessLink] = {}
        diagnostics: List[Diagnostic] = []
        missing: List[MissingDependency] = []
        indegree: Dict[str, int] = {internal_id: 0 for internal_id in registry}
        invokes: Dict[str, List[str]] = {internal_id: [] for internal_id in registry}

        # Nodes and containment
        children_by_process: Dict[str, List[ProcessGraphNode]] = {}
        for internal_id, process in registry.items():
            nodes[internal_id] = self._process_node(process)
            diagnostics.extend(process.parse_diagnostics)
            children_by_process[internal_id] = self._add_children(process, nodes, edges)

        # Matching
        for internal_id, process in registry.items():
            candidates = [p for p in registry.values() if p.internal_id != internal_id]
            for invocation_node in children_by_process[internal_id]:
                if invocation_node.kind != GraphNodeKind.INVOCATION:
                    continue
                invocation = process.invocations[invocation_node.ordinal]
                link = self.matcher.match(
                    invocation,
                    candidates,
                    overrides=overrides,
                    owning_file=process.file_name,
                    timestamp=generated_at,
                )
                links[invocation_node.id] = link
                invocation_node.metadata["match_status"] = link.match_status.value
                diagnostics.extend(link.diagnostics)

                if link.is_matched:
                    target_id = link.matched_process_id
                    indegree[target_id] += 1
                    if target_id not in invokes[internal_id]:
                        invokes[internal_id].append(target_id)
                    edge_id = f"invokes:{invocation_node.id}->{target_id}"
                    edges[edge_id] = ProcessGraphEdge(
                        id=edge_id,
                        kind=GraphEdgeKind.INVOCATION_TARGET,
                        source_id=invocation_node.id,
                        target_id=target_id,
                        metadata={
                            "confidence": link.confidence,
                            "match_source": link.match_source.value,
                        },
                    )
                else:
                    missing.append(
                        MissingDependency(
                            process_id=internal_id,
                            file_name=process.file_name,
                            invocation_id=invocation.id,
                            invocation_name=invocation.name,
                            attempted_target=(invocation.called_element or invocation.name),
                            match_status=link.match_status,
                        )
                    )

        roots = self._select_roots(registry, nodes, indegree, hints)
        if registry and not roots:
            fallback = next(iter(registry))
            roots = [fallback]
            logger.warning(f"No process without incoming invocations; falling back to {fallback}")
            diagnostics.append(
                Diagnostic.create(
                    Severity.WARNING,
                    DiagnosticCode.NO_ROOT_DETECTED,
                    f"Every process is invoked by another one; using '{fallback}' as root",
                    {"process_id": fallback, "file_name": registry[fallback].file_name},
                    generated_at,
                )
            )

        cycles = self._detect_cycles(registry, invokes)
        execution_order = {
            internal_id: self._execution_order(registry[internal_id], children)
            for internal_id, children in children_by_process.items()
        }

        matched_count = sum(1 for link in links.values() if link.is_matched)
        logger.info(
            f"Process graph built: {len(registry)} processes, {len(nodes)} nodes, "
            f"{matched_count}/{len(links)} invocations matched, {len(roots)} roots, "
            f"{len(cycles)} cycles"
        )
        if missing:
            logger.warning(f"{len(missing)} invocations could not be resolved cleanly")

        return ProcessGraph(
            nodes=nodes,
            edges=edges,
            roots=roots,
            cycles=cycles,
            missing_dependencies=missing,
            processes=registry,
            links=links,
            indegree=indegree,
            execution_order=execution_order,
            diagnostics=diagnostics,
            generated_at=generated_at,
        )

    # ===========================
    # Nodes
    # ===========================

    @staticmethod
    def _process_node(process: NormalizedProcessDefinition) -> ProcessGraphNode:
        return ProcessGraphNode(
            id=process.internal_id,
            kind=GraphNodeKind.PROCESS,
            name=process.name,
            file_name=process.file_name,
            element_id=process.id or process.internal_id,
            process_id=process.internal_id,
            ordinal=process.ordinal,
            metadata={"declared_id": process.id} if process.id else {},
        )

    @staticmethod
    def _add_children(
        process: NormalizedProcessDefinition,
        nodes: Dict[str, ProcessGraphNode],
        edges: Dict[str, ProcessGraphEdge],
    ) -> List[ProcessGraphNode]:
        """Create invocation and task nodes with their containment edges."""
        children: List[ProcessGraphNode] = []
        elements = [(GraphNodeKind.INVOCATION, i, inv) for i, inv in enumerate(process.invocations)]
        elements += [(GraphNodeKind.TASK, i, task) for i, task in enumerate(process.tasks)]

        for kind, ordinal, element in elements:
            node_id = element_node_id(process.internal_id, element.id)
            suffix = 2
            while node_id in nodes:
                # Duplicate element ids inside one file
                node_id = element_node_id(process.internal_id, f"{element.id}__{suffix}")
                suffix += 1

            metadata = {}
            if element.x is not None:
                metadata["x"] = element.x
            if element.y is not None:
                metadata["y"] = element.y

            node = ProcessGraphNode(
                id=node_id,
                kind=kind,
                name=element.name,
                file_name=process.file_name,
                element_id=element.id,
                process_id=process.internal_id,
                task_type=element.type if kind == GraphNodeKind.TASK else None,
                called_element=element.called_element if kind == GraphNodeKind.INVOCATION else None,
                ordinal=ordinal,
                metadata=metadata,
            )
            nodes[node_id] = node
            children.append(node)

            edge_id = f"contains:{process.internal_id}->{node_id}"
            edges[edge_id] = ProcessGraphEdge(
                id=edge_id,
                kind=GraphEdgeKind.CONTAINMENT,
                source_id=process.internal_id,
                target_id=node_id,
                metadata={"position": len(children) - 1},
            )
        return children

    # ===========================
    # Roots and cycles
    # ===========================

    @staticmethod
    def _collect_hints(
        preferred_root_hint: Optional[Union[str, Iterable[str]]],
        overrides: Optional[OverrideMap],
    ) -> List[str]:
        if preferred_root_hint is None:
            hints: List[str] = []
        elif isinstance(preferred_root_hint, str):
            hints = [preferred_root_hint]
        else:
            hints = [h for h in preferred_root_hint if isinstance(h, str)]
        if overrides is not None and overrides.root_process:
            hints.append(overrides.root_process)
        return [h.strip() for h in hints if h and h.strip()]

    @staticmethod
    def _is_hinted(process: NormalizedProcessDefinition, hints: List[str]) -> bool:
        for hint in hints:
            if hint in (process.internal_id, process.id, process.file_name):
                return True
            if file_name_only(process.file_name) == file_name_only(hint):
                return True
        return False

    def _select_roots(
        self,
        registry: Dict[str, NormalizedProcessDefinition],
        nodes: Dict[str, ProcessGraphNode],
        indegree: Dict[str, int],
        hints: List[str],
    ) -> List[str]:
        """Zero-indegree processes: hinted first, then by display name."""
        candidates = [internal_id for internal_id in registry if indegree[internal_id] == 0]

        def root_key(internal_id: str):
            display = nodes[internal_id].display_name
            preferred = self._is_hinted(registry[internal_id], hints)
            return (0 if preferred else 1, display.casefold(), display, registry[internal_id].ordinal)

        return sorted(candidates, key=root_key)

    @staticmethod
    def _detect_cycles(
        registry: Dict[str, NormalizedProcessDefinition], invokes: Dict[str, List[str]]
    ) -> List[CycleInfo]:
        cycles = []
        for component in strongly_connected_components(list(registry), invokes):
            if len(component) < 2:
                continue
            members = sorted(component, key=lambda pid: registry[pid].ordinal)
            cycles.append(
                CycleInfo(
                    process_ids=members,
                    severity=Severity.WARNING,
                    message=f"Processes invoke each other: {' -> '.join(members)}",
                )
            )
            logger.warning(f"Subprocess cycle between {', '.join(members)}")
        cycles.sort(key=lambda c: registry[c.process_ids[0]].ordinal)
        return cycles

    # ===========================
    # Ordering
    # ===========================

    def _execution_order(
        self, process: NormalizedProcessDefinition, children: List[ProcessGraphNode]
    ) -> Dict[str, OrderInfo]:
        by_element = self.order_resolver.resolve(
            process.sequence_flows, [child.element_id for child in children]
        )
        visual = calculate_visual_order(
            [(child.id, child.metadata.get("x"), child.metadata.get("y")) for child in children]
        )

        order: Dict[str, OrderInfo] = {}
        for child in children:
            info = by_element.get(child.element_id, OrderInfo())
            order[child.id] = info.model_copy(
                update={"visual_order_index": visual.get(child.id)}, deep=True
            )
        return order


def build_process_graph(
    definitions: List[ProcessDefinition],
    matcher_config: Optional[MatcherConfig] = None,
    preferred_root_hint: Optional[Union[str, Iterable[str]]] = None,
    overrides: Optional[OverrideMap] = None,
    order_config: Optional[OrderConfig] = None,
    generated_at: Optional[datetime] = None,
) -> ProcessGraph:
    """
    Functional form of ``ProcessGraphBuilder.build``.

    Without ``generated_at`` the graph is stamped with the current UTC time,
    so only builds given the same timestamp compare equal.
    """
    builder = ProcessGraphBuilder(matcher_config, order_config)
    return builder.build(
        definitions,
        preferred_root_hint=preferred_root_hint,
        overrides=overrides,
        generated_at=generated_at,
    )


__all__ = [
    "ProcessGraphBuilder",
    "build_process_graph",
    "element_node_id",
    "strongly_connected_components",
]
