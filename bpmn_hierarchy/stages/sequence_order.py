"""
Stage 3: Sequence-Flow Ordering

Derives a deterministic execution order for the direct children of one
process from its sequence flows. Children are visited breadth first from the
start nodes (children without incoming edges); each tier is ordered by
declaration position. Children that are never reached get no order index
and sort last, alphabetically by display name.
"""

import logging
from collections import deque
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from bpmn_hierarchy.core.config import OrderConfig
from bpmn_hierarchy.models.definitions import SequenceFlow
from bpmn_hierarchy.models.graph import OrderInfo

logger = logging.getLogger(__name__)

MAIN_BRANCH = "main"


class SequenceOrderResolver:
    """Computes order hints for the direct children of a process."""

    def __init__(self, config: Optional[OrderConfig] = None):
        self.config = config or OrderConfig()

    def resolve(
        self,
        flows: Sequence[SequenceFlow],
        child_ids: Sequence[str],
    ) -> Dict[str, OrderInfo]:
        """
        Assign order hints to every child id.

        Args:
            flows: The process's sequence flows, in declaration order
            child_ids: Element ids of the direct children, in declaration order

        Returns:
            Mapping child id -> OrderInfo, one entry per child id
        """
        children = list(dict.fromkeys(child_ids))
        position = {child_id: index for index, child_id in enumerate(children)}

        adjacency = self._build_adjacency(flows, position)
        participants = self._participants(flows, position)

        indegree = {child_id: 0 for child_id in children}
        for successors in adjacency.values():
            for target in successors:
                indegree[target] += 1

        starts = [c for c in children if c in participants and indegree[c] == 0]
        result: Dict[str, OrderInfo] = {}
        next_index = 0

        frontier: List[str] = []
        for start_number, child_id in enumerate(starts):
            branch = MAIN_BRANCH if start_number == 0 else f"entry-{start_number + 1}"
            result[child_id] = OrderInfo(
                order_index=next_index, depth=0, branch_id=branch, scenario_path=[branch]
            )
            next_index += 1
            frontier.append(child_id)

        tier = 0
        while frontier:
            tier += 1
            discovered: List[Tuple[str, str, List[str]]] = []
            claimed = set()
            for node in frontier:
                parent = result[node]
                for k, successor in enumerate(adjacency.get(node, [])):
                    if successor in result or successor in claimed:
                        continue
                    claimed.add(successor)
                    if k == 0:
                        discovered.append((successor, parent.branch_id, list(parent.scenario_path)))
                    else:
                        branch = f"{parent.branch_id}-branch-{k}"
                        discovered.append(
                            (successor, branch, list(parent.scenario_path) + [branch])
                        )

            discovered.sort(key=lambda item: position[item[0]])
            frontier = []
            for child_id, branch, path in discovered:
                result[child_id] = OrderInfo(
                    order_index=next_index, depth=tier, branch_id=branch, scenario_path=path
                )
                next_index += 1
                frontier.append(child_id)

        unreached = [c for c in children if c not in result]
        if unreached:
            logger.debug(f"{len(unreached)} children not reachable through sequence flows")
        for child_id in unreached:
            result[child_id] = OrderInfo()

        return {child_id: result[child_id] for child_id in children}

    def _build_adjacency(
        self, flows: Sequence[SequenceFlow], position: Mapping[str, int]
    ) -> Dict[str, List[str]]:
        """Child -> successor children, in flow declaration order."""
        outgoing: Dict[str, List[str]] = {}
        for flow in flows:
            outgoing.setdefault(flow.source_ref, []).append(flow.target_ref)

        adjacency: Dict[str, List[str]] = {child_id: [] for child_id in position}
        for child_id in position:
            if self.config.bridge_intermediate_elements:
                successors = self._bridged_successors(child_id, outgoing, position)
            else:
                successors = [t for t in outgoing.get(child_id, []) if t in position]
            for target in successors:
                if target != child_id and target not in adjacency[child_id]:
                    adjacency[child_id].append(target)
        return adjacency

    @staticmethod
    def _bridged_successors(
        child_id: str, outgoing: Mapping[str, List[str]], position: Mapping[str, int]
    ) -> List[str]:
        """First children reachable from ``child_id`` through non-child elements."""
        found: List[str] = []
        seen = set()
        queue = deque(outgoing.get(child_id, []))
        while queue:
            element = queue.popleft()
            if element in seen:
                continue
            seen.add(element)
            if element in position:
                found.append(element)
                continue
            queue.extend(outgoing.get(element, []))
        return found

    @staticmethod
    def _participants(flows: Sequence[SequenceFlow], position: Mapping[str, int]) -> set:
        """Children mentioned by at least one sequence flow."""
        mentioned = set()
        for flow in flows:
            if flow.source_ref in position:
                mentioned.add(flow.source_ref)
            if flow.target_ref in position:
                mentioned.add(flow.target_ref)
        return mentioned


def calculate_visual_order(
    positions: Sequence[Tuple[str, Optional[float], Optional[float]]],
) -> Dict[str, Optional[int]]:
    """
    Order children by diagram position: left to right, then top to bottom.

    Args:
        positions: ``(child id, x, y)`` in declaration order

    Returns:
        Mapping child id -> visual order index, None for children without
        coordinates
    """
    placed = [
        (x, y if y is not None else 0.0, index, child_id)
        for index, (child_id, x, y) in enumerate(positions)
        if x is not None
    ]
    placed.sort()

    result: Dict[str, Optional[int]] = {child_id: None for child_id, _, _ in positions}
    for visual_index, (_, _, _, child_id) in enumerate(placed):
        result[child_id] = visual_index
    return result


def child_sort_key(
    info: Optional[OrderInfo], display_name: str, position: int
) -> Tuple[int, int, str, str, int]:
    """
    Sort key placing ordered children first, then unreached ones by name.

    Children without any order information are treated as unreached.
    """
    if info is None or info.order_index is None:
        return (1, 0, display_name.casefold(), display_name, position)
    return (0, info.order_index, "", "", position)


__all__ = [
    "MAIN_BRANCH",
    "SequenceOrderResolver",
    "calculate_visual_order",
    "child_sort_key",
]
