"""
Tests for sequence-flow based ordering of a process's direct children.
"""

import pytest

from bpmn_hierarchy.core.config import OrderConfig
from bpmn_hierarchy.models import SequenceFlow
from bpmn_hierarchy.models.graph import OrderInfo
from bpmn_hierarchy.stages.sequence_order import (
    SequenceOrderResolver,
    calculate_visual_order,
    child_sort_key,
)


def flows(*pairs):
    return [SequenceFlow(source_ref=s, target_ref=t) for s, t in pairs]


@pytest.fixture
def resolver():
    return SequenceOrderResolver()


class TestLinearAndBranching:
    """Test the breadth-first order."""

    def test_linear_chain(self, resolver):
        """A -> B -> C gives strictly increasing order indexes."""
        order = resolver.resolve(flows(("A", "B"), ("B", "C")), ["A", "B", "C"])

        assert order["A"].order_index < order["B"].order_index < order["C"].order_index
        assert [order[c].depth for c in "ABC"] == [0, 1, 2]
        assert all(order[c].branch_id == "main" for c in "ABC")

    def test_branches_share_a_tier(self, resolver):
        """A -> B and A -> C put B and C on the same tier after A."""
        order = resolver.resolve(flows(("A", "B"), ("A", "C")), ["A", "B", "C"])

        assert order["B"].depth == order["C"].depth == 1
        assert order["A"].order_index < order["B"].order_index < order["C"].order_index
        assert order["B"].branch_id == "main"
        assert order["C"].branch_id == "main-branch-1"
        assert order["C"].scenario_path == ["main", "main-branch-1"]

    def test_tier_ties_follow_declaration_order(self, resolver):
        """Within a tier, declaration order wins over flow order."""
        order = resolver.resolve(flows(("A", "B"), ("A", "C")), ["A", "C", "B"])

        assert order["C"].order_index < order["B"].order_index
        assert order["B"].depth == order["C"].depth

    def test_parallel_entry_points(self, resolver):
        order = resolver.resolve(flows(("A", "B"), ("C", "D")), ["A", "B", "C", "D"])

        assert [order[c].order_index for c in "ACBD"] == [0, 1, 2, 3]
        assert order["A"].branch_id == "main"
        assert order["C"].branch_id == "entry-2"
        assert order["D"].branch_id == "entry-2"
        assert order["D"].depth == 1

    def test_self_loop_is_ignored(self, resolver):
        order = resolver.resolve(flows(("A", "A"), ("A", "B")), ["A", "B"])
        assert (order["A"].order_index, order["B"].order_index) == (0, 1)


class TestRestriction:
    """Test adjacency restricted to the supplied children."""

    def test_edges_through_other_elements_are_ignored(self, resolver):
        order = resolver.resolve(
            flows(("Start", "A"), ("A", "Gateway"), ("Gateway", "B")), ["A", "B"]
        )

        assert order["A"].depth == 0
        assert order["B"].depth == 0
        assert order["B"].branch_id == "entry-2"

    def test_bridging_connects_through_gateways(self):
        resolver = SequenceOrderResolver(OrderConfig(bridge_intermediate_elements=True))
        order = resolver.resolve(
            flows(("Start", "A"), ("A", "Gateway"), ("Gateway", "B"), ("Gateway", "C")),
            ["A", "B", "C"],
        )

        assert [order[c].order_index for c in "ABC"] == [0, 1, 2]
        assert order["B"].depth == order["C"].depth == 1
        assert order["C"].branch_id == "main-branch-1"


class TestUnreached:
    """Test the total-order fallback."""

    def test_disconnected_children_have_no_index(self, resolver):
        order = resolver.resolve(flows(("A", "B")), ["A", "B", "Z", "Y"])

        assert order["Z"].order_index is None
        assert order["Y"].order_index is None
        assert order["Z"].scenario_path == []

    def test_pure_cycle_has_no_start(self, resolver):
        order = resolver.resolve(flows(("A", "B"), ("B", "A")), ["A", "B"])
        assert order["A"].order_index is None and order["B"].order_index is None

    def test_every_child_gets_an_entry(self, resolver):
        order = resolver.resolve([], ["A", "B"])
        assert list(order) == ["A", "B"]

    def test_unreached_sort_last_by_name(self, resolver):
        names = {"A": "Start", "B": "Next", "Z": "zulu", "Y": "Yankee"}
        children = ["Z", "A", "Y", "B"]
        order = resolver.resolve(flows(("A", "B")), children)

        ordered = sorted(
            children,
            key=lambda c: child_sort_key(order[c], names[c], children.index(c)),
        )

        assert ordered == ["A", "B", "Y", "Z"]


class TestVisualOrder:
    """Test diagram coordinate ordering."""

    def test_left_to_right_then_top_to_bottom(self):
        visual = calculate_visual_order(
            [("a", 200.0, 0.0), ("b", 100.0, 50.0), ("c", None, None), ("d", 100.0, 10.0)]
        )
        assert visual == {"a": 2, "b": 1, "c": None, "d": 0}

    def test_child_sort_key_without_info(self):
        ordered = child_sort_key(OrderInfo(order_index=3), "x", 0)
        unordered = child_sort_key(None, "a", 1)
        assert ordered < unordered
