"""
Test suite for process tree expansion.

Tests cover:
- Expansion of matched invocations into the invoked subtree
- Per-call-site duplication of shared subprocesses
- Path-based cycle cutting
- Root resolution and options
- Deep chains without recursion limits
"""

import json

import pytest

from bpmn_hierarchy.models import Diagnostic, DiagnosticCode, ProcessDefinition, Severity
from bpmn_hierarchy.models.graph import GraphEdgeKind, GraphNodeKind, ProcessGraph
from bpmn_hierarchy.models.graph import ProcessGraphEdge, ProcessGraphNode
from bpmn_hierarchy.models.tree import TreeNodeKind
from bpmn_hierarchy.stages.process_graph_builder import build_process_graph
from bpmn_hierarchy.stages.process_tree_builder import (
    ProcessTreeBuilder,
    TreeBuildOptions,
    build_process_tree,
)


def codes(node):
    return [d.code for d in node.diagnostics]


def count_nodes(tree, node_id):
    return sum(1 for node in tree.iter_nodes() if node.node_id == node_id)


class TestExpansion:
    """Test basic subtree expansion."""

    def test_matched_invocation_is_expanded(self, root_and_sub, fixed_time):
        graph = build_process_graph(root_and_sub, generated_at=fixed_time)
        tree = build_process_tree(graph)

        assert tree.node_id == "root"
        assert tree.kind == TreeNodeKind.PROCESS
        assert tree.display_name == "Root"
        assert tree.depth == 0

        invocation = tree.children[0]
        assert invocation.node_id == "root:Call_B"
        assert invocation.kind == TreeNodeKind.INVOCATION
        assert invocation.display_name == "Call B"
        assert invocation.depth == 1
        assert invocation.link.matched_process_id == "B"

        subprocess = invocation.children[0]
        assert subprocess.node_id == "B"
        assert subprocess.parent_id == "root:Call_B"
        assert subprocess.file_name == "sub.bpmn"
        assert subprocess.depth == 2

    def test_unresolved_invocation_is_a_leaf(self, missing_reference):
        tree = build_process_tree(build_process_graph(missing_reference))

        invocation = tree.children[0]
        assert invocation.children == []
        assert codes(invocation) == [DiagnosticCode.NO_MATCH]

    def test_children_follow_sequence_flow(self, definitions_json):
        definitions = [ProcessDefinition.model_validate(d) for d in definitions_json]
        tree = build_process_tree(build_process_graph(definitions))

        assert tree.display_name == "Root Process"
        assert [c.node_id for c in tree.children] == ["root:Task_1", "root:Call_B"]
        task, invocation = tree.children
        assert task.kind == TreeNodeKind.TASK
        assert task.task_type == "UserTask"
        assert (task.order_index, invocation.order_index) == (0, 1)
        assert invocation.branch_id == "main"
        assert invocation.children[0].children[0].display_name == "Review"

    def test_tasks_can_be_excluded(self, definitions_json):
        definitions = [ProcessDefinition.model_validate(d) for d in definitions_json]
        graph = build_process_graph(definitions)

        tree = ProcessTreeBuilder(TreeBuildOptions(include_tasks=False)).build(graph)

        kinds = {node.kind for node in tree.iter_nodes()}
        assert TreeNodeKind.TASK not in kinds
        assert [c.node_id for c in tree.children] == ["root:Call_B"]

    def test_parse_diagnostics_reach_the_tree(self):
        warning = Diagnostic(
            severity=Severity.WARNING, code="MISSING_DIAGRAM", message="No diagram section"
        )
        graph = build_process_graph(
            [ProcessDefinition(id="p", file_name="p.bpmn", parse_diagnostics=[warning])]
        )
        tree = build_process_tree(graph)

        assert graph.diagnostics == [warning]
        assert codes(tree) == ["MISSING_DIAGRAM"]


class TestSharedSubprocesses:
    """Test that reuse is not mistaken for a cycle."""

    def test_diamond_is_expanded_per_call_site(self, process_factory):
        graph = build_process_graph(
            [
                process_factory("root", calls=[("Call_A", "A"), ("Call_B", "B")]),
                process_factory("A", calls=[("Call_S", "shared")]),
                process_factory("B", calls=[("Call_S", "shared")]),
                process_factory("shared", tasks=[("T", "UserTask")]),
            ]
        )
        tree = build_process_tree(graph)

        assert count_nodes(tree, "shared") == 2
        assert count_nodes(tree, "shared:T") == 2
        assert all(
            DiagnosticCode.CYCLE_DETECTED not in codes(node) for node in tree.iter_nodes()
        )
        assert graph.cycles == []

    def test_same_process_invoked_twice_from_one_parent(self, process_factory):
        graph = build_process_graph(
            [
                process_factory("root", calls=[("First", "S"), ("Second", "S")]),
                process_factory("S"),
            ]
        )
        tree = build_process_tree(graph)

        assert [c.children[0].parent_id for c in tree.children] == ["root:First", "root:Second"]


class TestCycles:
    """Test path-based cycle cutting."""

    def test_mutual_cycle_is_cut_once(self, mutual_cycle, fixed_time):
        graph = build_process_graph(mutual_cycle, generated_at=fixed_time)
        tree = build_process_tree(graph)

        back_edge = tree.find("B:Call_A")
        assert back_edge is not None
        assert back_edge.children == []
        assert codes(back_edge) == [DiagnosticCode.CYCLE_DETECTED]

        diagnostic = back_edge.diagnostics[0]
        assert diagnostic.severity == Severity.ERROR
        assert diagnostic.timestamp == fixed_time
        assert diagnostic.context["process_id"] == "B"
        assert diagnostic.context["target_process_id"] == "A"
        assert diagnostic.context["invocation_id"] == "Call_A"
        assert diagnostic.context["cycle_path"] == ["A", "B", "A"]

        assert count_nodes(tree, "A") == 1
        assert count_nodes(tree, "B") == 1

    def test_cycle_from_explicit_root(self, mutual_cycle):
        tree = build_process_tree(build_process_graph(mutual_cycle), root_process_id="B")

        assert tree.node_id == "B"
        assert codes(tree.find("A:Call_B")) == [DiagnosticCode.CYCLE_DETECTED]


class TestRootResolution:
    """Test root selection and contract errors."""

    def test_root_by_file_name(self, root_and_sub):
        tree = build_process_tree(build_process_graph(root_and_sub), root_process_id="sub.bpmn")

        assert tree.node_id == "B"
        assert tree.parent_id is None
        assert tree.depth == 0

    def test_unknown_root(self, root_and_sub):
        graph = build_process_graph(root_and_sub)
        with pytest.raises(ValueError, match="Unknown root process"):
            build_process_tree(graph, root_process_id="nowhere")

    def test_empty_graph(self):
        with pytest.raises(ValueError):
            build_process_tree(build_process_graph([]))

    def test_not_a_graph(self):
        with pytest.raises(TypeError):
            build_process_tree({"roots": []})


class TestRobustness:
    """Test structural edge cases."""

    def test_dangling_containment_edge_is_skipped(self):
        graph = ProcessGraph(
            nodes={
                "p": ProcessGraphNode(
                    id="p",
                    kind=GraphNodeKind.PROCESS,
                    file_name="p.bpmn",
                    element_id="p",
                    process_id="p",
                )
            },
            edges={
                "contains:p->p:ghost": ProcessGraphEdge(
                    id="contains:p->p:ghost",
                    kind=GraphEdgeKind.CONTAINMENT,
                    source_id="p",
                    target_id="p:ghost",
                )
            },
            roots=["p"],
        )

        tree = build_process_tree(graph)

        assert tree.node_id == "p"
        assert tree.children == []

    def test_dangling_link_target_is_skipped(self, root_and_sub):
        graph = build_process_graph(root_and_sub)
        del graph.nodes["B"]

        tree = build_process_tree(graph)

        assert tree.children[0].node_id == "root:Call_B"
        assert tree.children[0].children == []

    def test_deep_chain(self, chain_factory):
        graph = build_process_graph(chain_factory(1000))
        tree = build_process_tree(graph)

        assert tree.node_id == "p0"
        assert tree.max_depth() == 1999
        assert tree.find("p999").depth == 1998

    def test_deep_chain_with_back_edge(self, chain_factory):
        graph = build_process_graph(chain_factory(1000, close_loop=True))
        tree = build_process_tree(graph)

        assert graph.roots == ["p0"]
        assert tree.max_depth() == 2000
        cut = [n for n in tree.iter_nodes() if DiagnosticCode.CYCLE_DETECTED in codes(n)]
        assert [n.node_id for n in cut] == ["p999:Call_0"]

    def test_repeated_builds_are_equal(self, mutual_cycle, fixed_time):
        graph = build_process_graph(mutual_cycle, generated_at=fixed_time)
        assert build_process_tree(graph).model_dump() == build_process_tree(graph).model_dump()


class TestFlatRecords:
    """Test non-recursive serialization and comparison."""

    def test_records_link_children_to_parents(self, definitions_json):
        definitions = [ProcessDefinition.model_validate(d) for d in definitions_json]
        records = build_process_tree(build_process_graph(definitions)).to_records()

        assert [r["node_id"] for r in records] == [
            "root",
            "root:Task_1",
            "root:Call_B",
            "B",
            "B:Task_2",
        ]
        assert [r["parent_index"] for r in records] == [None, 0, 0, 2, 3]
        assert [r["index"] for r in records] == [0, 1, 2, 3, 4]
        assert "children" not in records[0]
        assert records[2]["link"]["match_status"] == "matched"

    def test_deep_chain_serializes(self, chain_factory, fixed_time):
        graph = build_process_graph(chain_factory(1000, close_loop=True), generated_at=fixed_time)
        records = build_process_tree(graph).to_records()

        assert len(records) == 2000
        assert records[-1]["node_id"] == "p999:Call_0"
        assert records[-1]["diagnostics"][0]["code"] == "CYCLE_DETECTED"
        assert json.loads(json.dumps(records))[-1]["depth"] == 1999

    def test_deep_trees_compare_without_recursion(self, chain_factory, fixed_time):
        graph = build_process_graph(chain_factory(1000), generated_at=fixed_time)

        first = build_process_tree(graph)
        second = build_process_tree(graph)

        assert first == second
        assert first != build_process_tree(graph, root_process_id="p1")
