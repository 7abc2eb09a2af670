"""
Tests for the end-to-end hierarchy pipeline.
"""

import pytest

from bpmn_hierarchy import (
    HierarchyConfig,
    HierarchyPipeline,
    OverrideMap,
    ProcessDefinition,
    build_process_hierarchy,
)
from bpmn_hierarchy.models import DiagnosticCode
from bpmn_hierarchy.models.tree import TreeNodeKind


class TestPipeline:
    """Test graph and tree built together."""

    def test_two_file_scenario(self, definitions_json, fixed_time):
        definitions = [ProcessDefinition.model_validate(d) for d in definitions_json]

        result = build_process_hierarchy(definitions, generated_at=fixed_time)

        assert result.graph.roots == ["root"]
        assert result.tree.node_id == "root"
        assert result.tree.find("B").parent_id == "root:Call_B"
        assert result.diagnostics == []

    def test_cycle_diagnostics_are_collected(self, mutual_cycle):
        result = build_process_hierarchy(mutual_cycle)

        assert len(result.diagnostics_by_code(DiagnosticCode.NO_ROOT_DETECTED)) == 1
        assert len(result.diagnostics_by_code(DiagnosticCode.CYCLE_DETECTED)) == 1
        assert result.graph.cycles[0].process_ids == ["A", "B"]

    def test_cycle_reached_from_two_call_sites_is_reported_once(self, process_factory):
        definitions = [
            process_factory("root", calls=[("Call_A", "A"), ("Call_B", "B")]),
            process_factory("A", calls=[("Call_C", "C")]),
            process_factory("B", calls=[("Call_C", "C")]),
            process_factory("C", calls=[("Call_D", "D")]),
            process_factory("D", calls=[("Call_C", "C")]),
        ]

        result = build_process_hierarchy(definitions)

        cut = [n for n in result.tree.iter_nodes() if n.node_id == "D:Call_C"]
        assert len(cut) == 2
        assert all(n.diagnostics[0].code == DiagnosticCode.CYCLE_DETECTED for n in cut)
        cycles = result.diagnostics_by_code(DiagnosticCode.CYCLE_DETECTED)
        assert len(cycles) == 1
        assert cycles[0].context["cycle_path"] == ["C", "D", "C"]
        assert result.graph.roots == ["root"]
        assert result.graph.cycles[0].process_ids == ["C", "D"]

    def test_empty_input(self):
        result = build_process_hierarchy([])

        assert result.tree is None
        assert result.graph.roots == []
        assert result.diagnostics == []

    def test_overrides_and_explicit_root(self, process_factory):
        definitions = [
            process_factory("root", calls=[("Call_X", "X")]),
            process_factory("X", file_name="x.bpmn"),
            process_factory("Y", file_name="y.bpmn"),
        ]
        overrides = OverrideMap.from_mapping({"Call_X": "y.bpmn"})

        result = build_process_hierarchy(definitions, root_process_id="root", overrides=overrides)

        assert result.tree.children[0].link.matched_process_id == "Y"
        assert result.graph.roots == ["root", "X"]

    def test_config_drops_tasks(self, definitions_json):
        definitions = [ProcessDefinition.model_validate(d) for d in definitions_json]
        pipeline = HierarchyPipeline(HierarchyConfig(include_tasks=False))

        result = pipeline.run(definitions)

        assert all(node.kind != TreeNodeKind.TASK for node in result.tree.iter_nodes())

    def test_unknown_root_raises(self, root_and_sub):
        with pytest.raises(ValueError, match="Unknown root process"):
            build_process_hierarchy(root_and_sub, root_process_id="ghost")

    def test_serialization_is_repeatable(self, root_and_sub, fixed_time):
        first = build_process_hierarchy(root_and_sub, generated_at=fixed_time)
        second = build_process_hierarchy(root_and_sub, generated_at=fixed_time)

        assert first.model_dump_json() == second.model_dump_json()
