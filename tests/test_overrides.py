"""
Tests for manual subprocess overrides.
"""

import json

import pytest

from bpmn_hierarchy.models import Invocation, OverrideMap
from bpmn_hierarchy.models.overrides import OverrideEntry, file_name_only, load_override_map

BPMN_MAP = {
    "orchestration": {"root_process": "mortgage"},
    "processes": [
        {
            "bpmn_file": "mortgage.bpmn",
            "process_id": "mortgage",
            "call_activities": [
                {"bpmn_id": "application", "subprocess_bpmn_file": "processes/application.bpmn"},
                {"bpmn_id": "documentation", "name": "Documentation"},
            ],
        },
        {"bpmn_file": "application.bpmn", "call_activities": None},
    ],
}


class TestFlatMapping:
    """Test the {invocation key: target} shape."""

    def test_targets_are_reduced_to_file_names(self):
        overrides = OverrideMap.from_mapping({"Call_B": "dir/other.bpmn"})

        assert len(overrides) == 1
        assert overrides.entries[0].target == "other.bpmn"
        assert overrides.entries[0].source_file is None

    def test_key_matches_id_or_name(self):
        overrides = OverrideMap.from_mapping({"Household": "household.bpmn"})

        assert overrides.lookup(Invocation(id="household")) is not None
        assert overrides.lookup(Invocation(id="Call_7", name="household ")) is not None
        assert overrides.lookup(Invocation(id="Call_7", called_element="HOUSEHOLD")) is not None
        assert overrides.lookup(Invocation(id="Call_8", name="Other")) is None

    def test_blank_entries_are_rejected(self):
        with pytest.raises(ValueError, match="Invalid override entry"):
            OverrideMap.from_mapping({"Call_B": ""})

    def test_non_mapping_is_rejected(self):
        with pytest.raises(TypeError):
            OverrideMap.from_mapping(["Call_B", "sub.bpmn"])


class TestBpmnMap:
    """Test the bpmn-map.json layout."""

    def test_entries_and_root(self):
        overrides = OverrideMap.from_bpmn_map(BPMN_MAP)

        assert overrides.root_process == "mortgage"
        assert len(overrides) == 1
        entry = overrides.entries[0]
        assert entry.source_file == "mortgage.bpmn"
        assert entry.invocation_id == "application"
        assert entry.target == "application.bpmn"

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            [],
            {"orchestration": {}},
            {"processes": "x"},
            {"processes": [{"bpmn_file": "root.bpmn", "call_activities": ["oops"]}]},
        ],
    )
    def test_invalid_layouts(self, raw):
        with pytest.raises(ValueError, match="Invalid bpmn map"):
            OverrideMap.from_bpmn_map(raw)

    def test_scalar_call_activity_is_rejected(self):
        raw = {"processes": [{"bpmn_file": "root.bpmn", "call_activities": ["Call_B", 3]}]}

        with pytest.raises(ValueError, match="call activity entries must be objects"):
            OverrideMap.from_bpmn_map(raw)

    def test_scoped_entries_win_over_global_ones(self):
        overrides = OverrideMap(
            entries=[
                OverrideEntry(invocation_id="Call_B", target="global.bpmn"),
                OverrideEntry(source_file="root.bpmn", invocation_id="Call_B", target="scoped.bpmn"),
            ]
        )
        invocation = Invocation(id="Call_B")

        assert overrides.lookup(invocation, "models/root.bpmn").target == "scoped.bpmn"
        assert overrides.lookup(invocation, "other.bpmn").target == "global.bpmn"
        assert overrides.lookup(invocation).target == "global.bpmn"


class TestLoading:
    """Test reading override files from disk."""

    def test_load_bpmn_map(self, tmp_path):
        path = tmp_path / "bpmn-map.json"
        path.write_text(json.dumps(BPMN_MAP), encoding="utf-8")

        overrides = load_override_map(path)

        assert overrides.root_process == "mortgage"
        assert overrides.entries[0].target == "application.bpmn"

    def test_load_flat_mapping(self, tmp_path):
        path = tmp_path / "overrides.json"
        path.write_text(json.dumps({"Call_B": "sub.bpmn"}), encoding="utf-8")

        overrides = load_override_map(str(path))

        assert overrides.entries[0].invocation_id == "Call_B"
        assert overrides.root_process is None


class TestFileNameOnly:
    """Test directory stripping."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("sub.bpmn", "sub.bpmn"),
            ("a/b/sub.bpmn", "sub.bpmn"),
            ("C:\\models\\sub.bpmn", "sub.bpmn"),
        ],
    )
    def test_strips_directories(self, value, expected):
        assert file_name_only(value) == expected
