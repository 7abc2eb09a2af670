"""
Manual Subprocess Overrides

An externally maintained mapping from invocations to explicit targets,
consulted by the subprocess matcher before any automatic heuristic. It lets
an operator correct a bad automatic match without touching the algorithm.

Two input shapes are supported:

- a flat mapping ``{invocation id | name | calledElement: target}``
- the ``bpmn-map.json`` layout::

    {
      "orchestration": {"root_process": "mortgage"},
      "processes": [
        {
          "bpmn_file": "mortgage.bpmn",
          "process_id": "mortgage",
          "call_activities": [
            {"bpmn_id": "application", "subprocess_bpmn_file": "application.bpmn"}
          ]
        }
      ]
    }
"""

import json
import logging
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field

from bpmn_hierarchy.models.definitions import Invocation

logger = logging.getLogger(__name__)


def file_name_only(path_or_name: str) -> str:
    """Strip directories from a file reference."""
    return PurePosixPath(path_or_name.replace("\\", "/")).name or path_or_name


def _loose(value: Optional[str]) -> str:
    return (value or "").strip().casefold()


class OverrideEntry(BaseModel):
    """One manual mapping from an invocation to its target."""

    source_file: Optional[str] = Field(
        None, description="File owning the invocation; None applies to every file"
    )
    invocation_id: Optional[str] = Field(None, description="Invocation element id")
    invocation_name: Optional[str] = Field(None, description="Invocation label")
    called_element: Optional[str] = Field(None, description="Declared calledElement")
    target: str = Field(..., description="Target file name or process id")

    def matches(self, invocation: Invocation) -> bool:
        """Whether this entry applies to the given invocation."""
        if self.invocation_id:
            if self.invocation_id == invocation.id:
                return True
            if _loose(self.invocation_id) == _loose(invocation.id):
                return True
        if self.invocation_name and invocation.name:
            if _loose(self.invocation_name) == _loose(invocation.name):
                return True
        if self.called_element and invocation.called_element:
            if _loose(self.called_element) == _loose(invocation.called_element):
                return True
        if not self.called_element and self.invocation_id and invocation.called_element:
            # Entries keyed by id also catch invocations pointing at that id
            if _loose(self.invocation_id) == _loose(invocation.called_element):
                return True
        return False

    def applies_to_file(self, owning_file: Optional[str]) -> bool:
        if self.source_file is None:
            return True
        if owning_file is None:
            return False
        if self.source_file == owning_file:
            return True
        return file_name_only(self.source_file) == file_name_only(owning_file)


class OverrideMap(BaseModel):
    """Collection of manual overrides, consulted in declaration order."""

    entries: List[OverrideEntry] = Field(default_factory=list, description="Override entries")
    root_process: Optional[str] = Field(None, description="Preferred orchestration root")

    def lookup(
        self, invocation: Invocation, owning_file: Optional[str] = None
    ) -> Optional[OverrideEntry]:
        """
        Find the override for an invocation.

        File-specific entries win over global ones; within each group the
        first matching entry wins.
        """
        scoped = [e for e in self.entries if e.source_file is not None]
        for entry in scoped:
            if entry.applies_to_file(owning_file) and entry.matches(invocation):
                return entry
        for entry in self.entries:
            if entry.source_file is None and entry.matches(invocation):
                return entry
        return None

    def __len__(self) -> int:
        return len(self.entries)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> "OverrideMap":
        """Build from a flat ``{invocation key: target}`` mapping."""
        if not isinstance(mapping, Mapping):
            raise TypeError("Override mapping must be a mapping of invocation key to target")
        entries = []
        for key, target in mapping.items():
            if not key or not target:
                raise ValueError(f"Invalid override entry: {key!r} -> {target!r}")
            entries.append(
                OverrideEntry(
                    invocation_id=key,
                    invocation_name=key,
                    target=file_name_only(str(target)),
                )
            )
        return cls(entries=entries)

    @classmethod
    def from_bpmn_map(cls, raw: Any) -> "OverrideMap":
        """Build from the ``bpmn-map.json`` layout."""
        if not raw or not isinstance(raw, dict):
            raise ValueError("Invalid bpmn map: expected a JSON object")
        processes = raw.get("processes")
        if not isinstance(processes, list):
            raise ValueError("Invalid bpmn map: processes missing")

        entries: List[OverrideEntry] = []
        for process in processes:
            if not isinstance(process, dict):
                raise ValueError("Invalid bpmn map: process entries must be objects")
            source_file = process.get("bpmn_file")
            call_activities = process.get("call_activities")
            if not isinstance(call_activities, list):
                call_activities = []
            for call in call_activities:
                if not isinstance(call, dict):
                    raise ValueError("Invalid bpmn map: call activity entries must be objects")
                target = call.get("subprocess_bpmn_file")
                if not target:
                    # Entries without a target document the call only
                    continue
                entries.append(
                    OverrideEntry(
                        source_file=source_file,
                        invocation_id=call.get("bpmn_id"),
                        invocation_name=call.get("name"),
                        called_element=call.get("called_element"),
                        target=file_name_only(target),
                    )
                )

        orchestration = raw.get("orchestration") or {}
        root_process = orchestration.get("root_process") if isinstance(orchestration, dict) else None
        logger.debug(f"Loaded {len(entries)} override entries from bpmn map")
        return cls(entries=entries, root_process=root_process)


def load_override_map(path: Union[str, Path]) -> OverrideMap:
    """
    Load an override map from a JSON file.

    Accepts either the ``bpmn-map.json`` layout or a flat mapping.
    """
    data: Dict[str, Any] = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict) and "processes" in data:
        return OverrideMap.from_bpmn_map(data)
    return OverrideMap.from_mapping(data)


__all__ = [
    "OverrideEntry",
    "OverrideMap",
    "file_name_only",
    "load_override_map",
]
