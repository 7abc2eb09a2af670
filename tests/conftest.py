"""Pytest configuration for bpmn-hierarchy tests."""

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

# Add the project root to the path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

from bpmn_hierarchy.models import Invocation, ProcessDefinition, SequenceFlow, Task  # noqa: E402

FIXED_TIME = datetime(2024, 5, 17, 9, 30, tzinfo=timezone.utc)


def make_process(
    process_id: Optional[str],
    file_name: Optional[str] = None,
    name: Optional[str] = None,
    calls: Sequence[Tuple[str, Optional[str]]] = (),
    tasks: Sequence[Tuple[str, str]] = (),
    flows: Sequence[Tuple[str, str]] = (),
    **extra,
) -> ProcessDefinition:
    """
    Build a ProcessDefinition from compact tuples.

    ``calls`` are ``(invocation id, called element)``, ``tasks`` are
    ``(task id, task type)`` and ``flows`` are ``(source, target)``.
    """
    return ProcessDefinition(
        id=process_id,
        name=name,
        file_name=file_name or f"{process_id}.bpmn",
        invocations=[Invocation(id=i, called_element=c) for i, c in calls],
        tasks=[Task(id=t, type=kind) for t, kind in tasks],
        sequence_flows=[SequenceFlow(source_ref=s, target_ref=t) for s, t in flows],
        **extra,
    )


def make_chain(length: int, close_loop: bool = False) -> List[ProcessDefinition]:
    """Processes p0..pN where each invokes the next one."""
    definitions = []
    for index in range(length):
        calls: List[Tuple[str, Optional[str]]] = []
        if index + 1 < length:
            calls.append((f"Call_{index + 1}", f"p{index + 1}"))
        elif close_loop:
            calls.append(("Call_0", "p0"))
        definitions.append(make_process(f"p{index}", calls=calls))
    return definitions


# ===========================
# Fixtures
# ===========================


@pytest.fixture
def fixed_time() -> datetime:
    """Timestamp shared by every diagnostic of a test build."""
    return FIXED_TIME


@pytest.fixture
def process_factory():
    """Factory for compact ProcessDefinition construction."""
    return make_process


@pytest.fixture
def chain_factory():
    """Factory for linear invocation chains."""
    return make_chain


@pytest.fixture
def root_and_sub() -> List[ProcessDefinition]:
    """Two files: ``root`` invokes ``B`` (defined in sub.bpmn)."""
    return [
        make_process("root", file_name="root.bpmn", calls=[("Call_B", "B")]),
        make_process("B", file_name="sub.bpmn"),
    ]


@pytest.fixture
def missing_reference() -> List[ProcessDefinition]:
    """One process invoking a target that exists nowhere."""
    return [make_process("root", file_name="root.bpmn", calls=[("Call_Missing", "Missing")])]


@pytest.fixture
def mutual_cycle() -> List[ProcessDefinition]:
    """A invokes B and B invokes A."""
    return [
        make_process("A", calls=[("Call_B", "B")]),
        make_process("B", calls=[("Call_A", "A")]),
    ]


@pytest.fixture
def definitions_json() -> List[Dict]:
    """Parser output as camelCase JSON, as consumed by the CLI."""
    return [
        {
            "id": "root",
            "name": "Root Process",
            "fileName": "root.bpmn",
            "invocations": [{"id": "Call_B", "name": "Call B", "calledElement": "B"}],
            "tasks": [{"id": "Task_1", "name": "Prepare", "type": "UserTask"}],
            "sequenceFlows": [{"id": "Flow_1", "sourceRef": "Task_1", "targetRef": "Call_B"}],
        },
        {
            "id": "B",
            "name": "Sub Process",
            "fileName": "sub.bpmn",
            "tasks": [{"id": "Task_2", "name": "Review", "type": "ServiceTask"}],
        },
    ]
