"""
Process Definition Input Schemas

Defines the parsed-process shapes consumed by the hierarchy engine. They are
produced by an external BPMN/XML parser; field aliases accept the camelCase
keys that parser emits (``fileName``, ``calledElement``, ``sourceRef``...).
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from bpmn_hierarchy.models.diagnostics import Diagnostic


class _ParserModel(BaseModel):
    """Base for models read from parser output."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Task(_ParserModel):
    """A leaf activity inside a process."""

    id: str = Field(..., description="Element id, local to the owning process")
    name: Optional[str] = Field(None, description="Task label")
    type: str = Field(default="Task", description="BPMN task type, e.g. UserTask")

    # Diagram interchange position
    x: Optional[float] = Field(None, description="X coordinate of the shape")
    y: Optional[float] = Field(None, description="Y coordinate of the shape")


class Invocation(_ParserModel):
    """A sub-process call (call activity) referencing another process."""

    id: str = Field(..., description="Element id, local to the owning process")
    name: Optional[str] = Field(None, description="Call activity label")
    called_element: Optional[str] = Field(
        None, description="Declared target reference (process id, name, or absent)"
    )

    x: Optional[float] = Field(None, description="X coordinate of the shape")
    y: Optional[float] = Field(None, description="Y coordinate of the shape")


class SequenceFlow(_ParserModel):
    """Intra-process control-flow edge."""

    id: Optional[str] = Field(None, description="Sequence flow id")
    source_ref: str = Field(..., description="Source element id")
    target_ref: str = Field(..., description="Target element id")
    condition: Optional[str] = Field(None, description="Condition expression, if any")


class ProcessDefinition(_ParserModel):
    """One parsed process from one file."""

    id: Optional[str] = Field(None, description="Declared process id (may repeat across files)")
    name: Optional[str] = Field(None, description="Declared process name")
    file_name: str = Field(..., description="File the process was parsed from")

    invocations: List[Invocation] = Field(default_factory=list, description="Sub-process calls")
    tasks: List[Task] = Field(default_factory=list, description="Leaf activities")
    sequence_flows: List[SequenceFlow] = Field(
        default_factory=list, description="Raw control-flow edges"
    )
    parse_diagnostics: List[Diagnostic] = Field(
        default_factory=list, description="Diagnostics raised by the parser"
    )


class NormalizedProcessDefinition(ProcessDefinition):
    """A process definition with a registry-unique internal id."""

    internal_id: str = Field(..., description="Globally unique id within one build")
    ordinal: int = Field(..., ge=0, description="Position in the original input list")


__all__ = [
    "Task",
    "Invocation",
    "SequenceFlow",
    "ProcessDefinition",
    "NormalizedProcessDefinition",
]
