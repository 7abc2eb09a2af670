"""
Stage 1: Process Registry Normalization

Assigns a registry-unique internal id to every parsed process definition.
Declared ids frequently collide across independently authored files, so the
first occurrence keeps its id and later ones receive an ordinal suffix.
"""

import logging
from typing import Dict, List

from bpmn_hierarchy.models.definitions import NormalizedProcessDefinition, ProcessDefinition

logger = logging.getLogger(__name__)

DUPLICATE_SEPARATOR = "__"


def base_id_for(definition: ProcessDefinition, index: int) -> str:
    """Declared id, or ``<file>#process-<n>`` (1-based) when it is blank."""
    declared = (definition.id or "").strip()
    if declared:
        return declared
    return f"{definition.file_name}#process-{index + 1}"


def normalize_definitions(
    definitions: List[ProcessDefinition],
) -> Dict[str, NormalizedProcessDefinition]:
    """
    Build the ordered registry ``internal_id -> NormalizedProcessDefinition``.

    Iteration order of the result follows the input list. The input
    definitions are copied, never modified.

    Raises:
        TypeError: If ``definitions`` is not a list of ``ProcessDefinition``
    """
    if definitions is None or isinstance(definitions, (str, bytes, dict)):
        raise TypeError("definitions must be a list of ProcessDefinition")
    definitions = list(definitions)

    registry: Dict[str, NormalizedProcessDefinition] = {}
    occurrences: Dict[str, int] = {}

    for index, definition in enumerate(definitions):
        if not isinstance(definition, ProcessDefinition):
            raise TypeError(
                f"definitions[{index}] is {type(definition).__name__}, expected ProcessDefinition"
            )

        base_id = base_id_for(definition, index)
        count = occurrences.get(base_id, 0) + 1
        occurrences[base_id] = count

        internal_id = base_id if count == 1 else f"{base_id}{DUPLICATE_SEPARATOR}{count}"
        # A declared id may already look like a suffixed one ("a__2")
        while internal_id in registry:
            count += 1
            occurrences[base_id] = count
            internal_id = f"{base_id}{DUPLICATE_SEPARATOR}{count}"

        if count > 1:
            logger.debug(
                f"Process id '{base_id}' in {definition.file_name} already registered, "
                f"using '{internal_id}'"
            )

        data = definition.model_dump()
        data.update(internal_id=internal_id, ordinal=index)
        registry[internal_id] = NormalizedProcessDefinition.model_validate(data)

    logger.debug(f"Normalized {len(registry)} process definitions")
    return registry


__all__ = [
    "base_id_for",
    "normalize_definitions",
]
