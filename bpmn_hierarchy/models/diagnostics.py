"""
Diagnostics Entries

Data-quality findings raised while resolving the process hierarchy.
Diagnostics are append-only: they are attached to the graph/tree node
they concern and mirrored into a global list for reporting layers.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """Diagnostic severity levels."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class DiagnosticCode(str, Enum):
    """Enumerated diagnostic codes."""

    NO_MATCH = "NO_MATCH"  # Invocation target could not be resolved
    AMBIGUOUS_MATCH = "AMBIGUOUS_MATCH"  # Several equally plausible targets
    LOW_CONFIDENCE_MATCH = "LOW_CONFIDENCE_MATCH"  # Resolved only via fuzzy matching
    CYCLE_DETECTED = "CYCLE_DETECTED"  # Process re-appears on its own ancestor path
    NO_ROOT_DETECTED = "NO_ROOT_DETECTED"  # No zero-indegree process exists
    OVERRIDE_TARGET_NOT_FOUND = "OVERRIDE_TARGET_NOT_FOUND"  # Manual mapping points nowhere


def utc_now() -> datetime:
    """Current UTC time, used when a build is not given an explicit timestamp."""
    return datetime.now(timezone.utc)


class Diagnostic(BaseModel):
    """A single diagnostics entry."""

    severity: Severity = Field(..., description="Severity of the finding")
    # Parser-supplied diagnostics may carry codes outside this engine's enum
    code: Union[DiagnosticCode, str] = Field(..., description="Diagnostic code")
    message: str = Field(..., description="Human readable description")
    context: Dict[str, Any] = Field(
        default_factory=dict, description="Relevant ids (process, invocation, file)"
    )
    timestamp: datetime = Field(default_factory=utc_now, description="When it was raised")

    @classmethod
    def create(
        cls,
        severity: Severity,
        code: DiagnosticCode,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ) -> "Diagnostic":
        """Build an entry, dropping ``None`` values from the context."""
        clean_context = {k: v for k, v in (context or {}).items() if v is not None}
        return cls(
            severity=severity,
            code=code,
            message=message,
            context=clean_context,
            timestamp=timestamp or utc_now(),
        )

    def dedupe_key(self) -> Tuple[Any, ...]:
        """Identity of the finding, ignoring which tree node carries it."""
        return (
            self.severity,
            str(self.code),
            self.message,
            repr(sorted(self.context.items())),
        )


__all__ = [
    "Severity",
    "DiagnosticCode",
    "Diagnostic",
    "utc_now",
]
