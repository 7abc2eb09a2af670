"""
Hierarchy Engine Configuration

Defines the tunable thresholds of the subprocess matcher, the ordering
options and the top-level configuration for a hierarchy build.
"""

import os
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


def _env_list(name: str) -> Optional[List[str]]:
    raw = os.getenv(name)
    if raw is None:
        return None
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class MatcherConfig(BaseModel):
    """Thresholds for resolving invocations to processes."""

    # Confidence per deterministic tier
    id_confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    name_confidence: float = Field(default=0.9, ge=0.0, le=1.0)
    file_name_confidence: float = Field(default=0.8, ge=0.0, le=1.0)

    # Fuzzy tier
    fuzzy_weight: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Scales fuzzy similarity below exact tiers"
    )
    ambiguity_delta: float = Field(
        default=0.1,
        ge=0.0,
        description="Best fuzzy survivor must beat the runner-up by more than this",
    )
    min_fuzzy_length: int = Field(
        default=3, ge=1, description="Shorter normalized strings never take part in fuzzy matching"
    )

    # Normalization
    common_prefixes: List[str] = Field(
        default_factory=list, description="Prefixes stripped from normalized file stems"
    )
    file_extensions: List[str] = Field(default_factory=lambda: [".bpmn", ".xml"])

    @model_validator(mode="after")
    def _check_tier_order(self) -> "MatcherConfig":
        if not self.id_confidence >= self.name_confidence >= self.file_name_confidence:
            raise ValueError("Tier confidences must not increase: id >= name >= file name")
        if self.fuzzy_weight >= self.file_name_confidence:
            raise ValueError("fuzzy_weight must stay below file_name_confidence")
        return self

    @classmethod
    def from_env(cls) -> "MatcherConfig":
        """Load configuration from environment variables."""
        config_data = {
            "fuzzy_weight": float(os.getenv("BPMN_HIERARCHY_FUZZY_WEIGHT", "0.7")),
            "ambiguity_delta": float(os.getenv("BPMN_HIERARCHY_AMBIGUITY_DELTA", "0.1")),
            "min_fuzzy_length": int(os.getenv("BPMN_HIERARCHY_MIN_FUZZY_LENGTH", "3")),
        }
        prefixes = _env_list("BPMN_HIERARCHY_COMMON_PREFIXES")
        if prefixes is not None:
            config_data["common_prefixes"] = prefixes
        return cls(**config_data)


class OrderConfig(BaseModel):
    """Options for sequence-flow based ordering."""

    bridge_intermediate_elements: bool = Field(
        default=False,
        description="Connect children through gateways/events that are not children themselves",
    )

    @classmethod
    def from_env(cls) -> "OrderConfig":
        return cls(
            bridge_intermediate_elements=_env_bool("BPMN_HIERARCHY_BRIDGE_INTERMEDIATE", False)
        )


class HierarchyConfig(BaseModel):
    """Complete configuration for one hierarchy build."""

    matcher: MatcherConfig = Field(default_factory=MatcherConfig)
    order: OrderConfig = Field(default_factory=OrderConfig)
    include_tasks: bool = Field(default=True, description="Emit task nodes in the tree")

    @classmethod
    def from_env(cls) -> "HierarchyConfig":
        """Create hierarchy config from environment variables."""
        return cls(
            matcher=MatcherConfig.from_env(),
            order=OrderConfig.from_env(),
            include_tasks=_env_bool("BPMN_HIERARCHY_INCLUDE_TASKS", True),
        )


__all__ = [
    "MatcherConfig",
    "OrderConfig",
    "HierarchyConfig",
]
