"""Domain-level validation rules for availability reconciliation."""

from __future__ import annotations

from dataclasses import dataclass

from backend.utils.config import Settings
from backend.utils.time_utils import MissingPatternPolicy


@dataclass(frozen=True)
class EngineConfig:
    proximity_minutes: int
    dedup_overlap_ratio: float
    missing_pattern_policy: MissingPatternPolicy
    adapter_workers: int


def parse_missing_pattern_policy(value: str) -> MissingPatternPolicy:
    try:
        return MissingPatternPolicy(value.strip().lower())
    except ValueError as exc:
        allowed = ", ".join(policy.value for policy in MissingPatternPolicy)
        raise ValueError(f"missing_pattern_policy must be one of: {allowed}") from exc


def validate_engine_config(config: EngineConfig) -> None:
    if config.proximity_minutes < 0:
        raise ValueError("proximity_minutes must be >= 0")
    if not 0.0 < config.dedup_overlap_ratio <= 1.0:
        raise ValueError("dedup_overlap_ratio must be in (0, 1]")
    if not isinstance(config.missing_pattern_policy, MissingPatternPolicy):
        raise ValueError("missing_pattern_policy must be a MissingPatternPolicy")
    if config.adapter_workers <= 0:
        raise ValueError("adapter_workers must be > 0")


def build_engine_config(settings: Settings) -> EngineConfig:
    """Parse and validate the engine tunables held in settings."""
    config = EngineConfig(
        proximity_minutes=settings.availability_proximity_minutes,
        dedup_overlap_ratio=settings.availability_dedup_overlap_ratio,
        missing_pattern_policy=parse_missing_pattern_policy(
            settings.availability_missing_pattern_policy
        ),
        adapter_workers=settings.availability_adapter_workers,
    )
    validate_engine_config(config)
    return config
