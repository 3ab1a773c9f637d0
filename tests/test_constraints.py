"""Tests for availability engine tunable validation.

Covers every validation branch in validate_engine_config() and the
missing-pattern policy parser.
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from backend.domain.constraints import (
    EngineConfig,
    parse_missing_pattern_policy,
    validate_engine_config,
)
from backend.services.availability_service import build_engine_config
from backend.utils.config import get_settings
from backend.utils.time_utils import MissingPatternPolicy


def valid_config(**overrides) -> EngineConfig:
    """Return a valid baseline EngineConfig, optionally overriding fields."""
    defaults = {
        "proximity_minutes": 15,
        "dedup_overlap_ratio": 0.8,
        "missing_pattern_policy": MissingPatternPolicy.ALWAYS,
        "adapter_workers": 3,
    }
    defaults.update(overrides)
    return EngineConfig(**defaults)


# --- Baseline pass ---

def test_valid_config_passes() -> None:
    """A fully valid config must not raise."""
    validate_engine_config(valid_config())


# --- proximity_minutes ---

def test_proximity_minutes_negative_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(proximity_minutes=-1))


def test_proximity_minutes_zero_passes() -> None:
    validate_engine_config(valid_config(proximity_minutes=0))


# --- dedup_overlap_ratio ---

def test_dedup_overlap_ratio_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(dedup_overlap_ratio=0.0))


def test_dedup_overlap_ratio_above_one_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(dedup_overlap_ratio=1.01))


def test_dedup_overlap_ratio_one_passes() -> None:
    """Exact upper boundary must pass."""
    validate_engine_config(valid_config(dedup_overlap_ratio=1.0))


# --- missing_pattern_policy ---

def test_missing_pattern_policy_plain_string_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(missing_pattern_policy="always"))


def test_parse_missing_pattern_policy() -> None:
    assert parse_missing_pattern_policy(" Never ") is MissingPatternPolicy.NEVER
    with pytest.raises(ValueError):
        parse_missing_pattern_policy("sometimes")


# --- adapter_workers ---

def test_adapter_workers_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(adapter_workers=0))


# --- Settings wiring ---

def test_build_engine_config_from_settings() -> None:
    get_settings.cache_clear()
    settings = replace(
        get_settings(),
        availability_proximity_minutes=10,
        availability_missing_pattern_policy="never",
    )
    config = build_engine_config(settings)
    assert config.proximity_minutes == 10
    assert config.missing_pattern_policy is MissingPatternPolicy.NEVER


def test_build_engine_config_rejects_bad_settings() -> None:
    get_settings.cache_clear()
    settings = replace(get_settings(), availability_dedup_overlap_ratio=1.5)
    with pytest.raises(ValueError):
        build_engine_config(settings)
