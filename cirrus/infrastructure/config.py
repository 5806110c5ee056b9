"""
Configuration Module

Architectural Intent:
- Centralized configuration for the cloud client layer
- Provides typed access to all Cirrus settings
- Falls back to sensible defaults when config file is absent
- Environment variables override file-based config

Design Decisions:
- Config is a frozen dataclass for immutability after load
- Nested config sections map to sub-dataclasses
- Profile parameters (certificates, images) are NOT part of this config:
  they belong to profiles owned by the fleet manager
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import dataclasses
import json
import logging
import os

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderConfig:
    """Cloud provider call settings."""
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class MatchingConfig:
    """Agent-to-instance matching settings."""
    ambiguity_policy: str = "first"  # "first" or "reject"


@dataclass(frozen=True)
class StorageConfig:
    """Plugin data root; the instance index lives in <state_root>/azureIdx."""
    state_root: str = "./data"


@dataclass(frozen=True)
class TelemetryConfig:
    """OpenTelemetry metrics switch."""
    enabled: bool = False


@dataclass(frozen=True)
class CirrusConfig:
    """Root configuration for the Cirrus cloud client layer."""
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    log_level: str = "WARNING"


def _env_override(data: dict, prefix: str = "CIRRUS") -> dict:
    """Override config values with environment variables.

    Environment variables follow the pattern CIRRUS_SECTION_KEY.
    For example: CIRRUS_PROVIDER_TIMEOUT_SECONDS=10,
    CIRRUS_MATCHING_AMBIGUITY_POLICY=reject
    """
    for key, value in os.environ.items():
        if not key.startswith(f"{prefix}_"):
            continue
        rest = key[len(prefix) + 1:].lower()
        if rest == "log_level":
            data["log_level"] = value
            continue
        parts = rest.split("_", 1)
        if len(parts) == 2:
            section, field_name = parts
            if not isinstance(data.get(section), dict):
                data[section] = {}
            data[section][field_name] = value
        elif len(parts) == 1:
            data[parts[0]] = value
    return data


def _parse_config_file(path: Path) -> dict:
    """Parse a JSON config file. Returns empty dict on failure."""
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.debug("Config file not found: %s", path)
        return {}
    except json.JSONDecodeError as e:
        logger.warning("Invalid config file %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Config file %s must contain a JSON object", path)
        return {}
    return data


def _build_sub_config(cls, data: dict):
    """Build a sub-config dataclass from a dict, ignoring unknown keys."""
    valid_fields = {f.name: f for f in dataclasses.fields(cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}

    # Convert strings from the environment to the field's type
    for name, value in list(filtered.items()):
        if not isinstance(value, str):
            continue
        field_type = valid_fields[name].type
        if field_type == "int":
            filtered[name] = int(value)
        elif field_type == "float":
            filtered[name] = float(value)
        elif field_type == "bool":
            filtered[name] = value.lower() in ("true", "1", "yes")

    return cls(**filtered)


def load_config(
    path: Optional[str] = None,
    env_prefix: str = "CIRRUS",
) -> CirrusConfig:
    """Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (CIRRUS_SECTION_KEY)
    2. Config file values
    3. Defaults

    Args:
        path: Path to config file (JSON). Defaults to cirrus.json in CWD.
        env_prefix: Environment variable prefix. Defaults to CIRRUS.
    """
    config_path = Path(path) if path else Path("cirrus.json")
    data = _parse_config_file(config_path)
    data = _env_override(data, env_prefix)

    return CirrusConfig(
        provider=_build_sub_config(ProviderConfig, data.get("provider", {})),
        matching=_build_sub_config(MatchingConfig, data.get("matching", {})),
        storage=_build_sub_config(StorageConfig, data.get("storage", {})),
        telemetry=_build_sub_config(TelemetryConfig, data.get("telemetry", {})),
        log_level=data.get("log_level", "WARNING"),
    )
