"""
Configuration Loader (``billing_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``EngineConfig`` value object.  The single public entry point for runtime
config is ``billing_config.get_engine_config()``.

Invariants enforced
-------------------
* Unknown keys are rejected; there are no silent defaults for misspelled
  settings.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or wrongly typed values  -> ``ValueError``.
* Unknown denominator  -> ``UnsupportedProrationDenominatorError``.
* Billing day outside 1..31  -> ``InvalidBillingDayError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from billing_kernel.domain.engine_config import EngineConfig, ProrationDenominator

_TOP_LEVEL_KEYS = frozenset({"config_id", "version", "engine"})
_ENGINE_KEYS = frozenset({
    "proration_denominator",
    "rounding",
    "default_billing_day",
    "effective_quantity_places",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return data


def _reject_unknown(data: dict[str, Any], allowed: frozenset[str], where: str) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Unknown {where} keys: {sorted(unknown)}")


def _parse_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    return value


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """
    Parse an ``EngineConfig`` from a configuration mapping.

    Missing engine settings take the ``EngineConfig`` defaults.
    """
    _reject_unknown(data, _TOP_LEVEL_KEYS, "configuration")
    engine = data.get("engine") or {}
    if not isinstance(engine, dict):
        raise ValueError("engine must be a mapping")
    _reject_unknown(engine, _ENGINE_KEYS, "engine")

    kwargs: dict[str, Any] = {}
    if "config_id" in data:
        kwargs["config_id"] = str(data["config_id"])
    if "version" in data:
        kwargs["version"] = _parse_int(data["version"], "version")
    if "proration_denominator" in engine:
        kwargs["proration_denominator"] = ProrationDenominator.parse(
            engine["proration_denominator"]
        )
    if "rounding" in engine:
        kwargs["rounding"] = str(engine["rounding"])
    if engine.get("default_billing_day") is not None:
        kwargs["default_billing_day"] = _parse_int(
            engine["default_billing_day"], "default_billing_day"
        )
    if "effective_quantity_places" in engine:
        kwargs["effective_quantity_places"] = _parse_int(
            engine["effective_quantity_places"], "effective_quantity_places"
        )

    return EngineConfig(**kwargs)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
