"""
billing_config -- single public entrypoint for billing engine configuration.

Responsibility:
    Provides the one way to obtain engine configuration from disk through
    ``get_engine_config()``.  Engines never read files or environment
    variables; callers load an ``EngineConfig`` here and pass it in.

Architecture position:
    Configuration -- YAML-driven, sits above ``billing_kernel``.  The
    kernel and the engines MUST NEVER import from ``billing_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- unknown keys or malformed values.
    - ``ConfigurationError`` subclasses -- unsupported denominator or
      billing day.

Audit relevance:
    Every successful ``get_engine_config()`` call emits a
    ``BILLING_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying engine results to the configuration that produced them.
"""

from __future__ import annotations

import logging
from pathlib import Path

from billing_kernel.domain.engine_config import DEFAULT_CONFIG, EngineConfig
from billing_config.loader import compute_checksum, load_yaml_file, parse_engine_config

_logger = logging.getLogger("billing_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_engine_config(path: Path | str | None = None) -> EngineConfig:
    """Load and validate the engine configuration.

    Args:
        path: YAML file to load. Defaults to billing_config/sets/default.yaml.

    Returns:
        A frozen ``EngineConfig``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file contains unknown keys or bad values.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    data = load_yaml_file(config_path)
    config = parse_engine_config(data)
    checksum = compute_checksum(data)

    _logger.info(
        "BILLING_CONFIG_TRACE",
        extra={
            "trace_type": "BILLING_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": checksum,
            "source": str(config_path),
            "proration_denominator": config.proration_denominator.value,
            "rounding": config.rounding,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_PATH",
    "EngineConfig",
    "compute_checksum",
    "get_engine_config",
    "load_yaml_file",
    "parse_engine_config",
]
