"""
rental_config -- single public entrypoint for rental engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files directly.  Returns a frozen ``EngineConfig``; ``bridges`` turns
    it into module inputs (category bindings, default numbering series,
    ``AgreementConfig``).

Architecture position:
    Configuration -- YAML sets, validated at load time.  Sits above
    ``rental_kernel`` and beside ``rental_modules``.  The kernel MUST
    NEVER import from ``rental_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested set does not exist.
    - ``InvalidConfigurationError`` -- the set failed validation.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``RENTAL_CONFIG_TRACE`` log entry with the config_id, version and
    checksum of the set in force.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rental_config.loader import load_config_file
from rental_config.schema import EngineConfig

_logger = logging.getLogger("rental_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_SET = "default"


def get_active_config(
    config_path: Path | None = None,
    config_set: str = DEFAULT_CONFIG_SET,
) -> EngineConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Explicit YAML file.  Overrides ``config_set``.
        config_set: Name of a set under ``rental_config/sets/``.

    Returns:
        EngineConfig -- validated and frozen.

    Raises:
        FileNotFoundError: If the set does not exist.
        InvalidConfigurationError: If validation fails.
    """
    path = Path(config_path) if config_path else _DEFAULT_CONFIG_DIR / f"{config_set}.yaml"
    config = load_config_file(path)

    _logger.info(
        "RENTAL_CONFIG_TRACE",
        extra={
            "trace_type": "RENTAL_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "numbering_count": len(config.numbering),
            "category_role_count": len(config.category_roles),
        },
    )
    return config


__all__ = ["EngineConfig", "get_active_config"]
