"""
Configuration Loader (``rental_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the typed, frozen
``rental_config.schema.EngineConfig``.  The single public entry point for
runtime config is ``rental_config.get_active_config()``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  No dependency on kernel or
modules apart from the typed configuration error.

Invariants enforced
-------------------
* A set is validated in full before it is parsed.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid contents  -> ``InvalidConfigurationError`` listing every error.
"""

from __future__ import annotations

import hashlib
import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from rental_config.schema import AgreementSettingsDef, CategoryRef, EngineConfig, NumberingDef
from rental_config.validator import validate_config_data
from rental_kernel.exceptions import InvalidConfigurationError

_logger = logging.getLogger("rental_kernel.config")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (empty if the YAML is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_numbering(data: dict[str, Any]) -> NumberingDef:
    return NumberingDef(
        kind=data["kind"],
        prefix=data["prefix"],
        padding=data["padding"],
        next_number=data.get("next_number", 1),
    )


def parse_category_ref(data: dict[str, Any]) -> CategoryRef:
    category_id = data.get("category_id")
    return CategoryRef(
        role=data["role"],
        category_id=UUID(str(category_id)) if category_id is not None else None,
        category_name=data.get("category_name"),
    )


def parse_agreement_settings(data: dict[str, Any]) -> AgreementSettingsDef:
    values = dict(data)
    if "deposit_match_tolerance" in values:
        values["deposit_match_tolerance"] = Decimal(str(values["deposit_match_tolerance"]))
    return AgreementSettingsDef(**values)


def parse_engine_config(data: dict[str, Any], checksum: str = "") -> EngineConfig:
    """Parse an already validated mapping."""
    return EngineConfig(
        config_id=data["config_id"],
        version=data.get("version", 1),
        description=data.get("description", ""),
        numbering=tuple(parse_numbering(n) for n in data.get("numbering") or []),
        category_roles=tuple(parse_category_ref(c) for c in data.get("category_roles") or []),
        agreements=parse_agreement_settings(data.get("agreements") or {}),
        checksum=checksum,
    )


def load_config_file(path: Path) -> EngineConfig:
    """
    Load, validate and parse one configuration set.

    Raises:
        InvalidConfigurationError: If validation reports errors.
    """
    data = load_yaml_file(path)
    validation = validate_config_data(data)
    if not validation.is_valid:
        raise InvalidConfigurationError(validation.errors, source=str(path))
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"source": str(path), "warning": warning})
    return parse_engine_config(data, compute_checksum(data))
