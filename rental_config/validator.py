"""
Configuration Validator (``rental_config.validator``).

Responsibility
--------------
Checks a raw configuration mapping (as loaded from YAML) before it is
parsed into ``EngineConfig``, so that a broken set is rejected with every
problem listed instead of failing on the first ``KeyError``.

Architecture position
---------------------
**Config layer** -- build-time validation.  Called by
``rental_config.loader`` before parsing.  Has no dependency on kernel or
modules.

Invariants enforced
-------------------
* Numbering series: known kind, non-empty prefix, padding >= 0,
  next_number >= 1, at most one series per kind.
* Category roles: known role, bound by id or name, at most once.
* Agreement settings: only known keys, integer knobs are non-negative
  integers, description templates contain ``{Month}``.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``)  -> configuration
  MUST NOT be used.
* Validation warnings (``ConfigValidationResult.warnings``)  ->
  configuration may be used but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from rental_config.schema import AgreementSettingsDef

SERIES_KINDS = frozenset({"agreement", "invoice"})
CATEGORY_ROLES = frozenset({"security_deposit", "rental_income", "security_deposit_refund"})
_INT_SETTINGS = frozenset({
    "default_term_months",
    "security_due_days",
    "recurring_due_days",
    "expiring_soon_days",
})
_TEMPLATE_SETTINGS = ("rent_description_template", "renewal_rent_description_template")


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    Contract
    --------
    * ``is_valid`` returns ``True`` only when ``errors`` is empty.
    * Warnings do not block loading but should be reviewed.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_config_data(data: dict[str, Any]) -> ConfigValidationResult:
    """
    Validate a raw configuration mapping.

    Postconditions:
        - Returns a ``ConfigValidationResult`` with errors and warnings.
        - A mapping with errors MUST NOT be parsed.
    """
    result = ConfigValidationResult()

    if not isinstance(data, dict):
        result.add_error("Configuration must be a mapping")
        return result

    if not data.get("config_id"):
        result.add_error("config_id is required")
    if not isinstance(data.get("version", 1), int):
        result.add_error("version must be an integer")

    _validate_numbering(data.get("numbering") or [], result)
    _validate_category_roles(data.get("category_roles") or [], result)
    _validate_agreement_settings(data.get("agreements") or {}, result)

    return result


def _validate_numbering(entries: Any, result: ConfigValidationResult) -> None:
    """Check numbering series definitions."""
    if not isinstance(entries, list):
        result.add_error("numbering must be a list")
        return

    seen: set[str] = set()
    for n, entry in enumerate(entries):
        where = f"numbering[{n}]"
        if not isinstance(entry, dict):
            result.add_error(f"{where} must be a mapping")
            continue

        kind = entry.get("kind")
        if kind not in SERIES_KINDS:
            result.add_error(f"{where}: unknown kind {kind!r}")
        elif kind in seen:
            result.add_error(f"{where}: duplicate series for kind {kind!r}")
        seen.add(kind)

        prefix = entry.get("prefix")
        if not isinstance(prefix, str) or not prefix:
            result.add_error(f"{where}: prefix must be a non-empty string")

        padding = entry.get("padding")
        if not isinstance(padding, int) or isinstance(padding, bool) or padding < 0:
            result.add_error(f"{where}: padding must be a non-negative integer")

        next_number = entry.get("next_number", 1)
        if not isinstance(next_number, int) or isinstance(next_number, bool) or next_number < 1:
            result.add_error(f"{where}: next_number must be a positive integer")

    for kind in sorted(SERIES_KINDS - seen):
        result.add_warning(f"No default numbering series for {kind!r}")


def _validate_category_roles(entries: Any, result: ConfigValidationResult) -> None:
    """Check category role bindings."""
    if not isinstance(entries, list):
        result.add_error("category_roles must be a list")
        return

    seen: set[str] = set()
    for n, entry in enumerate(entries):
        where = f"category_roles[{n}]"
        if not isinstance(entry, dict):
            result.add_error(f"{where} must be a mapping")
            continue

        role = entry.get("role")
        if role not in CATEGORY_ROLES:
            result.add_error(f"{where}: unknown role {role!r}")
        elif role in seen:
            result.add_error(f"{where}: role {role!r} bound more than once")
        seen.add(role)

        category_id = entry.get("category_id")
        if category_id is None and not entry.get("category_name"):
            result.add_error(f"{where}: category_id or category_name is required")
        if category_id is not None:
            try:
                UUID(str(category_id))
            except ValueError:
                result.add_error(f"{where}: category_id {category_id!r} is not a UUID")

    for role in sorted(CATEGORY_ROLES - seen):
        result.add_warning(f"Category role {role!r} is not bound")


def _validate_agreement_settings(settings: Any, result: ConfigValidationResult) -> None:
    """Check agreement module knobs."""
    if not isinstance(settings, dict):
        result.add_error("agreements must be a mapping")
        return

    known = {f.name for f in fields(AgreementSettingsDef)}
    for key in sorted(set(settings) - known):
        result.add_error(f"agreements: unknown setting {key!r}")

    for key in sorted(_INT_SETTINGS & set(settings)):
        value = settings[key]
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            result.add_error(f"agreements.{key} must be a non-negative integer")

    if settings.get("default_term_months") == 0:
        result.add_error("agreements.default_term_months must be positive")

    if "deposit_match_tolerance" in settings:
        try:
            tolerance = Decimal(str(settings["deposit_match_tolerance"]))
        except InvalidOperation:
            result.add_error("agreements.deposit_match_tolerance must be a decimal")
        else:
            if not Decimal("0") <= tolerance < Decimal("1"):
                result.add_error("agreements.deposit_match_tolerance must be in [0, 1)")

    for key in _TEMPLATE_SETTINGS:
        if key in settings and "{Month}" not in str(settings[key]):
            result.add_error(f"agreements.{key} must contain {{Month}}")
