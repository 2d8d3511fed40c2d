"""
Configuration Loader (``payments_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the module
configuration dataclasses (``EscrowConfig``, ``InstallmentConfig``).
Runtime callers use ``payments_config.get_active_config()`` instead.

Invariants enforced
-------------------
* Unknown keys are rejected, so a typo cannot silently fall back to a
  default.
* Rates are parsed into ``Decimal`` from their string form; never held as
  ``float``.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, or a value out of range  ->
  ``InvalidConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from payments_kernel.exceptions import InvalidConfigurationError
from payments_modules.escrow.config import EscrowConfig
from payments_modules.installments.config import InstallmentConfig


@dataclass(frozen=True)
class PaymentsConfig:
    """The complete runtime configuration."""

    escrow: EscrowConfig
    installments: InstallmentConfig
    checksum: str = ""


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise InvalidConfigurationError(str(path), type(data).__name__, "top level must be a mapping")
    return data


def _section(data: dict[str, Any], name: str, schema: type) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise InvalidConfigurationError(name, section, "must be a mapping")
    known = {f.name for f in fields(schema)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise InvalidConfigurationError(f"{name}.{unknown[0]}", section[unknown[0]], "unknown key")
    return section


def _decimal(key: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise InvalidConfigurationError(key, value, "must be a number")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidConfigurationError(key, value, "must be a number") from exc


def _int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise InvalidConfigurationError(key, value, "must be an integer")
    try:
        return int(value)
    except ValueError as exc:
        raise InvalidConfigurationError(key, value, "must be an integer") from exc


def parse_escrow(data: dict[str, Any]) -> EscrowConfig:
    section = dict(_section(data, "escrow", EscrowConfig))
    if "default_conditions" in section:
        conditions = section["default_conditions"]
        if not isinstance(conditions, list):
            raise InvalidConfigurationError(
                "escrow.default_conditions", conditions, "must be a list",
            )
        section["default_conditions"] = tuple(str(c) for c in conditions)
    if "account_number_max_attempts" in section:
        section["account_number_max_attempts"] = _int(
            "escrow.account_number_max_attempts", section["account_number_max_attempts"],
        )
    return EscrowConfig(**section)


def parse_installments(data: dict[str, Any]) -> InstallmentConfig:
    section = dict(_section(data, "installments", InstallmentConfig))
    if "late_fee_rate" in section:
        section["late_fee_rate"] = _decimal("installments.late_fee_rate", section["late_fee_rate"])
    for key in ("max_installment_count", "default_days_ahead"):
        if key in section:
            section[key] = _int(f"installments.{key}", section[key])
    return InstallmentConfig(**section)


def parse_config(data: dict[str, Any]) -> PaymentsConfig:
    """Parse a loaded YAML mapping into a ``PaymentsConfig``."""
    unknown = sorted(set(data) - {"escrow", "installments"})
    if unknown:
        raise InvalidConfigurationError(unknown[0], data[unknown[0]], "unknown section")
    return PaymentsConfig(
        escrow=parse_escrow(data),
        installments=parse_installments(data),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
