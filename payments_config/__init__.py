"""
payments_config -- single public entrypoint for payments configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the resulting module
    configs through their constructors; they never read files themselves.

Architecture position:
    Configuration -- sits above ``payments_kernel`` and beside
    ``payments_modules``.  The kernel MUST NEVER import from
    ``payments_config``.

Failure modes:
    - ``FileNotFoundError`` -- the given configuration file does not exist.
    - ``InvalidConfigurationError`` -- unknown keys or out-of-range values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``payments_config_loaded`` log entry with the source path and the
    checksum of the parsed document.
"""

from __future__ import annotations

from pathlib import Path

from payments_config.loader import PaymentsConfig, load_yaml_file, parse_config
from payments_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: Path | str | None = None) -> PaymentsConfig:
    """
    Load, validate and return the payments configuration.

    Args:
        config_path: YAML file to load.  Defaults to the shipped
            ``defaults.yaml``.

    Returns:
        A frozen ``PaymentsConfig`` whose ``escrow`` and ``installments``
        members can be passed straight to the service constructors.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(path))

    _logger.info(
        "payments_config_loaded",
        extra={
            "config_path": str(path),
            "checksum": config.checksum,
            "escrow_currency": config.escrow.currency,
            "late_fee_rate": str(config.installments.late_fee_rate),
        },
    )
    return config


__all__ = ["DEFAULT_CONFIG_PATH", "PaymentsConfig", "get_active_config"]
