"""
Escrow Configuration Schema.

Defines the account currency, the account-number format and the conditions
seeded on every new escrow account.
"""

from dataclasses import dataclass
from typing import Self

from payments_kernel.exceptions import InvalidConfigurationError
from payments_kernel.logging_config import get_logger

logger = get_logger("modules.escrow.config")


DEFAULT_ESCROW_CONDITIONS: tuple[str, ...] = (
    "Title deed transfer completed",
    "NOC (No Objection Certificate) obtained",
    "Property handover completed",
)


@dataclass(frozen=True)
class EscrowConfig:
    """Configuration schema for the escrow module."""

    # ISO 4217 currency of every escrow account
    currency: str = "AED"

    # Account numbers look like ESC-2025-004711
    account_number_prefix: str = "ESC"

    # Collision retries before giving up on a random suffix
    account_number_max_attempts: int = 5

    # Seeded, unfulfilled, on account creation
    default_conditions: tuple[str, ...] = DEFAULT_ESCROW_CONDITIONS

    def __post_init__(self):
        if len(self.currency) != 3 or not self.currency.isalpha():
            raise InvalidConfigurationError(
                "escrow.currency", self.currency, "must be a 3-letter ISO code",
            )
        if not self.account_number_prefix:
            raise InvalidConfigurationError(
                "escrow.account_number_prefix", self.account_number_prefix, "must not be empty",
            )
        if self.account_number_max_attempts < 1:
            raise InvalidConfigurationError(
                "escrow.account_number_max_attempts",
                self.account_number_max_attempts,
                "must be at least 1",
            )
        if any(not str(desc).strip() for desc in self.default_conditions):
            raise InvalidConfigurationError(
                "escrow.default_conditions", self.default_conditions,
                "condition descriptions must not be blank",
            )

        logger.info(
            "escrow_config_initialized",
            extra={
                "currency": self.currency,
                "account_number_prefix": self.account_number_prefix,
                "account_number_max_attempts": self.account_number_max_attempts,
                "default_condition_count": len(self.default_conditions),
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the standard three escrow conditions."""
        return cls()
