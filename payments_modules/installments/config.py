"""
Installment Plan Configuration Schema.

Defines the plan currency, the late fee rate applied to missed
installments, and the limits on schedule length and look-ahead windows.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from payments_kernel.exceptions import InvalidConfigurationError
from payments_kernel.logging_config import get_logger

logger = get_logger("modules.installments.config")


@dataclass(frozen=True)
class InstallmentConfig:
    """Configuration schema for the installments module."""

    # Currency
    currency: str = "AED"

    # Late fee as a fraction of the missed installment (0.02 = 2%)
    late_fee_rate: Decimal = Decimal("0.02")

    # Upper bound on installment_count (10 years of monthly payments)
    max_installment_count: int = 120

    # Default window for get_upcoming_installments
    default_days_ahead: int = 30

    def __post_init__(self):
        if len(self.currency) != 3 or not self.currency.isalpha():
            raise InvalidConfigurationError(
                "installments.currency", self.currency, "must be a 3-letter ISO code",
            )
        if not isinstance(self.late_fee_rate, Decimal):
            raise InvalidConfigurationError(
                "installments.late_fee_rate", self.late_fee_rate, "must be a Decimal",
            )
        if self.late_fee_rate < 0 or self.late_fee_rate > 1:
            raise InvalidConfigurationError(
                "installments.late_fee_rate", self.late_fee_rate, "must be between 0 and 1",
            )
        if self.max_installment_count < 1:
            raise InvalidConfigurationError(
                "installments.max_installment_count",
                self.max_installment_count,
                "must be at least 1",
            )
        if self.default_days_ahead < 0:
            raise InvalidConfigurationError(
                "installments.default_days_ahead",
                self.default_days_ahead,
                "cannot be negative",
            )

        logger.info(
            "installment_config_initialized",
            extra={
                "currency": self.currency,
                "late_fee_rate": str(self.late_fee_rate),
                "max_installment_count": self.max_installment_count,
                "default_days_ahead": self.default_days_ahead,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with a 2% late fee and a 120-installment cap."""
        return cls()
