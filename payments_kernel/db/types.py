"""
Module: payments_kernel.db.types
Responsibility: Annotated column declarations shared by every ORM model, so
    that amounts, currency codes and external identifiers are stored
    identically across the escrow and installment tables.
Architecture position: Kernel > DB.  May be imported by models in
    payments_modules.  MUST NOT import from domain/ or services/.

Invariants enforced:
    - Amounts are Numeric(15, 2): two decimal places, never float.
    - External identifiers (parties, properties, leads, payments) are opaque
      strings; no referential logic is attached to them.

Usage:
    total_amount: Mapped[Amount]
    buyer_id: Mapped[ExternalId]

Nullable columns declare their type explicitly in ``mapped_column``.
"""

from decimal import Decimal
from typing import Annotated

from sqlalchemy import Numeric, String
from sqlalchemy.orm import mapped_column

AMOUNT_PRECISION = 15
AMOUNT_DECIMAL_PLACES = 2

# Monetary amount, 15 digits with 2 decimal places
Amount = Annotated[Decimal, mapped_column(Numeric(AMOUNT_PRECISION, AMOUNT_DECIMAL_PLACES))]

# ISO 4217 currency code (e.g., "AED", "USD")
CurrencyCode = Annotated[str, mapped_column(String(3))]

# Opaque identifier owned by another system
ExternalId = Annotated[str, mapped_column(String(64))]

# Status / enum values
ShortCode = Annotated[str, mapped_column(String(50))]
