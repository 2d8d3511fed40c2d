"""
Payments modules: the escrow and installment engines.

Each module follows the same layout:
    config.py   -- configuration dataclass, validated on construction
    models.py   -- frozen DTOs, enums and transition tables (no I/O)
    orm.py      -- SQLAlchemy row model with DTO mapping
    service.py  -- the engine; owns the transaction boundary

The installment module adds ``calculations.py`` with the pure schedule
arithmetic.
"""
