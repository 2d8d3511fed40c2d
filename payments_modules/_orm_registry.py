"""
Module ORM Registry (``payments_modules._orm_registry``).

Responsibility
--------------
Ensure every module-level SQLAlchemy ORM model is imported so that
``Base.metadata`` holds its table before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Called lazily by
``payments_kernel.db.engine.create_tables`` / ``drop_tables``
(which ``tests/conftest.py`` runs per test).
"""


def import_all_orm_models() -> None:
    """Import every ``payments_modules.*.orm`` module.  Idempotent."""
    import payments_modules.escrow.orm  # noqa: F401
    import payments_modules.installments.orm  # noqa: F401
