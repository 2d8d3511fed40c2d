"""
Installment Plan Module (``payments_modules.installments``).

Responsibility
--------------
Amortization of a property price minus down payment into equal periodic
installments, payment recording with automatic plan completion, overdue
detection with a one-time late fee, and due-soon listings per lead.

Architecture position
---------------------
**Modules layer** -- config schema, frozen DTOs, pure calculations, one ORM
row per plan, and the ``InstallmentService`` facade.
"""

from payments_modules.installments.calculations import (
    add_months,
    calculate_installments,
    months_increment,
)
from payments_modules.installments.config import InstallmentConfig
from payments_modules.installments.models import (
    Installment,
    InstallmentFrequency,
    InstallmentPlan,
    InstallmentPlanStatus,
    InstallmentStatus,
    UpcomingInstallment,
)
from payments_modules.installments.service import InstallmentService

__all__ = [
    "Installment",
    "InstallmentConfig",
    "InstallmentFrequency",
    "InstallmentPlan",
    "InstallmentPlanStatus",
    "InstallmentService",
    "InstallmentStatus",
    "UpcomingInstallment",
    "add_months",
    "calculate_installments",
    "months_increment",
]
