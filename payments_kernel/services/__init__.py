"""Kernel services."""

from payments_kernel.services.base import BaseService

__all__ = ["BaseService"]
