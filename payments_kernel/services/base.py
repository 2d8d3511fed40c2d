"""
BaseService -- abstract base for the payments engines.

Responsibility:
    Provides the common constructor and the transaction boundary used by every
    public engine operation: commit on success, rollback on any failure, and
    translation of SQLAlchemy's stale-version signal into the kernel's typed
    ``OptimisticLockError``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  EscrowService and
    InstallmentService extend this class.

Invariants enforced:
    - A rejected operation leaves no persisted change: validation errors,
      state errors and lost races all roll the session back before the
      exception reaches the caller.
    - No automatic retry: a lost race surfaces as OptimisticLockError and the
      caller decides.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from payments_kernel.domain.clock import Clock, SystemClock
from payments_kernel.exceptions import InvalidFieldError, OptimisticLockError
from payments_kernel.logging_config import get_logger

logger = get_logger("services.base")


class BaseService(ABC):
    """
    Abstract base class for engine services.

    Contract:
        Accepts a SQLAlchemy ``Session`` and an optional ``Clock``.  Each
        public operation of a subclass runs inside ``_unit_of_work`` and
        therefore owns exactly one transaction.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
            clock: Time source; defaults to SystemClock.
        """
        self._session = session
        self._clock = clock or SystemClock()

    @property
    def session(self) -> Session:
        return self._session

    @staticmethod
    def _require_text(value: object, field: str) -> str:
        """Return ``value`` stripped; reject non-strings and blanks."""
        if not isinstance(value, str) or not value.strip():
            raise InvalidFieldError(field, value, "must be a non-empty string")
        return value.strip()

    @contextmanager
    def _unit_of_work(self, entity_type: str, entity_id: object = None) -> Iterator[Session]:
        """
        Commit on success, roll back and re-raise on failure.

        StaleDataError (version column mismatch at flush) is re-raised as
        OptimisticLockError(entity_type, entity_id).
        """
        try:
            yield self._session
            self._session.commit()
        except StaleDataError as exc:
            self._session.rollback()
            logger.warning(
                "optimistic_lock_conflict",
                extra={"entity_type": entity_type, "entity_id": str(entity_id)},
            )
            raise OptimisticLockError(entity_type, str(entity_id)) from exc
        except Exception:
            self._session.rollback()
            raise
