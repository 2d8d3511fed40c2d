"""
Typed Exception Hierarchy for the Payments Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the escrow and installment engines (HTTP controllers, batch jobs,
the payment ledger) must react to failures precisely.  Generic exceptions
like ValueError force callers to parse error messages, which breaks as soon
as wording changes.

Every error in this package therefore:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (ids, amounts, statuses)

Example - WRONG way to handle errors:
    try:
        escrow.release_escrow(account_id, amount, recipient)
    except Exception as e:
        if "Insufficient" in str(e):  # FRAGILE
            ...

Example - RIGHT way:
    try:
        escrow.release_escrow(account_id, amount, recipient)
    except InsufficientEscrowBalanceError as e:
        api_response(code=e.code, available=str(e.available))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from PaymentsKernelError:

    PaymentsKernelError (base)
    |
    +-- NotFoundError
    |   +-- EscrowAccountNotFoundError
    |   +-- ReleaseRequestNotFoundError
    |   +-- EscrowConditionNotFoundError
    |   +-- InstallmentPlanNotFoundError
    |   +-- InstallmentNotFoundError
    |
    +-- InvalidStateError
    |   +-- InvalidEscrowTransitionError
    |   +-- EscrowNotFundedError
    |   +-- EscrowClosedError
    |   +-- InsufficientEscrowBalanceError
    |   +-- PaymentNotCompletedError
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |   +-- InvalidScheduleError
    |   +-- InvalidFieldError
    |   +-- UnknownEscrowPartyError
    |   +-- InvalidConfigurationError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- IdentifierError
        +-- AccountNumberExhaustedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | ESCROW_ACCOUNT_NOT_FOUND    | Escrow id / number doesn't exist
                | RELEASE_REQUEST_NOT_FOUND   | Request id not on the account
                | ESCROW_CONDITION_NOT_FOUND  | Condition id not on the account
                | INSTALLMENT_PLAN_NOT_FOUND  | Plan id doesn't exist
                | INSTALLMENT_NOT_FOUND       | Installment number not in plan
----------------|-----------------------------|-----------------------------------------
Invalid state   | INVALID_ESCROW_TRANSITION   | Status has no edge for the operation
                | ESCROW_NOT_FUNDED           | Release requested before FUNDED
                | ESCROW_CLOSED               | Deposit or condition change on a closed account
                | INSUFFICIENT_ESCROW_BALANCE | Release exceeds deposited - released
                | PAYMENT_NOT_COMPLETED       | Deposit of a non-completed payment
----------------|-----------------------------|-----------------------------------------
Validation      | INVALID_AMOUNT              | Non-positive / float / malformed amount
                | INVALID_SCHEDULE            | Bad installment count / dates / window
                | INVALID_FIELD               | Blank or malformed identifier / text field
                | UNKNOWN_ESCROW_PARTY        | Approver is neither buyer nor seller
                | INVALID_CONFIGURATION       | Config value out of range
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Row modified by another transaction
----------------|-----------------------------|-----------------------------------------
Identifier      | ACCOUNT_NUMBER_EXHAUSTED    | No free account number after retries

Controllers map NotFoundError -> 404, InvalidStateError -> 409,
ValidationError -> 400, ConcurrencyError -> 409 (client may retry).
===============================================================================
"""

from decimal import Decimal


class PaymentsKernelError(Exception):
    """
    Base exception for all payments kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PAYMENTS_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(PaymentsKernelError):
    """Base exception for references to entities that do not exist."""

    code: str = "NOT_FOUND"


class EscrowAccountNotFoundError(NotFoundError):
    """Escrow account with given id (or account number) was not found."""

    code: str = "ESCROW_ACCOUNT_NOT_FOUND"

    def __init__(self, account_ref: str):
        self.account_ref = account_ref
        super().__init__(f"Escrow account {account_ref} not found")


class ReleaseRequestNotFoundError(NotFoundError):
    """Release request id is not present on the escrow account."""

    code: str = "RELEASE_REQUEST_NOT_FOUND"

    def __init__(self, account_id: str, request_id: str):
        self.account_id = account_id
        self.request_id = request_id
        super().__init__(
            f"Release request {request_id} not found on escrow account {account_id}"
        )


class EscrowConditionNotFoundError(NotFoundError):
    """Condition id is not present on the escrow account."""

    code: str = "ESCROW_CONDITION_NOT_FOUND"

    def __init__(self, account_id: str, condition_id: str):
        self.account_id = account_id
        self.condition_id = condition_id
        super().__init__(
            f"Condition {condition_id} not found on escrow account {account_id}"
        )


class InstallmentPlanNotFoundError(NotFoundError):
    """Installment plan with given id was not found."""

    code: str = "INSTALLMENT_PLAN_NOT_FOUND"

    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Installment plan {plan_id} not found")


class InstallmentNotFoundError(NotFoundError):
    """Installment number does not exist in the plan."""

    code: str = "INSTALLMENT_NOT_FOUND"

    def __init__(self, plan_id: str, installment_number: int):
        self.plan_id = plan_id
        self.installment_number = installment_number
        super().__init__(
            f"Installment #{installment_number} not found in plan {plan_id}"
        )


# Invalid-state exceptions


class InvalidStateError(PaymentsKernelError):
    """Base exception for operations forbidden by the current status."""

    code: str = "INVALID_STATE"


class InvalidEscrowTransitionError(InvalidStateError):
    """Escrow status has no edge for the attempted operation."""

    code: str = "INVALID_ESCROW_TRANSITION"

    def __init__(self, account_id: str, from_status: str, to_status: str):
        self.account_id = account_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Escrow account {account_id} cannot move from "
            f"'{from_status}' to '{to_status}'"
        )


class EscrowNotFundedError(InvalidStateError):
    """Release was requested on an account that is not FUNDED."""

    code: str = "ESCROW_NOT_FUNDED"

    def __init__(self, account_id: str, status: str):
        self.account_id = account_id
        self.status = status
        super().__init__(
            f"Escrow account {account_id} must be funded before requesting "
            f"release (status: {status})"
        )


class EscrowClosedError(InvalidStateError):
    """Account status no longer accepts deposits or condition updates."""

    code: str = "ESCROW_CLOSED"

    def __init__(self, account_id: str, status: str, operation: str):
        self.account_id = account_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} on escrow account {account_id} "
            f"(status: {status})"
        )


class InsufficientEscrowBalanceError(InvalidStateError):
    """Release amount exceeds the available escrow balance."""

    code: str = "INSUFFICIENT_ESCROW_BALANCE"

    def __init__(self, account_id: str, available: Decimal, requested: Decimal):
        self.account_id = account_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient escrow balance on {account_id}. "
            f"Available: {available}, Requested: {requested}"
        )


class PaymentNotCompletedError(InvalidStateError):
    """A ledger payment that has not completed cannot be deposited or recorded."""

    code: str = "PAYMENT_NOT_COMPLETED"

    def __init__(self, payment_id: str, status: str):
        self.payment_id = payment_id
        self.status = status
        super().__init__(
            f"Payment {payment_id} must be completed before it is recorded "
            f"(status: {status})"
        )


# Validation exceptions


class ValidationError(PaymentsKernelError):
    """Base exception for malformed inputs rejected by the engines."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Amount is malformed, a float, or violates a sign constraint."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


class InvalidScheduleError(ValidationError):
    """Installment schedule parameters are invalid."""

    code: str = "INVALID_SCHEDULE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid installment schedule: {reason}")


class InvalidFieldError(ValidationError):
    """A required identifier or text field is blank or malformed."""

    code: str = "INVALID_FIELD"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


class UnknownEscrowPartyError(ValidationError):
    """Approver is neither the buyer nor the seller of the escrow account."""

    code: str = "UNKNOWN_ESCROW_PARTY"

    def __init__(self, account_id: str, actor_id: str):
        self.account_id = account_id
        self.actor_id = actor_id
        super().__init__(
            f"{actor_id} is not the buyer or seller of escrow account {account_id}"
        )


class InvalidConfigurationError(ValidationError):
    """A configuration value is out of range."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, key: str, value: object, reason: str):
        self.key = key
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid configuration {key}={value!r}: {reason}")


# Concurrency exceptions


class ConcurrencyError(PaymentsKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Identifier exceptions


class IdentifierError(PaymentsKernelError):
    """Base exception for identifier allocation failures."""

    code: str = "IDENTIFIER_ERROR"


class AccountNumberExhaustedError(IdentifierError):
    """No unused escrow account number was found within the retry budget."""

    code: str = "ACCOUNT_NUMBER_EXHAUSTED"

    def __init__(self, prefix: str, attempts: int):
        self.prefix = prefix
        self.attempts = attempts
        super().__init__(
            f"Could not allocate a unique {prefix} account number "
            f"after {attempts} attempts"
        )
