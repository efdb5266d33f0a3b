"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    kind = "domain_error"


class InvalidInput(DomainException):
    """Request data is malformed or out of range"""

    kind = "invalid_input"


class Forbidden(DomainException):
    """Actor role does not own the status field being mutated"""

    kind = "forbidden"


class IllegalTransition(DomainException):
    """Requested change violates the approval phase ordering"""

    kind = "illegal_transition"


class InsufficientCredit(DomainException):
    """Drawdown exceeds the importer's available credit"""

    kind = "insufficient_credit"

    def __init__(self, message: str, available_cents: int):
        super().__init__(message)
        self.available_cents = available_cents


class NotFound(DomainException):
    """Referenced entity does not exist or is outside the caller's scope"""

    kind = "not_found"


class StorageConflict(DomainException):
    """Optimistic version check detected a concurrent write"""

    kind = "storage_conflict"
