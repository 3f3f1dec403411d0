"""
Exception Hierarchy Module

Every rejection raised by the lending core derives from LendingError and
carries a message naming the specific condition that was not met.
"""

from typing import Optional


class LendingError(Exception):
    """Base exception for all lending core errors"""

    code = "lending_error"

    def __init__(self, message: str, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(LendingError, ValueError):
    """Input rejected before any state change (user-correctable)"""

    code = "validation_error"


class InvalidLoanTerms(ValidationError):
    """Principal or payment term outside the accepted range"""

    code = "invalid_loan_terms"


class PrerequisiteNotMet(LendingError):
    """Transition blocked by an unmet checklist item or missing role"""

    code = "prerequisite_not_met"

    def __init__(self, message: str, prerequisite: str, detail: Optional[dict] = None):
        super().__init__(message, detail)
        self.prerequisite = prerequisite


class ConflictError(LendingError):
    """The stored record no longer matches the state the caller expected"""

    code = "conflict"
    retryable = True


class InvalidStateTransition(ConflictError):
    """Transition requested from a state that is not its source state"""

    code = "invalid_state_transition"
    retryable = False


class StorageError(LendingError):
    """Storage backend failure"""

    code = "storage_error"
    retryable = True


class TransientStorageError(StorageError):
    """Storage failure that is expected to clear on retry (locks, timeouts)"""

    code = "transient_storage_error"


class ConfigurationError(LendingError):
    """Configuration could not be read or is malformed"""

    code = "configuration_error"


class LoanNotFound(LendingError):
    """Referenced loan does not exist"""

    code = "loan_not_found"


class PaymentNotFound(LendingError):
    """Referenced payment does not exist under the loan"""

    code = "payment_not_found"
