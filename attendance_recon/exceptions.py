"""
Exception hierarchy for the reconciliation core

    ReconciliationError (base)
    ├── ImportFormatError      unreadable or malformed input table
    ├── MappingError           a required column could not be identified
    ├── InvalidStatusError     override outside the closed status set
    ├── RecordNotFoundError    no record with the given id in the queue
    ├── RecordLockedError      edit attempted after the record was reconciled
    ├── FinalizeBlockedError   finalize attempted with incomplete modules
    ├── NotFinalizedError      finalized output requested before finalize
    └── PermissionDeniedError  role may not mutate reconciliation state
"""


class ReconciliationError(Exception):
    """Base exception for all reconciliation errors"""
    error_type = 'ReconciliationError'

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self):
        result = {
            'error': self.error_type,
            'message': self.message
        }
        if self.details:
            result.update(self.details)
        return result

    def __str__(self):
        return f"{self.error_type}: {self.message}"


class ImportFormatError(ReconciliationError):
    error_type = 'ImportFormatError'


class MappingError(ReconciliationError):
    error_type = 'MappingError'


class InvalidStatusError(ReconciliationError):
    error_type = 'InvalidStatusError'


class RecordNotFoundError(ReconciliationError):
    error_type = 'RecordNotFoundError'


class RecordLockedError(ReconciliationError):
    error_type = 'RecordLockedError'


class FinalizeBlockedError(ReconciliationError):
    """Raised when finalize is attempted while modules are still open."""
    error_type = 'FinalizeBlockedError'

    def __init__(self, incomplete):
        self.incomplete = list(incomplete)
        message = "Cannot finalize! The following modules are incomplete: " + ", ".join(self.incomplete)
        super().__init__(message, {'incomplete': self.incomplete})


class PermissionDeniedError(ReconciliationError):
    error_type = 'PermissionDeniedError'


class NotFinalizedError(ReconciliationError):
    error_type = 'NotFinalizedError'
