"""Typed errors raised by the custody transfer and audit engines.

Every error carries a machine-readable ``code`` and structured
``details`` so callers branch on type, never on message text.

    CustodyError
    +-- NotFound            unknown equipment, assignment, session, tag
    +-- PreconditionFailed  out-of-order or duplicate approval, action on
    |                       a terminal record, duplicate open audit
    +-- InvalidState        command not valid in the record's state
"""


class CustodyError(Exception):
    """Base class for custody engine errors."""

    code = "custody_error"

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def as_dict(self):
        return {"error": self.code, "message": self.message, **self.details}


class NotFound(CustodyError):
    code = "not_found"


class PreconditionFailed(CustodyError):
    code = "precondition_failed"


class InvalidState(CustodyError):
    code = "invalid_state"
