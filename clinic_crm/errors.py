"""
Error taxonomy shared by the services and mapped to HTTP responses in create_app().

    ValidationError       → 400  malformed input, no retry
    NotFoundError         → 404  row gone (often deleted by another session)
    PreconditionRequired  → 428  caller must collect more input and retry
    ConflictError         → 409  lost a concurrent uniqueness race after retries
    StoreUnavailable      → 503  transient database failure, safe to re-invoke
"""


class CRMError(Exception):
    """Base class for every error the services raise on purpose."""
    status_code = 500

    def to_dict(self):
        return {'error': str(self)}


class ValidationError(CRMError):
    """Malformed input (empty stage name, bad settings value, ...)."""
    status_code = 400


class NotFoundError(CRMError):
    """A referenced clinic, stage, lead or report does not exist for this tenant."""
    status_code = 404

    def __init__(self, kind, id):
        self.kind = kind
        self.id = id
        super().__init__(f"{kind} '{id}' not found")


class PreconditionRequired(CRMError):
    """
    Raised when deleting a stage that still holds leads and no target stage
    was given. Carries the lead ids so the caller can show a "move these N
    leads" flow before retrying.
    """
    status_code = 428

    def __init__(self, message, lead_ids=None):
        self.lead_ids = list(lead_ids or [])
        super().__init__(message)

    def to_dict(self):
        return {
            'error': str(self),
            'lead_count': len(self.lead_ids),
            'lead_ids': self.lead_ids,
        }


class StoreUnavailable(CRMError):
    """Transient I/O failure talking to the database."""
    status_code = 503


class ConflictError(CRMError):
    """A concurrent write won a uniqueness race and retrying did not help."""
    status_code = 409
