"""
Competition error taxonomy.

Services raise these; the HTTP layer renders them as
{"detail": message, "code": code} with the matching status code.
"""
from typing import Any, Dict, Optional


class CompetitionError(Exception):
    """Base class for recoverable, caller-visible competition errors"""

    default_code = "COMPETITION_ERROR"
    status_code = 400

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class InvalidInputError(CompetitionError):
    """Malformed or missing parameters (caller's fault)"""

    default_code = "INVALID_INPUT"
    status_code = 400


class StateError(CompetitionError):
    """Operation not valid for the current state of the entity"""

    default_code = "INVALID_STATE"
    status_code = 409


class NotFoundError(CompetitionError):
    """Referenced tournament, group, match or participant does not exist"""

    default_code = "NOT_FOUND"
    status_code = 404


class AlreadyResolvedError(CompetitionError):
    """A virtual participant was already substituted by a real one"""

    default_code = "ALREADY_RESOLVED"
    status_code = 409
