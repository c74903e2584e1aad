"""Exception hierarchy shared by services, repositories and controllers.

`ValidationError` subclasses `ValueError` so callers that already guard
service calls with `except ValueError` keep working.
"""

from datetime import datetime
from typing import Optional


class ExamHubError(Exception):
    """Base class for all application errors."""


class ValidationError(ExamHubError, ValueError):
    """Malformed input to an operation; never retried."""


class TokenError(ValidationError):
    """A reset or verification secret is unknown, expired or already used."""


class NotFoundError(ExamHubError, LookupError):
    """A referenced entity does not exist."""


class PersistenceError(ExamHubError):
    """The entity store failed to load or save a record."""


class AccountLockedError(ExamHubError):
    """Raised by the login flow while the account sits in its lockout window."""

    def __init__(self, lock_until: Optional[datetime]):
        super().__init__("account locked")
        self.lock_until = lock_until
