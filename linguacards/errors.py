from __future__ import annotations

from typing import Any


class LinguaCardsError(Exception):
    """Base class for domain errors raised by the services."""


class NotFoundError(LinguaCardsError, LookupError):
    pass


class ValidationError(LinguaCardsError, ValueError):
    pass


class PersistenceError(LinguaCardsError):
    """A query or transaction failed; nothing from the operation was committed."""


class QuotaExceededError(LinguaCardsError):
    """
    Daily card limit reached. Not a hard failure: the caller is expected to
    render a paywall from ``limit_info``.
    """

    def __init__(self, limit_info: Any):
        super().__init__("Daily cards limit exceeded")
        self.limit_info = limit_info
