from __future__ import annotations

import typing as t

if t.TYPE_CHECKING:
    from keygen_admin.http import Outcome


class AdminError(Exception):
    """Generic keygen-admin failure."""


class ConfigError(AdminError):
    """Required configuration is missing or malformed."""


class SelectionError(AdminError):
    """Operator input could not be used."""


class SignatureError(AdminError):
    """A response failed Keygen signature verification."""


class PaginationLimitError(AdminError):
    """A list endpoint kept returning full pages past the page cap."""


class OutcomeError(AdminError):
    """Base for failures that carry the request outcome that caused them."""

    def __init__(self, message: str, outcome: "Outcome"):
        super().__init__(message)
        self.outcome = outcome


class FetchError(OutcomeError):
    """A page of a list endpoint could not be fetched."""


class ApiError(OutcomeError):
    """The API rejected the request (4xx or an unexpected status)."""


class NetworkError(OutcomeError):
    """The service stayed unavailable through every retry."""
