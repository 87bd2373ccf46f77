"""Error taxonomy for the Notion import pipeline.

Fatal errors (authentication, eligibility, project creation) abort a run.
Everything else is scoped to one collection or one entity type and ends up as
a line in ``ImportReport.errors``.
"""

from __future__ import annotations


class ImporterError(Exception):
    """Base exception for import errors."""

    pass


class ReferenceFormatError(ImporterError):
    """A collection reference matched none of the known id/URL formats."""

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Invalid Notion database reference: {reference}")


class SourceError(ImporterError):
    """Non-2xx answer (or transport failure) from the remote source."""

    def __init__(self, message: str, *, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class AuthenticationError(SourceError):
    """Token missing, invalid or expired (HTTP 401). Fatal for the run."""

    pass


class SourcePermissionError(SourceError):
    """Integration has no access to the collection (HTTP 403)."""

    pass


class NotFoundError(SourceError):
    """Collection does not exist or is not shared (HTTP 404)."""

    pass


class RemoteError(SourceError):
    """Any other upstream failure; carries the upstream message."""

    pass


class StoreWriteError(ImporterError):
    """The record store rejected a batch for one entity type."""

    def __init__(self, entity_type: str, message: str):
        self.entity_type = entity_type
        super().__init__(f"Failed to import {entity_type}: {message}")


class ProjectCreationError(StoreWriteError):
    def __init__(self, message: str):
        super().__init__("project", message)


class EligibilityError(ImporterError):
    """User has neither an active subscription nor a running trial."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("You need an active subscription or trial to import from Notion")


__all__ = [
    "ImporterError",
    "ReferenceFormatError",
    "SourceError",
    "AuthenticationError",
    "SourcePermissionError",
    "NotFoundError",
    "RemoteError",
    "StoreWriteError",
    "ProjectCreationError",
    "EligibilityError",
]
