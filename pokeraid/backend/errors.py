"""Error types raised by the raid session service and stores."""

from __future__ import annotations


class RaidError(Exception):
    """Base for errors that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RaidValidationError(RaidError):
    status_code = 400


class RuleViolationError(RaidError):
    """Request was well-formed but the room state does not allow it."""

    status_code = 400


class UnauthorizedError(RaidError):
    status_code = 403


class NotFoundError(RaidError):
    status_code = 404


class ConflictError(RaidError):
    status_code = 409


class StoreError(RaidError):
    status_code = 500
