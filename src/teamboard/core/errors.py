# src/teamboard/core/errors.py

"""
Error taxonomy for the sync engine.

Backends raise these; the Session Manager and the Mutation Coordinator catch
them at the operation boundary and turn them into one user-facing status line
(see friendly_error_message). Nothing here is allowed to reach a push handler.
"""

from __future__ import annotations

from enum import StrEnum


class FailureKind(StrEnum):
    VALIDATION = "validation"
    DUPLICATE_EMAIL = "duplicate_email"
    WEAK_PASSWORD = "weak_password"
    USER_NOT_FOUND = "user_not_found"
    WRONG_PASSWORD = "wrong_password"
    NOT_FOUND = "not_found"
    STORE = "store"
    UNKNOWN = "unknown"


class TeamboardError(Exception):
    """Base error: a failure kind plus the raw detail from wherever it came from."""

    kind: FailureKind = FailureKind.UNKNOWN

    def __init__(self, detail: str = "", *, kind: FailureKind | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if kind is not None:
            self.kind = kind

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kind={self.kind.value!r}, detail={self.detail!r})"


class ValidationError(TeamboardError):
    """Missing required input. Raised before any network call."""

    kind = FailureKind.VALIDATION


class NotFoundError(TeamboardError):
    """Stale selection: the referenced user/task/document is gone."""

    kind = FailureKind.NOT_FOUND


class AuthError(TeamboardError):
    kind = FailureKind.UNKNOWN


class StoreError(TeamboardError):
    kind = FailureKind.STORE


class BlobError(StoreError):
    pass


_AUTH_MESSAGES: dict[FailureKind, str] = {
    FailureKind.DUPLICATE_EMAIL: "Email already registered.",
    FailureKind.WEAK_PASSWORD: "Password too weak (minimum 6 characters).",
    FailureKind.USER_NOT_FOUND: "User not found.",
    FailureKind.WRONG_PASSWORD: "Wrong password.",
}


def friendly_error_message(exc: BaseException, *, action: str) -> str:
    """
    Convert an exception into a short, user-facing status line.

    - recognized auth failures -> fixed messages
    - validation / not-found -> their own detail (already user-facing)
    - everything else -> "<action> failed: <raw detail>"
    """
    if isinstance(exc, TeamboardError):
        fixed = _AUTH_MESSAGES.get(exc.kind)
        if fixed is not None:
            return fixed
        if exc.kind in (FailureKind.VALIDATION, FailureKind.NOT_FOUND) and exc.detail:
            return exc.detail
        detail = exc.detail or exc.kind.value
    else:
        detail = str(exc) or exc.__class__.__name__
    return f"{action} failed: {detail}"
