"""Domain errors for access control and authorization-state writes.

Routes translate these into HTTP responses via ``to_http_exception``; anything
not listed here propagates as a plain server error.
"""

import enum

from fastapi import HTTPException, status


class DecisionReason(str, enum.Enum):
    MASTER = "MASTER"
    GRANTED = "GRANTED"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    NOT_IN_SCOPE = "NOT_IN_SCOPE"
    INTEGRITY_VIOLATION = "INTEGRITY_VIOLATION"
    INVALID_OPERATION = "INVALID_OPERATION"


class AccessError(Exception):
    """Base class for domain-level denials."""

    reason = DecisionReason.NOT_IN_SCOPE
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.reason.value
        super().__init__(self.detail)


class UnauthenticatedError(AccessError):
    reason = DecisionReason.UNAUTHENTICATED
    status_code = status.HTTP_401_UNAUTHORIZED


class NotInScopeError(AccessError):
    reason = DecisionReason.NOT_IN_SCOPE
    status_code = status.HTTP_403_FORBIDDEN


class InvalidOperationError(AccessError):
    reason = DecisionReason.INVALID_OPERATION
    status_code = status.HTTP_403_FORBIDDEN


class IntegrityViolationError(AccessError):
    reason = DecisionReason.INTEGRITY_VIOLATION
    status_code = status.HTTP_409_CONFLICT


class PartyGraphUnavailable(Exception):
    """The store could not answer an authorization query."""


class OrganizationNotFound(LookupError):
    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__(f"Organization {organization_id} not found")


class GrantError(ValueError):
    """An authorization-state write was rejected."""

    status_code = status.HTTP_400_BAD_REQUEST


class DuplicatePartyError(GrantError):
    status_code = status.HTTP_409_CONFLICT


class DuplicateDotNumberError(GrantError):
    status_code = status.HTTP_409_CONFLICT


class PartyKindError(GrantError):
    """A party already carries a different kind-defining record."""

    status_code = status.HTTP_409_CONFLICT


class CafGenerationError(ValueError):
    pass


class SignatureError(ValueError):
    status_code = status.HTTP_400_BAD_REQUEST


class SignaturePermissionError(SignatureError):
    status_code = status.HTTP_403_FORBIDDEN


_DENIALS = {
    DecisionReason.UNAUTHENTICATED: UnauthenticatedError,
    DecisionReason.NOT_IN_SCOPE: NotInScopeError,
    DecisionReason.INVALID_OPERATION: InvalidOperationError,
    DecisionReason.INTEGRITY_VIOLATION: IntegrityViolationError,
}


def error_for_reason(reason: DecisionReason, detail: str | None = None) -> AccessError:
    return _DENIALS[reason](detail)


def to_http_exception(exc: Exception) -> HTTPException:
    if isinstance(exc, (AccessError, GrantError, SignatureError)):
        return HTTPException(status_code=exc.status_code, detail=str(exc))
    if isinstance(exc, OrganizationNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")
    if isinstance(exc, PartyGraphUnavailable):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not determine access",
        )
    if isinstance(exc, CafGenerationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    raise exc
