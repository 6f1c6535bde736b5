"""Translation of domain errors into HTTP errors."""

from fastapi import HTTPException, status

from claimflow.core.approval.errors import (
    AccessDeniedError,
    ApprovalError,
    ApprovalNotFoundError,
    TurnViolation,
    TurnViolationReason,
)
from claimflow.core.one_click import TokenErrorKind

TOKEN_ERROR_STATUS = {
    TokenErrorKind.INVALID_TOKEN: status.HTTP_400_BAD_REQUEST,
    TokenErrorKind.INVALID_ACTION: status.HTTP_400_BAD_REQUEST,
    TokenErrorKind.ALREADY_USED: status.HTTP_409_CONFLICT,
    TokenErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    TokenErrorKind.NOT_AN_APPROVER: status.HTTP_403_FORBIDDEN,
    TokenErrorKind.NOT_YOUR_TURN: status.HTTP_409_CONFLICT,
}


def http_error(exc: ApprovalError) -> HTTPException:
    if isinstance(exc, ApprovalNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, AccessDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc) or "Forbidden")
    if isinstance(exc, TurnViolation):
        if exc.reason == TurnViolationReason.NOT_AN_APPROVER:
            return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
