from typing import NoReturn

from fastapi import HTTPException, status

from src.core.proposals import (
    ProposalForbiddenError,
    ProposalLockedError,
    ProposalNotFoundError,
    ProposalStateConflictError,
    ProposalTransitionError,
    ProposalValidationError,
)

HTTP_422_UNPROCESSABLE = getattr(
    status,
    "HTTP_422_UNPROCESSABLE_CONTENT",
    status.HTTP_422_UNPROCESSABLE_ENTITY,
)


def raise_proposal_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, ProposalValidationError):
        raise HTTPException(
            status_code=HTTP_422_UNPROCESSABLE,
            detail={"code": "PROPOSAL_VALIDATION_FAILED", "fields": exc.fields},
        ) from exc
    if isinstance(exc, ProposalNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ProposalForbiddenError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    if isinstance(exc, ProposalLockedError):
        raise HTTPException(status_code=status.HTTP_423_LOCKED, detail=str(exc)) from exc
    if isinstance(exc, ProposalStateConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, ProposalTransitionError):
        raise HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=str(exc)) from exc
    raise exc
