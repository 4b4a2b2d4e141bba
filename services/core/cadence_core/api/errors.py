"""Translate domain errors into HTTP errors."""

from fastapi import HTTPException, status

from cadence_core.domain.errors import (
    CadenceError,
    ContractError,
    InputError,
    InvalidStatusTransition,
    NotAuthenticated,
    SuggestionNotFound,
    UpstreamError,
    UpstreamTimeout,
)


def status_for(error: CadenceError) -> int:
    if isinstance(error, NotAuthenticated):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(error, InputError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, UpstreamTimeout):
        return status.HTTP_504_GATEWAY_TIMEOUT
    if isinstance(error, UpstreamError):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(error, ContractError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(error, SuggestionNotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, InvalidStatusTransition):
        return status.HTTP_409_CONFLICT
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def http_error(error: CadenceError) -> HTTPException:
    """Build an HTTPException whose detail carries the user-facing message."""
    return HTTPException(status_code=status_for(error), detail=error.to_dict())
