"""Mapping of operation errors to HTTP responses."""

import logging

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from pugqueue.errors import (
    ACCESS_DENIED,
    ALREADY_QUEUED,
    DRAFT_FINISHED,
    INVALID_STATE,
    LOBBY_FULL,
    NOT_CREATOR,
    NOT_FOUND,
    NOT_QUEUED,
    NOT_YOUR_TURN,
    REMOTE_ERROR,
    ROLE_UNAVAILABLE,
    VALIDATION_ERROR,
    LobbyError,
    RemoteServiceError,
)

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    VALIDATION_ERROR: 400,
    ACCESS_DENIED: 403,
    NOT_CREATOR: 403,
    NOT_FOUND: 404,
    NOT_QUEUED: 404,
    ROLE_UNAVAILABLE: 409,
    ALREADY_QUEUED: 409,
    LOBBY_FULL: 409,
    NOT_YOUR_TURN: 409,
    DRAFT_FINISHED: 409,
    INVALID_STATE: 409,
    REMOTE_ERROR: 502,
}


def http_error(error: LobbyError) -> HTTPException:
    """Build the HTTPException for an operation error."""
    return HTTPException(
        status_code=STATUS_BY_CODE.get(error.code, 400),
        detail=error.to_dict(),
    )


async def remote_service_error_handler(request: Request, exc: RemoteServiceError) -> JSONResponse:
    """Turn an unhandled collaborator failure into a 502 response."""
    logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=502,
        content={
            "detail": LobbyError(
                code=REMOTE_ERROR, message="A backing service is unavailable"
            ).to_dict()
        },
    )
