"""FastAPI dependency providers for collaborators created at startup."""

import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic_ai.models import Model

from grounded.core.db_client import DBClient
from grounded.core.errors import AuthenticationError
from grounded.domain.user import AuthenticatedUser
from grounded.interface.auth import IdentityVerifier


logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_db(request: Request) -> DBClient:
    return request.app.state.db


def get_model(request: Request) -> Model:
    return request.app.state.model


def get_identity_verifier(request: Request) -> IdentityVerifier:
    return request.app.state.identity_verifier


async def get_current_user(
    request: Request,
    bearer: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> AuthenticatedUser:
    """Resolve the caller from the ``Authorization: Bearer <token>`` header.

    Raises:
        AuthenticationError: If the header is missing or the token is invalid
    """
    if bearer is None or bearer.scheme.lower() != "bearer":
        logger.warning("auth_missing_token", extra={"path": request.url.path})
        raise AuthenticationError("No authentication token provided")
    if not bearer.credentials.strip():
        raise AuthenticationError("Invalid authentication token format")

    return await verifier.verify(bearer.credentials)
