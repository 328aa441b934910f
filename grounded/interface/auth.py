"""Bearer-token verification against Firebase Authentication."""

import asyncio
import logging
from typing import Any, Protocol

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from firebase_admin.exceptions import FirebaseError

from grounded.core.config import Settings
from grounded.core.errors import AuthenticationError
from grounded.domain.user import AuthenticatedUser


logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "grounded"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


class IdentityVerifier(Protocol):
    """Turns a bearer token into the identity it was issued for."""

    async def verify(self, token: str) -> AuthenticatedUser:
        """Raise AuthenticationError if the token is not valid."""
        ...


def _build_credential(app_settings: Settings) -> credentials.Certificate:
    if app_settings.firebase_credentials_path:
        return credentials.Certificate(app_settings.firebase_credentials_path)

    private_key = app_settings.require_credential("firebase_private_key", "Firebase private key")
    return credentials.Certificate(
        {
            "type": "service_account",
            "project_id": app_settings.require_credential("firebase_project_id", "Firebase project ID"),
            "client_email": app_settings.require_credential("firebase_client_email", "Firebase client email"),
            # Keys stored in env files carry escaped newlines
            "private_key": private_key.replace("\\n", "\n"),
            "token_uri": GOOGLE_TOKEN_URI,
        }
    )


class FirebaseIdentityVerifier:
    """Verifies Firebase ID tokens with the Admin SDK."""

    def __init__(self, app: firebase_admin.App) -> None:
        self._app = app

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "FirebaseIdentityVerifier":
        """Initialise (or reuse) the Firebase app for these credentials.

        Raises:
            ValueError: If the service account credentials are not configured
        """
        try:
            app = firebase_admin.get_app(FIREBASE_APP_NAME)
        except ValueError:
            options: dict[str, Any] = {}
            if app_settings.firebase_project_id:
                options["projectId"] = app_settings.firebase_project_id
            app = firebase_admin.initialize_app(_build_credential(app_settings), options, name=FIREBASE_APP_NAME)
            logger.info("firebase_initialized", extra={"project_id": app_settings.firebase_project_id})
        return cls(app)

    async def verify(self, token: str) -> AuthenticatedUser:
        """Verify an ID token and return the identity it carries.

        The SDK call is blocking (it may fetch signing certificates), so it
        runs in a worker thread.

        Raises:
            AuthenticationError: If the token is expired, revoked or invalid
        """
        try:
            decoded = await asyncio.to_thread(firebase_auth.verify_id_token, token, app=self._app)
        except firebase_auth.ExpiredIdTokenError as e:
            raise AuthenticationError("Authentication token has expired") from e
        except (firebase_auth.RevokedIdTokenError, firebase_auth.InvalidIdTokenError, ValueError) as e:
            raise AuthenticationError("Invalid authentication token") from e
        except FirebaseError as e:
            logger.error("firebase_verification_failed", extra={"error": str(e)})
            raise AuthenticationError("Authentication failed") from e

        user = AuthenticatedUser(uid=decoded["uid"], email=decoded.get("email") or "", name=decoded.get("name"))
        logger.debug("user_authenticated", extra={"user_id": user.uid, "email": user.email})
        return user
