"""
Firebase authentication for FastAPI.

Verifies Firebase ID tokens; the verified user becomes the actor recorded on
every task change. With AUTH_ENABLED=false (local runs) the X-Actor header
names the actor instead.
"""

import os
from pathlib import Path
import firebase_admin
from firebase_admin import auth, credentials
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from reeltask.config import get_settings
from reeltask.logging_config import get_logger

logger = get_logger(__name__)

ANONYMOUS_ACTOR = "anonymous"


def _init_firebase():
    """Initialise the Firebase Admin SDK on first use."""
    try:
        firebase_admin.get_app()
        return
    except ValueError:
        pass

    # __file__ = backend/reeltask/auth.py -> .parent.parent = backend/
    backend_dir = Path(__file__).parent.parent

    possible_paths = [
        backend_dir / "serviceAccountKey.json",
        backend_dir / "firebase-service-account.json",
    ]
    possible_paths.extend(backend_dir.glob("*-firebase-adminsdk-*.json"))

    env_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS", "")
    if env_path:
        possible_paths.append(Path(env_path))

    for key_path in possible_paths:
        if key_path.exists() and key_path.is_file():
            firebase_admin.initialize_app(credentials.Certificate(str(key_path)))
            logger.info(f"Firebase Admin SDK initialized with: {key_path.name}")
            return

    logger.warning("No Firebase service account key found! Token verification may fail.")
    firebase_admin.initialize_app()


bearer = HTTPBearer(auto_error=False)


class AuthenticatedUser:
    """Represents an authenticated user (or the local stand-in when auth is off)."""

    def __init__(self, uid: str, email: str | None = None, name: str | None = None):
        self.uid = uid
        self.email = email
        self.name = name

    @property
    def actor(self) -> str:
        """Identity written to created_by/updated_by and the audit log."""
        return self.email or self.uid

    def __repr__(self):
        return f"AuthenticatedUser(uid={self.uid}, email={self.email})"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    x_actor: str | None = Header(default=None),
) -> AuthenticatedUser:
    """
    Verify the Firebase ID token and return the user.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired.
    """
    if not get_settings().auth_enabled:
        return AuthenticatedUser(uid=(x_actor or "").strip() or ANONYMOUS_ACTOR)

    if credentials is None:
        raise _unauthorized("Not authenticated")

    _init_firebase()
    try:
        decoded_token = auth.verify_id_token(credentials.credentials)
    except auth.ExpiredIdTokenError:
        logger.warning("Expired Firebase token")
        raise _unauthorized("Token has expired")
    except auth.InvalidIdTokenError:
        logger.warning("Invalid Firebase token")
        raise _unauthorized("Invalid authentication token")
    except Exception as e:
        logger.error(f"Authentication error: {e}")
        raise _unauthorized("Authentication failed")

    user = AuthenticatedUser(
        uid=decoded_token["uid"],
        email=decoded_token.get("email"),
        name=decoded_token.get("name"),
    )
    logger.debug(f"Authenticated user: {user.uid} ({user.email})")
    return user


async def get_actor(user: AuthenticatedUser = Depends(get_current_user)) -> str:
    return user.actor
