"""
Firebase Authentication
Verifies Firebase ID tokens and resolves the calling user for every request
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

import firebase_admin
from fastapi import Depends, Header
from firebase_admin import auth, credentials

from app.core.config import LEARNER_PROVIDERS
from app.core.errors import forbidden, unauthorized, ServiceError

logger = logging.getLogger(__name__)


class Config:
    """Validated configuration - fails fast on missing vars"""

    def __init__(self):
        self.FIREBASE_PROJECT_ID = self._require_env("FIREBASE_PROJECT_ID")
        self.FIREBASE_PRIVATE_KEY = self._require_env("FIREBASE_PRIVATE_KEY").replace('\\n', '\n')
        self.FIREBASE_CLIENT_EMAIL = self._require_env("FIREBASE_CLIENT_EMAIL")

    @staticmethod
    def _require_env(key: str) -> str:
        """Get required environment variable or crash"""
        value = os.getenv(key)
        if not value:
            raise RuntimeError(f"FATAL: Missing required environment variable: {key}")
        return value


# Global config instance
config: Optional[Config] = None


@dataclass
class AuthUser:
    """Identity supplied by the identity provider for one request"""
    uid: str
    email: Optional[str] = None
    role: str = "user"
    provider: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def init_firebase() -> None:
    """
    Initialize Firebase Admin SDK at app startup

    Raises:
        RuntimeError: If configuration invalid or Firebase init fails
    """
    global config

    try:
        config = Config()

        if not firebase_admin._apps:
            cred = credentials.Certificate({
                "type": "service_account",
                "project_id": config.FIREBASE_PROJECT_ID,
                "private_key": config.FIREBASE_PRIVATE_KEY,
                "client_email": config.FIREBASE_CLIENT_EMAIL,
                "token_uri": "https://oauth2.googleapis.com/token",
            })
            firebase_admin.initialize_app(cred)

        logger.info("Firebase Admin SDK initialized for project %s", config.FIREBASE_PROJECT_ID)

    except Exception as e:
        raise RuntimeError(f"FATAL: Firebase initialization failed: {e}")


def user_from_claims(decoded_token: dict) -> AuthUser:
    """Map verified token claims onto an AuthUser (role comes from custom claims)"""
    firebase_claims = decoded_token.get("firebase") or {}
    return AuthUser(
        uid=decoded_token["uid"],
        email=decoded_token.get("email"),
        role=decoded_token.get("role") or "user",
        provider=firebase_claims.get("sign_in_provider"),
    )


def verify_firebase_token(firebase_token: str) -> AuthUser:
    """
    Verify Firebase ID token

    Raises:
        ServiceError: 401 if the token is invalid or expired
    """
    if config is None:
        raise ServiceError(500, "internal_error", "Authentication system not initialized")

    try:
        decoded_token = auth.verify_id_token(firebase_token)
    except (auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError):
        raise unauthorized("Authentication failed")
    except ValueError:
        raise unauthorized("Authentication failed")

    return user_from_claims(decoded_token)


async def get_current_user(authorization: str = Header(None)) -> AuthUser:
    """
    FastAPI dependency resolving the caller from "Authorization: Bearer <id token>"
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise unauthorized()

    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise unauthorized()

    return verify_firebase_token(token)


def assert_learner_provider(user: AuthUser) -> None:
    """Learners must sign in through an allowed provider; admins are exempt"""
    if user.is_admin:
        return
    if user.provider not in LEARNER_PROVIDERS:
        raise unauthorized("Sign-in provider not allowed for this operation")


async def get_current_learner(user: AuthUser = Depends(get_current_user)) -> AuthUser:
    """Dependency: authenticated user signed in through an allowed provider"""
    assert_learner_provider(user)
    return user


async def get_current_admin(user: AuthUser = Depends(get_current_user)) -> AuthUser:
    """
    Dependency: authenticated user carrying the admin role claim

    Usage:
        @router.post("/admin/assignments")
        async def upsert(admin: AuthUser = Depends(get_current_admin)):
            ...
    """
    if not user.is_admin:
        raise forbidden("Admin privileges required")
    return user
