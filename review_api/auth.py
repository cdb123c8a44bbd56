"""
Authentication for the FastAPI API.

Passwords are stored as bcrypt digests; clients authenticate with a
JWT bearer token that binds the user id and expires after 30 days.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
import structlog
from bson import ObjectId
from fastapi import Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict

from review_api.config import APIConfig
from review_api.database import APIDatabaseService, get_db_service
from review_api.errors import ConflictError, UnauthorizedError
from review_api.models import AuthResponse, LoginRequest, SignupRequest
from storage.models import UserDocument

logger = structlog.get_logger(__name__)

# Security scheme; missing headers are reported by get_current_user, not FastAPI
security = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    """Identity attached to an authenticated request."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    id: ObjectId


def hash_password(password: str, rounds: int = 10) -> str:
    """Hash a password with a fresh bcrypt salt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Compare a plain-text password with a stored bcrypt digest."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # malformed digest or over-long password
        return False


def create_access_token(user_id: ObjectId, config: APIConfig) -> str:
    """
    Issue a signed bearer token for a user.

    Args:
        user_id: User the token is bound to
        config: Settings holding the secret, algorithm and lifetime

    Returns:
        Encoded JWT
    """
    issued_at = datetime.now(timezone.utc)
    payload = {
        "id": str(user_id),
        "iat": issued_at,
        "exp": issued_at + timedelta(days=config.token_expire_days),
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=config.jwt_algorithm)


def decode_access_token(token: str, config: APIConfig) -> ObjectId:
    """
    Verify a bearer token and return the user id it binds.

    Raises:
        UnauthorizedError: If the token is malformed, badly signed or expired
    """
    try:
        payload = jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        logger.info("Expired token presented")
        raise UnauthorizedError("Not authorized, token failed")
    except jwt.PyJWTError as e:
        logger.warning("Invalid token presented", error=str(e))
        raise UnauthorizedError("Not authorized, token failed")

    user_id = payload.get("id")
    if not isinstance(user_id, str) or not ObjectId.is_valid(user_id):
        logger.warning("Token without a valid subject presented")
        raise UnauthorizedError("Not authorized, token failed")

    return ObjectId(user_id)


class AuthService:
    """Signup and login on top of the users collection."""

    def __init__(self, db_service: APIDatabaseService, config: APIConfig):
        self.db_service = db_service
        self.config = config

    def _auth_response(self, user_id: ObjectId, username: str, email: str) -> AuthResponse:
        return AuthResponse(
            id=str(user_id),
            username=username,
            email=email,
            token=create_access_token(user_id, self.config),
        )

    async def register(self, payload: SignupRequest) -> AuthResponse:
        """
        Register a new user.

        The email is checked first, then the username; the unique indexes
        catch whatever slips between these checks and the insert.

        Raises:
            ConflictError: If the email or username is already taken
        """
        if await self.db_service.get_user_by_email(payload.email):
            raise ConflictError("User already exists with this email")
        if await self.db_service.get_user_by_username(payload.username):
            raise ConflictError("User already exists with this username")

        # bcrypt is CPU bound; keep it off the event loop
        digest = await run_in_threadpool(hash_password, payload.password, self.config.bcrypt_rounds)
        user = UserDocument(username=payload.username, email=payload.email, password=digest)
        user_id = await self.db_service.create_user(user)

        logger.info("User registered", user_id=str(user_id), username=user.username)
        return self._auth_response(user_id, user.username, user.email)

    async def login(self, payload: LoginRequest) -> AuthResponse:
        """
        Authenticate with email and password.

        Raises:
            UnauthorizedError: If the email is unknown or the password is wrong
        """
        user = await self.db_service.get_user_by_email(payload.email)

        if not user or not await run_in_threadpool(verify_password, payload.password, user["password"]):
            logger.warning("Failed login attempt", email=payload.email)
            raise UnauthorizedError("Invalid email or password")

        logger.info("User logged in", user_id=str(user["_id"]))
        return self._auth_response(user["_id"], user["username"], user["email"])


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> CurrentUser:
    """
    Verify the bearer token of a protected request.

    The token alone is trusted: the user is not looked up again.

    Raises:
        UnauthorizedError: If the token is missing or invalid
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Not authorized, no token")

    config: APIConfig = request.app.state.config
    return CurrentUser(id=decode_access_token(credentials.credentials, config))


def get_auth_service(
    request: Request,
    db_service: APIDatabaseService = Depends(get_db_service)
) -> AuthService:
    """FastAPI dependency building the signup/login service."""
    return AuthService(db_service, request.app.state.config)
