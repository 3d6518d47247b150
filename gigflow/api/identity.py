"""
Identity Provider

Resolves the requesting user from a JWT carried either as
``Authorization: Bearer <token>`` or in the ``token`` cookie. The token's
``userId`` claim must name an existing user. Registration and login live
outside this service; ``issue_token`` exists for seeding and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Request
from starlette.requests import HTTPConnection

from gigflow.api.models import User
from gigflow.marketplace.errors import UnauthenticatedError
from gigflow.marketplace.user_store import UserStore
from gigflow.utils.logger import get_logger

logger = get_logger(__name__)

TOKEN_COOKIE = "token"
DEFAULT_TOKEN_LIFETIME = timedelta(days=7)


def issue_token(
    user_id: str,
    secret_key: str,
    algorithm: str = "HS256",
    expires_in: timedelta = DEFAULT_TOKEN_LIFETIME,
) -> str:
    """Sign a token carrying the ``userId`` claim."""
    payload = {"userId": user_id, "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(payload, secret_key, algorithm=algorithm)


class IdentityProvider:
    """Verifies bearer tokens and maps them to users."""

    def __init__(self, users: UserStore, secret_key: str, algorithm: str = "HS256"):
        self.users = users
        self.secret_key = secret_key
        self.algorithm = algorithm

    def issue_token(
        self, user_id: str, expires_in: timedelta = DEFAULT_TOKEN_LIFETIME
    ) -> str:
        return issue_token(user_id, self.secret_key, self.algorithm, expires_in)

    def decode_token(self, token: str) -> str:
        """
        Verify a token and return its user id.

        Raises:
            UnauthenticatedError: Expired, malformed or wrongly signed token
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise UnauthenticatedError("Not authorized, token expired")
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected token: {e}")
            raise UnauthenticatedError("Not authorized, token failed")

        user_id = payload.get("userId")
        if not user_id:
            raise UnauthenticatedError("Not authorized, token failed")
        return str(user_id)

    async def current_user(self, token: Optional[str]) -> User:
        """
        Resolve the user behind a token.

        Raises:
            UnauthenticatedError: No token, bad token, or unknown user
        """
        if not token:
            raise UnauthenticatedError("Not authorized, no token")

        user = await self.users.find_by_id(self.decode_token(token))
        if user is None:
            raise UnauthenticatedError("Not authorized, user not found")
        return user


def extract_token(connection: HTTPConnection) -> Optional[str]:
    """Bearer header first, then the ``token`` cookie."""
    header = connection.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return connection.cookies.get(TOKEN_COOKIE)


async def get_current_user(request: Request) -> User:
    """FastAPI dependency: the authenticated user or a 401."""
    identity: IdentityProvider = request.app.state.context.identity
    return await identity.current_user(extract_token(request))
