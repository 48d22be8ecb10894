"""JWT bearer credentials.

Credential issuance normally belongs to the account system; the core only
needs to verify what clients present. ``TokenService.issue`` is kept for
seeding, local development and tests.

Token claims:
    sub: user ID
    iat / exp: issue and expiry time (UTC)
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from chatcore.errors import AuthError
from chatcore.users.schemas import UserRecord
from chatcore.users.service import UserDirectory

logger = logging.getLogger(__name__)


class TokenService:
    """Issues and verifies HS256 bearer tokens."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        expire_minutes: int = 1440,
    ) -> None:
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    @classmethod
    def from_config(cls) -> "TokenService":
        from chatcore.config import get_config
        config = get_config()
        return cls(
            secret_key=config.secrets.jwt.secret_key,
            algorithm=config.secrets.jwt.algorithm,
            expire_minutes=config.auth.token_expire_minutes,
        )

    def issue(self, user_id: str, expires_in: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "iat": now,
            "exp": now + (expires_in or timedelta(minutes=self.expire_minutes)),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> str:
        """Return the user ID carried by a valid token.

        Raises:
            AuthError: If the token is missing, expired, malformed or has no
                subject.
        """
        if not token:
            raise AuthError("Access token required")
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise AuthError("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthError("Invalid token") from exc

        user_id = payload.get("sub")
        if not user_id:
            raise AuthError("Invalid token")
        return user_id


class Authenticator:
    """Resolves a bearer token to a known user.

    This is the identity-verification step that must succeed before a
    transport connection is admitted to the registry.
    """

    def __init__(self, tokens: TokenService, directory: UserDirectory) -> None:
        self.tokens = tokens
        self.directory = directory

    def authenticate(self, token: Optional[str]) -> UserRecord:
        user_id = self.tokens.verify(token or "")
        user = self.directory.get(user_id)
        if user is None:
            logger.warning("[Auth] Token for unknown user %s", user_id)
            raise AuthError("User not found")
        return user


def get_authenticator() -> Authenticator:
    """Build an Authenticator over the configured secret and directory."""
    return Authenticator(TokenService.from_config(), UserDirectory.get_instance())
