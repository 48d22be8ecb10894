"""FastAPI dependencies for bearer-authenticated HTTP endpoints."""
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from chatcore.errors import AuthError
from chatcore.users.schemas import UserRecord

from .service import get_authenticator

# auto_error=False: a missing header must become a 401, not FastAPI's 403.
bearer_scheme = HTTPBearer(auto_error=False)


async def current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> UserRecord:
    """Resolve the request's bearer credential to a user or raise AuthError."""
    if credentials is None or not credentials.credentials:
        raise AuthError("Access token required")
    return get_authenticator().authenticate(credentials.credentials)
