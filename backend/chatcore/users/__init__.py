"""User directory (read model of the external account system)."""

from .schemas import UserPresence, UserRecord, UserSummary
from .service import UserDirectory

__all__ = [
    "UserDirectory",
    "UserPresence",
    "UserRecord",
    "UserSummary",
]
