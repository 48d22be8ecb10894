"""Mention Resolver.

Two jobs:
    - Interactive suggestions while the client's cursor sits inside an
      unterminated ``@token`` (``active_token`` + ``suggest``).
    - Send-time annotation: ``@username`` tokens in the content are resolved
      to user ids and stored on the message. This is best effort; an
      unresolvable token is dropped, never an error.
"""
import logging
import re
from typing import Iterable, List, Optional, Set

from chatcore.store.schemas import RoomRecord
from chatcore.store.service import MessageStore
from chatcore.users.schemas import UserRecord
from chatcore.users.service import UserDirectory

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"^@(\w+)")
_ACTIVE_RE = re.compile(r"@(\w*)$")


def extract_mentions(content: str) -> Set[str]:
    """Collect the usernames of ``@`` tokens in a message.

    The content is split on whitespace; only tokens that start with ``@``
    count, trailing punctuation is ignored (``@bob,`` -> ``bob``) and a bare
    ``@`` yields nothing.
    """
    names = set()
    for token in content.split():
        match = _TOKEN_RE.match(token)
        if match:
            names.add(match.group(1))
    return names


def active_token(text: str, cursor: Optional[int] = None) -> Optional[str]:
    """Return the partial username being typed at ``cursor``, if any.

    ``"hey @bo"`` with the cursor at the end yields ``"bo"``; ``"hey @"``
    yields ``""`` (suggest everyone); ``"hey @bob "`` yields None.
    """
    before = text if cursor is None else text[:max(0, cursor)]
    match = _ACTIVE_RE.search(before)
    return match.group(1) if match else None


class MentionResolver:
    """Resolves @mentions against the user directory and room membership."""

    def __init__(
        self,
        directory: UserDirectory,
        store: MessageStore,
        suggestion_limit: int = 10,
        search_limit: int = 20,
    ) -> None:
        self.directory = directory
        self.store = store
        self.suggestion_limit = suggestion_limit
        self.search_limit = search_limit

    def resolve(
        self,
        content: str,
        explicit_ids: Optional[Iterable[str]] = None,
        room: Optional[RoomRecord] = None,
    ) -> List[str]:
        """User ids mentioned by a message about to be stored.

        Args:
            content: Message text; ``@username`` tokens are looked up.
            explicit_ids: Ids the client attached itself (HTTP path).
            room: For room messages, only members are kept.

        Returns:
            Sorted, de-duplicated user ids.
        """
        resolved: Set[str] = set()

        names = extract_mentions(content)
        if names:
            found = self.directory.find_by_usernames(names)
            resolved.update(user.id for user in found.values())
            dropped = {n for n in names if n.lower() not in found}
            if dropped:
                logger.debug(f"[Mentions] Dropping unknown mentions: {sorted(dropped)}")

        if explicit_ids:
            resolved.update(self.directory.get_many(explicit_ids).keys())

        if room is not None:
            members = set(room.member_ids())
            resolved &= members
        return sorted(resolved)

    def suggest(
        self,
        prefix: str,
        room_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[UserRecord]:
        """Ranked users whose username starts with ``prefix``.

        Args:
            prefix: Partial username (without the "@"), case-insensitive.
            room_id: Restrict suggestions to this room's members.
            limit: Override the configured suggestion limit.
        """
        restrict_to = None
        if room_id is not None:
            room = self.store.get_room(room_id)
            restrict_to = room.member_ids() if room else []
        return self.directory.search_prefix(
            prefix, limit=limit or self.suggestion_limit, restrict_to=restrict_to
        )

    def suggest_at_cursor(
        self, text: str, cursor: Optional[int] = None, room_id: Optional[str] = None
    ) -> List[UserRecord]:
        """Suggestions for whatever ``@token`` the cursor is in (empty if none)."""
        token = active_token(text, cursor)
        if token is None:
            return []
        return self.suggest(token, room_id=room_id)

    def search(self, query: str, limit: Optional[int] = None) -> List[UserRecord]:
        """Prefix-then-substring search used by the user picker."""
        return self.directory.search(query, limit=limit or self.search_limit)
