"""DuckDB-backed user directory.

The directory is the chat core's read model of the account system: it
resolves ids to display identities, usernames to ids for @mentions, and
answers the prefix/substring searches behind mention suggestions and the
"start a chat" picker. ``create_user`` exists for seeding and tests; real
account management is out of scope.

Database Schema:
    users table:
        - id: UUID string primary key
        - username: handle as registered
        - username_key: lower-cased handle (unique, used for lookups)
        - display_name, avatar
        - created_at: UTC timestamp

Usage:
    directory = UserDirectory.get_instance()
    bob = directory.create_user("bob")
    directory.search_prefix("bo")
"""
import logging
import threading
import uuid
from typing import Dict, Iterable, List, Optional

import duckdb

from chatcore.clock import to_db, utcnow
from chatcore.errors import PersistenceError, ValidationError

from .schemas import UserRecord

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS users (
    id           VARCHAR PRIMARY KEY,
    username     VARCHAR NOT NULL,
    username_key VARCHAR NOT NULL UNIQUE,
    display_name VARCHAR NOT NULL DEFAULT '',
    avatar       VARCHAR,
    created_at   TIMESTAMP NOT NULL
)
"""

_SELECT = "SELECT id, username, display_name, avatar, created_at FROM users"


class UserDirectory:
    """Singleton service for reading (and seeding) users in DuckDB."""

    _instance: Optional["UserDirectory"] = None
    _db_path: str = "users.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        if db_path:
            self._db_path = db_path
        self._lock = threading.RLock()
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialize_db()
        logger.info("[Users] Initialized with db=%s", self._db_path)

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "UserDirectory":
        """Get or create the singleton instance.

        Args:
            db_path: Optional database path (only used on first call). Falls
                back to ``store.users_db_path`` from the settings file.
        """
        if cls._instance is None:
            if db_path is None:
                from chatcore.config import get_config
                db_path = get_config().store.users_db_path
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close the connection and forget the singleton (used by tests)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        self._get_connection().execute(_CREATE_TABLE)

    def _query(self, sql: str, params: Optional[list] = None) -> list:
        with self._lock:
            try:
                return self._get_connection().execute(sql, params or []).fetchall()
            except duckdb.Error as exc:
                logger.error("[Users] Query failed: %s", exc, exc_info=True)
                raise PersistenceError("User directory unavailable") from exc

    # -----------------------------------------------------------------------
    # Seeding
    # -----------------------------------------------------------------------

    def create_user(
        self,
        username: str,
        display_name: str = "",
        avatar: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> UserRecord:
        """Insert a user. Usernames are unique case-insensitively."""
        username = username.strip()
        if not username:
            raise ValidationError("username required")
        if self.get_by_username(username) is not None:
            raise ValidationError("Username already taken")

        record = UserRecord(
            id=user_id or str(uuid.uuid4()),
            username=username,
            displayName=display_name or username,
            avatar=avatar,
            createdAt=utcnow(),
        )
        self._query(
            """
            INSERT INTO users (id, username, username_key, display_name, avatar, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                record.id,
                record.username,
                record.username.lower(),
                record.displayName,
                record.avatar,
                to_db(record.createdAt),
            ],
        )
        logger.info("[Users] Created user %s (%s)", record.id, record.username)
        return record

    # -----------------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------------

    def get(self, user_id: str) -> Optional[UserRecord]:
        rows = self._query(f"{_SELECT} WHERE id = ?", [user_id])
        return self._row_to_user(rows[0]) if rows else None

    def exists(self, user_id: str) -> bool:
        return self.get(user_id) is not None

    def get_by_username(self, username: str) -> Optional[UserRecord]:
        rows = self._query(f"{_SELECT} WHERE username_key = ?", [username.lower()])
        return self._row_to_user(rows[0]) if rows else None

    def get_many(self, user_ids: Iterable[str]) -> Dict[str, UserRecord]:
        """Resolve several ids at once; unknown ids are simply absent."""
        ids = sorted({uid for uid in user_ids if uid})
        if not ids:
            return {}
        rows = self._query(f"{_SELECT} WHERE list_contains(?, id)", [ids])
        return {row[0]: self._row_to_user(row) for row in rows}

    def find_by_usernames(self, usernames: Iterable[str]) -> Dict[str, UserRecord]:
        """Map lower-cased usernames to users; unknown names are absent."""
        keys = sorted({name.lower() for name in usernames if name})
        if not keys:
            return {}
        rows = self._query(f"{_SELECT} WHERE list_contains(?, username_key)", [keys])
        return {row[1].lower(): self._row_to_user(row) for row in rows}

    # -----------------------------------------------------------------------
    # Search
    # -----------------------------------------------------------------------

    def search_prefix(
        self,
        prefix: str,
        limit: int = 10,
        restrict_to: Optional[Iterable[str]] = None,
    ) -> List[UserRecord]:
        """Case-insensitive username prefix match.

        Ranking: exact match first, then shorter usernames, then alphabetical.
        An empty prefix matches everyone (the cursor sits right after "@").

        Args:
            prefix: Text typed after the "@".
            limit: Maximum number of users to return.
            restrict_to: Optional user ids to search within (room members).
        """
        key = prefix.strip().lower()
        sql = f"{_SELECT} WHERE starts_with(username_key, ?)"
        params: list = [key]
        if restrict_to is not None:
            ids = sorted(set(restrict_to))
            if not ids:
                return []
            sql += " AND list_contains(?, id)"
            params.append(ids)
        sql += " ORDER BY (username_key = ?) DESC, length(username_key), username_key LIMIT ?"
        params.extend([key, limit])
        return [self._row_to_user(row) for row in self._query(sql, params)]

    def search(self, query: str, limit: int = 20) -> List[UserRecord]:
        """Substring search over username and display name.

        Prefix matches on the username rank ahead of other substring hits.
        """
        key = query.strip().lower()
        if not key:
            return []
        rows = self._query(
            f"""
            {_SELECT}
            WHERE contains(username_key, ?) OR contains(lower(display_name), ?)
            ORDER BY starts_with(username_key, ?) DESC, length(username_key), username_key
            LIMIT ?
            """,
            [key, key, key, limit],
        )
        return [self._row_to_user(row) for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    @staticmethod
    def _row_to_user(row) -> UserRecord:
        return UserRecord(
            id=row[0],
            username=row[1],
            displayName=row[2],
            avatar=row[3],
            createdAt=row[4],
        )
