"""DuckDB-based Message Store.

Durable record of messages, their mentions, rooms and room membership. The
rest of the core treats it as a transactional-per-document store with
query, sort and paginate capability; nothing outside this module issues SQL.

Database Schema:
    messages table:
        - id: UUID string primary key
        - seq: Monotonic sequence (tie-breaker for equal created_at)
        - sender_id: Author (required)
        - receiver_id / room_id: Exactly one is set (CHECK constraint)
        - content, message_type, status
        - created_at, updated_at: UTC timestamps
    message_mentions table: (message_id, user_id)
    rooms table: id, name, description, creator_id, is_private,
                 last_message_id, created_at, updated_at
    room_members table: (room_id, user_id) primary key, role, joined_at

Thread Safety:
    A DuckDB connection is NOT thread-safe. Every statement runs under a
    process-local re-entrant lock; the lock is never held across an await
    because the store itself is synchronous.

Usage:
    store = MessageStore.get_instance()
    record = store.insert_message(sender_id="a", receiver_id="b", content="hi")
    history = store.direct_history("a", "b")
"""
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import duckdb

from chatcore.clock import to_db, utcnow
from chatcore.errors import PersistenceError

from .schemas import (
    MemberRole,
    MessageRecord,
    MessageStatus,
    MessageType,
    RoomMember,
    RoomRecord,
)

logger = logging.getLogger(__name__)

_SCHEMA = [
    "CREATE SEQUENCE IF NOT EXISTS messages_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS messages (
        id           VARCHAR PRIMARY KEY,
        seq          BIGINT NOT NULL DEFAULT nextval('messages_seq'),
        sender_id    VARCHAR NOT NULL,
        receiver_id  VARCHAR,
        room_id      VARCHAR,
        content      VARCHAR NOT NULL,
        message_type VARCHAR NOT NULL DEFAULT 'text',
        status       VARCHAR NOT NULL DEFAULT 'sent',
        created_at   TIMESTAMP NOT NULL,
        updated_at   TIMESTAMP NOT NULL,
        CHECK ((receiver_id IS NULL) <> (room_id IS NULL))
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_room ON messages(room_id)",
    "CREATE INDEX IF NOT EXISTS idx_messages_sender ON messages(sender_id)",
    "CREATE INDEX IF NOT EXISTS idx_messages_receiver ON messages(receiver_id)",
    """
    CREATE TABLE IF NOT EXISTS message_mentions (
        message_id VARCHAR NOT NULL,
        user_id    VARCHAR NOT NULL,
        PRIMARY KEY (message_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rooms (
        id              VARCHAR PRIMARY KEY,
        name            VARCHAR NOT NULL,
        description     VARCHAR,
        creator_id      VARCHAR NOT NULL,
        is_private      BOOLEAN NOT NULL DEFAULT FALSE,
        last_message_id VARCHAR,
        created_at      TIMESTAMP NOT NULL,
        updated_at      TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS room_members (
        room_id   VARCHAR NOT NULL,
        user_id   VARCHAR NOT NULL,
        role      VARCHAR NOT NULL DEFAULT 'member',
        joined_at TIMESTAMP NOT NULL,
        PRIMARY KEY (room_id, user_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_room_members_user ON room_members(user_id)",
]

_MESSAGE_COLUMNS = (
    "id, seq, sender_id, receiver_id, room_id, content, "
    "message_type, status, created_at, updated_at"
)
_ROOM_COLUMNS = (
    "id, name, description, creator_id, is_private, "
    "last_message_id, created_at, updated_at"
)


class MessageStore:
    """Singleton service persisting chat documents in DuckDB.

    Attributes:
        _instance: Singleton instance of the service.
        _db_path: Path to the DuckDB database file.
    """

    _instance: Optional["MessageStore"] = None
    _db_path: str = "chat.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        """Open the database and create the schema if needed.

        Args:
            db_path: Path to DuckDB file. Defaults to "chat.duckdb".
        """
        if db_path:
            self._db_path = db_path
        self._lock = threading.RLock()
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialize_db()
        logger.info("[Store] Initialized with db=%s", self._db_path)

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "MessageStore":
        """Get or create the singleton instance.

        Args:
            db_path: Optional database path (only used on first call). Falls
                back to ``store.db_path`` from the settings file.
        """
        if cls._instance is None:
            if db_path is None:
                from chatcore.config import get_config
                db_path = get_config().store.db_path
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close the connection and clear the singleton (used by tests)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        conn = self._get_connection()
        for statement in _SCHEMA:
            conn.execute(statement)

    def _query(self, sql: str, params: Optional[list] = None) -> list:
        with self._lock:
            try:
                return self._get_connection().execute(sql, params or []).fetchall()
            except duckdb.Error as exc:
                logger.error("[Store] Query failed: %s", exc, exc_info=True)
                raise PersistenceError("Message store unavailable") from exc

    @contextmanager
    def _transaction(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """Run a block atomically; any storage error rolls everything back."""
        with self._lock:
            conn = self._get_connection()
            conn.begin()
            try:
                yield conn
                conn.commit()
            except duckdb.Error as exc:
                conn.rollback()
                logger.error("[Store] Transaction rolled back: %s", exc, exc_info=True)
                raise PersistenceError("Message store unavailable") from exc
            except Exception:
                conn.rollback()
                raise

    # =========================================================================
    # Messages
    # =========================================================================

    def insert_message(
        self,
        sender_id: str,
        content: str,
        receiver_id: Optional[str] = None,
        room_id: Optional[str] = None,
        message_type: MessageType = MessageType.TEXT,
        mention_ids: Sequence[str] = (),
    ) -> MessageRecord:
        """Persist a message and its mentions in one transaction.

        The message is either fully stored (with every mention row) or not
        stored at all.

        Raises:
            PersistenceError: On any storage failure, including a violation
                of the exactly-one-target constraint.
        """
        message_id = str(uuid.uuid4())
        now = utcnow()
        mentions = list(dict.fromkeys(mention_ids))
        with self._transaction() as conn:
            seq = conn.execute(
                """
                INSERT INTO messages
                  (id, sender_id, receiver_id, room_id, content,
                   message_type, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                RETURNING seq
                """,
                [
                    message_id, sender_id, receiver_id, room_id, content,
                    MessageType(message_type).value, MessageStatus.SENT.value,
                    to_db(now), to_db(now),
                ],
            ).fetchone()[0]
            for user_id in mentions:
                conn.execute(
                    "INSERT INTO message_mentions (message_id, user_id) VALUES (?, ?)",
                    [message_id, user_id],
                )

        logger.info(
            "[Store] Saved message %s from %s to %s",
            message_id, sender_id, room_id or receiver_id,
        )
        return MessageRecord(
            id=message_id,
            seq=seq,
            sender_id=sender_id,
            receiver_id=receiver_id,
            room_id=room_id,
            content=content,
            message_type=message_type,
            status=MessageStatus.SENT,
            mention_ids=mentions,
            created_at=now,
            updated_at=now,
        )

    def get_message(self, message_id: str) -> Optional[MessageRecord]:
        rows = self._query(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE id = ?", [message_id]
        )
        if not rows:
            return None
        return self._attach_mentions(rows)[0]

    def get_messages(self, message_ids: Iterable[str]) -> Dict[str, MessageRecord]:
        ids = sorted({mid for mid in message_ids if mid})
        if not ids:
            return {}
        rows = self._query(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE list_contains(?, id)", [ids]
        )
        return {record.id: record for record in self._attach_mentions(rows)}

    def update_message_status(
        self, message_id: str, status: MessageStatus
    ) -> Optional[MessageRecord]:
        """Overwrite a message's status. Callers enforce monotonicity."""
        self._query(
            "UPDATE messages SET status = ?, updated_at = ? WHERE id = ?",
            [MessageStatus(status).value, to_db(utcnow()), message_id],
        )
        return self.get_message(message_id)

    def direct_history(self, user_id: str, peer_id: str) -> List[MessageRecord]:
        """All direct messages between two users, oldest first."""
        rows = self._query(
            f"""
            SELECT {_MESSAGE_COLUMNS} FROM messages
            WHERE room_id IS NULL
              AND ((sender_id = ? AND receiver_id = ?)
                OR (sender_id = ? AND receiver_id = ?))
            ORDER BY created_at ASC, seq ASC
            """,
            [user_id, peer_id, peer_id, user_id],
        )
        return self._attach_mentions(rows)

    def room_messages(
        self, room_id: str, offset: int = 0, limit: int = 50
    ) -> List[MessageRecord]:
        """A page of room messages, newest first."""
        rows = self._query(
            f"""
            SELECT {_MESSAGE_COLUMNS} FROM messages
            WHERE room_id = ?
            ORDER BY created_at DESC, seq DESC
            LIMIT ? OFFSET ?
            """,
            [room_id, limit, offset],
        )
        return self._attach_mentions(rows)

    def latest_direct_per_peer(self, user_id: str) -> List[Tuple[str, MessageRecord]]:
        """Most recent direct message per distinct peer, newest first.

        Returns:
            List of (peer_id, message) pairs.
        """
        rows = self._query(
            f"""
            SELECT {_MESSAGE_COLUMNS} FROM (
                SELECT *,
                       row_number() OVER (
                           PARTITION BY CASE WHEN sender_id = ? THEN receiver_id ELSE sender_id END
                           ORDER BY created_at DESC, seq DESC
                       ) AS rn
                FROM messages
                WHERE room_id IS NULL AND (sender_id = ? OR receiver_id = ?)
            )
            WHERE rn = 1
            ORDER BY created_at DESC, seq DESC
            """,
            [user_id, user_id, user_id],
        )
        return [(record.peer_of(user_id), record) for record in self._attach_mentions(rows)]

    def _attach_mentions(self, rows: list) -> List[MessageRecord]:
        records = [self._row_to_message(row) for row in rows]
        if not records:
            return records
        mention_rows = self._query(
            "SELECT message_id, user_id FROM message_mentions "
            "WHERE list_contains(?, message_id) ORDER BY user_id",
            [[r.id for r in records]],
        )
        by_message: Dict[str, List[str]] = {}
        for message_id, user_id in mention_rows:
            by_message.setdefault(message_id, []).append(user_id)
        for record in records:
            record.mention_ids = by_message.get(record.id, [])
        return records

    # =========================================================================
    # Rooms
    # =========================================================================

    def create_room(
        self,
        name: str,
        creator_id: str,
        description: Optional[str] = None,
        is_private: bool = False,
        member_ids: Sequence[str] = (),
    ) -> RoomRecord:
        """Create a room with the creator as admin and ``member_ids`` as members."""
        room_id = str(uuid.uuid4())
        now = to_db(utcnow())
        members = [creator_id] + [uid for uid in dict.fromkeys(member_ids) if uid != creator_id]
        with self._transaction() as conn:
            conn.execute(
                f"""
                INSERT INTO rooms ({_ROOM_COLUMNS})
                VALUES (?, ?, ?, ?, ?, NULL, ?, ?)
                """,
                [room_id, name, description, creator_id, is_private, now, now],
            )
            for user_id in members:
                role = MemberRole.ADMIN if user_id == creator_id else MemberRole.MEMBER
                conn.execute(
                    "INSERT INTO room_members (room_id, user_id, role, joined_at) VALUES (?, ?, ?, ?)",
                    [room_id, user_id, role.value, now],
                )
        logger.info("[Store] Created room %s (%s) with %d members", room_id, name, len(members))
        return self.get_room(room_id)

    def get_room(self, room_id: str) -> Optional[RoomRecord]:
        rows = self._query(f"SELECT {_ROOM_COLUMNS} FROM rooms WHERE id = ?", [room_id])
        if not rows:
            return None
        return self._attach_members(rows)[0]

    def rooms_for_member(self, user_id: str) -> List[RoomRecord]:
        """Every room the user belongs to, most recently updated first."""
        rows = self._query(
            """
            SELECT r.id, r.name, r.description, r.creator_id, r.is_private,
                   r.last_message_id, r.created_at, r.updated_at
            FROM rooms r
            JOIN room_members m ON m.room_id = r.id
            WHERE m.user_id = ?
            ORDER BY r.updated_at DESC, r.created_at DESC
            """,
            [user_id],
        )
        return self._attach_members(rows)

    def set_last_message(self, room_id: str, message_id: str, at: datetime) -> None:
        self._query(
            "UPDATE rooms SET last_message_id = ?, updated_at = ? WHERE id = ?",
            [message_id, to_db(at), room_id],
        )

    def add_member(
        self, room_id: str, user_id: str, role: MemberRole = MemberRole.MEMBER
    ) -> RoomRecord:
        now = to_db(utcnow())
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO room_members (room_id, user_id, role, joined_at) VALUES (?, ?, ?, ?)",
                [room_id, user_id, MemberRole(role).value, now],
            )
            conn.execute("UPDATE rooms SET updated_at = ? WHERE id = ?", [now, room_id])
        return self.get_room(room_id)

    def remove_member(self, room_id: str, user_id: str) -> RoomRecord:
        now = to_db(utcnow())
        with self._transaction() as conn:
            conn.execute(
                "DELETE FROM room_members WHERE room_id = ? AND user_id = ?",
                [room_id, user_id],
            )
            conn.execute("UPDATE rooms SET updated_at = ? WHERE id = ?", [now, room_id])
        return self.get_room(room_id)

    def set_member_role(self, room_id: str, user_id: str, role: MemberRole) -> RoomRecord:
        now = to_db(utcnow())
        with self._transaction() as conn:
            conn.execute(
                "UPDATE room_members SET role = ? WHERE room_id = ? AND user_id = ?",
                [MemberRole(role).value, room_id, user_id],
            )
            conn.execute("UPDATE rooms SET updated_at = ? WHERE id = ?", [now, room_id])
        return self.get_room(room_id)

    def _attach_members(self, rows: list) -> List[RoomRecord]:
        rooms = [self._row_to_room(row) for row in rows]
        if not rooms:
            return rooms
        member_rows = self._query(
            "SELECT room_id, user_id, role, joined_at FROM room_members "
            "WHERE list_contains(?, room_id) ORDER BY joined_at ASC, user_id ASC",
            [[r.id for r in rooms]],
        )
        by_room: Dict[str, List[RoomMember]] = {}
        for room_id, user_id, role, joined_at in member_rows:
            by_room.setdefault(room_id, []).append(
                RoomMember(user_id=user_id, role=MemberRole(role), joined_at=joined_at)
            )
        for room in rooms:
            room.members = by_room.get(room.id, [])
        return rooms

    # =========================================================================
    # Internal
    # =========================================================================

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    @staticmethod
    def _row_to_message(row) -> MessageRecord:
        return MessageRecord(
            id=row[0],
            seq=row[1],
            sender_id=row[2],
            receiver_id=row[3],
            room_id=row[4],
            content=row[5],
            message_type=MessageType(row[6]),
            status=MessageStatus(row[7]),
            created_at=row[8],
            updated_at=row[9],
        )

    @staticmethod
    def _row_to_room(row) -> RoomRecord:
        return RoomRecord(
            id=row[0],
            name=row[1],
            description=row[2],
            creator_id=row[3],
            is_private=bool(row[4]),
            last_message_id=row[5],
            created_at=row[6],
            updated_at=row[7],
        )
