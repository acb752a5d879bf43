"""
Persistent storage for threads, messages and partial shares.
Uses SQLite with one connection per thread and cascading deletes.
"""
import json
import secrets
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, List, Optional
from config import Config
from models.api_models import MessageStatus, Role, Visibility
from models.chat_models import Message, PartialShare, Thread
from utils.errors import (
    MessageNotInThreadError,
    PersistenceError,
    ShareConflictError,
    ThreadConflictError,
    ThreadNotFoundError,
)
from utils.logger import app_logger


def generate_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ChatRepository:
    """
    SQLite-backed repository for the thread, message and share collections.
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize the repository and create the schema if needed.

        Args:
            db_path: Path to SQLite database file (default: Config.DATABASE_PATH)
        """
        if db_path is None:
            db_path = Config.DATABASE_PATH

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._db_path = db_path
        self._local = threading.local()
        self._init_db()

        app_logger.info(f"Repository initialized with SQLite: {self._db_path}")

    def _get_conn(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, 'conn'):
            conn = sqlite3.connect(self._db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            # foreign_keys is per connection
            conn.execute("PRAGMA foreign_keys=ON")
            conn.execute("PRAGMA busy_timeout=5000")
            self._local.conn = conn
        return self._local.conn

    def _init_db(self) -> None:
        """Initialize database schema."""
        conn = self._get_conn()
        cursor = conn.cursor()

        # WAL mode for better concurrent read/write performance
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS threads (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                visibility TEXT NOT NULL,
                origin_thread_id TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                thread_id TEXT NOT NULL REFERENCES threads(id) ON DELETE CASCADE,
                role TEXT NOT NULL,
                content TEXT,
                parts TEXT,
                model TEXT,
                status TEXT NOT NULL,
                is_errored INTEGER NOT NULL DEFAULT 0,
                is_stopped INTEGER NOT NULL DEFAULT 0,
                error_message TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS partial_shares (
                token TEXT PRIMARY KEY,
                thread_id TEXT NOT NULL REFERENCES threads(id) ON DELETE CASCADE,
                user_id TEXT NOT NULL,
                shared_up_to_message_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        # indexes for faster lookups
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_threads_user ON threads(user_id, updated_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_messages_thread ON messages(thread_id, seq)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_shares_user ON partial_shares(user_id)")

        conn.commit()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        """Run statements in one transaction, mapping driver errors to PersistenceError."""
        conn = self._get_conn()
        try:
            yield conn.cursor()
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(str(e)) from e
        except Exception:
            conn.rollback()
            raise

    # --- Row mapping ---

    @staticmethod
    def _row_to_thread(row: sqlite3.Row) -> Thread:
        return Thread(
            id=row['id'],
            user_id=row['user_id'],
            title=row['title'],
            visibility=Visibility(row['visibility']),
            origin_thread_id=row['origin_thread_id'],
            created_at=datetime.fromisoformat(row['created_at']),
            updated_at=datetime.fromisoformat(row['updated_at'])
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> Message:
        return Message(
            id=row['id'],
            thread_id=row['thread_id'],
            role=Role(row['role']),
            content=row['content'],
            parts=json.loads(row['parts']) if row['parts'] is not None else None,
            model=row['model'],
            status=MessageStatus(row['status']),
            is_errored=bool(row['is_errored']),
            is_stopped=bool(row['is_stopped']),
            error_message=row['error_message'],
            created_at=datetime.fromisoformat(row['created_at']),
            updated_at=datetime.fromisoformat(row['updated_at'])
        )

    @staticmethod
    def _row_to_share(row: sqlite3.Row) -> PartialShare:
        return PartialShare(
            token=row['token'],
            thread_id=row['thread_id'],
            user_id=row['user_id'],
            shared_up_to_message_id=row['shared_up_to_message_id'],
            created_at=datetime.fromisoformat(row['created_at']),
            updated_at=datetime.fromisoformat(row['updated_at'])
        )

    # --- Thread Operations ---

    def create_thread(
        self,
        user_id: str,
        title: Optional[str] = None,
        visibility: Optional[Visibility] = None,
        origin_thread_id: Optional[str] = None
    ) -> Thread:
        now = _now()
        thread = Thread(
            id=generate_id(),
            user_id=user_id,
            title=title or Config.DEFAULT_THREAD_TITLE,
            visibility=visibility or Visibility.PRIVATE,
            origin_thread_id=origin_thread_id,
            created_at=now,
            updated_at=now
        )

        with self._transaction() as cursor:
            cursor.execute("""
                INSERT INTO threads (id, user_id, title, visibility, origin_thread_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (thread.id, thread.user_id, thread.title, thread.visibility.value,
                  thread.origin_thread_id, now.isoformat(), now.isoformat()))

        app_logger.debug(f"Thread created: {thread.id} for user {user_id}")
        return thread

    def find_thread(self, thread_id: str) -> Optional[Thread]:
        cursor = self._get_conn().execute("SELECT * FROM threads WHERE id = ?", (thread_id,))
        row = cursor.fetchone()
        return self._row_to_thread(row) if row else None

    def find_threads_by_user(self, user_id: str) -> List[Thread]:
        """Threads of a user, most recently updated first."""
        cursor = self._get_conn().execute(
            "SELECT * FROM threads WHERE user_id = ? ORDER BY updated_at DESC", (user_id,)
        )
        return [self._row_to_thread(row) for row in cursor.fetchall()]

    def update_thread_title(self, thread_id: str, title: str) -> Optional[Thread]:
        with self._transaction() as cursor:
            cursor.execute(
                "UPDATE threads SET title = ?, updated_at = ? WHERE id = ?",
                (title, _now().isoformat(), thread_id)
            )
        return self.find_thread(thread_id)

    def update_thread_visibility(self, thread_id: str, visibility: Visibility) -> Optional[Thread]:
        with self._transaction() as cursor:
            cursor.execute(
                "UPDATE threads SET visibility = ?, updated_at = ? WHERE id = ?",
                (visibility.value, _now().isoformat(), thread_id)
            )
        return self.find_thread(thread_id)

    def delete_thread(self, thread_id: str) -> int:
        """Delete a thread; its messages and shares go with it."""
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM threads WHERE id = ?", (thread_id,))
            deleted = cursor.rowcount

        if deleted:
            app_logger.info(f"Thread deleted: {thread_id} (messages and shares cascaded)")
        return deleted

    def branch_thread(
        self,
        user_id: str,
        original_thread_id: str,
        anchor_message_id: str,
        new_thread_id: Optional[str] = None
    ) -> Thread:
        """
        Copy a thread up to and including an anchor message into a new thread.

        The branch belongs to user_id, points back at the source through
        origin_thread_id and takes the source's visibility. Copied messages get
        new ids and keep their creation times.

        Raises:
            ThreadNotFoundError: the source thread does not exist
            MessageNotInThreadError: the anchor is not a message of the source thread
            ThreadConflictError: new_thread_id is already taken
        """
        now = _now()
        with self._transaction() as cursor:
            cursor.execute("SELECT * FROM threads WHERE id = ?", (original_thread_id,))
            row = cursor.fetchone()
            if row is None:
                raise ThreadNotFoundError(original_thread_id)
            original = self._row_to_thread(row)

            cursor.execute(
                "SELECT seq FROM messages WHERE id = ? AND thread_id = ?",
                (anchor_message_id, original_thread_id)
            )
            anchor = cursor.fetchone()
            if anchor is None:
                raise MessageNotInThreadError(anchor_message_id, original_thread_id)

            thread = Thread(
                id=new_thread_id or generate_id(),
                user_id=user_id,
                title=f"Branch of {original.title}",
                visibility=original.visibility,
                origin_thread_id=original_thread_id,
                created_at=now,
                updated_at=now
            )

            cursor.execute("SELECT 1 FROM threads WHERE id = ?", (thread.id,))
            if cursor.fetchone() is not None:
                raise ThreadConflictError(thread.id)

            cursor.execute("""
                INSERT INTO threads (id, user_id, title, visibility, origin_thread_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (thread.id, user_id, thread.title, thread.visibility.value,
                  original_thread_id, now.isoformat(), now.isoformat()))

            cursor.execute(
                "SELECT * FROM messages WHERE thread_id = ? AND seq <= ? ORDER BY seq ASC",
                (original_thread_id, anchor['seq'])
            )
            sources = cursor.fetchall()
            for source in sources:
                cursor.execute("""
                    INSERT INTO messages
                    (id, thread_id, role, content, parts, model, status, is_errored, is_stopped,
                     error_message, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (generate_id(), thread.id, source['role'], source['content'], source['parts'],
                      source['model'], source['status'], source['is_errored'], source['is_stopped'],
                      source['error_message'], source['created_at'], now.isoformat()))

        app_logger.info(
            f"Thread {original_thread_id} branched into {thread.id} at message {anchor_message_id} "
            f"({len(sources)} messages copied)"
        )
        return thread

    # --- Message Operations ---

    def create_message(
        self,
        thread_id: str,
        role: Role,
        content: Optional[str],
        parts: Any = None,
        model: Optional[str] = None,
        status: MessageStatus = MessageStatus.DONE,
        error_message: Optional[str] = None
    ) -> Message:
        """
        Insert a message into an existing thread.

        Raises:
            ThreadNotFoundError: the thread does not exist
            PersistenceError: the write failed
        """
        now = _now()
        message = Message(
            id=generate_id(),
            thread_id=thread_id,
            role=role,
            content=content,
            parts=parts,
            model=model,
            status=status,
            is_errored=status == MessageStatus.ERROR,
            is_stopped=status == MessageStatus.STOPPED,
            error_message=error_message if status == MessageStatus.ERROR else None,
            created_at=now,
            updated_at=now
        )

        with self._transaction() as cursor:
            cursor.execute("SELECT 1 FROM threads WHERE id = ?", (thread_id,))
            if cursor.fetchone() is None:
                raise ThreadNotFoundError(thread_id)

            cursor.execute("""
                INSERT INTO messages
                (id, thread_id, role, content, parts, model, status, is_errored, is_stopped,
                 error_message, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (message.id, thread_id, role.value, content,
                  json.dumps(parts) if parts is not None else None, model, status.value,
                  int(message.is_errored), int(message.is_stopped), message.error_message,
                  now.isoformat(), now.isoformat()))

            cursor.execute("UPDATE threads SET updated_at = ? WHERE id = ?", (now.isoformat(), thread_id))

        return message

    def find_message(self, message_id: str) -> Optional[Message]:
        cursor = self._get_conn().execute("SELECT * FROM messages WHERE id = ?", (message_id,))
        row = cursor.fetchone()
        return self._row_to_message(row) if row else None

    def find_messages_by_thread(self, thread_id: str) -> List[Message]:
        """Messages of a thread in creation order."""
        cursor = self._get_conn().execute(
            "SELECT * FROM messages WHERE thread_id = ? ORDER BY seq ASC", (thread_id,)
        )
        return [self._row_to_message(row) for row in cursor.fetchall()]

    def find_messages_up_to(self, thread_id: str, anchor_message_id: str) -> List[Message]:
        """Messages of a thread created up to and including the anchor message."""
        cursor = self._get_conn().execute("""
            SELECT * FROM messages
            WHERE thread_id = ?
              AND seq <= (SELECT seq FROM messages WHERE id = ? AND thread_id = ?)
            ORDER BY seq ASC
        """, (thread_id, anchor_message_id, thread_id))
        return [self._row_to_message(row) for row in cursor.fetchall()]

    def update_message_content(self, message_id: str, content: str, parts: Any = None) -> Optional[Message]:
        with self._transaction() as cursor:
            if parts is not None:
                cursor.execute(
                    "UPDATE messages SET content = ?, parts = ?, updated_at = ? WHERE id = ?",
                    (content, json.dumps(parts), _now().isoformat(), message_id)
                )
            else:
                cursor.execute(
                    "UPDATE messages SET content = ?, updated_at = ? WHERE id = ?",
                    (content, _now().isoformat(), message_id)
                )
        return self.find_message(message_id)

    def update_message_status(
        self,
        message_id: str,
        status: MessageStatus,
        error_message: Optional[str] = None
    ) -> Optional[Message]:
        """Update status; the error text is kept only for errored messages."""
        is_errored = status == MessageStatus.ERROR
        with self._transaction() as cursor:
            cursor.execute("""
                UPDATE messages
                SET status = ?, is_errored = ?, is_stopped = ?, error_message = ?, updated_at = ?
                WHERE id = ?
            """, (status.value, int(is_errored), int(status == MessageStatus.STOPPED),
                  error_message if is_errored else None, _now().isoformat(), message_id))
        return self.find_message(message_id)

    def delete_message(self, message_id: str) -> int:
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM messages WHERE id = ?", (message_id,))
            return cursor.rowcount

    def delete_trailing_messages(self, anchor_message_id: str, inclusive: bool = False) -> int:
        """
        Delete every message of the anchor's thread created after the anchor.

        Args:
            anchor_message_id: Message marking the cut
            inclusive: Also delete the anchor itself

        Returns:
            Number of deleted messages (0 when the anchor does not exist)
        """
        operator = ">=" if inclusive else ">"
        with self._transaction() as cursor:
            cursor.execute("SELECT thread_id, seq FROM messages WHERE id = ?", (anchor_message_id,))
            anchor = cursor.fetchone()
            if anchor is None:
                app_logger.info(f"Anchor message {anchor_message_id} not found for trailing delete")
                return 0

            cursor.execute(
                f"DELETE FROM messages WHERE thread_id = ? AND seq {operator} ?",
                (anchor['thread_id'], anchor['seq'])
            )
            deleted = cursor.rowcount

        app_logger.info(f"Deleted {deleted} messages trailing '{anchor_message_id}' (inclusive={inclusive})")
        return deleted

    # --- Partial Share Operations ---

    def create_partial_share(
        self,
        thread_id: str,
        user_id: str,
        shared_up_to_message_id: str,
        token: Optional[str] = None
    ) -> PartialShare:
        """
        Raises:
            ShareConflictError: the requested token is already taken
        """
        now = _now()
        share = PartialShare(
            token=token or secrets.token_urlsafe(16),
            thread_id=thread_id,
            user_id=user_id,
            shared_up_to_message_id=shared_up_to_message_id,
            created_at=now,
            updated_at=now
        )

        with self._transaction() as cursor:
            cursor.execute("SELECT 1 FROM partial_shares WHERE token = ?", (share.token,))
            if cursor.fetchone() is not None:
                raise ShareConflictError("Share token already exists")

            cursor.execute("""
                INSERT INTO partial_shares (token, thread_id, user_id, shared_up_to_message_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (share.token, thread_id, user_id, shared_up_to_message_id, now.isoformat(), now.isoformat()))

        return share

    def find_partial_share(self, token: str) -> Optional[PartialShare]:
        cursor = self._get_conn().execute("SELECT * FROM partial_shares WHERE token = ?", (token,))
        row = cursor.fetchone()
        return self._row_to_share(row) if row else None

    def find_partial_shares_by_user(self, user_id: str) -> List[PartialShare]:
        cursor = self._get_conn().execute(
            "SELECT * FROM partial_shares WHERE user_id = ? ORDER BY created_at DESC", (user_id,)
        )
        return [self._row_to_share(row) for row in cursor.fetchall()]

    def delete_partial_share(self, token: str, user_id: str) -> int:
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM partial_shares WHERE token = ? AND user_id = ?", (token, user_id))
            return cursor.rowcount

    def ping(self) -> None:
        """Raise PersistenceError when the database cannot be queried."""
        try:
            self._get_conn().execute("SELECT COUNT(*) FROM threads").fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e


_repository: ChatRepository | None = None


def get_repository() -> ChatRepository:
    """Get the process-wide repository instance."""
    global _repository
    if _repository is None:
        _repository = ChatRepository()
    return _repository
