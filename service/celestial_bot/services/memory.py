"""
Conversation memory - threads and messages in a local SQLite database.

Each Telegram chat maps to one thread. Messages are append-only and read
back oldest-first as LLM context.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from celestial_bot.config import get_settings
from celestial_bot.logging_config import get_logger

logger = get_logger("memory")

TITLE_MAX_LENGTH = 50


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Thread(Base):
    __tablename__ = "threads"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    resource_id: Mapped[str] = mapped_column(String(128), index=True)
    title: Mapped[str] = mapped_column(String(128), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    thread_id: Mapped[str] = mapped_column(ForeignKey("threads.id"), index=True)
    role: Mapped[str] = mapped_column(String(16))
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


# Global engine/session factory (initialized once)
_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def init_db(database_url: Optional[str] = None) -> Engine:
    """Create the engine and tables. Safe to call more than once."""
    global _engine, _session_factory

    url = database_url or get_settings().database_url
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url == "sqlite://":
            kwargs["poolclass"] = StaticPool

    _engine = create_engine(url, **kwargs)
    Base.metadata.create_all(bind=_engine)
    _session_factory = sessionmaker(bind=_engine, autocommit=False, autoflush=False, expire_on_commit=False)

    logger.info(f"[MEMORY] Database ready at {url}")
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        init_db()
    return _engine


def get_session() -> Session:
    """New session bound to the shared engine."""
    if _session_factory is None:
        init_db()
    return _session_factory()


class ConversationStore:
    """Append-only conversation threads for the agent's memory."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_session

    def get_or_create_thread(self, thread_id: str, resource_id: str, first_message: str = "") -> Thread:
        """Get a thread, creating it (titled from the first message) if needed."""
        with self._session_factory() as db:
            thread = db.get(Thread, thread_id)
            if thread is None:
                title = first_message[:TITLE_MAX_LENGTH] + ('...' if len(first_message) > TITLE_MAX_LENGTH else '')
                thread = Thread(id=thread_id, resource_id=resource_id, title=title)
                db.add(thread)
                db.commit()
                db.refresh(thread)
                logger.info(f"[MEMORY] Thread created: {thread_id}")
            return thread

    def append_message(self, thread_id: str, role: str, content: str) -> Message:
        """Add a message to the end of a thread."""
        return self.append_messages(thread_id, [(role, content)])[0]

    def append_messages(self, thread_id: str, messages: List[Tuple[str, str]]) -> List[Message]:
        """Add (role, content) pairs to the end of a thread in one transaction."""
        with self._session_factory() as db:
            rows = [Message(thread_id=thread_id, role=role, content=content) for role, content in messages]
            db.add_all(rows)

            thread = db.get(Thread, thread_id)
            if thread is not None:
                thread.updated_at = _utcnow()

            db.commit()
            for row in rows:
                db.refresh(row)
            return rows

    def recent_messages(self, thread_id: str, limit: int = 20) -> List[Message]:
        """Last `limit` messages of a thread, oldest first."""
        with self._session_factory() as db:
            rows = db.scalars(
                select(Message)
                .where(Message.thread_id == thread_id)
                .order_by(Message.id.desc())
                .limit(limit)
            ).all()
            return list(reversed(rows))

    def clear_thread(self, thread_id: str) -> int:
        """Delete all messages of a thread. Returns the number removed."""
        with self._session_factory() as db:
            result = db.execute(delete(Message).where(Message.thread_id == thread_id))
            db.commit()
            logger.info(f"[MEMORY] Thread cleared: {thread_id} ({result.rowcount} messages)")
            return result.rowcount


# Global instance
_store: Optional[ConversationStore] = None


def get_conversation_store() -> ConversationStore:
    """Get or create conversation store singleton."""
    global _store
    if _store is None:
        _store = ConversationStore()
    return _store
