"""Durable, append-only conversation log backed by SQLite."""

from __future__ import annotations

import json
import threading
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from api_test_agent.core.errors import PersistenceError
from api_test_agent.core.utils.logger import get_logger
from api_test_agent.session.models import DEFAULT_TITLE, Conversation, Turn

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.engine import Engine

LOGGER = get_logger(__name__)

DATABASE_FILENAME = "conversations.db"

Base = declarative_base()


class ConversationRecord(Base):
    """One conversation header row."""

    __tablename__ = "conversation"

    id = Column(String, primary_key=True)
    project_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False, default=DEFAULT_TITLE)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False, index=True)


class MessageRecord(Base):
    """One turn of a conversation, in append order."""

    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(String, ForeignKey("conversation.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    content = Column(Text, nullable=False, default="")
    metadata_json = Column("metadata", Text, nullable=True)
    timestamp = Column(DateTime, nullable=False)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_conversation(record: ConversationRecord) -> Conversation:
    return Conversation(
        id=record.id,
        project_id=record.project_id,
        title=record.title,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class ConversationLog:
    """Conversation persistence for one project database.

    Every write commits before returning, so a crash right after a call
    never loses the turn it recorded.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self._engine: Engine = create_engine(
                f"sqlite:///{db_path}",
                connect_args={"check_same_thread": False},
            )
            Base.metadata.create_all(self._engine)
        except (OSError, SQLAlchemyError) as exc:
            raise PersistenceError(f"Cannot open conversation log at {db_path}: {exc}") from exc
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)

    @classmethod
    def for_project(cls, data_dir: Path, project_id: str) -> ConversationLog:
        return cls(data_dir / "projects" / project_id / DATABASE_FILENAME)

    def close(self) -> None:
        self._engine.dispose()

    # Conversations ------------------------------------------------------

    def create_conversation(
        self, project_id: str, conversation_id: str, title: str = DEFAULT_TITLE
    ) -> Conversation:
        now = _utcnow()
        record = ConversationRecord(
            id=conversation_id,
            project_id=project_id,
            title=title or DEFAULT_TITLE,
            created_at=now,
            updated_at=now,
        )
        with self._write("create conversation") as session:
            session.add(record)
        LOGGER.debug("Created conversation %s in project %s", conversation_id, project_id)
        return _to_conversation(record)

    def load_conversation(self, conversation_id: str) -> Conversation | None:
        with self._read("load conversation") as session:
            record = session.get(ConversationRecord, conversation_id)
            return _to_conversation(record) if record is not None else None

    def list_conversations(self, project_id: str) -> list[Conversation]:
        """Return the project's conversations, most recently updated first."""
        query = (
            select(ConversationRecord)
            .where(ConversationRecord.project_id == project_id)
            .order_by(ConversationRecord.updated_at.desc(), ConversationRecord.created_at.desc())
        )
        with self._read("list conversations") as session:
            return [_to_conversation(record) for record in session.scalars(query)]

    def update_title(self, conversation_id: str, title: str) -> None:
        with self._write("update title") as session:
            record = session.get(ConversationRecord, conversation_id)
            if record is None:
                raise PersistenceError(f"Conversation {conversation_id} does not exist")
            record.title = title
            record.updated_at = _utcnow()

    def delete_conversation(self, conversation_id: str) -> bool:
        with self._write("delete conversation") as session:
            record = session.get(ConversationRecord, conversation_id)
            if record is None:
                return False
            for message in session.scalars(
                select(MessageRecord).where(MessageRecord.conversation_id == conversation_id)
            ):
                session.delete(message)
            session.delete(record)
        return True

    # Messages -----------------------------------------------------------

    def save_message(self, conversation_id: str, turn: Turn) -> None:
        metadata = turn.metadata()
        with self._write("save message") as session:
            record = session.get(ConversationRecord, conversation_id)
            if record is None:
                raise PersistenceError(f"Conversation {conversation_id} does not exist")
            now = _utcnow()
            session.add(
                MessageRecord(
                    conversation_id=conversation_id,
                    type=turn.role,
                    content=turn.content,
                    metadata_json=json.dumps(metadata, ensure_ascii=False) if metadata else None,
                    timestamp=now,
                )
            )
            record.updated_at = now

    def get_messages(self, conversation_id: str) -> list[Turn]:
        query = (
            select(MessageRecord)
            .where(MessageRecord.conversation_id == conversation_id)
            .order_by(MessageRecord.id.asc())
        )
        with self._read("load messages") as session:
            rows = list(session.scalars(query))
        turns = []
        for row in rows:
            try:
                metadata = json.loads(row.metadata_json) if row.metadata_json else {}
            except json.JSONDecodeError as exc:
                raise PersistenceError(f"Corrupt metadata in message {row.id}: {exc}") from exc
            turns.append(Turn.from_record(row.type, row.content, metadata))
        return turns

    # Internal -----------------------------------------------------------

    @contextmanager
    def _transaction(self, action: str, *, write: bool) -> Iterator[Session]:
        with self._lock:
            session = self._session_factory()
            try:
                yield session
                if write:
                    session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise PersistenceError(f"Failed to {action}: {exc}") from exc
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def _write(self, action: str) -> AbstractContextManager[Session]:
        return self._transaction(action, write=True)

    def _read(self, action: str) -> AbstractContextManager[Session]:
        return self._transaction(action, write=False)


__all__ = ["ConversationLog", "ConversationRecord", "DATABASE_FILENAME", "MessageRecord"]
