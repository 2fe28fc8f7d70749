from contextlib import contextmanager
from typing import Any, Iterable, Iterator, List, Optional

from sqlalchemy import create_engine, delete, func, or_, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .errors import Conflict, StorageError
from .logging_utils import log_event
from .models import Base, Message, MessageKind, Participant

DELETE_CHUNK_SIZE = 500


def _engine_connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


class Store:
    """Handle on the chat database.

    Each public call runs in its own short transaction; there is no state
    cached between calls.
    """

    def __init__(self, database_url: str) -> None:
        self.engine = create_engine(
            database_url,
            connect_args=_engine_connect_args(database_url),
        )
        self._sessions = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
        )
        self.participants = ParticipantStore(self)
        self.messages = MessageStore(self)

    def init_db(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    def ping(self) -> None:
        with self.session() as db:
            db.execute(text("SELECT 1"))

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self._sessions()
        try:
            yield db
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise Conflict() from exc
        except SQLAlchemyError as exc:
            db.rollback()
            log_event("error", "storage_error", error=exc.__class__.__name__)
            raise StorageError() from exc
        finally:
            db.close()


class ParticipantStore:
    def __init__(self, store: Store) -> None:
        self._store = store

    def find_by_name(self, name: str) -> Optional[Participant]:
        with self._store.session() as db:
            return db.get(Participant, name)

    def insert(self, participant: Participant) -> str:
        """Raises Conflict when the name is taken (primary key)."""
        with self._store.session() as db:
            db.add(participant)
        return participant.name

    def update_last_seen(self, name: str, timestamp: float) -> int:
        with self._store.session() as db:
            result = db.execute(
                update(Participant)
                .where(Participant.name == name)
                .values(last_seen=timestamp)
            )
            return result.rowcount

    def list_all(self) -> List[Participant]:
        with self._store.session() as db:
            return list(db.scalars(select(Participant)))

    def count(self) -> int:
        with self._store.session() as db:
            return db.scalar(select(func.count()).select_from(Participant)) or 0

    def find_stale(self, cutoff: float) -> List[Participant]:
        with self._store.session() as db:
            return list(
                db.scalars(select(Participant).where(Participant.last_seen < cutoff))
            )

    def delete_stale(
        self, cutoff: float, names: Optional[Iterable[str]] = None
    ) -> int:
        """Delete participants last seen before ``cutoff``.

        When ``names`` is given only those participants are candidates, so a
        participant that went stale after the caller looked is left alone.
        """
        stmt = delete(Participant).where(Participant.last_seen < cutoff)
        if names is None:
            with self._store.session() as db:
                return db.execute(stmt).rowcount

        names = list(names)
        deleted = 0
        # keep each IN (...) under SQLite's bound-parameter limit
        with self._store.session() as db:
            for start in range(0, len(names), DELETE_CHUNK_SIZE):
                chunk = names[start:start + DELETE_CHUNK_SIZE]
                deleted += db.execute(
                    stmt.where(Participant.name.in_(chunk))
                ).rowcount
        return deleted

    def delete(self, name: str) -> int:
        with self._store.session() as db:
            return db.execute(
                delete(Participant).where(Participant.name == name)
            ).rowcount


def _as_message_id(message_id: Any) -> Optional[int]:
    # ids are opaque to callers; anything that is not one of ours matches nothing
    if isinstance(message_id, bool):
        return None
    try:
        key = int(message_id)
    except (TypeError, ValueError):
        return None
    if not 0 < key < 2**63:
        return None
    return key


class MessageStore:
    def __init__(self, store: Store) -> None:
        self._store = store

    def insert(self, message: Message) -> int:
        with self._store.session() as db:
            db.add(message)
            db.flush()
            return message.id

    def insert_many(self, messages: List[Message]) -> List[int]:
        with self._store.session() as db:
            db.add_all(messages)
            db.flush()
            return [m.id for m in messages]

    def find_by_id(self, message_id: Any) -> Optional[Message]:
        key = _as_message_id(message_id)
        if key is None:
            return None
        with self._store.session() as db:
            return db.get(Message, key)

    def find_visible(
        self,
        viewer: Optional[str],
        broadcast: str,
        limit: Optional[int] = None,
    ) -> List[Message]:
        """Messages ``viewer`` may read, newest first."""
        clauses = [Message.type == MessageKind.CHAT, Message.to == broadcast]
        if viewer:
            clauses += [Message.from_ == viewer, Message.to == viewer]

        query = select(Message).where(or_(*clauses)).order_by(Message.id.desc())
        if limit is not None:
            query = query.limit(limit)

        with self._store.session() as db:
            return list(db.scalars(query))

    def update(self, message_id: Any, **fields: Any) -> int:
        key = _as_message_id(message_id)
        if key is None:
            return 0
        with self._store.session() as db:
            return db.execute(
                update(Message).where(Message.id == key).values(**fields)
            ).rowcount

    def delete(self, message_id: Any) -> int:
        key = _as_message_id(message_id)
        if key is None:
            return 0
        with self._store.session() as db:
            return db.execute(delete(Message).where(Message.id == key)).rowcount
