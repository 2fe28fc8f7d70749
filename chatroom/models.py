import enum

from sqlalchemy import Column, Enum, Float, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class MessageKind(str, enum.Enum):
    # values are the ones the chat clients send and expect
    CHAT = "message"
    PRIVATE = "private_message"
    STATUS = "status"


class Participant(Base):
    __tablename__ = "participants"

    name = Column(String, primary_key=True)
    last_seen = Column(Float, nullable=False, index=True)  # epoch seconds

    def __repr__(self) -> str:
        return f"<Participant(name={self.name!r}, last_seen={self.last_seen})>"


class Message(Base):
    __tablename__ = "messages"
    # never hand out the id of a deleted message again
    __table_args__ = {"sqlite_autoincrement": True}

    # autoincrement id doubles as the insertion-order key
    id = Column(Integer, primary_key=True, autoincrement=True)
    from_ = Column("from", String, nullable=False, index=True)
    to = Column(String, nullable=False, index=True)
    text = Column(Text, nullable=False)
    type = Column(
        Enum(MessageKind, values_callable=lambda kinds: [k.value for k in kinds]),
        nullable=False,
    )
    time = Column(String, nullable=False)  # HH:MM:SS, display only

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, from={self.from_!r}, to={self.to!r})>"
