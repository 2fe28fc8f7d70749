"""Shared fixtures: a throwaway SQLite database and a hand-driven clock."""
import pytest
from fastapi.testclient import TestClient

from chatroom.chat import ChatRoom
from chatroom.clock import ManualClock
from chatroom.config import Settings
from chatroom.main import create_app

T0 = 1_700_000_000.0


@pytest.fixture
def settings(tmp_path):
    s = Settings()
    s.DATABASE_URL = f"sqlite:///{tmp_path / 'chat.db'}"
    s.BROADCAST_NAME = "Todos"
    s.INACTIVITY_THRESHOLD_SECONDS = 10.0
    s.SWEEP_INTERVAL_SECONDS = 1.0
    return s


@pytest.fixture
def clock():
    return ManualClock(T0)


@pytest.fixture
def room(settings, clock):
    room = ChatRoom(settings, clock=clock)
    room.store.init_db()
    try:
        yield room
    finally:
        room.store.dispose()


@pytest.fixture
def app(settings, clock):
    return create_app(settings, clock=clock, start_sweeper=False)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
