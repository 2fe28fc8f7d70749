from typing import Optional

from .clock import Clock, SystemClock
from .config import Settings
from .messages import MessageService
from .registry import ParticipantRegistry
from .storage import Store
from .sweeper import PresenceSweeper


class ChatRoom:
    """Builds the store, services and sweeper for one room from settings."""

    def __init__(
        self,
        settings: Settings,
        clock: Optional[Clock] = None,
        store: Optional[Store] = None,
    ) -> None:
        self.settings = settings
        self.clock = clock or SystemClock()
        self.store = store or Store(settings.DATABASE_URL)

        self.registry = ParticipantRegistry(self.store, self.clock)
        self.messages = MessageService(
            self.store, self.registry, self.clock, settings.BROADCAST_NAME
        )
        self.registry.messages = self.messages

        self.sweeper = PresenceSweeper(
            self.store,
            self.clock,
            settings.BROADCAST_NAME,
            interval=settings.SWEEP_INTERVAL_SECONDS,
            threshold=settings.INACTIVITY_THRESHOLD_SECONDS,
        )
