"""Participant registration and liveness tracking."""
from typing import Any, List, Optional

from .clock import Clock
from .errors import (
    ChatError,
    Conflict,
    NotFound,
    PartialFailure,
    StorageError,
    ValidationError,
)
from .logging_utils import log_event
from .messages import JOIN_TEXT, MessageService
from .metrics import inc_chat_event
from .models import Participant
from .sanitize import strip_markup
from .storage import Store
from .validation import validate_participant


class ParticipantRegistry:
    """Owns the participant records.

    ``messages`` is attached after construction because the message service
    itself needs the registry to check authorship.
    """

    def __init__(self, store: Store, clock: Clock) -> None:
        self.store = store
        self.clock = clock
        self.messages: Optional[MessageService] = None

    def register(self, name: Any) -> Participant:
        data, violations = validate_participant({"name": name})
        if violations:
            raise ValidationError(violations)
        clean_name = data.name

        # optimistic check; the primary key settles concurrent registrations
        if self.store.participants.find_by_name(clean_name) is not None:
            raise Conflict(f"participant {clean_name!r} already exists")

        participant = Participant(name=clean_name, last_seen=self.clock.now())
        self.store.participants.insert(participant)

        try:
            self.messages.record_status(clean_name, JOIN_TEXT)
        except ChatError as exc:
            rolled_back = self._forget(clean_name)
            log_event(
                "error",
                "partial_failure",
                step="join_message",
                name=clean_name,
                error=exc.__class__.__name__,
                participant_rolled_back=rolled_back,
            )
            raise PartialFailure(
                f"participant {clean_name!r} stored but join message failed"
            ) from exc

        inc_chat_event("participant_registered")
        log_event("info", "participant_registered", name=clean_name)
        return participant

    def _forget(self, name: str) -> bool:
        try:
            return self.store.participants.delete(name) > 0
        except StorageError:
            return False

    def heartbeat(self, name: Optional[str]) -> None:
        clean_name = strip_markup(name)
        if not clean_name:
            raise NotFound()
        matched = self.store.participants.update_last_seen(
            clean_name, self.clock.now()
        )
        if matched == 0:
            raise NotFound()

    def list(self) -> List[Participant]:
        return self.store.participants.list_all()

    def exists(self, name: Optional[str]) -> bool:
        clean_name = strip_markup(name)
        if not clean_name:
            return False
        return self.store.participants.find_by_name(clean_name) is not None
