"""Message authoring, visibility and ownership rules."""
from typing import TYPE_CHECKING, Any, List, Mapping, Optional

from .clock import Clock, format_time
from .errors import Forbidden, NotFound, UnknownAuthor, ValidationError
from .logging_utils import log_event
from .metrics import inc_chat_event
from .models import Message, MessageKind
from .sanitize import strip_markup
from .storage import Store
from .validation import parse_limit, validate_message

if TYPE_CHECKING:
    from .registry import ParticipantRegistry

JOIN_TEXT = "joined the room"
LEAVE_TEXT = "left the room"


def build_status_message(name: str, text: str, broadcast: str, now: float) -> Message:
    return Message(
        from_=name,
        to=broadcast,
        text=text,
        type=MessageKind.STATUS,
        time=format_time(now),
    )


class MessageService:
    def __init__(
        self,
        store: Store,
        registry: "ParticipantRegistry",
        clock: Clock,
        broadcast: str,
    ) -> None:
        self.store = store
        self.registry = registry
        self.clock = clock
        self.broadcast = broadcast

    def post(self, from_: Any, to: Any, text: Any, kind: Any) -> int:
        data, violations = validate_message(
            {"from": from_, "to": to, "text": text, "type": kind}
        )
        if violations:
            raise ValidationError(violations)

        if not self.registry.exists(data.from_):
            raise UnknownAuthor()

        message = Message(
            from_=data.from_,
            to=data.to,
            text=data.text,
            type=data.type,
            time=format_time(self.clock.now()),
        )
        message_id = self.store.messages.insert(message)
        inc_chat_event("message_posted")
        return message_id

    def record_status(self, name: str, text: str) -> int:
        """Write a system join/leave event for an already-validated name."""
        message = build_status_message(name, text, self.broadcast, self.clock.now())
        message_id = self.store.messages.insert(message)
        inc_chat_event("status_recorded")
        return message_id

    def list(self, viewer: Optional[str], limit: Any = None) -> List[Message]:
        """Visible messages for ``viewer``, newest first."""
        count, violations = parse_limit(limit)
        if violations:
            raise ValidationError(violations)

        viewer_name = strip_markup(viewer) if viewer is not None else None
        return self.store.messages.find_visible(
            viewer_name or None, self.broadcast, count
        )

    def _owned_message(self, message_id: Any, caller: Optional[str]) -> Message:
        message = self.store.messages.find_by_id(message_id)
        if message is None:
            raise NotFound()
        if message.from_ != strip_markup(caller):
            raise Forbidden()
        return message

    def remove(self, message_id: Any, caller: Optional[str]) -> None:
        message = self._owned_message(message_id, caller)
        if self.store.messages.delete(message.id) == 0:
            # removed concurrently between lookup and delete
            raise NotFound()
        inc_chat_event("message_deleted")
        log_event("info", "message_deleted", id=message.id, caller=message.from_)

    def edit(
        self, message_id: Any, caller: Optional[str], fields: Mapping[str, Any]
    ) -> None:
        data, violations = validate_message({**fields, "from": caller})
        if violations:
            raise ValidationError(violations)

        if not self.registry.exists(data.from_):
            raise UnknownAuthor()

        message = self._owned_message(message_id, data.from_)
        updated = self.store.messages.update(
            message.id, to=data.to, text=data.text, type=data.type
        )
        if updated == 0:
            raise NotFound()
        inc_chat_event("message_edited")
