"""Field-level validation for participant and message input.

Pydantic does the field checks; callers get a flat list of ``Violation``
objects back instead of a pydantic exception, so the services decide how
failures are reported.
"""
from typing import Any, Mapping, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import Violation
from .models import MessageKind
from .sanitize import strip_markup

M = TypeVar("M", bound=BaseModel)

MAX_LIMIT = 2**63 - 1


def _clean_required(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("must be a string")
    cleaned = strip_markup(value)
    if not cleaned:
        raise ValueError("must not be empty")
    return cleaned


class ParticipantIn(BaseModel):
    name: str

    @field_validator("name", mode="before")
    @classmethod
    def clean_name(cls, v: Any) -> str:
        return _clean_required(v)


class MessageIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(alias="from")
    to: str
    text: str
    type: MessageKind

    @field_validator("from_", "to", "text", mode="before")
    @classmethod
    def clean_text_fields(cls, v: Any) -> str:
        return _clean_required(v)

    @field_validator("type", mode="before")
    @classmethod
    def clean_type(cls, v: Any) -> Any:
        if isinstance(v, str) and not isinstance(v, MessageKind):
            return strip_markup(v)
        return v


def _violations(exc: PydanticValidationError) -> list[Violation]:
    out: list[Violation] = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())) or "body"
        if field == "from_":
            field = "from"
        message = err.get("msg", "invalid value")
        # pydantic prefixes messages raised from validators
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        out.append(Violation(field=field, message=message))
    return out


def _validate(
    model: Type[M], data: Mapping[str, Any]
) -> Tuple[Optional[M], list[Violation]]:
    try:
        return model.model_validate(dict(data)), []
    except PydanticValidationError as exc:
        return None, _violations(exc)


def validate_participant(
    data: Mapping[str, Any],
) -> Tuple[Optional[ParticipantIn], list[Violation]]:
    return _validate(ParticipantIn, data)


def validate_message(
    data: Mapping[str, Any],
) -> Tuple[Optional[MessageIn], list[Violation]]:
    return _validate(MessageIn, data)


def parse_limit(limit: Any) -> Tuple[Optional[int], list[Violation]]:
    """``None`` means unbounded; otherwise a positive integer is required."""
    if limit is None:
        return None, []
    if isinstance(limit, bool):
        return None, [Violation("limit", "must be a positive integer")]
    if isinstance(limit, int):
        value = limit
    elif isinstance(limit, str) and limit.strip().isdecimal():
        value = int(limit.strip())
    else:
        return None, [Violation("limit", "must be a positive integer")]
    if value <= 0:
        return None, [Violation("limit", "must be a positive integer")]
    if value > MAX_LIMIT:
        # more than the store can address is the same as no limit
        return None, []
    return value, []
