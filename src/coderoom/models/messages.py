"""Wire models for the collaborative room protocol.

Inbound edit::

    {"event": "text_update", "type": "insert", "pos": 3, "value": "abc"}
    {"event": "text_update", "type": "delete", "from": 3, "to": 6}

Inbound control::

    {"event": "run_code", "language": "Python", "room": "r1"}

Outbound::

    {"event": "input_update", "update": {...}}
    {"event": "output_update", "update": "hi\\n"}
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from coderoom.models.enums import ControlEvent, UpdateEvent

TEXT_UPDATE = "text_update"


class InsertEdit(BaseModel):
    """Insert ``value`` at byte offset ``pos``."""

    event: Literal["text_update"] = TEXT_UPDATE
    type: Literal["insert"] = "insert"
    pos: int
    value: str


class DeleteEdit(BaseModel):
    """Delete the byte range ``[from, to)``."""

    model_config = ConfigDict(populate_by_name=True)

    event: Literal["text_update"] = TEXT_UPDATE
    type: Literal["delete"] = "delete"
    from_: int = Field(alias="from")
    to: int

    @property
    def count(self) -> int:
        return self.to - self.from_


EditOperation = Annotated[InsertEdit | DeleteEdit, Field(discriminator="type")]

_edit_adapter: TypeAdapter[InsertEdit | DeleteEdit] = TypeAdapter(EditOperation)


def parse_edit(data: dict[str, Any] | str | bytes) -> InsertEdit | DeleteEdit:
    """Validate a raw ``text_update`` message into an edit operation.

    Raises:
        pydantic.ValidationError: If the payload is not a well-formed edit.
    """
    if isinstance(data, str | bytes):
        return _edit_adapter.validate_json(data)
    return _edit_adapter.validate_python(data)


class ApiRequest(BaseModel):
    """Control message, received over the socket or the HTTP endpoint.

    ``language`` is kept as a free string so that an unknown tag reaches the
    execution dispatcher and is rejected there with an explicit
    ``unsupported language`` result.
    """

    event: ControlEvent
    language: str | None = None
    room: str | None = None


class OutboundUpdate(BaseModel):
    """Message pushed from a room to its connections."""

    event: UpdateEvent
    update: str | dict[str, Any]


class ControlResponse(BaseModel):
    """Synchronous answer to a control request."""

    status_code: int = 200
    message: str | None = None
    review: str | None = None

    def body(self) -> dict[str, str]:
        """Return the JSON body for the HTTP surface."""
        return self.model_dump(exclude={"status_code"}, exclude_none=True)


class CreateRoomRequest(BaseModel):
    """Body of ``POST /rooms``. A random id is used when ``id`` is omitted."""

    id: str | None = Field(default=None, min_length=1, max_length=128)
