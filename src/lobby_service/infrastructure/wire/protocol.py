"""Envelope model and per-action payload schemas.

On the wire every record is one flat JSON object:

    {"action": "JOIN_ROOM", "clientId": 3, "roomId": 0, "requestId": 7}
    {"action": "JOIN_ROOM", "status": "error", "error": "ROOM_FULL", "requestId": 7}
"""
from __future__ import annotations

import json
from typing import Any, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    JsonValue,
    NonNegativeInt,
    ValidationError,
)
from pydantic.alias_generators import to_camel

from lobby_service.application.exceptions import MalformedMessageError, UnknownActionError
from lobby_service.domain.entities.room_info import RoomInfo
from lobby_service.domain.value_objects.enums import ActionCode, ErrorKind, Status
from lobby_service.domain.value_objects.ids import ClientId, RoomId

_KNOWN_ACTIONS = frozenset(a.value for a in ActionCode)


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Envelope(WireModel):
    """One protocol message. Action-specific fields live in ``model_extra``."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    action: ActionCode
    client_id: NonNegativeInt | None = None
    request_id: NonNegativeInt | None = None
    status: Status | None = None
    error: ErrorKind | None = None

    @property
    def extras(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def get(self, key: str, default: Any = None) -> Any:
        return (self.model_extra or {}).get(key, default)

    @property
    def ok(self) -> bool:
        return self.status == Status.SUCCESS

    def to_wire(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True, mode="json", include={"action", "client_id", "request_id", "status", "error"})
        wire = {k: v for k, v in data.items() if v is not None}
        wire.update(self.extras)
        return wire


# --- request payloads ---

class RegisterRoomPayload(WireModel):
    capacity: NonNegativeInt


class JoinRoomPayload(WireModel):
    room_id: int


class AutojoinRoomPayload(WireModel):
    capacity: NonNegativeInt


class GetRoomInfoPayload(WireModel):
    room_id: int


class SetRoomAttributesPayload(WireModel):
    room_id: int
    attributes: dict[str, JsonValue]


class PutRoomAttributePayload(WireModel):
    room_id: int
    key: str
    value: JsonValue


class SetServerAttributesPayload(WireModel):
    attributes: dict[str, JsonValue]


class PutServerAttributePayload(WireModel):
    key: str
    value: JsonValue


class SendMessagePayload(WireModel):
    recipients: list[int]
    message: str


class BroadcastMessagePayload(WireModel):
    message: str


# --- response payloads ---

class RoomInfoPayload(WireModel):
    room_id: int
    capacity: int
    size: int
    attributes: dict[str, JsonValue] = Field(default_factory=dict)
    client_ids: list[int] = Field(default_factory=list)

    @classmethod
    def from_info(cls, info: RoomInfo) -> RoomInfoPayload:
        return cls(
            room_id=info.room_id,
            capacity=info.capacity,
            size=info.size,
            attributes=info.attributes,
            client_ids=list(info.client_ids),
        )

    def to_info(self) -> RoomInfo:
        return RoomInfo(
            room_id=RoomId(self.room_id),
            capacity=self.capacity,
            size=self.size,
            attributes=dict(self.attributes),
            client_ids=tuple(ClientId(c) for c in self.client_ids),
        )


class RoomsInfoPayload(WireModel):
    rooms_info: list[RoomInfoPayload]


class RegisterRoomResult(WireModel):
    room_id: int


class ServerAttributesResult(WireModel):
    attributes: dict[str, JsonValue] = Field(default_factory=dict)


class GetMessagePayload(WireModel):
    message: str
    sender_id: int | None = None


P = TypeVar("P", bound=WireModel)


def parse_payload(envelope: Envelope, schema: type[P]) -> P:
    """Validate the action-specific fields of ``envelope`` against ``schema``."""
    try:
        return schema.model_validate(envelope.extras)
    except ValidationError as exc:
        raise MalformedMessageError(
            f"{envelope.action} payload rejected: {exc.error_count()} error(s)"
        ) from exc


def build_payload(schema: type[P], **fields: Any) -> P:
    """Build an outgoing payload; invalid arguments raise MalformedMessageError."""
    try:
        return schema(**fields)
    except ValidationError as exc:
        raise MalformedMessageError(
            f"{schema.__name__} rejected: {exc.error_count()} error(s)"
        ) from exc


# --- construction helpers ---

def request(
    action: ActionCode,
    client_id: int | None = None,
    request_id: int | None = None,
    payload: WireModel | None = None,
) -> Envelope:
    fields = payload.model_dump(by_alias=True, mode="json") if payload is not None else {}
    return Envelope(action=action, client_id=client_id, request_id=request_id, **fields)


def success(action: ActionCode, request_id: int | None = None, payload: WireModel | None = None, **fields: Any) -> Envelope:
    if payload is not None:
        fields = {**payload.model_dump(by_alias=True, mode="json"), **fields}
    return Envelope(action=action, status=Status.SUCCESS, request_id=request_id, **fields)


def failure(action: ActionCode, kind: ErrorKind, request_id: int | None = None) -> Envelope:
    return Envelope(action=action, status=Status.ERROR, error=kind, request_id=request_id)


# --- codec ---

def encode(envelope: Envelope) -> bytes:
    return json.dumps(envelope.to_wire(), separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def decode(record: bytes) -> Envelope:
    """Parse one record.

    Raises UnknownActionError when the action tag is not recognised and
    MalformedMessageError for anything else that does not parse.
    """
    try:
        data = json.loads(record.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedMessageError(f"undecodable record: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedMessageError("record is not an object")

    action = data.get("action")
    if not isinstance(action, str):
        raise MalformedMessageError("record has no action")
    if action not in _KNOWN_ACTIONS:
        raise UnknownActionError(f"unknown action {action!r}")

    try:
        return Envelope.model_validate(data)
    except ValidationError as exc:
        raise MalformedMessageError(f"invalid envelope: {exc.error_count()} error(s)") from exc
