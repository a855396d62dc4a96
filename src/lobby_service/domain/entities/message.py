from __future__ import annotations

from dataclasses import dataclass

from lobby_service.domain.value_objects.ids import ClientId


@dataclass(frozen=True, slots=True)
class Message:
    """A relayed text message as seen by the recipient."""

    sender_id: ClientId | None
    body: str
