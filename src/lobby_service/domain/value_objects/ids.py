from __future__ import annotations

from typing import NewType

ClientId = NewType("ClientId", int)
RoomId = NewType("RoomId", int)
