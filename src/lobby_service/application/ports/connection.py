from __future__ import annotations

from typing import Protocol


class Connection(Protocol):
    """Server-side handle to one client's stream.

    Implementations must hash by identity; the registry keys on them.
    """

    @property
    def peer(self) -> str: ...

    def send(self, record: bytes) -> None: ...

    def close(self) -> None: ...
