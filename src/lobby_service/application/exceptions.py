from __future__ import annotations

from lobby_service.domain.value_objects.enums import ErrorKind


class LobbyError(Exception):
    """Base lobby error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class RequestError(LobbyError):
    """A request was refused; branch on ``kind``."""

    def __init__(self, kind: ErrorKind, detail: str = "") -> None:
        self.kind = kind
        super().__init__(detail or kind.value)


class MalformedMessageError(LobbyError):
    pass


class UnknownActionError(MalformedMessageError):
    pass


class RequestTimeoutError(LobbyError):
    pass


class ConnectionFailureError(LobbyError):
    pass


class RegistrationFailureError(ConnectionFailureError):
    pass


class ConnectionClosedError(ConnectionFailureError):
    pass
