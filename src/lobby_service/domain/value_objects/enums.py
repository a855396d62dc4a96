from __future__ import annotations

from enum import StrEnum


class ActionCode(StrEnum):
    REGISTER_CLIENT = "REGISTER_CLIENT"
    DISCONNECT = "DISCONNECT"
    REGISTER_ROOM = "REGISTER_ROOM"
    JOIN_ROOM = "JOIN_ROOM"
    LEAVE_ROOM = "LEAVE_ROOM"
    AUTOJOIN_ROOM = "AUTOJOIN_ROOM"
    GET_ROOM_INFO = "GET_ROOM_INFO"
    GET_ROOMS_INFO = "GET_ROOMS_INFO"
    SET_ROOM_ATTRIBUTES = "SET_ROOM_ATTRIBUTES"
    PUT_ROOM_ATTRIBUTE = "PUT_ROOM_ATTRIBUTE"
    SET_SERVER_ATTRIBUTES = "SET_SERVER_ATTRIBUTES"
    PUT_SERVER_ATTRIBUTE = "PUT_SERVER_ATTRIBUTE"
    GET_SERVER_ATTRIBUTES = "GET_SERVER_ATTRIBUTES"
    SEND_MESSAGE = "SEND_MESSAGE"
    BROADCAST_MESSAGE = "BROADCAST_MESSAGE"
    GET_MESSAGE = "GET_MESSAGE"


class ErrorKind(StrEnum):
    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
    ROOM_FULL = "ROOM_FULL"
    ALREADY_IN_ROOM = "ALREADY_IN_ROOM"


class Status(StrEnum):
    SUCCESS = "success"
    ERROR = "error"
