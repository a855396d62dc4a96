"""Attribute values stored verbatim by the server.

Attribute values are any JSON value (int, float, bool, str, object, array).
Python's ``int`` covers both int and long, ``float`` covers float and double.
"""
from __future__ import annotations

from typing import TypeAlias

from pydantic import JsonValue

Value: TypeAlias = JsonValue
Attributes: TypeAlias = dict[str, JsonValue]
