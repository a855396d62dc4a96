"""BEL-delimited record framing shared by the server and the client.

Each record on the stream is followed by a single ``\\x07`` byte. Payloads
must never contain that byte; JSON text produced by the codec cannot.
"""
from __future__ import annotations

DELIMITER = b"\x07"


class FramingError(Exception):
    pass


def frame(record: bytes) -> bytes:
    """Return ``record`` terminated by the delimiter, ready for one write."""
    return record + DELIMITER


class RecordBuffer:
    """Accumulates stream bytes and hands out complete records in order."""

    def __init__(self, max_record_bytes: int | None = None) -> None:
        self._buf = bytearray()
        self._max = max_record_bytes

    def __len__(self) -> int:
        return len(self._buf)

    def feed(self, data: bytes) -> None:
        self._buf.extend(data)
        pending = len(self._buf) - (self._buf.rfind(DELIMITER) + 1)
        if self._max is not None and pending > self._max:
            raise FramingError(f"unterminated record exceeds {self._max} bytes")

    def read_record(self) -> bytes | None:
        """Pop the oldest complete record, or None if none is buffered yet."""
        idx = self._buf.find(DELIMITER)
        if idx < 0:
            return None
        record = bytes(self._buf[:idx])
        del self._buf[: idx + 1]
        return record

    def drain(self) -> list[bytes]:
        records: list[bytes] = []
        while (record := self.read_record()) is not None:
            records.append(record)
        return records
