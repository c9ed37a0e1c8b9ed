"""Reassembly of JSON messages split across transport frames.

The wallet sometimes splits a large reply over several WebSocket frames.
Each frame is first tried on its own; when that fails it is buffered
and the buffer is retried until it parses.
"""

from __future__ import annotations

import codecs
import json
from typing import Any

from .errors import ProtocolError


class _Incomplete:
    def __repr__(self) -> str:
        return "INCOMPLETE"


INCOMPLETE: Any = _Incomplete()
"""Returned by MessageReassembler.feed while a message is still partial."""


class MessageReassembler:
    """Accumulates raw fragments until they form one JSON document.

    ``bytes`` fragments go through an incremental UTF-8 decoder, so a
    fragment may end in the middle of a multibyte character.

    Owned by exactly one session; never shared.
    """

    def __init__(self, max_buffer_bytes: int | None = None) -> None:
        self.max_buffer_bytes = max_buffer_bytes
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")()

    @property
    def pending(self) -> int:
        """Number of buffered characters (and undecoded bytes) awaiting completion."""
        return len(self._buffer) + len(self._undecoded)

    @property
    def _undecoded(self) -> bytes:
        return self._decoder.getstate()[0]

    def reset(self) -> None:
        self._buffer = ""
        self._decoder.reset()

    def feed(self, fragment: str | bytes) -> Any:
        """Feed one transport payload.

        Returns:
            The decoded message, or INCOMPLETE if more fragments are needed.

        Raises:
            ProtocolError: If a fragment is not valid UTF-8, or the buffer
                outgrows ``max_buffer_bytes`` (the buffer is discarded first).
        """
        if isinstance(fragment, bytes):
            try:
                fragment = self._decoder.decode(fragment)
            except UnicodeDecodeError as e:
                self.reset()
                raise ProtocolError(f"fragment is not valid UTF-8 ({e}), buffer discarded") from e

        # Common case: one fragment is one message
        if not self._buffer and not self._undecoded:
            try:
                return json.loads(fragment)
            except json.JSONDecodeError:
                pass

        self._buffer += fragment
        if self.max_buffer_bytes is not None and len(self._buffer) > self.max_buffer_bytes:
            size = len(self._buffer)
            self.reset()
            raise ProtocolError(
                f"reassembly buffer exceeded {self.max_buffer_bytes} bytes ({size}), discarded"
            )

        if self._undecoded:
            return INCOMPLETE
        try:
            message = json.loads(self._buffer)
        except json.JSONDecodeError:
            return INCOMPLETE

        self._buffer = ""
        return message
