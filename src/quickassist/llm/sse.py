"""Incremental Server-Sent Events line decoding.

Chunks arrive from the network at arbitrary byte boundaries, so a chunk may
end in the middle of a UTF-8 sequence, a line, or a JSON payload. The decoder
keeps one incremental text decoder for the whole response and buffers the
trailing partial line until the next chunk completes it.
"""

import codecs
import json
import logging
from collections.abc import Iterator
from typing import Any

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class SSELineDecoder:
    """Turns a byte stream into complete text lines."""

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Decode a chunk and return the lines it completes.

        The last, possibly incomplete, line stays buffered.
        """
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return lines

    def flush(self) -> list[str]:
        """Return whatever remains buffered once the stream has ended."""
        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        return [remainder] if remainder.strip() else []


def parse_data_line(line: str) -> dict[str, Any] | None:
    """Extract the JSON payload of a ``data:`` line.

    Returns None for blank lines, comments, other SSE fields, the OpenAI
    ``[DONE]`` sentinel, and payloads that fail to parse. Parse failures are
    expected when a frame is malformed, so they are logged and skipped.
    """
    stripped = line.strip()
    if not stripped or stripped.startswith(":"):
        return None
    if not stripped.startswith(DATA_PREFIX):
        return None

    payload = stripped[len(DATA_PREFIX):].strip()
    if not payload or payload == DONE_SENTINEL:
        return None

    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("Failed to parse SSE data: %s", payload[:200])
        return None

    if not isinstance(data, dict):
        logger.debug("Ignoring non-object SSE payload: %s", payload[:200])
        return None
    return data


def iter_payloads(lines: list[str]) -> Iterator[dict[str, Any]]:
    """Yield parsed payloads for the ``data:`` lines among ``lines``."""
    for line in lines:
        data = parse_data_line(line)
        if data is not None:
            yield data
