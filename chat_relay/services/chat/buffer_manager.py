"""
Line buffering and UTF-8 decoding for upstream SSE streams.
"""
import codecs
from typing import List

from ...core.exceptions import UpstreamStreamError


class SSELineBuffer:
    """
    Per-connection text buffer that yields complete lines.

    Chunks may split lines, or multi-byte characters, at any byte offset;
    the incremental decoder and the retained partial line make the emitted
    line sequence independent of where the splits fall.
    """

    def __init__(self, max_buffer_size: int = 1024 * 1024):
        """
        Args:
            max_buffer_size: Largest partial line, in characters, kept between chunks
        """
        self.max_buffer_size = max_buffer_size
        self.utf8_decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        self.buffer = ""

    def feed(self, chunk: bytes) -> List[str]:
        """
        Append a chunk and return the lines it completed.

        Raises:
            UpstreamStreamError: when the pending partial line outgrows max_buffer_size
        """
        self.buffer += self.utf8_decoder.decode(chunk, final=False)

        lines = self.buffer.split('\n')
        self.buffer = lines.pop()

        if len(self.buffer) > self.max_buffer_size:
            size = len(self.buffer)
            self.clear()
            raise UpstreamStreamError(
                f"Upstream line exceeded {self.max_buffer_size} characters ({size} buffered)",
                error_code="stream_line_too_long"
            )

        return [line.rstrip('\r') for line in lines]

    def flush(self) -> str:
        """Return whatever is left once the upstream has ended, and empty the buffer."""
        remaining = self.buffer + self.utf8_decoder.decode(b"", final=True)
        self.buffer = ""
        return remaining.rstrip('\r')

    def clear(self):
        self.buffer = ""
        self.utf8_decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
