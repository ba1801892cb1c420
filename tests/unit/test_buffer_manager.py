import pytest

from chat_relay.core.exceptions import UpstreamStreamError
from chat_relay.services.chat.buffer_manager import SSELineBuffer


class TestSSELineBuffer:
    def test_complete_lines_are_returned(self):
        buffer = SSELineBuffer()
        assert buffer.feed(b"data: a\n\ndata: b\n") == ["data: a", "", "data: b"]
        assert buffer.buffer == ""

    def test_partial_line_is_retained(self):
        buffer = SSELineBuffer()
        assert buffer.feed(b"data: {\"con") == []
        assert buffer.feed(b"tent\": 1}\n") == ['data: {"content": 1}']

    def test_crlf_line_endings(self):
        buffer = SSELineBuffer()
        assert buffer.feed(b"data: a\r\n\r\n") == ["data: a", ""]

    def test_multibyte_character_split_across_chunks(self):
        encoded = "data: привет\n".encode("utf-8")
        # split inside the first Cyrillic character
        split_at = encoded.index(b"data: ") + len(b"data: ") + 1
        buffer = SSELineBuffer()
        assert buffer.feed(encoded[:split_at]) == []
        assert buffer.feed(encoded[split_at:]) == ["data: привет"]

    def test_flush_returns_remainder(self):
        buffer = SSELineBuffer()
        buffer.feed(b"data: tail")
        assert buffer.flush() == "data: tail"
        assert buffer.flush() == ""

    def test_oversized_partial_line_raises(self):
        buffer = SSELineBuffer(max_buffer_size=16)
        with pytest.raises(UpstreamStreamError) as exc_info:
            buffer.feed(b"data: " + b"x" * 32)
        assert exc_info.value.error_code == "stream_line_too_long"
        assert buffer.buffer == ""

    def test_long_complete_lines_are_fine(self):
        buffer = SSELineBuffer(max_buffer_size=16)
        line = b"data: " + b"x" * 32
        assert buffer.feed(line + b"\n") == [line.decode()]
