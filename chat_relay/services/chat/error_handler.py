"""
Formatting of mid-stream errors as SSE events.
"""
import json

import httpx

from ...core.exceptions import UpstreamStreamError


class StreamingErrorHandler:
    """
    Formats streaming errors without logging them
    (the relay logs before asking for the frame).
    """

    def format_sse_error(self, message: str, code: str) -> bytes:
        error_payload = {
            "error": {
                "message": message,
                "type": "stream_error",
                "code": code
            }
        }
        return f"data: {json.dumps(error_payload, ensure_ascii=False)}\n\n".encode('utf-8')

    def format_streaming_error(self, error: Exception) -> bytes:
        if isinstance(error, UpstreamStreamError):
            return self.format_sse_error(error.message, error.error_code)
        if isinstance(error, httpx.HTTPError):
            return self.format_sse_error(
                f"Connection to provider failed mid-stream: {str(error) or type(error).__name__}",
                "provider_network_error"
            )
        return self.format_sse_error(
            f"An unexpected error occurred during streaming: {error}",
            "unexpected_streaming_error"
        )
