"""
Re-framing of parsed upstream events into outbound SSE bytes.
"""
import json
from typing import Any, Dict

from .parsed_event import ParsedStreamEvent, PayloadShape, DONE_SENTINEL

DONE_EVENT = f"data: {DONE_SENTINEL}\n\n".encode("utf-8")


class StreamFormatProcessor:
    """
    Turns each event into exactly one outbound SSE frame.

    DELTA, UNKNOWN and MALFORMED payloads are forwarded as received;
    CHOICE_CONTENT and FLAT_CONTENT are re-wrapped into the delta schema.
    """

    RESHAPED = (PayloadShape.CHOICE_CONTENT, PayloadShape.FLAT_CONTENT)

    @staticmethod
    def build_delta(content: Any) -> Dict[str, Any]:
        return {"choices": [{"delta": {"content": content}}]}

    @staticmethod
    def format_sse(payload: str) -> bytes:
        return f"data: {payload}\n\n".encode("utf-8")

    def format_event(self, event: ParsedStreamEvent) -> bytes:
        if event.is_done:
            return DONE_EVENT

        if event.shape in self.RESHAPED:
            delta = self.build_delta(event.content)
            return self.format_sse(json.dumps(delta, ensure_ascii=False, separators=(",", ":")))

        return self.format_sse(event.raw)
