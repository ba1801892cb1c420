import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class PayloadShape(Enum):
    """Known shapes of an upstream SSE ``data:`` payload."""
    DELTA = "delta"                     # {"choices": [{"delta": {...}}]}
    CHOICE_CONTENT = "choice_content"   # {"choices": [{"content": "..."}]}
    FLAT_CONTENT = "flat_content"       # {"content": "..."} or {"text": "..."}
    DONE = "done"                       # [DONE]
    UNKNOWN = "unknown"                 # valid JSON, none of the above
    MALFORMED = "malformed"             # not JSON


@dataclass
class ParsedStreamEvent:
    """
    One ``data:`` line from the upstream stream, parsed once.

    Attributes:
        raw: Payload text after the ``data: `` prefix, whitespace stripped
        shape: Detected payload shape
        data: Parsed JSON (None for DONE and MALFORMED)
        error: JSON parse error message for MALFORMED payloads
    """
    raw: str
    shape: PayloadShape
    data: Optional[Any] = None
    error: Optional[str] = None

    @classmethod
    def from_line(cls, line: str) -> Optional["ParsedStreamEvent"]:
        """Parse an SSE line. Lines without the ``data: `` prefix yield None."""
        if not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):].strip()
        if payload == DONE_SENTINEL:
            return cls(raw=payload, shape=PayloadShape.DONE)

        try:
            data = json.loads(payload)
        except (json.JSONDecodeError, ValueError) as e:
            return cls(raw=payload, shape=PayloadShape.MALFORMED, error=str(e))

        from .format_detector import StreamFormatDetector
        return cls(raw=payload, shape=StreamFormatDetector.detect(data), data=data)

    @property
    def is_done(self) -> bool:
        return self.shape is PayloadShape.DONE

    @property
    def content(self) -> Optional[Any]:
        """Content fragment carried by the event, if its shape has one."""
        if self.shape is PayloadShape.DELTA:
            return self.data["choices"][0]["delta"].get("content")
        if self.shape is PayloadShape.CHOICE_CONTENT:
            return self.data["choices"][0]["content"]
        if self.shape is PayloadShape.FLAT_CONTENT:
            return self.data.get("content") or self.data.get("text")
        return None
