from dataclasses import dataclass
from typing import Any, Dict, List

ALLOWED_ROLES = ("system", "user", "assistant")

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 800
DEFAULT_TOP_P = 1


@dataclass
class ChatMessage:
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatRequest:
    """A validated chat request with defaults applied."""
    messages: List[ChatMessage]
    model: str
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    stream: bool = False
    top_p: float = DEFAULT_TOP_P

    @classmethod
    def from_body(cls, body: Dict[str, Any], default_model: str) -> "ChatRequest":
        """Build from an already validated request body."""
        return cls(
            messages=[ChatMessage(role=m["role"], content=m["content"]) for m in body["messages"]],
            model=body.get("model") or default_model,
            temperature=_or_default(body.get("temperature"), DEFAULT_TEMPERATURE),
            max_tokens=_or_default(body.get("max_tokens"), DEFAULT_MAX_TOKENS),
            stream=bool(body.get("stream", False)),
        )

    def to_upstream_body(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
            "stream": self.stream,
        }


def _or_default(value, default):
    return default if value is None else value
