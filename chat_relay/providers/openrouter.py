import httpx
from typing import Dict, Any, Optional, Tuple

from .base import BaseProvider, UpstreamStream


class OpenRouterProvider(BaseProvider):
    """OpenAI-compatible chat completion endpoint (OpenRouter by default)."""

    provider_name = "openrouter"

    def __init__(self, config: Dict[str, Any], client: httpx.AsyncClient):
        super().__init__(config, client)

    async def chat_completions(self, request_body: Dict[str, Any], request_id: Optional[str] = None) -> Tuple[int, Any]:
        body = dict(request_body, stream=False)
        return await self._post_json("/chat/completions", body, request_id)

    async def open_chat_stream(self, request_body: Dict[str, Any], request_id: Optional[str] = None) -> UpstreamStream:
        body = dict(request_body, stream=True)
        return await self._open_stream("/chat/completions", body, request_id)
