"""
Chat Service Module

Coordinates one chat completion request through the proxy:
- body parsing and validation
- per-client rate limiting
- upstream provider instantiation (API key checked per request)
- buffered JSON passthrough or streamed SSE relay
"""

import httpx
from typing import Optional
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ..core.config_manager import ConfigManager
from ..core.error_handling import ErrorHandler, ErrorContext
from ..core.logging import logger
from ..core.rate_limiter import FixedWindowRateLimiter
from ..providers import get_provider_instance
from .chat import ChatRequest, ChatRequestValidator, StreamingRelay

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class ChatService:
    """
    Facade over validation, rate limiting, the upstream client and the relay.

    Attributes:
        config_manager (ConfigManager): Process configuration
        httpx_client (httpx.AsyncClient): Shared client for upstream calls
        rate_limiter (FixedWindowRateLimiter): Per-client request windows
        validator (ChatRequestValidator): Inbound payload checks
    """

    def __init__(self, config_manager: ConfigManager, httpx_client: httpx.AsyncClient,
                 rate_limiter: Optional[FixedWindowRateLimiter] = None):
        self.config_manager = config_manager
        self.httpx_client = httpx_client
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter(
            max_requests=config_manager.rate_limit_max,
            window_seconds=config_manager.rate_limit_window_seconds,
        )
        self.validator = ChatRequestValidator()

    def _check_rate_limit(self, client_host: str, context: ErrorContext):
        decision = self.rate_limiter.hit(client_host)
        if not decision.allowed:
            raise ErrorHandler.handle_rate_limited(decision.retry_after, context)

    async def chat_completions(self, request: Request):
        """
        Process one chat completion request.

        Returns:
            StreamingResponse: ``text/event-stream`` relay when ``stream`` is true
            JSONResponse: the upstream body verbatim, with the upstream status, otherwise

        Raises:
            HTTPException: 400 invalid payload, 429 rate limited, upstream
                status for upstream errors, 500 for missing API key or
                network failures
        """
        request_id = getattr(request.state, "request_id", "unknown")
        client_host = request.client.host if request.client else "unknown"
        context = ErrorContext(
            request_id=request_id,
            client_host=client_host,
            endpoint_path=request.url.path
        )

        try:
            body = await request.json()
        except ValueError:
            raise ErrorHandler.handle_invalid_request_format("Request body is not valid JSON.", context)

        logger.debug_data(
            title="Chat Request JSON",
            data=body,
            request_id=request_id,
            component="chat_service",
            data_flow="incoming"
        )

        self.validator.validate(body, context)
        self._check_rate_limit(client_host, context)

        chat_request = ChatRequest.from_body(body, self.config_manager.default_model)
        context.model_id = chat_request.model

        try:
            with logger.request_context(
                operation="Chat Completion",
                request_id=request_id,
                client_host=client_host,
                model_id=chat_request.model,
                stream=chat_request.stream,
                messages_count=len(chat_request.messages)
            ):
                provider = get_provider_instance(
                    self.config_manager.upstream_provider_config(), self.httpx_client
                )
                upstream_body = chat_request.to_upstream_body()

                if chat_request.stream:
                    upstream = await provider.open_chat_stream(upstream_body, request_id)
                    relay = StreamingRelay()
                    return StreamingResponse(
                        relay.relay(upstream, request_id=request_id,
                                    client_host=client_host, model_id=chat_request.model),
                        media_type="text/event-stream",
                        headers=SSE_HEADERS
                    )

                status_code, response_data = await provider.chat_completions(upstream_body, request_id)
                if isinstance(response_data, dict) and "usage" in response_data:
                    logger.info("Upstream usage", request_id=request_id,
                                model_id=response_data.get("model", chat_request.model),
                                usage=response_data["usage"])
                return JSONResponse(content=response_data, status_code=status_code)

        except HTTPException:
            raise
        except Exception as e:
            raise ErrorHandler.handle_internal_server_error(str(e), context, e)
