from datetime import datetime, timezone
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from ..core.config_manager import ConfigManager
from ..core.logging import logger
from ..core.rate_limiter import FixedWindowRateLimiter
from ..services.chat_service import ChatService
from ..services.registry import RegistryClient
from .middleware import RequestLoggerMiddleware

SERVICE_NAME = "Chat Relay Proxy"
REGISTRY_SERVICE_NAME = "chat-relay-proxy"

# Every mount point the front ends have used for the same proxy
CHAT_PREFIXES = ["", "/api", "/api/chat", "/api/proxy"]


def _status_payload():
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


def create_app(config_manager: Optional[ConfigManager] = None,
               transport: Optional[httpx.AsyncBaseTransport] = None,
               rate_limiter: Optional[FixedWindowRateLimiter] = None) -> FastAPI:
    """
    Build the chat proxy application.

    Args:
        config_manager: Configuration; read from the environment when omitted
        transport: httpx transport for upstream calls (tests pass a MockTransport)
        rate_limiter: Shared limiter; built from configuration when omitted
    """
    app = FastAPI(title=SERVICE_NAME)
    app.state.config_manager = config_manager or ConfigManager()

    @app.on_event("startup")
    async def startup_event():
        config = app.state.config_manager
        app.state.httpx_client = httpx.AsyncClient(transport=transport)
        app.state.chat_service = ChatService(config, app.state.httpx_client, rate_limiter)

        if not config.api_key_configured:
            logger.warning("OPENROUTER_API_KEY is not set; chat requests will fail with 500")

        if config.registry_url:
            app.state.registry_client = RegistryClient(config.registry_url, app.state.httpx_client)
            await app.state.registry_client.register_service(
                REGISTRY_SERVICE_NAME,
                f"http://localhost:{config.api_port}",
                metadata={"type": "chat-proxy", "model": config.default_model},
            )

    @app.on_event("shutdown")
    async def shutdown_event():
        registry_client = getattr(app.state, "registry_client", None)
        if registry_client is not None:
            await registry_client.unregister_service(REGISTRY_SERVICE_NAME)
        await app.state.httpx_client.aclose()

    app.add_middleware(RequestLoggerMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app.state.config_manager.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    async def ai_chat(request: Request):
        return await app.state.chat_service.chat_completions(request)

    async def ai_chat_ping():
        return _status_payload()

    for prefix in CHAT_PREFIXES:
        app.add_api_route(f"{prefix}/ai-chat", ai_chat, methods=["POST"])
        app.add_api_route(f"{prefix}/ai-chat/ping", ai_chat_ping, methods=["GET"])

    @app.get("/health")
    @app.get("/api/health")
    async def health_check():
        return _status_payload()

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=app.state.config_manager.api_port)
