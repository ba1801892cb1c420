import time
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request

from ..core.config_manager import ConfigManager
from ..core.error_handling import ErrorHandler, ErrorContext
from ..core.logging import logger
from ..services.registry import ServiceRegistry
from .middleware import RequestLoggerMiddleware

SERVICE_NAME = "Service Registry"


def _context(request: Request, service_name: Optional[str] = None) -> ErrorContext:
    return ErrorContext(
        request_id=getattr(request.state, "request_id", "unknown"),
        client_host=request.client.host if request.client else "unknown",
        endpoint_path=request.url.path,
        service_name=service_name,
    )


async def _json_body(request: Request, context: ErrorContext) -> dict:
    try:
        body = await request.json()
    except ValueError:
        raise ErrorHandler.handle_invalid_request_format("Request body is not valid JSON.", context)
    if not isinstance(body, dict):
        raise ErrorHandler.handle_invalid_request_format("Request body must be a JSON object.", context)
    return body


def create_app(config_manager: Optional[ConfigManager] = None,
               registry: Optional[ServiceRegistry] = None) -> FastAPI:
    """
    Build the service registry application.

    Args:
        config_manager: Configuration; read from the environment when omitted
        registry: Registry instance; built from ``REGISTRY_FILE`` when omitted
    """
    app = FastAPI(title=SERVICE_NAME)
    app.state.config_manager = config_manager or ConfigManager()
    app.state.registry = registry or ServiceRegistry(app.state.config_manager.registry_file)
    app.state.started_at = time.monotonic()

    @app.on_event("startup")
    async def startup_event():
        app.state.registry.load()
        app.state.registry.start_autosave_task()
        logger.info("Service registry ready", registry_file=app.state.registry.registry_file,
                    service_count=len(app.state.registry))

    @app.on_event("shutdown")
    async def shutdown_event():
        await app.state.registry.shutdown()
        logger.info("Service registry stopped")

    app.add_middleware(RequestLoggerMiddleware)

    @app.post("/register")
    async def register(request: Request):
        context = _context(request)
        body = await _json_body(request, context)
        name = body.get("serviceName")
        context.service_name = name
        app.state.registry.register(
            name, body.get("url"),
            health=body.get("health"),
            metadata=body.get("metadata"),
            context=context,
        )
        return {"success": True, "message": f"Service '{name}' registered successfully"}

    @app.post("/unregister")
    async def unregister(request: Request):
        context = _context(request)
        body = await _json_body(request, context)
        name = body.get("serviceName")
        context.service_name = name
        app.state.registry.unregister(name, context=context)
        return {"success": True, "message": f"Service '{name}' unregistered successfully"}

    @app.get("/service/{name}")
    async def get_service(name: str, request: Request):
        return app.state.registry.get(name, _context(request, name)).to_dict()

    @app.get("/services")
    async def list_services():
        return app.state.registry.list()

    @app.get("/health")
    async def health_check():
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "serviceCount": len(app.state.registry),
            "uptime": round(time.monotonic() - app.state.started_at, 3),
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=app.state.config_manager.registry_port)
