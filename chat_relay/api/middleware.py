import time
import os
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from ..core.logging import logger


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        request_id = os.urandom(8).hex()
        request.state.request_id = request_id

        client_host = request.client.host if request.client else "unknown"

        logger.request(
            operation="Incoming Request",
            request_id=request_id,
            client_host=client_host,
            method=request.method,
            url=str(request.url)
        )

        if request.method in ["POST", "PUT", "PATCH"] and logger.is_debug_enabled():
            try:
                request_body = await request.json()
                logger.debug_data(
                    title="Request JSON",
                    data=request_body,
                    request_id=request_id,
                    component="middleware",
                    data_flow="incoming"
                )
            except ValueError:
                logger.debug("Could not parse request JSON", request_id=request_id)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Unexpected error: {str(e)}",
                request_id=request_id,
                client_host=client_host,
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
            )
            raise

        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        response.headers["X-Request-ID"] = request_id

        logger.response(
            operation="Outgoing Response",
            request_id=request_id,
            client_host=client_host,
            status_code=response.status_code,
            processing_time_ms=round(process_time * 1000)
        )

        return response
