import httpx
from typing import Dict, Any, AsyncIterator, Optional, Tuple

from ..core.error_handling import ErrorHandler, ErrorContext
from ..core.logging import logger


class UpstreamStream:
    """
    Handle on an open upstream streaming response.

    Bytes are read lazily through ``aiter_bytes``; nothing is buffered
    beyond what httpx holds for the current chunk. ``aclose`` releases the
    connection and is safe to call more than once.
    """

    def __init__(self, response: httpx.Response):
        self.response = response
        self.status_code = response.status_code
        self._closed = False

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        async for chunk in self.response.aiter_bytes():
            yield chunk

    @property
    def closed(self) -> bool:
        return self._closed

    async def aclose(self):
        if self._closed:
            return
        self._closed = True
        await self.response.aclose()


class BaseProvider:
    provider_name = "base"

    # - connect: 10s to establish connection
    # - read: time between chunks for streams, full body otherwise
    # - write: 10s to send request
    # - pool: 10s to get connection from pool
    stream_timeout = httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=10.0)
    non_stream_timeout = httpx.Timeout(connect=10.0, read=60.0, write=10.0, pool=10.0)

    def __init__(self, config: Dict[str, Any], client: httpx.AsyncClient):
        self.base_url = (config.get("base_url") or "").rstrip("/")
        self.api_key = config.get("api_key")
        self.headers = dict(config.get("headers", {}))
        self.client = client

        if not self.base_url:
            context = ErrorContext(provider_name=self.provider_name)
            raise ErrorHandler.handle_provider_config_error(
                error_details="Provider base_url is not configured.",
                context=context
            )

        if not self.api_key:
            context = ErrorContext(provider_name=self.provider_name)
            raise ErrorHandler.handle_provider_config_error(
                error_details="Upstream API key is not configured.",
                context=context
            )
        self.headers["Authorization"] = f"Bearer {self.api_key}"
        self.headers["Content-Type"] = "application/json"

    def _context(self, request_id: Optional[str]) -> ErrorContext:
        return ErrorContext(request_id=request_id, provider_name=self.provider_name)

    async def _post_json(self, url_path: str, request_body: Dict[str, Any], request_id: Optional[str] = None) -> Tuple[int, Any]:
        """POST and read the whole JSON body. Non-2xx raises with the upstream status."""
        url = f"{self.base_url}{url_path}"
        logger.debug_data(
            title="Upstream Request",
            data={"url": url, "request_body": request_body},
            request_id=request_id or "unknown",
            component=f"{self.provider_name}_provider",
            data_flow="to_provider"
        )

        try:
            response = await self.client.post(url,
                                              headers=self.headers,
                                              json=request_body,
                                              timeout=self.non_stream_timeout)
        except httpx.RequestError as e:
            raise ErrorHandler.handle_provider_network_error(e, self._context(request_id), self.provider_name)

        if response.is_error:
            raise ErrorHandler.handle_provider_http_error(
                status_code=response.status_code,
                response_text=response.text,
                context=self._context(request_id),
                provider_name=self.provider_name
            )

        try:
            response_json = response.json()
        except ValueError as e:
            raise ErrorHandler.handle_internal_server_error(
                "Upstream returned a non-JSON body", self._context(request_id), e
            )

        logger.debug_data(
            title="Upstream Response",
            data=response_json,
            request_id=request_id or "unknown",
            component=f"{self.provider_name}_provider",
            data_flow="from_provider"
        )
        return response.status_code, response_json

    async def _open_stream(self, url_path: str, request_body: Dict[str, Any], request_id: Optional[str] = None) -> UpstreamStream:
        """
        Send a streaming request and return once the status line is known.

        Status is checked before anything is written downstream, so a
        non-2xx upstream still reaches the client with its own status code.
        """
        url = f"{self.base_url}{url_path}"
        logger.debug_data(
            title="Upstream Stream Request",
            data={"url": url, "request_body": request_body},
            request_id=request_id or "unknown",
            component=f"{self.provider_name}_provider",
            data_flow="to_provider"
        )

        request = self.client.build_request("POST", url,
                                            headers=self.headers,
                                            json=request_body,
                                            timeout=self.stream_timeout)
        try:
            response = await self.client.send(request, stream=True)
        except httpx.RequestError as e:
            raise ErrorHandler.handle_provider_network_error(e, self._context(request_id), self.provider_name)

        logger.debug_data(
            title="Upstream Response Headers",
            data={"status_code": response.status_code, "headers": dict(response.headers)},
            request_id=request_id or "unknown",
            component=f"{self.provider_name}_provider",
            data_flow="from_provider"
        )

        if response.is_error:
            try:
                await response.aread()
                response_text = response.text
            except httpx.HTTPError:
                response_text = "Unable to read error response from provider"
            finally:
                await response.aclose()
            raise ErrorHandler.handle_provider_http_error(
                status_code=response.status_code,
                response_text=response_text,
                context=self._context(request_id),
                provider_name=self.provider_name
            )

        return UpstreamStream(response)

    async def chat_completions(self, request_body: Dict[str, Any], request_id: Optional[str] = None) -> Tuple[int, Any]:
        raise NotImplementedError

    async def open_chat_stream(self, request_body: Dict[str, Any], request_id: Optional[str] = None) -> UpstreamStream:
        raise NotImplementedError
