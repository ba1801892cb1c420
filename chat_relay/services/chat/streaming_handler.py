"""
Relay of one upstream SSE stream to one downstream client.
"""
import time
from enum import Enum
from typing import AsyncGenerator, Awaitable, Callable, Optional

from .buffer_manager import SSELineBuffer
from .error_handler import StreamingErrorHandler
from .format_processor import StreamFormatProcessor, DONE_EVENT
from .parsed_event import ParsedStreamEvent, PayloadShape
from ...core.logging import logger


class RelayState(Enum):
    OPEN = "open"
    RELAYING = "relaying"
    CLOSING = "closing"
    CLOSED = "closed"


class StreamingRelay:
    """
    Per-connection relay state machine.

    OPEN -> RELAYING on the first read, RELAYING -> CLOSING on upstream end,
    upstream error, ``[DONE]`` or downstream disconnect, CLOSING -> CLOSED
    once the upstream response is released. A relay instance serves exactly
    one connection; its buffer is never shared.
    """

    def __init__(self, buffer_manager: Optional[SSELineBuffer] = None,
                 format_processor: Optional[StreamFormatProcessor] = None,
                 error_handler: Optional[StreamingErrorHandler] = None):
        self.buffer_manager = buffer_manager or SSELineBuffer()
        self.format_processor = format_processor or StreamFormatProcessor()
        self.error_handler = error_handler or StreamingErrorHandler()
        self.state = RelayState.OPEN
        self.done_sent = False
        self.events_forwarded = 0
        self.events_reshaped = 0

    async def relay(self, upstream, request_id: str = "unknown",
                    client_host: Optional[str] = None,
                    model_id: Optional[str] = None,
                    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None) -> AsyncGenerator[bytes, None]:
        """
        Yield normalized SSE frames read from ``upstream``.

        Args:
            upstream: Object with ``aiter_bytes()`` and ``aclose()`` (see UpstreamStream)
            request_id: ID of the request, for logging
            client_host: Downstream client address, for logging
            model_id: Model being streamed, for logging
            is_disconnected: Coroutine function reporting downstream disconnect
        """
        if self.state is not RelayState.OPEN:
            raise RuntimeError(f"Relay already used (state={self.state.value})")

        start_time = time.time()
        self.state = RelayState.RELAYING
        logger.info("Starting stream relay", request_id=request_id,
                    client_host=client_host, model_id=model_id)

        try:
            try:
                async for chunk in upstream.aiter_bytes():
                    if is_disconnected is not None and await is_disconnected():
                        logger.info("Client disconnected, stopping relay", request_id=request_id)
                        self.state = RelayState.CLOSING
                        break

                    for line in self.buffer_manager.feed(chunk):
                        frame = self._handle_line(line, request_id)
                        if frame:
                            yield frame
                        if self.done_sent:
                            break

                    if self.done_sent:
                        break
            except Exception as e:
                logger.error("Stream relay error", request_id=request_id,
                             client_host=client_host, error=str(e),
                             error_type=type(e).__name__)
                self.state = RelayState.CLOSING
                yield self.error_handler.format_streaming_error(e)
                return

            if self.state is RelayState.RELAYING and not self.done_sent:
                remaining = self.buffer_manager.flush()
                if remaining:
                    frame = self._handle_line(remaining, request_id)
                    if frame:
                        yield frame
                if not self.done_sent:
                    self.done_sent = True
                    yield DONE_EVENT
        finally:
            self.state = RelayState.CLOSING
            await upstream.aclose()
            self.buffer_manager.clear()
            self.state = RelayState.CLOSED
            logger.info("Stream relay closed", request_id=request_id,
                        events_forwarded=self.events_forwarded,
                        events_reshaped=self.events_reshaped,
                        done_sent=self.done_sent,
                        processing_time_ms=int((time.time() - start_time) * 1000))

    def _handle_line(self, line: str, request_id: str) -> Optional[bytes]:
        event = ParsedStreamEvent.from_line(line)
        if event is None:
            return None

        if event.is_done:
            self.done_sent = True
            return self.format_processor.format_event(event)

        if event.shape is PayloadShape.MALFORMED:
            logger.warning("Forwarding unparseable stream payload as-is",
                           request_id=request_id, parse_error=event.error,
                           payload_preview=event.raw[:200])
        elif event.shape in StreamFormatProcessor.RESHAPED:
            self.events_reshaped += 1

        self.events_forwarded += 1
        return self.format_processor.format_event(event)
