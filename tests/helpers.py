"""Shared test doubles."""

import asyncio
import json
from typing import Any, Dict, List, Optional

import httpx

from chat_relay.services.orchestrator import ProcessHandle

TEST_API_KEY = "test-upstream-key"


def sse(*payloads: str) -> bytes:
    """Frame payloads the way the upstream API does."""
    return "".join(f"data: {payload}\n\n" for payload in payloads).encode("utf-8")


class RecordingUpstream:
    """MockTransport handler that records requests and answers with a canned response."""

    def __init__(self, status_code: int = 200, json_body: Optional[Any] = None,
                 content: Optional[bytes] = None, chunks: Optional[List[bytes]] = None):
        self.status_code = status_code
        self.json_body = json_body
        self.content = content
        self.chunks = chunks
        self.requests: List[httpx.Request] = []

    @property
    def last_json(self) -> Dict[str, Any]:
        return json.loads(self.requests[-1].content)

    async def _stream(self):
        for chunk in self.chunks:
            yield chunk

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.chunks is not None:
            return httpx.Response(self.status_code, content=self._stream(),
                                  headers={"Content-Type": "text/event-stream"})
        if self.json_body is not None:
            return httpx.Response(self.status_code, json=self.json_body)
        return httpx.Response(self.status_code, content=self.content or b"")

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class FakeUpstream:
    """Stand-in for UpstreamStream that yields preset chunks."""

    def __init__(self, chunks: List[bytes], error: Optional[Exception] = None):
        self.chunks = chunks
        self.error = error
        self.closed = False
        self.close_calls = 0

    async def aiter_bytes(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error

    async def aclose(self):
        self.close_calls += 1
        self.closed = True


class FakeProcessHandle(ProcessHandle):
    """In-memory child process. ``events`` is shared so tests can assert ordering."""

    def __init__(self, key: str, events: List[str], exits_on_terminate: bool = True):
        self.key = key
        self.events = events
        self.exits_on_terminate = exits_on_terminate
        self.returncode = None
        self.started = False
        self._exited = asyncio.Event()

    @property
    def pid(self) -> Optional[int]:
        return 4242 if self.started else None

    async def start(self):
        self.started = True
        self.events.append(f"start:{self.key}")

    def exit(self, code: int):
        if self.returncode is None:
            self.returncode = code
            self._exited.set()

    def terminate(self):
        self.events.append(f"terminate:{self.key}")
        if self.exits_on_terminate:
            self.exit(-15)

    def kill(self):
        self.events.append(f"kill:{self.key}")
        self.exit(-9)

    def is_alive(self) -> bool:
        return self.started and self.returncode is None

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode
