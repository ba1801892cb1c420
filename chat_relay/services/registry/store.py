"""
In-memory service registry with JSON file persistence.

The registry is owned by one process and only touched from its event loop,
so no locking is needed. Every mutation rewrites the file immediately; an
autosave task rewrites it on a fixed interval as well, and ``shutdown``
flushes once more.
"""

import asyncio
import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ...core.error_handling import ErrorHandler, ErrorContext
from ...core.logging import logger


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class ServiceRecord:
    name: str
    url: str
    health: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    last_registered: str = field(default_factory=_utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "health": self.health,
            "metadata": self.metadata,
            "lastRegistered": self.last_registered,
        }

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "ServiceRecord":
        url = data["url"]
        return cls(
            name=name,
            url=url,
            health=data.get("health") or f"{url}/health",
            metadata=data.get("metadata") or {},
            last_registered=data.get("lastRegistered") or _utc_now_iso(),
        )


class ServiceRegistry:
    """
    Name to endpoint directory.

    Lifecycle: ``load()`` at process start, ``start_autosave_task()`` once the
    event loop runs, ``shutdown()`` on exit.
    """

    def __init__(self, registry_file: str, save_interval: float = 60.0):
        self.registry_file = registry_file
        self.save_interval = save_interval
        self._services: Dict[str, ServiceRecord] = {}
        self._autosave_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._services)

    def load(self):
        """Load the registry file. A missing or unreadable file leaves the registry empty."""
        if not os.path.exists(self.registry_file):
            logger.info("No registry file yet, starting empty", registry_file=self.registry_file)
            return

        try:
            with open(self.registry_file, "r", encoding="utf-8") as f:
                raw = json.load(f)
            self._services = {
                name: ServiceRecord.from_dict(name, data) for name, data in raw.items()
            }
            logger.info("Loaded service registry from file",
                        registry_file=self.registry_file, service_count=len(self._services))
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            self._services = {}
            logger.error(f"Failed to load registry file: {e}", registry_file=self.registry_file)

    def save(self) -> bool:
        """Rewrite the registry file wholesale. Failures are logged, not raised."""
        directory = os.path.dirname(self.registry_file) or "."
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".registry-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(self.list(), f, indent=2)
                os.replace(tmp_path, self.registry_file)
            except BaseException:
                os.unlink(tmp_path)
                raise
            return True
        except OSError as e:
            logger.error(f"Failed to save registry file: {e}", registry_file=self.registry_file)
            return False

    def register(self, name: Optional[str], url: Optional[str], health: Optional[str] = None,
                 metadata: Optional[Dict[str, Any]] = None,
                 context: Optional[ErrorContext] = None) -> ServiceRecord:
        """Insert or replace a service record and persist."""
        context = context or ErrorContext()
        if not name:
            raise ErrorHandler.handle_missing_required_field("serviceName", context)
        if not url:
            raise ErrorHandler.handle_missing_required_field("url", context)

        record = ServiceRecord(
            name=name,
            url=url,
            health=health or f"{url}/health",
            metadata=metadata or {},
        )
        self._services[name] = record
        logger.info(f"Service registered: {name} at {url}", service_name=name)
        self.save()
        return record

    def unregister(self, name: Optional[str], context: Optional[ErrorContext] = None) -> ServiceRecord:
        """Remove a service record and persist."""
        context = context or ErrorContext()
        if not name:
            raise ErrorHandler.handle_missing_required_field("serviceName", context)

        record = self._services.pop(name, None)
        if record is None:
            raise ErrorHandler.handle_service_not_found(name, context)

        logger.info(f"Service unregistered: {name} at {record.url}", service_name=name)
        self.save()
        return record

    def get(self, name: str, context: Optional[ErrorContext] = None) -> ServiceRecord:
        record = self._services.get(name)
        if record is None:
            raise ErrorHandler.handle_service_not_found(name, context or ErrorContext())
        return record

    def list(self) -> Dict[str, Dict[str, Any]]:
        return {name: record.to_dict() for name, record in self._services.items()}

    async def _autosave_loop(self):
        while True:
            await asyncio.sleep(self.save_interval)
            self.save()

    def start_autosave_task(self):
        if self._autosave_task is None or self._autosave_task.done():
            self._autosave_task = asyncio.create_task(self._autosave_loop())

    async def shutdown(self):
        """Stop autosaving and flush one last time."""
        if self._autosave_task is not None:
            self._autosave_task.cancel()
            try:
                await self._autosave_task
            except asyncio.CancelledError:
                pass
            self._autosave_task = None
        self.save()
