"""
Dependency-aware launcher for the local development services.

Services are started only after their dependencies run, and stopping a
service stops everything that depends on it first.
"""

import asyncio
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from ...core.config_manager import ConfigManager, get_int_env
from ...core.exceptions import UnknownServiceError
from ...core.logging import logger
from .ports import is_port_in_use, kill_process_on_port
from .process_handle import OutputCallback, ProcessHandle, SubprocessHandle


class ServiceState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class ServiceSpec:
    key: str
    name: str
    command: str
    port: Optional[int] = None
    cwd: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    dependencies: List[str] = field(default_factory=list)
    description: str = ""
    health_path: Optional[str] = "/health"

    @classmethod
    def from_config(cls, key: str, data: Dict[str, Any]) -> "ServiceSpec":
        """Build a spec from one ``services.yaml`` entry, resolving the port from the environment."""
        default_port = data.get("default_port")
        port_env = data.get("port_env")
        port = get_int_env(port_env, default_port) if port_env and default_port is not None else default_port
        return cls(
            key=key,
            name=data.get("name", key),
            command=data["command"],
            port=port,
            cwd=data.get("cwd"),
            env={name: str(value) for name, value in (data.get("env") or {}).items()},
            dependencies=list(data.get("dependencies") or []),
            description=data.get("description", ""),
            health_path=data.get("health", "/health"),
        )

    @property
    def health_url(self) -> Optional[str]:
        if self.port is None or not self.health_path:
            return None
        return f"http://localhost:{self.port}{self.health_path}"

    def process_env(self) -> Dict[str, str]:
        env = dict(os.environ)
        env.update(self.env)
        if self.port is not None:
            env["PORT"] = str(self.port)
        return env


def load_service_specs(config_manager: ConfigManager) -> Dict[str, ServiceSpec]:
    specs = {}
    for key, data in config_manager.get_services().items():
        try:
            specs[key] = ServiceSpec.from_config(key, data)
        except (KeyError, TypeError) as e:
            logger.error(f"Invalid service definition '{key}': {e}", exc_info=False)
    return specs


def default_process_factory(spec: ServiceSpec, on_output: OutputCallback) -> ProcessHandle:
    return SubprocessHandle(spec.command, cwd=spec.cwd, env=spec.process_env(), on_output=on_output)


@dataclass
class ServiceStatus:
    key: str
    name: str
    state: ServiceState
    port: Optional[int]
    pid: Optional[int]
    description: str
    dependencies: List[str]

    @property
    def running(self) -> bool:
        return self.state is ServiceState.RUNNING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "state": self.state.value,
            "port": self.port,
            "pid": self.pid,
            "description": self.description,
            "dependencies": self.dependencies,
        }


class Orchestrator:
    """
    Start, stop and monitor the services described by ``specs``.

    Process spawning, port probing and port freeing are injectable so the
    dependency rules can run without real processes.
    """

    def __init__(self, specs: Dict[str, ServiceSpec],
                 process_factory: Callable[[ServiceSpec, OutputCallback], ProcessHandle] = default_process_factory,
                 port_checker: Callable[[int], bool] = is_port_in_use,
                 port_freer: Callable[[int], Awaitable[bool]] = kill_process_on_port,
                 grace_period: float = 5.0,
                 start_delay: float = 3.0,
                 port_release_delay: float = 1.0,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.specs = specs
        self.process_factory = process_factory
        self.port_checker = port_checker
        self.port_freer = port_freer
        self.grace_period = grace_period
        self.start_delay = start_delay
        self.port_release_delay = port_release_delay
        self.http_client = http_client
        self._states: Dict[str, ServiceState] = {key: ServiceState.STOPPED for key in specs}
        self._handles: Dict[str, ProcessHandle] = {}
        self._watchers: Dict[str, asyncio.Task] = {}

    def _spec(self, key: str) -> ServiceSpec:
        spec = self.specs.get(key)
        if spec is None:
            raise UnknownServiceError(key)
        return spec

    def state(self, key: str) -> ServiceState:
        self._spec(key)
        return self._states[key]

    def _output_callback(self, spec: ServiceSpec) -> OutputCallback:
        def on_output(line: str, is_stderr: bool):
            if is_stderr:
                logger.warning(f"[{spec.name}] {line}", service_name=spec.key)
            else:
                logger.info(f"[{spec.name}] {line}", service_name=spec.key)
        return on_output

    def _dependents(self, key: str) -> List[str]:
        return [other for other, spec in self.specs.items() if key in spec.dependencies]

    async def start(self, key: str) -> bool:
        """
        Start one service.

        Returns:
            bool: True when the service is running afterwards

        Raises:
            UnknownServiceError: ``key`` is not defined
        """
        spec = self._spec(key)
        if self._states[key] in (ServiceState.RUNNING, ServiceState.STARTING):
            logger.info(f"[{spec.name}] Service already running", service_name=key)
            return True

        logger.info(f"[{spec.name}] Starting service...", service_name=key)

        for dep in spec.dependencies:
            if self._states.get(dep) is not ServiceState.RUNNING:
                dep_name = self.specs[dep].name if dep in self.specs else dep
                logger.warning(f"[{spec.name}] Dependency {dep_name} not running", service_name=key)
                return False

        if spec.port is not None and self.port_checker(spec.port):
            logger.warning(f"[{spec.name}] Port {spec.port} already in use. Attempting to free...",
                           service_name=key)
            if not await self.port_freer(spec.port):
                logger.error(f"[{spec.name}] Failed to free port {spec.port}", exc_info=False,
                             service_name=key)
                return False
            logger.info(f"[{spec.name}] Freed port {spec.port}", service_name=key)
            await asyncio.sleep(self.port_release_delay)

        self._states[key] = ServiceState.STARTING
        handle = self.process_factory(spec, self._output_callback(spec))
        try:
            await handle.start()
        except OSError as e:
            self._states[key] = ServiceState.STOPPED
            logger.error(f"[{spec.name}] Failed to spawn '{spec.command}': {e}", service_name=key)
            return False

        self._handles[key] = handle
        self._states[key] = ServiceState.RUNNING
        self._watchers[key] = asyncio.create_task(self._watch(key, handle))
        return True

    async def _watch(self, key: str, handle: ProcessHandle):
        spec = self.specs[key]
        code = await handle.wait()
        if self._handles.get(key) is not handle:
            logger.info(f"[{spec.name}] Process was stopped", service_name=key)
            return

        # Exited on its own
        del self._handles[key]
        self._watchers.pop(key, None)
        self._states[key] = ServiceState.STOPPED
        if code == 0:
            logger.info(f"[{spec.name}] Process exited successfully", service_name=key)
        else:
            logger.warning(f"[{spec.name}] Process exited with code {code}", service_name=key, exit_code=code)

    async def stop(self, key: str) -> bool:
        """
        Stop one service, after stopping every running service that depends on it.

        Returns:
            bool: False when the service was not running
        """
        spec = self._spec(key)
        handle = self._handles.get(key)
        if handle is None or self._states[key] is not ServiceState.RUNNING:
            logger.info(f"[{spec.name}] Service not running", service_name=key)
            return False

        for dependent in self._dependents(key):
            if self._states[dependent] is ServiceState.RUNNING:
                await self.stop(dependent)

        logger.info(f"[{spec.name}] Stopping service...", service_name=key)
        self._states[key] = ServiceState.STOPPING
        del self._handles[key]
        handle.terminate()
        try:
            await asyncio.wait_for(handle.wait(), self.grace_period)
        except asyncio.TimeoutError:
            logger.warning(f"[{spec.name}] Still running after {self.grace_period}s, killing",
                           service_name=key)
            handle.kill()
            await handle.wait()

        watcher = self._watchers.pop(key, None)
        if watcher is not None:
            await watcher
        self._states[key] = ServiceState.STOPPED
        return True

    async def restart(self, key: str) -> bool:
        await self.stop(key)
        return await self.start(key)

    def _start_order(self) -> List[str]:
        order, visited = [], set()

        def visit(key):
            if key in visited or key not in self.specs:
                return
            visited.add(key)
            for dep in self.specs[key].dependencies:
                visit(dep)
            order.append(key)

        for key in self.specs:
            visit(key)
        return order

    def _stop_order(self) -> List[str]:
        order, visited = [], set()

        def visit(key):
            if key in visited:
                return
            visited.add(key)
            for dependent in self._dependents(key):
                visit(dependent)
            order.append(key)

        for key in self.specs:
            visit(key)
        return order

    async def start_all(self) -> Dict[str, bool]:
        logger.info("Starting all services...")
        results = {}
        order = self._start_order()
        for index, key in enumerate(order):
            results[key] = await self.start(key)
            if index < len(order) - 1:
                await asyncio.sleep(self.start_delay)
        logger.info("All services started", results=results)
        return results

    async def stop_all(self):
        logger.info("Stopping all services...")
        for key in self._stop_order():
            if self._states[key] is ServiceState.RUNNING:
                await self.stop(key)
        logger.info("All services stopped")

    def status(self) -> List[ServiceStatus]:
        return [
            ServiceStatus(
                key=key,
                name=spec.name,
                state=self._states[key],
                port=spec.port,
                pid=self._handles[key].pid if key in self._handles else None,
                description=spec.description,
                dependencies=list(spec.dependencies),
            )
            for key, spec in self.specs.items()
        ]

    async def check_health(self, timeout: float = 5.0) -> Dict[str, Dict[str, Any]]:
        """
        Report liveness of each service and, when an HTTP client is set, probe
        its health URL. Any status below 500 counts as responding.
        """
        report = {}
        for key, spec in self.specs.items():
            handle = self._handles.get(key)
            alive = handle is not None and handle.is_alive()
            entry: Dict[str, Any] = {"name": spec.name, "running": alive, "healthy": alive}

            if alive and self.http_client is not None and spec.health_url:
                try:
                    response = await self.http_client.get(spec.health_url, timeout=timeout)
                    entry["status_code"] = response.status_code
                    entry["healthy"] = 200 <= response.status_code < 500
                except httpx.HTTPError as e:
                    entry["healthy"] = False
                    entry["error"] = str(e) or type(e).__name__

            report[key] = entry
        return report
