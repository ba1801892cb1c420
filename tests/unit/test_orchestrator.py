"""
Tests for the development process orchestrator, using in-memory process handles.
"""
import asyncio
import io

import httpx
import pytest

from chat_relay.cli import DevConsole
from chat_relay.core.exceptions import UnknownServiceError
from chat_relay.services.orchestrator import Orchestrator, ServiceSpec, ServiceState
from tests.helpers import FakeProcessHandle


def make_specs():
    return {
        "registry": ServiceSpec(key="registry", name="Service Registry", command="registry", port=3999),
        "proxy": ServiceSpec(key="proxy", name="Chat Relay Proxy", command="proxy", port=3002,
                             dependencies=["registry"], health_path="/api/ai-chat/ping"),
        "frontend": ServiceSpec(key="frontend", name="Frontend App", command="npm run dev", port=3000,
                                dependencies=["proxy"]),
    }


class OrchestratorHarness:
    def __init__(self, busy_ports=(), freeable=True, exits_on_terminate=True, **kwargs):
        self.events = []
        self.handles = {}
        self.busy_ports = set(busy_ports)
        self.freeable = freeable
        self.freed = []
        self.exits_on_terminate = exits_on_terminate
        self.orchestrator = Orchestrator(
            make_specs(),
            process_factory=self.factory,
            port_checker=lambda port: port in self.busy_ports,
            port_freer=self.free_port,
            grace_period=kwargs.pop("grace_period", 0.05),
            start_delay=0,
            port_release_delay=0,
            **kwargs
        )

    def factory(self, spec, on_output):
        handle = FakeProcessHandle(spec.key, self.events, exits_on_terminate=self.exits_on_terminate)
        self.handles[spec.key] = handle
        return handle

    async def free_port(self, port):
        self.freed.append(port)
        if self.freeable:
            self.busy_ports.discard(port)
        return self.freeable


class TestOrchestratorStart:
    @pytest.mark.asyncio
    async def test_dependency_not_running_refuses_start(self):
        harness = OrchestratorHarness()
        assert await harness.orchestrator.start("proxy") is False
        assert harness.events == []
        assert harness.orchestrator.state("proxy") is ServiceState.STOPPED

    @pytest.mark.asyncio
    async def test_start_after_dependency(self):
        harness = OrchestratorHarness()
        assert await harness.orchestrator.start("registry")
        assert await harness.orchestrator.start("proxy")
        assert harness.orchestrator.state("proxy") is ServiceState.RUNNING

    @pytest.mark.asyncio
    async def test_start_running_service_is_noop(self):
        harness = OrchestratorHarness()
        await harness.orchestrator.start("registry")
        assert await harness.orchestrator.start("registry") is True
        assert harness.events == ["start:registry"]

    @pytest.mark.asyncio
    async def test_start_all_uses_dependency_order(self):
        harness = OrchestratorHarness()
        results = await harness.orchestrator.start_all()
        assert results == {"registry": True, "proxy": True, "frontend": True}
        assert harness.events == ["start:registry", "start:proxy", "start:frontend"]

    @pytest.mark.asyncio
    async def test_busy_port_is_freed_before_spawn(self):
        harness = OrchestratorHarness(busy_ports={3999})
        assert await harness.orchestrator.start("registry")
        assert harness.freed == [3999]
        assert harness.events == ["start:registry"]

    @pytest.mark.asyncio
    async def test_port_that_cannot_be_freed_blocks_start(self):
        harness = OrchestratorHarness(busy_ports={3999}, freeable=False)
        assert await harness.orchestrator.start("registry") is False
        assert harness.events == []
        assert harness.orchestrator.state("registry") is ServiceState.STOPPED

    @pytest.mark.asyncio
    async def test_unknown_service(self):
        harness = OrchestratorHarness()
        with pytest.raises(UnknownServiceError) as exc_info:
            await harness.orchestrator.start("database")
        assert str(exc_info.value) == "Unknown service: database"

    @pytest.mark.asyncio
    async def test_process_exit_marks_service_stopped(self):
        harness = OrchestratorHarness()
        await harness.orchestrator.start("registry")
        harness.handles["registry"].exit(1)
        for _ in range(5):
            await asyncio.sleep(0)
        assert harness.orchestrator.state("registry") is ServiceState.STOPPED


class TestOrchestratorStop:
    @pytest.mark.asyncio
    async def test_stop_cascades_to_dependents_first(self):
        harness = OrchestratorHarness()
        await harness.orchestrator.start_all()
        harness.events.clear()

        assert await harness.orchestrator.stop("registry")
        assert harness.events == ["terminate:frontend", "terminate:proxy", "terminate:registry"]
        for status in harness.orchestrator.status():
            assert status.state is ServiceState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_leaves_unrelated_services_running(self):
        harness = OrchestratorHarness()
        await harness.orchestrator.start_all()
        await harness.orchestrator.stop("frontend")
        assert harness.orchestrator.state("proxy") is ServiceState.RUNNING
        assert harness.orchestrator.state("frontend") is ServiceState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_not_running(self):
        harness = OrchestratorHarness()
        assert await harness.orchestrator.stop("registry") is False

    @pytest.mark.asyncio
    async def test_force_kill_after_grace_period(self):
        harness = OrchestratorHarness(exits_on_terminate=False, grace_period=0.01)
        await harness.orchestrator.start("registry")
        await harness.orchestrator.stop("registry")
        assert harness.events == ["start:registry", "terminate:registry", "kill:registry"]
        assert harness.orchestrator.state("registry") is ServiceState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_all_reverse_order(self):
        harness = OrchestratorHarness()
        await harness.orchestrator.start_all()
        harness.events.clear()
        await harness.orchestrator.stop_all()
        assert harness.events == ["terminate:frontend", "terminate:proxy", "terminate:registry"]

    @pytest.mark.asyncio
    async def test_restart(self):
        harness = OrchestratorHarness()
        await harness.orchestrator.start("registry")
        assert await harness.orchestrator.restart("registry")
        assert harness.events == ["start:registry", "terminate:registry", "start:registry"]
        assert harness.orchestrator.state("registry") is ServiceState.RUNNING


class TestOrchestratorHealth:
    @pytest.mark.asyncio
    async def test_check_health_probes_running_services(self):
        probed = []

        def handler(request):
            probed.append(str(request.url))
            return httpx.Response(200, json={"status": "ok"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            harness = OrchestratorHarness(http_client=client)
            await harness.orchestrator.start("registry")
            await harness.orchestrator.start("proxy")
            report = await harness.orchestrator.check_health()

        assert report["registry"]["healthy"] is True
        assert report["proxy"]["status_code"] == 200
        assert report["frontend"] == {"name": "Frontend App", "running": False, "healthy": False}
        assert probed == ["http://localhost:3999/health", "http://localhost:3002/api/ai-chat/ping"]

    @pytest.mark.asyncio
    async def test_unreachable_service_is_unhealthy(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            harness = OrchestratorHarness(http_client=client)
            await harness.orchestrator.start("registry")
            report = await harness.orchestrator.check_health()

        assert report["registry"]["running"] is True
        assert report["registry"]["healthy"] is False
        assert "refused" in report["registry"]["error"]


class TestServiceSpec:
    def test_from_config_reads_port_override(self, monkeypatch):
        monkeypatch.setenv("API_PORT", "4100")
        spec = ServiceSpec.from_config("proxy", {
            "name": "Chat Relay Proxy",
            "command": "chat-relay-proxy",
            "port_env": "API_PORT",
            "default_port": 3002,
            "dependencies": ["registry"],
            "health": "/api/ai-chat/ping",
        })
        assert spec.port == 4100
        assert spec.dependencies == ["registry"]
        assert spec.health_url == "http://localhost:4100/api/ai-chat/ping"
        assert spec.process_env()["PORT"] == "4100"

    def test_from_config_defaults(self):
        spec = ServiceSpec.from_config("registry", {"command": "chat-relay-registry", "default_port": 3999})
        assert spec.name == "registry"
        assert spec.port == 3999
        assert spec.health_url == "http://localhost:3999/health"


class TestDevConsole:
    def setup_method(self):
        self.harness = OrchestratorHarness()
        self.out = io.StringIO()
        self.console = DevConsole(self.harness.orchestrator, out=self.out)

    @pytest.mark.asyncio
    async def test_start_all_and_status(self):
        assert await self.console.handle("start all")
        output = self.out.getvalue()
        assert "Service Registry (Port 3999): RUNNING" in output
        assert "Depends on: Service Registry" in output

    @pytest.mark.asyncio
    async def test_unknown_service(self):
        assert await self.console.handle("start database")
        assert "Unknown service: database" in self.out.getvalue()

    @pytest.mark.asyncio
    async def test_unknown_command(self):
        assert await self.console.handle("dance")
        assert "Unknown command: dance" in self.out.getvalue()

    @pytest.mark.asyncio
    async def test_health_without_running_services(self):
        await self.console.handle("health")
        assert "Service Registry: Not running" in self.out.getvalue()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("command", ["exit", "quit", "  EXIT  "])
    async def test_exit(self, command):
        assert await self.console.handle(command) is False

    @pytest.mark.asyncio
    async def test_help_lists_services(self):
        await self.console.handle("help")
        assert "proxy - Chat Relay Proxy (port 3002)" in self.out.getvalue()
