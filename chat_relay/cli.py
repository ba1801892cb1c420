"""
Command line entry points.

  chat-relay-proxy     run the chat proxy under uvicorn
  chat-relay-registry  run the service registry under uvicorn
  chat-relay-dev       interactive console that starts and stops the local services
"""

import argparse
import asyncio
import sys
import threading
from typing import List, Optional

import httpx
import uvicorn

from .api.main import create_app as create_proxy_app
from .core.config_manager import ConfigManager
from .core.exceptions import UnknownServiceError
from .core.logging import logger
from .services.orchestrator import Orchestrator, ServiceState, load_service_specs

HELP_TEXT = """
Available commands:
  start all          Start all services
  start <service>    Start a specific service
  stop all           Stop all services
  stop <service>     Stop a specific service
  restart all        Restart all services
  restart <service>  Restart a specific service
  status             Show status of all services
  health             Check health of running services
  exit               Exit the console (stops all services)
  help               Show this help message
"""


def _server_parser(description: str, default_port: int) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=default_port)
    parser.add_argument("--log-level", default="info")
    return parser


def run_proxy(argv: Optional[List[str]] = None):
    config = ConfigManager()
    args = _server_parser("Chat relay proxy", config.api_port).parse_args(argv)
    # The app registers itself under the port it actually serves on.
    config.api_port = args.port
    uvicorn.run(create_proxy_app(config), host=args.host, port=args.port, log_level=args.log_level)


def run_registry(argv: Optional[List[str]] = None):
    config = ConfigManager()
    args = _server_parser("Service registry", config.registry_port).parse_args(argv)
    uvicorn.run("chat_relay.api.registry:app", host=args.host, port=args.port, log_level=args.log_level)


async def read_line(prompt: str) -> Optional[str]:
    """
    Read one line from stdin without blocking the event loop. Returns None on EOF.

    The reader is a daemon thread so a pending ``input()`` never keeps the
    process alive after Ctrl+C.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def deliver(result):
        if not future.done():
            future.set_result(result)

    def target():
        try:
            result = input(prompt)
        except EOFError:
            result = None
        try:
            loop.call_soon_threadsafe(deliver, result)
        except RuntimeError:
            # loop already closed
            pass

    threading.Thread(target=target, daemon=True).start()
    return await future


class DevConsole:
    """Line-oriented command interpreter over an Orchestrator."""

    def __init__(self, orchestrator: Orchestrator, out=None):
        self.orchestrator = orchestrator
        self.out = out or sys.stdout

    def _print(self, text: str = ""):
        print(text, file=self.out)

    def show_help(self):
        self._print(HELP_TEXT.rstrip())
        self._print("\nAvailable services:")
        for key, spec in self.orchestrator.specs.items():
            self._print(f"  {key} - {spec.name} (port {spec.port})")

    def show_status(self):
        self._print("\nService Status:")
        self._print("===============\n")
        for status in self.orchestrator.status():
            self._print(f"{status.name} (Port {status.port}): {status.state.value.upper()}")
            if status.description:
                self._print(f"  {status.description}")
            if status.dependencies:
                names = ", ".join(self.orchestrator.specs[d].name for d in status.dependencies
                                  if d in self.orchestrator.specs)
                self._print(f"  Depends on: {names}")
            self._print()

    async def show_health(self):
        self._print("\nChecking Health...\n")
        for entry in (await self.orchestrator.check_health()).values():
            if not entry["running"]:
                label = "Not running"
            elif entry["healthy"]:
                label = "Healthy"
            else:
                label = f"Unhealthy ({entry.get('error') or entry.get('status_code')})"
            self._print(f"{entry['name']}: {label}")

    async def handle(self, line: str) -> bool:
        """Run one command. Returns False when the console should exit."""
        command = line.strip().lower()
        if not command:
            return True

        verb, _, target = command.partition(" ")
        target = target.strip()

        try:
            if verb == "start":
                if target in ("", "all"):
                    await self.orchestrator.start_all()
                    self.show_status()
                else:
                    await self.orchestrator.start(target)
            elif verb == "stop":
                if target in ("", "all"):
                    await self.orchestrator.stop_all()
                else:
                    await self.orchestrator.stop(target)
            elif verb == "restart":
                if target in ("", "all"):
                    await self.orchestrator.stop_all()
                    await self.orchestrator.start_all()
                else:
                    await self.orchestrator.restart(target)
            elif command == "status":
                self.show_status()
            elif command == "health":
                await self.show_health()
            elif command == "help":
                self.show_help()
            elif command in ("exit", "quit"):
                return False
            else:
                self._print(f"Unknown command: {command}")
                self._print("Type help for available commands")
        except UnknownServiceError as e:
            self._print(str(e))
        return True

    async def run(self, prompt: str = "chat-relay> "):
        self._print("Chat Relay Development Environment")
        self._print("==================================\n")
        self._print("Type help for available commands\n")
        try:
            while True:
                line = await read_line(prompt)
                if line is None:
                    break
                if not await self.handle(line):
                    break
        finally:
            if any(status.state is ServiceState.RUNNING for status in self.orchestrator.status()):
                self._print("Shutting down...")
            await self.orchestrator.stop_all()


async def _run_dev_console(config_dir: str):
    config = ConfigManager(config_dir)
    specs = load_service_specs(config)
    if not specs:
        logger.error(f"No services defined in {config.services_path}", exc_info=False)
        return 1

    async with httpx.AsyncClient() as client:
        orchestrator = Orchestrator(specs, http_client=client)
        await DevConsole(orchestrator).run()
    return 0


def run_dev_console(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="Chat relay development environment manager")
    parser.add_argument("--config-dir", default="config",
                        help="directory containing services.yaml")
    args = parser.parse_args(argv)
    try:
        code = asyncio.run(_run_dev_console(args.config_dir))
    except KeyboardInterrupt:
        # asyncio.run cancels the console task, whose finally block stops the services
        print("\nReceived SIGINT. Shutting down...")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    run_dev_console()
