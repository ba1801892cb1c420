"""
Child process handles used by the orchestrator.

``ProcessHandle`` is the capability the orchestrator depends on; tests
substitute an in-memory implementation. ``SubprocessHandle`` runs a shell
command through asyncio and forwards every output line to a callback.
"""

import asyncio
import os
import signal
import subprocess
import sys
from typing import Callable, Dict, Optional

from ...core.logging import logger

IS_WINDOWS = sys.platform == "win32"

# (line, is_stderr)
OutputCallback = Callable[[str, bool], None]


class ProcessHandle:
    """One managed child process."""

    @property
    def pid(self) -> Optional[int]:
        raise NotImplementedError

    async def start(self):
        raise NotImplementedError

    def terminate(self):
        """Ask the process to exit."""
        raise NotImplementedError

    def kill(self):
        """Force the process to exit."""
        raise NotImplementedError

    def is_alive(self) -> bool:
        raise NotImplementedError

    async def wait(self) -> int:
        """Wait for exit and return the exit code. Safe to await more than once."""
        raise NotImplementedError


class SubprocessHandle(ProcessHandle):
    """
    Shell command run with ``asyncio.create_subprocess_shell``.

    On POSIX the child gets its own session so signals reach the whole
    process group, not only the shell. On Windows ``taskkill /t`` walks the
    process tree instead.
    """

    def __init__(self, command: str, cwd: Optional[str] = None,
                 env: Optional[Dict[str, str]] = None,
                 on_output: Optional[OutputCallback] = None):
        self.command = command
        self.cwd = cwd
        self.env = env
        self.on_output = on_output
        self._process: Optional[asyncio.subprocess.Process] = None
        self._pumps = []

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    async def start(self):
        if self._process is not None:
            raise RuntimeError(f"Process already started: {self.command}")

        kwargs = {}
        if not IS_WINDOWS:
            kwargs["start_new_session"] = True

        self._process = await asyncio.create_subprocess_shell(
            self.command,
            cwd=self.cwd,
            env=self.env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            **kwargs
        )
        self._pumps = [
            asyncio.create_task(self._pump(self._process.stdout, False)),
            asyncio.create_task(self._pump(self._process.stderr, True)),
        ]
        logger.debug(f"Spawned process {self._process.pid}: {self.command}")

    async def _pump(self, stream: asyncio.StreamReader, is_stderr: bool):
        # Lines longer than the reader limit are emitted in pieces so the pipe never stalls.
        while True:
            try:
                raw = await stream.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                raw = e.partial
            except asyncio.LimitOverrunError as e:
                raw = await stream.read(e.consumed)
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line.strip() and self.on_output is not None:
                self.on_output(line, is_stderr)

    def _signal(self, force: bool):
        if not self.is_alive():
            return
        pid = self._process.pid
        try:
            if IS_WINDOWS:
                args = ["taskkill", "/pid", str(pid), "/t"]
                if force:
                    args.append("/f")
                subprocess.Popen(args, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
            else:
                os.killpg(os.getpgid(pid), signal.SIGKILL if force else signal.SIGTERM)
        except (ProcessLookupError, PermissionError) as e:
            logger.debug(f"Could not signal process {pid}: {e}")

    def terminate(self):
        self._signal(force=False)

    def kill(self):
        self._signal(force=True)

    def is_alive(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def wait(self) -> int:
        if self._process is None:
            raise RuntimeError("Process was never started")
        code = await self._process.wait()
        if self._pumps:
            await asyncio.gather(*self._pumps, return_exceptions=True)
        return code
