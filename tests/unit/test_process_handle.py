import asyncio
import socket
import sys

import pytest

from chat_relay.services.orchestrator import SubprocessHandle, is_port_in_use
from chat_relay.services.orchestrator.ports import _pids_from_netstat

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses a POSIX shell")


class TestSubprocessHandle:
    @posix_only
    @pytest.mark.asyncio
    async def test_output_lines_are_forwarded(self):
        lines = []
        handle = SubprocessHandle("echo hello; echo oops 1>&2",
                                  on_output=lambda line, is_stderr: lines.append((line, is_stderr)))
        await handle.start()
        assert await handle.wait() == 0
        assert ("hello", False) in lines
        assert ("oops", True) in lines
        assert not handle.is_alive()

    @posix_only
    @pytest.mark.asyncio
    async def test_overlong_line_does_not_stall_output(self):
        lines = []
        handle = SubprocessHandle(
            "head -c 200000 /dev/zero | tr '\\0' x; head -c 300000 /dev/zero | tr '\\0' y; echo; echo done",
            on_output=lambda line, is_stderr: lines.append(line),
        )
        await handle.start()
        assert await asyncio.wait_for(handle.wait(), timeout=10) == 0
        assert lines[-1] == "done"
        assert "".join(lines[:-1]) == "x" * 200000 + "y" * 300000

    @posix_only
    @pytest.mark.asyncio
    async def test_terminate_stops_process(self):
        handle = SubprocessHandle("sleep 30")
        await handle.start()
        assert handle.is_alive()
        assert handle.pid is not None

        handle.terminate()
        code = await asyncio.wait_for(handle.wait(), timeout=5)
        assert code != 0
        assert not handle.is_alive()

    @pytest.mark.asyncio
    async def test_wait_before_start(self):
        with pytest.raises(RuntimeError):
            await SubprocessHandle("true").wait()


class TestPorts:
    def test_bound_port_is_in_use(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
            server.bind(("127.0.0.1", 0))
            server.listen(1)
            port = server.getsockname()[1]
            assert is_port_in_use(port, host="127.0.0.1")

    def test_free_port(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
            probe.bind(("127.0.0.1", 0))
            port = probe.getsockname()[1]
        assert not is_port_in_use(port, host="127.0.0.1")

    def test_netstat_parsing(self):
        output = (
            "  TCP    0.0.0.0:3002           0.0.0.0:0              LISTENING       8120\n"
            "  TCP    127.0.0.1:30021        0.0.0.0:0              LISTENING       999\n"
            "  TCP    [::]:3002              [::]:0                 LISTENING       8120\n"
        )
        assert _pids_from_netstat(output, 3002) == ["8120", "8120"]
