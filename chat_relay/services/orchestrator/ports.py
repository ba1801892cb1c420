"""Port probing and freeing for local development services."""

import asyncio
import errno
import re
import socket
import sys

from ...core.logging import logger


def is_port_in_use(port: int, host: str = "0.0.0.0") -> bool:
    """True when binding ``port`` fails because something already listens on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError as e:
            return e.errno in (errno.EADDRINUSE, getattr(errno, "WSAEADDRINUSE", errno.EADDRINUSE))
    return False


async def _run(command: str) -> str:
    process = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    if process.returncode != 0 or stderr.strip():
        return ""
    return stdout.decode("utf-8", errors="replace").strip()


def _pids_from_netstat(output: str, port: int):
    # Proto  Local Address  Foreign Address  State  PID
    pids = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 2 or not parts[1].endswith(f":{port}"):
            continue
        match = re.search(r"(\d+)\s*$", line)
        if match and match.group(1) != "0":
            pids.append(match.group(1))
    return pids


async def kill_process_on_port(port: int) -> bool:
    """
    Force kill the first process listening on ``port``.

    Uses ``lsof``/``kill -9`` on POSIX and ``netstat``/``taskkill`` on Windows.
    Returns False when no owning process was found.
    """
    try:
        if sys.platform == "win32":
            pids = _pids_from_netstat(await _run(f"netstat -ano | findstr :{port}"), port)
            kill_command = "taskkill /F /PID {pid}"
        else:
            pids = [pid for pid in (await _run(f"lsof -i :{port} -t")).splitlines() if pid.strip()]
            kill_command = "kill -9 {pid}"
    except OSError as e:
        logger.warning(f"Could not look up process on port {port}: {e}")
        return False

    if not pids:
        return False

    pid = pids[0].strip()
    logger.info(f"Killing process {pid} holding port {port}")
    process = await asyncio.create_subprocess_shell(
        kill_command.format(pid=pid),
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
    )
    await process.wait()
    return True
