from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from acp import RequestError

from agent_chat.errors import ProtocolError, SpawnFailure, TransportFailure
from agent_chat.session import EXIT_GRACE_S, ExecutionScope, Session, kill_process_group, reap, spawn_agent

LIMIT = 64 * 1024


@pytest.mark.asyncio
async def test_scope_returns_result() -> None:
    scope = ExecutionScope()

    async def work() -> str:
        return "done"

    assert await scope.run(work()) == "done"


@pytest.mark.asyncio
async def test_scope_cancel_wakes_pending_calls() -> None:
    scope = ExecutionScope()
    never = asyncio.get_running_loop().create_future()

    pending = asyncio.create_task(scope.run(never))
    await asyncio.sleep(0)
    scope.cancel("agent process exited with code 1")

    with pytest.raises(TransportFailure, match="exited with code 1"):
        await pending
    assert never.cancelled()


@pytest.mark.asyncio
async def test_cancelled_scope_fails_new_calls() -> None:
    scope = ExecutionScope()
    scope.cancel()

    async def work() -> str:
        return "late"

    with pytest.raises(TransportFailure):
        await scope.run(work())
    assert scope.reason == "session closed"


@pytest.mark.asyncio
async def test_session_call_normalises_errors() -> None:
    session = Session(buffer_id=1)

    async def rejected() -> None:
        raise RequestError(-32002, "nope")

    async def severed() -> None:
        raise ConnectionError("Connection closed")

    with pytest.raises(ProtocolError) as excinfo:
        await session.call("session/prompt", rejected())
    assert excinfo.value.code == -32002

    with pytest.raises(TransportFailure, match="session/prompt failed"):
        await session.call("session/prompt", severed())


def test_metadata_lists_modes() -> None:
    modes = SimpleNamespace(
        current_mode_id="ask",
        available_modes=[SimpleNamespace(id="ask", name="Ask", description=None)],
    )
    session = Session(buffer_id=1, session_id="s-1", modes=modes, current_mode_id="ask")

    assert session.metadata() == {
        "session_id": "s-1",
        "modes": {
            "current_mode_id": "ask",
            "available_modes": [{"id": "ask", "name": "Ask", "description": None}],
        },
    }
    assert Session(buffer_id=2).metadata()["modes"] == {"current_mode_id": None, "available_modes": []}


@pytest.mark.asyncio
async def test_spawn_agent_pipes_stdio_and_overlays_env(tmp_path: Path) -> None:
    script = tmp_path / "echo_env.py"
    script.write_text("import os, sys\nsys.stdout.write(os.environ['BRIDGE_TEST'] + sys.stdin.readline())\n")

    process = await spawn_agent([str(script)], {"BRIDGE_TEST": "env:"}, LIMIT)
    out, _ = await process.communicate(b"stdin\n")

    assert out == b"env:stdin\n"
    assert process.returncode == 0


@pytest.mark.asyncio
async def test_spawn_agent_failures(tmp_path: Path) -> None:
    with pytest.raises(SpawnFailure):
        await spawn_agent([], {}, LIMIT)
    with pytest.raises(SpawnFailure):
        await spawn_agent([str(tmp_path / "missing")], {}, LIMIT)

    process = await spawn_agent([sys.executable, "-c", "pass"], {}, LIMIT)
    assert await process.wait() == 0


def _alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


@pytest.mark.asyncio
async def test_spawned_agent_leads_its_own_process_group() -> None:
    process = await spawn_agent([sys.executable, "-c", "import time; time.sleep(30)"], {}, LIMIT)
    try:
        assert os.getpgid(process.pid) == process.pid
        assert os.getpgid(process.pid) != os.getpgid(0)
    finally:
        kill_process_group(process)
        await reap(process, None)
    assert process.returncode is not None


@pytest.mark.asyncio
async def test_detach_kills_children_holding_the_pipes(tmp_path: Path) -> None:
    pid_file = tmp_path / "child.pid"
    script = f'sleep 30 & echo $! > "{pid_file}"; exec sleep 30'
    session = Session(buffer_id=1)
    session.process = await spawn_agent(["sh", "-c", script], {}, LIMIT)
    while not pid_file.exists() or not pid_file.read_text().strip():
        await asyncio.sleep(0.01)

    process, connection = session.detach()
    await asyncio.wait_for(reap(process, connection), timeout=5)

    assert process.returncode is not None
    assert not _alive(process.pid)


@pytest.mark.asyncio
async def test_reap_gives_up_on_pipes_held_outside_the_group(tmp_path: Path, caplog) -> None:
    pid_file = tmp_path / "escaped.pid"
    code = (
        "import subprocess, sys\n"
        "child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)'], start_new_session=True)\n"
        "open(sys.argv[1], 'w').write(str(child.pid))\n"
    )
    caplog.set_level(logging.WARNING, logger="agent_chat.session")
    process = await spawn_agent([sys.executable, "-c", code, str(pid_file)], {}, LIMIT)
    while not pid_file.exists() or not pid_file.read_text().strip():
        await asyncio.sleep(0.01)
    escaped = int(pid_file.read_text())
    try:
        kill_process_group(process)
        started = asyncio.get_running_loop().time()
        await reap(process, None)
        elapsed = asyncio.get_running_loop().time() - started
    finally:
        os.kill(escaped, signal.SIGKILL)

    assert elapsed < EXIT_GRACE_S + 2
    assert any(record.getMessage() == "session.reap_timeout" for record in caplog.records)
