"""One editor buffer bound to one agent subprocess and its ACP connection."""

from __future__ import annotations

import asyncio
import asyncio.subprocess as aio_subprocess
import contextlib
import logging
import os
import signal
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Mapping, Sequence, TypeVar

from acp import PROTOCOL_VERSION, RequestError, connect_to_agent
from acp.schema import ClientCapabilities, FileSystemCapability, Implementation

from agent_chat import __version__
from agent_chat.acp_client import BridgeClient
from agent_chat.errors import ProtocolError, SpawnFailure, TransportFailure
from agent_chat.host import Host
from agent_chat.log_utils import log_event, session_context
from agent_chat.mcp_config import McpServer, describe_server, filter_mcp_servers
from agent_chat.settings import BridgeSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# How long a call may still complete after the agent process has exited,
# so a response written just before exit is not lost.
EXIT_GRACE_S = 0.5


class ExecutionScope:
    """Cancellable lifetime shared by every call into one session.

    ``cancel()`` wakes all pending ``run()`` calls with TransportFailure and
    makes later calls fail immediately.
    """

    def __init__(self) -> None:
        self._cancelled = asyncio.Event()
        self._reason = "session closed"

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        if self._cancelled.is_set():
            return
        if reason:
            self._reason = reason
        self._cancelled.set()

    async def run(self, awaitable: Awaitable[T]) -> T:
        task = asyncio.ensure_future(awaitable)
        if self.cancelled:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            raise TransportFailure(self._reason)

        waiter = asyncio.ensure_future(self._cancelled.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        raise TransportFailure(self._reason)


@dataclass
class Session:
    buffer_id: int
    auto_approve: bool = False
    process: aio_subprocess.Process | None = None
    connection: Any | None = None
    session_id: str = ""
    scope: ExecutionScope = field(default_factory=ExecutionScope)
    modes: Any | None = None
    current_mode_id: str | None = None
    prompt_in_flight: bool = False
    _exit_watch: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def ready(self) -> bool:
        return self.connection is not None and bool(self.session_id)

    @property
    def exited(self) -> bool:
        return self.process is None or self.process.returncode is not None

    def metadata(self) -> dict[str, Any]:
        """Session description handed to the editor for prompt buffer setup."""
        modes: dict[str, Any] = {"current_mode_id": self.current_mode_id, "available_modes": []}
        if self.modes is not None:
            modes["available_modes"] = [
                {
                    "id": mode.id,
                    "name": mode.name,
                    "description": getattr(mode, "description", None),
                }
                for mode in (getattr(self.modes, "available_modes", None) or [])
            ]
        return {"session_id": self.session_id, "modes": modes}

    async def call(self, stage: str, awaitable: Awaitable[T]) -> T:
        """Run one protocol call inside the session scope, normalising its errors."""
        try:
            return await self.scope.run(awaitable)
        except RequestError as exc:
            raise ProtocolError.from_request_error(stage, exc) from exc
        except ConnectionError as exc:
            raise TransportFailure(f"{stage} failed: connection to agent lost ({exc})") from exc

    async def start(
        self,
        host: Host,
        command: Sequence[str],
        env: Mapping[str, str],
        mcp_servers: list[McpServer],
        settings: BridgeSettings,
    ) -> None:
        """Spawn the agent and run initialize + session/new.

        Raises a BridgeError on any failure; the caller owns rollback via close().
        """
        with session_context(self.buffer_id):
            self.process = await spawn_agent(command, env, settings.stdio_buffer_limit)
            self._exit_watch = asyncio.create_task(self._watch_exit(self.process))
            log_event(logger, "session.spawned", pid=self.process.pid, command=list(command))

            client = BridgeClient(host, self)
            self.connection = connect_to_agent(client, self.process.stdin, self.process.stdout)

            init = await self.call(
                "initialize",
                self.connection.initialize(
                    protocol_version=PROTOCOL_VERSION,
                    client_capabilities=ClientCapabilities(
                        fs=FileSystemCapability(read_text_file=True, write_text_file=True),
                        terminal=True,
                    ),
                    client_info=Implementation(name="agent-chat", title="Agent Chat", version=__version__),
                ),
            )
            if init.protocol_version != PROTOCOL_VERSION:
                log_event(
                    logger,
                    "session.protocol_mismatch",
                    level=logging.WARNING,
                    agent=init.protocol_version,
                    client=PROTOCOL_VERSION,
                )

            agent_caps = getattr(init, "agent_capabilities", None)
            offered = filter_mcp_servers(mcp_servers, getattr(agent_caps, "mcp_capabilities", None))
            dropped = len(mcp_servers) - len(offered)
            if dropped:
                log_event(logger, "session.mcp.filtered", dropped=dropped)

            cwd = settings.session_cwd()
            new = await self.call("session/new", self.connection.new_session(cwd=cwd, mcp_servers=offered))
            self.session_id = new.session_id
            self.modes = getattr(new, "modes", None)
            self.current_mode_id = getattr(self.modes, "current_mode_id", None)
            log_event(
                logger,
                "session.started",
                session_id=self.session_id,
                cwd=cwd,
                mode=self.current_mode_id,
                mcp=[describe_server(server) for server in offered],
            )

    async def _watch_exit(self, process: aio_subprocess.Process) -> None:
        returncode = await process.wait()
        await asyncio.sleep(EXIT_GRACE_S)
        self.scope.cancel(f"agent process exited with code {returncode}")

    def detach(self) -> tuple[aio_subprocess.Process | None, Any | None]:
        """Cancel the scope, kill the agent's process group and clear every live field at once."""
        process, connection = self.process, self.connection
        self.scope.cancel()
        if process is not None:
            kill_process_group(process)
        self.process = None
        self.connection = None
        self.session_id = ""
        self.prompt_in_flight = False
        return process, connection

    async def close(self) -> None:
        process, connection = self.detach()
        await reap(process, connection)
        if self._exit_watch is not None:
            self._exit_watch.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._exit_watch
            self._exit_watch = None


def kill_process_group(process: aio_subprocess.Process) -> None:
    """SIGKILL the agent and anything it started in its session.

    Agents run as session leaders (see spawn_agent), so their pid is also the
    group id. Wrapper scripts that fork helpers holding the stdio pipes are
    taken down with them.
    """
    if hasattr(os, "killpg"):
        with contextlib.suppress(ProcessLookupError, PermissionError):
            os.killpg(process.pid, signal.SIGKILL)
    if process.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            process.kill()


async def reap(process: aio_subprocess.Process | None, connection: Any | None) -> None:
    """Release the resources returned by Session.detach().

    Waiting is bounded by EXIT_GRACE_S: ``process.wait()`` only returns once
    the pipes close, and a stray descendant outside the group may hold them.
    """
    if connection is not None:
        with contextlib.suppress(Exception):
            await connection.close()
    if process is None:
        return
    try:
        await asyncio.wait_for(process.wait(), EXIT_GRACE_S)
    except asyncio.TimeoutError:
        log_event(
            logger,
            "session.reap_timeout",
            level=logging.WARNING,
            pid=process.pid,
            returncode=process.returncode,
        )
    except ProcessLookupError:
        pass


async def spawn_agent(
    command: Sequence[str],
    env: Mapping[str, str],
    limit: int,
) -> aio_subprocess.Process:
    """Start an agent with stdin/stdout piped for ACP and stderr passed through."""
    if not command or not command[0]:
        raise SpawnFailure("no agent command given")

    program = command[0]
    args = list(command[1:])
    program_path = Path(program)
    if program_path.suffix == ".py" and program_path.exists() and not os.access(program_path, os.X_OK):
        args = [str(program_path), *args]
        program = sys.executable

    try:
        process = await asyncio.create_subprocess_exec(
            program,
            *args,
            stdin=aio_subprocess.PIPE,
            stdout=aio_subprocess.PIPE,
            env={**os.environ, **dict(env)},
            limit=limit,
            start_new_session=True,
        )
    except OSError as exc:
        raise SpawnFailure(f"failed to start {command[0]}: {exc}") from exc

    if process.stdin is None or process.stdout is None:
        kill_process_group(process)
        await reap(process, None)
        raise SpawnFailure("agent process does not expose stdio pipes")
    return process
