"""Terminal capability stub.

The bridge advertises ``terminal=True`` during initialize so agents that
require the capability still start, but no terminal is ever spawned: every
call succeeds and output explains that terminals are unavailable.
"""

from __future__ import annotations

import logging
import uuid

from acp import (
    CreateTerminalResponse,
    KillTerminalCommandResponse,
    ReleaseTerminalResponse,
    TerminalOutputResponse,
    WaitForTerminalExitResponse,
)

from agent_chat.log_utils import log_event

logger = logging.getLogger(__name__)

UNAVAILABLE_OUTPUT = "Sorry, terminal support is not available yet"


class StubTerminalManager:
    def __init__(self) -> None:
        self._terminals: dict[str, str] = {}

    async def create_terminal(self, session_id: str, command: str) -> CreateTerminalResponse:
        terminal_id = f"term-{uuid.uuid4().hex[:8]}"
        self._terminals[terminal_id] = command
        log_event(logger, "terminal.create.stub", session_id=session_id, terminal_id=terminal_id, command=command)
        return CreateTerminalResponse(terminal_id=terminal_id)

    async def terminal_output(self, terminal_id: str) -> TerminalOutputResponse:
        return TerminalOutputResponse(output=UNAVAILABLE_OUTPUT, truncated=False, exit_status=None)

    async def wait_for_terminal_exit(self, terminal_id: str) -> WaitForTerminalExitResponse:
        return WaitForTerminalExitResponse(exit_code=None, signal=None)

    async def kill_terminal(self, terminal_id: str) -> KillTerminalCommandResponse:
        return KillTerminalCommandResponse()

    async def release_terminal(self, terminal_id: str) -> ReleaseTerminalResponse:
        self._terminals.pop(terminal_id, None)
        return ReleaseTerminalResponse()
