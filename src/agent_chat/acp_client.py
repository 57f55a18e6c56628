"""Agent-facing ACP client: permission prompts, file I/O, terminals and session updates."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from acp import (
    Client,
    CreateTerminalResponse,
    KillTerminalCommandResponse,
    ReadTextFileResponse,
    ReleaseTerminalResponse,
    RequestError,
    RequestPermissionResponse,
    SessionNotification,
    TerminalOutputResponse,
    WaitForTerminalExitResponse,
    WriteTextFileResponse,
)
from acp.schema import (
    AgentMessageChunk,
    AgentPlanUpdate,
    AgentThoughtChunk,
    AllowedOutcome,
    AvailableCommandsUpdate,
    CurrentModeUpdate,
    DeniedOutcome,
    PermissionOption,
    ToolCallProgress,
    ToolCallStart,
    UserMessageChunk,
)

from agent_chat import files
from agent_chat.display import (
    format_content_block,
    format_mode,
    format_plan,
    format_thought,
    format_tool,
    iter_tool_content,
)
from agent_chat.errors import InvalidPath
from agent_chat.host import Host
from agent_chat.log_utils import log_event, session_context
from agent_chat.terminal import StubTerminalManager

if TYPE_CHECKING:
    from agent_chat.session import Session

logger = logging.getLogger(__name__)

ALLOW_ALWAYS = "allow_always"
ALLOW_ONCE = "allow_once"


def _kind(option: PermissionOption) -> str:
    kind = getattr(option, "kind", "")
    return str(getattr(kind, "value", kind))


def _cancelled() -> RequestPermissionResponse:
    return RequestPermissionResponse(outcome=DeniedOutcome(outcome="cancelled"))


def _selected(option: PermissionOption) -> RequestPermissionResponse:
    return RequestPermissionResponse(outcome=AllowedOutcome(option_id=option.option_id, outcome="selected"))


def auto_approve_option(options: list[PermissionOption]) -> PermissionOption | None:
    """Pick the first always-allow option, else the first allow-once option."""
    for wanted in (ALLOW_ALWAYS, ALLOW_ONCE):
        for option in options:
            if _kind(option) == wanted:
                return option
    return None


class BridgeClient(Client):
    """ACP client bound to one session; renders everything into the session's buffer."""

    def __init__(self, host: Host, session: Session) -> None:
        self._host = host
        self._session = session
        self._terminals = StubTerminalManager()
        self._conn: Any | None = None

    @property
    def buffer_id(self) -> int:
        return self._session.buffer_id

    def on_connect(self, conn: Any) -> None:
        self._conn = conn

    async def _append(self, text: str) -> None:
        if text:
            await self._host.append_text(self.buffer_id, text)

    async def request_permission(
        self,
        options: list[PermissionOption],
        session_id: str,
        tool_call: Any,
        **_: Any,
    ) -> RequestPermissionResponse:
        """Answer session/request_permission, asking the editor unless auto-approve is on."""
        title = getattr(tool_call, "title", None) or getattr(tool_call, "tool_call_id", "") or ""
        with session_context(self.buffer_id, session_id):
            if self._session.auto_approve:
                choice = auto_approve_option(options)
                log_event(
                    logger,
                    "permission.auto",
                    tool=title,
                    selection=choice.option_id if choice else None,
                )
                return _selected(choice) if choice is not None else _cancelled()

            items = [f"{option.name} ({_kind(option)})" for option in options]
            try:
                choice_index = await self._host.select(f"Permission requested: {title}", items)
            except Exception as exc:  # noqa: BLE001
                log_event(logger, "permission.prompt_failed", level=logging.WARNING, error=str(exc))
                return _cancelled()

            if choice_index < 1 or choice_index > len(options):
                log_event(logger, "permission.denied", tool=title, choice=choice_index)
                await self._append("\n[Permission denied]\n")
                return _cancelled()

            option = options[choice_index - 1]
            log_event(logger, "permission.granted", tool=title, selection=option.option_id)
            await self._append(f"\n[Permission granted: {option.name}]\n")
            return _selected(option)

    async def session_update(self, session_id: str, update: SessionNotification | Any, **_: Any) -> None:
        if isinstance(update, SessionNotification):
            update = update.update
        if session_id and self._session.session_id and session_id != self._session.session_id:
            log_event(
                logger,
                "session.update.foreign",
                level=logging.WARNING,
                session_id=session_id,
                expected=self._session.session_id,
            )

        if isinstance(update, UserMessageChunk):
            # The editor already shows what the user typed.
            return
        if isinstance(update, AgentMessageChunk):
            await self._append(format_content_block(update.content))
            return
        if isinstance(update, AgentThoughtChunk):
            text = getattr(update.content, "text", None)
            if text:
                await self._append(format_thought(text))
            return
        if isinstance(update, ToolCallStart):
            await self._append(format_tool(update.title, update.status or "pending"))
            await self._render_tool_content(update.content)
            return
        if isinstance(update, ToolCallProgress):
            has_content = bool(update.content)
            if update.title:
                await self._append(format_tool(update.title, update.status))
            elif update.status and has_content:
                await self._append(format_tool(None, update.status))
            await self._render_tool_content(update.content)
            return
        if isinstance(update, AgentPlanUpdate):
            await self._append(format_plan(update.entries or []))
            return
        if isinstance(update, CurrentModeUpdate):
            self._session.current_mode_id = update.current_mode_id
            await self._append(format_mode(update.current_mode_id))
            return
        if isinstance(update, AvailableCommandsUpdate):
            log_event(logger, "session.commands", commands=[cmd.name for cmd in update.available_commands or []])
            return
        logger.debug("Ignoring session update %s", type(update).__name__)

    async def _render_tool_content(self, content: Any) -> None:
        for kind, item in iter_tool_content(content):
            if kind == "diff":
                await self._host.render_diff(
                    self.buffer_id,
                    getattr(item, "path", "") or "",
                    getattr(item, "old_text", None),
                    getattr(item, "new_text", "") or "",
                )
            else:
                await self._append(item)

    async def read_text_file(
        self,
        path: str,
        session_id: str,
        limit: int | None = None,
        line: int | None = None,
        **_: Any,
    ) -> ReadTextFileResponse:
        try:
            content = await files.read_text_file(self._host, self.buffer_id, path, line=line, limit=limit)
        except InvalidPath as exc:
            raise RequestError.invalid_params({"path": path, "reason": str(exc)}) from exc
        except OSError as exc:
            raise RequestError.internal_error({"path": path, "details": str(exc)}) from exc
        return ReadTextFileResponse(content=content)

    async def write_text_file(self, content: str, path: str, session_id: str, **_: Any) -> WriteTextFileResponse:
        try:
            await files.write_text_file(self._host, self.buffer_id, path, content)
        except InvalidPath as exc:
            raise RequestError.invalid_params({"path": path, "reason": str(exc)}) from exc
        except OSError as exc:
            raise RequestError.internal_error({"path": path, "details": str(exc)}) from exc
        return WriteTextFileResponse()

    async def create_terminal(
        self,
        command: str,
        session_id: str,
        args: list[str] | None = None,
        cwd: str | None = None,
        env: Any = None,
        output_byte_limit: int | None = None,
        **_: Any,
    ) -> CreateTerminalResponse:
        return await self._terminals.create_terminal(session_id, " ".join([command, *(args or [])]))

    async def terminal_output(self, session_id: str, terminal_id: str, **_: Any) -> TerminalOutputResponse:
        return await self._terminals.terminal_output(terminal_id)

    async def release_terminal(self, session_id: str, terminal_id: str, **_: Any) -> ReleaseTerminalResponse:
        return await self._terminals.release_terminal(terminal_id)

    async def wait_for_terminal_exit(
        self, session_id: str, terminal_id: str, **_: Any
    ) -> WaitForTerminalExitResponse:
        return await self._terminals.wait_for_terminal_exit(terminal_id)

    async def kill_terminal_command(
        self, session_id: str, terminal_id: str, **_: Any
    ) -> KillTerminalCommandResponse:
        return await self._terminals.kill_terminal(terminal_id)

    async def ext_method(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        raise RequestError.method_not_found(method)

    async def ext_notification(self, method: str, params: dict[str, Any]) -> None:
        log_event(logger, "ext.notification.ignored", method=method)
