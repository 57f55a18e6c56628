from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from agent_chat import cli
from agent_chat.settings import BridgeSettings


def test_parser_defaults_leave_environment_in_charge() -> None:
    args = cli.build_parser().parse_args([])
    assert args.auto_approve is None
    assert args.cwd is None
    assert args.log_level is None


@pytest.mark.asyncio
async def test_main_applies_flags(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("AGENT_CHAT_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setattr(cli, "configure_logging", lambda config: None)
    serve = AsyncMock(return_value=0)
    monkeypatch.setattr(cli, "serve", serve)

    code = await cli.main(["agent-chat", "--auto-approve", "--cwd", str(tmp_path), "--log-level", "debug"])

    assert code == 0
    settings = serve.await_args.args[0]
    assert isinstance(settings, BridgeSettings)
    assert settings.auto_approve is True
    assert settings.cwd == str(tmp_path.resolve())
