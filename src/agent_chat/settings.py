"""Bridge settings read from the environment (and an optional .env file)."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

from dotenv import load_dotenv

from agent_chat.paths import config_dir

DEFAULT_STDIO_BUFFER_LIMIT_BYTES = 50 * 1024 * 1024
_MIN_STDIO_BUFFER_LIMIT_BYTES = 64 * 1024


def env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_int(name: str, default: int) -> int:
    try:
        return int(os.environ[name])
    except (KeyError, ValueError):
        return default


def _parse_stdio_buffer_limit(raw_value: str | None) -> int:
    if raw_value is None:
        return DEFAULT_STDIO_BUFFER_LIMIT_BYTES
    try:
        parsed = int(raw_value)
    except ValueError:
        return DEFAULT_STDIO_BUFFER_LIMIT_BYTES
    return max(parsed, _MIN_STDIO_BUFFER_LIMIT_BYTES)


@dataclass(frozen=True)
class BridgeSettings:
    # Interactive sessions always ask; auto-approve is an opt-in policy switch.
    auto_approve: bool = False
    cwd: str | None = None
    stdio_buffer_limit: int = DEFAULT_STDIO_BUFFER_LIMIT_BYTES

    def session_cwd(self) -> str:
        return self.cwd or os.getcwd()

    def with_overrides(self, *, auto_approve: bool | None = None, cwd: str | None = None) -> "BridgeSettings":
        settings = self
        if auto_approve is not None:
            settings = replace(settings, auto_approve=auto_approve)
        if cwd:
            settings = replace(settings, cwd=str(Path(cwd).expanduser().resolve()))
        return settings


def load_settings(env_file: Path | None = None) -> BridgeSettings:
    """Load settings, letting real environment variables win over the .env file."""

    load_dotenv(env_file or config_dir() / ".env", override=False)
    return BridgeSettings(
        auto_approve=env_flag("AGENT_CHAT_AUTO_APPROVE"),
        cwd=os.getenv("AGENT_CHAT_CWD") or None,
        stdio_buffer_limit=_parse_stdio_buffer_limit(os.getenv("AGENT_CHAT_STDIO_BUFFER_LIMIT_BYTES")),
    )
