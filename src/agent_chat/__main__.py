"""Module entrypoint for `python -m agent_chat`."""

from __future__ import annotations

from agent_chat.cli import run


if __name__ == "__main__":
    run()
