"""Tests for bridge error kinds and their JSON-RPC form."""

from acp import RequestError

from agent_chat.errors import (
    ConfigError,
    EmptyPrompt,
    InvalidPath,
    NotFound,
    ProtocolError,
    TransportFailure,
)


def test_kinds_and_codes() -> None:
    assert NotFound(3).to_request_error().to_error_obj() == {
        "code": -32603,
        "message": "no session for buffer 3",
        "data": {"kind": "not_found"},
    }
    assert EmptyPrompt().to_request_error().code == -32602
    assert InvalidPath("x").to_request_error().code == -32602
    assert ConfigError("bad").kind == "config_error"
    assert TransportFailure("gone").to_request_error().data == {"kind": "transport_failure"}


def test_protocol_error_keeps_agent_error() -> None:
    agent_error = RequestError(-32001, "limit reached", {"limit": 1})

    err = ProtocolError.from_request_error("session/new", agent_error)

    assert err.code == -32001
    assert err.message == "limit reached"
    assert err.data == {"limit": 1}
    assert err.to_error_obj() == {"code": -32001, "message": "limit reached", "data": {"limit": 1}}
    wire = err.to_request_error()
    assert wire.code == -32001
    assert wire.data["kind"] == "protocol_error"
    assert wire.data["stage"] == "session/new"
