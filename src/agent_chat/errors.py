"""Error kinds raised by the session bridge.

Every host-facing verb fails with one of these. The editor channel converts
them into JSON-RPC errors whose ``data.kind`` carries the stable tag below.
"""

from __future__ import annotations

from typing import Any

from acp import RequestError

INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class BridgeError(Exception):
    kind = "bridge_error"
    code = INTERNAL_ERROR

    def to_request_error(self) -> RequestError:
        return RequestError(self.code, str(self), {"kind": self.kind})


class AlreadyExists(BridgeError):
    kind = "already_exists"

    def __init__(self, buffer_id: int) -> None:
        super().__init__(f"session already exists for buffer {buffer_id}")
        self.buffer_id = buffer_id


class NotFound(BridgeError):
    kind = "not_found"

    def __init__(self, buffer_id: int) -> None:
        super().__init__(f"no session for buffer {buffer_id}")
        self.buffer_id = buffer_id


class EmptyPrompt(BridgeError):
    kind = "empty_prompt"
    code = INVALID_PARAMS

    def __init__(self) -> None:
        super().__init__("no prompt provided")


class PromptInFlight(BridgeError):
    kind = "prompt_in_flight"

    def __init__(self, buffer_id: int) -> None:
        super().__init__(f"a prompt is already running for buffer {buffer_id}")
        self.buffer_id = buffer_id


class InvalidPath(BridgeError):
    kind = "invalid_path"
    code = INVALID_PARAMS

    def __init__(self, path: str) -> None:
        super().__init__(f"path must be absolute: {path}")
        self.path = path


class SpawnFailure(BridgeError):
    kind = "spawn_failure"


class TransportFailure(BridgeError):
    kind = "transport_failure"


class ConfigError(BridgeError):
    kind = "config_error"
    code = INVALID_PARAMS


class ProtocolError(BridgeError):
    """A structured JSON-RPC error returned by the agent."""

    kind = "protocol_error"

    def __init__(self, stage: str, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"{stage} error ({code}): {message}")
        self.stage = stage
        self.code = code
        self.message = message
        self.data = data

    @classmethod
    def from_request_error(cls, stage: str, exc: RequestError) -> "ProtocolError":
        error = exc.to_error_obj()
        return cls(
            stage,
            int(error.get("code", INTERNAL_ERROR)),
            str(error.get("message", "")),
            error.get("data"),
        )

    def to_error_obj(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload

    def to_request_error(self) -> RequestError:
        return RequestError(
            self.code,
            str(self),
            {"kind": self.kind, "stage": self.stage, "agent_error": self.to_error_obj()},
        )
