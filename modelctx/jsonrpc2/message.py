"""JSON-RPC 2.0 message types: identifiers, requests, responses and errors."""

from __future__ import annotations

import enum
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

CODE_PARSE_ERROR = -32700
CODE_INVALID_REQUEST = -32600
CODE_METHOD_NOT_FOUND = -32601
CODE_INVALID_PARAMS = -32602
CODE_INTERNAL_ERROR = -32603
CODE_SERVER_ERROR = -32000

JSONRPC_VERSION = "2.0"

JSONText = Union[str, bytes, bytearray]


def _encode_default(value: Any) -> Any:
    # Exceptions carry no exported fields, so they encode as an empty object.
    if isinstance(value, BaseException):
        return {}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _dumps(obj: Any) -> str:
    return json.dumps(
        obj, separators=(",", ":"), ensure_ascii=False, default=_encode_default
    )


def _load_object(data: JSONText) -> dict[str, Any]:
    obj = json.loads(data)
    if not isinstance(obj, dict):
        raise ValueError("message is not a JSON object")
    return obj


def _check_version(obj: Mapping[str, Any]) -> None:
    if obj.get("jsonrpc") != JSONRPC_VERSION:
        raise ValueError("invalid JSON-RPC version")


@dataclass(frozen=True)
class ID:
    """A request identifier: a string, an integer, or null."""

    value: Optional[Union[str, int]] = None

    def is_null(self) -> bool:
        """Return True when the identifier is null."""
        return self.value is None

    def _encoded(self) -> Optional[Union[str, int]]:
        value = self.value
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        raise TypeError("invalid ID type")

    def __str__(self) -> str:
        value = self._encoded()
        return "" if value is None else str(value)

    def to_json(self) -> str:
        """Return the identifier as JSON text."""
        return _dumps(self._encoded())

    @classmethod
    def _from_value(cls, value: Any) -> ID:
        if value is None or isinstance(value, str):
            return cls(value)
        if isinstance(value, bool):
            raise ValueError(f"invalid ID type: {type(value).__name__}")
        if isinstance(value, (int, float)):
            return cls(int(value))
        raise ValueError(f"invalid ID type: {type(value).__name__}")

    @classmethod
    def from_json(cls, data: JSONText) -> ID:
        """Parse an identifier from JSON text."""
        return cls._from_value(json.loads(data))


class JSONRPCError(Exception):
    """A JSON-RPC 2.0 error object, usable as an exception."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"JSONRPCError(code={self.code!r}, message={self.message!r}, "
            f"data={self.data!r})"
        )

    def _is_zero(self) -> bool:
        return self.code == 0 and self.message == "" and self.data is None

    def to_dict(self) -> dict[str, Any]:
        """Return the error as a JSON-compatible dictionary."""
        result: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            result["data"] = self.data
        return result


def _error_from_value(value: Any) -> Optional[JSONRPCError]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValueError("error is not a JSON object")
    code = value.get("code", 0)
    message = value.get("message", "")
    if isinstance(code, bool) or not isinstance(code, int):
        raise ValueError("error code is not an integer")
    if not isinstance(message, str):
        raise ValueError("error message is not a string")
    return JSONRPCError(code, message, value.get("data"))


@dataclass
class Request:
    """A request, or a notification when its identifier is null."""

    method: str
    params: Any = None
    id: ID = field(default_factory=ID)

    def to_dict(self) -> dict[str, Any]:
        """Return the request as a JSON-compatible dictionary."""
        result: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION}
        if not self.id.is_null():
            result["id"] = self.id._encoded()
        result["method"] = self.method
        if self.params is not None:
            result["params"] = self.params
        return result

    def to_json(self) -> str:
        """Return the request serialised as JSON text."""
        return _dumps(self.to_dict())

    @classmethod
    def from_json(cls, data: JSONText) -> Request:
        """Parse a request from JSON text, checking the protocol version."""
        obj = _load_object(data)
        _check_version(obj)
        method = obj.get("method", "")
        if not isinstance(method, str):
            raise ValueError("method is not a string")
        return cls(
            method=method,
            params=obj.get("params"),
            id=ID._from_value(obj.get("id")),
        )


@dataclass
class Response:
    """A response carrying either a result or an error."""

    id: ID = field(default_factory=ID)
    result: Any = None
    error: Optional[JSONRPCError] = None

    def to_dict(self) -> dict[str, Any]:
        """Return the response as a JSON-compatible dictionary."""
        result: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION}
        if not self.id.is_null():
            result["id"] = self.id._encoded()
        if self.result is not None:
            result["result"] = self.result
        if self.error is not None and not self.error._is_zero():
            result["error"] = self.error.to_dict()
        return result

    def to_json(self) -> str:
        """Return the response serialised as JSON text."""
        return _dumps(self.to_dict())

    @classmethod
    def from_json(cls, data: JSONText) -> Response:
        """Parse a response from JSON text, checking the protocol version."""
        obj = _load_object(data)
        _check_version(obj)
        return cls(
            id=ID._from_value(obj.get("id")),
            result=obj.get("result"),
            error=_error_from_value(obj.get("error")),
        )

    def unwrap(self) -> Any:
        """Return the result, or raise the error when the response failed."""
        if self.error is not None and self.error.code != 0:
            raise self.error
        return self.result


class MessageType(enum.Enum):
    """The kind of a single JSON-RPC 2.0 message."""

    REQUEST = 1
    RESPONSE = 2
    NOTIFICATION = 3


def convert_error(err: BaseException) -> JSONRPCError:
    """Turn any exception into a JSON-RPC error object."""
    if err is None:
        raise TypeError("nil error")
    if all(hasattr(err, name) for name in ("code", "message", "data")):
        return JSONRPCError(err.code, err.message, err.data)
    return JSONRPCError(CODE_SERVER_ERROR, str(err), err)


def get_message_type(msg: Union[JSONText, Mapping[str, Any]]) -> MessageType:
    """Classify a message given as JSON text or as a decoded object."""
    obj = msg if isinstance(msg, Mapping) else _load_object(msg)
    _check_version(obj)
    if "error" in obj:
        # An error response may lack an id.
        return MessageType.RESPONSE
    if "result" in obj:
        if "id" in obj:
            return MessageType.RESPONSE
        raise ValueError("invalid message type")
    if "method" in obj:
        if "id" in obj:
            return MessageType.REQUEST
        return MessageType.NOTIFICATION
    raise ValueError("invalid message type")