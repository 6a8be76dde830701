"""A JSON-RPC 2.0 connection over a message session, with request helpers."""

from __future__ import annotations

import asyncio
import inspect
import itertools
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from typing import Any, Optional, Union

from modelctx.jsonrpc2.message import (
    CODE_INTERNAL_ERROR,
    CODE_INVALID_REQUEST,
    CODE_METHOD_NOT_FOUND,
    CODE_PARSE_ERROR,
    ID,
    JSONRPCError,
    MessageType,
    Request,
    Response,
    convert_error,
    get_message_type,
)

Handler = Callable[[Any], Union[Any, Awaitable[Any]]]
Message = Union[str, bytes, bytearray]

_ids = itertools.count(1)


class Session(ABC):
    """A bidirectional stream of JSON messages."""

    @abstractmethod
    async def send(self, data: str) -> None:
        """Send one message."""

    @abstractmethod
    def receive(self) -> AsyncIterator[Message]:
        """Yield incoming messages until the session ends."""

    @abstractmethod
    async def close(self) -> None:
        """Close the session."""


class ConnectionClosedError(ConnectionError):
    """Raised when a closed connection is used."""

    def __init__(self, message: str = "connection closed") -> None:
        super().__init__(message)


async def _invoke(handler: Handler, params: Any) -> Any:
    result = handler(params)
    if inspect.isawaitable(result):
        result = await result
    return result


def _error_response(id: ID, code: int, message: str) -> Response:
    return Response(id=id, error=JSONRPCError(code, message))


class Connection:
    """A JSON-RPC 2.0 endpoint that both sends and serves requests."""

    def __init__(
        self,
        session: Session,
        handlers: Optional[Mapping[str, Handler]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._session = session
        self._handlers: dict[str, Handler] = dict(handlers or {})
        self._pending: dict[ID, asyncio.Future[Response]] = {}
        self._send_lock = asyncio.Lock()
        self._closed = False
        self._logger = logger
        self._serve_task: Optional[asyncio.Task[None]] = None

    @property
    def closed(self) -> bool:
        """True once the connection has been closed."""
        return self._closed

    def register_handler(self, method: str, handler: Handler) -> None:
        """Register a handler called with the params of each matching request."""
        self._handlers[method] = handler

    def _log(self, message: str, body: Any) -> None:
        if self._logger is not None:
            self._logger.debug("%s %s", message, body)

    def _check_open(self) -> None:
        if self._closed:
            raise ConnectionClosedError()

    def open(self) -> asyncio.Task[None]:
        """Start serving incoming messages in a background task."""
        self._check_open()
        task = asyncio.get_running_loop().create_task(self._serve_quietly())
        self._serve_task = task
        return task

    async def _serve_quietly(self) -> None:
        try:
            await self._serve()
        except ConnectionClosedError:
            pass
        except Exception as exc:
            self._log("serve stopped", exc)

    async def serve(self) -> None:
        """Serve incoming messages; raises ConnectionClosedError when the stream ends."""
        self._check_open()
        await self._serve()

    async def _serve(self) -> None:
        async for msg in self._session.receive():
            self._check_open()
            await self.handle_message(msg)
        raise ConnectionClosedError()

    async def close(self) -> None:
        """Close the connection; further calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(ConnectionClosedError())
        task = self._serve_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        await self._session.close()

    async def _send(self, data: str) -> None:
        async with self._send_lock:
            await self._session.send(data)

    async def call(self, id: ID, method: str, params: Any) -> Response:
        """Send a request and wait for the matching response."""
        self._check_open()
        data = Request(method=method, params=params, id=id).to_json()
        future: asyncio.Future[Response] = asyncio.get_running_loop().create_future()
        self._pending[id] = future
        try:
            await self._send(data)
        except BaseException:
            self._pending.pop(id, None)
            raise
        try:
            return await future
        finally:
            if self._pending.get(id) is future:
                del self._pending[id]

    async def handle_message(self, msg: Message) -> None:
        """Handle one incoming message, which may be a batch."""
        text = msg.decode("utf-8") if isinstance(msg, (bytes, bytearray)) else msg
        try:
            decoded = json.loads(text)
        except ValueError:
            decoded = _ParseFailure
        if text.strip().startswith("["):
            if not isinstance(decoded, list):
                await self._send(_error_response(ID(), CODE_PARSE_ERROR, "Parse error").to_json())
                return
            await self._handle_batch(decoded)
            return
        if decoded is None:
            return
        if not isinstance(decoded, dict):
            await self._send(_error_response(ID(), CODE_PARSE_ERROR, "Parse error").to_json())
            return
        try:
            await self._handle_single(text, decoded)
        except Exception as exc:
            self._log("message dropped", exc)

    async def _handle_single(self, text: str, obj: dict[str, Any]) -> None:
        kind = get_message_type(obj)
        if kind is MessageType.REQUEST:
            await self._handle_request(text)
        elif kind is MessageType.RESPONSE:
            self._handle_response(text)
        else:
            await self._handle_notification(text)

    async def _handle_request(self, text: str) -> None:
        self._log("handleRequest", text)
        req = Request.from_json(text)
        handler = self._handlers.get(req.method)
        if handler is None:
            await self.send_error(req.id, JSONRPCError(CODE_METHOD_NOT_FOUND, "method not found"))
            return
        try:
            result = await _invoke(handler, req.params)
        except Exception as exc:
            await self.send_error(req.id, exc)
            return
        await self.send_response(req.id, result)

    def _handle_response(self, text: str) -> None:
        self._log("handleResponse", text)
        resp = Response.from_json(text)
        future = self._pending.pop(resp.id, None)
        if future is None:
            raise ValueError("invalid response ID")
        if not future.done():
            future.set_result(resp)

    async def _handle_notification(self, text: str) -> None:
        req = Request.from_json(text)
        handler = self._handlers.get(req.method)
        if handler is None:
            raise LookupError("method not found")
        await _invoke(handler, req.params)

    async def send_response(self, id: ID, result: Any) -> None:
        """Send a successful response for the request with this identifier."""
        if id.is_null():
            raise ValueError("invalid response ID")
        data = Response(id=id, result=result).to_json()
        self._log("sendResponse", data)
        await self._send(data)

    async def send_error(self, id: ID, error: BaseException) -> None:
        """Send an error response for the request with this identifier."""
        if id.is_null():
            raise ValueError("invalid error ID")
        data = Response(id=id, error=convert_error(error)).to_json()
        self._log("sendError", data)
        await self._send(data)

    async def _handle_batch(self, batch: list[Any]) -> None:
        if not batch:
            await self._send(
                _error_response(ID(), CODE_INVALID_REQUEST, "Invalid Request").to_json()
            )
            return

        responses: list[Response] = []
        for item in batch:
            if not isinstance(item, dict):
                responses.append(_error_response(ID(), CODE_INVALID_REQUEST, "Invalid Request"))
                continue
            try:
                kind = get_message_type(item)
            except ValueError:
                responses.append(_error_response(ID(), CODE_INVALID_REQUEST, "Invalid Request"))
                continue

            if kind is MessageType.REQUEST:
                try:
                    req = Request.from_json(json.dumps(item))
                except ValueError:
                    responses.append(_error_response(ID(), CODE_PARSE_ERROR, "Parse error"))
                    continue
                handler = self._handlers.get(req.method)
                if handler is None:
                    responses.append(
                        _error_response(req.id, CODE_METHOD_NOT_FOUND, "method not found")
                    )
                    continue
                try:
                    result = await _invoke(handler, req.params)
                except Exception as exc:
                    responses.append(_error_response(req.id, CODE_INTERNAL_ERROR, str(exc)))
                    continue
                responses.append(Response(id=req.id, result=result))
            elif kind is MessageType.NOTIFICATION:
                try:
                    req = Request.from_json(json.dumps(item))
                except ValueError:
                    continue
                handler = self._handlers.get(req.method)
                if handler is not None:
                    try:
                        await _invoke(handler, req.params)
                    except Exception as exc:
                        self._log("notification failed", exc)
            # Responses inside a batch are ignored.

        if responses:
            await self._send("[" + ",".join(r.to_json() for r in responses) + "]")


class _ParseFailureType:
    pass


_ParseFailure = _ParseFailureType()


async def call(conn: Connection, method: str, params: Any) -> Any:
    """Send a request with a fresh identifier and return its result.

    Raises JSONRPCError when the response carries an error.
    """
    response = await conn.call(ID(next(_ids)), method, params)
    return response.unwrap()


async def notify(conn: Connection, method: str, params: Any) -> None:
    """Send a notification, which expects no response."""
    await conn._send(Request(method=method, params=params).to_json())