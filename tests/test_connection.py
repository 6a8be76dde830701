import asyncio
import contextlib
import json

import pytest

from modelctx.jsonrpc2.connection import (
    Connection,
    ConnectionClosedError,
    Session,
    call,
    notify,
)
from modelctx.jsonrpc2.message import (
    CODE_INVALID_REQUEST,
    CODE_METHOD_NOT_FOUND,
    CODE_PARSE_ERROR,
    ID,
    JSONRPCError,
)


class _RecordingSession(Session):
    def __init__(self):
        self.sent = []

    async def send(self, data):
        self.sent.append(data)

    async def receive(self):
        for msg in list(self.sent):
            yield msg

    async def close(self):
        pass

    def last(self):
        return self.sent[-1] if self.sent else None


class _PipeEnd(Session):
    def __init__(self, inbox, outbox):
        self._inbox = inbox
        self._outbox = outbox
        self._closed = False

    async def send(self, data):
        if self._closed:
            raise ConnectionError("pipe closed")
        await self._outbox.put(data)

    async def receive(self):
        while True:
            item = await self._inbox.get()
            if item is None:
                return
            yield item

    async def close(self):
        if self._closed:
            return
        self._closed = True
        await self._inbox.put(None)
        await self._outbox.put(None)


def _make_pipe():
    left, right = asyncio.Queue(), asyncio.Queue()
    return _PipeEnd(left, right), _PipeEnd(right, left)


@contextlib.asynccontextmanager
async def _connected(handlers=None):
    a, b = _make_pipe()
    server = Connection(a, handlers=handlers)
    client = Connection(b)
    server_task = asyncio.create_task(server.serve())
    client.open()
    try:
        yield server, client
    finally:
        await client.close()
        await server.close()
        server_task.cancel()
        with contextlib.suppress(asyncio.CancelledError, ConnectionClosedError):
            await server_task


def _success(params):
    return {"response": "success"}


# Batch handling


@pytest.mark.asyncio
async def test_batch_single_request():
    session = _RecordingSession()
    conn = Connection(session)
    conn.register_handler("batchTest", lambda params: "ok")
    req = {"jsonrpc": "2.0", "method": "batchTest", "id": 1, "params": {}}
    await conn.handle_message(json.dumps([req]))
    responses = json.loads(session.last())
    assert len(responses) == 1
    assert responses[0]["id"] == 1
    assert responses[0]["result"] == "ok"


@pytest.mark.asyncio
async def test_batch_notification_only():
    session = _RecordingSession()
    conn = Connection(session)
    calls = []
    conn.register_handler("notifyTest", lambda params: calls.append(params))
    notif = {"jsonrpc": "2.0", "method": "notifyTest", "params": {}}
    await conn.handle_message(json.dumps([notif]))
    assert calls == [{}]
    assert session.last() is None


@pytest.mark.asyncio
async def test_batch_mixed():
    session = _RecordingSession()
    conn = Connection(session)
    calls = []
    conn.register_handler("batchTest", lambda params: "ok")
    conn.register_handler("notifyTest", lambda params: calls.append(params))
    req = {"jsonrpc": "2.0", "method": "batchTest", "id": 2, "params": {}}
    notif = {"jsonrpc": "2.0", "method": "notifyTest", "params": {}}
    await conn.handle_message(json.dumps([req, notif]))
    assert calls == [{}]
    responses = json.loads(session.last())
    assert len(responses) == 1
    assert responses[0]["id"] == 2
    assert responses[0]["result"] == "ok"


@pytest.mark.asyncio
async def test_batch_empty():
    session = _RecordingSession()
    conn = Connection(session)
    await conn.handle_message(b"[]")
    resp = json.loads(session.last())
    assert resp["error"]["code"] == CODE_INVALID_REQUEST


@pytest.mark.asyncio
async def test_batch_invalid_json():
    session = _RecordingSession()
    conn = Connection(session)
    await conn.handle_message(b"[{")
    resp = json.loads(session.last())
    assert resp["error"]["code"] == CODE_PARSE_ERROR


@pytest.mark.asyncio
async def test_batch_method_not_found_and_invalid_item():
    session = _RecordingSession()
    conn = Connection(session)
    req = {"jsonrpc": "2.0", "method": "missing", "id": 3}
    await conn.handle_message(json.dumps([req, {"jsonrpc": "1.0", "method": "x"}]))
    responses = json.loads(session.last())
    assert responses[0] == {
        "jsonrpc": "2.0",
        "id": 3,
        "error": {"code": CODE_METHOD_NOT_FOUND, "message": "method not found"},
    }
    assert responses[1]["error"]["code"] == CODE_INVALID_REQUEST


@pytest.mark.asyncio
async def test_single_invalid_json_sends_parse_error():
    session = _RecordingSession()
    conn = Connection(session)
    await conn.handle_message("{")
    assert json.loads(session.last())["error"]["code"] == CODE_PARSE_ERROR


@pytest.mark.asyncio
async def test_single_request_handler_exception_becomes_server_error():
    session = _RecordingSession()
    conn = Connection(session)

    def failing(params):
        raise ValueError("boom")

    conn.register_handler("fail", failing)
    await conn.handle_message('{"jsonrpc":"2.0","id":5,"method":"fail"}')
    assert json.loads(session.last()) == {
        "jsonrpc": "2.0",
        "id": 5,
        "error": {"code": -32000, "message": "boom", "data": {}},
    }


@pytest.mark.asyncio
async def test_single_request_with_unknown_response_id_sends_nothing():
    session = _RecordingSession()
    conn = Connection(session)
    await conn.handle_message('{"jsonrpc":"2.0","id":99,"result":"x"}')
    assert session.sent == []


# Calls over a pipe


@pytest.mark.asyncio
async def test_call():
    async with _connected({"testMethod": _success}) as (_, client):
        result = await asyncio.wait_for(call(client, "testMethod", {"param1": "value1"}), 1)
    assert result == {"response": "success"}


@pytest.mark.asyncio
async def test_method_not_found():
    async with _connected({"testMethod": _success}) as (_, client):
        with pytest.raises(JSONRPCError) as info:
            await asyncio.wait_for(call(client, "nonExistentMethod", {"param1": "value1"}), 1)
    assert str(info.value) == "method not found"
    assert info.value.code == CODE_METHOD_NOT_FOUND


@pytest.mark.asyncio
async def test_custom_error_propagates():
    def failing(params):
        raise JSONRPCError(-32001, "custom error", "data")

    async with _connected({"fail": failing}) as (_, client):
        with pytest.raises(JSONRPCError) as info:
            await asyncio.wait_for(call(client, "fail", None), 1)
    assert (info.value.code, info.value.message, info.value.data) == (
        -32001,
        "custom error",
        "data",
    )


@pytest.mark.asyncio
async def test_notification():
    received = asyncio.Event()
    seen = []

    def handler(params):
        seen.append(params)
        received.set()

    def count(params):
        return len(seen)

    async with _connected({"testMethod": handler, "count": count}) as (_, client):
        await notify(client, "testMethod", {"param1": "value1"})
        await asyncio.wait_for(received.wait(), 1)
        handled = await asyncio.wait_for(call(client, "count", None), 1)
    assert handled == 1
    assert seen == [{"param1": "value1"}]


@pytest.mark.asyncio
async def test_async_handler():
    calls = []

    async def handler(params):
        calls.append(params)
        return {"response": "success"}

    async with _connected({"testMethod": handler}) as (_, client):
        result = await asyncio.wait_for(call(client, "testMethod", {"param1": "value1"}), 1)
    assert result == {"response": "success"}
    assert calls == [{"param1": "value1"}]


@pytest.mark.asyncio
async def test_notify_wire_format():
    session = _RecordingSession()
    conn = Connection(session)
    await notify(conn, "ping", {"x": 1})
    assert session.sent == ['{"jsonrpc":"2.0","method":"ping","params":{"x":1}}']


# Lifecycle and errors


@pytest.mark.asyncio
async def test_close():
    a, b = _make_pipe()
    conn1 = Connection(a)
    conn2 = Connection(b)
    await conn1.close()
    await conn1.close()
    assert conn1.closed
    with pytest.raises(ConnectionClosedError):
        conn1.open()
    with pytest.raises(ConnectionClosedError):
        await conn1.serve()
    await conn2.close()


@pytest.mark.asyncio
async def test_serve_ends_with_closed_error_when_stream_ends():
    a, b = _make_pipe()
    conn = Connection(a)
    await b.close()
    with pytest.raises(ConnectionClosedError):
        await asyncio.wait_for(conn.serve(), 1)


@pytest.mark.asyncio
async def test_call_errors():
    async with _connected() as (_, client):
        with pytest.raises(JSONRPCError):
            await asyncio.wait_for(call(client, "nonExistentMethod", {}), 1)
        await client.close()
        with pytest.raises(ConnectionClosedError):
            await call(client, "testMethod", {})


@pytest.mark.asyncio
async def test_call_times_out_without_answer():
    a, _ = _make_pipe()
    conn = Connection(a)
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(call(conn, "testMethod", {}), 0.05)


@pytest.mark.asyncio
async def test_close_fails_blocked_call():
    a, _ = _make_pipe()
    conn = Connection(a)
    pending = asyncio.create_task(conn.call(ID(1), "slow", None))
    await asyncio.sleep(0.01)
    assert not pending.done()
    await conn.close()
    with pytest.raises(ConnectionClosedError):
        await asyncio.wait_for(pending, 1)
    assert conn.closed is True
    assert pending.done()


@pytest.mark.asyncio
async def test_send_response_and_error_reject_null_id():
    session = _RecordingSession()
    conn = Connection(session)
    with pytest.raises(ValueError, match="invalid response ID"):
        await conn.send_response(ID(), None)
    with pytest.raises(ValueError, match="invalid error ID"):
        await conn.send_error(ID(), RuntimeError("test error"))
    assert session.sent == []


@pytest.mark.asyncio
async def test_send_response_wire_format():
    session = _RecordingSession()
    conn = Connection(session)
    await conn.send_response(ID("test"), {"a": 1})
    assert session.sent == ['{"jsonrpc":"2.0","id":"test","result":{"a":1}}']