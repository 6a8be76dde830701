# modelctx

Building blocks for JSON-RPC 2.0 based tool protocols:

- `modelctx.jsonschema.base` and `modelctx.jsonschema.containers` — small JSON
  Schema classes (`String`, `Boolean`, `Null`, `Const`, `Number`, `Integer`,
  `Array`, `Map`, `Object`) that validate JSON documents and describe
  themselves as schema dictionaries or JSON text.
- `modelctx.jsonrpc2.message` — message types (`ID`, `Request`, `Response`,
  `JSONRPCError`), the standard error codes, and message classification
  (`get_message_type`, `MessageType`).
- `modelctx.jsonrpc2.connection` — an asyncio `Connection` that sends and
  serves requests, notifications and batches over any message `Session`,
  plus the `call` and `notify` helpers.

The package has no dependencies beyond the standard library.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Validating JSON

```python
from modelctx.jsonschema.base import String, Integer, SchemaError
from modelctx.jsonschema.containers import Object

schema = Object(
    properties={"name": String(min_length=1), "age": Integer(minimum=0)},
    required=["name"],
)

schema.validate('{"name": "Ada", "age": 36}')   # returns the decoded value

try:
    schema.validate('{"age": -1}')
except SchemaError as exc:
    print(exc)                                  # required property name not found

print(schema.to_json())
```

Every schema has `validate(raw)`, which decodes JSON text and checks it, and
`validate_value(value)`, which checks an already decoded value. Both return the
value and raise `SchemaError` when it does not fit; malformed JSON raises
`SchemaError` too. `to_dict()` and `to_json()` give the schema itself.

Some details:

- `String` lengths are counted in UTF-8 bytes; `min_length`, `max_length`,
  `Array.min_items` and `Array.max_items` of zero mean no limit.
- `Number` and `Integer` take optional `minimum`, `maximum`,
  `exclusive_minimum` and `exclusive_maximum`. `Integer` rejects numbers with a
  fractional part; booleans are never numbers.
- `Const` accepts exactly one JSON value, keeping `true` distinct from `1`.
- `Map` checks every value of an object against `additional_properties`.
- `Object` rejects properties that are not declared, and its schema carries
  `"additionalProperties": false`. Serialising an `Object` whose `required`
  names an undeclared property raises `SchemaError`.

## JSON-RPC messages

```python
from modelctx.jsonrpc2.message import ID, Request, Response, get_message_type

Request(method="sum", params=[1, 2], id=ID(1)).to_json()
# '{"jsonrpc":"2.0","id":1,"method":"sum","params":[1,2]}'

resp = Response.from_json('{"jsonrpc":"2.0","id":1,"result":3}')
resp.unwrap()   # 3; raises JSONRPCError if the response carries an error

get_message_type('{"jsonrpc":"2.0","method":"ping"}')   # MessageType.NOTIFICATION
```

A request with a null `ID` is a notification and is serialised without an
`id`. Parsing rejects any message whose `jsonrpc` member is not `"2.0"`.
`convert_error` turns an exception into a `JSONRPCError`: one with `code`,
`message` and `data` attributes keeps them, any other gets code `-32000` and
its text as the message.

## JSON-RPC connections

A `Connection` wraps a `Session`: an object with `async send(data)`, an async
iterator `receive()` and `async close()`. Handlers are plain or `async`
functions taking the request's params; their return value becomes the result.

```python
import asyncio

from modelctx.jsonrpc2.connection import Connection, Session, call, notify


class QueueSession(Session):
    def __init__(self, inbox, outbox):
        self._inbox, self._outbox = inbox, outbox

    async def send(self, data):
        await self._outbox.put(data)

    async def receive(self):
        while (msg := await self._inbox.get()) is not None:
            yield msg

    async def close(self):
        await self._outbox.put(None)


async def main():
    a_to_b, b_to_a = asyncio.Queue(), asyncio.Queue()
    server = Connection(QueueSession(b_to_a, a_to_b), handlers={"echo": lambda p: p})
    client = Connection(QueueSession(a_to_b, b_to_a))
    server.open()   # starts a background task serving incoming messages
    client.open()

    print(await call(client, "echo", {"hello": "world"}))
    await notify(client, "echo", {"line": "done"})

    await client.close()
    await server.close()


asyncio.run(main())
```

- `call` raises `JSONRPCError` with the code and message sent by the peer; an
  unknown method gives code `-32601` and the message `method not found`. A
  handler's exception is sent back through `convert_error`.
- Batches (JSON arrays) are answered with one array of responses for the
  requests in them; an empty batch gets an `Invalid Request` error (`-32600`),
  malformed JSON a `Parse error` (`-32700`), and a failing handler inside a
  batch code `-32603`.
- `serve()` handles messages until the session's stream ends and then raises
  `ConnectionClosedError`; `open()` does the same in a background task.
- `close()` fails pending calls with `ConnectionClosedError`, stops serving and
  closes the session; closing twice does nothing. Calls, `open()` and
  `serve()` on a closed connection raise `ConnectionClosedError`.

## What is not included

The package ships no `Session` implementation: there is no stdio, socket or
HTTP transport, and the caller supplies one as above. It also has no way to
derive schemas from classes or type annotations; schemas are built by hand
from the classes listed above. There is no command-line program.