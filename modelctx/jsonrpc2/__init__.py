"""JSON-RPC 2.0 message types and asyncio connections."""