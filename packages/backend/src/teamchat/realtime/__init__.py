"""Real-time infrastructure: Redis pub/sub + WebSocket.

Events flow through two hops:
1. Services → Redis PUBLISH on the entity's topic (after the DB commit)
2. Redis SUBSCRIBE → WebSocket → client

Producers never wait on consumers; a failed publish is logged and the
request that caused it still succeeds.
"""
