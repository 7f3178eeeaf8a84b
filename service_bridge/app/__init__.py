"""
Assistant bridge service package.

The bridge sits between the chat assistant and the external business API:
assistant tool calls are dispatched through a configurable gateway whose
routes and policies come from the persistent config store.

Structure:
- app.main: FastAPI app, status/refresh routes and lifecycle wiring.
- app.gateway: Endpoint registry, response cache, retry executor, client.
- app.config_store: Postgres ``configs`` table, cache-aside lookup, settings.
- app.assistant: Tool-call dispatch into the gateway.
"""
