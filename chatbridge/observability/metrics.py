from __future__ import annotations
from prometheus_client import Counter, Gauge

connection_state = Gauge("cb_connection_state", "1 for the current connection state, 0 otherwise", ["state"])
reconnects_scheduled = Counter("cb_reconnects_scheduled_total", "Automatic reconnect attempts scheduled")
inbound_messages = Counter("cb_inbound_messages_total", "Inbound messages persisted")
ingest_failures = Counter("cb_ingest_failures_total", "Inbound items that failed to ingest")
outbound_messages = Counter("cb_outbound_messages_total", "Outbound send attempts", ["status"])
persistence_failures = Counter("cb_persistence_failures_total", "Storage writes that failed", ["operation"])
ws_connections = Gauge("cb_ws_connections", "Active WebSocket control-plane connections")
rpc_requests = Counter("cb_rpc_requests_total", "RPC requests total", ["method"])
rpc_errors = Counter("cb_rpc_errors_total", "RPC errors total", ["method", "code"])
