"""Event type constants for the chat WebSocket protocol and the Redis feed.

Learn: Centralizing event names as constants prevents typos and makes it
easy to discover the whole protocol in one place. Inbound names accept both
the short form and the chat UI's original form.
"""

# ─── Inbound (client → server) ───────────────────────────

JOIN = "join"
JOIN_CHAT = "join_chat"
SEND = "send"
SEND_MESSAGE = "send_message"
GET_MESSAGES = "get_messages"
PING = "ping"

JOIN_EVENTS = frozenset({JOIN, JOIN_CHAT})
SEND_EVENTS = frozenset({SEND, SEND_MESSAGE})

# ─── Outbound (server → client) ──────────────────────────

MESSAGE_SENT = "message_sent"
RECEIVE_MESSAGE = "receive_message"
MESSAGE_ERROR = "message_error"
MESSAGES_LIST = "messages_list"
MESSAGES_ERROR = "messages_error"
PONG = "pong"

# ─── Error kinds ─────────────────────────────────────────

INVALID_PAYLOAD = "InvalidPayload"
NOT_JOINED = "NotJoined"
PERSISTENCE_ERROR = "PersistenceError"

# ─── Redis feed ──────────────────────────────────────────

MESSAGE_CREATED = "message.created"
