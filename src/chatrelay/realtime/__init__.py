"""Real-time infrastructure — WebSocket chat sessions + Redis feed.

Learn: Events flow through two paths:
1. WebSocket → MessageRouter → MessageStore, then Channel → WebSocket
   (live delivery to the other participant, if connected)
2. MessageRouter → Redis PUBLISH (optional notification feed for other
   services)

The ConnectionRegistry is the only shared state between sessions.
"""
