"""chatrelay — real-time chat relay with persisted history.

Lets a customer and a staff member exchange short text messages over a
WebSocket while both are connected, and read past conversations afterwards
over plain HTTP. Every accepted message is stored exactly once; live
delivery is a best-effort bonus on top of that.
"""

__version__ = "0.1.0"
