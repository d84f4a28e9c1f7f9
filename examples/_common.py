"""
Shared helpers for chatrelay examples.

Handles the health check and builds the WebSocket URL so each example can
focus on its specific conversation.
"""

import sys

import httpx

HOST = "localhost:3004"
BASE = f"http://{HOST}/api/v1"
WS_URL = f"ws://{HOST}/ws/chat"


def check_backend() -> None:
    """Verify the relay is reachable and its database is up."""
    try:
        resp = httpx.get(f"{BASE}/health", timeout=5)
    except httpx.ConnectError:
        print(f"ERROR: Relay not reachable at {BASE}")
        print("Start it with:  chatrelay serve")
        sys.exit(1)

    if resp.status_code != 200:
        print(f"ERROR: Health check returned {resp.status_code}")
        sys.exit(1)

    health = resp.json()
    print("Relay health:")
    print(f"  Database: {'✓' if health['database'] == 'ok' else '✗'}")
    print(f"  Redis:    {'✓' if health['redis'] == 'ok' else '✗ (optional)'}")
    print(f"  Online:   {health['connected_users']} user(s)")

    if health["database"] != "ok":
        print("\nERROR: Database is not connected.")
        sys.exit(1)
