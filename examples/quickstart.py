#!/usr/bin/env python3
"""
chatrelay Quickstart — a customer and a staff member chat, then read history.

1. alice (CLIENT) and bob (ADMIN) connect and join
2. alice sends "Hola"; bob receives it live, alice gets the ack
3. bob goes offline; alice sends again (stored, not delivered)
4. The conversation is read back over HTTP

Run with: python examples/quickstart.py
Relay must be running: chatrelay serve
"""

import asyncio
import json
import uuid

import httpx
import websockets

from _common import BASE, WS_URL, check_backend


async def join(ws, username: str, role: str) -> None:
    await ws.send(json.dumps({"type": "join", "data": {"username": username, "role": role}}))
    # join has no reply; a ping round-trip confirms it was processed
    await ws.send(json.dumps({"type": "ping"}))
    assert json.loads(await ws.recv())["type"] == "pong"


async def send(ws, sender: str, receiver: str, text: str) -> dict:
    await ws.send(json.dumps({
        "type": "send_message",
        "data": {
            "senderName": sender,
            "senderRole": "CLIENT",
            "receiverName": receiver,
            "receiverRole": "ADMIN",
            "message": text,
        },
    }))
    return json.loads(await ws.recv())


async def main():
    check_backend()
    run_id = uuid.uuid4().hex[:6]
    alice, bob = f"alice-{run_id}", f"bob-{run_id}"

    print("\n1. Connecting alice and bob...")
    async with websockets.connect(WS_URL) as alice_ws:
        async with websockets.connect(WS_URL) as bob_ws:
            await join(alice_ws, alice, "CLIENT")
            await join(bob_ws, bob, "ADMIN")

            print("\n2. alice → bob: Hola")
            ack = await send(alice_ws, alice, bob, "Hola")
            live = json.loads(await bob_ws.recv())
            print(f"   alice got {ack['type']} #{ack['data']['id']}")
            print(f"   bob got   {live['type']} #{live['data']['id']}: {live['data']['message']}")

        print("\n3. bob is offline; alice → bob: ¿Sigue disponible?")
        ack = await send(alice_ws, alice, bob, "¿Sigue disponible?")
        print(f"   alice got {ack['type']} #{ack['data']['id']} (stored for later)")

    print("\n4. Reading the conversation over HTTP...")
    resp = httpx.get(f"{BASE}/messages/conversation/{bob}/{alice}", timeout=10)
    resp.raise_for_status()
    for m in resp.json():
        print(f"   #{m['id']} {m['senderName']} → {m['receiverName']}: {m['message']}")


if __name__ == "__main__":
    asyncio.run(main())
