"""chatrelay CLI — run the relay and inspect chat history from a terminal.

Usage:
    chatrelay serve                                  # Run the API + WebSocket server
    chatrelay health                                 # Server and dependency status
    chatrelay history alice                          # Everything alice sent or received
    chatrelay conversation alice bob                 # The alice <-> bob thread
    chatrelay send alice bob "Hola"                  # Record a message (no live push)
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:3004"


def _api_url() -> str:
    return os.environ.get("CHATRELAY_API_URL", DEFAULT_API_URL).rstrip("/")


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the chat relay."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _fail(message: str) -> None:
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


def _print_messages(messages: list[dict]) -> None:
    if not messages:
        click.echo("No messages.")
        return
    for m in messages:
        stamp = str(m.get("createdAt", ""))[:19].replace("T", " ")
        who = click.style(f"{m['senderName']} ({m['senderRole']})", bold=True)
        click.echo(f"#{m['id']:<5} {stamp}  {who} → {m['receiverName']}: {m['message']}")


async def _get(path: str) -> httpx.Response:
    async with _client() as c:
        try:
            return await c.get(path)
        except httpx.HTTPError as e:
            _fail(f"cannot reach {_api_url()}: {e}")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="chatrelay")
def main():
    """chatrelay — customer/staff chat relay with persisted history."""


@main.command()
@click.option("--host", default=None, help="Bind address (default: CHATRELAY_HOST)")
@click.option("--port", default=None, type=int, help="Port (default: CHATRELAY_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: str | None, port: int | None, reload: bool):
    """Run the relay server with uvicorn."""
    import uvicorn

    from chatrelay.config import settings

    uvicorn.run(
        "chatrelay.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


@main.command()
def health():
    """Show server health and dependency status."""
    r = _run(_get("/api/v1/health"))
    data = r.json()
    color = "green" if data.get("status") == "healthy" else "yellow"
    click.secho(f"Status: {data.get('status')}", fg=color, bold=True)
    for key in ("server", "database", "redis", "version", "connected_users"):
        if key in data:
            click.echo(f"  {key:16s} {data[key]}")


@main.command()
@click.argument("username")
@click.option("--json", "as_json", is_flag=True, help="Raw JSON output")
def history(username: str, as_json: bool):
    """List every message USERNAME sent or received."""
    r = _run(_get(f"/api/v1/messages/{username}"))
    if r.status_code != 200:
        _fail(f"{r.status_code} {r.text}")
    messages = r.json()
    if as_json:
        click.echo(json.dumps(messages, indent=2))
    else:
        _print_messages(messages)


@main.command()
@click.argument("user1")
@click.argument("user2")
@click.option("--json", "as_json", is_flag=True, help="Raw JSON output")
def conversation(user1: str, user2: str, as_json: bool):
    """Show the conversation between USER1 and USER2."""
    r = _run(_get(f"/api/v1/messages/conversation/{user1}/{user2}"))
    if r.status_code != 200:
        _fail(f"{r.status_code} {r.text}")
    messages = r.json()
    if as_json:
        click.echo(json.dumps(messages, indent=2))
    else:
        _print_messages(messages)


@main.command()
@click.argument("sender")
@click.argument("receiver")
@click.argument("message")
@click.option("--sender-role", default="ADMIN", show_default=True)
@click.option("--receiver-role", default="CLIENT", show_default=True)
def send(sender: str, receiver: str, message: str, sender_role: str, receiver_role: str):
    """Record MESSAGE from SENDER to RECEIVER (stored, not pushed live)."""
    _run(_send_impl(sender, receiver, message, sender_role, receiver_role))


async def _send_impl(sender: str, receiver: str, message: str,
                     sender_role: str, receiver_role: str):
    async with _client() as c:
        try:
            r = await c.post("/api/v1/messages", json={
                "senderName": sender,
                "senderRole": sender_role,
                "receiverName": receiver,
                "receiverRole": receiver_role,
                "message": message,
            })
        except httpx.HTTPError as e:
            _fail(f"cannot reach {_api_url()}: {e}")
        if r.status_code != 201:
            _fail(f"{r.status_code} {r.text}")
        record = r.json()
        click.secho(f"Message #{record['id']} stored at {record['createdAt']}", fg="green")


if __name__ == "__main__":
    main()
