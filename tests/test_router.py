"""Message router tests — the chat protocol state machine.

Learn: These drive MessageRouter directly with real Channels (no sockets),
so each test can inspect exactly which events landed in which mailbox.
Covers:
1. Unjoined → Joined → Closed transitions
2. send: validate → persist → ack → best-effort delivery
3. Error kinds: InvalidPayload, NotJoined, PersistenceError
4. get_messages replies only to the requester
"""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from chatrelay.db.engine import async_session_factory
from chatrelay.history.store import MessageStore, PersistenceError
from chatrelay.realtime.channel import Channel
from chatrelay.realtime.router import ChatSession, SessionState
from chatrelay.schemas.message import ChatEvent


def _send_payload(sender="alice", receiver="bob", text="Hola"):
    return {
        "senderName": sender,
        "senderRole": "CLIENT",
        "receiverName": receiver,
        "receiverRole": "ADMIN",
        "message": text,
    }


async def _joined(relay, username, role="CLIENT"):
    session = ChatSession(Channel())
    await relay.handle(session, ChatEvent(type="join", data={"username": username, "role": role}))
    return session


async def _count():
    async with async_session_factory() as db:
        return await MessageStore(db).count()


# ═══════════════════════════════════════════════════════════
# State machine
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_join_registers_session(relay, registry):
    """join moves the session to JOINED and makes it reachable."""
    session = await _joined(relay, "alice")

    assert session.state is SessionState.JOINED
    assert session.username == "alice"
    assert await registry.lookup("alice") is session.channel
    # join has no direct reply
    assert session.channel.pending() == []


@pytest.mark.asyncio
async def test_join_chat_alias(relay, registry):
    session = ChatSession(Channel())
    await relay.handle(
        session, ChatEvent(type="join_chat", data={"username": "bob", "role": "ADMIN"})
    )
    assert await registry.lookup("bob") is session.channel


@pytest.mark.asyncio
async def test_rejoin_with_new_name_releases_old(relay, registry):
    session = await _joined(relay, "alice")
    await relay.handle(session, ChatEvent(type="join", data={"username": "alicia", "role": "CLIENT"}))

    assert await registry.lookup("alice") is None
    assert await registry.lookup("alicia") is session.channel


@pytest.mark.asyncio
async def test_join_missing_username_is_invalid(relay, registry):
    session = ChatSession(Channel())
    await relay.handle(session, ChatEvent(type="join", data={"role": "CLIENT"}))

    assert session.state is SessionState.UNJOINED
    events = session.channel.pending()
    assert events[0]["type"] == "message_error"
    assert events[0]["data"]["error"] == "InvalidPayload"
    assert await registry.online() == []


@pytest.mark.asyncio
async def test_disconnect_closes_and_unregisters(relay, registry):
    session = await _joined(relay, "alice")
    await relay.disconnect(session)

    assert session.state is SessionState.CLOSED
    assert session.channel.closed
    assert await registry.lookup("alice") is None


@pytest.mark.asyncio
async def test_closed_session_ignores_events(relay, registry):
    """CLOSED is terminal — a late send is neither stored nor answered."""
    session = await _joined(relay, "alice")
    await relay.disconnect(session)

    await relay.handle(session, ChatEvent(type="send", data=_send_payload()))
    await relay.handle(session, ChatEvent(type="join", data={"username": "alice", "role": "CLIENT"}))

    assert await _count() == 0
    assert await registry.lookup("alice") is None


@pytest.mark.asyncio
async def test_unknown_event_is_ignored(relay):
    session = await _joined(relay, "alice")
    await relay.handle(session, ChatEvent(type="typing", data={"who": "alice"}))
    assert session.channel.pending() == []


@pytest.mark.asyncio
async def test_ping_pong(relay):
    session = ChatSession(Channel())
    await relay.handle(session, ChatEvent(type="ping"))
    assert session.channel.pending() == [{"type": "pong", "data": None}]


# ═══════════════════════════════════════════════════════════
# send
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_scenario_live_delivery(relay):
    """alice and bob joined; alice → bob "Hola" reaches both channels with id 1."""
    alice = await _joined(relay, "alice", "CLIENT")
    bob = await _joined(relay, "bob", "ADMIN")

    await relay.handle(alice, ChatEvent(type="send", data=_send_payload()))

    sent = alice.channel.pending()
    received = bob.channel.pending()
    assert [e["type"] for e in sent] == ["message_sent"]
    assert [e["type"] for e in received] == ["receive_message"]

    ack, delivery = sent[0]["data"], received[0]["data"]
    assert ack["id"] == 1
    assert delivery == ack
    assert delivery["senderName"] == "alice"
    assert delivery["receiverName"] == "bob"
    assert delivery["message"] == "Hola"
    assert "createdAt" in delivery

    async with async_session_factory() as db:
        rows = await MessageStore(db).find_conversation("alice", "bob")
    assert [(r.id, r.sender_name, r.receiver_name, r.message) for r in rows] == [
        (1, "alice", "bob", "Hola"),
    ]


@pytest.mark.asyncio
async def test_send_alias_send_message(relay):
    alice = await _joined(relay, "alice")
    await relay.handle(alice, ChatEvent(type="send_message", data=_send_payload()))
    assert alice.channel.pending()[0]["type"] == "message_sent"


@pytest.mark.asyncio
async def test_send_to_offline_receiver_still_succeeds(relay):
    """No live channel for bob: alice is still acked and history has it."""
    alice = await _joined(relay, "alice")

    record = await relay.send(alice, _send_payload(receiver="bob"))

    assert record is not None
    events = alice.channel.pending()
    assert [e["type"] for e in events] == ["message_sent"]
    async with async_session_factory() as db:
        rows = await MessageStore(db).find_by_participant("bob")
    assert [r.id for r in rows] == [record.id]


@pytest.mark.asyncio
async def test_send_before_join_is_not_joined(relay):
    """send on an unjoined session → NotJoined, store untouched."""
    session = ChatSession(Channel())
    await relay.handle(session, ChatEvent(type="send", data=_send_payload()))

    events = session.channel.pending()
    assert len(events) == 1
    assert events[0]["type"] == "message_error"
    assert events[0]["data"]["error"] == "NotJoined"
    assert await _count() == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {**_send_payload(), "message": ""},
    {**_send_payload(), "message": "   "},
    {k: v for k, v in _send_payload().items() if k != "receiverName"},
    {**_send_payload(), "senderRole": None},
    "not an object",
    None,
])
async def test_send_invalid_payload(relay, registry, payload):
    """Malformed send → InvalidPayload, nothing stored, nothing delivered."""
    alice = await _joined(relay, "alice")
    bob = await _joined(relay, "bob", "ADMIN")

    await relay.handle(alice, ChatEvent(type="send", data=payload))

    events = alice.channel.pending()
    assert len(events) == 1
    assert events[0]["type"] == "message_error"
    assert events[0]["data"]["error"] == "InvalidPayload"
    assert bob.channel.pending() == []
    assert await _count() == 0


@pytest.mark.asyncio
async def test_send_persistence_failure(relay):
    """Store failure → PersistenceError to sender only; receiver gets nothing."""
    alice = await _joined(relay, "alice")
    bob = await _joined(relay, "bob", "ADMIN")

    with patch(
        "chatrelay.realtime.router.MessageStore.create",
        AsyncMock(side_effect=PersistenceError("disk full")),
    ):
        record = await relay.send(alice, _send_payload())

    assert record is None
    events = alice.channel.pending()
    assert [e["type"] for e in events] == ["message_error"]
    assert events[0]["data"]["error"] == "PersistenceError"
    assert bob.channel.pending() == []
    assert await _count() == 0


@pytest.mark.asyncio
async def test_send_database_error_is_persistence_error(relay):
    """A raw SQLAlchemyError on the write path is reported as PersistenceError."""
    alice = await _joined(relay, "alice")

    with patch(
        "chatrelay.realtime.router.MessageStore.create",
        AsyncMock(side_effect=OperationalError("INSERT INTO messages", {}, Exception("locked"))),
    ):
        record = await relay.send(alice, _send_payload())

    assert record is None
    events = alice.channel.pending()
    assert events[0]["type"] == "message_error"
    assert events[0]["data"]["error"] == "PersistenceError"


@pytest.mark.asyncio
async def test_send_ids_strictly_increase(relay):
    alice = await _joined(relay, "alice")
    ids = []
    for i in range(4):
        record = await relay.send(alice, _send_payload(text=f"m{i}"))
        ids.append(record.id)
    assert ids == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_delivery_goes_to_latest_session_only(relay):
    """carol joined twice — only the second session gets the live push."""
    old = await _joined(relay, "carol")
    new = await _joined(relay, "carol")
    staff = await _joined(relay, "staff", "ADMIN")

    await relay.send(staff, _send_payload(sender="staff", receiver="carol"))

    assert old.channel.pending() == []
    assert [e["type"] for e in new.channel.pending()] == ["receive_message"]


@pytest.mark.asyncio
async def test_send_to_self(relay):
    """Sender == receiver: one ack and one delivery on the same channel."""
    alice = await _joined(relay, "alice")
    await relay.send(alice, _send_payload(receiver="alice"))
    assert [e["type"] for e in alice.channel.pending()] == ["message_sent", "receive_message"]


@pytest.mark.asyncio
async def test_receiver_disconnect_race(relay, registry):
    """Receiver's channel closed but not yet unregistered: send still succeeds."""
    alice = await _joined(relay, "alice")
    bob = await _joined(relay, "bob", "ADMIN")
    bob.channel.close()

    record = await relay.send(alice, _send_payload())

    assert record is not None
    assert [e["type"] for e in alice.channel.pending()] == ["message_sent"]


# ═══════════════════════════════════════════════════════════
# get_messages
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_get_messages_lists_history(relay):
    alice = await _joined(relay, "alice")
    bob = await _joined(relay, "bob", "ADMIN")
    await relay.send(alice, _send_payload(text="Hola"))
    await relay.send(bob, _send_payload(sender="bob", receiver="alice", text="Buenas"))
    alice.channel.pending()
    bob.channel.pending()

    await relay.handle(alice, ChatEvent(type="get_messages", data={"username": "alice"}))

    events = alice.channel.pending()
    assert [e["type"] for e in events] == ["messages_list"]
    assert [m["message"] for m in events[0]["data"]] == ["Hola", "Buenas"]
    # reply goes to the requester only
    assert bob.channel.pending() == []


@pytest.mark.asyncio
async def test_get_messages_before_join(relay):
    session = ChatSession(Channel())
    await relay.handle(session, ChatEvent(type="get_messages", data={"username": "alice"}))

    events = session.channel.pending()
    assert events[0]["type"] == "messages_error"
    assert events[0]["data"]["error"] == "NotJoined"


@pytest.mark.asyncio
async def test_get_messages_missing_username(relay):
    alice = await _joined(relay, "alice")
    await relay.handle(alice, ChatEvent(type="get_messages", data={}))

    events = alice.channel.pending()
    assert events[0]["type"] == "messages_error"
    assert events[0]["data"]["error"] == "InvalidPayload"


@pytest.mark.asyncio
async def test_get_messages_database_error(relay):
    """A failed history read → messages_error PersistenceError to the requester."""
    alice = await _joined(relay, "alice")

    with patch(
        "chatrelay.realtime.router.HistoryService.messages_for_user",
        AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down"))),
    ):
        await relay.handle(alice, ChatEvent(type="get_messages", data={"username": "alice"}))

    events = alice.channel.pending()
    assert [e["type"] for e in events] == ["messages_error"]
    assert events[0]["data"]["error"] == "PersistenceError"


@pytest.mark.asyncio
async def test_ack_matches_history_entry(relay):
    """The record in message_sent is exactly what history returns later."""
    alice = await _joined(relay, "alice")
    await relay.send(alice, _send_payload())
    ack = alice.channel.pending()[0]["data"]

    await relay.handle(alice, ChatEvent(type="get_messages", data={"username": "alice"}))
    listed = alice.channel.pending()[0]["data"]

    assert listed == [ack]
    assert ack["createdAt"].endswith("Z")
