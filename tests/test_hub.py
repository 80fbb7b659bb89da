"""Connection hub: channel membership and broadcast."""
from __future__ import annotations

import pytest

from safereport.realtime.hub import ADMIN_CHANNEL, ConnectionHub, room_channel, user_channel


def test_subscribe_and_unsubscribe(make_connection):
    hub = ConnectionHub()
    conn = make_connection()
    hub.subscribe(conn, room_channel("1"))
    hub.subscribe(conn, user_channel("u1"))
    assert hub.channels_of(conn) == {"room:1", "user:u1"}
    assert hub.connection_count == 1

    hub.unsubscribe(conn, room_channel("1"))
    assert hub.subscribers(room_channel("1")) == set()
    assert hub.channels_of(conn) == {"user:u1"}

    hub.disconnect(conn)
    assert hub.connection_count == 0
    assert hub.subscribers(user_channel("u1")) == set()


@pytest.mark.asyncio
async def test_broadcast_reaches_channel_only(make_connection):
    hub = ConnectionHub()
    inside, outside = make_connection(), make_connection()
    hub.subscribe(inside, room_channel("7"))
    hub.subscribe(outside, room_channel("8"))

    delivered = await hub.broadcast(room_channel("7"), "new-message", {"body": "hi"})

    assert delivered == 1
    assert inside.frames == [{"event": "new-message", "data": {"body": "hi"}}]
    assert outside.frames == []


@pytest.mark.asyncio
async def test_failed_connection_is_dropped(make_connection, caplog):
    hub = ConnectionHub()
    good, broken = make_connection(), make_connection(fail=True)
    hub.subscribe(good, ADMIN_CHANNEL)
    hub.subscribe(broken, ADMIN_CHANNEL)

    assert await hub.broadcast(ADMIN_CHANNEL, "user-message", {}) == 1
    assert good.events() == ["user-message"]
    assert hub.subscribers(ADMIN_CHANNEL) == {good}
    assert "Dropping connection" in caplog.text


@pytest.mark.asyncio
async def test_typing_excludes_sender(make_connection):
    hub = ConnectionHub()
    typist, peer = make_connection(), make_connection()
    hub.subscribe(typist, room_channel("3"))
    hub.subscribe(peer, room_channel("3"))

    await hub.publish_typing("3", "u1", True, exclude=typist)

    assert typist.frames == []
    assert peer.frames == [{"event": "user-typing", "data": {"userId": "u1", "isTyping": True}}]
