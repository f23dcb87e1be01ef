"""Tests for room fan-out."""

import pytest

from sessions import SessionState


def _joined(session, room_id, name):
    session.display_name = name
    session.room_id = room_id
    session.state = SessionState.JOINED
    return session


class TestBroadcastRouter:
    @pytest.mark.asyncio
    async def test_delivers_to_every_member_of_room(self, router, connect):
        a = _joined(connect("a"), "r1", "alice")
        b = _joined(connect("b"), "r1", "bob")

        delivered = await router.broadcast("r1", "receive_message", {"message": "hi"})

        assert delivered == 2
        assert a.transport.sent == [{"event": "receive_message", "data": {"message": "hi"}}]
        assert b.transport.sent == a.transport.sent

    @pytest.mark.asyncio
    async def test_exclude_skips_sender(self, router, connect):
        a = _joined(connect("a"), "r1", "alice")
        b = _joined(connect("b"), "r1", "bob")

        await router.broadcast("r1", "user_joined", "bob", exclude="b")

        assert a.transport.events("user_joined") == [{"event": "user_joined", "data": "bob"}]
        assert b.transport.sent == []

    @pytest.mark.asyncio
    async def test_other_rooms_and_unjoined_connections_are_skipped(self, router, connect):
        a = _joined(connect("a"), "r1", "alice")
        other = _joined(connect("c"), "r2", "carol")
        lobby = connect("d")

        await router.broadcast("r1", "receive_message", {"message": "hi"})

        assert len(a.transport.sent) == 1
        assert other.transport.sent == []
        assert lobby.transport.sent == []

    @pytest.mark.asyncio
    async def test_failed_recipient_does_not_block_others(self, router, connect):
        _joined(connect("gone", closed=True), "r1", "ghost")
        a = _joined(connect("a"), "r1", "alice")

        delivered = await router.broadcast("r1", "receive_message", {"message": "hi"})

        assert delivered == 1
        assert len(a.transport.sent) == 1

    @pytest.mark.asyncio
    async def test_empty_room_is_a_noop(self, router):
        assert await router.broadcast("r1", "user_left", "alice") == 0

    @pytest.mark.asyncio
    async def test_send_swallows_delivery_failure(self, router, connect):
        gone = connect("gone", closed=True)

        assert await router.send(gone, "join_success") is False
