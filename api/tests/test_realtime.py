import anyio
import pytest
from starlette.websockets import WebSocketDisconnect

from globalmatch.services.realtime import ConnectionHub, room_channel, user_channel


class FakeWebSocket:
    def __init__(self, fail=False):
        self.accepted = False
        self.sent = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_json(self, payload):
        if self.fail:
            raise WebSocketDisconnect(code=1006)
        self.sent.append(payload)


def test_channel_names():
    assert room_channel("r1") == "room:r1"
    assert user_channel("u1") == "user:u1"


def test_broadcast_skips_sender_and_drops_dead_sockets():
    hub = ConnectionHub()
    alice, bob, gone = FakeWebSocket(), FakeWebSocket(), FakeWebSocket(fail=True)

    async def scenario():
        await hub.connect(alice, "room:r1", "alice")
        await hub.connect(bob, "room:r1", "bob")
        await hub.connect(gone, "room:r1", "carol")
        return await hub.broadcast("room:r1", {"type": "typing", "user_id": "alice"}, exclude_user_id="alice")

    delivered = anyio.run(scenario)

    assert delivered == 1
    assert alice.accepted and alice.sent == []
    assert bob.sent == [{"type": "typing", "user_id": "alice"}]
    assert hub.has_subscribers("room:r1")


def test_disconnect_removes_empty_channel():
    hub = ConnectionHub()
    ws = FakeWebSocket()

    async def scenario():
        socket_id = await hub.connect(ws, "user:u1", "u1")
        await hub.disconnect("user:u1", socket_id)

    anyio.run(scenario)
    assert not hub.has_subscribers("user:u1")


def test_publish_without_subscribers_is_a_noop():
    ConnectionHub().publish("room:nobody", {"type": "message"})


@pytest.mark.parametrize("channel", ["room:none", "user:none"])
def test_broadcast_to_unknown_channel_delivers_nothing(channel):
    assert anyio.run(ConnectionHub().broadcast, channel, {"type": "ping"}) == 0
