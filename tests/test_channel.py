"""Tests for the shared channel and per-view subscriptions."""

import asyncio
import json

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from conftest import FakeChannel, details_message, make_comment, make_token
from userview.channel import ChannelSubscription, MessageChannel, next_request_id
from userview.errors import ChannelError
from userview.session import MemoryTokenStore, UserSession


async def settle(rounds: int = 10):
    for _ in range(rounds):
        await asyncio.sleep(0)


class TestChannelSubscription:
    @pytest.mark.asyncio
    async def test_delivers_in_order_one_at_a_time(self):
        channel = FakeChannel()
        seen = []
        in_handler = []

        def handler(message):
            in_handler.append(message["n"])
            assert len(in_handler) == 1
            seen.append(message["n"])
            in_handler.clear()

        sub = ChannelSubscription(channel, handler, retry_delay=0, max_retries=3)
        sub.start()
        for n in range(5):
            channel.inbox.put_nowait({"op": "SaveComment", "n": n})
        await settle()

        assert seen == [0, 1, 2, 3, 4]
        sub.unsubscribe()

    @pytest.mark.asyncio
    async def test_retries_then_recovers(self):
        channel = FakeChannel(fail_times=3)
        seen = []
        sub = ChannelSubscription(channel, seen.append, retry_delay=0, max_retries=10)
        sub.start()
        channel.inbox.put_nowait({"op": "CreateComment"})
        await settle(20)

        assert channel.listen_calls == 4
        assert seen == [{"op": "CreateComment"}]
        assert sub.failures == 0
        assert not sub.gave_up
        sub.unsubscribe()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, caplog):
        channel = FakeChannel(fail_times=100)
        sub = ChannelSubscription(channel, lambda m: None, retry_delay=0, max_retries=10)
        task = sub.start()
        await asyncio.wait_for(task, timeout=2)

        # the first attempt plus ten retries
        assert channel.listen_calls == 11
        assert sub.gave_up
        assert "abandoned after 10 retries" in caplog.text

    @pytest.mark.asyncio
    async def test_waits_retry_delay_between_attempts(self, monkeypatch):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr("userview.channel.asyncio.sleep", fake_sleep)
        channel = FakeChannel(fail_times=100)
        sub = ChannelSubscription(channel, lambda m: None, retry_delay=3.0, max_retries=2)
        await asyncio.wait_for(sub.start(), timeout=2)
        assert delays == [3.0, 3.0]

    @pytest.mark.asyncio
    async def test_transport_error_midstream_resubscribes(self):
        channel = FakeChannel()
        seen = []
        sub = ChannelSubscription(channel, seen.append, retry_delay=0, max_retries=2)
        sub.start()
        channel.inbox.put_nowait({"n": 1})
        channel.inbox.put_nowait(ChannelError("closed"))
        channel.inbox.put_nowait({"n": 2})
        await settle(20)

        assert seen == [{"n": 1}, {"n": 2}]
        assert channel.listen_calls == 2
        sub.unsubscribe()

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self):
        channel = FakeChannel()
        seen = []
        sub = ChannelSubscription(channel, seen.append, retry_delay=0)
        sub.start()
        await settle()
        sub.unsubscribe()
        await settle()
        channel.inbox.put_nowait({"n": 1})
        await settle()
        assert seen == []
        assert not sub.active

    @pytest.mark.asyncio
    async def test_message_in_hand_finishes_after_unsubscribe(self):
        """Unsubscribing from inside a handler lets that message complete."""
        channel = FakeChannel()
        seen = []

        def handler(message):
            if message["n"] == 1:
                sub.unsubscribe()
            seen.append(message["n"])

        sub = ChannelSubscription(channel, handler, retry_delay=0)
        sub.start()
        channel.inbox.put_nowait({"n": 1})
        channel.inbox.put_nowait({"n": 2})
        await settle()

        assert seen == [1]
        assert not sub.active

    @pytest.mark.asyncio
    async def test_unsubscribe_leaves_posted_requests(self, make_view, channel):
        view = make_view()
        view.start()
        request_id = view.refetch()
        view.close()
        await settle()
        assert channel.last("GetUserDetails")["request_id"] == request_id
        assert not view.subscription.active


def test_request_ids_are_unique():
    assert len({next_request_id() for _ in range(100)}) == 100


class TestMessageChannel:
    @pytest_asyncio.fixture
    async def server(self):
        received = []

        async def ws_handler(request):
            ws = web.WebSocketResponse()
            await ws.prepare(request)
            async for msg in ws:
                frame = json.loads(msg.data)
                received.append(frame)
                if frame["op"] == "close-me":
                    await ws.close()
                    break
                await ws.send_str("not json")
                await ws.send_json({"op": frame["op"], "request_id": frame.get("request_id"), "echo": frame["data"]})
            return ws

        app = web.Application()
        app.router.add_get("/ws", ws_handler)
        server = TestServer(app)
        await server.start_server()
        server.received = received
        yield server
        await server.close()

    @pytest.mark.asyncio
    async def test_send_and_fan_out(self, server):
        channel = MessageChannel(str(server.make_url("/ws")))
        first, second = [], []

        async def collect(into):
            async for message in channel.listen():
                into.append(message)
                return

        readers = [asyncio.create_task(collect(first)), asyncio.create_task(collect(second))]
        await settle()
        await channel.send("GetUserDetails", {"username": "alice"}, "r1")
        await asyncio.wait_for(asyncio.gather(*readers), timeout=5)

        expected = {"op": "GetUserDetails", "request_id": "r1", "echo": {"username": "alice"}}
        assert first == [expected]
        assert second == [expected]
        assert server.received == [{"op": "GetUserDetails", "data": {"username": "alice"}, "request_id": "r1"}]
        await channel.close()

    @pytest.mark.asyncio
    async def test_closed_socket_raises_channel_error(self, server):
        channel = MessageChannel(str(server.make_url("/ws")))

        async def drain():
            async for _ in channel.listen():
                pass

        reader = asyncio.create_task(drain())
        await settle()
        await channel.send("close-me", {})
        with pytest.raises(ChannelError):
            await asyncio.wait_for(reader, timeout=5)
        assert not channel.connected
        await channel.close()

    @pytest.mark.asyncio
    async def test_posted_request_survives_unsubscribe(self, server):
        """A send scheduled before teardown still reaches the server."""
        channel = MessageChannel(str(server.make_url("/ws")))
        sub = ChannelSubscription(channel, lambda m: None, retry_delay=0)
        sub.start()
        await settle()

        task = channel.post("GetUserDetails", {"username": "alice"}, "r1")
        sub.unsubscribe()
        await asyncio.wait_for(task, timeout=5)
        for _ in range(100):
            if server.received:
                break
            await asyncio.sleep(0.01)

        assert not task.cancelled()
        assert server.received == [{"op": "GetUserDetails", "data": {"username": "alice"}, "request_id": "r1"}]
        await channel.close()

    @pytest.mark.asyncio
    async def test_connect_failure_raises_channel_error(self):
        channel = MessageChannel("ws://127.0.0.1:9/ws")
        with pytest.raises(ChannelError):
            await channel.connect()
        await channel.close()


class FailingTokenStore(MemoryTokenStore):
    def save(self, token):
        raise RuntimeError("keyring backend unavailable")


class TestHandlerFailures:
    @pytest.mark.asyncio
    async def test_failing_handler_does_not_end_subscription(self, caplog):
        """A handler error is logged and the next message is still delivered."""
        channel = FakeChannel()
        seen = []

        def handler(message):
            if "n" not in message:
                raise KeyError("jwt")
            seen.append(message["n"])

        sub = ChannelSubscription(channel, handler, retry_delay=0)
        sub.start()
        channel.inbox.put_nowait({"op": "SaveUserSettings"})
        channel.inbox.put_nowait({"op": "SaveComment", "n": 2})
        await settle()

        assert seen == [2]
        assert sub.active
        assert sub.failures == 0
        assert "channel handler failed on SaveUserSettings" in caplog.text
        sub.unsubscribe()

    @pytest.mark.asyncio
    async def test_settings_ack_with_unstorable_token(self, make_view, channel, host):
        """The view refetches and keeps listening when the new token can't be saved."""
        session = UserSession(FailingTokenStore())
        view = make_view(sess=session)
        view.start()
        channel.inbox.put_nowait(details_message(channel.last("GetUserDetails")["request_id"]))
        await settle()
        assert view.loading is False

        request_id = view.submit_settings()
        new_token = make_token(show_nsfw=False)
        channel.inbox.put_nowait({"op": "SaveUserSettings", "request_id": request_id, "jwt": new_token})
        channel.inbox.put_nowait({"op": "CreateComment", "comment": make_comment(3)})
        await settle()

        assert view.subscription.active
        assert view.settings_loading is False
        assert len([m for m in channel.sent if m["op"] == "GetUserDetails"]) == 2
        assert host.notices == ["reply_sent"]
        view.close()
