"""Shared websocket channel and per-view subscriptions.

One MessageChannel exists per process. Every open view subscribes to it and
receives every inbound message; responses are not addressed to a view, so
each view decides for itself what to apply (see dispatcher.RequestTracker).
"""
import asyncio
import json
import logging
import uuid
from typing import Any, AsyncIterator, Callable, Dict, Optional, Set

import aiohttp

from . import config
from .errors import ChannelError

logger = logging.getLogger("userview.channel")


def next_request_id() -> str:
    return uuid.uuid4().hex


class MessageChannel:
    """Process-wide websocket multiplexing all operation kinds."""

    def __init__(self, url: str = config.WS_URL, heartbeat: float = 20.0):
        self.url = url
        self.heartbeat = heartbeat
        self.site_name: Optional[str] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None
        self._subscribers: Set[asyncio.Queue] = set()
        self._pending: Set[asyncio.Task] = set()
        self._connect_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def connect(self) -> None:
        async with self._connect_lock:
            if self.connected:
                return
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession()
            try:
                self._ws = await self._session.ws_connect(self.url, heartbeat=self.heartbeat)
            except (aiohttp.ClientError, OSError) as e:
                raise ChannelError(f"could not connect to {self.url}: {e}") from e
            logger.debug("channel connected to %s", self.url)
            self._reader = asyncio.create_task(self._read_loop(self._ws))

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        reason = "connection closed"
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        frame = json.loads(msg.data)
                    except json.JSONDecodeError:
                        logger.warning("channel dropped undecodable frame: %.80s", msg.data)
                        continue
                    self._publish(frame)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    reason = f"websocket error: {ws.exception()}"
                    break
        except aiohttp.ClientError as e:
            reason = f"websocket error: {e}"
        finally:
            if self._ws is ws:
                self._ws = None
            logger.debug("channel reader stopped: %s", reason)
            self._publish(ChannelError(reason))

    def _publish(self, item: Any) -> None:
        for queue in list(self._subscribers):
            queue.put_nowait(item)

    async def listen(self) -> AsyncIterator[Dict[str, Any]]:
        """Yield inbound messages in arrival order for one subscriber.

        Raises ChannelError when the transport fails.
        """
        await self.connect()
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.add(queue)
        try:
            while True:
                item = await queue.get()
                if isinstance(item, ChannelError):
                    raise item
                yield item
        finally:
            self._subscribers.discard(queue)

    async def send(self, op: str, data: Dict[str, Any], request_id: Optional[str] = None) -> None:
        await self.connect()
        payload = {"op": op, "data": data}
        if request_id is not None:
            payload["request_id"] = request_id
        logger.debug("channel send %s %s", op, request_id)
        try:
            await self._ws.send_str(json.dumps(payload, default=str))
        except (aiohttp.ClientError, ConnectionResetError) as e:
            raise ChannelError(f"send {op} failed: {e}") from e

    def post(self, op: str, data: Dict[str, Any], request_id: Optional[str] = None) -> asyncio.Task:
        """Schedule a send from synchronous code. Sends are never cancelled."""
        task = asyncio.get_running_loop().create_task(self.send(op, data, request_id))
        self._pending.add(task)
        task.add_done_callback(self._send_done)
        return task

    def _send_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("channel send failed: %s", task.exception())

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
        if self._reader is not None:
            await asyncio.gather(self._reader, return_exceptions=True)
        if self._session is not None:
            await self._session.close()
        self._ws = None
        self._session = None


class ChannelSubscription:
    """Feed one view's handler from the shared channel.

    The handler is synchronous and is called once per message, in arrival
    order, so a message is fully applied before the next is taken off the
    queue. A transport failure resubscribes after `retry_delay` seconds; after
    `max_retries` consecutive failures the subscription gives up and only logs.
    """

    def __init__(
        self,
        channel: MessageChannel,
        handler: Callable[[Dict[str, Any]], None],
        retry_delay: float = config.RETRY_DELAY,
        max_retries: int = config.MAX_RETRIES,
    ):
        self.channel = channel
        self.handler = handler
        self.retry_delay = retry_delay
        self.max_retries = max_retries
        self.failures = 0
        self.gave_up = False
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self.active:
            return self._task
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def _run(self) -> None:
        while True:
            try:
                async for message in self.channel.listen():
                    self.failures = 0
                    try:
                        self.handler(message)
                    except Exception:
                        logger.exception("channel handler failed on %s", message.get("op"))
            except ChannelError as e:
                self.failures += 1
                if self.failures > self.max_retries:
                    # The view stays in whatever state it had, usually loading
                    self.gave_up = True
                    logger.error(
                        "channel subscription abandoned after %d retries: %s",
                        self.max_retries, e,
                    )
                    return
                logger.warning(
                    "channel failure (%d/%d), retrying in %.1fs: %s",
                    self.failures, self.max_retries, self.retry_delay, e,
                )
                await asyncio.sleep(self.retry_delay)
            else:
                logger.debug("channel subscription complete")
                return

    def unsubscribe(self) -> None:
        """Stop listening now. Requests already sent are not cancelled."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
