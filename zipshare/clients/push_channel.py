"""
Optional server-push progress channel.

The backend publishes transfer progress on Phoenix channels. Uploads work
without it: an orchestrator that gets no channel, or whose channel fails to
join, reports locally computed progress only.
"""

from typing import Any, Callable, Dict, List, Optional
import asyncio
import json
import logging

import aiohttp

from zipshare.config.config import settings

logger = logging.getLogger(__name__)

PushHandler = Callable[[str, Dict[str, Any]], None]

PHOENIX_CONTROL_EVENTS = ("phx_reply", "phx_close", "phx_error")


class PushChannel:
    """Capability interface for push channels injected into an orchestrator."""

    async def connect(self, topic: str, handler: PushHandler) -> bool:
        """Join ``topic``; return False when the channel is unavailable."""
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError


def socket_url_from_api(api_url: str) -> str:
    return api_url.rstrip("/").replace("http", "ws", 1) + "/socket/websocket"


class PhoenixPushChannel(PushChannel):
    def __init__(
        self,
        socket_url: str,
        token: str | None = None,
        params: Optional[Dict[str, str]] = None,
        session: aiohttp.ClientSession | None = None,
        join_timeout: float = settings.JOIN_TIMEOUT,
        heartbeat_interval: float = settings.HEARTBEAT_INTERVAL,
    ) -> None:
        self.__socket_url = socket_url
        self.__params = dict(params or {})
        if token:
            self.__params["token"] = token
        self.__session = session
        self.__owns_session = session is None
        self.__join_timeout = join_timeout
        self.__heartbeat_interval = heartbeat_interval

        self.__ws: aiohttp.ClientWebSocketResponse | None = None
        self.__tasks: List[asyncio.Task] = []
        self.__ref = 0
        self.__join_ref: str | None = None
        self.__topic: str | None = None
        self.__handler: PushHandler | None = None

    @classmethod
    def for_api(cls, api_url: str, token: str | None = None, **kwargs) -> "PhoenixPushChannel":
        """Build a channel for the backend at ``api_url``.

        ``ZIPSHARE_SOCKET_URL`` wins over the URL derived from the API host.
        """
        socket_url = settings.ZIPSHARE_SOCKET_URL or socket_url_from_api(api_url)
        return cls(socket_url, token=token, **kwargs)

    @property
    def socket_url(self) -> str:
        return self.__socket_url

    @property
    def client(self) -> aiohttp.ClientSession:
        if self.__session is None or self.__session.closed:
            self.__session = aiohttp.ClientSession()
            self.__owns_session = True
        return self.__session

    @property
    def joined(self) -> bool:
        return self.__ws is not None and not self.__ws.closed and self.__join_ref is not None

    def _next_ref(self) -> str:
        self.__ref += 1
        return str(self.__ref)

    async def _send(
        self, join_ref: str | None, topic: str, event: str, payload: Dict[str, Any], ref: str | None = None
    ) -> str:
        ref = ref or self._next_ref()
        await self.__ws.send_str(json.dumps([join_ref, ref, topic, event, payload]))
        return ref

    async def connect(self, topic: str, handler: PushHandler) -> bool:
        if self.__ws is not None:
            await self.close()

        self.__topic = topic
        self.__handler = handler
        params = {**self.__params, "vsn": "2.0.0"}

        try:
            self.__ws = await self.client.ws_connect(self.__socket_url, params=params)
            join_ref = self._next_ref()
            await self._send(join_ref, topic, "phx_join", {}, ref=join_ref)
            reply = await asyncio.wait_for(self._await_reply(join_ref), self.__join_timeout)
        except (aiohttp.ClientError, ConnectionError, asyncio.TimeoutError, ValueError, TypeError) as e:
            logger.warning(f"Push channel unavailable for {topic}: {e!r}")
            await self.close()
            return False
        except asyncio.CancelledError:
            await self.close()
            raise

        if reply.get("status") != "ok":
            logger.warning(f"Push channel join for {topic} rejected: {reply.get('response')}")
            await self.close()
            return False

        self.__join_ref = join_ref
        self.__tasks = [
            asyncio.create_task(self._read_loop()),
            asyncio.create_task(self._heartbeat_loop()),
        ]
        logger.info(f"Joined push channel {topic}")
        return True

    async def _await_reply(self, ref: str) -> Dict[str, Any]:
        while True:
            msg = await self.__ws.receive()
            if msg.type != aiohttp.WSMsgType.TEXT:
                raise aiohttp.ClientConnectionError(f"socket closed while joining ({msg.type.name})")
            try:
                _join_ref, msg_ref, topic, event, payload = json.loads(msg.data)
            except (ValueError, TypeError):
                logger.warning(f"Dropping malformed push message: {msg.data[:200]}")
                continue
            if event == "phx_reply" and msg_ref == ref:
                return payload
            self._dispatch(topic, event, payload)

    async def _read_loop(self) -> None:
        async for msg in self.__ws:
            if msg.type != aiohttp.WSMsgType.TEXT:
                break
            try:
                _join_ref, _ref, topic, event, payload = json.loads(msg.data)
            except (ValueError, TypeError):
                logger.warning(f"Dropping malformed push message: {msg.data[:200]}")
                continue
            self._dispatch(topic, event, payload)
        logger.debug(f"Push channel {self.__topic} reader stopped")

    async def _heartbeat_loop(self) -> None:
        while self.__ws is not None and not self.__ws.closed:
            await asyncio.sleep(self.__heartbeat_interval)
            try:
                await self._send(None, "phoenix", "heartbeat", {})
            except (ConnectionError, aiohttp.ClientError) as e:
                logger.warning(f"Push channel heartbeat failed: {e!r}")
                return

    def _dispatch(self, topic: str, event: str, payload: Dict[str, Any]) -> None:
        if topic != self.__topic:
            return
        if event in PHOENIX_CONTROL_EVENTS:
            logger.debug(f"{topic} control event {event}: {payload}")
            return
        try:
            self.__handler(event, payload or {})
        except Exception:
            logger.exception(f"Push handler failed on {topic} {event}")

    async def close(self) -> None:
        for task in self.__tasks:
            task.cancel()
        await asyncio.gather(*self.__tasks, return_exceptions=True)
        self.__tasks = []

        if self.__ws is not None and not self.__ws.closed:
            if self.__join_ref is not None:
                try:
                    await self._send(self.__join_ref, self.__topic, "phx_leave", {})
                except (ConnectionError, aiohttp.ClientError) as e:
                    logger.debug(f"phx_leave not delivered: {e!r}")
            await self.__ws.close()
        self.__ws = None
        self.__join_ref = None

        if self.__owns_session and self.__session is not None and not self.__session.closed:
            await self.__session.close()
