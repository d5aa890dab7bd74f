import asyncio
import json
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp

from constants import DEFAULT_ICE_SERVERS, SIGNALING_URL
from logging_config import get_logger

logger = get_logger(__name__)


class SignalingClient:
    """aiohttp WebSocket connection to the relay, shared by host and client runtimes."""

    def __init__(self, base_url: str = SIGNALING_URL, session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self.endpoint_id: Optional[str] = None

    @property
    def ws_url(self) -> str:
        return self.base_url.replace("http://", "ws://").replace("https://", "wss://") + "/ws"

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    def _client_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def fetch_ice_servers(self) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/api/ice"
        try:
            async with self._client_session().get(url, timeout=aiohttp.ClientTimeout(total=5)) as resp:
                resp.raise_for_status()
                data = await resp.json()
            servers = data.get("iceServers")
            if servers:
                return servers
        except (aiohttp.ClientError, ValueError, asyncio.TimeoutError) as e:
            logger.warning(f"Failed to fetch ICE servers from {url}, using default STUN: {e}")
        return DEFAULT_ICE_SERVERS

    async def connect(self) -> str:
        logger.info(f"Connecting to signaling server at {self.ws_url}")
        self._ws = await self._client_session().ws_connect(self.ws_url)
        message = await self.receive()
        if not message or message.get("type") != "connected":
            raise ConnectionError(f"Unexpected greeting from signaling server: {message}")
        self.endpoint_id = message["id"]
        logger.info(f"Connected to signaling server as {self.endpoint_id}")
        return self.endpoint_id

    async def send(self, message: Dict[str, Any]):
        if not self.connected:
            logger.debug(f"Not connected, dropping {message.get('type')}")
            return
        await self._ws.send_str(json.dumps(message))

    async def receive(self) -> Optional[Dict[str, Any]]:
        """Next JSON message, or None once the socket is closed."""
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    return json.loads(msg.data)
                except json.JSONDecodeError:
                    logger.warning(f"Ignoring non-JSON frame: {msg.data[:120]}")
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.warning(f"WebSocket error: {self._ws.exception()}")
                break
        return None

    async def messages(self) -> AsyncIterator[Dict[str, Any]]:
        while self.connected:
            message = await self.receive()
            if message is None:
                break
            yield message

    async def close(self):
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
