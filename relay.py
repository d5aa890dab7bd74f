import json
import uuid
from typing import Any, Dict, Optional, Protocol

from exceptions import HostUnreachable
from logging_config import get_logger
from registry import RoomRegistry, Session

logger = get_logger(__name__)

# Signaling kind -> key holding its opaque payload
SIGNAL_PAYLOAD_KEYS = {
    "offer": "offer",
    "answer": "answer",
    "ice-candidate": "candidate",
}


class Connection(Protocol):
    async def send_text(self, data: str) -> None: ...


class ConnectionManager:
    """Tracks live endpoint connections by endpoint id."""

    def __init__(self):
        # Format: {endpoint_id: websocket}
        self._connections: Dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def register(self, connection: Connection) -> str:
        endpoint_id = uuid.uuid4().hex
        self._connections[endpoint_id] = connection
        logger.debug(f"Registered endpoint {endpoint_id} ({len(self._connections)} connected)")
        return endpoint_id

    def unregister(self, endpoint_id: str):
        if self._connections.pop(endpoint_id, None) is not None:
            logger.debug(f"Unregistered endpoint {endpoint_id} ({len(self._connections)} connected)")

    def is_connected(self, endpoint_id: str) -> bool:
        return endpoint_id in self._connections

    def _connection_for(self, endpoint_id: str) -> Connection:
        try:
            return self._connections[endpoint_id]
        except KeyError:
            raise HostUnreachable(endpoint_id) from None

    async def send(self, endpoint_id: str, message: Dict[str, Any]) -> bool:
        """Best-effort delivery. Returns False instead of raising when the target is gone."""
        try:
            connection = self._connection_for(endpoint_id)
        except HostUnreachable as e:
            logger.debug(f"Dropping {message.get('type', 'unknown')} message: {e}")
            return False
        try:
            await connection.send_text(json.dumps(message))
            return True
        except Exception as e:
            logger.warning(f"Error sending {message.get('type', 'unknown')} to endpoint {endpoint_id}: {e}")
            return False


class SignalingRelay:
    """Routes offer/answer/ice-candidate payloads between endpoints without reading them."""

    def __init__(self, registry: RoomRegistry, connections: ConnectionManager):
        self.registry = registry
        self.connections = connections

    async def relay(self, sender_id: str, kind: str, message: Dict[str, Any]) -> int:
        """Forward a signaling message; returns the number of deliveries made."""
        key = SIGNAL_PAYLOAD_KEYS[kind]
        outgoing = {"type": kind, key: message.get(key), "sender": sender_id}
        target = message.get("target")
        room_id = message.get("roomId")

        if target:
            # Only route between endpoints that are in a room together, so a
            # kicked or departed member receives nothing further.
            if not self.registry.shares_session(sender_id, target):
                logger.debug(f"Dropping {kind} from {sender_id}: no shared room with {target}")
                return 0
            logger.debug(f"Relaying {kind} from {sender_id} to {target}")
            return int(await self.connections.send(target, outgoing))

        if room_id:
            session = self.registry.get(room_id)
            if session is None or not session.has_participant(sender_id):
                logger.debug(f"Dropping {kind} from {sender_id}: not a participant of room {room_id}")
                return 0
            logger.debug(f"Relaying {kind} from {sender_id} to room {room_id}")
            return await self.broadcast(session, outgoing, exclude=sender_id)

        logger.debug(f"Dropping {kind} from {sender_id}: no target or roomId")
        return 0

    async def broadcast(self, session: Session, message: Dict[str, Any], exclude: Optional[str] = None) -> int:
        delivered = 0
        for endpoint_id in session.participants():
            if endpoint_id == exclude:
                continue
            if await self.connections.send(endpoint_id, message):
                delivered += 1
        logger.debug(f"Broadcast {message.get('type', 'unknown')} to {delivered} endpoints in room {session.code}")
        return delivered
