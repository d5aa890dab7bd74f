from constants import MAX_MEMBERS, ROOM_CODE_LENGTH
from logging_config import get_logger
from presence import PresenceService
from registry import RoomRegistry
from relay import ConnectionManager, SignalingRelay

logger = get_logger(__name__)


class SignalingBackend:
    """Process-wide room state and the services that act on it. Nothing here survives a restart."""

    def __init__(self, max_members: int = MAX_MEMBERS, code_length: int = ROOM_CODE_LENGTH):
        self.registry = RoomRegistry(max_members=max_members, code_length=code_length)
        self.connections = ConnectionManager()
        self.relay = SignalingRelay(self.registry, self.connections)
        self.presence = PresenceService(self.registry, self.connections, self.relay)
        logger.info("Signaling backend initialized (in-memory)")

    async def handle_message(self, endpoint_id: str, message: dict):
        message_type = message.get("type")

        if message_type == "create-room":
            await self.presence.create_room(endpoint_id, message.get("roomId"))
        elif message_type == "join-room":
            room_id = message.get("roomId")
            if not room_id:
                await self.presence.send_error(endpoint_id, "Invalid room")
                return
            user_name = (message.get("userName") or "").strip() or f"User_{endpoint_id[:8]}"
            await self.presence.join_room(endpoint_id, room_id, user_name)
        elif message_type == "leave-room":
            await self.presence.leave_room(endpoint_id, message.get("roomId", ""))
        elif message_type == "kick-client":
            member_id = message.get("memberId") or message.get("clientId")
            await self.presence.kick(endpoint_id, message.get("roomId", ""), member_id)
        elif message_type in ("offer", "answer", "ice-candidate"):
            await self.relay.relay(endpoint_id, message_type, message)
        elif message_type == "chat-message":
            text = message.get("text", message.get("message"))
            if not isinstance(text, str) or not text.strip():
                return
            await self.presence.chat(endpoint_id, message.get("roomId", ""), text, message.get("senderName") or "")
        elif message_type == "client-log":
            logger.info(f"[client {endpoint_id}] {message.get('msg')}")
        else:
            logger.debug(f"Ignoring unknown message type {message_type!r} from {endpoint_id}")


signaling_backend = SignalingBackend()
