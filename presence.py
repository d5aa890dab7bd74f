import time
import uuid
from typing import Optional

from exceptions import NotRoomHost, SignalingError
from logging_config import get_logger
from registry import RoomRegistry
from relay import ConnectionManager, SignalingRelay

logger = get_logger(__name__)

HOST_DISCONNECTED = "Host disconnected"


class PresenceService:
    """Join/leave/kick/host-disconnect cascades and chat fan-out for rooms."""

    def __init__(self, registry: RoomRegistry, connections: ConnectionManager, relay: SignalingRelay):
        self.registry = registry
        self.connections = connections
        self.relay = relay

    async def send_error(self, endpoint_id: str, message: str):
        await self.connections.send(endpoint_id, {"type": "error", "message": message})

    async def create_room(self, host_id: str, room_id: Optional[str] = None) -> Optional[str]:
        code = room_id or self.registry.generate_code()
        try:
            self.registry.create(code, host_id)
        except SignalingError as e:
            await self.send_error(host_id, e.message)
            return None
        await self.connections.send(host_id, {"type": "room-created", "roomId": code})
        return code

    async def join_room(self, member_id: str, room_id: str, user_name: str) -> bool:
        try:
            async with self.registry.locked(room_id) as session:
                member = self.registry.join(room_id, member_id, user_name)
                await self.connections.send(
                    member_id, {"type": "room-joined", "roomId": room_id, "hostId": session.host_id}
                )
                await self.connections.send(
                    session.host_id, {"type": "client-joined", "memberId": member_id, "name": member.name}
                )
        except SignalingError as e:
            await self.send_error(member_id, e.message)
            return False
        return True

    async def leave_room(self, member_id: str, room_id: str):
        session = self.registry.get(room_id)
        if session is None:
            return
        async with session.lock:
            if self.registry.remove_member(room_id, member_id):
                await self.connections.send(session.host_id, {"type": "client-left", "memberId": member_id})

    async def kick(self, host_id: str, room_id: str, member_id: str) -> bool:
        """Deliver the kick notice, then drop the member, then tell the host.

        A second kick of the same member finds nothing to remove and does nothing.
        """
        try:
            async with self.registry.locked(room_id) as session:
                if session.host_id != host_id:
                    raise NotRoomHost(room_id)
                if member_id not in session.members:
                    logger.debug(f"Kick of {member_id} in room {room_id} ignored: not a member")
                    return False
                logger.info(f"Host {host_id} kicking member {member_id} from room {room_id}")
                await self.connections.send(member_id, {"type": "kicked", "roomId": room_id})
                self.registry.remove_member(room_id, member_id)
                await self.connections.send(host_id, {"type": "client-left", "memberId": member_id})
        except SignalingError as e:
            await self.send_error(host_id, e.message)
            return False
        return True

    async def chat(self, sender_id: str, room_id: str, text: str, sender_name: str) -> int:
        session = self.registry.get(room_id)
        if session is None or not session.has_participant(sender_id):
            logger.debug(f"Dropping chat from {sender_id}: unknown room {room_id} or not a participant")
            return 0
        message = {
            "type": "chat-message",
            "id": uuid.uuid4().hex,
            "senderName": sender_name,
            "text": text,
            "timestamp": int(time.time() * 1000),
            "isHost": sender_id == session.host_id,
        }
        logger.debug(f"Chat from {sender_id} in room {room_id}")
        return await self.relay.broadcast(session, message)

    async def disconnect(self, endpoint_id: str):
        """Tear down everything an endpoint took part in.

        Rooms it hosted get a single termination notice per member before the
        session record is removed; rooms it joined drop it and tell their host.
        """
        for session in self.registry.sessions_hosted_by(endpoint_id):
            async with session.lock:
                if self.registry.get(session.code) is not session:
                    continue
                logger.info(f"Host {endpoint_id} disconnected, closing room {session.code} ({len(session.members)} members)")
                notice = {"type": "error", "message": HOST_DISCONNECTED, "reason": "host-disconnected"}
                for member_id in list(session.members):
                    await self.connections.send(member_id, notice)
                self.registry.destroy(session.code)

        for session in self.registry.sessions_with_member(endpoint_id):
            async with session.lock:
                if self.registry.remove_member(session.code, endpoint_id):
                    await self.connections.send(session.host_id, {"type": "client-left", "memberId": endpoint_id})
