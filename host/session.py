from typing import Any, Callable, Dict, List, Optional

from exceptions import CaptureUnavailable, SignalingError
from host.capture import SharedCapture
from host.orchestrator import PeerOrchestrator
from host.signaling import SignalingClient
from logging_config import get_logger
from schemas.control import ControlMessage

logger = get_logger(__name__)


class HostSession:
    """Host side of a room: creates it, then reacts to presence and signaling events."""

    def __init__(
        self,
        signaling: SignalingClient,
        capture: Optional[SharedCapture] = None,
        room_id: Optional[str] = None,
        user_name: str = "Host",
        on_control: Optional[Callable[[str, ControlMessage], Any]] = None,
        on_chat: Optional[Callable[[Dict[str, Any]], Any]] = None,
        on_capture_unavailable: Optional[Callable[[CaptureUnavailable], Any]] = None,
        pc_factory: Optional[Callable[..., Any]] = None,
    ):
        self.signaling = signaling
        self.capture = capture or SharedCapture()
        self.requested_room_id = room_id
        self.user_name = user_name
        self.on_control = on_control
        self.on_chat = on_chat
        self.on_capture_unavailable = on_capture_unavailable
        self.pc_factory = pc_factory
        self.room_id: Optional[str] = None
        self.members: Dict[str, str] = {}
        self.orchestrator: Optional[PeerOrchestrator] = None

    async def start(self) -> str:
        ice_servers: List[Dict[str, Any]] = await self.signaling.fetch_ice_servers()
        await self.signaling.connect()

        create = {"type": "create-room"}
        if self.requested_room_id:
            create["roomId"] = self.requested_room_id
        await self.signaling.send(create)

        reply = await self.signaling.receive()
        if not reply or reply.get("type") != "room-created":
            message = reply.get("message") if reply else "connection closed"
            raise SignalingError(message)
        self.room_id = reply["roomId"]

        kwargs = {}
        if self.pc_factory is not None:
            kwargs["pc_factory"] = self.pc_factory
        self.orchestrator = PeerOrchestrator(
            self.signaling,
            self.capture,
            ice_servers,
            room_id=self.room_id,
            on_control=self.on_control,
            on_capture_unavailable=self.on_capture_unavailable,
            **kwargs,
        )
        logger.info(f"Hosting room {self.room_id}")
        return self.room_id

    async def run(self):
        try:
            async for message in self.signaling.messages():
                try:
                    await self.dispatch(message)
                except Exception as e:
                    logger.error(f"Error handling {message.get('type')} message: {e}", exc_info=True)
        finally:
            await self.stop()

    async def dispatch(self, message: Dict[str, Any]):
        message_type = message.get("type")
        if message_type == "client-joined":
            member_id = message["memberId"]
            self.members[member_id] = message.get("name", "")
            try:
                await self.orchestrator.add_client(member_id, self.members[member_id])
            except CaptureUnavailable:
                # Already reported; the member stays in the room without a stream
                pass
        elif message_type == "client-left":
            member_id = message["memberId"]
            self.members.pop(member_id, None)
            await self.orchestrator.remove_client(member_id)
        elif message_type == "answer":
            await self.orchestrator.handle_answer(message["sender"], message.get("answer") or {})
        elif message_type == "ice-candidate":
            await self.orchestrator.handle_ice_candidate(message["sender"], message.get("candidate"))
        elif message_type == "chat-message":
            if self.on_chat is not None:
                self.on_chat(message)
        elif message_type == "error":
            logger.warning(f"Signaling server error: {message.get('message')}")
        else:
            logger.debug(f"Ignoring {message_type} message")

    async def kick(self, member_id: str):
        self.members.pop(member_id, None)
        await self.orchestrator.kick(member_id)

    async def send_chat(self, text: str):
        await self.signaling.send({
            "type": "chat-message",
            "roomId": self.room_id,
            "text": text,
            "senderName": self.user_name,
        })

    async def stop(self):
        if self.orchestrator is not None:
            await self.orchestrator.shutdown()
        await self.signaling.close()
