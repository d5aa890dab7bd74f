import asyncio
from typing import Any, Callable, Dict, List, Optional

from aiortc import RTCPeerConnection, RTCSessionDescription

from exceptions import SignalingError
from host.orchestrator import build_rtc_configuration
from host.signaling import SignalingClient
from logging_config import get_logger
from schemas.control import ControlMessage, encode_control_message

logger = get_logger(__name__)


class ClientSession:
    """Joining side: answers the host's offer and sends control input on its channel."""

    def __init__(
        self,
        signaling: SignalingClient,
        room_id: str,
        user_name: str,
        on_track: Optional[Callable[[Any], Any]] = None,
        on_chat: Optional[Callable[[Dict[str, Any]], Any]] = None,
        pc_factory: Callable[..., Any] = RTCPeerConnection,
    ):
        self.signaling = signaling
        self.room_id = room_id
        self.user_name = user_name
        self.on_track = on_track
        self.on_chat = on_chat
        self.pc_factory = pc_factory
        self.ice_servers: List[Dict[str, Any]] = []
        self.host_id: Optional[str] = None
        self.pc: Optional[Any] = None
        self.channel: Optional[Any] = None
        self.connected = asyncio.Event()
        self.ended_reason: Optional[str] = None

    async def join(self):
        self.ice_servers = await self.signaling.fetch_ice_servers()
        await self.signaling.connect()
        await self.signaling.send({"type": "join-room", "roomId": self.room_id, "userName": self.user_name})

        reply = await self.signaling.receive()
        if not reply or reply.get("type") != "room-joined":
            message = reply.get("message") if reply else "connection closed"
            logger.warning(f"Could not join room {self.room_id}: {message}")
            raise SignalingError(message)
        self.host_id = reply.get("hostId")
        logger.info(f"Joined room {self.room_id} as {self.user_name}")

    async def run(self):
        async for message in self.signaling.messages():
            await self.dispatch(message)
            if self.ended_reason:
                break
        await self.leave()

    async def dispatch(self, message: Dict[str, Any]):
        message_type = message.get("type")
        if message_type == "offer":
            await self.handle_offer(message["sender"], message["offer"])
        elif message_type == "chat-message":
            if self.on_chat is not None:
                self.on_chat(message)
        elif message_type == "kicked":
            logger.info(f"Kicked from room {self.room_id}")
            self.ended_reason = "kicked"
        elif message_type == "error":
            logger.warning(f"Signaling server error: {message.get('message')}")
            if message.get("reason") == "host-disconnected":
                self.ended_reason = "host-disconnected"
        else:
            logger.debug(f"Ignoring {message_type} message")

    async def handle_offer(self, sender: str, offer: Dict[str, Any]):
        if self.pc is not None:
            await self.pc.close()
            self.connected.clear()
            self.channel = None

        pc = self.pc_factory(configuration=build_rtc_configuration(self.ice_servers))
        self.pc = pc

        @pc.on("datachannel")
        def on_datachannel(channel):
            self.channel = channel
            if channel.readyState == "open":
                self.connected.set()
            else:
                channel.on("open", self.connected.set)

        @pc.on("track")
        def on_track(track):
            logger.info(f"Receiving {track.kind} from host")
            if self.on_track is not None:
                self.on_track(track)

        await pc.setRemoteDescription(RTCSessionDescription(sdp=offer["sdp"], type=offer["type"]))
        answer = await pc.createAnswer()
        await pc.setLocalDescription(answer)
        await self.signaling.send({
            "type": "answer",
            "answer": {"sdp": pc.localDescription.sdp, "type": pc.localDescription.type},
            "roomId": self.room_id,
            "target": sender,
        })
        logger.info(f"Answered offer from {sender}")

    def send_input(self, message: ControlMessage) -> bool:
        """Send one input event now; False if the channel is not open."""
        if self.channel is None or self.channel.readyState != "open":
            return False
        self.channel.send(encode_control_message(message))
        return True

    async def send_chat(self, text: str):
        await self.signaling.send({
            "type": "chat-message",
            "roomId": self.room_id,
            "text": text,
            "senderName": self.user_name,
        })

    async def leave(self):
        if self.pc is not None:
            await self.pc.close()
            self.pc = None
        self.connected.clear()
        await self.signaling.close()
