import asyncio
from typing import Any, Callable, Dict, List, Optional, Protocol

from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp

from constants import CONTROL_CHANNEL_LABEL
from exceptions import CaptureUnavailable, NegotiationFailure
from host.capture import SharedCapture
from host.peer_link import LinkState, PeerLink
from logging_config import get_logger
from schemas.control import ControlMessage, parse_control_message

logger = get_logger(__name__)


class SignalingSender(Protocol):
    """What the orchestrator needs from the signaling connection."""

    async def send(self, message: Dict[str, Any]) -> None: ...


def build_rtc_configuration(ice_servers: List[Dict[str, Any]]) -> RTCConfiguration:
    return RTCConfiguration(iceServers=[
        RTCIceServer(
            urls=server["urls"],
            username=server.get("username"),
            credential=server.get("credential"),
        )
        for server in ice_servers
    ])


class PeerOrchestrator:
    """Owns one PeerLink per joined member of the host's room.

    Links are independent: each negotiates in its own task, and a failure
    only ever closes the link it happened on.
    """

    def __init__(
        self,
        signaling: SignalingSender,
        capture: SharedCapture,
        ice_servers: List[Dict[str, Any]],
        room_id: Optional[str] = None,
        on_control: Optional[Callable[[str, ControlMessage], Any]] = None,
        on_capture_unavailable: Optional[Callable[[CaptureUnavailable], Any]] = None,
        pc_factory: Callable[..., Any] = RTCPeerConnection,
    ):
        self.signaling = signaling
        self.capture = capture
        self.ice_servers = ice_servers
        self.room_id = room_id
        self.on_control = on_control
        self.on_capture_unavailable = on_capture_unavailable
        self.pc_factory = pc_factory
        self.links: Dict[str, PeerLink] = {}
        self._reported_error: Optional[CaptureUnavailable] = None

    def state_of(self, member_id: str) -> LinkState:
        link = self.links.get(member_id)
        return link.state if link else LinkState.CLOSED

    async def add_client(self, member_id: str, name: str = "") -> PeerLink:
        if not self.capture.available:
            self._report_capture_error(self.capture.error)
            raise self.capture.error

        if member_id in self.links:
            logger.warning(f"Member {member_id} rejoined, replacing its existing link")
            await self.close_link(member_id)

        link = PeerLink(member_id, name)
        self.links[member_id] = link
        logger.info(f"Created link for {name or member_id} ({len(self.links)} active)")
        link.task = asyncio.create_task(self.negotiate(link))
        return link

    async def negotiate(self, link: PeerLink):
        if not link.begin_negotiation():
            return
        try:
            await self._negotiate(link)
        except CaptureUnavailable as e:
            if not link.closed:
                self._report_capture_error(e)
                await self.close_link(link.member_id)
        except Exception as e:
            if link.closed:
                # Torn down mid-negotiation; whatever was half-built is already released
                logger.debug(f"Abandoned negotiation with {link.member_id}: {e}")
                return
            failure = NegotiationFailure(link.member_id, str(e) or type(e).__name__)
            logger.error(str(failure), exc_info=True)
            await self.close_link(link.member_id)

    async def _negotiate(self, link: PeerLink):
        tracks = await self.capture.acquire()
        if link.closed:
            for track in tracks:
                track.stop()
            return

        pc = self.pc_factory(configuration=build_rtc_configuration(self.ice_servers))
        link.pc = pc
        for track in tracks:
            pc.addTrack(track)

        @pc.on("connectionstatechange")
        async def on_connectionstatechange():
            logger.debug(f"Link {link.member_id}: connection state {pc.connectionState}")
            if pc.connectionState == "failed" and not link.closed:
                logger.error(str(NegotiationFailure(link.member_id, "connection failed")))
                await self.close_link(link.member_id)

        # Only the latest input value matters, so losing or reordering is fine
        channel = pc.createDataChannel(CONTROL_CHANNEL_LABEL, ordered=False, maxRetransmits=0)
        self._attach_channel(link, channel)

        offer = await pc.createOffer()
        await pc.setLocalDescription(offer)
        if link.closed:
            return

        await self.signaling.send({
            "type": "offer",
            "offer": {"sdp": pc.localDescription.sdp, "type": pc.localDescription.type},
            "roomId": self.room_id,
            "target": link.member_id,
        })
        logger.info(f"Sent offer to {link.name or link.member_id}")

    def _attach_channel(self, link: PeerLink, channel):
        link.channel = channel

        @channel.on("open")
        def on_open():
            link.advance(LinkState.CONNECTED)

        @channel.on("message")
        def on_message(data):
            self.handle_control(link, data)

    def handle_control(self, link: PeerLink, data):
        if link.closed:
            return
        try:
            message = parse_control_message(data)
        except ValueError as e:
            # pydantic.ValidationError is a ValueError
            logger.debug(f"Dropping malformed control frame from {link.member_id}: {e}")
            return
        link.input_state.apply(message)
        if self.on_control is None:
            return
        try:
            self.on_control(link.member_id, message)
        except Exception as e:
            logger.error(f"Control handler failed for {link.member_id}: {e}", exc_info=True)

    async def handle_answer(self, sender: str, answer: Dict[str, Any]):
        link = self.links.get(sender)
        if link is None or link.pc is None or link.state is not LinkState.NEGOTIATING:
            logger.warning(f"Ignoring answer from {sender}: no link awaiting an answer")
            return
        try:
            await link.pc.setRemoteDescription(
                RTCSessionDescription(sdp=answer["sdp"], type=answer["type"])
            )
            logger.info(f"Applied answer from {link.name or sender}")
        except Exception as e:
            if link.closed:
                return
            logger.error(str(NegotiationFailure(sender, f"bad answer: {e}")), exc_info=True)
            await self.close_link(sender)

    async def handle_ice_candidate(self, sender: str, candidate: Any):
        link = self.links.get(sender)
        if link is None or link.pc is None or link.closed:
            logger.debug(f"Ignoring ICE candidate from {sender}: no active link")
            return
        if not candidate:
            # End-of-candidates marker
            return
        if not isinstance(candidate, dict) or not isinstance(candidate.get("candidate"), str):
            logger.debug(f"Dropping malformed ICE candidate from {sender}: {candidate!r}")
            return
        sdp = candidate["candidate"]
        if not sdp:
            return
        if sdp.startswith("candidate:"):
            sdp = sdp[len("candidate:"):]
        try:
            ice = candidate_from_sdp(sdp)
            ice.sdpMid = candidate.get("sdpMid")
            ice.sdpMLineIndex = candidate.get("sdpMLineIndex")
            await link.pc.addIceCandidate(ice)
        except Exception as e:
            logger.warning(f"Could not add ICE candidate from {sender}: {e}")

    async def close_link(self, member_id: str):
        link = self.links.pop(member_id, None)
        if link is None:
            return
        link.advance(LinkState.CLOSED)
        if link.pc is not None:
            try:
                await link.pc.close()
            except Exception as e:
                logger.warning(f"Error closing peer connection for {member_id}: {e}")
        logger.info(f"Closed link for {link.name or member_id} ({len(self.links)} active)")
        if not self.links:
            await self.capture.release()

    async def remove_client(self, member_id: str):
        await self.close_link(member_id)

    async def kick(self, member_id: str):
        await self.signaling.send({"type": "kick-client", "memberId": member_id, "roomId": self.room_id})
        await self.close_link(member_id)

    async def shutdown(self):
        tasks = [link.task for link in self.links.values() if link.task is not None]
        for member_id in list(self.links):
            await self.close_link(member_id)
        # Closed links finish negotiating without side effects
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.capture.release()

    def _report_capture_error(self, error: Optional[CaptureUnavailable]):
        # SharedCapture hands every caller the same sticky error; report it once
        if error is None or error is self._reported_error:
            return
        self._reported_error = error
        logger.error(f"Cannot serve new clients: {error}")
        if self.on_capture_unavailable is not None:
            self.on_capture_unavailable(error)
