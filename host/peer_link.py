import asyncio
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from logging_config import get_logger
from schemas.control import InputState

logger = get_logger(__name__)


class LinkState(str, Enum):
    IDLE = "idle"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    CLOSED = "closed"


TRANSITIONS: Dict[LinkState, FrozenSet[LinkState]] = {
    LinkState.IDLE: frozenset({LinkState.NEGOTIATING, LinkState.CLOSED}),
    LinkState.NEGOTIATING: frozenset({LinkState.CONNECTED, LinkState.CLOSED}),
    LinkState.CONNECTED: frozenset({LinkState.CLOSED}),
    LinkState.CLOSED: frozenset(),
}


class PeerLink:
    """The host's connection to one room member: peer connection, control channel, state."""

    def __init__(self, member_id: str, name: str = ""):
        self.member_id = member_id
        self.name = name
        self.state = LinkState.IDLE
        self.pc: Optional[Any] = None
        self.channel: Optional[Any] = None
        self.task: Optional[asyncio.Task] = None
        self.input_state = InputState()
        self.created_at = datetime.now()

    def __repr__(self) -> str:
        return f"PeerLink({self.member_id!r}, {self.state.value})"

    @property
    def closed(self) -> bool:
        return self.state is LinkState.CLOSED

    def advance(self, new_state: LinkState) -> bool:
        if new_state not in TRANSITIONS[self.state]:
            logger.debug(f"Link {self.member_id}: ignoring {self.state.value} -> {new_state.value}")
            return False
        logger.info(f"Link {self.member_id}: {self.state.value} -> {new_state.value}")
        self.state = new_state
        return True

    def begin_negotiation(self) -> bool:
        """True for exactly one caller; every later trigger collapses into that offer."""
        return self.advance(LinkState.NEGOTIATING)
