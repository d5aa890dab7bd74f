import asyncio
import random
import string
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional

from exceptions import RoomCodeTaken, RoomFull, RoomNotFound, SignalingError
from logging_config import get_logger

logger = get_logger(__name__)

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class Member:
    endpoint_id: str
    name: str
    joined_at: datetime = field(default_factory=datetime.now)


@dataclass
class Session:
    code: str
    host_id: str
    members: Dict[str, Member] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def participants(self) -> List[str]:
        """Host first, then members in join order."""
        return [self.host_id, *self.members.keys()]

    def has_participant(self, endpoint_id: str) -> bool:
        return endpoint_id == self.host_id or endpoint_id in self.members


class RoomRegistry:
    """In-memory map from room code to session.

    Every mutation is synchronous, so a single call never interleaves with another
    on the event loop. Multi-step operations that await in between (sending
    notices, then mutating) hold the room's lock via `locked()`.
    """

    def __init__(self, max_members: int = 0, code_length: int = 6):
        self.max_members = max_members
        self.code_length = code_length
        self._sessions: Dict[str, Session] = {}
        logger.info(f"Initializing RoomRegistry (max_members={max_members or 'unlimited'})")

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, code: str) -> bool:
        return code in self._sessions

    def generate_code(self) -> str:
        while True:
            code = "".join(random.choices(ROOM_CODE_ALPHABET, k=self.code_length))
            if code not in self._sessions:
                return code

    def create(self, code: str, host_id: str) -> Session:
        if code in self._sessions:
            logger.warning(f"Room creation failed: code {code} already active")
            raise RoomCodeTaken(code)
        session = Session(code=code, host_id=host_id)
        self._sessions[code] = session
        logger.info(f"Room {code} created by host {host_id}")
        return session

    def get(self, code: str) -> Optional[Session]:
        return self._sessions.get(code)

    def join(self, code: str, member_id: str, name: str) -> Member:
        session = self._sessions.get(code)
        if session is None:
            logger.info(f"Join failed: room {code} not found")
            raise RoomNotFound(code)
        if member_id == session.host_id:
            raise SignalingError("Host cannot join its own room")
        if (
            self.max_members
            and member_id not in session.members
            and len(session.members) >= self.max_members
        ):
            logger.info(f"Join failed: room {code} is full ({len(session.members)}/{self.max_members})")
            raise RoomFull(code, self.max_members)

        member = Member(endpoint_id=member_id, name=name)
        session.members[member_id] = member
        logger.info(f"Member {member_id} ({name}) joined room {code} ({len(session.members)} members)")
        return member

    def remove_member(self, code: str, member_id: str) -> Optional[Member]:
        session = self._sessions.get(code)
        if session is None:
            return None
        member = session.members.pop(member_id, None)
        if member:
            logger.info(f"Member {member_id} ({member.name}) removed from room {code}")
        return member

    def destroy(self, code: str) -> Optional[Session]:
        session = self._sessions.pop(code, None)
        if session:
            logger.info(f"Room {code} destroyed")
        return session

    def sessions_hosted_by(self, endpoint_id: str) -> List[Session]:
        return [s for s in self._sessions.values() if s.host_id == endpoint_id]

    def sessions_with_member(self, endpoint_id: str) -> List[Session]:
        return [s for s in self._sessions.values() if endpoint_id in s.members]

    def shares_session(self, a: str, b: str) -> bool:
        return any(
            s.has_participant(a) and s.has_participant(b)
            for s in self._sessions.values()
        )

    @asynccontextmanager
    async def locked(self, code: str) -> AsyncIterator[Session]:
        """Hold the room's lock for a multi-step mutation.

        The session is re-checked after the lock is acquired: a waiter queued
        behind a host-disconnect cascade must not act on the destroyed session.
        """
        session = self._sessions.get(code)
        if session is None:
            raise RoomNotFound(code)
        async with session.lock:
            if self._sessions.get(code) is not session:
                raise RoomNotFound(code)
            yield session
