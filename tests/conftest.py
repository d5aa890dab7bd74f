import asyncio
import json
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from registry import RoomRegistry
from relay import ConnectionManager, SignalingRelay
from presence import PresenceService


class FakeConnection:
    def __init__(self, fail: bool = False):
        self.sent: List[Dict[str, Any]] = []
        self.fail = fail

    async def send_text(self, data: str):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(data))

    def of_type(self, message_type: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == message_type]


class Emitter:
    """Enough of pyee's EventEmitter for aiortc-style `.on()` registration."""

    def __init__(self):
        self.handlers: Dict[str, List[Any]] = {}

    def on(self, event, f=None):
        def register(handler):
            self.handlers.setdefault(event, []).append(handler)
            return handler
        return register(f) if f is not None else register

    async def emit_async(self, event, *args):
        for handler in self.handlers.get(event, []):
            result = handler(*args)
            if asyncio.iscoroutine(result):
                await result

    def emit(self, event, *args):
        for handler in self.handlers.get(event, []):
            handler(*args)


class FakeChannel(Emitter):
    def __init__(self, label, **options):
        super().__init__()
        self.label = label
        self.options = options
        self.readyState = "connecting"
        self.sent: List[str] = []

    def open(self):
        self.readyState = "open"
        self.emit("open")

    def deliver(self, data):
        self.emit("message", data)

    def send(self, data):
        self.sent.append(data)


class FakeTrack:
    def __init__(self, kind="video"):
        self.kind = kind
        self.stopped = False

    def stop(self):
        self.stopped = True


class FakePeerConnection(Emitter):
    instances: List["FakePeerConnection"] = []
    fail_offer_for: set = set()

    def __init__(self, configuration=None):
        super().__init__()
        self.configuration = configuration
        self.tracks: List[Any] = []
        self.channels: List[FakeChannel] = []
        self.localDescription = None
        self.remoteDescription = None
        self.candidates: List[Any] = []
        self.connectionState = "new"
        self.closed = False
        self.offers_created = 0
        self.index = len(FakePeerConnection.instances)
        FakePeerConnection.instances.append(self)

    def addTrack(self, track):
        self.tracks.append(track)

    def createDataChannel(self, label, **options):
        channel = FakeChannel(label, **options)
        self.channels.append(channel)
        return channel

    async def createOffer(self):
        self.offers_created += 1
        await asyncio.sleep(0)
        if self.index in FakePeerConnection.fail_offer_for:
            raise RuntimeError("offer failed")
        return SimpleNamespace(sdp=f"v=0 offer {id(self)}", type="offer")

    async def createAnswer(self):
        return SimpleNamespace(sdp=f"v=0 answer {id(self)}", type="answer")

    async def setLocalDescription(self, description):
        self.localDescription = description

    async def setRemoteDescription(self, description):
        self.remoteDescription = description

    async def addIceCandidate(self, candidate):
        self.candidates.append(candidate)

    async def close(self):
        self.closed = True
        self.connectionState = "closed"


class FakeCaptureSource:
    def __init__(self):
        self.stopped = False
        self.handed_out: List[FakeTrack] = []

    def tracks(self):
        track = FakeTrack()
        self.handed_out.append(track)
        return [track]

    def stop(self):
        self.stopped = True


class RecordingSignaling:
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def send(self, message):
        self.sent.append(message)

    def of_type(self, message_type):
        return [m for m in self.sent if m.get("type") == message_type]


@pytest.fixture(autouse=True)
def reset_fake_peers():
    FakePeerConnection.instances = []
    FakePeerConnection.fail_offer_for = set()
    yield


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def connections():
    return ConnectionManager()


@pytest.fixture
def relay(registry, connections):
    return SignalingRelay(registry, connections)


@pytest.fixture
def presence(registry, connections, relay):
    return PresenceService(registry, connections, relay)


@pytest.fixture
def connect(connections):
    """Register a fake endpoint and return (endpoint_id, connection)."""
    def _connect(fail: bool = False):
        conn = FakeConnection(fail=fail)
        return connections.register(conn), conn
    return _connect
