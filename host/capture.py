"""Shared screen capture for every peer link a host owns.

Starting capture is expensive (and may prompt for permission), so it starts at
most once per process. Each link gets its own relayed view of the same source.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from aiortc.contrib.media import MediaPlayer, MediaRelay

from constants import CAPTURE_FILE, CAPTURE_FORMAT, CAPTURE_OPTIONS
from exceptions import CaptureUnavailable
from logging_config import get_logger

logger = get_logger(__name__)


class ScreenCaptureSource:
    """A MediaPlayer over the screen grabber plus a MediaRelay to fan it out."""

    def __init__(self, player: MediaPlayer):
        self.player = player
        self.relay = MediaRelay()

    def tracks(self) -> List[Any]:
        tracks = []
        if self.player.video is not None:
            tracks.append(self.relay.subscribe(self.player.video))
        if self.player.audio is not None:
            tracks.append(self.relay.subscribe(self.player.audio))
        return tracks

    def stop(self):
        for track in (self.player.video, self.player.audio):
            if track is not None:
                track.stop()


async def open_screen_capture(
    file: str = CAPTURE_FILE,
    format: str = CAPTURE_FORMAT,
    options: Optional[Dict[str, str]] = None,
) -> ScreenCaptureSource:
    options = options if options is not None else CAPTURE_OPTIONS
    logger.info(f"Opening screen capture {file!r} (format={format}, options={options})")
    loop = asyncio.get_running_loop()
    # av.open blocks while the device is probed
    player = await loop.run_in_executor(
        None, lambda: MediaPlayer(file, format=format, options=options)
    )
    if player.video is None:
        raise CaptureUnavailable(f"{file!r} has no video stream")
    return ScreenCaptureSource(player)


class SharedCapture:
    def __init__(self, source_factory: Callable[[], Awaitable[Any]] = open_screen_capture):
        self._source_factory = source_factory
        self._pending: Optional[asyncio.Future] = None
        # Serializes starting against stopping so a stop never overlaps a new start
        self._lock = asyncio.Lock()
        self.error: Optional[CaptureUnavailable] = None
        self.start_count = 0

    @property
    def active(self) -> bool:
        return self._pending is not None

    @property
    def available(self) -> bool:
        return self.error is None

    async def _start(self):
        self.start_count += 1
        try:
            return await self._source_factory()
        except CaptureUnavailable:
            raise
        except Exception as e:
            raise CaptureUnavailable(str(e) or type(e).__name__) from e

    async def acquire(self) -> List[Any]:
        """Return a fresh set of read-only tracks over the shared source.

        The first caller starts capture; concurrent callers await the same
        in-flight start.
        """
        async with self._lock:
            if self.error is not None:
                raise self.error
            if self._pending is None:
                self._pending = asyncio.ensure_future(self._start())
            pending = self._pending
        try:
            # Shielded so one cancelled caller does not cancel the start for everyone
            source = await asyncio.shield(pending)
        except CaptureUnavailable as e:
            if self._pending is pending:
                self._pending = None
            if self.error is None:
                self.error = e
                logger.error(f"Screen capture failed to start: {e.reason}")
            raise self.error
        return source.tracks()

    async def release(self):
        async with self._lock:
            pending = self._pending
            if pending is None:
                return
            try:
                source = await pending
            except CaptureUnavailable:
                return
            finally:
                if self._pending is pending:
                    self._pending = None
            source.stop()
            logger.info("Screen capture released")

    def reset(self):
        """Allow another attempt after capture was denied or revoked."""
        if self.error is not None:
            logger.info("Clearing screen capture error")
        self.error = None
