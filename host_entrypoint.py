import asyncio
import os

from constants import LOG_FILE, LOG_LEVEL, SIGNALING_URL
from logging_config import get_logger, setup_logging

setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from host.session import HostSession
from host.signaling import SignalingClient

logger = get_logger(__name__)


def log_control(member_id, message):
    # Input injection is left to an external driver; log what arrives
    logger.info(f"Input from {member_id}: {message.model_dump(exclude_none=True)}")


def log_chat(message):
    logger.info(f"[chat] {message.get('senderName')}: {message.get('text')}")


async def main():
    session = HostSession(
        SignalingClient(SIGNALING_URL),
        room_id=os.getenv("ROOM_ID") or None,
        user_name=os.getenv("HOST_NAME", "Host"),
        on_control=log_control,
        on_chat=log_chat,
    )
    try:
        room_id = await session.start()
    except Exception:
        await session.signaling.close()
        raise
    logger.info(f"Share this code with players: {room_id}")
    await session.run()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Host stopped")
