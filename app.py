from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from routers.rooms import api_router, rooms_router
from backend import signaling_backend
from constants import LOG_FILE, LOG_LEVEL
import json
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

app = FastAPI()

# Configure CORS to allow all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)

app.include_router(rooms_router)
app.include_router(api_router)

logger.info("FastAPI application initialized")


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Signaling socket shared by hosts and clients.

    Every frame is a JSON object with a `type`; see backend.SignalingBackend for
    the accepted types. The endpoint id assigned here is how peers address each other.
    """
    await websocket.accept()
    connections = signaling_backend.connections
    endpoint_id = connections.register(websocket)
    logger.info(f"Endpoint connected: {endpoint_id} (total: {len(connections)})")

    try:
        await websocket.send_text(json.dumps({"type": "connected", "id": endpoint_id}))

        message_count = 0
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                logger.info(f"WebSocket disconnected normally for endpoint {endpoint_id}")
                break
            message_count += 1

            # Binary frames carry no "text" and are rejected like bad JSON
            data = frame.get("text")
            try:
                message = json.loads(data) if data is not None else None
            except json.JSONDecodeError:
                message = None
            if not isinstance(message, dict):
                logger.debug(f"Rejecting malformed frame #{message_count} from {endpoint_id}")
                await connections.send(endpoint_id, {"type": "error", "message": "Malformed message"})
                continue

            logger.debug(f"Received {message.get('type', 'unknown')} (#{message_count}) from {endpoint_id}")
            try:
                await signaling_backend.handle_message(endpoint_id, message)
            except Exception as e:
                logger.error(f"Error handling {message.get('type')} from {endpoint_id}: {e}", exc_info=True)
    except Exception as e:
        logger.error(f"WebSocket error for endpoint {endpoint_id}: {e}", exc_info=True)
    finally:
        # Unregister first so nothing is relayed to this endpoint during the cascade
        connections.unregister(endpoint_id)
        await signaling_backend.presence.disconnect(endpoint_id)
        logger.info(f"Endpoint disconnected: {endpoint_id} (total: {len(connections)})")
