from fastapi import APIRouter, HTTPException, Request, Response

from backend import signaling_backend
from constants import ICE_SERVERS
from logging_config import get_logger
from schemas.rooms import ClientLogRequest, IceConfigResponse, MemberInfo, RoomDetailsResponse

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])
api_router = APIRouter(prefix="/api", tags=["api"])


@api_router.get("/ice", response_model=IceConfigResponse, response_model_exclude_none=True)
async def get_ice_servers():
    """ICE server descriptors fetched by host and client before building any peer connection."""
    return IceConfigResponse(iceServers=ICE_SERVERS)


@api_router.post("/client-log", status_code=204)
async def client_log(body: ClientLogRequest, request: Request):
    # Lets browsers without an accessible console report diagnostics
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"[client-http-log {client_host}] {body.msg}")
    return Response(status_code=204)


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request):
    """
    Get details of an active room.

    Possessing the code is the only credential, so anyone who knows it may look.
    """
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room details request for {room_id} from {client_host}")

    registry = signaling_backend.registry
    session = registry.get(room_id)
    if not session:
        logger.warning(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    members = [
        MemberInfo(member_id=m.endpoint_id, name=m.name, joined_at=m.joined_at)
        for m in session.members.values()
    ]
    return RoomDetailsResponse(
        room_id=session.code,
        host_id=session.host_id,
        created_at=session.created_at,
        member_count=len(members),
        members=members,
        max_members=registry.max_members or None,
    )
