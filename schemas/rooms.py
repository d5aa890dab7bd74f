from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel


class IceServer(BaseModel):
    urls: Union[str, List[str]]
    username: Optional[str] = None
    credential: Optional[str] = None


class IceConfigResponse(BaseModel):
    iceServers: List[IceServer]


class ClientLogRequest(BaseModel):
    msg: Optional[str] = None


class MemberInfo(BaseModel):
    member_id: str
    name: str
    joined_at: datetime


class RoomDetailsResponse(BaseModel):
    room_id: str
    host_id: str
    created_at: datetime
    member_count: int
    members: List[MemberInfo]
    max_members: Optional[int] = None
