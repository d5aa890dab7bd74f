class SignalingError(Exception):
    """Error whose message is reported back to the endpoint that caused it."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RoomCodeTaken(SignalingError):
    def __init__(self, code: str):
        super().__init__(f"Room code {code} is already in use")
        self.code = code


class RoomNotFound(SignalingError):
    def __init__(self, code: str):
        super().__init__("Invalid room")
        self.code = code


class RoomFull(SignalingError):
    def __init__(self, code: str, max_members: int):
        super().__init__("Room is full")
        self.code = code
        self.max_members = max_members


class NotRoomHost(SignalingError):
    def __init__(self, code: str):
        super().__init__("Only the host can do that")
        self.code = code


class HostUnreachable(Exception):
    """Relay target is not connected. Never surfaced to a client."""

    def __init__(self, endpoint_id: str):
        super().__init__(f"Endpoint {endpoint_id} is not connected")
        self.endpoint_id = endpoint_id


class NegotiationFailure(Exception):
    def __init__(self, member_id: str, reason: str):
        super().__init__(f"Negotiation with {member_id} failed: {reason}")
        self.member_id = member_id
        self.reason = reason


class CaptureUnavailable(Exception):
    def __init__(self, reason: str):
        super().__init__(f"Screen capture unavailable: {reason}")
        self.reason = reason
