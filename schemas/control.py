"""Control input carried over the host's unordered data channel.

Each press, release or axis sample travels as its own message, with no
acknowledgement and no sequence number. Only the latest value per
(kind, code/index) matters, so a late message simply overwrites.
"""
import json
from typing import Annotated, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, TypeAdapter


class GamepadInput(BaseModel):
    type: Literal["gamepad"] = "gamepad"
    inputType: Literal["button", "axis"]
    code: Optional[str] = None
    index: Optional[int] = None
    value: float


class KeyboardInput(BaseModel):
    type: Literal["keyboard"] = "keyboard"
    key: str
    state: Literal["down", "up"]


class MouseInput(BaseModel):
    type: Literal["mouse"] = "mouse"
    dx: float
    dy: float
    buttons: int = 0


ControlMessage = Annotated[
    Union[GamepadInput, KeyboardInput, MouseInput],
    Field(discriminator="type"),
]

_control_adapter = TypeAdapter(ControlMessage)


def parse_control_message(raw: Union[str, bytes, dict]) -> ControlMessage:
    """Raises pydantic.ValidationError or ValueError on malformed input."""
    if isinstance(raw, (str, bytes)):
        raw = json.loads(raw)
    return _control_adapter.validate_python(raw)


def encode_control_message(message: ControlMessage) -> str:
    return message.model_dump_json(exclude_none=True)


def control_key(message: ControlMessage) -> Tuple[str, Optional[Union[str, int]]]:
    if isinstance(message, GamepadInput):
        ident = message.code if message.code is not None else message.index
        return message.inputType, ident
    if isinstance(message, KeyboardInput):
        return "key", message.key
    return "mouse-delta", None


class InputState:
    """Latest value seen per control key."""

    def __init__(self):
        self.latest: Dict[Tuple[str, Optional[Union[str, int]]], ControlMessage] = {}
        self.received = 0

    def apply(self, message: ControlMessage):
        self.latest[control_key(message)] = message
        self.received += 1

    def value_of(self, kind: str, ident=None) -> Optional[ControlMessage]:
        return self.latest.get((kind, ident))
