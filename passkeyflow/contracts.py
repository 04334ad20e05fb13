"""Cross-window message contracts exchanged with the network widget."""

from __future__ import annotations

import json
import logging
import time
import uuid
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from .constants import DEVICE_PROFILING_SOURCE, SERVER_STATE_TOKEN_HINT

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="TaggedEnum")


class TaggedEnum(str, Enum):
    """String enum whose unrecognised values collapse to ``UNKNOWN``."""

    @classmethod
    def coerce(cls: Type[E], value: Any) -> E:
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            logger.debug(f"Unrecognised {cls.__name__} value: {value!r}")
            return cls("UNKNOWN")


class MessageType(TaggedEnum):
    COMMAND = "COMMAND"
    RESULT = "RESULT"
    EVENT = "EVENT"
    UNKNOWN = "UNKNOWN"


class CommandType(TaggedEnum):
    INITIALIZATION = "INITIALIZATION"
    AUTHORIZATION_REQUEST = "AUTHORIZATION_REQUEST"
    UNKNOWN = "UNKNOWN"


class ResultStatus(TaggedEnum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    UNKNOWN = "UNKNOWN"


class EventType(TaggedEnum):
    DEVICE_DATA_CAPTURED = "DEVICE_DATA_CAPTURED"
    DEVICE_DATA_CAPTURE_FAILED = "DEVICE_DATA_CAPTURE_FAILED"
    POPUP_WINDOW_TERMINATED = "POPUP_WINDOW_TERMINATED"
    UNKNOWN = "UNKNOWN"


def _now_millis() -> int:
    return int(time.time() * 1000)


class Command(BaseModel):
    type: CommandType
    data: Dict[str, Any] = Field(default_factory=dict)


class Result(BaseModel):
    command_type: CommandType
    status: ResultStatus
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("command_type", mode="before")
    @classmethod
    def _command_type(cls, v: Any) -> CommandType:
        return CommandType.coerce(v)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v: Any) -> ResultStatus:
        return ResultStatus.coerce(v)

    @field_validator("data", mode="before")
    @classmethod
    def _data(cls, v: Any) -> Any:
        return v if v is not None else {}

    def error_description(self, default: str) -> str:
        return self.data.get("error_description") or self.data.get("error") or default


class Event(BaseModel):
    type: EventType
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, v: Any) -> EventType:
        return EventType.coerce(v)

    @field_validator("data", mode="before")
    @classmethod
    def _data(cls, v: Any) -> Any:
        return v if v is not None else {}


class CommandMessage(BaseModel):
    """Outbound COMMAND; its ``ref`` is echoed by the matching RESULT."""

    type: Literal["COMMAND"] = "COMMAND"
    ref: str = Field(default_factory=lambda: str(uuid.uuid4()))
    ts: int = Field(default_factory=_now_millis)
    command: Command

    @classmethod
    def create(
        cls, command_type: CommandType, data: Dict[str, Any], ref: Optional[str] = None
    ) -> "CommandMessage":
        kwargs = {"ref": ref} if ref else {}
        return cls(command=Command(type=command_type, data=data), **kwargs)

    def to_json(self) -> str:
        """Serialize message to JSON."""
        return self.model_dump_json()


class ResultMessage(BaseModel):
    type: Literal["RESULT"] = "RESULT"
    ref: Optional[str] = None
    ts: Optional[int] = None
    result: Result


class EventMessage(BaseModel):
    """Unsolicited notification; applies to the active session."""

    type: Literal["EVENT"] = "EVENT"
    ref: Optional[str] = None
    ts: Optional[int] = None
    event: Event


class UnknownMessage(BaseModel):
    type: str
    raw: Dict[str, Any] = Field(default_factory=dict)


WindowMessage = Union[CommandMessage, ResultMessage, EventMessage, UnknownMessage]
InboundMessage = Union[ResultMessage, EventMessage]


class MessageFormatError(ValueError):
    """Inbound data is not a well-formed cross-window message."""


_MESSAGE_MODELS: Dict[MessageType, Type[BaseModel]] = {
    MessageType.COMMAND: CommandMessage,
    MessageType.RESULT: ResultMessage,
    MessageType.EVENT: EventMessage,
}


def parse_message(data: Union[str, bytes, Dict[str, Any]]) -> WindowMessage:
    """Decode raw ``postMessage`` data into a typed message.

    Unknown ``type`` values produce an :class:`UnknownMessage`; malformed
    JSON or a known type with an invalid body raises
    :class:`MessageFormatError`.
    """
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except ValueError as e:
            raise MessageFormatError(f"Message is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MessageFormatError(f"Message must be a JSON object, got {type(data).__name__}")

    message_type = MessageType.coerce(data.get("type"))
    model = _MESSAGE_MODELS.get(message_type)
    if model is None:
        return UnknownMessage(type=str(data.get("type")), raw=data)
    try:
        return model.model_validate(data)
    except ValueError as e:
        raise MessageFormatError(f"Invalid {message_type.value} message: {e}") from e


class TokenEntry(BaseModel):
    hint: str = Field(validation_alias=AliasChoices("token_type_hint", "hint"))
    token: str

    @property
    def is_server_state(self) -> bool:
        if self.hint == SERVER_STATE_TOKEN_HINT:
            return True
        return self.hint.rsplit(":", 1)[-1] == "server_state"


class InitializationData(BaseModel):
    """Payload of a successful INITIALIZATION result.

    Malformed token entries are skipped one by one so that a well-formed
    ``server_state`` token survives unrelated siblings.
    """

    tokens: List[TokenEntry] = Field(default_factory=list)
    x_via_hint: Optional[str] = None
    iframe_support: Optional[Any] = None

    @field_validator("tokens", mode="before")
    @classmethod
    def _skip_malformed_tokens(cls, v: Any) -> List[TokenEntry]:
        if not isinstance(v, list):
            return []
        entries = []
        for item in v:
            try:
                entries.append(TokenEntry.model_validate(item))
            except ValidationError:
                logger.warning("Skipping malformed token entry in initialization result")
        return entries

    @field_validator("x_via_hint", mode="before")
    @classmethod
    def _lenient_hint(cls, v: Any) -> Optional[str]:
        return v if isinstance(v, str) and v else None

    def server_state_token(self) -> Optional[str]:
        for entry in self.tokens:
            if entry.is_server_state and entry.token:
                return entry.token
        return None


class UebaEntry(BaseModel):
    source: str = Field(validation_alias=AliasChoices("ueba_source", "source"))
    ref: Optional[str] = Field(default=None, validation_alias=AliasChoices("ueba_ref", "ref"))


class DeviceData(BaseModel):
    """Payload of a DEVICE_DATA_CAPTURED event."""

    uebas: List[UebaEntry] = Field(default_factory=list)

    def profiling_session_id(self, source: str = DEVICE_PROFILING_SOURCE) -> Optional[str]:
        for entry in self.uebas:
            if entry.source == source and entry.ref:
                return entry.ref
        return None
