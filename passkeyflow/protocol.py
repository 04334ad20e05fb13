"""Origin validation and dispatch of cross-window messages."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional
from urllib.parse import urlsplit

from .contracts import (
    CommandMessage,
    EventMessage,
    InboundMessage,
    MessageFormatError,
    ResultMessage,
    UnknownMessage,
    parse_message,
)
from .transports import BaseWindowChannel, WindowTarget

logger = logging.getLogger(__name__)

Handler = Callable[[InboundMessage], Awaitable[None]]


def normalize_origin(origin: str) -> str:
    """Reduce ``origin`` to lower-cased ``scheme://host[:port]``."""
    parts = urlsplit(origin.strip())
    if not parts.scheme or not parts.netloc:
        return ""
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


class WindowMessageProtocol:
    """Sends COMMANDs and routes inbound RESULT/EVENT messages to handlers.

    Inbound messages from origins outside the allow-list are dropped and
    logged; they never reach a handler and never fail the flow.
    """

    def __init__(self, channel: BaseWindowChannel, allowed_origins: Iterable[str]) -> None:
        self.channel = channel
        self._allowed = {normalize_origin(o) for o in allowed_origins} - {""}
        self._handlers: List[Handler] = []

    def on_message(self, handler: Handler) -> None:
        """Subscribe ``handler`` to accepted RESULT and EVENT messages."""
        self._handlers.append(handler)

    def is_allowed(self, origin: str) -> bool:
        return normalize_origin(origin) in self._allowed

    async def send(
        self, target: WindowTarget, message: CommandMessage, url: Optional[str] = None
    ) -> None:
        logger.info(
            f"Posting {message.command.type.value} command ref={message.ref} to {target.value}"
        )
        await self.channel.post(target, message, url)

    async def receive(self, origin: str, data: Any) -> Optional[InboundMessage]:
        """Validate and dispatch one inbound message.

        Returns the accepted message, or ``None`` when it was ignored.
        """
        if not self.is_allowed(origin):
            logger.warning(f"Ignoring message from untrusted origin: {origin}")
            return None

        try:
            message = parse_message(data)
        except MessageFormatError as e:
            logger.warning(f"Ignoring malformed message from {origin}: {e}")
            return None

        if isinstance(message, UnknownMessage):
            logger.warning(f"Ignoring message of unknown type {message.type!r}")
            return None
        if isinstance(message, CommandMessage):
            logger.warning(f"Ignoring inbound COMMAND ref={message.ref}")
            return None

        if isinstance(message, ResultMessage):
            logger.info(
                f"Received RESULT {message.result.command_type.value}/"
                f"{message.result.status.value} ref={message.ref}"
            )
        elif isinstance(message, EventMessage):
            logger.info(f"Received EVENT {message.event.type.value}")

        for handler in self._handlers:
            await handler(message)
        return message
