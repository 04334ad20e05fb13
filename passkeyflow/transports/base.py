"""Base channel interface for delivering commands to widget windows."""

from __future__ import annotations

import abc
from enum import Enum
from typing import Optional

from ..contracts import CommandMessage


class WindowTarget(str, Enum):
    """Browsing context a command is delivered to."""

    IFRAME = "iframe"
    POPUP = "popup"


class BaseWindowChannel(metaclass=abc.ABCMeta):
    """Abstract cross-window delivery channel.

    Delivery is fire-and-forget: replies arrive later as inbound RESULT or
    EVENT messages, never as a return value.
    """

    @abc.abstractmethod
    async def post(
        self, target: WindowTarget, message: CommandMessage, url: Optional[str] = None
    ) -> None:
        """Deliver ``message`` to ``target``, loading ``url`` there first if given."""
        raise NotImplementedError
