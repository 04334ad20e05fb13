"""In-memory window channel for tests and dry runs."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional, Tuple

from ..contracts import CommandMessage
from .base import BaseWindowChannel, WindowTarget


class InMemoryWindowChannel(BaseWindowChannel):
    """Records posted commands per target instead of delivering them."""

    def __init__(self) -> None:
        self._posted: Dict[WindowTarget, Deque[CommandMessage]] = defaultdict(deque)
        self.opened: List[Tuple[WindowTarget, str]] = []
        self._lock = asyncio.Lock()

    async def post(
        self, target: WindowTarget, message: CommandMessage, url: Optional[str] = None
    ) -> None:
        async with self._lock:
            if url:
                self.opened.append((target, url))
            self._posted[target].append(message)

    def posted(self, target: WindowTarget) -> List[CommandMessage]:
        """Return every command posted to ``target`` so far."""
        return list(self._posted[target])

    def last(self, target: WindowTarget) -> Optional[CommandMessage]:
        queue = self._posted[target]
        return queue[-1] if queue else None
