"""Window channels carrying commands to the network widget."""

from __future__ import annotations

from .base import BaseWindowChannel, WindowTarget
from .inmemory import InMemoryWindowChannel

__all__ = ["BaseWindowChannel", "InMemoryWindowChannel", "WindowTarget"]
