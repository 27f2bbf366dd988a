"""Chat log module: persists messages delivered in chat rooms."""

from .schemas import ChatLogEntry
from .service import ChatLogService

__all__ = ["ChatLogEntry", "ChatLogService"]
