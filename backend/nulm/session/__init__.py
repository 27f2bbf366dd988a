"""Session lifecycle module: one expiry timer per connected participant."""
from .manager import Session, SessionManager

__all__ = ["Session", "SessionManager"]
