"""Matchmaking module: waiting queue, room registry and FIFO matchmaker."""
from .matchmaker import Matchmaker
from .queue import WaitingEntry, WaitingQueue
from .rooms import ChatRoom, RoomMember, RoomRegistry, room_key

__all__ = [
    "ChatRoom",
    "Matchmaker",
    "RoomMember",
    "RoomRegistry",
    "WaitingEntry",
    "WaitingQueue",
    "room_key",
]
