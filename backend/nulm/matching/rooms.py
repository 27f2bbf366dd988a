"""Registry of active two-party chat rooms.

Rooms are keyed by an opaque composite of the two member ids in pairing
order plus a per-room suffix, so the same pair matched twice gets two keys.
A second index maps each participant id to its room key so the message hot
path never scans the room table.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Coroutine, Dict, List, Optional, Set, Tuple

from nulm.chat.participant import Participant

logger = logging.getLogger(__name__)


def room_key(first_id: str, second_id: str, suffix: Optional[str] = None) -> str:
    return f"{first_id}#{second_id}#{suffix or uuid.uuid4().hex[:12]}"


@dataclass
class RoomMember:
    participant: Participant
    partner_id: str


@dataclass(eq=False)
class ChatRoom:
    """An active pairing of exactly two participants.

    Attributes:
        key: Opaque room identifier.
        members: The two members, each annotated with its partner's id.
    """
    key: str
    members: Tuple[RoomMember, RoomMember]
    _tasks: Set[asyncio.Task] = field(default_factory=set, repr=False)

    @property
    def participants(self) -> List[Participant]:
        return [m.participant for m in self.members]

    def member(self, participant_id: str) -> Optional[RoomMember]:
        for m in self.members:
            if m.participant.id == participant_id:
                return m
        return None

    def partner_of(self, participant_id: str) -> Optional[Participant]:
        me = self.member(participant_id)
        if me is None:
            return None
        partner = self.member(me.partner_id)
        return partner.participant if partner else None

    def roster(self, viewer: Participant) -> List[dict]:
        """Two-party roster as sent in ``chat-ready``, viewer first."""
        partner = self.partner_of(viewer.id)
        return [
            {"id": p.id, "nickname": p.nickname, "userIP": p.address}
            for p in (viewer, partner) if p is not None
        ]

    def schedule(self, coro: Coroutine) -> asyncio.Task:
        """Run *coro* as a task owned by this room."""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel_pending(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()


class RoomRegistry:
    """Owns room_key -> ChatRoom and participant_id -> room_key."""

    def __init__(self) -> None:
        self._rooms: Dict[str, ChatRoom] = {}
        self._by_participant: Dict[str, str] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def create_room(self, first: Participant, second: Participant) -> str:
        """Create a room for two participants and return its key.

        Raises:
            ValueError: If either participant already belongs to a room or
                both arguments are the same participant.
        """
        if first.id == second.id:
            raise ValueError("A participant cannot be paired with itself")
        for p in (first, second):
            if p.id in self._by_participant:
                raise ValueError(f"Participant {p.id} is already in room {self._by_participant[p.id]}")

        key = room_key(first.id, second.id)
        self._rooms[key] = ChatRoom(
            key=key,
            members=(
                RoomMember(participant=first, partner_id=second.id),
                RoomMember(participant=second, partner_id=first.id),
            ),
        )
        self._by_participant[first.id] = key
        self._by_participant[second.id] = key
        logger.info(f"[Rooms] Chat room created for {first.nickname} and {second.nickname}: {key}")
        return key

    def get(self, key: str) -> Optional[ChatRoom]:
        return self._rooms.get(key)

    def lookup_by_participant(self, participant_id: str) -> Optional[ChatRoom]:
        key = self._by_participant.get(participant_id)
        return self._rooms.get(key) if key else None

    def destroy_room(self, key: str) -> Optional[ChatRoom]:
        """Remove a room and cancel its pending tasks. Idempotent.

        Member sessions are untouched.
        """
        room = self._rooms.pop(key, None)
        if room is None:
            return None
        for p in room.participants:
            if self._by_participant.get(p.id) == key:
                del self._by_participant[p.id]
        room.cancel_pending()
        logger.info(f"[Rooms] Chat room removed: {key}")
        return room

    def clear(self) -> None:
        for key in list(self._rooms):
            self.destroy_room(key)
