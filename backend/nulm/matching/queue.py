"""FIFO waiting queue of participants seeking a partner.

The queue is an insertion-ordered mapping keyed by participant id, so an id
can appear at most once and both removal and membership checks are O(1).
"""
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from nulm.chat.participant import Participant

logger = logging.getLogger(__name__)


@dataclass
class WaitingEntry:
    """A queued participant plus the nickname/address it was queued with."""
    participant: Participant
    nickname: str
    address: str
    queued_at: float = field(default_factory=time.time)

    @property
    def participant_id(self) -> str:
        return self.participant.id


class WaitingQueue:
    """Insertion-ordered set of participants waiting to be matched."""

    def __init__(self) -> None:
        self._entries: "OrderedDict[str, WaitingEntry]" = OrderedDict()

    def __contains__(self, participant_id: str) -> bool:
        return participant_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def ids(self) -> List[str]:
        return list(self._entries)

    def enqueue(self, participant: Participant) -> bool:
        """Add *participant* if it has entered and is not queued already.

        Returns:
            True if the participant is in the queue after the call.
        """
        if not participant.entered:
            logger.info(f"[Queue] {participant.id} attempted to join without entering. Ignoring.")
            return False
        if not participant.connected:
            logger.info(f"[Queue] {participant.id} is disconnected. Ignoring.")
            return False

        if participant.id in self._entries:
            logger.info(f"[Queue] [IP: {participant.address}] is already waiting")
            return True

        self._entries[participant.id] = WaitingEntry(
            participant=participant,
            nickname=participant.nickname,
            address=participant.address,
        )
        logger.info(f"[Queue] [IP: {participant.address}] added to waiting queue")
        return True

    def push_front(self, entry: WaitingEntry) -> None:
        """Put a previously dequeued entry back at the head of the queue."""
        self._entries[entry.participant_id] = entry
        self._entries.move_to_end(entry.participant_id, last=False)

    def dequeue_pair(self) -> Optional[Tuple[WaitingEntry, WaitingEntry]]:
        """Remove and return the two oldest entries, or None if fewer than two."""
        logger.info(f"[Queue] Attempting to match users. Current queue: {self.ids()}")
        if len(self._entries) < 2:
            return None
        _, first = self._entries.popitem(last=False)
        _, second = self._entries.popitem(last=False)
        return first, second

    def remove(self, participant_id: str) -> bool:
        """Remove a participant if queued. Safe on absent ids."""
        if self._entries.pop(participant_id, None) is None:
            logger.debug(f"[Queue] {participant_id} not found in waiting queue")
            return False
        logger.info(f"[Queue] Removed {participant_id} from waiting queue")
        return True

    def clear(self) -> None:
        self._entries.clear()
