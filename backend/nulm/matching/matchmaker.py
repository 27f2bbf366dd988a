"""Strict FIFO matchmaking.

The matchmaker is pure trigger logic: it is invoked after every enqueue and
every return-to-queue, drains pairs from the waiting queue, creates rooms in
the registry and stages the ``chat-ready`` / ``warning-message`` notices.
Too few waiting participants is a deferred state, not an error.
"""
import asyncio
import logging
from typing import List

from nulm.chat import messages
from nulm.config import MatchingSettings

from .queue import WaitingEntry, WaitingQueue
from .rooms import ChatRoom, RoomRegistry

logger = logging.getLogger(__name__)


class Matchmaker:
    """Pairs the two longest-waiting participants, repeatedly."""

    def __init__(
        self,
        queue: WaitingQueue,
        rooms: RoomRegistry,
        settings: MatchingSettings,
    ) -> None:
        self.queue = queue
        self.rooms = rooms
        self.settings = settings

    def match(self) -> List[str]:
        """Drain every available pair into a new room.

        Returns:
            Keys of the rooms created by this call.
        """
        created: List[str] = []
        while True:
            pair = self.queue.dequeue_pair()
            if pair is None:
                break
            first, second = pair

            stale = [e for e in pair if not self._matchable(e)]
            if stale:
                # Keep the surviving entry's place at the head of the queue.
                for entry in reversed(pair):
                    if entry not in stale:
                        self.queue.push_front(entry)
                for entry in stale:
                    logger.info(f"[Matchmaker] Dropped stale entry {entry.participant_id}")
                continue

            key = self.rooms.create_room(first.participant, second.participant)
            room = self.rooms.get(key)
            room.schedule(self._notify_ready(room))
            created.append(key)

        if not created:
            logger.info("[Matchmaker] Not enough users to match.")
        return created

    def _matchable(self, entry: WaitingEntry) -> bool:
        p = entry.participant
        return p.alive and self.rooms.lookup_by_participant(p.id) is None

    async def _notify_ready(self, room: ChatRoom) -> None:
        await asyncio.sleep(self.settings.ready_delay)
        if room.key not in self.rooms:
            return
        for member in room.members:
            viewer = member.participant
            partner = room.partner_of(viewer.id)
            await viewer.send(
                messages.CHAT_READY,
                roomId=room.key,
                users=room.roster(viewer),
                message=messages.CHAT_READY_TEMPLATE.format(partner=partner.nickname),
                messageType=messages.SYSTEM,
            )

        await asyncio.sleep(self.settings.warning_delay)
        if room.key not in self.rooms:
            return
        await asyncio.gather(*[
            p.send(messages.WARNING_MESSAGE, message=messages.POLICY_WARNING, messageType=messages.SYSTEM)
            for p in room.participants
        ])
