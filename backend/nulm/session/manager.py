"""Per-connection session expiry timers.

Each participant owns exactly one Session holding an absolute expiry time and
one armed timer. Any qualifying activity (entering the queue, sending a
message, an explicit ``reset`` or ``background`` action) cancels the timer
and arms a fresh one for the full duration; resets are absolute, never
additive.

State machine per participant::

    Unarmed -> Armed -> { Reset -> Armed | Expired -> Terminated }

Disconnect deletes the session and cancels its timer. A timer firing for a
session that was deleted or rearmed in the meantime is a no-op, and so is
resetting a deleted session.

Thread Safety:
    Designed for a single asyncio event loop. Timers are ``loop.call_later``
    handles, so arming and cancelling never suspend.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)

ExpiryCallback = Callable[[str], Awaitable[None]]


@dataclass
class Session:
    """Expiry bookkeeping for one participant.

    Attributes:
        participant_id: Owner of this session.
        expires_at: Unix timestamp at which the session expires.
        timer: The single armed timer handle.
        background: True while the client reported being backgrounded.
    """
    participant_id: str
    expires_at: float
    timer: asyncio.TimerHandle
    background: bool = False


class SessionManager:
    """Owns the participant_id -> Session mapping and its timers."""

    def __init__(self, duration: float, on_expire: ExpiryCallback) -> None:
        self.duration = duration
        self._on_expire = on_expire
        self._sessions: Dict[str, Session] = {}
        self._expiry_tasks: Set[asyncio.Task] = set()

    def __contains__(self, participant_id: str) -> bool:
        return participant_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, participant_id: str) -> Optional[Session]:
        return self._sessions.get(participant_id)

    def start(self, participant_id: str) -> Session:
        """Arm the first timer for a participant; a no-op if one exists."""
        session = self._sessions.get(participant_id)
        if session is not None:
            return session
        session = self._arm(participant_id)
        logger.info(f"[Session] Initialized for {participant_id}")
        return session

    def reset(self, participant_id: str) -> Optional[Session]:
        """Cancel the current timer and arm a fresh full-duration one.

        A no-op returning None once the session has been cleared or expired.
        """
        if participant_id not in self._sessions:
            logger.debug(f"[Session] Reset ignored for cleared session {participant_id}")
            return None
        session = self._arm(participant_id)
        logger.info(f"[Session] Timeout reset for {participant_id}")
        return session

    def background(self, participant_id: str) -> Optional[Session]:
        """Client went to background; same policy as reset, flagged for logs."""
        if participant_id not in self._sessions:
            logger.debug(f"[Session] Background ignored for cleared session {participant_id}")
            return None
        session = self._arm(participant_id, background=True)
        logger.info(f"[Session] {participant_id} is now in the background")
        return session

    def clear(self, participant_id: str) -> bool:
        """Cancel the timer and delete the session. Idempotent."""
        session = self._sessions.pop(participant_id, None)
        if session is None:
            return False
        session.timer.cancel()
        logger.info(f"[Session] Cleared for {participant_id}")
        return True

    def clear_all(self) -> None:
        for participant_id in list(self._sessions):
            self.clear(participant_id)
        for task in list(self._expiry_tasks):
            task.cancel()

    def _arm(self, participant_id: str, background: bool = False) -> Session:
        previous = self._sessions.get(participant_id)
        if previous is not None:
            previous.timer.cancel()

        loop = asyncio.get_running_loop()
        timer = loop.call_later(self.duration, self._fire, participant_id)
        session = Session(
            participant_id=participant_id,
            expires_at=time.time() + self.duration,
            timer=timer,
            background=background,
        )
        self._sessions[participant_id] = session
        return session

    def _fire(self, participant_id: str) -> None:
        session = self._sessions.get(participant_id)
        if session is None or session.timer.cancelled():
            logger.debug(f"[Session] Stale timer for {participant_id} ignored")
            return

        del self._sessions[participant_id]
        logger.info(f"[Session] Expired for {participant_id}")
        task = asyncio.ensure_future(self._on_expire(participant_id))
        self._expiry_tasks.add(task)
        task.add_done_callback(self._expiry_done)

    def _expiry_done(self, task: asyncio.Task) -> None:
        self._expiry_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[Session] Expiry handler failed: {exc}")
