"""Matchmaking and session-state engine.

This module ties together the per-connection session timers, the waiting
queue, the room registry, the matchmaker and the report store. Every inbound
transport event ends up in exactly one ``ChatEngine`` coroutine.

Core invariant:
    A connected, entered participant is either in the waiting queue or in
    exactly one room, never both, except while one of its own delayed
    re-queue tasks is pending.

Flows:
    - enter: assign nickname, refuse banned addresses, enqueue, match.
    - restart: partner is re-queued immediately; the requester after a delay.
    - disconnect: partner is re-queued immediately, no grace period.
    - report: room is torn down; the reported participant is closed if
      banned, otherwise both sides are re-queued after staged delays.
    - expiry: notify, evict from the queue, close, then run disconnect.

Thread Safety:
    Designed for a single asyncio event loop. Queue and registry mutations
    never span an ``await``; the only suspension points are sends, delays and
    report store calls (run in a worker thread).
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from nulm.chat import messages
from nulm.chat.participant import Participant
from nulm.chat_log.service import ChatLogService
from nulm.config import AppSettings, get_config
from nulm.matching import ChatRoom, Matchmaker, RoomRegistry, WaitingQueue
from nulm.reports.reasons import normalize_reasons
from nulm.reports.schemas import ReportOutcome
from nulm.reports.store import ReportStore, ReportStoreError, incident_key
from nulm.session import SessionManager

logger = logging.getLogger(__name__)


class ChatEngine:
    """Owns all in-memory chat state for one process.

    Args:
        settings: Application settings (delays, thresholds, durations).
        report_store: Store for per-address report records.
        chat_log: Optional sink for delivered chat messages.
    """

    def __init__(
        self,
        settings: AppSettings,
        report_store: ReportStore,
        chat_log: Optional[ChatLogService] = None,
    ) -> None:
        self.settings = settings
        self.report_store = report_store
        self.chat_log = chat_log

        self.participants: Dict[str, Participant] = {}
        self.queue = WaitingQueue()
        self.rooms = RoomRegistry()
        self.matchmaker = Matchmaker(self.queue, self.rooms, settings.matching)
        self.sessions = SessionManager(settings.session.duration_seconds, self._expire)

    @property
    def ban_threshold(self) -> int:
        return self.settings.reports.ban_threshold

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self, connection: Any, address: str) -> Participant:
        """Register an accepted connection and arm its session timer."""
        participant = Participant(connection=connection, peer_address=address)
        self.participants[participant.id] = participant
        self.sessions.start(participant.id)
        logger.info(f"[Engine] Connection registered: {participant.id} [IP:{address}]")
        return participant

    async def disconnect(self, participant: Participant) -> None:
        """Tear down everything a departing connection owns. Idempotent."""
        if self.participants.pop(participant.id, None) is None:
            logger.debug(f"[Engine] {participant.id} already disconnected")
            return
        logger.info(f"[Engine] IP: {participant.address or participant.peer_address} disconnected")
        participant.connected = False
        participant.cancel_pending()
        await self._leave(participant)
        self.sessions.clear(participant.id)

    async def user_disconnect(self, participant: Participant) -> None:
        """Explicit quit: leave room/queue but keep the transport open."""
        logger.info(f"[Engine] IP: {participant.address} requested to leave")
        participant.cancel_pending()
        await self._leave(participant)
        participant.entered = False

    async def _terminate(self, participant: Participant) -> None:
        await participant.close()
        await self.disconnect(participant)

    async def _expire(self, participant_id: str) -> None:
        participant = self.participants.get(participant_id)
        if participant is None:
            return
        logger.info(f"[Engine] Emitting session-expired for {participant_id}")
        await participant.send(messages.SESSION_EXPIRED, message=messages.SESSION_EXPIRED_NOTICE)
        if participant.entered and self.queue.remove(participant_id):
            logger.info(f"[Engine] Removed {participant_id} from waiting queue due to session expiration")
        await self._terminate(participant)

    # =========================================================================
    # Entering and chatting
    # =========================================================================

    async def enter(self, participant: Participant) -> None:
        """Handle ``enter-state``: the participant asks to be matched."""
        if participant.entered:
            logger.info(f"[Engine] {participant.nickname} ALREADY ENTERED")
            return

        nickname = participant.enter()
        logger.info(f"[Engine] NEW USER ENTERED: {nickname} [IP:{participant.address}]")
        await participant.send(messages.SET_NICKNAME, nickname=nickname)

        if await self._is_banned(participant.address):
            logger.info(f"[Engine] banned: IP:{participant.address}")
            await participant.send(messages.BAN, message=messages.BANNED)
            await self._terminate(participant)
            return
        if not participant.alive:
            return

        self.queue.enqueue(participant)

        await asyncio.sleep(self.settings.matching.wait_notice_delay)
        if not participant.alive:
            return
        if participant.id in self.queue:
            await participant.send(
                messages.WAIT_STATE, message=messages.SEARCHING, messageType=messages.SYSTEM
            )

        self.matchmaker.match()
        self.sessions.reset(participant.id)

    async def chat_message(self, participant: Participant, text: str) -> bool:
        """Deliver a message to both members of the sender's room."""
        room = self.rooms.lookup_by_participant(participant.id)
        if room is None:
            logger.info(f"[Engine] Message dropped: {participant.nickname} is not in a chat room.")
            return False

        await asyncio.gather(*[
            member.participant.send(
                messages.CHAT_MESSAGE,
                sender=participant.nickname,
                message=text,
                messageType="sender" if member.participant is participant else "receiver",
            )
            for member in room.members
        ])

        if self.chat_log is not None:
            try:
                self.chat_log.save(room.key, participant.nickname, participant.address, text)
            except Exception as e:
                logger.error(f"[Engine] Log failed to save for room {room.key}: {e}")

        self.sessions.reset(participant.id)
        return True

    async def session_action(self, participant: Participant, action: str) -> None:
        if not participant.connected:
            return
        if action == "reset":
            logger.info(f"[Engine] {participant.nickname}[{participant.address}] session reset.")
            self.sessions.reset(participant.id)
        elif action == "background":
            self.sessions.background(participant.id)
        else:
            logger.warning(f"[Engine] Unknown session action {action!r} from {participant.id}")

    # =========================================================================
    # Restart and disconnection
    # =========================================================================

    async def restart(self, participant: Participant) -> None:
        """Handle ``restart-connect``: the participant wants a new partner."""
        room = self.rooms.lookup_by_participant(participant.id)
        if room is not None:
            partner = room.partner_of(participant.id)
            self.rooms.destroy_room(room.key)
            if partner is not None and partner.connected:
                self.queue.enqueue(partner)
                await partner.send(
                    messages.CHAT_END,
                    message=messages.PARTNER_LEFT_SEARCHING,
                    messageType=messages.SYSTEM,
                )
                self.matchmaker.match()

        await participant.send(
            messages.WAIT_STATE, message=messages.RESTART_SEARCHING, messageType=messages.SYSTEM
        )
        participant.schedule(self._requeue_later(
            participant,
            self.settings.matching.restart_requeue_delay,
            notice=messages.PLEASE_WAIT,
        ))

    async def _leave(self, participant: Participant) -> None:
        """Remove *participant* from queue/room, re-queueing a live partner."""
        self.queue.remove(participant.id)

        room = self.rooms.lookup_by_participant(participant.id)
        if room is None:
            return

        partner = room.partner_of(participant.id)
        self.rooms.destroy_room(room.key)

        if (
            partner is not None
            and partner.alive
            and partner.id in self.sessions
            and partner.id not in self.queue
        ):
            logger.info(f"[Engine] {partner.nickname}[{partner.address}] re-added to waiting queue")
            self.queue.enqueue(partner)
            await partner.send(
                messages.CHAT_END,
                message=messages.PARTNER_LEFT_RECONNECTING,
                messageType=messages.SYSTEM,
            )
            self.matchmaker.match()

    async def _requeue_later(
        self, participant: Participant, delay: float, notice: Optional[str] = None
    ) -> None:
        await asyncio.sleep(delay)
        if not self._requeue(participant):
            return
        if notice:
            await participant.send(messages.WAIT_STATE, message=notice, messageType=messages.SYSTEM)
        self.matchmaker.match()

    def _requeue(self, participant: Participant) -> bool:
        if not participant.alive or participant.id not in self.participants:
            return False
        if self.rooms.lookup_by_participant(participant.id) is not None:
            return False
        return self.queue.enqueue(participant)

    # =========================================================================
    # Reports
    # =========================================================================

    async def _is_banned(self, address: str) -> bool:
        try:
            return await asyncio.to_thread(self.report_store.is_banned, address, self.ban_threshold)
        except ReportStoreError as exc:
            logger.error(f"[Engine] Report store error during ban check: {exc}")
            return False

    async def report_in_room(
        self, participant: Participant, room_id: Optional[str], reasons: Optional[List[str]] = None
    ) -> None:
        """Handle ``report-disconnected``: report the current partner."""
        room = self.rooms.lookup_by_participant(participant.id)
        if room is None:
            await participant.send(
                messages.SYSTEM_MESSAGE, message=messages.NO_ROOM_TO_REPORT, messageType=messages.ERROR
            )
            return

        partner = room.partner_of(participant.id)
        if partner is None:
            await participant.send(
                messages.SYSTEM_MESSAGE, message=messages.NO_PARTNER_TO_REPORT, messageType=messages.ERROR
            )
            return

        if room_id and room_id != room.key:
            logger.warning(f"[Engine] Report names room {room_id} but reporter is in {room.key}")

        await self.handle_report(room, participant, partner, reasons)

    async def submit_report(
        self,
        reporter_address: str,
        room_id: str,
        partner_nickname: str,
        partner_address: str,
        reasons: List[str],
    ) -> ReportOutcome:
        """Record a direct report submission and end the named room if active.

        Raises:
            ReportStoreError: If the record cannot be written.
        """
        codes = normalize_reasons(reasons)
        logger.info(
            f"[Engine] Report received - nickname: {partner_nickname}, "
            f"IP: {partner_address}, reasons: {', '.join(reasons)}"
        )
        outcome = await asyncio.to_thread(
            self.report_store.record_report,
            partner_address,
            partner_nickname,
            codes,
            incident_key(room_id, reporter_address, partner_address),
        )
        if outcome.record.is_banned(self.ban_threshold):
            logger.info(
                f"[Engine] IP: {partner_address} reached the report limit "
                f"({outcome.record.reportCount}) and can no longer use the service"
            )

        room = self.rooms.get(room_id)
        if room is not None:
            reported = self._find_reported(room, partner_address, partner_nickname)
            reporter = room.partner_of(reported.id) if reported else None
            if reported is not None and reporter is not None:
                await self.handle_report(room, reporter, reported, reasons, outcome=outcome)
        return outcome

    @staticmethod
    def _find_reported(room: ChatRoom, address: str, nickname: str) -> Optional[Participant]:
        by_address = [p for p in room.participants if p.address == address]
        if len(by_address) == 1:
            return by_address[0]
        for p in by_address or room.participants:
            if p.nickname == nickname:
                return p
        return None

    async def handle_report(
        self,
        room: ChatRoom,
        reporter: Participant,
        reported: Participant,
        reasons: Optional[List[str]] = None,
        outcome: Optional[ReportOutcome] = None,
    ) -> bool:
        """End *room* because *reporter* reported *reported*.

        Store failures are logged and the chat is still terminated, with the
        reported participant treated as not banned.

        Returns:
            True if the reported participant is banned.
        """
        if outcome is None:
            try:
                outcome = await asyncio.to_thread(
                    self.report_store.record_report,
                    reported.address,
                    reported.nickname,
                    normalize_reasons(reasons),
                    incident_key(room.key, reporter.address, reported.address),
                )
            except ReportStoreError as exc:
                logger.error(f"[Engine] Report handling failed to persist: {exc}")

        banned = outcome is not None and outcome.record.is_banned(self.ban_threshold)

        if self.rooms.get(room.key) is not room:
            # Torn down while the store call was in flight; members may be elsewhere now.
            logger.info(f"[Engine] Room {room.key} ended before the report on {reported.address} was recorded")
            if banned:
                await self._terminate(reported)
            return banned

        self.rooms.destroy_room(room.key)

        if banned:
            logger.info(f"[Engine] Reported user banned - IP: {reported.address}")
            await self._terminate(reported)
        else:
            await reported.send(messages.CHAT_END, message=messages.PARTNER_ENDED, messageType=messages.SYSTEM)

        await reporter.send(messages.CHAT_END, message=messages.REPORT_ACCEPTED, messageType=messages.SYSTEM)

        if reporter.connected:
            reporter.schedule(self._rejoin_after_report(reporter))
        if not banned and reported.connected:
            reported.schedule(self._rejoin_after_report(reported))
        return banned

    async def _rejoin_after_report(self, participant: Participant) -> None:
        reports = self.settings.reports
        await asyncio.sleep(reports.notice_delay)
        if not participant.alive:
            return
        await participant.send(messages.WAIT_STATE, message=messages.SEARCHING_AGAIN, messageType=messages.SYSTEM)

        await asyncio.sleep(max(0.0, reports.requeue_delay - reports.notice_delay))
        if self._requeue(participant):
            self.matchmaker.match()

    # =========================================================================
    # Housekeeping
    # =========================================================================

    def shutdown(self) -> None:
        """Cancel every timer and task and drop all in-memory state."""
        self.sessions.clear_all()
        for participant in self.participants.values():
            participant.cancel_pending()
        self.rooms.clear()
        self.queue.clear()
        self.participants.clear()


# =============================================================================
# Singleton
# =============================================================================

_engine: Optional[ChatEngine] = None


def get_engine() -> ChatEngine:
    """Return the process-wide engine, building it from config on first use."""
    global _engine
    if _engine is None:
        config = get_config()
        store = ReportStore.get_instance(config.reports.db_path, config.reports.timezone)
        chat_log = ChatLogService.get_instance(config.chat_log.db_path) if config.chat_log.enabled else None
        _engine = ChatEngine(config, store, chat_log)
    return _engine


def set_engine(engine: Optional[ChatEngine]) -> None:
    """Set (or with None, forget) the process-wide engine."""
    global _engine
    _engine = engine
