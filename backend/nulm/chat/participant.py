"""Connected participants and their transport helpers.

A Participant wraps one accepted WebSocket. It is created when the transport
connects, receives a nickname and normalized address only after it sends
``enter-state``, and owns every delayed task scheduled on its behalf so that
those tasks can be cancelled when the connection goes away.
"""
import asyncio
import logging
import random
import uuid
from dataclasses import dataclass, field
from typing import Any, Coroutine, Optional, Set

logger = logging.getLogger(__name__)


def normalize_ip(ip: Optional[str]) -> str:
    """Return the IPv4 form of a peer address where one exists.

    ``::1`` becomes ``127.0.0.1`` and IPv4-mapped IPv6 addresses
    (``::ffff:10.0.0.1``) lose their prefix. Anything else is returned as is.
    """
    if not ip:
        return "unknown"
    ip = ip.strip()
    if ip == "::1":
        return "127.0.0.1"
    if ip.startswith("::ffff:"):
        return ip[len("::ffff:"):]
    return ip


def client_address(headers: Any, client: Any) -> str:
    """Resolve the peer address, preferring the first X-Forwarded-For hop."""
    xff = headers.get("x-forwarded-for") if headers is not None else None
    if xff:
        return normalize_ip(xff.split(",")[0])
    return normalize_ip(client.host if client else None)


def generate_nickname() -> str:
    return f"User_{random.randint(0, 999)}"


@dataclass(eq=False)
class Participant:
    """One connected end-user actor.

    Attributes:
        connection: Transport object exposing async ``send_json`` and ``close``.
        peer_address: Normalized address captured at connect time.
        id: Backend-generated connection identifier.
        nickname: Assigned on enter, empty before that.
        address: Normalized address, assigned on enter.
        entered: True once the participant explicitly asked to be matched.
        connected: False once the transport is gone.
    """
    connection: Any
    peer_address: str = "unknown"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    nickname: str = ""
    address: str = ""
    entered: bool = False
    connected: bool = True
    _tasks: Set[asyncio.Task] = field(default_factory=set, repr=False)

    def enter(self) -> str:
        """Mark the participant as entered and assign nickname/address."""
        self.entered = True
        self.address = self.peer_address
        self.nickname = generate_nickname()
        return self.nickname

    @property
    def alive(self) -> bool:
        return self.connected and self.entered

    async def send(self, event: str, **payload: Any) -> bool:
        """Send one outbound event; failures are logged, never raised."""
        if not self.connected:
            return False
        try:
            await self.connection.send_json({"type": event, **payload})
            return True
        except Exception as e:
            logger.debug(f"Failed to send {event} to {self.id}: {e}")
            return False

    async def close(self) -> None:
        """Forcibly terminate the transport."""
        if not self.connected:
            return
        self.connected = False
        try:
            await self.connection.close()
        except Exception as e:
            logger.debug(f"Close failed for {self.id}: {e}")

    def schedule(self, coro: Coroutine) -> asyncio.Task:
        """Run *coro* as a task owned by this participant."""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel_pending(self) -> int:
        """Cancel every delayed task still owned by this participant."""
        pending = [t for t in self._tasks if not t.done()]
        for task in pending:
            task.cancel()
        self._tasks.clear()
        return len(pending)

    @property
    def pending_tasks(self) -> int:
        return sum(1 for t in self._tasks if not t.done())
