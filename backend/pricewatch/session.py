"""
Batch session bookkeeping.

SessionStore is the only state shared between a running batch and the
outside world (an HTTP stop handler, a signal handler). It is injected into
the batch runner instead of living in a module-level singleton.
"""

import asyncio
import inspect
import logging
import random
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

from .base import SessionExistsError, Severity

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str, Severity], Union[None, Awaitable[None]]]


async def notify(
    callback: Optional[ProgressCallback],
    percent: float,
    message: str,
    severity: Severity = Severity.INFO,
):
    """Send a progress event; the callback may be a plain function or a coroutine function."""
    if callback is None:
        return
    percent = max(0, min(100, int(percent)))
    outcome = callback(percent, message, severity)
    if inspect.isawaitable(outcome):
        await outcome


@dataclass
class Session:
    """A registered batch run and its cancellation flag."""
    id: str
    cancel_event: threading.Event = field(default_factory=threading.Event)
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


class SessionStore:
    """
    Thread-safe registry of running sessions keyed by id.

    Usage:
        store = SessionStore()
        store.register('abc')
        store.cancel('abc')
        store.is_cancelled('abc')   # True
        store.remove('abc')
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}

    def register(self, session_id: str) -> Session:
        """
        Register a new session.

        Raises:
            SessionExistsError: If the id is already registered
        """
        with self._lock:
            if session_id in self._sessions:
                raise SessionExistsError(f"Session already running: {session_id}")
            session = Session(id=session_id)
            self._sessions[session_id] = session
            return session

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def is_cancelled(self, session_id: str) -> bool:
        session = self.get(session_id)
        return session is not None and session.cancelled

    def cancel(self, session_id: str) -> bool:
        """Request a cooperative stop. Returns False for unknown ids."""
        session = self.get(session_id)
        if session is None:
            return False
        session.cancel_event.set()
        return True

    def remove(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def active_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions.keys())

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class RateLimiter:
    """
    Inter-item pacing for a batch run.

    Sleeps a random duration before every item except the first, and a
    fixed cooldown after an item was blocked by a challenge.
    """

    def __init__(
        self,
        item_delay: Tuple[float, float] = (3.0, 6.0),
        block_cooldown: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        low, high = item_delay
        if low < 0 or high < low:
            raise ValueError(f"Invalid item delay range: {item_delay}")
        if block_cooldown < 0:
            raise ValueError("block_cooldown must be >= 0")
        self.item_delay = item_delay
        self.block_cooldown = block_cooldown
        self.sleep = sleep
        self.rng = rng or random.Random()

    async def before_item(self, position: int) -> float:
        """
        Pause before the item at 0-based ``position`` of this run.

        Returns:
            Seconds slept
        """
        if position <= 0:
            return 0.0
        delay = self.rng.uniform(*self.item_delay)
        logger.debug(f"Waiting {delay:.1f}s before next item")
        await self.sleep(delay)
        return delay

    async def after_block(self) -> float:
        logger.info(f"Cooling down {self.block_cooldown:.0f}s after a blocked item")
        await self.sleep(self.block_cooldown)
        return self.block_cooldown
