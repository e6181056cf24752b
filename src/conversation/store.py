"""
In-memory conversation store with per-key serialization and idle eviction.

Handlers for the same customer never interleave: each one runs inside
``async with store.session(identity)``, which holds that identity's lock
for the whole handling, outbound sends included. The idle sweep takes
the same per-key lock before deleting, so it can never remove a
conversation that a handler is in the middle of processing.

Usage:
    store = ConversationStore(idle_timeout_sec=3600)
    async with store.session("5491122334455@c.us"):
        conversation, created = store.get_or_create("5491122334455@c.us")
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from src.config import settings
from src.conversation.session import Conversation
from src.conversation.state_machine import TransitionTrigger

logger = logging.getLogger(__name__)


class ConversationStore:
    """Keyed registry holding at most one Conversation per customer identity."""

    def __init__(
        self,
        idle_timeout_sec: Optional[float] = None,
        sweep_interval_sec: Optional[float] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        factory: Callable[[str], Conversation] = Conversation,
    ) -> None:
        self.idle_timeout_sec = idle_timeout_sec or settings.conversation.idle_timeout_sec
        self.sweep_interval_sec = sweep_interval_sec or settings.conversation.sweep_interval_sec
        self._clock = clock
        self._factory = factory
        self._conversations: dict[str, Conversation] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}
        self._sweeper: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------ #
    # Per-key serialization
    # ------------------------------------------------------------------ #

    @asynccontextmanager
    async def session(self, identity: str) -> AsyncIterator[None]:
        """Hold the exclusive lock for *identity* for the duration of the block."""
        lock = self._locks.setdefault(identity, asyncio.Lock())
        self._waiters[identity] = self._waiters.get(identity, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[identity] -= 1
            if self._waiters[identity] == 0:
                del self._waiters[identity]
                if identity not in self._conversations:
                    self._locks.pop(identity, None)

    def is_locked(self, identity: str) -> bool:
        lock = self._locks.get(identity)
        return lock is not None and lock.locked()

    # ------------------------------------------------------------------ #
    # Registry
    # ------------------------------------------------------------------ #

    def get(self, identity: str) -> Optional[Conversation]:
        return self._conversations.get(identity)

    def create(self, identity: str) -> Conversation:
        """Create a fresh conversation, replacing none: callers check ``get`` first."""
        if identity in self._conversations:
            raise KeyError(f"Conversation already exists for {identity}")
        conversation = self._factory(identity)
        conversation.touch(self._clock())
        self._conversations[identity] = conversation
        logger.info("Conversation created for %s", identity)
        return conversation

    def get_or_create(self, identity: str) -> tuple[Conversation, bool]:
        """Return (conversation, created)."""
        existing = self._conversations.get(identity)
        if existing is not None:
            return existing, False
        return self.create(identity), True

    def touch(self, identity: str) -> None:
        conversation = self._conversations.get(identity)
        if conversation is not None:
            conversation.touch(self._clock())

    def remove(self, identity: str) -> bool:
        """Delete a conversation. Returns True if one existed."""
        removed = self._conversations.pop(identity, None) is not None
        if removed:
            logger.info("Conversation removed for %s", identity)
            if identity not in self._waiters:
                self._locks.pop(identity, None)
        return removed

    def __contains__(self, identity: object) -> bool:
        return identity in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)

    # ------------------------------------------------------------------ #
    # Idle eviction
    # ------------------------------------------------------------------ #

    async def sweep(self) -> int:
        """Evict conversations idle longer than the threshold.

        Takes a snapshot of idle identities first, then deletes each one
        under its own lock after re-checking that it is still idle.

        Returns:
            Number of conversations evicted.
        """
        now = self._clock()
        candidates = [
            identity
            for identity, conversation in list(self._conversations.items())
            if conversation.is_idle(now, self.idle_timeout_sec)
        ]
        evicted = 0
        for identity in candidates:
            async with self.session(identity):
                conversation = self._conversations.get(identity)
                if conversation is None:
                    continue
                if not conversation.is_idle(self._clock(), self.idle_timeout_sec):
                    continue
                if conversation.machine.can_transition(TransitionTrigger.IDLE_TIMEOUT):
                    conversation.machine.transition(TransitionTrigger.IDLE_TIMEOUT)
                self.remove(identity)
                evicted += 1
        if evicted:
            logger.info("Idle sweep evicted %d conversation(s)", evicted)
        return evicted

    async def run_sweeper(self) -> None:
        """Sweep forever on a fixed period. Cancel the task to stop."""
        while True:
            await asyncio.sleep(self.sweep_interval_sec)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Idle sweep failed")

    def start(self) -> asyncio.Task:
        """Start the periodic sweeper on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self.run_sweeper())
        return self._sweeper

    async def stop(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
