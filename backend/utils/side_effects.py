import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable

from config.env import SIDE_EFFECT_POLL_SECONDS

logger = logging.getLogger(__name__)


class SideEffectOutbox:
    """
    Best-effort tasks (audit, notifications, email) queued after the primary
    write has been persisted. Each task runs in its own failure boundary and
    is never retried.
    """

    def __init__(self):
        self._pending: deque[tuple[str, Callable[[], Awaitable]]] = deque()
        self._running = False
        self._wake: asyncio.Event | None = None

    def __len__(self):
        return len(self._pending)

    def enqueue(self, name: str, task: Callable[[], Awaitable]) -> None:
        self._pending.append((name, task))

    def clear(self) -> None:
        self._pending.clear()

    async def _run(self, name: str, task: Callable[[], Awaitable]) -> bool:
        try:
            await task()
            return True
        except Exception:
            logger.exception("SIDE_EFFECT_FAILED name=%s", name)
            return False

    async def drain(self) -> int:
        processed = 0
        while self._pending:
            name, task = self._pending.popleft()
            await self._run(name, task)
            processed += 1
        return processed

    async def run_forever(self, poll_seconds: float = SIDE_EFFECT_POLL_SECONDS):
        self._running = True
        self._wake = asyncio.Event()
        while self._running:
            await self.drain()
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=poll_seconds)
            except asyncio.TimeoutError:
                pass
        self._wake = None

    def stop(self) -> None:
        """Let run_forever finish the task in hand, then return."""
        self._running = False
        if self._wake is not None:
            self._wake.set()


outbox = SideEffectOutbox()
