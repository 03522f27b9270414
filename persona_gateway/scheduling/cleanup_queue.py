from __future__ import annotations

import asyncio
import itertools
import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

logger = logging.getLogger("persona_gateway")

CleanupAction = Callable[[int], Awaitable[None]]


class CleanupState(str, Enum):
    WAITING = "waiting"
    READY = "ready"
    HEAD_OF_QUEUE = "head_of_queue"
    EXECUTING = "executing"
    REMOVED = "removed"


class CleanupResult(str, Enum):
    OK = "ok"
    BEST_EFFORT_FAILURE = "best_effort_failure"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class PendingCleanupTask:
    target_id: int
    remaining_delay: int
    enqueue_order: int
    state: CleanupState = CleanupState.WAITING


class DelayedActionScheduler:
    """Runs one cleanup action per target after its delay, strictly in enqueue order.

    Every target gets its own countdown task. Once its countdown is over a task
    waits until it is the oldest entry in the queue, so actions never overlap and
    a short delay queued late never overtakes an earlier long one.
    """

    def __init__(
        self,
        action: CleanupAction,
        *,
        countdown_tick: float = 1.0,
        turn_poll_interval: float = 0.1,
    ) -> None:
        self.action = action
        self.countdown_tick = countdown_tick
        self.turn_poll_interval = turn_poll_interval
        self._queue: OrderedDict[int, PendingCleanupTask] = OrderedDict()
        self._tasks: dict[int, asyncio.Task[CleanupResult]] = {}
        self._order_lock = asyncio.Lock()
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._queue)

    def __contains__(self, target_id: object) -> bool:
        return target_id in self._queue

    def get(self, target_id: int) -> PendingCleanupTask | None:
        return self._queue.get(target_id)

    def enqueue(self, target_id: int, delay_seconds: int) -> asyncio.Task[CleanupResult]:
        existing = self._queue.get(target_id)
        task = self._tasks.get(target_id)
        if existing is not None and task is not None:
            self.extend(target_id, delay_seconds)
            return task

        entry = PendingCleanupTask(
            target_id=target_id,
            remaining_delay=int(delay_seconds),
            enqueue_order=next(self._counter),
        )
        self._queue[target_id] = entry
        task = asyncio.create_task(self._run(entry), name=f"cleanup-{target_id}")
        self._tasks[target_id] = task
        task.add_done_callback(lambda _t, key=target_id, t=task: self._forget_task(key, t))
        return task

    def extend(self, target_id: int, new_delay_seconds: int) -> bool:
        entry = self._queue.get(target_id)
        if entry is None or entry.state is not CleanupState.WAITING:
            return False
        entry.remaining_delay = int(new_delay_seconds)
        return True

    def cancel(self, target_id: int) -> bool:
        entry = self._queue.pop(target_id, None)
        if entry is None:
            return False
        entry.state = CleanupState.REMOVED
        return True

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for target_id in list(self._queue):
            self.cancel(target_id)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _forget_task(self, target_id: int, task: asyncio.Task[CleanupResult]) -> None:
        if self._tasks.get(target_id) is task:
            self._tasks.pop(target_id, None)

    def _is_live(self, entry: PendingCleanupTask) -> bool:
        return self._queue.get(entry.target_id) is entry

    async def _is_head(self, entry: PendingCleanupTask) -> bool:
        async with self._order_lock:
            if not self._queue:
                return False
            head = next(iter(self._queue.values()))
            if head is not entry:
                return False
            entry.state = CleanupState.HEAD_OF_QUEUE
            return True

    async def _run(self, entry: PendingCleanupTask) -> CleanupResult:
        try:
            while entry.remaining_delay > 0:
                await asyncio.sleep(self.countdown_tick)
                if not self._is_live(entry):
                    return CleanupResult.CANCELLED
                entry.remaining_delay -= 1

            if not self._is_live(entry):
                return CleanupResult.CANCELLED
            entry.state = CleanupState.READY

            while not await self._is_head(entry):
                if not self._is_live(entry):
                    return CleanupResult.CANCELLED
                await asyncio.sleep(self.turn_poll_interval)

            entry.state = CleanupState.EXECUTING
            try:
                await self.action(entry.target_id)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                # Missing permissions or a vanished message; nothing to retry.
                logger.warning("Cleanup for target=%s failed: %s", entry.target_id, exc)
                return CleanupResult.BEST_EFFORT_FAILURE
            return CleanupResult.OK
        finally:
            if self._is_live(entry):
                self._queue.pop(entry.target_id, None)
            entry.state = CleanupState.REMOVED
