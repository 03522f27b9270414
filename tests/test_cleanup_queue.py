from __future__ import annotations

import asyncio
import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from persona_gateway.scheduling import CleanupResult, CleanupState, DelayedActionScheduler  # noqa: E402

TICK = 0.01
POLL = 0.001


class _RecordingAction:
    def __init__(self, *, fail_for: set[int] | None = None) -> None:
        self.calls: list[int] = []
        self.fail_for = fail_for or set()

    async def __call__(self, target_id: int) -> None:
        self.calls.append(target_id)
        if target_id in self.fail_for:
            raise RuntimeError("Missing Permissions")


def _scheduler(action: _RecordingAction) -> DelayedActionScheduler:
    return DelayedActionScheduler(action, countdown_tick=TICK, turn_poll_interval=POLL)


def test_earlier_entry_runs_first_even_with_longer_delay() -> None:
    action = _RecordingAction()

    async def _run() -> tuple[list[CleanupResult], CleanupState | None, CleanupState | None]:
        scheduler = _scheduler(action)
        task_a = scheduler.enqueue(1, 20)
        task_b = scheduler.enqueue(2, 1)
        await asyncio.sleep(TICK * 8)
        state_a = scheduler.get(1).state  # type: ignore[union-attr]
        state_b = scheduler.get(2).state  # type: ignore[union-attr]
        results = list(await asyncio.gather(task_a, task_b))
        return results, state_a, state_b

    results, state_a, state_b = asyncio.run(_run())

    assert state_a is CleanupState.WAITING
    assert state_b is CleanupState.READY
    assert action.calls == [1, 2]
    assert results == [CleanupResult.OK, CleanupResult.OK]


def test_extend_while_waiting_pushes_the_deadline_out() -> None:
    action = _RecordingAction()

    async def _run() -> tuple[bool, list[int], CleanupResult]:
        scheduler = _scheduler(action)
        task = scheduler.enqueue(1, 3)
        extended = scheduler.extend(1, 15)
        await asyncio.sleep(TICK * 6)
        calls_before_deadline = list(action.calls)
        result = await task
        return extended, calls_before_deadline, result

    extended, calls_before_deadline, result = asyncio.run(_run())

    assert extended is True
    assert calls_before_deadline == []
    assert result is CleanupResult.OK
    assert action.calls == [1]


def test_extend_is_refused_once_the_action_is_running() -> None:
    async def _run() -> tuple[bool, CleanupResult]:
        gate = asyncio.Event()
        started = asyncio.Event()

        async def _blocking_action(target_id: int) -> None:
            started.set()
            await gate.wait()

        scheduler = DelayedActionScheduler(_blocking_action, countdown_tick=TICK, turn_poll_interval=POLL)
        task = scheduler.enqueue(1, 0)
        await started.wait()
        extended = scheduler.extend(1, 30)
        gate.set()
        return extended, await task

    extended, result = asyncio.run(_run())

    assert extended is False
    assert result is CleanupResult.OK


def test_extend_unknown_target_returns_false() -> None:
    async def _run() -> bool:
        return _scheduler(_RecordingAction()).extend(404, 10)

    assert asyncio.run(_run()) is False


def test_cancel_removes_entry_and_skips_action() -> None:
    action = _RecordingAction()

    async def _run() -> tuple[bool, bool, CleanupResult]:
        scheduler = _scheduler(action)
        task = scheduler.enqueue(1, 5)
        cancelled = scheduler.cancel(1)
        result = await task
        return cancelled, 1 in scheduler, result

    cancelled, still_queued, result = asyncio.run(_run())

    assert cancelled is True
    assert still_queued is False
    assert result is CleanupResult.CANCELLED
    assert action.calls == []


def test_cancelled_head_lets_the_next_entry_run() -> None:
    action = _RecordingAction()

    async def _run() -> CleanupResult:
        scheduler = _scheduler(action)
        scheduler.enqueue(1, 50)
        task_b = scheduler.enqueue(2, 1)
        await asyncio.sleep(TICK * 4)
        scheduler.cancel(1)
        return await task_b

    assert asyncio.run(_run()) is CleanupResult.OK
    assert action.calls == [2]


def test_failed_action_is_best_effort_and_queue_moves_on() -> None:
    action = _RecordingAction(fail_for={1})

    async def _run() -> tuple[list[CleanupResult], int]:
        scheduler = _scheduler(action)
        tasks = [scheduler.enqueue(1, 1), scheduler.enqueue(2, 1)]
        results = list(await asyncio.gather(*tasks))
        return results, len(scheduler)

    results, remaining = asyncio.run(_run())

    assert results == [CleanupResult.BEST_EFFORT_FAILURE, CleanupResult.OK]
    assert action.calls == [1, 2]
    assert remaining == 0


def test_enqueue_same_target_rearms_existing_task() -> None:
    action = _RecordingAction()

    async def _run() -> tuple[bool, int, CleanupResult]:
        scheduler = _scheduler(action)
        first = scheduler.enqueue(1, 2)
        second = scheduler.enqueue(1, 10)
        remaining = scheduler.get(1).remaining_delay  # type: ignore[union-attr]
        return first is second, remaining, await first

    same_task, remaining, result = asyncio.run(_run())

    assert same_task is True
    assert remaining == 10
    assert result is CleanupResult.OK
    assert action.calls == [1]


def test_shutdown_cancels_pending_work() -> None:
    action = _RecordingAction()

    async def _run() -> int:
        scheduler = _scheduler(action)
        scheduler.enqueue(1, 100)
        scheduler.enqueue(2, 100)
        await scheduler.shutdown()
        return len(scheduler)

    assert asyncio.run(_run()) == 0
    assert action.calls == []
