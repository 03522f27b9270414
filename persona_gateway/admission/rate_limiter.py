from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

from ..models import BanRecord, UserActivityRecord

logger = logging.getLogger("persona_gateway")


class AdmissionDecision(str, Enum):
    ALLOWED = "allowed"
    DENIED_RATE_LIMITED = "denied_rate_limited"
    DENIED_BANNED = "denied_banned"


@dataclass(slots=True, frozen=True)
class AdmissionResult:
    decision: AdmissionDecision
    warn: bool = False
    newly_banned: bool = False

    @property
    def allowed(self) -> bool:
        return self.decision is AdmissionDecision.ALLOWED


class BanStore(Protocol):
    async def get_ban(self, user_id: int) -> BanRecord | None: ...

    async def add_ban(self, record: BanRecord) -> None: ...


def minute_of_day(now: datetime) -> int:
    return now.hour * 60 + now.minute


class RateLimiter:
    """Per-user watchdog: counts calls inside the current minute of the day and bans
    users who exceed the limit.

    The ban table is authoritative. Activity records live only in memory. They are
    dropped once the ban they led to has been written, or by `prune` once they can
    no longer affect a decision. A warning is given once per cycle; the cycle ends
    with a ban or after `warn_reset_after` without calls.
    """

    def __init__(
        self,
        bans: BanStore,
        *,
        limit: int,
        warn_threshold: int | None = None,
        ban_enabled: bool = True,
        ban_hours: int = 24,
        warn_reset_after: timedelta = timedelta(hours=1),
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.bans = bans
        self.limit = int(limit)
        self.warn_threshold = int(warn_threshold) if warn_threshold is not None else max(1, self.limit - 1)
        self.ban_enabled = ban_enabled
        self.ban_hours = max(0, int(ban_hours))
        self.warn_reset_after = warn_reset_after
        self._activity: dict[int, UserActivityRecord] = {}
        self._user_locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    def activity_for(self, user_id: int) -> UserActivityRecord | None:
        return self._activity.get(user_id)

    @staticmethod
    def _window_expired(record: UserActivityRecord, now: datetime, window: int) -> bool:
        if record.last_call_at is None or record.window_minute != window:
            return True
        # Same minute of the day, but a later day.
        return now - record.last_call_at >= timedelta(minutes=1)

    def _is_quiet(self, record: UserActivityRecord, now: datetime) -> bool:
        return record.last_call_at is None or now - record.last_call_at >= self.warn_reset_after

    def prune(self, now: datetime) -> int:
        """Forget users whose counters expired and whose warning, if any, has lapsed."""
        window = minute_of_day(now)
        stale = [
            user_id
            for user_id, record in self._activity.items()
            if self._window_expired(record, now, window) and (not record.warned or self._is_quiet(record, now))
        ]
        for user_id in stale:
            del self._activity[user_id]

        idle_locks = [
            user_id
            for user_id, lock in self._user_locks.items()
            if user_id not in self._activity and not lock.locked()
        ]
        for user_id in idle_locks:
            del self._user_locks[user_id]

        if stale:
            logger.debug("Pruned activity of %s users", len(stale))
        return len(stale)

    async def admit(self, user_id: int, now: datetime) -> AdmissionResult:
        async with self._user_locks[user_id]:
            if await self.bans.get_ban(user_id) is not None:
                logger.warning("Denied banned user=%s", user_id)
                return AdmissionResult(AdmissionDecision.DENIED_BANNED)

            window = minute_of_day(now)
            record = self._activity.get(user_id)
            if record is None:
                record = UserActivityRecord(user_id=user_id, window_minute=window)
                self._activity[user_id] = record
            elif self._window_expired(record, now, window):
                if record.warned and self._is_quiet(record, now):
                    record.warned = False
                record.window_minute = window
                record.count = 0

            record.last_call_at = now
            record.count += 1

            warn = False
            if record.count == self.warn_threshold and not record.warned:
                record.warned = True
                warn = True

            if record.count <= self.limit:
                return AdmissionResult(AdmissionDecision.ALLOWED, warn=warn)

            if not self.ban_enabled:
                logger.info("Rate limited user=%s count=%s window=%s", user_id, record.count, window)
                return AdmissionResult(AdmissionDecision.DENIED_RATE_LIMITED, warn=warn)

            # Persist first; a failed write leaves the counter in place so the next call retries the ban.
            await self.bans.add_ban(BanRecord(user_id=user_id, banned_at=now, duration_hours=self.ban_hours))
            self._activity.pop(user_id, None)
            logger.warning(
                "User=%s exceeded rate limit (%s calls in minute %s) and was banned for %sh",
                user_id,
                record.count,
                window,
                self.ban_hours,
            )
            return AdmissionResult(AdmissionDecision.DENIED_BANNED, warn=warn, newly_banned=True)
