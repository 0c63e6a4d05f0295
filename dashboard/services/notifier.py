from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Set

# 봇이 새 길드에 추가될 때 기다리던 구독자에게 한 번만 알리는 일회성 구독 레지스트리입니다.
log = logging.getLogger("dashboard.bot")


class GuildJoinNotifier:
    """One-shot waiters keyed by guild id.

    ``subscribe`` hands out a future that resolves with the guild id the first
    time ``notify`` fires for it. Every waiter is dropped from the registry on
    firing; callers that stop waiting early must call ``unsubscribe``.
    """

    def __init__(self) -> None:
        self._waiters: Dict[str, Set[asyncio.Future]] = {}

    def subscribe(self, gid: str) -> asyncio.Future:
        fut = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(str(gid), set()).add(fut)
        return fut

    def unsubscribe(self, gid: str, fut: asyncio.Future) -> None:
        key = str(gid)
        waiters = self._waiters.get(key)
        if waiters is not None:
            waiters.discard(fut)
            if not waiters:
                del self._waiters[key]
        if not fut.done():
            fut.cancel()

    def notify(self, gid: str) -> int:
        key = str(gid)
        fired = 0
        for fut in self._waiters.pop(key, ()):
            if not fut.done():
                fut.set_result(key)
                fired += 1
        if fired:
            log.info(f"[JOIN] guild={key} notified {fired} waiter(s)")
        return fired

    def pending(self, gid: Optional[str] = None) -> int:
        if gid is not None:
            return len(self._waiters.get(str(gid), ()))
        return sum(len(w) for w in self._waiters.values())
