"""Tests for the cache, join notifier, timezone table and store helpers."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from conftest import FakeClient, fake_user
from dashboard.cache import CacheService
from dashboard.services.bot import BotService
from dashboard.services.guilds import guild_ensure, guild_ids_present, guild_load, guild_set_timezone
from dashboard.services.notifier import GuildJoinNotifier
from dashboard.services.sessions import session_create, session_get, user_upsert
from dashboard.timezones import TIMEZONES, is_valid_timezone, month_start

# ---------------------------------- cache -----------------------------------


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_cache_expires_entries():
    clock = _Clock()
    cache = CacheService(ttl=10, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2, ttl=100)

    clock.now += 11
    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert len(cache) == 1


def test_cache_delete_and_keys_are_strings():
    cache = CacheService()
    cache.set(42, ["guild"])
    assert "42" in cache
    assert cache.delete("42") is True
    assert cache.delete("42") is False
    assert cache.get(42) is None


def test_cache_pop_consumes():
    cache = CacheService()
    cache.set("state", True)
    assert cache.pop("state") is True
    assert cache.pop("state") is None


def test_cache_write_sweeps_unread_expired_entries():
    clock = _Clock()
    cache = CacheService(clock=clock)
    for i in range(2000):
        cache.set(f"oauth_state:{i}", True, ttl=1)

    clock.now += 2
    cache.set("members:1:@a", [])

    assert len(cache._data) == 1
    assert cache.get("members:1:@a") == []


def test_cache_is_bounded():
    clock = _Clock()
    cache = CacheService(ttl=60, clock=clock, max_entries=3)
    cache.set("a", 1, ttl=10)
    cache.set("b", 2)
    cache.set("c", 3)
    cache.set("d", 4)

    assert len(cache._data) == 3
    # the entry closest to expiry goes first
    assert "a" not in cache
    assert cache.get("d") == 4


# --------------------------------- notifier ---------------------------------

async def test_notifier_fires_once_and_forgets():
    joins = GuildJoinNotifier()
    a = joins.subscribe("1")
    b = joins.subscribe("1")
    other = joins.subscribe("2")

    assert joins.notify("1") == 2
    assert await a == "1"
    assert await b == "1"
    assert joins.notify("1") == 0
    assert joins.pending() == 1
    assert not other.done()


async def test_notifier_unsubscribe_cancels():
    joins = GuildJoinNotifier()
    fut = joins.subscribe("1")
    joins.unsubscribe("1", fut)

    assert fut.cancelled()
    assert joins.pending() == 0
    assert joins.notify("1") == 0


async def test_notifier_unsubscribe_after_fire_is_harmless():
    joins = GuildJoinNotifier()
    fut = joins.subscribe(5)
    joins.notify(5)
    joins.unsubscribe(5, fut)
    assert fut.result() == "5"


# -------------------------------- timezones ---------------------------------

def test_timezone_table():
    assert "UTC" in TIMEZONES
    assert len(TIMEZONES) == len(set(TIMEZONES))
    assert is_valid_timezone("Europe/Paris")
    assert not is_valid_timezone("Europe/Atlantis")


def test_month_start():
    now = datetime(2024, 3, 17, 15, 30, tzinfo=timezone.utc)
    assert month_start(now) == datetime(2024, 3, 1)
    assert month_start().day == 1


# ----------------------------- store helpers --------------------------------

def test_guild_ensure_is_idempotent():
    assert guild_ensure(10) is True
    assert guild_ensure(10) is False
    assert guild_ids_present([10, 11]) == {10}
    assert guild_load(10).timezone == "UTC"


def test_guild_set_timezone_updates_row():
    guild_ensure(10)
    assert guild_set_timezone(10, "Asia/Seoul") is True
    assert guild_load(10).timezone == "Asia/Seoul"
    assert guild_set_timezone(99, "UTC") is False


def test_session_expiry():
    user_upsert(9, "nine", None)
    sid = session_create(9, "tok")

    assert session_get(sid, ttl=60)["id"] == "9"
    assert session_get(sid, ttl=-1) is None
    # expired sessions are removed
    assert session_get(sid, ttl=60) is None


# -------------------------------- bot service -------------------------------

async def test_get_users_dedupes_and_skips_unknown():
    client = FakeClient()
    client.users[1] = fake_user(1, "one")
    service = BotService(client)

    users = await service.get_users([1, 1, 2])

    assert list(users) == [1]
    assert client.fetched == [2]


async def test_status_handles_unknown_latency():
    client = FakeClient()
    client.latency = float("nan")
    assert BotService(client).status()["latency_ms"] is None


async def test_on_guild_join_registers_guild():
    service = BotService(FakeClient())
    fut = service.joins.subscribe("321")

    await service.on_guild_join(type("G", (), {"id": 321, "name": "new"})())

    assert await asyncio.wait_for(fut, 1) == "321"
    assert guild_ids_present([321]) == {321}


def test_month_start_converts_aware_times():
    now = datetime(2024, 1, 1, 0, 30, tzinfo=timezone(timedelta(hours=9)))
    # 2023-12-31 15:30 UTC
    assert month_start(now) == datetime(2023, 12, 1)
