from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Dict, Iterable, List, Optional

import discord
from sqlalchemy.exc import SQLAlchemyError

from .guilds import guild_ensure
from .notifier import GuildJoinNotifier

# 살아 있는 디스코드 클라이언트를 감싸 유저/길드 조회와 길드 추가 이벤트를 대시보드에 전달합니다.
log = logging.getLogger("dashboard.bot")

MEMBER_SEARCH_LIMIT = 20


class BotService:
    def __init__(self, client: discord.Client, joins: Optional[GuildJoinNotifier] = None):
        self.client = client
        self.joins = joins or GuildJoinNotifier()

    async def get_user(self, uid: int) -> Optional[discord.User]:
        user = self.client.get_user(int(uid))
        if user is not None:
            return user
        try:
            return await self.client.fetch_user(int(uid))
        except discord.NotFound:
            return None
        except discord.HTTPException as e:
            log.warning(f"fetch_user {uid} failed: {e}")
            return None

    async def get_users(self, uids: Iterable[int]) -> Dict[int, discord.User]:
        unique = list(dict.fromkeys(int(u) for u in uids))
        users = await asyncio.gather(*(self.get_user(u) for u in unique))
        return {uid: user for uid, user in zip(unique, users) if user is not None}

    def get_guild(self, gid: int) -> Optional[discord.Guild]:
        return self.client.get_guild(int(gid))

    async def guild_webhooks(self, guild: discord.Guild, known_ids: Iterable[int]) -> List[discord.Webhook]:
        """Live webhooks of ``guild`` whose id is also stored."""
        ids = {int(i) for i in known_ids}
        if not ids:
            return []
        return [w for w in await guild.webhooks() if int(w.id) in ids]

    async def search_members(self, guild: discord.Guild, query: str, limit: int = MEMBER_SEARCH_LIMIT) -> List[discord.Member]:
        members = await guild.query_members(query, limit=min(int(limit), MEMBER_SEARCH_LIMIT))
        return list(members)[:MEMBER_SEARCH_LIMIT]

    async def on_guild_join(self, guild: discord.Guild) -> None:
        log.info(f"Joined guild {guild.id} ({getattr(guild, 'name', '?')})")
        try:
            await asyncio.to_thread(guild_ensure, int(guild.id))
        except SQLAlchemyError as e:
            log.error(f"guild_ensure failed for {guild.id}: {e}")
        self.joins.notify(str(guild.id))

    def status(self) -> Dict[str, Any]:
        c = self.client
        latency = float(getattr(c, "latency", 0.0) or 0.0)
        return {
            "connected": c.is_ready(),
            "latency_ms": None if math.isnan(latency) else round(latency * 1000),
            "bot": getattr(c.user, "name", None) if c.user else None,
            "guild_count": len(getattr(c, "guilds", [])),
        }
