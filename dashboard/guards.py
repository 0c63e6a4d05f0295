from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, List, Optional

from aiohttp import web

from .services.sessions import session_get

# 로그인 세션과 길드 내 역할(member/admin)을 확인해 요청을 통과시키거나 막는 가드 모음입니다.
log = logging.getLogger("dashboard.guards")

PERM_ADMINISTRATOR = 0x8
PERM_MANAGE_GUILD = 0x20


class Role(IntEnum):
    MEMBER = 1
    ADMIN = 2


@dataclass(frozen=True)
class Profile:
    id: str
    username: Optional[str]
    avatar: Optional[str]
    access_token: str


def login_required(handler):
    handler.login_required = True
    return handler


def role(name: str):
    required = Role[name.upper()]

    def deco(handler):
        handler.login_required = True
        handler.required_role = required
        return handler

    return deco


def _route_handler(request: web.Request):
    match_info = getattr(request, "match_info", None)
    return getattr(match_info, "handler", None)


def _parse_permissions(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def membership_role(entry: Optional[Dict[str, Any]]) -> Optional[Role]:
    if not entry:
        return None
    perms = _parse_permissions(entry.get("permissions"))
    if entry.get("owner") or perms & (PERM_ADMINISTRATOR | PERM_MANAGE_GUILD):
        return Role.ADMIN
    return Role.MEMBER


async def resolve_memberships(request: web.Request, profile: Profile) -> List[Dict[str, Any]]:
    """The caller's guild list, from the cache or from Discord on a miss."""
    if "memberships" in request:
        return request["memberships"]
    cache = request.app["cache"]
    guilds = cache.get(profile.id)
    if guilds is None:
        guilds = await request.app["oauth"].fetch_guilds(profile.access_token)
        cache.set(profile.id, guilds)
    request["memberships"] = guilds
    return guilds


@web.middleware
async def session_middleware(request: web.Request, handler):
    settings = request.app["settings"]
    token = request.cookies.get(settings.cookie_name)
    request["session_token"] = token
    profile: Optional[Profile] = None
    if token:
        data = await asyncio.to_thread(session_get, token, settings.session_ttl)
        if data is not None:
            profile = Profile(**data)
    request["profile"] = profile
    if profile is None and getattr(_route_handler(request), "login_required", False):
        raise web.HTTPUnauthorized(text="Login required")
    return await handler(request)


@web.middleware
async def role_middleware(request: web.Request, handler):
    required: Optional[Role] = getattr(_route_handler(request), "required_role", None)
    if required is None:
        return await handler(request)
    profile: Optional[Profile] = request.get("profile")
    if profile is None:
        raise web.HTTPUnauthorized(text="Login required")
    gid = request.match_info.get("id", "")
    guilds = await resolve_memberships(request, profile)
    entry = next((g for g in guilds if str(g.get("id")) == gid), None)
    current = membership_role(entry)
    request["role"] = current
    if current is None or current < required:
        log.info(f"[DENY] user={profile.id} guild={gid} role={current and current.name} need={required.name}")
        raise web.HTTPForbidden(text="You do not have access to this guild")
    return await handler(request)
