import asyncio
import logging
import secrets
from typing import Any, Optional

import discord
from aiohttp import web

from . import db
from .cache import CacheService
from .config import Settings, load_settings
from .guards import (
    login_required,
    membership_role,
    resolve_memberships,
    role,
    role_middleware,
    session_middleware,
)
from .services.bot import BotService
from .services.guilds import (
    guild_ids_present,
    guild_load,
    guild_set_onetime,
    guild_set_scope,
    guild_set_timezone,
)
from .services.oauth import DiscordOAuth, avatar_url
from .services.sessions import session_create, session_delete, user_upsert
from .timezones import is_valid_timezone
from .views import guild_view, members_view

# 이 모듈은 길드 설정 대시보드용 HTTP/SSE API를 제공해 웹에서 봇 설정을 조회하고 바꿀 수 있게 합니다.
log = logging.getLogger("dashboard.web")

MENTION_MARKER = "@"
STATE_TTL_SECONDS = 600


def _json(data: Any, status: int = 200) -> web.Response:
    return web.json_response(data, status=status)


def _gid(request: web.Request) -> int:
    try:
        gid = int(request.match_info["id"])
    except (KeyError, ValueError):
        raise web.HTTPBadRequest(text="invalid guild id")
    if gid <= 0:
        raise web.HTTPBadRequest(text="invalid guild id")
    return gid


def _bool_param(request: web.Request, name: str) -> bool:
    raw = request.rel_url.query.get(name)
    if raw not in ("true", "false"):
        raise web.HTTPBadRequest(text=f"'{name}' must be 'true' or 'false'")
    return raw == "true"


def _is_https(request: web.Request) -> bool:
    forwarded = request.headers.get("X-Forwarded-Proto", "")
    if forwarded:
        return forwarded.split(",")[0].strip().lower() == "https"
    return bool(getattr(request, "secure", False))


def _sse_event(event_id: str, data: str) -> bytes:
    return f"id: {event_id}\ndata: {data}\n\n".encode("utf-8")


# ---------------------- 길드 ----------------------
@role("member")
async def api_guild_get(request: web.Request) -> web.Response:
    gid = _gid(request)
    bot: BotService = request.app["bot"]
    guild = await asyncio.to_thread(guild_load, gid)
    if guild is None:
        raise web.HTTPNotFound(text="Guild not found")
    live_guild = bot.get_guild(gid)
    if live_guild is None:
        raise web.HTTPNotFound(text="The bot is not a member of this guild")
    live_users = await bot.get_users(m.creator_id for m in guild.messages)
    webhooks = await bot.guild_webhooks(live_guild, [w.id for w in guild.webhooks])
    return _json(guild_view(guild, live_guild, webhooks, live_users))


@role("admin")
async def api_guild_add_stream(request: web.Request) -> web.StreamResponse:
    gid = request.match_info["id"]
    profile = request["profile"]
    bot: BotService = request.app["bot"]
    cache: CacheService = request.app["cache"]
    keepalive = request.app["settings"].sse_keepalive

    waiter = bot.joins.subscribe(gid)
    log.info(f"[SSE] user={profile.id} waiting for guild={gid}")
    resp = web.StreamResponse(headers={
        "Content-Type": "text/event-stream",
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
    })
    try:
        await resp.prepare(request)
        await resp.write(b": waiting\n\n")
        while not waiter.done():
            await asyncio.wait({waiter}, timeout=keepalive)
            if not waiter.done():
                await resp.write(b": keepalive\n\n")
        # the caller's guild list now includes the new guild
        cache.delete(profile.id)
        await resp.write(_sse_event(gid, gid))
        await resp.write_eof()
        log.info(f"[SSE] guild={gid} joined, stream closed for user={profile.id}")
    except ConnectionResetError:
        log.debug(f"[SSE] user={profile.id} left before guild={gid} joined")
    finally:
        bot.joins.unsubscribe(gid, waiter)
    return resp


@role("admin")
async def api_guild_members(request: web.Request) -> web.Response:
    gid = _gid(request)
    query = request.rel_url.query.get("q", "")
    term = query[len(MENTION_MARKER):]
    if not query.startswith(MENTION_MARKER) or not term:
        return _json([])
    cache: CacheService = request.app["cache"]
    key = f"members:{gid}:{query}"
    cached = cache.get(key)
    if cached is not None:
        return _json(cached)
    bot: BotService = request.app["bot"]
    live_guild = bot.get_guild(gid)
    if live_guild is None:
        raise web.HTTPNotFound(text="The bot is not a member of this guild")
    members = await bot.search_members(live_guild, term)
    out = members_view(members)
    cache.set(key, out)
    return _json(out)


@role("admin")
async def api_guild_scope(request: web.Request) -> web.Response:
    gid = _gid(request)
    scope = _bool_param(request, "scope")
    if not await asyncio.to_thread(guild_set_scope, gid, scope):
        raise web.HTTPNotFound(text="Guild not found")
    log.info(f"[PATCH] guild={gid} scope={scope}")
    return _json({"ok": True})


@role("admin")
async def api_guild_onetime(request: web.Request) -> web.Response:
    gid = _gid(request)
    remove = _bool_param(request, "delete")
    if not await asyncio.to_thread(guild_set_onetime, gid, remove):
        raise web.HTTPNotFound(text="Guild not found")
    log.info(f"[PATCH] guild={gid} remove_one_time_message={remove}")
    return _json({"ok": True})


@role("admin")
async def api_guild_timezone(request: web.Request) -> web.Response:
    gid = _gid(request)
    tz = request.rel_url.query.get("timezone", "")
    if not is_valid_timezone(tz):
        raise web.HTTPBadRequest(text="Unknown timezone")
    if not await asyncio.to_thread(guild_set_timezone, gid, tz):
        raise web.HTTPNotFound(text="Guild not found")
    log.info(f"[PATCH] guild={gid} timezone={tz}")
    return _json({"ok": True})


# ---------------------- 유저 ----------------------
@login_required
async def api_user_guilds(request: web.Request) -> web.Response:
    profile = request["profile"]
    guilds = await resolve_memberships(request, profile)
    ids = [int(g["id"]) for g in guilds if str(g.get("id", "")).isdigit()]
    installed = await asyncio.to_thread(guild_ids_present, ids)
    items = []
    for g in guilds:
        r = membership_role(g)
        items.append({
            "id": str(g["id"]),
            "name": g.get("name"),
            "icon": g.get("icon"),
            "role": r.name.lower() if r else None,
            "installed": str(g["id"]).isdigit() and int(g["id"]) in installed,
        })
    return _json({"ok": True, "guilds": items})


# ---------------------- 로그인 ----------------------
async def auth_login(request: web.Request) -> web.Response:
    state = secrets.token_urlsafe(16)
    request.app["cache"].set(f"oauth_state:{state}", True, ttl=STATE_TTL_SECONDS)
    raise web.HTTPFound(request.app["oauth"].authorize_url(state))


async def auth_callback(request: web.Request) -> web.Response:
    settings: Settings = request.app["settings"]
    cache: CacheService = request.app["cache"]
    oauth: DiscordOAuth = request.app["oauth"]
    state = request.rel_url.query.get("state", "")
    code = request.rel_url.query.get("code", "")
    if not state or cache.pop(f"oauth_state:{state}") is None:
        raise web.HTTPBadRequest(text="Invalid or expired OAuth state")
    if not code:
        raise web.HTTPBadRequest(text="Missing OAuth code")

    token = await oauth.exchange_code(code)
    access_token = token.get("access_token")
    if not access_token:
        raise web.HTTPBadGateway(text="Discord did not return an access token")
    user = await oauth.fetch_profile(access_token)
    uid = int(user["id"])
    await asyncio.to_thread(user_upsert, uid, user.get("username"), avatar_url(user))
    sid = await asyncio.to_thread(session_create, uid, access_token)
    cache.delete(str(uid))
    log.info(f"[AUTH] user={uid} logged in")

    resp = web.HTTPFound(settings.dashboard_url)
    resp.set_cookie(
        settings.cookie_name,
        sid,
        httponly=True,
        samesite="Lax",
        secure=_is_https(request),
        max_age=settings.session_ttl,
    )
    raise resp


async def auth_logout(request: web.Request) -> web.Response:
    settings: Settings = request.app["settings"]
    token = request.get("session_token")
    if token:
        await asyncio.to_thread(session_delete, token)
    profile = request.get("profile")
    if profile is not None:
        request.app["cache"].delete(profile.id)
    resp = web.HTTPFound(settings.dashboard_url)
    resp.del_cookie(settings.cookie_name)
    raise resp


# ---------------------- 상태 ----------------------
async def api_status(request: web.Request) -> web.Response:
    bot: BotService = request.app["bot"]
    url = db.resolved_url
    return _json({
        "ok": True,
        "discord": bot.status(),
        "database": {
            "connected": db.engine is not None,
            "endpoint": db._describe(url) if url else None,
        },
    })


async def _preflight(request: web.Request) -> web.Response:
    return web.Response(status=204)


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException as exc:
        if exc.status < 400:
            raise
        if exc.status >= 500:
            log.error(f"{request.method} {request.path} -> {exc.status}: {exc.text}")
        return _json({"ok": False, "error": exc.text or exc.reason}, status=exc.status)
    except discord.HTTPException as exc:
        log.warning(f"Discord API error on {request.method} {request.path}: {exc}")
        return _json({"ok": False, "error": "Discord API error"}, status=502)
    except Exception:
        log.exception(f"Unhandled error on {request.method} {request.path}")
        return _json({"ok": False, "error": "Internal server error"}, status=500)


async def create_app(
    bot: BotService,
    settings: Optional[Settings] = None,
    *,
    oauth: Optional[DiscordOAuth] = None,
    cache: Optional[CacheService] = None,
) -> web.Application:
    settings = settings or load_settings()
    app = web.Application(middlewares=[error_middleware, session_middleware, role_middleware])
    app["bot"] = bot
    app["settings"] = settings
    app["cache"] = cache if cache is not None else CacheService(ttl=settings.cache_ttl)
    app["oauth"] = oauth if oauth is not None else DiscordOAuth(settings)

    app.add_routes([
        web.get("/status", api_status),

        web.get("/auth/login", auth_login),
        web.get("/auth/callback", auth_callback),
        web.get("/auth/logout", auth_logout),

        web.get("/user/guilds", api_user_guilds),

        web.get("/guild/{id}", api_guild_get),
        web.get("/guild/{id}/add", api_guild_add_stream),
        web.get("/guild/{id}/members", api_guild_members),
        web.patch("/guild/{id}/scope", api_guild_scope),
        web.patch("/guild/{id}/onetime", api_guild_onetime),
        web.patch("/guild/{id}/timezone", api_guild_timezone),

        web.options("/{tail:.*}", _preflight),
    ])

    async def on_prepare(request, response):
        origin = settings.cors_origin
        response.headers.setdefault("Access-Control-Allow-Origin", origin)
        response.headers.setdefault("Access-Control-Allow-Headers", "*, Content-Type")
        response.headers.setdefault("Access-Control-Allow-Methods", "GET,PATCH,OPTIONS")
        if origin != "*":
            response.headers.setdefault("Access-Control-Allow-Credentials", "true")

    async def on_cleanup(app):
        await app["oauth"].close()

    app.on_response_prepare.append(on_prepare)
    app.on_cleanup.append(on_cleanup)
    return app


async def start_web(bot: BotService, settings: Optional[Settings] = None) -> web.AppRunner:
    settings = settings or load_settings()
    app = await create_app(bot, settings)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=settings.host, port=settings.port)
    await site.start()
    log.info(f"Dashboard API listening on {settings.host}:{settings.port}")
    return runner
