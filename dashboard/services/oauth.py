from __future__ import annotations

import logging
import urllib.parse
from typing import Any, Dict, List, Optional

from aiohttp import ClientSession, ClientTimeout, web

from ..config import Settings

# 디스코드 OAuth2 로그인 흐름(인가 URL, 토큰 교환, 내 정보/길드 조회)을 담당합니다.
log = logging.getLogger("dashboard.oauth")

DISCORD_API_BASE = "https://discord.com/api"
AUTHORIZE_URL = "https://discord.com/oauth2/authorize"
TOKEN_URL = f"{DISCORD_API_BASE}/oauth2/token"
ME_URL = f"{DISCORD_API_BASE}/users/@me"
MY_GUILDS_URL = f"{DISCORD_API_BASE}/users/@me/guilds"
CDN_BASE = "https://cdn.discordapp.com"
OAUTH_SCOPE = "identify guilds"


def avatar_url(user: Dict[str, Any]) -> Optional[str]:
    avatar = user.get("avatar")
    if not avatar:
        return None
    return f"{CDN_BASE}/avatars/{user.get('id')}/{avatar}.png"


class DiscordOAuth:
    def __init__(self, settings: Settings):
        self.client_id = settings.client_id
        self.client_secret = settings.client_secret
        self.redirect_uri = settings.redirect_uri
        self._http: Optional[ClientSession] = None

    def _session(self) -> ClientSession:
        if self._http is None or self._http.closed:
            self._http = ClientSession(timeout=ClientTimeout(total=15))
        return self._http

    async def close(self) -> None:
        if self._http is not None and not self._http.closed:
            await self._http.close()

    def authorize_url(self, state: str) -> str:
        if not self.client_id:
            raise web.HTTPInternalServerError(text="DISCORD_CLIENT_ID is not configured")
        query = urllib.parse.urlencode({
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": OAUTH_SCOPE,
            "state": state,
            "prompt": "none",
        })
        return f"{AUTHORIZE_URL}?{query}"

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        }
        async with self._session().post(TOKEN_URL, data=form) as resp:
            data = await resp.json(content_type=None)
            if resp.status >= 400:
                log.warning(f"OAuth token exchange failed ({resp.status})")
                raise web.HTTPBadRequest(text=f"OAuth token exchange failed ({resp.status})")
            return data

    async def _get_json(self, url: str, access_token: str) -> Any:
        headers = {"Authorization": f"Bearer {access_token}"}
        async with self._session().get(url, headers=headers) as resp:
            data = await resp.json(content_type=None)
            if resp.status == 401:
                raise web.HTTPUnauthorized(text="Discord session expired, log in again")
            if resp.status >= 400:
                log.warning(f"Discord API error ({resp.status}) for {url}")
                raise web.HTTPBadGateway(text=f"Discord API error ({resp.status})")
            return data

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        data = await self._get_json(ME_URL, access_token)
        if not isinstance(data, dict) or "id" not in data:
            raise web.HTTPBadGateway(text="Discord returned an invalid user payload")
        return data

    async def fetch_guilds(self, access_token: str) -> List[Dict[str, Any]]:
        data = await self._get_json(MY_GUILDS_URL, access_token)
        if not isinstance(data, list):
            raise web.HTTPBadGateway(text="Discord returned an invalid guilds payload")
        return [
            {
                "id": str(g.get("id")),
                "name": g.get("name"),
                "icon": g.get("icon"),
                "owner": bool(g.get("owner")),
                "permissions": g.get("permissions") or 0,
            }
            for g in data
            if isinstance(g, dict) and g.get("id")
        ]
