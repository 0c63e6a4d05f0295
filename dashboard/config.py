import os
from dataclasses import dataclass
from typing import Optional

# 환경 변수에서 대시보드 설정을 읽어 한곳에 모아 두는 모듈입니다.


def _env(*keys: str) -> Optional[str]:
    for k in keys:
        v = os.getenv(k)
        if v:
            return v
    return None


def _env_int(key: str, default: int) -> int:
    raw = (os.getenv(key) or "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    raw = (os.getenv(key) or "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    discord_token: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: str = "http://localhost:8080/auth/callback"
    dashboard_url: str = "/"
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origin: str = "*"
    cache_ttl: int = 300
    session_ttl: int = 7 * 24 * 3600
    sse_keepalive: float = 15.0
    cookie_name: str = "dashboard_session"


def load_settings() -> Settings:
    return Settings(
        discord_token=_env("DISCORD_TOKEN"),
        client_id=_env("DISCORD_CLIENT_ID"),
        client_secret=_env("DISCORD_CLIENT_SECRET"),
        redirect_uri=_env("OAUTH_REDIRECT_URI") or Settings.redirect_uri,
        dashboard_url=_env("DASHBOARD_URL") or Settings.dashboard_url,
        host=_env("ADMIN_HOST") or Settings.host,
        port=_env_int("ADMIN_PORT", Settings.port),
        cors_origin=_env("ADMIN_CORS") or Settings.cors_origin,
        cache_ttl=_env_int("CACHE_TTL", Settings.cache_ttl),
        session_ttl=_env_int("SESSION_TTL", Settings.session_ttl),
        sse_keepalive=_env_float("SSE_KEEPALIVE", Settings.sse_keepalive),
        cookie_name=_env("COOKIE_NAME") or Settings.cookie_name,
    )
