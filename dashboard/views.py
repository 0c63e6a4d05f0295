from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .models import File, Guild, Message, Quota, User

# ORM 레코드와 실시간 디스코드 객체를 합쳐 JSON 응답 형태로 만드는 뷰 모듈입니다.
# 실시간 값은 응답에만 덮어쓰고 DB에는 다시 저장하지 않습니다.


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _asset_url(asset) -> Optional[str]:
    return getattr(asset, "url", None) if asset else None


def creator_view(user: Optional[User], live=None) -> Dict[str, Any]:
    out = {
        "id": str(user.id) if user else None,
        "name": user.name if user else None,
        "profile": user.profile if user else None,
    }
    if live is not None:
        out["name"] = live.name
        out["profile"] = _asset_url(getattr(live, "display_avatar", None))
    return out


def file_view(f: File) -> Dict[str, Any]:
    return {"id": f.id, "name": f.name, "path": f.path}


def message_view(m: Message, live_users: Mapping[int, Any]) -> Dict[str, Any]:
    return {
        "id": m.id,
        "channel_id": str(m.channel_id),
        "description": m.description,
        "message": m.message,
        "cron": m.cron,
        "date": _iso(m.date),
        "one_time": bool(m.one_time),
        "activated": bool(m.activated),
        "created_at": _iso(m.created_at),
        "creator": creator_view(m.creator, live_users.get(int(m.creator_id))),
        "files": [file_view(f) for f in m.files],
    }


def webhook_view(w) -> Dict[str, Any]:
    return {
        "id": str(w.id),
        "name": getattr(w, "name", None),
        "avatar": _asset_url(getattr(w, "display_avatar", None)),
        "channel_id": str(w.channel_id) if getattr(w, "channel_id", None) else None,
    }


def quota_view(q: Quota) -> Dict[str, Any]:
    return {"id": q.id, "date": _iso(q.date), "count": int(q.count or 0)}


def guild_view(
    guild: Guild,
    live_guild,
    webhooks: Iterable[Any],
    live_users: Mapping[int, Any],
) -> Dict[str, Any]:
    return {
        "id": str(guild.id),
        "name": getattr(live_guild, "name", None),
        "icon": _asset_url(getattr(live_guild, "icon", None)),
        "member_count": getattr(live_guild, "member_count", None),
        "scope": bool(guild.scope),
        "remove_one_time_message": bool(guild.remove_one_time_message),
        "timezone": guild.timezone,
        "messages": [message_view(m, live_users) for m in guild.messages],
        "webhooks": [webhook_view(w) for w in webhooks],
        "quotas": [quota_view(q) for q in guild.quotas],
    }


def member_view(member) -> Dict[str, Any]:
    return {"name": member.display_name, "nickname": member.nick, "id": str(member.id)}


def members_view(members: Iterable[Any]) -> List[Dict[str, Any]]:
    return [member_view(m) for m in members]
