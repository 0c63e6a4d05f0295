from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from ..db import session_scope
from ..models import DashboardSession, User

# 대시보드 로그인 세션과 사용자 기본 정보를 저장/조회합니다.


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def user_upsert(uid: int, name: Optional[str], profile: Optional[str]) -> None:
    with session_scope() as db:
        row = db.query(User).filter_by(id=uid).one_or_none()
        if row:
            row.name = name
            row.profile = profile
        else:
            db.add(User(id=uid, name=name, profile=profile))


def session_create(uid: int, access_token: str) -> str:
    token = secrets.token_urlsafe(32)
    with session_scope() as db:
        db.add(DashboardSession(id=token, user_id=uid, access_token=access_token, created_at=_now()))
    return token


def session_get(token: str, ttl: int) -> Optional[Dict[str, Any]]:
    """Return the session's user fields, or None if unknown or older than ``ttl`` seconds."""
    if not token:
        return None
    with session_scope() as db:
        row = db.query(DashboardSession).filter_by(id=token).one_or_none()
        if row is None:
            return None
        if row.created_at is None or _now() - row.created_at > timedelta(seconds=ttl):
            db.delete(row)
            return None
        user = row.user
        return {
            "id": str(row.user_id),
            "username": user.name if user else None,
            "avatar": user.profile if user else None,
            "access_token": row.access_token,
        }


def session_delete(token: str) -> int:
    with session_scope() as db:
        q = db.query(DashboardSession).filter_by(id=token)
        cnt = q.count()
        q.delete(synchronize_session=False)
        return cnt
