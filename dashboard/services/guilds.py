from __future__ import annotations

from typing import Iterable, Optional, Set

from sqlalchemy.orm import selectinload

from ..db import session_scope
from ..models import Guild, Message, Quota
from ..timezones import month_start

# 길드 집계 조회와 범위/일회성 메시지/시간대 설정 변경을 담당하는 DB 헬퍼입니다.


def guild_load(gid: int) -> Optional[Guild]:
    """Load a guild with messages (creator, files), webhooks and this month's quotas."""
    since = month_start()
    with session_scope() as db:
        return (
            db.query(Guild)
            .options(
                selectinload(Guild.messages).selectinload(Message.creator),
                selectinload(Guild.messages).selectinload(Message.files),
                selectinload(Guild.webhooks),
                selectinload(Guild.quotas.and_(Quota.date >= since)),
            )
            .filter(Guild.id == gid)
            .one_or_none()
        )


def guild_ensure(gid: int) -> bool:
    with session_scope() as db:
        if db.query(Guild.id).filter_by(id=gid).first():
            return False
        db.add(Guild(id=gid))
        return True


def guild_ids_present(gids: Iterable[int]) -> Set[int]:
    ids = list(gids)
    if not ids:
        return set()
    with session_scope() as db:
        rows = db.query(Guild.id).filter(Guild.id.in_(ids)).all()
        return {int(r[0]) for r in rows}


def _guild_update(gid: int, **values) -> bool:
    with session_scope() as db:
        cnt = db.query(Guild).filter(Guild.id == gid).update(values, synchronize_session=False)
        return cnt > 0


def guild_set_scope(gid: int, scope: bool) -> bool:
    return _guild_update(gid, scope=bool(scope))


def guild_set_onetime(gid: int, remove: bool) -> bool:
    return _guild_update(gid, remove_one_time_message=bool(remove))


def guild_set_timezone(gid: int, tz: str) -> bool:
    return _guild_update(gid, timezone=tz)
