import os
import urllib.parse
import asyncio
import logging
from typing import Optional, List
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import _env

# 대시보드 DB 연결 후보를 찾아 접속하고 요청마다 세션을 열어 주는 핵심 헬퍼 모듈입니다.
log = logging.getLogger("dashboard.db")


def _is_mysql(url: str) -> bool:
    return isinstance(url, str) and url.startswith((
        "mysql://",
        "mysql+mysqlconnector://",
        "mysql+pymysql://",
    ))


def _to_mysqlconnector_url(url: str) -> str:
    # Normalize to mysql+mysqlconnector and attach options
    if url.startswith(("mysql://", "mysql+pymysql://")):
        out = url.replace("mysql+pymysql://", "mysql+mysqlconnector://", 1).replace(
            "mysql://", "mysql+mysqlconnector://", 1
        )
    else:
        out = url
    if "charset=" not in out:
        out += ("&" if "?" in out else "?") + "charset=utf8mb4"
    if "connection_timeout=" not in out and "connect_timeout=" not in out:
        out += ("&" if "?" in out else "?") + "connection_timeout=10"
    return out


def _build_database_candidates() -> List[str]:
    candidates: List[str] = []
    # 0) explicit dashboard URL, any dialect
    explicit = _env("DASHBOARD_DB_URL")
    if explicit:
        candidates.append(_to_mysqlconnector_url(explicit) if _is_mysql(explicit) else explicit)
    # 1) direct URLs
    for env_key in ("MYSQL_URL", "DATABASE_URL", "MYSQL_PUBLIC_URL", "MYSQL_PRIVATE_URL"):
        url = _env(env_key)
        if url and _is_mysql(url):
            candidates.append(_to_mysqlconnector_url(url))
    # 2) composed from parts
    host = _env("MYSQLHOST", "MYSQL_HOST")
    port = _env("MYSQLPORT", "MYSQL_PORT") or "3306"
    database = _env("MYSQLDATABASE", "MYSQL_DATABASE", "MYSQL_DB") or "dashboard"
    user = _env("MYSQLUSER", "MYSQL_USER")
    password = _env("MYSQLPASSWORD", "MYSQL_PASSWORD", "MYSQL_ROOT_PASSWORD")
    if host and user and password:
        u = urllib.parse.quote(user, safe="")
        p = urllib.parse.quote(password, safe="")
        candidates.append(_to_mysqlconnector_url(f"mysql+mysqlconnector://{u}:{p}@{host}:{port}/{database}"))
    # dedupe, keep order
    return list(dict.fromkeys(candidates))


CONNECT_ARGS = {} if os.getenv("MYSQL_SSL") != "1" else {"ssl_disabled": False}

Base = declarative_base()
TABLE_KW = {"mysql_engine": "InnoDB", "mysql_charset": "utf8mb4"}

engine: Optional[Engine] = None
SessionLocal = None
resolved_url: Optional[str] = None


def _describe(url: str) -> str:
    if "@" in url:
        return url.split("@", 1)[1].split("/", 1)[0]
    return url.split("://", 1)[0]


def _try_engine_connection(url: str) -> Engine:
    kwargs = {"pool_pre_ping": True, "echo": False}
    if _is_mysql(url):
        kwargs.update(pool_recycle=3600, pool_size=5, max_overflow=10, connect_args=CONNECT_ARGS)
    eng = create_engine(url, **kwargs)
    with eng.connect() as conn:
        conn.execute(text("SELECT 1"))
    return eng


def bind_engine(eng: Engine, url: Optional[str] = None) -> None:
    """Make ``eng`` the process-wide engine and create any missing tables."""
    global engine, SessionLocal, resolved_url
    from . import models  # ensure models are imported so metadata is populated
    models.Base.metadata.create_all(bind=eng)
    engine = eng
    SessionLocal = sessionmaker(
        bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
    )
    resolved_url = url if url is not None else str(eng.url)


def _sync_database_init(url: str) -> None:
    bind_engine(_try_engine_connection(url), url)


async def init_database(max_attempts_per_url: int = 3, delay: float = 1.5) -> None:
    candidates = _build_database_candidates()
    if not candidates:
        raise RuntimeError("DB init failed. Set DASHBOARD_DB_URL or the MYSQL* variables")
    last_error = None
    for url in candidates:
        host = _describe(url)
        for attempt in range(1, max_attempts_per_url + 1):
            try:
                await asyncio.to_thread(_sync_database_init, url)
                log.info(f"DB connected: {host}")
                return
            except Exception as e:
                last_error = e
                log.warning(f"DB connect fail {attempt}/{max_attempts_per_url} for {host}: {e}")
                if attempt < max_attempts_per_url:
                    await asyncio.sleep(round(delay * attempt, 2))
        log.warning(f"Switch DB candidate: {host}")
    raise RuntimeError(f"DB init failed. Last error: {last_error}")


@contextmanager
def session_scope():
    if SessionLocal is None:
        raise RuntimeError("Database not initialized")
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
