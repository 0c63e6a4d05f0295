from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Boolean,
    BigInteger,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import relationship

from .db import Base, TABLE_KW

# 길드 설정, 예약 메시지, 웹훅, 월별 사용량, 로그인 세션을 담는 ORM 모델 선언부입니다.


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Guild(Base):
    __tablename__ = "guilds"
    __table_args__ = TABLE_KW
    id = Column(BigInteger, primary_key=True, autoincrement=False)
    scope = Column(Boolean, default=False, nullable=False)
    remove_one_time_message = Column(Boolean, default=False, nullable=False)
    timezone = Column(String(64), default="UTC", nullable=False)
    created_at = Column(DateTime, default=_utcnow, index=True)

    messages = relationship(
        "Message", back_populates="guild", cascade="all, delete-orphan", order_by="Message.id"
    )
    webhooks = relationship("Webhook", back_populates="guild", cascade="all, delete-orphan")
    quotas = relationship(
        "Quota", back_populates="guild", cascade="all, delete-orphan", order_by="Quota.date"
    )


class User(Base):
    __tablename__ = "users"
    __table_args__ = TABLE_KW
    id = Column(BigInteger, primary_key=True, autoincrement=False)
    # last known values; the live ones come from the bot at read time
    name = Column(String(255), nullable=True)
    profile = Column(String(512), nullable=True)


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (Index("ix_msg_guild", "guild_id", "created_at"), TABLE_KW)
    id = Column(Integer, primary_key=True, index=True)
    guild_id = Column(BigInteger, ForeignKey("guilds.id", ondelete="CASCADE"), nullable=False)
    creator_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    channel_id = Column(BigInteger, nullable=False, index=True)
    description = Column(String(255), nullable=True)
    message = Column(Text, nullable=True)
    # recurring messages carry a cron expression, one-shot ones a date
    cron = Column(String(64), nullable=True)
    date = Column(DateTime, nullable=True)
    one_time = Column(Boolean, default=False, nullable=False)
    activated = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_utcnow)

    guild = relationship("Guild", back_populates="messages")
    creator = relationship("User")
    files = relationship(
        "File", back_populates="message", cascade="all, delete-orphan", order_by="File.id"
    )


class File(Base):
    __tablename__ = "files"
    __table_args__ = TABLE_KW
    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    path = Column(String(512), nullable=True)

    message = relationship("Message", back_populates="files")


class Webhook(Base):
    __tablename__ = "webhooks"
    __table_args__ = TABLE_KW
    id = Column(BigInteger, primary_key=True, autoincrement=False)
    guild_id = Column(BigInteger, ForeignKey("guilds.id", ondelete="CASCADE"), nullable=False, index=True)
    channel_id = Column(BigInteger, nullable=True)
    created_at = Column(DateTime, default=_utcnow)

    guild = relationship("Guild", back_populates="webhooks")


class Quota(Base):
    __tablename__ = "quotas"
    __table_args__ = (Index("ix_quota_guild_date", "guild_id", "date"), TABLE_KW)
    id = Column(Integer, primary_key=True, index=True)
    guild_id = Column(BigInteger, ForeignKey("guilds.id", ondelete="CASCADE"), nullable=False)
    date = Column(DateTime, nullable=False)
    count = Column(Integer, default=0, nullable=False)

    guild = relationship("Guild", back_populates="quotas")


class DashboardSession(Base):
    __tablename__ = "dashboard_sessions"
    __table_args__ = TABLE_KW
    id = Column(String(64), primary_key=True)
    user_id = Column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    access_token = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_utcnow, index=True)

    user = relationship("User")
