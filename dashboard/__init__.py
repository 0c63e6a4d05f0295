"""
Dashboard backend for the guild-configuration bot.

Subpackages:
- db: database engine, session, Base
- models: SQLAlchemy ORM models (guild, messages, webhooks, quotas, sessions)
- services: bot wrapper, join notifier, OAuth client, guild/session store helpers
- guards / web: aiohttp middlewares and HTTP routes
"""
# 대시보드 백엔드를 모듈별로 나눠 봇, 저장소, 웹 계층을 분리해 둔 패키지입니다.
