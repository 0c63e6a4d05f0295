# bot.py: guild dashboard entrypoint
# - discord client that owns the live guild/user state
# - on_ready: database init, then the dashboard HTTP/SSE API (once)
# - on_guild_join: registers the guild and wakes any dashboard waiting on it
# 이 모듈은 디스코드 봇과 대시보드 웹 서버를 함께 띄우는 중심 진입점입니다.

import logging

import discord

from dashboard.config import load_settings
from dashboard.db import init_database
from dashboard.services.bot import BotService
from dashboard.web import start_web

# ============================ 로깅 ============================
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(message)s",
    handlers=[logging.StreamHandler(), logging.FileHandler("dashboard.log", encoding="utf-8")]
)
log = logging.getLogger("bot")

settings = load_settings()

# ============================ Discord ============================
intents = discord.Intents.default()
intents.guilds = True
intents.members = True  # required for member search
intents.webhooks = True

bot = discord.Client(intents=intents)
service = BotService(bot)


# ---------------------- 이벤트 ----------------------
@bot.event
async def on_ready():
    log.info(f"Bot logged in as {bot.user} ({bot.user.id})")
    if getattr(bot, "_web_started", False):
        return
    try:
        await init_database()
    except Exception as e:
        log.error(f"DB init failed: {e}")
        return

    # 웹 서버 시작 (한 번만)
    try:
        bot._admin_runner = await start_web(service, settings)  # type: ignore[attr-defined]
        bot._web_started = True  # type: ignore[attr-defined]
    except Exception as e:
        log.error(f"Web start failed: {e}")


@bot.event
async def on_guild_join(guild: discord.Guild):
    await service.on_guild_join(guild)


# ============================ 실행 ============================
def _get_token() -> str:
    t = settings.discord_token
    if not t:
        raise RuntimeError("DISCORD_TOKEN is required")
    return t


def main() -> None:
    bot.run(_get_token(), log_handler=None)


if __name__ == "__main__":
    main()
