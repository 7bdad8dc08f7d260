# scheduler.py
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from telegram import Bot

from config import TIMEZONE, SEND_TIME
from database import get_setting, set_setting
from sender import push_schedule
from timetable import tomorrow_index
from utils import parse_time, split_time

logger = logging.getLogger(__name__)
scheduler = AsyncIOScheduler(timezone=TIMEZONE)

DAILY_JOB_ID = "daily_schedule"
SEND_TIME_KEY = "SEND_TIME"


def get_send_time() -> str:
    """Время рассылки: сохранённое в настройках или значение по умолчанию."""
    stored = parse_time(get_setting(SEND_TIME_KEY) or "")
    return stored or parse_time(SEND_TIME)


async def send_daily_schedule(bot: Bot):
    """Рассылает расписание на завтра."""
    try:
        await push_schedule(bot, tomorrow_index())
    except Exception as e:
        logger.error(f"Ошибка ежедневной рассылки: {e}", exc_info=True)


def schedule_daily(bot: Bot, send_time: str):
    """Планирует (или перепланирует) ежедневную рассылку на время ЧЧ:ММ."""
    hour, minute = split_time(send_time)
    scheduler.add_job(
        send_daily_schedule,
        trigger=CronTrigger(hour=hour, minute=minute, timezone=TIMEZONE),
        args=[bot],
        id=DAILY_JOB_ID,
        misfire_grace_time=3600,
        replace_existing=True
    )
    logger.info(f"✅ Ежедневная рассылка запланирована на {hour:02d}:{minute:02d} ({TIMEZONE.zone})")


def update_send_time(bot: Bot, send_time: str) -> str:
    """Сохраняет новое время рассылки и перепланирует задачу."""
    normalized = parse_time(send_time)
    if normalized is None:
        raise ValueError(f"Неверный формат времени: {send_time!r}")
    set_setting(SEND_TIME_KEY, normalized)
    schedule_daily(bot, normalized)
    return normalized


async def start_scheduler(bot: Bot):
    """Запускает планировщик задач."""
    if not scheduler.running:
        scheduler.start()
        logger.info("✅ Планировщик задач запущен")
    schedule_daily(bot, get_send_time())
