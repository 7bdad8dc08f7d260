# sender.py
import asyncio
import datetime
import logging
from dataclasses import dataclass, field
from typing import Optional

from telegram import Bot, Message
from telegram.constants import ChatMemberStatus, ParseMode
from telegram.error import RetryAfter, TelegramError

from database import (
    get_last_message, set_last_message, is_banned, list_chats,
    remove_chat, log_stat
)
from keyboards import main_menu_keyboard
from timetable import TIMETABLE, SUNDAY, format_day, format_full_timetable
from utils import is_permanent_error

logger = logging.getLogger(__name__)

BROADCAST_ATTEMPTS = 3
RETRY_DELAY = 0.5
SUMMARY_MAX_FAILURES = 10


@dataclass
class BroadcastResult:
    successes: list[int] = field(default_factory=list)
    failures: list[tuple[int, str]] = field(default_factory=list)


# === Расписание ===

async def send_schedule(bot: Bot, chat_id: int, day: int) -> Optional[Message]:
    """
    Отправляет расписание на день в чат.

    Предыдущее сообщение с расписанием удаляется, чтобы в чате оставалось одно.
    Для воскресенья, неизвестного дня и заблокированных чатов ничего не делает.
    """
    if day == SUNDAY:
        return None
    subjects = TIMETABLE.get(day)
    if not subjects:
        return None
    if is_banned(chat_id):
        logger.info(f"Чат {chat_id} заблокирован, расписание не отправлено")
        return None

    last_id = get_last_message(chat_id)
    if last_id:
        try:
            await bot.delete_message(chat_id=chat_id, message_id=last_id)
        except TelegramError as e:
            logger.debug(f"Не удалось удалить сообщение {last_id} в чате {chat_id}: {e}")

    message = await bot.send_message(
        chat_id=chat_id,
        text=format_day(day, subjects),
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=main_menu_keyboard()
    )
    set_last_message(chat_id, message.message_id)
    log_stat("interaction", chat_id, "view_schedule")
    return message


async def send_full_timetable(bot: Bot, chat_id: int) -> Optional[Message]:
    """Отправляет расписание на всю неделю."""
    if is_banned(chat_id):
        return None
    message = await bot.send_message(
        chat_id=chat_id,
        text=format_full_timetable(),
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=main_menu_keyboard()
    )
    log_stat("interaction", chat_id, "view_full_timetable")
    return message


async def push_schedule(bot: Bot, day: int) -> int:
    """Рассылает расписание всем чатам с включённым напоминанием. Возвращает число успешных отправок."""
    sent = 0
    for row in list_chats(reminder_only=True):
        try:
            if await send_schedule(bot, row['chat_id'], day):
                sent += 1
        except TelegramError as e:
            logger.warning(f"Не удалось отправить расписание в чат {row['chat_id']}: {e}")
    logger.info(f"📤 Расписание на день {day} отправлено в {sent} чатов")
    return sent


# === Рассылка администратора ===

async def _bot_left_chat(bot: Bot, chat_id: int, bot_id: Optional[int]) -> Optional[str]:
    """Возвращает статус, если бот больше не участник чата."""
    if not bot_id:
        return None
    try:
        member = await bot.get_chat_member(chat_id=chat_id, user_id=bot_id)
    except TelegramError as e:
        logger.warning(f"Рассылка: проверка участия в {chat_id} не удалась: {e}")
        return None
    if member.status in (ChatMemberStatus.LEFT, ChatMemberStatus.BANNED):
        return str(member.status)
    return None


def _retry_delay(error: RetryAfter) -> float:
    delay = error.retry_after
    if isinstance(delay, datetime.timedelta):
        return delay.total_seconds()
    return float(delay)


async def _send_with_retries(bot: Bot, chat_id: int, text: str) -> Optional[str]:
    """Отправляет сообщение до BROADCAST_ATTEMPTS раз. Возвращает текст ошибки или None."""
    last_error = None
    for attempt in range(1, BROADCAST_ATTEMPTS + 1):
        try:
            logger.info(f"Рассылка: отправка в {chat_id} (попытка {attempt})")
            await bot.send_message(chat_id=chat_id, text=text)
            return None
        except RetryAfter as e:
            last_error = e
            await asyncio.sleep(_retry_delay(e))
        except TelegramError as e:
            last_error = e
            logger.warning(f"Рассылка в {chat_id}, попытка {attempt} не удалась: {e}")
            if is_permanent_error(e):
                break
            await asyncio.sleep(RETRY_DELAY * attempt)
    return str(last_error)


async def broadcast(bot: Bot, text: str, bot_id: Optional[int] = None) -> BroadcastResult:
    """
    Рассылает сообщение администратора во все группы.

    Личные чаты (положительные ID) пропускаются. Чаты, из которых бот удалён,
    убираются из базы.
    """
    result = BroadcastResult()
    message = f"📣 Admin xabari\n\n{text}"

    for row in list_chats():
        chat_id = int(row['chat_id'])
        if chat_id >= 0:
            continue

        if is_banned(chat_id):
            logger.info(f"Рассылка: чат {chat_id} заблокирован, пропускаем")
            result.failures.append((chat_id, "banned"))
            continue

        status = await _bot_left_chat(bot, chat_id, bot_id)
        if status:
            logger.info(f"Рассылка: бот не участник {chat_id} (status={status}), удаляем из базы")
            remove_chat(chat_id)
            result.failures.append((chat_id, f"not_member ({status})"))
            continue

        error = await _send_with_retries(bot, chat_id, message)
        if error is None:
            result.successes.append(chat_id)
        else:
            result.failures.append((chat_id, error))

    logger.info(f"📣 Рассылка завершена: успешно {len(result.successes)}, ошибок {len(result.failures)}")
    return result


def format_broadcast_summary(result: BroadcastResult) -> str:
    text = f"✅ Broadcast yuborildi: {len(result.successes)} ta guruhga."
    if result.failures:
        text += f"\n⚠️ {len(result.failures)} ta guruhga yuborilmadi."
        lines = "\n".join(
            f"• {chat_id}: {reason}" for chat_id, reason in result.failures[:SUMMARY_MAX_FAILURES]
        )
        text += f"\n\nXatolar (max {SUMMARY_MAX_FAILURES}):\n{lines}"
    return text
