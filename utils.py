# utils.py
import re
import time
from typing import Optional

from telegram import User
from telegram.error import BadRequest, ChatMigrated, Forbidden, TelegramError

from config import ADMIN_USERNAME

_TIME_RE = re.compile(r'^([01]?\d|2[0-3]):([0-5]\d)$')

# Фрагменты текста ошибок, после которых повторять отправку бессмысленно
_PERMANENT_ERROR_MARKERS = ("not member", "bot was kicked", "chat not found", "forbidden", "bad request")


def parse_time(text: str) -> Optional[str]:
    """
    Парсит время в формате "ЧЧ:ММ" (допускается "Ч:ММ").
    Возвращает нормализованную строку "ЧЧ:ММ" или None.
    """
    match = _TIME_RE.match((text or "").strip())
    if not match:
        return None
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def split_time(value: str) -> tuple[int, int]:
    """Разбивает "ЧЧ:ММ" на часы и минуты."""
    normalized = parse_time(value)
    if normalized is None:
        raise ValueError(f"Неверный формат времени: {value!r}. Используйте ЧЧ:ММ")
    hour, minute = normalized.split(":")
    return int(hour), int(minute)


def is_admin(user: Optional[User]) -> bool:
    return bool(user and user.username and user.username == ADMIN_USERNAME)


def pending_key(user: Optional[User], chat_id: int) -> str:
    """Ключ ожидаемого действия: username пользователя или ID чата."""
    if user and user.username:
        return user.username
    return str(chat_id)


def is_permanent_error(error: Exception) -> bool:
    """Ошибка, при которой повторная отправка в чат не поможет."""
    if isinstance(error, (Forbidden, BadRequest, ChatMigrated)):
        return True
    if not isinstance(error, TelegramError):
        return False
    message = str(error).lower()
    return any(marker in message for marker in _PERMANENT_ERROR_MARKERS)


def now_ts() -> int:
    return int(time.time())
