# timetable.py
import datetime
from typing import Optional

from config import TIMEZONE

# Недельное расписание: 1 = понедельник ... 6 = суббота
TIMETABLE = {
    1: ["Sinf soati", "Ingliz tili", "Adabiyot", "Algebra", "Informatika", "Geografiya"],
    2: ["Fizika", "Ona tili", "O'zb tarix", "Ingliz tili", "Geometriya", "Jismoniy tarbiya"],
    3: ["Kimyo", "Informatika", "Geografiya", "Algebra", "Fizika", "Rus tili"],
    4: ["Adabiyot", "O'zb tarix", "Biologiya", "Texnologiya", "Geometriya", "Ingliz tili"],
    5: ["Ingliz tili", "Jahon tarixi", "Algebra", "Rus tili", "Fizika", "Tarbiya"],
    6: ["Kimyo", "Biologiya", "Algebra", "San'art", "Geometriya", "Ona tili"],
}

# 0 = воскресенье
DAY_NAMES = ["Yakshanba", "Dushanba", "Seshanba", "Chorshanba", "Payshanba", "Juma", "Shanba"]

SUNDAY = 0
MONDAY = 1
SATURDAY = 6


def now_local() -> datetime.datetime:
    """Текущее время в часовом поясе бота."""
    return datetime.datetime.now(TIMEZONE)


def day_index(now: datetime.datetime) -> int:
    """Номер дня недели: 0 = воскресенье, 6 = суббота."""
    return now.isoweekday() % 7


def today_index(now: Optional[datetime.datetime] = None) -> int:
    return day_index(now or now_local())


def tomorrow_index(now: Optional[datetime.datetime] = None) -> int:
    """
    Учебный день, который считается «завтра».
    В субботу и воскресенье следующий учебный день — понедельник.
    """
    today = day_index(now or now_local())
    if today in (SATURDAY, SUNDAY):
        return MONDAY
    return today + 1


def yesterday_index(now: Optional[datetime.datetime] = None) -> int:
    today = day_index(now or now_local())
    if today == SUNDAY:
        return SATURDAY
    return today - 1


def format_day(index: int, subjects: list[str]) -> str:
    """Форматирует список уроков одного дня (Markdown)."""
    title = DAY_NAMES[index]
    lines = "\n".join(f"{i}. {subject}" for i, subject in enumerate(subjects, start=1))
    return f"📚 *{title}* darslari:\n{lines}"


def format_full_timetable() -> str:
    """Форматирует расписание на всю неделю (Markdown)."""
    lines = []
    for index in range(MONDAY, SATURDAY + 1):
        lines.append(f"*{DAY_NAMES[index]}*")
        for i, subject in enumerate(TIMETABLE.get(index, []), start=1):
            lines.append(f"{i}. {subject}")
        lines.append("")
    return "📚 *To'liq dars jadvali*\n\n" + "\n".join(lines)
