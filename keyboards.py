# keyboards.py
from typing import Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

ADMIN_TIME_CHOICES = ["08:00", "12:00", "18:00", "20:00"]
CHAT_LIST_PAGE_SIZE = 10


def main_menu_keyboard() -> InlineKeyboardMarkup:
    keyboard = [
        [
            InlineKeyboardButton("📌 Bugun", callback_data="cmd_today"),
            InlineKeyboardButton("➡️ Ertaga", callback_data="cmd_tomorrow"),
        ],
        [
            InlineKeyboardButton("📅 To'liq jadval", callback_data="cmd_full"),
            InlineKeyboardButton("⚙️ Sozlamalar", callback_data="cmd_settings"),
        ],
        [
            InlineKeyboardButton("📊 Statistika", callback_data="cmd_stats"),
            InlineKeyboardButton("🛑 Stop", callback_data="cmd_stop"),
        ],
        [InlineKeyboardButton("ℹ️ Yordam", callback_data="cmd_help")],
    ]
    return InlineKeyboardMarkup(keyboard)


def start_keyboard() -> InlineKeyboardMarkup:
    """Упрощённое меню после /start."""
    keyboard = [
        [
            InlineKeyboardButton("➡️ Ertaga", callback_data="cmd_tomorrow"),
            InlineKeyboardButton("📌 Bugun", callback_data="cmd_today"),
        ],
        [
            InlineKeyboardButton("◀️ Kecha", callback_data="cmd_yesterday"),
            InlineKeyboardButton("ℹ️ Yordam", callback_data="cmd_help"),
        ],
    ]
    return InlineKeyboardMarkup(keyboard)


def settings_keyboard() -> InlineKeyboardMarkup:
    keyboard = [
        [
            InlineKeyboardButton("🔔 Reminder On/Off", callback_data="settings_toggle_reminder"),
            InlineKeyboardButton("🌍 Til: O'zbek", callback_data="settings_lang_uz"),
        ],
        [
            InlineKeyboardButton("🕒 Reminder vaqti", callback_data="settings_reminder_time"),
            InlineKeyboardButton("🔙 Orqaga", callback_data="cmd_back"),
        ],
    ]
    return InlineKeyboardMarkup(keyboard)


def admin_keyboard() -> InlineKeyboardMarkup:
    keyboard = [
        [
            InlineKeyboardButton("📊 Boshqaruv paneli", callback_data="admin_dashboard"),
            InlineKeyboardButton("📢 Broadcast", callback_data="admin_broadcast"),
        ],
        [
            InlineKeyboardButton("📋 Chatlar", callback_data="admin_list"),
            InlineKeyboardButton("🕒 Jo'natish vaqti", callback_data="admin_set_time"),
        ],
        [
            InlineKeyboardButton("📈 Statistika", callback_data="admin_stats"),
            InlineKeyboardButton("🔙 Orqaga", callback_data="admin_back"),
        ],
    ]
    return InlineKeyboardMarkup(keyboard)


def admin_time_keyboard() -> InlineKeyboardMarkup:
    first, second, third, fourth = ADMIN_TIME_CHOICES
    keyboard = [
        [
            InlineKeyboardButton(first, callback_data=f"admin_time_{first}"),
            InlineKeyboardButton(second, callback_data=f"admin_time_{second}"),
            InlineKeyboardButton(third, callback_data=f"admin_time_{third}"),
        ],
        [
            InlineKeyboardButton(fourth, callback_data=f"admin_time_{fourth}"),
            InlineKeyboardButton("Custom", callback_data="admin_time_custom"),
        ],
        [InlineKeyboardButton("🔙 Orqaga", callback_data="admin_back")],
    ]
    return InlineKeyboardMarkup(keyboard)


def chat_list_keyboard(chat_ids: list[int]) -> InlineKeyboardMarkup:
    """Кнопка удаления для каждого чата на странице плюс «Назад»."""
    keyboard = [
        [InlineKeyboardButton(f"❌ {chat_id}", callback_data=f"admin_remove_{chat_id}")]
        for chat_id in chat_ids
    ]
    keyboard.append([InlineKeyboardButton("🔙 Orqaga", callback_data="admin_back")])
    return InlineKeyboardMarkup(keyboard)


def private_chat_keyboard(bot_username: Optional[str]) -> InlineKeyboardMarkup:
    """Ссылка на личный чат с ботом (для групп)."""
    if bot_username:
        button = InlineKeyboardButton("📩 Shaxsiy suhbatga o'tish", url=f"https://t.me/{bot_username}")
    else:
        button = InlineKeyboardButton("📩 Yozish (ochilmaydi)", callback_data="noop")
    return InlineKeyboardMarkup([[button]])


def remove_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([])
