# bot.py
# Telegram бот с расписанием уроков
# Ежедневно отправляет расписание на завтра и отвечает на запросы через inline-меню

import logging
import asyncio
from telegram import Update
from telegram.constants import ChatMemberStatus, ChatType, ParseMode
from telegram.error import TelegramError
from telegram.ext import (
    Application, CommandHandler, MessageHandler, ContextTypes,
    filters, CallbackQueryHandler, ChatMemberHandler
)

from config import BOT_TOKEN, BASE_URL, LOG_LEVEL, PORT, WEBHOOK_PATH, TIMEZONE
from database import (
    init_db, upsert_chat, remove_chat, set_last_start_ts,
    get_last_start_ts, set_last_interaction, list_chats, toggle_reminder,
    set_language, set_reminder_time, ban_chat, unban_chat, list_banned,
    set_pending, get_pending, clear_pending, log_stat, get_stats
)
from keyboards import (
    CHAT_LIST_PAGE_SIZE, main_menu_keyboard, start_keyboard, settings_keyboard,
    admin_keyboard, admin_time_keyboard, chat_list_keyboard,
    private_chat_keyboard, remove_keyboard
)
from scheduler import get_send_time, start_scheduler, update_send_time, scheduler
from sender import send_schedule, send_full_timetable, broadcast, format_broadcast_summary
from timetable import SUNDAY, today_index, tomorrow_index, yesterday_index
from utils import parse_time, is_admin, pending_key, now_ts
from webserver import start_web_server

# === Настройка логирования ===
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("apscheduler").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

# === Ожидаемые действия ===
USER_REMINDER_TIME_WAIT = "user_reminder_time_wait"
BROADCAST_WAIT = "broadcast_wait"
SET_TIME_WAIT = "set_time_wait"

START_THROTTLE_SECONDS = 10
DEFAULT_NAME = "do'st"
NO_CLASSES_TEXT = "😴 Yakshanba — dars yo'q."

HELP_TEXT = (
    "ℹ️ *Yordam*\n"
    "• \"Bugun\" — bugungi darslar\n"
    "• \"Ertaga\" — ertangi darslar\n"
    "• \"To'liq jadval\" — hafta jadvali\n"
    "• \"Sozlamalar\" — reminder va tili\n"
    "• \"Statistika\" — bot statistikasi\n"
    "• \"Stop\" — obunani bekor qilish\n\n"
    "Admin: /admin"
)


async def reply(update: Update, context: ContextTypes.DEFAULT_TYPE, text: str, **kwargs):
    """Отправляет новое сообщение в чат, из которого пришло обновление."""
    return await context.bot.send_message(chat_id=update.effective_chat.id, text=text, **kwargs)


def _user_names(update: Update, default_first_name: str = "") -> tuple[str, str]:
    user = update.effective_user
    if not user:
        return default_first_name, ""
    return user.first_name or default_first_name, user.username or ""


# === Декоратор авторизации ===
def check_admin(func):
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not is_admin(update.effective_user):
            user_id = update.effective_user.id if update.effective_user else None
            logger.warning(f"Попытка доступа к админ-команде от {user_id}")
            await reply(update, context, "Siz admin emassiz.")
            return
        return await func(update, context)
    return wrapper


# === Команда /start ===
async def start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Подписывает чат и показывает стартовое меню."""
    chat = update.effective_chat
    first_name, username = _user_names(update)

    now = now_ts()
    if now - get_last_start_ts(chat.id) < START_THROTTLE_SECONDS:
        await reply(update, context, "Biroz kuting 🙂")
        return

    # В группах подписывать может только админ, остальных отправляем в личку
    if chat.type != ChatType.PRIVATE and not is_admin(update.effective_user):
        await reply(
            update, context,
            "Iltimos, bot bilan shaxsiy suhbatda muloqot qiling. Tugmani bosing:",
            reply_markup=private_chat_keyboard(context.bot.username)
        )
        return

    upsert_chat(chat.id, first_name, username)
    set_last_start_ts(chat.id, now)
    set_last_interaction(chat.id, now)
    log_stat("start", chat.id)
    logger.info(f"✅ Чат {chat.id} подписан (@{username or '-'})")

    await reply(
        update, context,
        f"✅ Bot tayyor.\n👋 Salom {first_name or DEFAULT_NAME}!\n\nQuyidagi tugmalarni bosing 👇",
        reply_markup=start_keyboard()
    )


# === Команда /admin ===
@check_admin
async def admin_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await reply(update, context, "⚙️ Admin panel:", reply_markup=admin_keyboard())


# === Отмена операции ===
async def cancel(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Отменяет ожидаемое действие."""
    clear_pending(pending_key(update.effective_user, update.effective_chat.id))
    await reply(update, context, "✅ Bekor qilindi.")


# === Блокировка чатов ===
def _parse_chat_id(args):
    if not args:
        return None
    try:
        return int(args[0])
    except ValueError:
        return None


@check_admin
async def ban_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """/ban <chat_id> [причина]"""
    chat_id = _parse_chat_id(context.args)
    if chat_id is None:
        await reply(update, context, "Foydalanish: /ban <chat_id> [sabab]")
        return
    reason = " ".join(context.args[1:])
    ban_chat(chat_id, reason)
    await reply(update, context, f"🚫 Chat {chat_id} bloklandi.")


@check_admin
async def unban_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """/unban <chat_id>"""
    chat_id = _parse_chat_id(context.args)
    if chat_id is None:
        await reply(update, context, "Foydalanish: /unban <chat_id>")
        return
    if unban_chat(chat_id):
        await reply(update, context, f"✅ Chat {chat_id} blokdan chiqarildi.")
    else:
        await reply(update, context, f"Chat {chat_id} bloklanganlar ro'yxatida yo'q.")


@check_admin
async def banned_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    rows = list_banned()
    if not rows:
        await reply(update, context, "Bloklangan chatlar yo'q.")
        return
    lines = "\n".join(
        f"• {row['chat_id']}" + (f" — {row['reason']}" if row['reason'] else "")
        for row in rows
    )
    await reply(update, context, f"🚫 Bloklangan chatlar: {len(rows)} ta\n\n{lines}")


# === Обработка добавления/удаления из чата ===
async def on_chat_member_update(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Срабатывает при изменении статуса бота в чате."""
    my_chat_member = update.my_chat_member
    if not my_chat_member:
        return

    chat = my_chat_member.chat
    new_status = my_chat_member.new_chat_member.status

    if new_status in (ChatMemberStatus.MEMBER, ChatMemberStatus.ADMINISTRATOR):
        title = chat.title or chat.first_name or ""
        upsert_chat(chat.id, title, chat.username or "")
        logger.info(f"✅ Бот добавлен в чат {chat.id} ({title})")

    elif new_status in (ChatMemberStatus.LEFT, ChatMemberStatus.BANNED):
        remove_chat(chat.id)
        logger.info(f"⏹️ Бот удалён из чата {chat.id}")


# === Кнопки пользователя ===
async def show_day(update: Update, context: ContextTypes.DEFAULT_TYPE, day: int, heading: str):
    chat_id = update.effective_chat.id
    first_name, username = _user_names(update, DEFAULT_NAME)
    upsert_chat(chat_id, first_name, username)
    if day == SUNDAY:
        await reply(update, context, NO_CLASSES_TEXT, reply_markup=main_menu_keyboard())
        return
    await reply(update, context, f"Salom {first_name}! {heading}")
    await send_schedule(context.bot, chat_id, day)


async def show_stats(update: Update, context: ContextTypes.DEFAULT_TYPE):
    stats = get_stats()
    await reply(
        update, context,
        "📊 *Bot Statistikasi*\n\n"
        f"👥 Foydalanuvchilar: {stats['total_users']}\n"
        f"💬 Jami o'zaro muloqot: {stats['total_interactions']}\n"
        f"🔥 Bugun faol: {stats['active_today']}",
        parse_mode=ParseMode.MARKDOWN,
        reply_markup=main_menu_keyboard()
    )


async def button_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обрабатывает нажатия кнопок."""
    query = update.callback_query
    data = query.data or ""
    chat_id = update.effective_chat.id
    first_name, username = _user_names(update, DEFAULT_NAME)

    logger.info(f"callback_query: data={data} from={username} chat={chat_id}")
    try:
        await query.answer()
    except TelegramError as e:
        logger.warning(f"Не удалось ответить на callback: {e}")

    set_last_interaction(chat_id)

    if data == "cmd_today":
        await show_day(update, context, today_index(), "📌 Bugungi darslar:")

    elif data == "cmd_tomorrow":
        await show_day(update, context, tomorrow_index(), "➡️ Ertangi darslar:")

    elif data == "cmd_yesterday":
        await show_day(update, context, yesterday_index(), "◀️ Kechagi darslar:")

    elif data == "cmd_full":
        upsert_chat(chat_id, first_name, username)
        await reply(update, context, f"Salom {first_name}! 📅 To'liq jadval:")
        await send_full_timetable(context.bot, chat_id)

    elif data == "cmd_settings":
        await reply(update, context, "⚙️ Sozlamalar:", reply_markup=settings_keyboard())

    elif data == "cmd_stats":
        await show_stats(update, context)

    elif data == "cmd_stop":
        remove_chat(chat_id)
        log_stat("stop", chat_id)
        await reply(
            update, context,
            "🛑 Obuna bekor qilindi.\nQayta yoqish uchun /start.",
            reply_markup=remove_keyboard()
        )

    elif data == "cmd_help":
        await reply(update, context, HELP_TEXT, parse_mode=ParseMode.MARKDOWN, reply_markup=main_menu_keyboard())

    elif data == "cmd_back":
        await reply(update, context, "🔙 Asosiy menyu:", reply_markup=main_menu_keyboard())

    elif data == "settings_toggle_reminder":
        upsert_chat(chat_id, first_name, username)
        enabled = toggle_reminder(chat_id)
        status = "✅ Yoqilgan" if enabled else "🔇 O'chirilgan"
        await reply(update, context, f"🔔 Reminder: {status}", reply_markup=settings_keyboard())

    elif data == "settings_lang_uz":
        set_language(chat_id, "uz")
        await reply(update, context, "🌍 Til: O'zbek tanlandi", reply_markup=settings_keyboard())

    elif data == "settings_reminder_time":
        set_pending(pending_key(update.effective_user, chat_id), USER_REMINDER_TIME_WAIT)
        await reply(
            update, context,
            "🕒 Reminder vaqtini shu formatda yuboring: HH:MM\nMasalan: 07:00\n\n/cancel bilan bekor qiling."
        )

    elif data.startswith("admin_"):
        await admin_button_handler(update, context, data)


# === Кнопки администратора ===
async def admin_button_handler(update: Update, context: ContextTypes.DEFAULT_TYPE, data: str):
    user = update.effective_user
    if not is_admin(user):
        await reply(update, context, "Ruxsat yo'q.")
        return
    owner = pending_key(user, update.effective_chat.id)

    if data == "admin_back":
        await reply(update, context, "⚙️ Admin panel:", reply_markup=admin_keyboard())

    elif data == "admin_dashboard":
        stats = get_stats()
        await reply(
            update, context,
            "📊 *Admin Boshqaruv Paneli*\n\n"
            f"👥 Jami foydalanuvchilar: {stats['total_users']}\n"
            f"💬 Jami muloqot: {stats['total_interactions']}\n"
            f"🔥 Bugun faol: {stats['active_today']}\n"
            f"🕒 Jo'natish vaqti: {get_send_time()}\n\n"
            "Boshqa amallarga admin panelini ishlating.",
            parse_mode=ParseMode.MARKDOWN,
            reply_markup=admin_keyboard()
        )

    elif data == "admin_stats":
        stats = get_stats()
        await reply(
            update, context,
            "📈 *Chuqur Statistika*\n\n"
            f"👥 Foydalanuvchilar: {stats['total_users']}\n"
            f"💬 Jami muloqot: {stats['total_interactions']}\n"
            f"🔥 Bugun faol: {stats['active_today']}\n"
            f"🕐 Hozirgi jo'natish vaqti: {get_send_time()}",
            parse_mode=ParseMode.MARKDOWN,
            reply_markup=admin_keyboard()
        )

    elif data == "admin_list":
        await show_chat_list(update, context)

    elif data == "admin_broadcast":
        set_pending(owner, BROADCAST_WAIT)
        await reply(
            update, context,
            "📣 Iltimos, yuboriladigan xabar matnini shu chatga yuboring.\n\n/cancel bilan bekor qiling.",
            reply_markup=remove_keyboard()
        )

    elif data == "admin_set_time":
        set_pending(owner, SET_TIME_WAIT)
        await reply(
            update, context,
            "🕒 Vaqtni tanlang yoki HH:MM formatida yuboring:",
            reply_markup=admin_time_keyboard()
        )

    elif data == "admin_time_custom":
        set_pending(owner, SET_TIME_WAIT)
        await reply(update, context, "🕒 Iltimos, HH:MM formatida vaqt yuboring (masalan 08:30):")

    elif data.startswith("admin_time_"):
        send_time = parse_time(data[len("admin_time_"):])
        if send_time is None:
            await reply(update, context, "❌ Noto'g'ri vaqt.")
            return
        update_send_time(context.bot, send_time)
        clear_pending(owner)
        await reply(update, context, f"✅ Jo'natish vaqti yangilandi: {send_time}")

    elif data.startswith("admin_remove_"):
        raw_id = data[len("admin_remove_"):]
        try:
            remove_chat(int(raw_id))
        except ValueError:
            await reply(update, context, f"❌ Xato: noto'g'ri chat ID {raw_id}")
            return
        await reply(update, context, f"✅ Chat {raw_id} o'chirildi.")


async def show_chat_list(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Первая страница подписанных чатов с кнопками удаления."""
    chats = list_chats(order_by_activity=True)
    page_items = chats[:CHAT_LIST_PAGE_SIZE]
    if not page_items:
        await reply(update, context, "Hech qanday chat topilmadi.")
        return

    lines = "\n".join(
        f"{i}. {row['first_name'] or row['username'] or row['chat_id']} ({row['chat_id']})"
        for i, row in enumerate(page_items, start=1)
    )
    await reply(
        update, context,
        f"🔎 Chatlar: {len(chats)} ta\n\n{lines}",
        reply_markup=chat_list_keyboard([row['chat_id'] for row in page_items])
    )


# === Сообщения ===
async def track_group_chat(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Регистрирует группу при любой активности в ней."""
    chat = update.effective_chat
    upsert_chat(chat.id, chat.title or chat.first_name or "", chat.username or "")


async def on_text(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обрабатывает текст, которого ждёт бот (время, текст рассылки)."""
    chat_id = update.effective_chat.id
    user = update.effective_user
    text = (update.effective_message.text or "").strip()

    set_last_interaction(chat_id)

    owner = pending_key(user, chat_id)
    pending = get_pending(owner)
    if not pending:
        return
    action = pending['action']

    if action == USER_REMINDER_TIME_WAIT:
        reminder_time = parse_time(text)
        if reminder_time is None:
            await reply(update, context, "❌ Noto'g'ri format. HH:MM formatida yuboring (masalan 07:00) yoki /cancel.")
            return
        set_reminder_time(chat_id, reminder_time)
        clear_pending(owner)
        await reply(update, context, f"✅ Reminder vaqti o'rnatildi: {reminder_time}", reply_markup=settings_keyboard())
        return

    if not is_admin(user):
        return

    if action == BROADCAST_WAIT:
        clear_pending(owner)
        result = await broadcast(context.bot, text, context.bot.id)
        await reply(update, context, format_broadcast_summary(result))

    elif action == SET_TIME_WAIT:
        send_time = parse_time(text)
        if send_time is None:
            await reply(update, context, "❌ Noto'g'ri format. HH:MM formatida yuboring (masalan 08:30) yoki /cancel.")
            return
        update_send_time(context.bot, send_time)
        clear_pending(owner)
        await reply(update, context, f"✅ Jo'natish vaqti yangilandi: {send_time}")


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    logger.error(f"Ошибка при обработке обновления: {context.error}", exc_info=context.error)


def register_handlers(application: Application):
    application.add_handler(
        MessageHandler(filters.ChatType.GROUPS, track_group_chat), group=-1
    )
    application.add_handler(CommandHandler("start", start))
    application.add_handler(CommandHandler("admin", admin_command))
    application.add_handler(CommandHandler("cancel", cancel))
    application.add_handler(CommandHandler("ban", ban_command))
    application.add_handler(CommandHandler("unban", unban_command))
    application.add_handler(CommandHandler("banned", banned_command))
    application.add_handler(ChatMemberHandler(on_chat_member_update, ChatMemberHandler.MY_CHAT_MEMBER))
    application.add_handler(CallbackQueryHandler(button_handler))
    application.add_handler(MessageHandler(filters.UpdateType.MESSAGE & filters.TEXT & ~filters.COMMAND, on_text))
    application.add_error_handler(error_handler)


# === Основная функция ===
async def main():
    """Основная функция запуска бота."""
    init_db()

    application = Application.builder().token(BOT_TOKEN).build()
    register_handlers(application)

    await application.initialize()
    logger.info(f"Бот @{application.bot.username} (id={application.bot.id})")

    await start_scheduler(application.bot)
    runner = await start_web_server(application, PORT)
    await application.start()

    if BASE_URL:
        webhook_url = f"{BASE_URL}{WEBHOOK_PATH}"
        try:
            await application.bot.set_webhook(webhook_url, allowed_updates=Update.ALL_TYPES)
            logger.info(f"✅ Webhook установлен: {webhook_url}")
        except TelegramError as e:
            logger.error(f"❌ Не удалось установить webhook: {e}")
    else:
        logger.info("ℹ️ BASE_URL не задан — запуск в режиме polling")
        await application.updater.start_polling(drop_pending_updates=True, allowed_updates=Update.ALL_TYPES)

    logger.info(f"✅ Бот запущен. Часовой пояс={TIMEZONE.zone}, рассылка в {get_send_time()}")
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        if application.updater.running:
            await application.updater.stop()
        await application.stop()
        await application.shutdown()
        await runner.cleanup()
        if scheduler.running:
            scheduler.shutdown(wait=False)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Бот остановлен")
