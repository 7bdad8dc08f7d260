from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram import Update

import bot
import scheduler as scheduler_module
from conftest import make_context, make_update
from sender import BroadcastResult

ADMIN = "school_admin"


@pytest.fixture(autouse=True)
def fake_scheduler(monkeypatch):
    fake = MagicMock()
    monkeypatch.setattr(scheduler_module, "scheduler", fake)
    return fake


def sent_texts(fake_bot):
    return [call.kwargs['text'] for call in fake_bot.send_message.call_args_list]


async def test_start_subscribes_private_chat(db, fake_bot):
    update = make_update(chat_id=100, username="ali", first_name="Ali")

    await bot.start(update, make_context(fake_bot))

    row = db.get_chat(100)
    assert row['first_name'] == "Ali"
    assert row['username'] == "ali"
    assert row['last_start_ts'] > 0
    kwargs = fake_bot.send_message.call_args.kwargs
    assert "Salom Ali!" in kwargs['text']
    buttons = [b.callback_data for line in kwargs['reply_markup'].inline_keyboard for b in line]
    assert buttons == ["cmd_tomorrow", "cmd_today", "cmd_yesterday", "cmd_help"]


async def test_start_is_throttled(db, fake_bot):
    update = make_update(chat_id=100)
    await bot.start(update, make_context(fake_bot))
    await bot.start(update, make_context(fake_bot))

    assert sent_texts(fake_bot)[-1] == "Biroz kuting 🙂"


async def test_start_in_group_redirects_non_admin(db, fake_bot):
    update = make_update(chat_id=-100, chat_type="supergroup", username="ali")

    await bot.start(update, make_context(fake_bot))

    assert db.get_chat(-100) is None
    markup = fake_bot.send_message.call_args.kwargs['reply_markup']
    assert markup.inline_keyboard[0][0].url == "https://t.me/TimetableBot"


async def test_start_in_group_by_admin_subscribes(db, fake_bot):
    update = make_update(chat_id=-100, chat_type="group", username=ADMIN)
    await bot.start(update, make_context(fake_bot))
    assert db.get_chat(-100) is not None


async def test_admin_command_requires_admin(db, fake_bot):
    await bot.admin_command(make_update(username="ali"), make_context(fake_bot))
    assert sent_texts(fake_bot) == ["Siz admin emassiz."]

    await bot.admin_command(make_update(username=ADMIN), make_context(fake_bot))
    assert sent_texts(fake_bot)[-1] == "⚙️ Admin panel:"


async def test_today_on_sunday_has_no_lessons(db, fake_bot, monkeypatch):
    monkeypatch.setattr(bot, "today_index", lambda: 0)
    update = make_update(chat_id=100, data="cmd_today")

    await bot.button_handler(update, make_context(fake_bot))

    update.callback_query.answer.assert_awaited_once()
    assert sent_texts(fake_bot) == [bot.NO_CLASSES_TEXT]


async def test_tomorrow_sends_schedule(db, fake_bot, monkeypatch):
    monkeypatch.setattr(bot, "tomorrow_index", lambda: 2)
    update = make_update(chat_id=100, first_name="Ali", data="cmd_tomorrow")

    await bot.button_handler(update, make_context(fake_bot))

    texts = sent_texts(fake_bot)
    assert texts[0] == "Salom Ali! ➡️ Ertangi darslar:"
    assert texts[1].startswith("📚 *Seshanba* darslari:")
    assert db.get_last_message(100) == 555


async def test_yesterday_on_monday_has_no_lessons(db, fake_bot, monkeypatch):
    monkeypatch.setattr(bot, "yesterday_index", lambda: 0)

    await bot.button_handler(make_update(chat_id=100, data="cmd_yesterday"), make_context(fake_bot))

    assert sent_texts(fake_bot) == ["😴 Yakshanba — dars yo'q."]
    fake_bot.delete_message.assert_not_awaited()


async def test_yesterday_on_sunday_sends_saturday(db, fake_bot, monkeypatch):
    monkeypatch.setattr(bot, "yesterday_index", lambda: 6)

    await bot.button_handler(make_update(chat_id=100, first_name="Ali", data="cmd_yesterday"), make_context(fake_bot))

    texts = sent_texts(fake_bot)
    assert texts[0] == "Salom Ali! ◀️ Kechagi darslar:"
    assert texts[1].startswith("📚 *Shanba* darslari:")


async def test_full_timetable_button(db, fake_bot):
    await bot.button_handler(make_update(chat_id=100, data="cmd_full"), make_context(fake_bot))
    assert sent_texts(fake_bot)[1].startswith("📚 *To'liq dars jadvali*")


async def test_stop_unsubscribes(db, fake_bot):
    db.upsert_chat(100)
    await bot.button_handler(make_update(chat_id=100, data="cmd_stop"), make_context(fake_bot))
    assert db.get_chat(100) is None
    assert sent_texts(fake_bot)[0].startswith("🛑 Obuna bekor qilindi.")


async def test_stats_button(db, fake_bot):
    db.upsert_chat(100)
    await bot.button_handler(make_update(chat_id=100, data="cmd_stats"), make_context(fake_bot))
    assert "👥 Foydalanuvchilar: 1" in sent_texts(fake_bot)[0]


async def test_toggle_reminder(db, fake_bot):
    db.upsert_chat(100)
    await bot.button_handler(make_update(chat_id=100, data="settings_toggle_reminder"), make_context(fake_bot))
    assert sent_texts(fake_bot)[-1] == "🔔 Reminder: 🔇 O'chirilgan"
    assert db.get_chat(100)['reminder_enabled'] == 0


async def test_toggle_reminder_after_stop_reports_stored_value(db, fake_bot):
    context = make_context(fake_bot)
    db.upsert_chat(100)
    await bot.button_handler(make_update(chat_id=100, data="cmd_stop"), context)

    await bot.button_handler(make_update(chat_id=100, data="settings_toggle_reminder"), context)

    assert db.get_chat(100)['reminder_enabled'] == 0
    assert sent_texts(fake_bot)[-1] == "🔔 Reminder: 🔇 O'chirilgan"


async def test_user_sets_reminder_time(db, fake_bot):
    db.upsert_chat(100)
    await bot.button_handler(
        make_update(chat_id=100, username="ali", data="settings_reminder_time"), make_context(fake_bot)
    )
    assert db.get_pending("ali")['action'] == bot.USER_REMINDER_TIME_WAIT

    await bot.on_text(make_update(chat_id=100, username="ali", text="7:30"), make_context(fake_bot))

    assert db.get_chat(100)['reminder_time'] == "07:30"
    assert db.get_pending("ali") is None
    assert sent_texts(fake_bot)[-1] == "✅ Reminder vaqti o'rnatildi: 07:30"


async def test_user_without_username_uses_chat_id_for_pending(db, fake_bot):
    db.upsert_chat(100)
    await bot.button_handler(
        make_update(chat_id=100, username=None, data="settings_reminder_time"), make_context(fake_bot)
    )
    await bot.on_text(make_update(chat_id=100, username=None, text="06:45"), make_context(fake_bot))
    assert db.get_chat(100)['reminder_time'] == "06:45"


async def test_text_without_pending_is_ignored(db, fake_bot):
    db.upsert_chat(100)
    await bot.on_text(make_update(chat_id=100, text="salom"), make_context(fake_bot))
    fake_bot.send_message.assert_not_awaited()


async def test_cancel_clears_pending(db, fake_bot):
    db.set_pending("ali", bot.USER_REMINDER_TIME_WAIT)
    await bot.cancel(make_update(username="ali"), make_context(fake_bot))
    assert db.get_pending("ali") is None
    assert sent_texts(fake_bot) == ["✅ Bekor qilindi."]


async def test_admin_buttons_are_denied_to_users(db, fake_bot):
    await bot.button_handler(make_update(username="ali", data="admin_dashboard"), make_context(fake_bot))
    assert sent_texts(fake_bot) == ["Ruxsat yo'q."]


async def test_admin_dashboard_shows_send_time(db, fake_bot):
    db.set_setting("SEND_TIME", "08:00")
    await bot.button_handler(make_update(username=ADMIN, data="admin_dashboard"), make_context(fake_bot))
    assert "🕒 Jo'natish vaqti: 08:00" in sent_texts(fake_bot)[0]


async def test_admin_preset_time(db, fake_bot, fake_scheduler):
    await bot.button_handler(make_update(username=ADMIN, data="admin_time_12:00"), make_context(fake_bot))
    assert db.get_setting("SEND_TIME") == "12:00"
    fake_scheduler.add_job.assert_called_once()
    assert sent_texts(fake_bot)[-1] == "✅ Jo'natish vaqti yangilandi: 12:00"


async def test_admin_custom_time_flow(db, fake_bot):
    context = make_context(fake_bot)
    await bot.button_handler(make_update(username=ADMIN, data="admin_set_time"), context)
    assert db.get_pending(ADMIN)['action'] == bot.SET_TIME_WAIT

    await bot.on_text(make_update(username=ADMIN, text="25:00"), context)
    assert sent_texts(fake_bot)[-1].startswith("❌ Noto'g'ri format.")
    assert db.get_pending(ADMIN) is not None

    await bot.on_text(make_update(username=ADMIN, text="8:30"), context)
    assert db.get_setting("SEND_TIME") == "08:30"
    assert db.get_pending(ADMIN) is None


def _text_handler():
    application = MagicMock()
    bot.register_handlers(application)
    handlers = [c.args[0] for c in application.add_handler.call_args_list]
    return next(h for h in handlers if getattr(h, "callback", None) is bot.on_text)


def _raw_update(kind):
    return Update.de_json({
        "update_id": 1,
        kind: {
            "message_id": 7,
            "date": 1704067200,
            "edit_date": 1704067260,
            "chat": {"id": 100, "type": "private"},
            "from": {"id": 1, "is_bot": False, "first_name": "Ali", "username": ADMIN},
            "text": "12:00",
        },
    }, None)


def test_text_handler_accepts_only_new_messages():
    handler = _text_handler()
    assert handler.check_update(_raw_update("message"))
    assert not handler.check_update(_raw_update("edited_message"))


async def test_edited_text_reads_effective_message(db, fake_bot):
    db.set_pending(ADMIN, bot.SET_TIME_WAIT)
    update = make_update(username=ADMIN, text="12:00", edited=True)
    assert update.message is None

    await bot.on_text(update, make_context(fake_bot))

    assert db.get_setting("SEND_TIME") == "12:00"
    assert sent_texts(fake_bot)[-1] == "✅ Jo'natish vaqti yangilandi: 12:00"


async def test_admin_broadcast_flow(db, fake_bot, monkeypatch):
    broadcast = AsyncMock(return_value=BroadcastResult(successes=[-1, -2]))
    monkeypatch.setattr(bot, "broadcast", broadcast)
    context = make_context(fake_bot)

    await bot.button_handler(make_update(username=ADMIN, data="admin_broadcast"), context)
    await bot.on_text(make_update(username=ADMIN, text="Ertaga bayram"), context)

    broadcast.assert_awaited_once_with(fake_bot, "Ertaga bayram", 4242)
    assert sent_texts(fake_bot)[-1] == "✅ Broadcast yuborildi: 2 ta guruhga."
    assert db.get_pending(ADMIN) is None


async def test_non_admin_cannot_run_admin_pending_action(db, fake_bot, monkeypatch):
    broadcast = AsyncMock()
    monkeypatch.setattr(bot, "broadcast", broadcast)
    db.set_pending("ali", bot.BROADCAST_WAIT)

    await bot.on_text(make_update(username="ali", text="spam"), make_context(fake_bot))

    broadcast.assert_not_awaited()


async def test_admin_list_and_remove(db, fake_bot):
    db.upsert_chat(-100, "Group A")
    db.upsert_chat(200, "", "bob")
    db.set_last_interaction(200, 2000)
    db.set_last_interaction(-100, 1000)

    await bot.button_handler(make_update(username=ADMIN, data="admin_list"), make_context(fake_bot))

    kwargs = fake_bot.send_message.call_args.kwargs
    assert kwargs['text'] == "🔎 Chatlar: 2 ta\n\n1. bob (200)\n2. Group A (-100)"
    buttons = [line[0].callback_data for line in kwargs['reply_markup'].inline_keyboard]
    assert buttons == ["admin_remove_200", "admin_remove_-100", "admin_back"]

    await bot.button_handler(make_update(username=ADMIN, data="admin_remove_-100"), make_context(fake_bot))
    assert db.get_chat(-100) is None
    assert sent_texts(fake_bot)[-1] == "✅ Chat -100 o'chirildi."


async def test_admin_list_empty(db, fake_bot):
    await bot.button_handler(make_update(username=ADMIN, data="admin_list"), make_context(fake_bot))
    assert sent_texts(fake_bot) == ["Hech qanday chat topilmadi."]


async def test_ban_commands(db, fake_bot):
    db.upsert_chat(-100, "Group")

    await bot.ban_command(make_update(username=ADMIN), make_context(fake_bot, ["-100", "spam"]))
    assert db.is_banned(-100)
    assert db.get_chat(-100) is None

    await bot.banned_command(make_update(username=ADMIN), make_context(fake_bot))
    assert "• -100 — spam" in sent_texts(fake_bot)[-1]

    await bot.unban_command(make_update(username=ADMIN), make_context(fake_bot, ["-100"]))
    assert not db.is_banned(-100)

    await bot.ban_command(make_update(username=ADMIN), make_context(fake_bot, ["abc"]))
    assert sent_texts(fake_bot)[-1].startswith("Foydalanish: /ban")


async def test_bot_membership_updates(db, fake_bot):
    chat = SimpleNamespace(id=-100, title="10-A sinf", first_name=None, username=None)
    update = make_update()
    update.my_chat_member = SimpleNamespace(chat=chat, new_chat_member=SimpleNamespace(status="administrator"))

    await bot.on_chat_member_update(update, make_context(fake_bot))
    assert db.get_chat(-100)['first_name'] == "10-A sinf"

    update.my_chat_member = SimpleNamespace(chat=chat, new_chat_member=SimpleNamespace(status="kicked"))
    await bot.on_chat_member_update(update, make_context(fake_bot))
    assert db.get_chat(-100) is None


async def test_group_activity_registers_chat(db, fake_bot):
    update = make_update(chat_id=-300, chat_type="group", title="Ota-onalar")
    await bot.track_group_chat(update, make_context(fake_bot))
    assert db.get_chat(-300)['first_name'] == "Ota-onalar"
