import os
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

os.environ["BOT_TOKEN"] = "123456:test-token"
os.environ["ADMIN_USERNAME"] = "@school_admin"
os.environ["TIMEZONE"] = "Asia/Tashkent"
os.environ["SEND_TIME"] = "15:00"
os.environ["WEBHOOK_SECRET"] = "test-secret"

import database  # noqa: E402


@pytest.fixture(autouse=True)
def db(tmp_path, monkeypatch):
    """Отдельная база для каждого теста."""
    monkeypatch.setattr(database, "DATABASE_PATH", str(tmp_path / "test.db"))
    database.init_db()
    return database


@pytest.fixture
def fake_bot():
    bot = AsyncMock()
    bot.username = "TimetableBot"
    bot.id = 4242
    bot.send_message.return_value = SimpleNamespace(message_id=555)
    return bot


def make_update(chat_id=100, chat_type="private", username="student", first_name="Ali",
                data=None, text=None, title=None, edited=False):
    user = SimpleNamespace(id=abs(chat_id) + 1, username=username, first_name=first_name)
    chat = SimpleNamespace(id=chat_id, type=chat_type, title=title, first_name=first_name, username=None)
    query = SimpleNamespace(data=data, answer=AsyncMock()) if data is not None else None
    message = SimpleNamespace(text=text) if text is not None else None
    return SimpleNamespace(
        effective_chat=chat,
        effective_user=user,
        callback_query=query,
        message=None if edited else message,
        edited_message=message if edited else None,
        effective_message=message,
        my_chat_member=None,
    )


def make_context(bot, args=None):
    return SimpleNamespace(bot=bot, args=args or [], error=None)
