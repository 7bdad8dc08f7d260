# database.py
import sqlite3
import threading
import time
from contextlib import contextmanager
from typing import Optional
import logging

from config import DATABASE_PATH

logger = logging.getLogger(__name__)
_db_lock = threading.RLock()

ACTIVE_WINDOW_SECONDS = 86400

# Колонки, которых может не быть в старых базах
_CHAT_COLUMNS = [
    ("first_name", "ALTER TABLE chats ADD COLUMN first_name TEXT"),
    ("username", "ALTER TABLE chats ADD COLUMN username TEXT"),
    ("last_start_ts", "ALTER TABLE chats ADD COLUMN last_start_ts INTEGER DEFAULT 0"),
    ("reminder_enabled", "ALTER TABLE chats ADD COLUMN reminder_enabled INTEGER DEFAULT 1"),
    ("reminder_time", "ALTER TABLE chats ADD COLUMN reminder_time TEXT DEFAULT '18:00'"),
    ("language", "ALTER TABLE chats ADD COLUMN language TEXT DEFAULT 'uz'"),
    ("last_interaction_ts", "ALTER TABLE chats ADD COLUMN last_interaction_ts INTEGER DEFAULT 0"),
    ("last_message_id", "ALTER TABLE chats ADD COLUMN last_message_id INTEGER DEFAULT NULL"),
]


def init_db():
    """Инициализирует базу данных, создаёт таблицы и досоздаёт недостающие колонки."""
    with get_db_connection() as conn:
        # Подписанные чаты
        conn.execute('''
            CREATE TABLE IF NOT EXISTS chats (
                chat_id INTEGER PRIMARY KEY,
                last_message_id INTEGER DEFAULT NULL,
                last_start_ts INTEGER DEFAULT 0,
                reminder_enabled INTEGER DEFAULT 1,
                reminder_time TEXT DEFAULT '18:00',
                language TEXT DEFAULT 'uz',
                first_name TEXT,
                username TEXT,
                created_at INTEGER DEFAULT (strftime('%s','now')),
                last_interaction_ts INTEGER DEFAULT 0
            )
        ''')
        _migrate_chats(conn)

        conn.execute('''
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT
            )
        ''')

        # Ожидаемый ввод (время, текст рассылки) по пользователю
        conn.execute('''
            CREATE TABLE IF NOT EXISTS pending_actions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                admin_username TEXT,
                action TEXT,
                payload TEXT,
                created_at INTEGER DEFAULT (strftime('%s','now'))
            )
        ''')

        conn.execute('''
            CREATE TABLE IF NOT EXISTS banned_chats (
                chat_id INTEGER PRIMARY KEY,
                reason TEXT DEFAULT '',
                banned_at INTEGER DEFAULT (strftime('%s','now'))
            )
        ''')

        conn.execute('''
            CREATE TABLE IF NOT EXISTS stats (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                event_type TEXT,
                chat_id INTEGER,
                data TEXT,
                created_at INTEGER DEFAULT (strftime('%s','now'))
            )
        ''')

        conn.commit()
        logger.info("✅ База данных инициализирована")


def _migrate_chats(conn):
    names = {row['name'] for row in conn.execute("PRAGMA table_info('chats')")}
    for column, sql in _CHAT_COLUMNS:
        if column in names:
            continue
        try:
            conn.execute(sql)
            logger.info(f"🔧 Миграция: добавлена колонка {column} в chats")
        except sqlite3.OperationalError as e:
            logger.warning(f"Миграция: не удалось добавить колонку {column}: {e}")


@contextmanager
def get_db_connection():
    """Потокобезопасное подключение к SQLite."""
    with _db_lock:
        conn = sqlite3.connect(
            DATABASE_PATH,
            check_same_thread=False,
            timeout=20
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()


# === Чаты ===

def upsert_chat(chat_id, first_name="", username=""):
    """Добавляет чат или обновляет его имя."""
    with get_db_connection() as conn:
        conn.execute('''
            INSERT INTO chats (chat_id, first_name, username) VALUES (?, ?, ?)
            ON CONFLICT(chat_id) DO UPDATE SET
                first_name = excluded.first_name,
                username = excluded.username
        ''', (chat_id, first_name or "", username or ""))
        conn.commit()


def remove_chat(chat_id):
    """Удаляет чат из подписчиков."""
    with get_db_connection() as conn:
        cursor = conn.execute("DELETE FROM chats WHERE chat_id = ?", (chat_id,))
        conn.commit()
        if cursor.rowcount:
            logger.info(f"⏹️ Чат {chat_id} удалён из подписчиков")
        return cursor.rowcount > 0


def get_chat(chat_id):
    with get_db_connection() as conn:
        return conn.execute("SELECT * FROM chats WHERE chat_id = ?", (chat_id,)).fetchone()


def set_last_message(chat_id, message_id):
    with get_db_connection() as conn:
        conn.execute("UPDATE chats SET last_message_id = ? WHERE chat_id = ?", (message_id, chat_id))
        conn.commit()


def get_last_message(chat_id) -> Optional[int]:
    row = get_chat(chat_id)
    return row['last_message_id'] if row else None


def set_last_start_ts(chat_id, ts):
    with get_db_connection() as conn:
        conn.execute("UPDATE chats SET last_start_ts = ? WHERE chat_id = ?", (ts, chat_id))
        conn.commit()


def get_last_start_ts(chat_id) -> int:
    row = get_chat(chat_id)
    return (row['last_start_ts'] or 0) if row else 0


def set_last_interaction(chat_id, ts=None):
    with get_db_connection() as conn:
        conn.execute(
            "UPDATE chats SET last_interaction_ts = ? WHERE chat_id = ?",
            (int(ts if ts is not None else time.time()), chat_id)
        )
        conn.commit()


def list_chats(reminder_only=False, order_by_activity=False):
    """
    Возвращает подписанные чаты.

    Args:
        reminder_only: только чаты с включённым напоминанием
        order_by_activity: сначала недавно активные
    """
    query = "SELECT chat_id, first_name, username, last_interaction_ts, reminder_enabled FROM chats"
    if reminder_only:
        query += " WHERE reminder_enabled = 1"
    if order_by_activity:
        query += " ORDER BY last_interaction_ts DESC"
    with get_db_connection() as conn:
        return conn.execute(query).fetchall()


def toggle_reminder(chat_id) -> Optional[bool]:
    """
    Переключает напоминание для чата и возвращает сохранённое значение.

    Для незарегистрированного чата ничего не меняет и возвращает None.
    """
    with get_db_connection() as conn:
        row = conn.execute("SELECT reminder_enabled FROM chats WHERE chat_id = ?", (chat_id,)).fetchone()
        if row is None:
            return None
        new_value = 0 if row['reminder_enabled'] else 1
        conn.execute("UPDATE chats SET reminder_enabled = ? WHERE chat_id = ?", (new_value, chat_id))
        conn.commit()
        return bool(new_value)


def set_language(chat_id, language):
    with get_db_connection() as conn:
        conn.execute("UPDATE chats SET language = ? WHERE chat_id = ?", (language, chat_id))
        conn.commit()


def set_reminder_time(chat_id, reminder_time):
    with get_db_connection() as conn:
        conn.execute("UPDATE chats SET reminder_time = ? WHERE chat_id = ?", (reminder_time, chat_id))
        conn.commit()


# === Заблокированные чаты ===

def is_banned(chat_id) -> bool:
    with get_db_connection() as conn:
        row = conn.execute("SELECT chat_id FROM banned_chats WHERE chat_id = ?", (chat_id,)).fetchone()
        return row is not None


def ban_chat(chat_id, reason=""):
    """Блокирует чат и убирает его из подписчиков."""
    with get_db_connection() as conn:
        conn.execute(
            "INSERT OR REPLACE INTO banned_chats (chat_id, reason) VALUES (?, ?)",
            (chat_id, reason or "")
        )
        conn.commit()
    remove_chat(chat_id)
    logger.info(f"🚫 Чат {chat_id} заблокирован")


def unban_chat(chat_id) -> bool:
    with get_db_connection() as conn:
        cursor = conn.execute("DELETE FROM banned_chats WHERE chat_id = ?", (chat_id,))
        conn.commit()
        return cursor.rowcount > 0


def list_banned():
    with get_db_connection() as conn:
        return conn.execute(
            "SELECT chat_id, reason, banned_at FROM banned_chats ORDER BY banned_at DESC"
        ).fetchall()


# === Настройки ===

def get_setting(key) -> Optional[str]:
    with get_db_connection() as conn:
        row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return row['value'] if row else None


def set_setting(key, value):
    with get_db_connection() as conn:
        conn.execute('''
            INSERT INTO settings (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
        ''', (key, str(value)))
        conn.commit()


# === Ожидаемые действия ===

def set_pending(owner, action, payload=None):
    """Сохраняет ожидаемое действие, заменяя предыдущее для того же владельца."""
    with get_db_connection() as conn:
        conn.execute("DELETE FROM pending_actions WHERE admin_username = ?", (owner,))
        conn.execute(
            "INSERT INTO pending_actions (admin_username, action, payload) VALUES (?, ?, ?)",
            (owner, action, payload)
        )
        conn.commit()


def get_pending(owner):
    with get_db_connection() as conn:
        return conn.execute('''
            SELECT * FROM pending_actions WHERE admin_username = ?
            ORDER BY created_at DESC, id DESC LIMIT 1
        ''', (owner,)).fetchone()


def clear_pending(owner):
    with get_db_connection() as conn:
        conn.execute("DELETE FROM pending_actions WHERE admin_username = ?", (owner,))
        conn.commit()


# === Статистика ===

def log_stat(event_type, chat_id, data=""):
    with get_db_connection() as conn:
        conn.execute(
            "INSERT INTO stats (event_type, chat_id, data) VALUES (?, ?, ?)",
            (event_type, chat_id, data)
        )
        conn.commit()


def get_stats(now=None):
    """Возвращает число пользователей, взаимодействий и активных за сутки чатов."""
    now = int(now if now is not None else time.time())
    with get_db_connection() as conn:
        total_users = conn.execute("SELECT COUNT(*) AS count FROM chats").fetchone()['count']
        total_interactions = conn.execute(
            "SELECT COUNT(*) AS count FROM stats WHERE event_type = 'interaction'"
        ).fetchone()['count']
        active_today = conn.execute(
            "SELECT COUNT(*) AS count FROM chats WHERE last_interaction_ts > ?",
            (now - ACTIVE_WINDOW_SECONDS,)
        ).fetchone()['count']
    return {
        'total_users': total_users or 0,
        'total_interactions': total_interactions or 0,
        'active_today': active_today or 0,
    }
