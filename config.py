# config.py
import os
import re
from dotenv import load_dotenv
from pytz import timezone

# Загружаем переменные из .env файла
load_dotenv()

# Токен бота
BOT_TOKEN = os.getenv("BOT_TOKEN")
if not BOT_TOKEN:
    raise ValueError("BOT_TOKEN не установлен в .env файле")

# Администратор бота (username без @)
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "AzizbekEn").lstrip("@")

# Часовой пояс (по умолчанию Ташкент)
TIMEZONE = timezone(os.getenv("TIMEZONE") or os.getenv("TZ") or "Asia/Tashkent")

# Время ежедневной рассылки по умолчанию
SEND_TIME = os.getenv("SEND_TIME", "15:00")
if not re.match(r'^([01]?\d|2[0-3]):[0-5]\d$', SEND_TIME):
    raise ValueError("SEND_TIME должен быть в формате ЧЧ:ММ")

# Webhook и HTTP-сервер
WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET", "change-me")
WEBHOOK_PATH = f"/telegraf/{WEBHOOK_SECRET}"
PORT = int(os.getenv("PORT", "3000"))
BASE_URL = os.getenv("BASE_URL", "").rstrip("/")

# Путь к базе данных
DATABASE_PATH = os.getenv("DATABASE_PATH", "bot.db")

# Уровень логирования
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
