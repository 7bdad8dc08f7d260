# webserver.py
import logging
from aiohttp import web
from telegram import Update
from telegram.ext import Application

from config import WEBHOOK_PATH, WEBHOOK_SECRET
from sender import push_schedule
from timetable import tomorrow_index

logger = logging.getLogger(__name__)

APPLICATION_KEY = web.AppKey("application", Application)


async def handle_root(request: web.Request) -> web.Response:
    return web.Response(text="OK ✅ Bot is alive")


async def handle_send_tomorrow(request: web.Request) -> web.Response:
    """Ручной запуск рассылки расписания на завтра (защищён ключом)."""
    if request.query.get("key") != WEBHOOK_SECRET:
        return web.Response(status=403, text="Forbidden")
    application = request.app[APPLICATION_KEY]
    try:
        sent = await push_schedule(application.bot, tomorrow_index())
    except Exception as e:
        logger.error(f"Ошибка ручной рассылки: {e}", exc_info=True)
        return web.Response(status=500, text="Error")
    return web.Response(text=f"Sent to {sent} chats")


async def handle_webhook(request: web.Request) -> web.Response:
    """Принимает обновление от Telegram и передаёт его приложению."""
    application = request.app[APPLICATION_KEY]
    try:
        data = await request.json()
    except ValueError:
        return web.Response(status=400, text="Bad Request")
    update = Update.de_json(data, application.bot)
    await application.update_queue.put(update)
    return web.Response(text="ok")


def create_app(application: Application) -> web.Application:
    app = web.Application()
    app[APPLICATION_KEY] = application
    app.router.add_get("/", handle_root)
    app.router.add_get("/sendTomorrow", handle_send_tomorrow)
    app.router.add_post(WEBHOOK_PATH, handle_webhook)
    return app


async def start_web_server(application: Application, port: int) -> web.AppRunner:
    """Запускает HTTP-сервер (health check, webhook, ручная рассылка)."""
    runner = web.AppRunner(create_app(application))
    await runner.setup()
    site = web.TCPSite(runner, host="0.0.0.0", port=port)
    await site.start()
    logger.info(f"🌐 HTTP-сервер слушает порт {port}")
    return runner
