"""
Process entry point: HTTP API, Telegram bot and backup scheduler in one process.

    python -m daynotes_backend
"""
import logging
import threading

import uvicorn

from daynotes_database import Database, init_db

from .api.main import app
from .config import load_settings
from .errors import ConfigurationError
from .scheduler import BackupScheduler
from .telegram_bot import TelegramChannel, create_telegram_bot

logger = logging.getLogger("daynotes_backend")


def main() -> None:
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        raise SystemExit(f"Configuration error: {exc}")

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    database = Database.from_url(settings.database_url)
    init_db(database)
    app.state.database = database

    bot = create_telegram_bot(
        settings.telegram_bot_token,
        database,
        settings.telegram_chat_ids,
        delivery_timeout=settings.delivery_timeout_seconds,
    )
    scheduler = BackupScheduler(
        database,
        TelegramChannel(bot, timeout=settings.delivery_timeout_seconds),
        settings.telegram_chat_ids,
        interval=settings.backup_interval_seconds,
        delivery_timeout=settings.delivery_timeout_seconds,
    )
    bot_thread = threading.Thread(
        target=bot.infinity_polling,
        kwargs={"skip_pending": True},
        name="telegram-bot",
        daemon=True,
    )

    scheduler.start()
    bot_thread.start()
    logger.info("Serving on http://%s:%s", settings.host, settings.port)
    try:
        uvicorn.run(app, host=settings.host, port=settings.port)
    finally:
        scheduler.stop(timeout=5)
        bot.stop_polling()
        database.dispose()


if __name__ == "__main__":
    main()
