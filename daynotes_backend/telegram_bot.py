from __future__ import annotations

import io
import logging
import math
from typing import Hashable, Iterable, Optional

import telebot

from daynotes_database import Database

from .config import DEFAULT_DELIVERY_TIMEOUT_SECONDS
from .errors import Malformed, StorageError
from .restore import restore
from .scheduler import export_snapshot

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "/start   - greeting\n"
    "/help    - this message\n"
    "/export  - send the current database as a JSON file\n"
    "/import  - replace the WHOLE database with an uploaded export\n"
)


class TelegramChannel:
    """`NotificationChannel` that sends files as Telegram documents."""

    def __init__(self, bot: telebot.TeleBot, timeout: Optional[float] = None) -> None:
        self._bot = bot
        self._timeout = timeout

    def send_document(self, destination: Hashable, filename: str, blob: bytes) -> None:
        document = io.BytesIO(blob)
        document.name = filename
        kwargs = {"visible_file_name": filename}
        if self._timeout is not None:
            # whole seconds; 0 would mean no timeout at all
            kwargs["timeout"] = max(1, math.ceil(self._timeout))
        self._bot.send_document(destination, document, **kwargs)


def import_upload(database: Database, blob: bytes) -> str:
    """
    Restore from an uploaded file and describe the outcome for the chat.

    Malformed uploads and storage failures leave the data untouched and are
    reported back; anything else propagates.
    """
    try:
        summary = restore(database, blob)
    except Malformed as exc:
        logger.warning("Rejected snapshot upload: %s", exc.detail)
        return f"Import rejected, nothing was changed. {exc.detail}"
    except StorageError:
        return "Import failed while writing; the previous data was kept."
    return (
        "Database REPLACED successfully (wipe & import): "
        f"{summary.users} users, {summary.notes} notes."
    )


def create_telegram_bot(
    bot_token: str,
    database: Database,
    allowed_chat_ids: Iterable[int],
    delivery_timeout: float = DEFAULT_DELIVERY_TIMEOUT_SECONDS,
) -> telebot.TeleBot:
    """
    Configure and return a TeleBot wired to export/import.

    Only messages from `allowed_chat_ids` are handled; everything else is ignored.
    """

    bot = telebot.TeleBot(bot_token)
    allowed = frozenset(allowed_chat_ids)
    channel = TelegramChannel(bot, timeout=delivery_timeout)

    def is_allowed(message) -> bool:
        return message.chat.id in allowed

    @bot.message_handler(commands=["start"], func=is_allowed)
    def handle_start(message):
        bot.send_message(message.chat.id, "Welcome! Use /help.")

    @bot.message_handler(commands=["help"], func=is_allowed)
    def handle_help(message):
        bot.send_message(message.chat.id, HELP_TEXT)

    @bot.message_handler(commands=["export"], func=is_allowed)
    def handle_export(message):
        try:
            report = export_snapshot(database, channel, [message.chat.id], timeout=delivery_timeout)
        except StorageError:
            bot.send_message(message.chat.id, "Export failed: could not read the database.")
            return
        if not report.ok:
            bot.send_message(message.chat.id, f"Export failed: {report.failed[message.chat.id]}")

    @bot.message_handler(commands=["import"], func=is_allowed)
    def handle_import(message):
        bot.send_message(
            message.chat.id,
            "Send your JSON export file. It will replace ALL users and notes; "
            "there is no automatic backup of the current data.",
        )

    @bot.message_handler(content_types=["document"], func=is_allowed)
    def handle_import_file(message):
        file_info = bot.get_file(message.document.file_id)
        blob = bot.download_file(file_info.file_path)
        logger.info(
            "Snapshot upload %r (%d bytes) from chat %s",
            message.document.file_name, len(blob), message.chat.id,
        )
        bot.send_message(message.chat.id, import_upload(database, blob))

    return bot
