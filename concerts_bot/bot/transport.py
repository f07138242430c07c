# concerts_bot/bot/transport.py
from __future__ import annotations

import logging

from telegram import Bot, Message
from telegram.constants import ParseMode
from telegram.error import TelegramError

from concerts_bot.bot.messages import CAPTION_LIMIT, favorite_keyboard, format_concert, heading
from concerts_bot.core.dispatch import NotificationKind
from concerts_bot.core.models import Concert
from concerts_bot.storage.sqlite import SqliteStore

log = logging.getLogger(__name__)


async def send_concert(bot: Bot, chat_id: str, concert: Concert, subscribed: bool) -> Message:
    """Concert card with a favorite toggle; photo + caption when a poster is known."""
    text = format_concert(concert)
    markup = favorite_keyboard(concert.id, subscribed)
    if concert.poster_url and len(text) <= CAPTION_LIMIT:
        return await bot.send_photo(
            chat_id=chat_id, photo=concert.poster_url, caption=text,
            parse_mode=ParseMode.HTML, reply_markup=markup,
        )
    return await bot.send_message(
        chat_id=chat_id, text=text, parse_mode=ParseMode.HTML, reply_markup=markup,
    )


class TelegramTransport:
    """Delivers dispatcher notifications as Telegram messages."""

    def __init__(self, bot: Bot, store: SqliteStore):
        self.bot = bot
        self.store = store

    async def notify(self, user_id: str, concert: Concert, kind: NotificationKind) -> bool:
        try:
            head = heading(kind, concert)
            if head:
                await self.bot.send_message(chat_id=user_id, text=head)
            subscribed = await self.store.is_concert_subscribed(user_id, concert.id)
            await send_concert(self.bot, user_id, concert, subscribed)
        except TelegramError as e:
            log.warning("Telegram refused %s for %s to %s: %s", kind.value, concert.id, user_id, e)
            return False
        return True
