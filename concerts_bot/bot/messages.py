# concerts_bot/bot/messages.py
from __future__ import annotations

from html import escape
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, KeyboardButton, ReplyKeyboardMarkup

from concerts_bot.core.config import settings
from concerts_bot.core.dispatch import NotificationKind
from concerts_bot.core.models import Concert

BTN_ALL = "🎵 View all concerts"
BTN_VENUES = "📍 Concerts by location"
BTN_FAVORITES = "⭐ Favorites"

CAPTION_LIMIT = 1024


def main_keyboard() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        [[KeyboardButton(BTN_ALL)], [KeyboardButton(BTN_VENUES)], [KeyboardButton(BTN_FAVORITES)]],
        resize_keyboard=True,
    )


def heading(kind: NotificationKind, concert: Concert) -> Optional[str]:
    if kind is NotificationKind.NEW_CONCERT:
        return f"🎵 New concert at {concert.venue}!"
    if kind is NotificationKind.REMINDER:
        return "🔔 Reminder! You have a concert tomorrow:"
    return None


def format_concert(concert: Concert, tz: Optional[str] = None) -> str:
    when = concert.date.astimezone(ZoneInfo(tz or settings.timezone))
    lines = [
        f"🎵 <b>{escape(concert.title)}</b>",
        f"📅 {when:%d.%m.%Y %H:%M}",
        f"📍 {escape(concert.venue)}",
        f"💰 {escape(concert.price or 'Price not specified')}",
    ]
    if concert.door_time:
        lines.append(f"🚪 Doors {escape(concert.door_time)}")
    if concert.artists:
        lines.append("")
        lines.append("<b>Artists:</b>")
        for a in concert.artists:
            name = escape(a.name)
            lines.append(f'• <a href="{escape(a.link, quote=True)}">{name}</a>' if a.link else f"• {name}")
    if concert.ticket_url:
        lines.append("")
        lines.append(f'<a href="{escape(concert.ticket_url, quote=True)}">🎟 Tickets</a>')
    return "\n".join(lines)


def favorite_keyboard(concert_id: str, subscribed: bool) -> InlineKeyboardMarkup:
    if subscribed:
        button = InlineKeyboardButton("❌ Remove from favorites", callback_data=f"u_{concert_id}")
    else:
        button = InlineKeyboardButton("⭐ Add to favorites", callback_data=f"f_{concert_id}")
    return InlineKeyboardMarkup([[button]])


def venues_keyboard(venues: Iterable[str], subscribed: Iterable[str]) -> InlineKeyboardMarkup:
    subscribed = set(subscribed)
    rows: List[List[InlineKeyboardButton]] = [
        [InlineKeyboardButton(f"{v} ✅" if v in subscribed else v, callback_data=f"venue_{v}")]
        for v in venues
    ]
    return InlineKeyboardMarkup(rows)


def venue_keyboard(venue: str, subscribed: bool) -> InlineKeyboardMarkup:
    toggle = (
        InlineKeyboardButton("❌ Unsubscribe from venue", callback_data=f"unsub_venue_{venue}")
        if subscribed
        else InlineKeyboardButton("🔔 Subscribe to venue", callback_data=f"sub_venue_{venue}")
    )
    return InlineKeyboardMarkup([
        [toggle],
        [
            InlineKeyboardButton("📋 Show concerts", callback_data=f"show_venue_{venue}"),
            InlineKeyboardButton("📅 Next 7 Days", callback_data=f"next7_venue_{venue}"),
        ],
    ])


def venue_text(venue: str, subscribed: bool) -> str:
    return f"Venue: {venue}\n✅ You are subscribed to notifications" if subscribed else f"Venue: {venue}"
