# concerts_bot/bot/handlers.py
"""
Chat commands and inline-button callbacks.

Callback data prefixes:
  f_<concert>, u_<concert>             favorite / unfavorite
  venue_<v>                            venue menu
  sub_venue_<v>, unsub_venue_<v>       new-concert alerts for a venue
  show_venue_<v>, next7_venue_<v>      list a venue's concerts
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from telegram import InlineKeyboardMarkup, Update
from telegram.error import BadRequest, TelegramError
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, ContextTypes, MessageHandler, filters

from concerts_bot.bot import messages
from concerts_bot.bot.transport import send_concert
from concerts_bot.core.config import settings
from concerts_bot.core.models import Concert, UserProfile
from concerts_bot.storage.sqlite import SqliteStore

log = logging.getLogger(__name__)

ERROR_TEXT = "An error occurred. Please try again later."

# longest first: "unsub_venue_x" must not be read as "u_..."
CALLBACK_PREFIXES = (
    "next7_venue_", "unsub_venue_", "show_venue_", "sub_venue_", "venue_", "f_", "u_",
)


def parse_callback(data: Optional[str]) -> Tuple[Optional[str], str]:
    """'sub_venue_Junge Garde' -> ('sub_venue', 'Junge Garde'); unknown data -> (None, data)."""
    data = data or ""
    for prefix in CALLBACK_PREFIXES:
        if data.startswith(prefix):
            return prefix[:-1], data[len(prefix):]
    return None, data


def _store(context: ContextTypes.DEFAULT_TYPE) -> SqliteStore:
    return context.bot_data["store"]


async def _ensure_user(update: Update, context: ContextTypes.DEFAULT_TYPE) -> str:
    u = update.effective_user
    await _store(context).add_user(
        str(u.id), UserProfile(username=u.username, first_name=u.first_name, last_name=u.last_name)
    )
    return str(u.id)


async def _send_list(context: ContextTypes.DEFAULT_TYPE, user_id: str, concerts: List[Concert]) -> None:
    store = _store(context)
    for concert in concerts:
        await send_concert(context.bot, user_id, concert, await store.is_concert_subscribed(user_id, concert.id))


# ------------------------------ commands ------------------------------

async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    try:
        await _ensure_user(update, context)
    except Exception:
        log.exception("Registering user %s failed", update.effective_user.id)
        await update.effective_message.reply_text(ERROR_TEXT)
        return
    await update.effective_message.reply_text(
        "Hello! I am a concert tracking bot. How can I help you?", reply_markup=messages.main_keyboard()
    )


async def show_all(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id = str(update.effective_user.id)
    try:
        await _ensure_user(update, context)
        concerts = await _store(context).upcoming_concerts(limit=settings.upcoming_limit)
        if not concerts:
            await update.effective_message.reply_text("No concerts available at the moment.")
            return
        await _send_list(context, user_id, concerts)
    except Exception:
        log.exception("Listing concerts for %s failed", user_id)
        await update.effective_message.reply_text("There was an error loading concerts. Please try again later.")


async def show_venues(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id = str(update.effective_user.id)
    store = _store(context)
    try:
        await _ensure_user(update, context)
        venues = await store.venues()
        if not venues:
            await update.effective_message.reply_text("No venues available at the moment.")
            return
        user = await store.get_user(user_id)
        await update.effective_message.reply_text(
            "Select a venue (✅ - subscribed to notifications):",
            reply_markup=messages.venues_keyboard(venues, user.subscribed_venues if user else ()),
        )
    except Exception:
        log.exception("Listing venues for %s failed", user_id)
        await update.effective_message.reply_text("There was an error loading venues. Please try again later.")


async def show_favorites(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id = str(update.effective_user.id)
    try:
        await _ensure_user(update, context)
        concerts = await _store(context).favorite_concerts(user_id)
        if not concerts:
            await update.effective_message.reply_text("You have no upcoming favorite concerts.")
            return
        await _send_list(context, user_id, concerts)
    except Exception:
        log.exception("Listing favorites for %s failed", user_id)
        await update.effective_message.reply_text(
            "There was an error fetching your favorite concerts. Please try again later."
        )


# ------------------------------ callbacks ------------------------------

async def _edit_markup(update: Update, markup: InlineKeyboardMarkup) -> None:
    try:
        await update.callback_query.edit_message_reply_markup(reply_markup=markup)
    except BadRequest as e:
        # pressing the same button twice leaves the markup unchanged
        if "not modified" not in str(e).lower():
            raise


async def on_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    action, arg = parse_callback(query.data)
    user_id = str(update.effective_user.id)
    store = _store(context)
    try:
        await _ensure_user(update, context)
        if action in ("f", "u"):
            subscribe = action == "f"
            changed = await store.set_concert_subscription(user_id, arg, subscribe)
            if not changed:
                await query.answer(
                    "You are already subscribed to this concert." if subscribe
                    else "You are not subscribed to this concert.",
                    show_alert=True,
                )
                return
            await query.answer("Concert added to favorites!" if subscribe else "Concert removed from favorites!")
            await _edit_markup(update, messages.favorite_keyboard(arg, subscribe))

        elif action in ("sub_venue", "unsub_venue"):
            subscribe = action == "sub_venue"
            await store.set_venue_subscription(user_id, arg, subscribe)
            await query.answer(
                f"Subscribed to notifications for {arg}!" if subscribe else f"Unsubscribed from notifications for {arg}"
            )
            await query.edit_message_text(
                messages.venue_text(arg, subscribe), reply_markup=messages.venue_keyboard(arg, subscribe)
            )

        elif action == "venue":
            subscribed = await store.is_venue_subscribed(user_id, arg)
            await query.answer()
            await query.edit_message_text(
                messages.venue_text(arg, subscribed), reply_markup=messages.venue_keyboard(arg, subscribed)
            )

        elif action in ("show_venue", "next7_venue"):
            now = datetime.now(timezone.utc)
            until = now + timedelta(days=7) if action == "next7_venue" else None
            concerts = await store.concerts_by_venue(arg, now, until)
            if not concerts:
                window = " for the next 7 days" if until else ""
                await query.answer(f"No upcoming concerts found{window} at {arg}.", show_alert=True)
                return
            await query.answer()
            await _send_list(context, user_id, concerts)

        else:
            log.warning("Unknown callback data %r from %s", query.data, user_id)
            await query.answer()
    except Exception:
        log.exception("Callback %r for %s failed", query.data, user_id)
        try:
            await query.answer(ERROR_TEXT, show_alert=True)
        except TelegramError as e:
            # the query may already have been answered before the failure
            log.warning("Could not answer callback %r: %s", query.data, e)


def register_handlers(app: Application) -> None:
    app.add_handlers([
        CommandHandler("start", cmd_start),
        MessageHandler(filters.Regex(f"^{re.escape(messages.BTN_ALL)}$"), show_all),
        MessageHandler(filters.Regex(f"^{re.escape(messages.BTN_VENUES)}$"), show_venues),
        MessageHandler(filters.Regex(f"^{re.escape(messages.BTN_FAVORITES)}$"), show_favorites),
        CallbackQueryHandler(on_callback),
    ])
