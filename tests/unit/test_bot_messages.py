from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from concerts_bot.bot.app import parse_clock
from concerts_bot.bot.handlers import parse_callback
from concerts_bot.bot.messages import favorite_keyboard, format_concert, heading, venue_keyboard, venues_keyboard
from concerts_bot.core.dispatch import NotificationKind
from concerts_bot.core.models import Artist, Concert

BERLIN = ZoneInfo("Europe/Berlin")


@pytest.mark.parametrize(
    "data, expected",
    [
        ("f_cf-20301114-kraftklub", ("f", "cf-20301114-kraftklub")),
        ("u_cf-20301114-kraftklub", ("u", "cf-20301114-kraftklub")),
        ("venue_Junge Garde", ("venue", "Junge Garde")),
        ("sub_venue_Junge Garde", ("sub_venue", "Junge Garde")),
        ("unsub_venue_Junge Garde", ("unsub_venue", "Junge Garde")),
        ("show_venue_Chemiefabrik", ("show_venue", "Chemiefabrik")),
        ("next7_venue_Chemiefabrik", ("next7_venue", "Chemiefabrik")),
        ("something_else", (None, "something_else")),
        (None, (None, "")),
    ],
)
def test_parse_callback(data, expected):
    assert parse_callback(data) == expected


def _concert(**kw):
    base = dict(
        id="cf-20301114-kraftklub",
        title="Kraftklub <live>",
        venue="Chemiefabrik",
        date=datetime(2030, 11, 14, 20, 0, tzinfo=BERLIN),
        artists=[Artist(name="Kraftklub", link="https://kraftklub.example"), Artist(name="Support & Co")],
    )
    base.update(kw)
    return Concert(**base)


def test_format_concert_escapes_html():
    text = format_concert(_concert(price="25 €"), tz="Europe/Berlin")
    assert "<b>Kraftklub &lt;live&gt;</b>" in text
    assert "14.11.2030 20:00" in text
    assert "25 €" in text
    assert '<a href="https://kraftklub.example">Kraftklub</a>' in text
    assert "• Support &amp; Co" in text


def test_format_concert_without_price():
    assert "Price not specified" in format_concert(_concert(artists=[]), tz="Europe/Berlin")


def test_heading():
    c = _concert()
    assert heading(NotificationKind.NEW_CONCERT, c) == "🎵 New concert at Chemiefabrik!"
    assert "tomorrow" in heading(NotificationKind.REMINDER, c)


def test_keyboards_callback_data():
    assert favorite_keyboard("x", False).inline_keyboard[0][0].callback_data == "f_x"
    assert favorite_keyboard("x", True).inline_keyboard[0][0].callback_data == "u_x"
    rows = venues_keyboard(["Chemiefabrik", "Junge Garde"], {"Junge Garde"}).inline_keyboard
    assert [r[0].text for r in rows] == ["Chemiefabrik", "Junge Garde ✅"]
    assert venue_keyboard("Junge Garde", True).inline_keyboard[0][0].callback_data == "unsub_venue_Junge Garde"


def test_parse_clock():
    t = parse_clock("19:30", "Europe/Berlin")
    assert (t.hour, t.minute) == (19, 30)
    assert t.tzinfo == ZoneInfo("Europe/Berlin")
