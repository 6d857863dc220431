"""SMS text rendering.

Messages are kept short to fit a single SMS segment. Dates and times are
always shown in the business timezone; locales without a dedicated
template fall back to English.
"""

from __future__ import annotations

from datetime import datetime

from parcel_sms.core.config import settings
from parcel_sms.db.enums import NotificationIntent
from parcel_sms.db.models import Appointment, Household
from parcel_sms.utils.wall_clock import WallClock

DEFAULT_LOCALE = "en"

# Short weekday (Mon..Sun) and month names for compact dates: "mån 16 sep"
_WEEKDAYS: dict[str, tuple[str, ...]] = {
    "sv": ("mån", "tis", "ons", "tors", "fre", "lör", "sön"),
    "en": ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"),
    "de": ("Mo", "Di", "Mi", "Do", "Fr", "Sa", "So"),
    "es": ("lun", "mar", "mié", "jue", "vie", "sáb", "dom"),
    "fr": ("lun", "mar", "mer", "jeu", "ven", "sam", "dim"),
    "fi": ("ma", "ti", "ke", "to", "pe", "la", "su"),
    "it": ("lun", "mar", "mer", "gio", "ven", "sab", "dom"),
    "pl": ("pon", "wt", "śr", "czw", "pt", "sob", "niedz"),
    "ar": ("الاثنين", "الثلاثاء", "الأربعاء", "الخميس", "الجمعة", "السبت", "الأحد"),
}
_MONTHS: dict[str, tuple[str, ...]] = {
    "sv": ("jan", "feb", "mars", "apr", "maj", "juni", "juli", "aug", "sep", "okt", "nov", "dec"),
    "en": ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"),
    "de": ("Jan", "Feb", "März", "Apr", "Mai", "Juni", "Juli", "Aug", "Sep", "Okt", "Nov", "Dez"),
    "es": ("ene", "feb", "mar", "abr", "may", "jun", "jul", "ago", "sept", "oct", "nov", "dic"),
    "fr": ("janv", "févr", "mars", "avr", "mai", "juin", "juil", "août", "sept", "oct", "nov", "déc"),
    "fi": ("tammi", "helmi", "maalis", "huhti", "touko", "kesä", "heinä", "elo", "syys", "loka", "marras", "joulu"),
    "it": ("gen", "feb", "mar", "apr", "mag", "giu", "lug", "ago", "set", "ott", "nov", "dic"),
    "pl": ("sty", "lut", "mar", "kwi", "maj", "cze", "lip", "sie", "wrz", "paź", "lis", "gru"),
    "ar": ("يناير", "فبراير", "مارس", "أبريل", "مايو", "يونيو", "يوليو", "أغسطس", "سبتمبر", "أكتوبر", "نوفمبر", "ديسمبر"),
}

# Phrase templates per locale: {date} {time} {url}
_REMINDER = {
    "sv": "Matpaket {date} {time}: {url}",
    "en": "Food pickup {date} {time}: {url}",
    "de": "Essen {date} {time}: {url}",
    "es": "Comida {date} {time}: {url}",
    "fr": "Collecte {date} {time}: {url}",
    "fi": "Ruoka {date} {time}: {url}",
    "it": "Cibo {date} {time}: {url}",
    "pl": "Jedzenie {date} {time}: {url}",
    "ar": "استلام الطعام {date} {time}: {url}",
}
_UPDATED = {
    "sv": "Uppdatering! Matpaket {date} {time}: {url}",
    "en": "Update! Food pickup {date} {time}: {url}",
    "de": "Update! Essen {date} {time}: {url}",
    "es": "¡Actualización! Comida {date} {time}: {url}",
    "fr": "Mise à jour! Collecte {date} {time}: {url}",
    "fi": "Päivitys! Ruoka {date} {time}: {url}",
    "it": "Aggiornamento! Cibo {date} {time}: {url}",
    "pl": "Aktualizacja! Jedzenie {date} {time}: {url}",
    "ar": "تحديث! استلام الطعام {date} {time}: {url}",
}
_CANCELLED = {
    "sv": "Matpaket {date} {time} är inställt.",
    "en": "Food pickup {date} {time} is cancelled.",
    "de": "Essen {date} {time} ist abgesagt.",
    "es": "Comida {date} {time} está cancelada.",
    "fr": "Collecte {date} {time} est annulée.",
    "fi": "Ruoka {date} {time} on peruttu.",
    "it": "Cibo {date} {time} è annullato.",
    "pl": "Jedzenie {date} {time} zostało odwołane.",
    "ar": "تم إلغاء استلام الطعام {date} {time}.",
}
_ENROLMENT = {
    "sv": "Välkommen! Du får SMS om dina matpaket. {url}",
    "en": "Welcome! You will get SMS about your food pickups. {url}",
}


def _pick(templates: dict[str, str], locale: str | None) -> str:
    return templates.get((locale or "").lower(), templates[DEFAULT_LOCALE])


def format_datetime_for_sms(
    instant: datetime, locale: str | None, clock: WallClock
) -> tuple[str, str]:
    """Compact (date, time) strings in the business timezone, e.g. ("mån 16 sep", "10:00")."""
    civil = clock.from_instant(instant)
    key = (locale or "").lower()
    if key not in _WEEKDAYS:
        key = DEFAULT_LOCALE
    local = civil.local
    date_str = f"{_WEEKDAYS[key][local.weekday()]} {local.day} {_MONTHS[key][local.month - 1]}"
    return date_str, civil.time_of_day


def public_parcel_url(appointment_id) -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/p/{appointment_id}"


def render_pickup_reminder(pickup_at: datetime, url: str, locale: str | None, clock: WallClock) -> str:
    date_str, time_str = format_datetime_for_sms(pickup_at, locale, clock)
    return _pick(_REMINDER, locale).format(date=date_str, time=time_str, url=url)


def render_pickup_updated(pickup_at: datetime, url: str, locale: str | None, clock: WallClock) -> str:
    date_str, time_str = format_datetime_for_sms(pickup_at, locale, clock)
    return _pick(_UPDATED, locale).format(date=date_str, time=time_str, url=url)


def render_pickup_cancelled(pickup_at: datetime, locale: str | None, clock: WallClock) -> str:
    date_str, time_str = format_datetime_for_sms(pickup_at, locale, clock)
    return _pick(_CANCELLED, locale).format(date=date_str, time=time_str)


def render_enrolment(locale: str | None) -> str:
    return _pick(_ENROLMENT, locale).format(url=settings.PUBLIC_BASE_URL.rstrip("/"))


def render_for_intent(
    intent: NotificationIntent | str,
    *,
    household: Household,
    appointment: Appointment | None,
    clock: WallClock,
) -> str:
    """Render the current text for a notification from live state."""
    intent = NotificationIntent(intent)
    locale = household.locale

    if intent in (NotificationIntent.ENROLMENT, NotificationIntent.CONSENT_ENROLMENT):
        return render_enrolment(locale)

    if appointment is None:
        raise ValueError(f"{intent.value} requires an appointment")

    start = appointment.pickup_window_start
    if intent == NotificationIntent.PICKUP_CANCELLED:
        return render_pickup_cancelled(start, locale, clock)

    url = public_parcel_url(appointment.id)
    if intent == NotificationIntent.PICKUP_UPDATED:
        return render_pickup_updated(start, url, locale, clock)
    return render_pickup_reminder(start, url, locale, clock)
