"""Render tool values for the user's channel and language.

Voice replies are read aloud by a TTS engine, so dates, times and codes
are spelled out; text channels keep compact forms.
"""

from datetime import date as date_type
from typing import Iterable

SMALL_NUMBERS = {
    "en": ["zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine", "ten", "eleven", "twelve"],
    "es": ["cero", "uno", "dos", "tres", "cuatro", "cinco", "seis", "siete", "ocho", "nueve", "diez", "once", "doce"],
}

DAYS = {
    "en": ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"],
    "es": ["lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo"],
}

MONTHS = {
    "en": ["January", "February", "March", "April", "May", "June", "July",
           "August", "September", "October", "November", "December"],
    "es": ["enero", "febrero", "marzo", "abril", "mayo", "junio", "julio",
           "agosto", "septiembre", "octubre", "noviembre", "diciembre"],
}


def _lang(locale: str) -> str:
    return "es" if locale == "es" else "en"


def small_number(num: int, locale: str = "en") -> str:
    words = SMALL_NUMBERS[_lang(locale)]
    return words[num] if 0 <= num < len(words) else str(num)


def format_date(value: str, locale: str = "en", voice: bool = False) -> str:
    """``2026-10-20`` -> ``Tuesday, October 20`` / ``martes 20 de octubre``.

    Text channels keep the ISO date. Unparseable input is returned as is.
    """
    if not voice:
        return value
    try:
        parsed = date_type.fromisoformat(value)
    except ValueError:
        return value
    lang = _lang(locale)
    day = DAYS[lang][parsed.weekday()]
    month = MONTHS[lang][parsed.month - 1]
    if lang == "es":
        return f"{day} {parsed.day} de {month}"
    return f"{day}, {month} {parsed.day}"


def format_time(value: str, locale: str = "en", voice: bool = False) -> str:
    """``19:30`` -> ``half past 7 PM`` / ``siete y media de la noche`` for voice."""
    try:
        hours, minutes = (int(part) for part in value.split(":")[:2])
    except ValueError:
        return value
    if not voice:
        return f"{hours:02d}:{minutes:02d}"

    hour12 = 12 if hours % 12 == 0 else hours % 12
    if _lang(locale) == "en":
        period = "AM" if hours < 12 else "PM"
        if minutes == 0:
            return f"{hour12} {period}"
        if minutes == 30:
            return f"half past {hour12} {period}"
        return f"{hour12}:{minutes:02d} {period}"

    if hours < 12:
        period = "de la mañana"
    elif hours < 18:
        period = "de la tarde"
    else:
        period = "de la noche"
    hour_word = small_number(hour12, "es")
    if minutes == 0:
        return f"{hour_word} {period}"
    if minutes == 30:
        return f"{hour_word} y media {period}"
    return f"{hour_word} con {minutes} {period}"


def format_party_size(size: int, locale: str = "en") -> str:
    if _lang(locale) == "es":
        return "una persona" if size == 1 else f"{size} personas"
    return "one person" if size == 1 else f"{size} people"


def format_code(code: str, locale: str = "en", voice: bool = False) -> str:
    """Spell a confirmation code character by character for voice."""
    code = code.upper()
    if not voice:
        return code
    spoken = [
        small_number(int(ch), locale) if ch.isdigit() else ch
        for ch in code
        if ch.isalnum()
    ]
    return ", ".join(spoken)


def format_list(items: Iterable[str], locale: str = "en") -> str:
    """Join items the way people say them: ``a, b and c`` / ``a, b y c``."""
    items = [i for i in items if i]
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    conjunction = " y " if _lang(locale) == "es" else " and "
    return ", ".join(items[:-1]) + conjunction + items[-1]


def format_price(amount: float) -> str:
    if float(amount).is_integer():
        return f"${int(amount)}"
    return f"${amount:.2f}"
