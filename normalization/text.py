"""
Script detection and English text normalization.

Lead records only ever store English (Latin-script) text. Arabic-script
values are mapped through static vocabulary tables and then transliterated
character by character; Devanagari values are sent to a translation
provider. When neither path yields clean English the value is dropped.

The mapping data lives in the tables below so that adding a script means
adding rows, not branches.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern, Tuple

from utils.exceptions import ConfigurationError, DependencyError

logger = logging.getLogger(__name__)


ARABIC_INDIC_DIGITS: Dict[str, str] = {
    "٠": "0", "١": "1", "٢": "2", "٣": "3", "٤": "4",
    "٥": "5", "٦": "6", "٧": "7", "٨": "8", "٩": "9",
    "۰": "0", "۱": "1", "۲": "2", "۳": "3", "۴": "4",
    "۵": "5", "۶": "6", "۷": "7", "۸": "8", "۹": "9",
}

ARABIC_TO_LATIN: Dict[str, str] = {
    "ا": "a",   # alef
    "أ": "a",
    "إ": "i",
    "آ": "aa",
    "ب": "b",
    "ت": "t",
    "ث": "th",
    "ج": "j",
    "ح": "h",
    "خ": "kh",
    "د": "d",
    "ذ": "dh",
    "ر": "r",
    "ز": "z",
    "س": "s",
    "ش": "sh",
    "ص": "s",
    "ض": "d",
    "ط": "t",
    "ظ": "z",
    "ع": "a",
    "غ": "gh",
    "ف": "f",
    "ق": "q",
    "ك": "k",
    "ل": "l",
    "م": "m",
    "ن": "n",
    "ه": "h",
    "ة": "h",   # teh marbuta
    "و": "w",
    "ي": "y",
    "ى": "a",
    "ئ": "e",
    "ؤ": "o",
    "ء": "",    # hamza
}

# Order matters: longer words before their prefixes.
GOAL_ARABIC_TO_ENGLISH: List[Tuple[str, str]] = [
    ("شراء", "buy"),
    ("بيع", "sell"),
    ("ايجار", "rent"),
    ("إيجار", "rent"),
    ("استثمار", "investment"),
    ("سكني", "residential"),
    ("سكن", "residential"),
    ("تجاري", "commercial"),
    ("شقة", "apartment"),
    ("فيلا", "villa"),
    ("دوبلكس", "duplex"),
    ("استوديو", "studio"),
    ("أرض", "land"),
    ("ارض", "land"),
    ("مكتب", "office"),
    ("محل", "shop"),
    ("غرفة", "room"),
    ("غرفتين", "two-bedroom"),
    ("ثلاث", "three"),
    ("غرف", "rooms"),
]

VISIT_TEXT_REPLACEMENTS: List[Tuple[str, str]] = [
    ("،", ","),
    ("بعد\\s*غد", "day after tomorrow"),
    ("غدا", "tomorrow"),
    ("غدًا", "tomorrow"),
    ("بكرة", "tomorrow"),
    ("اليوم", "today"),
    ("بعد\\s*الظهر", "PM"),
    ("الظهر", "12:00 PM"),
    ("منتصف\\s*الليل", "12:00 AM"),
    ("صباحًا", "AM"),
    ("صباحا", "AM"),
    ("مساءً", "PM"),
    ("مساء", "PM"),
    ("الساعة", "at"),
    ("ساعة", "at"),
    ("عند", "at"),
    ("في", "at"),
]

ARABIC_MONTHS_TO_ENGLISH: List[Tuple[str, str]] = [
    ("يناير", "January"),
    ("فبراير", "February"),
    ("مارس", "March"),
    ("ابريل", "April"),
    ("أبريل", "April"),
    ("مايو", "May"),
    ("يونيو", "June"),
    ("يوليو", "July"),
    ("اغسطس", "August"),
    ("أغسطس", "August"),
    ("سبتمبر", "September"),
    ("اكتوبر", "October"),
    ("أكتوبر", "October"),
    ("نوفمبر", "November"),
    ("ديسمبر", "December"),
]


def _compile(table: List[Tuple[str, str]]) -> List[Tuple[Pattern[str], str]]:
    return [(re.compile(pattern), replacement) for pattern, replacement in table]


_GOAL_PATTERNS = _compile(GOAL_ARABIC_TO_ENGLISH)
_VISIT_PATTERNS = _compile(VISIT_TEXT_REPLACEMENTS)
_MONTH_PATTERNS = _compile(ARABIC_MONTHS_TO_ENGLISH)


@dataclass(frozen=True)
class ScriptRule:
    """How to get English text out of one non-Latin script."""
    name: str
    pattern: Pattern[str]
    source_language: str
    transliterate: bool  # False means: ask the translation provider


ARABIC = ScriptRule("arabic", re.compile(r"[؀-ۿ]"), "Arabic", transliterate=True)
DEVANAGARI = ScriptRule("devanagari", re.compile(r"[ऀ-ॿ]"), "Hindi", transliterate=False)

SCRIPT_RULES: Tuple[ScriptRule, ...] = (ARABIC, DEVANAGARI)

_WHITESPACE = re.compile(r"\s+")
_ARABIC_DIGITS = re.compile(r"[٠-٩۰-۹]")
_ARABIC_DIACRITICS = re.compile(r"[ً-ٰٟـ]")
_QUOTES = re.compile(r"['\"`]")
_SINGLE_LETTER = re.compile(r"\b[a-zA-Z]\b")
_NAME_NOISE = re.compile(r"[^\w\s'.-]|_")


def clean_text(value: Optional[str]) -> Optional[str]:
    """Collapse whitespace; empty becomes None."""
    if value is None:
        return None
    cleaned = _WHITESPACE.sub(" ", value).strip()
    return cleaned or None


def detect_script(value: str) -> Optional[ScriptRule]:
    for rule in SCRIPT_RULES:
        if rule.pattern.search(value):
            return rule
    return None


def contains_arabic(value: str) -> bool:
    return bool(ARABIC.pattern.search(value))


def contains_devanagari(value: str) -> bool:
    return bool(DEVANAGARI.pattern.search(value))


def is_script_clean(value: str) -> bool:
    """True when the text holds no characters from a known non-Latin script."""
    return detect_script(value) is None


def strip_foreign_script(value: str) -> str:
    """Drop characters from known non-Latin scripts."""
    for rule in SCRIPT_RULES:
        value = rule.pattern.sub(" ", value)
    return _WHITESPACE.sub(" ", value).strip()


def to_ascii_digits(value: str) -> str:
    return _ARABIC_DIGITS.sub(lambda m: ARABIC_INDIC_DIGITS.get(m.group(0), m.group(0)), value)


def remove_arabic_diacritics(value: str) -> str:
    return _ARABIC_DIACRITICS.sub("", value)


def title_case(value: str) -> str:
    tokens = [token for token in value.split(" ") if token]
    return " ".join(
        token.upper() if len(token) == 1 else token[0].upper() + token[1:].lower()
        for token in tokens
    )


def transliterate_arabic(value: str) -> str:
    """Character-by-character Arabic to Latin; single-letter leftovers are dropped."""
    normalized = to_ascii_digits(remove_arabic_diacritics(value))
    output = "".join(ARABIC_TO_LATIN.get(char, char) for char in normalized)
    output = _QUOTES.sub("", output)
    output = _WHITESPACE.sub(" ", output)
    output = _SINGLE_LETTER.sub("", output)
    return _WHITESPACE.sub(" ", output).strip()


def normalize_name_text(value: str) -> str:
    if contains_arabic(value):
        normalized = transliterate_arabic(value)
    else:
        normalized = to_ascii_digits(value)
    normalized = _NAME_NOISE.sub(" ", normalized)
    return title_case(_WHITESPACE.sub(" ", normalized).strip())


def normalize_goal_text(value: str) -> str:
    normalized = to_ascii_digits(remove_arabic_diacritics(value))
    for pattern, replacement in _GOAL_PATTERNS:
        normalized = pattern.sub(replacement, normalized)
    if contains_arabic(normalized):
        normalized = transliterate_arabic(normalized)
    normalized = _WHITESPACE.sub(" ", normalized)
    return re.sub(r"\s+,", ",", normalized).strip()


def normalize_visit_text_to_english(value: str) -> str:
    normalized = to_ascii_digits(remove_arabic_diacritics(value))
    for pattern, replacement in _MONTH_PATTERNS:
        normalized = pattern.sub(replacement, normalized)
    for pattern, replacement in _VISIT_PATTERNS:
        normalized = pattern.sub(replacement, normalized)
    normalized = _WHITESPACE.sub(" ", normalized)
    normalized = re.sub(r"\bat\s+at\b", "at", normalized, flags=re.IGNORECASE)
    normalized = re.sub(r"\bPM\s+PM\b", "PM", normalized, flags=re.IGNORECASE)
    normalized = re.sub(r"\bAM\s+AM\b", "AM", normalized, flags=re.IGNORECASE)
    return normalized.strip()


class EnglishTextNormalizer:
    """
    Turns a field value plus its declared-English counterpart into English text.

    Preference order: the English counterpart when it is script-clean; then
    the primary value, transliterated (Arabic) or translated (Devanagari).
    A translation failure yields None rather than non-English text.
    """

    def __init__(self, translator=None):
        self.translator = translator

    async def _translate(self, text: str, rule: ScriptRule) -> Optional[str]:
        if self.translator is None:
            logger.warning("No translator configured; dropping %s text", rule.source_language)
            return None
        try:
            translated = await self.translator.translate(text, source_language=rule.source_language)
        except (DependencyError, ConfigurationError) as e:
            logger.warning(f"Translation failed, storing no English text: {e.reason}")
            return None
        translated = clean_text(translated)
        if translated and is_script_clean(translated):
            return translated
        return None

    async def to_english_source(self, value: Optional[str], english_value: Optional[str]) -> Optional[str]:
        """
        Latin-script source text for a field, before field-specific normalization.

        Arabic text is returned unchanged because the field normalizers map and
        transliterate it deterministically.
        """
        preferred = clean_text(english_value)
        if preferred and is_script_clean(preferred):
            return preferred

        source = clean_text(value) or preferred
        if not source:
            return None

        rule = detect_script(source)
        if rule is None or rule.transliterate:
            return source
        return await self._translate(source, rule)

    async def name(self, value: Optional[str], english_value: Optional[str]) -> Optional[str]:
        source = await self.to_english_source(value, english_value)
        if not source:
            return None
        return clean_text(strip_foreign_script(normalize_name_text(source)))

    async def goal(self, value: Optional[str], english_value: Optional[str] = None) -> Optional[str]:
        source = await self.to_english_source(value, english_value)
        if not source:
            return None
        return clean_text(strip_foreign_script(normalize_goal_text(source)))
