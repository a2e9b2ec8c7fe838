from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Language:
    code: str
    name: str


@dataclass(frozen=True)
class Voice:
    id: str
    name: str
    gender: str


AVAILABLE_LANGUAGES: tuple[Language, ...] = (
    Language("ms", "Malay"),
    Language("es", "Spanish"),
    Language("pt", "Portuguese"),
    Language("it", "Italian"),
    Language("el", "Greek"),
    Language("he", "Hebrew"),
    Language("pl", "Polish"),
    Language("sv", "Swedish"),
    Language("nl", "Dutch"),
    Language("da", "Danish"),
    Language("fi", "Finnish"),
    Language("hi", "Hindi"),
    Language("ta", "Tamil"),
    Language("th", "Thai"),
    Language("ja", "Japanese"),
    Language("ko", "Korean"),
    Language("zh-CN", "Mandarin"),
    Language("zh-HK", "Cantonese"),
    Language("ar", "Arabic"),
    Language("fr", "French"),
    Language("de", "German"),
    Language("ro", "Romanian"),
)

AVAILABLE_VOICES: tuple[Voice, ...] = (
    Voice("Kore", "Kore (Female)", "Female"),
    Voice("Aoede", "Aoede (Female)", "Female"),
    Voice("Puck", "Puck (Male)", "Male"),
    Voice("Charon", "Charon (Male)", "Male"),
)


def language_code(name_or_code: str) -> str | None:
    """Resolve 'Spanish' or 'es' to the catalogue code."""
    key = (name_or_code or "").strip().lower()
    for lang in AVAILABLE_LANGUAGES:
        if key in (lang.code.lower(), lang.name.lower()):
            return lang.code
    return None


def is_known_voice(voice_id: str) -> bool:
    return any(v.id == voice_id for v in AVAILABLE_VOICES)
