from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple


class TranslationStatus(str, Enum):
    IDLE = "IDLE"
    PREPARING = "PREPARING"
    READY = "READY"
    EMPTY = "EMPTY"
    ERROR = "ERROR"


@dataclass(frozen=True)
class TranslationRequest:
    text: str
    target_langs: Tuple[str, ...] = ("Spanish",)
    source_lang: str = "English"


@dataclass(frozen=True)
class TranslationResult:
    id: str
    timestamp: str
    original_text: str
    translations: Dict[str, str]
    detected_language: str = "English"
    # True when the input was not in the source language
    is_foreign_input: bool = False

    def primary_text(self, target_langs: Sequence[str]) -> Optional[str]:
        """Translation for the first configured target language, if present."""
        if not target_langs:
            return None
        value = self.translations.get(target_langs[0])
        return value if isinstance(value, str) and value.strip() else None


@dataclass(frozen=True)
class TranscriptEvent:
    """
    One snapshot from a recognition session.
    text: full concatenated transcript of the *current* session.
    """
    text: str
    is_final: bool = False


@dataclass(frozen=True)
class ASRSegment:
    text: str
    t0: float
    t1: float
    is_final: bool = True


@dataclass(frozen=True)
class AudioChunk:
    """
    Raw PCM16 audio chunk captured from a live source (e.g., microphone).
    pcm16: little-endian signed 16-bit PCM bytes (interleaved if channels > 1).
    """
    pcm16: bytes
    sample_rate: int
    channels: int
    start_time: float  # seconds since stream start
    duration: float    # seconds


@dataclass(frozen=True)
class TranslationBlock:
    open_offset: int   # index of "{"
    close_offset: int  # index just past "}"
    inner_text: str


@dataclass
class TranslationSettings:
    """Live settings read by the pipeline on every call."""
    enabled: bool = True
    source_language: str = "English"
    target_languages: list[str] = field(default_factory=lambda: ["Spanish"])
    voice_enabled: bool = True
    voice_name: str = "Kore"
    sensitivity: int = 50

    def revision(self) -> tuple[str, tuple[str, ...]]:
        """Fingerprint of the settings that invalidate prefetched audio."""
        return (self.voice_name, tuple(self.target_languages))

    @classmethod
    def from_args(cls, args) -> "TranslationSettings":
        langs = getattr(args, "target_languages", None) or ["Spanish"]
        if isinstance(langs, str):
            langs = [x.strip() for x in langs.split(",") if x.strip()]
        return cls(
            enabled=bool(getattr(args, "translation_enabled", True)),
            source_language=str(getattr(args, "source_language", "English")),
            target_languages=list(langs),
            voice_enabled=bool(getattr(args, "voice_enabled", True)),
            voice_name=str(getattr(args, "voice_name", "Kore")),
            sensitivity=max(0, min(100, int(getattr(args, "sensitivity", 50)))),
        )
