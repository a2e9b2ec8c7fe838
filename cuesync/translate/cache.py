from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from cuesync.contracts import TranslationResult

CacheKey = Tuple[str, str, Tuple[str, ...]]


def cache_key(text: str, voice_name: str, target_languages: Iterable[str]) -> CacheKey:
    return ((text or "").strip(), voice_name, tuple(sorted(target_languages)))


@dataclass(frozen=True)
class CacheEntry:
    result: TranslationResult
    audio: Optional[str] = None  # base64 PCM16, None when voice is off or synthesis failed


class TranslationCache:
    """
    Per-run store of translation + audio keyed by (text, voice, languages).

    `generation` moves on every clear(); a fetch that started under an older
    generation must not write its result back.
    """

    def __init__(self) -> None:
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self.generation = 0

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def put(self, key: CacheKey, entry: CacheEntry, *, generation: int | None = None) -> bool:
        if generation is not None and generation != self.generation:
            return False
        self._entries[key] = entry
        return True

    def clear(self) -> None:
        self._entries.clear()
        self.generation += 1

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
