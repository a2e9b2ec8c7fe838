from __future__ import annotations

import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Mapping, Optional

from cuesync.contracts import TranslationRequest, TranslationResult


class TranslationError(RuntimeError):
    pass


class SynthesisError(RuntimeError):
    pass


def new_result(
    text: str,
    translations: Mapping[str, str],
    *,
    detected_language: str = "English",
    is_foreign_input: bool = False,
) -> TranslationResult:
    return TranslationResult(
        id=str(int(time.time() * 1000)),
        timestamp=datetime.now().strftime("%H:%M:%S"),
        original_text=text,
        translations=dict(translations),
        detected_language=detected_language,
        is_foreign_input=is_foreign_input,
    )


class Translator(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def translate(self, req: TranslationRequest) -> TranslationResult: ...


class SpeechSynthesizer(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def synthesize(self, text: str, voice: str) -> Optional[str]:
        """Return base64 PCM16 mono audio, or None when nothing was produced."""
        ...
