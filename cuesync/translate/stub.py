from __future__ import annotations

import base64
from array import array
from typing import Optional

from cuesync.contracts import TranslationRequest, TranslationResult

from .base import SpeechSynthesizer, Translator, new_result


class StubTranslator(Translator):
    @property
    def name(self) -> str:
        return "stub"

    async def translate(self, req: TranslationRequest) -> TranslationResult:
        # Deterministic, test-friendly
        translations = {lang: f"[{lang}] {req.text}" for lang in req.target_langs}
        return new_result(req.text, translations, detected_language=req.source_lang)


class StubSynthesizer(SpeechSynthesizer):
    """Emits a short silent clip sized to the text."""

    def __init__(self, sample_rate: int = 24000, ms_per_char: int = 5) -> None:
        self.sample_rate = sample_rate
        self.ms_per_char = ms_per_char

    @property
    def name(self) -> str:
        return "stub"

    async def synthesize(self, text: str, voice: str) -> Optional[str]:
        if not text.strip():
            return None
        n = int(self.sample_rate * self.ms_per_char * len(text) / 1000)
        return base64.b64encode(array("h", [0] * max(1, n)).tobytes()).decode("ascii")
