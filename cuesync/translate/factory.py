from __future__ import annotations

import os

from .argos import ArgosTranslator
from .base import SpeechSynthesizer, Translator
from .gemini import DEFAULT_TRANSLATE_MODEL, DEFAULT_TTS_MODEL, GeminiSpeechSynthesizer, GeminiTranslator
from .stub import StubSynthesizer, StubTranslator


def resolve_provider(provider: str | None = None) -> str:
    """Explicit name first, then $CUESYNC_TRANSLATOR, then gemini."""
    return (provider or os.getenv("CUESYNC_TRANSLATOR", "gemini")).lower().strip()


def get_translator(
    provider: str | None = None,
    *,
    model: str = DEFAULT_TRANSLATE_MODEL,
    api_key_env: str = "GEMINI_API_KEY",
) -> Translator:
    provider = resolve_provider(provider)

    if provider == "gemini":
        return GeminiTranslator(model=model, api_key_env=api_key_env)
    if provider == "argos":
        return ArgosTranslator()
    if provider == "stub":
        return StubTranslator()

    raise ValueError(f"Unknown translator provider: {provider}")


def get_synthesizer(
    provider: str | None = None,
    *,
    model: str = DEFAULT_TTS_MODEL,
    api_key_env: str = "GEMINI_API_KEY",
) -> SpeechSynthesizer:
    provider = resolve_provider(provider)

    # Argos has no voice; speech still comes from Gemini
    if provider in ("gemini", "argos"):
        return GeminiSpeechSynthesizer(model=model, api_key_env=api_key_env)
    if provider == "stub":
        return StubSynthesizer()

    raise ValueError(f"Unknown synthesizer provider: {provider}")
