from __future__ import annotations

import base64
import json
import os
from typing import Any, Optional

from cuesync.contracts import TranslationRequest, TranslationResult

from .base import SpeechSynthesizer, SynthesisError, TranslationError, Translator, new_result

DEFAULT_TRANSLATE_MODEL = "gemini-3-flash-preview"
DEFAULT_TTS_MODEL = "gemini-2.5-flash-preview-tts"


def build_prompt(req: TranslationRequest) -> str:
    shape = ", ".join(f'"{lang}": "TranslatedText"' for lang in req.target_langs)
    return (
        "Translate this script segment for a presenter.\n"
        f"Source Language: {req.source_lang}.\n"
        f"Target Languages: {', '.join(req.target_langs)}.\n"
        f'Text: "{req.text}".\n'
        f'Return STRICT JSON: {{"translations": {{{shape}}}}}'
    )


def parse_translations(raw: str | None) -> dict[str, str]:
    """Parse the strict JSON reply; keep only string values."""
    if not raw:
        raise TranslationError("empty translation response")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise TranslationError("translation response is not JSON") from e
    if not isinstance(data, dict) or not isinstance(data.get("translations"), dict):
        raise TranslationError("translation response missing 'translations' object")
    return {str(k): v for k, v in data["translations"].items() if isinstance(v, str)}


class _GeminiClientMixin:
    api_key_env: str
    _client: Any

    def _get_client(self):
        if self._client is None:
            api_key = os.getenv(self.api_key_env)
            if not api_key:
                raise TranslationError(f"{self.api_key_env} is not set")
            try:
                from google import genai
            except ImportError as e:
                raise TranslationError(
                    "google-genai is not installed. Install with: python -m pip install google-genai"
                ) from e
            self._client = genai.Client(api_key=api_key)
        return self._client


class GeminiTranslator(_GeminiClientMixin, Translator):
    def __init__(
        self,
        *,
        model: str = DEFAULT_TRANSLATE_MODEL,
        api_key_env: str = "GEMINI_API_KEY",
        client: Any = None,
    ) -> None:
        self.model = model
        self.api_key_env = api_key_env
        self._client = client

    @property
    def name(self) -> str:
        return "gemini"

    async def translate(self, req: TranslationRequest) -> TranslationResult:
        client = self._get_client()
        from google.genai import types

        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=build_prompt(req),
                config=types.GenerateContentConfig(response_mime_type="application/json"),
            )
        except Exception as e:
            raise TranslationError(f"gemini translate request failed: {e}") from e
        translations = parse_translations(getattr(response, "text", None))
        return new_result(req.text, translations, detected_language=req.source_lang)


def _inline_audio(response: Any) -> Optional[bytes | str]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    if not parts:
        return None
    inline = getattr(parts[0], "inline_data", None)
    return getattr(inline, "data", None)


class GeminiSpeechSynthesizer(_GeminiClientMixin, SpeechSynthesizer):
    """Gemini TTS; returns base64 PCM16 mono at 24 kHz."""

    def __init__(
        self,
        *,
        model: str = DEFAULT_TTS_MODEL,
        api_key_env: str = "GEMINI_API_KEY",
        client: Any = None,
    ) -> None:
        self.model = model
        self.api_key_env = api_key_env
        self._client = client

    @property
    def name(self) -> str:
        return "gemini"

    async def synthesize(self, text: str, voice: str) -> Optional[str]:
        try:
            client = self._get_client()
        except TranslationError as e:
            raise SynthesisError(str(e)) from e
        from google.genai import types

        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=text,
                config=types.GenerateContentConfig(
                    response_modalities=["AUDIO"],
                    speech_config=types.SpeechConfig(
                        voice_config=types.VoiceConfig(
                            prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice)
                        )
                    ),
                ),
            )
        except Exception as e:
            raise SynthesisError(f"gemini tts request failed: {e}") from e
        data = _inline_audio(response)
        if data is None:
            return None
        # the SDK hands back raw bytes; the queue expects base64 text
        if isinstance(data, (bytes, bytearray)):
            return base64.b64encode(bytes(data)).decode("ascii")
        return str(data)
