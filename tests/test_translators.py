from __future__ import annotations

import base64
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from cuesync.contracts import TranslationRequest
from cuesync.translate import factory
from cuesync.translate.argos import ArgosTranslator, _argos_code
from cuesync.translate.base import SynthesisError, TranslationError
from cuesync.translate.gemini import (
    GeminiSpeechSynthesizer,
    GeminiTranslator,
    build_prompt,
    parse_translations,
)
from cuesync.translate.stub import StubSynthesizer, StubTranslator


@pytest.mark.asyncio
async def test_stub_translator_deterministic() -> None:
    tr = StubTranslator()
    out = await tr.translate(TranslationRequest(text="Hello world.", target_langs=("Spanish", "French")))
    assert tr.name == "stub"
    assert out.original_text == "Hello world."
    assert out.translations == {"Spanish": "[Spanish] Hello world.", "French": "[French] Hello world."}


@pytest.mark.asyncio
async def test_stub_synthesizer_returns_silent_pcm() -> None:
    synth = StubSynthesizer(sample_rate=24000, ms_per_char=5)
    payload = await synth.synthesize("hola", "Kore")
    assert payload is not None
    raw = base64.b64decode(payload)
    assert len(raw) == 2 * 480
    assert set(raw) == {0}
    assert await synth.synthesize("   ", "Kore") is None


def test_build_prompt_lists_every_language() -> None:
    prompt = build_prompt(TranslationRequest(text="Good morning", target_langs=("Spanish", "Japanese")))
    assert "Source Language: English." in prompt
    assert "Target Languages: Spanish, Japanese." in prompt
    assert '"Spanish": "TranslatedText"' in prompt
    assert '"Japanese": "TranslatedText"' in prompt
    assert 'Text: "Good morning"' in prompt


def test_parse_translations_accepts_strict_json() -> None:
    raw = json.dumps({"translations": {"Spanish": "Buenos dias", "French": 3}})
    assert parse_translations(raw) == {"Spanish": "Buenos dias"}


@pytest.mark.parametrize("raw", ["", "not json", "[1, 2]", '{"text": "hola"}'])
def test_parse_translations_rejects_bad_payloads(raw: str) -> None:
    with pytest.raises(TranslationError):
        parse_translations(raw)


def _fake_client(response) -> MagicMock:
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=response)
    return client


@pytest.mark.asyncio
async def test_gemini_translator_uses_json_mode() -> None:
    client = _fake_client(SimpleNamespace(text='{"translations": {"Spanish": "Hola"}}'))
    tr = GeminiTranslator(model="test-model", client=client)
    out = await tr.translate(TranslationRequest(text="Hello"))
    assert out.translations == {"Spanish": "Hola"}
    kwargs = client.aio.models.generate_content.await_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["config"].response_mime_type == "application/json"


@pytest.mark.asyncio
async def test_gemini_translator_wraps_request_errors() -> None:
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(side_effect=RuntimeError("quota"))
    tr = GeminiTranslator(client=client)
    with pytest.raises(TranslationError, match="quota"):
        await tr.translate(TranslationRequest(text="Hello"))


@pytest.mark.asyncio
async def test_gemini_translator_requires_api_key(monkeypatch) -> None:
    monkeypatch.delenv("CUESYNC_TEST_KEY", raising=False)
    tr = GeminiTranslator(api_key_env="CUESYNC_TEST_KEY")
    with pytest.raises(TranslationError, match="CUESYNC_TEST_KEY is not set"):
        await tr.translate(TranslationRequest(text="Hello"))


def _audio_response(data) -> SimpleNamespace:
    part = SimpleNamespace(inline_data=SimpleNamespace(data=data))
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])


@pytest.mark.asyncio
async def test_gemini_tts_encodes_raw_bytes() -> None:
    client = _fake_client(_audio_response(b"\x01\x00\x02\x00"))
    synth = GeminiSpeechSynthesizer(client=client)
    payload = await synth.synthesize("Hola", "Puck")
    assert payload == base64.b64encode(b"\x01\x00\x02\x00").decode("ascii")
    config = client.aio.models.generate_content.await_args.kwargs["config"]
    assert config.response_modalities == ["AUDIO"]
    assert config.speech_config.voice_config.prebuilt_voice_config.voice_name == "Puck"


@pytest.mark.asyncio
async def test_gemini_tts_without_audio_returns_none() -> None:
    synth = GeminiSpeechSynthesizer(client=_fake_client(SimpleNamespace(candidates=[])))
    assert await synth.synthesize("Hola", "Kore") is None


@pytest.mark.asyncio
async def test_gemini_tts_missing_key_is_synthesis_error(monkeypatch) -> None:
    monkeypatch.delenv("CUESYNC_TEST_KEY", raising=False)
    synth = GeminiSpeechSynthesizer(api_key_env="CUESYNC_TEST_KEY")
    with pytest.raises(SynthesisError):
        await synth.synthesize("Hola", "Kore")


def test_argos_codes_come_from_catalog() -> None:
    assert _argos_code("Spanish") == "es"
    assert _argos_code("Mandarin") == "zh"
    assert _argos_code("en") == "en"


@pytest.mark.asyncio
async def test_argos_wraps_provider_errors(monkeypatch) -> None:
    tr = ArgosTranslator(auto_install=False)

    def _boom(req):
        raise OSError("package index unreachable")

    monkeypatch.setattr(tr, "_translate_blocking", _boom)
    with pytest.raises(TranslationError, match="package index unreachable"):
        await tr.translate(TranslationRequest(text="Hello"))


def test_factory_selects_providers(monkeypatch) -> None:
    assert isinstance(factory.get_translator("stub"), StubTranslator)
    assert isinstance(factory.get_translator("argos"), ArgosTranslator)
    assert isinstance(factory.get_translator("gemini"), GeminiTranslator)
    assert isinstance(factory.get_synthesizer("stub"), StubSynthesizer)
    # Argos has no voice of its own
    assert isinstance(factory.get_synthesizer("argos"), GeminiSpeechSynthesizer)

    monkeypatch.setenv("CUESYNC_TRANSLATOR", "stub")
    assert isinstance(factory.get_translator(), StubTranslator)


def test_factory_rejects_unknown_provider() -> None:
    with pytest.raises(ValueError):
        factory.get_translator("babelfish")
    with pytest.raises(ValueError):
        factory.get_synthesizer("babelfish")
