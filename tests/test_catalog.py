from __future__ import annotations

from cuesync.catalog import AVAILABLE_LANGUAGES, is_known_voice, language_code


def test_language_code_accepts_names_and_codes() -> None:
    assert language_code("Spanish") == "es"
    assert language_code(" es ") == "es"
    assert language_code("cantonese") == "zh-HK"
    assert language_code("Klingon") is None
    assert language_code("") is None


def test_catalogue_codes_are_unique() -> None:
    codes = [lang.code for lang in AVAILABLE_LANGUAGES]
    assert len(codes) == len(set(codes))


def test_known_voices() -> None:
    assert is_known_voice("Kore")
    assert is_known_voice("Charon")
    assert not is_known_voice("kore")
    assert not is_known_voice("")
