from __future__ import annotations

import asyncio
import threading

from cuesync.catalog import language_code
from cuesync.contracts import TranslationRequest, TranslationResult

from .base import TranslationError, Translator, new_result


def _argos_code(language: str) -> str:
    code = language_code(language) or language
    # Argos ships base codes only (zh, not zh-CN)
    return code.split("-")[0].lower()


class ArgosTranslator(Translator):
    """Offline translation with Argos Translate packages (no network at run time)."""

    def __init__(self, auto_install: bool = True):
        self.auto_install = auto_install
        self._ready: set[tuple[str, str]] = set()
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "argos"

    def _ensure_pair(self, from_code: str, to_code: str) -> None:
        if (from_code, to_code) in self._ready:
            return

        import argostranslate.package
        import argostranslate.translate

        installed = argostranslate.translate.get_installed_languages()
        have_from = any(l.code == from_code for l in installed)
        have_to = any(l.code == to_code for l in installed)

        if not (have_from and have_to):
            if not self.auto_install:
                raise TranslationError("Argos model not installed and auto_install=False")

            argostranslate.package.update_package_index()
            available = argostranslate.package.get_available_packages()

            pkg = None
            for p in available:
                if p.from_code == from_code and p.to_code == to_code:
                    pkg = p
                    break
            if pkg is None:
                raise TranslationError(f"No Argos package found for {from_code}->{to_code}")

            path = pkg.download()
            argostranslate.package.install_from_path(path)

        self._ready.add((from_code, to_code))

    def _translate_blocking(self, req: TranslationRequest) -> dict[str, str]:
        import argostranslate.translate

        from_code = _argos_code(req.source_lang)
        out: dict[str, str] = {}
        with self._lock:
            for lang in req.target_langs:
                to_code = _argos_code(lang)
                self._ensure_pair(from_code, to_code)
                out[lang] = argostranslate.translate.translate(req.text, from_code, to_code)
        return out

    async def translate(self, req: TranslationRequest) -> TranslationResult:
        try:
            translations = await asyncio.to_thread(self._translate_blocking, req)
        except TranslationError:
            raise
        except Exception as e:
            raise TranslationError(f"argos translation failed: {e}") from e
        return new_result(req.text, translations, detected_language=req.source_lang)
