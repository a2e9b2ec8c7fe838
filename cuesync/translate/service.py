from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Callable, Dict, Optional

from cuesync.audio.playback import PlaybackQueue
from cuesync.contracts import TranslationRequest, TranslationResult, TranslationSettings, TranslationStatus

from .base import SpeechSynthesizer, Translator
from .cache import CacheEntry, CacheKey, TranslationCache, cache_key


def _log_event(logger: logging.Logger | None, level: int, event: str, **fields: Any) -> None:
    if logger is None:
        return
    logger.log(level, event, extra=fields)


class TranslationService:
    """
    Cached translate-then-speak for script blocks.

    prefetch() warms the cache ahead of time; translate_and_speak() serves the
    cached entry (or fetches it), emits the result and queues its audio.
    Concurrent calls for one key share a single fetch. Provider failures are
    turned into TranslationStatus.ERROR and never raised to callers.
    """

    def __init__(
        self,
        translator: Translator,
        synthesizer: SpeechSynthesizer | None,
        settings: TranslationSettings,
        *,
        playback: PlaybackQueue | None = None,
        on_status: Callable[[TranslationStatus], Any] | None = None,
        on_result: Callable[[TranslationResult], Any] | None = None,
        on_processing: Callable[[bool], Any] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.translator = translator
        self.synthesizer = synthesizer
        self.settings = settings
        self.playback = playback
        self.on_status = on_status
        self.on_result = on_result
        self.on_processing = on_processing
        self.logger = logger
        self.cache = TranslationCache()
        self.status = TranslationStatus.IDLE
        self.last_error: Optional[str] = None
        self._processing = False
        self._inflight: Dict[CacheKey, asyncio.Future] = {}
        self._generation = 0
        self.metrics: dict[str, int | float] = {
            "translate_requests": 0,
            "synth_requests": 0,
            "cache_hits": 0,
            "failures": 0,
            "fetch_ms_total": 0.0,
        }

    @property
    def is_processing(self) -> bool:
        return self._processing

    def _set_status(self, status: TranslationStatus) -> None:
        self.status = status
        if self.on_status is not None:
            self.on_status(status)

    def _set_processing(self, value: bool) -> None:
        if self._processing == value:
            return
        self._processing = value
        if self.on_processing is not None:
            self.on_processing(value)

    def _key(self, text: str) -> CacheKey:
        return cache_key(text, self.settings.voice_name, self.settings.target_languages)

    def _emit(self, entry: CacheEntry) -> None:
        if self.on_result is not None:
            self.on_result(entry.result)
        if entry.audio and self.playback is not None:
            self.playback.enqueue(entry.audio)

    async def _fetch_remote(self, text: str, settings: TranslationSettings) -> CacheEntry:
        req = TranslationRequest(
            text=text,
            target_langs=tuple(settings.target_languages),
            source_lang=settings.source_language,
        )
        t0 = time.perf_counter()
        self.metrics["translate_requests"] = int(self.metrics["translate_requests"]) + 1
        result = await self.translator.translate(req)

        audio = None
        spoken = result.primary_text(settings.target_languages)
        if settings.voice_enabled and self.synthesizer is not None and spoken:
            self.metrics["synth_requests"] = int(self.metrics["synth_requests"]) + 1
            try:
                audio = await self.synthesizer.synthesize(spoken, settings.voice_name)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # keep the translation; the block just goes unspoken
                self.last_error = str(e)
                self.metrics["failures"] = int(self.metrics["failures"]) + 1
                _log_event(self.logger, logging.WARNING, "synthesis_failed", chars=len(spoken), error=str(e))
        dur_ms = (time.perf_counter() - t0) * 1000.0
        self.metrics["fetch_ms_total"] = float(self.metrics["fetch_ms_total"]) + dur_ms
        _log_event(
            self.logger,
            logging.INFO,
            "translation_fetched",
            chars=len(text),
            langs=list(settings.target_languages),
            has_audio=audio is not None,
            ms=round(dur_ms, 2),
        )
        return CacheEntry(result=result, audio=audio)

    async def _fetch(self, key: CacheKey, text: str) -> CacheEntry:
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        pending = self._inflight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self._inflight[key] = fut
        generation = self.cache.generation
        settings = replace(self.settings, target_languages=list(self.settings.target_languages))
        try:
            entry = await self._fetch_remote(text, settings)
        except asyncio.CancelledError:
            fut.cancel()
            raise
        except Exception as e:
            fut.set_exception(e)
            fut.exception()  # mark retrieved when nobody else is waiting
            raise
        else:
            self.cache.put(key, entry, generation=generation)
            fut.set_result(entry)
            return entry
        finally:
            if self._inflight.get(key) is fut:
                del self._inflight[key]

    async def prefetch(self, text: str) -> TranslationStatus:
        if not self.settings.enabled:
            return self.status
        clean = (text or "").strip()
        if not clean:
            self._set_status(TranslationStatus.EMPTY)
            return TranslationStatus.EMPTY

        key = self._key(clean)
        if key in self.cache:
            self._set_status(TranslationStatus.READY)
            return TranslationStatus.READY

        generation = self._generation
        self._set_status(TranslationStatus.PREPARING)
        try:
            await self._fetch(key, clean)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if generation != self._generation:
                return TranslationStatus.IDLE
            self.last_error = str(e)
            self.metrics["failures"] = int(self.metrics["failures"]) + 1
            _log_event(self.logger, logging.WARNING, "prefetch_failed", chars=len(clean), error=str(e))
            self._set_status(TranslationStatus.ERROR)
            return TranslationStatus.ERROR
        if generation != self._generation:
            return TranslationStatus.IDLE
        self._set_status(TranslationStatus.READY)
        return TranslationStatus.READY

    async def translate_and_speak(self, text: str) -> Optional[TranslationResult]:
        if not self.settings.enabled:
            return None
        clean = (text or "").strip()
        if not clean:
            self._set_status(TranslationStatus.EMPTY)
            return None

        key = self._key(clean)
        cached = self.cache.get(key)
        if cached is not None:
            self.metrics["cache_hits"] = int(self.metrics["cache_hits"]) + 1
            _log_event(self.logger, logging.INFO, "translation_cache_hit", chars=len(clean))
            self._emit(cached)
            self._set_status(TranslationStatus.IDLE)
            return cached.result

        generation = self._generation
        self._set_processing(True)
        self._set_status(TranslationStatus.PREPARING)
        try:
            entry = await self._fetch(key, clean)
            if generation != self._generation:
                return None
            self._emit(entry)
            return entry.result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if generation != self._generation:
                return None
            self.last_error = str(e)
            self.metrics["failures"] = int(self.metrics["failures"]) + 1
            if self.logger is not None:
                self.logger.exception("translate_and_speak_failed", extra={"chars": len(clean)})
            self._set_status(TranslationStatus.ERROR)
            return None
        finally:
            if generation == self._generation:
                self._set_processing(False)
                # errors are reported before settling back to idle
                self._set_status(TranslationStatus.IDLE)

    def invalidate(self) -> None:
        """Voice or language changed: drop every cached entry."""
        self.cache.clear()
        self._inflight.clear()
        _log_event(self.logger, logging.INFO, "translation_cache_cleared")

    def reset(self) -> None:
        self._generation += 1
        self.invalidate()
        self.last_error = None
        self._set_processing(False)
        self._set_status(TranslationStatus.IDLE)
