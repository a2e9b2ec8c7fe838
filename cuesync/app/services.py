from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable

from cuesync.asr.faster_whisper_pcm16 import FasterWhisperPCM16Transcriber
from cuesync.asr.stream_base import ScriptedTranscriptSource, TranscriptSource
from cuesync.asr.whisper_source import WhisperTranscriptSource
from cuesync.audio.mic import MicCapture, SoundDeviceMicSource
from cuesync.audio.playback import PlaybackQueue, SoundDevicePlayer
from cuesync.audio.utterance_chunker import UtteranceConfig
from cuesync.audio.vad_webrtc import WebRtcVad
from cuesync.contracts import TranslationResult, TranslationSettings, TranslationStatus
from cuesync.live.noise_gate import NoiseGate
from cuesync.live.pipeline import PrompterPipeline
from cuesync.translate.factory import get_synthesizer, get_translator, resolve_provider
from cuesync.translate.service import TranslationService


@dataclass(frozen=True)
class PrompterServices:
    settings: TranslationSettings
    mic: MicCapture | None
    gate: NoiseGate
    source: TranscriptSource
    translation: TranslationService
    playback: PlaybackQueue
    pipeline: PrompterPipeline


def _provider_name(args: Any, logger: logging.Logger | None) -> str:
    provider = resolve_provider(args.translator or None)
    if not args.dry_run_transcript or provider == "stub":
        return provider
    # dry runs stay offline unless a Gemini key is actually configured
    if provider == "gemini" and not os.getenv(str(args.api_key_env)):
        if logger is not None:
            logger.info("dry_run_stub_providers", extra={"requested": provider})
        return "stub"
    return provider


def _language_for_asr(args: Any) -> str | None:
    lang = str(args.language_lock or "auto").strip().lower()
    return None if lang == "auto" else lang


def build_prompter_services(
    args: Any,
    script: str,
    *,
    on_scroll: Callable[[float], Any] | None = None,
    on_result: Callable[[TranslationResult], Any] | None = None,
    on_status: Callable[[TranslationStatus], Any] | None = None,
    on_error: Callable[[str], Any] | None = None,
    logger: logging.Logger | None = None,
) -> PrompterServices:
    settings = TranslationSettings.from_args(args)

    speech_detector = None
    if str(args.gate_mode) == "webrtc":
        speech_detector = WebRtcVad(sr=int(args.sr), frame_ms=20, aggressiveness=int(args.vad_aggressiveness))
    gate = NoiseGate(
        sensitivity=settings.sensitivity,
        window_ms=int(args.gate_window_ms),
        smoothing=float(args.gate_smoothing),
        speech_detector=speech_detector,
        logger=logger,
    )

    mic: MicCapture | None = None
    source: TranscriptSource
    if args.dry_run_transcript:
        source = ScriptedTranscriptSource()
    else:
        mic = MicCapture(
            SoundDeviceMicSource(
                chunk_seconds=float(args.chunk_sec),
                sample_rate=int(args.sr),
                channels=int(args.channels),
                device=args.device,
            ),
            logger=logger,
        )
        utterance_cfg = UtteranceConfig(
            vad_aggressiveness=int(args.vad_aggressiveness),
            end_silence_ms=int(args.silence_ms),
        )
        source = WhisperTranscriptSource(
            mic,
            FasterWhisperPCM16Transcriber(model_size=str(args.model), language=_language_for_asr(args)),
            vad_factory=lambda: WebRtcVad(
                sr=int(args.sr),
                frame_ms=utterance_cfg.frame_ms,
                aggressiveness=utterance_cfg.vad_aggressiveness,
            ),
            utterance_cfg=utterance_cfg,
            session_max_sec=float(args.session_max_sec),
            logger=logger,
        )

    provider = _provider_name(args, logger)
    translator = get_translator(provider, model=str(args.translate_model), api_key_env=str(args.api_key_env))
    synthesizer = get_synthesizer(provider, model=str(args.tts_model), api_key_env=str(args.api_key_env))

    playback = PlaybackQueue(
        SoundDevicePlayer(device=args.output_device),
        sample_rate=int(args.playback_sr),
        settle_sec=max(0, int(args.settle_ms)) / 1000.0,
        logger=logger,
    )
    translation = TranslationService(
        translator,
        synthesizer,
        settings,
        playback=playback,
        on_status=on_status,
        on_result=on_result,
        logger=logger,
    )
    pipeline = PrompterPipeline(
        script,
        settings=settings,
        translation=translation,
        playback=playback,
        gate=gate,
        source=source,
        mic=mic,
        lookahead=int(args.lookahead_chars),
        trigger_margin=int(args.trigger_margin_chars),
        cooldown_sec=float(args.trigger_cooldown_sec),
        trigger_keyword=str(args.trigger_keyword),
        restart_backoff_sec=max(0, int(args.restart_backoff_ms)) / 1000.0,
        max_restart_attempts=int(args.max_restart_attempts),
        on_scroll=on_scroll,
        on_error=on_error,
        logger=logger,
    )
    return PrompterServices(
        settings=settings,
        mic=mic,
        gate=gate,
        source=source,
        translation=translation,
        playback=playback,
        pipeline=pipeline,
    )
