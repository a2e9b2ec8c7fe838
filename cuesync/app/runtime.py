from __future__ import annotations

import asyncio
import logging
import sys
import threading
from typing import Any, Sequence

from cuesync.app.diagnostics import hint_for_exception
from cuesync.app.services import PrompterServices, build_prompter_services
from cuesync.app.state import RuntimeState, RuntimeStateTracker
from cuesync.asr.stream_base import ScriptedTranscriptSource, TranscriptionUnavailable, load_transcript_lines
from cuesync.asr.whisper_source import WhisperTranscriptSource
from cuesync.catalog import is_known_voice
from cuesync.contracts import TranslationResult, TranslationStatus
from cuesync.live.pipeline import PrompterPipeline, RunState

MANUAL_STEP_CHARS = 20
DRY_RUN_LINE_SEC = 0.5

HELP_TEXT = (
    "commands: p=pause/resume  n [chars]=advance manually  lang A,B=target languages  "
    "voice NAME  sens 0-100  s=status  q=quit"
)


def _log_event(logger: logging.Logger | None, level: int, event: str, **fields: Any) -> None:
    if logger is None:
        return
    logger.log(level, event, extra=fields)


def format_progress(pipeline: PrompterPipeline) -> str:
    snap = pipeline.snapshot()
    total = len(pipeline.script)
    pct = int(round(100 * snap["scroll_ratio"]))
    flags = []
    if snap["is_processing"]:
        flags.append("translating")
    if snap["is_playing_audio"]:
        flags.append("speaking")
    line = f"[{snap['state']}] {snap['total_progress']}/{total} chars ({pct}%)"
    if flags:
        line += " " + ",".join(flags)
    return line


def format_result(result: TranslationResult, target_langs: Sequence[str]) -> list[str]:
    lines = [f"EN: {result.original_text}"]
    for lang in target_langs:
        text = result.translations.get(lang)
        if text:
            lines.append(f"{lang}: {text}")
    return lines


def apply_command(
    line: str,
    pipeline: PrompterPipeline,
    state: RuntimeStateTracker,
    *,
    logger: logging.Logger | None = None,
) -> str | None:
    """
    Run one console command against the pipeline.

    Returns the text to print, or None when the user asked to quit.
    """
    parts = line.strip().split(maxsplit=1)
    if not parts:
        return ""
    cmd = parts[0].lower()
    rest = parts[1].strip() if len(parts) > 1 else ""

    if cmd in ("q", "quit", "exit"):
        return None
    if cmd in ("p", "pause", "resume"):
        if pipeline.state == RunState.RUNNING:
            pipeline.pause()
        elif pipeline.state == RunState.PAUSED:
            pipeline.resume()
        return state.toggle_pause().value
    if cmd in ("n", "next"):
        try:
            chars = int(rest) if rest else MANUAL_STEP_CHARS
        except ValueError:
            return f"not a number: {rest}"
        pipeline.advance_manually(chars)
        return format_progress(pipeline)
    if cmd == "lang":
        langs = [x.strip() for x in rest.split(",") if x.strip()]
        if not langs:
            return "usage: lang Spanish,French"
        pipeline.update_settings(target_languages=langs)
        _log_event(logger, logging.INFO, "settings_changed", target_languages=langs)
        return "languages: " + ", ".join(langs)
    if cmd == "voice":
        if not is_known_voice(rest):
            return f"unknown voice: {rest}"
        pipeline.update_settings(voice_name=rest)
        _log_event(logger, logging.INFO, "settings_changed", voice_name=rest)
        return f"voice: {rest}"
    if cmd in ("sens", "sensitivity"):
        try:
            value = int(rest)
        except ValueError:
            return "usage: sens 0-100"
        pipeline.update_settings(sensitivity=max(0, min(100, value)))
        return f"sensitivity: {pipeline.settings.sensitivity}"
    if cmd in ("s", "status"):
        return format_progress(pipeline)
    return HELP_TEXT


def _start_stdin_reader(loop: asyncio.AbstractEventLoop, commands: "asyncio.Queue[str]") -> threading.Thread:
    def _read() -> None:
        for raw in sys.stdin:
            if loop.is_closed():
                return
            loop.call_soon_threadsafe(commands.put_nowait, raw)
        if not loop.is_closed():
            loop.call_soon_threadsafe(commands.put_nowait, "q")

    t = threading.Thread(target=_read, name="cuesync-stdin", daemon=True)
    t.start()
    return t


async def _wait_until_listening(
    pipeline: PrompterPipeline,
    source: ScriptedTranscriptSource,
    stop_event: asyncio.Event,
) -> bool:
    while not stop_event.is_set():
        if pipeline.state == RunState.STOPPED:
            return False
        if pipeline.state == RunState.RUNNING and source.active and not pipeline.paused_for_translation:
            return True
        await asyncio.sleep(0.05)
    return False


async def feed_transcript(
    pipeline: PrompterPipeline,
    source: ScriptedTranscriptSource,
    lines: Sequence[str],
    stop_event: asyncio.Event,
    *,
    line_sec: float = DRY_RUN_LINE_SEC,
) -> None:
    """Replay transcript lines as growing snapshots; a blank line ends the session."""
    for raw in lines:
        if not await _wait_until_listening(pipeline, source, stop_event):
            return
        words = raw.strip()
        if not words:
            source.end_session()
        else:
            source.say(words + " ")
        await asyncio.sleep(line_sec)
    # let the last fired block finish speaking
    while pipeline.paused_for_translation and not stop_event.is_set():
        await asyncio.sleep(0.05)
    await pipeline.playback.join()


async def _print_status(pipeline: PrompterPipeline, interval: float, stop_event: asyncio.Event) -> None:
    last = ""
    while not stop_event.is_set():
        line = format_progress(pipeline)
        if line != last:
            print(line)
            last = line
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass


async def preload_recognizer(services: PrompterServices, *, logger: logging.Logger | None = None) -> bool:
    """Load the speech model off the loop; a failure is reported again when the run starts."""
    source = services.source
    if not isinstance(source, WhisperTranscriptSource):
        return True
    try:
        await asyncio.to_thread(source.transcriber.ensure_ready)
    except TranscriptionUnavailable:
        if logger is not None:
            logger.exception("asr_runtime_preload_failed")
        return False
    return True


def _metrics(services: PrompterServices) -> dict[str, Any]:
    m = services.translation.metrics
    fetches = int(m["translate_requests"])
    avg_ms = float(m["fetch_ms_total"]) / fetches if fetches > 0 else 0.0
    pipeline = services.pipeline
    return {
        "total_progress": pipeline.total_progress,
        "blocks_fired": len(pipeline.detector.record.fired),
        "translate_requests": fetches,
        "synth_requests": int(m["synth_requests"]),
        "cache_hits": int(m["cache_hits"]),
        "failures": int(m["failures"]),
        "fetch_avg_ms": round(avg_ms, 2),
        "audio_dropped": services.playback.dropped,
        "sessions_started": pipeline.supervisor.sessions_started if pipeline.supervisor else 0,
    }


async def run_prompter(
    args: Any,
    script: str,
    *,
    state: RuntimeStateTracker | None = None,
    stop_event: asyncio.Event | None = None,
    read_stdin: bool = True,
    logger: logging.Logger | None = None,
) -> dict[str, Any]:
    state = state or RuntimeStateTracker()
    stop_event = stop_event or asyncio.Event()
    console = bool(args.print_console)
    services: PrompterServices | None = None

    def _on_result(result: TranslationResult) -> None:
        if services is None:
            return
        langs = services.settings.target_languages
        _log_event(logger, logging.INFO, "translation_result", id=result.id, langs=list(langs))
        if console:
            for line in format_result(result, langs):
                print(line)

    def _on_status(status: TranslationStatus) -> None:
        _log_event(logger, logging.DEBUG, "translation_status", status=status.value)
        if status == TranslationStatus.ERROR and services is not None:
            detail = services.translation.last_error or "translation failed"
            if console:
                print(f"Translation error: {detail}")
                print(f"Hint: {hint_for_exception(detail)}")

    def _on_error(reason: str) -> None:
        state.set_degraded(reason)
        if console:
            print(f"Speech recognition unavailable: {reason}")
            print(f"Hint: {hint_for_exception(reason)}")
            print("Use 'n [chars]' to advance the script manually.")

    services = build_prompter_services(
        args,
        script,
        on_result=_on_result,
        on_status=_on_status,
        on_error=_on_error,
        logger=logger,
    )
    pipeline = services.pipeline
    loop = asyncio.get_running_loop()

    _log_event(
        logger,
        logging.INFO,
        "worker_start",
        translator=services.translation.translator.name,
        model=str(args.model),
        script_chars=len(script),
        dry_run=bool(args.dry_run_transcript),
        langs=list(services.settings.target_languages),
        voice=services.settings.voice_name,
    )

    state.set_starting()
    await preload_recognizer(services, logger=logger)
    background: list[asyncio.Task] = []
    try:
        pipeline.start()
        state.set_running()

        if console:
            background.append(
                loop.create_task(_print_status(pipeline, max(0.1, float(args.status_interval_sec)), stop_event))
            )

        if args.dry_run_transcript and isinstance(services.source, ScriptedTranscriptSource):
            lines = load_transcript_lines(str(args.dry_run_transcript))
            feeder = loop.create_task(feed_transcript(pipeline, services.source, lines, stop_event))
            feeder.add_done_callback(lambda _t: stop_event.set())
            background.append(feeder)

        if read_stdin:
            commands: "asyncio.Queue[str]" = asyncio.Queue()
            _start_stdin_reader(loop, commands)
            if console:
                print(HELP_TEXT)
            while not stop_event.is_set():
                get_cmd = loop.create_task(commands.get())
                stop_wait = loop.create_task(stop_event.wait())
                done, _ = await asyncio.wait({get_cmd, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
                for t in (get_cmd, stop_wait):
                    if t not in done:
                        t.cancel()
                if get_cmd not in done:
                    break
                reply = apply_command(get_cmd.result(), pipeline, state, logger=logger)
                if reply is None:
                    stop_event.set()
                elif reply and console:
                    print(reply)
        else:
            await stop_event.wait()
    finally:
        stop_event.set()
        for t in background:
            t.cancel()
        if background:
            await asyncio.gather(*background, return_exceptions=True)
        metrics = _metrics(services)
        pipeline.stop()
        if state.state != RuntimeState.ERROR:
            state.set_stopped()
        _log_event(logger, logging.INFO, "worker_stop", **metrics)

    # feeder errors surface here rather than being lost in a callback
    for t in background:
        if not t.cancelled() and t.exception() is not None:
            raise t.exception()
    return metrics
