from __future__ import annotations

import argparse
import copy
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

DEFAULTS: dict[str, Any] = {
    "list_devices": False,
    "script": None,
    "dry_run_transcript": None,
    "device": None,
    "output_device": None,
    "sr": 16000,
    "channels": 1,
    "chunk_sec": 0.1,
    "sensitivity": 50,
    "gate_window_ms": 5000,
    "gate_mode": "energy",
    "gate_smoothing": 0.5,
    "model": "tiny",
    "language_lock": "en",
    "session_max_sec": 60.0,
    "restart_backoff_ms": 300,
    "max_restart_attempts": 5,
    "silence_ms": 500,
    "vad_aggressiveness": 2,
    "lookahead_chars": 50,
    "trigger_margin_chars": 5,
    "trigger_cooldown_sec": 2.0,
    "trigger_keyword": "translate",
    "translation_enabled": True,
    "translator": None,
    "translate_model": "gemini-3-flash-preview",
    "tts_model": "gemini-2.5-flash-preview-tts",
    "api_key_env": "GEMINI_API_KEY",
    "source_language": "English",
    "target_languages": ["Spanish"],
    "voice_enabled": True,
    "voice_name": "Kore",
    "playback_sr": 24000,
    "settle_ms": 600,
    "status_interval_sec": 1.0,
    "print_console": True,
    "debug": False,
}
CONFIG_KEYS: tuple[str, ...] = tuple(DEFAULTS.keys())


@dataclass(frozen=True)
class AppPaths:
    config_dir: Path
    config_path: Path


def default_asset_config_path() -> Path:
    return Path(__file__).resolve().parents[2] / "assets" / "config" / "default.json"


def app_paths() -> AppPaths:
    config_dir = Path(user_config_dir("CueSync", "CueSync"))
    return AppPaths(config_dir=config_dir, config_path=config_dir / "config.json")


def _load_json_dict(path: Path) -> dict[str, Any]:
    # Accept UTF-8 with or without BOM for Windows-edited config files.
    with path.open("r", encoding="utf-8-sig") as f:
        loaded = json.load(f)
    if not isinstance(loaded, dict):
        raise ValueError(f"config must be a JSON object: {path}")
    return loaded


def _write_json_dict(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
        f.write("\n")


def _known_only(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: payload[key] for key in CONFIG_KEYS if key in payload}


def _normalize(values: dict[str, Any]) -> dict[str, Any]:
    langs = values.get("target_languages")
    if isinstance(langs, str):
        values["target_languages"] = [x.strip() for x in langs.split(",") if x.strip()]
    if "sensitivity" in values:
        values["sensitivity"] = max(0, min(100, int(values["sensitivity"])))
    return values


def load_default_config() -> dict[str, Any]:
    path = default_asset_config_path()
    if not path.exists():
        return copy.deepcopy(DEFAULTS)
    loaded = _load_json_dict(path)
    out = copy.deepcopy(DEFAULTS)
    for key in DEFAULTS.keys():
        if key in loaded:
            out[key] = loaded[key]
    return out


def load_user_config(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    defaults = load_default_config()
    if config_path:
        chosen = Path(config_path)
        if not chosen.exists():
            raise SystemExit(f"Config file not found: {chosen}")
    else:
        chosen = ensure_user_config_exists(defaults)
    merged = dict(defaults)
    merged.update(_known_only(_load_json_dict(chosen)))
    return _normalize(merged), chosen


def save_user_config(values: dict[str, Any], config_path: str | None = None) -> Path:
    payload = _normalize(_known_only(values))
    defaults = load_default_config()
    if config_path:
        path = Path(config_path)
        existing = _known_only(_load_json_dict(path)) if path.exists() else {}
    else:
        path = ensure_user_config_exists(defaults)
        existing = _known_only(_load_json_dict(path))
    merged = dict(defaults)
    merged.update(existing)
    merged.update(payload)
    _write_json_dict(path, _known_only(merged))
    return path


def ensure_user_config_exists(defaults: dict[str, Any] | None = None) -> Path:
    paths = app_paths()
    if paths.config_path.exists():
        return paths.config_path
    _write_json_dict(paths.config_path, defaults or load_default_config())
    return paths.config_path


def resolve_defaults(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    return load_user_config(config_path=config_path)


def _csv_list(value: str) -> list[str]:
    return [x.strip() for x in value.split(",") if x.strip()]


def _sensitivity(value: str) -> int:
    n = int(value)
    if not 0 <= n <= 100:
        raise argparse.ArgumentTypeError("sensitivity must be 0-100")
    return n


def parser_with_defaults(defaults: dict[str, Any]) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="cuesync", description="Speech-following teleprompter with spoken translations")
    p.add_argument("--config", default=None, help="JSON config path (CLI flags override config)")
    p.add_argument("--list-devices", action="store_true", help="print audio devices and exit")
    p.add_argument("--script", default=defaults["script"], help="script text file; wrap {segments} to translate")
    p.add_argument(
        "--dry-run-transcript",
        default=defaults["dry_run_transcript"],
        help="replay a transcript file instead of listening (one line per utterance, blank line ends a session)",
    )

    mic = p.add_argument_group("microphone")
    mic.add_argument("--device", type=int, default=defaults["device"], help="sounddevice input device id")
    mic.add_argument("--output-device", type=int, default=defaults["output_device"], help="sounddevice output device id")
    mic.add_argument("--sr", type=int, default=defaults["sr"], help="sample rate (Hz)")
    mic.add_argument("--channels", type=int, default=defaults["channels"], help="input channels")
    mic.add_argument("--chunk-sec", type=float, default=defaults["chunk_sec"], help="mic chunk size in seconds")

    gate = p.add_argument_group("noise gate")
    gate.add_argument(
        "--sensitivity",
        type=_sensitivity,
        default=defaults["sensitivity"],
        help="0-100; higher picks up quieter speech",
    )
    gate.add_argument("--gate-window-ms", type=int, default=defaults["gate_window_ms"], help="loud-activity window")
    gate.add_argument("--gate-mode", default=defaults["gate_mode"], choices=["energy", "webrtc"], help="gate detector")
    gate.add_argument("--gate-smoothing", type=float, default=defaults["gate_smoothing"], help="level smoothing 0-1")

    asr = p.add_argument_group("recognition")
    asr.add_argument("--model", default=defaults["model"], help="faster-whisper model size")
    asr.add_argument(
        "--language-lock",
        default=defaults["language_lock"],
        help="ASR language: auto to detect, or a whisper language code such as en",
    )
    asr.add_argument("--session-max-sec", type=float, default=defaults["session_max_sec"], help="recognition session length")
    asr.add_argument("--restart-backoff-ms", type=int, default=defaults["restart_backoff_ms"], help="delay before restart")
    asr.add_argument(
        "--max-restart-attempts",
        type=int,
        default=defaults["max_restart_attempts"],
        help="give up on recognition after this many failed restarts",
    )
    asr.add_argument("--silence-ms", type=int, default=defaults["silence_ms"], help="utterance end silence")
    asr.add_argument("--vad-aggressiveness", type=int, default=defaults["vad_aggressiveness"], choices=[0, 1, 2, 3])

    trig = p.add_argument_group("triggering")
    trig.add_argument("--lookahead-chars", type=int, default=defaults["lookahead_chars"], help="pre-fetch distance")
    trig.add_argument(
        "--trigger-margin-chars",
        type=int,
        default=defaults["trigger_margin_chars"],
        help="fire this many chars before the closing brace",
    )
    trig.add_argument(
        "--trigger-cooldown-sec",
        type=float,
        default=defaults["trigger_cooldown_sec"],
        help="minimum gap between two spoken blocks",
    )
    trig.add_argument("--trigger-keyword", default=defaults["trigger_keyword"], help="spoken word that forces a fire")

    tr = p.add_argument_group("translation")
    tr.add_argument(
        "--translation-enabled",
        action=argparse.BooleanOptionalAction,
        default=defaults["translation_enabled"],
        help="translate {blocks}",
    )
    tr.add_argument(
        "--translator",
        default=defaults["translator"],
        choices=["gemini", "argos", "stub"],
        help="translation provider (default: $CUESYNC_TRANSLATOR or gemini)",
    )
    tr.add_argument("--translate-model", default=defaults["translate_model"], help="Gemini text model")
    tr.add_argument("--tts-model", default=defaults["tts_model"], help="Gemini speech model")
    tr.add_argument("--api-key-env", default=defaults["api_key_env"], help="env var holding the API key")
    tr.add_argument("--source-language", default=defaults["source_language"])
    tr.add_argument(
        "--target-languages",
        type=_csv_list,
        default=defaults["target_languages"],
        help="comma separated, first one is spoken",
    )
    tr.add_argument(
        "--voice-enabled",
        action=argparse.BooleanOptionalAction,
        default=defaults["voice_enabled"],
        help="speak translations",
    )
    tr.add_argument("--voice-name", default=defaults["voice_name"], help="TTS voice")

    out = p.add_argument_group("output")
    out.add_argument("--playback-sr", type=int, default=defaults["playback_sr"], help="TTS sample rate")
    out.add_argument("--settle-ms", type=int, default=defaults["settle_ms"], help="pause between clips")
    out.add_argument(
        "--status-interval-sec",
        type=float,
        default=defaults["status_interval_sec"],
        help="console progress refresh",
    )
    out.add_argument(
        "--print-console",
        action=argparse.BooleanOptionalAction,
        default=defaults["print_console"],
        help="print progress and translations to console",
    )
    p.add_argument("--debug", action="store_true", help="verbose logging")
    return p


def resolve_args(argv: list[str] | None = None) -> argparse.Namespace:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", default=None)
    pre_args, _ = pre.parse_known_args(argv)
    defaults, _ = resolve_defaults(config_path=pre_args.config)
    parser = parser_with_defaults(defaults)
    args = parser.parse_args(argv)
    if defaults.get("list_devices"):
        args.list_devices = True
    if defaults.get("debug"):
        args.debug = True
    return args
