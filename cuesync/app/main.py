from __future__ import annotations

import asyncio
import sys
import traceback
from pathlib import Path

from cuesync.app.config import resolve_args
from cuesync.app.diagnostics import hint_for_exception, summarize_exception
from cuesync.app.logging_setup import setup_app_logger
from cuesync.app.runtime import run_prompter
from cuesync.app.state import RuntimeStateTracker
from cuesync.audio.mic import SoundDeviceMicSource


def load_script(path: str | None) -> str:
    if not path:
        raise SystemExit("No script given. Pass --script FILE or set \"script\" in the config.")
    p = Path(path)
    if not p.exists():
        raise SystemExit(f"Script file not found: {p}")
    return p.read_text(encoding="utf-8-sig")


def main(argv: list[str] | None = None) -> int:
    args = resolve_args(argv)
    logger, _log_dir, log_path = setup_app_logger(debug=bool(args.debug))
    logger.info("app_start", extra={"config_path": str(getattr(args, "config", "")), "argv": argv or []})

    if args.list_devices:
        print(SoundDeviceMicSource.list_devices())
        return 0

    try:
        script = load_script(args.script)
    except SystemExit as e:
        detail = str(e)
        logger.error("script_load_failed", extra={"detail": detail})
        print(detail)
        print(f"Hint: {hint_for_exception(detail)}")
        return 2

    state = RuntimeStateTracker()
    print("CueSync ready. Speak your script; press Ctrl+C to stop.")
    print(f"Logs: {log_path}")
    try:
        metrics = asyncio.run(
            run_prompter(
                args,
                script,
                state=state,
                read_stdin=sys.stdin.isatty() or not args.dry_run_transcript,
                logger=logger,
            )
        )
    except KeyboardInterrupt:
        logger.info("app_keyboard_interrupt")
        state.set_stopped()
        print("Stopped.")
        return 0
    except Exception:
        detail = traceback.format_exc()
        logger.exception("worker_crash")
        summary = summarize_exception(detail)
        state.set_error(summary)
        print(f"CueSync stopped: {summary}")
        print(f"Hint: {hint_for_exception(summary)}")
        return 1

    if args.print_console:
        print(
            f"Done: {metrics['total_progress']}/{len(script)} chars, "
            f"{metrics['blocks_fired']} block(s) spoken, {metrics['failures']} failure(s). "
            f"[{state.summary()}]"
        )
    logger.info("app_quit", extra={"state": state.summary()})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
