from __future__ import annotations


def summarize_exception(detail: str, *, max_len: int = 220) -> str:
    text = str(detail or "").strip()
    if not text:
        return "Unknown runtime error."
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    if not lines:
        return "Unknown runtime error."
    for ln in reversed(lines):
        if ln.startswith(("File ", "^", "Traceback ")):
            continue
        out = ln
        break
    else:
        out = lines[-1]
    if len(out) > max_len:
        return out[: max_len - 3].rstrip() + "..."
    return out


def hint_for_exception(summary: str) -> str:
    s = str(summary or "").lower()
    if "api_key" in s and "not set" in s:
        return "Set the Gemini API key environment variable (see api_key_env in config) or use --translator stub."
    if "no module named" in s or "is not installed" in s:
        return "A required package is missing in this virtualenv. Reinstall dependencies and retry."
    if "config file not found" in s:
        return "Configured JSON file is missing. Update the config path or restore the file."
    if "script file not found" in s:
        return "Pass an existing text file with --script."
    if "microphone" in s and "failed" in s:
        return "Microphone init failed. Check input device selection and app mic permissions."
    if "whisper model" in s:
        return "Speech model failed to load. Check --model and disk space; progress falls back to manual."
    return "Check logs for full traceback."
