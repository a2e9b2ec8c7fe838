from __future__ import annotations

import json
from pathlib import Path

import pytest

from cuesync.app import config as app_config


def test_load_default_config_contains_expected_keys() -> None:
    cfg = app_config.load_default_config()
    assert cfg["translator"] is None
    assert cfg["lookahead_chars"] == 50
    assert cfg["trigger_margin_chars"] == 5
    assert cfg["sensitivity"] == 50
    assert cfg["target_languages"] == ["Spanish"]


def test_defaults_are_not_shared_between_loads() -> None:
    first = app_config.load_default_config()
    first["target_languages"].append("French")
    assert app_config.load_default_config()["target_languages"] == ["Spanish"]


def test_resolve_defaults_uses_explicit_config(tmp_path: Path) -> None:
    cfg_path = tmp_path / "explicit.json"
    cfg_path.write_text(json.dumps({"sr": 16000, "model": "tiny"}), encoding="utf-8")
    defaults, used = app_config.resolve_defaults(str(cfg_path))
    assert used == cfg_path
    assert defaults["sr"] == 16000
    assert defaults["model"] == "tiny"


def test_missing_explicit_config_exits(tmp_path: Path) -> None:
    with pytest.raises(SystemExit, match="Config file not found"):
        app_config.load_user_config(str(tmp_path / "nope.json"))


def test_ensure_user_config_exists_creates_file(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path))
    created = app_config.ensure_user_config_exists({"translator": "stub", "sr": 16000})
    assert created == tmp_path / "config.json"
    loaded = json.loads(created.read_text(encoding="utf-8"))
    assert loaded["translator"] == "stub"
    assert loaded["sr"] == 16000


def test_load_user_config_ignores_unknown_keys(tmp_path: Path) -> None:
    cfg_path = tmp_path / "user.json"
    cfg_path.write_text(
        json.dumps({"sr": 48000, "translator": "argos", "unexpected": 1}),
        encoding="utf-8",
    )
    loaded, used = app_config.load_user_config(str(cfg_path))
    assert used == cfg_path
    assert loaded["sr"] == 48000
    assert loaded["translator"] == "argos"
    assert "unexpected" not in loaded


def test_load_user_config_normalizes_values(tmp_path: Path) -> None:
    cfg_path = tmp_path / "user.json"
    cfg_path.write_text(
        json.dumps({"target_languages": "French, German", "sensitivity": 140}),
        encoding="utf-8-sig",
    )
    loaded, _ = app_config.load_user_config(str(cfg_path))
    assert loaded["target_languages"] == ["French", "German"]
    assert loaded["sensitivity"] == 100


def test_non_object_config_rejected(tmp_path: Path) -> None:
    cfg_path = tmp_path / "user.json"
    cfg_path.write_text("[1, 2, 3]", encoding="utf-8")
    with pytest.raises(ValueError):
        app_config.load_user_config(str(cfg_path))


def test_save_user_config_merges_and_filters_keys(tmp_path: Path) -> None:
    cfg_path = tmp_path / "user.json"
    cfg_path.write_text(
        json.dumps({"sr": 16000, "translator": "stub", "debug": False}),
        encoding="utf-8",
    )
    saved = app_config.save_user_config(
        {"translator": "argos", "voice_name": "Puck", "junk": "x"},
        config_path=str(cfg_path),
    )
    assert saved == cfg_path
    loaded = json.loads(cfg_path.read_text(encoding="utf-8"))
    assert loaded["sr"] == 16000
    assert loaded["translator"] == "argos"
    assert loaded["voice_name"] == "Puck"
    assert "junk" not in loaded
