"""Tests for the YAML configuration layer."""

from readaloud.utils.config import Config, _merge, config


def test_config_is_a_singleton():
    assert Config() is config


def test_settings_file_values():
    assert config.speed == 1.0
    assert config.volume == 1.0
    assert config.speed_min == 0.5
    assert config.speed_max == 2.0
    assert config.words_per_minute == 150
    assert config.base_rate == 200
    assert config.voice is None


def test_get_nested_and_missing():
    assert config.get("playback", "speed_max") == 2.0
    assert config.get("playback", "missing", default=3) == 3
    assert config.get("voice", "speed", "deeper", default="x") == "x"


def test_settings_file_lives_under_project_root():
    assert (config.project_root / "config" / "settings.yaml").exists()


def test_merge_keeps_unset_defaults():
    defaults = {"voice": {"speed": 1.0, "volume": 1.0}, "engine": {"name": "pyttsx3"}}
    merged = _merge(defaults, {"voice": {"speed": 1.5}, "extra": 1})

    assert merged == {
        "voice": {"speed": 1.5, "volume": 1.0},
        "engine": {"name": "pyttsx3"},
        "extra": 1,
    }
    assert defaults["voice"]["speed"] == 1.0


def test_engine_name_from_environment(monkeypatch):
    monkeypatch.delenv("READALOUD_ENGINE", raising=False)
    assert config.tts_engine == "pyttsx3"
    monkeypatch.setenv("READALOUD_ENGINE", "PYTTSX3")
    assert config.tts_engine == "pyttsx3"
