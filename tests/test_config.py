import pytest

from narrador.config import ENV_OVERRIDES, load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for env_var in ENV_OVERRIDES:
        monkeypatch.delenv(env_var, raising=False)


def test_defaults_without_file(tmp_path):
    settings = load_settings(tmp_path / "no_existe.yaml")

    assert settings.engine.voicevox_url == "http://127.0.0.1:50021"
    assert settings.engine.default_speaker_id == 1
    assert settings.cache.max_bytes == 500 * 1024 * 1024
    assert settings.export.auto_padding_seconds == 2.0
    assert settings.log_level == "INFO"


def test_yaml_values(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text(
        "engine:\n"
        "  default_speaker_id: 8\n"
        "  max_attempts: 5\n"
        "cache:\n"
        "  directory: /tmp/voces\n"
        "export:\n"
        "  default_scene_seconds: 4.5\n",
        encoding="utf-8",
    )
    settings = load_settings(config)

    assert settings.engine.default_speaker_id == 8
    assert settings.engine.max_attempts == 5
    assert settings.cache.directory == "/tmp/voces"
    assert settings.export.default_scene_seconds == 4.5


def test_environment_overrides_yaml(tmp_path, monkeypatch):
    config = tmp_path / "config.yaml"
    config.write_text("engine:\n  voicevox_url: http://yaml:50021\ncache:\n", encoding="utf-8")
    monkeypatch.setenv("VOICEVOX_URL", "http://env:50021")
    monkeypatch.setenv("NARRADOR_SPEAKER_ID", "13")
    monkeypatch.setenv("NARRADOR_CACHE_DIR", "/var/cache/voces")
    monkeypatch.setenv("NARRADOR_LOG_LEVEL", "DEBUG")

    settings = load_settings(config)

    assert settings.engine.voicevox_url == "http://env:50021"
    assert settings.engine.default_speaker_id == 13
    assert settings.cache.directory == "/var/cache/voces"
    assert settings.log_level == "DEBUG"


def test_empty_environment_value_is_ignored(tmp_path, monkeypatch):
    monkeypatch.setenv("NARRADOR_FFMPEG", "")
    assert load_settings(tmp_path / "no_existe.yaml").engine.ffmpeg_path is None
