"""Tests for settings loading."""
import pytest
import yaml
from pydantic import ValidationError

from chatcore.config import AppSettings, load_settings


def _write(path, data):
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestLoadSettings:

    def test_missing_files_fall_back_to_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "none.yaml", tmp_path / "none.secrets.yaml")

        assert settings == AppSettings()
        assert settings.chat.max_page_size == 100
        assert settings.chat.max_content_length == 5000
        assert settings.mentions.suggestion_limit == 10
        assert settings.secrets.jwt.algorithm == "HS256"

    def test_settings_and_secrets_are_merged(self, tmp_path):
        settings_file = _write(tmp_path / "s.yaml", {
            "server": {"port": 9000},
            "store": {"db_path": ":memory:"},
            "chat": {"default_page_size": 20},
        })
        secrets_file = _write(tmp_path / "x.yaml", {"jwt": {"secret_key": "s3cret"}})

        settings = load_settings(settings_file, secrets_file)

        assert settings.server.port == 9000
        assert settings.store.db_path == ":memory:"
        assert settings.chat.default_page_size == 20
        assert settings.chat.max_page_size == 100
        assert settings.secrets.jwt.secret_key == "s3cret"

    def test_empty_file_is_defaults(self, tmp_path):
        empty = tmp_path / "empty.yaml"
        empty.write_text("", encoding="utf-8")
        assert load_settings(empty, empty).server.port == 8000

    def test_log_level_is_normalised(self, tmp_path):
        settings_file = _write(tmp_path / "s.yaml", {"logging": {"level": "DEBUG"}})
        assert load_settings(settings_file, tmp_path / "none").logging.level == "debug"

    def test_unknown_log_level_rejected(self, tmp_path):
        settings_file = _write(tmp_path / "s.yaml", {"logging": {"level": "loud"}})
        with pytest.raises(ValidationError):
            load_settings(settings_file, tmp_path / "none")

    def test_page_size_must_be_positive(self, tmp_path):
        settings_file = _write(tmp_path / "s.yaml", {"chat": {"max_page_size": 0}})
        with pytest.raises(ValidationError):
            load_settings(settings_file, tmp_path / "none")
