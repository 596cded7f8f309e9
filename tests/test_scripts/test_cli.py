"""Tests for the command-line entry points' handling of unusable configuration."""
import logging

import pytest

from scripts import index_images, search_media, serve


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ["APP_CONFIG", "APP_DATABASE__PORT"]:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def broken_config(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{broken", encoding="utf-8")
    return path


def _argv(script, tmp_path, config):
    if script is index_images:
        return [str(tmp_path), "--yes", "--config", str(config)]
    if script is search_media:
        return ["a red square", "--config", str(config)]
    return ["--port", "0", "--config", str(config)]


@pytest.mark.parametrize("script", [index_images, search_media, serve], ids=["index", "search", "serve"])
def test_malformed_config_file_exits_with_usage_code(script, tmp_path, broken_config, caplog):
    with caplog.at_level(logging.ERROR):
        code = script.main(_argv(script, tmp_path, broken_config))

    assert code == 2
    assert any("Startup failed" in record.getMessage() for record in caplog.records)


@pytest.mark.parametrize("script", [index_images, search_media, serve], ids=["index", "search", "serve"])
def test_ill_typed_environment_exits_with_usage_code(script, tmp_path, monkeypatch):
    monkeypatch.setenv("APP_DATABASE__PORT", "not-a-port")

    assert script.main(_argv(script, tmp_path, tmp_path / "absent.json")) == 2
