"""Tests for settings defaults, environment overrides, and YAML loading."""

from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from GoReleases.errors import ConfigError
from GoReleases.settings import (
    DEFAULT_CATALOG_URL,
    DEFAULT_DOWNLOAD_BASE_URL,
    FetchSettings,
    build_settings,
    get_default_settings,
    invalidate_default_settings_cache,
    load_settings,
)


def test_defaults():
    cfg = FetchSettings()

    assert cfg.download_base_url == DEFAULT_DOWNLOAD_BASE_URL == "https://go.dev/dl/"
    assert cfg.catalog_url == DEFAULT_CATALOG_URL
    assert cfg.extraction_root_name == "go"
    assert cfg.digest_algorithm == "sha256"
    assert cfg.follow_redirects is True
    assert cfg.level_int() == logging.INFO
    assert cfg.download_url("go1.21.0.linux-amd64.tar.gz") == "https://go.dev/dl/go1.21.0.linux-amd64.tar.gz"


def test_download_url_tolerates_missing_trailing_slash():
    cfg = FetchSettings(download_base_url="https://mirror.example.test/golang")

    assert cfg.download_url("go.tar.gz") == "https://mirror.example.test/golang/go.tar.gz"


@pytest.mark.parametrize("name", ["", ".", "..", "a/b", "a\\b"])
def test_root_name_must_be_single_component(name):
    with pytest.raises(ValidationError):
        FetchSettings(extraction_root_name=name)


def test_digest_algorithm_is_normalised_and_checked():
    assert FetchSettings(digest_algorithm=" SHA512 ").digest_algorithm == "sha512"
    with pytest.raises(ValidationError):
        FetchSettings(digest_algorithm="crc32")


def test_log_level_validation():
    assert FetchSettings(log_level="debug").log_level == "DEBUG"
    with pytest.raises(ValidationError):
        FetchSettings(log_level="chatty")


def test_settings_are_frozen():
    cfg = FetchSettings()

    with pytest.raises(ValidationError):
        cfg.chunk_size = 1


def test_environment_overrides_apply_to_defaults(monkeypatch):
    monkeypatch.setenv("GORELEASES_DOWNLOAD_BASE_URL", "https://mirror.example.test/dl/")
    monkeypatch.setenv("GORELEASES_CHUNK_SIZE", "4096")
    invalidate_default_settings_cache()

    cfg = get_default_settings()

    assert cfg.download_base_url == "https://mirror.example.test/dl/"
    assert cfg.chunk_size == 4096
    assert get_default_settings() is cfg


def test_default_settings_cache_can_be_refreshed(monkeypatch):
    first = get_default_settings()
    monkeypatch.setenv("GORELEASES_LOG_LEVEL", "debug")

    assert get_default_settings() is first
    assert get_default_settings(refresh=True).log_level == "DEBUG"


def test_invalid_environment_override_is_config_error(monkeypatch):
    monkeypatch.setenv("GORELEASES_CHUNK_SIZE", "12")

    with pytest.raises(ConfigError):
        build_settings()


def test_load_settings_from_yaml(tmp_path, monkeypatch):
    config = tmp_path / "goreleases.yaml"
    config.write_text(
        "download_base_url: https://mirror.example.test/dl/\n"
        "connect_retries: 5\n"
        "log_level: warning\n"
    )
    monkeypatch.setenv("GORELEASES_CONNECT_RETRIES", "1")

    cfg = load_settings(config)

    assert cfg.download_base_url == "https://mirror.example.test/dl/"
    assert cfg.log_level == "WARNING"
    # environment wins over the file
    assert cfg.connect_retries == 1


def test_empty_yaml_file_gives_defaults(tmp_path):
    config = tmp_path / "empty.yaml"
    config.write_text("")

    assert load_settings(config) == FetchSettings()


@pytest.mark.parametrize(
    "content",
    ["- just\n- a list\n", "chunk_size: [unclosed\n", "unknown_key: 1\n", "chunk_size: 1\n"],
    ids=["not-a-mapping", "bad-yaml", "unknown-key", "out-of-range"],
)
def test_invalid_settings_files(tmp_path, content):
    config = tmp_path / "bad.yaml"
    config.write_text(content)

    with pytest.raises(ConfigError):
        load_settings(config)


def test_missing_settings_file(tmp_path):
    with pytest.raises(ConfigError):
        load_settings(tmp_path / "absent.yaml")
