"""
tests/test_settings.py

Unit tests for configuration loading from YAML and the environment.
"""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from geospider.config.settings import (
    RuntimeConfig,
    load_config,
    load_config_from_yaml,
)
from geospider.errors import ConfigurationError


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run every test in an empty directory with no GEOSPIDER_* variables."""
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("GEOSPIDER_"):
            monkeypatch.delenv(key)
    return tmp_path


def test_yaml_with_only_server_url_uses_defaults() -> None:
    config = load_config_from_yaml("serverUrl: https://api.example.com/locations\n")

    assert config.server_url == "https://api.example.com/locations"
    assert config.collection_interval_seconds == 60
    assert config.sync_batch_size == 50
    assert config.max_offline_storage_days == 7
    assert config.sync_interval_seconds == 300
    assert config.location_source == "simulated"


def test_yaml_accepts_camel_and_snake_case_keys() -> None:
    config = load_config_from_yaml(
        "serverUrl: https://api.example.com/locations\n"
        "collectionIntervalSeconds: 30\n"
        "sync_batch_size: 10\n"
        "maxOfflineStorageDays: 3\n"
    )

    assert config.collection_interval_seconds == 30
    assert config.sync_batch_size == 10
    assert config.max_offline_storage_days == 3


def test_yaml_without_server_url_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="serverUrl is required"):
        load_config_from_yaml("collectionIntervalSeconds: 30\n")


def test_empty_yaml_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="cannot be empty"):
        load_config_from_yaml("   \n")


def test_malformed_yaml_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="Invalid YAML format"):
        load_config_from_yaml("serverUrl: [unclosed\n")


def test_yaml_that_is_not_a_mapping_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        load_config_from_yaml("- just\n- a list\n")


@pytest.mark.parametrize(
    "line",
    [
        "collectionIntervalSeconds: 0",
        "syncBatchSize: -5",
        "maxOfflineStorageDays: 0",
        "locationSource: carrier-pigeon",
    ],
)
def test_out_of_range_values_are_rejected(line: str) -> None:
    with pytest.raises(ConfigurationError, match="Invalid configuration"):
        load_config_from_yaml(f"serverUrl: https://api.example.com/locations\n{line}\n")


def test_relative_server_url_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="valid absolute URL"):
        load_config_from_yaml("serverUrl: /locations\n")


@pytest.mark.parametrize("url", ["ftp://files.example.com/upload", "file://host/tmp/out"])
def test_server_url_without_transport_is_rejected(url: str) -> None:
    with pytest.raises(ConfigurationError, match="Unsupported URL scheme"):
        load_config_from_yaml(f"serverUrl: {url}\n")


def test_config_is_immutable() -> None:
    config = load_config_from_yaml("serverUrl: https://api.example.com/locations\n")
    with pytest.raises(ValidationError):
        config.sync_batch_size = 1


def test_load_config_reads_yaml_file(isolated_env: Path) -> None:
    path = isolated_env / "config.yaml"
    path.write_text("serverUrl: s3://bucket/locations\nsyncBatchSize: 25\n")

    config = load_config(path)

    assert config.server_url == "s3://bucket/locations"
    assert config.sync_batch_size == 25


def test_load_config_missing_file(isolated_env: Path) -> None:
    with pytest.raises(ConfigurationError, match="not found"):
        load_config(isolated_env / "missing.yaml")


def test_load_config_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEOSPIDER_SERVER_URL", "https://api.example.com/locations")
    monkeypatch.setenv("GEOSPIDER_SYNC_BATCH_SIZE", "5")

    config = load_config()

    assert config.sync_batch_size == 5
    assert config.store_path.name == "samples.parquet"


def test_load_config_from_dotenv(isolated_env: Path) -> None:
    (isolated_env / ".env").write_text(
        "GEOSPIDER_SERVER_URL=https://api.example.com/locations\n"
        "GEOSPIDER_LOCATION_SOURCE=GPSD\n"
    )

    config = load_config()

    assert config.location_source == "gpsd"


def test_load_config_without_server_url_in_environment() -> None:
    with pytest.raises(ConfigurationError, match="server_url"):
        load_config()


def test_data_dir_is_expanded(isolated_env: Path) -> None:
    config = RuntimeConfig(server_url="https://api.example.com", data_dir="store")
    assert config.data_dir == isolated_env.resolve() / "store"
