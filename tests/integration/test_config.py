"""Tests for configuration loading."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from rvcs.cache import ONE_SECOND_NS
from rvcs.config import RvcsConfig, default_data_dir, get_config_path, load_config, save_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("RVCS_DATA_DIR", raising=False)
    monkeypatch.delenv("RVCS_WORKERS", raising=False)


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path: Path):
        config = load_config(tmp_path)

        assert config.data_dir == tmp_path
        assert config.exclude_patterns == []
        assert config.workers >= 1
        assert config.cache_granularity_ns == ONE_SECOND_NS

    def test_default_data_dir(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("HOME", str(tmp_path))

        assert default_data_dir() == tmp_path / ".rvcs"

    def test_data_dir_from_env(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("RVCS_DATA_DIR", str(tmp_path / "store"))

        assert load_config().data_dir == tmp_path / "store"

    def test_reads_file(self, tmp_path: Path):
        get_config_path(tmp_path).write_text(
            json.dumps({"exclude_patterns": ["*.pyc"], "workers": 3})
        )

        config = load_config(tmp_path)

        assert config.exclude_patterns == ["*.pyc"]
        assert config.workers == 3
        assert config.data_dir == tmp_path

    def test_workers_env_override(self, monkeypatch, tmp_path: Path):
        get_config_path(tmp_path).write_text(json.dumps({"workers": 3}))
        monkeypatch.setenv("RVCS_WORKERS", "7")

        assert load_config(tmp_path).workers == 7

    def test_invalid_workers(self, tmp_path: Path):
        get_config_path(tmp_path).write_text(json.dumps({"workers": 0}))

        with pytest.raises(ValidationError):
            load_config(tmp_path)


def test_save_and_load(tmp_path: Path):
    config = RvcsConfig(data_dir=tmp_path / "data", exclude_patterns=[".git"], workers=2)

    save_config(config)

    assert load_config(tmp_path / "data") == config
