# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.05.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/test_config.py

from pathlib import Path

import pytest
import yaml

from cloudsave.config.manager import (
    UserConfig, _load_merged_config_data, _validate_system_config, default_datastore,
    load_merged_user_config, validate_config
)
from cloudsave.system.exceptions import ConfigError


def write_yaml(directory: Path, data, name: str = "cloudsave.yml") -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(data if isinstance(data, str) else yaml.safe_dump(data))
    return path


class TestDefaults:

    def test_no_config_file(self, isolated_config):
        config = load_merged_user_config()
        assert config.datastore == isolated_config / ".config" / "cloudsave" / "data"
        assert config.repository == "direct"
        assert config.hash_algorithm == "md5"
        assert config.backup_limit == 6
        assert config.backup_before_overwrite
        assert config.local_log is None
        assert config.credentials == {}

    def test_default_datastore_follows_xdg(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
        assert default_datastore() == tmp_path / "xdg" / "cloudsave" / "data"


class TestSearchPaths:

    def test_user_config(self, isolated_config):
        write_yaml(isolated_config / ".config" / "cloudsave", {"backup_limit": 3})
        assert load_merged_user_config().backup_limit == 3

    def test_explicit_override_wins(self, isolated_config, tmp_path, monkeypatch):
        write_yaml(isolated_config / ".config" / "cloudsave",
                   {"backup_limit": 3, "repository": "caching"})
        override = tmp_path / "override"
        write_yaml(override, {"backup_limit": 9})
        monkeypatch.setenv("CLOUDSAVE_CONFIG_HOME", str(override))

        config = load_merged_user_config()
        assert config.backup_limit == 9
        assert config.repository == "caching"

    def test_paths_expand_user(self, isolated_config):
        write_yaml(isolated_config / ".config" / "cloudsave",
                   {"datastore": "~/saves", "local_log": "~/logs"})
        config = load_merged_user_config()
        assert config.datastore == isolated_config / "saves"
        assert config.local_log == isolated_config / "logs"

    def test_empty_file(self, isolated_config):
        write_yaml(isolated_config / ".config" / "cloudsave", "")
        assert load_merged_user_config().backup_limit == 6


class TestErrors:

    def test_invalid_yaml(self, isolated_config):
        write_yaml(isolated_config / ".config" / "cloudsave", "backup_limit: [unclosed")
        with pytest.raises(ConfigError, match="Failed to load"):
            load_merged_user_config()

    def test_not_a_mapping(self, isolated_config):
        write_yaml(isolated_config / ".config" / "cloudsave", "- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_merged_user_config()

    @pytest.mark.parametrize("data", [
        {"backup_limit": 0},
        {"repository": "s3"},
        {"hash_algorithm": "sha1"},
        {"request_timeout": -1},
    ])
    def test_invalid_values(self, isolated_config, data):
        write_yaml(isolated_config / ".config" / "cloudsave", data)
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_merged_user_config()

    def test_system_config_rejects_credentials(self):
        data = {"credentials": {"http://a.example": {"username": "u", "password": "p"}}}
        with pytest.raises(ConfigError, match="personal fields"):
            _validate_system_config(data, Path("/etc/cloudsave/cloudsave.yml"))

    def test_user_config_may_hold_credentials(self, tmp_path):
        data = {"credentials": {}}
        assert _validate_system_config(data, tmp_path / "cloudsave.yml") is data

    def test_missing_candidates_are_skipped(self, tmp_path):
        assert _load_merged_config_data((tmp_path / "a.yml", tmp_path / "b.yml")) == {}


class TestCredentials:

    def test_lookup_ignores_trailing_slash(self):
        config = UserConfig.model_validate({
            "credentials": {"http://saves.example/": {"username": "player", "password": "secret"}}
        })
        creds = config.credentials_for("http://saves.example")
        assert creds.username == "player"
        assert config.credentials_for("http://saves.example/").password == "secret"
        assert config.credentials_for("http://other.example") is None

    def test_load(self, tmp_path):
        path = write_yaml(tmp_path, {"backup_limit": 2})
        assert UserConfig.load(path).backup_limit == 2


class TestValidateConfig:

    def test_valid(self, isolated_config):
        assert validate_config() == []

    def test_load_failure_is_reported(self, isolated_config):
        write_yaml(isolated_config / ".config" / "cloudsave", {"backup_limit": 0})
        errors = validate_config()
        assert len(errors) == 1
        assert "Invalid configuration" in errors[0]

    def test_relative_datastore(self, isolated_config):
        write_yaml(isolated_config / ".config" / "cloudsave", {"datastore": "relative/dir"})
        assert any("absolute" in e for e in validate_config())

    def test_datastore_is_a_file(self, isolated_config, tmp_path):
        target = tmp_path / "not-a-dir"
        target.write_text("x")
        write_yaml(isolated_config / ".config" / "cloudsave", {"datastore": str(target)})
        assert any("not a directory" in e for e in validate_config())

    def test_bad_credential_url(self, isolated_config):
        write_yaml(isolated_config / ".config" / "cloudsave",
                   {"credentials": {"saves.example": {"username": "u", "password": "p"}}})
        assert any("not an http(s) URL" in e for e in validate_config())

    def test_fast_hash_with_remote(self, isolated_config):
        write_yaml(isolated_config / ".config" / "cloudsave", {
            "hash_algorithm": "xxh3_64",
            "credentials": {"http://saves.example": {"username": "u", "password": "p"}},
        })
        assert any("hash_algorithm" in e for e in validate_config())
