# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.05.10
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/test_cli.py

"""
End-to-end tests of the typer app. The autouse ``isolated_config`` fixture
points the default datastore at ``$XDG_CONFIG_HOME/cloudsave/data`` inside
the test's tmp_path.
"""

import io
import os
import time

import pytest
from typer.testing import CliRunner

import cloudsave
from cloudsave.cli.main import app
from cloudsave.core.archive import pack
from cloudsave.storage.protocols import GameIdentifier
from cloudsave.storage.repository import DirectRepository
from cloudsave.system.exceptions import NetworkError

runner = CliRunner()


@pytest.fixture
def store(isolated_config):
    return DirectRepository(isolated_config / ".config" / "cloudsave" / "data")


@pytest.fixture
def added(store, save_dir, make_past):
    """Id of save_dir after `cloudsave add`."""
    make_past(save_dir)
    result = runner.invoke(app, ["add", str(save_dir), "--name", "hollow"])
    assert result.exit_code == 0, result.output
    [game_id] = store.list_games()
    return game_id


def touch_future(path) -> None:
    when = time.time() + 60
    os.utime(path, (when, when))


class TestBasics:

    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"cloudsave version {cloudsave.__version__}" in result.output

    def test_version_command(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "API v1" in result.output

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("add", "run", "sync", "pull", "validate-config"):
            assert command in result.output


class TestSaveCommands:

    def test_add_archives_first_version(self, added, store):
        record = store.metadata(added)
        assert record.name == "hollow"
        assert record.version == 2
        assert store.has_blob(GameIdentifier(added))

    def test_add_missing_directory(self, tmp_path, store):
        result = runner.invoke(app, ["add", str(tmp_path / "nope")])
        assert result.exit_code == 1
        assert "Error adding save" in result.output
        assert store.list_games() == []

    def test_run(self, added, store, save_dir):
        result = runner.invoke(app, ["run"])
        assert result.exit_code == 0
        assert "0 of 1 save(s) archived" in result.output

        touch_future(save_dir / "settings.ini")
        result = runner.invoke(app, ["run"])
        assert result.exit_code == 0
        assert "version 3" in result.output
        assert len(store.list_backups(added)) == 1

    def test_list(self, added):
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "hollow" in result.output
        assert added[:8] in result.output

    def test_list_empty(self):
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "No saves registered" in result.output

    def test_show(self, added):
        result = runner.invoke(app, ["show", added])
        assert result.exit_code == 0
        assert "Version: 2" in result.output

    def test_show_unknown(self):
        result = runner.invoke(app, ["show", "nope"])
        assert result.exit_code == 1
        assert "Error showing save" in result.output

    def test_apply(self, added, save_dir):
        (save_dir / "settings.ini").write_text("garbage")
        result = runner.invoke(app, ["apply", added])
        assert result.exit_code == 0
        assert "Restored current version" in result.output
        assert (save_dir / "settings.ini").read_text() == "[video]\nfullscreen=1\n"

    def test_remove(self, added, store, save_dir):
        result = runner.invoke(app, ["remove", added])
        assert result.exit_code == 0
        assert store.list_games() == []
        assert save_dir.is_dir()

    def test_quiet(self, added):
        result = runner.invoke(app, ["show", added, "-q"])
        assert result.exit_code == 0
        assert result.output.strip() == ""


class TestRemoteCommands:

    def test_remote_set_and_list(self, added, store):
        result = runner.invoke(app, ["remote", "set", added, "http://saves.example/"])
        assert result.exit_code == 0
        assert store.remote(added).url == "http://saves.example"

        result = runner.invoke(app, ["remote", "list"])
        assert result.exit_code == 0
        assert "hollow" in result.output

    def test_remote_set_rejects_bad_url(self, added, store):
        result = runner.invoke(app, ["remote", "set", added, "saves.example"])
        assert result.exit_code == 1
        assert store.remote(added) is None

    def test_sync_without_remotes(self, added):
        result = runner.invoke(app, ["sync"])
        assert result.exit_code == 0
        assert "skipped" in result.output

    def test_sync_invalid_prefer(self):
        result = runner.invoke(app, ["sync", "--prefer", "whatever"])
        assert result.exit_code == 2

    def test_sync_pushes_with_prompted_credentials(self, added, store, fake_remote, monkeypatch):
        created = []

        def fake_client(url, username, password, timeout):
            created.append((url, username, password))
            return fake_remote

        monkeypatch.setattr("cloudsave.cli.utils.HTTPTransferClient", fake_client)
        runner.invoke(app, ["remote", "set", added, "http://saves.example"])

        result = runner.invoke(app, ["sync"], input="player\nsecret\n")

        assert result.exit_code == 0, result.output
        assert "pushed" in result.output
        assert created == [("http://saves.example", "player", "secret")]
        assert fake_remote.saves[added][0].version == 2

    def test_pull_clones_and_links(self, store, fake_remote, save_dir, tmp_path, monkeypatch):
        buf = io.BytesIO()
        pack(save_dir, buf)
        fake_remote.put_save("g1", buf.getvalue(), version=5)
        monkeypatch.setattr("cloudsave.cli.utils.HTTPTransferClient", lambda *a, **kw: fake_remote)
        target = tmp_path / "clone" / "hollow"

        result = runner.invoke(app, ["pull", "http://saves.example", "g1", str(target)],
                               input="player\nsecret\n")

        assert result.exit_code == 0, result.output
        assert (target / "slots" / "slot1.dat").read_bytes() == b"\x00\x01level=3"
        assert store.metadata("g1").version == 5
        assert store.remote("g1").url == "http://saves.example"
        assert fake_remote.closed

    @pytest.mark.parametrize("args", [
        ["sync"],
        ["pull", "http://saves.example", "g1", "clone"],
    ])
    def test_non_md5_hashes_refused_before_connecting(self, args, isolated_config, fake_remote,
                                                      monkeypatch):
        config_dir = isolated_config / ".config" / "cloudsave"
        config_dir.mkdir(parents=True, exist_ok=True)
        (config_dir / "cloudsave.yml").write_text("hash_algorithm: xxh3_64\n")
        monkeypatch.setattr("cloudsave.cli.utils.HTTPTransferClient", lambda *a, **kw: fake_remote)

        result = runner.invoke(app, args)

        assert result.exit_code == 1
        assert "hash_algorithm xxh3_64" in result.output
        assert "Username" not in result.output
        assert fake_remote.calls == []

    def test_sync_failure_exits_nonzero(self, added, fake_remote, monkeypatch, isolated_config):
        fake_remote.ping_error = NetworkError("connection refused")
        monkeypatch.setattr("cloudsave.cli.utils.HTTPTransferClient", lambda *a, **kw: fake_remote)
        config_dir = isolated_config / ".config" / "cloudsave"
        (config_dir / "cloudsave.yml").write_text(
            "credentials:\n  http://saves.example:\n    username: player\n    password: secret\n"
        )
        runner.invoke(app, ["remote", "set", added, "http://saves.example"])

        result = runner.invoke(app, ["sync"])

        assert result.exit_code == 1
        assert "failed to sync" in result.output


class TestValidateConfig:

    def test_valid(self):
        result = runner.invoke(app, ["validate-config"])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

    def test_invalid(self, isolated_config):
        config_dir = isolated_config / ".config" / "cloudsave"
        config_dir.mkdir(parents=True)
        (config_dir / "cloudsave.yml").write_text("backup_limit: 0\n")
        result = runner.invoke(app, ["validate-config"])
        assert result.exit_code == 1

    def test_broken_config_stops_commands(self, isolated_config):
        config_dir = isolated_config / ".config" / "cloudsave"
        config_dir.mkdir(parents=True)
        (config_dir / "cloudsave.yml").write_text("repository: s3\n")
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 1
        assert "Configuration error" in result.output
