"""Tests for the external command wrappers (laragram_installer.process)."""

import io
import subprocess
from pathlib import Path

import pytest
from rich.console import Console

from laragram_installer import process
from laragram_installer.config import InstallerSettings


@pytest.fixture
def out():
    return Console(file=io.StringIO(), width=200, color_system=None)


@pytest.fixture(autouse=True)
def no_tty(monkeypatch):
    monkeypatch.setattr(process, "_open_tty", lambda console: None)


class FakePopen:
    """Stands in for subprocess.Popen and remembers the command line."""

    calls = []

    def __init__(self, command_line, **kwargs):
        FakePopen.calls.append((command_line, kwargs))
        self.stdout = io.StringIO("done\n")

    def wait(self):
        return 0


@pytest.fixture
def fake_popen(monkeypatch):
    FakePopen.calls = []
    monkeypatch.setattr(process.subprocess, "Popen", FakePopen)
    return FakePopen


def completed(returncode=0, stdout=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr="")


class TestRunCommands:
    @pytest.mark.unit
    def test_output_is_indented(self, out):
        assert process.run_commands(["echo hello"], console=out) == 0
        assert "    hello" in out.file.getvalue()

    @pytest.mark.unit
    def test_exit_status_is_returned(self, out):
        assert process.run_commands(["exit 3"], console=out) == 3

    @pytest.mark.unit
    def test_commands_are_chained(self, fake_popen, out):
        process.run_commands(["composer install", "php laragram key:generate"], console=out)
        assert fake_popen.calls[0][0] == "composer install && php laragram key:generate"

    @pytest.mark.unit
    def test_no_ansi_and_quiet_flags_skip_git_and_chmod(self, fake_popen, out):
        process.run_commands(
            ["composer install", "git init -q", "chmod 755 laragram"],
            decorated=False, quiet=True, console=out,
        )
        assert fake_popen.calls[0][0] == (
            "composer install --no-ansi --quiet && git init -q && chmod 755 laragram"
        )

    @pytest.mark.unit
    def test_env_and_cwd_are_passed(self, fake_popen, out, tmp_path):
        process.run_commands(["gh repo create x"], cwd=tmp_path, env={"GIT_TERMINAL_PROMPT": 0}, console=out)
        kwargs = fake_popen.calls[0][1]
        assert kwargs["cwd"] == tmp_path
        assert kwargs["env"]["GIT_TERMINAL_PROMPT"] == "0"


class TestBinaries:
    @pytest.mark.unit
    def test_php_binary_prefers_setting(self):
        assert process.php_binary(InstallerSettings(php="/opt/php 8/bin/php")) == process.quote("/opt/php 8/bin/php")

    @pytest.mark.unit
    def test_php_binary_falls_back_to_php(self, monkeypatch):
        monkeypatch.setattr(process.shutil, "which", lambda tool: None)
        assert process.php_binary(InstallerSettings()) == "php"

    @pytest.mark.unit
    def test_find_composer(self, tmp_path):
        settings = InstallerSettings()
        assert process.find_composer(settings, "php", cwd=tmp_path) == "composer"
        (tmp_path / "composer.phar").write_text("", encoding="utf-8")
        assert process.find_composer(settings, "php", cwd=tmp_path) == "php composer.phar"
        assert process.find_composer(InstallerSettings(composer="composer2"), "php", cwd=tmp_path) == "composer2"

    @pytest.mark.unit
    def test_php_extensions(self, monkeypatch):
        stdout = "[PHP Modules]\nCtype\nmbstring\npdo_sqlite\n\n[Zend Modules]\nZend OPcache\n"
        monkeypatch.setattr(process.subprocess, "run", lambda *a, **k: completed(stdout=stdout))
        assert process.php_extensions("php") == {"ctype", "mbstring", "pdo_sqlite", "zend opcache"}

    @pytest.mark.unit
    def test_php_extensions_without_php(self, monkeypatch):
        def missing(*args, **kwargs):
            raise FileNotFoundError("php")

        monkeypatch.setattr(process.subprocess, "run", missing)
        assert process.php_extensions("php") == set()

    @pytest.mark.unit
    @pytest.mark.parametrize("returncode, stdout, expected", [(0, "trunk\n", "trunk"), (1, "", "main"), (0, "", "main")])
    def test_default_branch(self, monkeypatch, returncode, stdout, expected):
        monkeypatch.setattr(process.subprocess, "run", lambda *a, **k: completed(returncode, stdout))
        assert process.default_branch() == expected


class TestVersionControl:
    @pytest.mark.unit
    def test_create_repository(self, monkeypatch, tmp_path):
        seen = {}

        def fake_run(commands, **kwargs):
            seen["commands"] = commands
            seen["cwd"] = kwargs["cwd"]
            return 0

        monkeypatch.setattr(process, "run_commands", fake_run)
        assert process.create_repository(tmp_path, "main") is True
        assert seen["commands"] == [
            "git init -q",
            "git add .",
            'git commit -q -m "Set up a fresh LaraGram app"',
            "git branch -M main",
        ]
        assert seen["cwd"] == tmp_path

    @pytest.mark.unit
    def test_create_repository_failure_is_not_fatal(self, monkeypatch, tmp_path):
        monkeypatch.setattr(process, "run_commands", lambda commands, **kwargs: 128)
        assert process.create_repository(tmp_path, "main") is False

    @pytest.mark.unit
    def test_push_skipped_without_gh_auth(self, monkeypatch, tmp_path, out):
        monkeypatch.setattr(process, "github_authenticated", lambda: False)
        monkeypatch.setattr(process, "run_commands", lambda *a, **k: pytest.fail("should not run"))
        assert process.push_to_github("my-bot", tmp_path, console=out) is False
        assert "WARN" in out.file.getvalue()
        assert "Skipping..." in out.file.getvalue()

    @pytest.mark.unit
    def test_push_with_organization(self, monkeypatch, tmp_path):
        seen = {}

        def fake_run(commands, **kwargs):
            seen["commands"] = commands
            seen["env"] = kwargs["env"]
            return 0

        monkeypatch.setattr(process, "github_authenticated", lambda: True)
        monkeypatch.setattr(process, "run_commands", fake_run)
        assert process.push_to_github("my-bot", tmp_path, organization="acme", flags="--public") is True
        assert seen["commands"] == ["gh repo create acme/my-bot --source=. --push --public"]
        assert seen["env"] == {"GIT_TERMINAL_PROMPT": 0}

    @pytest.mark.unit
    def test_github_authenticated_without_gh(self, monkeypatch):
        def missing(*args, **kwargs):
            raise FileNotFoundError("gh")

        monkeypatch.setattr(process.subprocess, "run", missing)
        assert process.github_authenticated() is False
