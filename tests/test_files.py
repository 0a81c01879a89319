"""Tests for template patching (laragram_installer.files)."""

import json

import pytest

from laragram_installer import files


def env(directory, name=".env"):
    return (directory / name).read_text(encoding="utf-8")


class TestReplaceInFile:
    @pytest.mark.unit
    def test_literal_replacement(self, tmp_path):
        target = tmp_path / "a.txt"
        target.write_text("x=1 y=1", encoding="utf-8")
        files.replace_in_file("=1", "=2", target)
        assert target.read_text(encoding="utf-8") == "x=2 y=2"

    @pytest.mark.unit
    def test_pairwise_lists(self, tmp_path):
        target = tmp_path / "a.txt"
        target.write_text("one two", encoding="utf-8")
        files.replace_in_file(["one", "two"], ["1", "2"], target)
        assert target.read_text(encoding="utf-8") == "1 2"

    @pytest.mark.unit
    def test_mismatched_lists(self, tmp_path):
        target = tmp_path / "a.txt"
        target.write_text("one", encoding="utf-8")
        with pytest.raises(ValueError):
            files.replace_in_file(["one", "two"], ["1"], target)

    @pytest.mark.unit
    def test_regex_replacement_is_literal(self, tmp_path):
        target = tmp_path / "a.txt"
        target.write_text("DB_CONNECTION=mysql\nOTHER=1\n", encoding="utf-8")
        files.preg_replace_in_file(r"DB_CONNECTION=.*", r"DB_CONNECTION=a\1", target)
        assert target.read_text(encoding="utf-8") == "DB_CONNECTION=a\\1\nOTHER=1\n"


class TestDatabaseConnection:
    @pytest.mark.unit
    def test_sqlite_comments_defaults(self, skeleton):
        files.configure_default_database_connection(skeleton, "sqlite", "my-bot")
        for name in files.ENV_FILES:
            content = env(skeleton, name)
            assert "DB_CONNECTION=sqlite" in content
            assert "# DB_HOST=127.0.0.1" in content
            assert "# DB_PASSWORD=" in content
            assert "\nDB_HOST" not in content

    @pytest.mark.unit
    def test_sqlite_is_idempotent(self, skeleton):
        files.configure_default_database_connection(skeleton, "sqlite", "my-bot")
        files.configure_default_database_connection(skeleton, "sqlite", "my-bot")
        assert "# # DB_HOST" not in env(skeleton)

    @pytest.mark.unit
    def test_pgsql_port_and_database_name(self, skeleton):
        files.configure_default_database_connection(skeleton, "pgsql", "My-Bot")
        for name in files.ENV_FILES:
            content = env(skeleton, name)
            assert "DB_CONNECTION=pgsql" in content
            assert "DB_PORT=5432" in content
            assert "DB_DATABASE=my_bot" in content

    @pytest.mark.unit
    def test_sqlsrv_port(self, skeleton):
        files.configure_default_database_connection(skeleton, "sqlsrv", "bot")
        assert "DB_PORT=1433" in env(skeleton)

    @pytest.mark.unit
    def test_mysql_uncomments_previous_sqlite_setup(self, skeleton):
        files.comment_database_configuration(skeleton)
        files.configure_default_database_connection(skeleton, "mysql", "bot")
        content = env(skeleton)
        assert "# DB_HOST" not in content
        assert "DB_HOST=127.0.0.1" in content
        assert "DB_PORT=3306" in content
        assert "DB_DATABASE=bot" in content


class TestBotAndComposer:
    @pytest.mark.unit
    def test_configure_bot(self, skeleton):
        files.configure_bot(skeleton, "123:abc", "https://bot.example.com")
        content = (skeleton / "config" / "bot.php").read_text(encoding="utf-8")
        assert "'token' => '123:abc'," in content
        assert "'url' => 'https://bot.example.com'," in content

    @pytest.mark.unit
    def test_configure_bot_escapes_quotes(self, skeleton):
        files.configure_bot(skeleton, "it's", "")
        content = (skeleton / "config" / "bot.php").read_text(encoding="utf-8")
        assert "'token' => 'it\\'s'," in content
        assert "'url' => ''," in content

    @pytest.mark.unit
    def test_dev_script_only_on_windows(self, skeleton):
        before = (skeleton / "composer.json").read_text(encoding="utf-8")
        files.configure_composer_dev_script(skeleton, windows=False)
        assert (skeleton / "composer.json").read_text(encoding="utf-8") == before

        files.configure_composer_dev_script(skeleton, windows=True)
        content = json.loads((skeleton / "composer.json").read_text(encoding="utf-8"))
        assert content["scripts"]["dev"] == ["Composer\\Config::disableProcessTimeout", "php laragram serve"]
        assert "post-root-package-install" in content["scripts"]
