"""Edits to the generated application's files (.env, config/bot.php, composer.json)."""

import json
import logging
import re
from pathlib import Path
from typing import Sequence, Union

logger = logging.getLogger(__name__)

ENV_FILES = (".env", ".env.example")

# Database defaults shipped in the skeleton's .env files.
DATABASE_DEFAULTS = (
    "DB_HOST=127.0.0.1",
    "DB_PORT=3306",
    "DB_DATABASE=laragram",
    "DB_USERNAME=root",
    "DB_PASSWORD=",
)

DEFAULT_PORTS = {
    "pgsql": "5432",
    "sqlsrv": "1433",
}


def replace_in_file(search: Union[str, Sequence[str]], replace: Union[str, Sequence[str]], path: Path) -> None:
    """Literal replacement; lists are replaced pairwise, in order."""
    searches = [search] if isinstance(search, str) else list(search)
    replacements = [replace] * len(searches) if isinstance(replace, str) else list(replace)
    if len(searches) != len(replacements):
        raise ValueError("search and replace lists must have the same length")

    content = path.read_text(encoding="utf-8")
    for needle, value in zip(searches, replacements):
        content = content.replace(needle, value)
    path.write_text(content, encoding="utf-8")


def preg_replace_in_file(pattern: str, replacement: str, path: Path) -> None:
    """Regex replacement; ``replacement`` is inserted literally."""
    content = path.read_text(encoding="utf-8")
    path.write_text(re.sub(pattern, lambda _: replacement, content), encoding="utf-8")


def database_name(name: str) -> str:
    return name.lower().replace("-", "_")


def comment_database_configuration(directory: Path) -> None:
    for env_file in ENV_FILES:
        replace_in_file(DATABASE_DEFAULTS, [f"# {line}" for line in DATABASE_DEFAULTS], directory / env_file)


def uncomment_database_configuration(directory: Path) -> None:
    for env_file in ENV_FILES:
        replace_in_file([f"# {line}" for line in DATABASE_DEFAULTS], DATABASE_DEFAULTS, directory / env_file)


def configure_default_database_connection(directory: Path, database: str, name: str) -> None:
    """Point the env files at ``database`` and adjust the connection defaults to match."""
    for env_file in ENV_FILES:
        preg_replace_in_file(r"DB_CONNECTION=.*", f"DB_CONNECTION={database}", directory / env_file)

    if database == "sqlite":
        environment = (directory / ".env").read_text(encoding="utf-8")
        if "# DB_HOST=127.0.0.1" not in environment:
            comment_database_configuration(directory)
        return

    uncomment_database_configuration(directory)

    port = DEFAULT_PORTS.get(database)
    for env_file in ENV_FILES:
        if port:
            replace_in_file("DB_PORT=3306", f"DB_PORT={port}", directory / env_file)
        replace_in_file("DB_DATABASE=laragram", f"DB_DATABASE={database_name(name)}", directory / env_file)
    logger.debug("Configured %s connection in %s", database, directory)


def _php_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def configure_bot(directory: Path, token: str, url: str) -> None:
    """Write the bot token and URL into config/bot.php."""
    bot_config = directory / "config" / "bot.php"
    replace_in_file(
        ["'token' => '',", "'url' => '',"],
        [f"'token' => '{_php_string(token)}',", f"'url' => '{_php_string(url)}',"],
        bot_config,
    )


def configure_composer_dev_script(directory: Path, windows: bool) -> None:
    """On Windows, make ``composer dev`` run the server without composer's process timeout."""
    if not windows:
        return
    composer_file = directory / "composer.json"
    content = json.loads(composer_file.read_text(encoding="utf-8"))
    content.setdefault("scripts", {})["dev"] = [
        "Composer\\Config::disableProcessTimeout",
        "php laragram serve",
    ]
    composer_file.write_text(json.dumps(content, indent=4, ensure_ascii=False) + "\n", encoding="utf-8")
