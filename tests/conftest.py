"""Shared pytest fixtures for the installer test suite."""

import io
import textwrap
from pathlib import Path

import pytest
from rich.console import Console

from laragram_installer import prompts

ENV_TEMPLATE = textwrap.dedent("""\
    APP_NAME=LaraGram
    APP_ENV=local

    DB_CONNECTION=mysql
    DB_HOST=127.0.0.1
    DB_PORT=3306
    DB_DATABASE=laragram
    DB_USERNAME=root
    DB_PASSWORD=
""")

BOT_TEMPLATE = textwrap.dedent("""\
    <?php

    return [
        'token' => '',
        'url' => '',
    ];
""")

COMPOSER_TEMPLATE = '{\n    "name": "laraxgram/laragram",\n    "scripts": {\n        "post-root-package-install": []\n    }\n}\n'


@pytest.fixture(autouse=True)
def fresh_prompts():
    """Every test starts without a configured prompter."""
    prompts.reset_prompts()
    yield
    prompts.reset_prompts()


def make_io(*lines: str) -> prompts.LineIO:
    """LineIO reading the given lines and recording output in ``io.console.file``."""
    console = Console(file=io.StringIO(), width=200, highlight=False, color_system=None)
    stream = io.StringIO("".join(f"{line}\n" for line in lines))
    return prompts.LineIO(console=console, stream=stream)


def output_of(line_io: prompts.LineIO) -> str:
    return line_io.console.file.getvalue()


def write_skeleton(directory: Path) -> Path:
    """Lay down the files composer create-project would produce."""
    (directory / "config").mkdir(parents=True, exist_ok=True)
    (directory / "database").mkdir(exist_ok=True)
    (directory / ".env").write_text(ENV_TEMPLATE, encoding="utf-8")
    (directory / ".env.example").write_text(ENV_TEMPLATE, encoding="utf-8")
    (directory / "config" / "bot.php").write_text(BOT_TEMPLATE, encoding="utf-8")
    (directory / "composer.json").write_text(COMPOSER_TEMPLATE, encoding="utf-8")
    (directory / "laragram").write_text("#!/usr/bin/env php\n", encoding="utf-8")
    return directory


@pytest.fixture
def skeleton(tmp_path: Path) -> Path:
    return write_skeleton(tmp_path / "my-bot")
