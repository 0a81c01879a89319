"""Thin wrappers around the external tools the installer drives (composer, php, git, gh)."""

import logging
import os
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Mapping, Optional, Sequence

from rich.console import Console

from .config import InstallerSettings
from .console import console as default_console
from .console import warn

logger = logging.getLogger(__name__)

# Commands that never get --no-ansi / --quiet appended.
PLAIN_COMMAND_PREFIXES = ("chmod", "git", "gh", "rm", "(if exist")


def quote(value: str) -> str:
    """Quote one argument for the host shell."""
    if os.name == "nt":
        return subprocess.list2cmdline([value])
    return shlex.quote(value)


def check_tool(tool: str) -> bool:
    """Check if a tool is installed."""
    return shutil.which(tool) is not None


def _open_tty(console: Console):
    """Open /dev/tty so child processes can talk to the user directly, or return None."""
    if os.name == "nt" or not os.path.exists("/dev/tty") or not os.access("/dev/tty", os.R_OK):
        return None
    try:
        return open("/dev/tty", "r+")
    except OSError as e:
        warn(str(e), console)
        return None


def run_commands(
    commands: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, object]] = None,
    decorated: bool = True,
    quiet: bool = False,
    console: Optional[Console] = None,
) -> int:
    """Run ``commands`` joined with ``&&`` in one shell and return the exit status.

    Output is shown indented when no terminal can be attached.
    """
    console = console or default_console
    if not decorated:
        commands = [c if c.startswith(PLAIN_COMMAND_PREFIXES) else f"{c} --no-ansi" for c in commands]
    if quiet:
        commands = [c if c.startswith(PLAIN_COMMAND_PREFIXES) else f"{c} --quiet" for c in commands]

    command_line = " && ".join(commands)
    full_env = {**os.environ, **{k: str(v) for k, v in (env or {}).items()}}
    logger.debug("Running %s (cwd=%s)", command_line, cwd)

    tty = _open_tty(console)
    if tty is not None:
        with tty:
            result = subprocess.run(command_line, shell=True, cwd=cwd, env=full_env,
                                    stdin=tty, stdout=tty, stderr=tty)
        return result.returncode

    process = subprocess.Popen(command_line, shell=True, cwd=cwd, env=full_env,
                               stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
    for line in process.stdout:
        console.print(f"    {line}", end="", markup=False, highlight=False)
    process.stdout.close()
    returncode = process.wait()
    logger.debug("Exit status %s", returncode)
    return returncode


def php_binary(settings: InstallerSettings) -> str:
    """Return the shell-ready PHP executable."""
    binary = settings.php or shutil.which("php")
    return quote(binary) if binary else "php"


def find_composer(settings: InstallerSettings, php: str, cwd: Optional[Path] = None) -> str:
    """Return the composer command: the configured one, a local composer.phar, or ``composer``."""
    if settings.composer:
        return settings.composer
    if ((cwd or Path.cwd()) / "composer.phar").is_file():
        return f"{php} composer.phar"
    return "composer"


def php_extensions(php: str) -> set[str]:
    """Names of the extensions loaded by ``php`` (lower-case), empty if PHP can't run."""
    try:
        result = subprocess.run(shlex.split(php, posix=os.name != "nt") + ["-m"],
                                capture_output=True, text=True, check=True)
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug("Could not list PHP extensions: %s", e)
        return set()
    return {
        line.strip().lower()
        for line in result.stdout.splitlines()
        if line.strip() and not line.startswith("[")
    }


def default_branch() -> str:
    """The user's ``init.defaultBranch`` git setting, or ``main``."""
    try:
        result = subprocess.run(["git", "config", "--global", "init.defaultBranch"],
                                capture_output=True, text=True)
    except OSError:
        return "main"
    branch = result.stdout.strip()
    return branch if result.returncode == 0 and branch else "main"


def create_repository(directory: Path, branch: str, *, decorated: bool = True, quiet: bool = False,
                      console: Optional[Console] = None) -> bool:
    """Initialize git in ``directory`` and commit the fresh skeleton. Best effort."""
    commands = [
        "git init -q",
        "git add .",
        'git commit -q -m "Set up a fresh LaraGram app"',
        f"git branch -M {quote(branch)}",
    ]
    returncode = run_commands(commands, cwd=directory, decorated=decorated, quiet=quiet, console=console)
    if returncode != 0:
        logger.warning("Git repository setup exited with status %s", returncode)
        return False
    return True


def github_authenticated() -> bool:
    try:
        result = subprocess.run(["gh", "auth", "status"], capture_output=True, text=True)
    except OSError:
        return False
    return result.returncode == 0


def push_to_github(name: str, directory: Path, *, organization: Optional[str] = None, flags: str = "--private",
                   decorated: bool = True, quiet: bool = False, console: Optional[Console] = None) -> bool:
    """Create a GitHub repository with ``gh`` and push to it; skipped when ``gh`` is not logged in."""
    if not github_authenticated():
        warn("Make sure the \"gh\" CLI tool is installed and that you're authenticated to GitHub. Skipping...",
             console)
        return False

    repository = f"{organization}/{name}" if organization else name
    commands = [f"gh repo create {quote(repository)} --source=. --push {flags or '--private'}"]
    returncode = run_commands(commands, cwd=directory, env={"GIT_TERMINAL_PROMPT": 0},
                              decorated=decorated, quiet=quiet, console=console)
    return returncode == 0
