#!/usr/bin/env python3
"""
LaraGram Installer - create new LaraGram applications

Usage:
    laragram new <project-name>
    laragram new <project-name> --database sqlite --git
    laragram check
"""

import logging
import platform
import re
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.align import Align
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text
from rich.tree import Tree
from typer.core import TyperGroup

from . import files, process, prompts
from .config import InstallerSettings, load_settings
from .console import configure_logging, console, info, warn
from .errors import ExternalCommandFailed, InputExhausted, PreconditionFailed

logger = logging.getLogger(__name__)

DATABASE_DRIVERS = ("mysql", "mariadb", "pgsql", "sqlite", "sqlsrv")

# driver -> (display name, PDO extension)
DATABASE_LABELS = {
    "sqlite": ("SQLite", "pdo_sqlite"),
    "mysql": ("MySQL", "pdo_mysql"),
    "mariadb": ("MariaDB", "pdo_mysql"),
    "pgsql": ("PostgreSQL", "pdo_pgsql"),
    "sqlsrv": ("SQL Server", "pdo_sqlsrv"),
}

REQUIRED_EXTENSIONS = ("ctype", "filter", "hash", "mbstring", "openssl", "tokenizer")
SURGE_EXTENSIONS = {"swoole", "openswoole"}
PROJECT_NAME_PATTERN = re.compile(r"[^\w\-.]")
SKIP_HINT = "Press [yellow]Enter[/yellow] [bright_black]to Skip...[/bright_black]"

BANNER_LARA = r"""
  _
 | |
 | |     __ _ _ __ __ _
 | |    / _` | '__/ _` |
 | |___| (_| | | | (_| |
 |______\__,_|_|  \__,_|
"""

BANNER_GRAM = r"""


  _____
 / ____|
| |  __ _ __ __ _ _ __ ___
| | |_ | '__/ _` | '_ ` _ \
| |__| | | | (_| | | | | | |
 \_____|_|  \__,_|_| |_| |_|
"""

TAGLINE = "LaraGram Installer - Build Telegram bots with LaraGram"


class StepTracker:
    """Collects installer steps and renders them as a tree."""

    SYMBOLS = {
        "pending": "[green dim]○[/green dim]",
        "running": "[cyan]○[/cyan]",
        "done": "[green]●[/green]",
        "error": "[red]●[/red]",
        "skipped": "[yellow]○[/yellow]",
    }

    def __init__(self, title: str):
        self.title = title
        self.steps = []  # dicts: key, label, status, detail

    def add(self, key: str, label: str):
        if key not in [s["key"] for s in self.steps]:
            self.steps.append({"key": key, "label": label, "status": "pending", "detail": ""})

    def start(self, key: str, detail: str = ""):
        self._update(key, "running", detail)

    def complete(self, key: str, detail: str = ""):
        self._update(key, "done", detail)

    def error(self, key: str, detail: str = ""):
        self._update(key, "error", detail)

    def skip(self, key: str, detail: str = ""):
        self._update(key, "skipped", detail)

    def status(self, key: str) -> Optional[str]:
        return next((s["status"] for s in self.steps if s["key"] == key), None)

    def _update(self, key: str, status: str, detail: str):
        for s in self.steps:
            if s["key"] == key:
                s["status"] = status
                if detail:
                    s["detail"] = detail
                return
        self.steps.append({"key": key, "label": key, "status": status, "detail": detail})

    def render(self):
        tree = Tree(f"[cyan]{self.title}[/cyan]", guide_style="grey50")
        for step in self.steps:
            symbol = self.SYMBOLS.get(step["status"], " ")
            label = escape(step["label"])
            detail = escape(step["detail"].strip())
            if step["status"] == "pending":
                line = f"{symbol} [bright_black]{label}{f' ({detail})' if detail else ''}[/bright_black]"
            elif detail:
                line = f"{symbol} [white]{label}[/white] [bright_black]({detail})[/bright_black]"
            else:
                line = f"{symbol} [white]{label}[/white]"
            tree.add(line)
        return tree


class BannerGroup(TyperGroup):
    """Custom group that shows banner before help."""

    def format_help(self, ctx, formatter):
        show_banner()
        super().format_help(ctx, formatter)


app = typer.Typer(
    name="laragram",
    help="Installer for LaraGram applications",
    add_completion=False,
    invoke_without_command=True,
    cls=BannerGroup,
)


def show_banner():
    """Display the two-tone ASCII art banner."""
    lara = BANNER_LARA.strip("\n").split("\n")
    gram = BANNER_GRAM.strip("\n").split("\n")
    width = max(len(line) for line in lara)
    banner = Text()
    for i in range(max(len(lara), len(gram))):
        left = lara[i] if i < len(lara) else ""
        right = gram[i] if i < len(gram) else ""
        banner.append(left.ljust(width), style="red")
        banner.append(right + "\n", style="blue")
    console.print(banner)
    console.print(Text(TAGLINE, style="italic bright_yellow"))
    console.print()


@app.callback()
def callback(ctx: typer.Context):
    """Show banner when no subcommand is provided."""
    if ctx.invoked_subcommand is None and "--help" not in sys.argv and "-h" not in sys.argv:
        show_banner()
        console.print(Align.center("[dim]Run 'laragram --help' for usage information[/dim]"))
        console.print()


def installation_directory(name: str) -> Path:
    return Path.cwd() / name if name != "." else Path(".")


def verify_application_doesnt_exist(directory: Path) -> None:
    if directory.exists() and directory.resolve() != Path.cwd().resolve():
        raise PreconditionFailed("Application already exists!", title="Directory Conflict")


def ensure_extensions_are_available(extensions: set[str]) -> None:
    """Fail when PHP lacks an extension LaraGram needs."""
    missing = [ext for ext in REQUIRED_EXTENSIONS if ext not in extensions]
    if not missing:
        return
    listed = missing[0] if len(missing) == 1 else ", ".join(missing[:-1]) + ", and " + missing[-1]
    raise PreconditionFailed(
        f"The following PHP extensions are required but are not installed: {listed}",
        title="Missing PHP Extensions",
    )


def validate_database_option(database: Optional[str]) -> None:
    if database and database not in DATABASE_DRIVERS:
        raise PreconditionFailed(
            f"Invalid database driver [{database}]. Possible values are: {', '.join(DATABASE_DRIVERS)}.",
            title="Invalid Option",
        )


def project_name_error(value: str, force: bool) -> Optional[str]:
    """Validator for the project name prompt."""
    if PROJECT_NAME_PATTERN.search(value):
        return "The name may only contain letters, numbers, dashes, underscores, and periods."
    if not force:
        try:
            verify_application_doesnt_exist(installation_directory(value))
        except PreconditionFailed:
            return "Application already exists."
    return None


def database_options(extensions: set[str]) -> dict[str, str]:
    """Drivers with their labels; drivers whose PDO extension is missing come last."""
    ordered = sorted(DATABASE_LABELS.items(), key=lambda item: 0 if item[1][1] in extensions else 1)
    return {
        driver: label + ("" if pdo in extensions else " (Missing PDO extension)")
        for driver, (label, pdo) in ordered
    }


def prompt_for_database_options(
    prompter: prompts.Prompter, database: Optional[str], interactive: bool, extensions: set[str]
) -> tuple[str, bool]:
    """Return the chosen driver and whether to run the default migrations."""
    options = database_options(extensions)
    default = next(iter(options))
    migrate = True

    if not database and interactive:
        database = prompts.select(
            "Which database will your application use?",
            options,
            default=default,
            prompter=prompter,
        )
        if database != "sqlite":
            migrate = prompts.confirm(
                "Default database updated. Would you like to run the default database migrations?",
                prompter=prompter,
            )

    return database or default, migrate


def build_install_commands(
    directory: Path,
    *,
    composer: str,
    php: str,
    settings: InstallerSettings,
    dev: bool = False,
    surge: bool = False,
    force: bool = False,
    windows: bool = False,
) -> list[str]:
    """The shell commands that fetch the skeleton and prepare it."""
    target = process.quote(str(directory))
    version = "dev-master" if dev else ""
    create_project = " ".join(
        part for part in [
            composer, "create-project", settings.skeleton_package, target, version,
            "--remove-vcs", "--prefer-dist", "--no-scripts",
        ] if part
    )

    commands = [
        create_project,
        f"{composer} run post-root-package-install -d {target}",
        f"{php} {process.quote(str(directory / 'laragram'))} key:generate --ansi",
    ]

    if surge:
        commands.append(f"{composer} require {settings.surge_package} -d {target}")

    if str(directory) != "." and force:
        if windows:
            commands.insert(0, f"(if exist {target} rd /s /q {target})")
        else:
            commands.insert(0, f"rm -rf {target}")

    if not windows:
        commands.append(f"chmod 755 {process.quote(str(directory / 'laragram'))}")

    return commands


def run_step(tracker: StepTracker, key: str, commands: list[str], **kwargs) -> None:
    """Run ``commands`` for the tracker step ``key``; a non-zero status raises ExternalCommandFailed."""
    returncode = process.run_commands(commands, **kwargs)
    if returncode != 0:
        tracker.error(key, f"exit code {returncode}")
        raise ExternalCommandFailed(" && ".join(commands), returncode)


def prompt_for_bot_options(prompter: prompts.Prompter, directory: Path, php: str, tracker: StepTracker,
                           *, decorated: bool, quiet: bool) -> None:
    """Ask for the bot credentials, store them, and optionally register the webhook."""
    token = prompts.password("Enter your Bot Token:", hint=SKIP_HINT, prompter=prompter)
    url = prompts.text("Enter your Bot URL:", hint=SKIP_HINT, prompter=prompter)

    if (directory / "config" / "bot.php").is_file():
        files.configure_bot(directory, token, url)
        tracker.complete("bot", "credentials saved" if token or url else "skipped by user")
    else:
        warn("config/bot.php was not found; bot credentials were not saved.")
        tracker.skip("bot", "config/bot.php missing")

    if token and url and prompts.confirm("Do you want to set webhook?", prompter=prompter):
        run_step(tracker, "webhook", [f"{php} laragram webhook:set"], cwd=directory,
                 decorated=decorated, quiet=quiet)
        tracker.complete("webhook", "registered")
    else:
        tracker.skip("webhook")


def _fail(error: PreconditionFailed) -> None:
    console.print()
    console.print(Panel(escape(str(error)), title=f"[red]{escape(error.title)}[/red]", border_style="red", padding=(1, 2)))
    raise typer.Exit(1)


def _debug_environment() -> None:
    env_pairs = [
        ("Python", sys.version.split()[0]),
        ("Platform", sys.platform),
        ("CWD", str(Path.cwd())),
    ]
    label_width = max(len(k) for k, _ in env_pairs)
    env_lines = [f"{k.ljust(label_width)} → [bright_black]{escape(v)}[/bright_black]" for k, v in env_pairs]
    console.print(Panel("\n".join(env_lines), title="Debug Environment", border_style="magenta"))


@app.command()
def new(
    name: str = typer.Argument(None, help="Name of the application directory ('.' for the current directory)"),
    dev: bool = typer.Option(False, "--dev", help="Install the latest \"development\" release"),
    git: bool = typer.Option(False, "--git", help="Initialize a Git repository"),
    branch: Optional[str] = typer.Option(None, "--branch", help="The branch that should be created for a new repository"),
    github: bool = typer.Option(False, "--github", help="Create a new repository on GitHub"),
    github_flags: str = typer.Option("--private", "--github-flags", help="Flags passed to 'gh repo create'"),
    organization: Optional[str] = typer.Option(None, "--organization", help="The GitHub organization to create the new repository for"),
    database: Optional[str] = typer.Option(None, "--database", help=f"The database driver your application will use. Possible values are: {', '.join(DATABASE_DRIVERS)}"),
    surge: bool = typer.Option(False, "--surge", help="Use LaraGram Surge"),
    force: bool = typer.Option(False, "--force", "-f", help="Forces install even if the directory already exists"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Pass --quiet to composer and php commands"),
    no_interaction: bool = typer.Option(False, "--no-interaction", "-n", help="Do not ask any questions"),
    plain_prompts: bool = typer.Option(False, "--plain-prompts", help="Use simple line-based prompts"),
    debug: bool = typer.Option(False, "--debug", help="Show debug logging and diagnostics"),
):
    """
    Create a new LaraGram application.

    This command will:
    1. Check that PHP and the required extensions are available
    2. Ask for anything missing (project name, Surge, database, bot credentials)
    3. Fetch the LaraGram skeleton with composer
    4. Configure .env and config/bot.php for your choices
    5. Optionally initialize git and push to GitHub

    Examples:
        laragram new my-bot
        laragram new my-bot --database pgsql --git
        laragram new my-bot --github --organization acme
        laragram new . --database sqlite
    """
    configure_logging(debug)
    try:
        settings = load_settings()
    except PreconditionFailed as e:
        _fail(e)

    interactive = sys.stdin.isatty() and not no_interaction
    prompter = prompts.configure_prompts(
        interactive=interactive,
        force_fallback=plain_prompts or settings.force_fallback_prompts,
    )
    windows = platform.system() == "Windows"
    decorated = console.is_terminal

    show_banner()

    tracker = StepTracker("Create LaraGram Application")
    for key, label in [
        ("precheck", "Check PHP extensions"),
        ("fetch", "Fetch LaraGram skeleton"),
        ("database", "Configure database"),
        ("migrate", "Run migrations"),
        ("bot", "Configure bot credentials"),
        ("webhook", "Register webhook"),
        ("git", "Initialize git repository"),
        ("github", "Push to GitHub"),
        ("final", "Finalize"),
    ]:
        tracker.add(key, label)

    try:
        php = process.php_binary(settings)
        extensions = process.php_extensions(php)
        ensure_extensions_are_available(extensions)
        tracker.complete("precheck", "ok")

        if not name and no_interaction:
            raise PreconditionFailed("The project name is required.", title="Missing Argument")
        if not name:
            name = prompts.text(
                "What is the name of your project?",
                placeholder="E.g. example-app",
                required="The project name is required.",
                validate=lambda value: project_name_error(value, force),
                prompter=prompter,
            )

        if not force:
            verify_application_doesnt_exist(installation_directory(name))

        if not surge and not no_interaction:
            surge = prompts.confirm(
                "Do you want to use LaraGram Surge?",
                default=False,
                validate=lambda value: "Extension Swoole/OpenSwoole not exist."
                if value and not SURGE_EXTENSIONS & extensions else None,
                hint="This option requires the Swoole or OpenSwoole extension.",
                prompter=prompter,
            )

        validate_database_option(database)

        name = name.rstrip("/\\") or name
        directory = installation_directory(name)
        if not force:
            verify_application_doesnt_exist(directory)
        if force and name == ".":
            raise PreconditionFailed("Cannot use --force option when using current directory for installation!")
    except PreconditionFailed as e:
        tracker.error("precheck", str(e))
        _fail(e)

    composer = process.find_composer(settings, php)
    commands = build_install_commands(
        directory, composer=composer, php=php, settings=settings,
        dev=dev, surge=surge, force=force, windows=windows,
    )

    tracker.start("fetch", settings.skeleton_package)
    try:
        run_step(tracker, "fetch", commands, decorated=decorated, quiet=quiet)
        tracker.complete("fetch", "dev-master" if dev else "latest release")

        if name != ".":
            driver, migrate = prompt_for_database_options(prompter, database, interactive, extensions)
            files.configure_default_database_connection(directory, driver, name)
            tracker.complete("database", driver)

            if migrate:
                if driver == "sqlite":
                    sqlite_file = directory / "database" / "database.sqlite"
                    sqlite_file.parent.mkdir(parents=True, exist_ok=True)
                    sqlite_file.touch()
                migrate_command = f"{php} laragram migrate" + ("" if interactive else " --no-interaction")
                run_step(tracker, "migrate", [migrate_command], cwd=directory, decorated=decorated, quiet=quiet)
                tracker.complete("migrate")
            else:
                tracker.skip("migrate", "declined")
        else:
            tracker.skip("database", "current directory")
            tracker.skip("migrate", "current directory")

        if no_interaction:
            tracker.skip("bot", "--no-interaction")
            tracker.skip("webhook")
        else:
            prompt_for_bot_options(prompter, directory, php, tracker, decorated=decorated, quiet=quiet)
    except InputExhausted as e:
        _fail(e)
    except ExternalCommandFailed as e:
        logger.debug("%s", e)
        tracker.error("final", "installation failed")
        console.print(tracker.render())
        if debug:
            _debug_environment()
        raise typer.Exit(e.returncode)

    if git or github:
        if process.create_repository(directory, branch or settings.default_branch or process.default_branch(),
                                     decorated=decorated, quiet=quiet):
            tracker.complete("git", "initialized")
        else:
            tracker.error("git", "init failed")
    else:
        tracker.skip("git", "use --git to enable")

    if github:
        if process.push_to_github(name, directory, organization=organization, flags=github_flags,
                                  decorated=decorated, quiet=quiet):
            tracker.complete("github", f"{organization}/{name}" if organization else name)
        else:
            tracker.error("github", "skipped")
        console.print()
    else:
        tracker.skip("github")

    files.configure_composer_dev_script(directory, windows)
    tracker.complete("final", "application ready")

    console.print(tracker.render())
    console.print()
    info(f"Application ready in [bold]\\[{escape(name)}][/bold]. You can start your local development using:")
    console.print(f"[bright_black]➜[/bright_black] [bold]cd {escape(name)}[/bold]")
    console.print("[bright_black]➜[/bright_black] [bold]php laragram serve[/bold]")
    console.print()
    console.print(
        f"  New to LaraGram? Check out our [link={settings.documentation_url}]documentation[/link]. "
        "[bold]Build something amazing![/bold]"
    )
    console.print()


@app.command()
def check():
    """Check that the tools used by the installer are installed."""
    show_banner()
    console.print("[bold]Checking for installed tools...[/bold]\n")

    tracker = StepTracker("Check Available Tools")
    tools = [
        ("php", "PHP"),
        ("composer", "Composer"),
        ("git", "Git version control"),
        ("gh", "GitHub CLI"),
    ]
    found = {}
    for tool, label in tools:
        tracker.add(tool, label)
        found[tool] = process.check_tool(tool)
        (tracker.complete if found[tool] else tracker.error)(tool, "available" if found[tool] else "not found")

    if found["php"]:
        settings = load_settings()
        extensions = process.php_extensions(process.php_binary(settings))
        missing = [ext for ext in REQUIRED_EXTENSIONS if ext not in extensions]
        tracker.add("extensions", "PHP extensions")
        if missing:
            tracker.error("extensions", "missing " + ", ".join(missing))
        else:
            tracker.complete("extensions", "all present")

    console.print(tracker.render())

    if found["php"] and found["composer"] and tracker.status("extensions") == "done":
        console.print("\n[bold green]LaraGram installer is ready to use![/bold green]")
    else:
        console.print("\n[bold red]Some required tools are missing.[/bold red]")
        raise typer.Exit(1)

    if not found["git"]:
        console.print("[dim]Tip: Install git for repository management[/dim]")
    if not found["gh"]:
        console.print("[dim]Tip: Install the GitHub CLI to use --github[/dim]")


def main():
    app()


if __name__ == "__main__":
    main()
