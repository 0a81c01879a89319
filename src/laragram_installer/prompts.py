"""
Interactive prompts with a line-based fallback.

Every question the installer asks goes through a `Prompter`. The prompter is
created once per run with a fixed `RenderMode`: in rich mode questions are drawn
with Rich prompts and readchar-driven arrow-key panels; in fallback mode they use
plain "print a line, read a line" renderers that work on any stream. Both modes
share the same retry loop, so required fields and validators behave identically.
"""

import getpass
import logging
import platform
import sys
import warnings
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, TextIO, Union

import readchar
import typer
from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from .errors import InputExhausted

logger = logging.getLogger(__name__)

DEFAULT_REQUIRED_MESSAGE = "Required."
NONE_CHOICE = "none"
AFFIRMATIVE = {"y", "yes"}
NEGATIVE = {"n", "no"}
# Platforms where the rich widgets are not used.
FALLBACK_PLATFORMS = {"windows"}

Validator = Callable[[Any], Optional[str]]
SuggestionSource = Callable[[str], Iterable[str]]
Options = Union[Mapping[str, str], Sequence[str], SuggestionSource, None]


class PromptKind(str, Enum):
    TEXT = "text"
    PASSWORD = "password"
    CONFIRM = "confirm"
    SELECT = "select"
    MULTISELECT = "multiselect"
    SUGGEST = "suggest"

    def is_empty(self, value: Any) -> bool:
        """Return True when ``value`` is this kind's "nothing answered" sentinel."""
        if self is PromptKind.CONFIRM:
            return value is False
        if self is PromptKind.MULTISELECT:
            return not value
        return value is None or value == ""


class RenderMode(str, Enum):
    RICH = "rich"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class Required:
    """Marks a prompt as required; ``message`` is shown when the answer is empty."""
    message: str = DEFAULT_REQUIRED_MESSAGE


def as_required(value: Union[bool, str, Required, None]) -> Optional[Required]:
    """Normalize the loose ``required=`` argument (bool or custom message)."""
    if value is None or isinstance(value, Required):
        return value
    if isinstance(value, str):
        return Required(value) if value else None
    return Required() if value else None


@dataclass(frozen=True)
class PromptSpec:
    kind: PromptKind
    label: str
    default: Any = None
    options: Options = None
    required: Union[bool, str, Required, None] = None
    validate: Optional[Validator] = None
    placeholder: str = ""
    hint: str = ""

    def __post_init__(self):
        object.__setattr__(self, "kind", PromptKind(self.kind))
        object.__setattr__(self, "required", as_required(self.required))
        if self.kind in (PromptKind.SELECT, PromptKind.MULTISELECT):
            if not self.options or callable(self.options):
                raise ValueError(f"{self.kind.value} prompt '{self.label}' needs a list or mapping of options")
        if self.kind is PromptKind.MULTISELECT:
            object.__setattr__(self, "default", tuple(self.default or ()))

    def choices(self) -> dict[str, str]:
        """Options as an ordered ``{value: display label}`` dict."""
        if not self.options or callable(self.options):
            return {}
        if isinstance(self.options, Mapping):
            return {str(k): str(v) for k, v in self.options.items()}
        return {str(option): str(option) for option in self.options}


@dataclass(frozen=True)
class Accepted:
    value: Any


@dataclass(frozen=True)
class Rejected:
    message: str


ValidationOutcome = Union[Accepted, Rejected]


class InvalidAnswer(Exception):
    """Raised by a renderer when the typed line cannot be interpreted."""


def _is_blank(value: Any) -> bool:
    return value == "" or value == [] or value is False


def check_answer(
    value: Any,
    required: Optional[Required] = None,
    validate: Optional[Validator] = None,
    kind: Optional[PromptKind] = None,
) -> ValidationOutcome:
    """Apply the required rule, then the custom validator, to one candidate answer."""
    is_empty = kind.is_empty(value) if kind is not None else _is_blank(value)
    if required is not None and is_empty:
        return Rejected(required.message)
    if validate is not None:
        error = validate(value)
        if isinstance(error, str) and error:
            return Rejected(error)
    return Accepted(value)


def decide_render_mode(is_interactive: bool, host_os: str, force_fallback: bool = False) -> RenderMode:
    """Pick rich or fallback rendering for this run."""
    if force_fallback or not is_interactive or host_os.lower() in FALLBACK_PLATFORMS:
        return RenderMode.FALLBACK
    return RenderMode.RICH


@contextmanager
def _completion(candidates: Options):
    """Expose ``candidates`` to readline tab completion while reading one line."""
    if not candidates:
        yield
        return
    try:
        import readline
    except ImportError:
        logger.debug("readline unavailable; suggestions disabled")
        yield
        return

    def complete(prefix: str, state: int) -> Optional[str]:
        if callable(candidates):
            matches = [str(c) for c in candidates(prefix)]
        else:
            source = candidates.keys() if isinstance(candidates, Mapping) else candidates
            matches = [str(c) for c in source if str(c).startswith(prefix)]
        return matches[state] if state < len(matches) else None

    bind, unbind = _tab_bindings(readline)
    previous = readline.get_completer()
    readline.set_completer(complete)
    readline.parse_and_bind(bind)
    try:
        yield
    finally:
        readline.set_completer(previous)
        readline.parse_and_bind(unbind)


def _tab_bindings(readline) -> tuple[str, str]:
    """Tab bindings (complete, restore) in the syntax of the linked readline library.

    Python's readline module binds tab to plain insertion on import, so that is
    what gets restored.
    """
    if getattr(readline, "backend", None) == "editline" or "libedit" in (readline.__doc__ or ""):
        return "bind ^I rl_complete", "bind ^I ed-insert"
    return "tab: complete", "tab: self-insert"


class LineIO:
    """Line primitives used by the fallback renderers.

    Output goes to a Rich console. Input comes from the terminal, or from
    ``stream`` when one is given. End of input reads as an empty line.
    """

    def __init__(self, console: Optional[Console] = None, stream: Optional[TextIO] = None):
        self.console = console or Console(highlight=False)
        self.stream = stream
        self.exhausted = False

    def write(self, message: str = "") -> None:
        self.console.print(message)

    def error(self, message: str) -> None:
        self.console.print(f"[red]{escape(message)}[/red]")

    def warn(self, message: str) -> None:
        self.console.print(f"[yellow]{escape(message)}[/yellow]")

    def read_line(self, prompt: str = "> ", *, secret: bool = False, completions: Options = None) -> str:
        try:
            if self.stream is not None:
                self.console.print(prompt, end="", markup=False)
                line = self.stream.readline()
                if not line:
                    raise EOFError
            elif secret:
                line = self._read_secret(prompt)
            else:
                with _completion(completions):
                    line = self.console.input(escape(prompt))
        except EOFError:
            self.exhausted = True
            self.console.print()
            return ""
        return line.rstrip("\r\n")

    def _read_secret(self, prompt: str) -> str:
        if not sys.stdin.isatty():
            self.warn("Warning: input is not a terminal, the value will not be hidden.")
            return self.console.input(escape(prompt))
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", getpass.GetPassWarning)
            line = self.console.input(escape(prompt), password=True)
        if any(issubclass(w.category, getpass.GetPassWarning) for w in caught):
            self.warn("Warning: this terminal cannot hide input, the value was echoed.")
        return line


def prompt_until_valid(
    render: Callable[[], Any],
    required: Union[bool, str, Required, None] = None,
    validate: Optional[Validator] = None,
    io: Optional[LineIO] = None,
    kind: Optional[PromptKind] = None,
) -> Any:
    """Call ``render`` until its answer passes the required and validate rules.

    There is no retry limit. Each rejection prints its message before asking again.
    Once ``io`` has hit end of input a rejection raises `InputExhausted` instead,
    since asking again can only read the same empty answer.
    """
    required = as_required(required)
    io = io or LineIO()
    while True:
        try:
            candidate = render()
        except InvalidAnswer as e:
            outcome: ValidationOutcome = Rejected(str(e))
        else:
            outcome = check_answer(candidate, required, validate, kind)
        if isinstance(outcome, Accepted):
            return outcome.value
        logger.debug("Answer rejected: %s", outcome.message)
        io.error(outcome.message)
        if io.exhausted:
            raise InputExhausted(outcome.message)


# Fallback renderers

def _write_label(io: LineIO, spec: PromptSpec, suffix: str = "") -> None:
    io.write(f"[green]{escape(spec.label)}[/green]{suffix}")
    if spec.placeholder:
        io.write(f"[dim]{escape(spec.placeholder)}[/dim]")
    if spec.hint:
        io.write(f"[dim]{spec.hint}[/dim]")


def _default_suffix(default: Any) -> str:
    if default in (None, "", ()):
        return ""
    if isinstance(default, (list, tuple)):
        default = ",".join(default)
    return f" [yellow]\\[{escape(str(default))}][/yellow]"


def _write_choices(io: LineIO, choices: Mapping[str, str]) -> None:
    for position, (key, label) in enumerate(choices.items(), start=1):
        detail = "" if key == label else f" [dim]({escape(key)})[/dim]"
        io.write(f"  [yellow]\\[{position}][/yellow] {escape(label)}{detail}")


def resolve_choice(token: str, choices: Mapping[str, str]) -> str:
    """Map a typed token to an option key: 1-based position, key, then label."""
    keys = list(choices)
    if token.isdigit() and 1 <= int(token) <= len(keys):
        return keys[int(token) - 1]
    if token in choices:
        return token
    lowered = token.lower()
    for key, label in choices.items():
        if label.lower() == lowered or key.lower() == lowered:
            return key
    raise InvalidAnswer(f'Value "{token}" is invalid.')


def fallback_text(spec: PromptSpec, io: LineIO) -> str:
    _write_label(io, spec, _default_suffix(spec.default))
    answer = io.read_line()
    if not answer and spec.default:
        return str(spec.default)
    return answer


def fallback_password(spec: PromptSpec, io: LineIO) -> str:
    _write_label(io, spec)
    return io.read_line(secret=True)


def fallback_confirm(spec: PromptSpec, io: LineIO) -> bool:
    indicator = "Y/n" if spec.default else "y/N"
    while True:
        _write_label(io, spec, f" [yellow]({indicator})[/yellow]")
        answer = io.read_line().strip().lower()
        if not answer:
            return bool(spec.default)
        if answer in AFFIRMATIVE:
            return True
        if answer in NEGATIVE:
            return False
        io.error("Please answer yes or no.")


def fallback_select(spec: PromptSpec, io: LineIO) -> str:
    choices = spec.choices()
    default = str(spec.default) if spec.default is not None and str(spec.default) in choices else None
    _write_label(io, spec, _default_suffix(choices.get(default) if default else None))
    _write_choices(io, choices)
    answer = io.read_line().strip()
    if not answer:
        if default is None:
            raise InvalidAnswer("Please select an option.")
        return default
    return resolve_choice(answer, choices)


def fallback_multiselect(spec: PromptSpec, io: LineIO) -> list[str]:
    choices = spec.choices()
    default = [key for key in spec.default if key in choices]
    if default:
        offered = choices
    else:
        offered = {NONE_CHOICE: "None", **choices}
        default = [NONE_CHOICE]
    _write_label(io, spec, _default_suffix([offered[key] for key in default]))
    _write_choices(io, offered)
    io.write("[dim]Separate multiple choices with commas.[/dim]")
    tokens = [t.strip() for t in io.read_line().split(",") if t.strip()]

    picked = [resolve_choice(t, offered) for t in tokens] if tokens else default
    selected = list(dict.fromkeys(picked))

    if NONE_CHOICE in selected and NONE_CHOICE not in choices:
        if len(selected) > 1:
            raise InvalidAnswer('"None" cannot be combined with other options.')
        return []
    return selected


def fallback_suggest(spec: PromptSpec, io: LineIO) -> str:
    _write_label(io, spec, _default_suffix(spec.default))
    answer = io.read_line(completions=spec.options)
    if not answer and spec.default:
        return str(spec.default)
    return answer


# Rich renderers

def get_key() -> str:
    """Read one keypress with readchar and name the ones the widgets care about."""
    key = readchar.readkey()

    if key == readchar.key.UP:
        return 'up'
    if key == readchar.key.DOWN:
        return 'down'
    if key in (readchar.key.ENTER, readchar.key.CR, readchar.key.LF):
        return 'enter'
    if key == readchar.key.SPACE:
        return 'space'
    if key == readchar.key.ESC:
        return 'escape'
    if key == readchar.key.CTRL_C:
        raise KeyboardInterrupt

    return key


def _arrow_widget(spec: PromptSpec, console: Console, *, multiple: bool) -> Any:
    choices = spec.choices()
    keys = list(choices)
    if multiple:
        checked = {key for key in spec.default if key in choices}
        cursor = 0
    else:
        checked = set()
        cursor = keys.index(str(spec.default)) if str(spec.default) in choices else 0

    def render_panel() -> Panel:
        table = Table.grid(padding=(0, 2))
        table.add_column(style="cyan", justify="left", width=3)
        table.add_column(style="white", justify="left")
        for i, key in enumerate(keys):
            pointer = "▶" if i == cursor else " "
            box = ("[green]◉[/green] " if key in checked else "○ ") if multiple else ""
            table.add_row(pointer, f"{box}[cyan]{escape(choices[key])}[/cyan]")
        table.add_row("", "")
        help_text = "Use ↑/↓ to navigate, Space to toggle, Enter to confirm" if multiple \
            else "Use ↑/↓ to navigate, Enter to select, Esc to cancel"
        table.add_row("", f"[dim]{help_text}[/dim]")
        if spec.hint:
            table.add_row("", f"[dim]{spec.hint}[/dim]")
        return Panel(table, title=f"[bold]{escape(spec.label)}[/bold]", border_style="cyan", padding=(1, 2))

    console.print()
    with Live(render_panel(), console=console, transient=True, auto_refresh=False) as live:
        while True:
            try:
                key = get_key()
            except KeyboardInterrupt:
                console.print("\n[yellow]Selection cancelled[/yellow]")
                raise
            if key == 'up':
                cursor = (cursor - 1) % len(keys)
            elif key == 'down':
                cursor = (cursor + 1) % len(keys)
            elif key == 'space' and multiple:
                checked ^= {keys[cursor]}
            elif key == 'enter':
                break
            elif key == 'escape':
                console.print("\n[yellow]Selection cancelled[/yellow]")
                raise typer.Exit(1)
            live.update(render_panel(), refresh=True)

    if multiple:
        return [key for key in keys if key in checked]
    return keys[cursor]


def _prompt_kwargs(spec: PromptSpec) -> dict:
    kwargs: dict[str, Any] = {}
    if spec.default not in (None, ""):
        kwargs["default"] = str(spec.default)
    return kwargs


def _rich_intro(spec: PromptSpec, console: Console) -> None:
    if spec.placeholder:
        console.print(f"[dim]{escape(spec.placeholder)}[/dim]")
    if spec.hint:
        console.print(f"[dim]{spec.hint}[/dim]")


def rich_text(spec: PromptSpec, io: LineIO) -> str:
    _rich_intro(spec, io.console)
    try:
        return Prompt.ask(f"[green]{escape(spec.label)}[/green]", console=io.console, **_prompt_kwargs(spec)).strip()
    except EOFError:
        return str(spec.default or "")


def rich_password(spec: PromptSpec, io: LineIO) -> str:
    _rich_intro(spec, io.console)
    try:
        return Prompt.ask(f"[green]{escape(spec.label)}[/green]", console=io.console, password=True)
    except EOFError:
        return ""


def rich_confirm(spec: PromptSpec, io: LineIO) -> bool:
    _rich_intro(spec, io.console)
    try:
        return Confirm.ask(f"[green]{escape(spec.label)}[/green]", console=io.console, default=bool(spec.default))
    except EOFError:
        return bool(spec.default)


def rich_select(spec: PromptSpec, io: LineIO) -> str:
    return _arrow_widget(spec, io.console, multiple=False)


def rich_multiselect(spec: PromptSpec, io: LineIO) -> list[str]:
    return _arrow_widget(spec, io.console, multiple=True)


def rich_suggest(spec: PromptSpec, io: LineIO) -> str:
    with _completion(spec.options):
        return rich_text(spec, io)


Renderer = Callable[[PromptSpec, LineIO], Any]

FALLBACK_RENDERERS: Mapping[PromptKind, Renderer] = MappingProxyType({
    PromptKind.TEXT: fallback_text,
    PromptKind.PASSWORD: fallback_password,
    PromptKind.CONFIRM: fallback_confirm,
    PromptKind.SELECT: fallback_select,
    PromptKind.MULTISELECT: fallback_multiselect,
    PromptKind.SUGGEST: fallback_suggest,
})

RICH_RENDERERS: Mapping[PromptKind, Renderer] = MappingProxyType({
    PromptKind.TEXT: rich_text,
    PromptKind.PASSWORD: rich_password,
    PromptKind.CONFIRM: rich_confirm,
    PromptKind.SELECT: rich_select,
    PromptKind.MULTISELECT: rich_multiselect,
    PromptKind.SUGGEST: rich_suggest,
})


@dataclass(frozen=True)
class Prompter:
    """Asks questions using one render mode for the whole run."""
    mode: RenderMode
    io: LineIO = field(default_factory=LineIO)

    def ask(self, spec: PromptSpec) -> Any:
        renderers = FALLBACK_RENDERERS if self.mode is RenderMode.FALLBACK else RICH_RENDERERS
        render = renderers[spec.kind]
        return prompt_until_valid(
            lambda: render(spec, self.io),
            spec.required,
            spec.validate,
            self.io,
            spec.kind,
        )


_prompter: Optional[Prompter] = None


def configure_prompts(
    *,
    interactive: Optional[bool] = None,
    host_os: Optional[str] = None,
    force_fallback: bool = False,
    io: Optional[LineIO] = None,
) -> Prompter:
    """Decide the render mode once and remember the prompter for the rest of the run.

    Later calls return the prompter created by the first call, whatever
    arguments they pass.
    """
    global _prompter
    if _prompter is not None:
        logger.debug("Prompts already configured in %s mode", _prompter.mode.value)
        return _prompter
    if interactive is None:
        interactive = sys.stdin.isatty()
    mode = decide_render_mode(interactive, host_os or platform.system(), force_fallback)
    logger.debug("Prompt render mode: %s", mode.value)
    _prompter = Prompter(mode, io or LineIO())
    return _prompter


def get_prompter() -> Prompter:
    return _prompter if _prompter is not None else configure_prompts()


def reset_prompts() -> None:
    """Forget the configured prompter. Only meant for tests."""
    global _prompter
    _prompter = None


def _ask(prompter: Optional[Prompter], spec: PromptSpec) -> Any:
    return (prompter or get_prompter()).ask(spec)


def text(label: str, *, default: str = "", placeholder: str = "", required: Union[bool, str] = False,
         validate: Optional[Validator] = None, hint: str = "", prompter: Optional[Prompter] = None) -> str:
    return _ask(prompter, PromptSpec(PromptKind.TEXT, label, default=default, placeholder=placeholder,
                                     required=required, validate=validate, hint=hint))


def password(label: str, *, required: Union[bool, str] = False, validate: Optional[Validator] = None,
             hint: str = "", prompter: Optional[Prompter] = None) -> str:
    return _ask(prompter, PromptSpec(PromptKind.PASSWORD, label, required=required, validate=validate, hint=hint))


def confirm(label: str, *, default: bool = True, required: Union[bool, str] = False,
            validate: Optional[Validator] = None, hint: str = "", prompter: Optional[Prompter] = None) -> bool:
    return _ask(prompter, PromptSpec(PromptKind.CONFIRM, label, default=default, required=required,
                                     validate=validate, hint=hint))


def select(label: str, options: Union[Mapping[str, str], Sequence[str]], *, default: Optional[str] = None,
           validate: Optional[Validator] = None, hint: str = "", prompter: Optional[Prompter] = None) -> str:
    return _ask(prompter, PromptSpec(PromptKind.SELECT, label, default=default, options=options,
                                     validate=validate, hint=hint))


def multiselect(label: str, options: Union[Mapping[str, str], Sequence[str]], *, default: Sequence[str] = (),
                required: Union[bool, str] = False, validate: Optional[Validator] = None, hint: str = "",
                prompter: Optional[Prompter] = None) -> list[str]:
    return _ask(prompter, PromptSpec(PromptKind.MULTISELECT, label, default=default, options=options,
                                     required=required, validate=validate, hint=hint))


def suggest(label: str, options: Options, *, default: str = "", placeholder: str = "",
            required: Union[bool, str] = False, validate: Optional[Validator] = None, hint: str = "",
            prompter: Optional[Prompter] = None) -> str:
    return _ask(prompter, PromptSpec(PromptKind.SUGGEST, label, default=default, options=options,
                                     placeholder=placeholder, required=required, validate=validate, hint=hint))
