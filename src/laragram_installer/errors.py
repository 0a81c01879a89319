"""Errors raised by the installer."""


class InstallerError(Exception):
    """Base class for installer failures."""


class PreconditionFailed(InstallerError):
    """Something is wrong before any file is touched (bad option, existing directory, missing tool)."""

    def __init__(self, message: str, title: str = "Cannot Continue"):
        super().__init__(message)
        self.title = title


class ExternalCommandFailed(InstallerError):
    """An external tool exited with a non-zero status."""

    def __init__(self, command: str, returncode: int):
        super().__init__(f"Command failed with exit code {returncode}: {command}")
        self.command = command
        self.returncode = returncode


class InputExhausted(PreconditionFailed):
    """Input ended while a question still had no acceptable answer."""

    def __init__(self, message: str):
        super().__init__(f"{message} No more input is available.", title="Input Ended")
