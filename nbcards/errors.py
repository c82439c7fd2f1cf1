"""
Exceptions raised by nbcards.
"""


class NbCardsError(Exception):
    """Base class for all nbcards errors."""


class UnrecognizedFormatError(NbCardsError):
    """The notebook document does not have the expected structure."""

    def __init__(self, detail: str = ""):
        message = "The Jupyter notebook file entered is in an unknown format"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.detail = detail


class NoWorkspaceError(NbCardsError):
    """Export was requested without a workspace to write into."""

    def __init__(self):
        super().__init__("You must have a workspace open to export the files")


class SaveError(NbCardsError):
    """Writing an exported notebook failed."""

    def __init__(self, path, cause: Exception):
        super().__init__(f"Unable to save exported Jupyter file {path}: {cause}")
        self.path = path
        self.cause = cause


class ClassificationGapError(NbCardsError):
    """A rich result offered no representation from the preference list."""

    def __init__(self, keys):
        self.keys = sorted(keys)
        offered = ", ".join(self.keys) if self.keys else "none"
        super().__init__(f"No supported output representation (offered: {offered})")


class MalformedMessageError(NbCardsError):
    """A kernel message is not a structured message object."""


class KernelUnavailableError(NbCardsError):
    """Code was submitted to a kernel flavor that has not been started."""

    def __init__(self, flavor: str):
        super().__init__(f"The {flavor} kernel is not available")
        self.flavor = flavor


class KernelExecutionError(NbCardsError):
    """Communication with a running kernel failed."""
