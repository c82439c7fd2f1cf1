"""
Utility functions for nbcards.
"""

import json
import re
from typing import Any, Iterable, Optional, Union

from rich.syntax import Syntax
from rich.text import Text

from nbcards.errors import ClassificationGapError


# Most structured and interactive formats first, plain text last.
OUTPUT_PREFERENCE = (
    "application/vnd.jupyter",
    "application/vnd.jupyter.cells",
    "application/vnd.jupyter.dragindex",
    "application/x-ipynb+json",
    "application/geo+json",
    "application/vnd.plotly.v1+json",
    "application/vdom.v1+json",
    "text/html",
    "image/svg+xml",
    "image/png",
    "image/jpeg",
    "text/markdown",
    "application/pdf",
    "text/latex",
    "application/json",
    "text/plain",
)

_MISSING_MODULE = re.compile(r"No module named '(.+?)'")


def choose_output_type(keys: Iterable[str]) -> str:
    """
    Pick the preferred representation of a rich result.

    Args:
        keys: MIME types offered by the result

    Returns:
        The first entry of OUTPUT_PREFERENCE present in keys

    Raises:
        ClassificationGapError: if none of the keys is known
    """
    available = set(keys)
    for mime_type in OUTPUT_PREFERENCE:
        if mime_type in available:
            return mime_type
    raise ClassificationGapError(available)


def find_missing_module(evalue: str) -> Optional[str]:
    """
    Extract the module name from a "No module named 'x'" error value.

    Returns:
        The bare module name, or None if the error is not a missing module
    """
    if not isinstance(evalue, str):
        return None
    match = _MISSING_MODULE.search(evalue)
    if match is None:
        return None
    return match.group(1).replace("'", "")


def join_text(text: Union[str, list, None]) -> str:
    """Join text that may arrive as a single string or a list of fragments."""
    if text is None:
        return ""
    if isinstance(text, str):
        return text
    return "".join(text)


def normalize_newlines(source: str) -> str:
    """Convert CRLF line endings to LF."""
    return source.replace("\r\n", "\n")


def source_lines(source: str) -> list[str]:
    """Split source into the per-line list stored in notebook cells, each line terminated."""
    return [line + "\n" for line in source.split("\n")]


def truncate_text(text: str, max_length: int = 100) -> str:
    """Truncate text to max_length, adding ellipsis if needed."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def format_output(kind: str, payload: Any) -> str:
    """Format a card output as plain text."""
    if kind in ("stdout", "error", "text/plain"):
        return join_text(payload)
    if kind.startswith("image/") and kind != "image/svg+xml":
        return f"[{kind} output]"
    if isinstance(payload, (dict, list)):
        return json.dumps(payload, indent=2)
    return str(payload)


def format_rich_output(kind: str, payload: Any):
    """
    Format a card output as a Rich renderable.

    Args:
        kind: Output kind (stdout, error or a MIME type)
        payload: Output content

    Returns:
        Rich renderable object for console display
    """
    if kind == "stdout":
        return Text(join_text(payload).rstrip("\n"))

    if kind == "error":
        # Kernel tracebacks carry ANSI colour codes
        return Text.from_ansi(join_text(payload), style="red")

    if kind.endswith("json") and not isinstance(payload, str):
        return Syntax(json.dumps(payload, indent=2), "json", theme="monokai", line_numbers=False)

    if kind == "text/plain":
        return Syntax(join_text(payload), "python", theme="monokai", line_numbers=False)

    return Text(format_output(kind, payload), style="cyan")
