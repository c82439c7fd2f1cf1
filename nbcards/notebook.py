"""
Notebook codec: converts between cards and Jupyter notebook (.ipynb) documents.
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from nbcards.cards import Card, CardIds, CardOutput
from nbcards.errors import (
    ClassificationGapError,
    NoWorkspaceError,
    SaveError,
    UnrecognizedFormatError,
)
from nbcards.flavors import get_flavor, language_for, registered_flavors
from nbcards.utils import choose_output_type, join_text

logger = logging.getLogger(__name__)

NBFORMAT = 4
NBFORMAT_MINOR = 2


class KernelSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str


class NotebookMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    kernelspec: KernelSpec


class NotebookShape(BaseModel):
    """The minimum structure a notebook needs to be imported."""
    model_config = ConfigDict(extra="allow")

    cells: list[dict[str, Any]]
    metadata: NotebookMetadata


class NotebookDocument(BaseModel):
    """
    A Jupyter notebook document.

    Cells are kept as plain dicts so that whatever the notebook carried is
    written back unchanged.
    """
    model_config = ConfigDict(extra="allow")

    cells: list[dict[str, Any]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    nbformat: int = NBFORMAT
    nbformat_minor: int = NBFORMAT_MINOR

    @property
    def kernel_name(self) -> Optional[str]:
        return self.metadata.get("kernelspec", {}).get("name")

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "cells": self.cells,
            "metadata": self.metadata,
            "nbformat": self.nbformat,
            "nbformat_minor": self.nbformat_minor,
        }

    def save(self, path: Path):
        """Write the document as JSON."""
        path = Path(path)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=1, ensure_ascii=False)

    @classmethod
    def load(cls, path: Path) -> "NotebookDocument":
        """Read a document from a .ipynb file without structural checks."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls(**data)


class ImportResult(BaseModel):
    """Cards created from a notebook plus its cells as one source buffer."""
    cards: list[Card]
    text: str
    language: Optional[str] = None


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def build_documents(cards: Iterable[Card]) -> dict[str, NotebookDocument]:
    """
    Partition cards into one notebook per registered flavor.

    Flavors without any card are left out.
    """
    cards = list(cards)
    documents = {}
    for flavor in registered_flavors():
        cells = [card.jupyter_data for card in cards if card.kernel == flavor.name]
        if not cells:
            continue
        documents[flavor.name] = NotebookDocument(
            cells=cells,
            metadata=flavor.metadata,
        )
    return documents


def _target_path(workspace: Path, flavor_name: str, file_name: Optional[str], shared: bool) -> Path:
    label = get_flavor(flavor_name).file_label
    if not file_name:
        return workspace / f"output_{label}.ipynb"
    target = Path(file_name)
    if shared:
        target = target.with_name(f"{target.stem}_{label}{target.suffix}")
    return workspace / target


def export_cards(
    cards: Iterable[Card],
    workspace: Optional[Path],
    file_name: Optional[str] = None,
    on_written: Optional[Callable[[str], None]] = None,
) -> list[Path]:
    """
    Export cards to one .ipynb file per kernel flavor.

    Args:
        cards: Cards to export, in order
        workspace: Directory the files are written to
        file_name: File name to use instead of ``output_<flavor>.ipynb``
        on_written: Called with the base name of every file written

    Returns:
        Paths of the files written

    Raises:
        NoWorkspaceError: if workspace is not set (nothing is written)
        SaveError: if a file could not be written
    """
    if workspace is None:
        raise NoWorkspaceError()
    workspace = Path(workspace)

    documents = build_documents(cards)
    shared = bool(file_name) and len(documents) > 1

    written = []
    for flavor_name, document in documents.items():
        path = _target_path(workspace, flavor_name, file_name, shared)
        try:
            document.save(path)
        except OSError as exc:
            raise SaveError(path, exc) from exc
        logger.info("Exported %d %s cards to %s", len(document.cells), flavor_name, path)
        written.append(path)
        if on_written is not None:
            on_written(path.name)
    return written


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

def cell_source(cell: dict) -> str:
    """A cell's source as a single string."""
    return join_text(cell.get("source", ""))


def card_outputs(outputs: Optional[list]) -> list[CardOutput]:
    """
    Convert notebook cell outputs to card outputs.

    Raises:
        ClassificationGapError: a rich output has no known representation
    """
    result = []
    for output in outputs or []:
        if "name" in output:
            result.append(CardOutput(kind="stdout", payload=join_text(output.get("text"))))
        elif "traceback" in output:
            result.append(CardOutput(kind="error", payload="\n".join(output["traceback"])))
        else:
            data = output.get("data") or {}
            kind = choose_output_type(data.keys())
            result.append(CardOutput(kind=kind, payload=data[kind]))
    return result


def _markdown_lines(source: str) -> list[str]:
    """Split on newlines only, keeping them; an empty source is one empty line."""
    parts = source.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1] or not lines:
        lines.append(parts[-1])
    return lines


def reconstruct_source(cells: list[dict]) -> str:
    """
    Join every cell's source into one plain-text buffer.

    Markdown lines are commented out with ``# `` so the buffer stays valid
    source code.
    """
    parts = []
    for cell in cells:
        source = cell_source(cell)
        if cell.get("cell_type") == "markdown":
            source = "".join(f"# {line}" for line in _markdown_lines(source))
        parts.append(source)
    return "\n".join(parts)


def import_notebook(
    document: Any,
    ids: CardIds,
    on_card: Optional[Callable[[Card], None]] = None,
) -> ImportResult:
    """
    Create cards from a notebook document.

    Every cell is checked before any id is assigned, so a document that
    fails leaves no trace.

    Args:
        document: Parsed notebook JSON
        ids: Id counter of the collection receiving the cards
        on_card: Called with each card, in document order

    Returns:
        ImportResult with the cards, the reconstructed source and its language

    Raises:
        UnrecognizedFormatError: the document lacks cells or a kernelspec, or
            a cell or output is malformed
    """
    if not isinstance(document, dict):
        raise UnrecognizedFormatError("document is not an object")
    try:
        shape = NotebookShape.model_validate(document)
    except ValidationError as exc:
        raise UnrecognizedFormatError(str(exc.errors()[0]["loc"])) from exc

    kernel_name = shape.metadata.kernelspec.name
    cells = document["cells"]
    prepared = []
    try:
        for cell in cells:
            prepared.append((
                cell_source(cell),
                card_outputs(cell.get("outputs")),
                cell.get("cell_type") == "markdown",
                copy.deepcopy(cell),
            ))
        text = reconstruct_source(cells)
    except (ClassificationGapError, TypeError, AttributeError, KeyError) as exc:
        raise UnrecognizedFormatError(str(exc)) from exc

    cards = []
    for source, outputs, is_markdown, cell in prepared:
        card = Card(
            id=ids.next(),
            source_code=source,
            outputs=tuple(outputs),
            jupyter_data=cell,
            kernel=kernel_name,
            is_custom_markdown=is_markdown,
        )
        cards.append(card)
        if on_card is not None:
            on_card(card)

    logger.info("Imported %d cells from a %s notebook", len(cards), kernel_name)
    return ImportResult(cards=cards, text=text, language=language_for(kernel_name))


def load_notebook_file(path: Path) -> dict:
    """
    Read a notebook file as JSON.

    Raises:
        UnrecognizedFormatError: the file is not JSON
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as exc:
            raise UnrecognizedFormatError(str(exc)) from exc
