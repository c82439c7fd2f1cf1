"""
CLI interface for nbcards with Rich output.
"""

import json
import logging
import subprocess
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm
from rich.status import Status
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from nbcards import Card, MessageAggregator, SessionManager
from nbcards.aggregator import MissingModule
from nbcards.config import get_log_level, get_workspace
from nbcards.errors import MalformedMessageError, NbCardsError
from nbcards.flavors import DEFAULT_FLAVOR, get_flavor, registered_flavors
from nbcards.kernel import DEFAULT_TIMEOUT, KernelSession
from nbcards.notebook import export_cards, import_notebook, load_notebook_file
from nbcards.utils import format_rich_output, truncate_text


console = Console()

FLAVOR_CHOICE = click.Choice([f.name for f in registered_flavors()])


def _fail(exc):
    console.print(f"[red]{escape(str(exc))}[/red]")
    sys.exit(1)


def display_card(card: Card):
    """Print a card with its outputs."""
    flavor = get_flavor(card.kernel)
    if card.is_custom_markdown:
        content = Markdown(card.source_code) if card.source_code.strip() else Text("(empty)", style="dim italic")
        label = "md"
    elif card.source_code.strip():
        language = flavor.language if flavor else "text"
        content = Syntax(card.source_code, language, theme="monokai", line_numbers=True, word_wrap=True)
        label = card.kernel
    else:
        content = Text("(empty)", style="dim italic")
        label = card.kernel

    border = "red" if card.has_error else "blue"
    console.print(Panel(
        content,
        title=f"[bold]{escape(card.title)}[/bold]  [dim]{label}[/dim]",
        title_align="left",
        border_style=border,
        padding=(0, 1),
    ))

    for output in card.outputs:
        if output.kind == "error":
            console.print(Panel(
                format_rich_output(output.kind, output.payload),
                title="[red]Error[/red]",
                title_align="left",
                border_style="red",
                padding=(0, 1),
            ))
        else:
            console.print(Panel(
                format_rich_output(output.kind, output.payload),
                title=f"[blue]Out [{card.id}][/blue] [dim]{output.kind}[/dim]",
                title_align="left",
                border_style="blue",
                padding=(0, 1),
            ))


def install_missing_module(module: str) -> bool:
    """Install a module with pip into the current interpreter."""
    console.print(f"[dim]pip install {module}[/dim]")
    result = subprocess.run([sys.executable, "-m", "pip", "install", module])
    return result.returncode == 0


def _offer_installs(events: list):
    for event in events:
        if isinstance(event, MissingModule):
            if Confirm.ask(
                f"Jupyter requires the module '{event.module}' to be installed. Install now?",
                console=console,
            ):
                if install_missing_module(event.module):
                    console.print(f"[green]Installed {event.module}[/green]")
                else:
                    console.print(f"[red]Failed to install {event.module}[/red]")


@click.group()
def main():
    """nbcards: run kernel code as cards and exchange them with Jupyter notebooks."""
    logging.basicConfig(
        level=get_log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("code", required=False)
@click.option("--file", "-f", "source_file", type=click.Path(exists=True), help="Execute the contents of a file")
@click.option("--kernel", "-k", type=FLAVOR_CHOICE, default=DEFAULT_FLAVOR, help="Kernel flavor")
@click.option("--timeout", "-t", type=float, default=DEFAULT_TIMEOUT, help="Seconds to wait for kernel output")
@click.option("--workspace", "-w", type=click.Path(file_okay=False), default=None, help="Kernel working directory")
def run(code: Optional[str], source_file: Optional[str], kernel: str, timeout: float, workspace: Optional[str]):
    """Execute code on a kernel and store the resulting card."""
    if source_file:
        code = Path(source_file).read_text()
    if not code:
        raise click.UsageError("Give CODE or --file")

    sm = SessionManager()
    collection = sm.load_session()
    aggregator = MessageAggregator(ids=collection.ids)

    try:
        with KernelSession(aggregator, workspace=get_workspace(workspace)) as session:
            with Status(f"Starting {kernel} kernel...", console=console, spinner="dots"):
                session.start_kernel(kernel, timeout=timeout)
            with Status("Executing...", console=console, spinner="dots"):
                card = session.execute(code, kernel, timeout=timeout)
    except NbCardsError as e:
        _fail(e)

    collection.add(card)
    sm.save_session(collection)
    display_card(card)
    _offer_installs(aggregator.drain())


@main.command()
@click.argument("path", type=click.Path(exists=True))
@click.option("--kernel", "-k", type=FLAVOR_CHOICE, default=DEFAULT_FLAVOR, help="Kernel flavor the messages came from")
def replay(path: str, kernel: str):
    """Rebuild cards from recorded kernel messages (one JSON message per line)."""
    sm = SessionManager()
    collection = sm.load_session()
    aggregator = MessageAggregator(ids=collection.ids)

    cards = []
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                card = aggregator.feed(json.loads(line), kernel)
            except (json.JSONDecodeError, MalformedMessageError) as e:
                console.print(f"[yellow]Skipping line {line_no}: {escape(str(e))}[/yellow]")
                continue
            if card is not None:
                cards.append(collection.add(card))

    if aggregator.pending(kernel):
        console.print("[yellow]Messages after the last idle status were not turned into a card[/yellow]")

    sm.save_session(collection)
    for card in cards:
        display_card(card)
    console.print(f"[green]{len(cards)} cards added[/green]")


@main.command("import")
@click.argument("path", type=click.Path(exists=True))
@click.option("--text-out", "-o", type=click.Path(dir_okay=False), default=None, help="Write the reconstructed source here")
def import_(path: str, text_out: Optional[str]):
    """Import a Jupyter notebook as cards."""
    sm = SessionManager()
    collection = sm.load_session()

    try:
        result = import_notebook(load_notebook_file(Path(path)), collection.ids, on_card=collection.add)
    except NbCardsError as e:
        _fail(e)

    sm.save_session(collection)
    for card in result.cards:
        display_card(card)

    if text_out:
        Path(text_out).write_text(result.text)
        console.print(f"[dim]Source written to {text_out}[/dim]")
    else:
        console.print(Panel(
            Syntax(result.text, result.language or "text", theme="monokai", line_numbers=True),
            title=f"[bold blue]{Path(path).name}[/bold blue]",
            border_style="blue",
        ))
    console.print(f"[green]Imported {len(result.cards)} cards[/green]")


@main.command("add-markdown")
@click.argument("text")
@click.option("--kernel", "-k", type=FLAVOR_CHOICE, default=DEFAULT_FLAVOR, help="Notebook the card is exported with")
def add_markdown(text: str, kernel: str):
    """Add a markdown card."""
    sm = SessionManager()
    collection = sm.load_session()
    card = collection.add_custom_markdown(text, kernel=kernel)
    sm.save_session(collection)
    display_card(card)


@main.command()
def cards():
    """List the cards in the session."""
    collection = SessionManager().load_session()

    if not len(collection):
        console.print("[yellow]No cards yet[/yellow]")
        console.print("[dim]Create one with 'nbcards run', 'nbcards import' or 'nbcards add-markdown'[/dim]")
        return

    table = Table(title="Cards", border_style="blue", show_lines=True)
    table.add_column("#", style="bold cyan", justify="right")
    table.add_column("Title", style="white")
    table.add_column("Kernel", style="dim")
    table.add_column("Source", style="dim")
    table.add_column("Outputs", justify="right", style="green")

    for i, card in enumerate(collection):
        first_line = card.source_code.split("\n", 1)[0]
        outputs = f"[red]{len(card.outputs)}[/red]" if card.has_error else str(len(card.outputs))
        table.add_row(str(i), card.title, card.kernel, truncate_text(first_line, 40), outputs)

    console.print(table)


@main.command()
@click.argument("index", type=int)
def show(index: int):
    """Show one card with its outputs."""
    collection = SessionManager().load_session()
    if not 0 <= index < len(collection):
        _fail(f"No card at index {index}")
    display_card(collection[index])


@main.command()
@click.option("--file", "-f", "file_name", default=None, help="File name instead of output_<kernel>.ipynb")
@click.option("--workspace", "-w", type=click.Path(file_okay=False), default=None, help="Directory to export into")
@click.option("--index", "-i", "indexes", type=int, multiple=True, help="Export only these cards")
def export(file_name: Optional[str], workspace: Optional[str], indexes: tuple):
    """Export cards to Jupyter notebooks, one per kernel."""
    collection = SessionManager().load_session()
    try:
        selected = collection.select(indexes or None)
    except IndexError:
        _fail("Card index out of range")

    def notify(name: str):
        console.print(f"[green]Exported cards to {name}[/green]")

    try:
        written = export_cards(selected, get_workspace(workspace), file_name=file_name, on_written=notify)
    except NbCardsError as e:
        _fail(e)

    if not written:
        console.print("[yellow]No cards to export[/yellow]")


@main.command()
def reset():
    """Remove every card and restart card numbering."""
    sm = SessionManager()
    collection = sm.load_session()
    collection.reset()
    sm.save_session(collection)
    console.print("[green]Session reset[/green]")


if __name__ == "__main__":
    main()
