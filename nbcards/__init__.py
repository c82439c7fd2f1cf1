"""
nbcards: Jupyter kernel output as cards.

This package provides:
- A message aggregator that turns kernel IOPub messages into one card per execution
- A codec between card collections and Jupyter notebook (.ipynb) documents
- Kernel sessions, card collections and session persistence around them
"""

from nbcards.cards import Card, CardOutput, CardIds, CardCollection
from nbcards.aggregator import MessageAggregator, CardReady, StatusChanged, MissingModule
from nbcards.notebook import NotebookDocument, ImportResult, export_cards, import_notebook
from nbcards.session import SessionManager

__version__ = "0.1.0"
__all__ = [
    "Card",
    "CardOutput",
    "CardIds",
    "CardCollection",
    "MessageAggregator",
    "CardReady",
    "StatusChanged",
    "MissingModule",
    "NotebookDocument",
    "ImportResult",
    "export_cards",
    "import_notebook",
    "SessionManager",
]
