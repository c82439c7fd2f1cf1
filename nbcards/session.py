"""
SessionManager: Manages saving/loading of card collections.
"""

import json
from pathlib import Path
from typing import Any, Optional
from datetime import datetime

from nbcards.cards import Card, CardCollection, CardIds
from nbcards.config import get_home


class SessionManager:
    """
    Manages saving/loading of card collections.

    A session stores the cards together with the id counter, so that cards
    created after a reload keep getting fresh ids.
    """

    def __init__(self, sessions_dir: Optional[Path] = None):
        """
        Initialize session manager.

        Args:
            sessions_dir: Directory to store session files
        """
        self.sessions_dir = sessions_dir or get_home() / "sessions"
        self.sessions_dir.mkdir(parents=True, exist_ok=True)

    def session_path(self, name: str) -> Path:
        return self.sessions_dir / f"{name}.json"

    def save_session(self, collection: CardCollection, name: str = "default") -> Path:
        """
        Save a card collection to a file.

        Args:
            collection: Collection to save
            name: Name of the session

        Returns:
            Path to saved session file
        """
        state = {
            "cards": [card.to_dict() for card in collection],
            "next_id": collection.ids.peek,
            "saved_at": datetime.now().isoformat(),
        }

        path = self.session_path(name)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(state, f, indent=2)

        return path

    def load_session(self, name: str = "default") -> CardCollection:
        """
        Load a card collection, or return an empty one if none was saved.

        Args:
            name: Name of the session

        Returns:
            The restored collection
        """
        path = self.session_path(name)
        if not path.exists():
            return CardCollection()

        with open(path, "r", encoding="utf-8") as f:
            state = json.load(f)

        collection = CardCollection(ids=CardIds(start=state.get("next_id", 0)))
        for card_data in state.get("cards", []):
            collection.add(Card.from_dict(card_data))
        return collection

    def list_sessions(self) -> list[dict[str, Any]]:
        """
        List available saved sessions.

        Returns:
            List of session info dictionaries
        """
        sessions = []
        for path in self.sessions_dir.glob("*.json"):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    state = json.load(f)
                sessions.append({
                    "path": str(path),
                    "name": path.stem,
                    "saved_at": state.get("saved_at"),
                    "card_count": len(state.get("cards", [])),
                })
            except (OSError, json.JSONDecodeError) as e:
                sessions.append({
                    "path": str(path),
                    "name": path.stem,
                    "error": str(e),
                })
        return sorted(sessions, key=lambda x: x.get("saved_at") or "", reverse=True)

    def delete_session(self, name: str) -> bool:
        """Delete a session file."""
        path = self.session_path(name)
        if path.exists():
            path.unlink()
            return True
        return False
