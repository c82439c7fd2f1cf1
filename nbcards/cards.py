"""
Cards: the immutable record produced for every kernel execution, and the
collection that owns them.
"""

from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from nbcards.flavors import DEFAULT_FLAVOR


def make_card_title(card_id: int) -> str:
    """Default display title for a card."""
    return f"Card {card_id}"


class CardOutput(BaseModel):
    """One visible output of a card: stdout, error, or a MIME type."""
    model_config = ConfigDict(frozen=True)

    kind: str
    payload: Any = ""


class Card(BaseModel):
    """
    The captured result of one kernel execution.

    ``jupyter_data`` is the notebook cell exactly as the protocol described
    it. It is written back verbatim on export and takes no part in equality.
    """
    model_config = ConfigDict(frozen=True)

    id: int
    title: str = ""
    source_code: str = ""
    outputs: tuple[CardOutput, ...] = ()
    jupyter_data: dict[str, Any] = Field(default_factory=dict)
    kernel: str = DEFAULT_FLAVOR
    is_custom_markdown: bool = False
    code_collapsed: bool = False
    output_collapsed: bool = False
    collapsed: bool = False

    @model_validator(mode="before")
    @classmethod
    def _default_title(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("title") and "id" in data:
            data = {**data, "title": make_card_title(data["id"])}
        return data

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Card):
            return NotImplemented
        return (
            self.model_dump(exclude={"jupyter_data"})
            == other.model_dump(exclude={"jupyter_data"})
        )

    def __hash__(self) -> int:
        return hash((self.id, self.kernel, self.source_code))

    @property
    def has_error(self) -> bool:
        return any(o.kind == "error" for o in self.outputs)

    @classmethod
    def custom_markdown(cls, card_id: int, source: str, kernel: str = DEFAULT_FLAVOR) -> "Card":
        """Build a user-authored markdown card."""
        return cls(
            id=card_id,
            source_code=source,
            jupyter_data={
                "cell_type": "markdown",
                "metadata": {},
                "source": source,
            },
            kernel=kernel,
            is_custom_markdown=True,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return self.model_dump()

    @classmethod
    def from_dict(cls, data: dict) -> "Card":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            source_code=data.get("source_code", ""),
            outputs=tuple(CardOutput(**o) for o in data.get("outputs", [])),
            jupyter_data=data.get("jupyter_data", {}),
            kernel=data.get("kernel", DEFAULT_FLAVOR),
            is_custom_markdown=data.get("is_custom_markdown", False),
            code_collapsed=data.get("code_collapsed", False),
            output_collapsed=data.get("output_collapsed", False),
            collapsed=data.get("collapsed", False),
        )


class CardIds:
    """Id counter shared by everything that creates cards for one collection."""

    def __init__(self, start: int = 0):
        self._next = start

    @property
    def peek(self) -> int:
        """The id the next call to ``next()`` will return."""
        return self._next

    def next(self) -> int:
        card_id = self._next
        self._next += 1
        return card_id

    def reset(self) -> None:
        self._next = 0


class CardCollection:
    """
    Ordered collection of cards.

    Cards are immutable, so display changes replace the stored card with an
    updated copy. Out-of-range indexes are ignored.
    """

    def __init__(self, ids: Optional[CardIds] = None):
        self.ids = ids or CardIds()
        self.cards: list[Card] = []
        self.last_deleted: list[Card] = []

    def __len__(self) -> int:
        return len(self.cards)

    def __iter__(self):
        return iter(self.cards)

    def __getitem__(self, index: int) -> Card:
        return self.cards[index]

    def _valid(self, index: int) -> bool:
        return 0 <= index < len(self.cards)

    def _update(self, index: int, **changes) -> None:
        if self._valid(index):
            self.cards[index] = self.cards[index].model_copy(update=changes)

    def add(self, card: Card) -> Card:
        """Append a finalized card."""
        self.cards.append(card)
        return card

    def add_custom_markdown(self, source: str, kernel: str = DEFAULT_FLAVOR) -> Card:
        """Author a markdown card with a fresh id and append it."""
        card = Card.custom_markdown(self.ids.next(), source, kernel=kernel)
        return self.add(card)

    def edit_custom_markdown(self, index: int, source: str) -> None:
        """Replace the text of an authored markdown card, keeping its id and flags."""
        if not self._valid(index) or not self.cards[index].is_custom_markdown:
            return
        self._update(
            index,
            source_code=source,
            jupyter_data={"cell_type": "markdown", "metadata": {}, "source": source},
        )

    def card_id(self, index: int) -> int:
        return self.cards[index].id

    def select(self, indexes: Optional[Iterable[int]] = None) -> list[Card]:
        """Cards at the given indexes, or all cards."""
        if indexes is None:
            return list(self.cards)
        return [self.cards[i] for i in indexes]

    def move_up(self, index: int) -> None:
        if 0 < index < len(self.cards):
            self.cards[index - 1], self.cards[index] = self.cards[index], self.cards[index - 1]

    def move_down(self, index: int) -> None:
        if 0 <= index < len(self.cards) - 1:
            self.cards[index + 1], self.cards[index] = self.cards[index], self.cards[index + 1]

    def delete(self, index: int) -> None:
        if self._valid(index):
            self.last_deleted = [self.cards.pop(index)]

    def delete_many(self, indexes: Iterable[int]) -> None:
        """Delete several cards; indexes refer to positions before deletion."""
        valid = sorted({i for i in indexes if self._valid(i)})
        deleted = [self.cards[i] for i in valid]
        for i in reversed(valid):
            self.cards.pop(i)
        self.last_deleted = deleted

    def undo_delete(self) -> list[Card]:
        """Restore the last deleted cards at the end of the collection."""
        restored = self.last_deleted
        self.cards.extend(restored)
        self.last_deleted = []
        return restored

    def rename(self, index: int, title: str) -> None:
        self._update(index, title=title)

    def collapse_code(self, index: int, value: bool) -> None:
        self._update(index, code_collapsed=value)

    def collapse_output(self, index: int, value: bool) -> None:
        self._update(index, output_collapsed=value)

    def collapse_card(self, index: int, value: bool) -> None:
        self._update(index, collapsed=value)

    def reset(self) -> None:
        """Drop every card and restart id assignment at 0."""
        self.cards = []
        self.last_deleted = []
        self.ids.reset()
