"""
MessageAggregator: assembles kernel IOPub messages into cards.
"""

import copy
import logging
import queue
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from nbcards.cards import Card, CardIds, CardOutput
from nbcards.errors import ClassificationGapError
from nbcards.messages import (
    ErrorOutput,
    ExecuteInput,
    KernelMessage,
    RichResult,
    StatusMessage,
    StreamOutput,
    parse_message,
)
from nbcards.utils import choose_output_type, find_missing_module, source_lines

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CardReady:
    """A card was finalized."""
    card: Card


@dataclass(frozen=True)
class StatusChanged:
    """A kernel reported a new execution state."""
    flavor: str
    state: Any


@dataclass(frozen=True)
class MissingModule:
    """An error named a module that is not installed."""
    flavor: str
    module: str


@dataclass
class _Buffer:
    """Pending state of the execution currently running on one kernel."""
    flavor: Optional[str] = None
    source: str = ""
    outputs: list[CardOutput] = field(default_factory=list)
    jupyter_data: dict[str, Any] = field(default_factory=dict)


class MessageAggregator:
    """
    Turns the message stream of each kernel into one card per execution.

    Each kernel flavor has its own buffer. Messages for one flavor must be
    fed in protocol order; flavors may be interleaved freely. Finished
    cards and status changes are put on ``events`` and finished cards are
    also returned from ``feed``. The queue is unbounded: long-lived callers
    must call ``drain`` regularly, or pass ``record_events=False`` to keep
    only the return values and the ``on_missing_module`` callback.
    """

    def __init__(
        self,
        ids: Optional[CardIds] = None,
        events: Optional[queue.Queue] = None,
        on_missing_module: Optional[Callable[[str], None]] = None,
        record_events: bool = True,
    ):
        self.ids = ids or CardIds()
        self.events: queue.Queue = events if events is not None else queue.Queue()
        self.on_missing_module = on_missing_module
        self.record_events = record_events
        self._buffers: dict[str, _Buffer] = {}

    def pending(self, flavor: str) -> bool:
        """Whether anything has been buffered for flavor since its last card."""
        buffer = self._buffers.get(flavor)
        return buffer is not None and bool(buffer.source or buffer.outputs or buffer.jupyter_data)

    def feed(self, raw: dict, flavor: str) -> Optional[Card]:
        """
        Apply one raw kernel message.

        Args:
            raw: Jupyter message dict
            flavor: Kernel flavor that produced the message

        Returns:
            The finished card if this message ended an execution, else None

        Raises:
            MalformedMessageError: the message could not be classified; no
                state is changed
        """
        return self.apply(parse_message(raw), flavor)

    def apply(self, message: KernelMessage, flavor: str) -> Optional[Card]:
        """Apply an already classified message."""
        buffer = self._buffers.setdefault(flavor, _Buffer())

        if isinstance(message, StatusMessage):
            card = self._finalize(flavor) if message.is_idle else None
            if isinstance(message.state, str):
                self._emit(StatusChanged(flavor=flavor, state=message.state))
            return card

        if isinstance(message, ExecuteInput):
            buffer.flavor = flavor
            buffer.source = message.code
            buffer.jupyter_data["cell_type"] = "code"
            buffer.jupyter_data["execution_count"] = message.execution_count
            buffer.jupyter_data["source"] = source_lines(message.code)
            return None

        if isinstance(message, StreamOutput):
            buffer.outputs.append(CardOutput(kind="stdout", payload=message.text))
        elif isinstance(message, RichResult):
            buffer.outputs.append(self._rich_output(message))
        elif isinstance(message, ErrorOutput):
            output = CardOutput(kind="error", payload=message.format_traceback())
            self._check_missing_module(flavor, message.evalue)
            buffer.outputs.append(output)

        buffer.jupyter_data["metadata"] = message.metadata
        buffer.jupyter_data.setdefault("outputs", []).append(message.raw_output())
        return None

    def _emit(self, event) -> None:
        if self.record_events:
            self.events.put(event)

    def _rich_output(self, message: RichResult) -> CardOutput:
        try:
            kind = choose_output_type(message.data.keys())
        except ClassificationGapError as exc:
            logger.warning("Unclassifiable %s output: %s", message.msg_type, exc)
            return CardOutput(kind="error", payload=str(exc))
        return CardOutput(kind=kind, payload=message.data[kind])

    def _check_missing_module(self, flavor: str, evalue: str) -> None:
        module = find_missing_module(evalue)
        if module is None:
            return
        logger.info("Kernel %s is missing module %s", flavor, module)
        self._emit(MissingModule(flavor=flavor, module=module))
        if self.on_missing_module is not None:
            self.on_missing_module(module)

    def _finalize(self, flavor: str) -> Card:
        buffer = self._buffers.pop(flavor, None) or _Buffer()
        jupyter_data = copy.deepcopy(buffer.jupyter_data)
        if "metadata" not in jupyter_data and "outputs" not in jupyter_data:
            jupyter_data["metadata"] = {}
            jupyter_data["outputs"] = []

        card_id = self.ids.next()
        card = Card(
            id=card_id,
            source_code=buffer.source,
            outputs=tuple(buffer.outputs),
            jupyter_data=jupyter_data,
            kernel=buffer.flavor or flavor,
        )
        logger.debug("Card %d ready (%s, %d outputs)", card_id, card.kernel, len(card.outputs))
        self._emit(CardReady(card=card))
        return card

    def drain(self) -> list:
        """Remove and return every queued event."""
        drained = []
        while True:
            try:
                drained.append(self.events.get_nowait())
            except queue.Empty:
                return drained

    def reset(self, flavor: Optional[str] = None) -> None:
        """Discard pending state for one flavor, or for all of them."""
        if flavor is None:
            self._buffers.clear()
        else:
            self._buffers.pop(flavor, None)
