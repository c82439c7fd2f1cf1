"""
Kernel messages: the six shapes of IOPub message the aggregator understands.

Jupyter messages are loosely typed, so they are classified once by which
fields their content carries, checked in a fixed priority order.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from nbcards.errors import MalformedMessageError
from nbcards.utils import join_text, normalize_newlines


@dataclass(frozen=True)
class StatusMessage:
    """Kernel execution state change (busy, idle, starting)."""
    state: Any

    @property
    def is_idle(self) -> bool:
        return self.state == "idle"


@dataclass(frozen=True)
class ExecuteInput:
    """The kernel echoing the code it is about to run."""
    code: str
    execution_count: Optional[int] = None


@dataclass(frozen=True)
class _OutputMessage:
    """A message that becomes part of the notebook cell's outputs."""
    msg_type: str
    metadata: dict[str, Any]
    content: dict[str, Any]

    def raw_output(self) -> dict[str, Any]:
        """The content as a notebook output object."""
        output = copy.deepcopy(self.content)
        output["output_type"] = self.msg_type
        output.pop("transient", None)
        return output


@dataclass(frozen=True)
class StreamOutput(_OutputMessage):
    name: str = "stdout"
    text: str = ""


@dataclass(frozen=True)
class RichResult(_OutputMessage):
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ErrorOutput(_OutputMessage):
    ename: str = ""
    evalue: str = ""
    traceback: tuple[str, ...] = ()

    def format_traceback(self) -> str:
        return "\n".join(self.traceback)


@dataclass(frozen=True)
class AuxiliaryMessage(_OutputMessage):
    """Anything else the kernel sends; kept only for the notebook cell."""


KernelMessage = Union[
    StatusMessage, ExecuteInput, StreamOutput, RichResult, ErrorOutput, AuxiliaryMessage
]


def _msg_type(raw: dict) -> str:
    header = raw.get("header")
    if isinstance(header, dict) and header.get("msg_type"):
        return header["msg_type"]
    return raw.get("msg_type", "")


def _is_text(value: Any) -> bool:
    return isinstance(value, str) or (
        isinstance(value, list) and all(isinstance(item, str) for item in value)
    )


def parse_message(raw: dict) -> KernelMessage:
    """
    Classify a raw Jupyter message.

    Args:
        raw: Message dict with ``header``, ``metadata`` and ``content``

    Returns:
        Exactly one message variant, the first that matches in priority
        order: status, execute input, stream, rich result, error, other.

    Raises:
        MalformedMessageError: if the message has no content mapping or a
            recognised field has the wrong type
    """
    if not isinstance(raw, dict):
        raise MalformedMessageError(f"Expected a message object, got {type(raw).__name__}")
    content = raw.get("content")
    if not isinstance(content, dict):
        raise MalformedMessageError("Message has no content")

    if "execution_state" in content:
        return StatusMessage(state=content["execution_state"])

    if "code" in content:
        code = content["code"]
        if not isinstance(code, str):
            raise MalformedMessageError("Execute input code is not a string")
        return ExecuteInput(
            code=normalize_newlines(code),
            execution_count=content.get("execution_count"),
        )

    metadata = raw.get("metadata")
    base = dict(
        msg_type=_msg_type(raw),
        metadata=copy.deepcopy(metadata) if isinstance(metadata, dict) else {},
        content=content,
    )

    if "name" in content:
        text = content.get("text")
        if text is not None and not _is_text(text):
            raise MalformedMessageError("Stream text is not a string or a list of strings")
        return StreamOutput(**base, name=content["name"], text=join_text(text))

    if "data" in content:
        data = content["data"]
        if not isinstance(data, dict):
            raise MalformedMessageError("Rich result data is not a mapping")
        return RichResult(**base, data=data)

    if all(key in content for key in ("ename", "evalue", "traceback")):
        traceback = content["traceback"] or []
        if not isinstance(traceback, list) or not _is_text(traceback):
            raise MalformedMessageError("Error traceback is not a list of strings")
        if not isinstance(content["ename"], str) or not isinstance(content["evalue"], str):
            raise MalformedMessageError("Error name or value is not a string")
        return ErrorOutput(
            **base,
            ename=content["ename"],
            evalue=content["evalue"],
            traceback=tuple(traceback),
        )

    return AuxiliaryMessage(**base)
