from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class ErrorCategory(str, Enum):
    INPUT = "input"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    CANCELLED = "cancelled"
    PROTOCOL = "protocol"
    UNKNOWN_CAPABILITY = "unknown_capability"
    ARGUMENT = "argument"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


TRANSPORT_CATEGORIES = frozenset({
    ErrorCategory.TRANSPORT,
    ErrorCategory.TIMEOUT,
    ErrorCategory.CONNECTION,
    ErrorCategory.CANCELLED,
})


@dataclass
class ScanError(Exception):
    category: ErrorCategory
    message: str
    raw: Optional[Any] = None

    def __str__(self) -> str:
        return f"{self.category.value}: {self.message}"

    @property
    def is_transport(self) -> bool:
        return self.category in TRANSPORT_CATEGORIES


class MessageRole(str, Enum):
    HUMAN = "human"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ToolCall:
    """A capability invocation requested by the model.

    ``arguments`` is the raw JSON object string sent by the model; it is
    decoded by the engine, not here.
    """
    id: str
    name: str
    arguments: str = "{}"


@dataclass(frozen=True)
class ToolResult:
    tool_call_id: str
    name: str
    content: str
    is_error: bool = False


Part = Union[TextPart, ToolCall, ToolResult]


@dataclass(frozen=True)
class Message:
    role: MessageRole
    parts: Tuple[Part, ...]

    @classmethod
    def human(cls, text: str) -> "Message":
        return cls(MessageRole.HUMAN, (TextPart(text),))

    @classmethod
    def assistant(cls, text: str, tool_calls: Tuple[ToolCall, ...] = ()) -> "Message":
        parts: List[Part] = []
        if text:
            parts.append(TextPart(text))
        parts.extend(tool_calls)
        return cls(MessageRole.ASSISTANT, tuple(parts))

    @classmethod
    def tool_result(cls, result: ToolResult) -> "Message":
        return cls(MessageRole.TOOL, (result,))

    @property
    def text(self) -> str:
        chunks = []
        for part in self.parts:
            if isinstance(part, TextPart):
                chunks.append(part.text)
            elif isinstance(part, ToolResult):
                chunks.append(part.content)
        return "".join(chunks)

    @property
    def tool_calls(self) -> Tuple[ToolCall, ...]:
        return tuple(p for p in self.parts if isinstance(p, ToolCall))


class Conversation:
    """
    Append-only message history for a single file's analysis.

    Messages are frozen; the only mutation is ``append``. A conversation is
    owned by exactly one engine run and never shared across files.
    """

    def __init__(self, messages: Optional[List[Message]] = None):
        self._messages: List[Message] = list(messages or [])

    def append(self, message: Message) -> None:
        self._messages.append(message)

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(tuple(self._messages))


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ModelResponse:
    text: str = ""
    tool_calls: Tuple[ToolCall, ...] = ()
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class AnalysisTask:
    file_path: str
    file_content: str


@dataclass(frozen=True)
class AnalysisResult:
    file_path: str
    elapsed: float
    output_text: str
    error: Optional[ScanError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, file_path: str, elapsed: float, error: ScanError) -> "AnalysisResult":
        return cls(
            file_path=file_path,
            elapsed=elapsed,
            output_text=f"Failed to analyze {file_path}: {error}",
            error=error,
        )

    def format_line(self) -> str:
        if self.error is None:
            return f"Analysis for {self.file_path} (Time taken: {self.elapsed:.2f}s): {self.output_text}"
        return f"Failed to analyze {self.file_path} (Time taken: {self.elapsed:.2f}s): {self.error}"
