# pyright: reportExplicitAny=false
"""Wire models for the service API.

This module defines the frames exchanged on the streaming chat endpoint
and the request body of the parse endpoint:
- ChatStatus: Progress states reported by the service
- SearchResult: One retrieved code context
- StreamingChatResult: One frame of a streaming chat
- ParseRequest: Body of ``POST /parse``
"""

from enum import StrEnum
from typing import Annotated, Any, ClassVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


class ChatStatus(StrEnum):
    """Progress states of a streaming chat.

    COMPLETE and ERROR are terminal; every other state is progress.
    """

    STARTING = "starting"
    POLISHING = "polishing"
    RETRIEVING = "retrieving"
    ANSWERING = "answering"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """Whether this status ends a stream."""
        return self in (ChatStatus.COMPLETE, ChatStatus.ERROR)


def _coerce_status(value: Any) -> Any:
    """Normalize status text; unknown names degrade to STARTING."""
    if isinstance(value, ChatStatus) or not isinstance(value, str):
        return value
    try:
        return ChatStatus(value.strip().lower())
    except ValueError:
        return ChatStatus.STARTING


class SearchResult(BaseModel):
    """A code context retrieved for a chat answer."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    document: str = ""
    score: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)


class StreamingChatResult(BaseModel):
    """One frame of a streaming chat.

    Attributes:
        answer: Answer text so far (complete on a terminal frame).
        status: Progress state of the chat.
        progress_message: Human-readable description of the current step.
        retrieved_context: Code contexts the answer is based on.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    answer: str = ""
    status: Annotated[ChatStatus, BeforeValidator(_coerce_status)] = ChatStatus.STARTING
    progress_message: str = ""
    retrieved_context: list[SearchResult] = Field(default_factory=list)

    @classmethod
    def error(cls, answer: str, progress_message: str) -> "StreamingChatResult":
        """Build a synthetic error result produced on the client side."""
        return cls(answer=answer, status=ChatStatus.ERROR, progress_message=progress_message)


class ParseRequest(BaseModel):
    """Body of a parse request.

    Attributes:
        path: Directory of the codebase to parse.
        output: Output format understood by the service.
        command: Parser command to run.
        extra_fields: Additional fields forwarded to the parser.
        verbose: Ask the parser for verbose output.
        config: Path of a parser configuration file.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    path: str
    output: str | None = None
    command: str | None = None
    extra_fields: dict[str, Any] | None = None
    verbose: bool | None = None
    config: str | None = None
