"""Decoding of streaming chat frames."""

from typing import Final

import orjson
from pydantic import ValidationError

from knowlang_bridge.exceptions import ProtocolError

from ._models import StreamingChatResult

LEGACY_ERROR_MARKER: Final = "error processing"


def decode_frame(text: str | bytes) -> StreamingChatResult:
    """Decode one JSON frame into a StreamingChatResult.

    Missing fields take their defaults; unknown fields are ignored.

    Raises:
        ProtocolError: If the frame is not a JSON object of the chat schema.
    """
    payload = text if isinstance(text, str) else text.decode(errors="replace")
    try:
        data = orjson.loads(text)
    except orjson.JSONDecodeError as e:
        msg = f"Frame is not valid JSON: {e}"
        raise ProtocolError(msg, payload=payload, cause=e) from e

    if not isinstance(data, dict):
        msg = f"Frame must be a JSON object, got {type(data).__name__}"
        raise ProtocolError(msg, payload=payload)

    try:
        return StreamingChatResult.model_validate(data)
    except ValidationError as e:
        msg = f"Frame does not match the chat schema: {e.error_count()} error(s)"
        raise ProtocolError(msg, payload=payload, cause=e) from e


def is_terminal(frame: StreamingChatResult, *, legacy_heuristic: bool = False) -> bool:
    """Check whether a frame ends the stream.

    Args:
        frame: The decoded frame.
        legacy_heuristic: Also treat an answer containing "error processing"
            as terminal, whatever its status says.
    """
    if frame.status.is_terminal:
        return True
    return legacy_heuristic and LEGACY_ERROR_MARKER in frame.answer
