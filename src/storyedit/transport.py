"""Line-framed stream transport for edit results.

Each frame is one line: a single-character type tag, a colon, and a JSON
payload. Only the first colon separates tag from payload; the payload may
contain any number of colons itself. The full story travels out of band in
a base64 response header so non-ASCII text is safe in transit.
"""

import base64
import binascii
import json
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Iterator, List, Mapping, Optional

from pydantic import ValidationError

from .models import StoryDraft
from .pipeline import EditResult

logger = logging.getLogger(__name__)

STORY_HEADER = "X-Story-Draft"
STORY_ENCODING_HEADER = "X-Story-Draft-Encoding"
STORY_ENCODING = "base64"
MEDIA_TYPE = "text/plain; charset=utf-8"
TOOL_NAME = "edit_script"


class FrameType(str, Enum):
    """Frame type tags."""
    TEXT = "0"
    TOOL_CALL = "9"
    TOOL_RESULT = "a"
    FINISH = "d"


class FrameDecodeError(ValueError):
    """A line is not a well-formed frame."""


@dataclass(frozen=True)
class Frame:
    """One decoded frame."""

    type: FrameType
    payload: Any


def encode_frame(frame_type: FrameType, payload: Any) -> str:
    """Encode one frame as a newline-terminated line."""
    # json.dumps escapes newlines inside strings, so a frame is always one line.
    return f"{frame_type.value}:{json.dumps(payload, ensure_ascii=False)}\n"


def decode_frame(line: str) -> Frame:
    """Decode one frame line, splitting on the first colon only.

    Raises:
        FrameDecodeError: If the tag or payload is malformed.
    """
    line = line.rstrip("\r\n")
    tag, sep, body = line.partition(":")
    if not sep:
        raise FrameDecodeError(f"frame has no separator: {line[:40]!r}")
    if len(tag) != 1:
        raise FrameDecodeError(f"frame tag must be one character, got {tag!r}")
    try:
        frame_type = FrameType(tag)
    except ValueError:
        raise FrameDecodeError(f"unknown frame type {tag!r}") from None
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        raise FrameDecodeError(f"frame payload is not JSON: {e}") from e
    return Frame(type=frame_type, payload=payload)


def decode_stream(body: str) -> List[Frame]:
    """Decode a (possibly interrupted) stream body.

    A trailing line without its newline is a partial frame and is
    dropped, as is any line that fails to decode after it; frames decoded
    before the interruption are kept.
    """
    frames: List[Frame] = []
    lines = body.split("\n")
    complete, partial = lines[:-1], lines[-1]
    if partial:
        logger.debug(f"Dropping partial frame ({len(partial)} chars)")

    for line in complete:
        if not line:
            continue
        try:
            frames.append(decode_frame(line))
        except FrameDecodeError as e:
            logger.warning(f"Stopping at undecodable frame: {e}")
            break
    return frames


def last_story(frames: Iterable[Frame]) -> Optional[StoryDraft]:
    """Return the most recent updated story carried by tool-result frames."""
    story = None
    for frame in frames:
        if frame.type == FrameType.TOOL_RESULT:
            updated = frame.payload.get("result", {}).get("updatedStory")
            if updated is not None:
                story = StoryDraft.model_validate(updated)
    return story


def encode_story_header(story: StoryDraft) -> dict:
    """Response headers carrying the full story as base64 JSON."""
    encoded = base64.b64encode(story.to_json().encode("utf-8")).decode("ascii")
    return {STORY_HEADER: encoded, STORY_ENCODING_HEADER: STORY_ENCODING}


def decode_story_header(headers: Mapping[str, str]) -> StoryDraft:
    """Read the story back out of response headers.

    Raises:
        FrameDecodeError: If the header is missing or does not hold a valid story.
    """
    lowered = {key.lower(): value for key, value in headers.items()}
    value = lowered.get(STORY_HEADER.lower())
    if value is None:
        raise FrameDecodeError(f"missing {STORY_HEADER} header")

    encoding = lowered.get(STORY_ENCODING_HEADER.lower())
    try:
        raw = base64.b64decode(value, validate=True).decode("utf-8") if encoding == STORY_ENCODING else value
        return StoryDraft.model_validate(json.loads(raw))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
        raise FrameDecodeError(f"invalid {STORY_HEADER} header: {e}") from e


def tool_result_payload(result: EditResult) -> dict:
    """The edit_script tool result: change set, updated story and explanation."""
    payload = result.changes.to_wire()
    payload["updatedStory"] = result.updated.to_wire()
    payload["reviewResponse"] = result.explanation
    return payload


def chat_frames(result: EditResult, tool_call_id: Optional[str] = None) -> Iterator[str]:
    """Frames for a chat edit: tool call, tool result, explanation, finish.

    The tool result always precedes the text so clients hold the updated
    story before the explanation arrives.
    """
    call_id = tool_call_id or f"call_{uuid.uuid4().hex[:12]}"
    yield encode_frame(FrameType.TOOL_CALL, {
        "toolCallId": call_id,
        "toolName": TOOL_NAME,
        "args": {"action": result.instruction},
    })
    yield encode_frame(FrameType.TOOL_RESULT, {
        "toolCallId": call_id,
        "result": tool_result_payload(result),
    })
    yield encode_frame(FrameType.TEXT, result.explanation)
    yield encode_frame(FrameType.FINISH, {"finishReason": "stop"})


def refine_frames(result: EditResult) -> Iterator[str]:
    """Frames for the refine-chat variant: the explanation only."""
    yield encode_frame(FrameType.TEXT, result.explanation)
    yield encode_frame(FrameType.FINISH, {"finishReason": "stop"})
