"""HTTP surface for story editing."""

import asyncio
import logging
from typing import Any, Awaitable, Optional, TypeVar

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from pydantic import ValidationError

from . import __version__
from .errors import InvalidInputError, StoryEditError
from .models import StoryDraft
from .pipeline import EditPipeline
from .transport import MEDIA_TYPE, chat_frames, encode_story_header, refine_frames

logger = logging.getLogger(__name__)

T = TypeVar("T")

DISCONNECT_POLL_INTERVAL = 0.5
CLIENT_CLOSED_REQUEST = 499


class ClientDisconnected(Exception):
    """The client went away before the edit finished."""


async def _read_json(request: Request) -> dict:
    try:
        payload = await request.json()
    except ValueError:
        raise InvalidInputError("Invalid JSON body") from None
    if not isinstance(payload, dict):
        raise InvalidInputError("Request body must be a JSON object")
    return payload


def _parse_story(data: Any) -> StoryDraft:
    if not isinstance(data, dict) or "projectMetadata" not in data or "scenes" not in data:
        raise InvalidInputError("Invalid or missing story draft")
    try:
        return StoryDraft.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(p) for p in first["loc"])
        raise InvalidInputError(f"Invalid story draft: {location}: {first['msg']}") from e


def _latest_user_message(messages: Any) -> str:
    if not isinstance(messages, list) or not messages:
        raise InvalidInputError("Invalid or missing messages array")
    last = messages[-1]
    if not isinstance(last, dict) or last.get("role") != "user":
        raise InvalidInputError("Invalid message format")
    content = last.get("content")
    if isinstance(content, list):
        # Multi-part messages: keep the text parts.
        content = "".join(
            part.get("text", "") for part in content if isinstance(part, dict) and part.get("type") == "text"
        )
    if not isinstance(content, str) or not content.strip():
        raise InvalidInputError("Invalid or missing edit request")
    return content


async def _run_while_connected(request: Request, call: Awaitable[T]) -> T:
    """Await ``call``, cancelling it if the client disconnects first."""
    task = asyncio.ensure_future(call)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_INTERVAL)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info("Client disconnected, cancelling edit")
                task.cancel()
                raise ClientDisconnected()
    finally:
        if not task.done():
            task.cancel()


def create_app(pipeline: Optional[EditPipeline] = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        pipeline: Edit pipeline to serve. Created on first use if not provided,
            so the app can be imported without credentials.
    """
    app = FastAPI(title="Story Editor", version=__version__)
    app.state.pipeline = pipeline

    def get_pipeline() -> EditPipeline:
        if app.state.pipeline is None:
            app.state.pipeline = EditPipeline()
        return app.state.pipeline

    @app.exception_handler(StoryEditError)
    async def story_edit_error(request: Request, exc: StoryEditError) -> Response:
        logger.error(f"{request.url.path} failed: {exc}")
        return PlainTextResponse(str(exc), status_code=exc.status_code)

    @app.exception_handler(ClientDisconnected)
    async def client_disconnected(request: Request, exc: ClientDisconnected) -> Response:
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "version": __version__}

    @app.post("/api/chat")
    async def chat(request: Request) -> Response:
        """Edit the story from the latest chat message and stream the result.

        Body JSON: {"messages": [{"role", "content"}], "storyDraft": {...}}
        The X-Story-Draft header carries the original story; the updated
        story arrives in the tool-result frame.
        """
        payload = await _read_json(request)
        story = _parse_story(payload.get("storyDraft"))
        instruction = _latest_user_message(payload.get("messages"))

        result = await _run_while_connected(request, get_pipeline().run(story, instruction))
        return StreamingResponse(
            chat_frames(result),
            media_type=MEDIA_TYPE,
            headers=encode_story_header(result.original),
        )

    @app.post("/api/story/refine-chat")
    async def refine_chat(request: Request) -> Response:
        """Edit the story and stream only the explanation.

        The X-Story-Draft header carries the updated story.
        """
        payload = await _read_json(request)
        story = _parse_story(payload.get("storyDraft"))
        instruction = _latest_user_message(payload.get("messages"))

        result = await _run_while_connected(request, get_pipeline().run(story, instruction))
        return StreamingResponse(
            refine_frames(result),
            media_type=MEDIA_TYPE,
            headers=encode_story_header(result.updated),
        )

    @app.post("/api/story/edit")
    async def edit_story(request: Request) -> JSONResponse:
        """Single-shot edit.

        Body JSON: {"storyDraft": {...}, "editRequest": str}
        Returns: {updatedStory, response, changesSummary}
        """
        try:
            payload = await _read_json(request)
            story = _parse_story(payload.get("storyDraft"))
            edit_request = payload.get("editRequest")
            if not isinstance(edit_request, str):
                raise InvalidInputError("Invalid or missing edit request")

            result = await _run_while_connected(request, get_pipeline().run(story, edit_request))
        except StoryEditError as e:
            logger.error(f"Story edit failed: {e}")
            return JSONResponse(status_code=e.status_code, content={"error": str(e)})

        return JSONResponse(content=result.to_wire())

    return app


app = create_app()
