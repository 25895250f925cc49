"""CLI entry point for the story editor."""

import asyncio
import json
import logging
import typer
from pathlib import Path
from typing import Optional

from . import __version__
from .config import config
from .errors import StoryEditError
from .models import StoryDraft

app = typer.Typer(
    name="story-editor",
    help="Edit multi-scene story drafts with natural-language requests",
    no_args_is_help=True
)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"story-editor version {__version__}")
        raise typer.Exit()


def load_story(path: Path) -> StoryDraft:
    """Load a story file or exit with an error."""
    if not path.exists():
        typer.echo(f"❌ No story found at {path}")
        raise typer.Exit(1)
    try:
        return StoryDraft.from_file(path)
    except Exception as e:
        typer.echo(f"❌ Error loading story {path}: {e}")
        raise typer.Exit(1)


async def _run_edit(draft: StoryDraft, instruction: str):
    """Run one edit and close the pipeline's clients before the loop ends."""
    from .pipeline import EditPipeline

    pipeline = EditPipeline()
    try:
        return await pipeline.run(draft, instruction)
    finally:
        await pipeline.aclose()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    )
) -> None:
    """Story Editor - Refine story drafts by describing the change you want."""
    pass


@app.command()
def status(
    story: Path = typer.Option(
        Path("story.json"),
        "--story",
        "-s",
        help="Path to story JSON or YAML file",
        file_okay=True,
        dir_okay=False
    )
) -> None:
    """Show a story's metadata and scenes."""
    draft = load_story(story)
    metadata = draft.project_metadata

    typer.echo(f"📁 Story: {metadata.title}")
    if metadata.description:
        typer.echo(f"   {metadata.description}")
    typer.echo(f"   Type: {metadata.type}")
    typer.echo(f"   Aspect ratio: {metadata.aspect_ratio}")
    if metadata.character:
        typer.echo(f"   Character: {metadata.character}")
    typer.echo(f"   Scenes: {len(draft.scenes)}")

    total_duration = sum(scene.duration for scene in draft.scenes)
    typer.echo(f"   Total duration: {total_duration:.1f}s")

    if draft.generation_metadata and draft.generation_metadata.refinements:
        typer.echo(f"   Refinements: {len(draft.generation_metadata.refinements)}")

    typer.echo("\n📽️  Scenes:")
    for scene in draft.scenes:
        status_icon = "✅" if scene.generated else "⏳"
        typer.echo(f"   {status_icon} {scene.id}: {scene.title} ({scene.duration:g}s, {scene.camera_angle})")
        prompt_preview = scene.prompt[:60] + "..." if len(scene.prompt) > 60 else scene.prompt
        typer.echo(f"      → {prompt_preview}")


@app.command()
def edit(
    instruction: str = typer.Argument(
        ...,
        help="What to change, e.g. 'rename the hero to Maria'"
    ),
    story: Path = typer.Option(
        Path("story.json"),
        "--story",
        "-s",
        help="Path to story JSON or YAML file",
        file_okay=True,
        dir_okay=False
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Where to write the edited story (defaults to overwriting --story)"
    ),
    frames: bool = typer.Option(
        False,
        "--frames",
        help="Print the streamed frames instead of a summary"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable verbose logging"
    ),
) -> None:
    """Apply a natural-language edit to a story."""
    from .transport import chat_frames

    setup_logging(verbose)
    draft = load_story(story)

    try:
        config.validate_required()
    except ValueError as e:
        typer.echo(f"❌ Configuration error: {e}")
        raise typer.Exit(1)

    typer.echo(f"✏️  Editing: {draft.project_metadata.title}")
    typer.echo(f"   Request: {instruction}")

    try:
        result = asyncio.run(_run_edit(draft, instruction))
    except StoryEditError as e:
        typer.echo(f"❌ Edit failed: {e}")
        raise typer.Exit(1)

    destination = output or story
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        result.updated.to_file(destination)
    except Exception as e:
        typer.echo(f"❌ Error saving story: {e}")
        raise typer.Exit(1)

    if frames:
        for line in chat_frames(result):
            typer.echo(line, nl=False)
        return

    changes = result.changes
    typer.echo(f"\n💬 {result.explanation}")
    typer.echo("\n📋 Changes:")
    typer.echo(f"   Added: {changes.scenes_added}")
    typer.echo(f"   Removed: {changes.scenes_removed}")
    typer.echo(f"   Modified: {changes.scenes_modified}")
    for scene in changes.modified_scenes:
        typer.echo(f"     • {scene.id}: {scene.title}")
    if changes.title_changed:
        typer.echo(f"   Title: {result.original.project_metadata.title} → {result.updated.project_metadata.title}")
    if changes.character_changed:
        typer.echo("   Character updated")
    typer.echo(f"\n✅ Story saved: {destination}")


@app.command()
def diff(
    before: Path = typer.Argument(..., help="Story before the edit"),
    after: Path = typer.Argument(..., help="Story after the edit"),
) -> None:
    """Print the change set between two story files as JSON."""
    from .diff import analyze_changes

    changes = analyze_changes(load_story(before), load_story(after))
    typer.echo(json.dumps(changes.to_wire(), indent=2, ensure_ascii=False))


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable verbose logging"
    ),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    setup_logging(verbose)
    try:
        config.validate_required()
    except ValueError as e:
        typer.echo(f"❌ Configuration error: {e}")
        raise typer.Exit(1)

    uvicorn.run(
        "storyedit.server:app",
        host=host or config.host,
        port=port or config.port,
        log_level="debug" if verbose else "info",
    )


if __name__ == "__main__":
    app()
