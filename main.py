"""Animato: entry point.

Usage:
    # Show configured providers (add --probe to hit the composition APIs)
    python main.py providers --probe

    # Generate a script and split it into segments
    python main.py script --theme comedy --prompt "a wedding goes wrong"

    # Run the whole wizard: script -> characters -> photos -> clips -> final video
    python main.py create --theme drama --prompt "two siblings reunite" --download final.mp4

    # Compose one video from a script file (generative first, then composition)
    python main.py compose --script story.txt --theme action

    # Delete generated videos and audio
    python main.py cleanup
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

import config
from pipeline.availability import probe_all_providers
from pipeline.composition import cleanup_video_files
from pipeline.fallback import create_sample_character_images, create_sample_script, create_video_from_script
from pipeline.llm import test_llm_connection
from pipeline.provider_registry import get_registry
from pipeline.story import THEMES, VIDEO_STYLES, generate_script_with_fallback, segment_script
from pipeline.tts import cleanup_audio_files
from pipeline.video_providers import download_video
from pipeline.wizard import WizardSession
from schemas.story import CharacterPhoto

console = Console()


def setup_logging():
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL),
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def show_providers(args: argparse.Namespace):
    statuses = {}
    if args.probe:
        statuses = {s.key: s for s in probe_all_providers()}

    table = Table(title="Providers")
    table.add_column("Key")
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Credentials")
    if args.probe:
        table.add_column("Available")
        table.add_column("Detail", style="dim")
    for spec in get_registry().values():
        row = [
            spec.key,
            spec.name,
            spec.kind,
            "[green]yes[/green]" if spec.has_credentials else "[red]no[/red]",
        ]
        if args.probe:
            status = statuses.get(spec.key)
            row.append("[green]yes[/green]" if status and status.available else "[red]no[/red]")
            row.append(status.detail if status else "")
        table.add_row(*row)
    console.print(table)

    if args.check_llm:
        result = test_llm_connection()
        color = "green" if result["success"] else "red"
        console.print(f"[{color}]LLM: {result['message']}[/{color}]")


def run_script(args: argparse.Namespace):
    script = generate_script_with_fallback(args.theme, args.prompt, args.style, args.theme)
    console.print(Panel(script, title=f"{args.theme} script", border_style="cyan"))

    table = Table(title="Segments")
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("Content")
    for index, segment in enumerate(segment_script(script, args.segments), start=1):
        table.add_row(str(index), segment.title, segment.content)
    console.print(table)


def _read_script(path_arg: str | None) -> str | None:
    if not path_arg:
        return None
    path = Path(path_arg)
    if not path.exists():
        console.print(f"[red]Script file not found: {path}[/red]")
        sys.exit(1)
    return path.read_text(encoding="utf-8")


def _maybe_download(url: str, target: str | None):
    if not target:
        return
    if not url.startswith("http"):
        console.print(f"[yellow]Nothing to download; video is local: {url}[/yellow]")
        return
    path = download_video(url, Path(target))
    console.print(f"[green]Downloaded:[/green] {path}")


def run_create(args: argparse.Namespace):
    console.print(
        Panel(
            f"[bold magenta]STORY WIZARD[/bold magenta]\n"
            f"Theme: {args.theme} | Style: {args.style}",
            border_style="bright_magenta",
        )
    )
    session = WizardSession.create()
    project = session.run_all(
        args.theme,
        args.prompt,
        args.style,
        script=_read_script(args.script),
        number_of_segments=args.segments,
        number_of_characters=args.characters,
    )
    final = project.final_video
    console.print(
        Panel(
            f"[bold green]VIDEO READY[/bold green]\n"
            f"Project: {project.project_id}\n"
            f"Provider: {final.provider}\n"
            f"Video: {final.video_url}\n"
            f"Duration: {final.duration:.1f}s\n"
            f"State: {session.path}",
            border_style="green",
        )
    )
    _maybe_download(final.video_url, args.download)


def run_compose(args: argparse.Namespace):
    script = _read_script(args.script) or create_sample_script()
    photos = [
        CharacterPhoto(character_id=f"sample-{i}", character_name=f"Sample {i + 1}", photo_url=url)
        for i, url in enumerate(create_sample_character_images())
    ]
    result = create_video_from_script(script, [], photos, args.theme)
    console.print(
        Panel(
            f"Provider: {result.provider}\n"
            f"Video: {result.video_url}\n"
            f"Duration: {result.duration:.1f}s\n"
            f"Subtitles: {len(result.subtitles)}"
            + (f"\nComposition: {result.composition_path}" if result.composition_path else ""),
            title="Composed video",
            border_style="green",
        )
    )
    _maybe_download(result.video_url, args.download)


def run_cleanup(args: argparse.Namespace):
    for label, removed in (("videos", cleanup_video_files()), ("audio", cleanup_audio_files())):
        if removed:
            console.print(f"[green]Generated {label} removed.[/green]")
        else:
            console.print(f"[dim]No generated {label} to remove.[/dim]")


def main():
    parser = argparse.ArgumentParser(
        description="Animato: AI story video generator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    prov = subparsers.add_parser("providers", help="List providers and their credentials")
    prov.add_argument("--probe", action="store_true", help="Probe composition APIs for availability")
    prov.add_argument("--check-llm", action="store_true", help="Send a test prompt to the text model")

    sc = subparsers.add_parser("script", help="Generate and segment a script")
    _add_story_args(sc)
    sc.add_argument("--segments", type=int, default=3, help="Number of segments")

    create = subparsers.add_parser("create", help="Run the full story wizard")
    _add_story_args(create)
    create.add_argument("--script", help="Use this script file instead of generating one")
    create.add_argument("--segments", type=int, default=3, help="Number of segments")
    create.add_argument("--characters", type=int, default=3, help="Number of characters")
    create.add_argument("--download", help="Save the final video to this path")

    compose = subparsers.add_parser("compose", help="Compose one video from a script file")
    compose.add_argument("--script", help="Script text file (defaults to a sample script)")
    compose.add_argument("--theme", default="drama", help="Story theme")
    compose.add_argument("--download", help="Save the video to this path")

    subparsers.add_parser("cleanup", help="Delete generated videos and audio")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(0)

    setup_logging()

    if args.command == "providers":
        show_providers(args)
    elif args.command == "script":
        run_script(args)
    elif args.command == "create":
        run_create(args)
    elif args.command == "compose":
        run_compose(args)
    elif args.command == "cleanup":
        run_cleanup(args)


def _add_story_args(parser: argparse.ArgumentParser):
    parser.add_argument("--theme", "-t", default="drama", choices=THEMES, help="Story theme")
    parser.add_argument("--prompt", "-p", default="", help="What the story is about")
    parser.add_argument("--style", "-s", default="realistic", choices=VIDEO_STYLES, help="Visual style")


if __name__ == "__main__":
    main()
