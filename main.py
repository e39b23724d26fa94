#!/usr/bin/env python3
"""
mediakeep - Media Orchestration with Keep-Alive Capture
=======================================================

Main entry point for the media engine.

Usage:
    python main.py demo                         # Scripted lesson with two takes
    python main.py demo --audio-url URL --video-url URL
    python main.py serve                        # HTTP control surface
    python main.py --help                       # Show help
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

# Ensure project root is in path
sys.path.insert(0, str(Path(__file__).parent))

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.errors import MediaError
from core.orchestrator import MediaOrchestrator, MediaResult
from infra.config import MediaConfig, load_config
from infra.logging import configure_logging


# Setup rich console
console = Console()


def setup_logging(config: MediaConfig, level: Optional[str] = None) -> None:
    """Configure logging with rich output."""
    configure_logging(
        level=getattr(logging, (level or config.logging.level).upper()),
        log_dir=config.logging.log_dir,
        console=config.logging.console,
        file=config.logging.file,
        rich_console=console,
    )


def print_banner(mode: str) -> None:
    """Print the mediakeep banner."""
    banner = Text()
    banner.append("mediakeep", style="bold cyan")
    banner.append(" - Playback + Keep-Alive Recording\n", style="dim")
    banner.append(f"Mode: {mode}", style="green")

    console.print(Panel(banner, title="Welcome", border_style="blue"))


def print_status(orchestrator: MediaOrchestrator) -> None:
    """Print current engine status."""
    status = orchestrator.get_status()
    console.print(
        f"[dim]State: {status['state']} | "
        f"Takes: {status['recording']['take_counter']} | "
        f"Audio: {'▶' if status['audio']['is_playing'] else '■'} | "
        f"Video: {'▶' if status['video']['is_playing'] else '■'}[/dim]"
    )


def print_latencies(orchestrator: MediaOrchestrator) -> None:
    """Print the latency table collected during the run."""
    table = Table(title="Latency (ms)")
    table.add_column("Operation", style="cyan")
    table.add_column("Calls", justify="right")
    table.add_column("Last", justify="right")
    table.add_column("Avg", justify="right")
    table.add_column("Errors", justify="right")

    for name, stats in orchestrator.metrics.get_summary().items():
        table.add_row(
            name,
            str(stats["total_calls"]),
            f"{stats['last_latency_ms']:.2f}",
            f"{stats['avg_latency_ms']:.2f}",
            str(stats["total_errors"]),
        )

    console.print(table)
    console.print(f"[dim]Capture device cold open: {orchestrator.cold_open_latency_ms:.1f}ms[/dim]")


def on_result(result: MediaResult) -> None:
    """Print an operation result."""
    if result.ok:
        console.print(f"[bold green]{result.operation}:[/bold green] {result.value}")
    else:
        console.print(f"[bold yellow]{result.operation}:[/bold yellow] {result.status.name}")


async def run_demo(
    orchestrator: MediaOrchestrator,
    take_seconds: float,
    audio_url: Optional[str] = None,
    video_url: Optional[str] = None,
) -> None:
    """Run the scripted lesson: warm-up take, measured take, playback."""
    print_banner("demo")

    try:
        console.print("[dim]Initializing media engine...[/dim]")
        on_result(await orchestrator.initialize())
        print_status(orchestrator)

        console.print("\n[bold]Warm-up take[/bold]")
        on_result(await orchestrator.record_for_duration(take_seconds))

        console.print("\n[bold]Measured take[/bold]")
        started = await orchestrator.start_recording()
        console.print(f"[green]● Recording...[/green] resumed in {started.value:.2f}ms")
        await asyncio.sleep(take_seconds)
        on_result(await orchestrator.stop_recording())

        if audio_url:
            console.print("\n[bold]Audio from URL[/bold]")
            await orchestrator.play_audio_url(
                audio_url,
                on_started=lambda ms: console.print(f"[dim]Audio started in {ms:.0f}ms[/dim]"),
            )
            print_status(orchestrator)

        if video_url:
            console.print("\n[bold]Video with a take[/bold]")
            result = await orchestrator.play_video_and_record(
                video_url,
                take_seconds,
                on_video_started=lambda: console.print("[dim]Video started (muted)[/dim]"),
            )
            on_result(result)

        files = orchestrator.recorded_files
        if files:
            console.print(f"\n[bold]Playing back[/bold] {files[-1]}")
            await orchestrator.play_audio_file(files[-1])
            await asyncio.sleep(take_seconds)
            await orchestrator.stop_all()

        print_latencies(orchestrator)
    except MediaError as e:
        console.print(f"[bold red]Error:[/bold red] {orchestrator.error_handler.handle(e)}")
    finally:
        console.print("\n[yellow]Shutting down...[/yellow]")
        await orchestrator.dispose()


async def run_serve(orchestrator: MediaOrchestrator, host: str, port: int) -> None:
    """Serve the HTTP control surface; the app owns the engine lifecycle."""
    from infra.service_bus import create_app, run_server

    print_banner(f"HTTP on {host}:{port}")
    app = create_app(orchestrator, manage_lifecycle=True)
    await run_server(app, host=host, port=port)


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="mediakeep - Media orchestration with keep-alive capture"
    )
    parser.add_argument(
        "--config", "-c",
        default="config.yaml",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--log-level", "-l",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides config)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    demo = subparsers.add_parser("demo", help="Run the scripted lesson")
    demo.add_argument("--take-seconds", type=float, default=2.0, help="Length of each take")
    demo.add_argument("--audio-url", default=None, help="Network audio to play")
    demo.add_argument("--video-url", default=None, help="Video to play while recording")

    serve = subparsers.add_parser("serve", help="Serve the HTTP control surface")
    serve.add_argument("--host", default=None, help="Bind address (overrides config)")
    serve.add_argument("--port", type=int, default=None, help="Port (overrides config)")

    args = parser.parse_args()

    config = load_config(args.config)
    setup_logging(config, args.log_level)
    logger = logging.getLogger("mediakeep.main")

    orchestrator = MediaOrchestrator(config)

    try:
        if args.command == "demo":
            asyncio.run(run_demo(
                orchestrator,
                take_seconds=args.take_seconds,
                audio_url=args.audio_url,
                video_url=args.video_url,
            ))
        else:
            asyncio.run(run_serve(
                orchestrator,
                host=args.host or config.server.host,
                port=args.port or config.server.port,
            ))

        return 0

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130
    except Exception as e:
        logger.exception("Fatal error")
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
