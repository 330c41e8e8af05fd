"""CLI entry point for the ArchAI design assistant.

Usage:
    # Interactive mode (default)
    archai

    # With model specification
    archai --model gemini-2.5-pro --image-model gemini-2.5-flash-image-preview

    # Scripted extractor, one refinement pass, no interior rendering
    archai --extractor rules --passes 1 --no-interior

    # One message per invocation (pipes, editor integrations)
    echo "A two-storey modern farmhouse" | archai
    archai --force-non-tty --message "yes"
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from .config import Config, load_config
from .errors import SessionError
from .interview.design_session import DesignSession, Notice
from .interview.session_store import SessionStore

logger = logging.getLogger(__name__)

PROMPT_HINT = "(Type your response or /help for commands)"

console = Console()
err_console = Console(stderr=True)


def build_config(args: argparse.Namespace) -> Config:
    """Load configuration and apply command-line overrides."""
    config = load_config(Path(args.env_file) if args.env_file else None)

    if args.model:
        config.gemini.text_model = args.model
    if args.image_model:
        config.gemini.image_model = args.image_model
    if args.extractor:
        config.session.extractor = args.extractor
    if args.passes is not None:
        config.session.refinement_passes = args.passes
    if args.no_interior:
        config.session.interior_enabled = False
    if args.save_dir:
        config.session.save_dir = Path(args.save_dir).expanduser()

    return config


def _print_notice(notice: Notice) -> None:
    style = "bold red" if notice.level == "error" else "yellow"
    err_console.print(Text(f"{notice.title}: {notice.description}", style=style))


def _show_reply(text: str) -> None:
    console.print(Panel(Text(text), title="ArchAI", title_align="left", border_style="cyan"))


async def run_non_tty_mode(config: Config, args: argparse.Namespace) -> None:
    """Run in non-TTY mode (pipes, editor integrations).

    In this mode:
    - Process one message per invocation
    - No blocking loops
    - State persists across invocations via SessionStore
    """
    store = SessionStore(config.session.session_dir, lambda: DesignSession(config))

    user_input: Optional[str] = None
    if not sys.stdin.isatty():
        try:
            user_input = sys.stdin.read().strip()
        except OSError as e:
            logger.debug("Could not read stdin: %s", e)
    if not user_input and args.message:
        user_input = args.message

    active_id = store.get_active_session_id()
    resumed = bool(active_id and store.session_exists(active_id))

    if user_input and user_input.lower() in ("/quit", "/exit"):
        store.clear_active_session()
        print("Session ended.")
        return

    response = await store.resume_or_create()
    store.session.set_on_notice(_print_notice)

    if args.upload:
        try:
            print(await store.session.upload_inspiration_image(Path(args.upload)))
        except SessionError as e:
            print(f"Error: {e}")

    if not user_input:
        print(response)
        print(f"\n{PROMPT_HINT}")
        return

    if user_input.lower() == "/status":
        print(store.get_status())
        return

    if not resumed:
        print(response + "\n")
    try:
        print(await store.process_message(user_input))
    except SessionError as e:
        print(f"Error: {e}")


async def run_tty_mode(config: Config, args: argparse.Namespace) -> None:
    """Run in TTY mode (traditional terminal)."""
    session = DesignSession(config)

    def on_progress(progress: Dict[str, Any]) -> None:
        msg = progress.get("message", "")
        if msg:
            stage = progress.get("current_stage_name", "")
            pct = progress.get("progress_percent", 0)
            console.print(Text(f"[{stage}] {pct}% - {msg}", style="dim"))

    session.set_on_progress(on_progress)
    session.set_on_notice(_print_notice)

    _show_reply(await session.start())

    if args.upload:
        _show_reply(await session.upload_inspiration_image(Path(args.upload)))
    if args.message:
        _show_reply(await session.chat(args.message))

    # Interactive loop (blocks; TTY only)
    while not session.is_complete:
        try:
            user_input = input("> ").strip()
            if not user_input:
                continue

            if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                print("Exiting. Use /save first to keep your design.")
                break

            _show_reply(await session.chat(user_input))

        except SessionError as e:
            err_console.print(Text(str(e), style="yellow"))
        except KeyboardInterrupt:
            print("\n\nInterrupted. Commands: /save, /status, /quit")
        except EOFError:
            print("\nEOF received. Exiting.")
            break

    if session.is_complete:
        output_dir = session.export()
        console.print(Panel(Text("\n".join(session.summary)), title="Design complete!", border_style="green"))
        console.print(f"Output saved to: {output_dir}", markup=False)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="archai",
        description="Design a home through conversation and generate its floor plan",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start an interactive session
  archai

  # Use a different text model
  archai --model gemini-2.5-pro

  # Attach an inspiration image up front
  archai --upload ~/Pictures/cabin.jpg
        """,
    )

    parser.add_argument("--model", "-m", default=None, help="Text model (default: gemini-2.5-flash)")
    parser.add_argument("--image-model", default=None, help="Image model (default: gemini-2.5-flash-image-preview)")
    parser.add_argument(
        "--extractor",
        choices=["llm", "rules"],
        default=None,
        help="How answers are extracted from messages (default: llm)",
    )
    parser.add_argument(
        "--passes",
        type=int,
        default=None,
        help="Refinement passes over the floor plan; 0 disables refinement (default: 2)",
    )
    parser.add_argument("--no-interior", action="store_true", help="Do not offer an interior rendering")
    parser.add_argument("--save-dir", default=None, help="Directory for exported designs (default: ~/.archai/designs)")
    parser.add_argument("--env-file", default=None, help="Read settings from this .env file")
    parser.add_argument("--message", "-msg", default=None, help="Single message to process (for non-TTY mode)")
    parser.add_argument("--upload", default=None, help="Inspiration image to attach")
    parser.add_argument("--force-tty", action="store_true", help="Force TTY mode even if stdin is not a TTY")
    parser.add_argument("--force-non-tty", action="store_true", help="Force non-TTY mode even if stdin is a TTY")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


async def run(args: argparse.Namespace) -> None:
    config = build_config(args)

    if not config.gemini.api_key:
        print("Error: set GEMINI_API_KEY (or GOOGLE_API_KEY) to use the assistant.", file=sys.stderr)
        sys.exit(1)

    # Detect environment: TTY or non-TTY?
    is_tty = sys.stdin.isatty()
    if args.force_tty:
        is_tty = True
    elif args.force_non_tty:
        is_tty = False

    if is_tty:
        await run_tty_mode(config, args)
    else:
        await run_non_tty_mode(config, args)


def main() -> None:
    args = build_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nExiting.")
        sys.exit(0)


if __name__ == "__main__":
    main()
