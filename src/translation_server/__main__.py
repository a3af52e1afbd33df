"""
=============================================================================
TRANSLATION SERVER CLI ENTRY POINT
=============================================================================

    # Defaults (127.0.0.1:5308, echo engine)
    python -m translation_server

    # Any free port; the banner shows which one was bound
    python -m translation_server --port 0

    # Real translations through a LibreTranslate instance
    python -m translation_server --engine libretranslate \\
        --libretranslate-url http://127.0.0.1:5000

    # FIFO admission instead of last-submitter-wins
    python -m translation_server --admission queue --max-queued 4

Settings come from, highest priority first: these flags, TRANSLATOR_*
environment variables (see ServerConfig.from_env), built-in defaults.

=============================================================================
"""

import argparse
import sys

from . import __version__
from .config import ADMISSION_POLICIES, ENGINES, ServerConfig
from .server import ServerState, TranslationServer, setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="translation-server",
        description="Local HTTP front end for a single-session translation engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m translation_server                          # Run with defaults
  python -m translation_server --port 0                 # Any free port
  python -m translation_server --engine libretranslate  # Real engine
  python -m translation_server --admission queue        # No supersession
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument(
        "--port", "-p",
        type=int,
        help="Port to listen on, 0 for any free port (default: 5308)",
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        help="Maximum worker threads (default: 32)",
    )
    parser.add_argument(
        "--buffered",
        action="store_true",
        help="Buffer requests by Content-Length instead of one read per request",
    )
    parser.add_argument(
        "--idle-timeout",
        type=float,
        help="Close connections idle for this many seconds (default: never)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # TRANSLATION ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--engine", choices=ENGINES, help="Translation engine (default: echo)")
    parser.add_argument("--libretranslate-url", help="LibreTranslate base URL")
    parser.add_argument("--api-key", help="LibreTranslate API key")
    parser.add_argument(
        "--admission",
        choices=ADMISSION_POLICIES,
        help="What a new translation does while one is pending (default: supersede)",
    )
    parser.add_argument(
        "--max-queued",
        type=int,
        help="Wait queue depth with --admission queue (default: 8)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"translation-server {__version__}",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment-based config with the given flags applied on top."""
    config = ServerConfig.from_env()

    overrides = {
        "host": args.host,
        "port": args.port,
        "max_workers": args.workers,
        "idle_timeout": args.idle_timeout,
        "engine": args.engine,
        "libretranslate_url": args.libretranslate_url,
        "libretranslate_api_key": args.api_key,
        "admission": args.admission,
        "max_queued_jobs": args.max_queued,
        "log_level": args.log_level,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)

    if args.buffered:
        config.single_read = False
    config.min_workers = min(config.min_workers, config.max_workers)
    return config


def print_banner(server: TranslationServer):
    config = server.config
    url = f"http://{config.host}:{server.port}"
    print()
    print("╔══════════════════════════════════════════════════════════════╗")
    print(f"  Translation server {__version__} running")
    print(f"  URL:       {url}/translate")
    print(f"  Engine:    {server.capability.name}")
    print(f"  Admission: {server.bridge.policy.value}")
    print(f"  Reads:     {'single read' if config.single_read else 'buffered'}")
    print("  Press Ctrl+C to stop")
    print("╚══════════════════════════════════════════════════════════════╝")
    print()
    print("Try it:")
    print(
        f"  curl -X POST {url}/translate -H 'Content-Type: application/json' "
        "-d '{\"text\": \"Hello, World!\", \"source_language\": \"en\", "
        "\"target_language\": \"zh-Hans\"}'"
    )
    print()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        setup_logging(config.log_level)
        server = TranslationServer(config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if server.start() is not ServerState.RUNNING:
        print(f"Error: {server.error_message}", file=sys.stderr)
        return 1

    print_banner(server)
    server.serve_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
