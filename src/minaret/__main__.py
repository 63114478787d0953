"""Minaret entry point.

Usage:
    python -m minaret [OPTIONS]

Options:
    --config PATH        Path to YAML config file
    --profile NAME       Profile name (dev, prod, test)
    --dry-run            Show the next interruption and exit
    --mock-audio         Use recording audio channels
    --trigger-now [NAME] Run one interruption right away
    --log-level LEVEL    Override the configured log level
    --version            Show version
"""

import argparse
import logging
import signal
import sys
import threading
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

from . import __version__
from .config import MinaretConfig
from .config.loader import load_config
from .config.profiles import detect_profile
from .errors import MinaretError

# Try the project root (parent of src/) first, then the working directory
_env_file = Path(__file__).parent.parent.parent / ".env"
if _env_file.exists():
    load_dotenv(_env_file)
else:
    load_dotenv()

SHUTDOWN_TIMEOUT_S: float = 2.0


def setup_logging(level: str, fmt: str | None = None) -> None:
    """Configure logging based on config."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format=fmt or "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="minaret",
        description="Minaret - prayer-time audio interruption engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m minaret --mock-audio                 # Run with auto-detected profile
  python -m minaret --profile dev --mock-audio   # Run with development profile
  python -m minaret --dry-run                    # Show the next interruption
  python -m minaret --mock-audio --trigger-now   # Run one interruption now

Environment:
  MINARET_PROFILE    Set profile (dev, prod, test)
""",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to YAML config file",
        metavar="PATH",
    )

    parser.add_argument(
        "--profile",
        choices=["dev", "prod", "test"],
        help="Configuration profile to use",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Minaret v{__version__}",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Load config, show the next interruption and exit",
    )

    parser.add_argument(
        "--mock-audio",
        action="store_true",
        help="Use recording audio channels (no real playback backend)",
    )

    parser.add_argument(
        "--trigger-now",
        nargs="?",
        const="Test",
        metavar="NAME",
        help="Run one interruption immediately (default name: Test)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Override the configured log level",
    )

    return parser.parse_args(argv)


def handle_dry_run(config: MinaretConfig, logger: logging.Logger) -> int:
    """Print the next interruption for the configured prayer times.

    Returns:
        Exit code
    """
    from .schedule import compute_next_trigger, events_from_times

    try:
        events = events_from_times(config.prayer_times.times, config.prayer_times.excluded)
        plan = compute_next_trigger(events, datetime.now(), config.schedule.minutes_before)
    except MinaretError as e:
        logger.error(f"Cannot compute next interruption: {e}")
        return 1

    logger.info("Dry run mode - exiting after config load")
    for event in events:
        marker = "" if event.triggers else " (no interruption)"
        print(f"  {event.name:<8} {event.clock_time}{marker}")

    if not config.schedule.enabled:
        print("\nScheduled interruptions are disabled.")
    elif plan is None:
        print("\nNo interruption within the next 24 hours.")
    else:
        print(
            f"\nNext interruption: {plan.event.name} at {plan.starts_at:%H:%M} "
            f"(in {plan.minutes_until_trigger} minutes)"
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for Minaret.

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    args = parse_args(argv)

    # Load configuration
    try:
        config = load_config(path=args.config, profile=args.profile)
    except FileNotFoundError as e:
        print(f"Error: Config file not found: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    level = args.log_level or config.logging.level
    setup_logging(level, config.logging.format)
    logger = logging.getLogger("minaret")

    profile = args.profile or detect_profile().value
    logger.info(f"Minaret v{__version__}")
    logger.info(f"Profile: {profile}")
    logger.info(f"Log level: {level}")

    if args.dry_run:
        return handle_dry_run(config, logger)

    if not args.mock_audio:
        logger.error("No playback backend available; run with --mock-audio")
        return 1

    from .audio.mock import MockAlternatePlayer, MockAudioChannel, MockInterruptPlayer
    from .engine import InterruptionEngine
    from .timing import ThreadedClock

    clock = ThreadedClock()
    playback = MockAudioChannel("main", volume=config.schedule.default_volume, playing=True)
    fallback = MockAudioChannel("fallback", volume=0)

    try:
        engine = InterruptionEngine.from_config(
            config,
            playback,
            # Mock content gives no completion signal, so the assumed duration applies
            MockInterruptPlayer(signals_completion=False),
            clock,
            alternate_player=MockAlternatePlayer(playback),
            fallback=fallback,
            on_state_change=lambda state: logger.debug(f"State hook: {state.name}"),
        )
    except MinaretError as e:
        logger.error(f"Failed to initialize engine: {e}")
        return 1

    # Print startup banner
    print("\n" + "=" * 50)
    print("  Minaret")
    print("=" * 50)
    print(f"  Version: {__version__}")
    print(f"  Profile: {profile}")
    print(f"  Lead time: {config.schedule.minutes_before} min")
    print(f"  Post action: {config.schedule.post_action.value}")
    print(f"  Stop mode: {config.schedule.stop_mode.value}")
    print("=" * 50 + "\n")

    # Setup signal handlers for graceful shutdown
    shutdown_requested = threading.Event()

    def signal_handler(_signum: int, _frame: object) -> None:
        if shutdown_requested.is_set():
            logger.warning("Force quit requested")
            sys.exit(1)
        logger.info("Shutdown requested, cleaning up...")
        shutdown_requested.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    clock.start()
    clock.call_soon(engine.start)
    if args.trigger_now:
        label = args.trigger_now
        clock.call_soon(lambda: engine.trigger_sequence_now(label))

    print("Press Ctrl+C to stop.\n")

    try:
        while not shutdown_requested.wait(0.1):
            pass
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        stopped = threading.Event()

        def _shutdown() -> None:
            try:
                engine.shutdown()
            finally:
                stopped.set()

        clock.call_soon(_shutdown)
        stopped.wait(SHUTDOWN_TIMEOUT_S)
        clock.stop()
        logger.info("Minaret shut down gracefully")

    return 0


if __name__ == "__main__":
    sys.exit(main())
