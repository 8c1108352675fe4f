"""
Camera Detection CLI
Main entry point for running the detection pipeline.

Maintenance commands:
  --validate  Check configuration and show effective settings
  --purge     Run one retention pass
  --stats     Print event statistics
"""

import argparse
import json
import logging
import signal
import sys
import time
from threading import Event

from .config import ConfigError, DetectionSettings, load_config
from .config.schemas import Config
from .core.camera import mask_url, resolve_camera_url
from .core.pipeline import DetectionPipeline, build_pipeline, load_persisted_settings
from .service import DetectionService
from .storage import EventStore, PurgeEngine

logger = logging.getLogger(__name__)

# Module-level shutdown signal for SIGTERM/SIGINT handling
_shutdown_signal = Event()


def _handle_shutdown_signal(signum, _frame):
    """Handle SIGTERM/SIGINT for graceful shutdown."""
    signal_name = "SIGTERM" if signum == signal.SIGTERM else "SIGINT"
    # Note: print is safer than logger in signal handlers
    print(f"\nReceived {signal_name}, initiating graceful shutdown...")
    _shutdown_signal.set()


def _setup_signal_handlers():
    """Register signal handlers for graceful shutdown."""
    signal.signal(signal.SIGTERM, _handle_shutdown_signal)
    signal.signal(signal.SIGINT, _handle_shutdown_signal)


class ShortNameFormatter(logging.Formatter):
    """Formatter with shorter module names."""

    def format(self, record):
        record.name = record.name.replace("camera_detection.", "cd.")
        return super().format(record)


def setup_logging(quiet: bool = False) -> None:
    """
    Setup logging configuration.

    Args:
        quiet: If True, only show warnings and errors
    """
    level = logging.WARNING if quiet else logging.INFO

    handler = logging.StreamHandler()
    handler.setFormatter(
        ShortNameFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s", datefmt="%H:%M:%S"
        )
    )
    logging.root.addHandler(handler)
    logging.root.setLevel(level)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Camera Detection - persist and broadcast objects seen on a camera stream",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m camera_detection               # Run until Ctrl+C / SIGTERM
  python -m camera_detection 8             # Run for 8 hours
  python -m camera_detection --quiet       # Minimal logs

Maintenance:
  python -m camera_detection --validate    # Check config, show effective settings
  python -m camera_detection --purge       # Apply retention once and exit
  python -m camera_detection --stats       # Print event statistics as JSON

Environment Variables:
  CAMERA_RTSP_URL - Override camera URL from config
  DATA_DIR        - Snapshot and database directory
        """,
    )

    parser.add_argument(
        "duration",
        type=float,
        nargs="?",
        help="Duration in hours (default: run until stopped)",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Quiet mode - only show warnings and errors",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to config file (default: ./config.yaml or ~/.config/camera-detection/config.yaml)",
    )

    commands = parser.add_mutually_exclusive_group()
    commands.add_argument(
        "--validate",
        action="store_true",
        help="Validate configuration and show effective settings",
    )
    commands.add_argument(
        "--purge", action="store_true", help="Run one retention pass and exit"
    )
    commands.add_argument(
        "--stats", action="store_true", help="Print event statistics and exit"
    )

    args = parser.parse_args(argv)
    if args.duration is not None and args.duration <= 0:
        parser.error(f"Invalid duration '{args.duration}' - must be positive")
    return args


def run_validate(config: Config) -> int:
    """Print the effective configuration."""
    effective = config.model_dump()
    try:
        effective["camera"]["url"] = mask_url(resolve_camera_url(config))
    except RuntimeError as e:
        print(f"Warning: {e}")
    effective["storage"]["snapshot_dir"] = str(config.storage.snapshot_dir)
    effective["storage"]["database_url"] = config.storage.resolved_database_url

    print("Configuration valid\n")
    print(json.dumps(effective, indent=2))
    return 0


def _open_store(config: Config) -> tuple[EventStore, DetectionSettings]:
    store = EventStore(config.storage.resolved_database_url)
    store.initialize()
    settings = load_persisted_settings(store, DetectionSettings.from_config(config))
    return store, settings


def run_purge(config: Config) -> int:
    store, settings = _open_store(config)
    try:
        engine = PurgeEngine(
            store,
            config.storage.snapshot_dir,
            settings,
            vacuum_threshold=config.retention.vacuum_threshold,
        )
        result = engine.purge()
    finally:
        store.close()

    print(f"Cutoff: {result.cutoff.isoformat()}")
    print(f"Events deleted: {result.deleted_rows}")
    print(f"Snapshots deleted: {result.deleted_files}")
    print(f"Orphans deleted: {result.orphan_files}")
    if result.failed_files:
        print(f"Failed: {len(result.failed_files)} file(s)")
    if result.compacted:
        print("Storage compacted")
    return 0


def run_stats(config: Config) -> int:
    store, settings = _open_store(config)
    try:
        response = DetectionService(store, settings, config.storage.snapshot_dir).get_stats()
    finally:
        store.close()

    print(json.dumps(response.body, indent=2))
    return 0 if response.ok else 1


def print_banner(pipeline: DetectionPipeline, duration_hours: float | None) -> None:
    """Print startup banner."""
    config = pipeline.config
    settings = pipeline.settings

    print("\n" + "=" * 70)
    print("CAMERA DETECTION")
    print("=" * 70)
    print(f"\nModel: {config.detection.model_file}")
    print(f"Labels: {', '.join(sorted(settings.enabled_labels)) or '(none)'}")
    print(
        f"Threshold: {settings.confidence_threshold:.0%} | "
        f"FPS: {settings.target_fps:g} | Retention: {settings.retention_days}d"
    )
    print(f"Data: {config.storage.data_dir}")
    if config.broadcast.webhook_url:
        print(f"Webhook: {config.broadcast.webhook_url}")

    print("\nRuntime:")
    if duration_hours:
        print(f"  Duration: {duration_hours} hour(s) ({duration_hours * 60:.0f} minutes)")
    else:
        print("  Duration: until stopped")
    print("  Press Ctrl+C to stop")
    print("=" * 70)
    print()


def run_pipeline(config: Config, duration_hours: float | None) -> int:
    pipeline = build_pipeline(config)
    print_banner(pipeline, duration_hours)

    _setup_signal_handlers()
    pipeline.start()

    start_time = time.time()
    timeout = duration_hours * 3600 if duration_hours else None
    reason = "signal" if _shutdown_signal.wait(timeout) else "duration"
    elapsed = time.time() - start_time

    pipeline.stop()
    pipeline.store.close()

    print(f"\n{'=' * 70}")
    if reason == "duration":
        print(f"Duration reached - stopped after {elapsed / 60:.1f} minutes")
    else:
        print("Shutdown signal received (SIGTERM/SIGINT)")
    print(f"New objects: {pipeline.tracker.new_object_count}")
    print(f"Decoder restarts: {pipeline.source.restart_count}")
    print("=" * 70)
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main orchestrator function."""
    args = parse_args(argv)

    is_maintenance = args.validate or args.purge or args.stats
    setup_logging(quiet=args.quiet or is_maintenance)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    if args.validate:
        sys.exit(run_validate(config))
    if args.purge:
        sys.exit(run_purge(config))
    if args.stats:
        sys.exit(run_stats(config))

    sys.exit(run_pipeline(config, args.duration))


if __name__ == "__main__":
    main()
