"""
Detection pipeline - wires the decoder, detection loop, tracker, store,
broadcast sinks, and retention engine together.

All runtime state lives on the pipeline instance; nothing is kept at
module level.
"""

import logging
from dataclasses import replace

from ..broadcast import BroadcastSink, LoggingSink, MultiSink
from ..broadcast.webhook import WebhookSink
from ..config.schemas import Config
from ..config.settings import DetectionSettings
from ..models import InferenceEngine
from ..storage import EventRecorder, EventStore, PurgeEngine
from ..utils.constants import MAX_RETENTION_DAYS, MIN_RETENTION_DAYS
from ..utils.labels import is_known_label
from .camera import FrameSource, resolve_camera_url
from .detector import DetectionLoop
from .frame_extractor import FrameExtractor
from .tracker import ObjectTracker

logger = logging.getLogger(__name__)


def load_persisted_settings(store: EventStore, settings: DetectionSettings) -> DetectionSettings:
    """
    Overlay settings saved through the management interface onto the
    configured ones.

    Unknown labels in the stored row are ignored with a warning, and a
    retention outside the allowed range falls back to the configured one.
    """
    saved = store.load_settings()
    if saved is None:
        return settings

    labels = [label for label in saved["enabled_labels"] if is_known_label(label)]
    skipped = set(saved["enabled_labels"]) - set(labels)
    if skipped:
        logger.warning(f"Ignoring unknown saved labels: {', '.join(sorted(skipped))}")

    retention_days = saved["retention_days"]
    if not MIN_RETENTION_DAYS <= retention_days <= MAX_RETENTION_DAYS:
        logger.warning(
            f"Ignoring saved retention of {retention_days} days "
            f"(allowed {MIN_RETENTION_DAYS}-{MAX_RETENTION_DAYS}), "
            f"keeping {settings.retention_days}"
        )
        retention_days = settings.retention_days

    logger.info(
        f"Using saved settings: {len(labels)} labels, {retention_days} day retention"
    )
    return replace(
        settings,
        enabled_labels=frozenset(labels),
        retention_days=retention_days,
    )


class DetectionPipeline:
    """Owns and sequences every long-running component."""

    def __init__(
        self,
        config: Config,
        settings: DetectionSettings,
        store: EventStore,
        source: FrameSource,
        tracker: ObjectTracker,
        loop: DetectionLoop,
        purge_engine: PurgeEngine,
        webhook: WebhookSink | None = None,
    ):
        self.config = config
        self.settings = settings
        self.store = store
        self.source = source
        self.tracker = tracker
        self.loop = loop
        self.purge_engine = purge_engine
        self.webhook = webhook
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            logger.warning("Pipeline is already running")
            return
        self.store.initialize()
        if self.webhook is not None:
            self.webhook.start()
        self.purge_engine.start()
        self.source.start()
        self.loop.start()
        self._running = True
        logger.info("Pipeline started")

    def stop(self) -> None:
        """Stop every component; no broadcast fires after this returns."""
        if not self._running:
            return
        self._running = False
        logger.info("Stopping pipeline...")

        self.loop.stop()
        self.source.stop()
        self.purge_engine.stop()
        if self.webhook is not None:
            self.webhook.stop()
        self.tracker.clear()

        logger.info("Pipeline stopped")


def build_pipeline(
    config: Config,
    engine: InferenceEngine | None = None,
    sinks: list[BroadcastSink] | None = None,
    store: EventStore | None = None,
    **source_kwargs,
) -> DetectionPipeline:
    """
    Construct a pipeline from validated configuration.

    Args:
        config: Validated configuration
        engine: Inference engine (a YoloEngine for detection.model_file by default)
        sinks: Extra broadcast sinks (a LoggingSink is always included)
        store: Event store (built from storage config by default)
        **source_kwargs: Passed to FrameSource (e.g. popen, timer_factory)

    Returns:
        A pipeline ready to start()
    """
    store = store or EventStore(config.storage.resolved_database_url)
    store.initialize()

    settings = load_persisted_settings(store, DetectionSettings.from_config(config))

    if engine is None:
        from .inference import YoloEngine

        engine = YoloEngine(config.detection.model_file)

    webhook = None
    all_sinks: list[BroadcastSink] = [LoggingSink(), *(sinks or [])]
    if config.broadcast.webhook_url:
        webhook = WebhookSink(
            config.broadcast.webhook_url,
            include_frame_detections=config.broadcast.include_frame_detections,
            timeout=config.broadcast.timeout_seconds,
            queue_size=config.broadcast.queue_size,
        )
        all_sinks.append(webhook)
    sink = MultiSink(all_sinks)

    snapshot_dir = config.storage.snapshot_dir
    recorder = EventRecorder(store, snapshot_dir)
    tracker = ObjectTracker(settings, recorder, sink)

    source = FrameSource(
        url_resolver=lambda: resolve_camera_url(config),
        extractor=FrameExtractor(),
        fps=lambda: settings.target_fps,
        restart_delay=config.camera.restart_delay_seconds,
        stall_timeout=config.camera.stall_timeout_seconds,
        ffmpeg_path=config.camera.ffmpeg_path,
        **source_kwargs,
    )

    loop = DetectionLoop(
        source.latest,
        engine,
        tracker,
        settings,
        working_width=config.detection.working_width,
        working_height=config.detection.working_height,
    )

    purge_engine = PurgeEngine(
        store,
        snapshot_dir,
        settings,
        interval=config.retention.purge_interval_seconds,
        vacuum_threshold=config.retention.vacuum_threshold,
    )

    return DetectionPipeline(
        config=config,
        settings=settings,
        store=store,
        source=source,
        tracker=tracker,
        loop=loop,
        purge_engine=purge_engine,
        webhook=webhook,
    )
