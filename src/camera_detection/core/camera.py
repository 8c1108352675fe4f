"""
Camera stream supervision.

Owns the long-lived ffmpeg decoder that turns the camera stream into a
sequence of JPEG frames on stdout, and restarts it when it dies.
"""

import logging
import os
import re
import subprocess
import threading
import time
from collections.abc import Callable

from ..config.schemas import Config
from ..utils.constants import (
    DEFAULT_FFMPEG_PATH,
    DEFAULT_RESTART_DELAY,
    DEFAULT_TARGET_FPS,
    ENV_CAMERA_IP,
    ENV_CAMERA_PASSWORD,
    ENV_CAMERA_PATH,
    ENV_CAMERA_PORT,
    ENV_CAMERA_URL,
    ENV_CAMERA_USERNAME,
    PROCESS_TERMINATE_TIMEOUT,
    READ_CHUNK_SIZE,
    WATCHDOG_CHECK_INTERVAL,
)
from .frame_extractor import FrameExtractor

logger = logging.getLogger(__name__)


def mask_url(url: str) -> str:
    """Hide the password in a stream URL for logging."""
    return re.sub(r":[^:@/]+@", ":***@", url)


def resolve_camera_url(config: Config, environ=None) -> str:
    """
    Resolve the camera stream URL.

    Order: CAMERA_RTSP_URL env var, camera.url from config, then a URL
    built from the CAMERA_IP / CAMERA_RTSP_PORT / CAMERA_USERNAME /
    CAMERA_PASSWORD / CAMERA_RTSP_PATH env vars.

    Raises:
        RuntimeError: If no URL can be determined
    """
    environ = os.environ if environ is None else environ

    if environ.get(ENV_CAMERA_URL):
        return environ[ENV_CAMERA_URL]
    if config.camera.url:
        return config.camera.url

    ip = environ.get(ENV_CAMERA_IP)
    if not ip:
        raise RuntimeError(
            f"No camera URL configured (set camera.url, {ENV_CAMERA_URL} or {ENV_CAMERA_IP})"
        )
    port = environ.get(ENV_CAMERA_PORT, "554")
    username = environ.get(ENV_CAMERA_USERNAME, "admin")
    password = environ.get(ENV_CAMERA_PASSWORD, "")
    path = environ.get(ENV_CAMERA_PATH, "/stream1")

    url = f"rtsp://{username}:{password}@{ip}:{port}{path}"
    logger.info(f"Constructed camera URL: {mask_url(url)}")
    return url


def build_ffmpeg_args(
    source_url: str, fps: float, ffmpeg_path: str = DEFAULT_FFMPEG_PATH
) -> list[str]:
    """
    Build the decoder command line.

    TCP transport for RTSP, fps filter at the inference rate, one JPEG per
    frame on stdout, no audio.
    """
    args = [ffmpeg_path, "-hide_banner", "-loglevel", "error"]
    if source_url.startswith("rtsp"):
        args += ["-rtsp_transport", "tcp"]
    args += [
        "-i",
        source_url,
        "-an",
        "-vf",
        f"fps={fps:g}",
        "-f",
        "image2pipe",
        "-c:v",
        "mjpeg",
        "-q:v",
        "5",
        "pipe:1",
    ]
    return args


class FrameSource:
    """
    Supervises the decoder subprocess and feeds its output to a FrameExtractor.

    Exactly one subprocess is authoritative at a time. When it exits while
    the source is running, the old handle is reaped and a single restart is
    scheduled after restart_delay seconds, re-resolving the URL.
    """

    def __init__(
        self,
        url_resolver: Callable[[], str],
        extractor: FrameExtractor | None = None,
        fps: float | Callable[[], float] = DEFAULT_TARGET_FPS,
        restart_delay: float = DEFAULT_RESTART_DELAY,
        stall_timeout: float | None = None,
        ffmpeg_path: str = DEFAULT_FFMPEG_PATH,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        """
        Args:
            url_resolver: Returns the current stream URL (called on every spawn)
            extractor: Frame extractor receiving stdout bytes
            fps: Decoder frame rate, or a callable read on every spawn
            restart_delay: Seconds to wait before respawning after an exit
            stall_timeout: Kill the decoder after this many seconds without a frame
            ffmpeg_path: Decoder executable
            popen: Process factory (subprocess.Popen signature)
            timer_factory: Timer factory (threading.Timer signature)
        """
        self.url_resolver = url_resolver
        self.extractor = extractor or FrameExtractor()
        self._fps = fps
        self.restart_delay = restart_delay
        self.stall_timeout = stall_timeout
        self.ffmpeg_path = ffmpeg_path
        self._popen = popen
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self._running = False
        self._process: subprocess.Popen | None = None
        self._reader_thread: threading.Thread | None = None
        self._stderr_thread: threading.Thread | None = None
        self._restart_timer: threading.Timer | None = None
        self._watchdog_stop = threading.Event()
        self._watchdog_thread: threading.Thread | None = None
        self._last_frame_time = 0.0
        self.restart_count = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def process(self) -> subprocess.Popen | None:
        return self._process

    @property
    def fps(self) -> float:
        return self._fps() if callable(self._fps) else self._fps

    def latest(self) -> tuple[int, bytes | None]:
        """Most recent complete frame as (sequence, bytes)."""
        return self.extractor.latest()

    def start(self) -> None:
        """Start the decoder (no-op if already running)."""
        with self._lock:
            if self._running:
                logger.warning("Frame source is already running")
                return
            self._running = True
            self._last_frame_time = time.monotonic()
            self._spawn()

        if self.stall_timeout:
            self._watchdog_stop.clear()
            self._watchdog_thread = threading.Thread(
                target=self._watchdog, name="frame-source-watchdog", daemon=True
            )
            self._watchdog_thread.start()

    def stop(self) -> None:
        """Stop the decoder, cancel pending restarts, and reset extraction state."""
        with self._lock:
            self._running = False
            if self._restart_timer is not None:
                self._restart_timer.cancel()
                self._restart_timer = None
            process = self._process
            self._process = None

        self._watchdog_stop.set()
        if process is not None:
            self._terminate(process)

        for thread in (self._reader_thread, self._stderr_thread, self._watchdog_thread):
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=PROCESS_TERMINATE_TIMEOUT)

        self._reader_thread = None
        self._stderr_thread = None
        self._watchdog_thread = None
        self.extractor.reset()
        logger.info("Frame source stopped")

    def _spawn(self) -> None:
        """Start a decoder process. Caller holds the lock."""
        try:
            url = self.url_resolver()
            args = build_ffmpeg_args(url, self.fps, self.ffmpeg_path)
            logger.info(f"Starting decoder: {mask_url(' '.join(args))}")
            process = self._popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except (OSError, RuntimeError) as e:
            logger.error(f"Failed to start decoder: {e}")
            self._schedule_restart()
            return

        self._process = process
        self.extractor.clear_buffer()

        self._reader_thread = threading.Thread(
            target=self._read_stdout, args=(process,), name="frame-source-reader", daemon=True
        )
        self._stderr_thread = threading.Thread(
            target=self._read_stderr, args=(process,), name="frame-source-stderr", daemon=True
        )
        self._reader_thread.start()
        self._stderr_thread.start()

    def _read_stdout(self, process: subprocess.Popen) -> None:
        """Pump decoder stdout into the extractor until EOF, then handle the exit."""
        try:
            for chunk in iter(lambda: process.stdout.read1(READ_CHUNK_SIZE), b""):
                if process is not self._process:
                    break
                if self.extractor.feed(chunk):
                    self._last_frame_time = time.monotonic()
        except (OSError, ValueError) as e:
            # Pipe closed underneath us during stop()
            logger.debug(f"Decoder stdout closed: {e}")

        returncode = process.wait()
        self._on_exit(process, returncode)

    def _read_stderr(self, process: subprocess.Popen) -> None:
        """Log decoder diagnostics."""
        try:
            for line in iter(process.stderr.readline, b""):
                message = line.decode("utf-8", errors="replace").strip()
                if message:
                    logger.debug(f"ffmpeg: {message}")
        except (OSError, ValueError):
            pass

    def _on_exit(self, process: subprocess.Popen, returncode: int | None) -> None:
        with self._lock:
            if not self._running or process is not self._process:
                return
            logger.warning(f"Decoder exited with code {returncode}")
            self._process = None
            self.extractor.clear_buffer()
            self._schedule_restart()

    def _schedule_restart(self) -> None:
        """Arm a single restart timer. Caller holds the lock."""
        if not self._running or self._restart_timer is not None:
            return
        logger.info(f"Restarting decoder in {self.restart_delay}s")
        timer = self._timer_factory(self.restart_delay, self._restart)
        timer.daemon = True
        self._restart_timer = timer
        timer.start()

    def _restart(self) -> None:
        with self._lock:
            self._restart_timer = None
            if not self._running or self._process is not None:
                return
            self.restart_count += 1
            self._last_frame_time = time.monotonic()
            self._spawn()

    def _watchdog(self) -> None:
        """Kill a decoder that stopped producing frames; the exit path restarts it."""
        interval = min(WATCHDOG_CHECK_INTERVAL, self.stall_timeout)
        while not self._watchdog_stop.wait(interval):
            with self._lock:
                process = self._process
            if process is None:
                continue
            elapsed = time.monotonic() - self._last_frame_time
            if elapsed > self.stall_timeout:
                logger.warning(
                    f"Stream watchdog: no frame for {elapsed:.0f}s, killing decoder"
                )
                self._last_frame_time = time.monotonic()
                process.kill()

    @staticmethod
    def _terminate(process: subprocess.Popen) -> None:
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=PROCESS_TERMINATE_TIMEOUT)
            except subprocess.TimeoutExpired:
                logger.warning("Decoder not responding - killing")
                process.kill()
                process.wait()
