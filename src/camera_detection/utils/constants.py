"""
Constants used throughout the camera detection pipeline
"""

# Frame markers (JPEG start-of-image / end-of-image)
FRAME_START_MARKER = b"\xff\xd8"
FRAME_END_MARKER = b"\xff\xd9"
MAX_FRAME_BUFFER_BYTES = 16 * 1024 * 1024  # Drop an in-progress frame beyond this
READ_CHUNK_SIZE = 64 * 1024

# Decoder subprocess
DEFAULT_FFMPEG_PATH = "ffmpeg"
DEFAULT_RESTART_DELAY = 3.0  # Seconds before respawning a dead decoder
DEFAULT_STALL_TIMEOUT = 30.0  # Seconds without a frame before the decoder is killed
WATCHDOG_CHECK_INTERVAL = 5.0
PROCESS_TERMINATE_TIMEOUT = 5.0

# Detection defaults
DEFAULT_CONFIDENCE_THRESHOLD = 0.6
DEFAULT_TARGET_FPS = 2.0
DEFAULT_IOU_THRESHOLD = 0.3
DEFAULT_STALE_TIMEOUT = 5.0  # Seconds
DEFAULT_WORKING_WIDTH = 640
DEFAULT_WORKING_HEIGHT = 480
DEFAULT_MODEL_FILE = "yolov8n.pt"
STATUS_REPORT_INTERVAL = 100  # Log status every N cycles

# Retention
DEFAULT_RETENTION_DAYS = 7
MIN_RETENTION_DAYS = 1
MAX_RETENTION_DAYS = 365
DEFAULT_PURGE_INTERVAL = 3600  # 1 hour
DEFAULT_VACUUM_THRESHOLD = 100  # Compact storage after deleting more rows than this
PURGE_BATCH_SIZE = 500

# Storage layout
DEFAULT_DATA_DIR = "./data"
SNAPSHOT_SUBDIR = "snapshots"
DATABASE_FILENAME = "camera.db"
SNAPSHOT_EXTENSIONS = (".jpg", ".jpeg", ".png")

# Management boundary
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
TOP_LABELS_LIMIT = 10

# Environment variables
ENV_CAMERA_URL = "CAMERA_RTSP_URL"
ENV_CAMERA_IP = "CAMERA_IP"
ENV_CAMERA_PORT = "CAMERA_RTSP_PORT"
ENV_CAMERA_USERNAME = "CAMERA_USERNAME"
ENV_CAMERA_PASSWORD = "CAMERA_PASSWORD"
ENV_CAMERA_PATH = "CAMERA_RTSP_PATH"
ENV_MODEL_FILE = "DETECTION_MODEL"
ENV_THRESHOLD = "DETECTION_THRESHOLD"
ENV_FPS = "DETECTION_FPS"
ENV_IOU_THRESHOLD = "DETECTION_IOU_THRESHOLD"
ENV_STALE_TIMEOUT = "DETECTION_STALE_TIMEOUT"
ENV_LABELS = "DETECTION_LABELS"
ENV_RETENTION_DAYS = "RETENTION_DAYS"
ENV_DATA_DIR = "DATA_DIR"
ENV_DATABASE_URL = "DATABASE_URL"
ENV_WEBHOOK_URL = "BROADCAST_WEBHOOK_URL"
