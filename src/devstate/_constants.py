"""Internal constants shared across the agent."""

# ------------------------------------------------------------------
# Cadences (seconds). Fixed, not user-configurable.
# ------------------------------------------------------------------

PUBLISH_INTERVAL_S: float = 15.0
DISCONNECT_DEBOUNCE_S: float = 60.0
CHAT_RETRY_DELAY_S: float = 15.0
CHAT_MAX_RETRIES: int = 1

# ------------------------------------------------------------------
# Published payload
# ------------------------------------------------------------------

STATE_TOPIC_SUFFIX = "state"
STATE_QOS = 2
STATE_RETAIN = True
PAYLOAD_INDENT = 4

# ------------------------------------------------------------------
# Host probes
# ------------------------------------------------------------------

CPUINFO_PATH = "/proc/cpuinfo"
OS_RELEASE_PATH = "/etc/os-release"
ROOT_MOUNT = "/"
DEFAULT_DATA_MOUNT = "/mnt/data"
RASPBERRY_PI_PREFIX = "Raspberry Pi"
VCGENCMD = "vcgencmd"
VCGENCMD_TIMEOUT_S: float = 2.0

# ------------------------------------------------------------------
# Logging
# ------------------------------------------------------------------

LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_MAX_BYTES = 1_000_000
UNCAUGHT_LEVEL_TAG = "UNCAUGHT EXCEPTION"
