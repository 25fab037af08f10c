"""Constants used across chanmirror modules."""

from pathlib import Path

MODES = ("logs", "transcripts")

DEFAULT_LOG_PATH = Path("/tmp/openclaw/openclaw.log")
DEFAULT_SESSIONS_DIR = Path("~/.openclaw/agents/main/sessions")
DEFAULT_SOURCE_CHANNEL = "webchat"
DEFAULT_TARGET_CHANNEL = "telegram"
DEFAULT_MARKER = "[mirrored]"
DEFAULT_CACHE_SIZE = 50
DEFAULT_RUN_CACHE_SIZE = 200
DEFAULT_POLL_SECONDS = 0.5
DEFAULT_SEND_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_CHARS = 4000
DEFAULT_COMMAND_TEMPLATE = "openclaw message send --target {target} --message {message}"

TRUNCATION_SUFFIX = "\n…[truncated]"

EVENTS_FILE = "events.jsonl"
METRICS_FILE = "metrics.json"

# subsystem that emits the embedded agent run lifecycle lines
RUN_SUBSYSTEM = "agent/embedded"
RUN_START_PREFIX = "embedded run start:"
RUN_DONE_PREFIX = "embedded run done:"

# channel labels for user turns that never trigger mirroring
SYSTEM_CHANNEL = "system"
OTHER_CHANNEL = "other"

# leading markers of automated user rows (status pings, queued batches,
# audio transcripts). compared case-insensitively.
SYSTEM_TEXT_PREFIXES = (
    "system:",
    "[system",
    "[status",
    "[queued",
    "[audio",
    "[voice",
    "[transcript",
    "[cron",
    "[heartbeat",
)
