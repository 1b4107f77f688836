"""Centralized configuration constants for Codex Session Index."""

from pathlib import Path

# Persisted schema
INDEX_VERSION = 1
INDEX_FILE = "index.json"
MANIFEST_FILE = "manifest.json"
SESSION_DIR = "session"

# Input corpus
LOG_EXTENSION = ".jsonl"
READ_CHUNK_SIZE = 64 * 1024

# Summaries
UNKNOWN_DAY = "unknown"
UNKNOWN_TOOL = "unknown"
ERROR_OUTPUT_PATTERN = r"error|exception|traceback"

# Timelines
MAX_TIMELINE_EVENTS = 5000

# Directory defaults
SESSIONS_DIR_ENV = "CODEX_SESSIONS_DIR"
CACHE_DIR_ENV = "CODEX_VIZ_CACHE_DIR"
DEFAULT_SESSIONS_DIR = Path.home() / ".codex" / "sessions"
DEFAULT_CACHE_DIR = Path.home() / ".codex-viz" / "cache"

# Server
LOG_LEVEL_ENV = "CODEX_SESSION_INDEX_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"

# Query defaults
DEFAULT_MAX_EVENTS = 200
DEFAULT_MAX_SESSIONS = 50
DEFAULT_OFFSET = 0
DEFAULT_PREVIEW_CHARS = 2000
