"""Backend-agnostic payload normalization.

The REST endpoints and the push channel were written at different times
and do not agree on spellings. This module turns their values into the
canonical forms the store works with.

Key normalizations:
1. Job status values → queued, running, completed, failed
2. Progress and gauges → percent floats clamped to 0-100
3. Memory and disk sizes → gigabytes
4. Timestamps → epoch seconds
5. Task ids → the job registry (domain) that owns them
"""

from __future__ import annotations

import datetime as dt
import re
from typing import Any, Optional


# =============================================================================
# Job Status Normalization
# =============================================================================

JOB_STATUS_MAP = {
    "queued": "queued",
    "pending": "queued",
    "waiting": "queued",
    "scheduled": "queued",
    "submitted": "queued",
    "running": "running",
    "started": "running",
    "in_progress": "running",
    "processing": "running",
    "completed": "completed",
    "complete": "completed",
    "done": "completed",
    "finished": "completed",
    "success": "completed",
    "succeeded": "completed",
    "failed": "failed",
    "failure": "failed",
    "error": "failed",
    "errored": "failed",
    "cancelled": "failed",
    "canceled": "failed",
}

# Task id prefixes the backend uses → owning registry
TASK_PREFIX_MAP = (
    ("extract_", "extraction"),
    ("pattern_", "extraction"),
    ("analysis_", "analysis"),
    ("analyze_", "analysis"),
    ("backtest_", "analysis"),
    ("preprocess_", "processing"),
    ("upload_", "processing"),
)

DOMAIN_ALIASES = {
    "extraction": "extraction",
    "patterns": "extraction",
    "analysis": "analysis",
    "backtest": "analysis",
    "processing": "processing",
    "data": "processing",
    "system": "system",
}


def normalize_job_status(state: Any) -> Optional[str]:
    """Normalize a job status to canonical format.

    Args:
        state: Raw status value from a REST payload or push frame

    Returns:
        queued, running, completed or failed; None if unrecognized
    """
    if not isinstance(state, str):
        return None
    key = state.strip().lower().replace("-", "_").replace(" ", "_")
    return JOB_STATUS_MAP.get(key)


def detect_job_domain(task_id: str, hint: Any = None) -> str:
    """Work out which registry owns a task.

    An explicit domain hint wins; otherwise the task id prefix decides.
    Unknown ids belong to the system registry.
    """
    if isinstance(hint, str) and hint.strip().lower() in DOMAIN_ALIASES:
        return DOMAIN_ALIASES[hint.strip().lower()]

    task_lower = task_id.lower()
    for prefix, domain in TASK_PREFIX_MAP:
        if task_lower.startswith(prefix):
            return domain
    return "system"


# =============================================================================
# Numeric Normalization
# =============================================================================


def parse_percent(value: Any) -> Optional[float]:
    """Parse a percentage from a number or a string such as "45.2%".

    Returns:
        Float percentage or None if unparseable
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    match = re.match(r"\s*(-?[\d.]+)\s*%?\s*$", str(value))
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def normalize_progress(value: Any) -> Optional[float]:
    """Parse a progress value and clamp it to 0-100."""
    percent = parse_percent(value)
    if percent is None or percent != percent:  # NaN
        return None
    return max(0.0, min(100.0, percent))


def normalize_memory_to_gb(value: str) -> Optional[float]:
    """Convert memory string to gigabytes.

    Handles formats: 16 GB, 128gb, 128g, 131072mb, 134217728kb, 137438953472b

    Args:
        value: Memory value string with optional unit suffix

    Returns:
        Value in gigabytes or None if unparseable
    """
    if not value:
        return None

    value = value.lower().strip()

    match = re.match(r"([\d.]+)\s*([a-z]*)", value)
    if not match:
        return None

    try:
        num = float(match.group(1))
        unit = match.group(2)

        if unit in ("gb", "g", "gib"):
            return num
        if unit in ("mb", "m", "mib"):
            return num / 1024
        if unit in ("kb", "k", "kib"):
            return num / (1024 * 1024)
        if unit in ("b", "bytes"):
            return num / (1024 * 1024 * 1024)
        if unit in ("tb", "t", "tib"):
            return num * 1024

        return num  # Assume GB if no unit
    except (ValueError, TypeError):
        return None


# =============================================================================
# Timestamp Normalization
# =============================================================================


def parse_timestamp(value: Any) -> Optional[float]:
    """Convert a timestamp to epoch seconds.

    Handles epoch seconds, epoch milliseconds and ISO 8601 strings
    (a trailing "Z" is read as UTC, naive strings are assumed UTC).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # Millisecond timestamps come from the JavaScript side of the backend
        return float(value) / 1000 if value > 1e12 else float(value)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed.timestamp()
