"""
Build event logging utilities for paperbuild (Tier 2 logging).

Appends one JSON object per line to the build event log so that CI runs,
local builds and publications can be audited and filtered later.

For detailed within-context logging (Tier 1), use paperbuild.utils.logger instead.

Usage:
    from paperbuild.utils.event_logging import log_build_event

    log_build_event(
        event_type="build_completed",
        document="main",
        source="rendering",
        page_count=12,
    )
"""

import json
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from paperbuild.utils.timestamp import now_exact

load_dotenv()
LOGS_PATH = Path(os.getenv("LOGS_PATH", "outs/logs"))
BUILD_EVENTS_FILE = Path(os.getenv("BUILD_EVENTS_FILE", str(LOGS_PATH / "build_events.log")))

# Event types emitted by the pipeline, in rough lifecycle order
EVENT_TYPES = (
    "check_completed",
    "check_failed",
    "build_started",
    "build_completed",
    "build_failed",
    "determinism_checked",
    "publish_completed",
    "publish_skipped",
)


def log_build_event(
    event_type: str,
    document: str,
    source: str,
    events_file: Optional[Path] = None,
    **extra_fields,
) -> None:
    """
    Log an event to the build event log.

    Args:
        event_type: Type of event (see EVENT_TYPES)
        document: Manuscript identifier (stem of the main .tex file)
        source: Event source (e.g., "rendering", "sources", "publishing", "cli")
        events_file: Override the event log location (default: BUILD_EVENTS_FILE)
        **extra_fields: Additional event-specific fields, must be JSON serializable
    """
    events_file = Path(events_file or BUILD_EVENTS_FILE)
    events_file.parent.mkdir(parents=True, exist_ok=True)

    event = {
        "timestamp": now_exact(),
        "event_type": event_type,
        "document": document,
        "source": source,
        **extra_fields,
    }

    with open(events_file, "a", encoding="utf-8") as f:
        f.write(json.dumps(event, default=str) + "\n")


def read_events(events_file: Optional[Path] = None) -> List[dict]:
    """Read every well-formed event from the log, oldest first."""
    events_file = Path(events_file or BUILD_EVENTS_FILE)
    if not events_file.exists():
        return []

    events = []
    with open(events_file, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                # Skip partially written lines
                continue
    return events


def get_recent_events(
    n: int = 10,
    document: Optional[str] = None,
    event_type: Optional[str] = None,
    events_file: Optional[Path] = None,
) -> List[dict]:
    """
    Get the last n events from the build log, optionally filtered.

    Args:
        n: Number of recent events to return (default: 10)
        document: Only events for this manuscript (optional)
        event_type: Only events of this type (optional)
        events_file: Override the event log location

    Returns:
        List of event dicts (most recent last); empty when n is not positive

    Raises:
        ValueError: If event_type is not one of EVENT_TYPES

    Example:
        # Last 5 failed builds
        events = get_recent_events(5, event_type="build_failed")
    """
    if event_type and event_type not in EVENT_TYPES:
        raise ValueError(
            f"Unknown event type: '{event_type}' (expected one of: {', '.join(EVENT_TYPES)})"
        )
    if n <= 0:
        return []

    events = read_events(events_file)

    if document:
        events = [e for e in events if e.get("document") == document]

    if event_type:
        events = [e for e in events if e.get("event_type") == event_type]

    return events[-n:]
