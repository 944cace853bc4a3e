from __future__ import annotations

import re
from pathlib import Path

CONVERSATION_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def latest_conversation_id(conversations_dir: Path) -> str | None:
    """Return the id of the most recently written conversation transcript.

    The assistant writes ``<project-key>/<conversation-id>.jsonl`` under the
    directory that is mounted over ``~/.claude/projects``.
    """
    root = Path(conversations_dir)
    if not root.is_dir():
        return None
    latest: str | None = None
    latest_mtime = -1.0
    for transcript in root.glob("**/*.jsonl"):
        if not transcript.is_file():
            continue
        if not CONVERSATION_ID_PATTERN.match(transcript.stem):
            continue
        try:
            mtime = transcript.stat().st_mtime
        except OSError:
            continue
        if mtime >= latest_mtime:
            latest = transcript.stem
            latest_mtime = mtime
    return latest
